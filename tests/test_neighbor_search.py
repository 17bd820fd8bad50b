import logging

import numpy as np
import pytest

from neighborx import config as nx_config
from neighborx.core.sort_policy import FurthestNeighborSort, NearestNeighborSort
from neighborx.errors import InvalidParameterError, ModelNotInitializedError, UnsupportedTreeTypeError
from neighborx.search import LeafSearch, NeighborSearch, SpillSearch, TreeSearch, validate_k
from neighborx.trees import BallTree, KDTree, TreeType

from tests.utils.datasets import brute_force_knn, gaussian_dataset, gaussian_points

MODES = [
    pytest.param({"naive": True}, id="naive"),
    pytest.param({"single_mode": True}, id="single"),
    pytest.param({}, id="dual"),
]
POLICIES = [NearestNeighborSort, FurthestNeighborSort]


def _engine(tree_type, policy, **kwargs):
    if tree_type in (TreeType.KD_TREE, TreeType.BALL_TREE):
        return LeafSearch(policy, tree_type, leaf_size=6, **kwargs)
    if tree_type == TreeType.SPILL_TREE:
        return SpillSearch(policy, leaf_size=6, **kwargs)
    return TreeSearch(policy, tree_type, **kwargs)


@pytest.fixture(autouse=True)
def _fresh_runtime():
    nx_config.reset_runtime_context()
    yield
    nx_config.reset_runtime_context()


@pytest.mark.parametrize("tree_type", list(TreeType))
@pytest.mark.parametrize("policy", POLICIES)
@pytest.mark.parametrize("mode", MODES)
def test_search_returns_caller_order_in_every_mode(tree_type, policy, mode):
    points, queries = gaussian_dataset(np.random.default_rng(11), tree_points=150, queries=40, dimension=3)
    engine = _engine(tree_type, policy, **mode)
    engine.train(points)

    neighbors, distances = engine.search(queries, 5)

    expected_idx, expected_dist = brute_force_knn(
        queries, points, 5, furthest=policy is FurthestNeighborSort
    )
    np.testing.assert_array_equal(neighbors, expected_idx)
    np.testing.assert_allclose(distances, expected_dist)


@pytest.mark.parametrize("tree_type", list(TreeType))
@pytest.mark.parametrize("mode", MODES)
def test_search_self_excludes_each_point(tree_type, mode):
    points = gaussian_points(np.random.default_rng(12), 120, 2)
    engine = _engine(tree_type, NearestNeighborSort, **mode)
    engine.train(points)

    neighbors, distances = engine.search_self(4)

    expected_idx, expected_dist = brute_force_knn(points, points, 4, exclude_self=True)
    np.testing.assert_array_equal(neighbors, expected_idx)
    np.testing.assert_allclose(distances, expected_dist)
    assert not np.any(neighbors == np.arange(points.shape[0])[:, None])


@pytest.mark.parametrize("mode", MODES)
def test_search_self_with_k_equal_to_set_size_pads_last_slot(mode):
    points = gaussian_points(np.random.default_rng(13), 9, 2)
    engine = LeafSearch(NearestNeighborSort, TreeType.KD_TREE, leaf_size=2, **mode)
    engine.train(points)

    neighbors, distances = engine.search_self(9)

    assert np.all(neighbors[:, -1] == -1)
    assert np.all(np.isnan(distances[:, -1]))
    for row in range(points.shape[0]):
        assert sorted(neighbors[row, :-1].tolist()) == [i for i in range(9) if i != row]


def test_k_is_validated_against_the_reference_set():
    engine = LeafSearch(NearestNeighborSort)
    engine.train(gaussian_points(np.random.default_rng(14), 5, 2))
    with pytest.raises(InvalidParameterError, match="k must be positive"):
        engine.search(np.zeros((1, 2)), 0)
    with pytest.raises(InvalidParameterError, match="cannot exceed"):
        engine.search(np.zeros((1, 2)), 6)
    with pytest.raises(InvalidParameterError):
        engine.search_self(-1)
    assert validate_k(5, 5) == 5


def test_search_before_training_raises():
    engine = TreeSearch(NearestNeighborSort, TreeType.COVER_TREE)
    with pytest.raises(ModelNotInitializedError):
        engine.search(np.zeros((1, 2)), 1)
    with pytest.raises(ModelNotInitializedError):
        engine.search_self(1)
    with pytest.raises(ModelNotInitializedError):
        _ = engine.reference_set


def test_query_dimension_must_match():
    engine = LeafSearch(NearestNeighborSort)
    engine.train(gaussian_points(np.random.default_rng(15), 20, 3))
    with pytest.raises(InvalidParameterError, match="dimension"):
        engine.search(np.zeros((2, 2)), 1)


@pytest.mark.parametrize("mode", MODES)
def test_empty_query_set_returns_empty_result(mode):
    engine = LeafSearch(NearestNeighborSort, **mode)
    engine.train(gaussian_points(np.random.default_rng(16), 20, 3))

    neighbors, distances = engine.search(np.empty((0, 3)), 2)

    assert neighbors.shape == (0, 2)
    assert distances.shape == (0, 2)


def test_engine_owns_built_tree_and_borrows_given_tree():
    points = gaussian_points(np.random.default_rng(17), 60, 2)
    engine = LeafSearch(NearestNeighborSort, TreeType.KD_TREE, leaf_size=4)
    engine.train(points)
    assert engine.tree_owner
    assert engine.old_from_new_references is not None
    assert engine.release() is True
    assert engine.release() is False
    assert not engine.is_trained

    tree, _ = KDTree.build(points, leaf_size=4)
    engine.train(tree)
    assert not engine.tree_owner
    assert engine.reference_tree is tree
    assert engine.old_from_new_references is None
    neighbors, _ = engine.search(points[:5], 1)
    # a borrowed tree reports rows of its own dataset
    np.testing.assert_allclose(tree.dataset[neighbors[:, 0]], points[:5])
    assert engine.release() is False
    assert tree.num_points == 60


def test_training_rejects_a_tree_of_the_wrong_kind():
    points = gaussian_points(np.random.default_rng(18), 20, 2)
    tree, _ = BallTree.build(points)
    engine = LeafSearch(NearestNeighborSort, TreeType.KD_TREE)
    with pytest.raises(InvalidParameterError):
        engine.train(tree)


def test_naive_engine_builds_tree_lazily_after_mode_switch():
    points, queries = gaussian_dataset(np.random.default_rng(19), tree_points=80, queries=10, dimension=2)
    engine = LeafSearch(NearestNeighborSort, naive=True)
    engine.train(points)
    assert engine.reference_tree is None

    engine.naive = False
    neighbors, _ = engine.search(queries, 3)

    assert engine.reference_tree is not None
    np.testing.assert_array_equal(neighbors, brute_force_knn(queries, points, 3)[0])
    assert engine.mode == "dual"
    engine.single_mode = True
    assert engine.mode == "single"


def test_search_tree_with_caller_built_query_tree():
    points, queries = gaussian_dataset(np.random.default_rng(20), tree_points=90, queries=15, dimension=2)
    engine = LeafSearch(NearestNeighborSort, leaf_size=5)
    engine.train(points)
    query_tree, permutation = KDTree.build(queries, leaf_size=5)

    neighbors, _ = engine.search_tree(query_tree, 2)

    np.testing.assert_array_equal(permutation.unmap_rows(neighbors), brute_force_knn(queries, points, 2)[0])


def test_search_tree_rejects_a_query_tree_of_the_wrong_kind():
    points = gaussian_points(np.random.default_rng(21), 30, 2)
    engine = LeafSearch(NearestNeighborSort, TreeType.KD_TREE, leaf_size=4)
    engine.train(points)
    query_tree, _ = BallTree.build(points[:10], leaf_size=4)

    with pytest.raises(InvalidParameterError):
        engine.search_tree(query_tree, 2)


def _grid(size):
    xs, ys = np.meshgrid(np.arange(size, dtype=np.float64), np.arange(size, dtype=np.float64))
    return np.column_stack([xs.ravel(), ys.ravel()])


@pytest.mark.parametrize("tree_type", [TreeType.KD_TREE, TreeType.BALL_TREE])
@pytest.mark.parametrize("policy", POLICIES)
def test_tied_grid_results_agree_exactly_across_modes(tree_type, policy):
    points = _grid(6)
    queries = points + 0.0
    results = {}
    for name, kwargs in (("naive", {"naive": True}), ("single", {"single_mode": True}), ("dual", {})):
        engine = LeafSearch(policy, tree_type, leaf_size=2, **kwargs)
        engine.train(points)
        results[name] = (engine.search(queries, 3), engine.search_self(3))

    for name in ("single", "dual"):
        for got, expected in zip(results[name], results["naive"]):
            np.testing.assert_array_equal(got[0], expected[0])
            np.testing.assert_array_equal(got[1], expected[1])


def test_leaf_search_rejects_capacity_trees_and_vice_versa():
    with pytest.raises(UnsupportedTreeTypeError):
        LeafSearch(NearestNeighborSort, TreeType.R_TREE)
    with pytest.raises(UnsupportedTreeTypeError):
        TreeSearch(NearestNeighborSort, TreeType.KD_TREE)
    with pytest.raises(InvalidParameterError):
        LeafSearch(NearestNeighborSort, leaf_size=0)


def test_leaf_size_defaults_to_runtime_setting(monkeypatch):
    monkeypatch.setenv("NEIGHBORX_LEAF_SIZE", "7")
    nx_config.reset_runtime_context()
    assert LeafSearch(NearestNeighborSort).leaf_size == 7


def test_engine_state_round_trip_retrains():
    points, queries = gaussian_dataset(np.random.default_rng(21), tree_points=70, queries=5, dimension=2)
    engine = LeafSearch(FurthestNeighborSort, TreeType.BALL_TREE, leaf_size=3, single_mode=True)
    engine.train(points)

    restored = LeafSearch.from_state(engine.to_state())

    assert isinstance(restored, LeafSearch)
    assert restored.kind == TreeType.BALL_TREE
    assert restored.leaf_size == 3
    assert restored.single_mode
    assert restored.policy is FurthestNeighborSort
    np.testing.assert_array_equal(restored.reference_set, points)
    np.testing.assert_array_equal(restored.search(queries, 2)[0], engine.search(queries, 2)[0])


def test_search_logs_operation(caplog):
    engine = TreeSearch(NearestNeighborSort, TreeType.R_STAR_TREE)
    with caplog.at_level(logging.INFO, logger="neighborx"):
        engine.train(gaussian_points(np.random.default_rng(22), 30, 2))
        engine.search(np.zeros((2, 2)), 1)
    assert "op=train" in caplog.text
    assert "op=knn_search" in caplog.text
    assert "tree=r_star_tree" in caplog.text


def test_engines_are_neighbor_search_instances():
    assert issubclass(SpillSearch, NeighborSearch)
    assert issubclass(LeafSearch, NeighborSearch)
    assert repr(LeafSearch("nearest")).startswith("LeafSearch(policy=nearest")
