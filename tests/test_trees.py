import numpy as np
import pytest

from neighborx import config as nx_config
from neighborx.errors import InvalidParameterError, UnsupportedTreeTypeError
from neighborx.trees import (
    BallTree,
    CoverTree,
    KDTree,
    RStarTree,
    RTree,
    SpillTree,
    TreeType,
    XTree,
    build_tree,
    parse_tree_type,
    tree_class,
    tree_name,
)
from neighborx.trees.bounds import BallBound, HRectBound
from neighborx.trees.rectangle_tree import RectangleTree

from tests.utils.datasets import gaussian_points

ALL_TREES = [KDTree, BallTree, CoverTree, RTree, RStarTree, XTree, SpillTree]


def _leaf_rows(tree):
    return np.concatenate([leaf.indices for leaf in tree.leaves()])


def _assert_bounds_contain_descendants(tree):
    for node in tree.root.iter_nodes():
        if node.is_leaf:
            assert node.indices.size or tree.num_points == 0
        else:
            assert node.indices.size == 0
        for row in node.descendants():
            assert node.bound.contains(tree.dataset[row])


@pytest.mark.parametrize("tree_cls", ALL_TREES)
def test_leaves_cover_every_point_and_bounds_contain_them(tree_cls):
    nx_config.reset_runtime_context()
    points = gaussian_points(np.random.default_rng(0), 300, 3)

    tree, permutation = tree_cls.build(points)

    rows = _leaf_rows(tree)
    assert set(rows.tolist()) == set(range(points.shape[0]))
    if tree_cls is not SpillTree:
        assert rows.shape[0] == points.shape[0]
    _assert_bounds_contain_descendants(tree)
    assert (permutation is not None) == tree_cls.reorders


@pytest.mark.parametrize("tree_cls", [KDTree, BallTree])
def test_binary_space_trees_reorder_and_report_permutation(tree_cls):
    points = gaussian_points(np.random.default_rng(1), 100, 2)

    tree, permutation = tree_cls.build(points, leaf_size=5)

    assert permutation is not None
    assert np.array_equal(tree.dataset, points[permutation.old_from_new])
    assert np.array_equal(permutation.unmap_rows(tree.dataset), points)
    assert all(leaf.indices.size <= 5 for leaf in tree.leaves())
    assert tree.leaf_size == 5


def test_binary_space_tree_rejects_bad_leaf_size():
    points = gaussian_points(np.random.default_rng(1), 10, 2)
    with pytest.raises(InvalidParameterError):
        KDTree.build(points, leaf_size=0)


def test_kd_tree_uses_rectangles_and_ball_tree_uses_balls():
    points = gaussian_points(np.random.default_rng(2), 50, 2)
    kd, _ = KDTree.build(points, leaf_size=4)
    ball, _ = BallTree.build(points, leaf_size=4)
    assert isinstance(kd.root.bound, HRectBound)
    assert isinstance(ball.root.bound, BallBound)


def test_cover_tree_has_self_children_and_shrinking_scales():
    points = gaussian_points(np.random.default_rng(4), 200, 2)

    tree, permutation = CoverTree.build(points)

    assert permutation is None
    for node in tree.root.iter_nodes():
        if node.is_leaf:
            continue
        assert node.children[0].center_index == node.center_index
        for child in node.children:
            assert child.scale < node.scale
            assert node.bound.contains(points[child.center_index])


def test_cover_tree_groups_duplicate_points_in_one_leaf():
    points = np.array([[1.0, 1.0]] * 5 + [[4.0, 0.0]])

    tree, _ = CoverTree.build(points)

    leaves = [sorted(leaf.indices.tolist()) for leaf in tree.leaves()]
    assert [0, 1, 2, 3, 4] in leaves


@pytest.mark.parametrize("tree_cls", [RTree, RStarTree, XTree])
def test_rectangle_trees_are_balanced_with_bounded_leaves(tree_cls):
    points = gaussian_points(np.random.default_rng(5), 400, 3)

    tree, permutation = tree_cls.build(points)

    assert permutation is None
    depths = set()
    stack = [(tree.root, 0)]
    while stack:
        node, depth = stack.pop()
        if node.is_leaf:
            depths.add(depth)
            assert len(node.indices) <= tree.params["max_leaf_size"]
        stack.extend((child, depth + 1) for child in node.children)
    assert len(depths) == 1
    assert tree.height > 1


def test_r_tree_internal_nodes_respect_fanout():
    points = gaussian_points(np.random.default_rng(6), 250, 2)
    tree, _ = RTree.build(points, max_leaf_size=6, min_leaf_size=2, max_num_children=4, min_num_children=2)
    for node in tree.root.iter_nodes():
        assert len(node.children) <= 4
        if node.is_leaf:
            assert node.indices.size <= 6


def test_rectangle_tree_rejects_inconsistent_capacities():
    points = gaussian_points(np.random.default_rng(6), 10, 2)
    with pytest.raises(InvalidParameterError):
        RectangleTree.build(points, max_leaf_size=4, min_leaf_size=3)


def test_spill_tree_overlap_stores_boundary_points_on_both_sides():
    points = gaussian_points(np.random.default_rng(7), 400, 2)
    tau = 0.05

    tree, permutation = SpillTree.build(points, tau=tau, leaf_size=10)

    assert permutation is None
    overlapping = [node for node in tree.root.iter_nodes() if not node.is_leaf and node.overlapping]
    assert overlapping
    for node in overlapping:
        members = np.unique(node.descendants())
        values = points[members, node.split_dim]
        near = members[np.abs(values - node.split_value) < tau]
        left = set(node.children[0].descendants().tolist())
        right = set(node.children[1].descendants().tolist())
        for row in near.tolist():
            assert row in left and row in right
        assert max(len(left), len(right)) <= 0.7 * members.shape[0]


def test_spill_tree_without_overlap_partitions():
    points = gaussian_points(np.random.default_rng(8), 200, 3)

    tree, _ = SpillTree.build(points, tau=0.0, leaf_size=8)

    rows = _leaf_rows(tree)
    assert sorted(rows.tolist()) == list(range(200))
    assert not any(node.overlapping for node in tree.root.iter_nodes())


def test_spill_tree_falls_back_when_overlap_is_too_large():
    points = gaussian_points(np.random.default_rng(9), 100, 2)

    tree, _ = SpillTree.build(points, tau=100.0, leaf_size=10)

    assert not any(node.overlapping for node in tree.root.iter_nodes())
    assert sorted(_leaf_rows(tree).tolist()) == list(range(100))


def test_spill_tree_rejects_negative_tau():
    with pytest.raises(InvalidParameterError):
        SpillTree.build(np.zeros((3, 2)), tau=-1.0)


@pytest.mark.parametrize("tree_cls", ALL_TREES)
def test_trees_build_over_empty_and_single_point_sets(tree_cls):
    empty, _ = tree_cls.build(np.empty((0, 2)))
    assert empty.num_points == 0

    single, _ = tree_cls.build(np.array([[1.0, 2.0]]))
    assert _leaf_rows(single).tolist() == [0]


def test_registry_names_and_parsing():
    assert tree_name(TreeType.KD_TREE) == "kd-tree"
    assert tree_name(TreeType.COVER_TREE) == "cover tree"
    assert tree_name(TreeType.R_TREE) == "R tree"
    assert tree_name(TreeType.R_STAR_TREE) == "R* tree"
    assert tree_name(TreeType.BALL_TREE) == "ball tree"
    assert tree_name(TreeType.X_TREE) == "X tree"
    assert tree_name(TreeType.SPILL_TREE) == "spill tree"
    assert parse_tree_type("kd") is TreeType.KD_TREE
    assert parse_tree_type("R* tree") is TreeType.R_STAR_TREE
    assert parse_tree_type("COVER_TREE") is TreeType.COVER_TREE
    assert tree_class(4) is BallTree
    with pytest.raises(UnsupportedTreeTypeError):
        parse_tree_type("quad")
    with pytest.raises(UnsupportedTreeTypeError):
        tree_class(42)


def test_build_tree_dispatches_on_type():
    nx_config.reset_runtime_context()
    points = gaussian_points(np.random.default_rng(10), 40, 2)
    tree, permutation = build_tree(TreeType.BALL_TREE, points, leaf_size=3)
    assert isinstance(tree, BallTree)
    assert permutation is not None
