import math

import numpy as np
import pytest

from neighborx.core.sort_policy import (
    FurthestNeighborSort,
    NearestNeighborSort,
    get_policy,
    policy_from_model_name,
)
from neighborx.errors import InvalidParameterError
from neighborx.trees.bounds import HRectBound


def test_nearest_policy_prefers_smaller_distances():
    assert NearestNeighborSort.is_better(1.0, 2.0)
    assert not NearestNeighborSort.is_better(2.0, 2.0)
    assert NearestNeighborSort.worst_distance == math.inf
    assert NearestNeighborSort.best_distance == 0.0
    assert sorted([3.0, 1.0, 2.0], key=NearestNeighborSort.sort_key) == [1.0, 2.0, 3.0]


def test_furthest_policy_prefers_larger_distances():
    assert FurthestNeighborSort.is_better(2.0, 1.0)
    assert not FurthestNeighborSort.is_better(1.0, 1.0)
    assert FurthestNeighborSort.worst_distance == 0.0
    assert sorted([3.0, 1.0, 2.0], key=FurthestNeighborSort.sort_key) == [3.0, 2.0, 1.0]


def test_pruning_is_strict_at_ties():
    assert not NearestNeighborSort.can_prune(1.0, 1.0)
    assert NearestNeighborSort.can_prune(1.5, 1.0)
    assert not NearestNeighborSort.can_prune(5.0, math.inf)
    assert not FurthestNeighborSort.can_prune(1.0, 1.0)
    assert FurthestNeighborSort.can_prune(0.5, 1.0)
    assert not FurthestNeighborSort.can_prune(0.0, 0.0)


def test_best_case_distance_uses_matching_bound_side():
    bound = HRectBound(np.array([1.0, 0.0]), np.array([2.0, 1.0]))
    point = np.array([0.0, 0.0])
    assert NearestNeighborSort.best_point_to_node(point, bound) == pytest.approx(1.0)
    assert FurthestNeighborSort.best_point_to_node(point, bound) == pytest.approx(math.sqrt(5.0))


def test_relax_scales_bound_toward_pruning():
    assert NearestNeighborSort.relax(2.0, 0.0) == 2.0
    assert NearestNeighborSort.relax(2.0, 1.0) == pytest.approx(1.0)
    assert NearestNeighborSort.relax(math.inf, 0.5) == math.inf
    assert FurthestNeighborSort.relax(1.0, 0.5) == pytest.approx(2.0)
    assert FurthestNeighborSort.relax(0.0, 0.5) == 0.0


def test_epsilon_validation():
    NearestNeighborSort.validate_epsilon(3.0)
    with pytest.raises(InvalidParameterError):
        NearestNeighborSort.validate_epsilon(-0.1)
    with pytest.raises(InvalidParameterError):
        FurthestNeighborSort.validate_epsilon(1.0)


def test_policy_lookup():
    assert get_policy("nearest") is NearestNeighborSort
    assert get_policy(" Furthest ") is FurthestNeighborSort
    assert policy_from_model_name("furthest_neighbor_search_model") is FurthestNeighborSort
    with pytest.raises(InvalidParameterError):
        get_policy("sideways")
    with pytest.raises(InvalidParameterError):
        policy_from_model_name("knn")
