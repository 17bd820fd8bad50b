import math

import numpy as np
import pytest

from neighborx import config as nx_config
from neighborx.core.metrics import EUCLIDEAN, Metric, MetricRegistry, available_metrics, get_metric
from neighborx.trees.bounds import BallBound, HRectBound


def test_euclidean_is_registered_and_default():
    nx_config.reset_runtime_context()
    assert available_metrics() == ("euclidean",)
    assert get_metric() is EUCLIDEAN
    assert get_metric("EUCLIDEAN") is EUCLIDEAN


def test_euclidean_pairwise_and_pointwise():
    lhs = np.array([[0.0, 0.0], [3.0, 4.0]])
    rhs = np.array([[0.0, 0.0], [6.0, 8.0], [3.0, 0.0]])

    pairwise = EUCLIDEAN.pairwise(lhs, rhs)

    np.testing.assert_allclose(pairwise, [[0.0, 10.0, 3.0], [5.0, 5.0, 4.0]])
    assert EUCLIDEAN.pairwise(lhs[0], rhs).shape == (1, 3)
    assert EUCLIDEAN.pairwise(np.empty((0, 2)), rhs).shape == (0, 3)
    np.testing.assert_allclose(EUCLIDEAN.pointwise(lhs, rhs[:2]), [0.0, 5.0])
    assert EUCLIDEAN.pointwise(lhs[1], rhs[2]) == pytest.approx(4.0)
    with pytest.raises(ValueError):
        EUCLIDEAN.pointwise(lhs, rhs)


def test_registry_rejects_duplicates_and_unknown_names():
    registry = MetricRegistry()
    metric = Metric("manhattan", lambda a, b: a, lambda a, b: a)
    registry.register(metric)
    with pytest.raises(ValueError):
        registry.register(metric)
    registry.register(metric, overwrite=True)
    assert registry.names() == ("manhattan",)
    with pytest.raises(KeyError):
        registry.get("chebyshev")


def test_rectangle_bound_distances():
    box = HRectBound.from_points(np.array([[0.0, 0.0], [2.0, 1.0]]))
    other = HRectBound(np.array([5.0, 0.0]), np.array([6.0, 1.0]))

    assert box.min_distance_point(np.array([1.0, 0.5])) == 0.0
    assert box.min_distance_point(np.array([5.0, 5.0])) == pytest.approx(5.0)
    assert box.max_distance_point(np.array([0.0, 0.0])) == pytest.approx(math.sqrt(5.0))
    assert box.min_distance(other) == pytest.approx(3.0)
    assert box.max_distance(other) == pytest.approx(math.sqrt(37.0))
    assert box.volume() == pytest.approx(2.0)
    assert box.margin() == pytest.approx(3.0)
    assert box.overlap(other) == 0.0
    assert HRectBound.empty(2).is_empty


def test_ball_bound_distances_and_containment():
    points = np.array([[0.0, 0.0], [2.0, 0.0]])
    ball = BallBound.from_points(points)
    far = BallBound(np.array([10.0, 0.0]), 1.0)

    assert all(ball.contains(point) for point in points)
    assert ball.radius == pytest.approx(1.0)
    assert ball.min_distance(far) == pytest.approx(7.0)
    assert ball.max_distance(far) == pytest.approx(11.0)
    assert ball.min_distance_point(np.array([1.0, 0.0])) == 0.0
    empty = BallBound.from_points(np.empty((0, 2)))
    assert empty.radius == 0.0
