from __future__ import annotations

import math

import numpy as np

from neighborx.core.metrics import EUCLIDEAN

# Ball radii are inflated by this relative amount so that rounding in the
# centre-to-point distance can never make a bound exclude one of its points.
_RADIUS_SLACK = 1e-12


class HRectBound:
    """Axis-aligned hyper-rectangle ``[lo, hi]``."""

    __slots__ = ("lo", "hi")

    def __init__(self, lo: np.ndarray, hi: np.ndarray) -> None:
        self.lo = np.asarray(lo, dtype=np.float64)
        self.hi = np.asarray(hi, dtype=np.float64)

    @classmethod
    def from_points(cls, points: np.ndarray) -> "HRectBound":
        if points.shape[0] == 0:
            dim = points.shape[1]
            return cls(np.full(dim, np.inf), np.full(dim, -np.inf))
        return cls(points.min(axis=0), points.max(axis=0))

    @classmethod
    def empty(cls, dimension: int) -> "HRectBound":
        return cls(np.full(dimension, np.inf), np.full(dimension, -np.inf))

    def copy(self) -> "HRectBound":
        return HRectBound(self.lo.copy(), self.hi.copy())

    @property
    def is_empty(self) -> bool:
        return bool(np.any(self.lo > self.hi))

    def expand(self, other: "HRectBound") -> None:
        np.minimum(self.lo, other.lo, out=self.lo)
        np.maximum(self.hi, other.hi, out=self.hi)

    def expand_point(self, point: np.ndarray) -> None:
        np.minimum(self.lo, point, out=self.lo)
        np.maximum(self.hi, point, out=self.hi)

    def union(self, other: "HRectBound") -> "HRectBound":
        return HRectBound(np.minimum(self.lo, other.lo), np.maximum(self.hi, other.hi))

    def widths(self) -> np.ndarray:
        if self.is_empty:
            return np.zeros_like(self.lo)
        return self.hi - self.lo

    def volume(self) -> float:
        return float(np.prod(self.widths()))

    def margin(self) -> float:
        return float(np.sum(self.widths()))

    def overlap(self, other: "HRectBound") -> float:
        """Volume of the intersection with ``other``."""

        widths = np.minimum(self.hi, other.hi) - np.maximum(self.lo, other.lo)
        if np.any(widths < 0):
            return 0.0
        return float(np.prod(widths))

    def center(self) -> np.ndarray:
        return (self.lo + self.hi) / 2.0

    def contains(self, point: np.ndarray) -> bool:
        return bool(np.all(point >= self.lo) and np.all(point <= self.hi))

    def min_distance_point(self, point: np.ndarray) -> float:
        gap = np.maximum(np.maximum(self.lo - point, point - self.hi), 0.0)
        return math.sqrt(float(np.dot(gap, gap)))

    def max_distance_point(self, point: np.ndarray) -> float:
        span = np.maximum(np.abs(point - self.lo), np.abs(self.hi - point))
        return math.sqrt(float(np.dot(span, span)))

    def min_distance(self, other: "HRectBound") -> float:
        gap = np.maximum(np.maximum(other.lo - self.hi, self.lo - other.hi), 0.0)
        return math.sqrt(float(np.dot(gap, gap)))

    def max_distance(self, other: "HRectBound") -> float:
        span = np.maximum(np.abs(other.hi - self.lo), np.abs(self.hi - other.lo))
        return math.sqrt(float(np.dot(span, span)))

    def __repr__(self) -> str:
        return f"HRectBound(lo={self.lo.tolist()}, hi={self.hi.tolist()})"


class BallBound:
    """Ball of ``radius`` around ``center``."""

    __slots__ = ("center", "radius")

    def __init__(self, center: np.ndarray, radius: float) -> None:
        self.center = np.asarray(center, dtype=np.float64)
        self.radius = float(radius)

    @classmethod
    def from_points(cls, points: np.ndarray, center: np.ndarray | None = None) -> "BallBound":
        if points.shape[0] == 0:
            return cls(np.zeros(points.shape[1]) if center is None else center, 0.0)
        if center is None:
            center = points.mean(axis=0)
        radius = float(np.max(EUCLIDEAN.pointwise(points, np.broadcast_to(center, points.shape))))
        return cls(center, radius * (1.0 + _RADIUS_SLACK) + _RADIUS_SLACK)

    def contains(self, point: np.ndarray) -> bool:
        return self._center_distance(point) <= self.radius

    def _center_distance(self, point: np.ndarray) -> float:
        return float(EUCLIDEAN.pointwise(point, self.center))

    def min_distance_point(self, point: np.ndarray) -> float:
        return max(self._center_distance(point) - self.radius, 0.0)

    def max_distance_point(self, point: np.ndarray) -> float:
        return self._center_distance(point) + self.radius

    def min_distance(self, other: "BallBound") -> float:
        return max(self._center_distance(other.center) - self.radius - other.radius, 0.0)

    def max_distance(self, other: "BallBound") -> float:
        return self._center_distance(other.center) + self.radius + other.radius

    def __repr__(self) -> str:
        return f"BallBound(center={self.center.tolist()}, radius={self.radius})"


__all__ = ["BallBound", "HRectBound"]
