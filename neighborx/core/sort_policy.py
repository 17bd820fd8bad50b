"""Ordering policies for nearest- and furthest-neighbour search.

A policy decides which of two distances is *better*, which bound a subtree
can at best achieve, and how an approximation factor relaxes the pruning
bound. Candidate lists and traversals receive the policy as a parameter and
never hard-code a direction.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Type

from neighborx.errors import InvalidParameterError

# Pruning only triggers when a bound is worse by more than rounding noise, so
# exact ties at the k-th distance are always evaluated.
_PRUNE_TOLERANCE = 1e-9


class NearestNeighborSort:
    """Keep the k smallest distances."""

    name = "nearest"
    model_name = "nearest_neighbor_search_model"
    worst_distance = math.inf
    best_distance = 0.0

    @staticmethod
    def is_better(value: float, reference: float) -> bool:
        return value < reference

    @staticmethod
    def can_prune(score: float, bound: float) -> bool:
        return score > bound * (1.0 + _PRUNE_TOLERANCE) + _PRUNE_TOLERANCE

    @staticmethod
    def sort_key(distance: float) -> float:
        return distance

    @staticmethod
    def best_point_to_node(point: Any, bound: Any) -> float:
        return bound.min_distance_point(point)

    @staticmethod
    def best_node_to_node(query_bound: Any, reference_bound: Any) -> float:
        return query_bound.min_distance(reference_bound)

    @staticmethod
    def validate_epsilon(epsilon: float) -> None:
        if epsilon < 0:
            raise InvalidParameterError("epsilon must be non-negative.")

    @staticmethod
    def relax(value: float, epsilon: float) -> float:
        if epsilon == 0 or math.isinf(value):
            return value
        return value / (1.0 + epsilon)


class FurthestNeighborSort:
    """Keep the k largest distances."""

    name = "furthest"
    model_name = "furthest_neighbor_search_model"
    worst_distance = 0.0
    best_distance = math.inf

    @staticmethod
    def is_better(value: float, reference: float) -> bool:
        return value > reference

    @staticmethod
    def can_prune(score: float, bound: float) -> bool:
        return score < bound * (1.0 - _PRUNE_TOLERANCE) - _PRUNE_TOLERANCE

    @staticmethod
    def sort_key(distance: float) -> float:
        return -distance

    @staticmethod
    def best_point_to_node(point: Any, bound: Any) -> float:
        return bound.max_distance_point(point)

    @staticmethod
    def best_node_to_node(query_bound: Any, reference_bound: Any) -> float:
        return query_bound.max_distance(reference_bound)

    @staticmethod
    def validate_epsilon(epsilon: float) -> None:
        if epsilon < 0 or epsilon >= 1:
            raise InvalidParameterError(
                "epsilon must lie in [0, 1) for furthest-neighbour search."
            )

    @staticmethod
    def relax(value: float, epsilon: float) -> float:
        if epsilon == 0 or value == 0.0:
            return value
        if math.isinf(value):
            return value
        return value / (1.0 - epsilon)


SortPolicy = Type[NearestNeighborSort] | Type[FurthestNeighborSort]

_POLICIES: Dict[str, SortPolicy] = {
    NearestNeighborSort.name: NearestNeighborSort,
    FurthestNeighborSort.name: FurthestNeighborSort,
}


def get_policy(name: str) -> SortPolicy:
    key = name.strip().lower()
    if key not in _POLICIES:
        raise InvalidParameterError(
            f"Unknown sort policy '{name}'. Expected one of {sorted(_POLICIES)}."
        )
    return _POLICIES[key]


def policy_from_model_name(model_name: str) -> SortPolicy:
    for policy in _POLICIES.values():
        if policy.model_name == model_name:
            return policy
    raise InvalidParameterError(f"Unknown neighbour search model name '{model_name}'.")


__all__ = [
    "FurthestNeighborSort",
    "NearestNeighborSort",
    "SortPolicy",
    "get_policy",
    "policy_from_model_name",
]
