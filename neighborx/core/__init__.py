"""Point sets, ordering policies, candidate lists and metrics."""

from .candidates import CandidateList
from .metrics import EUCLIDEAN, Metric, MetricRegistry, available_metrics, get_metric
from .points import NO_NEIGHBOR, Permutation, as_point_set
from .sort_policy import (
    FurthestNeighborSort,
    NearestNeighborSort,
    SortPolicy,
    get_policy,
    policy_from_model_name,
)

__all__ = [
    "CandidateList",
    "EUCLIDEAN",
    "Metric",
    "MetricRegistry",
    "available_metrics",
    "get_metric",
    "NO_NEIGHBOR",
    "Permutation",
    "as_point_set",
    "FurthestNeighborSort",
    "NearestNeighborSort",
    "SortPolicy",
    "get_policy",
    "policy_from_model_name",
]
