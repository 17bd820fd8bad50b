from __future__ import annotations

from typing import Any, Dict, Tuple

import numpy as np

from neighborx.core.metrics import Metric, get_metric
from neighborx.core.points import Permutation, as_point_set
from neighborx.core.sort_policy import SortPolicy, get_policy, policy_from_model_name
from neighborx.diagnostics import log_operation
from neighborx.errors import InvalidParameterError, ModelNotInitializedError
from neighborx.logging import get_logger
from neighborx.search.base import NeighborSearchBase
from neighborx.search.traversal import dual_tree_search, naive_search, single_tree_search
from neighborx.trees.base import SpatialTree
from neighborx.trees.registry import TreeType, build_tree, coerce_tree_type, tree_class

LOGGER = get_logger("search.neighbor_search")


def _resolve_policy(policy: SortPolicy | str) -> SortPolicy:
    if isinstance(policy, str):
        return get_policy(policy)
    return policy


def validate_k(k: Any, num_points: int) -> int:
    try:
        value = int(k)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterError(f"k must be an integer, got {k!r}.") from exc
    if value != k or value <= 0:
        raise InvalidParameterError("k must be positive.")
    if value > num_points:
        raise InvalidParameterError(
            f"k ({value}) cannot exceed the number of points in the reference set ({num_points})."
        )
    return value


class NeighborSearch(NeighborSearchBase):
    """k-neighbour search over one kind of spatial tree.

    The engine owns the trees it builds from raw points and borrows trees it
    is handed. Results are always reported in the caller's order: neighbour
    indices are translated through the reference permutation and, in
    dual-tree mode, result rows through the query tree's permutation.
    """

    def __init__(
        self,
        policy: SortPolicy | str,
        tree_type: Any,
        *,
        naive: bool = False,
        single_mode: bool = False,
        epsilon: float = 0.0,
        metric: str | None = None,
    ) -> None:
        self.policy = _resolve_policy(policy)
        self.kind: TreeType = coerce_tree_type(tree_type)
        self.policy.validate_epsilon(float(epsilon))
        self.epsilon = float(epsilon)
        self.metric: Metric = get_metric(metric)
        self._naive = bool(naive)
        self._single_mode = bool(single_mode)
        self._reference_set: np.ndarray | None = None
        self._tree: SpatialTree | None = None
        self._permutation: Permutation | None = None
        self._tree_owner = False

    # -- configuration -------------------------------------------------

    @property
    def naive(self) -> bool:
        return self._naive

    @naive.setter
    def naive(self, value: bool) -> None:
        self._naive = bool(value)

    @property
    def single_mode(self) -> bool:
        return self._single_mode

    @single_mode.setter
    def single_mode(self, value: bool) -> None:
        self._single_mode = bool(value)

    @property
    def mode(self) -> str:
        if self._naive:
            return "naive"
        return "single" if self._single_mode else "dual"

    def tree_params(self) -> Dict[str, Any]:
        """Keyword arguments passed to the reference tree builder."""

        return {}

    def query_tree_params(self) -> Dict[str, Any]:
        """Keyword arguments passed to the transient query tree builder."""

        return self.tree_params()

    # -- state accessors -----------------------------------------------

    @property
    def is_trained(self) -> bool:
        return self._reference_set is not None

    @property
    def reference_set(self) -> np.ndarray:
        self._require_trained()
        assert self._reference_set is not None
        return self._reference_set

    @property
    def reference_tree(self) -> SpatialTree | None:
        return self._tree

    @property
    def tree_owner(self) -> bool:
        return self._tree_owner

    @property
    def old_from_new_references(self) -> Permutation | None:
        return self._permutation

    @property
    def dimension(self) -> int:
        return int(self.reference_set.shape[1])

    def _require_trained(self) -> None:
        if self._reference_set is None:
            raise ModelNotInitializedError(
                "The search engine has not been trained; call train() first."
            )

    # -- lifecycle -----------------------------------------------------

    def train(self, reference: Any) -> None:
        with log_operation(LOGGER, "train") as op_log:
            self.release()
            if isinstance(reference, SpatialTree):
                expected = tree_class(self.kind)
                if not isinstance(reference, expected):
                    raise InvalidParameterError(
                        f"Expected a pre-built {expected.tree_name}, got {type(reference).__name__}."
                    )
                self._tree = reference
                self._permutation = None
                self._tree_owner = False
                self._reference_set = reference.dataset
            else:
                points = as_point_set(reference)
                self._reference_set = points
                if not self._naive:
                    self._build_reference_tree()
            op_log.add_metadata(
                tree=self.kind.name.lower(),
                points=int(self._reference_set.shape[0]),
                owner=self._tree_owner,
                mode=self.mode,
            )

    def _build_reference_tree(self) -> None:
        assert self._reference_set is not None
        tree, permutation = build_tree(self.kind, self._reference_set, **self.tree_params())
        self._tree = tree
        self._permutation = permutation
        self._tree_owner = True

    def _ensure_tree(self) -> SpatialTree:
        # trained in naive mode and switched to a tree mode since
        if self._tree is None:
            self._build_reference_tree()
        assert self._tree is not None
        return self._tree

    def release(self) -> bool:
        """Drop the reference tree; returns ``True`` when an owned tree was released."""

        owned = self._tree_owner and self._tree is not None
        self._tree = None
        self._permutation = None
        self._tree_owner = False
        self._reference_set = None
        return owned

    # -- search --------------------------------------------------------

    def _reference_order(self) -> np.ndarray | None:
        if self._permutation is None:
            return None
        return self._permutation.old_from_new

    def _map_references(self, neighbors: np.ndarray) -> np.ndarray:
        if self._permutation is None:
            return neighbors
        return self._permutation.map_indices(neighbors)

    def _prepare(self, query_set: Any, k: int) -> Tuple[np.ndarray, int]:
        self._require_trained()
        queries = as_point_set(query_set, dimension=self.dimension)
        return queries, validate_k(k, int(self.reference_set.shape[0]))

    def search(self, query_set: Any, k: int) -> Tuple[np.ndarray, np.ndarray]:
        queries, k = self._prepare(query_set, k)
        with log_operation(LOGGER, "knn_search") as op_log:
            op_log.add_metadata(
                tree=self.kind.name.lower(),
                mode=self.mode,
                queries=int(queries.shape[0]),
                k=k,
            )
            if self._naive:
                return naive_search(queries, self.reference_set, k, self.policy, metric=self.metric)
            tree = self._ensure_tree()
            if self._single_mode:
                neighbors, distances = single_tree_search(
                    queries,
                    tree,
                    k,
                    self.policy,
                    epsilon=self.epsilon,
                    metric=self.metric,
                    reference_order=self._reference_order(),
                )
                return self._map_references(neighbors), distances
            if queries.shape[0] == 0:
                return naive_search(queries, self.reference_set, k, self.policy, metric=self.metric)
            query_tree, query_permutation = build_tree(self.kind, queries, **self.query_tree_params())
            return self._dual_search(query_tree, query_permutation, k)

    def _dual_search(
        self,
        query_tree: SpatialTree,
        query_permutation: Permutation | None,
        k: int,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Run the dual traversal and put rows and neighbour indices in caller order."""

        tree = self._ensure_tree()
        neighbors, distances = dual_tree_search(
            query_tree,
            tree,
            k,
            self.policy,
            epsilon=self.epsilon,
            metric=self.metric,
            reference_order=self._reference_order(),
        )
        neighbors = self._map_references(neighbors)
        if query_permutation is not None:
            neighbors = query_permutation.unmap_rows(neighbors)
            distances = query_permutation.unmap_rows(distances)
        return neighbors, distances

    def search_tree(
        self, query_tree: SpatialTree, k: int, *, same_set: bool = False
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Dual-tree search with a caller-built query tree.

        Rows follow ``query_tree.dataset``; neighbour indices are in the
        reference set's original order. ``same_set`` declares that the query
        tree holds the reference points in the reference tree's row order,
        so each point is excluded from its own results.
        """

        self._require_trained()
        expected = tree_class(self.kind)
        if not isinstance(query_tree, expected):
            raise InvalidParameterError(
                f"Expected a {expected.tree_name} query tree, got {type(query_tree).__name__}."
            )
        k = validate_k(k, int(self.reference_set.shape[0]))
        if query_tree.dimension != self.dimension:
            raise InvalidParameterError(
                f"Query tree has dimension {query_tree.dimension}, expected {self.dimension}."
            )
        tree = self._ensure_tree()
        with log_operation(LOGGER, "knn_search") as op_log:
            op_log.add_metadata(
                tree=self.kind.name.lower(), mode="dual", queries=query_tree.num_points, k=k
            )
            neighbors, distances = dual_tree_search(
                query_tree,
                tree,
                k,
                self.policy,
                epsilon=self.epsilon,
                exclude_self=same_set,
                metric=self.metric,
                reference_order=self._reference_order(),
            )
        return self._map_references(neighbors), distances

    def search_self(self, k: int) -> Tuple[np.ndarray, np.ndarray]:
        self._require_trained()
        k = validate_k(k, int(self.reference_set.shape[0]))
        with log_operation(LOGGER, "knn_search") as op_log:
            op_log.add_metadata(
                tree=self.kind.name.lower(),
                mode=self.mode,
                queries=int(self.reference_set.shape[0]),
                k=k,
                self_search=True,
            )
            if self._naive:
                return naive_search(
                    self.reference_set,
                    self.reference_set,
                    k,
                    self.policy,
                    exclude_self=True,
                    metric=self.metric,
                )
            tree = self._ensure_tree()
            if self._single_mode:
                neighbors, distances = single_tree_search(
                    tree.dataset,
                    tree,
                    k,
                    self.policy,
                    epsilon=self.epsilon,
                    exclude_self=True,
                    metric=self.metric,
                    reference_order=self._reference_order(),
                )
            else:
                neighbors, distances = dual_tree_search(
                    tree,
                    tree,
                    k,
                    self.policy,
                    epsilon=self.epsilon,
                    exclude_self=True,
                    metric=self.metric,
                    reference_order=self._reference_order(),
                )
            return self._restore_self_order(neighbors, distances)

    def _restore_self_order(
        self, neighbors: np.ndarray, distances: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Self-search rows follow the reference tree's order; put them back."""

        if self._permutation is None:
            return neighbors, distances
        neighbors = self._permutation.unmap_rows(self._permutation.map_indices(neighbors))
        return neighbors, self._permutation.unmap_rows(distances)

    # -- serialization -------------------------------------------------

    def state_params(self) -> Dict[str, Any]:
        """Constructor keywords needed to rebuild an equivalent engine."""

        return {
            "naive": self._naive,
            "single_mode": self._single_mode,
            "epsilon": self.epsilon,
            "metric": self.metric.name,
        }

    def to_state(self) -> Dict[str, Any]:
        return {
            "engine": type(self).__name__,
            "kind": int(self.kind),
            "policy": self.policy.model_name,
            "params": self.state_params(),
            "reference_set": None if self._reference_set is None else self._original_reference_set(),
        }

    def _original_reference_set(self) -> np.ndarray:
        assert self._reference_set is not None
        return np.array(self._reference_set, copy=True)

    @classmethod
    def _construct(cls, policy: SortPolicy, kind: TreeType, params: Dict[str, Any]) -> "NeighborSearch":
        return cls(policy, kind, **params)

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "NeighborSearch":
        policy = policy_from_model_name(state["policy"])
        kind = coerce_tree_type(state["kind"])
        engine = cls._construct(policy, kind, dict(state.get("params", {})))
        reference = state.get("reference_set")
        if reference is not None:
            engine.train(np.asarray(reference, dtype=np.float64))
        return engine

    def __repr__(self) -> str:
        points = None if self._reference_set is None else int(self._reference_set.shape[0])
        return (
            f"{type(self).__name__}(policy={self.policy.name}, tree={self.kind.name}, "
            f"mode={self.mode}, points={points})"
        )


__all__ = ["NeighborSearch"]
