from __future__ import annotations

from typing import Any, Dict, Tuple

import numpy as np

from neighborx import config as nx_config
from neighborx.core.sort_policy import SortPolicy
from neighborx.diagnostics import log_operation
from neighborx.errors import InvalidParameterError
from neighborx.search.neighbor_search import LOGGER, NeighborSearch, validate_k
from neighborx.search.traversal import dual_tree_search
from neighborx.trees.binary_space import validate_leaf_size
from neighborx.trees.registry import TreeType, build_tree


class SpillSearch(NeighborSearch):
    """Search over a spill tree whose reference side overlaps by ``tau``.

    Only the reference tree overlaps. Query trees are always built with
    ``tau = 0`` so every query lands in exactly one leaf, and naive or
    single-tree searches ignore ``tau`` entirely.
    """

    def __init__(
        self,
        policy: SortPolicy | str,
        *,
        naive: bool = False,
        single_mode: bool = False,
        tau: float = 0.0,
        leaf_size: int | None = None,
        epsilon: float = 0.0,
        metric: str | None = None,
    ) -> None:
        tau = float(tau)
        if not tau >= 0.0:
            raise InvalidParameterError(f"tau must be non-negative, got {tau}.")
        super().__init__(
            policy,
            TreeType.SPILL_TREE,
            naive=naive,
            single_mode=single_mode,
            epsilon=epsilon,
            metric=metric,
        )
        if leaf_size is None:
            leaf_size = nx_config.runtime_config().leaf_size
        self.tau = tau
        self.leaf_size = validate_leaf_size(leaf_size)

    def tree_params(self) -> Dict[str, Any]:
        return {"tau": self.tau, "leaf_size": self.leaf_size}

    def query_tree_params(self) -> Dict[str, Any]:
        return {"tau": 0.0, "leaf_size": self.leaf_size}

    def search_self(self, k: int) -> Tuple[np.ndarray, np.ndarray]:
        if self.tau == 0.0 or self.naive or self.single_mode:
            return super().search_self(k)
        self._require_trained()
        k = validate_k(k, int(self.reference_set.shape[0]))
        tree = self._ensure_tree()
        with log_operation(LOGGER, "knn_search") as op_log:
            op_log.add_metadata(
                tree=self.kind.name.lower(),
                mode=self.mode,
                queries=int(self.reference_set.shape[0]),
                k=k,
                self_search=True,
                tau=self.tau,
            )
            # spill trees index by reference, so query row i is reference row i
            query_tree, _ = build_tree(self.kind, tree.dataset, **self.query_tree_params())
            return dual_tree_search(
                query_tree,
                tree,
                k,
                self.policy,
                epsilon=self.epsilon,
                exclude_self=True,
                metric=self.metric,
            )

    def state_params(self) -> Dict[str, Any]:
        params = super().state_params()
        params["tau"] = self.tau
        params["leaf_size"] = self.leaf_size
        return params

    @classmethod
    def _construct(cls, policy: SortPolicy, kind: TreeType, params: Dict[str, Any]) -> "SpillSearch":
        return cls(policy, **params)


__all__ = ["SpillSearch"]
