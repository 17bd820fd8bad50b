"""Engines that build and own their reference tree from raw points.

``LeafSearch`` drives the binary space trees, which take a leaf size and
reorder their rows while building. Results from those trees pass through two
permutations before they reach the caller: neighbour indices through the
reference tree's, and, in dual-tree mode, result rows through the transient
query tree's.

``TreeSearch`` drives the structures whose capacity settings are their own
(cover, R, R* and X trees); none of them reorders rows.
"""

from __future__ import annotations

from typing import Any, Dict

from neighborx import config as nx_config
from neighborx.core.sort_policy import SortPolicy
from neighborx.errors import UnsupportedTreeTypeError
from neighborx.search.neighbor_search import NeighborSearch
from neighborx.trees.binary_space import validate_leaf_size
from neighborx.trees.registry import TreeType, coerce_tree_type

LEAF_TREE_TYPES = frozenset({TreeType.KD_TREE, TreeType.BALL_TREE})
CAPACITY_TREE_TYPES = frozenset(
    {TreeType.COVER_TREE, TreeType.R_TREE, TreeType.R_STAR_TREE, TreeType.X_TREE}
)


class LeafSearch(NeighborSearch):
    def __init__(
        self,
        policy: SortPolicy | str,
        tree_type: Any = TreeType.KD_TREE,
        *,
        naive: bool = False,
        single_mode: bool = False,
        leaf_size: int | None = None,
        epsilon: float = 0.0,
        metric: str | None = None,
    ) -> None:
        kind = coerce_tree_type(tree_type)
        if kind not in LEAF_TREE_TYPES:
            raise UnsupportedTreeTypeError(f"{kind.name} does not take a leaf size.")
        super().__init__(
            policy, kind, naive=naive, single_mode=single_mode, epsilon=epsilon, metric=metric
        )
        if leaf_size is None:
            leaf_size = nx_config.runtime_config().leaf_size
        self.leaf_size = validate_leaf_size(leaf_size)

    def tree_params(self) -> Dict[str, Any]:
        return {"leaf_size": self.leaf_size}

    def state_params(self) -> Dict[str, Any]:
        params = super().state_params()
        params["leaf_size"] = self.leaf_size
        return params


class TreeSearch(NeighborSearch):
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
        kind = coerce_tree_type(tree_type)
        if kind not in CAPACITY_TREE_TYPES:
            raise UnsupportedTreeTypeError(f"{kind.name} is not driven by TreeSearch.")
        super().__init__(
            policy, kind, naive=naive, single_mode=single_mode, epsilon=epsilon, metric=metric
        )


__all__ = ["CAPACITY_TREE_TYPES", "LEAF_TREE_TYPES", "LeafSearch", "TreeSearch"]
