"""Spill tree: a median split whose two halves may overlap by ``tau``.

Points within ``tau`` of a node's splitting hyperplane are stored on both
sides. A node only uses the overlapping split when neither child would
receive more than ``rho`` of its points; otherwise it falls back to the
plain median split. Leaves therefore cover the dataset but may share rows.
"""

from __future__ import annotations

from typing import Any, List, Tuple

import numpy as np

from neighborx.errors import InvalidParameterError
from neighborx.trees.base import SpatialTree, TreeNode
from neighborx.trees.binary_space import DEFAULT_LEAF_SIZE, validate_leaf_size
from neighborx.trees.bounds import HRectBound

DEFAULT_RHO = 0.7


class SpillTreeNode(TreeNode):
    __slots__ = ("overlapping", "split_dim", "split_value")

    def __init__(self, bound: HRectBound, *, parent: TreeNode | None = None) -> None:
        super().__init__(bound, parent=parent)
        self.overlapping = False
        self.split_dim = -1
        self.split_value = float("nan")


def _split_members(
    points: np.ndarray, members: np.ndarray, tau: float, rho: float
) -> Tuple[np.ndarray, np.ndarray, int, float, bool] | None:
    values_all = points[members]
    spread = values_all.max(axis=0) - values_all.min(axis=0)
    dim = int(np.argmax(spread))
    if spread[dim] == 0.0:
        return None
    values = values_all[:, dim]
    count = members.shape[0]
    order = np.argsort(values, kind="stable")
    half = count // 2
    split_value = float(values[order[half]])

    if tau > 0.0:
        left_mask = values < split_value + tau
        left_mask[order[:half]] = True
        right_mask = values > split_value - tau
        right_mask[order[half:]] = True
        limit = rho * count
        if left_mask.sum() <= limit and right_mask.sum() <= limit:
            return members[left_mask], members[right_mask], dim, split_value, True

    return members[order[:half]], members[order[half:]], dim, split_value, False


class SpillTree(SpatialTree):
    tree_name = "spill tree"
    reorders = False

    def __init__(self, dataset: np.ndarray, root: TreeNode, *, tau: float, leaf_size: int, rho: float) -> None:
        super().__init__(dataset, root)
        self.tau = tau
        self.leaf_size = leaf_size
        self.rho = rho

    @classmethod
    def build(
        cls,
        points: np.ndarray,
        *,
        tau: float = 0.0,
        leaf_size: int = DEFAULT_LEAF_SIZE,
        rho: float = DEFAULT_RHO,
        **_: Any,
    ) -> Tuple["SpillTree", None]:
        tau = float(tau)
        if tau < 0.0:
            raise InvalidParameterError(f"tau must be non-negative, got {tau}.")
        if not 0.5 <= rho < 1.0:
            raise InvalidParameterError(f"rho must lie in [0.5, 1), got {rho}.")
        leaf_size = validate_leaf_size(leaf_size)

        members = np.arange(points.shape[0], dtype=np.int64)
        root = SpillTreeNode(HRectBound.from_points(points))
        pending: List[Tuple[SpillTreeNode, np.ndarray]] = [(root, members)]
        while pending:
            node, members = pending.pop()
            split = None
            if members.shape[0] > leaf_size:
                split = _split_members(points, members, tau, rho)
            if split is None:
                node.indices = members
                continue
            left_members, right_members, dim, value, overlapping = split
            node.split_dim = dim
            node.split_value = value
            node.overlapping = overlapping
            for child_members in (left_members, right_members):
                child = SpillTreeNode(HRectBound.from_points(points[child_members]), parent=node)
                node.children.append(child)
            pending.append((node.children[1], right_members))
            pending.append((node.children[0], left_members))

        return cls(points, root, tau=tau, leaf_size=leaf_size, rho=float(rho)), None


__all__ = ["DEFAULT_RHO", "SpillTree", "SpillTreeNode"]
