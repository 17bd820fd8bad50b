"""Cover tree built level by level with base-2 scales.

Every node is centred on one of its points and covers its members within
``2 ** scale``. Children are a greedy farthest-point net at half the
parent's covering radius, so the centre reappears as its own first child
(the self-child). Points stay where the caller put them; leaves hold rows
of the original dataset.
"""

from __future__ import annotations

import math
from typing import Any, List, Tuple

import numpy as np

from neighborx.core.metrics import EUCLIDEAN
from neighborx.trees.base import SpatialTree, TreeNode
from neighborx.trees.bounds import BallBound


class CoverTreeNode(TreeNode):
    __slots__ = ("center_index", "scale")

    def __init__(self, bound: Any, *, center_index: int, scale: float, parent: TreeNode | None = None) -> None:
        super().__init__(bound, parent=parent)
        self.center_index = center_index
        self.scale = scale

    @property
    def furthest_descendant_distance(self) -> float:
        return self.bound.radius


def _scale_for(radius: float) -> float:
    if radius <= 0.0:
        return -math.inf
    return float(math.ceil(math.log2(radius)))


def _greedy_net(
    points: np.ndarray, members: np.ndarray, center_dists: np.ndarray, radius: float
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Pick net centres (positions into ``members``) so every member lies within ``radius``.

    Returns the centre positions, each member's assigned centre slot and its
    distance to that centre.
    """

    centers = [0]
    nearest = center_dists.copy()
    assignment = np.zeros(members.shape[0], dtype=np.int64)
    while True:
        candidate = int(np.argmax(nearest))
        if nearest[candidate] <= radius:
            break
        slot = len(centers)
        centers.append(candidate)
        dists = EUCLIDEAN.pairwise(points[members[candidate]], points[members])[0]
        closer = dists < nearest
        nearest[closer] = dists[closer]
        assignment[closer] = slot
    return np.asarray(centers, dtype=np.int64), assignment, nearest


class CoverTree(SpatialTree):
    tree_name = "cover tree"
    reorders = False

    @classmethod
    def build(cls, points: np.ndarray, **_: Any) -> Tuple["CoverTree", None]:
        dataset = points
        num_points = int(dataset.shape[0])
        if num_points == 0:
            empty = BallBound(np.zeros(dataset.shape[1]), 0.0)
            return cls(dataset, CoverTreeNode(empty, center_index=-1, scale=-math.inf)), None

        members = np.arange(num_points, dtype=np.int64)
        dists = EUCLIDEAN.pairwise(dataset[0], dataset)[0]
        root = cls._make_node(dataset, 0, members, dists, parent=None)
        pending: List[Tuple[CoverTreeNode, np.ndarray, np.ndarray]] = [(root, members, dists)]

        while pending:
            node, members, dists = pending.pop()
            max_dist = float(dists.max()) if dists.size else 0.0
            if members.shape[0] == 1 or max_dist == 0.0:
                node.indices = members
                continue
            radius = math.ldexp(1.0, int(node.scale) - 1) if math.isfinite(node.scale) else 0.0
            if radius >= max_dist:
                radius = max_dist / 2.0
            centers, assignment, nearest = _greedy_net(dataset, members, dists, radius)
            children: List[CoverTreeNode] = []
            for slot, position in enumerate(centers):
                # the child's centre goes first so its net starts from it
                chosen = np.flatnonzero(assignment == slot)
                chosen = np.concatenate(([position], chosen[chosen != position]))
                child_members = members[chosen]
                child_dists = nearest[chosen]
                child = cls._make_node(
                    dataset, int(members[position]), child_members, child_dists, parent=node
                )
                children.append(child)
                pending.append((child, child_members, child_dists))
            node.children = children

        return cls(dataset, root), None

    @staticmethod
    def _make_node(
        dataset: np.ndarray,
        center_index: int,
        members: np.ndarray,
        dists: np.ndarray,
        *,
        parent: CoverTreeNode | None,
    ) -> CoverTreeNode:
        center = dataset[center_index]
        bound = BallBound.from_points(dataset[members], center=center)
        furthest = float(dists.max()) if dists.size else 0.0
        return CoverTreeNode(bound, center_index=center_index, scale=_scale_for(furthest), parent=parent)


__all__ = ["CoverTree", "CoverTreeNode"]
