"""Capability interface shared by every spatial index structure.

Traversal code only touches what is defined here: a node's ``bound``
(anything exposing ``min_distance``/``max_distance`` and their ``_point``
variants), its ``children``, the dataset rows held by a leaf (``indices``),
and the per-node ``stat`` cache used for dual-tree pruning. Internal nodes
never hold points directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterator, List, Tuple

import numpy as np

from neighborx.core.points import Permutation

_EMPTY = np.empty(0, dtype=np.int64)


class NeighborSearchStat:
    """Per-node pruning cache filled in during dual-tree traversal."""

    __slots__ = ("bound",)

    def __init__(self) -> None:
        self.bound = float("nan")

    def reset(self, value: float) -> None:
        self.bound = value


class TreeNode:
    __slots__ = ("bound", "children", "indices", "stat", "parent")

    def __init__(
        self,
        bound: Any,
        *,
        children: List["TreeNode"] | None = None,
        indices: np.ndarray | None = None,
        parent: "TreeNode | None" = None,
    ) -> None:
        self.bound = bound
        self.children: List[TreeNode] = children if children is not None else []
        self.indices = _EMPTY if indices is None else np.asarray(indices, dtype=np.int64)
        self.stat = NeighborSearchStat()
        self.parent = parent

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def iter_nodes(self) -> Iterator["TreeNode"]:
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def leaves(self) -> Iterator["TreeNode"]:
        return (node for node in self.iter_nodes() if node.is_leaf)

    def descendants(self) -> np.ndarray:
        """Dataset rows below this node (repeated where a spill tree overlaps)."""

        chunks = [leaf.indices for leaf in self.leaves() if leaf.indices.size]
        if not chunks:
            return _EMPTY
        return np.concatenate(chunks)

    def height(self) -> int:
        best = 0
        stack: List[Tuple[TreeNode, int]] = [(self, 1)]
        while stack:
            node, depth = stack.pop()
            best = max(best, depth)
            stack.extend((child, depth + 1) for child in node.children)
        return best

    def reset_stats(self, value: float) -> None:
        for node in self.iter_nodes():
            node.stat.reset(value)


class SpatialTree(ABC):
    """A hierarchical index over ``dataset``.

    ``dataset`` is stored in the structure's internal order. Trees that
    reorder rows during construction return the corresponding
    :class:`Permutation` from :meth:`build`; trees that index rows by
    reference return ``None`` and keep ``dataset`` in the caller's order.
    """

    tree_name: str = "tree"
    reorders: bool = False

    def __init__(self, dataset: np.ndarray, root: TreeNode) -> None:
        self.dataset = dataset
        self.root = root
        self._height: int | None = None

    @classmethod
    @abstractmethod
    def build(cls, points: np.ndarray, **params: Any) -> Tuple["SpatialTree", Permutation | None]:
        """Build a tree over ``points`` and return it with its permutation, if any."""

    @property
    def num_points(self) -> int:
        return int(self.dataset.shape[0])

    @property
    def dimension(self) -> int:
        return int(self.dataset.shape[1])

    @property
    def height(self) -> int:
        if self._height is None:
            self._height = self.root.height()
        return self._height

    def num_nodes(self) -> int:
        return sum(1 for _ in self.root.iter_nodes())

    def leaves(self) -> Iterator[TreeNode]:
        return self.root.leaves()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(points={self.num_points}, dimension={self.dimension}, "
            f"height={self.height})"
        )


__all__ = ["NeighborSearchStat", "SpatialTree", "TreeNode"]
