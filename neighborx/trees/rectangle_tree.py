"""Insertion-built rectangle trees: R-tree, R*-tree and X-tree.

The three variants share one builder and differ in their policies:

* R-tree: descend by least volume enlargement, split quadratically.
* R*-tree: descend by least overlap enlargement just above the leaves,
  split by the R* axis/distribution rule, and force-reinsert the farthest
  30% of an overflowing leaf once per insertion.
* X-tree: R* descent and splits, but an internal split whose halves overlap
  too much is retried along a dimension every child was already split on;
  if that also fails the node becomes a supernode with extra capacity.

Points are referenced by row, never reordered.
"""

from __future__ import annotations

import math
from typing import Any, List, Optional, Set, Tuple

import numpy as np

from neighborx.errors import InvalidParameterError
from neighborx.trees.base import SpatialTree, TreeNode
from neighborx.trees.bounds import HRectBound

DEFAULT_MAX_LEAF_SIZE = 20
DEFAULT_MIN_LEAF_SIZE = 8
DEFAULT_MAX_NUM_CHILDREN = 5
DEFAULT_MIN_NUM_CHILDREN = 2

_REINSERT_FRACTION = 0.3
_MAX_OVERLAP = 0.2

Split = Tuple[np.ndarray, np.ndarray, Optional[int]]


class RectangleTreeNode(TreeNode):
    __slots__ = ("level", "entries", "split_history", "capacity")

    def __init__(self, bound: HRectBound, *, level: int, parent: TreeNode | None = None) -> None:
        super().__init__(bound, parent=parent)
        self.level = level
        self.entries: List[int] = []
        self.split_history: Set[int] = set()
        self.capacity = 1

    @property
    def is_supernode(self) -> bool:
        return self.capacity > 1


def _group_bound(lo: np.ndarray, hi: np.ndarray, members: np.ndarray) -> HRectBound:
    return HRectBound(lo[members].min(axis=0), hi[members].max(axis=0))


def _cost(bound: HRectBound) -> Tuple[float, float]:
    return bound.volume(), bound.margin()


def _quadratic_split(lo: np.ndarray, hi: np.ndarray, min_fill: int) -> Split:
    count = lo.shape[0]
    union_lo = np.minimum(lo[:, None, :], lo[None, :, :])
    union_hi = np.maximum(hi[:, None, :], hi[None, :, :])
    widths = hi - lo
    volumes = np.prod(widths, axis=1)
    margins = np.sum(widths, axis=1)
    union_widths = union_hi - union_lo
    waste_volume = np.prod(union_widths, axis=2) - volumes[:, None] - volumes[None, :]
    waste_margin = np.sum(union_widths, axis=2) - margins[:, None] - margins[None, :]
    upper = np.triu_indices(count, k=1)
    order = np.lexsort((waste_margin[upper], waste_volume[upper]))
    best = order[-1]
    seed_a, seed_b = int(upper[0][best]), int(upper[1][best])

    groups: List[List[int]] = [[seed_a], [seed_b]]
    bounds = [_group_bound(lo, hi, np.asarray([seed_a])), _group_bound(lo, hi, np.asarray([seed_b]))]
    remaining = [i for i in range(count) if i not in (seed_a, seed_b)]
    while remaining:
        for slot in (0, 1):
            if len(groups[slot]) + len(remaining) <= min_fill:
                groups[slot].extend(remaining)
                remaining = []
                break
        if not remaining:
            break
        best_entry, best_slot, best_gap = remaining[0], 0, -1.0
        for entry in remaining:
            entry_bound = HRectBound(lo[entry], hi[entry])
            growth = [
                bounds[slot].union(entry_bound).margin() - bounds[slot].margin() for slot in (0, 1)
            ]
            gap = abs(growth[0] - growth[1])
            if gap > best_gap:
                best_entry, best_gap = entry, gap
                best_slot = 0 if (growth[0], len(groups[0])) <= (growth[1], len(groups[1])) else 1
        groups[best_slot].append(best_entry)
        bounds[best_slot].expand(HRectBound(lo[best_entry], hi[best_entry]))
        remaining.remove(best_entry)
    return np.asarray(groups[0], dtype=np.int64), np.asarray(groups[1], dtype=np.int64), None


def _distributions(lo: np.ndarray, hi: np.ndarray, axis: int, min_fill: int):
    """Yield ``(order, k, left_bound, right_bound)`` for both sort orders along ``axis``."""

    count = lo.shape[0]
    for order in (
        np.lexsort((hi[:, axis], lo[:, axis])),
        np.lexsort((lo[:, axis], hi[:, axis])),
    ):
        sorted_lo = lo[order]
        sorted_hi = hi[order]
        prefix_lo = np.minimum.accumulate(sorted_lo, axis=0)
        prefix_hi = np.maximum.accumulate(sorted_hi, axis=0)
        suffix_lo = np.minimum.accumulate(sorted_lo[::-1], axis=0)[::-1]
        suffix_hi = np.maximum.accumulate(sorted_hi[::-1], axis=0)[::-1]
        for k in range(min_fill, count - min_fill + 1):
            left = HRectBound(prefix_lo[k - 1], prefix_hi[k - 1])
            right = HRectBound(suffix_lo[k], suffix_hi[k])
            yield order, k, left, right


def _rstar_split(lo: np.ndarray, hi: np.ndarray, min_fill: int) -> Split:
    dimension = lo.shape[1]
    best_axis, best_margin = 0, math.inf
    for axis in range(dimension):
        margin = sum(
            left.margin() + right.margin()
            for _, _, left, right in _distributions(lo, hi, axis, min_fill)
        )
        if margin < best_margin:
            best_axis, best_margin = axis, margin

    best_key: Tuple[float, float, float] | None = None
    best_split: Tuple[np.ndarray, int] | None = None
    for order, k, left, right in _distributions(lo, hi, best_axis, min_fill):
        key = (left.overlap(right), left.volume() + right.volume(), left.margin() + right.margin())
        if best_key is None or key < best_key:
            best_key, best_split = key, (order, k)
    assert best_split is not None
    order, k = best_split
    return order[:k].copy(), order[k:].copy(), best_axis


def _overlap_ratio(lo: np.ndarray, hi: np.ndarray, split: Split) -> float:
    left = _group_bound(lo, hi, split[0])
    right = _group_bound(lo, hi, split[1])
    union = left.union(right)
    overlap = left.overlap(right)
    if overlap == 0.0:
        return 0.0
    volume = union.volume()
    return overlap / volume if volume > 0 else 1.0


class _RectangleTreeBuilder:
    def __init__(
        self,
        points: np.ndarray,
        *,
        variant: str,
        max_leaf_size: int,
        min_leaf_size: int,
        max_num_children: int,
        min_num_children: int,
    ) -> None:
        self.points = points
        self.variant = variant
        self.max_leaf_size = max_leaf_size
        self.min_leaf_size = min_leaf_size
        self.max_num_children = max_num_children
        self.min_num_children = min_num_children
        self.root = RectangleTreeNode(HRectBound.empty(points.shape[1]), level=0)
        self._reinserted = False

    def insert(self, index: int) -> None:
        self._reinserted = False
        self._insert_point(index)

    def _insert_point(self, index: int) -> None:
        point = self.points[index]
        node = self.root
        node.bound.expand_point(point)
        while node.level > 0:
            node = self._choose_child(node, point)
            node.bound.expand_point(point)
        node.entries.append(index)
        if len(node.entries) > self.max_leaf_size:
            self._overflow(node)

    def _choose_child(self, node: RectangleTreeNode, point: np.ndarray) -> RectangleTreeNode:
        point_bound = HRectBound(point, point)
        children = node.children
        use_overlap = self.variant != "r" and node.level == 1
        best_key: Tuple[float, ...] | None = None
        best_child = children[0]
        for position, child in enumerate(children):
            grown = child.bound.union(point_bound)
            volume, margin = _cost(child.bound)
            grown_volume, grown_margin = _cost(grown)
            key: Tuple[float, ...] = (grown_volume - volume, grown_margin - margin, volume)
            if use_overlap:
                overlap_growth = 0.0
                for other_position, other in enumerate(children):
                    if other_position == position:
                        continue
                    overlap_growth += grown.overlap(other.bound) - child.bound.overlap(other.bound)
                key = (overlap_growth,) + key
            if best_key is None or key < best_key:
                best_key, best_child = key, child
        return best_child  # type: ignore[return-value]

    def _overflow(self, node: RectangleTreeNode) -> None:
        if self.variant != "r" and node is not self.root and not self._reinserted:
            self._reinserted = True
            self._forced_reinsert(node)
            return
        self._split(node)

    def _forced_reinsert(self, leaf: RectangleTreeNode) -> None:
        entries = np.asarray(leaf.entries, dtype=np.int64)
        center = leaf.bound.center()
        diff = self.points[entries] - center[None, :]
        order = np.argsort(np.sum(diff * diff, axis=1), kind="stable")
        count = max(1, int(_REINSERT_FRACTION * entries.shape[0]))
        keep = entries[order[: entries.shape[0] - count]]
        evicted = entries[order[entries.shape[0] - count :]]
        leaf.entries = keep.tolist()
        self._refresh_upward(leaf)
        for index in evicted.tolist():
            self._insert_point(int(index))

    def _refresh_upward(self, node: RectangleTreeNode | None) -> None:
        while node is not None:
            if node.level == 0:
                node.bound = HRectBound.from_points(self.points[np.asarray(node.entries, dtype=np.int64)])
            else:
                bound = HRectBound.empty(self.points.shape[1])
                for child in node.children:
                    bound.expand(child.bound)
                node.bound = bound
            node = node.parent  # type: ignore[assignment]

    def _entry_rects(self, node: RectangleTreeNode) -> Tuple[np.ndarray, np.ndarray]:
        if node.level == 0:
            rows = self.points[np.asarray(node.entries, dtype=np.int64)]
            return rows, rows
        lo = np.stack([child.bound.lo for child in node.children])
        hi = np.stack([child.bound.hi for child in node.children])
        return lo, hi

    def _partition(self, node: RectangleTreeNode) -> Split | None:
        lo, hi = self._entry_rects(node)
        min_fill = self.min_leaf_size if node.level == 0 else self.min_num_children
        min_fill = max(1, min(min_fill, lo.shape[0] // 2))
        if self.variant == "r":
            return _quadratic_split(lo, hi, min_fill)
        split = _rstar_split(lo, hi, min_fill)
        if self.variant != "x" or node.level == 0:
            return split
        if _overlap_ratio(lo, hi, split) <= _MAX_OVERLAP:
            return split
        return self._history_split(node, lo, hi, min_fill)

    def _history_split(
        self, node: RectangleTreeNode, lo: np.ndarray, hi: np.ndarray, min_fill: int
    ) -> Split | None:
        common: Set[int] | None = None
        for child in node.children:
            history = child.split_history
            common = set(history) if common is None else common & history
        best: Split | None = None
        best_ratio = math.inf
        for axis in sorted(common or ()):
            for order, k, left, right in _distributions(lo, hi, axis, min_fill):
                candidate: Split = (order[:k].copy(), order[k:].copy(), axis)
                ratio = _overlap_ratio(lo, hi, candidate)
                if ratio < best_ratio:
                    best, best_ratio = candidate, ratio
        if best is not None and best_ratio <= _MAX_OVERLAP:
            return best
        return None

    def _split(self, node: RectangleTreeNode) -> None:
        split = self._partition(node)
        if split is None:
            node.capacity += 1
            return
        left_members, right_members, axis = split
        halves = []
        for members in (left_members, right_members):
            half = RectangleTreeNode(HRectBound.empty(self.points.shape[1]), level=node.level)
            half.split_history = set(node.split_history)
            if axis is not None:
                half.split_history.add(axis)
            if node.level == 0:
                half.entries = [node.entries[int(i)] for i in members]
                half.bound = HRectBound.from_points(self.points[np.asarray(half.entries, dtype=np.int64)])
            else:
                half.children = [node.children[int(i)] for i in members]
                for child in half.children:
                    child.parent = half
                    half.bound.expand(child.bound)
            halves.append(half)

        parent = node.parent
        if parent is None:
            root = RectangleTreeNode(node.bound.copy(), level=node.level + 1)
            root.children = halves
            for half in halves:
                half.parent = root
            self.root = root
            return
        position = next(i for i, child in enumerate(parent.children) if child is node)
        parent.children[position : position + 1] = halves
        for half in halves:
            half.parent = parent
        if len(parent.children) > self.max_num_children * parent.capacity:  # type: ignore[attr-defined]
            self._split(parent)  # type: ignore[arg-type]

    def finish(self) -> RectangleTreeNode:
        for node in self.root.iter_nodes():
            if node.is_leaf:
                node.indices = np.asarray(node.entries, dtype=np.int64)  # type: ignore[attr-defined]
        return self.root


class RectangleTree(SpatialTree):
    reorders = False
    variant = "r"

    def __init__(self, dataset: np.ndarray, root: TreeNode, **params: int) -> None:
        super().__init__(dataset, root)
        self.params = params

    @classmethod
    def build(
        cls,
        points: np.ndarray,
        *,
        max_leaf_size: int = DEFAULT_MAX_LEAF_SIZE,
        min_leaf_size: int = DEFAULT_MIN_LEAF_SIZE,
        max_num_children: int = DEFAULT_MAX_NUM_CHILDREN,
        min_num_children: int = DEFAULT_MIN_NUM_CHILDREN,
        **_: Any,
    ) -> Tuple["RectangleTree", None]:
        if not 1 <= min_leaf_size <= max_leaf_size // 2:
            raise InvalidParameterError("Need 1 <= min_leaf_size <= max_leaf_size / 2.")
        if not 1 <= min_num_children <= max_num_children // 2:
            raise InvalidParameterError("Need 1 <= min_num_children <= max_num_children / 2.")
        params = {
            "max_leaf_size": int(max_leaf_size),
            "min_leaf_size": int(min_leaf_size),
            "max_num_children": int(max_num_children),
            "min_num_children": int(min_num_children),
        }
        builder = _RectangleTreeBuilder(points, variant=cls.variant, **params)
        for index in range(points.shape[0]):
            builder.insert(index)
        return cls(points, builder.finish(), **params), None


class RTree(RectangleTree):
    tree_name = "R tree"
    variant = "r"


class RStarTree(RectangleTree):
    tree_name = "R* tree"
    variant = "r-star"


class XTree(RectangleTree):
    tree_name = "X tree"
    variant = "x"


__all__ = ["RStarTree", "RTree", "RectangleTree", "RectangleTreeNode", "XTree"]
