"""Binary space-partitioning trees (KD-tree and ball tree).

Both trees split a contiguous range of rows at the median of the widest
dimension until a range holds at most ``leaf_size`` rows. Rows are reordered
in place while splitting, so the build returns the permutation from the new
row order to the caller's order.
"""

from __future__ import annotations

from typing import Any, List, Tuple, Type

import numpy as np

from neighborx.core.points import Permutation
from neighborx.errors import InvalidParameterError
from neighborx.trees.base import SpatialTree, TreeNode
from neighborx.trees.bounds import BallBound, HRectBound

DEFAULT_LEAF_SIZE = 20


def _split_range(points: np.ndarray, order: np.ndarray, begin: int, count: int) -> int:
    """Reorder ``order[begin:begin+count]`` around the median of the widest dimension.

    Returns the size of the left part, always in ``[1, count - 1]``.
    """

    segment = order[begin : begin + count]
    values = points[segment]
    spread = values.max(axis=0) - values.min(axis=0)
    dim = int(np.argmax(spread))
    left_count = count // 2
    partitioned = np.argpartition(values[:, dim], left_count, kind="introselect")
    order[begin : begin + count] = segment[partitioned]
    return left_count


def validate_leaf_size(leaf_size: Any) -> int:
    try:
        size = int(leaf_size)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterError(f"leaf_size must be an integer, got {leaf_size!r}.") from exc
    if size < 1:
        raise InvalidParameterError(f"leaf_size must be positive, got {size}.")
    return size


def build_binary_space_tree(
    points: np.ndarray,
    *,
    leaf_size: int,
    bound_factory: Any,
) -> Tuple[np.ndarray, TreeNode, Permutation]:
    leaf_size = validate_leaf_size(leaf_size)
    num_points = int(points.shape[0])
    order = np.arange(num_points, dtype=np.int64)
    root = TreeNode(None)
    pending: List[Tuple[TreeNode, int, int]] = [(root, 0, num_points)]
    leaves: List[Tuple[TreeNode, int, int]] = []
    internals: List[Tuple[TreeNode, int, int]] = []

    while pending:
        node, begin, count = pending.pop()
        if count <= leaf_size:
            leaves.append((node, begin, count))
            continue
        left_count = _split_range(points, order, begin, count)
        left = TreeNode(None, parent=node)
        right = TreeNode(None, parent=node)
        node.children = [left, right]
        internals.append((node, begin, count))
        pending.append((right, begin + left_count, count - left_count))
        pending.append((left, begin, left_count))

    dataset = np.ascontiguousarray(points[order])
    for node, begin, count in leaves:
        node.indices = np.arange(begin, begin + count, dtype=np.int64)
    for node, begin, count in leaves + internals:
        node.bound = bound_factory(dataset[begin : begin + count])
    return dataset, root, Permutation(order)


class BinarySpaceTree(SpatialTree):
    reorders = True
    bound_type: Type[Any] = HRectBound

    def __init__(self, dataset: np.ndarray, root: TreeNode, *, leaf_size: int) -> None:
        super().__init__(dataset, root)
        self.leaf_size = leaf_size

    @classmethod
    def _bound_factory(cls, rows: np.ndarray) -> Any:
        return cls.bound_type.from_points(rows)

    @classmethod
    def build(
        cls,
        points: np.ndarray,
        *,
        leaf_size: int = DEFAULT_LEAF_SIZE,
        **_: Any,
    ) -> Tuple["BinarySpaceTree", Permutation]:
        dataset, root, permutation = build_binary_space_tree(
            points, leaf_size=leaf_size, bound_factory=cls._bound_factory
        )
        return cls(dataset, root, leaf_size=int(leaf_size)), permutation


class KDTree(BinarySpaceTree):
    tree_name = "kd-tree"
    bound_type = HRectBound


class BallTree(BinarySpaceTree):
    tree_name = "ball tree"
    bound_type = BallBound


__all__ = ["BallTree", "BinarySpaceTree", "DEFAULT_LEAF_SIZE", "KDTree", "build_binary_space_tree"]
