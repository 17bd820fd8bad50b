"""Spatial index structures sharing the ``SpatialTree`` capability interface."""

from .base import NeighborSearchStat, SpatialTree, TreeNode
from .binary_space import BallTree, BinarySpaceTree, KDTree
from .bounds import BallBound, HRectBound
from .cover_tree import CoverTree, CoverTreeNode
from .rectangle_tree import RStarTree, RTree, RectangleTree, RectangleTreeNode, XTree
from .registry import (
    TreeType,
    build_tree,
    coerce_tree_type,
    default_tree_type,
    parse_tree_type,
    tree_class,
    tree_name,
)
from .spill_tree import SpillTree, SpillTreeNode

__all__ = [
    "NeighborSearchStat",
    "SpatialTree",
    "TreeNode",
    "BallTree",
    "BinarySpaceTree",
    "KDTree",
    "BallBound",
    "HRectBound",
    "CoverTree",
    "CoverTreeNode",
    "RStarTree",
    "RTree",
    "RectangleTree",
    "RectangleTreeNode",
    "XTree",
    "SpillTree",
    "SpillTreeNode",
    "TreeType",
    "build_tree",
    "coerce_tree_type",
    "default_tree_type",
    "parse_tree_type",
    "tree_class",
    "tree_name",
]
