"""Search engines and the traversals they run."""

from .base import NeighborSearchBase
from .leaf_search import CAPACITY_TREE_TYPES, LEAF_TREE_TYPES, LeafSearch, TreeSearch
from .neighbor_search import NeighborSearch, validate_k
from .spill_search import SpillSearch
from .traversal import dual_tree_search, naive_search, single_tree_search

__all__ = [
    "NeighborSearchBase",
    "NeighborSearch",
    "LeafSearch",
    "TreeSearch",
    "SpillSearch",
    "LEAF_TREE_TYPES",
    "CAPACITY_TREE_TYPES",
    "validate_k",
    "dual_tree_search",
    "naive_search",
    "single_tree_search",
]
