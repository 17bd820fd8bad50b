"""neighborx: k-nearest and k-furthest neighbour search over swappable spatial trees.

Quick Start
-----------
>>> import numpy as np
>>> from neighborx import KNNModel, TreeType
>>>
>>> points = np.random.randn(10000, 3)
>>> model = KNNModel(TreeType.KD_TREE).build_model(points)
>>> neighbors, distances = model.search(points[:100], k=10)
>>> neighbors, distances = model.search_self(k=5)  # never reports a point as its own neighbour

Classes
-------
NSModel / KNNModel / KFNModel : Model that picks its tree type at runtime.
NeighborSearch, LeafSearch, TreeSearch, SpillSearch : Search engines.
Runtime : Configuration for logging, diagnostics, numba and defaults.
"""

from importlib.metadata import version as _pkg_version

try:
    __version__ = _pkg_version("neighborx")
except Exception:  # pragma: no cover - best effort during local development
    __version__ = "0.1.0"

from .api import Runtime
from .core import (
    NO_NEIGHBOR,
    FurthestNeighborSort,
    NearestNeighborSort,
    Permutation,
    available_metrics,
    get_metric,
    get_policy,
)
from .errors import (
    InvalidParameterError,
    ModelNotInitializedError,
    NeighborSearchError,
    SerializationTypeMismatchError,
    UnsupportedTreeTypeError,
)
from .model import KFNModel, KNNModel, NSModel
from .search import LeafSearch, NeighborSearch, SpillSearch, TreeSearch
from .trees import TreeType, build_tree, parse_tree_type, tree_name

__all__ = [
    "__version__",
    "KFNModel",
    "KNNModel",
    "NSModel",
    "Runtime",
    "TreeType",
    "build_tree",
    "parse_tree_type",
    "tree_name",
    "NeighborSearch",
    "LeafSearch",
    "TreeSearch",
    "SpillSearch",
    "NO_NEIGHBOR",
    "FurthestNeighborSort",
    "NearestNeighborSort",
    "Permutation",
    "available_metrics",
    "get_metric",
    "get_policy",
    "NeighborSearchError",
    "InvalidParameterError",
    "ModelNotInitializedError",
    "SerializationTypeMismatchError",
    "UnsupportedTreeTypeError",
]
