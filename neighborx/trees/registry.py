from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, Tuple, Type

import numpy as np

from neighborx import config as nx_config
from neighborx.core.points import Permutation
from neighborx.diagnostics import log_operation
from neighborx.errors import UnsupportedTreeTypeError
from neighborx.logging import get_logger
from neighborx.trees.base import SpatialTree
from neighborx.trees.binary_space import BallTree, KDTree
from neighborx.trees.cover_tree import CoverTree
from neighborx.trees.rectangle_tree import RStarTree, RTree, XTree
from neighborx.trees.spill_tree import SpillTree


LOGGER = get_logger("trees.registry")


class TreeType(IntEnum):
    """Discriminant selecting the index structure behind a model."""

    KD_TREE = 0
    COVER_TREE = 1
    R_TREE = 2
    R_STAR_TREE = 3
    BALL_TREE = 4
    X_TREE = 5
    SPILL_TREE = 6


_TREE_CLASSES: Dict[TreeType, Type[SpatialTree]] = {
    TreeType.KD_TREE: KDTree,
    TreeType.COVER_TREE: CoverTree,
    TreeType.R_TREE: RTree,
    TreeType.R_STAR_TREE: RStarTree,
    TreeType.BALL_TREE: BallTree,
    TreeType.X_TREE: XTree,
    TreeType.SPILL_TREE: SpillTree,
}

_CONFIG_NAMES: Dict[str, TreeType] = {
    "kd": TreeType.KD_TREE,
    "cover": TreeType.COVER_TREE,
    "r": TreeType.R_TREE,
    "r-star": TreeType.R_STAR_TREE,
    "ball": TreeType.BALL_TREE,
    "x": TreeType.X_TREE,
    "spill": TreeType.SPILL_TREE,
}


def coerce_tree_type(value: object) -> TreeType:
    """Return ``value`` as a :class:`TreeType` or raise ``UnsupportedTreeTypeError``."""

    if isinstance(value, TreeType):
        return value
    if isinstance(value, str):
        return parse_tree_type(value)
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return TreeType(value)
        except ValueError:
            pass
    raise UnsupportedTreeTypeError(f"Unsupported tree type {value!r}.")


def tree_class(tree_type: object) -> Type[SpatialTree]:
    return _TREE_CLASSES[coerce_tree_type(tree_type)]


def tree_name(tree_type: object) -> str:
    """Human-readable name, e.g. ``"kd-tree"`` or ``"R* tree"``."""

    return tree_class(tree_type).tree_name


def parse_tree_type(value: str) -> TreeType:
    """Parse names such as ``"kd"``, ``"R*-tree"`` or ``"COVER_TREE"``."""

    text = value.strip()
    member = TreeType.__members__.get(text.upper().replace("-", "_"))
    if member is not None:
        return member
    try:
        return _CONFIG_NAMES[nx_config.normalise_tree_type(text)]
    except ValueError as exc:
        raise UnsupportedTreeTypeError(str(exc)) from exc


def default_tree_type() -> TreeType:
    return _CONFIG_NAMES[nx_config.runtime_config().tree_type]


def build_tree(tree_type: object, points: np.ndarray, **params: Any) -> Tuple[SpatialTree, Permutation | None]:
    """Build the structure selected by ``tree_type`` over ``points``."""

    cls = tree_class(tree_type)
    with log_operation(LOGGER, "build_tree") as op_log:
        tree, permutation = cls.build(points, **params)
        op_log.add_metadata(
            tree=cls.tree_name.replace(" ", "_"),
            points=tree.num_points,
            nodes=tree.num_nodes(),
            height=tree.height,
        )
    return tree, permutation


__all__ = [
    "TreeType",
    "build_tree",
    "coerce_tree_type",
    "default_tree_type",
    "parse_tree_type",
    "tree_class",
    "tree_name",
]
