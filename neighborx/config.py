from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

_LOGGER = logging.getLogger("neighborx")

_SUPPORTED_METRICS = {"euclidean"}
_TREE_TYPE_ALIASES = {
    "kd": "kd",
    "kd-tree": "kd",
    "cover": "cover",
    "cover-tree": "cover",
    "r": "r",
    "r-tree": "r",
    "r-star": "r-star",
    "r*": "r-star",
    "r*-tree": "r-star",
    "r-star-tree": "r-star",
    "ball": "ball",
    "ball-tree": "ball",
    "x": "x",
    "x-tree": "x",
    "spill": "spill",
    "spill-tree": "spill",
}
_DEFAULT_LEAF_SIZE = 20
_DEFAULT_NAIVE_CHUNK = 256
_DEFAULT_TREE_TYPE = "kd"


def _bool_from_env(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_optional_int(raw: str | None) -> int | None:
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid integer value '{raw}'") from exc


def _parse_positive_int(raw: str | None, *, default: int, name: str) -> int:
    value = _parse_optional_int(raw)
    if value is None:
        return default
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value}.")
    return value


def normalise_tree_type(value: str | None) -> str:
    if value is None:
        return _DEFAULT_TREE_TYPE
    key = value.strip().lower().replace("_", "-").replace(" ", "-")
    if key not in _TREE_TYPE_ALIASES:
        raise ValueError(
            f"Unsupported tree type '{value}'. Expected one of {sorted(set(_TREE_TYPE_ALIASES.values()))}."
        )
    return _TREE_TYPE_ALIASES[key]


def normalise_metric(value: str | None) -> str:
    metric = (value or "euclidean").strip().lower() or "euclidean"
    if metric not in _SUPPORTED_METRICS:
        raise ValueError(f"Unsupported metric '{metric}'. Expected one of {_SUPPORTED_METRICS}.")
    return metric


@dataclass(frozen=True)
class RuntimeConfig:
    log_level: str
    enable_diagnostics: bool
    enable_numba: bool
    metric: str
    leaf_size: int
    tree_type: str
    seed: int | None
    naive_chunk: int

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        log_level = os.getenv("NEIGHBORX_LOG_LEVEL", "INFO").upper()
        enable_diagnostics = _bool_from_env(
            os.getenv("NEIGHBORX_ENABLE_DIAGNOSTICS"), default=True
        )
        enable_numba = _bool_from_env(os.getenv("NEIGHBORX_ENABLE_NUMBA"), default=False)
        metric = normalise_metric(os.getenv("NEIGHBORX_METRIC"))
        leaf_size = _parse_positive_int(
            os.getenv("NEIGHBORX_LEAF_SIZE"),
            default=_DEFAULT_LEAF_SIZE,
            name="NEIGHBORX_LEAF_SIZE",
        )
        tree_type = normalise_tree_type(os.getenv("NEIGHBORX_TREE_TYPE"))
        seed = _parse_optional_int(os.getenv("NEIGHBORX_SEED"))
        naive_chunk = _parse_positive_int(
            os.getenv("NEIGHBORX_NAIVE_CHUNK"),
            default=_DEFAULT_NAIVE_CHUNK,
            name="NEIGHBORX_NAIVE_CHUNK",
        )
        return cls(
            log_level=log_level,
            enable_diagnostics=enable_diagnostics,
            enable_numba=enable_numba,
            metric=metric,
            leaf_size=leaf_size,
            tree_type=tree_type,
            seed=seed,
            naive_chunk=naive_chunk,
        )


def _configure_logging(level: str) -> None:
    logger = logging.getLogger("neighborx")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        formatter = logging.Formatter("%(levelname)s %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)


@dataclass
class RuntimeContext:
    """Runtime configuration plus the one-off side effects it implies."""

    config: RuntimeConfig
    _activated: bool = False

    def activate(self) -> None:
        if self._activated:
            return
        _configure_logging(self.config.log_level)
        self._activated = True


_CONTEXT_CACHE: Optional[RuntimeContext] = None


def runtime_context() -> RuntimeContext:
    """Return the cached runtime context, constructing it from the environment if necessary."""

    global _CONTEXT_CACHE
    if _CONTEXT_CACHE is None:
        context = RuntimeContext(config=RuntimeConfig.from_env())
        context.activate()
        _CONTEXT_CACHE = context
    return _CONTEXT_CACHE


def current_runtime_context() -> RuntimeContext | None:
    return _CONTEXT_CACHE


def runtime_config() -> RuntimeConfig:
    return runtime_context().config


def configure_runtime(config: RuntimeConfig) -> RuntimeContext:
    """Force the active runtime context to use ``config`` instead of env defaults."""

    global _CONTEXT_CACHE
    context = RuntimeContext(config=config)
    context.activate()
    _CONTEXT_CACHE = context
    return context


def reset_runtime_context() -> None:
    """Clear the cached runtime context (used in tests)."""

    global _CONTEXT_CACHE
    _CONTEXT_CACHE = None


def describe_runtime() -> Dict[str, Any]:
    """Return a serialisable view of the active runtime configuration."""

    config = runtime_config()
    return {
        "log_level": config.log_level,
        "enable_diagnostics": config.enable_diagnostics,
        "enable_numba": config.enable_numba,
        "metric": config.metric,
        "leaf_size": config.leaf_size,
        "tree_type": config.tree_type,
        "seed": config.seed,
        "naive_chunk": config.naive_chunk,
    }


__all__ = [
    "RuntimeConfig",
    "RuntimeContext",
    "runtime_context",
    "current_runtime_context",
    "runtime_config",
    "configure_runtime",
    "reset_runtime_context",
    "describe_runtime",
    "normalise_metric",
    "normalise_tree_type",
]
