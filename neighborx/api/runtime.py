from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict

from neighborx import config as nx_config


def _active_runtime_config() -> nx_config.RuntimeConfig:
    active = nx_config.current_runtime_context()
    if active is not None:
        return active.config
    return nx_config.RuntimeConfig.from_env()


_ATTR_TO_FIELD = {
    "log_level": "log_level",
    "diagnostics": "enable_diagnostics",
    "enable_numba": "enable_numba",
    "metric": "metric",
    "leaf_size": "leaf_size",
    "tree_type": "tree_type",
    "seed": "seed",
    "naive_chunk": "naive_chunk",
}


@dataclass(frozen=True)
class Runtime:
    """Declarative runtime configuration that can activate a neighborx context."""

    log_level: str | None = None
    diagnostics: bool | None = None
    enable_numba: bool | None = None
    metric: str | None = None
    leaf_size: int | None = None
    tree_type: str | None = None
    seed: int | None = None
    naive_chunk: int | None = None

    def to_config(self, base: nx_config.RuntimeConfig | None = None) -> nx_config.RuntimeConfig:
        base_config = base or nx_config.RuntimeConfig.from_env()
        updates: Dict[str, Any] = {}
        for attr, field_name in _ATTR_TO_FIELD.items():
            value = getattr(self, attr)
            if value is not None:
                updates[field_name] = value
        if "log_level" in updates:
            updates["log_level"] = str(updates["log_level"]).upper()
        if "metric" in updates:
            updates["metric"] = nx_config.normalise_metric(updates["metric"])
        if "tree_type" in updates:
            updates["tree_type"] = nx_config.normalise_tree_type(updates["tree_type"])
        for name in ("leaf_size", "naive_chunk"):
            if name in updates and int(updates[name]) <= 0:
                raise ValueError(f"{name} must be a positive integer, got {updates[name]}.")
        return replace(base_config, **updates)

    def activate(self) -> nx_config.RuntimeContext:
        """Install this runtime as the active global context and return it."""

        config = self.to_config()
        return nx_config.configure_runtime(config)

    def describe(self) -> Dict[str, Any]:
        config = self.to_config()
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

    def with_updates(self, **kwargs: Any) -> "Runtime":
        return replace(self, **kwargs)

    @classmethod
    def from_active(cls) -> "Runtime":
        return cls.from_config(_active_runtime_config())

    @classmethod
    def from_config(cls, config: nx_config.RuntimeConfig) -> "Runtime":
        return cls(
            log_level=config.log_level,
            diagnostics=config.enable_diagnostics,
            enable_numba=config.enable_numba,
            metric=config.metric,
            leaf_size=config.leaf_size,
            tree_type=config.tree_type,
            seed=config.seed,
            naive_chunk=config.naive_chunk,
        )
