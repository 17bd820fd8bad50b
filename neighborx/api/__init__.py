"""Public ergonomic façade for neighborx."""

from .runtime import Runtime

__all__ = [
    "Runtime",
]
