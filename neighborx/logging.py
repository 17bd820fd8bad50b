from __future__ import annotations

import logging

_ROOT = "neighborx"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger nested under the ``neighborx`` namespace."""

    if not name:
        return logging.getLogger(_ROOT)
    if name.startswith(_ROOT + ".") or name == _ROOT:
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")


__all__ = ["get_logger"]
