from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator

import psutil

from neighborx import config as nx_config


@dataclass
class OperationLog:
    """Metadata collected while an operation runs, emitted as one log line."""

    name: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_metadata(self, **values: Any) -> None:
        self.metadata.update(values)


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    return str(value)


def _resource_snapshot(process: psutil.Process | None) -> tuple[float, int] | None:
    if process is None:
        return None
    cpu = process.cpu_times()
    return float(cpu.user), int(process.memory_info().rss)


@contextmanager
def log_operation(logger: logging.Logger, name: str) -> Iterator[OperationLog]:
    """Time an operation and log ``op=<name> wall_ms=... cpu_user_ms=... rss_delta=...``."""

    enabled = nx_config.runtime_config().enable_diagnostics
    process = psutil.Process() if enabled else None
    op_log = OperationLog(name=name)
    before = _resource_snapshot(process)
    start = time.perf_counter()
    try:
        yield op_log
    finally:
        wall_ms = (time.perf_counter() - start) * 1e3
        after = _resource_snapshot(process)
        if before is not None and after is not None:
            cpu_user_ms = _format_value((after[0] - before[0]) * 1e3)
            rss_delta = str(after[1] - before[1])
        else:
            cpu_user_ms = "NA"
            rss_delta = "NA"
        parts = [
            f"op={name}",
            f"wall_ms={wall_ms:.3f}",
            f"cpu_user_ms={cpu_user_ms}",
            f"rss_delta={rss_delta}",
        ]
        parts.extend(
            f"{key}={_format_value(value)}" for key, value in op_log.metadata.items()
        )
        logger.info(" ".join(parts))


__all__ = ["OperationLog", "log_operation"]
