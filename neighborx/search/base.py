from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Tuple

import numpy as np

from neighborx.trees.registry import TreeType


class NeighborSearchBase(ABC):
    """Contract shared by every search engine a model can hold.

    An engine is trained once on a reference set and then answers k-neighbour
    queries for arbitrary query sets or for the reference set itself. Whether
    it scans exhaustively, walks one tree, or walks a query tree alongside
    the reference tree is configuration (``naive`` / ``single_mode``).
    """

    kind: TreeType

    @abstractmethod
    def train(self, reference: Any) -> None:
        """Index ``reference`` (raw points or a pre-built tree)."""

    @abstractmethod
    def search(self, query_set: Any, k: int) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(neighbors, distances)`` of shape ``(n_queries, k)``."""

    @abstractmethod
    def search_self(self, k: int) -> Tuple[np.ndarray, np.ndarray]:
        """Search the reference set against itself, excluding each point from its own results."""

    @property
    @abstractmethod
    def reference_set(self) -> np.ndarray:
        ...

    @property
    @abstractmethod
    def naive(self) -> bool:
        ...

    @naive.setter
    @abstractmethod
    def naive(self, value: bool) -> None:
        ...

    @property
    @abstractmethod
    def single_mode(self) -> bool:
        ...

    @single_mode.setter
    @abstractmethod
    def single_mode(self, value: bool) -> None:
        ...

    @abstractmethod
    def to_state(self) -> Dict[str, Any]:
        ...


__all__ = ["NeighborSearchBase"]
