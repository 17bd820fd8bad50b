from __future__ import annotations

import heapq
from typing import List, Set, Tuple

import numpy as np

from neighborx.core.points import NO_NEIGHBOR
from neighborx.core.sort_policy import SortPolicy


class CandidateList:
    """Bounded best-k list for one query point.

    The heap root is always the worst accepted candidate, so ``worst`` is
    O(1). Entries are ``(-sort_key(distance), -tie, distance, index)``: the
    smallest tuple is the largest key, and among equal distances the largest
    tie rank, which makes ties resolve toward lower ranks.

    ``tie_order`` maps a stored index to its tie rank. Trees that reorder
    their rows pass their ``old_from_new`` table so ties follow the caller's
    original indices while the stored indices stay internal. Without it an
    index is its own rank.
    """

    __slots__ = ("k", "policy", "tie_order", "_heap", "_members")

    def __init__(self, k: int, policy: SortPolicy, tie_order: np.ndarray | None = None) -> None:
        self.k = int(k)
        self.policy = policy
        self.tie_order = tie_order
        self._heap: List[Tuple[float, int, float, int]] = []
        self._members: Set[int] = set()

    def __len__(self) -> int:
        return len(self._heap)

    @property
    def full(self) -> bool:
        return len(self._heap) >= self.k

    @property
    def worst(self) -> float:
        if len(self._heap) < self.k:
            return self.policy.worst_distance
        return self._heap[0][2]

    def _rank(self, index: int) -> int:
        if self.tie_order is None:
            return index
        return int(self.tie_order[index])

    def insert(self, index: int, distance: float) -> bool:
        if self.k <= 0 or index in self._members:
            return False
        entry = (-self.policy.sort_key(distance), -self._rank(index), distance, index)
        if len(self._heap) < self.k:
            heapq.heappush(self._heap, entry)
            self._members.add(index)
            return True
        if entry[:2] <= self._heap[0][:2]:
            return False
        evicted = heapq.heapreplace(self._heap, entry)
        self._members.discard(evicted[3])
        self._members.add(index)
        return True

    def finalize(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``k`` indices/distances ordered best-first, padding empty slots."""

        indices = np.full(self.k, NO_NEIGHBOR, dtype=np.int64)
        distances = np.full(self.k, np.nan, dtype=np.float64)
        ordered = sorted(self._heap, reverse=True)
        for slot, (_, _, distance, index) in enumerate(ordered):
            indices[slot] = index
            distances[slot] = distance
        return indices, distances


__all__ = ["CandidateList"]
