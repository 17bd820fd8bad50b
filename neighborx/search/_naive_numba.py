from __future__ import annotations

from typing import Tuple

import numpy as np

try:  # pragma: no cover - optional dependency
    import numba as nb

    NUMBA_NAIVE_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    nb = None  # type: ignore
    NUMBA_NAIVE_AVAILABLE = False


def _require_numba() -> None:
    if not NUMBA_NAIVE_AVAILABLE:  # pragma: no cover - defensive
        raise RuntimeError(
            "Numba brute-force kernel requested but `numba` is not available. "
            "Install the '[numba]' extra or disable the feature via "
            "NEIGHBORX_ENABLE_NUMBA=0."
        )


if NUMBA_NAIVE_AVAILABLE:

    @nb.njit(cache=True, parallel=True)
    def _naive_topk(
        queries: np.ndarray,
        references: np.ndarray,
        k: int,
        furthest: bool,
        exclude_self: bool,
    ):
        num_queries = queries.shape[0]
        num_refs = references.shape[0]
        dim = queries.shape[1]
        indices = np.full((num_queries, k), -1, dtype=np.int64)
        distances = np.full((num_queries, k), np.nan, dtype=np.float64)
        for qi in nb.prange(num_queries):
            dists = np.empty(num_refs, dtype=np.float64)
            keys = np.empty(num_refs, dtype=np.float64)
            for ri in range(num_refs):
                acc = 0.0
                for j in range(dim):
                    diff = queries[qi, j] - references[ri, j]
                    acc += diff * diff
                dist = np.sqrt(acc)
                dists[ri] = dist
                keys[ri] = -dist if furthest else dist
            if exclude_self and qi < num_refs:
                keys[qi] = np.inf
            order = np.argsort(keys, kind="mergesort")
            slot = 0
            for pos in range(num_refs):
                if slot >= k:
                    break
                ri = order[pos]
                if exclude_self and ri == qi:
                    continue
                indices[qi, slot] = ri
                distances[qi, slot] = dists[ri]
                slot += 1
        return indices, distances

    def naive_topk_numba(
        queries: np.ndarray,
        references: np.ndarray,
        k: int,
        *,
        furthest: bool,
        exclude_self: bool,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Brute-force top-k for every query row, best-first, ties toward lower index."""

        return _naive_topk(
            np.ascontiguousarray(queries, dtype=np.float64),
            np.ascontiguousarray(references, dtype=np.float64),
            int(k),
            bool(furthest),
            bool(exclude_self),
        )

else:  # pragma: no cover - executed when numba missing

    def naive_topk_numba(
        queries: np.ndarray,
        references: np.ndarray,
        k: int,
        *,
        furthest: bool,
        exclude_self: bool,
    ) -> Tuple[np.ndarray, np.ndarray]:
        _require_numba()
        raise AssertionError("unreachable")


__all__ = ["NUMBA_NAIVE_AVAILABLE", "naive_topk_numba"]
