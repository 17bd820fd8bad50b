from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from neighborx.errors import InvalidParameterError

NO_NEIGHBOR = -1


def as_point_set(values: Any, *, dimension: int | None = None) -> np.ndarray:
    """Coerce ``values`` into a C-contiguous ``(n_points, dimension)`` float64 matrix."""

    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim == 0:
        arr = arr.reshape(1, 1)
    elif arr.ndim == 1:
        if arr.shape[0] == 0:
            arr = arr.reshape(0, dimension or 0)
        else:
            arr = arr.reshape(1, arr.shape[0])
    elif arr.ndim != 2:
        raise InvalidParameterError(f"Point sets must be 2D, got an array with ndim={arr.ndim}.")
    if arr.shape[0] == 0 and dimension is not None and arr.shape[1] == 0:
        arr = arr.reshape(0, dimension)
    if dimension is not None and arr.shape[1] != dimension:
        raise InvalidParameterError(
            f"Point set has dimension {arr.shape[1]} but {dimension} was expected."
        )
    if arr.size and not np.all(np.isfinite(arr)):
        raise InvalidParameterError("Point sets must contain only finite values.")
    return np.ascontiguousarray(arr)


@dataclass(frozen=True, eq=False)
class Permutation:
    """Bijection from a structure's internal row order back to the caller's order.

    ``old_from_new[i]`` is the original index of the point stored at internal
    row ``i``.
    """

    old_from_new: np.ndarray

    def __post_init__(self) -> None:
        table = np.asarray(self.old_from_new, dtype=np.int64).reshape(-1)
        size = table.shape[0]
        if size:
            seen = np.zeros(size, dtype=bool)
            in_range = (table >= 0) & (table < size)
            if not np.all(in_range):
                raise InvalidParameterError("Permutation entries must lie in [0, size).")
            seen[table] = True
            if not np.all(seen):
                raise InvalidParameterError("Permutation must be a bijection.")
        table.setflags(write=False)
        object.__setattr__(self, "old_from_new", table)

    @classmethod
    def identity(cls, size: int) -> "Permutation":
        return cls(np.arange(size, dtype=np.int64))

    @property
    def size(self) -> int:
        return int(self.old_from_new.shape[0])

    @property
    def new_from_old(self) -> np.ndarray:
        inverse = np.empty_like(self.old_from_new)
        inverse[self.old_from_new] = np.arange(self.size, dtype=np.int64)
        return inverse

    def map_indices(self, indices: np.ndarray) -> np.ndarray:
        """Translate internal indices to original ones, keeping ``NO_NEIGHBOR`` markers."""

        arr = np.asarray(indices, dtype=np.int64)
        mapped = np.full_like(arr, NO_NEIGHBOR)
        valid = arr >= 0
        mapped[valid] = self.old_from_new[arr[valid]]
        return mapped

    def unmap_rows(self, matrix: np.ndarray) -> np.ndarray:
        """Place row ``i`` of ``matrix`` at row ``old_from_new[i]``."""

        arr = np.asarray(matrix)
        if arr.shape[0] != self.size:
            raise InvalidParameterError(
                f"Cannot unmap {arr.shape[0]} rows through a permutation of size {self.size}."
            )
        out = np.empty_like(arr)
        out[self.old_from_new] = arr
        return out

    def __len__(self) -> int:
        return self.size


__all__ = ["NO_NEIGHBOR", "Permutation", "as_point_set"]
