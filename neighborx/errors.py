"""Exception taxonomy shared by the search engines and the model."""

from __future__ import annotations


class NeighborSearchError(Exception):
    """Base class for every error raised by neighborx."""


class ModelNotInitializedError(NeighborSearchError, RuntimeError):
    """Search or an accessor was used before the model was trained."""


class InvalidParameterError(NeighborSearchError, ValueError):
    """A caller-supplied parameter was rejected at the boundary."""


class UnsupportedTreeTypeError(NeighborSearchError, NotImplementedError):
    """A tree-type discriminant fell outside the closed set of known types."""


class SerializationTypeMismatchError(NeighborSearchError, TypeError):
    """A persisted engine does not match the discriminant it was stored under."""


__all__ = [
    "NeighborSearchError",
    "ModelNotInitializedError",
    "InvalidParameterError",
    "UnsupportedTreeTypeError",
    "SerializationTypeMismatchError",
]
