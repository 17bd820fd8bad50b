"""Runtime-polymorphic neighbour search model.

``NSModel`` picks the search engine for its tree type when the model is
built, optionally rotates every point by a random orthogonal basis first,
and round-trips through a versioned state record (``to_state``/``from_state``)
or a compressed ``.npz`` archive (``save``/``load``).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Tuple, Type

import numpy as np

from neighborx import config as nx_config
from neighborx.core.points import as_point_set
from neighborx.core.sort_policy import (
    FurthestNeighborSort,
    NearestNeighborSort,
    SortPolicy,
    get_policy,
    policy_from_model_name,
)
from neighborx.diagnostics import log_operation
from neighborx.errors import (
    InvalidParameterError,
    ModelNotInitializedError,
    SerializationTypeMismatchError,
    UnsupportedTreeTypeError,
)
from neighborx.logging import get_logger
from neighborx.search.leaf_search import CAPACITY_TREE_TYPES, LEAF_TREE_TYPES, LeafSearch, TreeSearch
from neighborx.search.neighbor_search import NeighborSearch
from neighborx.search.spill_search import SpillSearch
from neighborx.trees.registry import TreeType, coerce_tree_type, default_tree_type, tree_name

LOGGER = get_logger("model")

MODEL_VERSION = 1


def random_basis_matrix(dimension: int, rng: np.random.Generator) -> np.ndarray:
    """Draw a random rotation: orthogonal, ``det >= 0``, uniform over draws.

    The Q factor of a Gaussian matrix has its columns flipped so the matching
    diagonal of R is non-negative; draws with a negative determinant are
    rejected and redrawn.
    """

    while True:
        q, r = np.linalg.qr(rng.standard_normal((dimension, dimension)))
        signs = np.sign(np.diag(r))
        signs[signs == 0] = 1.0
        q = q * signs[None, :]
        if np.linalg.det(q) >= 0:
            return q


def _engine_class(tree_type: TreeType) -> Type[NeighborSearch]:
    if tree_type in LEAF_TREE_TYPES:
        return LeafSearch
    if tree_type in CAPACITY_TREE_TYPES:
        return TreeSearch
    if tree_type == TreeType.SPILL_TREE:
        return SpillSearch
    raise UnsupportedTreeTypeError(f"No search engine for tree type {tree_type!r}.")


class NSModel:
    """Neighbour search model whose tree type is chosen at runtime."""

    default_policy: SortPolicy | None = None

    def __init__(
        self,
        tree_type: Any = None,
        random_basis: bool = False,
        *,
        policy: SortPolicy | str | None = None,
        seed: int | None = None,
    ) -> None:
        if policy is None:
            policy = self.default_policy or NearestNeighborSort
        self.policy: SortPolicy = get_policy(policy) if isinstance(policy, str) else policy
        if self.default_policy is not None and self.policy is not self.default_policy:
            raise InvalidParameterError(
                f"{type(self).__name__} only supports {self.default_policy.name} search."
            )
        self._tree_type = default_tree_type() if tree_type is None else coerce_tree_type(tree_type)
        self.random_basis = bool(random_basis)
        self.seed = seed
        self.q = np.empty((0, 0), dtype=np.float64)
        self.leaf_size = nx_config.runtime_config().leaf_size
        self.tau = 0.0
        self._engine: NeighborSearch | None = None

    # -- configuration -------------------------------------------------

    @property
    def tree_type(self) -> TreeType:
        return self._tree_type

    @tree_type.setter
    def tree_type(self, value: Any) -> None:
        self._tree_type = coerce_tree_type(value)

    def tree_name(self) -> str:
        return tree_name(self._tree_type)

    @property
    def is_trained(self) -> bool:
        return self._engine is not None and self._engine.is_trained

    @property
    def engine(self) -> NeighborSearch:
        if self._engine is None or not self._engine.is_trained:
            raise ModelNotInitializedError("No neighbour search model has been built.")
        return self._engine

    @property
    def dataset(self) -> np.ndarray:
        """Reference set as indexed, i.e. after the random basis if one is used."""

        return self.engine.reference_set

    @property
    def naive(self) -> bool:
        return self.engine.naive

    @naive.setter
    def naive(self, value: bool) -> None:
        self.engine.naive = value

    @property
    def single_mode(self) -> bool:
        return self.engine.single_mode

    @single_mode.setter
    def single_mode(self, value: bool) -> None:
        self.engine.single_mode = value

    @property
    def epsilon(self) -> float:
        return self.engine.epsilon

    # -- building and searching ----------------------------------------

    def _rng(self) -> np.random.Generator:
        seed = self.seed if self.seed is not None else nx_config.runtime_config().seed
        return np.random.default_rng(seed)

    def _make_engine(
        self,
        *,
        leaf_size: int,
        tau: float,
        naive: bool,
        single_mode: bool,
        epsilon: float,
    ) -> NeighborSearch:
        engine_cls = _engine_class(self._tree_type)
        if engine_cls is LeafSearch:
            return LeafSearch(
                self.policy,
                self._tree_type,
                naive=naive,
                single_mode=single_mode,
                leaf_size=leaf_size,
                epsilon=epsilon,
            )
        if engine_cls is SpillSearch:
            return SpillSearch(
                self.policy,
                naive=naive,
                single_mode=single_mode,
                tau=tau,
                leaf_size=leaf_size,
                epsilon=epsilon,
            )
        return TreeSearch(
            self.policy, self._tree_type, naive=naive, single_mode=single_mode, epsilon=epsilon
        )

    def build_model(
        self,
        reference_set: Any,
        *,
        leaf_size: int | None = None,
        tau: float = 0.0,
        naive: bool = False,
        single_mode: bool = False,
        epsilon: float = 0.0,
    ) -> "NSModel":
        with log_operation(LOGGER, "build_model") as op_log:
            points = as_point_set(reference_set)
            if self.random_basis:
                LOGGER.info("Creating random basis...")
                q = random_basis_matrix(points.shape[1], self._rng())
                points = np.ascontiguousarray(points @ q.T)
            else:
                q = np.empty((0, 0), dtype=np.float64)

            leaf_size = nx_config.runtime_config().leaf_size if leaf_size is None else int(leaf_size)
            engine = self._make_engine(
                leaf_size=leaf_size,
                tau=float(tau),
                naive=naive,
                single_mode=single_mode,
                epsilon=epsilon,
            )
            engine.train(points)
            # the previous engine survives a failed rebuild
            self.release()
            self.q = q
            self.leaf_size = leaf_size
            self.tau = float(tau)
            self._engine = engine
            op_log.add_metadata(
                tree=self._tree_type.name.lower(),
                policy=self.policy.name,
                points=int(points.shape[0]),
                dimension=int(points.shape[1]),
                random_basis=self.random_basis,
            )
        return self

    def release(self) -> None:
        if self._engine is not None:
            self._engine.release()
        self._engine = None

    def search(self, query_set: Any, k: int) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(neighbors, distances)``, each ``(n_queries, k)``, best first."""

        engine = self.engine
        queries = as_point_set(query_set, dimension=engine.dimension)
        with log_operation(LOGGER, "model_search") as op_log:
            op_log.add_metadata(tree=self._tree_type.name.lower(), queries=int(queries.shape[0]), k=k)
            if self.random_basis:
                queries = np.ascontiguousarray(queries @ self.q.T)
            return engine.search(queries, k)

    def search_self(self, k: int) -> Tuple[np.ndarray, np.ndarray]:
        """Neighbours of every reference point among the others (never itself)."""

        engine = self.engine
        with log_operation(LOGGER, "model_search") as op_log:
            op_log.add_metadata(
                tree=self._tree_type.name.lower(),
                queries=int(engine.reference_set.shape[0]),
                k=k,
                self_search=True,
            )
            return engine.search_self(k)

    # -- serialization -------------------------------------------------

    def to_state(self) -> Dict[str, Any]:
        engine_entry = None
        if self.is_trained:
            assert self._engine is not None
            engine_entry = {
                "kind": int(self._engine.kind),
                self.policy.model_name: self._engine.to_state(),
            }
        return {
            "name": self.policy.model_name,
            "version": MODEL_VERSION,
            "tree_type": int(self._tree_type),
            "random_basis": self.random_basis,
            "q": np.array(self.q, copy=True),
            "leaf_size": self.leaf_size,
            "tau": self.tau,
            "engine": engine_entry,
        }

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "NSModel":
        name = state.get("name")
        try:
            policy = policy_from_model_name(str(name))
        except InvalidParameterError as exc:
            raise SerializationTypeMismatchError(f"Unknown model name {name!r}.") from exc
        if cls.default_policy is not None and policy is not cls.default_policy:
            raise SerializationTypeMismatchError(
                f"{cls.__name__} cannot load a '{name}' record."
            )
        version = state.get("version")
        if version != MODEL_VERSION:
            raise InvalidParameterError(
                f"Unsupported model version {version!r}; expected {MODEL_VERSION}."
            )

        model = cls(state["tree_type"], bool(state["random_basis"]), policy=policy)
        model.q = np.asarray(state["q"], dtype=np.float64)
        model.leaf_size = int(state["leaf_size"])
        model.tau = float(state["tau"])

        entry = state.get("engine")
        if entry is None:
            return model
        if coerce_tree_type(entry.get("kind")) != model.tree_type:
            raise SerializationTypeMismatchError(
                f"Stored engine is a {entry.get('kind')!r} engine but the model is "
                f"{model.tree_type.name}."
            )
        if policy.model_name not in entry:
            raise SerializationTypeMismatchError(
                f"Stored engine is not keyed by '{policy.model_name}'."
            )
        engine_state = entry[policy.model_name]
        engine_cls = _engine_class(model.tree_type)
        if engine_state.get("engine") != engine_cls.__name__:
            raise SerializationTypeMismatchError(
                f"Stored engine {engine_state.get('engine')!r} does not match {engine_cls.__name__}."
            )
        model._engine = engine_cls.from_state(engine_state)
        return model

    def save(self, path: str | Path) -> Path:
        """Write the model to a compressed ``.npz`` archive and return its path."""

        target = Path(path).expanduser()
        if target.suffix != ".npz":
            target = target.with_name(target.name + ".npz")
        target.parent.mkdir(parents=True, exist_ok=True)

        state = self.to_state()
        arrays: Dict[str, np.ndarray] = {"q": state.pop("q")}
        entry = state.get("engine")
        if entry is not None:
            engine_state = dict(entry[self.policy.model_name])
            reference = engine_state.pop("reference_set")
            if reference is not None:
                arrays["reference_set"] = reference
            entry = dict(entry)
            entry[self.policy.model_name] = engine_state
            state["engine"] = entry
        np.savez_compressed(target, metadata=np.array(json.dumps(state, sort_keys=True)), **arrays)
        return target

    @classmethod
    def load(cls, path: str | Path) -> "NSModel":
        source = Path(path).expanduser()
        with np.load(source, allow_pickle=False) as archive:
            state = json.loads(str(archive["metadata"]))
            state["q"] = np.array(archive["q"])
            reference = np.array(archive["reference_set"]) if "reference_set" in archive.files else None
        entry = state.get("engine")
        if entry is not None:
            for key, value in entry.items():
                if isinstance(value, dict):
                    value["reference_set"] = reference
        return cls.from_state(state)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(tree={self.tree_name()!r}, policy={self.policy.name}, "
            f"random_basis={self.random_basis}, trained={self.is_trained})"
        )


class KNNModel(NSModel):
    """Nearest-neighbour model."""

    default_policy = NearestNeighborSort


class KFNModel(NSModel):
    """Furthest-neighbour model."""

    default_policy = FurthestNeighborSort


__all__ = ["KFNModel", "KNNModel", "MODEL_VERSION", "NSModel", "random_basis_matrix"]
