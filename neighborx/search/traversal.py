"""Brute-force, single-tree and dual-tree k-neighbour traversals.

Every function returns ``(neighbors, distances)`` of shape ``(n_queries, k)``
in the index space of the structures it was handed: row ``i`` belongs to
query row ``i`` and neighbour indices are rows of the reference dataset as
stored by the reference structure. Translating either back to the caller's
order is the engine's job.

With ``exclude_self`` query row ``i`` and reference row ``i`` are taken to be
the same point, which is then never reported as its own neighbour.

``reference_order`` is the reference tree's ``old_from_new`` table when it
reordered its rows. Ties at equal distance are then broken toward the lower
original index, so tree searches agree exactly with the naive search.
"""

from __future__ import annotations

import sys
from typing import List, Sequence, Tuple

import numpy as np

from neighborx import config as nx_config
from neighborx.core.candidates import CandidateList
from neighborx.core.metrics import Metric, get_metric
from neighborx.core.points import NO_NEIGHBOR
from neighborx.core.sort_policy import FurthestNeighborSort, SortPolicy
from neighborx.logging import get_logger
from neighborx.search._naive_numba import NUMBA_NAIVE_AVAILABLE, naive_topk_numba
from neighborx.trees.base import SpatialTree, TreeNode

LOGGER = get_logger("search.traversal")

# Frames kept free for the caller when deciding whether dual recursion fits.
_RECURSION_HEADROOM = 64


def _empty_result(num_queries: int, k: int) -> Tuple[np.ndarray, np.ndarray]:
    return (
        np.full((num_queries, k), NO_NEIGHBOR, dtype=np.int64),
        np.full((num_queries, k), np.nan, dtype=np.float64),
    )


def _collect(lists: Sequence[CandidateList], k: int) -> Tuple[np.ndarray, np.ndarray]:
    neighbors, distances = _empty_result(len(lists), k)
    for row, candidates in enumerate(lists):
        neighbors[row], distances[row] = candidates.finalize()
    return neighbors, distances


def _offer(
    candidates: CandidateList,
    rows: np.ndarray,
    dists: np.ndarray,
    policy: SortPolicy,
) -> None:
    """Insert ``rows`` best-first, skipping anything worse than the current worst."""

    keys = policy.sort_key(dists)
    keep = keys <= policy.sort_key(candidates.worst)
    if not np.any(keep):
        return
    rows = rows[keep]
    dists = dists[keep]
    order = np.argsort(policy.sort_key(dists), kind="stable")
    for pos in order:
        candidates.insert(int(rows[pos]), float(dists[pos]))


def _use_numba(metric: Metric) -> bool:
    return (
        nx_config.runtime_config().enable_numba
        and NUMBA_NAIVE_AVAILABLE
        and metric.name == "euclidean"
    )


def naive_search(
    queries: np.ndarray,
    references: np.ndarray,
    k: int,
    policy: SortPolicy,
    *,
    exclude_self: bool = False,
    metric: Metric | None = None,
    chunk_size: int | None = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Exhaustive search; the ground truth every traversal must agree with."""

    metric = metric or get_metric()
    num_queries = int(queries.shape[0])
    if num_queries == 0 or references.shape[0] == 0:
        return _empty_result(num_queries, k)

    if _use_numba(metric):
        return naive_topk_numba(
            queries,
            references,
            k,
            furthest=policy is FurthestNeighborSort,
            exclude_self=exclude_self,
        )

    chunk = chunk_size or nx_config.runtime_config().naive_chunk
    num_refs = int(references.shape[0])
    take = min(k, num_refs)
    neighbors, distances = _empty_result(num_queries, k)
    for start in range(0, num_queries, chunk):
        stop = min(start + chunk, num_queries)
        block = metric.pairwise(queries[start:stop], references)
        keys = np.array(policy.sort_key(block), dtype=np.float64)
        rows = np.arange(stop - start)
        if exclude_self:
            own = np.arange(start, stop)
            inside = own < num_refs
            keys[rows[inside], own[inside]] = np.inf
        order = np.argsort(keys, axis=1, kind="stable")[:, :take]
        picked = block[rows[:, None], order]
        if exclude_self:
            is_self = order == np.arange(start, stop)[:, None]
            order = np.where(is_self, NO_NEIGHBOR, order)
            picked = np.where(is_self, np.nan, picked)
        neighbors[start:stop, :take] = order
        distances[start:stop, :take] = picked
    return neighbors, distances


def _search_point(
    query: np.ndarray,
    query_row: int,
    tree: SpatialTree,
    candidates: CandidateList,
    policy: SortPolicy,
    epsilon: float,
    exclude_self: bool,
    metric: Metric,
) -> None:
    root = tree.root
    stack: List[Tuple[float, TreeNode]] = [(policy.best_point_to_node(query, root.bound), root)]
    while stack:
        score, node = stack.pop()
        if policy.can_prune(score, policy.relax(candidates.worst, epsilon)):
            continue
        if node.is_leaf:
            rows = node.indices
            if exclude_self:
                rows = rows[rows != query_row]
            if rows.size == 0:
                continue
            dists = metric.pairwise(query, tree.dataset[rows])[0]
            _offer(candidates, rows, dists, policy)
            continue
        scored = [
            (policy.best_point_to_node(query, child.bound), child) for child in node.children
        ]
        # worst first onto the stack so the most promising child is popped next
        scored.sort(key=lambda item: policy.sort_key(item[0]), reverse=True)
        stack.extend(scored)


def single_tree_search(
    queries: np.ndarray,
    tree: SpatialTree,
    k: int,
    policy: SortPolicy,
    *,
    epsilon: float = 0.0,
    exclude_self: bool = False,
    metric: Metric | None = None,
    reference_order: np.ndarray | None = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Run each query point down the reference tree with an explicit stack."""

    metric = metric or get_metric()
    policy.validate_epsilon(epsilon)
    lists = [CandidateList(k, policy, reference_order) for _ in range(queries.shape[0])]
    if tree.num_points:
        for row, candidates in enumerate(lists):
            _search_point(queries[row], row, tree, candidates, policy, epsilon, exclude_self, metric)
    return _collect(lists, k)


class _DualTraversal:
    def __init__(
        self,
        query_tree: SpatialTree,
        reference_tree: SpatialTree,
        lists: List[CandidateList],
        policy: SortPolicy,
        epsilon: float,
        exclude_self: bool,
        metric: Metric,
    ) -> None:
        self.queries = query_tree.dataset
        self.references = reference_tree.dataset
        self.lists = lists
        self.policy = policy
        self.epsilon = epsilon
        self.exclude_self = exclude_self
        self.metric = metric
        self.base_cases = 0
        self.prunes = 0

    def _worst(self, values: Sequence[float]) -> float:
        return max(values, key=self.policy.sort_key)

    def _pruned(self, score: float, bound: float) -> bool:
        return self.policy.can_prune(score, self.policy.relax(bound, self.epsilon))

    def _base_case(self, query_node: TreeNode, reference_node: TreeNode) -> None:
        query_rows = query_node.indices
        reference_rows = reference_node.indices
        if query_rows.size == 0:
            return
        if reference_rows.size:
            self.base_cases += 1
            block = self.metric.pairwise(self.queries[query_rows], self.references[reference_rows])
            for pos, query_row in enumerate(query_rows):
                candidates = self.lists[int(query_row)]
                score = self.policy.best_point_to_node(self.queries[query_row], reference_node.bound)
                if self._pruned(score, candidates.worst):
                    continue
                rows = reference_rows
                dists = block[pos]
                if self.exclude_self:
                    keep = rows != query_row
                    rows = rows[keep]
                    dists = dists[keep]
                _offer(candidates, rows, dists, self.policy)
        query_node.stat.bound = self._worst([self.lists[int(row)].worst for row in query_rows])

    def _ordered_references(self, query_node: TreeNode, reference_node: TreeNode) -> List[Tuple[float, TreeNode]]:
        scored = [
            (self.policy.best_node_to_node(query_node.bound, child.bound), child)
            for child in reference_node.children
        ]
        scored.sort(key=lambda item: self.policy.sort_key(item[0]))
        return scored

    def recurse(self, query_node: TreeNode, reference_node: TreeNode, score: float) -> None:
        if self._pruned(score, query_node.stat.bound):
            self.prunes += 1
            return

        if query_node.is_leaf and reference_node.is_leaf:
            self._base_case(query_node, reference_node)
            return

        if query_node.is_leaf:
            for child_score, child in self._ordered_references(query_node, reference_node):
                self.recurse(query_node, child, child_score)
            return

        for query_child in query_node.children:
            if reference_node.is_leaf:
                child_score = self.policy.best_node_to_node(query_child.bound, reference_node.bound)
                self.recurse(query_child, reference_node, child_score)
            else:
                for child_score, child in self._ordered_references(query_child, reference_node):
                    self.recurse(query_child, child, child_score)
        query_node.stat.bound = self._worst([child.stat.bound for child in query_node.children])


def dual_tree_search(
    query_tree: SpatialTree,
    reference_tree: SpatialTree,
    k: int,
    policy: SortPolicy,
    *,
    epsilon: float = 0.0,
    exclude_self: bool = False,
    metric: Metric | None = None,
    reference_order: np.ndarray | None = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Traverse query and reference trees together.

    A query node caches the worst accepted distance over every query below
    it. A (query node, reference node) pair is skipped when the best
    distance the two bounds allow is strictly worse than that cached value.
    Cached values only ever move toward better distances, so a stale one
    prunes less, never incorrectly.
    """

    metric = metric or get_metric()
    policy.validate_epsilon(epsilon)
    num_queries = query_tree.num_points
    if num_queries == 0 or reference_tree.num_points == 0:
        return _empty_result(num_queries, k)

    depth = query_tree.height + reference_tree.height
    if depth + _RECURSION_HEADROOM >= sys.getrecursionlimit():
        LOGGER.warning(
            "Dual-tree depth %d is too close to the recursion limit %d; "
            "falling back to single-tree search.",
            depth,
            sys.getrecursionlimit(),
        )
        return single_tree_search(
            query_tree.dataset,
            reference_tree,
            k,
            policy,
            epsilon=epsilon,
            exclude_self=exclude_self,
            metric=metric,
            reference_order=reference_order,
        )

    lists = [CandidateList(k, policy, reference_order) for _ in range(num_queries)]
    query_tree.root.reset_stats(policy.worst_distance)
    traversal = _DualTraversal(
        query_tree, reference_tree, lists, policy, epsilon, exclude_self, metric
    )
    root_score = policy.best_node_to_node(query_tree.root.bound, reference_tree.root.bound)
    traversal.recurse(query_tree.root, reference_tree.root, root_score)
    LOGGER.debug(
        "dual traversal finished: base_cases=%d prunes=%d",
        traversal.base_cases,
        traversal.prunes,
    )
    return _collect(lists, k)


__all__ = ["dual_tree_search", "naive_search", "single_tree_search"]
