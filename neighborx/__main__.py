#!/usr/bin/env python
"""Quick-start guide for neighborx library usage.

Run with: python -m neighborx

This module intentionally avoids importing neighborx internals to provide
a fast, clean startup for displaying help text.
"""

from __future__ import annotations

QUICKSTART = """\
================================================================================
                               NEIGHBORX
       k-nearest / k-furthest neighbour search over swappable spatial trees
================================================================================

INSTALLATION
------------
    pip install neighborx            # numpy + psutil
    pip install "neighborx[numba]"   # optional compiled brute-force kernel

BASIC USAGE (k nearest neighbours)
----------------------------------
    import numpy as np
    from neighborx import KNNModel, TreeType

    points = np.random.randn(10000, 3)
    model = KNNModel(TreeType.KD_TREE).build_model(points, leaf_size=20)

    # Rows are queries, columns are ranks (best first)
    neighbors, distances = model.search(points[:100], k=10)

    # Self-search: a point is never reported as its own neighbour
    neighbors, distances = model.search_self(k=5)

FURTHEST NEIGHBOURS
-------------------
    from neighborx import KFNModel
    model = KFNModel(TreeType.BALL_TREE).build_model(points)
    neighbors, distances = model.search(points[:10], k=3)

TREE TYPES
----------
    TreeType.KD_TREE       kd-tree      (leaf_size)
    TreeType.BALL_TREE     ball tree    (leaf_size)
    TreeType.COVER_TREE    cover tree
    TreeType.R_TREE        R tree
    TreeType.R_STAR_TREE   R* tree
    TreeType.X_TREE        X tree
    TreeType.SPILL_TREE    spill tree   (tau, leaf_size)

SEARCH MODES
------------
    model.build_model(points, naive=True)        # brute force
    model.build_model(points, single_mode=True)  # one tree, one query at a time
    model.build_model(points)                    # dual-tree traversal (default)
    model.build_model(points, epsilon=0.1)       # approximate, within (1 + eps)

RANDOM BASIS & PERSISTENCE
--------------------------
    model = KNNModel(TreeType.KD_TREE, random_basis=True, seed=7)
    model.build_model(points)
    path = model.save("knn-model.npz")
    restored = KNNModel.load(path)

RUNTIME CONFIGURATION
---------------------
    NEIGHBORX_LOG_LEVEL=DEBUG NEIGHBORX_ENABLE_DIAGNOSTICS=0 python app.py

    from neighborx import Runtime
    Runtime(leaf_size=32, enable_numba=True).activate()

================================================================================
"""


def main() -> None:
    """Print quick-start guide."""
    print(QUICKSTART)


if __name__ == "__main__":
    main()
