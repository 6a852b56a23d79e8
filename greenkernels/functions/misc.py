"""Small helpers shared by the evaluator and the assembler."""

from __future__ import annotations

import numpy as np


def chunk_bounds(n: int, chunks: int) -> np.ndarray:
    """Split ``range(n)`` into ``chunks`` contiguous, near-equal ranges.

    Parameters
    ----------
    n:
        Number of items (targets).
    chunks:
        Number of ranges. Clamped to ``[1, max(n, 1)]``.

    Returns
    -------
    numpy.ndarray
        ``int64`` offsets of length ``chunks + 1``; range ``c`` is
        ``bounds[c]:bounds[c + 1]``. Sizes differ by at most one.
    """

    chunks = max(1, min(int(chunks), max(int(n), 1)))
    return (np.arange(chunks + 1, dtype=np.int64) * int(n)) // chunks


def grid_points(n: int, spacing: float = 1.0, dtype=np.float64) -> np.ndarray:
    """Return the first ``n`` points of a cubic lattice with the given spacing.

    The lattice side is the smallest integer ``m`` with ``m**3 >= n``; points
    are ordered x-fastest. Useful for reproducible, singularity-free test
    geometries.
    """

    side = 1
    while side**3 < n:
        side += 1
    axis = np.arange(side, dtype=np.float64) * spacing
    z, y, x = np.meshgrid(axis, axis, axis, indexing="ij")
    points = np.stack((x.ravel(), y.ravel(), z.ravel()), axis=1)[:n]
    return np.ascontiguousarray(points, dtype=dtype)
