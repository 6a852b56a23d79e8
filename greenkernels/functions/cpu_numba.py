"""CPU loops for pairwise evaluation and dense assembly (Numba).

The loops receive the per-pair formula from :mod:`greenkernels.functions.greens`
as their first argument, so one loop body serves every kernel, every
evaluation mode and every precision (Numba specialises on the formula and on
the array dtypes).

Parallel loops iterate over *chunks*: ``bounds`` holds ``nchunks + 1``
monotone target offsets and iteration ``c`` writes only rows
``bounds[c]:bounds[c + 1]`` of the output and slot ``c`` of
``singular_counts``. No two iterations touch the same memory, so no
synchronisation is needed beyond the implicit join at the end of ``prange``.
Each parallel loop has a serial twin with an identical body; both produce
bitwise identical output.

All loops return (or store) the number of coincident source/target pairs found
outside the self-interaction diagonal. Those cells are written as ``0`` when
``zero_singular`` is set and as ``NaN`` otherwise.
"""

from __future__ import annotations

import numpy as np
from numba import jit, prange

_jit = jit(nopython=True, nogil=True)
_jit_parallel = jit(nopython=True, nogil=True, parallel=True)


@_jit
def evaluate_row(pair, k, tx, ty, tz, sources, out_row, diagonal, zero_singular):
    """Evaluate one target against all sources into ``out_row[:, :]``.

    ``diagonal`` is the source index that coincides with this target by
    identity (self-interaction) or ``-1``.
    """
    ncomp = out_row.shape[1]
    n_singular = 0
    for j in range(sources.shape[0]):
        if j == diagonal:
            for c in range(ncomp):
                out_row[j, c] = 0.0
            continue

        dx = tx - sources[j, 0]
        dy = ty - sources[j, 1]
        dz = tz - sources[j, 2]
        r = np.sqrt(dx * dx + dy * dy + dz * dz)

        if r == 0.0:
            n_singular += 1
            if zero_singular:
                for c in range(ncomp):
                    out_row[j, c] = 0.0
            else:
                for c in range(ncomp):
                    out_row[j, c] = np.nan
            continue

        pair(k, dx, dy, dz, r, out_row, j)

    return n_singular


@_jit
def assemble_serial(pair, k, sources, targets, out, self_interaction, zero_singular):
    n_singular = 0
    for i in range(targets.shape[0]):
        diagonal = i if self_interaction else -1
        n_singular += evaluate_row(
            pair,
            k,
            targets[i, 0],
            targets[i, 1],
            targets[i, 2],
            sources,
            out[i],
            diagonal,
            zero_singular,
        )
    return n_singular


@_jit_parallel
def assemble_chunked(
    pair,
    k,
    sources,
    targets,
    out,
    bounds,
    self_interaction,
    zero_singular,
    singular_counts,
):
    for c in prange(bounds.shape[0] - 1):
        n_singular = 0
        for i in range(bounds[c], bounds[c + 1]):
            diagonal = i if self_interaction else -1
            n_singular += evaluate_row(
                pair,
                k,
                targets[i, 0],
                targets[i, 1],
                targets[i, 2],
                sources,
                out[i],
                diagonal,
                zero_singular,
            )
        singular_counts[c] = n_singular


@_jit
def potential_row(
    pair, k, tx, ty, tz, sources, charges, result_row, scratch, diagonal, zero_singular
):
    """Accumulate ``sum_j G(t, s_j) q_j`` (and its gradient) for one target.

    Contributions are added in source-index order, so the sum does not depend on
    how targets were distributed over workers.
    """
    ncomp = result_row.shape[0]
    for c in range(ncomp):
        result_row[c] = 0.0

    n_singular = 0
    for j in range(sources.shape[0]):
        if j == diagonal:
            continue

        dx = tx - sources[j, 0]
        dy = ty - sources[j, 1]
        dz = tz - sources[j, 2]
        r = np.sqrt(dx * dx + dy * dy + dz * dz)

        if r == 0.0:
            n_singular += 1
            if not zero_singular:
                for c in range(ncomp):
                    result_row[c] += np.nan
            continue

        pair(k, dx, dy, dz, r, scratch, 0)
        q = charges[j]
        for c in range(ncomp):
            result_row[c] += q * scratch[0, c]

    return n_singular


@_jit
def potential_serial(pair, k, sources, targets, charges, result, self_interaction, zero_singular):
    scratch = np.empty_like(result[0:1])
    n_singular = 0
    for i in range(targets.shape[0]):
        diagonal = i if self_interaction else -1
        n_singular += potential_row(
            pair,
            k,
            targets[i, 0],
            targets[i, 1],
            targets[i, 2],
            sources,
            charges,
            result[i],
            scratch,
            diagonal,
            zero_singular,
        )
    return n_singular


@_jit_parallel
def potential_chunked(
    pair,
    k,
    sources,
    targets,
    charges,
    result,
    bounds,
    self_interaction,
    zero_singular,
    singular_counts,
):
    for c in prange(bounds.shape[0] - 1):
        # One scratch row per chunk; never shared between iterations.
        scratch = np.empty_like(result[0:1])
        n_singular = 0
        for i in range(bounds[c], bounds[c + 1]):
            diagonal = i if self_interaction else -1
            n_singular += potential_row(
                pair,
                k,
                targets[i, 0],
                targets[i, 1],
                targets[i, 2],
                sources,
                charges,
                result[i],
                scratch,
                diagonal,
                zero_singular,
            )
        singular_counts[c] = n_singular


@_jit
def pairwise_entry(pair, k, sources, targets, out, i, zero_singular):
    """Evaluate ``G(targets[i], sources[i])`` into ``out[i, :]``."""
    ncomp = out.shape[1]
    dx = targets[i, 0] - sources[i, 0]
    dy = targets[i, 1] - sources[i, 1]
    dz = targets[i, 2] - sources[i, 2]
    r = np.sqrt(dx * dx + dy * dy + dz * dz)

    if r == 0.0:
        if zero_singular:
            for c in range(ncomp):
                out[i, c] = 0.0
        else:
            for c in range(ncomp):
                out[i, c] = np.nan
        return 1

    pair(k, dx, dy, dz, r, out, i)
    return 0


@_jit
def pairwise_serial(pair, k, sources, targets, out, zero_singular):
    n_singular = 0
    for i in range(targets.shape[0]):
        n_singular += pairwise_entry(pair, k, sources, targets, out, i, zero_singular)
    return n_singular


@_jit_parallel
def pairwise_chunked(pair, k, sources, targets, out, bounds, zero_singular, singular_counts):
    for c in prange(bounds.shape[0] - 1):
        n_singular = 0
        for i in range(bounds[c], bounds[c + 1]):
            n_singular += pairwise_entry(pair, k, sources, targets, out, i, zero_singular)
        singular_counts[c] = n_singular
