"""Low-level numerical kernels.

This subpackage contains the performance-critical routines (Numba-accelerated)
used by the pairwise evaluator and the assembler: per-pair Green's function
formulas in :mod:`greenkernels.functions.greens` and the row/chunk loops in
:mod:`greenkernels.functions.cpu_numba`.
"""
