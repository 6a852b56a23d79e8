"""Per-pair Green's function formulas (Numba).

Every formula has the same signature ``(k, dx, dy, dz, r, out, j)`` where
``(dx, dy, dz) = target - source``, ``r`` is the (non-zero) Euclidean distance
and ``out[j, :]`` receives the value and, for the ``*_value_gradient`` variants,
the gradient with respect to the target. The common signature lets the loops in
:mod:`greenkernels.functions.cpu_numba` take the formula as an argument and stay
kernel- and mode-agnostic.

Laplace and modified Helmholtz values are real; storing them into a complex
``out`` widens them without changing the real part. Helmholtz values are
complex and can only be stored into complex buffers.
"""

from __future__ import annotations

import numpy as np
from numba import jit

from greenkernels.errors import ContractViolation
from greenkernels.kernel import EvaluationMode, Helmholtz, KernelVariant, Laplace, ModifiedHelmholtz

INV_4PI = 1.0 / (4.0 * np.pi)

_jit = jit(nopython=True, nogil=True, cache=True)


@_jit
def laplace_value(k, dx, dy, dz, r, out, j):
    out[j, 0] = INV_4PI / r


@_jit
def laplace_value_gradient(k, dx, dy, dz, r, out, j):
    value = INV_4PI / r
    # -d / (4 pi r^3)
    scale = -value / (r * r)
    out[j, 0] = value
    out[j, 1] = scale * dx
    out[j, 2] = scale * dy
    out[j, 3] = scale * dz


@_jit
def helmholtz_value(k, dx, dy, dz, r, out, j):
    out[j, 0] = np.exp(1j * k * r) * (INV_4PI / r)


@_jit
def helmholtz_value_gradient(k, dx, dy, dz, r, out, j):
    value = np.exp(1j * k * r) * (INV_4PI / r)
    scale = value * (1j * k - 1.0 / r) / r
    out[j, 0] = value
    out[j, 1] = scale * dx
    out[j, 2] = scale * dy
    out[j, 3] = scale * dz


@_jit
def modified_helmholtz_value(k, dx, dy, dz, r, out, j):
    out[j, 0] = np.exp(-k * r) * (INV_4PI / r)


@_jit
def modified_helmholtz_value_gradient(k, dx, dy, dz, r, out, j):
    value = np.exp(-k * r) * (INV_4PI / r)
    scale = value * (-k - 1.0 / r) / r
    out[j, 0] = value
    out[j, 1] = scale * dx
    out[j, 2] = scale * dy
    out[j, 3] = scale * dz


def select_pair_function(kernel: KernelVariant, mode: EvaluationMode):
    """Return the jitted per-pair formula for ``kernel`` and ``mode``."""

    gradient = mode is EvaluationMode.VALUE_AND_GRADIENT
    match kernel:
        case Laplace():
            return laplace_value_gradient if gradient else laplace_value
        case Helmholtz():
            return helmholtz_value_gradient if gradient else helmholtz_value
        case ModifiedHelmholtz():
            return modified_helmholtz_value_gradient if gradient else modified_helmholtz_value
        case _:
            raise ContractViolation(f"Unknown kernel variant {kernel!r}.")
