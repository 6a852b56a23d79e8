"""Flat-buffer entry points for foreign callers.

These functions mirror :func:`greenkernels.assemble`,
:func:`greenkernels.evaluate`, :func:`greenkernels.potential` and
:func:`greenkernels.assemble_pairwise`, but take every array as a flat buffer
plus an explicit length, and every option as a plain number:

- buffers may be numpy arrays, objects exporting the buffer protocol
  (``bytearray``, ``array.array``, ``memoryview``), ``ctypes`` pointers or raw
  integer addresses (as handed out by ``ctypes``/``cffi``)
- ``kernel``: 0 Laplace, 1 Helmholtz, 2 modified Helmholtz
- ``mode``: 0 value, 1 value and gradient
- ``precision``: 0 real32, 1 real64, 2 complex64, 3 complex128
- ``worker_count``: 0 selects the default

Lengths are validated strictly (no implicit resizing, no dtype conversion)
before any computation; results are written into the caller's buffer. Each
function returns the number of scalars written.
"""

from __future__ import annotations

import ctypes
import logging

import numpy as np

from greenkernels.assembly import Assembler
from greenkernels.errors import ContractViolation
from greenkernels.kernel import EvaluationMode, kernel_from_code
from greenkernels.precision import Precision

log = logging.getLogger(__name__)

_CTYPES = {
    np.dtype(np.float32): ctypes.c_float,
    np.dtype(np.float64): ctypes.c_double,
}


def _check_length(value, name: str) -> int:
    if isinstance(value, bool) or int(value) != value or value < 0:
        raise ContractViolation(f"{name} must be a non-negative integer, got {value!r}.")
    return int(value)


def _as_array(buffer, length: int, dtype: np.dtype, name: str, writeable: bool = False) -> np.ndarray:
    """View a foreign buffer as a 1D numpy array of exactly ``length`` items."""

    dtype = np.dtype(dtype)
    if length == 0 and buffer is None:
        return np.empty(0, dtype=dtype)
    if buffer is None:
        raise ContractViolation(f"{name} is NULL but {length} elements were announced.")

    if isinstance(buffer, np.ndarray):
        arr = buffer
    elif isinstance(buffer, (int, ctypes.c_void_p)) or isinstance(buffer, ctypes._Pointer):
        address = ctypes.cast(buffer, ctypes.c_void_p).value
        if not address:
            if length == 0:
                return np.empty(0, dtype=dtype)
            raise ContractViolation(f"{name} is NULL but {length} elements were announced.")
        real = dtype
        if dtype.kind == "c":
            real = np.dtype(np.float32 if dtype == np.complex64 else np.float64)
        scalars = length * (2 if dtype.kind == "c" else 1)
        pointer = ctypes.cast(address, ctypes.POINTER(_CTYPES[real]))
        arr = np.ctypeslib.as_array(pointer, shape=(scalars,)).view(dtype)
    else:
        try:
            arr = np.frombuffer(buffer, dtype=dtype)
        except (TypeError, ValueError) as err:
            raise ContractViolation(f"{name} is not a usable buffer: {err}") from err

    if arr.dtype != dtype:
        raise ContractViolation(f"{name} has dtype {arr.dtype}, expected {dtype}.")
    if not arr.flags.c_contiguous:
        raise ContractViolation(f"{name} must be contiguous.")
    if arr.size != length:
        raise ContractViolation(f"{name} holds {arr.size} elements, but {length} were announced.")
    if writeable and not arr.flags.writeable:
        raise ContractViolation(f"{name} is read-only.")
    return arr.reshape(-1)


def _assembler(kernel: int, wavenumber_re: float, wavenumber_im: float, mode: int, precision: int,
               worker_count: int, singular: str) -> Assembler:
    variant = kernel_from_code(kernel, complex(wavenumber_re, wavenumber_im))
    workers = _check_length(worker_count, "worker_count")
    return Assembler(
        variant,
        EvaluationMode.from_code(mode),
        Precision.from_code(precision),
        singular=singular,
        worker_count=workers or None,
    )


def _points(assembler: Assembler, buffer, count: int, name: str) -> np.ndarray:
    count = _check_length(count, f"n{name}")
    arr = _as_array(buffer, 3 * count, assembler.precision.real_dtype, name)
    return arr.reshape(count, 3)


def assemble_flat(
    sources,
    nsources: int,
    targets,
    ntargets: int,
    result,
    result_len: int,
    kernel: int,
    wavenumber_re: float = 0.0,
    wavenumber_im: float = 0.0,
    mode: int = 0,
    precision: int = 1,
    worker_count: int = 0,
    singular: str = "nan",
) -> int:
    """Dense assembly into a flat, row-major (target-major) result buffer.

    ``result_len`` must equal ``ntargets * nsources * ncomponents``.
    """

    assembler = _assembler(kernel, wavenumber_re, wavenumber_im, mode, precision, worker_count, singular)
    src = _points(assembler, sources, nsources, "sources")
    tgt = _points(assembler, targets, ntargets, "targets")
    expected = src.shape[0] * tgt.shape[0] * assembler.components
    result_len = _check_length(result_len, "result_len")
    if result_len != expected:
        raise ContractViolation(f"result_len is {result_len}, expected {expected}.")
    out = _as_array(result, result_len, assembler.precision.dtype, "result", writeable=True)

    same = src.shape == tgt.shape and _same_address(sources, targets)
    assembler.assemble(src, tgt, out=out, self_interaction=same)
    log.debug("assemble_flat wrote %d scalars", result_len)
    return result_len


def evaluate_flat(
    sources,
    nsources: int,
    targets,
    ntargets: int,
    result,
    result_len: int,
    kernel: int,
    wavenumber_re: float = 0.0,
    wavenumber_im: float = 0.0,
    mode: int = 0,
    precision: int = 1,
    singular: str = "nan",
) -> int:
    """Single-threaded counterpart of :func:`assemble_flat`."""

    assembler = _assembler(kernel, wavenumber_re, wavenumber_im, mode, precision, 1, singular)
    src = _points(assembler, sources, nsources, "sources")
    tgt = _points(assembler, targets, ntargets, "targets")
    expected = src.shape[0] * tgt.shape[0] * assembler.components
    result_len = _check_length(result_len, "result_len")
    if result_len != expected:
        raise ContractViolation(f"result_len is {result_len}, expected {expected}.")
    out = _as_array(result, result_len, assembler.precision.dtype, "result", writeable=True)

    same = src.shape == tgt.shape and _same_address(sources, targets)
    assembler.evaluate(src, tgt, out=out, self_interaction=same)
    return result_len


def potential_flat(
    sources,
    nsources: int,
    targets,
    ntargets: int,
    charges,
    ncharges: int,
    result,
    result_len: int,
    kernel: int,
    wavenumber_re: float = 0.0,
    wavenumber_im: float = 0.0,
    mode: int = 0,
    precision: int = 1,
    worker_count: int = 0,
    singular: str = "nan",
) -> int:
    """Charge-weighted sums into a flat result of ``ntargets * ncomponents``."""

    assembler = _assembler(kernel, wavenumber_re, wavenumber_im, mode, precision, worker_count, singular)
    src = _points(assembler, sources, nsources, "sources")
    tgt = _points(assembler, targets, ntargets, "targets")
    ncharges = _check_length(ncharges, "ncharges")
    if ncharges != src.shape[0]:
        raise ContractViolation(f"ncharges is {ncharges}, expected {src.shape[0]}.")
    q = _as_array(charges, ncharges, assembler.precision.dtype, "charges")
    expected = tgt.shape[0] * assembler.components
    result_len = _check_length(result_len, "result_len")
    if result_len != expected:
        raise ContractViolation(f"result_len is {result_len}, expected {expected}.")
    out = _as_array(result, result_len, assembler.precision.dtype, "result", writeable=True)

    same = src.shape == tgt.shape and _same_address(sources, targets)
    assembler.potential(src, tgt, q, out=out, self_interaction=same)
    return result_len


def pairwise_flat(
    sources,
    targets,
    npoints: int,
    result,
    result_len: int,
    kernel: int,
    wavenumber_re: float = 0.0,
    wavenumber_im: float = 0.0,
    mode: int = 0,
    precision: int = 1,
    worker_count: int = 0,
    singular: str = "nan",
) -> int:
    """``G(t_i, s_i)`` for ``npoints`` matched pairs into ``npoints * ncomponents``."""

    assembler = _assembler(kernel, wavenumber_re, wavenumber_im, mode, precision, worker_count, singular)
    src = _points(assembler, sources, npoints, "sources")
    tgt = _points(assembler, targets, npoints, "targets")
    expected = src.shape[0] * assembler.components
    result_len = _check_length(result_len, "result_len")
    if result_len != expected:
        raise ContractViolation(f"result_len is {result_len}, expected {expected}.")
    out = _as_array(result, result_len, assembler.precision.dtype, "result", writeable=True)

    assembler.assemble_pairwise(src, tgt, out=out)
    return result_len


def _same_address(a, b) -> bool:
    """True if two foreign buffers start at the same address."""

    if a is b:
        return True
    try:
        return _address(a) == _address(b) and _address(a) is not None
    except (TypeError, ValueError):
        return False


def _address(buffer) -> int | None:
    if buffer is None:
        return None
    if isinstance(buffer, np.ndarray):
        return buffer.__array_interface__["data"][0]
    if isinstance(buffer, (int, ctypes.c_void_p)) or isinstance(buffer, ctypes._Pointer):
        return ctypes.cast(buffer, ctypes.c_void_p).value
    return np.frombuffer(buffer, dtype=np.uint8).__array_interface__["data"][0]
