"""Scalar field selection and the capability helpers built on it.

Kernel formulas in :mod:`greenkernels.functions.greens` are written once as
Numba-jitted functions; Numba compiles one specialisation per concrete numpy
dtype. This module is the thin layer that maps a user-facing precision choice
to those dtypes and provides the handful of scalar operations the public
wrappers need (coercion, real/imaginary decomposition, conjugation, ...).

Notes
-----
Real and complex instantiations agree on the real axis: a Laplace or modified
Helmholtz value assembled in ``COMPLEX128`` has the ``REAL64`` value as its real
part, bit for bit, and a zero imaginary part. This holds because the complex
path computes the same real expression and only widens it on store.
"""

from __future__ import annotations

from enum import Enum

import numpy as np
import numpy.typing as npt

from greenkernels.errors import ContractViolation


class Precision(Enum):
    """Scalar field of a computation, fixed for the duration of one call."""

    REAL32 = "real32"
    REAL64 = "real64"
    COMPLEX64 = "complex64"
    COMPLEX128 = "complex128"

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(_DTYPES[self])

    @property
    def real_dtype(self) -> np.dtype:
        """Dtype used for point coordinates and real-valued intermediates."""
        return np.dtype(_REAL_DTYPES[self])

    @property
    def is_complex(self) -> bool:
        return self in (Precision.COMPLEX64, Precision.COMPLEX128)

    @property
    def eps(self) -> float:
        return float(np.finfo(self.real_dtype).eps)

    @property
    def code(self) -> int:
        """Integer code used by the flat entry points."""
        return _CODES[self]

    @classmethod
    def from_code(cls, code: int) -> "Precision":
        for precision, value in _CODES.items():
            if value == int(code):
                return precision
        raise ContractViolation(f"Unknown precision code {code!r}.")

    @classmethod
    def from_any(cls, value: "Precision | str | npt.DTypeLike") -> "Precision":
        """Parse a precision from an enum member, a name or a numpy dtype.

        Parameters
        ----------
        value:
            ``Precision`` member, one of the names ``"real32"``, ``"f64"``,
            ``"complex128"``, ``"c64"``, ... or anything :func:`numpy.dtype`
            accepts (``np.float32``, ``"complex64"``, ...).

        Returns
        -------
        Precision
            The matching precision.

        Raises
        ------
        ContractViolation
            If the value names no supported scalar field.
        """

        if isinstance(value, Precision):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            if key in _ALIASES:
                return _ALIASES[key]
        try:
            dtype = np.dtype(value)
        except TypeError as err:
            raise ContractViolation(f"Unsupported precision {value!r}.") from err
        for precision, candidate in _DTYPES.items():
            if dtype == np.dtype(candidate):
                return precision
        raise ContractViolation(
            f"Unsupported precision {value!r}; expected one of "
            "real32, real64, complex64, complex128."
        )

    def coerce_points(self, points: npt.ArrayLike, name: str = "points") -> np.ndarray:
        """Return a C-contiguous ``(n, 3)`` coordinate array of ``real_dtype``.

        A flat buffer of length ``3 n`` is reshaped to ``(n, 3)``.

        Raises
        ------
        ContractViolation
            If the input is complex, not finite-length-divisible by three or has
            the wrong shape.
        """

        arr = np.asarray(points)
        if np.iscomplexobj(arr):
            raise ContractViolation(f"{name} must be real coordinates.")
        if arr.ndim == 1:
            if arr.size % 3 != 0:
                raise ContractViolation(
                    f"Flat {name} buffer length {arr.size} is not a multiple of 3."
                )
            arr = arr.reshape((-1, 3))
        if arr.ndim != 2 or arr.shape[1] != 3:
            raise ContractViolation(f"Expected {name} shape (N,3), got {arr.shape}.")
        return np.ascontiguousarray(arr, dtype=self.real_dtype)

    def coerce_scalar(self, value: complex | float) -> complex | float:
        """Cast a Python scalar into this field (complex or real)."""

        if self.is_complex:
            return complex(value)
        if isinstance(value, complex) or np.iscomplexobj(value):
            if np.imag(value) != 0:
                raise ContractViolation(
                    f"Complex value {value!r} cannot be represented in {self.value}."
                )
            value = np.real(value)
        return float(value)

    def coerce_values(self, values: npt.ArrayLike, name: str = "values") -> np.ndarray:
        """Return a contiguous 1D array of ``dtype`` (used for charges)."""

        arr = np.asarray(values)
        if np.iscomplexobj(arr) and not self.is_complex:
            if np.any(np.imag(arr) != 0):
                raise ContractViolation(
                    f"{name} are complex but the requested precision is {self.value}."
                )
            arr = np.real(arr)
        return np.ascontiguousarray(arr.reshape(-1), dtype=self.dtype)

    def check_buffer(self, out: np.ndarray, shape: tuple[int, ...], name: str = "out") -> np.ndarray:
        """Validate a caller-provided output buffer.

        The buffer must have this precision's dtype, be C-contiguous and hold
        exactly ``prod(shape)`` elements. A flat buffer is reshaped in place (a
        view is returned).
        """

        if not isinstance(out, np.ndarray):
            raise ContractViolation(f"{name} must be a numpy array.")
        if out.dtype != self.dtype:
            raise ContractViolation(
                f"{name} has dtype {out.dtype}, but precision {self.value} "
                f"requires {self.dtype}."
            )
        if not out.flags.c_contiguous or not out.flags.writeable:
            raise ContractViolation(f"{name} must be a writeable C-contiguous array.")
        expected = int(np.prod(shape, dtype=np.int64))
        if out.size != expected:
            raise ContractViolation(
                f"{name} holds {out.size} elements, expected {expected} for shape {shape}."
            )
        return out.reshape(shape)

    # Capability helpers. They work on numpy scalars and arrays of any of the
    # four fields so callers never branch on the concrete type.

    def real_part(self, x):
        return np.real(x).astype(self.real_dtype, copy=False)

    def imag_part(self, x):
        if not self.is_complex:
            return np.zeros_like(np.asarray(x), dtype=self.real_dtype)
        return np.imag(x).astype(self.real_dtype, copy=False)

    def conj(self, x):
        return np.conj(x) if self.is_complex else x

    def exp(self, x):
        return np.exp(np.asarray(x, dtype=self.dtype))

    def sqrt(self, x):
        return np.sqrt(np.asarray(x, dtype=self.dtype))

    def abs(self, x):
        return np.abs(np.asarray(x, dtype=self.dtype)).astype(self.real_dtype, copy=False)


_DTYPES = {
    Precision.REAL32: np.float32,
    Precision.REAL64: np.float64,
    Precision.COMPLEX64: np.complex64,
    Precision.COMPLEX128: np.complex128,
}

_REAL_DTYPES = {
    Precision.REAL32: np.float32,
    Precision.REAL64: np.float64,
    Precision.COMPLEX64: np.float32,
    Precision.COMPLEX128: np.float64,
}

_CODES = {
    Precision.REAL32: 0,
    Precision.REAL64: 1,
    Precision.COMPLEX64: 2,
    Precision.COMPLEX128: 3,
}

_ALIASES = {
    "real32": Precision.REAL32,
    "f32": Precision.REAL32,
    "float32": Precision.REAL32,
    "single": Precision.REAL32,
    "real64": Precision.REAL64,
    "f64": Precision.REAL64,
    "float64": Precision.REAL64,
    "double": Precision.REAL64,
    "complex64": Precision.COMPLEX64,
    "c32": Precision.COMPLEX64,
    "c64": Precision.COMPLEX64,
    "complex128": Precision.COMPLEX128,
    "c128": Precision.COMPLEX128,
    "complex": Precision.COMPLEX128,
}
