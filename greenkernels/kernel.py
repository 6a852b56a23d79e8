"""Kernel variants and evaluation modes.

The variant set is closed: :data:`KernelVariant` is a union of three frozen
dataclasses and every consumer dispatches on it with ``match``. A Helmholtz
kernel with zero wavenumber evaluates to the Laplace value but stays a
Helmholtz kernel; it is never collapsed into :class:`Laplace`.
"""

from __future__ import annotations

import cmath
import math
from dataclasses import dataclass
from enum import Enum

from greenkernels.errors import ContractViolation
from greenkernels.precision import Precision

SPACE_DIMENSION = 3


class EvaluationMode(Enum):
    """What is evaluated per source/target pair.

    ``VALUE`` stores one scalar per pair. ``VALUE_AND_GRADIENT`` stores the
    value followed by the three components of its gradient with respect to the
    target coordinates, contiguously per pair.
    """

    VALUE = "value"
    VALUE_AND_GRADIENT = "value_and_gradient"

    @property
    def components(self) -> int:
        return 1 if self is EvaluationMode.VALUE else 1 + SPACE_DIMENSION

    @property
    def code(self) -> int:
        return 0 if self is EvaluationMode.VALUE else 1

    @classmethod
    def from_code(cls, code: int) -> "EvaluationMode":
        match int(code):
            case 0:
                return cls.VALUE
            case 1:
                return cls.VALUE_AND_GRADIENT
            case _:
                raise ContractViolation(f"Unknown evaluation mode code {code!r}.")

    @classmethod
    def from_any(cls, value: "EvaluationMode | str") -> "EvaluationMode":
        if isinstance(value, EvaluationMode):
            return value
        key = str(value).strip().lower().replace("-", "_")
        if key in {"value", "values", "v"}:
            return cls.VALUE
        if key in {"value_and_gradient", "value_deriv", "gradient", "grad", "vg"}:
            return cls.VALUE_AND_GRADIENT
        raise ContractViolation(
            f"Unknown evaluation mode {value!r}; expected 'value' or 'value_and_gradient'."
        )


def range_component_count(mode: EvaluationMode) -> int:
    """Number of output components per pair for ``mode`` (1 or 4)."""

    return EvaluationMode.from_any(mode).components


@dataclass(frozen=True)
class Laplace:
    """``G(r) = 1 / (4 pi r)``."""

    @property
    def name(self) -> str:
        return "laplace"


@dataclass(frozen=True)
class Helmholtz:
    """``G(r) = exp(i k r) / (4 pi r)``; requires a complex precision.

    Parameters
    ----------
    wavenumber:
        Real or complex wavenumber. A positive imaginary part adds damping; a
        large negative imaginary part overflows (IEEE semantics are kept).
    """

    wavenumber: complex = 0.0

    @property
    def name(self) -> str:
        return "helmholtz"


@dataclass(frozen=True)
class ModifiedHelmholtz:
    """``G(r) = exp(-k r) / (4 pi r)`` with a real, non-negative ``k``."""

    wavenumber: float = 0.0

    @property
    def name(self) -> str:
        return "modified_helmholtz"


KernelVariant = Laplace | Helmholtz | ModifiedHelmholtz

# Integer tags used by the flat entry points.
LAPLACE_CODE = 0
HELMHOLTZ_CODE = 1
MODIFIED_HELMHOLTZ_CODE = 2


def kernel_code(kernel: KernelVariant) -> int:
    match kernel:
        case Laplace():
            return LAPLACE_CODE
        case Helmholtz():
            return HELMHOLTZ_CODE
        case ModifiedHelmholtz():
            return MODIFIED_HELMHOLTZ_CODE
        case _:
            raise ContractViolation(f"Unknown kernel variant {kernel!r}.")


def kernel_from_code(code: int, wavenumber: complex = 0.0) -> KernelVariant:
    match int(code):
        case 0:
            return Laplace()
        case 1:
            return Helmholtz(complex(wavenumber))
        case 2:
            if complex(wavenumber).imag != 0:
                raise ContractViolation(
                    "Modified Helmholtz wavenumber must be real."
                )
            return ModifiedHelmholtz(complex(wavenumber).real)
        case _:
            raise ContractViolation(f"Unknown kernel code {code!r}.")


def kernel_from_name(name: str, wavenumber: complex | float = 0.0) -> KernelVariant:
    """Build a kernel variant from a name such as ``"helmholtz"``."""

    key = str(name).strip().lower().replace("-", "_")
    match key:
        case "laplace":
            return Laplace()
        case "helmholtz":
            return Helmholtz(complex(wavenumber))
        case "modified_helmholtz" | "modifiedhelmholtz" | "yukawa":
            return kernel_from_code(MODIFIED_HELMHOLTZ_CODE, wavenumber)
        case _:
            raise ContractViolation(
                f"Unknown kernel {name!r}; expected one of "
                "{'laplace', 'helmholtz', 'modified_helmholtz'}."
            )


def validate_kernel(kernel: KernelVariant, precision: Precision) -> complex | float:
    """Check a kernel against a precision and return its typed wavenumber.

    Returns
    -------
    complex or float
        The wavenumber as passed to the jitted kernels: ``complex`` for
        Helmholtz, ``float`` otherwise (``0.0`` for Laplace).

    Raises
    ------
    ContractViolation
        If the wavenumber is non-finite or negative, if a modified Helmholtz
        wavenumber is complex, or if a Helmholtz kernel is requested with a real
        precision.
    """

    match kernel:
        case Laplace():
            return 0.0
        case Helmholtz(wavenumber=k):
            k = complex(k)
            if not cmath.isfinite(k):
                raise ContractViolation(f"Helmholtz wavenumber must be finite, got {k!r}.")
            if k.real < 0:
                raise ContractViolation(
                    f"Helmholtz wavenumber must have a non-negative real part, got {k!r}."
                )
            if not precision.is_complex:
                raise ContractViolation(
                    f"Helmholtz kernel values are complex; precision {precision.value} "
                    "is not supported."
                )
            return k
        case ModifiedHelmholtz(wavenumber=k):
            if isinstance(k, complex):
                if k.imag != 0:
                    raise ContractViolation(
                        f"Modified Helmholtz wavenumber must be real, got {k!r}."
                    )
                k = k.real
            k = float(k)
            if not math.isfinite(k) or k < 0:
                raise ContractViolation(
                    f"Modified Helmholtz wavenumber must be finite and non-negative, got {k!r}."
                )
            return k
        case _:
            raise ContractViolation(f"Unknown kernel variant {kernel!r}.")
