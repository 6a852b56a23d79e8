"""Exceptions raised by greenkernels.

Contract checks happen at the public boundary (assembler, pairwise evaluator
and the flat entry points) before any output buffer is touched. Singular
separations are per-cell conditions and only surface as an exception when the
caller asked for :attr:`greenkernels.policy.SingularPolicy.RAISE`.
"""

from __future__ import annotations


class GreenKernelsError(Exception):
    """Base class for all greenkernels errors."""


class ContractViolation(GreenKernelsError, ValueError):
    """Invalid input detected before computation started.

    Raised for mismatched buffer lengths or shapes, an unsupported
    precision/kernel combination, a negative or non-finite wavenumber, an output
    buffer that does not match the requested precision, or an invalid worker
    count. No output is written when this is raised.
    """


class SingularSeparationError(GreenKernelsError, ArithmeticError):
    """A source and a target coincide outside the self-interaction diagonal.

    Parameters
    ----------
    count:
        Number of coincident pairs that were found.
    """

    def __init__(self, count: int):
        self.count = int(count)
        super().__init__(
            f"{self.count} coincident source/target pair(s) outside the "
            "self-interaction diagonal; the kernel is singular at r = 0."
        )
