"""Self-interaction and singular-separation policies.

Two independent choices decide what happens where the kernel is singular
(``r == 0``):

- :class:`DiagonalPolicy` applies when sources and targets are the same point
  set: cell ``(i, i)`` is a point interacting with itself. The default writes
  zero, the usual convention for assembled boundary-element system matrices.
- :class:`SingularPolicy` applies to every other coincident pair (distinct
  indices, or the diagonal under ``DiagonalPolicy.SINGULAR``). The default
  writes ``NaN`` so the condition stays visible; ``RAISE`` turns it into a
  :class:`~greenkernels.errors.SingularSeparationError` once the call has
  finished; ``ZERO`` is an explicit opt-in that writes zero.
"""

from __future__ import annotations

from enum import Enum

import numpy as np

from greenkernels.env import normalize_diagonal_policy, normalize_singular_policy
from greenkernels.errors import ContractViolation, SingularSeparationError


class SingularPolicy(Enum):
    NAN = "nan"
    RAISE = "raise"
    ZERO = "zero"

    @classmethod
    def from_any(cls, value: "SingularPolicy | str") -> "SingularPolicy":
        if isinstance(value, SingularPolicy):
            return value
        raw = str(value).strip().lower()
        if raw != normalize_singular_policy(raw):
            raise ContractViolation(
                f"Unknown singular policy {value!r}; expected one of {{'nan', 'raise', 'zero'}}."
            )
        return cls(raw)


class DiagonalPolicy(Enum):
    ZERO = "zero"
    SINGULAR = "singular"

    @classmethod
    def from_any(cls, value: "DiagonalPolicy | str") -> "DiagonalPolicy":
        if isinstance(value, DiagonalPolicy):
            return value
        raw = str(value).strip().lower()
        if raw != normalize_diagonal_policy(raw):
            raise ContractViolation(
                f"Unknown diagonal policy {value!r}; expected one of {{'zero', 'singular'}}."
            )
        return cls(raw)


def same_point_set(sources, targets, flag: bool | None = None) -> bool:
    """Decide whether ``sources`` and ``targets`` are the same point set.

    Parameters
    ----------
    sources, targets:
        The point sets as passed by the caller (before any coercion copies).
    flag:
        Explicit caller choice. ``None`` detects identity: the same object, or
        two numpy arrays viewing the same memory with the same shape and
        strides.

    Raises
    ------
    ContractViolation
        If ``flag`` is true but the sets have different lengths.
    """

    if flag is not None:
        if flag and np.size(sources) != np.size(targets):
            raise ContractViolation(
                "self_interaction=True requires sources and targets of equal length."
            )
        return bool(flag)

    if sources is targets:
        return True
    if isinstance(sources, np.ndarray) and isinstance(targets, np.ndarray):
        return (
            sources.shape == targets.shape
            and sources.strides == targets.strides
            and sources.dtype == targets.dtype
            and sources.__array_interface__["data"][0]
            == targets.__array_interface__["data"][0]
        )
    return False


def check_singular(count: int, policy: SingularPolicy) -> None:
    """Raise for singular pairs when the caller asked for strict handling."""

    if count > 0 and policy is SingularPolicy.RAISE:
        raise SingularSeparationError(count)
