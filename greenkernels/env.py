"""Environment-variable helpers.

These helpers centralize parsing/normalization of the environment variables
that tune evaluation without changing results (worker count, serial fallback
threshold, timing output) and of the string selectors used by the config file
and the CLI.

Notes
-----
These are intentionally forgiving: invalid inputs fall back to defaults rather
than raising, to keep CLI and batch runs robust.

Recognised variables:

- ``GREENKERNELS_NUM_WORKERS``: default worker count for parallel loops.
- ``GREENKERNELS_SERIAL_THRESHOLD``: problems with fewer pair evaluations than
  this run on the serial loop.
- ``GREENKERNELS_TIMING``: log per-call timings at debug level.
"""

from __future__ import annotations

import os

NUM_WORKERS_ENV = "GREENKERNELS_NUM_WORKERS"
SERIAL_THRESHOLD_ENV = "GREENKERNELS_SERIAL_THRESHOLD"
TIMING_ENV = "GREENKERNELS_TIMING"

DEFAULT_SERIAL_THRESHOLD = 4096


def parse_bool_env(name: str, *, default: bool) -> bool:
    """Parse a boolean environment variable.

    Parameters
    ----------
    name:
        Environment variable name.
    default:
        Default value used when the variable is unset or invalid.

    Returns
    -------
    bool
        Parsed boolean value.
    """

    raw = os.environ.get(name, "").strip().lower()
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off", ""}:
        return default if raw == "" else False
    return default


def parse_int_env(name: str, *, default: int | None, minimum: int = 1) -> int | None:
    """Parse an integer environment variable with a lower bound.

    Parameters
    ----------
    name:
        Environment variable name.
    default:
        Default value used when the variable is unset or invalid.
    minimum:
        Lower bound enforced on the returned value.

    Returns
    -------
    int or None
        Parsed integer value (at least ``minimum``), or ``default``.
    """

    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, value)


def default_worker_count() -> int | None:
    """Worker count requested through ``GREENKERNELS_NUM_WORKERS`` (or ``None``)."""

    return parse_int_env(NUM_WORKERS_ENV, default=None, minimum=1)


def serial_threshold() -> int:
    """Pair-count threshold below which the serial loop is used."""

    value = parse_int_env(SERIAL_THRESHOLD_ENV, default=DEFAULT_SERIAL_THRESHOLD, minimum=0)
    assert value is not None
    return value


def timing_enabled() -> bool:
    return parse_bool_env(TIMING_ENV, default=False)


def normalize_singular_policy(value: str) -> str:
    """Normalize the singular-separation policy selector.

    Parameters
    ----------
    value:
        A raw config/CLI/environment value.

    Returns
    -------
    str
        One of ``{'nan', 'raise', 'zero'}``; unknown input maps to ``'nan'``.
    """

    value = value.strip().lower()
    if value in {"nan", "raise", "zero"}:
        return value
    return "nan"


def normalize_diagonal_policy(value: str) -> str:
    """Normalize the self-interaction diagonal selector.

    Returns
    -------
    str
        One of ``{'zero', 'singular'}``; unknown input maps to ``'zero'``.
    """

    value = value.strip().lower()
    if value in {"zero", "singular"}:
        return value
    return "zero"
