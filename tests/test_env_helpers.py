import os

import pytest

from greenkernels import ContractViolation, DiagonalPolicy, SingularPolicy
from greenkernels.env import (
    DEFAULT_SERIAL_THRESHOLD,
    default_worker_count,
    normalize_diagonal_policy as _normalize_diagonal_policy,
    normalize_singular_policy as _normalize_singular_policy,
    parse_bool_env as _parse_bool_env,
    parse_int_env as _parse_int_env,
    serial_threshold,
    timing_enabled,
)


def test_parse_bool_env_defaults():
    os.environ.pop("GREENKERNELS_TEST_BOOL", None)
    assert _parse_bool_env("GREENKERNELS_TEST_BOOL", default=True) is True
    assert _parse_bool_env("GREENKERNELS_TEST_BOOL", default=False) is False


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1", True),
        ("true", True),
        ("yes", True),
        ("on", True),
        ("0", False),
        ("false", False),
        ("no", False),
        ("off", False),
        ("unexpected", True),
    ],
)
def test_parse_bool_env_values(raw: str, expected: bool):
    os.environ["GREENKERNELS_TEST_BOOL"] = raw
    assert _parse_bool_env("GREENKERNELS_TEST_BOOL", default=True) is expected


def test_parse_int_env_defaults_and_minimum():
    os.environ.pop("GREENKERNELS_TEST_INT", None)
    assert _parse_int_env("GREENKERNELS_TEST_INT", default=7, minimum=3) == 7

    os.environ["GREENKERNELS_TEST_INT"] = ""
    assert _parse_int_env("GREENKERNELS_TEST_INT", default=7, minimum=3) == 7

    os.environ["GREENKERNELS_TEST_INT"] = "x"
    assert _parse_int_env("GREENKERNELS_TEST_INT", default=None, minimum=3) is None

    os.environ["GREENKERNELS_TEST_INT"] = "2"
    assert _parse_int_env("GREENKERNELS_TEST_INT", default=7, minimum=3) == 3

    os.environ["GREENKERNELS_TEST_INT"] = "10"
    assert _parse_int_env("GREENKERNELS_TEST_INT", default=7, minimum=3) == 10


def test_tuning_variables(monkeypatch):
    monkeypatch.delenv("GREENKERNELS_NUM_WORKERS", raising=False)
    monkeypatch.delenv("GREENKERNELS_SERIAL_THRESHOLD", raising=False)
    monkeypatch.delenv("GREENKERNELS_TIMING", raising=False)
    assert default_worker_count() is None
    assert serial_threshold() == DEFAULT_SERIAL_THRESHOLD
    assert timing_enabled() is False

    monkeypatch.setenv("GREENKERNELS_NUM_WORKERS", "0")
    assert default_worker_count() == 1
    monkeypatch.setenv("GREENKERNELS_SERIAL_THRESHOLD", "-5")
    assert serial_threshold() == 0
    monkeypatch.setenv("GREENKERNELS_TIMING", "yes")
    assert timing_enabled() is True


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("nan", "nan"),
        ("RAISE", "raise"),
        (" zero ", "zero"),
        ("", "nan"),
        ("garbage", "nan"),
    ],
)
def test_normalize_singular_policy(raw: str, expected: str):
    assert _normalize_singular_policy(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("zero", "zero"),
        ("Singular", "singular"),
        ("", "zero"),
        ("garbage", "zero"),
    ],
)
def test_normalize_diagonal_policy(raw: str, expected: str):
    assert _normalize_diagonal_policy(raw) == expected


def test_policy_selectors_are_strict():
    assert SingularPolicy.from_any("Raise") is SingularPolicy.RAISE
    assert DiagonalPolicy.from_any("singular") is DiagonalPolicy.SINGULAR
    with pytest.raises(ContractViolation):
        SingularPolicy.from_any("ignore")
    with pytest.raises(ContractViolation):
        DiagonalPolicy.from_any("one")
