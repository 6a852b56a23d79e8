import numpy as np
import numpy.testing as npt
import pytest

from greenkernels import (
    Assembler,
    ContractViolation,
    DiagonalPolicy,
    Helmholtz,
    Laplace,
    ModifiedHelmholtz,
    SingularPolicy,
    SingularSeparationError,
    assemble,
    assemble_pairwise,
    evaluate,
    greens_function,
    potential,
)
from greenkernels.assembly import max_workers, worker_threads
from greenkernels.functions.misc import chunk_bounds, grid_points

ALL_KERNELS = [
    (Laplace(), "real32"),
    (Laplace(), "real64"),
    (Laplace(), "complex64"),
    (Laplace(), "complex128"),
    (Helmholtz(2.0), "complex64"),
    (Helmholtz(2.0 + 0.5j), "complex128"),
    (ModifiedHelmholtz(1.0), "real32"),
    (ModifiedHelmholtz(1.0), "real64"),
    (ModifiedHelmholtz(1.0), "complex128"),
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("GREENKERNELS_NUM_WORKERS", raising=False)
    monkeypatch.delenv("GREENKERNELS_SERIAL_THRESHOLD", raising=False)


@pytest.mark.parametrize("kernel,precision", ALL_KERNELS)
@pytest.mark.parametrize("mode", ["value", "value_and_gradient"])
def test_self_interaction_diagonal_is_zero(kernel, precision, mode):
    points = grid_points(10, spacing=0.5)
    matrix = assemble(points, points, kernel, mode, precision, serial_threshold=0)

    assert matrix.dtype == np.dtype(precision.replace("real", "float"))
    diagonal = matrix[np.arange(10), np.arange(10)]
    npt.assert_array_equal(diagonal, np.zeros_like(diagonal))
    assert np.all(np.isfinite(matrix))


@pytest.mark.parametrize("kernel,precision", ALL_KERNELS)
@pytest.mark.parametrize("mode", ["value", "value_and_gradient"])
def test_worker_count_does_not_change_results(kernel, precision, mode):
    points = grid_points(10, spacing=0.3)
    targets = points + 0.05
    serial = assemble(points, targets, kernel, mode, precision, worker_count=1)
    parallel = assemble(
        points, targets, kernel, mode, precision, worker_count=max_workers(), serial_threshold=0
    )
    npt.assert_array_equal(serial, parallel)


def test_parallel_matches_single_pair_calls():
    rng = np.random.default_rng(20)
    sources = rng.normal(size=(9, 3))
    targets = rng.normal(size=(11, 3))
    kernel = Helmholtz(1.3)
    matrix = assemble(sources, targets, kernel, precision="complex128", serial_threshold=0)

    assert matrix.shape == (11, 9)
    for i in range(11):
        for j in range(9):
            assert matrix[i, j] == greens_function(sources[j], targets[i], kernel, precision="complex128")


def test_matches_serial_evaluator():
    rng = np.random.default_rng(21)
    sources = rng.normal(size=(40, 3))
    targets = rng.normal(size=(30, 3))
    kernel = ModifiedHelmholtz(0.9)
    batch = evaluate(sources, targets, kernel, "value_and_gradient").as_matrix()
    dense = assemble(sources, targets, kernel, "value_and_gradient", serial_threshold=0)
    npt.assert_array_equal(batch, dense)


def test_gradient_layout():
    rng = np.random.default_rng(22)
    sources = rng.normal(size=(5, 3))
    targets = rng.normal(size=(4, 3))
    values = assemble(sources, targets, Laplace())
    both = assemble(sources, targets, Laplace(), "value_and_gradient")
    assert both.shape == (4, 5, 4)
    npt.assert_array_equal(both[:, :, 0], values)

    value, grad = greens_function(sources[3], targets[1], Laplace(), "value_and_gradient")
    assert both[1, 3, 0] == value
    npt.assert_array_equal(both[1, 3, 1:], grad)


def test_flat_point_buffers_are_accepted():
    rng = np.random.default_rng(23)
    sources = rng.normal(size=(6, 3))
    targets = rng.normal(size=(2, 3))
    npt.assert_array_equal(
        assemble(sources.ravel(), targets.ravel(), Laplace()),
        assemble(sources, targets, Laplace()),
    )


def test_empty_inputs():
    points = np.zeros((5, 3))
    assert assemble(np.empty((0, 3)), points, Laplace()).shape == (5, 0)
    assert assemble(points, np.empty((0, 3)), Laplace()).shape == (0, 5)
    assert assemble(np.empty(0), np.empty(0), Laplace(), "value_and_gradient").shape == (0, 0, 4)


def test_caller_buffer_is_filled_in_place():
    points = grid_points(8)
    out = np.full(64, -1.0)
    result = assemble(points, points, Laplace(), out=out)
    assert np.shares_memory(result, out)
    npt.assert_array_equal(out.reshape(8, 8), result)


@pytest.mark.parametrize(
    "out",
    [
        np.empty(63),
        np.empty(64, dtype=np.float32),
        np.empty(64, dtype=np.complex128),
        np.empty((8, 16))[:, ::2],
    ],
)
def test_caller_buffer_mismatch(out):
    points = grid_points(8)
    before = out.copy()
    with pytest.raises(ContractViolation):
        assemble(points, points, Laplace(), out=out)
    npt.assert_array_equal(out, before)


def test_invalid_points():
    with pytest.raises(ContractViolation):
        assemble(np.zeros(7), np.zeros((2, 3)), Laplace())
    with pytest.raises(ContractViolation):
        assemble(np.zeros((2, 3)), np.zeros((2, 2)), Laplace())


def test_helmholtz_with_real_precision_is_rejected():
    with pytest.raises(ContractViolation):
        assemble(np.zeros((2, 3)), np.ones((2, 3)), Helmholtz(1.0), precision="real64")


@pytest.mark.parametrize("workers", [0, -2, 1.5, True])
def test_invalid_worker_count(workers):
    with pytest.raises(ContractViolation):
        Assembler(Laplace(), worker_count=workers)


def test_worker_count_is_clamped_to_pool(caplog):
    assembler = Assembler(Laplace(), worker_count=max_workers() + 5)
    assert assembler.worker_count == max_workers()
    assert "thread pool" in caplog.text


def test_worker_count_from_environment(monkeypatch):
    monkeypatch.setenv("GREENKERNELS_NUM_WORKERS", "1")
    assert Assembler(Laplace()).worker_count == 1


def test_worker_threads_restores_previous_count():
    import numba

    before = numba.get_num_threads()
    with worker_threads(1):
        assert numba.get_num_threads() == 1
    assert numba.get_num_threads() == before


def test_serial_threshold_selects_serial_loop():
    assembler = Assembler(Laplace(), worker_count=max_workers(), serial_threshold=100)
    assert assembler._plan(5, 25) is None
    if max_workers() > 1:
        bounds = assembler._plan(50, 2500)
        assert bounds[0] == 0 and bounds[-1] == 50
    assert Assembler(Laplace(), worker_count=1, serial_threshold=0)._plan(50, 2500) is None


def test_chunk_bounds():
    npt.assert_array_equal(chunk_bounds(10, 3), [0, 3, 6, 10])
    npt.assert_array_equal(chunk_bounds(2, 8), [0, 1, 2])
    npt.assert_array_equal(chunk_bounds(0, 4), [0, 0])
    sizes = np.diff(chunk_bounds(1001, 7))
    assert sizes.max() - sizes.min() <= 1


def _duplicated_points():
    return np.array([[0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])


def test_singular_policy_nan_is_default():
    points = _duplicated_points()
    matrix = assemble(points, points, Laplace())
    assert np.isnan(matrix[0, 1]) and np.isnan(matrix[1, 0])
    npt.assert_array_equal(np.diag(matrix), np.zeros(3))
    assert np.isfinite(matrix[2, 0])


def test_singular_policy_zero():
    points = _duplicated_points()
    matrix = assemble(points, points, Laplace(), singular=SingularPolicy.ZERO)
    assert matrix[0, 1] == 0.0 and matrix[1, 0] == 0.0


@pytest.mark.parametrize("threshold", [0, 10_000])
def test_singular_policy_raise(threshold):
    points = _duplicated_points()
    with pytest.raises(SingularSeparationError) as err:
        assemble(points, points, Laplace(), singular="raise", serial_threshold=threshold)
    assert err.value.count == 2


def test_diagonal_policy_singular():
    points = grid_points(4)
    matrix = assemble(points, points, Laplace(), diagonal=DiagonalPolicy.SINGULAR)
    assert np.all(np.isnan(np.diag(matrix)))

    with pytest.raises(SingularSeparationError) as err:
        assemble(points, points, Laplace(), diagonal="singular", singular="raise")
    assert err.value.count == 4


def test_self_interaction_requires_equal_lengths():
    with pytest.raises(ContractViolation):
        assemble(np.zeros((2, 3)), np.zeros((3, 3)), Laplace(), self_interaction=True)


@pytest.mark.parametrize("kernel,precision", ALL_KERNELS)
@pytest.mark.parametrize("mode", ["value", "value_and_gradient"])
def test_potential_equals_matrix_times_charges(kernel, precision, mode):
    rng = np.random.default_rng(24)
    points = rng.uniform(size=(25, 3))
    charges = rng.normal(size=25)
    if np.dtype(precision.replace("real", "float")).kind == "c":
        charges = charges + 1j * rng.normal(size=25)

    matrix = assemble(points, points, kernel, mode, precision)
    result = potential(points, points, charges, kernel, mode, precision, serial_threshold=0)

    rtol = 1e-4 if precision in ("real32", "complex64") else 1e-12
    if mode == "value":
        assert result.shape == (25,)
        expected = matrix.astype(np.complex128) @ charges
    else:
        assert result.shape == (25, 4)
        expected = np.einsum("ijc,j->ic", matrix.astype(np.complex128), charges)
    npt.assert_allclose(result, expected, rtol=rtol, atol=rtol * np.abs(expected).max())


def test_potential_is_independent_of_workers():
    rng = np.random.default_rng(25)
    points = rng.uniform(size=(30, 3))
    charges = rng.normal(size=30)
    serial = potential(points, points, charges, ModifiedHelmholtz(2.0), worker_count=1)
    parallel = potential(
        points, points, charges, ModifiedHelmholtz(2.0), worker_count=max_workers(), serial_threshold=0
    )
    npt.assert_array_equal(serial, parallel)


def test_potential_charge_count_mismatch():
    with pytest.raises(ContractViolation):
        potential(np.zeros((3, 3)), np.ones((2, 3)), np.ones(2), Laplace())


def test_potential_singular_pairs():
    points = _duplicated_points()
    charges = np.ones(3)
    assert np.all(np.isnan(potential(points, points, charges, Laplace())[:2]))
    zeroed = potential(points, points, charges, Laplace(), singular="zero")
    assert np.all(np.isfinite(zeroed))


@pytest.mark.parametrize("mode", ["value", "value_and_gradient"])
def test_pairwise_equals_matrix_diagonal(mode):
    rng = np.random.default_rng(26)
    sources = rng.normal(size=(12, 3))
    targets = rng.normal(size=(12, 3))
    matrix = assemble(sources, targets, Helmholtz(0.7), mode, "complex128")
    pairs = assemble_pairwise(sources, targets, Helmholtz(0.7), mode, "complex128", serial_threshold=0)
    npt.assert_array_equal(pairs, matrix[np.arange(12), np.arange(12)])


def test_pairwise_requires_equal_lengths():
    with pytest.raises(ContractViolation):
        assemble_pairwise(np.zeros((2, 3)), np.ones((3, 3)), Laplace())


def test_pairwise_coincident_points():
    points = np.zeros((2, 3))
    assert np.all(np.isnan(assemble_pairwise(points, points, Laplace())))
    with pytest.raises(SingularSeparationError):
        assemble_pairwise(points, points, Laplace(), singular="raise")


def test_timing_is_logged_when_enabled(monkeypatch, caplog):
    import logging

    monkeypatch.setenv("GREENKERNELS_TIMING", "1")
    points = grid_points(4)
    with caplog.at_level(logging.DEBUG, logger="greenkernels.assembly"):
        assemble(points, points, Laplace())
    assert "assemble 4x4" in caplog.text
