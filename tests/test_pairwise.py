import numpy as np
import numpy.testing as npt
import pytest

from greenkernels import (
    ContractViolation,
    EvaluationMode,
    Helmholtz,
    Laplace,
    ModifiedHelmholtz,
    PairwiseEvaluator,
    evaluate,
)

KERNELS = [
    (Laplace(), "real64"),
    (Laplace(), "complex64"),
    (Helmholtz(1.5), "complex128"),
    (ModifiedHelmholtz(0.4), "real32"),
]


@pytest.mark.parametrize("kernel,precision", KERNELS)
@pytest.mark.parametrize("mode", ["value", "value_and_gradient"])
def test_batch_equals_single_pair(kernel, precision, mode):
    rng = np.random.default_rng(10)
    sources = rng.normal(size=(7, 3))
    targets = rng.normal(size=(5, 3))
    evaluator = PairwiseEvaluator(kernel, mode, precision)
    result = evaluator.evaluate(sources, targets)

    assert result.shape == (5, 7)
    for i in range(5):
        for j in range(7):
            single = evaluator.greens_function(sources[j], targets[i])
            if mode == "value":
                assert result.values[i, j] == single
            else:
                assert result.values[i, j] == single[0]
                npt.assert_array_equal(result.gradients[i, j], single[1])


def test_evaluate_row_matches_evaluate():
    rng = np.random.default_rng(11)
    points = rng.normal(size=(6, 3))
    evaluator = PairwiseEvaluator(Laplace(), "value_and_gradient")
    full = evaluator.evaluate(points, points)

    row = evaluator.evaluate_row(points[2], points, diagonal=2)
    assert row.shape == (6, 4)
    npt.assert_array_equal(row, full.row(2))
    npt.assert_array_equal(row[2], np.zeros(4))


def test_evaluate_row_rejects_multiple_targets():
    evaluator = PairwiseEvaluator(Laplace())
    with pytest.raises(ContractViolation):
        evaluator.evaluate_row(np.zeros((2, 3)), np.ones((4, 3)))


def test_interaction_result_layout():
    rng = np.random.default_rng(12)
    sources = rng.normal(size=(4, 3))
    targets = rng.normal(size=(3, 3))

    values = evaluate(sources, targets, Laplace())
    assert values.mode is EvaluationMode.VALUE
    assert values.gradients is None
    assert values.as_matrix().shape == (3, 4)

    both = evaluate(sources, targets, Laplace(), "value_and_gradient")
    assert both.gradients.shape == (3, 4, 3)
    assert both.as_matrix().shape == (3, 4, 4)
    npt.assert_array_equal(both.values, values.values)


def test_same_set_zeroes_diagonal_copy_does_not():
    points = np.random.default_rng(13).normal(size=(5, 3))

    same = evaluate(points, points, Laplace()).values
    npt.assert_array_equal(np.diag(same), np.zeros(5))
    assert np.all(np.isfinite(same))

    # A copy is a different point set: coincident pairs are singular.
    copy = evaluate(points, points.copy(), Laplace()).values
    assert np.all(np.isnan(np.diag(copy)))

    forced = evaluate(points, points.copy(), Laplace(), self_interaction=True).values
    npt.assert_array_equal(forced, same)


def test_evaluate_into_caller_buffer():
    points = np.random.default_rng(14).normal(size=(4, 3))
    out = np.empty(16, dtype=np.complex128)
    result = evaluate(points, points, Helmholtz(1.0), precision="complex128", out=out)
    assert np.shares_memory(result.data, out)

    with pytest.raises(ContractViolation):
        evaluate(points, points, Helmholtz(1.0), precision="complex128", out=np.empty(15, dtype=np.complex128))


def test_empty_sets():
    result = evaluate(np.empty((0, 3)), np.zeros((3, 3)), Laplace())
    assert result.shape == (3, 0)
    result = evaluate(np.zeros((2, 3)), np.empty(0), Laplace())
    assert result.shape == (0, 2)
