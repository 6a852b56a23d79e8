"""Pairwise evaluation of a kernel between point sets.

:class:`PairwiseEvaluator` evaluates one target against a whole source set
(:meth:`~PairwiseEvaluator.evaluate_row`), all targets against all sources on
the calling thread (:meth:`~PairwiseEvaluator.evaluate`) or a single pair
(:meth:`~PairwiseEvaluator.greens_function`). All three routes call the same
jitted per-pair formula, so they agree bit for bit with each other and with the
parallel assembler in :mod:`greenkernels.assembly`.

Notes
-----
The data flow is:

- inputs validated and coerced to the call's precision here
- per-pair formula selected by :func:`greenkernels.functions.greens.select_pair_function`
- loops executed by :mod:`greenkernels.functions.cpu_numba`
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from time import perf_counter

import numpy as np
import numpy.typing as npt

from greenkernels.errors import ContractViolation
from greenkernels.functions import cpu_numba
from greenkernels.functions.greens import select_pair_function
from greenkernels.kernel import EvaluationMode, KernelVariant, validate_kernel
from greenkernels.policy import DiagonalPolicy, SingularPolicy, check_singular, same_point_set
from greenkernels.precision import Precision


@dataclass(frozen=True)
class InteractionResult:
    """Per-target rows of kernel values (and gradients) in source order.

    Attributes
    ----------
    data:
        Buffer of shape ``(ntargets, nsources, ncomponents)``; component 0 is
        the value, components 1-3 the gradient with respect to the target.
    mode:
        Evaluation mode the buffer was produced with.
    """

    data: np.ndarray
    mode: EvaluationMode

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape[0], self.data.shape[1]

    @property
    def values(self) -> np.ndarray:
        """``(ntargets, nsources)`` view of the kernel values."""
        return self.data[:, :, 0]

    @property
    def gradients(self) -> np.ndarray | None:
        """``(ntargets, nsources, 3)`` view of the gradients, if evaluated."""
        if self.mode is EvaluationMode.VALUE:
            return None
        return self.data[:, :, 1:]

    def row(self, target: int) -> np.ndarray:
        """All source interactions of one target, ``(nsources, ncomponents)``."""
        return self.data[target]

    def as_matrix(self) -> np.ndarray:
        """The row-major dense layout returned by :func:`greenkernels.assemble`."""
        if self.mode is EvaluationMode.VALUE:
            return self.data.reshape(self.shape)
        return self.data


class PairwiseEvaluator:
    """Single-threaded kernel evaluation.

    Parameters
    ----------
    kernel:
        Kernel variant (:class:`~greenkernels.kernel.Laplace`,
        :class:`~greenkernels.kernel.Helmholtz` or
        :class:`~greenkernels.kernel.ModifiedHelmholtz`).
    mode:
        Value only or value and gradient.
    precision:
        Scalar field of the computation.
    singular:
        What to write for coincident pairs outside the diagonal.
    diagonal:
        What to write on the self-interaction diagonal.

    Raises
    ------
    ContractViolation
        If the kernel does not fit the precision or its wavenumber is invalid.
    """

    def __init__(
        self,
        kernel: KernelVariant,
        mode: EvaluationMode | str = EvaluationMode.VALUE,
        precision: Precision | str = Precision.REAL64,
        singular: SingularPolicy | str = SingularPolicy.NAN,
        diagonal: DiagonalPolicy | str = DiagonalPolicy.ZERO,
    ):
        self.kernel = kernel
        self.mode = EvaluationMode.from_any(mode)
        self.precision = Precision.from_any(precision)
        self.singular = SingularPolicy.from_any(singular)
        self.diagonal = DiagonalPolicy.from_any(diagonal)

        self.wavenumber = validate_kernel(kernel, self.precision)
        self.pair = select_pair_function(kernel, self.mode)

        self.log = logging.getLogger(self.__class__.__module__)

    @property
    def components(self) -> int:
        return self.mode.components

    @property
    def zero_singular(self) -> bool:
        return self.singular is SingularPolicy.ZERO

    def _self_interaction(self, sources, targets, flag: bool | None) -> bool:
        same = same_point_set(sources, targets, flag)
        return same and self.diagonal is DiagonalPolicy.ZERO

    def _output(self, out: np.ndarray | None, shape: tuple[int, ...]) -> np.ndarray:
        if out is None:
            return np.empty(shape, dtype=self.precision.dtype)
        return self.precision.check_buffer(out, shape)

    def evaluate_row(
        self,
        target: npt.ArrayLike,
        sources: npt.ArrayLike,
        out: np.ndarray | None = None,
        diagonal: int = -1,
    ) -> np.ndarray:
        """Evaluate one target point against every source.

        Parameters
        ----------
        target:
            A single point, shape ``(3,)``.
        sources:
            Source points, ``(N, 3)`` or flat ``(3 N,)``.
        out:
            Optional output buffer of ``N * ncomponents`` elements.
        diagonal:
            Source index that is this target by identity (written as zero), or
            ``-1``.

        Returns
        -------
        numpy.ndarray
            ``(N, ncomponents)`` values (and gradients) in source order.
        """

        point = np.asarray(target)
        if point.shape != (3,):
            raise ContractViolation(f"Expected a single target of shape (3,), got {point.shape}.")
        point = self.precision.coerce_points(point.reshape(1, 3), "target")[0]
        src = self.precision.coerce_points(sources, "sources")
        result = self._output(out, (src.shape[0], self.components))
        if src.shape[0] == 0:
            return result

        count = cpu_numba.evaluate_row(
            self.pair,
            self.wavenumber,
            point[0],
            point[1],
            point[2],
            src,
            result,
            int(diagonal),
            self.zero_singular,
        )
        check_singular(count, self.singular)
        return result

    def evaluate(
        self,
        sources: npt.ArrayLike,
        targets: npt.ArrayLike,
        out: np.ndarray | None = None,
        self_interaction: bool | None = None,
    ) -> InteractionResult:
        """Evaluate all targets against all sources on the calling thread.

        Parameters
        ----------
        sources, targets:
            Point sets, ``(N, 3)`` / ``(M, 3)`` or flat.
        out:
            Optional output buffer of ``M * N * ncomponents`` elements.
        self_interaction:
            Force (``True``) or disable (``False``) the self-interaction
            diagonal; ``None`` detects whether both arguments are the same set.

        Returns
        -------
        InteractionResult
            Rows indexed by target, columns by source.
        """

        diagonal = self._self_interaction(sources, targets, self_interaction)
        src = self.precision.coerce_points(sources, "sources")
        tgt = self.precision.coerce_points(targets, "targets")
        data = self._output(out, (tgt.shape[0], src.shape[0], self.components))

        if data.size == 0:
            return InteractionResult(data, self.mode)

        start = perf_counter()
        count = cpu_numba.assemble_serial(
            self.pair,
            self.wavenumber,
            src,
            tgt,
            data,
            diagonal,
            self.zero_singular,
        )
        self.log.debug(
            "evaluate %dx%d (%s) done in %.6f seconds",
            tgt.shape[0],
            src.shape[0],
            self.kernel.name,
            perf_counter() - start,
        )
        check_singular(count, self.singular)
        return InteractionResult(data, self.mode)

    def greens_function(self, source: npt.ArrayLike, target: npt.ArrayLike):
        """Evaluate the kernel for a single source/target pair.

        Returns
        -------
        scalar or tuple
            The value as a numpy scalar of the call's precision; in
            value-and-gradient mode a ``(value, gradient)`` tuple with a
            ``(3,)`` gradient array.
        """

        src = self.precision.coerce_points(np.asarray(source).reshape(1, 3), "source")
        tgt = self.precision.coerce_points(np.asarray(target).reshape(1, 3), "target")
        out = np.empty((1, self.components), dtype=self.precision.dtype)
        count = cpu_numba.pairwise_serial(
            self.pair, self.wavenumber, src, tgt, out, self.zero_singular
        )
        check_singular(count, self.singular)
        if self.mode is EvaluationMode.VALUE:
            return out[0, 0]
        return out[0, 0], out[0, 1:].copy()


def evaluate(
    sources: npt.ArrayLike,
    targets: npt.ArrayLike,
    kernel: KernelVariant,
    mode: EvaluationMode | str = EvaluationMode.VALUE,
    precision: Precision | str = Precision.REAL64,
    *,
    singular: SingularPolicy | str = SingularPolicy.NAN,
    diagonal: DiagonalPolicy | str = DiagonalPolicy.ZERO,
    self_interaction: bool | None = None,
    out: np.ndarray | None = None,
) -> InteractionResult:
    """Evaluate ``kernel`` between every target and every source.

    Single-threaded and without a thread-pool round trip, for in-loop use by
    accelerated algorithms. See :class:`PairwiseEvaluator` for the parameters.
    """

    evaluator = PairwiseEvaluator(kernel, mode, precision, singular, diagonal)
    return evaluator.evaluate(sources, targets, out=out, self_interaction=self_interaction)


def greens_function(
    source: npt.ArrayLike,
    target: npt.ArrayLike,
    kernel: KernelVariant,
    mode: EvaluationMode | str = EvaluationMode.VALUE,
    precision: Precision | str = Precision.REAL64,
    *,
    singular: SingularPolicy | str = SingularPolicy.NAN,
):
    """Evaluate ``kernel`` for one source/target pair."""

    return PairwiseEvaluator(kernel, mode, precision, singular).greens_function(source, target)
