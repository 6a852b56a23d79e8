"""Parallel dense assembly.

:class:`Assembler` drives the full source x target cross product. The target
index range is split into contiguous, near-equal chunks, one per worker; every
chunk is one iteration of a Numba ``prange`` loop and owns its output rows
exclusively, so workers never read or write each other's memory. Chunking is
by target only: each worker sees the full source set.

The worker pool is Numba's threading layer. Its size defaults to the current
Numba thread count (hardware parallelism unless ``NUMBA_NUM_THREADS`` says
otherwise), can be set once through ``GREENKERNELS_NUM_WORKERS`` and can be
overridden per call. A single worker, or a problem below the serial threshold,
runs the serial twin of the same loop; results are identical in every case.

Besides :meth:`Assembler.assemble` the assembler offers the two other
operations downstream solvers need from a brute-force evaluator:

- :meth:`Assembler.potential`: charge-weighted sums ``u(t) = sum_j G(t, s_j) q_j``
- :meth:`Assembler.assemble_pairwise`: ``G(s_i, t_i)`` for matched pairs
"""

from __future__ import annotations

from contextlib import contextmanager
from time import perf_counter
from typing import Iterator

import numba
import numpy as np
import numpy.typing as npt

from greenkernels import env
from greenkernels.errors import ContractViolation
from greenkernels.functions import cpu_numba
from greenkernels.functions.misc import chunk_bounds
from greenkernels.kernel import EvaluationMode, KernelVariant
from greenkernels.pairwise import PairwiseEvaluator
from greenkernels.policy import DiagonalPolicy, SingularPolicy, check_singular
from greenkernels.precision import Precision


def max_workers() -> int:
    """Size of the Numba thread pool (upper bound for ``worker_count``)."""

    return int(numba.config.NUMBA_NUM_THREADS)


@contextmanager
def worker_threads(count: int) -> Iterator[int]:
    """Temporarily set the number of Numba threads for the calling thread.

    Numba's thread count is thread-local; the previous value is restored on
    exit.
    """

    previous = numba.get_num_threads()
    numba.set_num_threads(count)
    try:
        yield count
    finally:
        numba.set_num_threads(previous)


class Assembler(PairwiseEvaluator):
    """Multi-threaded dense assembly.

    Parameters
    ----------
    kernel, mode, precision, singular, diagonal:
        See :class:`~greenkernels.pairwise.PairwiseEvaluator`.
    worker_count:
        Number of workers. ``None`` uses ``GREENKERNELS_NUM_WORKERS`` when set
        and the current Numba thread count otherwise. Values above the Numba
        pool size are clamped (with a warning).
    serial_threshold:
        Problems with fewer pair evaluations than this run on the serial loop.
        ``None`` reads ``GREENKERNELS_SERIAL_THRESHOLD`` (default 4096).

    Raises
    ------
    ContractViolation
        If ``worker_count`` is smaller than one, or for the kernel/precision
        checks of the base class.
    """

    def __init__(
        self,
        kernel: KernelVariant,
        mode: EvaluationMode | str = EvaluationMode.VALUE,
        precision: Precision | str = Precision.REAL64,
        singular: SingularPolicy | str = SingularPolicy.NAN,
        diagonal: DiagonalPolicy | str = DiagonalPolicy.ZERO,
        worker_count: int | None = None,
        serial_threshold: int | None = None,
    ):
        super().__init__(kernel, mode, precision, singular, diagonal)
        self.worker_count = self._resolve_workers(worker_count)
        self.serial_threshold = (
            env.serial_threshold() if serial_threshold is None else int(serial_threshold)
        )

    def _resolve_workers(self, requested: int | None) -> int:
        if requested is None:
            requested = env.default_worker_count()
        if requested is None:
            return numba.get_num_threads()
        if isinstance(requested, bool) or int(requested) != requested or requested < 1:
            raise ContractViolation(f"worker_count must be a positive integer, got {requested!r}.")
        limit = max_workers()
        if requested > limit:
            self.log.warning(
                "Requested %d workers but the Numba thread pool has %d; using %d.",
                requested,
                limit,
                limit,
            )
            return limit
        return int(requested)

    def _plan(self, rows: int, pairs: int) -> np.ndarray | None:
        """Chunk offsets for a parallel run, or ``None`` for the serial loop."""

        if self.worker_count == 1 or pairs < self.serial_threshold or rows < 2:
            return None
        return chunk_bounds(rows, self.worker_count)

    def _report(self, name: str, shape: tuple[int, int], start: float, chunks: int) -> None:
        elapsed = perf_counter() - start
        if env.timing_enabled():
            self.log.debug(
                "%s %dx%d (%s, %s) on %d chunk(s) done in %.6f seconds",
                name,
                shape[0],
                shape[1],
                self.kernel.name,
                self.precision.value,
                chunks,
                elapsed,
            )

    def assemble(
        self,
        sources: npt.ArrayLike,
        targets: npt.ArrayLike,
        out: np.ndarray | None = None,
        self_interaction: bool | None = None,
    ) -> np.ndarray:
        """Assemble the dense interaction matrix.

        Parameters
        ----------
        sources, targets:
            Point sets, ``(N, 3)`` / ``(M, 3)`` or flat.
        out:
            Optional caller-owned buffer of ``M * N * ncomponents`` elements and
            this precision's dtype. It is validated before any work and filled
            in place.
        self_interaction:
            Force or disable the self-interaction diagonal; ``None`` detects
            whether both arguments are the same set.

        Returns
        -------
        numpy.ndarray
            ``(M, N)`` for value-only mode, ``(M, N, 4)`` (value and gradient
            contiguous per entry) otherwise. Rows are targets.

        Raises
        ------
        ContractViolation
            For invalid points or a mismatched ``out`` buffer.
        SingularSeparationError
            Under ``SingularPolicy.RAISE`` if coincident pairs were found.
        """

        diagonal = self._self_interaction(sources, targets, self_interaction)
        src = self.precision.coerce_points(sources, "sources")
        tgt = self.precision.coerce_points(targets, "targets")
        shape = (tgt.shape[0], src.shape[0])
        data = self._output(out, shape + (self.components,))

        if data.size > 0:
            start = perf_counter()
            bounds = self._plan(shape[0], shape[0] * shape[1])
            if bounds is None:
                count = cpu_numba.assemble_serial(
                    self.pair, self.wavenumber, src, tgt, data, diagonal, self.zero_singular
                )
                chunks = 1
            else:
                chunks = bounds.shape[0] - 1
                counts = np.zeros(chunks, dtype=np.int64)
                with worker_threads(min(self.worker_count, chunks)):
                    cpu_numba.assemble_chunked(
                        self.pair,
                        self.wavenumber,
                        src,
                        tgt,
                        data,
                        bounds,
                        diagonal,
                        self.zero_singular,
                        counts,
                    )
                count = int(counts.sum())
            self._report("assemble", shape, start, chunks)
            check_singular(count, self.singular)

        if self.mode is EvaluationMode.VALUE:
            return data.reshape(shape)
        return data

    def potential(
        self,
        sources: npt.ArrayLike,
        targets: npt.ArrayLike,
        charges: npt.ArrayLike,
        out: np.ndarray | None = None,
        self_interaction: bool | None = None,
    ) -> np.ndarray:
        """Evaluate ``u(t_i) = sum_j G(t_i, s_j) q_j`` at every target.

        Parameters
        ----------
        sources, targets:
            Point sets.
        charges:
            One charge per source, cast to this precision.
        out:
            Optional buffer of ``M * ncomponents`` elements.
        self_interaction:
            As for :meth:`assemble`; the diagonal term is skipped.

        Returns
        -------
        numpy.ndarray
            ``(M,)`` potentials, or ``(M, 4)`` potential and gradient.
        """

        diagonal = self._self_interaction(sources, targets, self_interaction)
        src = self.precision.coerce_points(sources, "sources")
        tgt = self.precision.coerce_points(targets, "targets")
        q = self.precision.coerce_values(charges, "charges")
        if q.shape[0] != src.shape[0]:
            raise ContractViolation(
                f"Got {q.shape[0]} charges for {src.shape[0]} sources."
            )
        result = self._output(out, (tgt.shape[0], self.components))

        if tgt.shape[0] > 0:
            start = perf_counter()
            bounds = self._plan(tgt.shape[0], tgt.shape[0] * src.shape[0])
            if bounds is None:
                count = cpu_numba.potential_serial(
                    self.pair, self.wavenumber, src, tgt, q, result, diagonal, self.zero_singular
                )
                chunks = 1
            else:
                chunks = bounds.shape[0] - 1
                counts = np.zeros(chunks, dtype=np.int64)
                with worker_threads(min(self.worker_count, chunks)):
                    cpu_numba.potential_chunked(
                        self.pair,
                        self.wavenumber,
                        src,
                        tgt,
                        q,
                        result,
                        bounds,
                        diagonal,
                        self.zero_singular,
                        counts,
                    )
                count = int(counts.sum())
            self._report("potential", (tgt.shape[0], src.shape[0]), start, chunks)
            check_singular(count, self.singular)

        if self.mode is EvaluationMode.VALUE:
            return result.reshape(tgt.shape[0])
        return result

    def assemble_pairwise(
        self,
        sources: npt.ArrayLike,
        targets: npt.ArrayLike,
        out: np.ndarray | None = None,
    ) -> np.ndarray:
        """Evaluate ``G(t_i, s_i)`` for matched source/target pairs.

        Raises
        ------
        ContractViolation
            If the two sets have different lengths.
        """

        src = self.precision.coerce_points(sources, "sources")
        tgt = self.precision.coerce_points(targets, "targets")
        if src.shape[0] != tgt.shape[0]:
            raise ContractViolation(
                f"Pairwise assembly needs equal lengths, got {src.shape[0]} sources "
                f"and {tgt.shape[0]} targets."
            )
        n = src.shape[0]
        result = self._output(out, (n, self.components))

        if n > 0:
            start = perf_counter()
            bounds = self._plan(n, n)
            if bounds is None:
                count = cpu_numba.pairwise_serial(
                    self.pair, self.wavenumber, src, tgt, result, self.zero_singular
                )
                chunks = 1
            else:
                chunks = bounds.shape[0] - 1
                counts = np.zeros(chunks, dtype=np.int64)
                with worker_threads(min(self.worker_count, chunks)):
                    cpu_numba.pairwise_chunked(
                        self.pair,
                        self.wavenumber,
                        src,
                        tgt,
                        result,
                        bounds,
                        self.zero_singular,
                        counts,
                    )
                count = int(counts.sum())
            self._report("assemble_pairwise", (n, 1), start, chunks)
            check_singular(count, self.singular)

        if self.mode is EvaluationMode.VALUE:
            return result.reshape(n)
        return result


def assemble(
    sources: npt.ArrayLike,
    targets: npt.ArrayLike,
    kernel: KernelVariant,
    mode: EvaluationMode | str = EvaluationMode.VALUE,
    precision: Precision | str = Precision.REAL64,
    worker_count: int | None = None,
    *,
    singular: SingularPolicy | str = SingularPolicy.NAN,
    diagonal: DiagonalPolicy | str = DiagonalPolicy.ZERO,
    self_interaction: bool | None = None,
    serial_threshold: int | None = None,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Assemble the dense ``targets x sources`` kernel matrix in parallel.

    See :class:`Assembler` and :meth:`Assembler.assemble`.
    """

    assembler = Assembler(
        kernel,
        mode,
        precision,
        singular,
        diagonal,
        worker_count=worker_count,
        serial_threshold=serial_threshold,
    )
    return assembler.assemble(sources, targets, out=out, self_interaction=self_interaction)


def potential(
    sources: npt.ArrayLike,
    targets: npt.ArrayLike,
    charges: npt.ArrayLike,
    kernel: KernelVariant,
    mode: EvaluationMode | str = EvaluationMode.VALUE,
    precision: Precision | str = Precision.REAL64,
    worker_count: int | None = None,
    *,
    singular: SingularPolicy | str = SingularPolicy.NAN,
    diagonal: DiagonalPolicy | str = DiagonalPolicy.ZERO,
    self_interaction: bool | None = None,
    serial_threshold: int | None = None,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Charge-weighted kernel sums at every target. See :meth:`Assembler.potential`."""

    assembler = Assembler(
        kernel,
        mode,
        precision,
        singular,
        diagonal,
        worker_count=worker_count,
        serial_threshold=serial_threshold,
    )
    return assembler.potential(
        sources, targets, charges, out=out, self_interaction=self_interaction
    )


def assemble_pairwise(
    sources: npt.ArrayLike,
    targets: npt.ArrayLike,
    kernel: KernelVariant,
    mode: EvaluationMode | str = EvaluationMode.VALUE,
    precision: Precision | str = Precision.REAL64,
    worker_count: int | None = None,
    *,
    singular: SingularPolicy | str = SingularPolicy.NAN,
    serial_threshold: int | None = None,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """``G(t_i, s_i)`` for matched pairs. See :meth:`Assembler.assemble_pairwise`."""

    assembler = Assembler(
        kernel,
        mode,
        precision,
        singular,
        worker_count=worker_count,
        serial_threshold=serial_threshold,
    )
    return assembler.assemble_pairwise(sources, targets, out=out)
