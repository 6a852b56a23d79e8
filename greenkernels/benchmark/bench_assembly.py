"""Benchmarks for dense assembly.

Compares the serial loop against the chunked parallel loop for one kernel
under controlled, reproducible settings.
"""

from __future__ import annotations

import argparse
import logging
import os

import numpy as np
import pyperf

from greenkernels.assembly import Assembler
from greenkernels.kernel import kernel_from_name


def _set_reproducible_thread_env() -> None:
    """Set conservative thread environment variables.

    Notes
    -----
    Uses ``os.environ.setdefault`` so user-provided values win. Numba's own
    pool is sized through ``--workers`` instead.
    """
    defaults = {
        "OMP_NUM_THREADS": "1",
        "MKL_NUM_THREADS": "1",
        "OPENBLAS_NUM_THREADS": "1",
    }
    for key, value in defaults.items():
        os.environ.setdefault(key, value)


def _add_worker_args(cmd: list[str], args: argparse.Namespace) -> None:
    """Populate pyperf worker command-line arguments."""
    cmd.extend(["--points", str(args.points)])
    cmd.extend(["--kernel", str(args.kernel)])
    cmd.extend(["--wavenumber", str(args.wavenumber)])
    cmd.extend(["--precision", str(args.precision)])
    cmd.extend(["--seed", str(args.seed)])
    if args.workers is not None:
        cmd.extend(["--workers", str(args.workers)])
    if args.gradient:
        cmd.append("--gradient")
    if args.log_quiet:
        cmd.append("--log-quiet")


def _build_runner() -> tuple[pyperf.Runner, argparse.ArgumentParser]:
    """Create the pyperf runner and CLI parser."""
    parser = argparse.ArgumentParser(
        description="Benchmark dense assembly, serial vs parallel",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--points",
        type=int,
        default=2000,
        help="Number of points (sources = targets, O(N^2) memory)",
    )
    parser.add_argument(
        "--kernel",
        choices=("laplace", "helmholtz", "modified_helmholtz"),
        default="laplace",
    )
    parser.add_argument("--wavenumber", type=float, default=1.0)
    parser.add_argument(
        "--precision",
        choices=("real32", "real64", "complex64", "complex128"),
        default=None,
        help="Defaults to complex128 for helmholtz and real64 otherwise",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Workers for the parallel run (default: Numba thread count)",
    )
    parser.add_argument(
        "--gradient",
        action="store_true",
        help="Assemble value and gradient",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=0,
        help="RNG seed for deterministic geometry",
    )
    parser.add_argument(
        "--log-quiet",
        dest="log_quiet",
        action="store_true",
        help="Suppress noisy Python-side logging",
    )

    runner = pyperf.Runner(
        _argparser=parser,
        add_cmdline_args=_add_worker_args,
        processes=1,
        warmups=1,
    )
    return runner, parser


def _make_points(count: int, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    # Uniform in a unit cube; coincident points have probability zero.
    return rng.uniform(size=(count, 3))


def main() -> None:
    """CLI entry point for the assembly benchmark."""
    _set_reproducible_thread_env()

    runner, _ = _build_runner()
    args = runner.parse_args()

    if args.log_quiet:
        logging.getLogger().setLevel(logging.ERROR)

    kernel = kernel_from_name(args.kernel, args.wavenumber)
    precision = args.precision
    if precision is None:
        precision = "complex128" if args.kernel == "helmholtz" else "real64"
    mode = "value_and_gradient" if args.gradient else "value"

    points = _make_points(args.points, args.seed)
    serial = Assembler(kernel, mode, precision, worker_count=1)
    parallel = Assembler(kernel, mode, precision, worker_count=args.workers, serial_threshold=0)

    shape = (args.points, args.points) + (() if mode == "value" else (4,))
    out = np.empty(shape, dtype=serial.precision.dtype)

    # Warm up Numba compilation.
    serial.assemble(points, points, out=out)
    parallel.assemble(points, points, out=out)

    runner.bench_func(
        f"assemble_{args.kernel}_{precision}_serial",
        lambda: serial.assemble(points, points, out=out),
    )
    runner.bench_func(
        f"assemble_{args.kernel}_{precision}_workers{parallel.worker_count}",
        lambda: parallel.assemble(points, points, out=out),
    )


if __name__ == "__main__":
    main()
