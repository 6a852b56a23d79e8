import logging

import click
import numba
import numpy as np

from greenkernels import __version__
from greenkernels.assembly import Assembler, max_workers
from greenkernels.config import Config
from greenkernels.errors import GreenKernelsError
from greenkernels.export import save_result
from greenkernels.kernel import kernel_from_name
from greenkernels.pairwise import PairwiseEvaluator


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_point(text: str) -> np.ndarray:
    parts = [float(part) for part in text.replace(",", " ").split()]
    if len(parts) != 3:
        raise click.BadParameter(f"expected three coordinates, got {text!r}")
    return np.array(parts)


@click.group()
@click.version_option(__version__)
def cli() -> None:
    pass


@cli.command()
@click.option(
    "--config",
    required=True,
    type=str,
    help="Specify the path to the config file to be used.",
)
@click.option(
    "--workers",
    type=int,
    default=None,
    help="Number of workers. Overrides the value in the config.",
)
@click.option(
    "--output",
    type=str,
    default=None,
    help="Output file (.npy, .npz, .mat or .bz2). Overrides the path in the config.",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="warning",
    show_default=True,
)
def assemble(config: str, workers: int | None, output: str | None, log_level: str) -> None:
    """Assemble the dense matrix (or potentials, if charges are given)."""

    _configure_logging(log_level)
    run = Config(config, overrides=dict(workers=workers, output=output))
    assembler = Assembler(
        run.kernel,
        run.run.evaluation_mode,
        run.run.scalar_precision,
        singular=run.run.singular,
        diagonal=run.run.diagonal,
        worker_count=run.run.workers,
    )
    if run.charges is None:
        result = assembler.assemble(run.sources, run.targets)
    else:
        result = assembler.potential(run.sources, run.targets, run.charges)

    path = save_result(
        run.output_filename,
        result,
        metadata=dict(
            kernel=run.kernel.name,
            mode=assembler.mode.value,
            precision=assembler.precision.value,
        ),
    )
    click.echo(f"Wrote {result.shape} {result.dtype} to {path}")


@cli.command()
@click.option("--kernel", "kernel_name", default="laplace", show_default=True)
@click.option("--wavenumber", type=float, default=0.0, show_default=True)
@click.option("--wavenumber-imag", type=float, default=0.0, show_default=True)
@click.option("--precision", default=None, help="Defaults to complex128 for helmholtz, real64 otherwise.")
@click.option("--gradient", is_flag=True, help="Also evaluate the gradient with respect to the target.")
@click.argument("source")
@click.argument("target")
def evaluate(
    kernel_name: str,
    wavenumber: float,
    wavenumber_imag: float,
    precision: str | None,
    gradient: bool,
    source: str,
    target: str,
) -> None:
    """Evaluate the kernel for one SOURCE / TARGET pair ("x,y,z")."""

    try:
        kernel = kernel_from_name(kernel_name, complex(wavenumber, wavenumber_imag))
        if precision is None:
            precision = "complex128" if kernel.name == "helmholtz" else "real64"
        mode = "value_and_gradient" if gradient else "value"
        evaluator = PairwiseEvaluator(kernel, mode, precision)
        result = evaluator.greens_function(_parse_point(source), _parse_point(target))
    except GreenKernelsError as err:
        raise click.ClickException(str(err)) from err
    if gradient:
        value, grad = result
        click.echo(f"value: {value}")
        click.echo(f"gradient: {grad[0]} {grad[1]} {grad[2]}")
    else:
        click.echo(f"value: {result}")


@cli.command()
def info() -> None:
    """Show the thread pool and version information."""

    click.echo(f"greenkernels {__version__}")
    click.echo(f"numba {numba.__version__} (threading layer: {_layer_name()})")
    click.echo(f"threads: {numba.get_num_threads()} of {max_workers()}")


def _layer_name() -> str:
    try:
        return numba.threading_layer()
    except ValueError:
        # Only known after the first parallel call.
        return "not initialised"
