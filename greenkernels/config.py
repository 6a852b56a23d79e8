"""Run configuration for the command line interface.

A run is described by a JSON or YAML file:

.. code-block:: yaml

    sources:
      file: cluster.csv       # x, y, z columns (extra columns are ignored)
      delimiter: ","          # or "whitespace"
      scale: 1.0
    targets: same             # or another point block like `sources`
    kernel:
      name: helmholtz
      wavenumber: 2.0         # or {real: 2.0, imag: 0.1}
    mode: value               # or value_and_gradient
    precision: complex128
    workers: 4                # optional
    singular: nan             # nan | raise | zero
    diagonal: zero            # zero | singular
    charges: charges.csv      # optional; switches from assembly to potentials
    output: matrix.npy

Relative paths are resolved against the directory of the config file.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from greenkernels.kernel import EvaluationMode, KernelVariant, kernel_from_name
from greenkernels.policy import DiagonalPolicy, SingularPolicy
from greenkernels.precision import Precision

log = logging.getLogger(__name__)


class PointFile(BaseModel):
    file: str = Field()
    delimiter: str = Field(default=",")
    scale: float = Field(default=1.0, gt=0)

    def load(self, base: Path) -> np.ndarray:
        path = Path(self.file)
        if not path.is_absolute():
            path = base / path
        delim = r"\s+" if self.delimiter == "whitespace" else self.delimiter
        frame = pd.read_csv(path, header=None, sep=delim)
        if frame.shape[1] < 3:
            raise ValueError(
                f"The point file {path} needs at least 3 columns (x, y, z)."
            )
        if frame.shape[1] > 3:
            log.warning(
                "%s has %d columns; everything after the 3rd is ignored.",
                path,
                frame.shape[1],
            )
        return frame.iloc[:, :3].to_numpy(dtype=np.float64) * self.scale


class KernelSpec(BaseModel):
    name: str = Field(default="laplace")
    wavenumber: float | dict[str, float] = Field(default=0.0)

    @field_validator("wavenumber")
    @classmethod
    def wavenumber_parts(cls, value: float | dict[str, float]) -> float | dict[str, float]:
        if isinstance(value, dict) and not set(value) <= {"real", "imag"}:
            raise ValueError("wavenumber dict may only contain 'real' and 'imag'")
        return value

    @property
    def complex_wavenumber(self) -> complex:
        if isinstance(self.wavenumber, dict):
            return complex(self.wavenumber.get("real", 0.0), self.wavenumber.get("imag", 0.0))
        return complex(self.wavenumber)

    def variant(self) -> KernelVariant:
        return kernel_from_name(self.name, self.complex_wavenumber)


class RunConfig(BaseModel):
    sources: PointFile
    targets: PointFile | str = Field(default="same")
    kernel: KernelSpec = Field(default_factory=KernelSpec)
    mode: str = Field(default="value")
    precision: str = Field(default="real64")
    workers: int | None = Field(default=None, ge=1)
    singular: str = Field(default="nan")
    diagonal: str = Field(default="zero")
    charges: str | None = Field(default=None)
    output: str = Field(default="result.npy")

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def known_selectors(self) -> "RunConfig":
        if isinstance(self.targets, str) and self.targets != "same":
            raise ValueError("targets must be a point block or the string 'same'")
        # Raise early (as ValueError subclasses) on unknown names.
        EvaluationMode.from_any(self.mode)
        Precision.from_any(self.precision)
        SingularPolicy.from_any(self.singular)
        DiagonalPolicy.from_any(self.diagonal)
        return self

    @property
    def evaluation_mode(self) -> EvaluationMode:
        return EvaluationMode.from_any(self.mode)

    @property
    def scalar_precision(self) -> Precision:
        return Precision.from_any(self.precision)


class Config:
    """A loaded run configuration with its point sets.

    Parameters
    ----------
    path_config:
        Path to a ``.json``, ``.yaml`` or ``.yml`` file.
    overrides:
        Optional top-level keys replacing values from the file (used by the CLI).
    """

    def __init__(self, path_config: str | Path, overrides: dict[str, Any] | None = None):
        self.path = Path(path_config)
        self.log = logging.getLogger(self.__class__.__module__)

        match self.path.suffix:
            case ".json":
                with open(self.path) as data:
                    raw = json.load(data)
            case ".yaml" | ".yml":
                with open(self.path) as data:
                    raw = yaml.safe_load(data)
            case _:
                raise ValueError("The provided config file needs to be a json or yaml file!")
        if raw is None:
            raise ValueError(f"Could not read config file {self.path}. Check if the file exists.")

        raw.update({key: value for key, value in (overrides or {}).items() if value is not None})
        self.run = RunConfig(**raw)
        self.__read()

    def __read(self) -> None:
        base = self.path.parent
        self.sources = self.run.sources.load(base)
        if isinstance(self.run.targets, PointFile):
            self.targets = self.run.targets.load(base)
        else:
            # Same object: the assembler applies the self-interaction diagonal.
            self.targets = self.sources
        self.log.info(
            "Loaded %d sources and %d targets from %s",
            self.sources.shape[0],
            self.targets.shape[0],
            self.path,
        )

        self.charges = None
        if self.run.charges is not None:
            path = Path(self.run.charges)
            if not path.is_absolute():
                path = base / path
            frame = pd.read_csv(path, header=None)
            if frame.shape[1] >= 2:
                self.charges = frame.iloc[:, 0].to_numpy() + 1j * frame.iloc[:, 1].to_numpy()
            else:
                self.charges = frame.iloc[:, 0].to_numpy()

        output = Path(self.run.output)
        self.output_filename = output if output.is_absolute() else base / output

    @property
    def kernel(self) -> KernelVariant:
        return self.run.kernel.variant()
