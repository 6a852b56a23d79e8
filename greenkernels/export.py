import _pickle
import bz2
from pathlib import Path

import numpy as np
from scipy.io import savemat


def save_result(filename: str | Path, result: np.ndarray, metadata: dict | None = None) -> Path:
    """Write an assembled matrix (or potential vector) to disk.

    The format is chosen by the suffix: ``.npy`` (array only), ``.npz`` and
    ``.mat`` (array plus metadata entries), ``.bz2`` (pickled dict).
    """

    if isinstance(filename, str):
        filename = Path(filename)
    metadata = dict(metadata or {})

    match filename.suffix:
        case ".npy":
            np.save(filename, result)
        case ".npz":
            np.savez(filename, result=result, **{k: np.asarray(v) for k, v in metadata.items()})
        case ".mat":
            savemat(filename, dict(result=result, **metadata))
        case ".bz2":
            with bz2.BZ2File(filename, "w") as outfile:
                _pickle.dump(dict(result=result, **metadata), outfile)
        case _:
            raise ValueError(f"Unknown file extension {filename.suffix}")
    return filename


def load_result(filename: str | Path) -> np.ndarray:
    """Read back the array written by :func:`save_result`."""

    if isinstance(filename, str):
        filename = Path(filename)

    match filename.suffix:
        case ".npy":
            return np.load(filename)
        case ".npz":
            with np.load(filename) as data:
                return data["result"]
        case ".mat":
            from scipy.io import loadmat

            return loadmat(filename)["result"]
        case ".bz2":
            with bz2.BZ2File(filename, "r") as infile:
                return _pickle.load(infile)["result"]
        case _:
            raise ValueError(f"Unknown file extension {filename.suffix}")
