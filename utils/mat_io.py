"""Utility functions for MATLAB I/O.

Run results (the estimated channel bank, its per-block NPM curve and the
engine settings) are written to ``.mat`` files so they can be inspected
next to the reference MATLAB experiments.  True channel banks measured or
simulated elsewhere are read back the same way for scoring.
"""

from __future__ import annotations

import os
from typing import Any, Dict

import numpy as np

from scipy.io import loadmat, savemat


def save_mat(filepath: str, data: Dict[str, Any]) -> None:
    """Save variables to a ``.mat`` file.

    Parameters
    ----------
    filepath:
        Destination path of the ``.mat`` file.  Parent directories are
        created automatically.
    data:
        A mapping of variable names to the arrays that should be saved.
    """

    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)

    savemat(filepath, data)


def load_channels_mat(filepath: str, key: str = "h") -> np.ndarray:
    """Load a channel bank ``[L, M]`` stored under ``key``."""

    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Channel file does not exist: {filepath}")
    data = loadmat(filepath)
    if key not in data:
        keys = [k for k in data.keys() if not k.startswith('__')]
        raise KeyError(f"Key '{key}' not found in {filepath}. Available keys: {keys}")
    h = np.asarray(data[key], dtype=float)
    if h.ndim == 1:
        h = h.reshape(-1, 1)
    return h


def save_run_result(filepath: str, h_hat: np.ndarray, npm_db: np.ndarray,
                    config: Dict[str, Any]) -> None:
    """Store an identification run: ``h_hat``, ``npm_dB`` and the settings."""

    data = {"h_hat": np.asarray(h_hat), "npm_dB": np.asarray(npm_db, dtype=float)}
    for name, value in config.items():
        data[f"cfg_{name}"] = value
    save_mat(filepath, data)


__all__ = ["save_mat", "load_channels_mat", "save_run_result"]
