# ◼️ 常用信号函数（normalize、多通道FIR滤波）

"""Lightweight signal processing helpers used across the project."""

from __future__ import annotations

import numpy as np
from scipy import signal


def normalize(x: np.ndarray, peak: float = 1.0) -> np.ndarray:
    """Scale the signal so that its largest magnitude equals ``peak``."""

    x = np.asarray(x, dtype=float)
    return peak * x / (np.max(np.abs(x)) + 1e-12)


def fftfilt(h: np.ndarray, s: np.ndarray) -> np.ndarray:
    """Filter one source through every channel of an FIR bank.

    Parameters
    ----------
    h:
        Impulse responses ``[L, M]``.
    s:
        Source signal ``[N]``.

    Returns
    -------
    np.ndarray
        Channel outputs ``[N, M]``, causal with zero initial state.
    """

    h = np.asarray(h, dtype=float)
    if h.ndim == 1:
        h = h.reshape(-1, 1)
    s = np.asarray(s, dtype=float).flatten()
    z = np.zeros((s.size, h.shape[1]))
    for m in range(h.shape[1]):
        z[:, m] = signal.lfilter(h[:, m], [1.0], s)
    return z


__all__ = ["normalize", "fftfilt"]
