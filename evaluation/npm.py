"""Normalised projection misalignment of a blindly identified channel bank."""

from __future__ import annotations

import numpy as np


def npm(h: np.ndarray, h_hat: np.ndarray) -> float:
    """Normalised projection misalignment (linear).

    The estimate is optimally rescaled before scoring,
    ``alpha = <h, h_hat> / <h_hat, h_hat>`` over the stacked channels, and
    the result is ``||h - alpha * h_hat|| / ||h||``.  Any nonzero scaling of
    ``h_hat`` therefore gives the same value.

    Parameters
    ----------
    h:
        True channel bank ``[L, M]``.
    h_hat:
        Estimated channel bank ``[L, M]``.

    Returns
    -------
    float
        Misalignment in ``[0, 1]``.  A zero estimate or a zero reference
        scores ``1.0``, the maximal misalignment.
    """

    h = np.asarray(h, dtype=float).reshape(-1, order="F")
    h_hat = np.asarray(h_hat, dtype=float).reshape(-1, order="F")
    if h.shape != h_hat.shape:
        raise ValueError(f"Channel bank sizes differ: {h.size} vs {h_hat.size}")

    h_norm = np.linalg.norm(h)
    hh = float(np.dot(h_hat, h_hat))
    if h_norm == 0.0 or hh == 0.0:
        return 1.0
    alpha = float(np.dot(h, h_hat)) / hh
    return float(np.linalg.norm(h - alpha * h_hat) / h_norm)


def npm_db(h: np.ndarray, h_hat: np.ndarray) -> float:
    """:func:`npm` in decibels, ``20*log10(npm)``."""

    return float(20 * np.log10(max(npm(h, h_hat), np.finfo(float).tiny)))


def smooth_npm(npm_curve: np.ndarray, win_len: int = 20) -> np.ndarray:
    """Trailing moving average of a per-block NPM curve in dB."""

    x = np.asarray(npm_curve, dtype=float).flatten()
    win_len = max(1, min(win_len, x.size))
    window = np.ones(win_len) / win_len
    return np.convolve(x, window, mode="valid")


__all__ = ["npm", "npm_db", "smooth_npm"]
