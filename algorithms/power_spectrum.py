"""Recursively averaged microphone power spectrum and regularisation floor."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


def block_power(X: np.ndarray, policy: str = 'cross') -> np.ndarray:
    """Per-bin normalisation power for every channel.

    Parameters
    ----------
    X:
        Frame spectra ``[F, M]``.
    policy:
        ``'cross'`` gives ``sum_{i != k} |X_i|^2`` for channel ``k``,
        ``'total'`` gives ``sum_i |X_i|^2`` for every channel and ``'own'``
        gives ``|X_k|^2``.

    Returns
    -------
    np.ndarray
        Real array ``[F, M]``.
    """

    P_x = np.real(np.conj(X) * X)
    if policy == 'own':
        return P_x
    total = np.sum(P_x, axis=1, keepdims=True)
    if policy == 'total':
        return np.repeat(total, X.shape[1], axis=1)
    if policy == 'cross':
        return total - P_x
    raise ValueError(f"Unknown power policy '{policy}'")


class PowerSpectrumTracker:
    """Exponentially weighted average ``P_avg <- lam*P_avg + (1-lam)*P_x``.

    ``P_avg`` is bootstrapped from the first frame rather than from zero so
    that the first normalisation step does not divide by an empty average.
    """

    def __init__(self, num_channels: int, forgetting: float, policy: str = 'cross',
                 delta_source: str = 'instantaneous') -> None:
        self.num_channels = num_channels
        self.forgetting = forgetting
        self.policy = policy
        self.delta_source = delta_source
        self.P_avg: Optional[np.ndarray] = None
        self.delta = 0.0

    def bootstrap(self, X: np.ndarray) -> np.ndarray:
        """Initialise the average from the first available frame."""

        self.P_avg = block_power(X, self.policy)
        self.delta = self._regularisation(X)
        logger.debug("Power spectrum bootstrapped, mean power %.3e", float(np.mean(self.P_avg)))
        return self.P_avg

    def update(self, X: np.ndarray) -> np.ndarray:
        """Fold the current frame into the average and refresh ``delta``."""

        if self.P_avg is None:
            return self.bootstrap(X)
        lam = self.forgetting
        self.P_avg = lam * self.P_avg + (1.0 - lam) * block_power(X, self.policy)
        self.delta = self._regularisation(X)
        return self.P_avg

    def _regularisation(self, X: np.ndarray) -> float:
        # delta = (M-1) * mean power, from the current frame or the average
        if self.delta_source == 'averaged':
            ref = self.P_avg
        else:
            ref = np.real(np.conj(X) * X)
        return float((self.num_channels - 1) * np.mean(ref))

    def denominator(self) -> np.ndarray:
        """Regularised normaliser ``P_avg + delta``, shape ``[F, M]``."""

        return self.P_avg + self.delta


__all__ = ["block_power", "PowerSpectrumTracker"]
