# ◼️ 估计信道结构封装（h_hat = [L, M]）

"""Estimated impulse response bank updated by the blind identifier."""

from __future__ import annotations

from typing import Optional

import numpy as np


class ChannelFilterBank:
    """Bank of ``num_channels`` causal FIR estimates of length ``filter_len``.

    Parameters
    ----------
    filter_len:
        Number of taps ``L`` per channel.
    num_channels:
        Number of channels ``M``.  The taps are stored column-wise in
        ``h_hat`` with shape ``[L, M]``.
    """

    def __init__(self, filter_len: int, num_channels: int) -> None:
        self.filter_len = filter_len
        self.num_channels = num_channels
        self.h_hat = np.zeros((filter_len, num_channels))

    def seed(self, kind: str = 'unit', initial: Optional[np.ndarray] = None) -> None:
        """Set the starting estimate.

        ``'unit'`` places a unit impulse at tap 0 of every channel and scales
        the bank to unit Frobenius norm; ``'zeros'`` clears it.  An explicit
        ``initial`` array of shape ``[L, M]`` overrides ``kind``.
        """

        if initial is not None:
            initial = np.asarray(initial, dtype=float)
            expected_shape = (self.filter_len, self.num_channels)
            if initial.shape != expected_shape:
                raise ValueError(f"Initial bank shape mismatch: expected {expected_shape}, "
                                 f"got {initial.shape}")
            self.h_hat = initial.copy()
        elif kind == 'unit':
            self.h_hat = np.zeros((self.filter_len, self.num_channels))
            self.h_hat[0, :] = 1.0 / np.sqrt(self.num_channels)
        elif kind == 'zeros':
            self.h_hat = np.zeros((self.filter_len, self.num_channels))
        else:
            raise ValueError(f"Unknown seed '{kind}'")

    # ------------------------------------------------------------------
    # Time/frequency alternation
    # ------------------------------------------------------------------
    def spectrum(self, frame_len: int) -> np.ndarray:
        """Zero-padded ``frame_len``-point transform of every channel."""

        return np.fft.fft(self.h_hat, frame_len, axis=0)

    def constrain(self, H: np.ndarray, channels: Optional[np.ndarray] = None) -> np.ndarray:
        """Commit frequency-domain filters back as causal ``L``-tap filters.

        The inverse transform of ``H`` is truncated to its first ``L`` taps;
        everything beyond is discarded.  ``channels`` is an optional boolean
        mask selecting which columns are written.

        Returns
        -------
        np.ndarray
            The full-length constrained time-domain filters ``[F, M]`` with
            zeros beyond tap ``L``.
        """

        h_full = np.real(np.fft.ifft(H, axis=0))
        h_full[self.filter_len:, :] = 0.0
        if channels is None:
            self.h_hat = h_full[:self.filter_len, :].copy()
        else:
            self.h_hat[:, channels] = h_full[:self.filter_len, channels]
        return h_full

    def normalize(self) -> None:
        """Rescale the bank to unit Frobenius norm (no-op for a zero bank)."""

        norm = np.linalg.norm(self.h_hat)
        if norm > 0.0:
            self.h_hat /= norm

    def get_weights(self) -> np.ndarray:
        return self.h_hat.copy()


__all__ = ["ChannelFilterBank"]
