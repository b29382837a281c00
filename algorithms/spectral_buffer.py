"""Sliding multichannel history window and its frame spectrum."""

from __future__ import annotations

import numpy as np


class SpectralFrameBuffer:
    """Per-channel window of the most recent ``frame_len`` samples.

    The window starts as zeros, so the first frame sees a causal,
    zero-history start.  Each call to :meth:`push` discards the oldest
    ``hop`` samples and appends the newest ``hop`` samples.

    Parameters
    ----------
    frame_len:
        Transform size ``F``.
    hop:
        Number of new samples per channel admitted by :meth:`push`.
    num_channels:
        Number of microphone channels ``M``.
    """

    def __init__(self, frame_len: int, hop: int, num_channels: int) -> None:
        if frame_len < hop:
            raise ValueError(f"Frame length {frame_len} must be >= hop {hop}")
        self.frame_len = frame_len
        self.hop = hop
        self.num_channels = num_channels
        self.window = np.zeros((frame_len, num_channels))

    def push(self, new_samples: np.ndarray) -> np.ndarray:
        """Advance the window by one hop and return the current window."""

        new_samples = np.asarray(new_samples, dtype=float)
        if new_samples.ndim == 1:
            new_samples = new_samples.reshape(-1, 1)
        if new_samples.shape != (self.hop, self.num_channels):
            raise ValueError(f"Input block shape {new_samples.shape} does not match "
                             f"expected ({self.hop}, {self.num_channels})")

        self.window[:-self.hop, :] = self.window[self.hop:, :]
        self.window[-self.hop:, :] = new_samples
        return self.window

    def spectrum(self) -> np.ndarray:
        """``F``-point transform of every channel, shape ``[F, M]``."""

        return np.fft.fft(self.window, self.frame_len, axis=0)

    def silent_channels(self) -> np.ndarray:
        """Boolean mask of channels whose whole window is zero."""

        return ~np.any(self.window != 0.0, axis=0)

    def reset(self) -> None:
        self.window.fill(0.0)


__all__ = ["SpectralFrameBuffer"]
