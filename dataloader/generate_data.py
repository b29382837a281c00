# 🔶 源信号合成、随机信道、带噪麦克风信号生成

"""Synthetic sources, channels and noisy microphone signals for BSI runs."""

import logging
from typing import Optional, Tuple

import numpy as np

from utils.signal_utils import fftfilt, normalize

logger = logging.getLogger(__name__)


def add_noise_at_snr(s: np.ndarray, snr_db: float,
                     rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Add white noise to ``s`` at ``snr_db`` relative to the variance of ``s``."""

    rng = np.random.default_rng() if rng is None else rng
    va = rng.standard_normal(s.shape)
    va = np.sqrt(np.var(s) / (10 ** (snr_db / 10) * np.var(va))) * va
    return s + va


def generate_source(length: int,
                    kind: str = "white",
                    rng: Optional[np.random.Generator] = None,
                    tone_freq: float = 0.125,
                    stabilizing_snr_db: Optional[float] = None,
                    peak: float = 0.9) -> np.ndarray:
    """Generate a single source signal.

    Args:
        length (int): Number of samples.
        kind (str): ``'white'`` for Gaussian white noise or ``'tone'`` for a
            pure sinusoid at ``tone_freq`` cycles per sample.
        rng (np.random.Generator): Random generator, a fresh one when ``None``.
        tone_freq (float): Normalised tone frequency in ``(0, 0.5)``.
        stabilizing_snr_db (float): When given, a small amount of white noise
            is added at this SNR to improve the conditioning of the
            identification problem (40 dB in the speech experiments).
        peak (float): Peak amplitude of the returned signal.

    Returns:
        np.ndarray: Source ``[length]``.
    """

    if length <= 0:
        raise ValueError(f"Length must be positive, got {length}")
    rng = np.random.default_rng() if rng is None else rng

    if kind == "white":
        s = rng.standard_normal(length)
    elif kind == "tone":
        if not 0.0 < tone_freq < 0.5:
            raise ValueError(f"tone_freq must lie in (0, 0.5), got {tone_freq}")
        s = np.sin(2 * np.pi * tone_freq * np.arange(length))
    else:
        raise ValueError(f"Unknown source kind '{kind}'")

    if stabilizing_snr_db is not None:
        s = add_noise_at_snr(s, stabilizing_snr_db, rng)

    return normalize(s, peak)


def generate_random_channels(num_channels: int,
                             filter_len: int,
                             decay: float = 0.5,
                             rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Random exponentially decaying FIR channels.

    A stand-in for measured or simulated room impulse responses when only
    algorithm behaviour is of interest.  The bank is scaled so that the first
    tap of the first channel equals one.

    Args:
        num_channels (int): Number of channels ``M``.
        filter_len (int): Channel length ``L``.
        decay (float): Amplitude decay per tap, ``exp(-decay * n)``.
        rng (np.random.Generator): Random generator.

    Returns:
        np.ndarray: Channels ``[L, M]``.
    """

    if num_channels <= 0 or filter_len <= 0:
        raise ValueError(f"num_channels and filter_len must be positive, got "
                         f"{num_channels}, {filter_len}")
    rng = np.random.default_rng() if rng is None else rng

    envelope = np.exp(-decay * np.arange(filter_len))[:, None]
    h = rng.standard_normal((filter_len, num_channels)) * envelope
    # Keep a dominant direct path so h[0, 0] is never near zero
    h[0, :] = np.sign(h[0, :] + 1e-12) * (1.0 + np.abs(h[0, :]))
    return h / h[0, 0]


def generate_sensor_signals(h: np.ndarray,
                            s: np.ndarray,
                            snr_db: Optional[float] = None,
                            rng: Optional[np.random.Generator] = None
                            ) -> Tuple[np.ndarray, np.ndarray]:
    """Filter ``s`` through every channel of ``h`` and add sensor noise.

    The noise is white, independent per sensor and scaled so that
    ``var(v) = var(s) * ||h||^2 / (10^(snr_db/10) * M)``.

    Args:
        h (np.ndarray): Channels ``[L, M]``.
        s (np.ndarray): Source ``[N]``.
        snr_db (float): Sensor SNR in dB; ``None`` gives noiseless signals.
        rng (np.random.Generator): Random generator for the noise.

    Returns:
        Tuple[np.ndarray, np.ndarray]: ``x`` noisy sensor signals ``[N, M]``
        and ``z`` the clean channel outputs ``[N, M]``.
    """

    h = np.asarray(h, dtype=float)
    if h.ndim != 2:
        raise ValueError(f"Channel bank must be [L, M], got shape {h.shape}")
    z = fftfilt(h, s)
    if snr_db is None:
        return z.copy(), z

    rng = np.random.default_rng() if rng is None else rng
    M = h.shape[1]
    v = rng.standard_normal(z.shape)
    v = np.sqrt(np.var(s) * np.linalg.norm(h) ** 2
                / (10 ** (snr_db / 10) * M * np.mean(np.var(v, axis=0)))) * v
    logger.debug("Sensor noise added at %.1f dB SNR", snr_db)
    return z + v, z


def generate_bsi_task(num_channels: int,
                      filter_len: int,
                      length: int,
                      snr_db: Optional[float] = None,
                      seed: Optional[int] = None
                      ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Generate a random blind identification task for quick experiments.

    Returns:
        Tuple[np.ndarray, np.ndarray, np.ndarray]: ``(h, s, x)`` the true
        channels ``[L, M]``, the white source ``[N]`` and the sensor
        signals ``[N, M]``.
    """

    rng = np.random.default_rng(seed)
    h = generate_random_channels(num_channels, filter_len, rng=rng)
    s = generate_source(length, "white", rng=rng)
    x, _ = generate_sensor_signals(h, s, snr_db, rng)
    logger.info("Generated BSI task: M=%d, L=%d, N=%d", num_channels, filter_len, length)
    return h, s, x


__all__ = [
    "add_noise_at_snr",
    "generate_source",
    "generate_random_channels",
    "generate_sensor_signals",
    "generate_bsi_task",
]
