"""Regularised normalised multichannel frequency-domain LMS (RNMCFLMS).

Blind identification of a single-input multiple-output acoustic system from
the microphone signals alone.  For the true channels every pair satisfies
the cross-relation ``x_i * h_j = x_j * h_i``; the algorithm drives the
frequency-domain cross-relation error towards zero, which happens only when
the estimate is proportional to the true channels.

References:
    Y. Huang and J. Benesty, "Frequency-domain adaptive approaches to blind
    multichannel identification", IEEE Trans. Signal Process., 51(1), 2003.
    M. Haque and M. Hasan, "Noise robust multichannel frequency-domain LMS
    algorithms for blind channel identification", IEEE Signal Process.
    Lett., 15, 2008.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple

import numpy as np

from algorithms.config import RNMCFLMSConfig
from algorithms.power_spectrum import PowerSpectrumTracker, block_power
from algorithms.spectral_buffer import SpectralFrameBuffer
from evaluation.npm import npm_db
from models.channel_filter import ChannelFilterBank

logger = logging.getLogger(__name__)


def cross_relation_gradient(X: np.ndarray, H: np.ndarray, filter_len: int) -> np.ndarray:
    """Gradient of the total squared cross-relation error.

    Parameters
    ----------
    X:
        Frame spectra of the microphone signals ``[F, M]``.
    H:
        Zero-padded spectra of the current estimates ``[F, M]``.
    filter_len:
        Filter length ``L``.  The first ``L`` samples of every error frame
        are circularly aliased and are zeroed before the gradient is formed.

    Returns
    -------
    np.ndarray
        ``[F, M]`` complex gradient, ``sum_i conj(X_i) * E_ik`` for channel
        ``k`` with ``E_ik = X_i*H_k - X_k*H_i``.
    """

    # Y[:, i, j] = X_i * H_j, E[:, i, j] = X_i*H_j - X_j*H_i
    Y = X[:, :, None] * H[:, None, :]
    E = Y - np.transpose(Y, (0, 2, 1))

    e = np.real(np.fft.ifft(E, axis=0))
    e[:filter_len] = 0.0
    E = np.fft.fft(e, axis=0)

    return np.einsum('fi,fik->fk', np.conj(X), E)


def normalized_step(grad: np.ndarray, denom: np.ndarray, stepsize: float) -> np.ndarray:
    """``stepsize * grad / denom`` with zero where the denominator vanishes."""

    out = np.zeros_like(grad)
    np.divide(grad, denom, out=out, where=denom > 0.0)
    return stepsize * out


def init_rnmcflms(filter_len: int, frame_len: int, num_channels: int, x: np.ndarray,
                  policy: str = 'cross') -> Tuple[np.ndarray, np.ndarray]:
    """Seed the estimate and bootstrap the averaged power spectrum.

    Parameters
    ----------
    filter_len, frame_len, num_channels:
        ``L``, ``F`` and ``M``.
    x:
        First samples of the microphone signals ``[N, M]``; the first ``F``
        rows are used (zero-padded if fewer are available).
    policy:
        Power policy, see :func:`algorithms.power_spectrum.block_power`.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        ``h_hat`` the unit-norm impulse seed ``[L, M]`` and ``P_k_avg`` the
        initial power spectrum ``[F, M]``.
    """

    x = np.asarray(x, dtype=float)
    if x.ndim != 2 or x.shape[1] != num_channels:
        raise ValueError(f"Expected input of shape (N, {num_channels}), got {x.shape}")

    bank = ChannelFilterBank(filter_len, num_channels)
    bank.seed('unit')

    X = np.fft.fft(x[:frame_len], frame_len, axis=0)
    P_k_avg = block_power(X, policy)
    return bank.get_weights(), P_k_avg


def rnmcflms(xm: np.ndarray, h_hat: np.ndarray, P_k_avg: np.ndarray, stepsize: float,
             forgetting: float, delta: float,
             policy: str = 'cross') -> Tuple[np.ndarray, np.ndarray]:
    """One RNMCFLMS iteration on a single frame.

    Parameters
    ----------
    xm:
        Current frame of microphone samples ``[F, M]``.
    h_hat:
        Current estimate ``[L, M]``.
    P_k_avg:
        Averaged power spectrum ``[F, M]``.
    stepsize:
        Step size ``rho``.
    forgetting:
        Forgetting factor ``lambda``.
    delta:
        Regularisation added to the power spectrum.
    policy:
        Power policy, see :func:`algorithms.power_spectrum.block_power`.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        Updated ``h_hat`` ``[L, M]`` and ``P_k_avg`` ``[F, M]``.
    """

    F, M = xm.shape
    L = h_hat.shape[0]

    Xm = np.fft.fft(xm, F, axis=0)
    P_k_avg = forgetting * P_k_avg + (1 - forgetting) * block_power(Xm, policy)

    bank = ChannelFilterBank(L, M)
    bank.seed(initial=h_hat)
    H_hat = bank.spectrum(F)

    grad = cross_relation_gradient(Xm, H_hat, L)
    H_hat = H_hat - normalized_step(grad, P_k_avg + delta, stepsize)

    active = np.any(xm != 0.0, axis=0)
    bank.constrain(H_hat, active)
    return bank.get_weights(), P_k_avg


class RNMCFLMS:
    """Stateful RNMCFLMS identifier driven block by block.

    The engine moves through ``uninitialized -> seeded -> steady ->
    terminated``.  :meth:`initialize` seeds the estimate and bootstraps the
    power spectrum from the first ``F`` samples; every
    :meth:`process_block` call then admits ``ns`` new samples per channel and
    commits one full update before returning.

    Parameters
    ----------
    config:
        Engine settings, validated on construction.
    initial_weights:
        Optional starting bank ``[L, M]`` overriding ``config.seed``.
    """

    def __init__(self, config: RNMCFLMSConfig,
                 initial_weights: Optional[np.ndarray] = None) -> None:
        self.config = config.validate()
        self.num_channels = config.num_channels
        self.filter_len = config.filter_len
        self.frame_len = config.F
        self.hop = config.ns

        self._initial_weights = initial_weights
        self._init_state()

    def _init_state(self) -> None:
        cfg = self.config
        self.buffer = SpectralFrameBuffer(self.frame_len, self.hop, self.num_channels)
        self.tracker = PowerSpectrumTracker(self.num_channels, cfg.forgetting,
                                            cfg.power_policy, cfg.delta_source)
        self.bank = ChannelFilterBank(self.filter_len, self.num_channels)
        self.bank.seed(cfg.seed, self._initial_weights)
        self.state = 'uninitialized'
        self.num_blocks = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def initialize(self, x_first: np.ndarray) -> None:
        """Bootstrap the averaged power spectrum from the first samples."""

        if self.state != 'uninitialized':
            raise RuntimeError(f"Engine already initialised (state '{self.state}')")
        x_first = self._check_channels(x_first)

        X = np.fft.fft(x_first[:self.frame_len], self.frame_len, axis=0)
        self.tracker.bootstrap(X)
        self.state = 'seeded'
        logger.info("RNMCFLMS seeded: M=%d, L=%d, F=%d, ns=%d, rho=%g, lambda=%g",
                    self.num_channels, self.filter_len, self.frame_len, self.hop,
                    self.config.stepsize, self.config.forgetting)

    def finish(self) -> np.ndarray:
        """Stop the run and report the final estimate."""

        self.state = 'terminated'
        logger.info("RNMCFLMS terminated after %d blocks", self.num_blocks)
        return self.get_weights()

    def reset(self) -> None:
        """Discard all run state and return to ``uninitialized``."""

        self._init_state()

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    def process_block(self, new_samples: np.ndarray) -> np.ndarray:
        """Admit ``ns`` new samples per channel and commit one update.

        Parameters
        ----------
        new_samples:
            ``[ns, M]`` newest microphone samples.

        Returns
        -------
        np.ndarray
            Copy of the updated estimate ``[L, M]``.
        """

        if self.state == 'uninitialized':
            raise RuntimeError("initialize() must be called before processing blocks")
        if self.state == 'terminated':
            raise RuntimeError("Engine has terminated, call reset() to start a new run")

        self.buffer.push(new_samples)
        X = self.buffer.spectrum()
        self.tracker.update(X)
        self._update_weights(X)

        self.state = 'steady'
        self.num_blocks += 1
        return self.get_weights()

    def _update_weights(self, X: np.ndarray) -> None:
        L, F = self.filter_len, self.frame_len

        # Channels without any excitation in the window are left untouched
        active = ~self.buffer.silent_channels()
        if not np.any(active):
            logger.debug("Block %d: silent frame, estimate unchanged", self.num_blocks)
            return

        H_hat = self.bank.spectrum(F)
        grad = cross_relation_gradient(X, H_hat, L)
        H_hat = H_hat - normalized_step(grad, self.tracker.denominator(), self.config.stepsize)

        self.bank.constrain(H_hat, active)
        if self.config.unit_norm:
            self.bank.normalize()

        logger.debug("Block %d: delta=%.3e, |h_hat|=%.4f", self.num_blocks,
                     self.tracker.delta, float(np.linalg.norm(self.bank.h_hat)))

    def process_signals(self, x: np.ndarray, h_true: Optional[np.ndarray] = None,
                        callback: Optional[Callable[[int, np.ndarray], bool]] = None
                        ) -> Tuple[np.ndarray, np.ndarray]:
        """Run the identifier over a whole multichannel recording.

        Parameters
        ----------
        x:
            Microphone signals ``[N, M]`` (rows are time).  ``N // ns`` blocks
            are processed; leftover samples are ignored.
        h_true:
            Optional true channels ``[L, M]`` used only to score every block.
        callback:
            Called as ``callback(block_index, h_hat)`` after each committed
            block; returning ``True`` stops the run.

        Returns
        -------
        Tuple[np.ndarray, np.ndarray]
            ``h_hat`` the final estimate ``[L, M]`` and ``npm_dB`` the NPM of
            every processed block (empty when ``h_true`` is ``None``).
        """

        x = self._check_channels(x)
        if h_true is not None:
            h_true = np.asarray(h_true, dtype=float)
            expected_shape = (self.filter_len, self.num_channels)
            if h_true.shape != expected_shape:
                raise ValueError(f"Reference bank shape mismatch: expected {expected_shape}, "
                                 f"got {h_true.shape}")
        if self.state == 'uninitialized':
            self.initialize(x)

        ns = self.hop
        num_blocks = x.shape[0] // ns
        npm_curve = []

        for bb in range(num_blocks):
            h_hat = self.process_block(x[bb * ns:(bb + 1) * ns, :])
            if h_true is not None:
                npm_curve.append(npm_db(h_true, h_hat))
            if callback is not None and callback(bb, h_hat):
                logger.info("Run stopped by callback after block %d", bb)
                break

        if npm_curve:
            logger.info("Processed %d blocks, final NPM %.2f dB", self.num_blocks, npm_curve[-1])
        return self.get_weights(), np.asarray(npm_curve, dtype=float)

    def _check_channels(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        if x.ndim == 1:
            x = x.reshape(-1, 1)
        if x.shape[1] != self.num_channels:
            raise ValueError(f"Expected {self.num_channels} channels, got {x.shape[1]}")
        return x

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def P_k_avg(self) -> Optional[np.ndarray]:
        return self.tracker.P_avg

    def get_weights(self) -> np.ndarray:
        """Current estimate ``[L, M]``."""
        return self.bank.get_weights()


def run_rnmcflms(x: np.ndarray, config: RNMCFLMSConfig,
                 h_true: Optional[np.ndarray] = None) -> Tuple[np.ndarray, np.ndarray]:
    """Convenience wrapper running a full recording through :class:`RNMCFLMS`.

    Returns the final estimate ``[L, M]`` and the per-block NPM in dB.
    """

    algorithm = RNMCFLMS(config)
    h_hat, npm_curve = algorithm.process_signals(x, h_true)
    algorithm.finish()
    return h_hat, npm_curve


__all__ = [
    "cross_relation_gradient",
    "normalized_step",
    "init_rnmcflms",
    "rnmcflms",
    "RNMCFLMS",
    "run_rnmcflms",
]
