"""Configuration of the RNMCFLMS blind channel identification engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from numbers import Integral
from typing import Any, Dict, Optional

POWER_POLICIES = ("cross", "total", "own")
DELTA_SOURCES = ("instantaneous", "averaged")
SEEDS = ("unit", "zeros")


class ConfigurationError(ValueError):
    """Raised when the engine is configured outside its supported range."""


@dataclass(frozen=True)
class RNMCFLMSConfig:
    """Run-scoped settings for RNMCFLMS.

    Attributes:
        num_channels:  Number of microphones ``M`` (at least two).
        filter_len:    Length ``L`` of every estimated impulse response.
        frame_len:     Transform size ``F``.  ``None`` selects ``2 * L``.
        hop:           New samples per iteration ``ns``.  ``None`` selects
                       ``L // 8`` (at least one sample).
        stepsize:      Step size ``rho`` in ``(0, 2)``.
        forgetting:    Forgetting factor ``lambda`` in ``(0, 1)`` used for
                       the averaged power spectrum.
        power_policy:  How the per-bin normalisation power is formed:
                       ``'cross'`` sums the other channels, ``'total'``
                       sums all channels, ``'own'`` uses the channel itself.
        delta_source:  ``'instantaneous'`` derives the regularisation from
                       the current block, ``'averaged'`` from the averaged
                       power spectrum.
        unit_norm:     Rescale the estimate to unit norm after each update.
        seed:          Initial bank, ``'unit'`` (unit-norm impulses) or
                       ``'zeros'``.
    """
    num_channels: int
    filter_len: int
    frame_len: Optional[int] = None
    hop: Optional[int] = None
    stepsize: float = 0.2
    forgetting: float = 0.98
    power_policy: str = 'cross'
    delta_source: str = 'instantaneous'
    unit_norm: bool = False
    seed: str = 'unit'

    @property
    def F(self) -> int:
        return self.frame_len if self.frame_len is not None else 2 * self.filter_len

    @property
    def ns(self) -> int:
        return self.hop if self.hop is not None else max(1, self.filter_len // 8)

    def validate(self) -> "RNMCFLMSConfig":
        """Check every setting, raising :class:`ConfigurationError`."""
        for name in ("num_channels", "filter_len", "frame_len", "hop"):
            value = getattr(self, name)
            if value is None and name in ("frame_len", "hop"):
                continue
            if isinstance(value, bool) or not isinstance(value, Integral):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
        M, L = self.num_channels, self.filter_len
        if M < 2:
            raise ConfigurationError(
                f"At least two channels are needed for cross-relation identification, got M={M}")
        if L < 1:
            raise ConfigurationError(f"Filter length must be positive, got L={L}")
        if self.F < 2 * L:
            raise ConfigurationError(
                f"Frame length F={self.F} must be at least 2*L={2 * L}")
        if self.ns < 1 or self.ns > L:
            raise ConfigurationError(f"Hop ns={self.ns} must lie in [1, L={L}]")
        if not 0.0 < self.stepsize < 2.0:
            raise ConfigurationError(f"Step size must lie in (0, 2), got {self.stepsize}")
        if not 0.0 < self.forgetting < 1.0:
            raise ConfigurationError(
                f"Forgetting factor must lie in (0, 1), got {self.forgetting}")
        if self.power_policy not in POWER_POLICIES:
            raise ConfigurationError(
                f"Unknown power policy '{self.power_policy}', expected one of {POWER_POLICIES}")
        if self.delta_source not in DELTA_SOURCES:
            raise ConfigurationError(
                f"Unknown delta source '{self.delta_source}', expected one of {DELTA_SOURCES}")
        if self.seed not in SEEDS:
            raise ConfigurationError(f"Unknown seed '{self.seed}', expected one of {SEEDS}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['frame_len'] = self.F
        d['hop'] = self.ns
        return d


__all__ = ["ConfigurationError", "RNMCFLMSConfig", "POWER_POLICIES", "DELTA_SOURCES", "SEEDS"]
