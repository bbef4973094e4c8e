"""Intensity estimation: raw counts -> calibrated peak amplitude -> level."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from shared.config import Calibration, StreamConfig, ThresholdRow
from shared.errors import CalibrationError, SampleError

from .calibration import ChannelConditioner, PendingState


def lookup_level(peak: float, thresholds: Sequence[ThresholdRow], sensitivity: int = 0) -> int:
    """Level of the highest row whose breakpoint is <= `peak`.

    Rows below index `sensitivity` are not armed: a peak that does not reach
    row `sensitivity` maps to the baseline (0 below the first breakpoint,
    otherwise the first row's level). Returns 0 below the first breakpoint.
    """
    if not thresholds:
        return 0
    breakpoints = np.fromiter((row.amplitude for row in thresholds), dtype=np.float64)
    # Count of breakpoints <= peak; the table is sorted so this is the row index + 1.
    idx = int(np.searchsorted(breakpoints, peak, side="right")) - 1
    if idx < 0:
        return 0
    if idx < sensitivity:
        return thresholds[0].level
    return thresholds[idx].level


@dataclass(frozen=True)
class Estimate:
    level: int
    peak: float
    pending: Optional[PendingState] = None


class IntensityEstimator:
    """Maps a block of raw samples to an integer intensity level."""

    def __init__(self, config: StreamConfig, conditioner: Optional[ChannelConditioner] = None) -> None:
        self._config = config
        self._conditioner = conditioner or ChannelConditioner(config.calibration)

    @property
    def conditioner(self) -> ChannelConditioner:
        return self._conditioner

    def measure(
        self,
        samples: np.ndarray,
        *,
        sensitivity: int = 0,
        sample_rate: Optional[float] = None,
    ) -> Estimate:
        """Estimate without committing filter state; see :meth:`estimate`."""
        raw = np.asarray(samples)
        if raw.ndim != 1:
            raise SampleError(f"samples must be 1D, got {raw.ndim}D")
        if raw.size == 0:
            raise SampleError("no samples in block")
        if raw.dtype.kind not in "iuf":
            raise SampleError(f"samples must be numeric, got dtype {raw.dtype}")
        if raw.dtype.kind == "f" and not np.all(np.isfinite(raw)):
            raise SampleError("samples contain non-finite values")

        calibrated, pending = self._conditioner.process(raw, sample_rate)
        if not np.all(np.isfinite(calibrated)):
            raise CalibrationError("calibration produced non-finite amplitudes")

        peak = float(np.max(np.abs(calibrated)))
        level = lookup_level(peak, self._config.thresholds, sensitivity)
        return Estimate(level=level, peak=peak, pending=pending)

    def estimate(
        self,
        samples: np.ndarray,
        *,
        sensitivity: int = 0,
        sample_rate: Optional[float] = None,
    ) -> int:
        """Return the intensity level for `samples` and advance filter state.

        Raises:
            SampleError: empty or unusable samples.
            CalibrationError: calibration cannot be applied to this block.
        """
        result = self.measure(samples, sensitivity=sensitivity, sample_rate=sample_rate)
        self._conditioner.commit(result.pending)
        return result.level


def estimate(
    samples: np.ndarray,
    calibration: Calibration,
    thresholds: Sequence[ThresholdRow],
    *,
    sensitivity: int = 0,
    sample_rate: Optional[float] = None,
) -> int:
    """Stateless one-shot estimate, mostly useful for tests and tooling."""
    config = StreamConfig(source_key="_", thresholds=tuple(thresholds), calibration=calibration)
    return IntensityEstimator(config).estimate(samples, sensitivity=sensitivity, sample_rate=sample_rate)


__all__ = ["Estimate", "IntensityEstimator", "estimate", "lookup_level"]
