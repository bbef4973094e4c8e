"""
Synthetic waveform generation utilities for testing.

These generators produce deterministic, reproducible blocks of raw counts
with known peak amplitudes, so intensity levels can be asserted exactly.

All generators return 1D int64 arrays unless noted otherwise.
"""
from __future__ import annotations

import math

import numpy as np


def make_sine(
    freq_hz: float,
    amplitude: float,
    duration_sec: float,
    sample_rate: float,
    *,
    phase_rad: float = 0.0,
) -> np.ndarray:
    """Generate a sine wave as float64 samples.

    Example:
        >>> sig = make_sine(1.0, 100.0, 1.0, 100.0)
        >>> sig.shape
        (100,)
    """
    n_samples = int(duration_sec * sample_rate)
    t = np.arange(n_samples, dtype=np.float64) / sample_rate
    return amplitude * np.sin(2.0 * math.pi * freq_hz * t + phase_rad)


def make_peak_block(peak: int, n_samples: int = 100, *, seed: int = 0, negative: bool = False) -> np.ndarray:
    """Random counts in ``[-peak, peak]`` whose absolute maximum is exactly `peak`.

    The peak is planted at a seeded random index, with the sign set by
    `negative`, so tests can check that polarity does not matter.
    """
    if n_samples <= 0:
        raise ValueError("n_samples must be positive")
    peak = int(abs(peak))
    rng = np.random.default_rng(seed)
    if peak == 0:
        return np.zeros(n_samples, dtype=np.int64)
    block = rng.integers(-peak + 1, peak, size=n_samples, endpoint=False).astype(np.int64)
    idx = int(rng.integers(0, n_samples))
    block[idx] = -peak if negative else peak
    return block


def make_dc_with_drift(
    offset: float,
    drift_per_sample: float,
    n_samples: int,
) -> np.ndarray:
    """A constant offset plus a linear drift, as float64 samples."""
    return offset + drift_per_sample * np.arange(n_samples, dtype=np.float64)


def add_gaussian_noise(
    samples: np.ndarray,
    sigma: float,
    *,
    seed: int = 0,
) -> np.ndarray:
    """Return `samples` plus zero-mean Gaussian noise of standard deviation `sigma`."""
    rng = np.random.default_rng(seed)
    return np.asarray(samples, dtype=np.float64) + rng.normal(0.0, sigma, size=np.shape(samples))
