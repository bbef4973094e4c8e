from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from scipy import signal

from shared.config import Calibration
from shared.errors import CalibrationError


class _IIRFilter:
    """Single-channel IIR section. State is held by the caller."""

    def __init__(self, b: np.ndarray, a: np.ndarray) -> None:
        self._b = np.asarray(b, dtype=np.float64)
        self._a = np.asarray(a, dtype=np.float64)
        self._n_states = max(len(self._a), len(self._b)) - 1
        if self._n_states > 0:
            self._zi_template = signal.lfilter_zi(self._b, self._a)
        else:  # pragma: no cover - zero-order filter, uncommon
            self._zi_template = np.zeros(0, dtype=np.float64)

    def initial_state(self, first_value: float) -> np.ndarray:
        """Steady-state conditions for a signal starting at `first_value`."""
        return self._zi_template * float(first_value)

    def run(self, samples: np.ndarray, zi: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        filtered, zf = signal.lfilter(self._b, self._a, samples, zi=zi)
        return filtered, zf


class _ButterworthFilter(_IIRFilter):
    def __init__(self, sample_rate: float, cutoff_hz: float, *, order: int, btype: str) -> None:
        norm = cutoff_hz / (sample_rate / 2.0)
        b, a = signal.butter(order, norm, btype=btype)
        super().__init__(b, a)


@dataclass
class PendingState:
    """Filter chain and state produced by one block, not yet committed."""

    sample_rate: float
    chain: List[_IIRFilter]
    states: List[np.ndarray]


class ChannelConditioner:
    """Applies a channel's calibration, carrying filter state across blocks.

    Blocks must be fed in arrival order. Filtering runs against the current
    state without modifying it; the new state is only kept once the caller
    commits it, so a block that fails later in processing leaves the channel
    untouched.
    """

    def __init__(self, calibration: Calibration) -> None:
        self._calibration = calibration
        self._sample_rate: Optional[float] = None
        self._chain: List[_IIRFilter] = []
        self._states: List[np.ndarray] = []

    @property
    def calibration(self) -> Calibration:
        return self._calibration

    @property
    def sample_rate(self) -> Optional[float]:
        return self._sample_rate

    @property
    def primed(self) -> bool:
        return bool(self._states)

    def reset(self) -> None:
        self._sample_rate = None
        self._chain = []
        self._states = []

    def _build_chain(self, rate: float) -> List[_IIRFilter]:
        cal = self._calibration
        chain: List[_IIRFilter] = []
        try:
            if cal.highpass_hz is not None:
                chain.append(
                    _ButterworthFilter(rate, cal.highpass_hz, order=cal.highpass_order, btype="highpass")
                )
            if cal.lowpass_hz is not None:
                chain.append(
                    _ButterworthFilter(rate, cal.lowpass_hz, order=cal.lowpass_order, btype="lowpass")
                )
        except ValueError as exc:
            raise CalibrationError(f"unable to design calibration filters: {exc}") from exc
        return chain

    def process(
        self, samples: np.ndarray, sample_rate: Optional[float] = None
    ) -> Tuple[np.ndarray, Optional[PendingState]]:
        """Return calibrated samples and the pending filter state.

        The pending state is ``None`` when no filters are configured.
        """
        cal = self._calibration
        values = np.asarray(samples, dtype=np.float64) - cal.offset
        if cal.demean and values.size:
            values = values - values.mean()
        values = values * cal.scale

        if not cal.filters_enabled():
            return values, None

        rate = cal.validate_for(sample_rate)
        if self._states and self._sample_rate == rate:
            chain = self._chain
            states: List[Optional[np.ndarray]] = list(self._states)
        else:
            # First block, or the sample rate changed and the old state no longer applies.
            chain = self._build_chain(rate)
            states = [None] * len(chain)

        pending: List[np.ndarray] = []
        row = values
        for filt, zi in zip(chain, states):
            if zi is None:
                zi = filt.initial_state(row[0])
            row, zf = filt.run(row, zi)
            pending.append(zf)
        return row, PendingState(sample_rate=rate, chain=chain, states=pending)

    def commit(self, pending: Optional[PendingState]) -> None:
        if pending is None:
            return
        self._sample_rate = pending.sample_rate
        self._chain = pending.chain
        self._states = [np.array(zf, copy=True) for zf in pending.states]


__all__ = ["ChannelConditioner", "PendingState"]
