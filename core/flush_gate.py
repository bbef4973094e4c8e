"""Emit-or-suppress decision for a channel's freshly estimated level.

State machine per channel::

    Initializing --(now >= probation deadline)--> Armed
    Armed --(more than flap_tolerance changes in flap_window)--> Noisy
    Noisy --(now >= cooldown end)--> Armed

While Initializing every estimate is suppressed. The first evaluation past the
deadline always emits, because nothing has been emitted yet. Once Armed, only
a level that differs from the last emitted one is sent. A Noisy channel drops
every estimate until its cooldown ends; the suppressed changes are never
replayed, the next real change after the cooldown is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional

from shared.app_settings import (
    DEFAULT_FLAP_COOLDOWN_SEC,
    DEFAULT_FLAP_TOLERANCE,
    DEFAULT_FLAP_WINDOW_SEC,
)

from .phases import Phase

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .stream_state import StreamState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlapSettings:
    """Noise suppression knobs. ``tolerance == 0`` turns suppression off."""

    tolerance: int = DEFAULT_FLAP_TOLERANCE
    window_sec: float = DEFAULT_FLAP_WINDOW_SEC
    cooldown_sec: float = DEFAULT_FLAP_COOLDOWN_SEC

    def __post_init__(self) -> None:
        if self.tolerance < 0:
            raise ValueError("tolerance must not be negative")
        if self.window_sec <= 0:
            raise ValueError("window_sec must be positive")
        if self.cooldown_sec < 0:
            raise ValueError("cooldown_sec must not be negative")

    @property
    def enabled(self) -> bool:
        return self.tolerance > 0


class FlushGate:
    """Debounce, probation and flap suppression. Never raises."""

    def __init__(self, settings: Optional[FlapSettings] = None) -> None:
        self._settings = settings or FlapSettings()

    @property
    def settings(self) -> FlapSettings:
        return self._settings

    def decide(self, state: "StreamState", level: int, now: Optional[datetime] = None) -> bool:
        """Return True when `level` should be emitted, updating `state` accordingly."""
        if now is None:
            now = state.clock.now()

        if state.phase is Phase.INITIALIZING:
            if now < state.probation_deadline:
                state.suppressed += 1
                return False
            state.phase = Phase.ARMED
            logger.info("%s: probation over, armed", state.source_key)

        if state.phase is Phase.NOISY:
            if state.noisy_until is not None and now < state.noisy_until:
                state.suppressed += 1
                return False
            state.phase = Phase.ARMED
            state.noisy_until = None
            state.flap_times.clear()
            logger.info("%s: noise cooldown over, armed", state.source_key)

        if state.last_emitted is None:
            # Baseline, including a baseline of "no shaking".
            self._emit(state, level)
            return True

        if level == state.last_emitted:
            state.suppressed += 1
            return False

        if self._settings.enabled and self._flapping(state, now):
            state.phase = Phase.NOISY
            state.noisy_until = now + timedelta(seconds=self._settings.cooldown_sec)
            state.suppressed += 1
            logger.warning(
                "%s: more than %d level changes within %.0fs, suppressing until %s",
                state.source_key,
                self._settings.tolerance,
                self._settings.window_sec,
                state.noisy_until.isoformat(),
            )
            return False

        self._emit(state, level)
        return True

    def _flapping(self, state: "StreamState", now: datetime) -> bool:
        """Record a change at `now` and report whether the window overflowed."""
        horizon = now - timedelta(seconds=self._settings.window_sec)
        flap_times = state.flap_times
        while flap_times and flap_times[0] <= horizon:
            flap_times.popleft()
        flap_times.append(now)
        return len(flap_times) > self._settings.tolerance

    @staticmethod
    def _emit(state: "StreamState", level: int) -> None:
        state.last_emitted = level
        state.emitted += 1


__all__ = ["FlapSettings", "FlushGate"]
