"""StreamRegistry - the explicit owner of every channel's StreamState.

The registry map is fixed once built; each StreamState carries its own lock,
so independent channels can be driven from different threads. Unknown source
keys are remembered so that each one is only reported once.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from shared.clock import Clock, SystemClock
from shared.config import StreamConfig
from shared.errors import UnknownStreamError
from shared.models import Message, SampleBlock

from .flush_gate import FlushGate
from .stream_state import StreamState

logger = logging.getLogger(__name__)


class StreamRegistry:
    def __init__(
        self,
        configs: Mapping[str, StreamConfig],
        *,
        clock: Optional[Clock] = None,
        gate: Optional[FlushGate] = None,
    ) -> None:
        self._clock: Clock = clock or SystemClock()
        self._gate = gate or FlushGate()
        self._states: Dict[str, StreamState] = {
            key: StreamState(config, clock=self._clock) for key, config in configs.items()
        }
        self._unknown_lock = threading.Lock()
        self._unknown: set[str] = set()

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def gate(self) -> FlushGate:
        return self._gate

    def __contains__(self, source_key: object) -> bool:
        return source_key in self._states

    def __len__(self) -> int:
        return len(self._states)

    def keys(self) -> Iterable[str]:
        return self._states.keys()

    def unknown_keys(self) -> FrozenSet[str]:
        with self._unknown_lock:
            return frozenset(self._unknown)

    def state(self, source_key: str) -> StreamState:
        try:
            return self._states[source_key]
        except KeyError:
            raise UnknownStreamError(source_key) from None

    def init_all(self, probation_window: float, sensitivity_level: int) -> None:
        """Initialise every configured channel; per-channel overrides win.

        Any InvalidLevelError or ConfigError aborts startup.
        """
        for key, state in self._states.items():
            config = state.config
            probation = config.probation if config.probation is not None else probation_window
            level = config.sensitivity if config.sensitivity is not None else sensitivity_level
            state.init(key, probation, level)
        logger.info(
            "Initialised %d streams (probation %.0fs, sensitivity %d)",
            len(self._states),
            probation_window,
            sensitivity_level,
        )

    def resolve(self, source_key: str) -> Optional[StreamState]:
        """Return the channel's state, or None (logged once) for unknown keys."""
        state = self._states.get(source_key)
        if state is not None:
            return state
        with self._unknown_lock:
            if source_key in self._unknown:
                return None
            self._unknown.add(source_key)
        logger.warning("unable to find stream config! %s", source_key)
        return None

    def process(self, block: SampleBlock) -> Optional[Message]:
        """Run `block` through its channel; None when suppressed or unknown.

        Raises:
            SampleError: unusable samples, channel state unchanged.
            CalibrationError: calibration cannot be applied, channel state unchanged.
        """
        state = self.resolve(block.source_key)
        if state is None:
            return None
        return state.process(block, self._gate)

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        return {key: state.snapshot() for key, state in self._states.items()}


__all__ = ["StreamRegistry"]
