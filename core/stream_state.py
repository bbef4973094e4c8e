from __future__ import annotations

import logging
import math
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Dict, Optional

from shared.clock import Clock, SystemClock
from shared.config import StreamConfig
from shared.errors import ConfigError, InvalidLevelError
from shared.models import Message, SampleBlock

from .calibration import ChannelConditioner
from .estimator import IntensityEstimator
from .flush_gate import FlushGate
from .phases import Phase

logger = logging.getLogger(__name__)


class StreamState:
    """Mutable per-channel state, consulted and updated on every block.

    A state is owned by exactly one source key. Callers must feed blocks for a
    channel in arrival order; :attr:`lock` serialises concurrent drivers.
    """

    def __init__(self, config: StreamConfig, *, clock: Optional[Clock] = None) -> None:
        self.config = config
        self.clock: Clock = clock or SystemClock()
        self.lock = threading.Lock()
        self.estimator = IntensityEstimator(config, ChannelConditioner(config.calibration))

        self.source_key: str = config.source_key
        self.initialized = False
        self.probation_window: float = 0.0
        self.probation_deadline: datetime = self.clock.now()
        self.sensitivity: int = 0
        self.phase: Phase = Phase.INITIALIZING
        self.last_emitted: Optional[int] = None
        self.last_level: Optional[int] = None
        self.flap_times: Deque[datetime] = deque()
        self.noisy_until: Optional[datetime] = None

        self.processed = 0
        self.emitted = 0
        self.suppressed = 0

    def init(self, source_key: str, probation_window: float, sensitivity_level: int) -> "StreamState":
        """(Re)initialise the channel. Call exactly once per channel at startup.

        Raises:
            InvalidLevelError: `sensitivity_level` does not select a threshold row.
            ConfigError: `probation_window` is negative.
        """
        n_rows = self.config.n_levels
        if isinstance(sensitivity_level, bool) or not 0 <= int(sensitivity_level) < n_rows:
            raise InvalidLevelError(source_key, sensitivity_level, n_rows)
        if not (math.isfinite(probation_window) and probation_window >= 0):
            raise ConfigError(f"{source_key}: probation window must be non-negative")

        self.source_key = source_key
        self.sensitivity = int(sensitivity_level)
        self.probation_window = float(probation_window)
        self.probation_deadline = self.clock.now() + timedelta(seconds=self.probation_window)
        self.phase = Phase.INITIALIZING
        self.last_emitted = None
        self.last_level = None
        self.flap_times.clear()
        self.noisy_until = None
        self.estimator.conditioner.reset()
        self.processed = 0
        self.emitted = 0
        self.suppressed = 0
        self.initialized = True
        logger.debug(
            "%s: initialised (probation until %s, sensitivity %d)",
            source_key,
            self.probation_deadline.isoformat(),
            self.sensitivity,
        )
        return self

    def process(self, block: SampleBlock, gate: FlushGate) -> Optional[Message]:
        """Estimate `block` and return a Message when the gate decides to emit.

        Estimation errors propagate and leave the state untouched.
        """
        if not self.initialized:
            raise RuntimeError(f"{self.source_key}: stream state used before init()")
        with self.lock:
            result = self.estimator.measure(
                block.samples,
                sensitivity=self.sensitivity,
                sample_rate=block.sample_rate,
            )
            self.estimator.conditioner.commit(result.pending)
            self.processed += 1
            self.last_level = result.level
            if not gate.decide(self, result.level, self.clock.now()):
                return None
            return Message(
                source=block.channel_label,
                src_name=block.source_key,
                time=block.start_time,
                level=result.level,
            )

    def snapshot(self) -> Dict[str, object]:
        return {
            "source_key": self.source_key,
            "phase": str(self.phase),
            "last_emitted": self.last_emitted,
            "last_level": self.last_level,
            "probation_deadline": self.probation_deadline.isoformat(),
            "noisy_until": self.noisy_until.isoformat() if self.noisy_until else None,
            "sensitivity": self.sensitivity,
            "processed": self.processed,
            "emitted": self.emitted,
            "suppressed": self.suppressed,
        }


__all__ = ["StreamState"]
