from __future__ import annotations

import logging
import queue
from typing import Dict, Iterable, Mapping, Optional

from daq.base_source import BlockSource
from delivery.sinks import Sink
from delivery.worker import DeliveryWorker
from shared.app_settings import RunSettings
from shared.clock import Clock, SystemClock
from shared.config import StreamConfig
from shared.models import EndOfStream, SampleBlock

from .dispatcher import Dispatcher
from .flush_gate import FlapSettings, FlushGate
from .registry import StreamRegistry


class ImpactRuntime:
    """
    Headless orchestrator: registry, dispatcher thread and delivery worker.

    Startup validates and initialises every channel before any thread starts,
    so configuration errors abort the run without partial startup.
    """

    def __init__(
        self,
        configs: Mapping[str, StreamConfig],
        sink: Sink,
        *,
        settings: Optional[RunSettings] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings or RunSettings()
        self.logger = logger or logging.getLogger(__name__)
        self.clock: Clock = clock or SystemClock()
        gate = FlushGate(
            FlapSettings(
                tolerance=self.settings.flap_tolerance,
                window_sec=self.settings.flap_window_sec,
                cooldown_sec=self.settings.flap_cooldown_sec,
            )
        )
        self.registry = StreamRegistry(configs, clock=self.clock, gate=gate)
        self.registry.init_all(self.settings.probation_sec, self.settings.sensitivity)

        self.block_queue: "queue.Queue[SampleBlock | EndOfStream]" = queue.Queue(maxsize=256)
        self.message_queue: queue.Queue = queue.Queue(maxsize=self.settings.handoff_queue_size)
        self.dispatcher = Dispatcher(
            self.block_queue,
            self.message_queue,
            self.registry,
            replay=self.settings.replay,
        )
        self.delivery = DeliveryWorker(self.message_queue, sink)
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self.delivery.start()
        self.dispatcher.start()
        self._started = True

    def feed(self, source: BlockSource) -> int:
        """Queue every block from `source`; returns the number queued."""
        if not self._started:
            raise RuntimeError("runtime not started")
        with source:
            return source.pump(self.block_queue)

    def finish(self, timeout: Optional[float] = None) -> None:
        """Signal end of input and wait for dispatch and delivery to drain."""
        self.block_queue.put(EndOfStream)
        self.dispatcher.join(timeout)
        self.delivery.join(timeout)
        self._started = False

    def run(self, sources: Iterable[BlockSource]) -> Dict[str, object]:
        self.start()
        try:
            for source in sources:
                count = self.feed(source)
                self.logger.debug("queued %d blocks", count)
        finally:
            self.finish()
        return self.snapshot()

    def snapshot(self) -> Dict[str, object]:
        return {
            "dispatcher": self.dispatcher.snapshot(),
            "delivered": self.delivery.delivered,
            "failed": self.delivery.failed,
            "unknown": sorted(self.registry.unknown_keys()),
        }


__all__ = ["ImpactRuntime"]
