from __future__ import annotations

import logging
import queue
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Optional

from shared.errors import CalibrationError, SampleError
from shared.models import EndOfStream, Message, SampleBlock

from .registry import StreamRegistry

logger = logging.getLogger(__name__)


@dataclass
class DispatcherStats:
    received: int = 0
    processed: int = 0
    emitted: int = 0
    suppressed: int = 0
    skipped: Counter = field(default_factory=Counter)
    dropped: int = 0

    def snapshot(self) -> Dict[str, object]:
        return {
            "received": self.received,
            "processed": self.processed,
            "emitted": self.emitted,
            "suppressed": self.suppressed,
            "skipped": dict(self.skipped),
            "dropped": self.dropped,
        }


class Dispatcher:
    """Router thread that feeds decoded blocks to their channel and forwards messages.

    Blocks are taken from `block_queue` in order, so per-channel arrival order
    is preserved. Emitted messages go to `message_queue` for the delivery
    worker. Per-block errors are logged and skipped; they never stop the loop.
    """

    def __init__(
        self,
        block_queue: "queue.Queue[SampleBlock | EndOfStream]",
        message_queue: "queue.Queue[Message | EndOfStream]",
        registry: StreamRegistry,
        *,
        replay: bool = False,
        poll_timeout: float = 0.05,
        enqueue_timeout: float = 10.0,
    ) -> None:
        self._block_queue = block_queue
        self._message_queue = message_queue
        self._registry = registry
        self._replay = replay
        self._poll_timeout = poll_timeout
        self._enqueue_timeout = enqueue_timeout

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._stats = DispatcherStats()
        self._stats_lock = threading.Lock()

    @property
    def registry(self) -> StreamRegistry:
        return self._registry

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="DispatcherThread", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def snapshot(self) -> Dict[str, object]:
        with self._stats_lock:
            return self._stats.snapshot()

    def dispatch(self, block: SampleBlock) -> Optional[Message]:
        """Process one block synchronously and return the message to send, if any."""
        with self._stats_lock:
            self._stats.received += 1

        state = self._registry.resolve(block.source_key)
        if state is None:
            with self._stats_lock:
                self._stats.skipped["unknown"] += 1
            return None

        try:
            message = state.process(block, self._registry.gate)
        except SampleError as exc:
            logger.warning("data sample problem! %s: %s", block.source_key, exc)
            with self._stats_lock:
                self._stats.skipped["sample"] += 1
            return None
        except CalibrationError as exc:
            logger.warning("data processing problem! %s: %s", block.source_key, exc)
            with self._stats_lock:
                self._stats.skipped["calibration"] += 1
            return None

        with self._stats_lock:
            self._stats.processed += 1
            if message is None:
                self._stats.suppressed += 1
            else:
                self._stats.emitted += 1

        if message is not None and self._replay:
            now = self._registry.clock.now()
            message = message.with_time(now.replace(microsecond=0))
        return message

    def _run(self) -> None:
        while True:
            try:
                item = self._block_queue.get(timeout=self._poll_timeout)
            except queue.Empty:
                if self._stop_event.is_set():
                    self._forward_end_of_stream()
                    break
                continue

            try:
                if item is EndOfStream:
                    self._forward_end_of_stream()
                    break

                if not isinstance(item, SampleBlock):
                    logger.warning("Dispatcher received non-block item: %s", type(item))
                    continue

                try:
                    message = self.dispatch(item)
                except Exception as exc:
                    logger.exception("Dispatcher skipped bad block %s: %s", item.source_key, exc)
                    with self._stats_lock:
                        self._stats.skipped["error"] += 1
                    continue
                if message is not None:
                    self._enqueue(message)
            finally:
                self._block_queue.task_done()

    def _enqueue(self, message: Message) -> None:
        # The flush decision is already recorded; a full queue drops the message
        # rather than stalling every channel behind a slow sink.
        try:
            self._message_queue.put(message, block=True, timeout=self._enqueue_timeout)
        except queue.Full:
            logger.error(
                "Message queue blocked for %.1fs, dropping %s", self._enqueue_timeout, message.to_json()
            )
            with self._stats_lock:
                self._stats.dropped += 1

    def _forward_end_of_stream(self) -> None:
        try:
            self._message_queue.put(EndOfStream, block=True, timeout=self._enqueue_timeout)
        except queue.Full:
            logger.error("Unable to forward EndOfStream, message queue is full")


__all__ = ["Dispatcher", "DispatcherStats"]
