"""Delivery thread draining the message handoff queue into a sink."""
from __future__ import annotations

import logging
import queue
import threading
from typing import List, Optional, Union

from shared.models import EndOfStream, Message

from .sinks import Sink

logger = logging.getLogger(__name__)


class DeliveryWorker:
    """
    Consumes Message objects from a queue and hands each one to a sink.

    Failures (a False return or an exception from the sink) are logged and
    counted. They are not retried and never reach back into channel state.
    """

    def __init__(
        self,
        message_queue: "queue.Queue[Union[Message, type[EndOfStream]]]",
        sink: Sink,
        *,
        poll_timeout: float = 0.05,
        keep_failed: int = 100,
    ) -> None:
        self._queue = message_queue
        self._sink = sink
        self._poll_timeout = poll_timeout
        self._keep_failed = keep_failed

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._delivered = 0
        self._failed = 0
        self._failed_messages: List[Message] = []

    @property
    def delivered(self) -> int:
        with self._lock:
            return self._delivered

    @property
    def failed(self) -> int:
        with self._lock:
            return self._failed

    def failed_messages(self) -> List[Message]:
        with self._lock:
            return list(self._failed_messages)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            logger.warning("DeliveryWorker already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="DeliveryWorker",
            daemon=False,  # Non-daemon so queued messages are delivered before exit
        )
        self._thread.start()
        logger.info("DeliveryWorker started")

    def stop(self, join_timeout: float = 2.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=join_timeout)
            if self._thread.is_alive():
                logger.warning("DeliveryWorker did not stop within timeout")
            self._thread = None
        logger.info("DeliveryWorker stopped: %d delivered, %d failed", self.delivered, self.failed)

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def deliver(self, message: Message) -> bool:
        """Send one message synchronously, recording the outcome."""
        try:
            ok = bool(self._sink(message))
        except Exception as exc:
            logger.error("Delivery of %s raised: %s", message.to_json(), exc)
            ok = False
        with self._lock:
            if ok:
                self._delivered += 1
            else:
                self._failed += 1
                if self._keep_failed > 0:
                    self._failed_messages.append(message)
                    del self._failed_messages[: -self._keep_failed]
        if not ok:
            logger.error("Unable to deliver message %s", message.to_json())
        return ok

    def _run(self) -> None:
        while True:
            try:
                item = self._queue.get(timeout=self._poll_timeout)
            except queue.Empty:
                if self._stop_event.is_set():
                    break
                continue

            try:
                if item is EndOfStream:
                    logger.debug("DeliveryWorker received EndOfStream")
                    break

                if not isinstance(item, Message):
                    logger.warning("DeliveryWorker received non-Message: %s", type(item))
                    continue

                self.deliver(item)
            finally:
                self._queue.task_done()


__all__ = ["DeliveryWorker"]
