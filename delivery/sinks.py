"""Delivery sinks: where emitted messages end up.

A sink is any callable taking a Message and returning True on success. Sinks
do their own retrying if they need it; the core never retries.
"""
from __future__ import annotations

import logging
import os
import sys
import threading
from typing import Callable, List, Optional, Sequence, TextIO

from shared.models import Message

logger = logging.getLogger(__name__)

Sink = Callable[[Message], bool]


class PrintSink:
    """Writes each message as a JSON line to a text stream (stdout by default)."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    def __call__(self, message: Message) -> bool:
        stream = self._stream if self._stream is not None else sys.stdout
        with self._lock:
            stream.write(message.to_json() + "\n")
            stream.flush()
        return True


class JsonLinesSink:
    """Appends messages to a JSON-lines file, one message per line."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._file: Optional[TextIO] = None
        self.lines_written = 0

    @property
    def path(self) -> str:
        return self._path

    def open(self) -> None:
        if self._file is not None:
            return
        out_dir = os.path.dirname(self._path)
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)
        self._file = open(self._path, "a", encoding="utf-8")
        logger.info("JsonLinesSink writing to %s", self._path)

    def __call__(self, message: Message) -> bool:
        with self._lock:
            if self._file is None:
                self.open()
            try:
                self._file.write(message.to_json() + "\n")
                self._file.flush()
            except OSError as exc:
                logger.error("Error writing message to %s: %s", self._path, exc)
                return False
            self.lines_written += 1
        return True

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def __enter__(self) -> "JsonLinesSink":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class NullSink:
    """Dry run: accepts and discards every message."""

    def __init__(self) -> None:
        self.count = 0

    def __call__(self, message: Message) -> bool:
        self.count += 1
        logger.debug("dry run, not sending %s", message.to_json())
        return True


class FanoutSink:
    """Sends to every sink; succeeds only if all of them do."""

    def __init__(self, sinks: Sequence[Sink]) -> None:
        self._sinks: List[Sink] = list(sinks)

    def __call__(self, message: Message) -> bool:
        ok = True
        for sink in self._sinks:
            try:
                result = sink(message)
            except Exception as exc:
                logger.error("Sink %r failed: %s", sink, exc)
                result = False
            ok = ok and bool(result)
        return ok

    def close(self) -> None:
        for sink in self._sinks:
            close = getattr(sink, "close", None)
            if close is not None:
                close()


__all__ = ["Sink", "PrintSink", "JsonLinesSink", "NullSink", "FanoutSink"]
