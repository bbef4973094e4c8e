from __future__ import annotations

"""
Base class for decoded block sources.

Goals:
- Simple, stable contract for the dispatcher (SampleBlocks over a queue).
- Clean lifecycle: iterate → close, usable as a context manager.
- Decoding problems are the source's business: bad records are logged and
  skipped, never handed to the core.
"""

import logging
import queue
from abc import ABC, abstractmethod
from typing import Iterator, Optional

from shared.models import EndOfStream, SampleBlock

logger = logging.getLogger(__name__)


class BlockSource(ABC):
    """
    Abstract base for all block sources.

    Typical flow:
        with MiniSeedFileSource(path) as source:
            for block in source:
                dispatcher.dispatch(block)
    """

    def __init__(self) -> None:
        self._closed = False
        self.blocks_read = 0
        self.blocks_skipped = 0

    @abstractmethod
    def _iter_blocks(self) -> Iterator[SampleBlock]:
        """Yield decoded blocks in arrival order."""
        raise NotImplementedError

    def __iter__(self) -> Iterator[SampleBlock]:
        for block in self._iter_blocks():
            if self._closed:
                break
            self.blocks_read += 1
            yield block

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "BlockSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def pump(
        self,
        target: "queue.Queue[SampleBlock | EndOfStream]",
        *,
        end_of_stream: bool = False,
        timeout: Optional[float] = None,
    ) -> int:
        """Put every block on `target`, blocking when it is full. Returns the count."""
        count = 0
        for block in self:
            target.put(block, block=True, timeout=timeout)
            count += 1
        if end_of_stream:
            target.put(EndOfStream, block=True, timeout=timeout)
        return count


__all__ = ["BlockSource"]
