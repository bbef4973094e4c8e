# daq/miniseed_source.py
"""miniSEED file reader that replays a recording one data record at a time."""

from __future__ import annotations

import io
import logging
from datetime import timezone
from pathlib import Path
from typing import Iterator, List, Optional, Union

import numpy as np
from obspy import read
from obspy.core import Trace
from obspy.io.mseed.util import get_record_information

from shared.models import SampleBlock, normalize_label

from .base_source import BlockSource

logger = logging.getLogger(__name__)

DEFAULT_RECORD_LENGTH = 512


def source_key_for(trace: Trace) -> str:
    """Lookup key in ``NET_STA_LOC_CHA`` form."""
    stats = trace.stats
    return "_".join((stats.network, stats.station, stats.location, stats.channel))


def channel_label_for(trace: Trace) -> str:
    """Message label in ``NET.STA`` form."""
    stats = trace.stats
    return normalize_label(f"{stats.network}_{stats.station}")


def trace_to_block(trace: Trace) -> SampleBlock:
    start = trace.stats.starttime.datetime.replace(tzinfo=timezone.utc)
    rate = float(trace.stats.sampling_rate)
    return SampleBlock(
        source_key=source_key_for(trace),
        channel_label=channel_label_for(trace),
        start_time=start,
        samples=np.asarray(trace.data),
        sample_rate=rate if rate > 0 else None,
    )


def decode_record(blob: bytes) -> List[SampleBlock]:
    """Decode one miniSEED record into SampleBlocks (usually exactly one).

    Raises whatever ObsPy raises for undecodable input.
    """
    stream = read(io.BytesIO(blob), format="MSEED")
    return [trace_to_block(trace) for trace in stream]


class MiniSeedFileSource(BlockSource):
    """
    Replays a miniSEED file as a sequence of decoded blocks.

    The file is read in fixed-size records; each record is decoded on its own
    so block boundaries match the recording. Records that fail to decode are
    logged and skipped. When `record_length` is None it is detected from the
    first record's header.
    """

    def __init__(self, path: Union[str, Path], *, record_length: Optional[int] = DEFAULT_RECORD_LENGTH) -> None:
        super().__init__()
        self._path = Path(path)
        if record_length is not None and record_length <= 0:
            raise ValueError("record_length must be positive")
        self._record_length = record_length

    @property
    def path(self) -> Path:
        return self._path

    def _detect_record_length(self) -> int:
        try:
            info = get_record_information(str(self._path))
        except Exception as exc:
            logger.warning("Unable to detect record length of %s (%s); using %d", self._path, exc, DEFAULT_RECORD_LENGTH)
            return DEFAULT_RECORD_LENGTH
        return int(info.get("record_length") or DEFAULT_RECORD_LENGTH)

    def _iter_blocks(self) -> Iterator[SampleBlock]:
        record_length = self._record_length or self._detect_record_length()
        logger.info("processing miniseed file: %s (record length %d)", self._path, record_length)
        with self._path.open("rb") as handle:
            index = 0
            while not self.closed:
                blob = handle.read(record_length)
                if not blob:
                    break
                if len(blob) < record_length:
                    logger.warning("%s: truncated record %d (%d bytes)", self._path, index, len(blob))
                try:
                    blocks = decode_record(blob)
                except Exception as exc:
                    logger.warning("%s: unable to decode record %d: %s", self._path, index, exc)
                    self.blocks_skipped += 1
                    index += 1
                    continue
                for block in blocks:
                    yield block
                index += 1


__all__ = [
    "DEFAULT_RECORD_LENGTH",
    "MiniSeedFileSource",
    "channel_label_for",
    "decode_record",
    "source_key_for",
    "trace_to_block",
]
