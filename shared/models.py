from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import numpy as np


def _freeze_array(array: np.ndarray, *, ndim: int | None = None, dtype=None) -> np.ndarray:
    """Return a read-only, C-contiguous copy of `array`, validating dimensions."""
    arr = np.array(array, copy=True, order="C", dtype=dtype)
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    arr.setflags(write=False)
    return arr


def _as_utc(value: datetime) -> datetime:
    if not isinstance(value, datetime):
        raise TypeError("time must be a datetime")
    if value.tzinfo is None:
        raise ValueError("time must be timezone-aware")
    return value.astimezone(timezone.utc)


def format_time(value: datetime) -> str:
    """Render a timestamp as RFC 3339 in UTC with a ``Z`` suffix."""
    text = _as_utc(value).isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def normalize_label(source: str) -> str:
    """Human-readable channel label: ``NZ_WEL`` -> ``NZ.WEL``."""
    return source.rstrip("\x00").replace("_", ".")


# ----------------------------
# Streaming data models
# ----------------------------

@dataclass(frozen=True)
class SampleBlock:
    """One decoded block of raw amplitude samples for a single source key."""

    source_key: str
    channel_label: str
    start_time: datetime
    samples: np.ndarray = field(repr=False)
    sample_rate: Optional[float] = None

    def __post_init__(self) -> None:
        if not isinstance(self.source_key, str) or not self.source_key:
            raise ValueError("source_key must be a non-empty string")
        if not isinstance(self.channel_label, str):
            raise ValueError("channel_label must be a string")
        if self.sample_rate is not None and not (self.sample_rate > 0):
            raise ValueError("sample_rate must be positive")

        samples = np.asarray(self.samples)
        if samples.dtype.kind in "iu":
            dtype = np.int64
        elif samples.dtype.kind == "f":
            # Some encodings (FLOAT32/FLOAT64 records) decode to floats.
            dtype = np.float64
        else:
            raise ValueError(f"samples must be numeric, got dtype {samples.dtype}")
        object.__setattr__(self, "samples", _freeze_array(samples, ndim=1, dtype=dtype))
        object.__setattr__(self, "start_time", _as_utc(self.start_time))

    @property
    def n_samples(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> Optional[float]:
        if self.sample_rate is None:
            return None
        return self.n_samples / self.sample_rate


@dataclass(frozen=True)
class Message:
    """Intensity change notification for one channel."""

    source: str
    src_name: str
    time: datetime
    level: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "time", _as_utc(self.time))
        object.__setattr__(self, "level", int(self.level))

    def with_time(self, when: datetime) -> "Message":
        return replace(self, time=when)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "srcName": self.src_name,
            "time": format_time(self.time),
            "level": self.level,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Message":
        raw_time = str(payload["time"])
        if raw_time.endswith("Z"):
            raw_time = raw_time[:-1] + "+00:00"
        return cls(
            source=str(payload["source"]),
            src_name=str(payload["srcName"]),
            time=datetime.fromisoformat(raw_time),
            level=int(payload["level"]),
        )


def _restore_end_of_stream() -> "_EndOfStreamSentinel":
    return EndOfStream


class _EndOfStreamSentinel:
    __slots__ = ()

    def __repr__(self) -> str:
        return "EndOfStream"

    def __reduce__(self):
        return (_restore_end_of_stream, ())


EndOfStream = _EndOfStreamSentinel()


__all__ = [
    "SampleBlock",
    "Message",
    "EndOfStream",
    "format_time",
    "normalize_label",
]
