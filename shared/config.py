"""Per-channel stream configuration: calibration and intensity threshold tables.

The on-disk format is a JSON object keyed by source key::

    {
        "NZ_WEL_20_HNZ": {
            "calibration": {"scale": 0.0001, "offset": 0.0, "units": "m/s^2"},
            "thresholds": [[0.0, 0], [0.01, 1], [0.05, 2]],
            "probation": 600,
            "sensitivity": 0
        }
    }

Thresholds may also be written as ``{"amplitude": .., "level": ..}`` objects.
Everything except ``thresholds`` is optional; the default calibration is the
identity mapping (physical amplitude equals the raw count).
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .errors import CalibrationError, ConfigError

logger = logging.getLogger(__name__)

ConfigSource = Union[str, Path, Mapping[str, Any]]


@dataclass(frozen=True)
class Calibration:
    """Raw count to physical amplitude conversion for a single channel."""

    scale: float = 1.0
    offset: float = 0.0
    demean: bool = False
    units: str = "counts"
    highpass_hz: Optional[float] = None
    highpass_order: int = 2
    lowpass_hz: Optional[float] = None
    lowpass_order: int = 4
    sample_rate: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    def filters_enabled(self) -> bool:
        return self.highpass_hz is not None or self.lowpass_hz is not None

    def validate(self) -> None:
        if not math.isfinite(self.scale) or self.scale == 0:
            raise ValueError("scale must be finite and non-zero")
        if not math.isfinite(self.offset):
            raise ValueError("offset must be finite")
        if self.highpass_hz is not None:
            if not (math.isfinite(self.highpass_hz) and self.highpass_hz > 0):
                raise ValueError("highpass_hz must be positive")
            if self.highpass_order <= 0:
                raise ValueError("highpass_order must be positive")
        if self.lowpass_hz is not None:
            if not (math.isfinite(self.lowpass_hz) and self.lowpass_hz > 0):
                raise ValueError("lowpass_hz must be positive")
            if self.lowpass_order <= 0:
                raise ValueError("lowpass_order must be positive")
        if self.sample_rate is not None and not (
            math.isfinite(self.sample_rate) and self.sample_rate > 0
        ):
            raise ValueError("sample_rate must be positive")

    def validate_for(self, sample_rate: Optional[float]) -> float:
        """Return the sample rate to filter at, or raise CalibrationError."""
        rate = sample_rate if sample_rate is not None else self.sample_rate
        if rate is None or not (rate > 0):
            raise CalibrationError("filters configured but no sample rate is known")
        nyquist = rate / 2.0
        if self.highpass_hz is not None and not (self.highpass_hz < nyquist):
            raise CalibrationError(
                f"highpass_hz {self.highpass_hz} must be below Nyquist ({nyquist})"
            )
        if self.lowpass_hz is not None and not (self.lowpass_hz < nyquist):
            raise CalibrationError(
                f"lowpass_hz {self.lowpass_hz} must be below Nyquist ({nyquist})"
            )
        return float(rate)


@dataclass(frozen=True)
class ThresholdRow:
    amplitude: float
    level: int


@dataclass(frozen=True)
class StreamConfig:
    """Immutable calibration and threshold parameters for one source key."""

    source_key: str
    thresholds: Tuple[ThresholdRow, ...]
    calibration: Calibration = field(default_factory=Calibration)
    probation: Optional[float] = None
    sensitivity: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.source_key:
            raise ConfigError("source key must not be empty")
        rows = tuple(self.thresholds)
        object.__setattr__(self, "thresholds", rows)
        validate_thresholds(self.source_key, rows)
        try:
            self.calibration.validate()
        except ValueError as exc:
            raise ConfigError(f"{self.source_key}: {exc}") from exc
        if self.probation is not None and not (
            math.isfinite(self.probation) and self.probation >= 0
        ):
            raise ConfigError(f"{self.source_key}: probation must be non-negative")

    @property
    def n_levels(self) -> int:
        return len(self.thresholds)

    @property
    def breakpoints(self) -> Tuple[float, ...]:
        return tuple(row.amplitude for row in self.thresholds)

    @property
    def levels(self) -> Tuple[int, ...]:
        return tuple(row.level for row in self.thresholds)


def validate_thresholds(source_key: str, rows: Iterable[ThresholdRow]) -> None:
    """Reject tables that are empty or not non-decreasing in both fields."""
    rows = list(rows)
    if not rows:
        raise ConfigError(f"{source_key}: threshold table must not be empty")
    previous: Optional[ThresholdRow] = None
    for idx, row in enumerate(rows):
        if not math.isfinite(row.amplitude):
            raise ConfigError(f"{source_key}: threshold row {idx} amplitude must be finite")
        if row.level < 0:
            raise ConfigError(f"{source_key}: threshold row {idx} level must not be negative")
        if previous is not None:
            if row.amplitude < previous.amplitude:
                raise ConfigError(
                    f"{source_key}: threshold row {idx} amplitude {row.amplitude} "
                    f"is below previous {previous.amplitude}"
                )
            if row.level < previous.level:
                raise ConfigError(
                    f"{source_key}: threshold row {idx} level {row.level} "
                    f"is below previous {previous.level}"
                )
        previous = row


# ----------------------------
# Loading
# ----------------------------

def _reject_duplicates(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ConfigError(f"duplicate key in configuration: {key}")
        result[key] = value
    return result


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text, object_pairs_hook=_reject_duplicates)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON configuration: {exc}") from exc


def _number(source_key: str, name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{source_key}: {name} must be a number, got {value!r}")
    return float(value)


def _integer(source_key: str, name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{source_key}: {name} must be an integer, got {value!r}")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if not isinstance(value, int):
        raise ConfigError(f"{source_key}: {name} must be an integer, got {value!r}")
    return value


def _parse_row(source_key: str, idx: int, raw: Any) -> ThresholdRow:
    if isinstance(raw, Mapping):
        if set(raw) != {"amplitude", "level"}:
            raise ConfigError(
                f"{source_key}: threshold row {idx} needs exactly 'amplitude' and 'level'"
            )
        amplitude, level = raw["amplitude"], raw["level"]
    elif isinstance(raw, (list, tuple)) and len(raw) == 2:
        amplitude, level = raw
    else:
        raise ConfigError(f"{source_key}: threshold row {idx} is malformed: {raw!r}")
    return ThresholdRow(
        amplitude=_number(source_key, f"threshold row {idx} amplitude", amplitude),
        level=_integer(source_key, f"threshold row {idx} level", level),
    )


_CALIBRATION_FIELDS = {
    "scale": _number,
    "offset": _number,
    "highpass_hz": _number,
    "lowpass_hz": _number,
    "sample_rate": _number,
    "highpass_order": _integer,
    "lowpass_order": _integer,
}


def _parse_calibration(source_key: str, raw: Any) -> Calibration:
    if raw is None:
        return Calibration()
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{source_key}: calibration must be an object")
    params: Dict[str, Any] = {}
    for name, value in raw.items():
        if name in _CALIBRATION_FIELDS:
            if value is None and name in ("highpass_hz", "lowpass_hz", "sample_rate"):
                params[name] = None
                continue
            params[name] = _CALIBRATION_FIELDS[name](source_key, f"calibration.{name}", value)
        elif name == "demean":
            if not isinstance(value, bool):
                raise ConfigError(f"{source_key}: calibration.demean must be true or false")
            params[name] = value
        elif name == "units":
            params[name] = str(value)
        else:
            raise ConfigError(f"{source_key}: unknown calibration field {name!r}")
    return Calibration(**params)


_STREAM_FIELDS = {"thresholds", "calibration", "probation", "sensitivity"}


def parse_stream(source_key: str, raw: Any) -> StreamConfig:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{source_key}: stream entry must be an object")
    unknown = set(raw) - _STREAM_FIELDS
    if unknown:
        raise ConfigError(f"{source_key}: unknown fields {sorted(unknown)}")
    if "thresholds" not in raw:
        raise ConfigError(f"{source_key}: missing thresholds")
    table = raw["thresholds"]
    if not isinstance(table, (list, tuple)):
        raise ConfigError(f"{source_key}: thresholds must be a list")
    rows = tuple(_parse_row(source_key, idx, item) for idx, item in enumerate(table))

    probation = raw.get("probation")
    if probation is not None:
        probation = _number(source_key, "probation", probation)
    sensitivity = raw.get("sensitivity")
    if sensitivity is not None:
        sensitivity = _integer(source_key, "sensitivity", sensitivity)

    return StreamConfig(
        source_key=source_key,
        thresholds=rows,
        calibration=_parse_calibration(source_key, raw.get("calibration")),
        probation=probation,
        sensitivity=sensitivity,
    )


def load_config(source: ConfigSource) -> Dict[str, StreamConfig]:
    """Load stream configuration from a path, a JSON string or a mapping.

    Raises:
        ConfigError: unreadable or malformed input, duplicate source keys or an
            invalid threshold table.
    """
    if isinstance(source, Mapping):
        document: Any = source
    elif isinstance(source, Path) or (
        isinstance(source, str) and not source.lstrip().startswith(("{", "["))
    ):
        path = Path(source)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"unable to read stream config {path}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise ConfigError(f"stream config {path} is not valid UTF-8: {exc}") from exc
        document = _parse_json(text)
    else:
        document = _parse_json(source)

    if not isinstance(document, Mapping):
        raise ConfigError("stream configuration must be an object keyed by source key")

    streams: Dict[str, StreamConfig] = {}
    for source_key, raw in document.items():
        if not isinstance(source_key, str) or not source_key:
            raise ConfigError(f"invalid source key: {source_key!r}")
        streams[source_key] = parse_stream(source_key, raw)
    logger.info("Loaded %d stream configurations", len(streams))
    return streams


__all__ = [
    "Calibration",
    "ThresholdRow",
    "StreamConfig",
    "ConfigSource",
    "load_config",
    "parse_stream",
    "validate_thresholds",
]
