from __future__ import annotations

import logging
import math
import os
import re
from dataclasses import dataclass, replace
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_PROBATION_SEC = 600.0
DEFAULT_SENSITIVITY = 0
DEFAULT_FLAP_TOLERANCE = 5
DEFAULT_FLAP_WINDOW_SEC = 60.0
DEFAULT_FLAP_COOLDOWN_SEC = 300.0

_DURATION_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(text: str) -> float:
    """Parse ``"600"``, ``"10m"``, ``"1h30m"`` or ``"2.5s"`` into seconds."""
    value = str(text).strip()
    if not value:
        raise ValueError("empty duration")
    try:
        seconds = float(value)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_RE.finditer(value):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(value) or pos == 0:
            raise ValueError(f"invalid duration: {text!r}") from None
    if not math.isfinite(seconds):
        raise ValueError(f"invalid duration: {text!r}")
    if seconds < 0:
        raise ValueError(f"duration must not be negative: {text!r}")
    return seconds


@dataclass(frozen=True)
class RunSettings:
    """Process-wide runtime options, filled from the command line."""

    config_path: str = "impact.json"
    verbose: bool = False
    dry_run: bool = False
    replay: bool = False
    probation_sec: float = DEFAULT_PROBATION_SEC
    sensitivity: int = DEFAULT_SENSITIVITY
    flap_tolerance: int = DEFAULT_FLAP_TOLERANCE
    flap_window_sec: float = DEFAULT_FLAP_WINDOW_SEC
    flap_cooldown_sec: float = DEFAULT_FLAP_COOLDOWN_SEC
    output_path: Optional[str] = None
    handoff_queue_size: int = 0

    def __post_init__(self) -> None:
        if self.probation_sec < 0:
            raise ValueError("probation must not be negative")
        if self.flap_tolerance < 0:
            raise ValueError("flap_tolerance must not be negative")
        if self.flap_window_sec <= 0:
            raise ValueError("flap_window must be positive")
        if self.flap_cooldown_sec < 0:
            raise ValueError("flap_cooldown must not be negative")
        if self.handoff_queue_size < 0:
            raise ValueError("handoff_queue_size must not be negative")

    def with_environment(self, environ: Optional[Mapping[str, str]] = None) -> "RunSettings":
        """Fill unset options from ``IMPACT_*`` environment variables."""
        env = os.environ if environ is None else environ
        updates = {}
        if self.output_path is None and env.get("IMPACT_OUTPUT"):
            updates["output_path"] = env["IMPACT_OUTPUT"]
            logger.debug("Using output path from IMPACT_OUTPUT: %s", updates["output_path"])
        if not updates:
            return self
        return replace(self, **updates)


__all__ = [
    "RunSettings",
    "parse_duration",
    "DEFAULT_PROBATION_SEC",
    "DEFAULT_SENSITIVITY",
    "DEFAULT_FLAP_TOLERANCE",
    "DEFAULT_FLAP_WINDOW_SEC",
    "DEFAULT_FLAP_COOLDOWN_SEC",
]
