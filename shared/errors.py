"""Exception types raised by the stream processing core."""

from __future__ import annotations


class ImpactError(Exception):
    """Base class for all impact-stream errors."""


class ConfigError(ImpactError, ValueError):
    """Malformed configuration or an invalid threshold table. Fatal at startup."""


class InvalidLevelError(ImpactError, ValueError):
    """Sensitivity level outside the configured threshold rows. Fatal at startup."""

    def __init__(self, source_key: str, level: int, n_rows: int) -> None:
        super().__init__(
            f"{source_key}: sensitivity level {level} out of range [0, {n_rows - 1}]"
        )
        self.source_key = source_key
        self.level = level
        self.n_rows = n_rows


class UnknownStreamError(ImpactError, LookupError):
    """A decoded block references a source key with no configuration."""

    def __init__(self, source_key: str) -> None:
        super().__init__(f"unable to find stream config: {source_key}")
        self.source_key = source_key


class SampleError(ImpactError, ValueError):
    """Empty or otherwise unusable sample sequence."""


class CalibrationError(ImpactError, ValueError):
    """Calibration parameters are insufficient to process a block."""


__all__ = [
    "ImpactError",
    "ConfigError",
    "InvalidLevelError",
    "UnknownStreamError",
    "SampleError",
    "CalibrationError",
]
