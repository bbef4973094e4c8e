"""
Shared data structures and configuration used by the core, sources and delivery.
"""

from .clock import Clock, ManualClock, SystemClock
from .config import Calibration, StreamConfig, ThresholdRow, load_config
from .errors import (
    CalibrationError,
    ConfigError,
    ImpactError,
    InvalidLevelError,
    SampleError,
    UnknownStreamError,
)
from .models import EndOfStream, Message, SampleBlock

__all__ = [
    "Calibration",
    "CalibrationError",
    "Clock",
    "ConfigError",
    "EndOfStream",
    "ImpactError",
    "InvalidLevelError",
    "ManualClock",
    "Message",
    "SampleBlock",
    "SampleError",
    "StreamConfig",
    "SystemClock",
    "ThresholdRow",
    "UnknownStreamError",
    "load_config",
]
