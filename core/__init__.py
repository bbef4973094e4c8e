"""Per-channel stream processing core."""

from .calibration import ChannelConditioner
from .dispatcher import Dispatcher, DispatcherStats
from .estimator import IntensityEstimator, estimate, lookup_level
from .flush_gate import FlapSettings, FlushGate
from .phases import Phase
from .registry import StreamRegistry
from .runtime import ImpactRuntime
from .stream_state import StreamState
from shared.models import EndOfStream, Message, SampleBlock

__all__ = [
    "ChannelConditioner",
    "Dispatcher",
    "DispatcherStats",
    "EndOfStream",
    "FlapSettings",
    "FlushGate",
    "ImpactRuntime",
    "IntensityEstimator",
    "Message",
    "Phase",
    "SampleBlock",
    "StreamRegistry",
    "StreamState",
    "estimate",
    "lookup_level",
]
