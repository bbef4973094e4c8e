"""Message delivery: sinks and the worker thread that feeds them."""

from .sinks import FanoutSink, JsonLinesSink, NullSink, PrintSink, Sink
from .worker import DeliveryWorker

__all__ = ["DeliveryWorker", "FanoutSink", "JsonLinesSink", "NullSink", "PrintSink", "Sink"]
