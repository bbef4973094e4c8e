"""impact-stream: sparse shaking intensity change messages from seismic streams."""

__version__ = "0.1.0"
