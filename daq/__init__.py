"""Block sources that decode recordings into SampleBlocks.

The miniSEED reader lives in :mod:`daq.miniseed_source` and pulls in ObsPy;
import it directly when needed.
"""

from .base_source import BlockSource

__all__ = ["BlockSource"]
