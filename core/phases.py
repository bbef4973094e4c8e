from __future__ import annotations

from enum import Enum


class Phase(Enum):
    """Lifecycle phase of a channel's flush state machine."""

    INITIALIZING = "initializing"
    ARMED = "armed"
    NOISY = "noisy"

    def __str__(self) -> str:
        return self.value


__all__ = ["Phase"]
