from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from shared.clock import ManualClock  # noqa: E402
from test.fixtures.blocks import T0  # noqa: E402


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)
