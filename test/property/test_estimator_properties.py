"""
Property-based tests for intensity estimation and the flush state machine.

These tests check invariants on randomly generated tables and blocks:
1. The estimate is monotonic in the block's absolute peak
2. The estimate only ever returns a level present in the table (or 0)
3. Emitted levels never repeat back to back
4. With suppression disabled, emissions are exactly the level changes
"""
from __future__ import annotations

from typing import List, Tuple

import numpy as np
from hypothesis import given, settings, strategies as st

from core.estimator import estimate, lookup_level
from core.flush_gate import FlapSettings, FlushGate
from core.stream_state import StreamState
from shared.clock import ManualClock
from shared.config import Calibration, ThresholdRow
from test.fixtures.blocks import T0, make_config


@st.composite
def threshold_tables(draw) -> Tuple[ThresholdRow, ...]:
    """Non-decreasing (amplitude, level) tables with 1-8 rows."""
    n_rows = draw(st.integers(min_value=1, max_value=8))
    amp_steps = draw(st.lists(st.integers(0, 500), min_size=n_rows, max_size=n_rows))
    level_steps = draw(st.lists(st.integers(0, 2), min_size=n_rows, max_size=n_rows))
    amplitudes = np.cumsum(amp_steps)
    levels = np.cumsum(level_steps)
    return tuple(ThresholdRow(float(a), int(lvl)) for a, lvl in zip(amplitudes, levels))


peaks = st.floats(min_value=0.0, max_value=5_000.0, allow_nan=False)


class TestEstimatorProperties:
    @given(table=threshold_tables(), a=peaks, b=peaks, data=st.data())
    @settings(max_examples=200, deadline=None)
    def test_monotonic_in_peak(self, table, a: float, b: float, data):
        sensitivity = data.draw(st.integers(0, len(table) - 1))
        low, high = min(a, b), max(a, b)
        assert lookup_level(low, table, sensitivity) <= lookup_level(high, table, sensitivity)

    @given(table=threshold_tables(), peak=peaks, data=st.data())
    @settings(max_examples=200, deadline=None)
    def test_level_comes_from_table(self, table, peak: float, data):
        sensitivity = data.draw(st.integers(0, len(table) - 1))
        level = lookup_level(peak, table, sensitivity)
        assert level == 0 or level in {row.level for row in table}
        if peak < table[0].amplitude:
            assert level == 0

    @given(
        table=threshold_tables(),
        samples=st.lists(st.integers(-5_000, 5_000), min_size=1, max_size=64),
    )
    @settings(max_examples=100, deadline=None)
    def test_sign_does_not_matter(self, table, samples: List[int]):
        raw = np.asarray(samples, dtype=np.int64)
        assert estimate(raw, Calibration(), table) == estimate(-raw, Calibration(), table)

    @given(
        table=threshold_tables(),
        samples=st.lists(st.integers(-5_000, 5_000), min_size=1, max_size=64),
        extra=st.integers(0, 5_000),
    )
    @settings(max_examples=100, deadline=None)
    def test_larger_block_peak_never_lowers_level(self, table, samples: List[int], extra: int):
        raw = np.asarray(samples, dtype=np.int64)
        louder = raw.copy()
        idx = int(np.argmax(np.abs(louder)))
        louder[idx] = (abs(int(louder[idx])) + extra) * (1 if louder[idx] >= 0 else -1)
        assert estimate(raw, Calibration(), table) <= estimate(louder, Calibration(), table)


class TestFlushGateProperties:
    @given(levels=st.lists(st.integers(0, 4), min_size=1, max_size=60))
    @settings(max_examples=100, deadline=None)
    def test_emissions_are_exactly_the_changes(self, levels: List[int]):
        clock = ManualClock(T0)
        gate = FlushGate(FlapSettings(tolerance=0))
        state = StreamState(make_config(), clock=clock).init("NET.STA", 0.0, 0)

        emitted = []
        for level in levels:
            if gate.decide(state, level):
                emitted.append(level)
            clock.advance(1.0)

        expected = [levels[0]] + [cur for prev, cur in zip(levels, levels[1:]) if cur != prev]
        assert emitted == expected

    @given(
        levels=st.lists(st.integers(0, 4), min_size=1, max_size=80),
        tolerance=st.integers(1, 6),
        step=st.floats(min_value=0.1, max_value=30.0),
    )
    @settings(max_examples=100, deadline=None)
    def test_no_back_to_back_duplicates(self, levels: List[int], tolerance: int, step: float):
        clock = ManualClock(T0)
        gate = FlushGate(FlapSettings(tolerance=tolerance, window_sec=60.0, cooldown_sec=90.0))
        state = StreamState(make_config(), clock=clock).init("NET.STA", 0.0, 0)

        emitted = []
        for level in levels:
            if gate.decide(state, level):
                emitted.append(level)
                assert state.last_emitted == level
            clock.advance(step)

        assert all(prev != cur for prev, cur in zip(emitted, emitted[1:]))
        assert state.emitted + state.suppressed == len(levels)
