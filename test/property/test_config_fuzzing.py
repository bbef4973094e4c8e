"""
Property-based configuration fuzzing tests.

These tests use Hypothesis to generate random, potentially invalid
configuration values and verify the loader handles them gracefully:
1. Invalid values are rejected with ConfigError (not crashes)
2. Valid edge-case values load and round-trip into StreamConfig
3. No silent acceptance of clearly wrong values

High-ROI fuzzing targets:
- Threshold tables (empty, unsorted, NaN, negative levels)
- Calibration scale and filter corners (zero, NaN, Inf, negative)
- Probation overrides (negative, non-numeric)
- Arbitrary JSON documents
"""
from __future__ import annotations

import json
import math

import pytest
from hypothesis import given, settings, strategies as st

from shared.config import Calibration, load_config
from shared.errors import CalibrationError, ConfigError


weird_floats = st.sampled_from([0.0, -0.0, float("nan"), float("inf"), float("-inf"), 1e-300, 1e300])

json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-10**6, max_value=10**6),
    st.floats(allow_nan=False, allow_infinity=False),
    st.text(max_size=5),
)
json_values = st.recursive(
    json_scalars,
    lambda children: st.lists(children, max_size=4) | st.dictionaries(st.text(max_size=5), children, max_size=4),
    max_leaves=12,
)


def _stream(**fields):
    doc = {"thresholds": [[0, 0], [100, 1], [500, 2]]}
    doc.update(fields)
    return {"NET.STA": doc}


class TestThresholdTables:
    @given(
        rows=st.lists(
            st.tuples(st.floats(min_value=0, max_value=1e6), st.integers(0, 12)),
            min_size=1,
            max_size=10,
        )
    )
    @settings(max_examples=100, deadline=None)
    def test_sorted_tables_load(self, rows):
        rows = sorted(rows)
        levels = sorted(level for _, level in rows)
        table = [[amp, level] for (amp, _), level in zip(rows, levels)]

        config = load_config({"NET.STA": {"thresholds": table}})["NET.STA"]

        assert config.breakpoints == tuple(float(amp) for amp, _ in table)
        assert config.levels == tuple(levels)

    @given(
        rows=st.lists(
            st.tuples(st.integers(0, 1000), st.integers(0, 12)),
            min_size=2,
            max_size=10,
        )
    )
    @settings(max_examples=100, deadline=None)
    def test_unsorted_tables_rejected(self, rows):
        amps = [a for a, _ in rows]
        levels = [lvl for _, lvl in rows]
        sorted_ok = amps == sorted(amps) and levels == sorted(levels)
        doc = {"NET.STA": {"thresholds": [list(row) for row in rows]}}

        if sorted_ok:
            load_config(doc)
        else:
            with pytest.raises(ConfigError):
                load_config(doc)

    @given(amp=weird_floats)
    @settings(max_examples=20, deadline=None)
    def test_non_finite_breakpoints_rejected(self, amp):
        doc = {"NET.STA": {"thresholds": [[amp, 0]]}}
        if math.isfinite(amp):
            load_config(doc)
        else:
            with pytest.raises(ConfigError):
                load_config(doc)

    @given(level=st.integers(max_value=-1))
    @settings(max_examples=20, deadline=None)
    def test_negative_levels_rejected(self, level):
        with pytest.raises(ConfigError):
            load_config({"NET.STA": {"thresholds": [[0, level]]}})


class TestCalibrationFuzzing:
    @given(scale=weird_floats)
    @settings(max_examples=20, deadline=None)
    def test_scale(self, scale):
        doc = _stream(calibration={"scale": scale})
        if math.isfinite(scale) and scale != 0:
            assert load_config(doc)["NET.STA"].calibration.scale == scale
        else:
            with pytest.raises(ConfigError):
                load_config(doc)

    @given(corner=st.one_of(weird_floats, st.floats(max_value=0.0)))
    @settings(max_examples=50, deadline=None)
    def test_filter_corner(self, corner):
        doc = _stream(calibration={"lowpass_hz": corner, "sample_rate": 100.0})
        if math.isfinite(corner) and corner > 0:
            load_config(doc)
        else:
            with pytest.raises(ConfigError):
                load_config(doc)

    @given(
        corner=st.floats(min_value=0.01, max_value=1e4),
        sample_rate=st.floats(min_value=1.0, max_value=1e4),
    )
    @settings(max_examples=100, deadline=None)
    def test_corner_must_sit_below_nyquist(self, corner, sample_rate):
        calibration = Calibration(lowpass_hz=corner)
        if corner < sample_rate / 2.0:
            assert calibration.validate_for(sample_rate) == sample_rate
        else:
            with pytest.raises(CalibrationError):
                calibration.validate_for(sample_rate)

    @given(probation=st.one_of(st.floats(max_value=-1e-9), st.just(float("nan")), st.text(max_size=3)))
    @settings(max_examples=50, deadline=None)
    def test_bad_probation_rejected(self, probation):
        with pytest.raises(ConfigError):
            load_config(_stream(probation=probation))


class TestArbitraryDocuments:
    @given(document=json_values)
    @settings(max_examples=200, deadline=None)
    def test_never_crashes(self, document):
        """Any JSON document either loads or raises ConfigError."""
        text = json.dumps(document)
        try:
            configs = load_config(text) if text.lstrip().startswith(("{", "[")) else load_config(
                {"doc": document}
            )
        except ConfigError:
            return
        for key, config in configs.items():
            assert config.source_key == key
            assert config.n_levels >= 1
