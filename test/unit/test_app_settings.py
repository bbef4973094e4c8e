from __future__ import annotations

import pytest

from shared.app_settings import RunSettings, parse_duration


@pytest.mark.parametrize(
    "text,seconds",
    [
        ("600", 600.0),
        ("2.5", 2.5),
        ("10m", 600.0),
        ("30s", 30.0),
        ("1h", 3600.0),
        ("1h30m", 5400.0),
        ("250ms", 0.25),
        ("1m0.5s", 60.5),
        ("0", 0.0),
    ],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["", "ten", "10x", "m10", "10m junk", "-5", "nan", "inf"])
def test_parse_duration_rejects(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_run_settings_defaults():
    settings = RunSettings()
    assert settings.config_path == "impact.json"
    assert settings.probation_sec == 600.0
    assert settings.sensitivity == 0
    assert settings.flap_tolerance == 5
    assert not settings.dry_run


@pytest.mark.parametrize(
    "kwargs",
    [
        {"probation_sec": -1.0},
        {"flap_tolerance": -1},
        {"flap_window_sec": 0.0},
        {"flap_cooldown_sec": -1.0},
        {"handoff_queue_size": -1},
    ],
)
def test_run_settings_validation(kwargs):
    with pytest.raises(ValueError):
        RunSettings(**kwargs)


def test_output_path_from_environment():
    settings = RunSettings().with_environment({"IMPACT_OUTPUT": "/tmp/out.jsonl"})
    assert settings.output_path == "/tmp/out.jsonl"


def test_explicit_output_path_wins_over_environment():
    settings = RunSettings(output_path="mine.jsonl").with_environment({"IMPACT_OUTPUT": "env.jsonl"})
    assert settings.output_path == "mine.jsonl"
