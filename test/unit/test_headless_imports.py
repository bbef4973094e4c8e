"""Verify the processing core is importable without ObsPy.

Only the miniSEED reader needs ObsPy; the core, config and delivery layers
must keep working when it is absent.
"""
from __future__ import annotations

import sys


def _forget(monkeypatch, prefixes):
    for name in [k for k in sys.modules if any(k == p or k.startswith(p + ".") for p in prefixes)]:
        monkeypatch.delitem(sys.modules, name, raising=False)


class TestHeadlessImports:
    """Core modules can be imported with ObsPy blocked."""

    def test_core_import_without_obspy(self, monkeypatch):
        _forget(monkeypatch, ["core", "daq", "delivery", "shared"])
        monkeypatch.setitem(sys.modules, "obspy", None)

        from core import Dispatcher, ImpactRuntime, StreamRegistry

        assert Dispatcher is not None
        assert ImpactRuntime is not None
        assert StreamRegistry is not None

    def test_daq_package_does_not_pull_in_obspy(self, monkeypatch):
        _forget(monkeypatch, ["daq"])
        monkeypatch.setitem(sys.modules, "obspy", None)

        from daq import BlockSource

        assert BlockSource is not None

    def test_cli_module_import_without_obspy(self, monkeypatch):
        _forget(monkeypatch, ["impact", "core", "daq", "delivery", "shared"])
        monkeypatch.setitem(sys.modules, "obspy", None)

        from impact.main import build_parser

        assert build_parser().prog == "impact"
