"""
Tests for Norma MINSAL parsing and the cached norm table
"""
import threading
from decimal import Decimal
import numpy as np
import pandas as pd
import pytest
import requests
from grd_etl.core.errors import NormLoadError
from grd_etl.extract import extract_norm
from grd_etl.extract.extract_norm import load_norm, parse_norm_frame, read_norm_frame
from grd_etl.services.norm_table import NormTable
from conftest import G1, G2


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class CountingLoader:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def __call__(self, source):
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def test_parse_norm_frame():
    df = pd.DataFrame({
        "GRD ": [11101.0, "G2", "G3", "G4", None],
        "Peso Total": ["1,2", "0.8", "1", "1", "1"],
        "Punto Corte Inferior": ["2", "1", np.nan, "9", "1"],
        "Punto Corte Superior": ["8", "5", "4", "3", "2"],
        "Precio Base": ["1000000", "", "1", "1", "1"],
        "Percentil 50": ["3", None, None, None, None],
    })
    entries = parse_norm_frame(df)
    assert sorted(entries) == ["11101", "G2"]
    e = entries["11101"]
    assert e.weight == Decimal("1.2")
    assert (e.lower_cut, e.upper_cut) == (2, 8)
    assert e.base_tariff == Decimal("1000000")
    assert e.p50 == Decimal("3")
    assert e.p75 is None
    assert entries["G2"].base_tariff == Decimal("0")

def test_parse_norm_frame_requires_code_column():
    with pytest.raises(NormLoadError):
        parse_norm_frame(pd.DataFrame({"Peso Total": ["1"]}))

def test_load_norm_from_csv(tmp_path):
    path = tmp_path / "norma.csv"
    path.write_text(
        "GRD,Peso Total,Punto Corte Inferior,Punto Corte Superior,Precio Base\n"
        "G1,1.2,2,8,1000000\n",
        encoding="utf-8",
    )
    entries = load_norm(path)
    assert entries["G1"].upper_cut == 8

def test_missing_file_is_a_norm_load_error(tmp_path):
    with pytest.raises(NormLoadError):
        read_norm_frame(tmp_path / "missing.xlsx")

def test_unreachable_url_is_a_norm_load_error(monkeypatch):
    def refuse(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(extract_norm.requests, "get", refuse)
    with pytest.raises(NormLoadError):
        read_norm_frame("https://minsal.example/norma.xlsx")

def test_from_entries_is_loaded(norm_table):
    assert norm_table.loaded
    assert len(norm_table) == 2
    assert norm_table.lookup("G1") == G1
    assert norm_table.lookup("ZZ") is None
    assert norm_table.lookup(None) is None

def test_refresh_only_when_stale():
    clock = FakeClock()
    loader = CountingLoader({"G1": G1}, {"G1": G1, "G2": G2})
    table = NormTable(source="norma.xlsx", refresh_hours=1, loader=loader, clock=clock)

    table.refresh()
    table.refresh()
    assert loader.calls == 1

    clock.now = 3601
    assert table.is_stale()
    table.refresh()
    assert loader.calls == 2
    assert len(table) == 2

def test_failed_reload_keeps_previous_table():
    clock = FakeClock()
    loader = CountingLoader({"G1": G1}, NormLoadError("down"))
    table = NormTable(refresh_hours=1, loader=loader, clock=clock)
    table.refresh()

    clock.now = 7200
    entries = table.refresh()
    assert loader.calls == 2
    assert entries["G1"] == G1
    assert table.lookup("G1") == G1

def test_never_loaded_table_raises():
    table = NormTable(loader=CountingLoader(NormLoadError("down")))
    with pytest.raises(NormLoadError):
        table.refresh()
    assert not table.loaded

def test_snapshot_is_not_affected_by_reload():
    loader = CountingLoader({"G1": G1}, {"G2": G2})
    table = NormTable(loader=loader)
    table.refresh()
    before = table.snapshot()
    table.refresh(force=True)
    assert "G1" in before
    assert table.lookup("G1") is None
    assert table.lookup("G2") == G2

def test_readers_are_served_the_old_table_while_a_reload_runs():
    started, release = threading.Event(), threading.Event()
    calls = []

    def slow_loader(source):
        calls.append(source)
        if len(calls) == 1:
            return {"G1": G1}
        started.set()
        release.wait(5)
        return {"G2": G2}

    table = NormTable(loader=slow_loader)
    table.refresh()
    worker = threading.Thread(target=table.refresh, kwargs={"force": True})
    worker.start()
    try:
        assert started.wait(5)
        entries = table.refresh(force=True)
        assert entries["G1"] == G1
        assert table.lookup("G1") == G1
        assert len(calls) == 2
    finally:
        release.set()
        worker.join(5)
    assert table.lookup("G2") == G2
