"""Tests for the one-shot word-order probe."""

from debug_modbus import probe
from app.core.modbus_client import ReadError


def test_probe_prints_both_word_orders(fake_session, register_map):
    lines = probe(fake_session, register_map)

    voltage = next(line for line in lines if line.strip().startswith("mains_voltage_l1"))
    assert "high_first=14450688.0" in voltage
    assert "low_first=220.5" in voltage
    assert any("genset_frequency" in line and "50.0" in line for line in lines)
    assert fake_session.event_names()[-1] == "close"


def test_probe_reports_failed_blocks(make_session, d500_words, register_map):
    blocks = dict(d500_words)
    blocks[10294] = ReadError(10294, 2, "device exception code 2")

    lines = probe(make_session(blocks=blocks), register_map)

    assert any(line.startswith("[genset_power]") and "FAILED" in line for line in lines)
