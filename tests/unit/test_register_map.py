"""Unit tests for register map declaration and validation."""

import json

import pytest

from app.config.registers import D500_REGISTER_MAP, load_register_map
from app.core.decoder import WordOrder
from app.core.register_map import ReadBlock, RegisterMap, RegisterPoint


def _map(*blocks):
    return RegisterMap(name="test", version="1", blocks=blocks)


# ============================================================
# D500 map Tests
# ============================================================

def test_d500_block_layout():
    layout = [(b.name, b.address, b.count) for b in D500_REGISTER_MAP.blocks]
    assert layout == [
        ("mains_voltage", 10240, 6),
        ("mains_current", 10264, 6),
        ("genset_power", 10294, 2),
        ("engine", 10339, 25),
        ("status_service", 10604, 34),
    ]


def test_d500_points():
    points = {p.id: p for p in D500_REGISTER_MAP.points}
    assert len(points) == 16

    voltage = points["mains_voltage_l2"]
    assert (voltage.metric, voltage.offset, voltage.width, voltage.scale) == ("d500_mains_voltage_v", 2, 32, 10)
    assert voltage.label_dict == {"phase": "L2"}

    coolant = points["coolant_temperature"]
    assert D500_REGISTER_MAP.block("engine").address_of(coolant) == 10362
    assert (coolant.width, coolant.scale) == (16, 10)

    status = points["operation_status"]
    assert (status.width, status.scale, status.unit) == (16, 1, "code")

    service_days = points["service_days_remaining"]
    assert (service_days.offset, service_days.width, service_days.scale) == (32, 32, 100)


def test_d500_metric_families_keep_declaration_order():
    names = [p.metric for p in D500_REGISTER_MAP.metric_families()]
    assert names[:3] == ["d500_mains_voltage_v", "d500_mains_current_a", "d500_genset_power_kw"]
    assert len(names) == 12
    assert all(name.startswith("d500_") for name in names)


def test_d500_points_use_deployment_word_order():
    assert all(p.word_order is None for p in D500_REGISTER_MAP.points)


def test_load_register_map_defaults_to_d500():
    assert load_register_map(None) is D500_REGISTER_MAP


# ============================================================
# Validation Tests
# ============================================================

def test_overlapping_blocks_rejected():
    with pytest.raises(ValueError, match="overlaps"):
        _map(ReadBlock("a", 100, 10), ReadBlock("b", 105, 2))


def test_blocks_must_be_increasing():
    with pytest.raises(ValueError):
        _map(ReadBlock("a", 200, 2), ReadBlock("b", 100, 2))


def test_adjacent_blocks_allowed():
    register_map = _map(ReadBlock("a", 100, 2), ReadBlock("b", 102, 2))
    assert len(register_map) == 2


def test_32_bit_point_must_fit_in_block():
    with pytest.raises(ValueError, match="needs 4 words"):
        ReadBlock("a", 0, 3, (RegisterPoint("p", "m", offset=2, width=32),))


def test_overlapping_points_rejected():
    with pytest.raises(ValueError, match="overlaps"):
        ReadBlock(
            "a",
            0,
            4,
            (
                RegisterPoint("p1", "m1", offset=0, width=32),
                RegisterPoint("p2", "m2", offset=1, width=16),
            ),
        )


def test_unsupported_width_rejected():
    with pytest.raises(ValueError, match="unsupported width"):
        RegisterPoint("p", "m", offset=0, width=64)


def test_zero_scale_rejected():
    with pytest.raises(ValueError, match="scale"):
        RegisterPoint("p", "m", offset=0, scale=0)


def test_non_numeric_scale_rejected():
    with pytest.raises(ValueError, match="scale must be a number"):
        RegisterPoint("p", "m", offset=0, scale="10")


def test_block_count_limited_to_one_read():
    with pytest.raises(ValueError, match="count"):
        ReadBlock("a", 0, 126)


def test_duplicate_point_ids_rejected():
    with pytest.raises(ValueError, match="Duplicate point id"):
        _map(
            ReadBlock("a", 0, 1, (RegisterPoint("p", "m1", offset=0),)),
            ReadBlock("b", 1, 1, (RegisterPoint("p", "m2", offset=0),)),
        )


def test_duplicate_series_rejected():
    with pytest.raises(ValueError, match="Duplicate series"):
        _map(
            ReadBlock(
                "a",
                0,
                2,
                (
                    RegisterPoint("p1", "m", offset=0, labels={"phase": "L1"}),
                    RegisterPoint("p2", "m", offset=1, labels={"phase": "L1"}),
                ),
            )
        )


def test_inconsistent_label_names_rejected():
    with pytest.raises(ValueError, match="inconsistent label names"):
        _map(
            ReadBlock(
                "a",
                0,
                2,
                (
                    RegisterPoint("p1", "m", offset=0, labels={"phase": "L1"}),
                    RegisterPoint("p2", "m", offset=1),
                ),
            )
        )


def test_labels_normalized_to_sorted_pairs():
    point = RegisterPoint("p", "m", offset=0, labels={"z": "1", "a": "2"})
    assert point.labels == (("a", "2"), ("z", "1"))
    assert point.label_names == ("a", "z")


# ============================================================
# Serialization Tests
# ============================================================

def test_dict_round_trip_preserves_map():
    assert RegisterMap.from_dict(D500_REGISTER_MAP.to_dict()) == D500_REGISTER_MAP


def test_load_register_map_from_json(tmp_path):
    document = {
        "name": "d500-rev2",
        "version": "2",
        "blocks": [
            {
                "name": "mains_voltage",
                "address": 10240,
                "count": 2,
                "points": [
                    {
                        "id": "mains_voltage_l1",
                        "metric": "d500_mains_voltage_v",
                        "offset": 0,
                        "width": 32,
                        "scale": 10,
                        "unit": "V",
                        "labels": {"phase": "L1"},
                        "word_order": "high_first",
                    }
                ],
            }
        ],
    }
    path = tmp_path / "map.json"
    path.write_text(json.dumps(document), encoding="utf-8")

    register_map = load_register_map(str(path))

    assert register_map.name == "d500-rev2"
    point = register_map.points[0]
    assert point.word_order is WordOrder.HIGH_FIRST
    assert point.label_dict == {"phase": "L1"}


def test_from_dict_missing_field():
    with pytest.raises(ValueError, match="missing required field"):
        RegisterMap.from_dict({"blocks": [{"name": "a", "address": 0}]})


def test_from_dict_invalid_word_order():
    with pytest.raises(ValueError):
        RegisterMap.from_dict(
            {
                "blocks": [
                    {
                        "name": "a",
                        "address": 0,
                        "count": 2,
                        "points": [{"id": "p", "metric": "m", "offset": 0, "width": 32, "word_order": "middle"}],
                    }
                ]
            }
        )


def _voltage_document(scale):
    return {
        "name": "d500-rev2",
        "blocks": [
            {
                "name": "mains_voltage",
                "address": 10240,
                "count": 2,
                "points": [
                    {
                        "id": "mains_voltage_l1",
                        "metric": "d500_mains_voltage_v",
                        "offset": 0,
                        "width": 32,
                        "scale": scale,
                        "labels": {"phase": "L1"},
                    }
                ],
            }
        ],
    }


def test_from_dict_rejects_non_numeric_scale():
    with pytest.raises(ValueError, match="scale"):
        RegisterMap.from_dict(_voltage_document("ten"))


def test_from_dict_coerces_numeric_string_scale():
    register_map = RegisterMap.from_dict(_voltage_document("10"))

    point = register_map.points[0]
    assert point.scale == 10.0
    assert isinstance(point.scale, float)


def test_from_dict_rejects_negative_offset():
    document = _voltage_document(10)
    document["blocks"][0]["points"][0]["offset"] = -1

    with pytest.raises(ValueError, match="offset"):
        RegisterMap.from_dict(document)


def test_load_register_map_with_bad_scale_fails_at_load(tmp_path):
    path = tmp_path / "map.json"
    path.write_text(json.dumps(_voltage_document([10])), encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid register map"):
        load_register_map(str(path))
