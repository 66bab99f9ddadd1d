"""Register map of the Datakom D500 generator controller."""

from __future__ import annotations

from app.core.register_map import ReadBlock, RegisterMap, RegisterPoint

_VOLTAGE_HELP = "Mains phase voltage"
_CURRENT_HELP = "Mains phase current"

D500_REGISTER_MAP = RegisterMap(
    name="datakom-d500",
    version="2024.1",
    blocks=(
        ReadBlock(
            name="mains_voltage",
            address=10240,
            count=6,
            points=(
                RegisterPoint("mains_voltage_l1", "d500_mains_voltage_v", 0, 32, 10, "V", _VOLTAGE_HELP, {"phase": "L1"}),
                RegisterPoint("mains_voltage_l2", "d500_mains_voltage_v", 2, 32, 10, "V", _VOLTAGE_HELP, {"phase": "L2"}),
                RegisterPoint("mains_voltage_l3", "d500_mains_voltage_v", 4, 32, 10, "V", _VOLTAGE_HELP, {"phase": "L3"}),
            ),
        ),
        ReadBlock(
            name="mains_current",
            address=10264,
            count=6,
            points=(
                RegisterPoint("mains_current_i1", "d500_mains_current_a", 0, 32, 10, "A", _CURRENT_HELP, {"phase": "I1"}),
                RegisterPoint("mains_current_i2", "d500_mains_current_a", 2, 32, 10, "A", _CURRENT_HELP, {"phase": "I2"}),
                RegisterPoint("mains_current_i3", "d500_mains_current_a", 4, 32, 10, "A", _CURRENT_HELP, {"phase": "I3"}),
            ),
        ),
        ReadBlock(
            name="genset_power",
            address=10294,
            count=2,
            points=(
                RegisterPoint("genset_power", "d500_genset_power_kw", 0, 32, 10, "kW", "Total Active Power"),
            ),
        ),
        ReadBlock(
            name="engine",
            address=10339,
            count=25,
            points=(
                RegisterPoint("genset_frequency", "d500_gen_freq_hz", 0, 16, 100, "Hz", "Genset Frequency"),
                RegisterPoint("battery_voltage", "d500_battery_v", 2, 16, 100, "V", "Battery Voltage"),
                RegisterPoint("coolant_temperature", "d500_engine_temp_c", 23, 16, 10, "°C", "Coolant Temperature"),
                RegisterPoint("fuel_level", "d500_fuel_percent", 24, 16, 10, "%", "Fuel Level"),
            ),
        ),
        ReadBlock(
            name="status_service",
            address=10604,
            count=34,
            points=(
                # Raw enum code 0..25, not expanded here.
                RegisterPoint("operation_status", "d500_op_status", 0, 16, 1, "code", "Operational Status"),
                RegisterPoint("run_hours", "d500_run_hours_total", 18, 32, 100, "h", "Total Engine Run Hours"),
                RegisterPoint("total_energy", "d500_total_energy_kwh", 24, 32, 10, "kWh", "Total Accumulated Energy"),
                RegisterPoint("service_hours_remaining", "d500_service_hours_remain", 30, 32, 100, "h", "Hours remaining to Maintenance"),
                RegisterPoint("service_days_remaining", "d500_service_days_remain", 32, 32, 100, "days", "Days remaining to Maintenance"),
            ),
        ),
    ),
)


def load_register_map(path: str | None = None) -> RegisterMap:
    """Return the map from ``path`` when given, else the built-in D500 map."""
    if path:
        return RegisterMap.from_json_file(path)
    return D500_REGISTER_MAP
