"""Tests for AddressMap loading, lookup, validation and the default template."""

import json
from pathlib import Path

import pytest

from vlcomm.errors import UnknownVariableError
from vlcomm.modbus.address_map import AddressMap, default_address_map, parse_area, parse_data_type, validate_item
from vlcomm.types import DataType, FunctionArea, ModbusAddressItem


def _item(name: str, area: FunctionArea, address: int, dt: DataType, enabled: bool = True) -> ModbusAddressItem:
    return ModbusAddressItem(name, area, address, dt, enabled=enabled)


def test_from_entries_list() -> None:
    entries = [
        {"name": "Speed", "area": "HoldingRegisters", "address": 10, "data_type": "UInt16", "default_value": 5},
        {"name": "Run", "area": 0, "address": 1, "data_type": "Boolean", "default_value": True},
    ]
    m = AddressMap.from_entries(entries)
    assert len(m) == 2
    speed = m.lookup("speed")
    assert speed.function_area == FunctionArea.HOLDING_REGISTERS
    assert speed.default_value == "5"
    assert m.lookup("RUN").default_value == "true"


def test_from_entries_dict_with_name() -> None:
    m = AddressMap.from_entries({"name": "Line 3", "items": [{"name": "T", "area": "input_registers", "address": 1, "data_type": "Float"}]})
    assert m.name == "Line 3"
    assert m.lookup("T").data_type == DataType.FLOAT


def test_from_entries_unknown_area_raises() -> None:
    with pytest.raises(ValueError, match="Unknown function area"):
        AddressMap.from_entries([{"name": "X", "area": "Registers", "address": 1}])


def test_from_json_file_and_to_entries(tmp_path: Path) -> None:
    original = default_address_map()
    path = tmp_path / "map.json"
    path.write_text(json.dumps(original.to_entries()), encoding="utf-8")
    loaded = AddressMap.from_json_file(path)
    assert loaded.to_entries() == original.to_entries()


def test_lookup_unknown_raises() -> None:
    m = default_address_map()
    with pytest.raises(UnknownVariableError) as exc_info:
        m.lookup("Pressure")
    assert exc_info.value.name == "Pressure"
    assert m.find("Pressure") is None


def test_lookup_ignores_disabled() -> None:
    m = AddressMap([_item("Hidden", FunctionArea.COILS, 5, DataType.BOOLEAN, enabled=False)])
    assert m.find("Hidden") is None


def test_parse_helpers() -> None:
    assert parse_area("4") == FunctionArea.HOLDING_REGISTERS
    assert parse_area("Discrete Inputs") == FunctionArea.DISCRETE_INPUTS
    assert parse_data_type("int16") == DataType.INT16
    with pytest.raises(ValueError):
        parse_data_type("double")


class TestValidation:
    """Item and map validation messages."""

    def test_valid_template(self) -> None:
        assert default_address_map().validate() == []

    def test_empty_name_and_zero_address(self) -> None:
        errors = validate_item(_item(" ", FunctionArea.HOLDING_REGISTERS, 0, DataType.UINT16))
        assert errors == ["Variable name cannot be empty", "Address cannot be 0"]

    def test_one_area_type_error(self) -> None:
        m = AddressMap([_item("Flag", FunctionArea.HOLDING_REGISTERS, 3, DataType.BOOLEAN)])
        assert m.validate() == ["Flag: HoldingRegisters cannot use Boolean data type"]

    def test_numeric_in_bit_area(self) -> None:
        m = AddressMap([_item("Level", FunctionArea.COILS, 3, DataType.INT16)])
        assert m.validate() == ["Level: Coils cannot use Int16 data type"]

    def test_one_conflict_error_for_float_overlap(self) -> None:
        m = AddressMap(
            [
                _item("Temp", FunctionArea.HOLDING_REGISTERS, 1, DataType.FLOAT),
                _item("Mode", FunctionArea.HOLDING_REGISTERS, 2, DataType.UINT16),
            ]
        )
        assert m.validate() == ["Address conflict: Mode and Temp both use HoldingRegisters:2"]

    def test_one_conflict_error_for_two_coils_at_same_address(self) -> None:
        m = AddressMap(
            [
                _item("A", FunctionArea.COILS, 5, DataType.BOOLEAN),
                _item("B", FunctionArea.COILS, 5, DataType.BOOLEAN),
            ]
        )
        assert m.validate() == ["Address conflict: B and A both use Coils:5"]

    def test_same_address_different_areas_ok(self) -> None:
        m = AddressMap(
            [
                _item("A", FunctionArea.INPUT_REGISTERS, 1, DataType.UINT16),
                _item("B", FunctionArea.HOLDING_REGISTERS, 1, DataType.UINT16),
            ]
        )
        assert m.validate() == []

    def test_disabled_items_are_ignored(self) -> None:
        m = AddressMap(
            [
                _item("A", FunctionArea.COILS, 1, DataType.BOOLEAN),
                _item("B", FunctionArea.COILS, 1, DataType.BOOLEAN, enabled=False),
            ]
        )
        assert m.validate() == []

    def test_errors_accumulate(self) -> None:
        m = AddressMap(
            [
                _item("", FunctionArea.COILS, 0, DataType.FLOAT),
                _item("X", FunctionArea.COILS, 1, DataType.BOOLEAN),
            ]
        )
        errors = m.validate()
        assert len(errors) >= 4
        assert any(e.startswith("Address conflict") for e in errors)


def test_get_max_address() -> None:
    m = AddressMap(
        [
            _item("A", FunctionArea.HOLDING_REGISTERS, 10, DataType.FLOAT),
            _item("B", FunctionArea.HOLDING_REGISTERS, 4, DataType.UINT16),
            _item("C", FunctionArea.HOLDING_REGISTERS, 99, DataType.UINT16, enabled=False),
        ]
    )
    assert m.get_max_address(FunctionArea.HOLDING_REGISTERS) == 11
    assert m.get_max_address(FunctionArea.COILS) == 0


def test_display_address() -> None:
    m = default_address_map()
    assert m.lookup("SystemRunning").display_address == "10001"
    assert m.lookup("StartCommand").display_address == "00001"
    assert m.lookup("Temperature").display_address == "30001"
    assert m.lookup("SetPoint").display_address == "40001"


def test_item_rejects_out_of_range_address() -> None:
    with pytest.raises(ValueError):
        ModbusAddressItem("X", FunctionArea.COILS, 70000, DataType.BOOLEAN)
