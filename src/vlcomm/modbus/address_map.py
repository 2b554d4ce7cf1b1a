"""AddressMap: named Modbus variables, validation, span/size queries and JSON entry loading."""

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from ..errors import UnknownVariableError
from ..types import DataType, FunctionArea, ModbusAddressItem

logger = logging.getLogger(__name__)


def parse_area(value: Any) -> FunctionArea:
    """FunctionArea from an int (0/1/3/4), a member name (holding_registers) or a label (HoldingRegisters)."""
    if isinstance(value, FunctionArea):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return FunctionArea(value)
    text = str(value).strip()
    if text.isdigit():
        return FunctionArea(int(text))
    key = text.replace("_", "").replace(" ", "").lower()
    for area in FunctionArea:
        if key in (area.name.replace("_", "").lower(), area.label.lower()):
            return area
    raise ValueError(f"Unknown function area: {value!r}")


def parse_data_type(value: Any) -> DataType:
    """DataType from its value (UInt16) or member name (uint16), case-insensitive."""
    if isinstance(value, DataType):
        return value
    key = str(value).strip().lower()
    for dt in DataType:
        if key in (dt.value.lower(), dt.name.lower()):
            return dt
    raise ValueError(f"Unknown data type: {value!r}")


def _parse_entry(raw: dict[str, Any]) -> ModbusAddressItem:
    """Build a ModbusAddressItem from a JSON entry (name, area, address, data_type, ...)."""
    name = str(raw.get("name", ""))
    area_raw = raw.get("area", raw.get("function_area"))
    if area_raw is None:
        raise ValueError(f"Missing area for variable {name!r}")
    try:
        area = parse_area(area_raw)
        data_type = parse_data_type(raw.get("data_type", DataType.UINT16))
    except ValueError as e:
        raise ValueError(f"{e} (variable {name!r})") from None
    default = raw.get("default_value", "")
    if isinstance(default, bool):
        default = str(default).lower()
    return ModbusAddressItem(
        name=name,
        function_area=area,
        address=int(raw.get("address", 0)),
        data_type=data_type,
        default_value="" if default is None else str(default),
        description=str(raw.get("description", "") or ""),
        enabled=bool(raw.get("enabled", True)),
    )


def validate_item(item: ModbusAddressItem) -> list[str]:
    """Errors for a single item: empty name, address 0, data type not allowed in its area."""
    errors: list[str] = []
    if not item.name or not item.name.strip():
        errors.append("Variable name cannot be empty")
    if item.address == 0:
        errors.append("Address cannot be 0")
    if item.data_type is DataType.BOOLEAN and not item.function_area.is_bit_area:
        errors.append(f"{item.function_area.label} cannot use {item.data_type.value} data type")
    if item.data_type is not DataType.BOOLEAN and item.function_area.is_bit_area:
        errors.append(f"{item.function_area.label} cannot use {item.data_type.value} data type")
    return errors


class AddressMap:
    """
    Ordered collection of ModbusAddressItem. Enabled items must not overlap within an
    area; validate() reports every violation instead of raising.
    """

    def __init__(self, items: Iterable[ModbusAddressItem] = (), name: str = "Default address map") -> None:
        self.name = name
        self.items: list[ModbusAddressItem] = list(items)

    @classmethod
    def from_entries(cls, entries: list[dict[str, Any]] | dict[str, Any], name: str | None = None) -> "AddressMap":
        """
        Load from a list of entry dicts, or a dict holding "items"/"entries" (and optionally "name").
        Structurally broken entries (unknown area, non-integer address) raise ValueError;
        semantic problems are left for validate().
        """
        map_name = name
        if isinstance(entries, dict):
            map_name = map_name or entries.get("name")
            entries = entries.get("items", entries.get("entries", []))
        items = [_parse_entry(e) for e in entries if isinstance(e, dict)]
        logger.debug("AddressMap loaded: %d entries", len(items))
        return cls(items, name=map_name or "Default address map")

    @classmethod
    def from_json_file(cls, path: Path | str) -> "AddressMap":
        with open(path, encoding="utf-8") as f:
            return cls.from_entries(json.load(f))

    def to_entries(self) -> list[dict[str, Any]]:
        return [
            {
                "name": item.name,
                "area": item.function_area.label,
                "address": item.address,
                "data_type": item.data_type.value,
                "default_value": item.default_value,
                "description": item.description,
                "enabled": item.enabled,
            }
            for item in self.items
        ]

    def enabled_items(self) -> list[ModbusAddressItem]:
        return [item for item in self.items if item.enabled]

    def add(self, item: ModbusAddressItem) -> None:
        self.items.append(item)

    def validate(self) -> list[str]:
        errors: list[str] = []
        usage: dict[tuple[FunctionArea, int], str] = {}
        for item in self.enabled_items():
            errors.extend(f"{item.name}: {e}" for e in validate_item(item))
            for address in range(item.address, item.address + item.length):
                key = (item.function_area, address)
                owner = usage.get(key)
                if owner is not None:
                    errors.append(
                        f"Address conflict: {item.name} and {owner} both use {item.function_area.label}:{address}"
                    )
                else:
                    usage[key] = item.name
        return errors

    def get_max_address(self, area: FunctionArea) -> int:
        """Highest address occupied by an enabled item in area (address + length - 1), or 0."""
        return max(
            (item.address + item.length - 1 for item in self.enabled_items() if item.function_area == area),
            default=0,
        )

    def find(self, name: str) -> ModbusAddressItem | None:
        """Enabled item by case-insensitive name."""
        key = name.strip().lower()
        for item in self.items:
            if item.enabled and item.name.lower() == key:
                return item
        return None

    def lookup(self, name: str) -> ModbusAddressItem:
        """Enabled item by case-insensitive name; raise UnknownVariableError if absent."""
        item = self.find(name)
        if item is None:
            raise UnknownVariableError(name)
        return item

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


def default_address_map() -> AddressMap:
    """Template with common system status, command and process-value variables."""
    return AddressMap(
        [
            ModbusAddressItem("SystemRunning", FunctionArea.DISCRETE_INPUTS, 1, DataType.BOOLEAN, "false", "System running"),
            ModbusAddressItem("SystemError", FunctionArea.DISCRETE_INPUTS, 2, DataType.BOOLEAN, "false", "System error"),
            ModbusAddressItem("StartCommand", FunctionArea.COILS, 1, DataType.BOOLEAN, "false", "Start command"),
            ModbusAddressItem("StopCommand", FunctionArea.COILS, 2, DataType.BOOLEAN, "false", "Stop command"),
            ModbusAddressItem("Temperature", FunctionArea.INPUT_REGISTERS, 1, DataType.FLOAT, "25.0", "Current temperature"),
            ModbusAddressItem("SetPoint", FunctionArea.HOLDING_REGISTERS, 1, DataType.FLOAT, "50.0", "Temperature set point"),
        ],
        name="Default Modbus TCP address map",
    )
