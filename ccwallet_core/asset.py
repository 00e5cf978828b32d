"""
Asset definitions and the registry that stores them.

An asset is a named view over exactly one color.  Its ``id`` depends only
on the canonicalised color descriptor, never on monikers or unit, so two
wallets describing the same color agree on the id even if their genesis
height hints differ.

Amounts are integers in base units.  ``unit`` (a power of ten) converts them
to and from decimal strings:

    unit = 100    parse_value("1.5")  -> 150
                  format_value(-150)  -> "-1.50"
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from ccwallet_core.color import ColorDefinitionManager, ColorSet, zero_color_desc
from ccwallet_core.errors import (
    DuplicateAssetError,
    InvalidUnitError,
    InvalidValueError,
    MultiColorNotSupportedError,
)
from ccwallet_core.storage import GLOBAL_PREFIX, KeyValueStore

logger = logging.getLogger("ccwallet_asset")

_DECIMAL = re.compile(r"([+-]?)(\d*)(?:\.(\d*))?")
_POWER_OF_TEN = re.compile(r"10*")

BITCOIN_ASSET = {
    "monikers": ["bitcoin"],
    "color_descs": [""],
    "unit": 100_000_000,
}


class AssetDefinition:
    """Monikers, a single-color ColorSet, and a decimal unit."""

    def __init__(self, cdmanager: ColorDefinitionManager, data: dict[str, Any]):
        color_descs = data.get("color_descs")
        if color_descs is None:
            # descriptions written by older versions
            color_descs = data.get("color_set", [])
        if len(color_descs) != 1:
            raise MultiColorNotSupportedError(
                f"Exactly one color descriptor is supported, got {len(color_descs)}"
            )

        unit = data.get("unit", 1)
        if (not isinstance(unit, int) or isinstance(unit, bool) or unit <= 0
                or not _POWER_OF_TEN.fullmatch(str(unit))):
            raise InvalidUnitError(f"unit must be a positive power of 10, got {unit!r}")

        self.monikers: list[str] = list(data.get("monikers", []))
        self.unit: int = unit
        self.decimals: int = len(str(unit)) - 1
        self.color_set = ColorSet(cdmanager, [zero_color_desc(d) for d in color_descs])
        self._id = self.color_set.get_color_hash()

    def get_id(self) -> str:
        return self._id

    @property
    def id(self) -> str:
        return self._id

    def get_monikers(self) -> list[str]:
        return list(self.monikers)

    def get_color_set(self) -> ColorSet:
        return self.color_set

    def get_color_definitions(self):
        return self.color_set.get_color_definitions()

    def get_data(self) -> dict[str, Any]:
        return {
            "monikers": list(self.monikers),
            "color_descs": self.color_set.get_color_descs(),
            "unit": self.unit,
        }

    # ---- value conversion ----

    def parse_value(self, portion: str) -> int:
        """Decimal string -> base units.

        Fractional digits beyond the unit's precision are dropped, not
        rounded.  The sign of the whole string applies to both parts.
        """
        if not isinstance(portion, str):
            raise InvalidValueError(f"Expected str amount, got {type(portion).__name__}")
        m = _DECIMAL.fullmatch(portion.strip())
        if m is None or not (m.group(2) or m.group(3)):
            raise InvalidValueError(f"Not a decimal amount: {portion!r}")
        sign, int_part, frac_part = m.group(1), m.group(2), m.group(3) or ""

        value = int(int_part or "0") * self.unit
        if self.decimals:
            value += int(frac_part[: self.decimals].ljust(self.decimals, "0"))
        return -value if sign == "-" else value

    def format_value(self, value: int) -> str:
        """Base units -> decimal string with exactly ``decimals`` digits."""
        whole, cents = divmod(abs(value), self.unit)
        sign = "-" if value < 0 else ""
        if not self.decimals:
            return f"{sign}{whole}"
        return f"{sign}{whole}.{cents:0{self.decimals}d}"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AssetDefinition) and other._id == self._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __repr__(self) -> str:
        return f"AssetDefinition({self.monikers}, {self.color_set.color_descs})"


@dataclass(frozen=True)
class AssetValue:
    """An integer amount of a specific asset."""
    asset: AssetDefinition
    value: int

    def __post_init__(self):
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise InvalidValueError(f"Asset value must be an int, got {self.value!r}")

    def get_value(self) -> int:
        return self.value

    def get_formatted_value(self) -> str:
        return self.asset.format_value(self.value)

    def __add__(self, other: AssetValue) -> AssetValue:
        if other.asset != self.asset:
            raise ValueError("Cannot add values of different assets")
        return AssetValue(self.asset, self.value + other.value)

    @classmethod
    def sum(cls, values: list[AssetValue]) -> AssetValue:
        total = values[0]
        for v in values[1:]:
            total = total + v
        return total


@dataclass(frozen=True)
class AssetTarget:
    """Destination address plus the asset value it should receive."""
    address: str
    asset_value: AssetValue

    def get_address(self) -> str:
        return self.address

    def get_asset(self) -> AssetDefinition:
        return self.asset_value.asset

    def get_value(self) -> int:
        return self.asset_value.value

    def get_formatted_value(self) -> str:
        return self.asset_value.get_formatted_value()


# ===================================================================
#  Registry
# ===================================================================

class AssetDefinitionStorage:
    """Persisted list of ``AssetDefinition.get_data()`` dicts."""

    def __init__(self, store: KeyValueStore, prefix: str = GLOBAL_PREFIX):
        self.store = store
        self.db_key = prefix + "assetDefinitions"

    def get_all(self) -> list[dict]:
        return self.store.get(self.db_key, [])

    def add(self, data: dict) -> None:
        records = self.get_all()
        records.append(data)
        self.store.set(self.db_key, records)

    def clear(self) -> None:
        self.store.remove(self.db_key)


class AssetDefinitionManager:
    """
    Lookup and creation of asset definitions.

    Reads always go through storage, so a cleared store is immediately
    reflected.  A ``bitcoin`` definition is seeded into an empty store.
    """

    def __init__(self, cdmanager: ColorDefinitionManager, storage: AssetDefinitionStorage):
        self.cdmanager = cdmanager
        self.storage = storage
        if not self.storage.get_all():
            self.create_asset_definition(BITCOIN_ASSET)

    def create_asset_definition(self, data: dict[str, Any]) -> AssetDefinition:
        assdef = AssetDefinition(self.cdmanager, data)
        for existing in self.get_all_assets():
            if existing.get_id() == assdef.get_id():
                raise DuplicateAssetError(
                    f"Asset {existing.monikers} already uses id {assdef.get_id()}"
                )
            shared = set(existing.monikers) & set(assdef.monikers)
            if shared:
                raise DuplicateAssetError(f"Moniker(s) already in use: {sorted(shared)}")

        self.storage.add(assdef.get_data())
        logger.info(f"Added asset {assdef.monikers} id={assdef.get_id()}")
        return assdef

    def get_all_assets(self) -> list[AssetDefinition]:
        return [AssetDefinition(self.cdmanager, d) for d in self.storage.get_all()]

    def get_by_moniker(self, moniker: str) -> AssetDefinition | None:
        for assdef in self.get_all_assets():
            if moniker in assdef.monikers:
                return assdef
        return None

    def get_by_id(self, asset_id: str) -> AssetDefinition | None:
        for assdef in self.get_all_assets():
            if assdef.get_id() == asset_id:
                return assdef
        return None
