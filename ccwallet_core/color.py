"""
Color definitions, color sets and the color data cache.

A *color descriptor* is a string naming a colored-coin protocol instance:

    ""                                   uncolored bitcoin (color id 0)
    "epobc:<txid>:<outindex>:<height>"   EPOBC colored coins
    "obc:<txid>:<outindex>:<height>"     order-based coloring

The trailing ``<height>`` is a scan hint, not part of the color identity.

Which satoshis carry which color is decided by the colored-coin kernel, an
external collaborator.  This module only names colors, gives them stable
integer ids, classifies color sets, and caches per-outpoint color values the
kernel has already computed.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from typing import ClassVar

import base58

from ccwallet_core.errors import InvalidColorDescError
from ccwallet_core.storage import GLOBAL_PREFIX, KeyValueStore

logger = logging.getLogger("ccwallet_color")

UNCOLORED_COLOR_ID = 0

_NUMERIC_TAIL = re.compile(r":\d+$")


def zero_color_desc(desc: str) -> str:
    """Replace the numeric tail after the last colon with ``0``."""
    return _NUMERIC_TAIL.sub(":0", desc)


def deterministic_json_dumps(obj) -> str:
    return json.dumps(obj, separators=(",", ":"), sort_keys=True)


# ===================================================================
#  Color definitions
# ===================================================================

class ColorDefinition:
    """Base class; subclasses register themselves under a descriptor prefix."""

    CLASS_CODE: ClassVar[str] = ""
    _registry: ClassVar[dict[str, type[ColorDefinition]]] = {}

    def __init__(self, color_id: int, desc: str):
        self.color_id = color_id
        self.desc = desc

    @classmethod
    def register(cls, def_class: type[ColorDefinition]) -> type[ColorDefinition]:
        cls._registry[def_class.CLASS_CODE] = def_class
        return def_class

    @classmethod
    def from_desc(cls, color_id: int, desc: str) -> ColorDefinition:
        if desc == "":
            return UncoloredColorDefinition()
        code = desc.split(":", 1)[0]
        def_class = cls._registry.get(code)
        if def_class is None:
            raise InvalidColorDescError(f"Unknown color protocol {code!r} in {desc!r}")
        return def_class.parse(color_id, desc)

    @classmethod
    def parse(cls, color_id: int, desc: str) -> ColorDefinition:
        return cls(color_id, desc)

    def get_color_type(self) -> str:
        return self.CLASS_CODE

    def is_uncolored(self) -> bool:
        return False

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ColorDefinition) and other.color_id == self.color_id

    def __hash__(self) -> int:
        return hash(self.color_id)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.color_id}, {self.desc!r})"


class UncoloredColorDefinition(ColorDefinition):
    CLASS_CODE = "uncolored"

    def __init__(self, color_id: int = UNCOLORED_COLOR_ID, desc: str = ""):
        super().__init__(UNCOLORED_COLOR_ID, "")

    def is_uncolored(self) -> bool:
        return True


class GenesisColorDefinition(ColorDefinition):
    """Colors rooted in a genesis output: ``<code>:<txid>:<outindex>:<height>``."""

    def __init__(self, color_id: int, desc: str, txid: str, outindex: int, height: int):
        super().__init__(color_id, desc)
        self.genesis = {"txid": txid, "outindex": outindex, "height": height}

    @classmethod
    def parse(cls, color_id: int, desc: str) -> GenesisColorDefinition:
        parts = desc.split(":")
        if len(parts) != 4 or not parts[1]:
            raise InvalidColorDescError(
                f"Expected {cls.CLASS_CODE}:<txid>:<outindex>:<height>, got {desc!r}"
            )
        try:
            outindex, height = int(parts[2]), int(parts[3])
        except ValueError as exc:
            raise InvalidColorDescError(f"Non-numeric genesis field in {desc!r}") from exc
        if outindex < 0 or height < 0:
            raise InvalidColorDescError(f"Negative genesis field in {desc!r}")
        return cls(color_id, desc, parts[1], outindex, height)


@ColorDefinition.register
class EPOBCColorDefinition(GenesisColorDefinition):
    CLASS_CODE = "epobc"


@ColorDefinition.register
class OBCColorDefinition(GenesisColorDefinition):
    CLASS_CODE = "obc"


# ===================================================================
#  Color definition manager (descriptor <-> color id)
# ===================================================================

class ColorDefinitionStorage:
    """Persisted ``[{"color_id": int, "desc": str}, ...]`` list."""

    def __init__(self, store: KeyValueStore, prefix: str = GLOBAL_PREFIX):
        self.store = store
        self.db_key = prefix + "colorDefinitions"

    def get_all(self) -> list[dict]:
        return self.store.get(self.db_key, [])

    def add(self, color_id: int, desc: str) -> None:
        records = self.get_all()
        records.append({"color_id": color_id, "desc": desc})
        self.store.set(self.db_key, records)

    def clear(self) -> None:
        self.store.remove(self.db_key)


class ColorDefinitionManager:
    """Resolves descriptors to definitions, assigning ids on first sight."""

    def __init__(self, storage: ColorDefinitionStorage):
        self.storage = storage

    def get_uncolored(self) -> UncoloredColorDefinition:
        return UncoloredColorDefinition()

    def resolve(self, desc: str, auto_add: bool = True) -> ColorDefinition | None:
        if desc == "":
            return self.get_uncolored()

        records = self.storage.get_all()
        for r in records:
            if r["desc"] == desc:
                return ColorDefinition.from_desc(r["color_id"], desc)
        if not auto_add:
            return None

        color_id = max((r["color_id"] for r in records), default=UNCOLORED_COLOR_ID) + 1
        colordef = ColorDefinition.from_desc(color_id, desc)
        self.storage.add(color_id, desc)
        logger.debug(f"Registered color {color_id} for {desc}")
        return colordef

    def get_by_color_id(self, color_id: int) -> ColorDefinition | None:
        if color_id == UNCOLORED_COLOR_ID:
            return self.get_uncolored()
        for r in self.storage.get_all():
            if r["color_id"] == color_id:
                return ColorDefinition.from_desc(color_id, r["desc"])
        return None

    def get_all(self) -> list[ColorDefinition]:
        return [ColorDefinition.from_desc(r["color_id"], r["desc"])
                for r in self.storage.get_all()]


# ===================================================================
#  Color sets
# ===================================================================

class ColorSet:
    """The colors an asset is denominated in."""

    def __init__(self, cdmanager: ColorDefinitionManager, color_descs: list[str]):
        self.cdmanager = cdmanager
        self.color_descs = list(color_descs)
        self.color_definitions = [cdmanager.resolve(d) for d in self.color_descs]
        self.color_id_set = {cd.color_id for cd in self.color_definitions}

    def get_color_descs(self) -> list[str]:
        return list(self.color_descs)

    def get_color_ids(self) -> list[int]:
        return sorted(self.color_id_set)

    def get_color_definitions(self) -> list[ColorDefinition]:
        return list(self.color_definitions)

    def has_color_id(self, color_id: int) -> bool:
        return color_id in self.color_id_set

    def is_uncolored_only(self) -> bool:
        return self.color_id_set == {UNCOLORED_COLOR_ID}

    def is_epobc_only(self) -> bool:
        return bool(self.color_definitions) and all(
            isinstance(cd, EPOBCColorDefinition) for cd in self.color_definitions
        )

    def get_color_hash(self) -> str:
        """Base58 of the first 10 bytes of SHA-256 over the sorted, tail-zeroed
        descriptors.  Stable across genesis height hints."""
        canonical = deterministic_json_dumps(sorted(zero_color_desc(d) for d in self.color_descs))
        digest = hashlib.sha256(canonical.encode("utf-8")).digest()[:10]
        return base58.b58encode(digest).decode("ascii")

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ColorSet) and other.color_id_set == self.color_id_set

    def __hash__(self) -> int:
        return hash(frozenset(self.color_id_set))

    def __repr__(self) -> str:
        return f"ColorSet({self.color_descs!r})"


@dataclass(frozen=True)
class ColorValue:
    """An amount of a single color."""
    colordef: ColorDefinition
    value: int

    @property
    def color_id(self) -> int:
        return self.colordef.color_id

    def get_value(self) -> int:
        return self.value

    def is_uncolored(self) -> bool:
        return self.colordef.is_uncolored()

    def __add__(self, other: ColorValue) -> ColorValue:
        if other.color_id != self.color_id:
            raise ValueError(f"Cannot add color {other.color_id} to color {self.color_id}")
        return ColorValue(self.colordef, self.value + other.value)


# ===================================================================
#  Color data cache
# ===================================================================

class ColorDataStorage:
    """Per-outpoint color values produced by the colored-coin kernel.

    Layout: ``{"<txid>:<outindex>": {"<color_id>": value}}``.
    """

    def __init__(self, store: KeyValueStore, prefix: str = GLOBAL_PREFIX):
        self.store = store
        self.db_key = prefix + "colorData"

    @staticmethod
    def _outpoint(txid: str, outindex: int) -> str:
        return f"{txid}:{outindex}"

    def add(self, color_id: int, txid: str, outindex: int, value: int) -> None:
        data = self.store.get(self.db_key, {})
        data.setdefault(self._outpoint(txid, outindex), {})[str(color_id)] = value
        self.store.set(self.db_key, data)

    def get(self, color_id: int, txid: str, outindex: int) -> int | None:
        entry = self.store.get(self.db_key, {}).get(self._outpoint(txid, outindex), {})
        return entry.get(str(color_id))

    def get_any(self, txid: str, outindex: int) -> list[tuple[int, int]]:
        """All ``(color_id, value)`` pairs recorded for the outpoint."""
        entry = self.store.get(self.db_key, {}).get(self._outpoint(txid, outindex), {})
        return sorted((int(cid), value) for cid, value in entry.items())

    def clear(self) -> None:
        self.store.remove(self.db_key)
