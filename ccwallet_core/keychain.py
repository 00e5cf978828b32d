"""
Persisted key chain: the root extended key plus every derived public key.

Records are kept as one JSON list under a single logical key, in insertion
order.  The store enforces two uniqueness rules and nothing else:

  - (account, chain, index) appears at most once
  - a public key appears at most once across all records

Replacing the root key drops every record, since records are only valid as
derivations of the root they were made under.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from ccwallet_core.errors import UniqueConstraintViolationError
from ccwallet_core.hd import HDNode
from ccwallet_core.storage import GLOBAL_PREFIX, KeyValueStore

logger = logging.getLogger("ccwallet_keychain")


def _is_hex(s: Any) -> bool:
    if not isinstance(s, str) or len(s) % 2 != 0:
        return False
    try:
        bytes.fromhex(s)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class KeyRecord:
    account: int
    chain: int
    index: int
    pubkey: str     # compressed public key, hex

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> KeyRecord:
        return cls(d["account"], d["chain"], d["index"], d["pubkey"])


class AddressStorage:
    """Domain store for the key chain on top of a ``KeyValueStore``."""

    def __init__(self, store: KeyValueStore, prefix: str = GLOBAL_PREFIX):
        self.store = store
        self.master_key_db_key = prefix + "masterKey"
        self.pubkeys_db_key = prefix + "pubKeys"

        # A record list without a root key cannot be trusted.
        if not isinstance(self.store.get(self.master_key_db_key), str):
            self.store.remove(self.master_key_db_key)
            self.store.set(self.pubkeys_db_key, [])
        if not isinstance(self.store.get(self.pubkeys_db_key), list):
            self.store.set(self.pubkeys_db_key, [])

    # ── root key ─────────────────────────────────────────────────

    def set_master_key(self, master_key: str) -> None:
        """Validate and store a new root key, discarding all records.

        Raises InvalidKeyMaterialError without touching the store when the
        key does not parse.
        """
        HDNode.from_extended_key(master_key)
        self.store.set(self.master_key_db_key, master_key)
        self.store.set(self.pubkeys_db_key, [])
        logger.info("Master key replaced; key records cleared")

    def get_master_key(self) -> str | None:
        return self.store.get(self.master_key_db_key)

    # ── key records ──────────────────────────────────────────────

    def _load(self) -> list[KeyRecord]:
        return [KeyRecord.from_dict(d) for d in self.store.get(self.pubkeys_db_key, [])]

    def add_pubkey(self, account: int, chain: int, index: int, pubkey: str) -> KeyRecord:
        for name, value in (("account", account), ("chain", chain), ("index", index)):
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"Expected non-negative int {name}, got {value!r}")
        if not _is_hex(pubkey):
            raise ValueError(f"Expected hex string pubkey, got {pubkey!r}")
        pubkey = pubkey.lower()

        records = self._load()
        for r in records:
            if (r.account, r.chain, r.index) == (account, chain, index):
                raise UniqueConstraintViolationError(
                    f"Key record for {account}/{chain}/{index} already exists"
                )
            if r.pubkey == pubkey:
                raise UniqueConstraintViolationError(
                    f"Public key already stored at {r.account}/{r.chain}/{r.index}"
                )

        record = KeyRecord(account, chain, index, pubkey)
        records.append(record)
        self.store.set(self.pubkeys_db_key, [r.to_dict() for r in records])
        return record

    def get_all_pubkeys(self, account: int | None = None,
                        chain: int | None = None) -> list[KeyRecord]:
        """Records matching the given account and/or chain, in insertion order."""
        return [
            r for r in self._load()
            if (account is None or r.account == account)
            and (chain is None or r.chain == chain)
        ]

    def get_max_index(self, account: int, chain: int) -> int | None:
        indices = [r.index for r in self.get_all_pubkeys(account, chain)]
        return max(indices) if indices else None

    def clear(self) -> None:
        """Remove the root key and every record."""
        self.store.remove(self.master_key_db_key)
        self.store.remove(self.pubkeys_db_key)
