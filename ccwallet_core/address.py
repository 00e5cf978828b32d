"""
Deterministic address management over the persisted key chain.

Addresses live at ``m/account'/chain/index`` under the stored root key.  The
wallet keeps one chain per coin type so that uncolored change never lands on
an address that also holds colored coins:

    UNCOLORED_CHAIN = 0     plain bitcoin
    EPOBC_CHAIN     = 1     EPOBC colored coins

Only public keys are persisted; private keys are re-derived on demand.
"""

from __future__ import annotations

import logging

from ccwallet_core.hd import BITCOIN, HDNode, Network, address_to_script, pubkey_to_address
from ccwallet_core.keychain import AddressStorage, KeyRecord

logger = logging.getLogger("ccwallet_address")

UNCOLORED_CHAIN = 0
EPOBC_CHAIN = 1


def _seed_bytes(seed: bytes | str) -> bytes:
    if isinstance(seed, bytes):
        return seed
    if isinstance(seed, str):
        return bytes.fromhex(seed)
    raise TypeError(f"Expected bytes or hex str seed, got {type(seed).__name__}")


class Address:
    """Read-only view of one derived key: position, public key, address."""

    def __init__(self, manager: AddressManager, record: KeyRecord):
        self._manager = manager
        self.account = record.account
        self.chain = record.chain
        self.index = record.index
        self.pubkey = bytes.fromhex(record.pubkey)
        self.address = pubkey_to_address(self.pubkey, manager.network)

    def get_address(self) -> str:
        return self.address

    def get_public_key(self) -> bytes:
        return self.pubkey

    def get_script(self) -> bytes:
        return address_to_script(self.address, self._manager.network)

    def get_private_key(self) -> bytes:
        """Re-derive the private key; needs the root key to still be stored."""
        return self._manager.derive_node(self.account, self.chain, self.index).private_key

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Address) and other.address == self.address

    def __hash__(self) -> int:
        return hash(self.address)

    def __repr__(self) -> str:
        return f"Address({self.account}/{self.chain}/{self.index} {self.address})"


class AddressManager:
    UNCOLORED_CHAIN = UNCOLORED_CHAIN
    EPOBC_CHAIN = EPOBC_CHAIN

    def __init__(self, storage: AddressStorage, network: Network = BITCOIN):
        self.storage = storage
        self.network = network
        self._master: HDNode | None = None

    # ── root key ─────────────────────────────────────────────────

    def set_master_key(self, master_key: str) -> None:
        """Install *master_key*; all existing addresses are forgotten."""
        self.storage.set_master_key(master_key)
        self._master = None

    def set_master_key_from_seed(self, seed: bytes | str) -> None:
        """Derive the root from *seed* and install it if it changed.

        Re-opening a wallet with the same seed therefore keeps its key
        records, while a different seed starts a fresh key chain.
        """
        master_key = HDNode.from_seed(_seed_bytes(seed), self.network).to_extended_key()
        if self.storage.get_master_key() != master_key:
            self.set_master_key(master_key)

    def get_master_key(self) -> str | None:
        return self.storage.get_master_key()

    def _master_node(self) -> HDNode:
        master_key = self.storage.get_master_key()
        if master_key is None:
            raise RuntimeError("Master key is not set")
        if self._master is None or self._master.to_extended_key() != master_key:
            self._master = HDNode.from_extended_key(master_key)
        return self._master

    def derive_node(self, account: int, chain: int, index: int) -> HDNode:
        return self._master_node().derive_address_node(account, chain, index)

    # ── addresses ────────────────────────────────────────────────

    def get_new_address(self, account: int = 0, chain: int = UNCOLORED_CHAIN) -> Address:
        """Derive and persist the address after the highest used index."""
        max_index = self.storage.get_max_index(account, chain)
        index = 0 if max_index is None else max_index + 1

        pubkey = self.derive_node(account, chain, index).public_key
        record = self.storage.add_pubkey(account, chain, index, pubkey.hex())
        address = Address(self, record)
        logger.debug(f"New address {address.address} at {account}/{chain}/{index}")
        return address

    def get_some_address(self, account: int = 0, chain: int = UNCOLORED_CHAIN) -> Address:
        """First address of the chain, created when the chain is empty."""
        records = self.storage.get_all_pubkeys(account, chain)
        if not records:
            return self.get_new_address(account, chain)
        return Address(self, min(records, key=lambda r: r.index))

    def get_all_addresses(self, account: int | None = None,
                          chain: int | None = None) -> list[Address]:
        return [Address(self, r) for r in self.storage.get_all_pubkeys(account, chain)]
