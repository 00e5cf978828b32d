"""
Shared pytest fixtures for the ccwallet test suite.
"""

from __future__ import annotations

import pytest

from ccwallet_core.address import AddressManager
from ccwallet_core.blockchain import Blockchain
from ccwallet_core.color import ColorDataStorage, ColorDefinitionManager, ColorDefinitionStorage
from ccwallet_core.keychain import AddressStorage
from ccwallet_core.storage import MemoryStore
from ccwallet_core.txtransform import Signer
from ccwallet_core.wallet import Wallet

# BIP-32 test vector 1
SEED_HEX = "000102030405060708090a0b0c0d0e0f"
MASTER_XPRV = (
    "xprv9s21ZrQH143K3QTDL4LXw2F7HEK3wJUD2nW2nRk4stbPy6cq3jPPqjiChkVvvNKmPGJxWUtg6LnF5kejMRNNU3TGtRBeJgk33yuGBxrMPHi"
)

EPOBC_DESC = "epobc:b95323a763fa507110a89ab857af8e949810cf1e67e91104cd64222a04ccd0bb:0:180679"
OBC_DESC = "obc:b95323a763fa507110a89ab857af8e949810cf1e67e91104cd64222a04ccd0bb:0:180679"


class FakeBlockchain(Blockchain):
    """In-memory blockchain: UTXOs per address, records every broadcast."""

    def __init__(self, tip: int = 100):
        self.tip = tip
        self.utxos: dict[str, list[dict]] = {}
        self.sent: list[str] = []
        self.utxo_calls: list[str] = []

    def add_utxo(self, address: str, txid: str, outindex: int, value: int,
                 confirmations: int = 1) -> None:
        self.utxos.setdefault(address, []).append({
            "txid": txid,
            "outindex": outindex,
            "value": value,
            "confirmations": confirmations,
        })

    async def get_block_count(self) -> int:
        return self.tip

    async def get_utxos(self, address: str) -> list[dict]:
        self.utxo_calls.append(address)
        return [dict(u) for u in self.utxos.get(address, [])]

    async def send_tx(self, raw_tx: str) -> str:
        self.sent.append(raw_tx)
        return "f" * 64


class FakeSigner(Signer):
    def __init__(self, fail: Exception | None = None):
        self.fail = fail
        self.signed = []

    async def sign_tx(self, composed_tx) -> str:
        if self.fail is not None:
            raise self.fail
        self.signed.append(composed_tx)
        return "0100" + "00" * len(composed_tx.txins)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def seed():
    return bytes.fromhex(SEED_HEX)


@pytest.fixture
def address_storage(store):
    return AddressStorage(store)


@pytest.fixture
def address_manager(address_storage, seed):
    """Address manager with the test-vector root installed."""
    am = AddressManager(address_storage)
    am.set_master_key_from_seed(seed)
    return am


@pytest.fixture
def cdmanager(store):
    return ColorDefinitionManager(ColorDefinitionStorage(store))


@pytest.fixture
def color_data(store):
    return ColorDataStorage(store)


@pytest.fixture
def blockchain():
    return FakeBlockchain()


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def wallet(store, seed, blockchain, signer):
    """Mainnet wallet over a memory store with fake collaborators."""
    return Wallet(seed, store=store, blockchain=blockchain, signer=signer)


@pytest.fixture
def make_signer():
    """Factory for signers, optionally failing with a given exception."""
    return FakeSigner


@pytest.fixture
def make_wallet(store, seed, blockchain, signer):
    """Factory for wallets sharing the fixture store and fake blockchain."""
    def _make(**kwargs):
        kwargs.setdefault("store", store)
        kwargs.setdefault("blockchain", blockchain)
        kwargs.setdefault("signer", signer)
        return Wallet(kwargs.pop("seed", seed), **kwargs)
    return _make


@pytest.fixture
def epobc_desc():
    return EPOBC_DESC


@pytest.fixture
def obc_desc():
    return OBC_DESC


@pytest.fixture
def master_xprv():
    return MASTER_XPRV
