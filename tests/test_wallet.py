"""
Tests for the Wallet orchestrator (wallet.py).

Covers:
  - construction: bitcoin seeded with an address, reopen keeps addresses
  - chain selection for uncolored / EPOBC / unsupported assets
  - per-asset address operations and the value-level batch listing
  - balances: scope flags, color filtering, multi-color error
  - send pipeline ordering and failure isolation
  - clear_storage
  - from_config
"""

from __future__ import annotations

import logging

import pytest

from ccwallet_core.address import EPOBC_CHAIN, UNCOLORED_CHAIN
from ccwallet_core.blockchain import HTTPBlockchain
from ccwallet_core.coins import CoinList
from ccwallet_core.color import ColorValue
from ccwallet_core.composed_tx import ComposedTx
from ccwallet_core.config import CCWalletConfig
from ccwallet_core.errors import (
    BlockchainError,
    DuplicateAssetError,
    InsufficientFundsError,
    MultiColorBalanceUnsupportedError,
    SignerNotConfiguredError,
    UndefinedChainError,
    UnsupportedChainError,
    WalletError,
)
from ccwallet_core.hd import TESTNET, HDNode
from ccwallet_core.logging_config import _JSONFormatter
from ccwallet_core.storage import MemoryStore, SQLiteStore
from ccwallet_core.txtransform import BasicTxTransformer, TxTransformer
from ccwallet_core.wallet import Wallet

DEST = HDNode.from_seed(b"\x09" * 32).get_address()


@pytest.fixture
def bitcoin(wallet):
    return wallet.get_asset_definition_by_moniker("bitcoin")


@pytest.fixture
def gold(wallet, epobc_desc):
    return wallet.add_asset_definition({"monikers": ["gold"], "color_descs": [epobc_desc], "unit": 10})


@pytest.fixture
def silver(wallet, obc_desc):
    return wallet.add_asset_definition({"monikers": ["silver"], "color_descs": [obc_desc]})


# ═══════════════════════════════════════════════════════════════════
#  Construction
# ═══════════════════════════════════════════════════════════════════

class TestConstruction:
    def test_bitcoin_has_address(self, wallet, bitcoin):
        assert len(wallet.get_all_addresses(bitcoin)) == 1

    def test_defaults(self, seed):
        w = Wallet(seed)
        assert isinstance(w.store, MemoryStore)
        assert isinstance(w.blockchain, HTTPBlockchain)
        assert isinstance(w.tx_transformer, BasicTxTransformer)
        assert w.signer is None

    def test_hex_seed(self, seed, master_xprv):
        w = Wallet(seed.hex())
        assert w.address_manager.get_master_key() == master_xprv

    def test_testnet(self, seed):
        w = Wallet(seed, testnet=True, blockchain=None)
        assert w.network is TESTNET
        assert w.address_manager.get_master_key().startswith("tprv")
        assert w.blockchain.base_url.endswith("/testnet/api")

    def test_testnet_must_be_bool(self, seed):
        with pytest.raises(TypeError):
            Wallet(seed, testnet="yes")

    def test_reopen_same_seed_keeps_addresses(self, wallet, make_wallet, bitcoin):
        wallet.get_new_address(bitcoin)
        reopened = make_wallet()
        assert reopened.get_all_addresses(bitcoin) == wallet.get_all_addresses(bitcoin)

    def test_reopen_other_seed_resets_addresses(self, wallet, make_wallet, bitcoin):
        old = wallet.get_all_addresses(bitcoin)
        reopened = make_wallet(seed=b"\x55" * 32)
        new = reopened.get_all_addresses(bitcoin)
        assert len(new) == 1
        assert new != old


# ═══════════════════════════════════════════════════════════════════
#  Assets and chains
# ═══════════════════════════════════════════════════════════════════

class TestAssets:
    def test_add_creates_address(self, wallet, gold):
        assert len(wallet.get_all_addresses(gold)) == 1
        assert wallet.get_asset_definition_by_id(gold.get_id()) == gold
        assert {a.monikers[0] for a in wallet.get_all_asset_definitions()} == {"bitcoin", "gold"}

    def test_add_unsupported_shape_still_stored(self, wallet, silver):
        assert wallet.get_asset_definition_by_moniker("silver") == silver

    def test_add_duplicate(self, wallet, gold, epobc_desc):
        with pytest.raises(DuplicateAssetError):
            wallet.add_asset_definition({"monikers": ["gold"], "color_descs": [epobc_desc]})


class TestChains:
    def test_select_chain(self, wallet, bitcoin, gold):
        assert wallet.select_chain(bitcoin) == UNCOLORED_CHAIN
        assert wallet.select_chain(gold) == EPOBC_CHAIN

    def test_unsupported_shape_is_returned(self, wallet, silver):
        chain = wallet.select_chain(silver)
        assert isinstance(chain, UndefinedChainError)
        assert "silver" in str(chain)

    def test_unsupported_shape_raises_from_address_ops(self, wallet, silver):
        with pytest.raises(UnsupportedChainError):
            wallet.get_new_address(silver)
        with pytest.raises(UndefinedChainError):
            wallet.get_some_address(silver)
        with pytest.raises(UndefinedChainError):
            wallet.get_all_addresses(silver)

    def test_new_address_increments(self, wallet, gold):
        first = wallet.get_some_address(gold)
        second = wallet.get_new_address(gold)
        assert wallet.get_all_addresses(gold) == [first, second]
        assert wallet.get_some_address(gold) == first

    def test_addresses_by_asset_reports_errors_as_values(self, wallet, bitcoin, gold, silver):
        listing = wallet.get_addresses_by_asset()
        assert listing["bitcoin"] == wallet.get_all_addresses(bitcoin)
        assert listing["gold"] == wallet.get_all_addresses(gold)
        assert isinstance(listing["silver"], UndefinedChainError)

    def test_coin_query_covers_both_chains(self, wallet, bitcoin, gold):
        query = wallet.get_coin_query()
        assert set(query.addresses) == set(wallet.get_all_addresses(bitcoin) + wallet.get_all_addresses(gold))


# ═══════════════════════════════════════════════════════════════════
#  Balances
# ═══════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
class TestBalances:
    async def test_empty(self, wallet, bitcoin):
        assert await wallet.get_total_balance(bitcoin) == 0

    async def test_scopes(self, wallet, bitcoin, blockchain):
        addr = wallet.get_some_address(bitcoin)
        blockchain.add_utxo(addr, "aa" * 32, 0, 70_000, confirmations=2)
        blockchain.add_utxo(addr, "bb" * 32, 0, 30_000, confirmations=0)
        assert await wallet.get_total_balance(bitcoin) == 100_000
        assert await wallet.get_available_balance(bitcoin) == 70_000
        assert await wallet.get_unconfirmed_balance(bitcoin) == 30_000

    async def test_both_flags_rejected(self, wallet, bitcoin):
        with pytest.raises(ValueError):
            await wallet.get_balance(bitcoin, only_confirmed=True, only_unconfirmed=True)

    async def test_colored_balance(self, wallet, bitcoin, gold, blockchain):
        gold_addr = wallet.get_some_address(gold)
        color_id = gold.get_color_set().get_color_ids()[0]
        blockchain.add_utxo(gold_addr, "cc" * 32, 1, 600)
        wallet.color_data_storage.add(color_id, "cc" * 32, 1, 42)
        blockchain.add_utxo(gold_addr, "dd" * 32, 0, 5_000)

        assert await wallet.get_total_balance(gold) == 42
        # uncolored coins parked on the colored chain do not count as bitcoin
        assert await wallet.get_total_balance(bitcoin) == 0

    async def test_multi_color_values_rejected(self, wallet, bitcoin, blockchain, monkeypatch):
        gold_def = wallet.cd_manager.resolve("epobc:" + "ee" * 32 + ":0:0")
        fake = CoinList([])
        monkeypatch.setattr(fake, "get_total_value", lambda: [
            ColorValue(wallet.cd_manager.get_uncolored(), 1),
            ColorValue(gold_def, 2),
        ])

        async def fake_get_coins(self):
            return fake

        monkeypatch.setattr("ccwallet_core.coins.CoinQuery.get_coins", fake_get_coins)
        with pytest.raises(MultiColorBalanceUnsupportedError):
            await wallet.get_total_balance(bitcoin)

    async def test_unsupported_asset(self, wallet, silver):
        with pytest.raises(UndefinedChainError):
            await wallet.get_total_balance(silver)

    async def test_blockchain_error_propagates(self, wallet, bitcoin, blockchain, monkeypatch):
        async def broken(address):
            raise BlockchainError("down")

        monkeypatch.setattr(blockchain, "get_utxos", broken)
        with pytest.raises(BlockchainError, match="down"):
            await wallet.get_total_balance(bitcoin)


# ═══════════════════════════════════════════════════════════════════
#  Send pipeline
# ═══════════════════════════════════════════════════════════════════

class _RecordingTransformer(TxTransformer):
    def __init__(self, log, fail=None):
        self.log = log
        self.fail = fail

    async def transform_tx(self, asset_tx):
        self.log.append("transform")
        if self.fail is not None:
            raise self.fail
        return ComposedTx()


@pytest.mark.asyncio
class TestSendCoins:
    async def test_happy_path(self, wallet, bitcoin, blockchain, signer):
        blockchain.add_utxo(wallet.get_some_address(bitcoin), "aa" * 32, 0, 200_000)
        txid = await wallet.send_coins(bitcoin, [{"address": DEST, "value": 50_000}])
        assert txid == "f" * 64
        assert len(signer.signed) == 1
        assert signer.signed[0].txouts[0].address == DEST
        assert blockchain.sent == ["0100" + "00"]

    async def test_stages_run_in_order(self, make_wallet, bitcoin, blockchain, make_signer):
        log = []

        class LoggingSigner(make_signer):
            async def sign_tx(self, composed_tx):
                log.append("sign")
                return await super().sign_tx(composed_tx)

        original_send = blockchain.send_tx

        async def send_tx(raw):
            log.append("broadcast")
            return await original_send(raw)

        blockchain.send_tx = send_tx
        w = make_wallet(tx_transformer=_RecordingTransformer(log), signer=LoggingSigner())
        await w.send_coins(bitcoin, [{"address": DEST, "value": 1}])
        assert log == ["transform", "sign", "broadcast"]

    async def test_signing_failure_never_broadcasts(self, make_wallet, bitcoin, blockchain, make_signer):
        w = make_wallet(signer=make_signer(fail=RuntimeError("hsm offline")))
        blockchain.add_utxo(w.get_some_address(bitcoin), "aa" * 32, 0, 200_000)
        with pytest.raises(RuntimeError, match="hsm offline"):
            await w.send_coins(bitcoin, [{"address": DEST, "value": 50_000}])
        assert blockchain.sent == []

    async def test_transform_failure_skips_sign_and_broadcast(self, make_wallet, bitcoin, blockchain, signer):
        log = []
        w = make_wallet(tx_transformer=_RecordingTransformer(log, InsufficientFundsError("short")))
        with pytest.raises(InsufficientFundsError):
            await w.send_coins(bitcoin, [{"address": DEST, "value": 1}])
        assert log == ["transform"]
        assert signer.signed == []
        assert blockchain.sent == []

    async def test_broadcast_error_propagates(self, wallet, bitcoin, blockchain, monkeypatch):
        calls = []

        async def reject(raw):
            calls.append(raw)
            raise BlockchainError("mempool rejected")

        monkeypatch.setattr(blockchain, "send_tx", reject)
        blockchain.add_utxo(wallet.get_some_address(bitcoin), "aa" * 32, 0, 200_000)
        with pytest.raises(BlockchainError, match="mempool"):
            await wallet.send_coins(bitcoin, [{"address": DEST, "value": 50_000}])
        assert len(calls) == 1

    async def test_colored_chain_coins_not_spent_as_bitcoin(self, wallet, bitcoin, gold, blockchain, signer):
        # no color data for this outpoint, so it reads as uncolored
        blockchain.add_utxo(wallet.get_some_address(gold), "cc" * 32, 0, 1_000_000)
        assert await wallet.get_total_balance(bitcoin) == 0
        with pytest.raises(InsufficientFundsError):
            await wallet.send_coins(bitcoin, [{"address": DEST, "value": 500_000}])
        assert signer.signed == []
        assert blockchain.sent == []

    async def test_no_signer(self, make_wallet, bitcoin, blockchain):
        w = make_wallet(signer=None)
        with pytest.raises(SignerNotConfiguredError):
            await w.send_coins(bitcoin, [{"address": DEST, "value": 1}])
        assert blockchain.sent == []

    async def test_errors_share_base(self, wallet, gold):
        with pytest.raises(WalletError):
            await wallet.send_coins(gold, [{"address": DEST, "value": 1}])


# ═══════════════════════════════════════════════════════════════════
#  Maintenance
# ═══════════════════════════════════════════════════════════════════

class TestClearStorage:
    def test_everything_empty(self, wallet, bitcoin, gold):
        color_id = gold.get_color_set().get_color_ids()[0]
        wallet.color_data_storage.add(color_id, "aa" * 32, 0, 1)

        wallet.clear_storage()

        assert wallet.address_storage.get_max_index(0, UNCOLORED_CHAIN) is None
        assert wallet.address_storage.get_all_pubkeys() == []
        assert wallet.address_manager.get_master_key() is None
        assert wallet.get_all_asset_definitions() == []
        assert wallet.cd_manager.get_all() == []
        assert wallet.color_data_storage.get_any("aa" * 32, 0) == []


class TestFromConfig:
    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        for h in root.handlers:
            if h not in handlers:
                h.close()
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_applies_logging_section(self, tmp_path, seed):
        seed_file = tmp_path / "seed.hex"
        seed_file.write_text(seed.hex())
        cfg = CCWalletConfig()
        cfg.wallet.seed_file = str(seed_file)
        cfg.storage.backend = "memory"
        cfg.logging.level = "WARNING"
        cfg.logging.format = "json"
        Wallet.from_config(cfg)
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, _JSONFormatter)

    def test_builds_collaborators(self, tmp_path, seed, signer):
        seed_file = tmp_path / "seed.hex"
        seed_file.write_text(seed.hex() + "\n")
        cfg = CCWalletConfig()
        cfg.wallet.seed_file = str(seed_file)
        cfg.wallet.testnet = True
        cfg.storage.path = str(tmp_path / "wallet.db")
        cfg.fees.fee_per_kb = 2_000

        w = Wallet.from_config(cfg, signer=signer)
        assert isinstance(w.store, SQLiteStore)
        assert w.blockchain.base_url == cfg.blockchain.testnet_api_url
        assert w.tx_transformer.fee_per_kb == 2_000
        assert w.signer is signer
        assert w.network is TESTNET
        w.store.close()

    def test_memory_backend(self, tmp_path, seed):
        seed_file = tmp_path / "seed.hex"
        seed_file.write_text(seed.hex())
        cfg = CCWalletConfig()
        cfg.wallet.seed_file = str(seed_file)
        cfg.storage.backend = "memory"
        assert isinstance(Wallet.from_config(cfg).store, MemoryStore)

    @pytest.mark.asyncio
    async def test_close(self, tmp_path, seed):
        seed_file = tmp_path / "seed.hex"
        seed_file.write_text(seed.hex())
        cfg = CCWalletConfig()
        cfg.wallet.seed_file = str(seed_file)
        cfg.storage.path = str(tmp_path / "c.db")
        w = Wallet.from_config(cfg)
        await w.close()
