"""
Wallet: the orchestrator tying keys, assets, coins and the send pipeline
together.

    wallet = Wallet(seed_hex, testnet=True, blockchain=HTTPBlockchain(url),
                    signer=my_signer)
    bitcoin = wallet.get_asset_definition_by_moniker("bitcoin")
    address = wallet.get_some_address(bitcoin)
    balance = await wallet.get_available_balance(bitcoin)
    txid = await wallet.send_coins(bitcoin, [{"address": dest, "value": 50_000}])

Every asset maps to one address chain (``select_chain``): uncolored assets
use ``UNCOLORED_CHAIN`` and EPOBC assets use ``EPOBC_CHAIN``.  For assets of
any other shape ``select_chain`` returns an ``UndefinedChainError`` instance
rather than raising it; the per-asset address operations raise it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from ccwallet_core.address import EPOBC_CHAIN, UNCOLORED_CHAIN, AddressManager
from ccwallet_core.asset import (
    AssetDefinition,
    AssetDefinitionManager,
    AssetDefinitionStorage,
    AssetTarget,
    AssetValue,
)
from ccwallet_core.blockchain import Blockchain, HTTPBlockchain
from ccwallet_core.coins import CoinQuery
from ccwallet_core.color import (
    ColorDataStorage,
    ColorDefinitionManager,
    ColorDefinitionStorage,
)
from ccwallet_core.config import BlockchainConfig, CCWalletConfig
from ccwallet_core.errors import (
    MultiColorBalanceUnsupportedError,
    SignerNotConfiguredError,
    UndefinedChainError,
)
from ccwallet_core.hd import get_network
from ccwallet_core.keychain import AddressStorage
from ccwallet_core.logging_config import setup_logging_from_config
from ccwallet_core.storage import KeyValueStore, MemoryStore, SQLiteStore, open_store
from ccwallet_core.txtransform import AssetTx, BasicTxTransformer, Signer, TxTransformer

logger = logging.getLogger("ccwallet_wallet")

WALLET_ACCOUNT = 0


class Wallet:
    """
    One HD wallet over one key/value store.

    Parameters
    ----------
    master_key : bytes | str
        BIP-32 seed, raw bytes or hex.
    testnet : bool
        Selects address and extended-key version bytes.
    store : KeyValueStore, optional
        Shared by every owned storage; defaults to a fresh ``MemoryStore``.
    blockchain : Blockchain, optional
        Defaults to ``HTTPBlockchain`` on the public endpoint for the network.
    tx_transformer : TxTransformer, optional
        Defaults to ``BasicTxTransformer``.
    signer : Signer, optional
        Required only by ``send_coins``.
    """

    def __init__(self, master_key: bytes | str, testnet: bool = False, *,
                 store: KeyValueStore | None = None,
                 blockchain: Blockchain | None = None,
                 tx_transformer: TxTransformer | None = None,
                 signer: Signer | None = None):
        if not isinstance(testnet, bool):
            raise TypeError(f"Expected bool testnet, got {testnet!r}")

        self.testnet = testnet
        self.network = get_network(testnet)
        self.store = store if store is not None else MemoryStore()

        if blockchain is None:
            defaults = BlockchainConfig()
            blockchain = HTTPBlockchain(defaults.testnet_api_url if testnet else defaults.api_url,
                                        timeout=defaults.timeout_seconds)
        self.blockchain = blockchain
        self.tx_transformer = tx_transformer if tx_transformer is not None else BasicTxTransformer()
        self.signer = signer

        self.address_storage = AddressStorage(self.store)
        self.address_manager = AddressManager(self.address_storage, self.network)
        self.address_manager.set_master_key_from_seed(master_key)

        self.color_data_storage = ColorDataStorage(self.store)
        self.cd_storage = ColorDefinitionStorage(self.store)
        self.cd_manager = ColorDefinitionManager(self.cd_storage)

        self.ad_storage = AssetDefinitionStorage(self.store)
        self.ad_manager = AssetDefinitionManager(self.cd_manager, self.ad_storage)

        for assdef in self.ad_manager.get_all_assets():
            self._ensure_address(assdef)

        logger.info(
            f"Wallet ready on {self.network.name}: "
            f"{len(self.ad_manager.get_all_assets())} asset(s)"
        )

    @classmethod
    def from_config(cls, cfg: CCWalletConfig, signer: Signer | None = None) -> Wallet:
        """
        Build a wallet from configuration; the seed is read from
        ``wallet.seed_file`` and the ``[logging]`` section is applied first.
        """
        setup_logging_from_config(cfg.logging)
        seed_hex = Path(cfg.wallet.seed_file).read_text(encoding="ascii").strip()
        return cls(
            seed_hex,
            testnet=cfg.wallet.testnet,
            store=open_store(cfg.storage.backend, cfg.storage.path),
            blockchain=HTTPBlockchain(cfg.api_url, timeout=cfg.blockchain.timeout_seconds),
            tx_transformer=BasicTxTransformer(cfg.fees.fee_per_kb, cfg.fees.dust_threshold),
            signer=signer,
        )

    async def close(self) -> None:
        if isinstance(self.blockchain, HTTPBlockchain):
            await self.blockchain.close()
        if isinstance(self.store, SQLiteStore):
            self.store.close()

    def _ensure_address(self, assdef: AssetDefinition) -> None:
        chain = self.select_chain(assdef)
        if isinstance(chain, UndefinedChainError):
            logger.debug(f"No address chain for asset {assdef.monikers}")
            return
        self.address_manager.get_some_address(WALLET_ACCOUNT, chain)

    # ── asset definitions ────────────────────────────────────────

    def add_asset_definition(self, data: dict[str, Any]) -> AssetDefinition:
        assdef = self.ad_manager.create_asset_definition(data)
        self._ensure_address(assdef)
        return assdef

    def get_asset_definition_by_moniker(self, moniker: str) -> AssetDefinition | None:
        return self.ad_manager.get_by_moniker(moniker)

    def get_asset_definition_by_id(self, asset_id: str) -> AssetDefinition | None:
        return self.ad_manager.get_by_id(asset_id)

    def get_all_asset_definitions(self) -> list[AssetDefinition]:
        return self.ad_manager.get_all_assets()

    # ── addresses ────────────────────────────────────────────────

    def select_chain(self, assdef: AssetDefinition) -> int | UndefinedChainError:
        """
        Address chain holding coins of *assdef*, or the ``UndefinedChainError``
        describing why there is none.  The error is returned, not raised.
        """
        color_set = assdef.get_color_set()
        if color_set.is_uncolored_only():
            return UNCOLORED_CHAIN
        if color_set.is_epobc_only():
            return EPOBC_CHAIN
        return UndefinedChainError(
            f"Wallet chain not defined for asset {assdef.monikers} ({color_set.color_descs})"
        )

    def _require_chain(self, assdef: AssetDefinition) -> int:
        chain = self.select_chain(assdef)
        if isinstance(chain, UndefinedChainError):
            raise chain
        return chain

    def get_new_address(self, assdef: AssetDefinition) -> str:
        chain = self._require_chain(assdef)
        return self.address_manager.get_new_address(WALLET_ACCOUNT, chain).get_address()

    def get_some_address(self, assdef: AssetDefinition) -> str:
        chain = self._require_chain(assdef)
        return self.address_manager.get_some_address(WALLET_ACCOUNT, chain).get_address()

    def get_all_addresses(self, assdef: AssetDefinition) -> list[str]:
        chain = self._require_chain(assdef)
        return [a.get_address() for a in self.address_manager.get_all_addresses(WALLET_ACCOUNT, chain)]

    def get_addresses_by_asset(self) -> dict[str, list[str] | UndefinedChainError]:
        """
        Addresses of every asset, keyed by the asset's first moniker (or its
        id when it has none).  Assets without a chain map to the
        ``UndefinedChainError`` describing why, so one unsupported asset does
        not hide the others.
        """
        result: dict[str, list[str] | UndefinedChainError] = {}
        for assdef in self.ad_manager.get_all_assets():
            key = assdef.monikers[0] if assdef.monikers else assdef.get_id()
            chain = self.select_chain(assdef)
            if isinstance(chain, UndefinedChainError):
                result[key] = chain
                continue
            result[key] = [a.get_address()
                           for a in self.address_manager.get_all_addresses(WALLET_ACCOUNT, chain)]
        return result

    # ── coins and balances ───────────────────────────────────────

    def get_coin_query(self) -> CoinQuery:
        """Query over every address on the uncolored and EPOBC chains."""
        addresses = self.address_manager.get_all_addresses(WALLET_ACCOUNT, UNCOLORED_CHAIN)
        addresses += self.address_manager.get_all_addresses(WALLET_ACCOUNT, EPOBC_CHAIN)
        return CoinQuery(
            [a.get_address() for a in addresses],
            self.blockchain,
            self.color_data_storage,
            self.cd_manager,
            self.network,
        )

    async def get_balance(self, assdef: AssetDefinition, only_confirmed: bool = False,
                          only_unconfirmed: bool = False) -> int:
        if only_confirmed and only_unconfirmed:
            raise ValueError("only_confirmed and only_unconfirmed are mutually exclusive")

        colors = [self.cd_manager.get_by_color_id(cid)
                  for cid in assdef.get_color_set().get_color_ids()]
        query = (self.get_coin_query()
                 .only_addresses(self.get_all_addresses(assdef))
                 .only_colored_as(colors))
        if only_confirmed:
            query = query.get_confirmed()
        if only_unconfirmed:
            query = query.get_unconfirmed()

        color_values = (await query.get_coins()).get_total_value()
        if not color_values:
            return 0
        if len(color_values) > 1:
            raise MultiColorBalanceUnsupportedError(
                f"Balance of {assdef.monikers} spans {len(color_values)} colors"
            )
        return color_values[0].get_value()

    async def get_available_balance(self, assdef: AssetDefinition) -> int:
        return await self.get_balance(assdef, only_confirmed=True)

    async def get_total_balance(self, assdef: AssetDefinition) -> int:
        return await self.get_balance(assdef)

    async def get_unconfirmed_balance(self, assdef: AssetDefinition) -> int:
        return await self.get_balance(assdef, only_unconfirmed=True)

    # ── sending ──────────────────────────────────────────────────

    async def send_coins(self, assdef: AssetDefinition, raw_targets: list[dict[str, Any]]) -> str:
        """
        Pay ``raw_targets`` (``{"address": str, "value": int}`` in base units)
        in *assdef* and return the broadcast txid.

        Stages run strictly in order: compose, sign, broadcast.  An error at
        any stage propagates as is and nothing after it runs.
        """
        if self.signer is None:
            raise SignerNotConfiguredError("send_coins needs a signer")

        targets = [AssetTarget(t["address"], AssetValue(assdef, t["value"])) for t in raw_targets]
        asset_tx = AssetTx(self, targets)

        composed_tx = await self.tx_transformer.transform_tx(asset_tx)
        signed_tx = await self.signer.sign_tx(composed_tx)
        txid = await self.blockchain.send_tx(signed_tx)

        logger.info(f"Sent {assdef.monikers} to {len(targets)} target(s): {txid}")
        return txid

    # ── maintenance ──────────────────────────────────────────────

    def clear_storage(self) -> None:
        """Drop keys, color data, color definitions and asset definitions."""
        self.address_storage.clear()
        self.color_data_storage.clear()
        self.cd_storage.clear()
        self.ad_storage.clear()
        logger.warning("Wallet storage cleared")
