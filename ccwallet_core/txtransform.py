"""
Send-pipeline collaborators.

  - ``AssetTx``             what the user asked for: a list of AssetTargets
  - ``TxTransformer``       AssetTx -> ComposedTx (coin selection + fee)
  - ``Signer``              ComposedTx -> signed raw transaction (hex)
  - ``BasicTxTransformer``  transformer for uncolored sends

Colored sends need the colored-coin kernel to decide which inputs carry the
color and how it flows to the outputs; that kernel is supplied from outside
as another ``TxTransformer``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ccwallet_core.asset import AssetDefinition, AssetTarget
from ccwallet_core.composed_tx import DEFAULT_FEE_PER_KB, ComposedTx, TxOut
from ccwallet_core.errors import ColorKernelRequiredError, InsufficientFundsError
from ccwallet_core.hd import address_to_script

if TYPE_CHECKING:
    from ccwallet_core.wallet import Wallet

logger = logging.getLogger("ccwallet_tx")

DEFAULT_DUST_THRESHOLD = 5_460


class AssetTx:
    """Targets of a send, bound to the wallet that pays for them."""

    def __init__(self, wallet: Wallet, targets: list[AssetTarget] | None = None):
        self.wallet = wallet
        self.targets: list[AssetTarget] = []
        if targets:
            self.add_targets(targets)

    def add_target(self, target: AssetTarget) -> None:
        self.targets.append(target)

    def add_targets(self, targets: list[AssetTarget]) -> None:
        for target in targets:
            self.add_target(target)

    def get_targets(self) -> list[AssetTarget]:
        return list(self.targets)

    def is_monoasset(self) -> bool:
        return len({t.get_asset().get_id() for t in self.targets}) <= 1

    def is_monocolor(self) -> bool:
        if not self.is_monoasset() or not self.targets:
            return False
        return len(self.targets[0].get_asset().get_color_set().get_color_ids()) == 1

    def get_asset(self) -> AssetDefinition:
        if not self.targets or not self.is_monoasset():
            raise ValueError("AssetTx must hold targets of exactly one asset")
        return self.targets[0].get_asset()


class TxTransformer(ABC):
    @abstractmethod
    async def transform_tx(self, asset_tx: AssetTx) -> ComposedTx:
        """Select inputs, size the fee and return an unsigned transaction."""


class Signer(ABC):
    @abstractmethod
    async def sign_tx(self, composed_tx: ComposedTx) -> str:
        """Return the signed transaction serialized as hex."""


class BasicTxTransformer(TxTransformer):
    """
    Composes uncolored sends.

    Only coins on the asset's own address chain are spent.  They are taken
    largest first until they cover the targets plus the fee estimated for the
    inputs selected so far and one change output.  Change goes to the
    wallet's first uncolored address unless it is dust, in which case it is
    left to the miner.
    """

    def __init__(self, fee_per_kb: int = DEFAULT_FEE_PER_KB,
                 dust_threshold: int = DEFAULT_DUST_THRESHOLD):
        self.fee_per_kb = fee_per_kb
        self.dust_threshold = dust_threshold

    async def transform_tx(self, asset_tx: AssetTx) -> ComposedTx:
        asset = asset_tx.get_asset()
        if not asset.get_color_set().is_uncolored_only():
            raise ColorKernelRequiredError(
                f"Composing a transfer of {asset.monikers} needs the colored-coin kernel"
            )

        wallet = asset_tx.wallet
        ctx = ComposedTx()
        for target in asset_tx.get_targets():
            script = address_to_script(target.get_address(), wallet.network)
            ctx.add_txout(TxOut(target.get_value(), script, target.get_address()))
        needed = ctx.output_value()

        coins = await (wallet.get_coin_query()
                       .only_addresses(wallet.get_all_addresses(asset))
                       .only_colored_as(asset.get_color_definitions())
                       .get_coins())
        for coin in sorted(coins, key=lambda c: c.value, reverse=True):
            if ctx.input_value() >= needed + ctx.estimate_required_fee(fee_per_kb=self.fee_per_kb):
                break
            ctx.add_txin(coin.to_txin())

        fee = ctx.estimate_required_fee(fee_per_kb=self.fee_per_kb)
        if ctx.input_value() < needed + fee:
            raise InsufficientFundsError(
                f"Need {needed + fee} (fee {fee}), have {ctx.input_value()}"
            )

        change = ctx.input_value() - needed - fee
        if change > self.dust_threshold:
            change_address = wallet.get_some_address(asset)
            ctx.add_txout(TxOut(change, address_to_script(change_address, wallet.network),
                                change_address))
            ctx.default_extra_txouts = 0

        logger.info(
            f"Composed tx: {len(ctx.txins)} in, {len(ctx.txouts)} out, fee {fee}"
        )
        return ctx
