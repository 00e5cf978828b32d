"""
Coin queries over the wallet's addresses.

A ``CoinQuery`` is an immutable builder: each filter returns a new query.
Running it fetches unspent outputs from the blockchain collaborator and
tags every coin with its color values from the color data cache.  Outpoints
the cache knows nothing about are treated as uncolored.

    coins = await (wallet.get_coin_query()
                   .only_colored_as(assdef.get_color_definitions())
                   .get_confirmed()
                   .get_coins())
    coins.get_total_value()    # -> [ColorValue, ...] one per color
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator

from ccwallet_core.color import (
    ColorDataStorage,
    ColorDefinition,
    ColorDefinitionManager,
    ColorValue,
)
from ccwallet_core.composed_tx import TxIn
from ccwallet_core.hd import BITCOIN, Network, address_to_script

if TYPE_CHECKING:
    from ccwallet_core.blockchain import Blockchain

logger = logging.getLogger("ccwallet_coins")

ALL = "all"
CONFIRMED = "confirmed"
UNCONFIRMED = "unconfirmed"


@dataclass
class Coin:
    """An unspent output owned by one of the wallet's addresses."""
    txid: str
    outindex: int
    value: int
    script: bytes
    address: str
    confirmations: int = 0
    color_values: list[ColorValue] = field(default_factory=list)

    def is_confirmed(self) -> bool:
        return self.confirmations > 0

    def to_txin(self) -> TxIn:
        return TxIn(self.txid, self.outindex, self.value, self.script, self.address)


class CoinList:
    def __init__(self, coins: list[Coin]):
        self.coins = list(coins)

    def __iter__(self) -> Iterator[Coin]:
        return iter(self.coins)

    def __len__(self) -> int:
        return len(self.coins)

    def get_coins(self) -> list[Coin]:
        return list(self.coins)

    def get_total_value(self) -> list[ColorValue]:
        """Sum of color values, one entry per distinct color, first-seen order."""
        totals: dict[int, ColorValue] = {}
        for coin in self.coins:
            for cv in coin.color_values:
                totals[cv.color_id] = totals[cv.color_id] + cv if cv.color_id in totals else cv
        return list(totals.values())

    def get_confirmed(self) -> CoinList:
        return CoinList([c for c in self.coins if c.is_confirmed()])

    def get_unconfirmed(self) -> CoinList:
        return CoinList([c for c in self.coins if not c.is_confirmed()])


class CoinQuery:
    def __init__(self, addresses: list[str], blockchain: Blockchain,
                 color_data: ColorDataStorage, cdmanager: ColorDefinitionManager,
                 network: Network = BITCOIN):
        self.addresses = list(addresses)
        self.blockchain = blockchain
        self.color_data = color_data
        self.cdmanager = cdmanager
        self.network = network
        self.color_ids: set[int] | None = None
        self.scope = ALL

    def _clone(self) -> CoinQuery:
        query = copy.copy(self)
        query.addresses = list(self.addresses)
        return query

    def only_colored_as(self, colors: list[ColorDefinition]) -> CoinQuery:
        query = self._clone()
        query.color_ids = {cd.color_id for cd in colors}
        return query

    def only_addresses(self, addresses: list[str]) -> CoinQuery:
        wanted = set(addresses)
        query = self._clone()
        query.addresses = [a for a in self.addresses if a in wanted]
        return query

    def get_confirmed(self) -> CoinQuery:
        query = self._clone()
        query.scope = CONFIRMED
        return query

    def get_unconfirmed(self) -> CoinQuery:
        query = self._clone()
        query.scope = UNCONFIRMED
        return query

    def _color_values(self, txid: str, outindex: int, value: int) -> list[ColorValue]:
        cached = self.color_data.get_any(txid, outindex)
        if not cached:
            return [ColorValue(self.cdmanager.get_uncolored(), value)]
        values = []
        for color_id, color_value in cached:
            colordef = self.cdmanager.get_by_color_id(color_id)
            if colordef is None:
                logger.warning(f"Color data for {txid}:{outindex} names unknown color {color_id}")
                continue
            values.append(ColorValue(colordef, color_value))
        return values

    def _in_scope(self, coin: Coin) -> bool:
        if self.scope == CONFIRMED:
            return coin.is_confirmed()
        if self.scope == UNCONFIRMED:
            return not coin.is_confirmed()
        return True

    async def get_coins(self) -> CoinList:
        coins: list[Coin] = []
        for address in self.addresses:
            script = address_to_script(address, self.network)
            for utxo in await self.blockchain.get_utxos(address):
                color_values = self._color_values(utxo["txid"], utxo["outindex"], utxo["value"])
                if self.color_ids is not None:
                    color_values = [cv for cv in color_values if cv.color_id in self.color_ids]
                    if not color_values:
                        continue
                coin = Coin(
                    txid=utxo["txid"],
                    outindex=utxo["outindex"],
                    value=utxo["value"],
                    script=script,
                    address=address,
                    confirmations=utxo.get("confirmations", 0),
                    color_values=color_values,
                )
                if self._in_scope(coin):
                    coins.append(coin)
        logger.debug(f"Coin query over {len(self.addresses)} address(es) matched {len(coins)} coin(s)")
        return CoinList(coins)
