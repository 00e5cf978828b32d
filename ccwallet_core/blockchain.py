"""
Blockchain collaborator: UTXO lookup and transaction broadcast.

``Blockchain`` is the interface the wallet depends on.  ``HTTPBlockchain``
implements it against an Esplora-style REST API:

    GET  /blocks/tip/height         -> "812345"
    GET  /address/<addr>/utxo       -> [{"txid", "vout", "value", "status"}]
    POST /tx  (raw hex body)        -> "<txid>"

UTXOs are returned normalised to
``{"txid": str, "outindex": int, "value": int, "confirmations": int}``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import aiohttp

from ccwallet_core.errors import BlockchainError

logger = logging.getLogger("ccwallet_blockchain")


class Blockchain(ABC):
    """Interface the wallet uses to reach the network."""

    @abstractmethod
    async def get_block_count(self) -> int:
        """Height of the best block."""

    @abstractmethod
    async def get_utxos(self, address: str) -> list[dict[str, Any]]:
        """Unspent outputs paying *address*, normalised as in the module doc."""

    @abstractmethod
    async def send_tx(self, raw_tx: str) -> str:
        """Broadcast a signed transaction (hex) and return its txid."""


class HTTPBlockchain(Blockchain):
    """aiohttp client for an Esplora-compatible REST endpoint."""

    def __init__(self, base_url: str, timeout: float = 30.0,
                 session: aiohttp.ClientSession | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def _request(self, method: str, path: str, data: str | None = None) -> str:
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        try:
            async with session.request(method, url, data=data) as resp:
                body = await resp.text()
                if resp.status != 200:
                    raise BlockchainError(f"{method} {path} failed: HTTP {resp.status} {body.strip()}")
                return body
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise BlockchainError(f"{method} {path} failed: {exc}") from exc

    async def get_block_count(self) -> int:
        body = await self._request("GET", "/blocks/tip/height")
        try:
            return int(body.strip())
        except ValueError as exc:
            raise BlockchainError(f"Unexpected tip height payload: {body!r}") from exc

    async def get_utxos(self, address: str) -> list[dict[str, Any]]:
        body = await self._request("GET", f"/address/{address}/utxo")
        try:
            raw = json.loads(body)
        except ValueError as exc:
            raise BlockchainError(f"Unexpected UTXO payload for {address}") from exc
        if not isinstance(raw, list):
            raise BlockchainError(f"Unexpected UTXO payload for {address}: expected a list")

        tip: int | None = None
        utxos = []
        for entry in raw:
            try:
                status = entry.get("status", {})
                confirmations = 0
                if status.get("confirmed"):
                    if tip is None:
                        tip = await self.get_block_count()
                    confirmations = tip - status["block_height"] + 1
                utxos.append({
                    "txid": entry["txid"],
                    "outindex": entry["vout"],
                    "value": entry["value"],
                    "confirmations": confirmations,
                })
            except (KeyError, TypeError, AttributeError) as exc:
                raise BlockchainError(
                    f"Malformed UTXO entry for {address}: {entry!r}"
                ) from exc
        return utxos

    async def send_tx(self, raw_tx: str) -> str:
        txid = (await self._request("POST", "/tx", data=raw_tx)).strip()
        logger.info(f"Broadcast transaction {txid}")
        return txid
