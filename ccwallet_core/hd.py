"""
BIP-32 hierarchical deterministic keys and P2PKH address rendering.

This module is the wallet's key-derivation primitive: everything above it
only stores public keys and asks for a derivation by (account, chain, index).

  - ``HDNode``          private-key node with child / path derivation
  - extended keys       base58check ``xprv`` / ``tprv`` (de)serialisation
  - ``Network``         version bytes for mainnet and testnet
  - address helpers     hash160, pubkey -> address, address -> script
"""

from __future__ import annotations

import hashlib
import hmac
import struct
from dataclasses import dataclass

import base58
from Crypto.Hash import RIPEMD160
from ecdsa import SECP256k1, SigningKey

from ccwallet_core.errors import InvalidAddressError, InvalidKeyMaterialError


# ===================================================================
#  Networks
# ===================================================================

@dataclass(frozen=True)
class Network:
    """Version bytes distinguishing mainnet from testnet serialisations."""
    name: str
    pubkeyhash: int
    scripthash: int
    wif: int
    xprv_version: int
    xpub_version: int


BITCOIN = Network("bitcoin", 0x00, 0x05, 0x80, 0x0488ADE4, 0x0488B21E)
TESTNET = Network("testnet", 0x6F, 0xC4, 0xEF, 0x04358394, 0x043587CF)

_NETWORKS_BY_XPRV = {n.xprv_version: n for n in (BITCOIN, TESTNET)}


def get_network(testnet: bool) -> Network:
    return TESTNET if testnet else BITCOIN


# ===================================================================
#  Hash / address helpers
# ===================================================================

def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD-160 of SHA-256, as used in P2PKH addresses."""
    return RIPEMD160.new(sha256(data)).digest()


def pubkey_to_address(pubkey: bytes, network: Network = BITCOIN) -> str:
    payload = bytes([network.pubkeyhash]) + hash160(pubkey)
    return base58.b58encode_check(payload).decode("ascii")


def address_to_hash160(address: str, network: Network = BITCOIN) -> bytes:
    """Decode a P2PKH address, checking its checksum and version byte."""
    try:
        payload = base58.b58decode_check(address)
    except ValueError as exc:
        raise InvalidAddressError(f"Bad address {address!r}: {exc}") from exc
    if len(payload) != 21 or payload[0] != network.pubkeyhash:
        raise InvalidAddressError(
            f"Address {address!r} is not a {network.name} P2PKH address"
        )
    return payload[1:]


def address_to_script(address: str, network: Network = BITCOIN) -> bytes:
    """OP_DUP OP_HASH160 <20 bytes> OP_EQUALVERIFY OP_CHECKSIG (25 bytes)."""
    return b"\x76\xa9\x14" + address_to_hash160(address, network) + b"\x88\xac"


def private_key_to_wif(private_key: bytes, network: Network = BITCOIN) -> str:
    """Wallet Import Format for a compressed-pubkey private key."""
    payload = bytes([network.wif]) + private_key + b"\x01"
    return base58.b58encode_check(payload).decode("ascii")


# ===================================================================
#  HD Key Derivation (BIP-32)
# ===================================================================

class HDNode:
    """
    Hierarchical deterministic key node.

    Derivation follows BIP-32 with HMAC-SHA512.  Only private nodes are
    modelled; the wallet always holds the master private key.
    """

    HARDENED = 0x80000000
    SEED_KEY = b"Bitcoin seed"

    def __init__(self, private_key: bytes, chain_code: bytes, depth: int = 0,
                 index: int = 0, parent_fingerprint: bytes = b"\x00" * 4,
                 network: Network = BITCOIN):
        self.private_key = private_key
        self.chain_code = chain_code
        self.depth = depth
        self.index = index
        self.parent_fingerprint = parent_fingerprint
        self.network = network
        self._pubkey: bytes | None = None

    @classmethod
    def from_seed(cls, seed: bytes, network: Network = BITCOIN) -> HDNode:
        """Create the master node from a 16..64 byte seed."""
        if not 16 <= len(seed) <= 64:
            raise InvalidKeyMaterialError(
                f"Seed must be 16-64 bytes, got {len(seed)}"
            )
        I = hmac.new(cls.SEED_KEY, seed, hashlib.sha512).digest()
        return cls(private_key=I[:32], chain_code=I[32:], network=network)

    @classmethod
    def from_extended_key(cls, xprv: str) -> HDNode:
        """Parse a base58check extended private key (``xprv`` / ``tprv``)."""
        if not isinstance(xprv, str):
            raise InvalidKeyMaterialError(f"Expected str extended key, got {type(xprv).__name__}")
        try:
            raw = base58.b58decode_check(xprv)
        except ValueError as exc:
            raise InvalidKeyMaterialError(f"Extended key checksum failed: {exc}") from exc
        if len(raw) != 78:
            raise InvalidKeyMaterialError(f"Extended key must be 78 bytes, got {len(raw)}")

        version, = struct.unpack(">I", raw[:4])
        network = _NETWORKS_BY_XPRV.get(version)
        if network is None:
            raise InvalidKeyMaterialError(f"Unknown extended private key version {version:#010x}")

        depth = raw[4]
        fingerprint = raw[5:9]
        index, = struct.unpack(">I", raw[9:13])
        chain_code = raw[13:45]
        key = raw[45:78]
        if key[0] != 0:
            raise InvalidKeyMaterialError("Extended key does not hold a private key")
        k = int.from_bytes(key[1:], "big")
        if not 0 < k < SECP256k1.order:
            raise InvalidKeyMaterialError("Private key out of range")
        if depth == 0 and (fingerprint != b"\x00" * 4 or index != 0):
            raise InvalidKeyMaterialError("Master key with non-zero parent fingerprint or index")

        return cls(key[1:], chain_code, depth, index, fingerprint, network)

    def to_extended_key(self) -> str:
        raw = (
            struct.pack(">I", self.network.xprv_version)
            + bytes([self.depth])
            + self.parent_fingerprint
            + struct.pack(">I", self.index)
            + self.chain_code
            + b"\x00" + self.private_key
        )
        return base58.b58encode_check(raw).decode("ascii")

    @property
    def public_key(self) -> bytes:
        """Compressed (33-byte) secp256k1 public key."""
        if self._pubkey is None:
            sk = SigningKey.from_string(self.private_key, curve=SECP256k1)
            raw = sk.get_verifying_key().to_string()
            x, y = raw[:32], raw[32:]
            prefix = b"\x02" if y[-1] % 2 == 0 else b"\x03"
            self._pubkey = prefix + x
        return self._pubkey

    @property
    def fingerprint(self) -> bytes:
        return hash160(self.public_key)[:4]

    def derive_child(self, index: int) -> HDNode:
        if index >= self.HARDENED:
            data = b"\x00" + self.private_key + struct.pack(">I", index)
        else:
            data = self.public_key + struct.pack(">I", index)

        I = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        child_key_int = (int.from_bytes(I[:32], "big") +
                         int.from_bytes(self.private_key, "big")) % SECP256k1.order

        return HDNode(
            private_key=child_key_int.to_bytes(32, "big"),
            chain_code=I[32:],
            depth=self.depth + 1,
            index=index,
            parent_fingerprint=self.fingerprint,
            network=self.network,
        )

    def derive_path(self, path: str) -> HDNode:
        """Derive along ``"m/0'/1/5"``-style notation; ``'`` marks hardened."""
        if path == "m":
            return self
        if path.startswith("m/"):
            path = path[2:]

        node = self
        for component in path.split("/"):
            if component.endswith("'"):
                index = int(component[:-1]) + self.HARDENED
            else:
                index = int(component)
            node = node.derive_child(index)
        return node

    def derive_address_node(self, account: int, chain: int, index: int) -> HDNode:
        """Node for the wallet layout ``m/account'/chain/index``."""
        return self.derive_child(account + self.HARDENED).derive_child(chain).derive_child(index)

    def get_address(self) -> str:
        return pubkey_to_address(self.public_key, self.network)

    def to_wif(self) -> str:
        return private_key_to_wif(self.private_key, self.network)

    def __repr__(self) -> str:
        return f"HDNode(depth={self.depth}, index={self.index}, network={self.network.name})"
