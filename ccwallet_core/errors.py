"""
Exception hierarchy for ccwallet.

Every failure raised by the core derives from ``WalletError`` so callers can
catch the whole family at once.  Errors that describe a bad argument also
derive from ``ValueError``.
"""

from __future__ import annotations


class WalletError(Exception):
    """Base class for all ccwallet errors."""


# ── key chain ────────────────────────────────────────────────────

class InvalidKeyMaterialError(WalletError, ValueError):
    """The supplied root key is not a well-formed extended private key."""


class UniqueConstraintViolationError(WalletError):
    """A key record with the same (account, chain, index) or pubkey exists."""


class UndefinedChainError(WalletError):
    """No wallet chain is defined for the asset's color set."""


UnsupportedChainError = UndefinedChainError


class InvalidAddressError(WalletError, ValueError):
    """Address string failed base58check decoding or has a foreign version."""


# ── assets and colors ────────────────────────────────────────────

class MultiColorNotSupportedError(WalletError):
    """Asset definitions must be backed by exactly one color descriptor."""


class InvalidUnitError(WalletError, ValueError):
    """Asset unit is not a positive power of ten."""


class InvalidValueError(WalletError, ValueError):
    """A decimal amount string could not be parsed."""


class InvalidColorDescError(WalletError, ValueError):
    """A color descriptor is malformed or names an unknown protocol."""


class DuplicateAssetError(WalletError):
    """An asset definition with the same moniker or id is already stored."""


class MultiColorBalanceUnsupportedError(WalletError):
    """A balance query returned values for more than one color."""


# ── send pipeline ────────────────────────────────────────────────

class InsufficientFundsError(WalletError):
    """Selected coins cannot cover the targets plus the required fee."""


class ColorKernelRequiredError(WalletError):
    """Composing this transaction needs the colored-coin kernel."""


class SignerNotConfiguredError(WalletError):
    """The wallet has no signing collaborator."""


class BlockchainError(WalletError):
    """The blockchain service returned an error or an unexpected payload."""
