"""
TOML-based configuration for a ccwallet process.

Settings are read from a TOML file and then overridden by environment
variables.

Usage:
    from ccwallet_core.config import load_config
    cfg = load_config("ccwallet.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[import,no-redef]


@dataclass
class WalletConfig:
    """Network selection and where the master seed lives.

    ``seed_file`` holds the hex-encoded BIP-32 seed.  It is read only by
    ``Wallet.from_config``; the seed itself never goes into the TOML file.
    """
    testnet: bool = False
    seed_file: str = "data/seed.hex"


@dataclass
class StorageConfig:
    """Key/value persistence settings."""
    backend: str = "sqlite"     # "sqlite" or "memory"
    path: str = "data/ccwallet.db"


@dataclass
class BlockchainConfig:
    """Esplora-style REST endpoint used for UTXO queries and broadcast."""
    api_url: str = "https://blockstream.info/api"
    testnet_api_url: str = "https://blockstream.info/testnet/api"
    timeout_seconds: float = 30.0


@dataclass
class FeeConfig:
    """Fee policy in base units (satoshi)."""
    fee_per_kb: int = 10_000
    dust_threshold: int = 5_460


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class CCWalletConfig:
    """Top-level configuration container."""
    wallet: WalletConfig = field(default_factory=WalletConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    blockchain: BlockchainConfig = field(default_factory=BlockchainConfig)
    fees: FeeConfig = field(default_factory=FeeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def api_url(self) -> str:
        """Blockchain endpoint matching the selected network."""
        if self.wallet.testnet:
            return self.blockchain.testnet_api_url
        return self.blockchain.api_url


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Copy known keys of *raw* onto the dataclass *dc*; unknown keys are ignored."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(path: str | None = None) -> CCWalletConfig:
    """
    Load configuration from a TOML file, then apply environment overrides.

    A missing file is not an error; defaults are used.

    Env-var mapping:
        CCWALLET_TESTNET      -> wallet.testnet   (1/true/yes/on)
        CCWALLET_SEED_FILE    -> wallet.seed_file
        CCWALLET_STORAGE      -> storage.backend
        CCWALLET_DB_PATH      -> storage.path
        CCWALLET_API_URL      -> blockchain.api_url and testnet_api_url
        CCWALLET_FEE_PER_KB   -> fees.fee_per_kb
        CCWALLET_LOG_LEVEL    -> logging.level
        CCWALLET_LOG_FMT      -> logging.format
    """
    cfg = CCWalletConfig()

    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("wallet", cfg.wallet),
                ("storage", cfg.storage),
                ("blockchain", cfg.blockchain),
                ("fees", cfg.fees),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    if v := os.environ.get("CCWALLET_TESTNET"):
        cfg.wallet.testnet = _parse_bool(v)
    if v := os.environ.get("CCWALLET_SEED_FILE"):
        cfg.wallet.seed_file = v
    if v := os.environ.get("CCWALLET_STORAGE"):
        cfg.storage.backend = v.lower()
    if v := os.environ.get("CCWALLET_DB_PATH"):
        cfg.storage.path = v
    if v := os.environ.get("CCWALLET_API_URL"):
        cfg.blockchain.api_url = v
        cfg.blockchain.testnet_api_url = v
    if v := os.environ.get("CCWALLET_FEE_PER_KB"):
        cfg.fees.fee_per_kb = int(v)
    if v := os.environ.get("CCWALLET_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("CCWALLET_LOG_FMT"):
        cfg.logging.format = v

    return cfg
