"""
ccwallet - core of a colored-coin asset wallet.

Key features:
- BIP-32 deterministic addresses on independent uncolored / EPOBC chains
- Persisted key chain with uniqueness guarantees
- Asset definitions with stable color-set identities and fixed-point values
- Conservative transaction size and fee estimation
- Async balance queries and a sequential send pipeline
"""

__version__ = "0.4.0"
__all__ = [
    "errors",
    "config",
    "logging_config",
    "storage",
    "hd",
    "keychain",
    "address",
    "color",
    "asset",
    "composed_tx",
    "coins",
    "blockchain",
    "txtransform",
    "history",
    "wallet",
]
