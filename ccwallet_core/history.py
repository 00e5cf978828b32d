"""
Wallet history entries.

A ``HistoryEntry`` is a plain record describing one transaction from the
wallet's point of view.  Building entries from raw transactions is the job of
the colored-coin kernel; this module only defines their shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ccwallet_core.asset import AssetTarget, AssetValue


class HistoryEntryType(Enum):
    SEND = "send"
    RECEIVE = "receive"
    PAYMENT_TO_YOURSELF = "payment_to_yourself"
    ISSUE = "issue"


@dataclass(frozen=True)
class HistoryEntry:
    txid: str
    height: int
    timestamp: int
    entry_type: HistoryEntryType
    values: list[AssetValue] = field(default_factory=list)
    targets: list[AssetTarget] = field(default_factory=list)

    def __post_init__(self):
        if not isinstance(self.entry_type, HistoryEntryType):
            # accept the persisted string form
            object.__setattr__(self, "entry_type", HistoryEntryType(self.entry_type))

    def get_txid(self) -> str:
        return self.txid

    def get_block_height(self) -> int:
        return self.height

    def get_timestamp(self) -> int:
        return self.timestamp

    def get_values(self) -> list[AssetValue]:
        return list(self.values)

    def get_targets(self) -> list[AssetTarget]:
        return list(self.targets)

    def is_send(self) -> bool:
        return self.entry_type is HistoryEntryType.SEND

    def is_receive(self) -> bool:
        return self.entry_type is HistoryEntryType.RECEIVE

    def is_payment_to_yourself(self) -> bool:
        return self.entry_type is HistoryEntryType.PAYMENT_TO_YOURSELF

    def is_issue(self) -> bool:
        return self.entry_type is HistoryEntryType.ISSUE
