"""
Composed (unsigned) transactions and their serialized size estimate.

The estimate is used to size fees before the final script shapes are known,
so it deliberately errs high:

  - an input spending a 25-byte P2PKH script costs 148 bytes
    (40 outpoint/sequence + varint + 107 scriptSig)
  - any other input, and every not-yet-selected input, costs 297 bytes
    (40 + varint + 254, roughly a P2SH 2-of-3 redemption)
  - an output costs 8 + varint(len(script)) + len(script); reserved extra
    outputs are costed as P2PKH (34 bytes)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

logger = logging.getLogger("ccwallet_tx")

# ── size constants ──────────────────────────────────────────────

INPUT_BASE_SIZE = 40            # prev txid (32) + outindex (4) + sequence (4)
P2PKH_SCRIPT_SIZE = 25
P2PKH_SCRIPTSIG_SIZE = 107
MULTISIG_SCRIPTSIG_SIZE = 254
TX_OVERHEAD = 8                 # version (4) + locktime (4)
OUTPUT_VALUE_SIZE = 8

DEFAULT_FEE_PER_KB = 10_000


def var_int_size(n: int) -> int:
    """Bytes used by the Bitcoin CompactSize encoding of *n*."""
    if n < 0xFD:
        return 1
    if n <= 0xFFFF:
        return 3
    if n <= 0xFFFFFFFF:
        return 5
    return 9


P2PKH_INPUT_SIZE = INPUT_BASE_SIZE + var_int_size(P2PKH_SCRIPTSIG_SIZE) + P2PKH_SCRIPTSIG_SIZE
MULTISIG_INPUT_SIZE = INPUT_BASE_SIZE + var_int_size(MULTISIG_SCRIPTSIG_SIZE) + MULTISIG_SCRIPTSIG_SIZE
P2PKH_OUTPUT_SIZE = OUTPUT_VALUE_SIZE + var_int_size(P2PKH_SCRIPT_SIZE) + P2PKH_SCRIPT_SIZE


@dataclass
class TxIn:
    """An input spending ``txid:outindex``; ``script`` is the script it redeems."""
    txid: str
    outindex: int
    value: int
    script: bytes
    address: str | None = None

    def estimate_size(self) -> int:
        if len(self.script) == P2PKH_SCRIPT_SIZE:
            return P2PKH_INPUT_SIZE
        return MULTISIG_INPUT_SIZE


@dataclass
class TxOut:
    value: int
    script: bytes
    address: str | None = None

    def estimate_size(self) -> int:
        return OUTPUT_VALUE_SIZE + var_int_size(len(self.script)) + len(self.script)


@dataclass
class ComposedTx:
    """Inputs and outputs decided so far; not yet signed."""
    txins: list[TxIn] = field(default_factory=list)
    txouts: list[TxOut] = field(default_factory=list)
    default_extra_txouts: int = 1      # room for a change output

    def add_txin(self, txin: TxIn) -> None:
        self.txins.append(txin)

    def add_txins(self, txins: list[TxIn]) -> None:
        self.txins.extend(txins)

    def add_txout(self, txout: TxOut) -> None:
        self.txouts.append(txout)

    def add_txouts(self, txouts: list[TxOut]) -> None:
        self.txouts.extend(txouts)

    def get_txins(self) -> list[TxIn]:
        return list(self.txins)

    def get_txouts(self) -> list[TxOut]:
        return list(self.txouts)

    def input_value(self) -> int:
        return sum(txin.value for txin in self.txins)

    def output_value(self) -> int:
        return sum(txout.value for txout in self.txouts)

    def estimate_size(self, extra_txins: int = 0, extra_txouts: int | None = None,
                      extra_bytes: int = 0) -> int:
        """
        Upper-bound serialized size in bytes.

        Parameters
        ----------
        extra_txins : int
            Inputs not selected yet; costed as multi-signature inputs.
        extra_txouts : int, optional
            Outputs not added yet; costed as P2PKH.  Defaults to
            ``default_extra_txouts``.
        extra_bytes : int
            Extra payload bytes (e.g. marker data).
        """
        if extra_txouts is None:
            extra_txouts = self.default_extra_txouts
        if extra_txins < 0 or extra_txouts < 0 or extra_bytes < 0:
            raise ValueError("Extra inputs, outputs and bytes must be non-negative")

        txin_size = sum(txin.estimate_size() for txin in self.txins)
        txin_size += MULTISIG_INPUT_SIZE * extra_txins

        txout_size = sum(txout.estimate_size() for txout in self.txouts)
        txout_size += P2PKH_OUTPUT_SIZE * extra_txouts

        size = (
            TX_OVERHEAD
            + extra_bytes
            + var_int_size(len(self.txins) + extra_txins)
            + var_int_size(len(self.txouts) + extra_txouts)
            + txin_size
            + txout_size
        )
        logger.debug(
            f"Estimated size {size}: txins={txin_size} txouts={txout_size} "
            f"extra=({extra_txins}, {extra_txouts}, {extra_bytes})"
        )
        return size

    def estimate_required_fee(self, extra_txins: int = 0, extra_txouts: int | None = None,
                              extra_bytes: int = 0, fee_per_kb: int = DEFAULT_FEE_PER_KB) -> int:
        """Fee for the estimated size, charged per started kilobyte."""
        size = self.estimate_size(extra_txins, extra_txouts, extra_bytes)
        return math.ceil(size / 1000) * fee_per_kb
