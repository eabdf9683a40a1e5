"""
Bitcoin transaction primitives and their (segwit) serialization.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from taplab.utils.hashes import hash256
from taplab.utils.serialize import compact_size, ser_i32, ser_string, ser_u32, ser_u64


SEQUENCE_FINAL = 0xFFFFFFFF
MAX_OUTPOINT_INDEX = 0xFFFFFFFF
# 21 million coins, in satoshis.
MAX_MONEY = 21_000_000 * 100_000_000


@dataclass(frozen=True)
class OutPoint:
    """A reference to a transaction output. The txid is in RPC (big-endian) hex."""

    txid: str
    vout: int

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"

    @classmethod
    def from_str(cls, outpoint_str: str) -> OutPoint:
        txid, vout = outpoint_str.rsplit(":", maxsplit=1)
        return cls(txid, int(vout))

    def serialize(self) -> bytes:
        # txid is in RPC format (big-endian), need to reverse for raw tx
        return bytes.fromhex(self.txid)[::-1] + ser_u32(self.vout)


@dataclass(frozen=True)
class TxOut:
    value: int
    script_pubkey: bytes

    def serialize(self) -> bytes:
        return ser_u64(self.value) + ser_string(self.script_pubkey)


@dataclass
class TxIn:
    prevout: OutPoint
    sequence: int = SEQUENCE_FINAL
    # Segwit inputs have an empty scriptSig.
    witness: List[bytes] = field(default_factory=list)

    def serialize(self) -> bytes:
        return self.prevout.serialize() + ser_string(b"") + ser_u32(self.sequence)


@dataclass
class Transaction:
    version: int = 2
    inputs: List[TxIn] = field(default_factory=list)
    outputs: List[TxOut] = field(default_factory=list)
    locktime: int = 0

    def has_witness(self) -> bool:
        return any(len(txin.witness) > 0 for txin in self.inputs)

    def serialize_without_witness(self) -> bytes:
        return (
            ser_i32(self.version)
            + compact_size(len(self.inputs))
            + b"".join(txin.serialize() for txin in self.inputs)
            + compact_size(len(self.outputs))
            + b"".join(txout.serialize() for txout in self.outputs)
            + ser_u32(self.locktime)
        )

    def serialize(self) -> bytes:
        """The BIP144 serialization, with marker and flag if any input has a witness."""
        if not self.has_witness():
            return self.serialize_without_witness()

        witnesses = b""
        for txin in self.inputs:
            witnesses += compact_size(len(txin.witness))
            witnesses += b"".join(ser_string(elem) for elem in txin.witness)
        return (
            ser_i32(self.version)
            + b"\x00\x01"
            + compact_size(len(self.inputs))
            + b"".join(txin.serialize() for txin in self.inputs)
            + compact_size(len(self.outputs))
            + b"".join(txout.serialize() for txout in self.outputs)
            + witnesses
            + ser_u32(self.locktime)
        )

    def txid(self) -> str:
        return hash256(self.serialize_without_witness())[::-1].hex()

    def weight(self) -> int:
        base_size = len(self.serialize_without_witness())
        total_size = len(self.serialize())
        return base_size * 3 + total_size

    def vsize(self) -> int:
        return (self.weight() + 3) // 4
