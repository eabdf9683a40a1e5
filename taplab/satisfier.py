"""
Answering the challenges set by a spending policy.

A Satisfier is queried by the descriptors while they build a witness: for signatures,
for hash preimages and for whether the spending transaction meets a timelock.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Optional

import coincurve
from loguru import logger

from taplab.descriptors.utils import SECP256K1_ORDER, SpendInfo, taptweak_hash
from taplab.errors import TaprootTweakError
from taplab.miniscript.fragments import LOCKTIME_THRESHOLD
from taplab.sighash import SIGHASH_DEFAULT, SighashCache
from taplab.tx import SEQUENCE_FINAL


# If this flag is set, CTxIn::nSequence is NOT interpreted as a relative lock-time.
SEQUENCE_LOCKTIME_DISABLE_FLAG = 1 << 31
# If CTxIn::nSequence encodes a relative lock-time and this flag
# is set, the relative lock-time has units of 512 seconds,
# otherwise it specifies blocks with a granularity of 1.
SEQUENCE_LOCKTIME_TYPE_FLAG = 1 << 22
# If CTxIn::nSequence encodes a relative lock-time, this mask is
# applied to extract that lock-time from the sequence field.
SEQUENCE_LOCKTIME_MASK = 0x0000FFFF


class Satisfier(ABC):
    """The source of signatures, preimages and timelock answers for a single input."""

    @abstractmethod
    def key_path_signature(self) -> Optional[bytes]:
        """A signature for the output key, if the internal key can be tweaked."""

    @abstractmethod
    def leaf_signature(self, pubkey: bytes, leaf_hash: bytes) -> Optional[bytes]:
        """A signature by the given x-only key, committing to the given leaf."""

    @abstractmethod
    def preimage(self, image: bytes) -> Optional[bytes]:
        """The sha256 preimage of the given image."""

    @abstractmethod
    def check_relative(self, sequence: int) -> bool:
        """Whether the input meets the given relative timelock (BIP68 encoded)."""

    @abstractmethod
    def check_absolute(self, locktime: int) -> bool:
        """Whether the transaction meets the given absolute timelock."""


def tweak_secret(secret: bytes, spend_info: SpendInfo) -> bytes:
    """Tweak the secret of the internal key to get the secret of the output key."""
    d = int.from_bytes(secret, "big")
    if coincurve.PrivateKey(secret).public_key.format()[0] == 0x03:
        d = SECP256K1_ORDER - d
    t = int.from_bytes(
        taptweak_hash(spend_info.internal_key, spend_info.merkle_root), "big"
    )
    tweaked = (d + t) % SECP256K1_ORDER
    if tweaked == 0:
        raise TaprootTweakError("Tweaked secret is zero")
    return tweaked.to_bytes(32, "big")


class LedgerSatisfier(Satisfier):
    """Satisfy an input using the active secrets of the ledger.

    :param keys: active secret keys by x-only public key.
    :param images: active preimages by sha256 image.
    :param sighash_cache: shared by all the inputs of the transaction.
    :param utxo_height: confirmation height of the spent coin, if known. Relative
                        timelocks can only be met by confirmed coins.
    """

    def __init__(
        self,
        keys: Dict[bytes, bytes],
        images: Dict[bytes, bytes],
        spend_info: SpendInfo,
        input_index: int,
        sighash_cache: SighashCache,
        sighash_type: int = SIGHASH_DEFAULT,
        utxo_height: Optional[int] = None,
    ):
        self.keys = keys
        self.images = images
        self.spend_info = spend_info
        self.input_index = input_index
        self.sighash_cache = sighash_cache
        self.sighash_type = sighash_type
        self.utxo_height = utxo_height

    @property
    def locktime(self) -> int:
        return self.sighash_cache.tx.locktime

    @property
    def sequence(self) -> int:
        return self.sighash_cache.tx.inputs[self.input_index].sequence

    def _sign(self, secret: bytes, sighash: bytes) -> bytes:
        # Deterministic auxiliary randomness so that signing is reproducible.
        sig = coincurve.PrivateKey(secret).sign_schnorr(sighash, bytes(32))
        if self.sighash_type != SIGHASH_DEFAULT:
            sig += bytes([self.sighash_type])
        return sig

    def key_path_signature(self) -> Optional[bytes]:
        secret = self.keys.get(self.spend_info.internal_key)
        if secret is None:
            return None
        sighash = self.sighash_cache.key_path_hash(self.input_index, self.sighash_type)
        return self._sign(tweak_secret(secret, self.spend_info), sighash)

    def leaf_signature(self, pubkey: bytes, leaf_hash: bytes) -> Optional[bytes]:
        secret = self.keys.get(pubkey)
        if secret is None:
            logger.warning("Unknown or inactive key {}", pubkey.hex())
            return None
        sighash = self.sighash_cache.script_path_hash(
            self.input_index, self.sighash_type, leaf_hash
        )
        return self._sign(secret, sighash)

    def preimage(self, image: bytes) -> Optional[bytes]:
        preimage = self.images.get(image)
        if preimage is None:
            logger.warning("Unknown or inactive image {}", image.hex())
        return preimage

    def check_relative(self, sequence: int) -> bool:
        # See BIP112: the input's sequence must enable a relative lock of the
        # same unit, at least as long as the one required.
        if self.utxo_height is None:
            return False
        if self.sequence & SEQUENCE_LOCKTIME_DISABLE_FLAG:
            return False
        if (sequence & SEQUENCE_LOCKTIME_TYPE_FLAG) != (
            self.sequence & SEQUENCE_LOCKTIME_TYPE_FLAG
        ):
            return False
        return (self.sequence & SEQUENCE_LOCKTIME_MASK) >= (
            sequence & SEQUENCE_LOCKTIME_MASK
        )

    def check_absolute(self, locktime: int) -> bool:
        # See BIP65: a final input disables the transaction's locktime.
        if self.sequence == SEQUENCE_FINAL:
            return False
        if (locktime < LOCKTIME_THRESHOLD) != (self.locktime < LOCKTIME_THRESHOLD):
            return False
        return self.locktime >= locktime
