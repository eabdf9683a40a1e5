"""
Secret material held by the ledger: signing keys and sha256 preimages.

Both kinds live in a SecretMap, keyed by their public identity (the x-only public key,
the image). Each entry carries a status: only ACTIVE secrets are used for spending.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Dict, Iterator, List

import base58
import coincurve
from loguru import logger

from taplab.descriptors.utils import SECP256K1_ORDER
from taplab.errors import DuplicateSecretError, InvalidKeyError, InvalidValueError
from taplab.utils.hashes import sha256


WIF_PREFIXES = {
    "bitcoin": b"\x80",
    "testnet": b"\xef",
    "signet": b"\xef",
    "regtest": b"\xef",
}


class Status(str, Enum):
    PASSIVE = "passive"
    ACTIVE = "active"

    def toggled(self) -> Status:
        return Status.ACTIVE if self is Status.PASSIVE else Status.PASSIVE


class KeyPair:
    """A secret key and its public key, identified by the x-only public key."""

    def __init__(self, secret: bytes, status: Status = Status.PASSIVE):
        try:
            self._privkey = coincurve.PrivateKey(secret)
        except ValueError as e:
            raise InvalidKeyError(f"Invalid secret key: {e}")
        self.status = status

    @classmethod
    def generate(cls) -> KeyPair:
        """A fresh key pair whose public key has an even y coordinate."""
        privkey = coincurve.PrivateKey()
        if privkey.public_key.format()[0] == 0x03:
            privkey = coincurve.PrivateKey.from_int(SECP256K1_ORDER - privkey.to_int())
        return cls(privkey.secret)

    @property
    def secret(self) -> bytes:
        return self._privkey.secret

    @property
    def public_key(self) -> bytes:
        """The 33-byte compressed public key."""
        return self._privkey.public_key.format()

    @property
    def identity(self) -> bytes:
        return self.public_key[1:]

    def wif(self, network: str) -> str:
        """The secret in Wallet Import Format, for a compressed public key."""
        return base58.b58encode_check(
            WIF_PREFIXES[network] + self.secret + b"\x01"
        ).decode()


class ImagePair:
    """A preimage and its sha256 image, identified by the image."""

    def __init__(self, preimage: bytes, status: Status = Status.PASSIVE):
        if len(preimage) != 32:
            raise InvalidValueError(f"Preimage must be 32 bytes, not {len(preimage)}")
        self.preimage = preimage
        self.status = status

    @classmethod
    def generate(cls) -> ImagePair:
        return cls(os.urandom(32))

    @property
    def secret(self) -> bytes:
        return self.preimage

    @property
    def identity(self) -> bytes:
        return sha256(self.preimage)


class SecretMap:
    """Secrets of a single kind, by identity.

    :param kind: "key" or "image", for messages.
    :param unknown_error: the exception class raised for an unknown identity.
    """

    def __init__(self, kind, unknown_error):
        self.kind = kind
        self.unknown_error = unknown_error
        self._entries: Dict[bytes, object] = {}

    def __iter__(self) -> Iterator:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: bytes) -> bool:
        return identity in self._entries

    def add(self, pair) -> None:
        if pair.identity in self._entries:
            raise DuplicateSecretError(
                f"Duplicate {self.kind} {pair.identity.hex()}"
            )
        self._entries[pair.identity] = pair

    def get(self, identity: bytes):
        if identity not in self._entries:
            raise self.unknown_error(f"Unknown {self.kind} {identity.hex()}")
        return self._entries[identity]

    def with_status(self, status: Status) -> List:
        return [pair for pair in self if pair.status is status]

    def active(self) -> Dict[bytes, bytes]:
        """Secrets of the active entries, by identity."""
        return {pair.identity: pair.secret for pair in self.with_status(Status.ACTIVE)}

    def set_status(self, identity: bytes, status: Status) -> None:
        pair = self.get(identity)
        if pair.status is not status:
            logger.info("{} {} is now {}", self.kind.capitalize(), identity.hex(), status.value)
        pair.status = status

    def toggle(self, identity: bytes) -> Status:
        pair = self.get(identity)
        self.set_status(identity, pair.status.toggled())
        return pair.status

    def delete(self, identity: bytes):
        pair = self.get(identity)
        del self._entries[identity]
        logger.info("Deleted {} {}", self.kind, identity.hex())
        return pair
