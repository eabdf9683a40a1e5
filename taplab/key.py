from __future__ import annotations

from enum import Enum, auto
from typing import List, Optional, Union

import coincurve
from bip32 import BIP32, PrivateDerivationError
from bip32.utils import _deriv_path_str_to_list

from taplab.errors import PolicyError
from taplab.utils.hashes import hash160


class DescriptorKeyError(PolicyError):
    pass


class KeyOrigin:
    """The origin of a key in a descriptor.

    See https://github.com/bitcoin/bips/blob/master/bip-0380.mediawiki#key-expressions.
    """

    def __init__(self, fingerprint: bytes, path: List[int]):
        assert isinstance(fingerprint, bytes) and isinstance(path, list)

        self.fingerprint: bytes = fingerprint
        self.path: List[int] = path

    def from_str(origin_str: str) -> KeyOrigin:
        # Origin starts and ends with brackets
        if not origin_str.startswith("[") or not origin_str.endswith("]"):
            raise DescriptorKeyError(f"Insane origin: '{origin_str}'")
        # At least 8 hex characters + brackets
        if len(origin_str) < 10:
            raise DescriptorKeyError(f"Insane origin: '{origin_str}'")

        try:
            fingerprint = bytes.fromhex(origin_str[1:9])
        except ValueError:
            raise DescriptorKeyError(f"Insane fingerprint in origin: '{origin_str}'")
        path = []
        if len(origin_str) > 10:
            if origin_str[9] != "/":
                raise DescriptorKeyError(f"Insane path in origin: '{origin_str}'")
            # The python-bip32 helper operates on "m/10h/11/12'/13", so give it a "m".
            try:
                path = _deriv_path_str_to_list("m" + origin_str[9:-1])
            except ValueError:
                raise DescriptorKeyError(f"Insane path in origin: '{origin_str}'")

        return KeyOrigin(fingerprint, path)


class KeyPathKind(Enum):
    FINAL = auto()
    WILDCARD_UNHARDENED = auto()
    WILDCARD_HARDENED = auto()

    def is_wildcard(self) -> bool:
        return self in [KeyPathKind.WILDCARD_HARDENED, KeyPathKind.WILDCARD_UNHARDENED]


class DescriptorKeyPath:
    """The derivation path of an extended key in a descriptor."""

    def __init__(self, path: List[int], kind: KeyPathKind):
        assert isinstance(path, list) and isinstance(kind, KeyPathKind)

        self.path: List[int] = path
        self.kind: KeyPathKind = kind

    def from_str(path_str: str) -> DescriptorKeyPath:
        if len(path_str) < 1 or path_str[0] == "/":
            raise DescriptorKeyError(f"Insane key path: '{path_str}'")
        if "<" in path_str:
            raise DescriptorKeyError(
                f"Multipath key expressions are not supported: '{path_str}'"
            )

        kind = KeyPathKind.FINAL
        if path_str[-2:] in ["*'", "*h", "*H"]:
            kind = KeyPathKind.WILDCARD_HARDENED
            path_str = path_str[:-2]
        elif path_str[-1] == "*":
            kind = KeyPathKind.WILDCARD_UNHARDENED
            path_str = path_str[:-1]

        path = []
        if kind.is_wildcard():
            # Trim the separator before the wildcard.
            path_str = path_str[:-1]
        if len(path_str) > 0:
            try:
                path = _deriv_path_str_to_list("m/" + path_str)
            except ValueError:
                raise DescriptorKeyError(f"Insane path in key path: '{path_str}'")

        return DescriptorKeyPath(path, kind)


def _ser_path(path: List[int]) -> str:
    res = ""
    for i in path:
        if i < 2**31:
            res += f"/{i}"
        else:
            res += f"/{i - 2**31}'"
    return res


class DescriptorKey:
    """A key in a Taproot descriptor.

    May be an x-only key, a compressed key or an extended public key. Scripts always
    commit to the 32-byte x-only serialization.
    """

    origin: Optional[KeyOrigin]
    path: Optional[DescriptorKeyPath]
    key: Union[coincurve.PublicKey, coincurve.PublicKeyXOnly, BIP32]

    def __init__(self, key: Union[bytes, BIP32, str]):
        self.origin = None
        self.path = None

        if isinstance(key, bytes):
            self.key = self._parse_raw(key)

        elif isinstance(key, BIP32):
            self.key = key

        elif isinstance(key, str):
            # Try parsing an optional origin prepended to the key
            splitted_key = key.split("]", maxsplit=1)
            if len(splitted_key) == 2:
                origin, key = splitted_key
                self.origin = KeyOrigin.from_str(origin + "]")

            if len(key) in (64, 66):
                try:
                    raw = bytes.fromhex(key)
                except ValueError:
                    raise DescriptorKeyError(f"Invalid hex key: '{key}'")
                self.key = self._parse_raw(raw)
            # If not raw it must be an xpub, with an optional derivation path.
            else:
                splitted_key = key.split("/", maxsplit=1)
                if len(splitted_key) == 2:
                    key, path = splitted_key
                    self.path = DescriptorKeyPath.from_str(path)

                try:
                    self.key = BIP32.from_xpub(key)
                except Exception as e:
                    raise DescriptorKeyError(f"Xpub parsing error: '{str(e)}'")

        else:
            raise DescriptorKeyError(
                "Invalid parameter type: expecting bytes, hex str or BIP32 instance."
            )

    @staticmethod
    def _parse_raw(raw):
        try:
            if len(raw) == 32:
                return coincurve.PublicKeyXOnly(raw)
            if len(raw) == 33:
                return coincurve.PublicKey(raw)
        except ValueError as e:
            raise DescriptorKeyError(f"Public key parsing error: '{str(e)}'")
        raise DescriptorKeyError("Only x-only and compressed keys are supported")

    def __repr__(self) -> str:
        key = ""

        if self.origin is not None:
            key += f"[{self.origin.fingerprint.hex()}"
            key += _ser_path(self.origin.path)
            key += "]"

        if isinstance(self.key, BIP32):
            key += self.key.get_xpub()
        else:
            key += self.key.format().hex()

        if self.path is not None:
            key += _ser_path(self.path.path)
            if self.path.kind == KeyPathKind.WILDCARD_HARDENED:
                key += "/*'"
            elif self.path.kind == KeyPathKind.WILDCARD_UNHARDENED:
                key += "/*"

        return key

    def __eq__(self, other):
        return isinstance(other, DescriptorKey) and str(self) == str(other)

    def __hash__(self):
        return hash(str(self))

    def is_wildcard(self) -> bool:
        return self.path is not None and self.path.kind.is_wildcard()

    def bytes(self) -> bytes:
        """The 32-byte x-only serialization of this key."""
        if isinstance(self.key, coincurve.PublicKeyXOnly):
            return self.key.format()
        if isinstance(self.key, coincurve.PublicKey):
            return self.key.format()[1:]
        assert isinstance(self.key, BIP32)
        if self.is_wildcard():
            raise DescriptorKeyError(f"Key '{self}' must be derived before use")
        if self.path is None or self.path.path == []:
            return self.key.pubkey[1:]
        try:
            return self.key.get_pubkey_from_path(self.path.path)[1:]
        except PrivateDerivationError:
            raise DescriptorKeyError(
                f"Cannot derive hardened steps from an xpub: '{self}'"
            )

    def derive(self, index: int) -> None:
        """Derive the key at the given index.

        A no-op if the key isn't a wildcard. Will start from 2**31 if the key is a
        "hardened wildcard".
        """
        assert isinstance(index, int)
        if not self.is_wildcard():
            return
        assert isinstance(self.key, BIP32)

        if self.path.kind == KeyPathKind.WILDCARD_HARDENED:
            index += 2**31
        assert index < 2**32

        try:
            xpub = self.key.get_xpub_from_path(self.path.path + [index])
        except PrivateDerivationError:
            raise DescriptorKeyError(
                f"Cannot derive hardened steps from an xpub: '{self}'"
            )
        if self.origin is None:
            fingerprint = hash160(self.key.pubkey)[:4]
            self.origin = KeyOrigin(fingerprint, self.path.path + [index])
        else:
            self.origin.path += self.path.path + [index]
        self.key = BIP32.from_xpub(xpub)
        self.path = None
