"""Utilities for working with Taproot descriptors."""

import bech32
import coincurve

from taplab.errors import TaprootTweakError
from taplab.utils.hashes import tagged_hash
from taplab.utils.serialize import compact_size


# The order of the secp256k1 group.
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# Leaf version of Tapscript (BIP342) leaves.
TAPSCRIPT_LEAF_VERSION = 0xC0

# Human readable parts of segwit addresses (BIP173).
HRPS = {
    "bitcoin": "bc",
    "testnet": "tb",
    "signet": "tb",
    "regtest": "bcrt",
}


def tapleaf_hash(script, leaf_version=TAPSCRIPT_LEAF_VERSION):
    """Compute the hash of a Taproot leaf as defined in BIP341."""
    assert isinstance(script, bytes)
    script = bytes(script)
    return tagged_hash("TapLeaf", bytes([leaf_version]) + compact_size(len(script)) + script)


def taptweak_hash(pubkey_bytes, merkle_root):
    """The tweak committing to the given merkle root, as a 32-byte big-endian scalar."""
    tweak = tagged_hash("TapTweak", pubkey_bytes + merkle_root)
    if int.from_bytes(tweak, "big") >= SECP256K1_ORDER:
        raise TaprootTweakError("Taproot tweak exceeds the curve order")
    return tweak


def taproot_tweak(pubkey_bytes, merkle_root):
    """Compute the output key of a Taproot, as per BIP341.

    Returns the x-only output key and the parity of its y coordinate.
    """
    assert isinstance(pubkey_bytes, bytes) and len(pubkey_bytes) == 32
    assert isinstance(merkle_root, bytes)

    t = taptweak_hash(pubkey_bytes, merkle_root)
    try:
        xonly_pubkey = coincurve.PublicKeyXOnly(pubkey_bytes)
        xonly_pubkey.tweak_add(t)
    except ValueError as e:
        raise TaprootTweakError(f"Could not tweak internal key: {e}")

    return xonly_pubkey.format(), xonly_pubkey.parity


def segwit_v1_address(network, output_key):
    """The bech32m address paying to the given x-only output key."""
    assert isinstance(output_key, bytes) and len(output_key) == 32
    address = bech32.encode(HRPS[network], 1, output_key)
    if address is None:
        raise ValueError(f"Failed to encode address for {output_key.hex()}")
    return address


class SpendInfo:
    """Everything needed to spend a single-leaf Taproot output.

    :param leaf_script: the leaf payload, None if the output can only be spent by key.
    """

    def __init__(self, internal_key, leaf_script=None, leaf_version=TAPSCRIPT_LEAF_VERSION):
        assert isinstance(internal_key, bytes) and len(internal_key) == 32
        self.internal_key = internal_key
        self.leaf_script = None if leaf_script is None else bytes(leaf_script)
        self.leaf_version = leaf_version
        # "If the spending conditions do not require a script path, the output key
        # should commit to an unspendable script path" (see BIP341, BIP386)
        self.merkle_root = b""
        if self.leaf_script is not None:
            self.merkle_root = self.leaf_hash()
        self.output_key, self.output_parity = taproot_tweak(
            internal_key, self.merkle_root
        )

    def __repr__(self):
        return (
            f"SpendInfo(internal_key={self.internal_key.hex()}, "
            f"output_key={self.output_key.hex()}, parity={self.output_parity})"
        )

    def has_leaf(self):
        return self.leaf_script is not None

    def leaf_hash(self):
        assert self.has_leaf()
        return tapleaf_hash(self.leaf_script, self.leaf_version)

    def control_block(self):
        """The control block of the only leaf. There is no merkle path to reveal."""
        assert self.has_leaf()
        return bytes([self.leaf_version | self.output_parity]) + self.internal_key
