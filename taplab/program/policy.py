"""
Program policy AST.

Every node serializes to a tag byte followed by its payload and its subs, in pre-order.
The commitment merkle root (CMR) hashes the same data as a tree, so that two programs
share a CMR if and only if they are the same program.

The witness values consumed by a program are laid out in the same pre-order:

- pk(): the signature;
- sha256(): the preimage;
- or(): one byte selecting the branch (0 for the left one), then its values;
- thresh(): a little-endian bitmask of the satisfied subs, then their values.
"""

import struct

from taplab.key import DescriptorKey, DescriptorKeyError
from taplab.miniscript.satisfaction import Satisfaction
from taplab.utils.hashes import tagged_hash
from taplab.utils.serialize import compact_size, ser_string

from . import parsing
from .errors import ProgramPolicyError


PROGRAM_LEAF_VERSION = 0xBE

CMR_TAG = "ProgramCommitment"

TAG_TRIVIAL = 0x00
TAG_UNSATISFIABLE = 0x01
TAG_KEY = 0x02
TAG_SHA256 = 0x03
TAG_AFTER = 0x04
TAG_OLDER = 0x05
TAG_AND = 0x06
TAG_OR = 0x07
TAG_THRESH = 0x08


class Policy:
    """A node of a program policy."""

    tag = None
    subs = []

    def __init__(self, *args, **kwargs):
        # Needs to be implemented by derived classes.
        raise NotImplementedError

    def from_str(policy_str):
        """Parse a program policy from its string representation."""
        assert isinstance(policy_str, str)
        return parsing.policy_from_str(policy_str)

    @property
    def keys(self):
        """Get the list of all keys from this policy, in order of apparition."""
        return [key for sub in self.subs for key in sub.keys]

    def _payload(self):
        return b""

    def encode(self):
        """Serialize the program."""
        return (
            bytes([self.tag])
            + self._payload()
            + b"".join(sub.encode() for sub in self.subs)
        )

    def cmr(self):
        """The commitment merkle root of the program."""
        return tagged_hash(
            CMR_TAG,
            bytes([self.tag]) + self._payload() + b"".join(sub.cmr() for sub in self.subs),
        )

    def satisfaction(self, leaf_sat):
        # Needs to be implemented by derived classes.
        raise NotImplementedError

    def satisfy(self, leaf_sat):
        """Get the list of witness values consumed by the program, None if it can't be
        satisfied.
        """
        return self.satisfaction(leaf_sat).witness

    def witness_blob(self, values):
        """The program followed by its witness values."""
        return self.encode() + b"".join(ser_string(v) for v in values)


class Trivial(Policy):
    tag = TAG_TRIVIAL

    def __init__(self):
        pass

    def satisfaction(self, leaf_sat):
        return Satisfaction(witness=[])

    def __repr__(self):
        return "TRIVIAL"


class Unsatisfiable(Policy):
    tag = TAG_UNSATISFIABLE

    def __init__(self):
        pass

    def satisfaction(self, leaf_sat):
        return Satisfaction.unavailable()

    def __repr__(self):
        return "UNSATISFIABLE"


class Key(Policy):
    tag = TAG_KEY

    def __init__(self, pubkey):
        if isinstance(pubkey, DescriptorKey):
            self.pubkey = pubkey
        else:
            try:
                self.pubkey = DescriptorKey(pubkey)
            except DescriptorKeyError as e:
                raise ProgramPolicyError(e.message)

    @property
    def keys(self):
        return [self.pubkey]

    def _payload(self):
        return self.pubkey.bytes()

    def satisfaction(self, leaf_sat):
        sig = leaf_sat.signature(self.pubkey.bytes())
        if sig is None:
            return Satisfaction.unavailable()
        return Satisfaction([sig], has_sig=True)

    def __repr__(self):
        return f"pk({self.pubkey})"


class Sha256(Policy):
    tag = TAG_SHA256

    def __init__(self, digest):
        if not isinstance(digest, bytes) or len(digest) != 32:
            raise ProgramPolicyError("sha256() takes a 32-byte digest")
        self.digest = digest

    def _payload(self):
        return self.digest

    def satisfaction(self, leaf_sat):
        preimage = leaf_sat.preimage(self.digest)
        if preimage is None:
            return Satisfaction.unavailable()
        return Satisfaction([preimage])

    def __repr__(self):
        return f"sha256({self.digest.hex()})"


class Timelock(Policy):
    """A virtual class for nodes carrying a lock value.

    Should not be instanced directly, use After() or Older().
    """

    name = None

    def __init__(self, value):
        if not 0 < value < 2**31:
            raise ProgramPolicyError(f"Invalid {self.name}() value: {value}")
        self.value = value

    def _payload(self):
        return struct.pack("<I", self.value)

    def __repr__(self):
        return f"{self.name}({self.value})"


class After(Timelock):
    tag = TAG_AFTER
    name = "after"

    def satisfaction(self, leaf_sat):
        if not leaf_sat.check_after(self.value):
            return Satisfaction.unavailable()
        return Satisfaction(witness=[])


class Older(Timelock):
    tag = TAG_OLDER
    name = "older"

    def satisfaction(self, leaf_sat):
        if not leaf_sat.check_older(self.value):
            return Satisfaction.unavailable()
        return Satisfaction(witness=[])


class And(Policy):
    tag = TAG_AND

    def __init__(self, left, right):
        self.subs = [left, right]

    def satisfaction(self, leaf_sat):
        return self.subs[0].satisfaction(leaf_sat) + self.subs[1].satisfaction(leaf_sat)

    def __repr__(self):
        return f"and({self.subs[0]},{self.subs[1]})"


class Or(Policy):
    tag = TAG_OR

    def __init__(self, left, right):
        self.subs = [left, right]

    def satisfaction(self, leaf_sat):
        return (Satisfaction([b"\x00"]) + self.subs[0].satisfaction(leaf_sat)) | (
            Satisfaction([b"\x01"]) + self.subs[1].satisfaction(leaf_sat)
        )

    def __repr__(self):
        return f"or({self.subs[0]},{self.subs[1]})"


class Thresh(Policy):
    tag = TAG_THRESH

    def __init__(self, k, subs):
        if not 1 <= k <= len(subs):
            raise ProgramPolicyError(f"Invalid threshold {k} for {len(subs)} subs")
        self.k = k
        self.subs = subs

    def _payload(self):
        return compact_size(self.k) + compact_size(len(self.subs))

    def satisfaction(self, leaf_sat):
        sats = [sub.satisfaction(leaf_sat) for sub in self.subs]
        # Prefer subs that don't need a signature, then the smallest ones.
        candidates = sorted(
            (i for i, sat in enumerate(sats) if not sat.is_unavailable()),
            key=lambda i: (int(sats[i].has_sig), sats[i].size()),
        )
        if len(candidates) < self.k:
            return Satisfaction.unavailable()

        chosen = sorted(candidates[: self.k])
        mask = sum(1 << i for i in chosen)
        mask_len = (len(self.subs) + 7) // 8
        return sum(
            (sats[i] for i in chosen),
            start=Satisfaction([mask.to_bytes(mask_len, "little")]),
        )

    def __repr__(self):
        return f"thresh({self.k},{','.join(map(str, self.subs))})"
