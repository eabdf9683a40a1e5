import struct

import pytest

from taplab.miniscript import LeafSatisfier
from taplab.program import Policy
from taplab.program.policy import And
from taplab.program.errors import ProgramPolicyError
from taplab.program.parsing import split_args
from taplab.satisfier import Satisfier
from taplab.utils.hashes import sha256, tagged_hash


K1 = "1af85df7c89b9d7b8d7ed881c508df243895c37c2a4ef1a945374d468944da57"
K2 = "cc8a4bc64d897bddc5fbc2f670f7a8ba0b386779106cf1223c6fc5d7cd6fc115"
PREIMAGE = b"\x42" * 32
IMAGE = sha256(PREIMAGE)
LEAF_HASH = b"\x01" * 32


def sig(key_hex):
    return bytes.fromhex(key_hex)[:8] * 8


class DummySatisfier(Satisfier):
    def __init__(self, keys=(), preimages=None, relative=False, absolute=False):
        self.keys = [bytes.fromhex(k) for k in keys]
        self.preimages = preimages or {}
        self.relative = relative
        self.absolute = absolute

    def key_path_signature(self):
        return None

    def leaf_signature(self, pubkey, leaf_hash):
        return sig(pubkey.hex()) if pubkey in self.keys else None

    def preimage(self, image):
        return self.preimages.get(image)

    def check_relative(self, sequence):
        return self.relative

    def check_absolute(self, locktime):
        return self.absolute


def satisfy(policy_str, **kwargs):
    return Policy.from_str(policy_str).satisfy(
        LeafSatisfier(DummySatisfier(**kwargs), LEAF_HASH)
    )


def test_parsing():
    for policy_str in [
        "TRIVIAL",
        "UNSATISFIABLE",
        f"pk({K1})",
        f"sha256({IMAGE.hex()})",
        "after(100)",
        "older(4194305)",
        f"and(pk({K1}),or(sha256({IMAGE.hex()}),after(100)))",
        f"thresh(2,pk({K1}),pk({K2}),older(10))",
    ]:
        assert str(Policy.from_str(policy_str)) == policy_str

    policy = Policy.from_str(f"and(pk({K1}),or(pk({K2}),TRIVIAL))")
    assert isinstance(policy, And)
    assert [str(k) for k in policy.keys] == [K1, K2]

    assert split_args("a(b,c),d") == ["a(b,c)", "d"]
    assert split_args("") == [""]

    for policy_str in [
        "",
        "trivial",
        "pk()",
        f"pk({K1},{K2})",
        "sha256(00)",
        "sha256(zz)",
        "after(0)",
        "after(-1)",
        "older(2147483648)",
        "and(TRIVIAL)",
        "or(TRIVIAL,TRIVIAL,TRIVIAL)",
        "thresh(3,TRIVIAL,TRIVIAL)",
        "thresh(0,TRIVIAL)",
        "thresh(1)",
        "and(TRIVIAL,TRIVIAL",
        "and(TRIVIAL),TRIVIAL)",
        "foo(TRIVIAL)",
    ]:
        with pytest.raises(ProgramPolicyError):
            Policy.from_str(policy_str)


def test_encoding():
    assert Policy.from_str("TRIVIAL").encode() == b"\x00"
    assert Policy.from_str("UNSATISFIABLE").encode() == b"\x01"
    assert Policy.from_str(f"pk({K1})").encode() == b"\x02" + bytes.fromhex(K1)
    # Compressed keys are committed to as x-only.
    assert Policy.from_str(f"pk(02{K1})").encode() == b"\x02" + bytes.fromhex(K1)
    assert Policy.from_str(f"sha256({IMAGE.hex()})").encode() == b"\x03" + IMAGE
    assert Policy.from_str("after(100)").encode() == b"\x04" + struct.pack("<I", 100)
    assert Policy.from_str("older(100)").encode() == b"\x05" + struct.pack("<I", 100)
    assert (
        Policy.from_str("and(TRIVIAL,UNSATISFIABLE)").encode() == b"\x06\x00\x01"
    )
    assert Policy.from_str("or(TRIVIAL,UNSATISFIABLE)").encode() == b"\x07\x00\x01"
    assert (
        Policy.from_str("thresh(1,TRIVIAL,TRIVIAL,TRIVIAL)").encode()
        == b"\x08\x01\x03\x00\x00\x00"
    )


def test_commitment():
    trivial = Policy.from_str("TRIVIAL")
    assert trivial.cmr() == tagged_hash("ProgramCommitment", b"\x00")
    assert len(trivial.cmr()) == 32

    # A node commits to the commitments of its subs.
    assert Policy.from_str("and(TRIVIAL,TRIVIAL)").cmr() == tagged_hash(
        "ProgramCommitment", b"\x06" + trivial.cmr() + trivial.cmr()
    )

    # Deterministic, and distinct for distinct programs.
    cmrs = set()
    for policy_str in [
        "TRIVIAL",
        "UNSATISFIABLE",
        "after(100)",
        "older(100)",
        "and(TRIVIAL,UNSATISFIABLE)",
        "and(UNSATISFIABLE,TRIVIAL)",
        "or(TRIVIAL,UNSATISFIABLE)",
        "thresh(1,TRIVIAL,UNSATISFIABLE)",
        "thresh(2,TRIVIAL,UNSATISFIABLE)",
    ]:
        assert Policy.from_str(policy_str).cmr() == Policy.from_str(policy_str).cmr()
        cmrs.add(Policy.from_str(policy_str).cmr())
    assert len(cmrs) == 9


def test_satisfaction():
    assert satisfy("TRIVIAL") == []
    assert satisfy("UNSATISFIABLE") is None
    assert satisfy(f"pk({K1})", keys=[K1]) == [sig(K1)]
    assert satisfy(f"pk({K1})") is None
    assert satisfy(f"sha256({IMAGE.hex()})", preimages={IMAGE: PREIMAGE}) == [PREIMAGE]
    assert satisfy(f"sha256({IMAGE.hex()})") is None
    assert satisfy("after(100)", absolute=True) == []
    assert satisfy("after(100)", relative=True) is None
    assert satisfy("older(100)", relative=True) == []
    assert satisfy("older(100)", absolute=True) is None

    # Values are laid out in pre-order.
    assert satisfy(f"and(pk({K1}),pk({K2}))", keys=[K1, K2]) == [sig(K1), sig(K2)]
    assert satisfy(f"and(pk({K1}),pk({K2}))", keys=[K1]) is None

    # or() selects a branch.
    or_policy = f"or(pk({K1}),sha256({IMAGE.hex()}))"
    assert satisfy(or_policy, keys=[K1]) == [b"\x00", sig(K1)]
    assert satisfy(or_policy, preimages={IMAGE: PREIMAGE}) == [b"\x01", PREIMAGE]
    # Satisfactions without signatures are preferred.
    assert satisfy(or_policy, keys=[K1], preimages={IMAGE: PREIMAGE}) == [
        b"\x01",
        PREIMAGE,
    ]
    assert satisfy(or_policy) is None

    # thresh() gives a bitmask of the satisfied subs.
    thresh = f"thresh(2,pk({K1}),pk({K2}),sha256({IMAGE.hex()}))"
    assert satisfy(thresh, keys=[K1, K2]) == [b"\x03", sig(K1), sig(K2)]
    assert satisfy(thresh, keys=[K1, K2], preimages={IMAGE: PREIMAGE}) == [
        b"\x05",
        sig(K1),
        PREIMAGE,
    ]
    assert satisfy(thresh, keys=[K2]) is None

    many = "thresh(9," + ",".join(["TRIVIAL"] * 9) + ")"
    assert satisfy(many) == [b"\xff\x01"]


def test_witness_blob():
    policy = Policy.from_str(f"or(pk({K1}),TRIVIAL)")
    values = policy.satisfy(LeafSatisfier(DummySatisfier(), LEAF_HASH))
    assert values == [b"\x01"]
    assert policy.witness_blob(values) == policy.encode() + b"\x01\x01"
