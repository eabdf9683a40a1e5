"""
Miniscript AST elements, for use in Tapscript leaves.

Each element correspond to a Bitcoin Script fragment, and has various type properties.
See the Miniscript website for the specification of the type system:
https://bitcoin.sipa.be/miniscript/.
Keys are pushed as 32-byte x-only keys and multisig is expressed with multi_a()
(CHECKSIGADD), as mandated by BIP342.
"""

import re

from taplab.key import DescriptorKey, DescriptorKeyError
from taplab.utils.hashes import hash160
from taplab.utils.script import (
    CScript,
    OP_1,
    OP_0,
    OP_ADD,
    OP_BOOLAND,
    OP_BOOLOR,
    OP_DUP,
    OP_ELSE,
    OP_ENDIF,
    OP_EQUAL,
    OP_EQUALVERIFY,
    OP_FROMALTSTACK,
    OP_IFDUP,
    OP_IF,
    OP_CHECKLOCKTIMEVERIFY,
    OP_CHECKSEQUENCEVERIFY,
    OP_CHECKSIG,
    OP_CHECKSIGADD,
    OP_CHECKSIGVERIFY,
    OP_HASH160,
    OP_NOTIF,
    OP_NUMEQUAL,
    OP_NUMEQUALVERIFY,
    OP_SHA256,
    OP_SIZE,
    OP_SWAP,
    OP_TOALTSTACK,
    OP_VERIFY,
    OP_0NOTEQUAL,
)

from . import parsing
from .errors import MiniscriptNodeCreationError
from .property import Property
from .satisfaction import Satisfaction


# Threshold for nLockTime: below this value it is interpreted as block number,
# otherwise as UNIX timestamp.
LOCKTIME_THRESHOLD = 500000000  # Tue Nov  5 00:53:20 1985 UTC

# If CTxIn::nSequence encodes a relative lock-time and this flag
# is set, the relative lock-time has units of 512 seconds,
# otherwise it specifies blocks with a granularity of 1.
SEQUENCE_LOCKTIME_TYPE_FLAG = 1 << 22

# Maximum number of keys in a multi_a(), as per the Tapscript resource limits.
MAX_PUBKEYS_PER_MULTI_A = 999

_WRAPPER_PREFIX = re.compile(r"^[asctdvjnlu]+:")


class Node:
    """A Miniscript fragment."""

    # The fragment's type and properties
    p = None
    # List of all sub fragments
    subs = []
    # A list of Script elements, a CScript is created all at once in the script() method.
    _script = []
    # Whether this node or any of its subs contains an absolute heightlock
    abs_heightlocks = False
    # Whether this node or any of its subs contains a relative heightlock
    rel_heightlocks = False
    # Whether this node or any of its subs contains an absolute timelock
    abs_timelocks = False
    # Whether this node or any of its subs contains a relative timelock
    rel_timelocks = False
    # Whether no satisfaction of this node requires both a height- and a time-based
    # lock of the same kind, which no single transaction could meet.
    no_timelock_mix = True

    def __init__(self, *args, **kwargs):
        # Needs to be implemented by derived classes.
        raise NotImplementedError

    def from_str(ms_str):
        """Parse a Miniscript fragment from its string representation."""
        assert isinstance(ms_str, str)
        return parsing.miniscript_from_str(ms_str)

    @property
    def script(self):
        return CScript(self._script)

    @property
    def keys(self):
        """Get the list of all keys from this Miniscript, in order of apparition."""
        # Overriden by fragments that actually have keys.
        return [key for sub in self.subs for key in sub.keys]

    @property
    def needs_sig(self):
        """Whether every satisfaction of this fragment requires a signature."""
        return self.p.s

    def _check_type(self, name):
        """Raise if the computed type is invalid for this combination of subs."""
        if not self.p.has_any(Property.types):
            subs_types = ", ".join(f"{sub}: {sub.p}" for sub in self.subs)
            raise MiniscriptNodeCreationError(
                f"Invalid sub fragments types for '{name}' ({subs_types})"
            )
        self.p.check_valid()

    def _inherit_timelocks(self, subs, conjunctive):
        """Compute the timelock information from the subs.

        :param conjunctive: whether all the subs may need to be satisfied together.
        """
        for attr in (
            "abs_heightlocks",
            "rel_heightlocks",
            "abs_timelocks",
            "rel_timelocks",
        ):
            setattr(self, attr, any(getattr(sub, attr) for sub in subs))
        self.no_timelock_mix = all(sub.no_timelock_mix for sub in subs)
        if conjunctive:
            mixes = (self.abs_heightlocks and self.abs_timelocks) or (
                self.rel_heightlocks and self.rel_timelocks
            )
            self.no_timelock_mix = self.no_timelock_mix and not mixes

    def satisfy(self, leaf_sat):
        """Get the witness of the smallest non-malleable satisfaction for this fragment,
        if one exists.

        :param leaf_sat: a LeafSatisfier answering the challenges of this leaf.
        """
        return self.satisfaction(leaf_sat).witness

    def satisfaction(self, leaf_sat):
        """Get the satisfaction for this fragment."""
        # Needs to be implemented by derived classes.
        raise NotImplementedError

    def dissatisfaction(self):
        """Get the dissatisfaction for this fragment."""
        # Needs to be implemented by derived classes.
        raise NotImplementedError


class Just0(Node):
    def __init__(self):
        self._script = [OP_0]
        self.p = Property("Bzudems")

    def satisfaction(self, leaf_sat):
        return Satisfaction.unavailable()

    def dissatisfaction(self):
        return Satisfaction(witness=[])

    def __repr__(self):
        return "0"


class Just1(Node):
    def __init__(self):
        self._script = [OP_1]
        self.p = Property("Bzufm")

    def satisfaction(self, leaf_sat):
        return Satisfaction(witness=[])

    def dissatisfaction(self):
        return Satisfaction.unavailable()

    def __repr__(self):
        return "1"


class PkNode(Node):
    """A virtual class for nodes containing a single public key.

    Should not be instanced directly, use PkK() or PkH().
    """

    def __init__(self, pubkey):
        if isinstance(pubkey, (bytes, str)):
            try:
                self.pubkey = DescriptorKey(pubkey)
            except DescriptorKeyError as e:
                raise MiniscriptNodeCreationError(e.message)
        elif isinstance(pubkey, DescriptorKey):
            self.pubkey = pubkey
        else:
            raise MiniscriptNodeCreationError("Invalid public key")

    @property
    def keys(self):
        return [self.pubkey]


class PkK(PkNode):
    def __init__(self, pubkey):
        PkNode.__init__(self, pubkey)
        self.p = Property("Konudems")

    @property
    def _script(self):
        return [self.pubkey.bytes()]

    def satisfaction(self, leaf_sat):
        sig = leaf_sat.signature(self.pubkey.bytes())
        if sig is None:
            return Satisfaction.unavailable()
        return Satisfaction([sig], has_sig=True)

    def dissatisfaction(self):
        return Satisfaction(witness=[b""])

    def __repr__(self):
        return f"pk_k({self.pubkey})"


class PkH(PkNode):
    def __init__(self, pubkey):
        PkNode.__init__(self, pubkey)
        self.p = Property("Knudems")

    @property
    def _script(self):
        return [OP_DUP, OP_HASH160, self.pk_hash(), OP_EQUALVERIFY]

    def satisfaction(self, leaf_sat):
        sig = leaf_sat.signature(self.pubkey.bytes())
        if sig is None:
            return Satisfaction.unavailable()
        return Satisfaction(witness=[sig, self.pubkey.bytes()], has_sig=True)

    def dissatisfaction(self):
        return Satisfaction(witness=[b"", self.pubkey.bytes()])

    def __repr__(self):
        return f"pk_h({self.pubkey})"

    def pk_hash(self):
        return hash160(self.pubkey.bytes())


class Older(Node):
    def __init__(self, value):
        if not 0 < value < 2**31:
            raise MiniscriptNodeCreationError(f"Invalid older() value: {value}")

        self.value = value
        self._script = [self.value, OP_CHECKSEQUENCEVERIFY]
        self.p = Property("Bzfm")
        self.rel_timelocks = bool(value & SEQUENCE_LOCKTIME_TYPE_FLAG)
        self.rel_heightlocks = not self.rel_timelocks

    def satisfaction(self, leaf_sat):
        if not leaf_sat.check_older(self.value):
            return Satisfaction.unavailable()
        return Satisfaction(witness=[])

    def dissatisfaction(self):
        return Satisfaction.unavailable()

    def __repr__(self):
        return f"older({self.value})"


class After(Node):
    def __init__(self, value):
        if not 0 < value < 2**31:
            raise MiniscriptNodeCreationError(f"Invalid after() value: {value}")

        self.value = value
        self._script = [self.value, OP_CHECKLOCKTIMEVERIFY]
        self.p = Property("Bzfm")
        self.abs_heightlocks = value < LOCKTIME_THRESHOLD
        self.abs_timelocks = not self.abs_heightlocks

    def satisfaction(self, leaf_sat):
        if not leaf_sat.check_after(self.value):
            return Satisfaction.unavailable()
        return Satisfaction(witness=[])

    def dissatisfaction(self):
        return Satisfaction.unavailable()

    def __repr__(self):
        return f"after({self.value})"


class Sha256(Node):
    def __init__(self, digest):
        if not isinstance(digest, bytes) or len(digest) != 32:
            raise MiniscriptNodeCreationError("sha256() takes a 32-byte digest")

        self.digest = digest
        self._script = [OP_SIZE, 32, OP_EQUALVERIFY, OP_SHA256, digest, OP_EQUAL]
        self.p = Property("Bonudm")

    def satisfaction(self, leaf_sat):
        preimage = leaf_sat.preimage(self.digest)
        if preimage is None:
            return Satisfaction.unavailable()
        return Satisfaction(witness=[preimage])

    def dissatisfaction(self):
        # Any 32-byte non-preimage would do, but it's malleable.
        return Satisfaction.unavailable()

    def __repr__(self):
        return f"sha256({self.digest.hex()})"


class MultiA(Node):
    def __init__(self, k, keys):
        if not all(isinstance(key, DescriptorKey) for key in keys):
            raise MiniscriptNodeCreationError("multi_a() takes a list of keys")
        if not 1 <= k <= len(keys) <= MAX_PUBKEYS_PER_MULTI_A:
            raise MiniscriptNodeCreationError(
                f"Invalid threshold {k} for {len(keys)} keys in multi_a()"
            )

        self.k = k
        self.pubkeys = keys
        self.p = Property("Budems")

    @property
    def keys(self):
        return self.pubkeys

    @property
    def _script(self):
        script = [self.pubkeys[0].bytes(), OP_CHECKSIG]
        for key in self.pubkeys[1:]:
            script += [key.bytes(), OP_CHECKSIGADD]
        return script + [self.k, OP_NUMEQUAL]

    def satisfaction(self, leaf_sat):
        # The first key is checked first, its signature must be on top of the stack.
        sigs = [leaf_sat.signature(key.bytes()) for key in self.pubkeys]
        if len([s for s in sigs if s is not None]) < self.k:
            return Satisfaction.unavailable()
        witness, n_sigs = [], 0
        for sig in sigs:
            if sig is not None and n_sigs < self.k:
                witness.append(sig)
                n_sigs += 1
            else:
                witness.append(b"")
        return Satisfaction(witness=witness[::-1], has_sig=True)

    def dissatisfaction(self):
        return Satisfaction(witness=[b""] * len(self.pubkeys))

    def __repr__(self):
        return f"multi_a({','.join([str(self.k)] + [str(k) for k in self.pubkeys])})"


class AndV(Node):
    def __init__(self, sub_x, sub_y):
        self.subs = [sub_x, sub_y]
        x, y = sub_x.p, sub_y.p

        self.p = (
            (y & "KVB").when(x.V)
            | (x & "n")
            | (y & "n").when(x.z)
            | ((x | y) & "o").when((x | y).z)
            | (x & y & "dmz")
            | ((x | y) & "s")
            | Property("f").when(y.f or x.s)
            | (y & "u")
        )
        self._check_type("and_v")
        self._inherit_timelocks(self.subs, conjunctive=True)

    @property
    def _script(self):
        return sum((sub._script for sub in self.subs), start=[])

    def satisfaction(self, leaf_sat):
        return Satisfaction.from_concat(leaf_sat, *self.subs)

    def dissatisfaction(self):
        return Satisfaction.unavailable()  # it's V.

    def __repr__(self):
        if isinstance(self.subs[1], Just1):
            return _wrapper_repr("t", self.subs[0])
        return f"and_v({','.join(map(str, self.subs))})"


class AndB(Node):
    def __init__(self, sub_x, sub_y):
        self.subs = [sub_x, sub_y]
        x, y = sub_x.p, sub_y.p

        self.p = (
            (x & "B").when(y.W)
            | ((x | y) & "o").when((x | y).z)
            | (x & "n")
            | (y & "n").when(x.z)
            | (x & y & "e").when((x & y).s)
            | (x & y & "dzm")
            | Property("f").when(
                (x.f and y.f) or x.has_all("sf") or y.has_all("sf")
            )
            | ((x | y) & "s")
            | "u"
        )
        self._check_type("and_b")
        self._inherit_timelocks(self.subs, conjunctive=True)

    @property
    def _script(self):
        return sum((sub._script for sub in self.subs), start=[]) + [OP_BOOLAND]

    def satisfaction(self, leaf_sat):
        return Satisfaction.from_concat(leaf_sat, *self.subs)

    def dissatisfaction(self):
        return self.subs[1].dissatisfaction() + self.subs[0].dissatisfaction()

    def __repr__(self):
        return f"and_b({','.join(map(str, self.subs))})"


class OrB(Node):
    def __init__(self, sub_x, sub_z):
        self.subs = [sub_x, sub_z]
        x, z = sub_x.p, sub_z.p

        self.p = (
            Property("B").when(x.has_all("Bd") and z.has_all("Wd"))
            | ((x | z) & "o").when((x | z).z)
            | (x & z & "m").when((x | z).s and (x & z).e)
            | (x & z & "zse")
            | "du"
        )
        self._check_type("or_b")
        self._inherit_timelocks(self.subs, conjunctive=False)

    @property
    def _script(self):
        return sum((sub._script for sub in self.subs), start=[]) + [OP_BOOLOR]

    def satisfaction(self, leaf_sat):
        return Satisfaction.from_concat(leaf_sat, *self.subs, disjunction=True)

    def dissatisfaction(self):
        return self.subs[1].dissatisfaction() + self.subs[0].dissatisfaction()

    def __repr__(self):
        return f"or_b({','.join(map(str, self.subs))})"


class OrC(Node):
    def __init__(self, sub_x, sub_z):
        self.subs = [sub_x, sub_z]
        x, z = sub_x.p, sub_z.p

        self.p = (
            (z & "V").when(x.has_all("Bdu"))
            | (x & "o").when(z.z)
            | (x & z & "m").when(x.e and (x | z).s)
            | (x & z & "zs")
            | "f"
        )
        self._check_type("or_c")
        self._inherit_timelocks(self.subs, conjunctive=False)

    @property
    def _script(self):
        return self.subs[0]._script + [OP_NOTIF] + self.subs[1]._script + [OP_ENDIF]

    def satisfaction(self, leaf_sat):
        return Satisfaction.from_or_uneven(leaf_sat, *self.subs)

    def dissatisfaction(self):
        return Satisfaction.unavailable()  # it's V.

    def __repr__(self):
        return f"or_c({','.join(map(str, self.subs))})"


class OrD(Node):
    def __init__(self, sub_x, sub_z):
        self.subs = [sub_x, sub_z]
        x, z = sub_x.p, sub_z.p

        self.p = (
            (z & "B").when(x.has_all("Bdu"))
            | (x & "o").when(z.z)
            | (x & z & "m").when(x.e and (x | z).s)
            | (x & z & "zes")
            | (z & "ufd")
        )
        self._check_type("or_d")
        self._inherit_timelocks(self.subs, conjunctive=False)

    @property
    def _script(self):
        return (
            self.subs[0]._script
            + [OP_IFDUP, OP_NOTIF]
            + self.subs[1]._script
            + [OP_ENDIF]
        )

    def satisfaction(self, leaf_sat):
        return Satisfaction.from_or_uneven(leaf_sat, *self.subs)

    def dissatisfaction(self):
        return self.subs[1].dissatisfaction() + self.subs[0].dissatisfaction()

    def __repr__(self):
        return f"or_d({','.join(map(str, self.subs))})"


class OrI(Node):
    def __init__(self, sub_x, sub_z):
        self.subs = [sub_x, sub_z]
        x, z = sub_x.p, sub_z.p

        self.p = (
            (x & z & "VBKufs")
            | Property("o").when((x & z).z)
            | ((x | z) & "e").when((x | z).f)
            | (x & z & "m").when((x | z).s)
            | ((x | z) & "d")
        )
        self._check_type("or_i")
        self._inherit_timelocks(self.subs, conjunctive=False)

    @property
    def _script(self):
        return (
            [OP_IF]
            + self.subs[0]._script
            + [OP_ELSE]
            + self.subs[1]._script
            + [OP_ENDIF]
        )

    def satisfaction(self, leaf_sat):
        return (self.subs[0].satisfaction(leaf_sat) + Satisfaction([b"\x01"])) | (
            self.subs[1].satisfaction(leaf_sat) + Satisfaction([b""])
        )

    def dissatisfaction(self):
        return (self.subs[0].dissatisfaction() + Satisfaction(witness=[b"\x01"])) | (
            self.subs[1].dissatisfaction() + Satisfaction(witness=[b""])
        )

    def __repr__(self):
        if isinstance(self.subs[0], Just0):
            return _wrapper_repr("l", self.subs[1])
        if isinstance(self.subs[1], Just0):
            return _wrapper_repr("u", self.subs[0])
        return f"or_i({','.join(map(str, self.subs))})"


class AndOr(Node):
    def __init__(self, sub_x, sub_y, sub_z):
        self.subs = [sub_x, sub_y, sub_z]
        x, y, z = sub_x.p, sub_y.p, sub_z.p

        self.p = (
            (y & z & "BKV").when(x.has_all("Bdu"))
            | (x & y & z & "z")
            | ((x | (y & z)) & "o").when((x | (y & z)).z)
            | (y & z & "u")
            | (z & "f").when(x.s or y.f)
            | (z & "d")
            | (z & "e").when(x.s or y.f)
            | (x & y & z & "m").when(x.e and (x | y | z).s)
            | (z & (x | y) & "s")
        )
        self._check_type("andor")
        # X and Y may be satisfied together, Z is an alternative to both.
        self._inherit_timelocks([sub_x, sub_y], conjunctive=True)
        conj_mix = self.no_timelock_mix
        self._inherit_timelocks(self.subs, conjunctive=False)
        self.no_timelock_mix = self.no_timelock_mix and conj_mix

    @property
    def _script(self):
        return (
            self.subs[0]._script
            + [OP_NOTIF]
            + self.subs[2]._script
            + [OP_ELSE]
            + self.subs[1]._script
            + [OP_ENDIF]
        )

    def satisfaction(self, leaf_sat):
        # (A and B) or (!A and C)
        return (
            self.subs[1].satisfaction(leaf_sat) + self.subs[0].satisfaction(leaf_sat)
        ) | (self.subs[2].satisfaction(leaf_sat) + self.subs[0].dissatisfaction())

    def dissatisfaction(self):
        # Dissatisfy X and Z
        return self.subs[2].dissatisfaction() + self.subs[0].dissatisfaction()

    def __repr__(self):
        if isinstance(self.subs[2], Just0):
            return f"and_n({self.subs[0]},{self.subs[1]})"
        return f"andor({','.join(map(str, self.subs))})"


class Thresh(Node):
    def __init__(self, k, subs):
        n = len(subs)
        if not 1 <= k <= n:
            raise MiniscriptNodeCreationError(f"Invalid threshold {k} for {n} subs")

        self.k = k
        self.subs = subs

        all_e, all_m, args, num_s = True, True, 0, 0
        valid = True
        for i, sub in enumerate(subs):
            if not sub.p.has_all("Wdu" if i > 0 else "Bdu"):
                valid = False
            all_e = all_e and sub.p.e
            all_m = all_m and sub.p.m
            num_s += int(sub.p.s)
            args += 0 if sub.p.z else 1 if sub.p.o else 2

        self.p = Property()
        if valid:
            self.p = (
                Property("Bdu")
                | Property("z").when(args == 0)
                | Property("o").when(args == 1)
                | Property("e").when(all_e and num_s == n)
                | Property("m").when(all_e and all_m and num_s >= n - k)
                | Property("s").when(num_s >= n - k + 1)
            )
        self._check_type("thresh")
        self._inherit_timelocks(self.subs, conjunctive=k > 1)

    @property
    def _script(self):
        script = self.subs[0]._script
        for sub in self.subs[1:]:
            script = script + sub._script + [OP_ADD]
        return script + [self.k, OP_EQUAL]

    def satisfaction(self, leaf_sat):
        return Satisfaction.from_thresh(leaf_sat, self.k, self.subs)

    def dissatisfaction(self):
        return sum(
            [sub.dissatisfaction() for sub in self.subs[::-1]],
            start=Satisfaction(witness=[]),
        )

    def __repr__(self):
        return f"thresh({self.k},{','.join(map(str, self.subs))})"


def _wrapper_repr(tag, sub):
    """Wrappers are written as a prefix, and stack up without repeating the colon."""
    sub_str = str(sub)
    if _WRAPPER_PREFIX.match(sub_str):
        return f"{tag}{sub_str}"
    return f"{tag}:{sub_str}"


class WrapperNode(Node):
    """A virtual class for wrappers.

    Don't instanciate it directly, use concret wrapper fragments instead.
    """

    tag = None

    def __init__(self, sub):
        self.subs = [sub]
        self.p = self.compute_property(sub.p)
        self._check_type(f"{self.tag}:")
        self._inherit_timelocks(self.subs, conjunctive=False)

    @property
    def sub(self):
        return self.subs[0]

    def satisfaction(self, leaf_sat):
        return self.sub.satisfaction(leaf_sat)

    def dissatisfaction(self):
        return self.sub.dissatisfaction()

    def __repr__(self):
        return _wrapper_repr(self.tag, self.sub)


class WrapA(WrapperNode):
    tag = "a"

    def compute_property(self, x):
        return Property("W").when(x.B) | (x & "udfems")

    @property
    def _script(self):
        return [OP_TOALTSTACK] + self.sub._script + [OP_FROMALTSTACK]


class WrapS(WrapperNode):
    tag = "s"

    def compute_property(self, x):
        return Property("W").when(x.has_all("Bo")) | (x & "udfems")

    @property
    def _script(self):
        return [OP_SWAP] + self.sub._script


class WrapC(WrapperNode):
    tag = "c"

    def compute_property(self, x):
        return Property("B").when(x.K) | (x & "ondfem") | "us"

    @property
    def _script(self):
        return self.sub._script + [OP_CHECKSIG]

    def __repr__(self):
        # Special case of aliases
        if isinstance(self.sub, PkK):
            return f"pk({self.sub.pubkey})"
        if isinstance(self.sub, PkH):
            return f"pkh({self.sub.pubkey})"
        return WrapperNode.__repr__(self)


class WrapD(WrapperNode):
    tag = "d"

    def compute_property(self, x):
        # Unit thanks to the MINIMALIF consensus rule in Tapscript.
        return (
            Property("B").when(x.has_all("Vz"))
            | Property("o").when(x.z)
            | Property("e").when(x.f)
            | (x & "ms")
            | "ndu"
        )

    @property
    def _script(self):
        return [OP_DUP, OP_IF] + self.sub._script + [OP_ENDIF]

    def satisfaction(self, leaf_sat):
        return self.sub.satisfaction(leaf_sat) + Satisfaction([b"\x01"])

    def dissatisfaction(self):
        return Satisfaction(witness=[b""])


class WrapV(WrapperNode):
    tag = "v"

    def compute_property(self, x):
        return Property("V").when(x.B) | (x & "zonms") | "f"

    @property
    def _script(self):
        sub_script = self.sub._script
        # Merge the verifying version of the opcode when possible.
        for op, verify_op in (
            (OP_CHECKSIG, OP_CHECKSIGVERIFY),
            (OP_EQUAL, OP_EQUALVERIFY),
            (OP_NUMEQUAL, OP_NUMEQUALVERIFY),
        ):
            if sub_script[-1] is op:
                return sub_script[:-1] + [verify_op]
        return sub_script + [OP_VERIFY]

    def dissatisfaction(self):
        return Satisfaction.unavailable()  # It's V.


class WrapJ(WrapperNode):
    tag = "j"

    def compute_property(self, x):
        return (
            Property("B").when(x.has_all("Bn"))
            | Property("e").when(x.f)
            | (x & "oums")
            | "nd"
        )

    @property
    def _script(self):
        return [OP_SIZE, OP_0NOTEQUAL, OP_IF, *self.sub._script, OP_ENDIF]

    def dissatisfaction(self):
        return Satisfaction(witness=[b""])


class WrapN(WrapperNode):
    tag = "n"

    def compute_property(self, x):
        return (x & "Bzondfems") | "u"

    @property
    def _script(self):
        return [*self.sub._script, OP_0NOTEQUAL]
