from loguru import logger

from taplab.errors import CouldNotSatisfyError
from taplab.key import DescriptorKey
from taplab.miniscript import LeafSatisfier, Node
from taplab.program import PROGRAM_LEAF_VERSION, Policy
from taplab.utils.script import CScript, OP_1

from .checksum import descsum_create
from .errors import DescriptorParsingError
from .parsing import descriptor_from_str
from .utils import TAPSCRIPT_LEAF_VERSION, SpendInfo, segwit_v1_address


# The x coordinate of the NUMS point H from BIP341. Nobody knows its discrete
# logarithm, so outputs using it as internal key can only be spent by script.
NUMS_KEY = bytes.fromhex(
    "50929b74c1a04954b78b4b6035e97a5e078a5a0f28ec96d547bfee9ace803ac0"
)


class Descriptor:
    """A Taproot Output Script Descriptor."""

    def from_str(desc_str, strict=False):
        """Parse a Taproot Output Script Descriptor from its string representation.

        :param strict: whether to require the presence of a checksum.
        """
        return descriptor_from_str(desc_str, strict)

    def __eq__(self, other):
        return isinstance(other, Descriptor) and str(self) == str(other)

    def __hash__(self):
        return hash(str(self))

    @property
    def spend_info(self):
        """Get the SpendInfo (internal key, leaf and output key) for this descriptor."""
        # Computed once, descriptors are immutable.
        if getattr(self, "_spend_info", None) is None:
            self._spend_info = self._compute_spend_info()
        return self._spend_info

    def _compute_spend_info(self):
        # To be implemented by derived classes
        raise NotImplementedError

    @property
    def script_pubkey(self):
        """Get the ScriptPubKey (output 'locking' Script) for this descriptor."""
        return CScript([OP_1, self.spend_info.output_key])

    def address(self, network):
        """Get the bech32m address of this descriptor on the given network."""
        return segwit_v1_address(network, self.spend_info.output_key)

    def leaves(self):
        """Get the list of (script, leaf version) committed to by the output key."""
        info = self.spend_info
        if not info.has_leaf():
            return []
        return [(info.leaf_script, info.leaf_version)]

    @property
    def keys(self):
        """Get the list of all keys from this descriptor, in order of apparition."""
        # To be implemented by derived classes
        raise NotImplementedError

    def derive(self, index):
        """Derive the key at the given derivation index.

        A no-op if the key isn't a wildcard. Will start from 2**31 if the key is a "hardened
        wildcard".
        """
        assert isinstance(index, int)
        for key in self.keys:
            key.derive(index)
        self._spend_info = None

    def satisfy(self, satisfier):
        """Get the witness stack to spend from this descriptor.

        :param satisfier: a taplab.satisfier.Satisfier answering the challenges set by
                          the key path or the leaf.
        """
        # To be implemented by derived classes
        raise NotImplementedError

    def copy(self):
        """Get a copy of this descriptor."""
        return Descriptor.from_str(str(self))


class TrDescriptor(Descriptor):
    """A Pay-to-Taproot Output Script Descriptor, with at most one Tapscript leaf."""

    def __init__(self, internal_key, leaf=None):
        assert isinstance(internal_key, DescriptorKey)
        assert leaf is None or isinstance(leaf, Node)
        self.internal_key = internal_key
        self.leaf = leaf

    def __repr__(self):
        if self.leaf is not None:
            return descsum_create(f"tr({self.internal_key},{self.leaf})")
        return descsum_create(f"tr({self.internal_key})")

    def _compute_spend_info(self):
        if self.leaf is None:
            return SpendInfo(self.internal_key.bytes())
        return SpendInfo(
            self.internal_key.bytes(), self.leaf.script, TAPSCRIPT_LEAF_VERSION
        )

    @property
    def keys(self):
        leaf_keys = [] if self.leaf is None else self.leaf.keys
        return [self.internal_key] + leaf_keys

    def satisfy(self, satisfier):
        # First, try to satisfy using key-path spend
        sig = satisfier.key_path_signature()
        if sig is not None:
            logger.debug("Spending {} using the key path", self)
            return [sig]

        # Then, try the leaf.
        if self.leaf is not None:
            info = self.spend_info
            witness = self.leaf.satisfy(LeafSatisfier(satisfier, info.leaf_hash()))
            if witness is not None:
                logger.debug("Spending {} using the script path", self)
                return witness + [info.leaf_script, info.control_block()]

        raise CouldNotSatisfyError(f"Could not satisfy '{self}'")


class ProgDescriptor(Descriptor):
    """A Pay-to-Taproot Output Script Descriptor committing to a program policy.

    The internal key is unspendable, the output can only be spent through the program.
    """

    def __init__(self, policy):
        assert isinstance(policy, Policy)
        self.policy = policy

    def __repr__(self):
        return descsum_create(f"prog({self.policy})")

    def _compute_spend_info(self):
        return SpendInfo(NUMS_KEY, self.policy.cmr(), PROGRAM_LEAF_VERSION)

    @property
    def keys(self):
        return self.policy.keys

    def cmr(self):
        return self.policy.cmr()

    def satisfy(self, satisfier):
        info = self.spend_info
        values = self.policy.satisfy(LeafSatisfier(satisfier, info.leaf_hash()))
        if values is None:
            raise CouldNotSatisfyError(f"Could not satisfy '{self}'")
        return [self.policy.witness_blob(values), info.leaf_script, info.control_block()]


def compile(policy_str, strict=False):
    """Compile a policy into a descriptor.

    Alias of Descriptor.from_str(), which is pure and does not touch any secret.
    """
    return Descriptor.from_str(policy_str, strict)
