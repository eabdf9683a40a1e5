import taplab.descriptors as descriptors

from taplab.descriptors.checksum import descsum_check
from taplab.errors import PolicyError, UnsupportedDescriptorError
from taplab.key import DescriptorKey
from taplab.miniscript import Node
from taplab.miniscript.errors import MiniscriptTypeError
from taplab.program import Policy

from .errors import DescriptorParsingError


def split_checksum(desc_str, strict=False):
    """Removes and check the provided checksum.
    If not told otherwise, this won't fail on a missing checksum.

    :param strict: whether to require the presence of the checksum.
    """
    desc_split = desc_str.split("#")
    if len(desc_split) != 2:
        if strict or len(desc_split) > 2:
            raise DescriptorParsingError("Missing checksum")
        return desc_split[0]

    descriptor, checksum = desc_split
    if not descsum_check(desc_str):
        raise DescriptorParsingError(
            f"Checksum '{checksum}' is invalid for '{descriptor}'"
        )

    return descriptor


def parse_tapscript_leaf(ms_str):
    """Parse a Miniscript meant to be used as the only leaf of a Taproot."""
    if ms_str.startswith("{"):
        raise UnsupportedDescriptorError(
            "Taproot trees with more than a single leaf are not supported"
        )
    ms = Node.from_str(ms_str)
    if not ms.p.B:
        raise MiniscriptTypeError(f"Leaf '{ms}' is of type {ms.p.type()}, not B")
    if not ms.no_timelock_mix:
        raise MiniscriptTypeError(f"Leaf '{ms}' mixes heights and times in timelocks")
    return ms


def descriptor_from_str(desc_str, strict=False):
    """Parse a Taproot Output Script Descriptor from its string representation.

    :param strict: whether to require the presence of a checksum.
    """
    desc_str = split_checksum(desc_str, strict=strict)

    if desc_str.startswith("tr(") and desc_str.endswith(")"):
        # First parse the key expression
        comma_index = desc_str.find(",")
        key_str = desc_str[3:-1] if comma_index == -1 else desc_str[3:comma_index]
        try:
            pubkey = DescriptorKey(key_str)
        except PolicyError as e:
            raise DescriptorParsingError(e.message)

        # Then the leaf if it exists.
        leaf = None
        if comma_index != -1:
            leaf = parse_tapscript_leaf(desc_str[comma_index + 1 : -1])

        return descriptors.TrDescriptor(pubkey, leaf)

    if desc_str.startswith("prog(") and desc_str.endswith(")"):
        return descriptors.ProgDescriptor(Policy.from_str(desc_str[5:-1]))

    raise DescriptorParsingError(f"Unknown descriptor fragment: {desc_str}")
