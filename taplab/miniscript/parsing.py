"""
Utilities to parse Miniscript from its string representation.
"""

from taplab.key import DescriptorKey
from taplab.miniscript import fragments
from taplab.miniscript.errors import MiniscriptMalformedError


def split_params(string):
    """Read a list of values before the next ')'. Split the result by comma."""
    i = string.find(")")
    if i < 0:
        raise MiniscriptMalformedError(f"Missing closing parenthesis in '{string}'")

    params, remaining = string[:i], string[i:]
    if len(remaining) > 0:
        return params.split(","), remaining[1:]
    else:
        return params.split(","), ""


def parse_many(string):
    """Read a list of nodes before the next ')'."""
    subs = []
    remaining = string
    while True:
        sub, remaining = parse_one(remaining)
        subs.append(sub)
        if remaining[:1] == ")":
            return subs, remaining[1:]
        if remaining[:1] != ",":
            raise MiniscriptMalformedError(f"Expected ',' or ')' at '{remaining}'")
        remaining = remaining[1:]


def parse_one_num(string):
    """Read an integer before the next comma."""
    i = string.find(",")
    if i < 0:
        raise MiniscriptMalformedError(f"Expected a threshold in '{string}'")

    return parse_int(string[:i]), string[i + 1 :]


def parse_int(string):
    if not string.isdigit():
        raise MiniscriptMalformedError(f"Invalid integer '{string}'")
    return int(string)


def _expect_params(tag, params, count):
    if len(params) != count:
        raise MiniscriptMalformedError(
            f"'{tag}' takes {count} parameter(s), got {len(params)}"
        )


def parse_one(string):
    """Read a node and its subs recursively from a string.
    Returns the node and the part of the string not consumed.
    """
    if len(string) == 0:
        raise MiniscriptMalformedError("Unexpected end of Miniscript")

    # We special case Just1 and Just0 since they are the only one which don't
    # have a function syntax.
    if string[0] == "0":
        return fragments.Just0(), string[1:]
    if string[0] == "1":
        return fragments.Just1(), string[1:]

    # Now, find the separator for all functions.
    for i, char in enumerate(string):
        if char in ["(", ":"]:
            break
    else:
        raise MiniscriptMalformedError(f"Unknown fragment '{string}'")
    # For wrappers, we may have many of them.
    if char == ":" and i > 1:
        tag, remaining = string[0], string[1:]
    else:
        tag, remaining = string[:i], string[i + 1 :]

    # Wrappers
    if char == ":":
        sub, remaining = parse_one(remaining)
        if tag == "a":
            return fragments.WrapA(sub), remaining

        if tag == "s":
            return fragments.WrapS(sub), remaining

        if tag == "c":
            return fragments.WrapC(sub), remaining

        if tag == "t":
            return fragments.AndV(sub, fragments.Just1()), remaining

        if tag == "d":
            return fragments.WrapD(sub), remaining

        if tag == "v":
            return fragments.WrapV(sub), remaining

        if tag == "j":
            return fragments.WrapJ(sub), remaining

        if tag == "n":
            return fragments.WrapN(sub), remaining

        if tag == "l":
            return fragments.OrI(fragments.Just0(), sub), remaining

        if tag == "u":
            return fragments.OrI(sub, fragments.Just0()), remaining

        raise MiniscriptMalformedError(f"Unknown wrapper '{tag}'")

    # Terminal elements other than 0 and 1
    if tag in [
        "pk",
        "pkh",
        "pk_k",
        "pk_h",
        "sha256",
        "older",
        "after",
        "multi_a",
    ]:
        params, remaining = split_params(remaining)

        if tag == "pk":
            _expect_params(tag, params, 1)
            return fragments.WrapC(fragments.PkK(DescriptorKey(params[0]))), remaining

        if tag == "pk_k":
            _expect_params(tag, params, 1)
            return fragments.PkK(DescriptorKey(params[0])), remaining

        if tag == "pkh":
            _expect_params(tag, params, 1)
            return fragments.WrapC(fragments.PkH(DescriptorKey(params[0]))), remaining

        if tag == "pk_h":
            _expect_params(tag, params, 1)
            return fragments.PkH(DescriptorKey(params[0])), remaining

        if tag == "older":
            _expect_params(tag, params, 1)
            return fragments.Older(parse_int(params[0])), remaining

        if tag == "after":
            _expect_params(tag, params, 1)
            return fragments.After(parse_int(params[0])), remaining

        if tag == "sha256":
            _expect_params(tag, params, 1)
            try:
                digest = bytes.fromhex(params[0])
            except ValueError:
                raise MiniscriptMalformedError(f"Invalid hex digest '{params[0]}'")
            return fragments.Sha256(digest), remaining

        assert tag == "multi_a"
        if len(params) < 2:
            raise MiniscriptMalformedError("multi_a() takes a threshold and keys")
        k = parse_int(params.pop(0))
        keys = [DescriptorKey(param) for param in params]
        return fragments.MultiA(k, keys), remaining

    # Non-terminal elements (connectives)
    # We special case Thresh, as its first sub is an integer.
    if tag == "thresh":
        k, remaining = parse_one_num(remaining)
    subs, remaining = parse_many(remaining)

    arity = {
        "and_v": 2,
        "and_b": 2,
        "and_n": 2,
        "or_b": 2,
        "or_c": 2,
        "or_d": 2,
        "or_i": 2,
        "andor": 3,
    }
    if tag in arity and len(subs) != arity[tag]:
        raise MiniscriptMalformedError(
            f"'{tag}' takes {arity[tag]} sub fragments, got {len(subs)}"
        )

    if tag == "and_v":
        return fragments.AndV(*subs), remaining

    if tag == "and_b":
        return fragments.AndB(*subs), remaining

    if tag == "and_n":
        return fragments.AndOr(*subs, fragments.Just0()), remaining

    if tag == "or_b":
        return fragments.OrB(*subs), remaining

    if tag == "or_c":
        return fragments.OrC(*subs), remaining

    if tag == "or_d":
        return fragments.OrD(*subs), remaining

    if tag == "or_i":
        return fragments.OrI(*subs), remaining

    if tag == "andor":
        return fragments.AndOr(*subs), remaining

    if tag == "thresh":
        return fragments.Thresh(k, subs), remaining

    raise MiniscriptMalformedError(f"Unknown fragment '{tag}'")


def miniscript_from_str(ms_str):
    """Construct miniscript node from string representation"""
    node, remaining = parse_one(ms_str)
    if remaining != "":
        raise MiniscriptMalformedError(f"Unexpected trailing characters '{remaining}'")
    return node
