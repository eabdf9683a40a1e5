"""
Utilities to parse a program policy from its string representation.
"""

from taplab.program import policy
from taplab.program.errors import ProgramPolicyError


def split_args(string):
    """Split a list of comma separated expressions, ignoring the commas nested in
    parentheses.
    """
    args, depth, start = [], 0, 0
    for i, char in enumerate(string):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise ProgramPolicyError(f"Unbalanced parentheses in '{string}'")
        elif char == "," and depth == 0:
            args.append(string[start:i])
            start = i + 1
    if depth != 0:
        raise ProgramPolicyError(f"Unbalanced parentheses in '{string}'")
    args.append(string[start:])
    return args


def parse_int(string):
    if not string.isdigit():
        raise ProgramPolicyError(f"Invalid integer '{string}'")
    return int(string)


def policy_from_str(policy_str):
    """Construct a program policy from its string representation."""
    if policy_str == "TRIVIAL":
        return policy.Trivial()
    if policy_str == "UNSATISFIABLE":
        return policy.Unsatisfiable()

    i = policy_str.find("(")
    if i <= 0 or not policy_str.endswith(")"):
        raise ProgramPolicyError(f"Unknown policy fragment '{policy_str}'")
    name, args = policy_str[:i], split_args(policy_str[i + 1 : -1])

    if name == "pk":
        if len(args) != 1:
            raise ProgramPolicyError("pk() takes exactly one key")
        return policy.Key(args[0])

    if name == "sha256":
        if len(args) != 1:
            raise ProgramPolicyError("sha256() takes exactly one digest")
        try:
            return policy.Sha256(bytes.fromhex(args[0]))
        except ValueError:
            raise ProgramPolicyError(f"Invalid hex digest '{args[0]}'")

    if name == "after":
        if len(args) != 1:
            raise ProgramPolicyError("after() takes exactly one value")
        return policy.After(parse_int(args[0]))

    if name == "older":
        if len(args) != 1:
            raise ProgramPolicyError("older() takes exactly one value")
        return policy.Older(parse_int(args[0]))

    if name in ("and", "or"):
        if len(args) != 2:
            raise ProgramPolicyError(f"{name}() takes exactly two sub policies")
        left, right = policy_from_str(args[0]), policy_from_str(args[1])
        if name == "and":
            return policy.And(left, right)
        return policy.Or(left, right)

    if name == "thresh":
        if len(args) < 2:
            raise ProgramPolicyError("thresh() takes a threshold and sub policies")
        k = parse_int(args[0])
        return policy.Thresh(k, [policy_from_str(arg) for arg in args[1:]])

    raise ProgramPolicyError(f"Unknown policy fragment '{name}'")
