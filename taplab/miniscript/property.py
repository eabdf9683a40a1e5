# Copyright (c) 2020 The Bitcoin Core developers
# Copyright (c) 2021 Antoine Poinsot
# Distributed under the MIT software license, see the accompanying
# file LICENSE or http://www.opensource.org/licenses/mit-license.php.

from .errors import MiniscriptPropertyError


class Property:
    """Miniscript expression property

    Behaves like a set of type and property characters, so that the typing rules of
    each fragment can be written as set algebra: `x & y` keeps what both have, `x | y`
    what either has, `x.has_all("Bd")` tests for inclusion and `p.when(cond)` keeps
    `p` only if `cond` holds.
    """

    # "B": Base type
    # "V": Verify type
    # "K": Key type
    # "W": Wrapped type
    # "z": Zero-arg property
    # "o": One-arg property
    # "n": Nonzero arg property
    # "d": Dissatisfiable property
    # "u": Unit property
    # "e": Expression property
    # "f": Forced property
    # "s": Safe property
    # "m": Nonmalleable property
    types = "BVKW"
    props = "zonduefsm"

    def __init__(self, property_str=""):
        """Create a property, optionally from a str of property and types"""
        for c in property_str:
            if c not in self.types + self.props:
                raise MiniscriptPropertyError(f"Invalid property/type character '{c}'")
        self._chars = frozenset(property_str)

    def __repr__(self):
        """Generate string representation of property"""
        return "".join([c for c in self.types + self.props if c in self._chars])

    def __eq__(self, other):
        return isinstance(other, Property) and self._chars == other._chars

    def __getattr__(self, name):
        # Allow `p.B`, `p.z`, .. as boolean accessors.
        if len(name) == 1 and name in self.types + self.props:
            return name in self._chars
        raise AttributeError(name)

    def __and__(self, other):
        if isinstance(other, str):
            other = Property(other)
        return Property("".join(self._chars & other._chars))

    def __or__(self, other):
        if isinstance(other, str):
            other = Property(other)
        return Property("".join(self._chars | other._chars))

    def when(self, condition):
        """This property if the condition holds, the empty property otherwise."""
        return self if condition else Property()

    def has_all(self, properties):
        """Given a str of types and properties, return whether we have all of them"""
        return all(c in self._chars for c in properties)

    def has_any(self, properties):
        """Given a str of types and properties, return whether we have at least one of them"""
        return any(c in self._chars for c in properties)

    def check_valid(self):
        """Raises a MiniscriptPropertyError if the types/properties conflict"""
        if len([t for t in self.types if t in self._chars]) != 1:
            raise MiniscriptPropertyError(
                f"A Miniscript fragment must be of exactly one type, got '{self}'"
            )

        # Check for conflicts in type & properties.
        checks = [
            # (type/property, must_be, must_not_be)
            ("K", "us", ""),
            ("V", "f", "due"),
            ("z", "", "o"),
            ("n", "", "z"),
            ("e", "d", "f"),
            ("d", "", "f"),
        ]
        conflicts = []

        for (attr, must_be, must_not_be) in checks:
            if attr not in self._chars:
                continue
            if not self.has_all(must_be):
                conflicts.append(f"{attr} must be {must_be}")
            if self.has_any(must_not_be):
                conflicts.append(f"{attr} must not be {must_not_be}")
        if conflicts:
            raise MiniscriptPropertyError(f"Conflicting types and properties: {', '.join(conflicts)}")

    def type(self):
        return "".join(filter(lambda x: x in self.types, str(self)))

    def properties(self):
        return "".join(filter(lambda x: x in self.props, str(self)))
