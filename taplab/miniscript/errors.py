"""
All the exceptions raised when dealing with Miniscript.
"""

from taplab.errors import PolicyError


class MiniscriptMalformedError(PolicyError):
    pass


class MiniscriptNodeCreationError(PolicyError):
    pass


class MiniscriptPropertyError(PolicyError):
    pass


class MiniscriptTypeError(PolicyError):
    """The Miniscript is well formed but can't be used as a Tapscript leaf."""
