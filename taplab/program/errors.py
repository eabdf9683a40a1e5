from taplab.errors import PolicyError


class ProgramPolicyError(PolicyError):
    """A program policy is malformed."""
