from taplab.errors import PolicyError


class DescriptorParsingError(PolicyError):
    """Error while parsing a Bitcoin Output Descriptor from its string representation"""
