"""
All the exceptions raised by taplab.

Every error derives from LabError so that callers can report any failure of a
command uniformly. Sub-packages define their parsing errors on top of PolicyError.
"""


class LabError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message: str = message


class MissingReferenceError(LabError):
    """An index or identifier does not refer to anything in the ledger."""


class MissingInputError(MissingReferenceError):
    def __init__(self, message: str = "Input is missing"):
        super().__init__(message)


class MissingOutputError(MissingReferenceError):
    def __init__(self, message: str = "Output is missing"):
        super().__init__(message)


class MissingUtxoError(MissingReferenceError):
    def __init__(self, message: str = "No UTXO at index"):
        super().__init__(message)


class MissingAddressError(MissingReferenceError):
    def __init__(self, message: str = "Inbound address is missing"):
        super().__init__(message)


class UnknownKeyError(MissingReferenceError):
    def __init__(self, message: str = "Unknown public key"):
        super().__init__(message)


class UnknownImageError(MissingReferenceError):
    def __init__(self, message: str = "Unknown hash image"):
        super().__init__(message)


class PolicyError(LabError):
    """A spending policy could not be parsed, compiled or satisfied."""


class UnsupportedDescriptorError(PolicyError):
    pass


class CouldNotSatisfyError(PolicyError):
    def __init__(self, message: str = "Could not satisfy the spending policy"):
        super().__init__(message)


class ValueAccountingError(LabError):
    """Input and output values do not add up."""


class OneZeroOutputError(ValueAccountingError):
    def __init__(self, message: str = "At most one output can have zero value"):
        super().__init__(message)


class NotEnoughFundsError(ValueAccountingError):
    def __init__(self, message: str = "Not enough funds to fund remaining output"):
        super().__init__(message)


class InvalidValueError(LabError):
    """A value is outside of the range its field allows."""


class ConsistencyError(LabError):
    """The ledger would end up holding contradicting data."""


class DoubleSpendError(ConsistencyError):
    def __init__(self, message: str = "Same UTXO can be used at most once as input"):
        super().__init__(message)


class DuplicateSecretError(ConsistencyError):
    pass


class StateFileError(LabError):
    """The ledger file could not be read or written."""


class CryptoError(LabError):
    """An elliptic curve operation failed."""


class TaprootTweakError(CryptoError):
    pass


class InvalidKeyError(CryptoError):
    pass
