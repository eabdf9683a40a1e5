from .secrets import ImagePair, KeyPair, SecretMap, Status
from .state import Input, LedgerState, Output, Utxo
