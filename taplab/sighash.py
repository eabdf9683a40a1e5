# Copyright (c) 2015-2022 The Bitcoin Core developers
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.
"""BIP341 signature hashes.

The transaction-wide digests are computed once and shared by every input of the
transaction being signed.
"""

import struct

from taplab.utils.hashes import sha256, tagged_hash
from taplab.utils.serialize import ser_string


SIGHASH_DEFAULT = 0
SIGHASH_ALL = 1
SIGHASH_NONE = 2
SIGHASH_SINGLE = 3
SIGHASH_ANYONECANPAY = 0x80

SIGHASH_TYPES = {
    "default": SIGHASH_DEFAULT,
    "all": SIGHASH_ALL,
    "none": SIGHASH_NONE,
    "single": SIGHASH_SINGLE,
}


class SighashCache:
    """Memoizes the digests of a transaction which are common to all its inputs.

    :param tx: the unsigned taplab.tx.Transaction.
    :param spent_outputs: the TxOut spent by each input, in order.
    """

    def __init__(self, tx, spent_outputs):
        assert len(tx.inputs) == len(spent_outputs)
        self.tx = tx
        self.spent_outputs = spent_outputs
        self._digests = {}

    def _cached(self, name, compute):
        if name not in self._digests:
            self._digests[name] = compute()
        return self._digests[name]

    def sha_prevouts(self):
        return self._cached(
            "prevouts",
            lambda: sha256(b"".join(i.prevout.serialize() for i in self.tx.inputs)),
        )

    def sha_amounts(self):
        return self._cached(
            "amounts",
            lambda: sha256(
                b"".join(struct.pack("<q", u.value) for u in self.spent_outputs)
            ),
        )

    def sha_scriptpubkeys(self):
        return self._cached(
            "scriptpubkeys",
            lambda: sha256(
                b"".join(ser_string(u.script_pubkey) for u in self.spent_outputs)
            ),
        )

    def sha_sequences(self):
        return self._cached(
            "sequences",
            lambda: sha256(
                b"".join(struct.pack("<I", i.sequence) for i in self.tx.inputs)
            ),
        )

    def sha_outputs(self):
        return self._cached(
            "outputs",
            lambda: sha256(b"".join(o.serialize() for o in self.tx.outputs)),
        )

    def signature_msg(self, input_index, hash_type, leaf_hash=None):
        """The BIP341 message to sign, for the key path if no leaf hash is given."""
        assert input_index < len(self.tx.inputs)
        out_type = SIGHASH_ALL if hash_type == 0 else hash_type & 3
        in_type = hash_type & SIGHASH_ANYONECANPAY
        txin = self.tx.inputs[input_index]
        spent = self.spent_outputs[input_index]

        ss = bytes([0, hash_type])  # epoch, hash_type
        ss += struct.pack("<i", self.tx.version)
        ss += struct.pack("<I", self.tx.locktime)
        if in_type != SIGHASH_ANYONECANPAY:
            ss += self.sha_prevouts()
            ss += self.sha_amounts()
            ss += self.sha_scriptpubkeys()
            ss += self.sha_sequences()
        if out_type == SIGHASH_ALL:
            ss += self.sha_outputs()
        # No annex.
        spend_type = 0 if leaf_hash is None else 2
        ss += bytes([spend_type])
        if in_type == SIGHASH_ANYONECANPAY:
            ss += txin.prevout.serialize()
            ss += struct.pack("<q", spent.value)
            ss += ser_string(spent.script_pubkey)
            ss += struct.pack("<I", txin.sequence)
        else:
            ss += struct.pack("<I", input_index)
        if out_type == SIGHASH_SINGLE:
            if input_index < len(self.tx.outputs):
                ss += sha256(self.tx.outputs[input_index].serialize())
            else:
                ss += bytes(32)
        if leaf_hash is not None:
            ss += leaf_hash
            ss += bytes([0])  # key version
            ss += struct.pack("<i", -1)  # no OP_CODESEPARATOR
        return ss

    def key_path_hash(self, input_index, hash_type):
        return tagged_hash("TapSighash", self.signature_msg(input_index, hash_type))

    def script_path_hash(self, input_index, hash_type, leaf_hash):
        return tagged_hash(
            "TapSighash", self.signature_msg(input_index, hash_type, leaf_hash)
        )
