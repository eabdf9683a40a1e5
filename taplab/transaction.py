"""
Operations on the transaction as a whole: recording it once broadcast, and its
locktime and fee.
"""

from loguru import logger

from taplab.errors import InvalidValueError
from taplab.ledger import Input, LedgerState, Utxo
from taplab.tx import MAX_MONEY, OutPoint, TxOut


def finalize_transaction(state: LedgerState, txid: str) -> None:
    """Record the transaction with the given id as broadcast.

    The coins spent by the inputs are forgotten, the outputs become new coins and the
    first of them is staged as input #0 of the next transaction.
    """
    spent = {inp.utxo.outpoint for inp in state.inputs.values()}
    state.utxos = [utxo for utxo in state.utxos if utxo.outpoint not in spent]

    produced = []
    for index in sorted(state.outputs):
        output = state.outputs[index]
        if output.value == 0:
            logger.warning("Output #{} has no value, was the transaction assembled?", index)
        utxo = Utxo(
            descriptor=output.descriptor,
            outpoint=OutPoint(txid, index),
            output=TxOut(output.value, bytes(output.descriptor.script_pubkey)),
        )
        produced.append(utxo)
        if utxo not in state.utxos:
            logger.info("New UTXO #{}: {}", len(state.utxos), utxo)
            state.utxos.append(utxo)

    state.inputs.clear()
    state.outputs.clear()
    if produced:
        state.inputs[0] = Input(produced[0])


def update_locktime(state: LedgerState, value: int) -> None:
    """Set the absolute locktime: a block height below 500000000, a UNIX time above."""
    if not 0 <= value <= 0xFFFFFFFF:
        raise InvalidValueError(f"Locktime {value} does not fit in 32 bits")
    state.locktime = value
    if not state.locktime_enabled():
        logger.warning("Locktime is not enforced: all the inputs are final")


def update_fee(state: LedgerState, value: int) -> None:
    if not 0 <= value <= MAX_MONEY:
        raise InvalidValueError(f"Fee {value} is not between 0 and {MAX_MONEY} sat")
    state.fee = value
