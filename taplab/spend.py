"""
Assembling and signing the transaction described by the ledger.
"""

from typing import Tuple

from loguru import logger

from taplab.errors import (
    MissingInputError,
    MissingOutputError,
    NotEnoughFundsError,
    OneZeroOutputError,
)
from taplab.ledger import LedgerState, Output
from taplab.satisfier import LedgerSatisfier
from taplab.sighash import SIGHASH_DEFAULT, SighashCache
from taplab.tx import Transaction, TxIn, TxOut


def check_dense(indices, missing_error):
    """The i-th smallest index must be i."""
    for expected, index in enumerate(sorted(indices)):
        if expected != index:
            raise missing_error(f"Missing index {expected}")


def assemble(state: LedgerState, sighash_type: int = SIGHASH_DEFAULT) -> Tuple[str, float]:
    """Build and sign the transaction spending the staged inputs to the staged outputs.

    The value of the output receiving the remaining funds, if any, is written back to
    the state once the transaction is complete.

    :returns: the raw transaction as hex, and its fee rate in sat/vB.
    """
    check_dense(state.inputs, MissingInputError)
    check_dense(state.outputs, MissingOutputError)

    # Unsigned inputs
    inputs = [state.inputs[i] for i in sorted(state.inputs)]
    txins = [TxIn(inp.utxo.outpoint, inp.sequence) for inp in inputs]
    spent_outputs = [inp.utxo.output for inp in inputs]
    input_funds = sum(txout.value for txout in spent_outputs)

    # Outputs. The fee is implicit.
    outputs = [state.outputs[i] for i in sorted(state.outputs)]
    output_funds = sum(out.value for out in outputs) + state.fee

    # Remaining funds
    remaining = [i for i, out in enumerate(outputs) if out.value == 0]
    if len(remaining) > 1:
        raise OneZeroOutputError()
    if input_funds < output_funds:
        raise NotEnoughFundsError(
            f"Not enough funds: {input_funds} sat in, {output_funds} sat out including fee"
        )
    if remaining:
        outputs[remaining[0]] = Output(
            input_funds - output_funds, outputs[remaining[0]].descriptor
        )
        logger.debug(
            "Output #{} receives the remaining {} sat",
            remaining[0],
            outputs[remaining[0]].value,
        )

    tx = Transaction(
        version=2,
        inputs=txins,
        outputs=[TxOut(out.value, bytes(out.descriptor.script_pubkey)) for out in outputs],
        locktime=state.locktime,
    )

    # Sign every input, sharing the transaction-wide digests.
    cache = SighashCache(tx, spent_outputs)
    active_keys, active_images = state.keys.active(), state.images.active()
    for index, inp in enumerate(inputs):
        descriptor = inp.utxo.descriptor
        satisfier = LedgerSatisfier(
            active_keys,
            active_images,
            descriptor.spend_info,
            index,
            cache,
            sighash_type,
            utxo_height=inp.utxo.height,
        )
        tx.inputs[index].witness = descriptor.satisfy(satisfier)

    if remaining:
        state.outputs[remaining[0]] = outputs[remaining[0]]

    fee_rate = state.fee / tx.vsize()
    logger.debug("Transaction {} weighs {} WU", tx.txid(), tx.weight())
    return tx.serialize().hex(), fee_rate
