"""
taplab CLI - Build, sign and record Taproot transactions against a local ledger.

Every command loads the ledger file, runs a single operation and writes the ledger
back only if the operation succeeded.
"""

from __future__ import annotations

import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from loguru import logger

from taplab.config import Settings, get_settings
from taplab.descriptors import Descriptor
from taplab.errors import LabError
from taplab.ledger import LedgerState
from taplab.sighash import SIGHASH_TYPES
from taplab.spend import assemble
from taplab.transaction import finalize_transaction, update_fee, update_locktime
from taplab.tx import MAX_MONEY, MAX_OUTPOINT_INDEX

app = typer.Typer(
    name="taplab",
    help="Taproot transaction laboratory",
    add_completion=False,
)
key_app = typer.Typer(help="Manage signing keys")
img_app = typer.Typer(help="Manage hash preimages")
addr_app = typer.Typer(help="Receive coins")
utxo_app = typer.Typer(help="Manage spendable coins")
in_app = typer.Typer(help="Manage transaction inputs")
out_app = typer.Typer(help="Manage transaction outputs")
app.add_typer(key_app, name="key")
app.add_typer(img_app, name="img")
app.add_typer(addr_app, name="addr")
app.add_typer(utxo_app, name="utxo")
app.add_typer(in_app, name="in")
app.add_typer(out_app, name="out")


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def parse_hex32(value: str) -> bytes:
    """A 32-byte value given in hex. A compressed public key is reduced to its x."""
    try:
        data = bytes.fromhex(value)
    except ValueError:
        raise typer.BadParameter(f"'{value}' is not hex")
    if len(data) == 33 and data[0] in (2, 3):
        data = data[1:]
    if len(data) != 32:
        raise typer.BadParameter(f"'{value}' is not 32 bytes long")
    return data


def parse_txid(value: str) -> str:
    parse_hex32(value)
    return value.lower()


def settings(ctx: typer.Context) -> Settings:
    return ctx.obj


def fail(error: LabError) -> None:
    logger.error(error.message)
    raise typer.Exit(1)


@contextmanager
def editing(ctx: typer.Context, save: bool = True) -> Iterator[LedgerState]:
    """Load the ledger, and save it back unless the operation raised."""
    path = settings(ctx).state_file
    try:
        state = LedgerState.load(path)
        yield state
        if save:
            state.save(path)
    except LabError as e:
        fail(e)


@app.callback()
def main_callback(
    ctx: typer.Context,
    state_file: Optional[str] = typer.Option(
        None, "--state-file", "-f", help="Path to the ledger file"
    ),
    network: Optional[str] = typer.Option(
        None, "--network", "-n", help="bitcoin | testnet | signet | regtest"
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Taproot transaction laboratory."""
    overrides = {
        name: value
        for name, value in (
            ("state_file", state_file),
            ("network", network),
            ("log_level", log_level),
        )
        if value is not None
    }
    config = get_settings()
    if overrides:
        config = Settings(**{**config.model_dump(), **overrides})
    setup_logging(config.log_level)
    ctx.obj = config


@app.command()
def init(ctx: typer.Context) -> None:
    """Create an empty ledger file."""
    path = settings(ctx).state_file
    try:
        LedgerState().save(path, create_new=True)
    except LabError as e:
        fail(e)
    typer.echo(f"Created {path}")


@app.command("print")
def print_state(ctx: typer.Context) -> None:
    """Show the whole ledger."""
    with editing(ctx, save=False) as state:
        typer.echo(state.describe(settings(ctx).network))


# Keys


@key_app.command("gen")
def key_gen(ctx: typer.Context, number: int = typer.Argument(1, min=1)) -> None:
    """Generate fresh keys, disabled for spending."""
    with editing(ctx) as state:
        for pair in state.generate_keys(number):
            typer.echo(pair.identity.hex())


@key_app.command("toggle")
def key_toggle(ctx: typer.Context, xonly: str) -> None:
    with editing(ctx) as state:
        status = state.toggle_key(parse_hex32(xonly))
        typer.echo(status.value)


@key_app.command("en")
def key_enable(ctx: typer.Context, xonly: str) -> None:
    with editing(ctx) as state:
        state.enable_key(parse_hex32(xonly))


@key_app.command("dis")
def key_disable(ctx: typer.Context, xonly: str) -> None:
    with editing(ctx) as state:
        state.disable_key(parse_hex32(xonly))


@key_app.command("del")
def key_delete(ctx: typer.Context, xonly: str) -> None:
    with editing(ctx) as state:
        state.delete_key(parse_hex32(xonly))


# Images


@img_app.command("gen")
def img_gen(ctx: typer.Context, number: int = typer.Argument(1, min=1)) -> None:
    """Generate fresh preimages, disabled for spending. Prints their images."""
    with editing(ctx) as state:
        for pair in state.generate_images(number):
            typer.echo(pair.identity.hex())


@img_app.command("toggle")
def img_toggle(ctx: typer.Context, image: str) -> None:
    with editing(ctx) as state:
        status = state.toggle_image(parse_hex32(image))
        typer.echo(status.value)


@img_app.command("en")
def img_enable(ctx: typer.Context, image: str) -> None:
    with editing(ctx) as state:
        state.enable_image(parse_hex32(image))


@img_app.command("dis")
def img_disable(ctx: typer.Context, image: str) -> None:
    with editing(ctx) as state:
        state.disable_image(parse_hex32(image))


@img_app.command("del")
def img_delete(ctx: typer.Context, image: str) -> None:
    with editing(ctx) as state:
        state.delete_image(parse_hex32(image))


# Funding


@addr_app.command("set")
def addr_set(ctx: typer.Context, descriptor: str) -> None:
    """Compile a policy and wait for funds on its address."""
    with editing(ctx) as state:
        typer.echo(state.set_address(Descriptor.from_str(descriptor), settings(ctx).network))


@addr_app.command("utxo")
def addr_utxo(
    ctx: typer.Context,
    txid: str,
    vout: int = typer.Argument(..., min=0, max=MAX_OUTPOINT_INDEX),
    value: int = typer.Argument(..., min=0, max=MAX_MONEY, help="Value in satoshis"),
    height: Optional[int] = typer.Option(
        None, "--height", min=0, help="Confirmation height"
    ),
) -> None:
    """Record the funding of the inbound address."""
    with editing(ctx) as state:
        state.into_utxo(parse_txid(txid), vout, value, height)


@utxo_app.command("list")
def utxo_list(ctx: typer.Context) -> None:
    with editing(ctx, save=False) as state:
        for i, utxo in enumerate(state.utxos):
            typer.echo(f"{i}: {utxo}")


@utxo_app.command("del")
def utxo_delete(ctx: typer.Context, index: int) -> None:
    with editing(ctx) as state:
        state.delete_utxo(index)


@utxo_app.command("height")
def utxo_height(
    ctx: typer.Context, index: int, height: int = typer.Argument(..., min=0)
) -> None:
    """Record the height at which a coin confirmed."""
    with editing(ctx) as state:
        state.set_utxo_height(index, height)


# Inputs


@in_app.command("new")
def input_new(
    ctx: typer.Context,
    index: int = typer.Argument(..., min=0),
    utxo: int = typer.Argument(..., min=0),
) -> None:
    """Spend the UTXO at the given index as input #INDEX."""
    with editing(ctx) as state:
        state.add_input(index, utxo)


@in_app.command("del")
def input_delete(ctx: typer.Context, index: int) -> None:
    with editing(ctx) as state:
        state.delete_input(index)


@in_app.command("seq")
def input_sequence(
    ctx: typer.Context,
    index: int,
    blocks: Optional[int] = typer.Option(None, "--blocks", min=0, max=0xFFFF),
    time: Optional[int] = typer.Option(
        None, "--time", min=0, max=0xFFFF, help="In units of 512 seconds"
    ),
    disable: bool = typer.Option(False, "--disable"),
) -> None:
    """Set the relative timelock of an input."""
    if sum((blocks is not None, time is not None, disable)) != 1:
        raise typer.BadParameter("Exactly one of --blocks, --time or --disable is needed")
    with editing(ctx) as state:
        if blocks is not None:
            state.set_relative_height(index, blocks)
        elif time is not None:
            state.set_relative_time(index, time)
        else:
            state.disable_relative(index)


# Outputs


@out_app.command("new")
def output_new(
    ctx: typer.Context,
    index: int = typer.Argument(..., min=0),
    descriptor: str = typer.Argument(...),
    value: int = typer.Argument(
        0, min=0, max=MAX_MONEY, help="0 to receive the remaining funds"
    ),
) -> None:
    """Pay to a policy at output #INDEX."""
    with editing(ctx) as state:
        state.add_output(index, Descriptor.from_str(descriptor), value)


@out_app.command("del")
def output_delete(ctx: typer.Context, index: int) -> None:
    with editing(ctx) as state:
        state.delete_output(index)


# Transaction


@app.command()
def locktime(
    ctx: typer.Context, value: int = typer.Argument(..., min=0, max=0xFFFFFFFF)
) -> None:
    """Set the absolute locktime: a height below 500000000, a UNIX time above."""
    with editing(ctx) as state:
        update_locktime(state, value)


@app.command()
def fee(
    ctx: typer.Context, value: int = typer.Argument(..., min=0, max=MAX_MONEY)
) -> None:
    """Set the fee in satoshis."""
    with editing(ctx) as state:
        update_fee(state, value)


@app.command()
def spend(ctx: typer.Context) -> None:
    """Sign the transaction, print it as hex along with its fee rate."""
    with editing(ctx) as state:
        raw_tx, fee_rate = assemble(state, SIGHASH_TYPES[settings(ctx).sighash_type])
        typer.echo(raw_tx)
        typer.echo(f"{fee_rate:.2f} sat/vB")


@app.command()
def final(ctx: typer.Context, txid: str) -> None:
    """Record the transaction as broadcast under the given txid."""
    with editing(ctx) as state:
        finalize_transaction(state, parse_txid(txid))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
