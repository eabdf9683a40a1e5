"""
The ledger: secrets, coins and the transaction being built.

The whole state is loaded from and saved to a single JSON file around each command.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

import coincurve
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

from taplab.descriptors import Descriptor
from taplab.errors import (
    DoubleSpendError,
    DuplicateSecretError,
    InvalidValueError,
    LabError,
    MissingAddressError,
    MissingInputError,
    MissingOutputError,
    MissingUtxoError,
    OneZeroOutputError,
    StateFileError,
    UnknownImageError,
    UnknownKeyError,
)
from taplab.tx import MAX_MONEY, MAX_OUTPOINT_INDEX, SEQUENCE_FINAL, OutPoint, TxOut

from .secrets import ImagePair, KeyPair, SecretMap, Status


# See BIP68.
SEQUENCE_LOCKTIME_TYPE_FLAG = 1 << 22
MAX_RELATIVE_LOCK = 0xFFFF


def check_value(value: int) -> None:
    if not 0 <= value <= MAX_MONEY:
        raise InvalidValueError(f"Value {value} is not between 0 and {MAX_MONEY} sat")


def check_relative_lock(value: int) -> None:
    if not 0 <= value <= MAX_RELATIVE_LOCK:
        raise InvalidValueError(
            f"Relative lock {value} is not between 0 and {MAX_RELATIVE_LOCK}"
        )


@dataclass(frozen=True)
class Utxo:
    """A coin we can spend."""

    descriptor: Descriptor
    outpoint: OutPoint
    output: TxOut
    # Confirmation height, if known.
    height: Optional[int] = None

    def __str__(self) -> str:
        height = "" if self.height is None else f" (height {self.height})"
        return f"{self.descriptor} {self.outpoint} {self.output.value} sat{height}"


@dataclass
class Input:
    utxo: Utxo
    sequence: int = SEQUENCE_FINAL

    def __str__(self) -> str:
        if self.sequence == SEQUENCE_FINAL:
            return str(self.utxo)
        if self.sequence & SEQUENCE_LOCKTIME_TYPE_FLAG:
            intervals = self.sequence & MAX_RELATIVE_LOCK
            return f"{self.utxo} +{intervals * 512} seconds"
        return f"{self.utxo} +{self.sequence} blocks"


@dataclass(frozen=True)
class Output:
    # 0 means the output receives the remaining funds.
    value: int
    descriptor: Descriptor

    def __str__(self) -> str:
        return f"{self.descriptor} {self.value} sat"


class TxOutModel(BaseModel):
    value: int = Field(..., ge=0, le=MAX_MONEY)
    script_pubkey: str


class UtxoModel(BaseModel):
    descriptor: str
    outpoint: str = Field(..., pattern=r"^[0-9a-fA-F]{64}:[0-9]+$")
    output: TxOutModel
    height: Optional[int] = Field(default=None, ge=0)

    @field_validator("outpoint")
    @classmethod
    def validate_vout(cls, v: str) -> str:
        if int(v.rsplit(":", maxsplit=1)[1]) > MAX_OUTPOINT_INDEX:
            raise ValueError("Output index must fit in 32 bits")
        return v


class InputModel(BaseModel):
    utxo: UtxoModel
    sequence: int = Field(default=SEQUENCE_FINAL, ge=0, le=SEQUENCE_FINAL)


class OutputModel(BaseModel):
    value: int = Field(..., ge=0, le=MAX_MONEY)
    descriptor: str


class StateModel(BaseModel):
    """The persisted form of the ledger."""

    passive_keys: Dict[str, str] = Field(default_factory=dict)
    active_keys: Dict[str, str] = Field(default_factory=dict)
    passive_images: Dict[str, str] = Field(default_factory=dict)
    active_images: Dict[str, str] = Field(default_factory=dict)
    inbound_address: Optional[str] = None
    utxos: List[UtxoModel] = Field(default_factory=list)
    inputs: Dict[int, InputModel] = Field(default_factory=dict)
    outputs: Dict[int, OutputModel] = Field(default_factory=dict)
    locktime: int = Field(default=0, ge=0, le=0xFFFFFFFF)
    fee: int = Field(default=0, ge=0, le=MAX_MONEY)


def _utxo_to_model(utxo: Utxo) -> UtxoModel:
    return UtxoModel(
        descriptor=str(utxo.descriptor),
        outpoint=str(utxo.outpoint),
        output=TxOutModel(
            value=utxo.output.value, script_pubkey=utxo.output.script_pubkey.hex()
        ),
        height=utxo.height,
    )


def _utxo_from_model(model: UtxoModel) -> Utxo:
    return Utxo(
        descriptor=Descriptor.from_str(model.descriptor),
        outpoint=OutPoint.from_str(model.outpoint),
        output=TxOut(model.output.value, bytes.fromhex(model.output.script_pubkey)),
        height=model.height,
    )


def _load_key(pubkey_hex: str, secret_hex: str, status: Status) -> KeyPair:
    pair = KeyPair(bytes.fromhex(secret_hex), status)
    if coincurve.PublicKey(bytes.fromhex(pubkey_hex)).format() != pair.public_key:
        raise StateFileError(f"Secret does not match public key {pubkey_hex}")
    return pair


def _load_image(image_hex: str, preimage_hex: str, status: Status) -> ImagePair:
    pair = ImagePair(bytes.fromhex(preimage_hex), status)
    if pair.identity != bytes.fromhex(image_hex):
        raise StateFileError(f"Preimage does not match image {image_hex}")
    return pair


class LedgerState:
    """All the data of a ledger."""

    def __init__(self):
        self.keys = SecretMap("key", UnknownKeyError)
        self.images = SecretMap("image", UnknownImageError)
        # Descriptor of an address waiting to be funded.
        self.inbound_address: Optional[Descriptor] = None
        self.utxos: List[Utxo] = []
        self.inputs: Dict[int, Input] = {}
        self.outputs: Dict[int, Output] = {}
        # 0 for none, a block height below 500000000, a UNIX timestamp otherwise.
        self.locktime: int = 0
        self.fee: int = 0

    @classmethod
    def load(cls, path: Union[str, Path]) -> LedgerState:
        """Read the ledger from a JSON file."""
        try:
            with open(path, "r") as f:
                model = StateModel.model_validate_json(f.read())
        except OSError as e:
            raise StateFileError(f"Could not read state file '{path}': {e}")
        except ValidationError as e:
            raise StateFileError(f"Malformed state file '{path}': {e}")

        try:
            return cls.from_model(model)
        except DuplicateSecretError:
            raise
        except (LabError, ValueError) as e:
            message = e.message if isinstance(e, LabError) else str(e)
            raise StateFileError(f"Invalid state file '{path}': {message}")

    @classmethod
    def from_model(cls, model: StateModel) -> LedgerState:
        state = cls()
        for status, keys in (
            (Status.PASSIVE, model.passive_keys),
            (Status.ACTIVE, model.active_keys),
        ):
            for pubkey_hex, secret_hex in keys.items():
                state.keys.add(_load_key(pubkey_hex, secret_hex, status))
        for status, images in (
            (Status.PASSIVE, model.passive_images),
            (Status.ACTIVE, model.active_images),
        ):
            for image_hex, preimage_hex in images.items():
                state.images.add(_load_image(image_hex, preimage_hex, status))

        if model.inbound_address is not None:
            state.inbound_address = Descriptor.from_str(model.inbound_address)
        state.utxos = [_utxo_from_model(u) for u in model.utxos]
        state.inputs = {
            i: Input(_utxo_from_model(inp.utxo), inp.sequence)
            for i, inp in model.inputs.items()
        }
        state.outputs = {
            i: Output(out.value, Descriptor.from_str(out.descriptor))
            for i, out in model.outputs.items()
        }
        state.locktime = model.locktime
        state.fee = model.fee
        return state

    def to_model(self) -> StateModel:
        def keys(status):
            return {
                p.public_key.hex(): p.secret.hex() for p in self.keys.with_status(status)
            }

        def images(status):
            return {
                p.identity.hex(): p.preimage.hex()
                for p in self.images.with_status(status)
            }

        return StateModel(
            passive_keys=keys(Status.PASSIVE),
            active_keys=keys(Status.ACTIVE),
            passive_images=images(Status.PASSIVE),
            active_images=images(Status.ACTIVE),
            inbound_address=None
            if self.inbound_address is None
            else str(self.inbound_address),
            utxos=[_utxo_to_model(u) for u in self.utxos],
            inputs={
                i: InputModel(utxo=_utxo_to_model(inp.utxo), sequence=inp.sequence)
                for i, inp in sorted(self.inputs.items())
            },
            outputs={
                i: OutputModel(value=out.value, descriptor=str(out.descriptor))
                for i, out in sorted(self.outputs.items())
            },
            locktime=self.locktime,
            fee=self.fee,
        )

    def save(self, path: Union[str, Path], create_new: bool = False) -> None:
        """Write the whole ledger to a JSON file.

        :param create_new: fail if the file already exists instead of overwriting it.
        """
        data = self.to_model().model_dump_json(indent=2)
        try:
            with open(path, "x" if create_new else "w") as f:
                f.write(data)
        except FileExistsError:
            raise StateFileError(f"State file '{path}' already exists")
        except OSError as e:
            raise StateFileError(f"Could not write state file '{path}': {e}")
        logger.debug("Saved state to {}", path)

    def locktime_enabled(self) -> bool:
        """Whether the transaction's locktime is enforced, ie any input isn't final."""
        return any(inp.sequence < SEQUENCE_FINAL for inp in self.inputs.values())

    def describe(self, network: str) -> str:
        """A human readable summary of the ledger."""
        lines = ["Keys (xonly: WIF) [disabled for spending]:"]
        lines += [
            f"  {p.identity.hex()}: {p.wif(network)}"
            for p in self.keys.with_status(Status.PASSIVE)
        ]
        lines.append("Keys (xonly: WIF) [enabled]:")
        lines += [
            f"  {p.identity.hex()}: {p.wif(network)}"
            for p in self.keys.with_status(Status.ACTIVE)
        ]
        lines.append("Images (image: preimage) [disabled for spending]:")
        lines += [
            f"  {p.identity.hex()}: {p.preimage.hex()}"
            for p in self.images.with_status(Status.PASSIVE)
        ]
        lines.append("Images (image: preimage) [enabled]:")
        lines += [
            f"  {p.identity.hex()}: {p.preimage.hex()}"
            for p in self.images.with_status(Status.ACTIVE)
        ]
        if self.inbound_address is not None:
            lines.append(
                f"Inbound address: {self.inbound_address.address(network)}"
                f" ({self.inbound_address})"
            )
        lines.append("UTXOs:")
        lines += [f"  {i}: {utxo}" for i, utxo in enumerate(self.utxos)]
        lines.append("Inputs:")
        lines += [f"  {i}: {self.inputs[i]}" for i in sorted(self.inputs)]
        lines.append("Outputs:")
        lines += [f"  {i}: {self.outputs[i]}" for i in sorted(self.outputs)]
        unit = "blocks" if self.locktime < 500000000 else "seconds"
        enabled = "enabled" if self.locktime_enabled() else "disabled"
        lines.append(f"Locktime: ={self.locktime} {unit} [{enabled}]")
        lines.append(f"Fee: {self.fee} sat")
        return "\n".join(lines)

    # Keys

    def generate_keys(self, number: int) -> List[KeyPair]:
        pairs = [KeyPair.generate() for _ in range(number)]
        for pair in pairs:
            self.keys.add(pair)
            logger.info("New key: {}", pair.identity.hex())
        return pairs

    def toggle_key(self, xonly: bytes) -> Status:
        return self.keys.toggle(xonly)

    def enable_key(self, xonly: bytes) -> None:
        self.keys.set_status(xonly, Status.ACTIVE)

    def disable_key(self, xonly: bytes) -> None:
        self.keys.set_status(xonly, Status.PASSIVE)

    def delete_key(self, xonly: bytes) -> KeyPair:
        return self.keys.delete(xonly)

    # Images

    def generate_images(self, number: int) -> List[ImagePair]:
        pairs = [ImagePair.generate() for _ in range(number)]
        for pair in pairs:
            self.images.add(pair)
            logger.info("New image: {}", pair.identity.hex())
        return pairs

    def toggle_image(self, image: bytes) -> Status:
        return self.images.toggle(image)

    def enable_image(self, image: bytes) -> None:
        self.images.set_status(image, Status.ACTIVE)

    def disable_image(self, image: bytes) -> None:
        self.images.set_status(image, Status.PASSIVE)

    def delete_image(self, image: bytes) -> ImagePair:
        return self.images.delete(image)

    # Funding

    def set_address(self, descriptor: Descriptor, network: str) -> str:
        """Stage a descriptor to be funded, returns its address."""
        address = descriptor.address(network)
        self.inbound_address = descriptor
        logger.info("Waiting for funds on {}", address)
        return address

    def into_utxo(
        self, txid: str, vout: int, value: int, height: Optional[int] = None
    ) -> Utxo:
        """Record the funding of the staged address as a new UTXO."""
        if self.inbound_address is None:
            raise MissingAddressError()
        if not 0 <= vout <= MAX_OUTPOINT_INDEX:
            raise InvalidValueError(f"Output index {vout} does not fit in 32 bits")
        check_value(value)
        if height is not None and height < 0:
            raise InvalidValueError(f"Negative height {height}")
        descriptor = self.inbound_address
        utxo = Utxo(
            descriptor=descriptor,
            outpoint=OutPoint(txid, vout),
            output=TxOut(value, bytes(descriptor.script_pubkey)),
            height=height,
        )
        self.inbound_address = None
        if utxo not in self.utxos:
            logger.info("New UTXO #{}: {}", len(self.utxos), utxo)
            self.utxos.append(utxo)
        return utxo

    # UTXOs

    def _utxo(self, index: int) -> Utxo:
        if not 0 <= index < len(self.utxos):
            raise MissingUtxoError(f"No UTXO at index {index}")
        return self.utxos[index]

    def delete_utxo(self, index: int) -> Utxo:
        self._utxo(index)
        return self.utxos.pop(index)

    def set_utxo_height(self, index: int, height: int) -> Utxo:
        """Record the confirmation height of a UTXO, and of the inputs spending it."""
        if height < 0:
            raise InvalidValueError(f"Negative height {height}")
        utxo = dataclasses.replace(self._utxo(index), height=height)
        for inp in self.inputs.values():
            if inp.utxo.outpoint == utxo.outpoint:
                inp.utxo = utxo
        self.utxos[index] = utxo
        return utxo

    # Inputs

    def _input(self, index: int) -> Input:
        if index not in self.inputs:
            raise MissingInputError(f"No input at index {index}")
        return self.inputs[index]

    def add_input(self, index: int, utxo_index: int) -> Optional[Input]:
        """Spend the given UTXO at the given input index. Returns the replaced input."""
        utxo = self._utxo(utxo_index)
        for i, inp in self.inputs.items():
            if i != index and inp.utxo.outpoint == utxo.outpoint:
                raise DoubleSpendError(
                    f"UTXO {utxo.outpoint} is already spent by input #{i}"
                )
        old = self.inputs.get(index)
        self.inputs[index] = Input(utxo)
        logger.info("New input #{}: {}", index, self.inputs[index])
        return old

    def delete_input(self, index: int) -> Input:
        self._input(index)
        return self.inputs.pop(index)

    def set_relative_height(self, index: int, blocks: int) -> None:
        check_relative_lock(blocks)
        self._input(index).sequence = blocks

    def set_relative_time(self, index: int, intervals: int) -> None:
        """Set a relative timelock, in units of 512 seconds."""
        check_relative_lock(intervals)
        self._input(index).sequence = SEQUENCE_LOCKTIME_TYPE_FLAG | intervals

    def disable_relative(self, index: int) -> None:
        self._input(index).sequence = SEQUENCE_FINAL

    # Outputs

    def add_output(
        self, index: int, descriptor: Descriptor, value: int = 0
    ) -> Optional[Output]:
        """Pay to the given descriptor at the given output index. Returns the replaced
        output.

        :param value: 0 for the output receiving the remaining funds.
        """
        check_value(value)
        if value == 0 and any(
            i != index and out.value == 0 for i, out in self.outputs.items()
        ):
            raise OneZeroOutputError()
        old = self.outputs.get(index)
        self.outputs[index] = Output(value, descriptor)
        logger.info("New output #{}: {}", index, self.outputs[index])
        return old

    def delete_output(self, index: int) -> Output:
        if index not in self.outputs:
            raise MissingOutputError(f"No output at index {index}")
        return self.outputs.pop(index)
