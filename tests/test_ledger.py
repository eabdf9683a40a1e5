import json

import coincurve
import pytest

from taplab.descriptors import Descriptor
from taplab.errors import (
    DoubleSpendError,
    DuplicateSecretError,
    InvalidValueError,
    MissingAddressError,
    MissingInputError,
    MissingOutputError,
    MissingUtxoError,
    OneZeroOutputError,
    StateFileError,
    UnknownImageError,
    UnknownKeyError,
)
from taplab.ledger import ImagePair, KeyPair, LedgerState, Status
from taplab.tx import MAX_MONEY, SEQUENCE_FINAL, OutPoint
from taplab.utils.hashes import sha256


SECRET = bytes.fromhex("03" * 32)
XONLY = coincurve.PrivateKey(SECRET).public_key.format()[1:]
OTHER_XONLY = bytes.fromhex(
    "cc8a4bc64d897bddc5fbc2f670f7a8ba0b386779106cf1223c6fc5d7cd6fc115"
)
TXID_A = "aa" * 32


def descriptor(xonly=XONLY):
    return Descriptor.from_str(f"tr({xonly.hex()})")


def funded_state(values=(100_000,)):
    """A ledger holding an active key and a coin of each value, paying to this key."""
    state = LedgerState()
    state.keys.add(KeyPair(SECRET, Status.ACTIVE))
    for i, value in enumerate(values):
        state.set_address(descriptor(), "regtest")
        state.into_utxo(f"{i:064x}", 0, value)
    return state


def test_key_pairs():
    pair = KeyPair.generate()
    assert pair.status is Status.PASSIVE
    assert pair.public_key[0] == 0x02
    assert pair.identity == pair.public_key[1:]

    one = KeyPair(bytes(31) + b"\x01")
    assert one.wif("bitcoin") == "KwDiBf89QgGbjEhKnhXJuH7LrciVrZi3qYjgd9M7rFU73sVHnoWn"
    assert one.wif("regtest").startswith("c")

    image = ImagePair(b"\x01" * 32)
    assert image.identity == sha256(b"\x01" * 32)
    assert ImagePair.generate().identity != ImagePair.generate().identity


def test_toggle_is_an_involution():
    state = LedgerState()
    (pair,) = state.generate_keys(1)
    assert state.keys.active() == {}

    assert state.toggle_key(pair.identity) is Status.ACTIVE
    assert state.keys.active() == {pair.identity: pair.secret}
    assert state.toggle_key(pair.identity) is Status.PASSIVE
    assert state.keys.active() == {}
    assert len(state.keys) == 1

    (image,) = state.generate_images(1)
    state.toggle_image(image.identity)
    state.toggle_image(image.identity)
    assert state.images.get(image.identity).status is Status.PASSIVE


def test_enable_disable():
    state = LedgerState()
    pairs = state.generate_keys(2)
    state.enable_key(pairs[0].identity)
    state.enable_key(pairs[0].identity)
    assert state.keys.with_status(Status.ACTIVE) == [pairs[0]]
    assert state.keys.with_status(Status.PASSIVE) == [pairs[1]]
    state.disable_key(pairs[0].identity)
    assert state.keys.active() == {}

    images = state.generate_images(3)
    state.enable_image(images[1].identity)
    assert state.images.active() == {images[1].identity: images[1].preimage}
    state.disable_image(images[1].identity)
    assert state.images.active() == {}


def test_unknown_secrets():
    state = LedgerState()
    with pytest.raises(UnknownKeyError):
        state.toggle_key(XONLY)
    with pytest.raises(UnknownKeyError):
        state.delete_key(XONLY)
    with pytest.raises(UnknownKeyError):
        state.enable_key(XONLY)
    with pytest.raises(UnknownImageError):
        state.delete_image(sha256(b""))
    with pytest.raises(UnknownImageError):
        state.disable_image(sha256(b""))

    state.keys.add(KeyPair(SECRET))
    with pytest.raises(DuplicateSecretError):
        state.keys.add(KeyPair(SECRET, Status.ACTIVE))
    assert state.delete_key(XONLY).secret == SECRET
    assert XONLY not in state.keys


def test_funding():
    state = LedgerState()
    with pytest.raises(MissingAddressError):
        state.into_utxo(TXID_A, 0, 1_000)

    address = state.set_address(descriptor(), "regtest")
    assert address == descriptor().address("regtest")
    utxo = state.into_utxo(TXID_A, 1, 1_000, height=42)
    assert state.inbound_address is None
    assert state.utxos == [utxo]
    assert utxo.outpoint == OutPoint(TXID_A, 1)
    assert utxo.output.value == 1_000
    assert utxo.output.script_pubkey == bytes(descriptor().script_pubkey)
    assert utxo.height == 42

    # Values and indexes must fit in the transaction serialization.
    for vout, value in ((2**32, 1_000), (-1, 1_000), (1, MAX_MONEY + 1), (1, -1)):
        state.set_address(descriptor(), "regtest")
        with pytest.raises(InvalidValueError):
            state.into_utxo(TXID_A, vout, value)
        assert state.inbound_address == descriptor()
    assert len(state.utxos) == 1
    state.into_utxo("bb" * 32, 0xFFFFFFFF, MAX_MONEY)
    state.delete_utxo(1)

    # Recording the same coin twice is a no-op.
    state.set_address(descriptor(), "regtest")
    state.into_utxo(TXID_A, 1, 1_000, height=42)
    assert len(state.utxos) == 1

    state.set_utxo_height(0, 50)
    assert state.utxos[0].height == 50
    with pytest.raises(InvalidValueError):
        state.set_utxo_height(0, -1)
    assert state.utxos[0].height == 50
    with pytest.raises(MissingUtxoError):
        state.set_utxo_height(1, 50)
    with pytest.raises(MissingUtxoError):
        state.delete_utxo(1)
    state.delete_utxo(0)
    assert state.utxos == []


def test_inputs():
    state = funded_state((1_000, 2_000))
    assert state.add_input(0, 0) is None
    assert state.inputs[0].sequence == SEQUENCE_FINAL
    assert not state.locktime_enabled()

    # A coin can't be spent twice.
    with pytest.raises(DoubleSpendError):
        state.add_input(1, 0)
    # But an input can be replaced, even by itself.
    assert state.add_input(0, 0).utxo == state.utxos[0]
    state.add_input(1, 1)
    with pytest.raises(DoubleSpendError):
        state.add_input(0, 1)
    with pytest.raises(MissingUtxoError):
        state.add_input(2, 5)

    state.set_relative_height(1, 10)
    assert state.inputs[1].sequence == 10
    assert state.locktime_enabled()
    state.set_relative_time(1, 10)
    assert state.inputs[1].sequence == (1 << 22) | 10
    for bad in (-1, 0xFFFF + 1):
        with pytest.raises(InvalidValueError, match="Relative lock"):
            state.set_relative_height(1, bad)
        with pytest.raises(InvalidValueError, match="Relative lock"):
            state.set_relative_time(1, bad)
    assert state.inputs[1].sequence == (1 << 22) | 10
    state.disable_relative(1)
    assert state.inputs[1].sequence == SEQUENCE_FINAL
    assert not state.locktime_enabled()

    # The height of a coin is propagated to the inputs spending it.
    state.set_utxo_height(1, 7)
    assert state.inputs[1].utxo.height == 7

    with pytest.raises(MissingInputError):
        state.set_relative_height(2, 10)
    with pytest.raises(MissingInputError):
        state.delete_input(2)
    state.delete_input(1)
    assert list(state.inputs) == [0]


def test_outputs():
    state = LedgerState()
    assert state.add_output(0, descriptor(), 0) is None
    state.add_output(1, descriptor(OTHER_XONLY), 1_000)
    with pytest.raises(OneZeroOutputError):
        state.add_output(2, descriptor(OTHER_XONLY), 0)
    with pytest.raises(OneZeroOutputError):
        state.add_output(1, descriptor(OTHER_XONLY))

    with pytest.raises(InvalidValueError):
        state.add_output(2, descriptor(), -1)
    with pytest.raises(InvalidValueError):
        state.add_output(2, descriptor(), MAX_MONEY + 1)
    assert 2 not in state.outputs

    # The zero-value output itself may be replaced.
    old = state.add_output(0, descriptor(OTHER_XONLY))
    assert old.descriptor == descriptor()
    assert state.outputs[0].value == 0

    with pytest.raises(MissingOutputError):
        state.delete_output(2)
    assert state.delete_output(0).value == 0
    state.add_output(2, descriptor(), 0)


def test_persistence(tmp_path):
    path = tmp_path / "state.json"
    state = funded_state((1_000, 2_000))
    state.generate_keys(1)
    state.generate_images(2)
    state.enable_image(state.images.with_status(Status.PASSIVE)[0].identity)
    state.set_address(descriptor(OTHER_XONLY), "regtest")
    state.set_utxo_height(1, 12)
    state.add_input(0, 1)
    state.set_relative_height(0, 3)
    state.add_output(0, Descriptor.from_str(f"prog(pk({XONLY.hex()}))"), 0)
    state.locktime = 800_000
    state.fee = 321
    state.save(path, create_new=True)

    loaded = LedgerState.load(path)
    assert loaded.to_model() == state.to_model()
    assert loaded.inbound_address == descriptor(OTHER_XONLY)
    assert loaded.inputs[0].utxo.height == 12
    assert loaded.keys.active() == state.keys.active()
    assert loaded.images.active() == state.images.active()

    # Creating a new ledger doesn't overwrite an existing one.
    content = path.read_text()
    with pytest.raises(StateFileError, match="already exists"):
        LedgerState().save(path, create_new=True)
    assert path.read_text() == content

    # Saving an existing one does.
    LedgerState().save(path)
    assert LedgerState.load(path).utxos == []


def test_load_errors(tmp_path):
    with pytest.raises(StateFileError):
        LedgerState.load(tmp_path / "missing.json")

    path = tmp_path / "state.json"
    path.write_text("{not json")
    with pytest.raises(StateFileError):
        LedgerState.load(path)

    path.write_text(json.dumps({"fee": -1}))
    with pytest.raises(StateFileError):
        LedgerState.load(path)

    path.write_text(json.dumps({"inbound_address": "wsh(0)"}))
    with pytest.raises(StateFileError):
        LedgerState.load(path)

    # A preimage of the wrong size
    path.write_text(json.dumps({"passive_images": {"00" * 32: "11" * 31}}))
    with pytest.raises(StateFileError, match="32 bytes"):
        LedgerState.load(path)

    # Out of range values
    utxo = {
        "descriptor": str(descriptor()),
        "outpoint": f"{TXID_A}:{2**32}",
        "output": {"value": 1_000, "script_pubkey": "51"},
    }
    path.write_text(json.dumps({"utxos": [utxo]}))
    with pytest.raises(StateFileError, match="32 bits"):
        LedgerState.load(path)
    utxo["outpoint"] = f"{TXID_A}:0"
    utxo["output"]["value"] = MAX_MONEY + 1
    path.write_text(json.dumps({"utxos": [utxo]}))
    with pytest.raises(StateFileError):
        LedgerState.load(path)
    output = {"value": 2**63, "descriptor": str(descriptor())}
    path.write_text(json.dumps({"outputs": {"0": output}}))
    with pytest.raises(StateFileError):
        LedgerState.load(path)

    # A secret that doesn't match its public key
    path.write_text(
        json.dumps({"active_keys": {"02" + OTHER_XONLY.hex(): SECRET.hex()}})
    )
    with pytest.raises(StateFileError, match="does not match"):
        LedgerState.load(path)

    # A key in both partitions
    pubkey = coincurve.PrivateKey(SECRET).public_key.format().hex()
    path.write_text(
        json.dumps(
            {
                "active_keys": {pubkey: SECRET.hex()},
                "passive_keys": {pubkey: SECRET.hex()},
            }
        )
    )
    with pytest.raises(DuplicateSecretError):
        LedgerState.load(path)

    path.write_text(json.dumps({}))
    assert len(LedgerState.load(path).keys) == 0


def test_describe():
    state = funded_state()
    state.add_input(0, 0)
    state.add_output(0, descriptor(OTHER_XONLY))
    text = state.describe("regtest")
    assert XONLY.hex() in text
    assert "UTXOs:" in text
    assert "Locktime: =0 blocks [disabled]" in text
    assert "Fee: 0 sat" in text
