import coincurve
import pytest

from taplab.descriptors import Descriptor
from taplab.descriptors.utils import SpendInfo, tapleaf_hash
from taplab.miniscript import LeafSatisfier
from taplab.satisfier import LedgerSatisfier, tweak_secret
from taplab.sighash import (
    SIGHASH_ALL,
    SIGHASH_ANYONECANPAY,
    SIGHASH_DEFAULT,
    SIGHASH_NONE,
    SIGHASH_SINGLE,
    SighashCache,
)
from taplab.tx import SEQUENCE_FINAL, OutPoint, Transaction, TxIn, TxOut
from taplab.utils.hashes import sha256


SECRET_A = bytes.fromhex("01" * 32)
SECRET_B = bytes.fromhex("02" * 32)
PREIMAGE = b"\x07" * 32
IMAGE = sha256(PREIMAGE)
TXID = "652c60ec08280356e8c78be9bf4d44276acef3189ba8223e426b757aeabd66ad"


def secret_xonly(secret):
    return coincurve.PrivateKey(secret).public_key.format()[1:]


XONLY_A = secret_xonly(SECRET_A)
XONLY_B = secret_xonly(SECRET_B)


def make_satisfier(
    descriptor,
    keys=None,
    images=None,
    sequence=SEQUENCE_FINAL,
    locktime=0,
    sighash_type=SIGHASH_DEFAULT,
    utxo_height=None,
):
    spent = TxOut(100_000, bytes(descriptor.script_pubkey))
    tx = Transaction(
        inputs=[TxIn(OutPoint(TXID, 0), sequence)],
        outputs=[TxOut(99_000, bytes(descriptor.script_pubkey))],
        locktime=locktime,
    )
    cache = SighashCache(tx, [spent])
    return LedgerSatisfier(
        keys or {},
        images or {},
        descriptor.spend_info,
        0,
        cache,
        sighash_type,
        utxo_height=utxo_height,
    )


def test_tweak_secret():
    for secret in (SECRET_A, SECRET_B):
        for desc_str in (
            f"tr({secret_xonly(secret).hex()})",
            f"tr({secret_xonly(secret).hex()},pk({XONLY_B.hex()}))",
        ):
            info = Descriptor.from_str(desc_str).spend_info
            tweaked = coincurve.PrivateKey(tweak_secret(secret, info))
            assert tweaked.public_key.format()[1:] == info.output_key


def test_key_path_signature():
    desc = Descriptor.from_str(f"tr({XONLY_A.hex()})")
    satisfier = make_satisfier(desc, keys={XONLY_A: SECRET_A})
    sig = satisfier.key_path_signature()
    assert len(sig) == 64
    msg = satisfier.sighash_cache.key_path_hash(0, SIGHASH_DEFAULT)
    assert coincurve.PublicKeyXOnly(desc.spend_info.output_key).verify(sig, msg)
    assert desc.satisfy(satisfier) == [sig]

    # Any other sighash type is appended to the signature.
    satisfier = make_satisfier(desc, keys={XONLY_A: SECRET_A}, sighash_type=SIGHASH_ALL)
    sig = satisfier.key_path_signature()
    assert len(sig) == 65 and sig[-1] == SIGHASH_ALL
    msg = satisfier.sighash_cache.key_path_hash(0, SIGHASH_ALL)
    assert coincurve.PublicKeyXOnly(desc.spend_info.output_key).verify(sig[:64], msg)

    # Signing is deterministic.
    assert make_satisfier(
        desc, keys={XONLY_A: SECRET_A}
    ).key_path_signature() == make_satisfier(
        desc, keys={XONLY_A: SECRET_A}
    ).key_path_signature()

    assert make_satisfier(desc).key_path_signature() is None


def test_script_path_signature():
    desc = Descriptor.from_str(f"tr({XONLY_A.hex()},pk({XONLY_B.hex()}))")
    satisfier = make_satisfier(desc, keys={XONLY_B: SECRET_B})
    assert satisfier.key_path_signature() is None

    witness = desc.satisfy(satisfier)
    info = desc.spend_info
    assert witness[1:] == [info.leaf_script, info.control_block()]
    msg = satisfier.sighash_cache.script_path_hash(0, SIGHASH_DEFAULT, info.leaf_hash())
    assert coincurve.PublicKeyXOnly(XONLY_B).verify(witness[0], msg)

    # The leaf hash is committed to.
    assert msg != satisfier.sighash_cache.key_path_hash(0, SIGHASH_DEFAULT)
    assert satisfier.leaf_signature(XONLY_A, info.leaf_hash()) is None


def test_preimage():
    desc = Descriptor.from_str(f"tr({XONLY_A.hex()},sha256({IMAGE.hex()}))")
    assert make_satisfier(desc, images={IMAGE: PREIMAGE}).preimage(IMAGE) == PREIMAGE
    assert make_satisfier(desc).preimage(IMAGE) is None
    assert desc.satisfy(make_satisfier(desc, images={IMAGE: PREIMAGE}))[0] == PREIMAGE


def test_check_absolute():
    desc = Descriptor.from_str(f"tr({XONLY_A.hex()})")

    # A final input disables the locktime.
    assert not make_satisfier(desc, locktime=100).check_absolute(50)
    assert make_satisfier(desc, sequence=0xFFFFFFFE, locktime=100).check_absolute(50)
    assert make_satisfier(desc, sequence=0xFFFFFFFE, locktime=100).check_absolute(100)
    assert not make_satisfier(desc, sequence=0xFFFFFFFE, locktime=100).check_absolute(
        101
    )
    # Heights and times don't compare.
    assert not make_satisfier(
        desc, sequence=0xFFFFFFFE, locktime=500_000_001
    ).check_absolute(100)
    assert not make_satisfier(desc, sequence=0xFFFFFFFE, locktime=100).check_absolute(
        500_000_001
    )
    assert make_satisfier(
        desc, sequence=0xFFFFFFFE, locktime=600_000_000
    ).check_absolute(500_000_001)


def test_check_relative():
    desc = Descriptor.from_str(f"tr({XONLY_A.hex()})")

    # The coin must be confirmed.
    assert not make_satisfier(desc, sequence=10).check_relative(5)
    assert make_satisfier(desc, sequence=10, utxo_height=100).check_relative(5)
    assert make_satisfier(desc, sequence=10, utxo_height=100).check_relative(10)
    assert not make_satisfier(desc, sequence=10, utxo_height=100).check_relative(11)
    # Disabled relative timelock
    assert not make_satisfier(desc, utxo_height=100).check_relative(5)
    # Blocks and times don't compare.
    time_lock = (1 << 22) | 10
    assert not make_satisfier(desc, sequence=10, utxo_height=100).check_relative(
        time_lock
    )
    assert not make_satisfier(
        desc, sequence=time_lock, utxo_height=100
    ).check_relative(10)
    assert make_satisfier(desc, sequence=time_lock, utxo_height=100).check_relative(
        (1 << 22) | 5
    )


@pytest.mark.parametrize("satisfied", [True, False])
def test_timelocked_leaf(satisfied):
    desc = Descriptor.from_str(
        f"tr({XONLY_A.hex()},and_v(v:pk({XONLY_B.hex()}),older(144)))"
    )
    satisfier = make_satisfier(
        desc,
        keys={XONLY_B: SECRET_B},
        sequence=144 if satisfied else 143,
        utxo_height=1,
    )
    info = desc.spend_info
    witness = desc.leaf.satisfy(
        LeafSatisfier(satisfier, info.leaf_hash())
    )
    if satisfied:
        assert len(witness) == 1
    else:
        assert witness is None


# The keyPathSpending wallet vectors of BIP341.
BIP341_TX = Transaction(
    version=2,
    inputs=[
        TxIn(OutPoint(bytes.fromhex(txid)[::-1].hex(), vout), sequence)
        for txid, vout, sequence in (
            ("7de20cbff686da83a54981d2b9bab3586f4ca7e48f57f5b55963115f3b334e9c", 1, 0),
            ("d7b7cab57b1393ace2d064f4d4a2cb8af6def61273e127517d44759b6dafdd99", 0, 0xFFFFFFFF),
            ("f8e1f583384333689228c5d28eac13366be082dc57441760d957275419a41842", 0, 0xFFFFFFFF),
            ("f0689180aa63b30cb162a73c6d2a38b7eeda2a83ece74310fda0843ad604853b", 1, 0xFFFFFFFE),
            ("aa5202bdf6d8ccd2ee0f0202afbbb7461d9264a25e5bfd3c5a52ee1239e0ba6c", 0, 0xFFFFFFFE),
            ("956149bdc66faa968eb2be2d2faa29718acbfe3941215893a2a3446d32acd050", 0, 0),
            ("e664b9773b88c09c32cb70a2a3e4da0ced63b7ba3b22f848531bbb1d5d5f4c94", 1, 0),
            ("e9aa6b8e6c9de67619e6a3924ae25696bb7b694bb677a632a74ef7eadfd4eabf", 0, 0xFFFFFFFF),
            ("a778eb6a263dc090464cd125c466b5a99667720b1c110468831d058aa1b82af1", 1, 0xFFFFFFFF),
        )
    ],
    outputs=[
        TxOut(
            1_000_000_000,
            bytes.fromhex("76a91406afd46bcdfd22ef94ac122aa11f241244a37ecc88ac"),
        ),
        TxOut(
            3_410_000_000,
            bytes.fromhex(
                "ac9a87f5594be208f8532db38cff670c450ed2fea8fcdefcc9a663f78bab962b"
            ),
        ),
    ],
    locktime=500_000_000,
)
BIP341_SPENT = [
    TxOut(value, bytes.fromhex(spk))
    for spk, value in (
        ("512053a1f6e454df1aa2776a2814a721372d6258050de330b3c6d10ee8f4e0dda343", 420_000_000),
        ("5120147c9c57132f6e7ecddba9800bb0c4449251c92a1e60371ee77557b6620f3ea3", 462_000_000),
        ("76a914751e76e8199196d454941c45d1b3a323f1433bd688ac", 294_000_000),
        ("5120e4d810fd50586274face62b8a807eb9719cef49c04177cc6b76a9a4251d5450e", 504_000_000),
        ("512091b64d5324723a985170e4dc5a0f84c041804f2cd12660fa5dec09fc21783605", 630_000_000),
        ("00147dd65592d0ab2fe0d0257d571abf032cd9db93dc", 378_000_000),
        ("512075169f4001aa68f15bbed28b218df1d0a62cbbcf1188c6665110c293c907b831", 672_000_000),
        ("5120712447206d7a5238acc7ff53fbe94a3b64539ad291c7cdbc490b7577e4b17df5", 546_000_000),
        ("512077e30a5522dd9f894c3f8b8bd4c4b2cf82ca7da8a3ea6a239655c39c050ab220", 588_000_000),
    )
]
HASH_PREVOUTS = "e3b33bb4ef3a52ad1fffb555c0d82828eb22737036eaeb02a235d82b909c4c3f"
HASH_AMOUNTS = "58a6964a4f5f8f0b642ded0a8a553be7622a719da71d1f5befcefcdee8e0fde6"
HASH_SCRIPTPUBKEYS = "23ad0f61ad2bca5ba6a7693f50fce988e17c3780bf2b1e720cfbb38fbdd52e21"
HASH_SEQUENCES = "18959c7221ab5ce9e26c3cd67b22c24f8baa54bac281d8e6b05e400e6c3a957e"
HASH_OUTPUTS = "a2e6dab7c1f0dcd297c8d61647fd17d821541ea69c3cc37dcbad7f90d4eb4bc5"
# Everything but the outputs, shared by the inputs signing for all of them.
COMMON_MSG = (
    "020000000065cd1d"
    + HASH_PREVOUTS
    + HASH_AMOUNTS
    + HASH_SCRIPTPUBKEYS
    + HASH_SEQUENCES
)


@pytest.mark.parametrize(
    "index, hash_type, sig_msg, sig_hash",
    [
        (
            0,
            SIGHASH_SINGLE,
            "0003"
            + COMMON_MSG
            + "00"
            + "00000000"
            + "d0418f0e9a36245b9a50ec87f8bf5be5bcae434337b87139c3a5b1f56e33cba0",
            "2514a6272f85cfa0f45eb907fcb0d121b808ed37c6ea160a5a9046ed5526d555",
        ),
        (
            1,
            SIGHASH_SINGLE | SIGHASH_ANYONECANPAY,
            "0083020000000065cd1d00d7b7cab57b1393ace2d064f4d4a2cb8af6def61273e127517d"
            "44759b6dafdd9900000000808f891b00000000225120147c9c57132f6e7ecddba9800bb0"
            "c4449251c92a1e60371ee77557b6620f3ea3ffffffffffcef8fb4ca7efc5433f591ecfc5"
            "7391811ce1e186a3793024def5c884cba51d",
            "325a644af47e8a5a2591cda0ab0723978537318f10e6a63d4eed783b96a71a4d",
        ),
        (
            3,
            SIGHASH_ALL,
            "0001" + COMMON_MSG + HASH_OUTPUTS + "00" + "03000000",
            "bf013ea93474aa67815b1b6cc441d23b64fa310911d991e713cd34c7f5d46669",
        ),
        (
            4,
            SIGHASH_DEFAULT,
            "0000" + COMMON_MSG + HASH_OUTPUTS + "00" + "04000000",
            "4f900a0bae3f1446fd48490c2958b5a023228f01661cda3496a11da502a7f7ef",
        ),
        (
            6,
            SIGHASH_NONE,
            "0002" + COMMON_MSG + "00" + "06000000",
            "15f25c298eb5cdc7eb1d638dd2d45c97c4c59dcaec6679cfc16ad84f30876b85",
        ),
        (
            7,
            SIGHASH_NONE | SIGHASH_ANYONECANPAY,
            "0082020000000065cd1d00e9aa6b8e6c9de67619e6a3924ae25696bb7b694bb677a632a7"
            "4ef7eadfd4eabf00000000804c8b2000000000225120712447206d7a5238acc7ff53fbe9"
            "4a3b64539ad291c7cdbc490b7577e4b17df5ffffffff",
            "cd292de50313804dabe4685e83f923d2969577191a3e1d2882220dca88cbeb10",
        ),
        (
            8,
            SIGHASH_ALL | SIGHASH_ANYONECANPAY,
            "0081020000000065cd1d"
            + HASH_OUTPUTS
            + "00a778eb6a263dc090464cd125c466b5a99667720b1c110468831d058aa1b82af10100"
            "0000002b0c230000000022512077e30a5522dd9f894c3f8b8bd4c4b2cf82ca7da8a3ea6a"
            "239655c39c050ab220ffffffff",
            "cccb739eca6c13a8a89e6e5cd317ffe55669bbda23f2fd37b0f18755e008edd2",
        ),
    ],
)
def test_bip341_key_path_sighash(index, hash_type, sig_msg, sig_hash):
    cache = SighashCache(BIP341_TX, BIP341_SPENT)
    assert cache.signature_msg(index, hash_type).hex() == sig_msg
    assert cache.key_path_hash(index, hash_type).hex() == sig_hash


def test_bip341_intermediary_hashes():
    cache = SighashCache(BIP341_TX, BIP341_SPENT)
    assert cache.sha_prevouts().hex() == HASH_PREVOUTS
    assert cache.sha_amounts().hex() == HASH_AMOUNTS
    assert cache.sha_scriptpubkeys().hex() == HASH_SCRIPTPUBKEYS
    assert cache.sha_sequences().hex() == HASH_SEQUENCES
    assert cache.sha_outputs().hex() == HASH_OUTPUTS


def test_bip341_tweaked_secret():
    secret = bytes.fromhex(
        "6b973d88838f27366ed61c9ad6367663045cb456e28335c109e30717ae0c6baa"
    )
    internal_key = bytes.fromhex(
        "d6889cb081036e0faefa3a35157ad71086b123b2b144b649798b494c300a961d"
    )
    assert secret_xonly(secret) == internal_key
    # No script path: the output key commits to an empty merkle root.
    info = SpendInfo(internal_key)
    assert info.output_key == BIP341_SPENT[0].script_pubkey[2:]
    assert (
        tweak_secret(secret, info).hex()
        == "2405b971772ad26915c8dcdf10f238753a9b837e5f8e6a86fd7c0cce5b7296d9"
    )


def test_bip341_script_path_sighash():
    """A leaf spend commits to the leaf hash, the key version and the codeseparator
    position (BIP342)."""
    script = bytes.fromhex(
        "20d85a959b0290bf19bb89ed43c916be835475d013da4b362117393e25a48229b8ac"
    )
    leaf_hash = tapleaf_hash(script)
    assert (
        leaf_hash.hex()
        == "5b75adecf53548f3ec6ad7d78383bf84cc57b55a3127c72b9a2481752dd88b21"
    )

    cache = SighashCache(BIP341_TX, BIP341_SPENT)
    assert cache.signature_msg(4, SIGHASH_DEFAULT, leaf_hash).hex() == (
        "0000"
        + COMMON_MSG
        + HASH_OUTPUTS
        + "02"
        + "04000000"
        + leaf_hash.hex()
        + "00"
        + "ffffffff"
    )
    assert (
        cache.script_path_hash(4, SIGHASH_DEFAULT, leaf_hash).hex()
        == "a2889022d272e9735136530b46f73635c2f596b0b44faa89d2f6d685981dedcd"
    )
    assert (
        cache.script_path_hash(1, SIGHASH_SINGLE | SIGHASH_ANYONECANPAY, leaf_hash).hex()
        == "12054fd57a6a8465504ac0265bf755196c358f8e5f2bce41973ea822cbc080bc"
    )
