"""Bitcoin wire serialization helpers."""

import struct


def compact_size(n):
    """The CompactSize encoding of an integer.

    See https://en.bitcoin.it/wiki/Protocol_documentation#Variable_length_integer.
    """
    assert isinstance(n, int) and n >= 0
    if n < 253:
        return n.to_bytes(1, "little")
    if n < 2**16:
        return b"\xfd" + n.to_bytes(2, "little")
    if n < 2**32:
        return b"\xfe" + n.to_bytes(4, "little")
    return b"\xff" + n.to_bytes(8, "little")


def ser_string(data):
    """A byte string prefixed with its CompactSize length."""
    return compact_size(len(data)) + data


def ser_u32(n):
    return struct.pack("<I", n)


def ser_i32(n):
    return struct.pack("<i", n)


def ser_u64(n):
    return struct.pack("<Q", n)
