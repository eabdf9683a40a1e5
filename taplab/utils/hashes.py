"""
Common Bitcoin hashes.
"""

import hashlib


def sha256(data: bytes) -> bytes:
    """{data} must be bytes, returns sha256(data)"""
    assert isinstance(data, bytes)
    return hashlib.sha256(data).digest()


def hash160(data: bytes) -> bytes:
    """{data} must be bytes, returns ripemd160(sha256(data))"""
    assert isinstance(data, bytes)
    return hashlib.new("ripemd160", sha256(data)).digest()


def hash256(data: bytes) -> bytes:
    """{data} must be bytes, returns sha256(sha256(data))"""
    assert isinstance(data, bytes)
    return sha256(sha256(data))


def tagged_hash(tag: str, data: bytes) -> bytes:
    """BIP340 tagged hash: sha256(sha256(tag) || sha256(tag) || data)."""
    ss = hashlib.sha256(tag.encode("utf-8")).digest()
    ss += ss
    ss += data
    return hashlib.sha256(ss).digest()
