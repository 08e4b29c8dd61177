"""Representation-independent hashing of structured values."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Iterable

__all__ = ["KeyValuePair", "hash_any", "representation_independent_hash"]


@dataclass(frozen=True)
class KeyValuePair:
    """A single map entry; entries with a value of None are skipped when hashing."""

    key: str
    value: Any


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _encode_uleb128(value: int) -> bytes:
    if value < 0:
        raise ValueError(f"can not leb128 encode negative value: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def hash_any(value: Any) -> bytes:
    """Return the SHA-256 based hash of a string, blob, natural, list or map."""
    if isinstance(value, str):
        return _sha256(value.encode("utf-8"))
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _sha256(bytes(value))
    if isinstance(value, bool):
        raise TypeError("unsupported type bool")
    if isinstance(value, int):
        return _sha256(_encode_uleb128(value))
    if isinstance(value, dict):
        pairs = []
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"unsupported type {type(key).__name__}")
            pairs.append(KeyValuePair(key, item))
        return representation_independent_hash(pairs)
    if isinstance(value, (list, tuple)):
        return _sha256(b"".join(hash_any(item) for item in value))
    raise TypeError(f"unsupported type {type(value).__name__}")


def representation_independent_hash(pairs: Iterable[KeyValuePair]) -> bytes:
    """Hash a map given as key/value pairs, independent of their order."""
    hashes = sorted(
        _sha256(pair.key.encode("utf-8")) + hash_any(pair.value)
        for pair in pairs
        if pair.value is not None
    )
    return _sha256(b"".join(hashes))