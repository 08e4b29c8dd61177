"""Certificates returned by the network, their delegations and key encodings."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Iterator

import cbor2

from iccert.hashtree import HashTree, deserialize_node

__all__ = [
    "ROOT_KEY",
    "ROOT_SUBNET_ID",
    "CanisterRange",
    "CanisterRanges",
    "Certificate",
    "Delegation",
    "public_bls_key_from_der",
    "public_bls_key_to_der",
    "public_ed25519_key_from_der",
    "decode_canister_ranges",
]

ROOT_KEY = (
    "308182301d060d2b0601040182dc7c0503010201060c2b0601040182dc7c05030201036100"
    "814c0e6ec71fab583b08bd81373c255c3c371b2e84863c98a4f1e08b74235d14fb5d9c0cd5"
    "46d9685f913a0c0b2cc5341583bf4b4392e467db96d65b9bb4cb717112f8472e0d5a4d1450"
    "5ffd7484b01291091c5f87b98883463f98091a0baaae"
)
"""DER-encoded root public key of the main network, hex encoded."""

ROOT_SUBNET_ID = "tdb26-jop6k-aogll-7ltgs-eruif-6kk7m-qpktf-gdiqx-mxtrf-vb5e6-eqe"
"""Textual identifier of the root subnet."""

_BLS_ALGORITHM_ID = (1, 3, 6, 1, 4, 1, 44668, 5, 3, 1, 2, 1)
_BLS_CURVE_ID = (1, 3, 6, 1, 4, 1, 44668, 5, 3, 2, 1)
_ED25519_ALGORITHM_ID = (1, 3, 101, 112)
_BLS_KEY_LENGTH = 96

_TAG_BIT_STRING = 0x03
_TAG_OID = 0x06
_TAG_SEQUENCE = 0x30


def _read_tlv(data: bytes, offset: int = 0) -> tuple[int, bytes, int]:
    """Read one DER element, returning its tag, content and the offset after it."""
    if offset + 2 > len(data):
        raise ValueError("asn1: truncated element")
    tag = data[offset]
    if tag & 0x1F == 0x1F:
        raise ValueError("asn1: high-tag-number form not supported")
    length = data[offset + 1]
    pos = offset + 2
    if length & 0x80:
        count = length & 0x7F
        if count == 0 or count > 4 or pos + count > len(data):
            raise ValueError("asn1: invalid length")
        length = int.from_bytes(data[pos : pos + count], "big")
        pos += count
    end = pos + length
    if end > len(data):
        raise ValueError("asn1: truncated element")
    return tag, data[pos:end], end


def _encode_tlv(tag: int, content: bytes) -> bytes:
    length = len(content)
    if length < 0x80:
        header = bytes([length])
    else:
        raw = length.to_bytes((length.bit_length() + 7) // 8, "big")
        header = bytes([0x80 | len(raw)]) + raw
    return bytes([tag]) + header + content


def _decode_oid(content: bytes) -> tuple[int, ...]:
    if not content:
        raise ValueError("asn1: empty object identifier")
    values = []
    current = 0
    for byte in content:
        current = (current << 7) | (byte & 0x7F)
        if not byte & 0x80:
            values.append(current)
            current = 0
    if content[-1] & 0x80:
        raise ValueError("asn1: truncated object identifier")
    first = values[0]
    head = (first // 40, first % 40) if first < 80 else (2, first - 80)
    return head + tuple(values[1:])


def _encode_oid(oid: tuple[int, ...]) -> bytes:
    out = bytearray()
    for value in (oid[0] * 40 + oid[1],) + oid[2:]:
        chunk = [value & 0x7F]
        value >>= 7
        while value:
            chunk.append((value & 0x7F) | 0x80)
            value >>= 7
        out.extend(reversed(chunk))
    return bytes(out)


def _read_oid(data: bytes, offset: int) -> tuple[tuple[int, ...], int]:
    tag, content, end = _read_tlv(data, offset)
    if tag != _TAG_OID:
        raise ValueError(f"asn1: expected object identifier, got tag {tag}")
    return _decode_oid(content), end


def _read_bit_string(data: bytes, offset: int) -> tuple[bytes, int]:
    tag, content, _ = _read_tlv(data, offset)
    if tag != _TAG_BIT_STRING:
        raise ValueError(f"asn1: expected bit string, got tag {tag}")
    if not content or content[0] > 7 or (len(content) == 1 and content[0] != 0):
        raise ValueError("asn1: invalid bit string")
    bits = (len(content) - 1) * 8 - content[0]
    return content[1:], bits


def _format_oid(oid: tuple[int, ...]) -> str:
    return ".".join(str(part) for part in oid)


def _read_spki(der: bytes) -> tuple[bytes, bytes, int]:
    tag, content, _ = _read_tlv(der)
    if tag != _TAG_SEQUENCE:
        raise ValueError(f"invalid tag: {tag}")
    _, id_content, rest = _read_tlv(content)
    key, bits = _read_bit_string(content, rest)
    return id_content, key, bits


def public_bls_key_from_der(der: bytes) -> bytes:
    """Return the raw 96-byte BLS public key held in a DER structure."""
    id_content, key, bits = _read_spki(bytes(der))
    if bits != _BLS_KEY_LENGTH * 8:
        raise ValueError(f"invalid bit string length: {bits}")
    algorithm, offset = _read_oid(id_content, 0)
    if algorithm != _BLS_ALGORITHM_ID:
        raise ValueError(f"invalid algorithm identifier: {_format_oid(algorithm)}")
    curve, _ = _read_oid(id_content, offset)
    if curve != _BLS_CURVE_ID:
        raise ValueError(f"invalid curve identifier: {_format_oid(curve)}")
    return key


def public_bls_key_to_der(public_key: bytes) -> bytes:
    """Wrap a raw 96-byte BLS public key in its DER structure."""
    public_key = bytes(public_key)
    if len(public_key) != _BLS_KEY_LENGTH:
        raise ValueError(f"invalid public key length: {len(public_key)}")
    identifiers = _encode_tlv(
        _TAG_SEQUENCE,
        _encode_tlv(_TAG_OID, _encode_oid(_BLS_ALGORITHM_ID))
        + _encode_tlv(_TAG_OID, _encode_oid(_BLS_CURVE_ID)),
    )
    bit_string = _encode_tlv(_TAG_BIT_STRING, b"\x00" + public_key)
    return _encode_tlv(_TAG_SEQUENCE, identifiers + bit_string)


def public_ed25519_key_from_der(der: bytes) -> bytes:
    """Return the raw Ed25519 public key held in a DER structure."""
    id_content, key, _ = _read_spki(bytes(der))
    algorithm, _ = _read_oid(id_content, 0)
    if algorithm != _ED25519_ALGORITHM_ID:
        raise ValueError(f"invalid algorithm identifier: {_format_oid(algorithm)}")
    return key


def _decode_uleb128(data: bytes) -> int:
    value = 0
    for shift, byte in enumerate(data):
        value |= (byte & 0x7F) << (7 * shift)
        if not byte & 0x80:
            return value
    raise ValueError("invalid leb128: unexpected end of data")


def _loads(data: bytes) -> Any:
    try:
        return cbor2.loads(bytes(data))
    except cbor2.CBORDecodeError as exc:
        raise ValueError(f"invalid cbor: {exc}") from exc


@dataclass(frozen=True)
class CanisterRange:
    """An inclusive range of raw canister identifiers."""

    start: bytes
    end: bytes


@dataclass(frozen=True)
class CanisterRanges:
    """The canister ranges assigned to a subnet."""

    ranges: tuple[CanisterRange, ...] = ()

    def __iter__(self) -> Iterator[CanisterRange]:
        return iter(self.ranges)

    def __len__(self) -> int:
        return len(self.ranges)

    def in_range(self, canister_id: bytes) -> bool:
        """Tell whether the raw canister identifier lies in any of the ranges."""
        canister_id = bytes(canister_id)
        return any(r.start <= canister_id <= r.end for r in self.ranges)


def decode_canister_ranges(data: bytes) -> CanisterRanges:
    """Decode CBOR-encoded canister ranges."""
    raw = _loads(data)
    if not isinstance(raw, list):
        raise ValueError(f"unexpected canister ranges: {raw!r}")
    ranges = []
    for item in raw:
        if not isinstance(item, list):
            raise ValueError(f"unexpected canister range: {item!r}")
        if len(item) != 2:
            raise ValueError(f"unexpected length: {len(item)}")
        start, end = item
        if not isinstance(start, bytes) or not isinstance(end, bytes):
            raise ValueError(f"unexpected canister range: {item!r}")
        ranges.append(CanisterRange(start, end))
    return CanisterRanges(tuple(ranges))


@dataclass(frozen=True)
class Delegation:
    """A subnet delegation, certified by a nested certificate."""

    subnet_id: bytes
    certificate: Certificate


def _delegation_from_obj(obj: Any) -> Delegation:
    if not isinstance(obj, dict):
        raise ValueError(f"unexpected delegation: {obj!r}")
    subnet_id = b""
    certificate = None
    for key, value in obj.items():
        if not isinstance(value, bytes):
            raise ValueError(f"unexpected value for {key}: {value!r}")
        if key == "subnet_id":
            subnet_id = value
        elif key == "certificate":
            certificate = Certificate.from_cbor(value)
        else:
            raise ValueError(f"unknown key: {key}")
    if certificate is None:
        raise ValueError("delegation has no certificate")
    return Delegation(subnet_id, certificate)


@dataclass(frozen=True)
class Certificate:
    """A certificate: a hash tree, its signature and an optional delegation."""

    tree: HashTree
    signature: bytes = b""
    delegation: Delegation | None = None

    @classmethod
    def from_cbor(cls, data: bytes) -> Certificate:
        obj = _loads(data)
        if not isinstance(obj, dict):
            raise ValueError(f"unexpected certificate: {obj!r}")
        raw_tree = obj.get("tree")
        if raw_tree is None:
            raise ValueError("certificate has no tree")
        tree = HashTree(deserialize_node(raw_tree))
        signature = obj.get("signature", b"")
        if not isinstance(signature, bytes):
            raise ValueError(f"unexpected signature: {signature!r}")
        raw_delegation = obj.get("delegation")
        delegation = None if raw_delegation is None else _delegation_from_obj(raw_delegation)
        return cls(tree, signature, delegation)

    def verify_time(self, ingress_expiry: timedelta | int) -> int:
        """Check the certificate is not older than the expiry; return its time in ns."""
        if isinstance(ingress_expiry, timedelta):
            expiry_ns = (ingress_expiry // timedelta(microseconds=1)) * 1000
        else:
            expiry_ns = int(ingress_expiry)
        certificate_time = _decode_uleb128(self.tree.lookup(b"time"))
        if expiry_ns < time.time_ns() - certificate_time:
            raise ValueError("certificate outdated, exceeds ingress expiry")
        return certificate_time

    def certified_data(self, canister_id: bytes) -> bytes:
        """Return the data certified for the given raw canister identifier."""
        return self.tree.lookup(b"canister", bytes(canister_id), b"certified_data")