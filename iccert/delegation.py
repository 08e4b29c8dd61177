"""Identity delegations and their canister-signature challenges."""

from __future__ import annotations

import binascii
import hashlib
import json
from dataclasses import dataclass
from typing import Any

import cbor2

from iccert.canister_sig import CanisterSigPublicKey
from iccert.certificate import Certificate
from iccert.hashing import KeyValuePair, representation_independent_hash
from iccert.hashtree import HashTree, deserialize_node

__all__ = [
    "DELEGATION_DOMAIN_SEPARATOR",
    "Delegation",
    "SignedDelegation",
    "DelegationChain",
]

DELEGATION_DOMAIN_SEPARATOR = b"\x1aic-request-auth-delegation"


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _hex(value: Any) -> bytes:
    if value is None:
        return b""
    if not isinstance(value, str):
        raise ValueError(f"expected a hex string, got {value!r}")
    try:
        return binascii.unhexlify(value)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid hex string {value!r}: {exc}") from exc


def _be_hex_uint64(value: Any) -> int:
    raw = _hex(value)
    if value is None:
        return 0
    if len(raw) < 8:
        raise ValueError(f"expiration needs 8 bytes, got {len(raw)}")
    return int.from_bytes(raw[:8], "big")


def _object(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"unexpected {what}: {value!r}")
    return value


@dataclass(frozen=True)
class Delegation:
    """A delegation of authority to a session public key until an expiry time."""

    public_key: bytes
    expiration: int
    targets: tuple[bytes, ...] = ()

    @classmethod
    def _from_obj(cls, obj: Any) -> Delegation:
        obj = _object(obj, "delegation")
        targets = obj.get("targets") or []
        if not isinstance(targets, list):
            raise ValueError(f"unexpected targets: {targets!r}")
        return cls(
            public_key=_hex(obj.get("pubkey")),
            expiration=_be_hex_uint64(obj.get("expiration")),
            targets=tuple(_hex(target) for target in targets),
        )

    def signature_message(self) -> bytes:
        """Return the message that the delegation's signature covers."""
        pairs = [
            KeyValuePair("pubkey", bytes(self.public_key)),
            KeyValuePair("expiration", int(self.expiration)),
        ]
        if self.targets:
            pairs.append(KeyValuePair("targets", [bytes(t) for t in self.targets]))
        return DELEGATION_DOMAIN_SEPARATOR + representation_independent_hash(pairs)


@dataclass(frozen=True)
class SignedDelegation:
    """A delegation together with its signature."""

    delegation: Delegation
    signature: bytes

    @classmethod
    def _from_obj(cls, obj: Any) -> SignedDelegation:
        obj = _object(obj, "signed delegation")
        return cls(Delegation._from_obj(obj.get("delegation")), _hex(obj.get("signature")))


@dataclass(frozen=True)
class DelegationChain:
    """A chain of signed delegations rooted at a canister signature public key."""

    delegations: tuple[SignedDelegation, ...]
    public_key: bytes

    @classmethod
    def from_json(cls, text: str | bytes) -> DelegationChain:
        """Decode a chain from its JSON form, where byte strings are hex encoded."""
        try:
            obj = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid json: {exc}") from exc
        obj = _object(obj, "delegation chain")
        delegations = obj.get("delegations") or []
        if not isinstance(delegations, list):
            raise ValueError(f"unexpected delegations: {delegations!r}")
        return cls(
            tuple(SignedDelegation._from_obj(item) for item in delegations),
            _hex(obj.get("publicKey")),
        )

    def check_challenge(
        self, challenge: bytes, current_time_ns: int, canister_id: bytes
    ) -> Certificate:
        """Check the chain answers the challenge for the canister.

        Everything but the certificate's BLS signature is checked; the
        certificate is returned so that its signature can be verified.
        """
        if len(self.delegations) != 1:
            raise ValueError("expected exactly one delegation")
        signed = self.delegations[0]
        delegation = signed.delegation
        if bytes(challenge) != delegation.public_key:
            raise ValueError("invalid challenge")
        canister_sig = CanisterSigPublicKey.from_der(self.public_key)
        if canister_sig.canister_id != bytes(canister_id):
            raise ValueError("invalid canister ID")
        if delegation.expiration < current_time_ns:
            raise ValueError("delegation expired")

        message = delegation.signature_message()
        try:
            wrapper = cbor2.loads(signed.signature)
        except cbor2.CBORDecodeError as exc:
            raise ValueError(f"invalid cbor: {exc}") from exc
        wrapper = _object(wrapper, "signature")
        raw_certificate = wrapper.get("certificate")
        raw_tree = wrapper.get("tree")
        if not isinstance(raw_certificate, bytes):
            raise ValueError(f"unexpected certificate: {raw_certificate!r}")
        if raw_tree is None:
            raise ValueError("signature has no tree")
        certificate = Certificate.from_cbor(raw_certificate)
        tree = HashTree(deserialize_node(raw_tree))

        digest = tree.digest()
        certified = certificate.certified_data(canister_sig.canister_id)
        if certified != digest:
            raise ValueError(
                f"certified data does not match: {certified.hex()} != {digest.hex()}"
            )
        tree.lookup(b"sig", _sha256(canister_sig.seed), _sha256(message))
        return certificate