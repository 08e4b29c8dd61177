"""Canister signature public keys and their DER encoding."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "CANISTER_SIG_PUBLIC_KEY_DER_OBJECT_ID",
    "CANISTER_SIG_PUBLIC_KEY_PREFIX_LENGTH",
    "CanisterSigPublicKey",
]

CANISTER_SIG_PUBLIC_KEY_DER_OBJECT_ID = bytes(
    [0x30, 0x0C, 0x06, 0x0A, 0x2B, 0x06, 0x01, 0x04, 0x01, 0x83, 0xB8, 0x43, 0x01, 0x02]
)
CANISTER_SIG_PUBLIC_KEY_PREFIX_LENGTH = 19


@dataclass(frozen=True)
class CanisterSigPublicKey:
    """A public key made of a raw canister identifier and a seed."""

    canister_id: bytes
    seed: bytes

    @classmethod
    def from_der(cls, der: bytes) -> CanisterSigPublicKey:
        der = bytes(der)
        if len(der) < 21:
            raise ValueError("DER data is too short")
        object_id = der[2 : len(CANISTER_SIG_PUBLIC_KEY_DER_OBJECT_ID) + 2]
        if object_id != CANISTER_SIG_PUBLIC_KEY_DER_OBJECT_ID:
            raise ValueError("DER data does not match object ID")
        id_length = der[CANISTER_SIG_PUBLIC_KEY_PREFIX_LENGTH]
        offset = CANISTER_SIG_PUBLIC_KEY_PREFIX_LENGTH + 1
        if len(der) < offset + id_length:
            raise ValueError("DER data is too short")
        return cls(der[offset : offset + id_length], der[offset + id_length :])

    def raw(self) -> bytes:
        """Return the length-prefixed canister identifier followed by the seed."""
        return bytes([len(self.canister_id)]) + self.canister_id + self.seed

    def der(self) -> bytes:
        """Return the DER encoding of the key."""
        raw = self.raw()
        return (
            bytes([0x30, (17 + len(raw)) & 0xFF])
            + CANISTER_SIG_PUBLIC_KEY_DER_OBJECT_ID
            + bytes([0x03, (1 + len(raw)) & 0xFF, 0x00])
            + raw
        )