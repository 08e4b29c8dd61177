import hashlib
import json

import cbor2
import pytest

from iccert.canister_sig import CanisterSigPublicKey
from iccert.delegation import (
    DELEGATION_DOMAIN_SEPARATOR,
    Delegation,
    DelegationChain,
    SignedDelegation,
)
from iccert.hashtree import Labeled, Leaf, LookupError, serialize

CANISTER_ID = bytes.fromhex("00000000000000000101")
SEED = bytes([42, 72, 44])
SESSION_KEY = b"session public key"
EXPIRATION = 2_000_000_000_000_000_000


def _sha(data):
    return hashlib.sha256(data).digest()


def _signature(delegation, seed=SEED, certified=None, canister_id=CANISTER_ID):
    message = delegation.signature_message()
    sig_root = Labeled(b"sig", Labeled(_sha(seed), Labeled(_sha(message), Leaf(b""))))
    digest = sig_root.reconstruct() if certified is None else certified
    cert_root = Labeled(
        b"canister", Labeled(canister_id, Labeled(b"certified_data", Leaf(digest)))
    )
    certificate = cbor2.dumps(
        {"tree": cbor2.loads(serialize(cert_root)), "signature": b"\x01\x02"}
    )
    return cbor2.dumps(
        {"certificate": certificate, "tree": cbor2.loads(serialize(sig_root))}
    )


def _chain(delegation=None, signature=None, public_key=None):
    delegation = delegation or Delegation(SESSION_KEY, EXPIRATION)
    if signature is None:
        signature = _signature(delegation)
    if public_key is None:
        public_key = CanisterSigPublicKey(CANISTER_ID, SEED).der()
    return DelegationChain((SignedDelegation(delegation, signature),), public_key)


def test_signature_message_prefix_and_length():
    message = Delegation(SESSION_KEY, EXPIRATION).signature_message()
    assert message.startswith(b"\x1aic-request-auth-delegation")
    assert len(message) == len(DELEGATION_DOMAIN_SEPARATOR) + 32


def test_signature_message_depends_on_fields():
    base = Delegation(SESSION_KEY, EXPIRATION)
    assert base.signature_message() == Delegation(SESSION_KEY, EXPIRATION, ()).signature_message()
    assert base.signature_message() != Delegation(SESSION_KEY, EXPIRATION + 1).signature_message()
    assert base.signature_message() != Delegation(SESSION_KEY, EXPIRATION, (b"t",)).signature_message()


def test_from_json_round_trip():
    delegation = Delegation(SESSION_KEY, EXPIRATION, (b"\x01\x02",))
    public_key = CanisterSigPublicKey(CANISTER_ID, SEED).der()
    text = json.dumps(
        {
            "delegations": [
                {
                    "delegation": {
                        "pubkey": SESSION_KEY.hex(),
                        "expiration": EXPIRATION.to_bytes(8, "big").hex(),
                        "targets": ["0102"],
                    },
                    "signature": "abcd",
                }
            ],
            "publicKey": public_key.hex(),
        }
    )
    chain = DelegationChain.from_json(text)
    assert chain.public_key == public_key
    assert chain.delegations == (SignedDelegation(delegation, bytes.fromhex("abcd")),)


def test_from_json_rejects_bad_hex():
    with pytest.raises(ValueError):
        DelegationChain.from_json('{"delegations": [], "publicKey": "zz"}')


def test_from_json_rejects_short_expiration():
    text = json.dumps(
        {"delegations": [{"delegation": {"expiration": "0102"}, "signature": ""}]}
    )
    with pytest.raises(ValueError):
        DelegationChain.from_json(text)


def test_check_challenge_accepts_valid_chain():
    chain = _chain()
    certificate = chain.check_challenge(SESSION_KEY, EXPIRATION - 1, CANISTER_ID)
    assert certificate.signature == b"\x01\x02"
    assert certificate.certified_data(CANISTER_ID) == Labeled(
        b"sig",
        Labeled(
            _sha(SEED),
            Labeled(
                _sha(Delegation(SESSION_KEY, EXPIRATION).signature_message()), Leaf(b"")
            ),
        ),
    ).reconstruct()


def test_check_challenge_requires_one_delegation():
    chain = _chain()
    doubled = DelegationChain(chain.delegations * 2, chain.public_key)
    with pytest.raises(ValueError, match="exactly one delegation"):
        doubled.check_challenge(SESSION_KEY, 0, CANISTER_ID)


def test_check_challenge_rejects_wrong_challenge():
    with pytest.raises(ValueError, match="invalid challenge"):
        _chain().check_challenge(b"other", 0, CANISTER_ID)


def test_check_challenge_rejects_wrong_canister():
    with pytest.raises(ValueError, match="invalid canister ID"):
        _chain().check_challenge(SESSION_KEY, 0, b"\x00\x01")


def test_check_challenge_rejects_expired():
    with pytest.raises(ValueError, match="delegation expired"):
        _chain().check_challenge(SESSION_KEY, EXPIRATION + 1, CANISTER_ID)


def test_check_challenge_rejects_uncertified_tree():
    delegation = Delegation(SESSION_KEY, EXPIRATION)
    chain = _chain(delegation, _signature(delegation, certified=bytes(32)))
    with pytest.raises(ValueError, match="certified data does not match"):
        chain.check_challenge(SESSION_KEY, 0, CANISTER_ID)


def test_check_challenge_rejects_wrong_seed():
    delegation = Delegation(SESSION_KEY, EXPIRATION)
    chain = _chain(delegation, _signature(delegation, seed=b"other seed"))
    with pytest.raises(LookupError):
        chain.check_challenge(SESSION_KEY, 0, CANISTER_ID)