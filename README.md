# iccert

Tools for working with the certified data that Internet Computer canisters
return: hash trees, state certificates, representation-independent hashing,
canister signature keys, Internet Identity delegation chains and HTTP
response certification.

The only runtime dependency is `cbor2`. The test suite is written for
`pytest`, which the `test` extra installs.

## Hash trees

`iccert.hashtree` models the certified hash tree. A tree is built from the
node types `Empty`, `Fork`, `Labeled`, `Leaf` and `Pruned`, each of which can
`reconstruct()` its root hash. Trees are read from and written to their CBOR
form with `deserialize` and `serialize` (or `deserialize_node` for an already
decoded array), or wrapped in a `HashTree` with `digest`, `lookup`,
`lookup_subtree`, `to_cbor` and `from_cbor`.

```python
from iccert.hashtree import HashTree, LookupError, deserialize, lookup

data = bytes.fromhex(
    "8301830183024161830183018302417882034568656c6c6f810083024179"
    "820345776f726c6483024162820344676f6f648301830241638100830241"
    "648203476d6f726e696e67"
)
root = deserialize(data)

print(lookup(root, b"a", b"x"))        # b'hello'

tree = HashTree.from_cbor(data)
print(tree.digest().hex())
# eb5c5b2195e62d996b84c9bcc8259d19a83786a2f59e0878cec84c811f669aa0

try:
    tree.lookup(b"c")
except LookupError as error:
    print(error.type)                  # LookupResultType.ABSENT
```

A failed lookup raises `iccert.hashtree.LookupError` (a subclass of the
built-in `LookupError`), whose `type` is a `LookupResultType`: `ABSENT` when
the label is guaranteed not to be in the tree, `UNKNOWN` when it may have been
pruned, and `ERROR` when the path ends at a node that cannot hold a value.
`all_children`, `all_paths` and `list_paths` walk the tree in other ways,
returning `PathValuePair`s or label paths. `domain_separator` gives the
length-prefixed tag used in node hashes.

## Hashing

`iccert.hashing` computes representation-independent hashes: `hash_any`
hashes strings, bytes, non-negative integers (as unsigned LEB128), lists and
maps with string keys; `representation_independent_hash` hashes a sequence of
`KeyValuePair`s, skipping pairs whose value is `None`.

## Certificates

`iccert.certificate` decodes state certificates with `Certificate.from_cbor`,
including a nested `Delegation`, and decodes a subnet's canister ranges with
`decode_canister_ranges`, whose `CanisterRanges.in_range` tells whether a raw
canister identifier falls inside one of its `CanisterRange`s.

`Certificate.verify_time` raises `ValueError` if the certificate's `time` is
older than the given ingress expiry (a `timedelta`, or an integer in
nanoseconds), and otherwise returns that time in nanoseconds.
`Certificate.certified_data` returns a canister's certified data.

DER-encoded public keys are handled by `public_bls_key_from_der`,
`public_bls_key_to_der` and `public_ed25519_key_from_der`, which return or
take the raw key bytes. `ROOT_KEY` holds the main network's DER root key as
hex and `ROOT_SUBNET_ID` the root subnet's textual identifier.

## Canister signatures and delegations

`iccert.canister_sig.CanisterSigPublicKey` converts between a canister
signature public key (a raw canister identifier and a seed) and its DER form
with `from_der`, `der` and `raw`.

`iccert.delegation` reads an Internet Identity delegation chain from JSON
with `DelegationChain.from_json` (byte strings are hex encoded), builds the
message a delegation is signed over with `Delegation.signature_message`, and
checks a chain with `DelegationChain.check_challenge`: exactly one
`SignedDelegation`, a public key equal to the challenge, the expected
canister, an unexpired delegation, certified data matching the signature's
tree, and a `sig` entry for the seed and message in that tree. It returns the
embedded `Certificate`.

## HTTP response certification

`iccert.certexp` parses the `IC-CertificateExpression` header with
`parse_certificate_expression`, giving a `CertificateExpression` whose
`certification` (a `Certification`, or `None` for no certification) holds an
optional `RequestCertification` and a `ResponseCertification`.
`parse_string_list` parses a bracketed list of quoted strings. Malformed
input raises `ExpressionSyntaxError`, which records the failing `position`.

`iccert.httpverify` works on `Request`, `Response` and `HeaderField` values.
It computes request and response hashes (`calculate_request_hash`,
`calculate_response_hash`), splits queries with `parse_query_in_order`,
parses the `IC-Certificate` header into a `CertificateHeader`
(`parse_certificate_header`) and expression paths into an `ExpressionPath`
(`parse_expression_path`, `ExpressionPath.get_path`).
`verify_expression_tree` checks a response against the expression tree of its
certificate header, raising `VerificationError` on any mismatch and returning
the `CertificateExpression` it checked against.

## Command dispatch

`iccert.command` offers a small dispatcher: a `CommandFork` routes to named
sub-commands by the first argument, and a `Command` checks its positional
arguments and `--name[=value]` options (`CommandOption`) before running its
handler with the arguments and a dictionary of options. Unknown commands
raise `CommandNotFoundError`; wrong arguments or options raise
`InvalidArgumentsError`.

## What this package does not do

- It does not check BLS signatures. Certificates are decoded and their trees
  inspected, but neither `Certificate`, `DelegationChain.check_challenge` nor
  `verify_expression_tree` verifies a certificate's signature or its
  delegation against a root key; that is left to the caller.
- It does not talk to the network. There is no agent or HTTP client for
  querying canisters, reading state or fetching interfaces.
- `verify_expression_tree` covers certification version 2 only; it does not
  check the certificate's age or the older asset-hash scheme.
- It installs no command-line program; `iccert.command` is a library for
  building one.