"""Hashing and verification of certified HTTP requests and responses."""

from __future__ import annotations

import base64
import hashlib
import re
from dataclasses import dataclass
from typing import Any, Iterable, NamedTuple
from urllib.parse import quote_plus, unquote_plus, urlsplit

import cbor2

from iccert.certexp import (
    CertificateExpression,
    RequestCertification,
    ResponseCertification,
    parse_certificate_expression,
)
from iccert.certificate import Certificate
from iccert.hashing import hash_any
from iccert.hashtree import HashTree, Labeled, Leaf
from iccert.hashtree import LookupError as TreeLookupError

__all__ = [
    "HeaderField",
    "Request",
    "Response",
    "CertificateHeader",
    "ExpressionPath",
    "VerificationError",
    "calculate_request_hash",
    "calculate_response_hash",
    "parse_certificate_header",
    "parse_expression_path",
    "parse_query_in_order",
    "verify_expression_tree",
]

_INVALID_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_INTEGER = re.compile(r"[+-]?[0-9]+")


class VerificationError(ValueError):
    """Raised when a response does not match its certification."""


class HeaderField(NamedTuple):
    """A single HTTP header."""

    name: str
    value: str


@dataclass(frozen=True)
class Request:
    """An HTTP request sent to a canister."""

    method: str
    url: str
    headers: tuple[HeaderField, ...] = ()
    body: bytes = b""
    certificate_version: int | None = None


@dataclass(frozen=True)
class Response:
    """An HTTP response returned by a canister."""

    status_code: int
    headers: tuple[HeaderField, ...] = ()
    body: bytes = b""
    upgrade: bool | None = None
    streaming_strategy: Any = None


class _Digest(bytes):
    """A hash that is used as is instead of being hashed again."""


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _hash_value(value: Any) -> bytes:
    if isinstance(value, _Digest):
        return bytes(value)
    if isinstance(value, dict):
        return _hash_map(value)
    if isinstance(value, (list, tuple)):
        return _sha256(b"".join(_hash_value(item) for item in value))
    return hash_any(value)


def _hash_map(mapping: dict[str, Any]) -> bytes:
    hashes = sorted(_sha256(key.encode("utf-8")) + _hash_value(value) for key, value in mapping.items())
    return _sha256(b"".join(hashes))


def _query_unescape(text: str) -> str:
    if _INVALID_ESCAPE.search(text):
        raise ValueError(f"invalid URL escape in {text!r}")
    return unquote_plus(text, errors="surrogateescape")


def _query_escape(text: str) -> str:
    return quote_plus(text, safe="", errors="surrogateescape")


def parse_query_in_order(query: str) -> list[tuple[str, str]]:
    """Split a raw query into key/value pairs in order, skipping malformed entries."""
    params = []
    for entry in query.split("&"):
        if ";" in entry or not entry:
            continue
        key, _, value = entry.partition("=")
        try:
            params.append((_query_unescape(key), _query_unescape(value)))
        except ValueError:
            continue
    return params


def calculate_request_hash(request: Request, request_certification: RequestCertification) -> bytes:
    """Hash the certified parts of a request."""
    fields: dict[str, Any] = {}
    for name, value in request.headers:
        key = name.lower()
        if key in request_certification.certified_request_headers:
            fields[key] = value
    fields[":ic-cert-method"] = request.method

    params = parse_query_in_order(urlsplit(request.url).query)
    if params:
        params = [
            param
            for certified in request_certification.certified_query_parameters
            for param in params
            if param[0] == certified
        ]
    if params:
        query = "&".join(f"{_query_escape(k)}={_query_escape(v)}" for k, v in params)
        fields[":ic-cert-query"] = _Digest(_sha256(query.encode("utf-8", errors="surrogateescape")))

    return _sha256(_hash_map(fields) + _sha256(bytes(request.body)))


def calculate_response_hash(response: Response, response_certification: ResponseCertification) -> bytes:
    """Hash the certified parts of a response."""
    fields: dict[str, Any] = {}
    for name, value in response.headers:
        key = name.lower()
        if key != "ic-certificate":
            fields[key] = value
    if response_certification.certified_response_headers:
        certified = {}
        for header in response_certification.certified_response_headers:
            key = header.lower()
            if key in fields:
                certified[key] = fields[key]
        fields = certified
    for header in response_certification.response_header_exclusions:
        fields.pop(header.lower(), None)
    fields[":ic-cert-status"] = int(response.status_code)
    return _sha256(_hash_map(fields) + _sha256(bytes(response.body)))


@dataclass(frozen=True)
class CertificateHeader:
    """The parsed content of an IC-Certificate header."""

    certificate: Certificate | None = None
    tree: HashTree | None = None
    version: int = 0
    expr_path: tuple[bytes, ...] = ()


def _decode_quoted(value: str) -> bytes:
    return base64.b64decode(value[1:-1], validate=True)


def _label(value: Any) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, bytes):
        return value
    raise ValueError(f"unexpected path segment: {value!r}")


def parse_certificate_header(header: str) -> CertificateHeader:
    """Parse an IC-Certificate header value."""
    certificate = None
    tree = None
    version = 0
    expr_path: tuple[bytes, ...] = ()
    for entry in header.split(","):
        key, sep, value = entry.strip().partition("=")
        if not sep:
            raise ValueError("invalid header")
        if key == "certificate":
            certificate = Certificate.from_cbor(_decode_quoted(value))
        elif key == "tree":
            tree = HashTree.from_cbor(_decode_quoted(value))
        elif key == "version":
            if not _INTEGER.fullmatch(value):
                raise ValueError(f"invalid version: {value!r}")
            version = int(value)
        elif key == "expr_path":
            try:
                segments = cbor2.loads(_decode_quoted(value))
            except cbor2.CBORDecodeError as exc:
                raise ValueError(f"invalid cbor: {exc}") from exc
            if not isinstance(segments, list):
                raise ValueError(f"unexpected expression path: {segments!r}")
            expr_path = tuple(_label(segment) for segment in segments)
        else:
            raise ValueError("invalid header")
    return CertificateHeader(certificate, tree, version, expr_path)


@dataclass(frozen=True)
class ExpressionPath:
    """A path into the http_expr subtree, ending in an exact or wildcard marker."""

    wildcard: bool
    path: tuple[bytes, ...] = ()

    def get_path(self) -> list[bytes]:
        """Return the full tree path, including the prefix and end marker."""
        marker = b"<*>" if self.wildcard else b"<$>"
        return [b"http_expr", *self.path, marker]


def parse_expression_path(path: Iterable[bytes]) -> ExpressionPath:
    """Parse a tree path of the form http_expr/.../<*> or http_expr/.../<$>."""
    segments = [bytes(segment) for segment in path]
    if len(segments) < 2 or segments[0] != b"http_expr":
        raise ValueError("invalid expression path")
    marker = segments[-1]
    if marker == b"<*>":
        wildcard = True
    elif marker == b"<$>":
        wildcard = False
    else:
        raise ValueError("invalid expression path")
    return ExpressionPath(wildcard, tuple(segments[1:-1]))


def _expect_empty_leaf(tree: HashTree, *path: bytes) -> None:
    try:
        node = tree.lookup_subtree(*path)
    except TreeLookupError as exc:
        raise VerificationError(f"response hash not found: {exc}") from exc
    if not isinstance(node, Leaf):
        raise VerificationError("invalid response hash")
    if node.value:
        raise VerificationError("invalid response hash: not empty")


def verify_expression_tree(
    request: Request, response: Response, certificate_header: CertificateHeader
) -> CertificateExpression:
    """Check a response against the expression tree of its certificate header.

    Returns the certificate expression the response was checked against.
    """
    expr_path = parse_expression_path(certificate_header.expr_path)

    expression = ""
    for name, value in response.headers:
        if name.lower() == "ic-certificateexpression":
            expression = value
    if not expression:
        raise VerificationError("no certification expression found")
    certificate_expression = parse_certificate_expression(expression)

    if certificate_header.tree is None:
        raise VerificationError("no expression tree found")
    try:
        node = certificate_header.tree.lookup_subtree(*expr_path.get_path())
    except TreeLookupError as exc:
        raise VerificationError(f"no expression path found: {exc}") from exc
    if not isinstance(node, Labeled):
        raise VerificationError("invalid expression path")
    if node.label != _sha256(expression.encode("utf-8")):
        raise VerificationError("invalid expression hash")

    certification = certificate_expression.certification
    if certification is None:
        return certificate_expression

    subtree = HashTree(node.tree)
    response_hash = calculate_response_hash(response, certification.response_certification)
    if certification.request_certification is None:
        _expect_empty_leaf(subtree, b"", response_hash)
    else:
        request_hash = calculate_request_hash(request, certification.request_certification)
        _expect_empty_leaf(subtree, request_hash, response_hash)
    return certificate_expression