"""Certified hash trees: nodes, digests, CBOR encoding and path lookups."""

from __future__ import annotations

import builtins
import enum
import hashlib
from dataclasses import dataclass, field
from typing import Generic, Iterable, TypeVar, Union

import cbor2

__all__ = [
    "LookupResultType",
    "LookupError",
    "Empty",
    "Fork",
    "Labeled",
    "Leaf",
    "Pruned",
    "Node",
    "PathValuePair",
    "HashTree",
    "domain_separator",
    "list_paths",
    "serialize",
    "deserialize",
    "deserialize_node",
    "lookup",
    "lookup_subtree",
    "all_children",
    "all_paths",
]

V = TypeVar("V")

_GO_ESCAPES = {
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
    '"': '\\"',
    "\\": "\\\\",
}


def _as_bytes(value: bytes | bytearray | memoryview | str) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def _quote(label: bytes) -> str:
    """Quote a label as a double-quoted string with escapes."""
    out = ['"']
    for ch in label.decode("utf-8", errors="surrogateescape"):
        code = ord(ch)
        if 0xDC80 <= code <= 0xDCFF:
            out.append(f"\\x{code - 0xDC00:02x}")
        elif ch in _GO_ESCAPES:
            out.append(_GO_ESCAPES[ch])
        elif ch.isprintable():
            out.append(ch)
        elif code < 0x10000:
            out.append(f"\\u{code:04x}")
        else:
            out.append(f"\\U{code:08x}")
    out.append('"')
    return "".join(out)


def _label_text(label: bytes) -> str:
    return label.decode("utf-8", errors="replace")


def domain_separator(tag: str) -> bytes:
    """Return the tag prefixed with its length as a single byte."""
    raw = tag.encode("utf-8")
    return bytes([len(raw) & 0xFF]) + raw


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


class LookupResultType(enum.Enum):
    """Whether a missing value is guaranteed absent, possibly pruned, or invalid."""

    ABSENT = 0
    UNKNOWN = 1
    ERROR = 2


class LookupError(builtins.LookupError):
    """Raised when a path cannot be resolved in a hash tree."""

    def __init__(self, type: LookupResultType, path: Iterable[bytes], index: int):
        self.type = type
        self.path = tuple(path)
        self.index = index
        super().__init__(str(self))

    def _reason(self) -> str:
        if self.type is LookupResultType.ABSENT:
            return "not found, not present in the tree"
        if self.type is LookupResultType.UNKNOWN:
            return "not found, could be pruned"
        if self.type is LookupResultType.ERROR:
            return "error, can not exist in the tree"
        return "unknown lookup error"

    def __str__(self) -> str:
        joined = b"/".join(self.path)
        at = self.path[self.index] if -len(self.path) <= self.index < len(self.path) else b""
        return f"lookup error (path: {_quote(joined)}) at {_quote(at)}: {self._reason()}"


@dataclass(frozen=True)
class Empty:
    """An empty subtree."""

    def reconstruct(self) -> bytes:
        return _sha256(domain_separator("ic-hashtree-empty"))

    def __str__(self) -> str:
        return "∅"


@dataclass(frozen=True)
class Fork:
    """A node with a left and a right subtree."""

    left: Node
    right: Node

    def reconstruct(self) -> bytes:
        left = self.left.reconstruct()
        right = self.right.reconstruct()
        return _sha256(domain_separator("ic-hashtree-fork") + left + right)

    def __str__(self) -> str:
        return f"{{{_node_str(self.left)}|{_node_str(self.right)}}}"


@dataclass(frozen=True)
class Labeled:
    """A subtree reachable under a label."""

    label: bytes
    tree: Node | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "label", _as_bytes(self.label))

    def reconstruct(self) -> bytes:
        if self.tree is None:
            raise ValueError("labeled node has no subtree")
        subtree = self.tree.reconstruct()
        return _sha256(domain_separator("ic-hashtree-labeled") + self.label + subtree)

    def __str__(self) -> str:
        return f"{_label_text(self.label)}:{_node_str(self.tree)}"


@dataclass(frozen=True)
class Leaf:
    """A leaf holding a value."""

    value: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _as_bytes(self.value))

    def reconstruct(self) -> bytes:
        return _sha256(domain_separator("ic-hashtree-leaf") + self.value)

    def __str__(self) -> str:
        try:
            return self.value.decode("utf-8")
        except UnicodeDecodeError:
            return "0x" + self.value.hex()


@dataclass(frozen=True)
class Pruned:
    """A subtree replaced by its 32-byte digest."""

    digest: bytes = field(default=bytes(32))

    def __post_init__(self) -> None:
        digest = bytes(self.digest)
        if len(digest) != 32:
            raise ValueError(f"invalid hash len: {len(digest)}")
        object.__setattr__(self, "digest", digest)

    def reconstruct(self) -> bytes:
        return self.digest

    def __str__(self) -> str:
        return "0x" + self.digest.hex()


Node = Union[Empty, Fork, Labeled, Leaf, Pruned]


def _node_str(node: Node | None) -> str:
    return "<nil>" if node is None else str(node)


@dataclass(frozen=True)
class PathValuePair(Generic[V]):
    """A labeled path together with the value found at its end."""

    path: tuple[bytes, ...]
    value: V


def list_paths(node: Node | None, path: Iterable[bytes] | None = None) -> list[tuple[bytes, ...]]:
    """Return every labeled path from the node down to a leaf."""
    prefix = tuple(path or ())
    if isinstance(node, Fork):
        return list_paths(node.left, prefix) + list_paths(node.right, prefix)
    if isinstance(node, Labeled):
        return list_paths(node.tree, prefix + (node.label,))
    if isinstance(node, Leaf):
        return [prefix]
    return []


def _encode(node: Node) -> list:
    if isinstance(node, Empty):
        return [0]
    if isinstance(node, Fork):
        return [1, _encode(node.left), _encode(node.right)]
    if isinstance(node, Labeled):
        if node.tree is None:
            raise ValueError("labeled node has no subtree")
        return [2, node.label, _encode(node.tree)]
    if isinstance(node, Leaf):
        return [3, node.value]
    if isinstance(node, Pruned):
        return [4, node.digest]
    raise TypeError(f"unsupported node type: {type(node).__name__}")


def serialize(node: Node) -> bytes:
    """Encode a node as CBOR."""
    return cbor2.dumps(_encode(node))


def deserialize(data: bytes) -> Node:
    """Decode a CBOR-encoded hash tree."""
    try:
        items = cbor2.loads(data)
    except cbor2.CBORDecodeError as exc:
        raise ValueError(f"invalid cbor: {exc}") from exc
    return deserialize_node(items)


def _expect_len(items: list, length: int) -> None:
    if len(items) != length:
        raise ValueError(f"invalid len: {len(items)}")


def _expect_bytes(value: object) -> bytes:
    if not isinstance(value, (bytes, bytearray)):
        raise ValueError(f"unknown value: {value!r}")
    return bytes(value)


def _expect_list(value: object) -> list:
    if not isinstance(value, list):
        raise ValueError(f"unknown value: {value!r}")
    return value


def deserialize_node(items: list) -> Node:
    """Build a node from its decoded CBOR array form."""
    if not isinstance(items, list) or not items:
        raise ValueError(f"unknown value: {items!r}")
    tag = items[0]
    if not isinstance(tag, int) or isinstance(tag, bool) or tag < 0:
        raise ValueError(f"unknown tag: {tag!r}")
    if tag == 0:
        _expect_len(items, 1)
        return Empty()
    if tag == 1:
        _expect_len(items, 3)
        left = deserialize_node(_expect_list(items[1]))
        right = deserialize_node(_expect_list(items[2]))
        return Fork(left, right)
    if tag == 2:
        _expect_len(items, 3)
        label = _expect_bytes(items[1])
        subtree = deserialize_node(_expect_list(items[2]))
        return Labeled(label, subtree)
    if tag == 3:
        _expect_len(items, 2)
        return Leaf(_expect_bytes(items[1]))
    if tag == 4:
        _expect_len(items, 2)
        digest = _expect_bytes(items[1])
        if len(digest) != 32:
            raise ValueError(f"invalid hash len: {len(digest)}")
        return Pruned(digest)
    raise ValueError(f"invalid tag: {tag}")


class _LabelResult(enum.Enum):
    ABSENT = 0
    UNKNOWN = 1
    LESS = 2
    GREATER = 3
    FOUND = 4


def _lookup_label(node: Node | None, label: bytes) -> tuple[_LabelResult, Node | None]:
    if isinstance(node, Labeled):
        if label < node.label:
            return _LabelResult.LESS, None
        if label > node.label:
            return _LabelResult.GREATER, None
        return _LabelResult.FOUND, node.tree
    if isinstance(node, Pruned):
        return _LabelResult.UNKNOWN, None
    if isinstance(node, Fork):
        left = _lookup_label(node.left, label)
        if left[0] is _LabelResult.GREATER:
            right = _lookup_label(node.right, label)
            if right[0] is _LabelResult.LESS:
                return _LabelResult.ABSENT, None
            return right
        if left[0] is _LabelResult.UNKNOWN:
            right = _lookup_label(node.right, label)
            if right[0] is _LabelResult.LESS:
                return _LabelResult.UNKNOWN, None
            return right
        return left
    return _LabelResult.ABSENT, None


def _descend(node: Node | None, path: tuple[bytes, ...]) -> Node | None:
    for index, label in enumerate(path):
        result, found = _lookup_label(node, label)
        if result is _LabelResult.FOUND:
            node = found
        elif result is _LabelResult.UNKNOWN:
            raise LookupError(LookupResultType.UNKNOWN, path, index)
        else:
            raise LookupError(LookupResultType.ABSENT, path, index)
    return node


def lookup(node: Node | None, *args: bytes | str) -> bytes:
    """Return the leaf value at the given path."""
    path = tuple(_as_bytes(label) for label in args)
    target = _descend(node, path)
    index = len(path) - 1
    if isinstance(target, Leaf):
        return target.value
    if target is None or isinstance(target, Empty):
        raise LookupError(LookupResultType.ABSENT, path, index)
    if isinstance(target, Pruned):
        raise LookupError(LookupResultType.UNKNOWN, path, index)
    raise LookupError(LookupResultType.ERROR, path, index)


def lookup_subtree(node: Node | None, *args: bytes | str) -> Node | None:
    """Return the subtree found at the given path."""
    path = tuple(_as_bytes(label) for label in args)
    return _descend(node, path)


def all_children(node: Node | None) -> list[PathValuePair[Node | None]]:
    """Return the labeled direct children reachable through forks."""
    if isinstance(node, (Empty, Pruned, Leaf)):
        return []
    if isinstance(node, Labeled):
        return [PathValuePair((node.label,), node.tree)]
    if isinstance(node, Fork):
        return all_children(node.left) + all_children(node.right)
    raise TypeError(f"unsupported node type: {type(node).__name__}")


def _all_labeled(node: Node | None, path: tuple[bytes, ...]) -> list[PathValuePair[bytes]]:
    if isinstance(node, (Empty, Pruned)):
        return []
    if isinstance(node, Leaf):
        return [PathValuePair(path, node.value)]
    if isinstance(node, Labeled):
        return _all_labeled(node.tree, path + (node.label,))
    if isinstance(node, Fork):
        return _all_labeled(node.left, path) + _all_labeled(node.right, path)
    raise TypeError(f"unsupported node type: {type(node).__name__}")


def all_paths(node: Node | None) -> list[PathValuePair[bytes]]:
    """Return every labeled path to a leaf with its value, skipping pruned nodes."""
    return _all_labeled(node, ())


@dataclass(frozen=True)
class HashTree:
    """A hash tree with a single root node."""

    root: Node

    def digest(self) -> bytes:
        return self.root.reconstruct()

    def lookup(self, *args: bytes | str) -> bytes:
        return lookup(self.root, *args)

    def lookup_subtree(self, *args: bytes | str) -> Node | None:
        return lookup_subtree(self.root, *args)

    def to_cbor(self) -> bytes:
        return serialize(self.root)

    @classmethod
    def from_cbor(cls, data: bytes) -> HashTree:
        return cls(deserialize(data))

    def __str__(self) -> str:
        return str(self.root)