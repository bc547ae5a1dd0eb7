"""BER-TLV parsing, encoding and lookup as used by EMV cards."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional, Tuple

_TAG_COMPLEX = 0x20
_TAG_VALUE_MASK = 0x1F
_TAG_VALUE_CONT = 0x1F
_LEN_LONG = 0x80
_LEN_MASK = 0x7F


class TlvError(ValueError):
    """Raised when TLV data cannot be parsed or encoded.

    ``rest`` holds the bytes left unread after the failed attempt.
    """

    def __init__(self, message: str, rest: bytes = b"") -> None:
        super().__init__(message)
        self.rest = bytes(rest)


@dataclass(frozen=True)
class Tlv:
    """A single tag with its value."""

    tag: int
    value: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", bytes(self.value))

    @property
    def length(self) -> int:
        return len(self.value)

    def encode(self) -> bytes:
        """Serialise the tag, length and value."""
        length = len(self.value)
        if length > 0xFF:
            raise TlvError(f"value of {length} bytes is too long to encode")
        out = bytearray()
        if self.tag > 0xFF:
            out += bytes(((self.tag >> 8) & 0xFF, self.tag & 0xFF))
        else:
            out.append(self.tag)
        if length > _LEN_MASK:
            out += bytes((0x81, length))
        else:
            out.append(length)
        out += self.value
        return bytes(out)

    def is_constructed(self) -> bool:
        """Whether the tag marks a constructed (nested) object."""
        first = self.tag if self.tag < 0x100 else self.tag >> 8
        return bool(first & _TAG_COMPLEX)


def _take_tag(data: bytes, pos: int) -> Tuple[Optional[int], int]:
    if pos >= len(data):
        return None, pos
    tag = data[pos]
    pos += 1
    if tag & _TAG_VALUE_MASK != _TAG_VALUE_CONT:
        return (tag or None), pos
    if pos >= len(data):
        return None, pos
    return (tag << 8) | data[pos], pos + 1


def _take_len(data: bytes, pos: int) -> Tuple[Optional[int], int]:
    if pos >= len(data):
        return None, pos
    first = data[pos]
    pos += 1
    if not first & _LEN_LONG:
        return first, pos
    count = first & _LEN_MASK
    if len(data) - pos < count or count != 1:
        return None, pos
    return data[pos], pos + 1


def parse_tl(data: bytes) -> Tuple[int, int, bytes]:
    """Read a tag and a length from ``data``.

    Returns ``(tag, length, rest)``; the value itself is not consumed.
    """
    data = bytes(data)
    tag, pos = _take_tag(data, 0)
    if tag is None:
        raise TlvError("invalid tag", data[pos:])
    length, pos = _take_len(data, pos)
    if length is None:
        raise TlvError("invalid length", data[pos:])
    return tag, length, data[pos:]


@dataclass
class TlvNode:
    """A TLV object together with the objects nested in it."""

    tlv: Tlv
    children: list = field(default_factory=list)

    @property
    def tag(self) -> int:
        return self.tlv.tag

    @property
    def value(self) -> bytes:
        return self.tlv.value

    def walk(self) -> Iterator[Tlv]:
        """Yield this object and everything nested in it, depth first."""
        yield self.tlv
        for child in self.children:
            yield from child.walk()


def _parse_one(data: bytes, pos: int) -> Tuple[TlvNode, int]:
    tag, pos = _take_tag(data, pos)
    if tag is None:
        raise TlvError("invalid tag", data[pos:])
    length, pos = _take_len(data, pos)
    if length is None:
        raise TlvError("invalid length", data[pos:])
    if length > len(data) - pos:
        raise TlvError(
            f"tag {tag:x} claims {length} bytes, only {len(data) - pos} left",
            data[pos:],
        )
    node = TlvNode(Tlv(tag, data[pos:pos + length]))
    pos += length
    if node.tlv.is_constructed() and length:
        node.children = _parse_sequence(node.value)
    return node, pos


def _parse_sequence(data: bytes) -> list:
    nodes = []
    pos = 0
    while pos < len(data):
        node, pos = _parse_one(data, pos)
        nodes.append(node)
    return nodes


class TlvDb:
    """An ordered collection of TLV trees searched depth first."""

    def __init__(self, nodes: Iterable[TlvNode] = ()) -> None:
        self.nodes = list(nodes)

    @classmethod
    def parse(cls, data: bytes) -> "TlvDb":
        """Parse exactly one top-level TLV object, with its children."""
        data = bytes(data)
        if not data:
            raise TlvError("no data to parse")
        node, pos = _parse_one(data, 0)
        if pos != len(data):
            raise TlvError("trailing data after TLV object", data[pos:])
        return cls([node])

    @classmethod
    def fixed(cls, tag: int, value: bytes) -> "TlvDb":
        """Build a collection holding a single primitive object."""
        return cls([TlvNode(Tlv(tag, value))])

    def add(self, other: Optional["TlvDb"]) -> None:
        """Append the trees of ``other``; ``None`` is ignored."""
        if other is not None:
            self.nodes.extend(other.nodes)

    def visit(self) -> Iterator[Tlv]:
        """Yield every object, parents before their children."""
        for node in self.nodes:
            yield from node.walk()

    def __iter__(self) -> Iterator[Tlv]:
        return self.visit()

    def get(self, tag: int) -> Optional[Tlv]:
        """Return the first object with ``tag``, or ``None``."""
        return next(self.find_all(tag), None)

    def find_all(self, tag: int) -> Iterator[Tlv]:
        """Yield every object with ``tag`` in traversal order."""
        return (tlv for tlv in self.visit() if tlv.tag == tag)

    def __repr__(self) -> str:
        return f"TlvDb({self.nodes!r})"