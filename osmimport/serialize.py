"""Binary serialization of nodes, ways and relations for the element caches."""

from __future__ import annotations

from itertools import accumulate, pairwise

from .deltacoords import coord_to_int, int_to_coord
from .osm import Member, MemberType, Node, Relation, Way
from .tags import tags_as_array, tags_from_array
from .varint import decode_uvarint, decode_varint, encode_uvarint, encode_varint


def delta_pack(data: list[int]) -> list[int]:
    """Return data with every value after the first replaced by its delta."""
    if not data:
        return []
    return [data[0], *(b - a for a, b in pairwise(data))]


def delta_unpack(data: list[int]) -> list[int]:
    """Reverse delta_pack."""
    return list(accumulate(data))


def _encode_string(text: str) -> bytes:
    raw = text.encode("utf-8")
    return encode_uvarint(len(raw)) + raw


def _encode_strings(strings: list[str]) -> bytes:
    return encode_uvarint(len(strings)) + b"".join(_encode_string(s) for s in strings)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def uvarint(self) -> int:
        value, self.pos = decode_uvarint(self.data, self.pos)
        return value

    def varint(self) -> int:
        value, self.pos = decode_varint(self.data, self.pos)
        return value

    def string(self) -> str:
        length = self.uvarint()
        end = self.pos + length
        if end > len(self.data):
            raise ValueError("truncated string")
        text = self.data[self.pos:end].decode("utf-8")
        self.pos = end
        return text

    def strings(self) -> list[str]:
        return [self.string() for _ in range(self.uvarint())]

    def finish(self) -> None:
        if self.pos != len(self.data):
            raise ValueError("trailing data")


def marshal_node(node: Node) -> bytes:
    """Serialize coordinates and tags of a node (the ID is the cache key)."""
    return (
        encode_uvarint(coord_to_int(node.long))
        + encode_uvarint(coord_to_int(node.lat))
        + _encode_strings(tags_as_array(node.tags))
    )


def unmarshal_node(data: bytes) -> Node:
    """Deserialize a node; its ID is left at 0. Raises ValueError on bad data."""
    reader = _Reader(data)
    long = int_to_coord(reader.uvarint())
    lat = int_to_coord(reader.uvarint())
    tags = tags_from_array(reader.strings())
    reader.finish()
    return Node(long=long, lat=lat, tags=tags)


def marshal_way(way: Way) -> bytes:
    """Serialize refs (delta-encoded) and tags of a way."""
    packed = delta_pack(way.refs)
    return (
        encode_uvarint(len(packed))
        + b"".join(encode_varint(ref) for ref in packed)
        + _encode_strings(tags_as_array(way.tags))
    )


def unmarshal_way(data: bytes) -> Way:
    """Deserialize a way; its ID is left at 0. Raises ValueError on bad data."""
    reader = _Reader(data)
    packed = [reader.varint() for _ in range(reader.uvarint())]
    tags = tags_from_array(reader.strings())
    reader.finish()
    return Way(refs=delta_unpack(packed), tags=tags)


def marshal_relation(relation: Relation) -> bytes:
    """Serialize members and tags of a relation."""
    out = bytearray(encode_uvarint(len(relation.members)))
    for member in relation.members:
        out += encode_varint(member.id)
        out += encode_uvarint(int(member.type))
        out += _encode_string(member.role)
    out += _encode_strings(tags_as_array(relation.tags))
    return bytes(out)


def unmarshal_relation(data: bytes) -> Relation:
    """Deserialize a relation; its ID is left at 0. Raises ValueError on bad data."""
    reader = _Reader(data)
    members = []
    for _ in range(reader.uvarint()):
        member_id = reader.varint()
        member_type = MemberType(reader.uvarint())
        role = reader.string()
        members.append(Member(id=member_id, type=member_type, role=role))
    tags = tags_from_array(reader.strings())
    reader.finish()
    return Relation(members=members, tags=tags)