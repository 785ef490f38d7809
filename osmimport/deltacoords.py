"""Delta encoding of node IDs and coordinates for the coords cache."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from itertools import accumulate

from .osm import Node
from .varint import decode_uvarint, decode_varint, encode_uvarint, encode_varint

COORD_FACTOR = 11930464.7083  # ((2<<31)-1)/360.0

_ERROR = "unmarshal delta coords: missing data for varint or overflow"


def coord_to_int(coord: float) -> int:
    """Map a WGS84 coordinate to an unsigned 32-bit integer."""
    return int((coord + 180.0) * COORD_FACTOR) & 0xFFFFFFFF


def int_to_coord(coord: int) -> float:
    """Map an unsigned 32-bit integer back to a WGS84 coordinate."""
    return coord / COORD_FACTOR - 180.0


def _deltas(values: Iterable[int]) -> Iterator[int]:
    last = 0
    for value in values:
        yield value - last
        last = value


def marshal_delta_nodes(nodes: list[Node]) -> bytes:
    """Encode node IDs and coordinates as three delta-encoded varint runs."""
    out = bytearray(encode_uvarint(len(nodes)))
    columns = (
        (node.id for node in nodes),
        (coord_to_int(node.long) for node in nodes),
        (coord_to_int(node.lat) for node in nodes),
    )
    for column in columns:
        for delta in _deltas(column):
            out += encode_varint(delta)
    return bytes(out)


def _read_column(buf: bytes, offset: int, count: int) -> tuple[list[int], int]:
    deltas = []
    for _ in range(count):
        delta, offset = decode_varint(buf, offset)
        deltas.append(delta)
    return list(accumulate(deltas)), offset


def unmarshal_delta_nodes(buf: bytes) -> list[Node]:
    """Decode nodes written by marshal_delta_nodes.

    Raises ValueError when the data is truncated or a varint overflows.
    """
    try:
        length, offset = decode_uvarint(buf)
        ids, offset = _read_column(buf, offset, length)
        longs, offset = _read_column(buf, offset, length)
        lats, offset = _read_column(buf, offset, length)
    except ValueError as exc:
        raise ValueError(_ERROR) from exc
    return [
        Node(
            id=node_id,
            long=int_to_coord(long & 0xFFFFFFFF),
            lat=int_to_coord(lat & 0xFFFFFFFF),
        )
        for node_id, long, lat in zip(ids, longs, lats)
    ]