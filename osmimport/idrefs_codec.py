"""Binary encoding of bunches of IDRefs for the diff reference indices."""

from __future__ import annotations

from itertools import accumulate

from .element import IDRefs
from .varint import decode_uvarint, decode_varint, encode_uvarint, encode_varint


def marshal_idrefs_bunch(id_refs: list[IDRefs]) -> bytes:
    """Encode IDRefs: count, delta IDs, ref counts, then all refs delta-encoded."""
    out = bytearray(encode_uvarint(len(id_refs)))
    last_id = 0
    for item in id_refs:
        out += encode_varint(item.id - last_id)
        last_id = item.id
    for item in id_refs:
        out += encode_uvarint(len(item.refs))
    last_ref = 0
    for item in id_refs:
        for ref in item.refs:
            out += encode_varint(ref - last_ref)
            last_ref = ref
    return bytes(out)


def unmarshal_idrefs_bunch(buf: bytes) -> list[IDRefs]:
    """Decode data written by marshal_idrefs_bunch.

    An unreadable length yields an empty list; missing data after that
    raises ValueError.
    """
    try:
        length, offset = decode_uvarint(buf)
    except ValueError:
        return []

    try:
        id_deltas = []
        for _ in range(length):
            delta, offset = decode_varint(buf, offset)
            id_deltas.append(delta)
        counts = []
        for _ in range(length):
            count, offset = decode_uvarint(buf, offset)
            counts.append(count)
        ref_deltas = []
        for _ in range(sum(counts)):
            delta, offset = decode_varint(buf, offset)
            ref_deltas.append(delta)
    except ValueError as exc:
        raise ValueError("no data") from exc

    refs = list(accumulate(ref_deltas))
    result = []
    start = 0
    for item_id, count in zip(accumulate(id_deltas), counts):
        result.append(IDRefs(id=item_id, refs=refs[start:start + count]))
        start += count
    return result