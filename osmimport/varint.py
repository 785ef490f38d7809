"""Variable-length integer encoding (LEB128 with zig-zag for signed values)."""

from __future__ import annotations

MAX_VARINT_LEN64 = 10

_UINT64_LIMIT = 1 << 64
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1


def encode_uvarint(value: int) -> bytes:
    """Encode an unsigned 64-bit integer as a varint."""
    if not 0 <= value < _UINT64_LIMIT:
        raise OverflowError(f"value {value} out of range for uvarint")
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def encode_varint(value: int) -> bytes:
    """Encode a signed 64-bit integer as a zig-zag varint."""
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise OverflowError(f"value {value} out of range for varint")
    return encode_uvarint((value << 1) ^ (value >> 63))


def decode_uvarint(buf: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode an unsigned varint at offset.

    Returns the value and the offset just behind it. Raises ValueError when
    the buffer ends inside the varint or the value overflows 64 bits.
    """
    result = 0
    shift = 0
    for i in range(MAX_VARINT_LEN64):
        pos = offset + i
        if pos >= len(buf):
            raise ValueError("truncated varint")
        byte = buf[pos]
        if byte < 0x80:
            if i == MAX_VARINT_LEN64 - 1 and byte > 1:
                raise ValueError("varint overflows 64 bits")
            return result | (byte << shift), pos + 1
        result |= (byte & 0x7F) << shift
        shift += 7
    raise ValueError("varint overflows 64 bits")


def decode_varint(buf: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a signed zig-zag varint at offset; see decode_uvarint."""
    ux, pos = decode_uvarint(buf, offset)
    value = ux >> 1
    if ux & 1:
        value = ~value
    return value, pos