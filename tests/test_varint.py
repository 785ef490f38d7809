import pytest

from osmimport.varint import (
    MAX_VARINT_LEN64,
    decode_uvarint,
    decode_varint,
    encode_uvarint,
    encode_varint,
)

UNSIGNED = [0, 1, 127, 128, 255, 300, 16383, 16384, 2**32, 2**63, 2**64 - 1]
SIGNED = [0, 1, -1, 63, -64, 64, -65, 2**31, -(2**31), 2**63 - 1, -(2**63)]


def test_uvarint_known_encoding():
    assert encode_uvarint(300) == b"\xac\x02"


def test_varint_zigzag_encoding():
    assert encode_varint(-1) == b"\x01"
    assert encode_varint(1) == b"\x02"


@pytest.mark.parametrize("value", UNSIGNED)
def test_uvarint_round_trip(value):
    data = encode_uvarint(value)
    assert decode_uvarint(data) == (value, len(data))


@pytest.mark.parametrize("value", SIGNED)
def test_varint_round_trip(value):
    data = encode_varint(value)
    assert decode_varint(data) == (value, len(data))


def test_max_length():
    assert len(encode_uvarint(2**64 - 1)) == MAX_VARINT_LEN64
    assert len(encode_varint(-(2**63))) == MAX_VARINT_LEN64


def test_small_values_take_one_byte():
    assert len(encode_uvarint(127)) == 1
    assert len(encode_uvarint(128)) == 2


def test_decode_with_offset_sequence():
    data = b"".join(encode_varint(v) for v in SIGNED)
    offset = 0
    decoded = []
    for _ in SIGNED:
        value, offset = decode_varint(data, offset)
        decoded.append(value)
    assert decoded == SIGNED
    assert offset == len(data)


def test_truncated_raises():
    data = encode_uvarint(2**40)
    with pytest.raises(ValueError):
        decode_uvarint(data[:-1])
    with pytest.raises(ValueError):
        decode_uvarint(b"")


def test_overflow_raises():
    with pytest.raises(ValueError):
        decode_uvarint(b"\xff" * 9 + b"\x02")
    with pytest.raises(ValueError):
        decode_uvarint(b"\xff" * 11)


def test_encode_out_of_range():
    with pytest.raises(OverflowError):
        encode_uvarint(-1)
    with pytest.raises(OverflowError):
        encode_uvarint(2**64)
    with pytest.raises(OverflowError):
        encode_varint(2**63)