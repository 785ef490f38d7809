import random

import pytest

from osmimport.store import KeyValueStore, NotFoundError, id_from_key, id_to_key


def _failing_pairs():
    yield b"k1", b"v1"
    raise RuntimeError("boom")


def test_create_cache(tmp_path):
    path = tmp_path / "cache"
    with KeyValueStore(path):
        assert path.is_dir()


def test_ids_round_trip():
    rng = random.Random(42)
    for _ in range(10000):
        id_ = rng.randrange(0, 1 << 63)
        assert id_from_key(id_to_key(id_)) == id_
    for id_ in (-1, -(1 << 63), (1 << 63) - 1, 0):
        assert id_from_key(id_to_key(id_)) == id_


def test_keys_in_lexical_order():
    rng = random.Random(7)
    id_ = 0
    prev = b""
    for _ in range(100):
        id_ += rng.randrange(0, 10**12)
        key = id_to_key(id_)
        assert prev <= key
        prev = key


def test_key_format():
    assert id_to_key(1) == b"\x00" * 7 + b"\x01"
    assert id_to_key(-1) == b"\xff" * 8
    assert len(id_to_key(1234)) == 8


def test_key_errors():
    with pytest.raises(OverflowError):
        id_to_key(1 << 63)
    with pytest.raises(ValueError):
        id_from_key(b"\x00\x01")


def test_id_from_longer_key_uses_prefix():
    assert id_from_key(id_to_key(99) + b"extra") == 99


def test_not_found_error_message():
    assert str(NotFoundError()) == "not found"


def test_put_get_delete(tmp_path):
    with KeyValueStore(tmp_path) as store:
        assert store.get(b"a") is None
        store.put(b"a", b"1")
        assert store.get(b"a") == b"1"
        store.put(b"a", b"2")
        assert store.get(b"a") == b"2"
        store.delete(b"a")
        assert store.get(b"a") is None
        store.delete(b"missing")
        assert store.get(b"missing") is None


def test_write_batch_and_items_order(tmp_path):
    with KeyValueStore(tmp_path) as store:
        store.write_batch([(id_to_key(3), b"c"), (id_to_key(1), b"a"), (id_to_key(2), b"b")])
        assert list(store.items()) == [
            (id_to_key(1), b"a"),
            (id_to_key(2), b"b"),
            (id_to_key(3), b"c"),
        ]


def test_write_batch_rolls_back_on_error(tmp_path):
    with KeyValueStore(tmp_path) as store:
        with pytest.raises(RuntimeError):
            store.write_batch(_failing_pairs())
        assert store.get(b"k1") is None


def test_items_over_many_chunks(tmp_path):
    with KeyValueStore(tmp_path) as store:
        store.write_batch((id_to_key(i), str(i).encode()) for i in range(2500))
        result = list(store.items())
    assert len(result) == 2500
    assert [id_from_key(k) for k, _ in result] == list(range(2500))
    assert result[1234][1] == b"1234"


def test_persistence(tmp_path):
    store = KeyValueStore(tmp_path)
    store.put(b"key", b"value")
    store.close()
    with KeyValueStore(tmp_path) as reopened:
        assert reopened.get(b"key") == b"value"


def test_closed_store_raises(tmp_path):
    store = KeyValueStore(tmp_path)
    store.close()
    store.close()
    with pytest.raises(ValueError):
        store.get(b"a")
    with pytest.raises(ValueError):
        store.put(b"a", b"b")