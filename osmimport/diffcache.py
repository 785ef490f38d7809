"""Reference indices that map nodes and ways to the ways and relations using them."""

from __future__ import annotations

import os
import shutil
import threading
from bisect import bisect_left
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .cacheconfig import CacheOptions, load_cache_options
from .element import IDRefs
from .idrefs_codec import marshal_idrefs_bunch, unmarshal_idrefs_bunch
from .osm import Member, MemberType, Way
from .store import KeyValueStore, id_to_key

# Number of bunches collected during a linear import before they are written.
BUFFER_SIZE = 64 * 1024
# Number of IDs that share one stored bunch.
BUNCH_SIZE = 64

_PARTS = ("coords_index", "coords_rel_index", "ways_index")


def _id_of(item: IDRefs) -> int:
    return item.id


def _bunch_id(id_: int) -> int:
    quotient = abs(id_) // BUNCH_SIZE
    return -quotient if id_ < 0 else quotient


@dataclass
class IDRefBunch:
    """IDRefs that are stored together under one bunch ID, sorted by ID."""

    id: int = 0
    id_refs: list[IDRefs] = field(default_factory=list)

    def get(self, id_: int) -> Optional[IDRefs]:
        """Return the IDRefs for id_, or None."""
        i = bisect_left(self.id_refs, id_, key=_id_of)
        if i < len(self.id_refs) and self.id_refs[i].id == id_:
            return self.id_refs[i]
        return None

    def get_create(self, id_: int) -> IDRefs:
        """Return the IDRefs for id_, inserting an empty one if missing."""
        i = bisect_left(self.id_refs, id_, key=_id_of)
        if i < len(self.id_refs) and self.id_refs[i].id == id_:
            return self.id_refs[i]
        item = IDRefs(id=id_)
        self.id_refs.insert(i, item)
        return item


class IDRefBunches(dict[int, IDRefBunch]):
    """Bunches indexed by their bunch ID."""

    def add(self, bunch_id: int, id_: int, ref: int) -> None:
        """Add ref to the refs of id_ in the given bunch."""
        bunch = self.get(bunch_id)
        if bunch is None:
            bunch = IDRefBunch(id=bunch_id)
            self[bunch_id] = bunch
        bunch.get_create(id_).add(ref)


def merge_bunch(bunch: list[IDRefs], new_bunch: Iterable[IDRefs]) -> list[IDRefs]:
    """Merge sorted new IDRefs into a sorted bunch.

    Refs of existing IDs are added; a new entry with no refs deletes the
    existing entry of that ID.
    """
    result = list(bunch)
    last = 0
    for new in new_bunch:
        for i in range(last, len(result)):
            current = result[i]
            if current.id == new.id:
                if not new.refs:
                    del result[i]
                else:
                    for ref in new.refs:
                        current.add(ref)
                last = i
                break
            if current.id > new.id:
                if new.refs:
                    result.insert(i, new)
                last = i
                break
        else:
            if new.refs:
                result.append(new)
                last = len(result) - 1
    return result


class RefIndex:
    """Index from an ID to a sorted list of referencing IDs."""

    _section = "coords_index"

    def __init__(self, path: str | os.PathLike[str], options: Optional[CacheOptions] = None) -> None:
        if options is None:
            options = getattr(load_cache_options(), self._section)
        self.store = KeyValueStore(path, options)
        self.linear_import = False
        self._buffer = IDRefBunches()
        self._lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _check_not_linear(self, operation: str) -> None:
        if self.linear_import:
            raise RuntimeError(f"{operation} not supported in linear import mode")

    def _load(self, key: bytes) -> Optional[list[IDRefs]]:
        data = self.store.get(key)
        if data is None:
            return None
        return unmarshal_idrefs_bunch(data)

    def get(self, id_: int) -> list[int]:
        """Return the refs of id_; raises RuntimeError during a linear import."""
        self._check_not_linear("get")
        id_refs = self._load(id_to_key(_bunch_id(id_)))
        if id_refs is not None:
            item = IDRefBunch(_bunch_id(id_), id_refs).get(id_)
            if item is not None:
                return list(item.refs)
        return []

    def add(self, id_: int, ref: int) -> None:
        """Add ref to id_ directly in the store."""
        key = id_to_key(_bunch_id(id_))
        bunch = IDRefBunch(_bunch_id(id_), self._load(key) or [])
        bunch.get_create(id_).add(ref)
        self.store.put(key, marshal_idrefs_bunch(bunch.id_refs))

    def _rewrite(self, id_: int, ref: Optional[int]) -> None:
        key = id_to_key(_bunch_id(id_))
        id_refs = self._load(key)
        if id_refs is None:
            return
        item = IDRefBunch(_bunch_id(id_), id_refs).get(id_)
        if item is None:
            return
        if ref is None:
            item.refs = []
        else:
            item.delete(ref)
        self.store.put(key, marshal_idrefs_bunch(id_refs))

    def delete_ref(self, id_: int, ref: int) -> None:
        """Remove ref from id_; raises RuntimeError during a linear import."""
        self._check_not_linear("delete")
        self._rewrite(id_, ref)

    def delete(self, id_: int) -> None:
        """Remove all refs of id_; raises RuntimeError during a linear import."""
        self._check_not_linear("delete")
        self._rewrite(id_, None)

    def _add_indexed(self, id_: int, ref: int) -> None:
        if not self.linear_import:
            self.add(id_, ref)
            return
        with self._lock:
            self._buffer.add(_bunch_id(id_), id_, ref)
            if len(self._buffer) >= BUFFER_SIZE:
                self._write_buffer()

    def _load_merge_marshal(self, key: bytes, new_bunch: list[IDRefs]) -> bytes:
        existing = self._load(key)
        merged = new_bunch if existing is None else merge_bunch(existing, new_bunch)
        return marshal_idrefs_bunch(merged)

    def _write_buffer(self) -> None:
        buffer, self._buffer = self._buffer, IDRefBunches()
        if not buffer:
            return
        batch = [
            (id_to_key(bunch_id), self._load_merge_marshal(id_to_key(bunch_id), bunch.id_refs))
            for bunch_id, bunch in buffer.items()
        ]
        self.store.write_batch(batch)

    def set_linear_import(self, value: bool) -> None:
        """Switch linear import mode; leaving it writes all buffered refs."""
        if value == self.linear_import:
            return
        if not value:
            with self._lock:
                self._write_buffer()
        self.linear_import = value

    def flush(self) -> None:
        """Write buffered refs of a linear import."""
        if self.linear_import:
            with self._lock:
                self._write_buffer()

    def close(self) -> None:
        """Write buffered refs and close the store."""
        if self.linear_import:
            self.set_linear_import(False)
        self.store.close()


class CoordsRefIndex(RefIndex):
    """Maps node IDs to the ways that use them."""

    _section = "coords_index"

    def add_from_way(self, way: Way) -> None:
        """Record the way as a user of each of its nodes."""
        for node in way.nodes:
            self._add_indexed(node.id, way.id)

    def delete_from_way(self, way: Way) -> None:
        """Remove the way from each of its nodes; raises RuntimeError during a linear import."""
        self._check_not_linear("delete")
        for node in way.nodes:
            self.delete_ref(node.id, way.id)


class CoordsRelRefIndex(RefIndex):
    """Maps node IDs to the relations they are members of."""

    _section = "coords_index"

    def add_from_members(self, rel_id: int, members: Iterable[Member]) -> None:
        """Record the relation for every node member."""
        for member in members:
            if member.type == MemberType.NODE:
                self._add_indexed(member.id, rel_id)


class WaysRefIndex(RefIndex):
    """Maps way IDs to the relations they are members of."""

    _section = "ways_index"

    def add_from_members(self, rel_id: int, members: Iterable[Member]) -> None:
        """Record the relation for every way member."""
        for member in members:
            if member.type == MemberType.WAY:
                self._add_indexed(member.id, rel_id)


class DiffCache:
    """The reference indices needed to apply diffs, living in one directory."""

    def __init__(self, dir_: str | os.PathLike[str], options=None) -> None:
        self.dir = Path(dir_)
        self.options = options
        self.coords: Optional[CoordsRefIndex] = None
        self.coords_rel: Optional[CoordsRelRefIndex] = None
        self.ways: Optional[WaysRefIndex] = None
        self.opened = False

    def __enter__(self) -> "DiffCache":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        """Open all three indices."""
        options = self.options if self.options is not None else load_cache_options()
        try:
            self.coords = CoordsRefIndex(self.dir / "coords_index", options.coords_index)
            self.coords_rel = CoordsRelRefIndex(self.dir / "coords_rel_index", options.coords_index)
            self.ways = WaysRefIndex(self.dir / "ways_index", options.ways_index)
        except BaseException:
            self.close()
            raise
        self.opened = True

    def close(self) -> None:
        """Close every open index."""
        for attr in ("coords", "coords_rel", "ways"):
            index = getattr(self, attr)
            if index is not None:
                index.close()
                setattr(self, attr, None)

    def flush(self) -> None:
        """Write buffered refs of all indices."""
        for index in (self.coords, self.coords_rel, self.ways):
            if index is not None:
                index.flush()

    def exists(self) -> bool:
        """Tell whether the indices were opened or any index is on disk."""
        if self.opened:
            return True
        return any(os.path.lexists(self.dir / part) for part in _PARTS)

    def remove(self) -> None:
        """Close the indices and delete them from disk."""
        if self.opened:
            self.close()
        for part in _PARTS:
            path = self.dir / part
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif os.path.lexists(path):
                path.unlink()