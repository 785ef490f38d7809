"""Coordinates cache that keeps nodes in delta-encoded bunches behind an LRU."""

from __future__ import annotations

import os
import threading
from bisect import bisect_left
from collections import OrderedDict
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from itertools import groupby
from typing import Optional

from .cacheconfig import CoordsCacheOptions, load_cache_options
from .deltacoords import marshal_delta_nodes, unmarshal_delta_nodes
from .osm import Node, Way
from .store import SKIP, KeyValueStore, NotFoundError, id_to_key


def _node_id(node: Node) -> int:
    return node.id


def _find(coords: Sequence[Node], id_: int) -> Node:
    i = bisect_left(coords, id_, key=_node_id)
    if i < len(coords) and coords[i].id == id_:
        node = coords[i]
        # a copy, so callers may reproject it without touching the cache
        return replace(node, tags=dict(node.tags))
    raise NotFoundError()


def remove_skipped_nodes(nodes: Iterable[Node]) -> list[Node]:
    """Return the nodes whose ID is not the skip marker, in order."""
    return [node for node in nodes if node.id != SKIP]


class CoordsBunch:
    """A sorted group of nodes that is stored under one key."""

    def __init__(self, id_: int, coords: Optional[Iterable[Node]] = None) -> None:
        self.id = id_
        self.coords: list[Node] = list(coords or [])
        self.needs_write = False
        self.lock = threading.Lock()

    def _index(self, id_: int) -> int:
        return bisect_left(self.coords, id_, key=_node_id)

    def get_coord(self, id_: int) -> Node:
        """Return a copy of the node; raises NotFoundError if it is missing."""
        return _find(self.coords, id_)

    def delete_coord(self, id_: int) -> None:
        """Remove the node with this ID if present."""
        i = self._index(id_)
        if i < len(self.coords) and self.coords[i].id == id_:
            del self.coords[i]

    def put_coord(self, node: Node) -> None:
        """Insert a single node, replacing a node with the same ID."""
        i = self._index(node.id)
        if i < len(self.coords) and self.coords[i].id == node.id:
            self.coords[i] = node
        else:
            self.coords.insert(i, node)

    def put_coords(self, nodes: Iterable[Node]) -> None:
        """Add many nodes at once; duplicates and updates are not handled."""
        self.coords.extend(nodes)
        self.coords.sort(key=_node_id)


class DeltaCoordsCache:
    """Cache of node coordinates, grouped by ID into bunches."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        options: Optional[CoordsCacheOptions] = None,
    ) -> None:
        if options is None:
            options = load_cache_options().coords
        if options.bunch_size <= 0:
            raise ValueError("bunch size must be positive")
        self.store = KeyValueStore(path, options)
        self.bunch_size = options.bunch_size
        # memory use is roughly capacity * bunch_size * 40 bytes
        self.capacity = options.bunch_cache_capacity
        self.linear_import = False
        self.read_only = False
        self._table: OrderedDict[int, CoordsBunch] = OrderedDict()
        self._lock = threading.Lock()

    def __enter__(self) -> "DeltaCoordsCache":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def set_linear_import(self, value: bool) -> None:
        """Optimise for bulk imports of sorted nodes without updates."""
        self.linear_import = value

    def set_read_only(self, value: bool) -> None:
        """Mark the cache as only read, so lookups release bunches early."""
        self.read_only = value

    def flush(self) -> None:
        """Write all modified bunches and empty the in-memory table."""
        with self._lock:
            for bunch_id, bunch in self._table.items():
                if bunch.needs_write:
                    self._put_coords_packed(bunch_id, bunch.coords)
            self._table.clear()

    def close(self) -> None:
        """Flush pending bunches and close the store."""
        self.flush()
        self.store.close()

    def _bunch_id(self, node_id: int) -> int:
        # division truncating towards zero, as the key layout requires
        quotient = abs(node_id) // self.bunch_size
        return -quotient if node_id < 0 else quotient

    def _put_coords_packed(self, bunch_id: int, nodes: Sequence[Node]) -> None:
        key = id_to_key(bunch_id)
        if not nodes:
            self.store.delete(key)
        else:
            self.store.put(key, marshal_delta_nodes(list(nodes)))

    def _get_coords_packed(self, bunch_id: int) -> list[Node]:
        data = self.store.get(id_to_key(bunch_id))
        if data is None:
            return []
        return unmarshal_delta_nodes(data)

    def _check_capacity(self) -> None:
        while len(self._table) > self.capacity:
            bunch_id, bunch = self._table.popitem(last=False)
            if bunch.needs_write:
                self._put_coords_packed(bunch_id, bunch.coords)

    def check_capacity(self) -> None:
        """Evict least recently used bunches until the table fits its capacity."""
        with self._lock:
            self._check_capacity()

    def _acquire_bunch(self, bunch_id: int) -> CoordsBunch:
        with self._lock:
            bunch = self._table.get(bunch_id)
            needs_get = bunch is None
            if bunch is None:
                bunch = CoordsBunch(bunch_id)
                self._table[bunch_id] = bunch
            else:
                self._table.move_to_end(bunch_id)
            bunch.lock.acquire()
            try:
                self._check_capacity()
            except BaseException:
                bunch.lock.release()
                raise
        if needs_get:
            try:
                bunch.coords = self._get_coords_packed(bunch_id)
            except BaseException:
                bunch.lock.release()
                raise
        return bunch

    @contextmanager
    def _bunch(self, bunch_id: int) -> Iterator[CoordsBunch]:
        bunch = self._acquire_bunch(bunch_id)
        try:
            yield bunch
        finally:
            bunch.lock.release()

    def get_coord(self, id_: int) -> Node:
        """Return the cached node; raises NotFoundError if it is missing."""
        if self.read_only:
            with self._bunch(self._bunch_id(id_)) as bunch:
                coords = bunch.coords
            return _find(coords, id_)
        with self._bunch(self._bunch_id(id_)) as bunch:
            return bunch.get_coord(id_)

    def delete_coord(self, id_: int) -> None:
        """Remove a node from the cache."""
        with self._bunch(self._bunch_id(id_)) as bunch:
            bunch.delete_coord(id_)
            bunch.needs_write = True

    def fill_way(self, way: Optional[Way]) -> None:
        """Resolve the way's refs into nodes; raises NotFoundError if one is missing."""
        if way is None:
            return
        nodes: list[Node] = []
        for bunch_id, refs in groupby(way.refs, key=self._bunch_id):
            with self._bunch(bunch_id) as bunch:
                nodes.extend(bunch.get_coord(ref) for ref in refs)
        way.nodes = nodes

    def _put_into_bunch(self, bunch_id: int, nodes: Sequence[Node]) -> None:
        with self._bunch(bunch_id) as bunch:
            if self.linear_import:
                bunch.put_coords(nodes)
            else:
                # single inserts to handle updated coords
                for node in nodes:
                    bunch.put_coord(node)
            bunch.needs_write = True

    def put_coords(self, nodes: Iterable[Node]) -> None:
        """Store nodes, which must be sorted by ID; skipped nodes are ignored."""
        nodes = remove_skipped_nodes(nodes)
        if not nodes:
            return
        total = len(nodes)
        start = 0
        current = self._bunch_id(nodes[0].id)
        for i, node in enumerate(nodes):
            bunch_id = self._bunch_id(node.id)
            if bunch_id == current:
                continue
            run = nodes[start:i]
            if self.linear_import and self.bunch_size < i < total - self.bunch_size:
                # away from the edges of the batch no other writer touches this bunch
                self._put_coords_packed(current, run)
            else:
                self._put_into_bunch(current, run)
            current = bunch_id
            start = i
        self._put_into_bunch(current, nodes[start:])

    def first_ref_is_cached(self, refs: Sequence[int]) -> bool:
        """Tell whether the first ref of a way is in the cache."""
        if not refs:
            return False
        try:
            self.get_coord(refs[0])
        except NotFoundError:
            return False
        return True