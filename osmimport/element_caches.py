"""Caches for nodes, ways and relations keyed by their IDs."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable, Iterator
from typing import Optional, TypeVar

from .cacheconfig import CacheOptions, load_cache_options
from .osm import Member, MemberType, Node, Relation, Way
from .serialize import (
    marshal_node,
    marshal_relation,
    marshal_way,
    unmarshal_node,
    unmarshal_relation,
    unmarshal_way,
)
from .store import SKIP, KeyValueStore, NotFoundError, id_from_key, id_to_key

_E = TypeVar("_E", Node, Way, Relation)


class _ElementCache:
    _section = "nodes"

    def __init__(self, path: str | os.PathLike[str], options: Optional[CacheOptions] = None) -> None:
        if options is None:
            options = getattr(load_cache_options(), self._section)
        self.store = KeyValueStore(path, options)

    def close(self) -> None:
        """Close the underlying store."""
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get(self, id_: int, decode: Callable[[bytes], _E]) -> _E:
        data = self.store.get(id_to_key(id_))
        if data is None:
            raise NotFoundError()
        element = decode(data)
        element.id = id_
        return element

    def _iter(self, decode: Callable[[bytes], _E]) -> Iterator[_E]:
        for key, value in self.store.items():
            element = decode(value)
            element.id = id_from_key(key)
            yield element


class NodesCache(_ElementCache):
    """Cache of tagged nodes."""

    _section = "nodes"

    def put_node(self, node: Node) -> None:
        """Store a node; skipped and untagged nodes are ignored."""
        if node.id == SKIP or not node.tags:
            return
        self.store.put(id_to_key(node.id), marshal_node(node))

    def put_nodes(self, nodes: Iterable[Node]) -> int:
        """Store tagged nodes in one batch and return how many were stored."""
        batch = [
            (id_to_key(node.id), marshal_node(node))
            for node in nodes
            if node.id != SKIP and node.tags
        ]
        self.store.write_batch(batch)
        return len(batch)

    def get_node(self, id_: int) -> Node:
        """Return the node; raises NotFoundError if it is not cached."""
        return self._get(id_, unmarshal_node)

    def delete_node(self, id_: int) -> None:
        """Remove a node from the cache."""
        self.store.delete(id_to_key(id_))

    def iter(self) -> Iterator[Node]:
        """Yield all cached nodes ordered by key."""
        return self._iter(unmarshal_node)


class WaysCache(_ElementCache):
    """Cache of ways."""

    _section = "ways"

    def put_way(self, way: Way) -> None:
        """Store a way unless it is skipped."""
        if way.id == SKIP:
            return
        self.store.put(id_to_key(way.id), marshal_way(way))

    def put_ways(self, ways: Iterable[Way]) -> None:
        """Store ways in one batch, ignoring skipped ways."""
        self.store.write_batch(
            (id_to_key(way.id), marshal_way(way)) for way in ways if way.id != SKIP
        )

    def get_way(self, id_: int) -> Way:
        """Return the way; raises NotFoundError if it is not cached."""
        return self._get(id_, unmarshal_way)

    def delete_way(self, id_: int) -> None:
        """Remove a way from the cache."""
        self.store.delete(id_to_key(id_))

    def iter(self) -> Iterator[Way]:
        """Yield all cached ways ordered by key."""
        return self._iter(unmarshal_way)

    def fill_members(self, members: Optional[list[Member]]) -> None:
        """Attach the cached way to every way member; raises NotFoundError if one is missing."""
        for member in members or ():
            if member.type == MemberType.WAY:
                member.way = self.get_way(member.id)


class RelationsCache(_ElementCache):
    """Cache of relations."""

    _section = "relations"

    def put_relation(self, relation: Relation) -> None:
        """Store a relation unless it is skipped."""
        if relation.id == SKIP:
            return
        self.store.put(id_to_key(relation.id), marshal_relation(relation))

    def put_relations(self, rels: Iterable[Relation]) -> None:
        """Store tagged relations in one batch."""
        self.store.write_batch(
            (id_to_key(rel.id), marshal_relation(rel))
            for rel in rels
            if rel.id != SKIP and rel.tags
        )

    def get_relation(self, id_: int) -> Relation:
        """Return the relation; raises NotFoundError if it is not cached."""
        return self._get(id_, unmarshal_relation)

    def delete_relation(self, id_: int) -> None:
        """Remove a relation from the cache."""
        self.store.delete(id_to_key(id_))

    def iter(self) -> Iterator[Relation]:
        """Yield all cached relations ordered by key."""
        return self._iter(unmarshal_relation)