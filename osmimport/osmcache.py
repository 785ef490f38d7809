"""The set of element caches used during an import."""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

from .cacheconfig import OSMCacheOptions, load_cache_options
from .coords import DeltaCoordsCache
from .element_caches import NodesCache, RelationsCache, WaysCache
from .osm import Member, MemberType
from .store import NotFoundError

_PARTS = ("coords", "nodes", "ways", "relations", "inserted_ways")


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif os.path.lexists(path):
        path.unlink()


class OSMCache:
    """Coords, nodes, ways and relations caches living in one directory."""

    def __init__(self, dir_: str | os.PathLike[str], options: Optional[OSMCacheOptions] = None) -> None:
        self.dir = Path(dir_)
        self.options = options
        self.coords: Optional[DeltaCoordsCache] = None
        self.nodes: Optional[NodesCache] = None
        self.ways: Optional[WaysCache] = None
        self.relations: Optional[RelationsCache] = None
        self.opened = False

    def __enter__(self) -> "OSMCache":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        """Create the directory and open all caches."""
        options = self.options if self.options is not None else load_cache_options()
        self.dir.mkdir(parents=True, exist_ok=True)
        try:
            self.coords = DeltaCoordsCache(self.dir / "coords", options.coords)
            self.nodes = NodesCache(self.dir / "nodes", options.nodes)
            self.ways = WaysCache(self.dir / "ways", options.ways)
            self.relations = RelationsCache(self.dir / "relations", options.relations)
        except BaseException:
            self.close()
            raise
        self.opened = True

    def close(self) -> None:
        """Close every open cache."""
        if self.coords is not None:
            self.coords.close()
            self.coords = None
        if self.nodes is not None:
            self.nodes.close()
            self.nodes = None
        if self.ways is not None:
            self.ways.close()
            self.ways = None
        if self.relations is not None:
            self.relations.close()
            self.relations = None

    def exists(self) -> bool:
        """Tell whether the caches were opened or any cache data is on disk."""
        if self.opened:
            return True
        return any(os.path.lexists(self.dir / part) for part in _PARTS)

    def remove(self) -> None:
        """Close the caches and delete their data from disk."""
        if self.opened:
            self.close()
        for part in _PARTS:
            _remove_path(self.dir / part)

    def first_member_is_cached(self, members: Iterable[Member]) -> bool:
        """Tell whether the first way or node member is cached.

        Also true when there is no member of type way or node.
        """
        for member in members:
            if member.type == MemberType.WAY:
                if self.ways is None:
                    raise ValueError("cache is not open")
                try:
                    self.ways.get_way(member.id)
                except NotFoundError:
                    return False
                return True
            if member.type == MemberType.NODE:
                if self.coords is None:
                    raise ValueError("cache is not open")
                try:
                    self.coords.get_coord(member.id)
                except NotFoundError:
                    return False
                return True
        return True