"""Collecting and writing lists of map tiles touched by changed geometries."""

from __future__ import annotations

import math
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, Sequence, TextIO

from .osm import Node

_POLE = 6378137 * math.pi  # 20037508.342789244

MERC_BBOX = (-_POLE, -_POLE, _POLE, _POLE)

_MERC_RES = tuple(2 * _POLE / 256 / 2**level for level in range(20))

# fraction of a tile that is added as a padding around a single node
_TILE_PADDING = 0.2
# a closed geometry is expired as a box once it covers fewer tiles than this
_MAX_BOX_TILES = 64
# an open geometry is expired along its line once its bbox covers fewer tiles than this
_MAX_LINE_TILES = 500


class _Expireor(Protocol):
    def expire(self, long: float, lat: float) -> None: ...

    def expire_nodes(self, nodes: Sequence[Node], closed: bool) -> None: ...


def _wgs_to_merc(long: float, lat: float) -> tuple[float, float]:
    x = long * _POLE / 180.0
    y = math.log(math.tan((90.0 + lat) * math.pi / 360.0)) / math.pi * _POLE
    return x, y


def _merc_to_wgs(x: float, y: float) -> tuple[float, float]:
    long = 180.0 * x / _POLE
    lat = 180.0 / math.pi * (2 * math.atan(math.exp((y / _POLE) * math.pi)) - math.pi / 2)
    return long, lat


def expire_projected_nodes(expireor: _Expireor, nodes: Sequence[Node], srid: int, closed: bool) -> None:
    """Expire nodes given in EPSG:4326 or EPSG:3857; raises ValueError for other SRIDs."""
    if srid == 4326:
        expireor.expire_nodes(nodes, closed)
    elif srid == 3857:
        converted = []
        for node in nodes:
            long, lat = _merc_to_wgs(node.long, node.lat)
            converted.append(Node(long=long, lat=lat))
        expireor.expire_nodes(converted, closed)
    else:
        raise ValueError(f"unsupported srid {srid}")


def expire_projected_node(expireor: _Expireor, node: Node, srid: int) -> None:
    """Expire one node given in EPSG:4326 or EPSG:3857; raises ValueError for other SRIDs."""
    if srid == 4326:
        expireor.expire(node.long, node.lat)
    elif srid == 3857:
        expireor.expire(*_merc_to_wgs(node.long, node.lat))
    else:
        raise ValueError(f"unsupported srid {srid}")


def _tile_coord(long: float, lat: float, zoom: int) -> tuple[float, float]:
    x, y = _wgs_to_merc(long, lat)
    res = _MERC_RES[zoom]
    x = x - MERC_BBOX[0]
    y = MERC_BBOX[3] - y
    return x / (res * 256), y / (res * 256)


@dataclass(frozen=True)
class _BBox:
    minx: float = math.inf
    miny: float = math.inf
    maxx: float = -math.inf
    maxy: float = -math.inf

    @property
    def is_empty(self) -> bool:
        return self.minx > self.maxx or self.miny > self.maxy


def _nodes_bbox(nodes: Sequence[Node]) -> _BBox:
    present = [node for node in nodes if not (node.lat == 0 and node.long == 0)]
    if not present:
        return _BBox()
    return _BBox(
        minx=min(node.long for node in present),
        miny=min(node.lat for node in present),
        maxx=max(node.long for node in present),
        maxy=max(node.lat for node in present),
    )


def _num_bbox_tiles(box: _BBox, zoom: int) -> int:
    x1, y1 = _tile_coord(box.minx, box.maxy, zoom)
    x2, y2 = _tile_coord(box.maxx, box.miny, zoom)
    return int(abs((x2 - x1 + 1) * (y2 - y1 + 1)))


def _bresenham(x1: float, y1: float, x2: float, y2: float) -> list[tuple[int, int]]:
    tiles: list[tuple[int, int]] = []
    dx = abs(x2 - x1)
    sx = 1.0 if x2 - x1 > 0 else -1.0
    dy = abs(y2 - y1)
    sy = 1.0 if y2 - y1 > 0 else -1.0

    steep = dy > dx
    if steep:
        x1, y1 = y1, x1
        dx, dy = dy, dx
        sx, sy = sy, sx

    e = 2 * dy - dx
    step = 0.0
    while step < dx:
        if steep:
            tiles.append((int(y1), int(x1)))
        else:
            tiles.append((int(x1), int(y1)))
        while e >= 0:
            y1 += sy
            e -= 2 * dx
        x1 += sx
        e += 2 * dy
        step += 1
    tiles.append((int(x2), int(y2)))
    return tiles


class TileList:
    """Set of expired tiles per zoom level, written to timestamped files."""

    def __init__(self, zoom: int, out: str | os.PathLike[str] = "") -> None:
        if not 0 <= zoom < len(_MERC_RES):
            raise ValueError(f"zoom level {zoom} out of range")
        self.max_zoom = zoom
        self.out = out
        self._lock = threading.Lock()
        self.tiles: list[set[tuple[int, int]]] = self._empty_levels()

    def _empty_levels(self) -> list[set[tuple[int, int]]]:
        return [set() for _ in range(self.max_zoom + 1)]

    def expire(self, long: float, lat: float) -> None:
        """Expire the tiles at and around a single point."""
        self._add_coord(long, lat)

    def expire_nodes(self, nodes: Sequence[Node], closed: bool) -> None:
        """Expire the tiles of a line or polygon, picking a coarser zoom for large ones."""
        if not nodes:
            return
        box = _nodes_bbox(nodes)
        for zoom in range(self.max_zoom, 0, -1):
            if closed:
                if box.is_empty:
                    # every node is missing from the cache: nothing to expire
                    return
                if _num_bbox_tiles(box, zoom) < _MAX_BOX_TILES:
                    self._expire_box(box, zoom)
                    return
            else:
                num_tiles = 0 if box.is_empty else _num_bbox_tiles(box, zoom)
                if num_tiles < _MAX_LINE_TILES:
                    self._expire_line(nodes, zoom)
                    return

    def _add_coord(self, long: float, lat: float) -> None:
        # padded by a fraction of a tile to catch nodes at tile borders
        with self._lock:
            tile_x, tile_y = _tile_coord(long, lat, self.max_zoom)
            level = self.tiles[self.max_zoom]
            for x in range(int(tile_x - _TILE_PADDING), int(tile_x + _TILE_PADDING) + 1):
                for y in range(int(tile_y - _TILE_PADDING), int(tile_y + _TILE_PADDING) + 1):
                    level.add((x, y))

    def _expire_line(self, nodes: Sequence[Node], zoom: int) -> None:
        if len(nodes) == 1:
            self._add_coord(nodes[0].long, nodes[0].lat)
            return
        with self._lock:
            level = self.tiles[zoom]
            for first, second in zip(nodes, nodes[1:]):
                # skip empty nodes (missing from cache)
                if (first.long == 0 and first.lat == 0) or (second.long == 0 and second.lat == 0):
                    continue
                x1, y1 = _tile_coord(first.long, first.lat, zoom)
                x2, y2 = _tile_coord(second.long, second.lat, zoom)
                if int(x1) == int(x2) and int(y1) == int(y2):
                    level.add((int(x1), int(y1)))
                else:
                    level.update(_bresenham(x1, y1, x2, y2))

    def _expire_box(self, box: _BBox, zoom: int) -> None:
        with self._lock:
            x1, y1 = _tile_coord(box.minx, box.maxy, zoom)
            x2, y2 = _tile_coord(box.maxx, box.miny, zoom)
            level = self.tiles[zoom]
            for x in range(int(x1), int(x2) + 1):
                for y in range(int(y1), int(y2) + 1):
                    level.add((x, y))

    def _write_tiles(self, out: TextIO) -> None:
        for zoom, tiles in enumerate(self.tiles):
            for x, y in sorted(tiles):
                out.write(f"{zoom}/{x}/{y}\n")

    def write_tiles(self, out: TextIO) -> None:
        """Write every expired tile as a zoom/x/y line."""
        with self._lock:
            self._write_tiles(out)

    def flush(self) -> Optional[Path]:
        """Write the tiles to OUT/YYYYMMDD/HHMMSS.mmm.tiles and reset the list.

        Returns the written file, or None when no tile was expired.
        """
        with self._lock:
            if not any(self.tiles):
                return None
            now = datetime.now(timezone.utc)
            directory = Path(self.out) / now.strftime("%Y%m%d")
            directory.mkdir(parents=True, exist_ok=True)
            temp_name = directory / f"{now:%H%M%S}.{now.microsecond // 1000:03d}.tiles~"
            with open(temp_name, "w", encoding="utf-8") as fh:
                self._write_tiles(fh)
            self.tiles = self._empty_levels()
            # written to .tiles~, now atomically moved to .tiles
            final_name = temp_name.with_name(temp_name.name[:-1])
            os.replace(temp_name, final_name)
            return final_name