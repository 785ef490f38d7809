import io
import re

import pytest

from osmimport.expire import (
    TileList,
    expire_projected_node,
    expire_projected_nodes,
)
from osmimport.osm import Node

POLE = 20037508.342789244


def nodes(*coords):
    return [Node(long=long, lat=lat) for long, lat in coords]


CASES = [
    # point
    (nodes((8.30, 53.26)), 1, 14, False),
    # point + paddings
    (nodes((0, 0)), 4, 14, False),
    (nodes((0.01, 0)), 2, 14, False),
    (nodes((0, 0.01)), 2, 14, False),
    (nodes((0.01, 0.01)), 1, 14, False),
    # line
    (nodes((8.30, 53.25), (8.30, 53.30)), 5, 14, False),
    # same line, but split into multiple segments
    (nodes((8.30, 53.25), (8.30, 53.27), (8.30, 53.29), (8.30, 53.30)), 5, 14, False),
    # L-shape
    (nodes((8.30, 53.25), (8.30, 53.30), (8.35, 53.30)), 8, 14, False),
    # line (triangle)
    (nodes((8.30, 53.25), (8.30, 53.30), (8.35, 53.30), (8.30, 53.25)), 11, 14, False),
    # same line but closed, whole bbox (4x5 tiles) is expired
    (nodes((8.30, 53.25), (8.30, 53.30), (8.35, 53.30), (8.30, 53.25)), 20, 14, True),
    # large triangle, moved zoom level up
    (nodes((8.30, 53.25), (8.30, 53.90), (8.85, 53.90), (8.30, 53.25)), 28, 11, True),
    # same large triangle as line, just one zoom level up
    (nodes((8.30, 53.25), (8.30, 53.90), (8.85, 53.90), (8.30, 53.25)), 63, 13, False),
    # long line, across world
    (nodes((-170, -80), (170, 80)), 17, 4, False),
    # large polygon, across world
    (nodes((-160, -70), (160, -70), (160, 70), (-160, 70)), 48, 3, True),
]


@pytest.mark.parametrize("node_list, expected_num, expected_level, closed", CASES)
def test_expire_nodes_adaptive(node_list, expected_num, expected_level, closed):
    tl = TileList(14, "")
    tl.expire_nodes(node_list, closed)
    for zoom in range(tl.max_zoom + 1):
        expected = expected_num if zoom == expected_level else 0
        assert len(tl.tiles[zoom]) == expected, zoom

    buf = io.StringIO()
    tl.write_tiles(buf)
    lines = buf.getvalue().splitlines()
    tile_re = re.compile(r"^\d+/\d+/\d+$")
    assert all(tile_re.match(line) for line in lines)
    assert len(lines) == expected_num


def test_expire_nodes_empty_list_does_nothing():
    tl = TileList(14)
    tl.expire_nodes([], False)
    assert [len(tiles) for tiles in tl.tiles] == [0] * 15
    buf = io.StringIO()
    tl.write_tiles(buf)
    assert buf.getvalue() == ""


def test_expire_point_matches_single_node_line():
    a = TileList(14)
    b = TileList(14)
    a.expire(8.30, 53.26)
    b.expire_nodes(nodes((8.30, 53.26)), False)
    assert a.tiles == b.tiles
    assert len(a.tiles[14]) == 1


def test_write_tiles_lines_start_with_zoom():
    tl = TileList(14)
    tl.expire(0, 0)
    buf = io.StringIO()
    tl.write_tiles(buf)
    assert all(line.startswith("14/") for line in buf.getvalue().splitlines())


def test_flush_writes_file_and_resets(tmp_path):
    tl = TileList(14, tmp_path)
    tl.expire_nodes(nodes((8.30, 53.25), (8.30, 53.30)), False)
    path = tl.flush()
    assert path is not None
    assert path.suffix == ".tiles"
    assert path.parent.parent == tmp_path
    lines = path.read_text().splitlines()
    assert len(lines) == 5
    assert not any(tl.tiles)
    assert list(tmp_path.rglob("*.tiles~")) == []
    assert tl.flush() is None


def test_flush_without_tiles_writes_nothing(tmp_path):
    tl = TileList(14, tmp_path)
    assert tl.flush() is None
    assert list(tmp_path.iterdir()) == []


class Recorder:
    def __init__(self):
        self.points = []
        self.calls = []

    def expire(self, long, lat):
        self.points.append((long, lat))

    def expire_nodes(self, node_list, closed):
        self.calls.append((node_list, closed))


def test_expire_projected_nodes_wgs84_passes_through():
    rec = Recorder()
    original = nodes((8.3, 53.2))
    expire_projected_nodes(rec, original, 4326, True)
    assert rec.calls == [(original, True)]


def test_expire_projected_nodes_mercator_converts():
    rec = Recorder()
    expire_projected_nodes(rec, nodes((POLE, 0.0), (-POLE, 0.0)), 3857, False)
    (converted, closed), = rec.calls
    assert closed is False
    assert converted[0].long == pytest.approx(180.0)
    assert converted[1].long == pytest.approx(-180.0)
    assert converted[0].lat == pytest.approx(0.0)


def test_expire_projected_node_mercator_converts():
    rec = Recorder()
    expire_projected_node(rec, Node(long=POLE, lat=0.0), 3857)
    assert rec.points[0] == pytest.approx((180.0, 0.0))


def test_expire_projected_node_wgs84():
    rec = Recorder()
    expire_projected_node(rec, Node(long=8.3, lat=53.2), 4326)
    assert rec.points == [(8.3, 53.2)]


def test_unsupported_srid_raises():
    with pytest.raises(ValueError):
        expire_projected_node(Recorder(), Node(long=1, lat=1), 31467)
    with pytest.raises(ValueError):
        expire_projected_nodes(Recorder(), nodes((1, 1)), 31467, False)