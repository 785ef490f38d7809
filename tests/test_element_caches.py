import pytest

from osmimport.cacheconfig import ENV_VARIABLE
from osmimport.element_caches import NodesCache, RelationsCache, WaysCache
from osmimport.osm import Member, MemberType, Node, Relation, Way
from osmimport.store import NotFoundError


@pytest.fixture(autouse=True)
def _no_config(monkeypatch):
    monkeypatch.delenv(ENV_VARIABLE, raising=False)


def test_create_cache(tmp_path):
    path = tmp_path / "nodes"
    with NodesCache(path):
        assert path.is_dir()


def test_read_write_node(tmp_path):
    cache = NodesCache(tmp_path)
    cache.put_node(Node(id=1234, tags={"foo": "bar"}))
    cache.close()

    with NodesCache(tmp_path) as cache:
        data = cache.get_node(1234)
        assert data.id == 1234
        assert data.tags["foo"] == "bar"
        with pytest.raises(NotFoundError):
            cache.get_node(99)


def test_node_coords_round_trip(tmp_path):
    with NodesCache(tmp_path) as cache:
        cache.put_node(Node(id=5, tags={"a": "b"}, long=8.25, lat=53.5))
        node = cache.get_node(5)
    assert node.long == pytest.approx(8.25, abs=1e-7)
    assert node.lat == pytest.approx(53.5, abs=1e-7)


def test_put_node_ignores_skipped_and_untagged(tmp_path):
    with NodesCache(tmp_path) as cache:
        cache.put_node(Node(id=-1, tags={"a": "b"}))
        cache.put_node(Node(id=7))
        with pytest.raises(NotFoundError):
            cache.get_node(-1)
        with pytest.raises(NotFoundError):
            cache.get_node(7)


def test_put_nodes_counts_and_iter(tmp_path):
    nodes = [
        Node(id=3, tags={"name": "c"}),
        Node(id=1, tags={"name": "a"}),
        Node(id=2),
        Node(id=-1, tags={"name": "skip"}),
    ]
    with NodesCache(tmp_path) as cache:
        assert cache.put_nodes(nodes) == 2
        result = list(cache.iter())
    assert [n.id for n in result] == [1, 3]
    assert [n.tags["name"] for n in result] == ["a", "c"]


def test_delete_node(tmp_path):
    with NodesCache(tmp_path) as cache:
        cache.put_node(Node(id=10, tags={"x": "y"}))
        cache.delete_node(10)
        with pytest.raises(NotFoundError):
            cache.get_node(10)


def test_read_write_way(tmp_path):
    cache = WaysCache(tmp_path)
    way = Way(id=1234, tags={"foo": "bar"}, refs=[942374923, 23948234])
    cache.put_way(way)
    cache.close()
    assert way.refs == [942374923, 23948234]

    with WaysCache(tmp_path) as cache:
        data = cache.get_way(1234)
    assert data.id == 1234
    assert data.tags["foo"] == "bar"
    assert data.refs == [942374923, 23948234]


def test_read_missing_way(tmp_path):
    with WaysCache(tmp_path) as cache:
        with pytest.raises(NotFoundError):
            cache.get_way(1234)


def test_put_ways_iter_and_delete(tmp_path):
    ways = [Way(id=2, refs=[1, 2]), Way(id=-1, refs=[5]), Way(id=1, refs=[3, 4])]
    with WaysCache(tmp_path) as cache:
        cache.put_ways(ways)
        assert [(w.id, w.refs) for w in cache.iter()] == [(1, [3, 4]), (2, [1, 2])]
        cache.delete_way(1)
        assert [w.id for w in cache.iter()] == [2]


def test_fill_members(tmp_path):
    with WaysCache(tmp_path) as cache:
        cache.put_way(Way(id=123, refs=[1, 2, 3]))
        members = [
            Member(id=123, type=MemberType.WAY, role="outer"),
            Member(id=5, type=MemberType.NODE),
        ]
        cache.fill_members(members)
        assert members[0].way.refs == [1, 2, 3]
        assert members[0].way.id == 123
        assert members[1].way is None
        with pytest.raises(NotFoundError):
            cache.fill_members([Member(id=999, type=MemberType.WAY)])


def test_read_write_relation(tmp_path):
    rel = Relation(
        id=12345,
        tags={"name": "test", "landusage": "forest"},
        members=[
            Member(id=123, type=MemberType.WAY, role="outer"),
            Member(id=124, type=MemberType.WAY, role="inner"),
        ],
    )
    with RelationsCache(tmp_path) as cache:
        cache.put_relation(rel)
        data = cache.get_relation(12345)
    assert data.id == 12345
    assert data.tags == {"name": "test", "landusage": "forest"}
    assert [(m.id, m.type, m.role) for m in data.members] == [
        (123, MemberType.WAY, "outer"),
        (124, MemberType.WAY, "inner"),
    ]


def test_put_relations_skips_untagged(tmp_path):
    rels = [
        Relation(id=1, tags={"type": "multipolygon"}),
        Relation(id=2),
        Relation(id=-1, tags={"type": "route"}),
    ]
    with RelationsCache(tmp_path) as cache:
        cache.put_relations(rels)
        assert [r.id for r in cache.iter()] == [1]
        cache.delete_relation(1)
        with pytest.raises(NotFoundError):
            cache.get_relation(1)