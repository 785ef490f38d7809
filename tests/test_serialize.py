import pytest

from osmimport.osm import Member, MemberType, Node, Relation, Way
from osmimport.serialize import (
    delta_pack,
    delta_unpack,
    marshal_node,
    marshal_relation,
    marshal_way,
    unmarshal_node,
    unmarshal_relation,
    unmarshal_way,
)


def test_marshal_node():
    node = Node(id=12345, tags={"name": "test", "place": "city"})
    result = unmarshal_node(marshal_node(node))
    assert result.tags["name"] == "test"
    assert result.tags["place"] == "city"
    assert len(result.tags) == 2


def test_marshal_node_coords():
    node = Node(id=1, long=8.3, lat=53.26)
    result = unmarshal_node(marshal_node(node))
    assert abs(result.long - 8.3) <= 1e-7
    assert abs(result.lat - 53.26) <= 1e-7
    assert result.tags == {}


def test_marshal_way():
    way = Way(id=12345, tags={"name": "test", "highway": "trunk"}, refs=[1, 2, 3, 4])
    result = unmarshal_way(marshal_way(way))
    assert result.tags["name"] == "test"
    assert result.tags["highway"] == "trunk"
    assert len(result.tags) == 2
    assert result.refs == [1, 2, 3, 4]
    assert way.refs == [1, 2, 3, 4]


def test_marshal_way_large_refs():
    way = Way(id=1234, tags={"foo": "bar"}, refs=[942374923, 23948234])
    result = unmarshal_way(marshal_way(way))
    assert result.refs == [942374923, 23948234]
    assert result.tags == {"foo": "bar"}


def test_marshal_relation():
    rel = Relation(
        id=12345,
        tags={"name": "test", "landusage": "forest"},
        members=[
            Member(id=123, type=MemberType.WAY, role="outer"),
            Member(id=124, type=MemberType.WAY, role="inner"),
        ],
    )
    result = unmarshal_relation(marshal_relation(rel))
    assert result.tags["name"] == "test"
    assert result.tags["landusage"] == "forest"
    assert len(result.tags) == 2
    assert len(result.members) == 2
    first, second = result.members
    assert (first.id, first.type, first.role) == (123, MemberType.WAY, "outer")
    assert (second.id, second.type, second.role) == (124, MemberType.WAY, "inner")


def test_delta_pack():
    assert delta_pack([1000, 999, 1001, -8, 1234]) == [1000, -1, 2, -1009, 1242]


def test_delta_unpack():
    assert delta_unpack([1000, -1, 2, -1009, 1242]) == [1000, 999, 1001, -8, 1234]


def test_delta_pack_short():
    assert delta_pack([]) == []
    assert delta_pack([7]) == [7]
    assert delta_unpack([7]) == [7]


def test_truncated_data_raises():
    data = marshal_way(Way(refs=[1, 2, 3], tags={"name": "x"}))
    with pytest.raises(ValueError):
        unmarshal_way(data[:-1])


def test_trailing_data_raises():
    data = marshal_node(Node(tags={"a": "b"}))
    with pytest.raises(ValueError):
        unmarshal_node(data + b"\x00")