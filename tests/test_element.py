from osmimport.element import IDRefs


def test_idrefs_add_and_delete():
    id_refs = IDRefs()

    id_refs.add(1)
    assert id_refs.refs == [1]

    id_refs.add(10)
    assert id_refs.refs == [1, 10]

    # insert twice
    id_refs.add(10)
    assert id_refs.refs == [1, 10]

    # insert before
    id_refs.add(0)
    assert id_refs.refs == [0, 1, 10]

    # insert after
    id_refs.add(12)
    assert id_refs.refs == [0, 1, 10, 12]

    # insert between
    id_refs.add(11)
    assert id_refs.refs == [0, 1, 10, 11, 12]

    # delete between
    id_refs.delete(11)
    assert id_refs.refs == [0, 1, 10, 12]

    # delete end
    id_refs.delete(12)
    assert id_refs.refs == [0, 1, 10]

    # delete begin
    id_refs.delete(0)
    assert id_refs.refs == [1, 10]

    # delete missing
    id_refs.delete(99)
    assert id_refs.refs == [1, 10]


def test_idrefs_keeps_id_and_sorted_invariant():
    id_refs = IDRefs(id=100)
    for ref in [5, 3, 9, 3, 1, 9, 7]:
        id_refs.add(ref)
    assert id_refs.id == 100
    assert id_refs.refs == sorted(set([5, 3, 9, 1, 7]))


def test_idrefs_delete_on_empty():
    id_refs = IDRefs(id=1)
    id_refs.delete(5)
    assert id_refs.refs == []