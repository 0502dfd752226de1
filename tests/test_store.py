from dataclasses import replace

import pytest

from conftest import make_expense
from xpensemate.domain import Page
from xpensemate.errors import RecordNotFound
from xpensemate.store import Insert, RecordListStore, Remove, Replace


def loaded_store(n=3, total=None, page=1):
    store = RecordListStore(per_page=10)
    records = tuple(make_expense(f"e{i}", name=f"Item {i}") for i in range(1, n + 1))
    store.set_page(Page(records=records, total=total if total is not None else n, page=page))
    return store


def keys(store):
    return [r.key for r in store.records]


def test_set_page_replaces_records_and_metadata():
    store = loaded_store(3, total=25, page=2)
    assert keys(store) == ["e1", "e2", "e3"]
    assert store.total == 25
    assert store.page == 2

    store.set_page(Page(records=(make_expense("x"),), total=1, page=1), per_page=5)
    assert keys(store) == ["x"]
    assert store.per_page == 5


def test_insert_goes_to_head_and_forces_first_page():
    store = loaded_store(2, total=12, page=2)
    store.apply_optimistic(Insert(make_expense("temp-1", name="New")))
    assert keys(store) == ["temp-1", "e1", "e2"]
    assert store.total == 13
    assert store.page == 1


def test_replace_keeps_position_and_total():
    store = loaded_store(3)
    edited = replace(store.find("e2"), amount=99.0)
    store.apply_optimistic(Replace("e2", edited))
    assert keys(store) == ["e1", "e2", "e3"]
    assert store.find("e2").amount == 99.0
    assert store.total == 3


def test_remove_never_drops_total_below_zero():
    store = loaded_store(1, total=0)
    store.apply_optimistic(Remove("e1"))
    assert store.records == ()
    assert store.total == 0


def test_unknown_key_raises():
    store = loaded_store(1)
    with pytest.raises(RecordNotFound):
        store.apply_optimistic(Remove("nope"))
    with pytest.raises(RecordNotFound):
        store.apply_optimistic(Replace("nope", make_expense("nope")))


@pytest.mark.parametrize("change_for", [
    lambda s: Insert(make_expense("temp-9")),
    lambda s: Replace("e2", replace(s.find("e2"), name="Edited")),
    lambda s: Remove("e2"),
])
def test_rollback_restores_exact_state(change_for):
    store = loaded_store(3, total=30, page=3)
    before = store.state()
    snapshot = store.apply_optimistic(change_for(store))
    assert store.state() != before

    store.rollback(snapshot)
    assert store.state() == before


def test_commit_swaps_temp_for_server_record():
    store = loaded_store(2)
    store.apply_optimistic(Insert(make_expense("temp-1", name="Tea")))
    assert store.commit(make_expense("srv-1", name="Tea"), "temp-1")

    assert keys(store) == ["srv-1", "e1", "e2"]
    assert store.total == 3


def test_commit_leaves_exactly_one_copy_of_server_id():
    store = loaded_store(2)
    store.apply_optimistic(Insert(make_expense("temp-1")))
    # a refetch already brought the server copy in
    store.records = store.records + (make_expense("srv-1"),)

    store.commit(make_expense("srv-1"), "temp-1")
    assert keys(store).count("srv-1") == 1
    assert "temp-1" not in keys(store)


def test_commit_of_vanished_record_is_a_noop():
    store = loaded_store(1)
    assert store.commit(make_expense("srv-1"), "temp-gone") is False
    assert keys(store) == ["e1"]


def test_interleaved_removes_roll_back_independently():
    store = loaded_store(4)
    snaps = {k: store.apply_optimistic(Remove(k)) for k in ("e1", "e2", "e3")}
    assert keys(store) == ["e4"]
    assert store.total == 1

    store.rollback(snaps["e2"])
    assert keys(store) == ["e2", "e4"]
    assert store.total == 2


def test_rollback_of_insert_after_later_change_removes_only_the_insert():
    store = loaded_store(2)
    snap = store.apply_optimistic(Insert(make_expense("temp-1")))
    store.apply_optimistic(Remove("e2"))

    store.rollback(snap)
    assert keys(store) == ["e1"]
    assert store.total == 1


def test_listeners_see_every_change():
    store = loaded_store(1)
    seen = []
    store.subscribe(lambda s: seen.append(s.version))
    snap = store.apply_optimistic(Remove("e1"))
    store.rollback(snap)
    assert len(seen) == 2
    assert seen[-1] == store.version


@pytest.mark.parametrize("undo_order", [("e2", "e3"), ("e3", "e2")])
def test_removes_rolled_back_in_any_order_restore_original_layout(undo_order):
    store = loaded_store(4, total=14)
    before = store.state()
    snaps = {k: store.apply_optimistic(Remove(k)) for k in ("e2", "e3")}

    for key in undo_order:
        store.rollback(snaps[key])
    assert store.state() == before


def test_rolled_back_remove_lands_after_its_surviving_neighbour():
    store = loaded_store(4)
    snaps = {k: store.apply_optimistic(Remove(k)) for k in ("e1", "e2", "e3")}

    store.rollback(snaps["e3"])
    assert keys(store) == ["e3", "e4"]
    store.rollback(snaps["e1"])
    assert keys(store) == ["e1", "e3", "e4"]


def test_remove_of_committed_create_rolls_back_into_place():
    store = loaded_store(2)
    store.apply_optimistic(Insert(make_expense("temp-1")))
    store.commit(make_expense("srv-1"), "temp-1")
    other = store.apply_optimistic(Remove("e1"))
    snap = store.apply_optimistic(Remove("srv-1"))

    store.rollback(other)
    store.rollback(snap)
    assert keys(store) == ["srv-1", "e1", "e2"]
