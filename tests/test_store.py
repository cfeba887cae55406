from design_generator.service.store import DesignStore

from conftest import make_spec


def test_record_then_get_returns_equal_design():
    store = DesignStore()
    spec = make_spec("spec-1", components=[{"id": "c", "type": "card", "properties": {"depth": 2}}])
    store.record_design(spec)
    assert store.get_design("spec-1") == spec
    assert "spec-1" in store
    assert len(store) == 1


def test_get_missing_design_returns_none():
    assert DesignStore().get_design("does-not-exist") is None


def test_list_recent_returns_last_entries_in_insertion_order():
    store = DesignStore()
    for i in range(25):
        store.record_design(make_spec(f"spec-{i}"))
    recent = store.list_recent(20)
    assert [s.id for s in recent] == [f"spec-{i}" for i in range(5, 25)]
    assert store.list_recent(0) == []
    assert len(store.list_recent(100)) == 25


def test_record_appends_to_live_session():
    store = DesignStore()
    store.create_session("conn-1")
    store.record_design(make_spec("a"), "conn-1")
    store.record_design(make_spec("b"), "conn-1")
    assert store.get_session("conn-1").design_ids == ["a", "b"]


def test_record_after_disconnect_keeps_design():
    store = DesignStore()
    store.create_session("conn-1")
    store.destroy_session("conn-1")
    store.record_design(make_spec("late"), "conn-1")
    assert store.get_session("conn-1") is None
    assert store.get_design("late") is not None


def test_sessions_do_not_own_designs():
    store = DesignStore()
    store.create_session("conn-1")
    store.record_design(make_spec("kept"), "conn-1")
    store.destroy_session("conn-1")
    assert store.session_count == 0
    assert store.get_design("kept") is not None


def test_mark_plugin_sets_metadata():
    store = DesignStore()
    store.create_session("conn-1")
    store.mark_plugin("conn-1", {"pluginVersion": "1.2"})
    store.mark_plugin("missing", {"ignored": True})
    assert store.get_session("conn-1").plugin == {"pluginVersion": "1.2"}
