import pytest

from lspintar import state
from lspintar.state import StateManager, get_global, init_state_manager, set_global


def test_set_then_get_round_trip():
    manager = StateManager()
    manager.set("build_on_init", True)
    assert manager.get("build_on_init") is True


def test_get_missing_key_is_none():
    manager = StateManager()
    assert manager.get("absent") is None


def test_set_replaces_existing_value():
    manager = StateManager()
    manager.set("k", 1)
    manager.set("k", 2)
    assert manager.get("k") == 2


def test_delete_removes_key():
    manager = StateManager()
    manager.set("k", "v")
    manager.delete("k")
    assert manager.get("k") is None
    manager.delete("k")
    assert manager.get_all() == {}


def test_clear_and_get_all():
    manager = StateManager()
    manager.set("a", 1)
    manager.set("b", [1, 2])
    assert manager.get_all() == {"a": 1, "b": [1, 2]}
    manager.clear()
    assert manager.get_all() == {}


def test_get_returns_independent_copy():
    manager = StateManager()
    manager.set("list", [1, 2])
    value = manager.get("list")
    value.append(3)
    assert manager.get("list") == [1, 2]


@pytest.fixture
def fresh_global(monkeypatch):
    monkeypatch.setattr(state, "_store", None)


def test_global_store_inactive_before_init(fresh_global):
    set_global("gradle_cache_dir", "/tmp/cache")
    assert get_global("gradle_cache_dir") is None


def test_global_store_after_init(fresh_global):
    init_state_manager()
    set_global("is_indexing_completed", True)
    assert get_global("is_indexing_completed") is True
    assert get_global("missing") is None


def test_init_twice_keeps_values(fresh_global):
    init_state_manager()
    set_global("key", "value")
    init_state_manager()
    assert get_global("key") == "value"