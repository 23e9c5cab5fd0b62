"""
Tests for storage adapters.

Every adapter is exercised through the same contract, then through a
Persister and a FlowInstance to check real round-trips.
"""
import pytest

from journeyflow.infra.flow import FlowInstance, Persister, SQLStorage
from conftest import assert_at_step, build_linear_flow


@pytest.fixture(params=["storage", "file_storage", "sql_storage"])
def any_storage(request):
    """Each StorageAdapter implementation in turn."""
    return request.getfixturevalue(request.param)


def test_get_missing_key(any_storage):
    assert any_storage.get("journeyflow:missing") is None


def test_set_get_overwrite(any_storage):
    any_storage.set("journeyflow:a", b"one")
    any_storage.set("journeyflow:a", b"two")

    assert any_storage.get("journeyflow:a") == b"two"


def test_remove_is_idempotent(any_storage):
    any_storage.set("journeyflow:a", b"one")

    any_storage.remove("journeyflow:a")
    any_storage.remove("journeyflow:a")

    assert any_storage.get("journeyflow:a") is None


def test_list_keys_by_prefix(any_storage):
    """
    Test: list_keys() filters by prefix.

    Verifies:
    - Only keys starting with the prefix are returned
    - Separator characters in keys survive
    """
    for key in ("journeyflow:a", "journeyflow:a:1", "journeyflow:b", "other:a"):
        any_storage.set(key, b"x")

    assert sorted(any_storage.list_keys("journeyflow:a")) == ["journeyflow:a", "journeyflow:a:1"]
    assert len(any_storage.list_keys("")) == 4


def test_sql_prefix_is_not_a_pattern(sql_storage):
    sql_storage.set("journeyflow:a_b", b"x")
    sql_storage.set("journeyflow:aXb", b"x")

    assert sql_storage.list_keys("journeyflow:a_") == ["journeyflow:a_b"]


def test_sql_storage_requires_open():
    storage = SQLStorage("sqlite://")

    with pytest.raises(RuntimeError, match="open\\(\\) must be called before get\\(\\)"):
        storage.get("k")


def test_flow_round_trip(any_storage):
    """
    Test: A flow instance persisted through each adapter.

    Verifies:
    - A second instance resumes on the same step with the same context
    """
    persister = Persister(any_storage)
    definition = build_linear_flow()
    first = FlowInstance(definition, persister=persister, instance_id="u1")
    first.next({"name": "Ada", "tags": ["a", "b"], "age": 36})
    first.next()
    first.skip()

    second = FlowInstance(definition, persister=persister, instance_id="u1")

    assert_at_step(second, "complete", path=["welcome", "profile", "preferences", "complete"])
    assert second.context == {"name": "Ada", "tags": ["a", "b"], "age": 36}
    assert second.is_complete


def test_file_storage_survives_new_adapter(tmp_path):
    from journeyflow.infra.flow import FileStorage

    folder = str(tmp_path / "flows")
    FileStorage(folder).set("journeyflow:onboarding:u/1", b"data")

    assert FileStorage(folder).get("journeyflow:onboarding:u/1") == b"data"
    assert FileStorage(folder).list_keys("journeyflow:") == ["journeyflow:onboarding:u/1"]
