"""
Tests for document store queries.
"""

from feedback_agent.storage.document_store import CHUNKS, SUBMISSIONS


def test_list_filters_by_json_fields(store):
    store.set(CHUNKS, "m1-0", {"material_id": "m1", "agent_id": "a1", "ready": True})
    store.set(CHUNKS, "m2-0", {"material_id": "m2", "agent_id": "a1", "ready": False})
    store.set(CHUNKS, "m3-0", {"material_id": "m3", "agent_id": "a2"})
    store.set(SUBMISSIONS, "s1", {"material_id": "m1"})

    assert [d.id for d in store.list(CHUNKS, where={"material_id": "m1"})] == ["m1-0"]
    assert sorted(d.id for d in store.list(CHUNKS, where={"agent_id": "a1"})) == ["m1-0", "m2-0"]
    assert [d.id for d in store.list(CHUNKS, where={"agent_id": "a1", "ready": False})] == ["m2-0"]
    assert [d.id for d in store.list(CHUNKS, where={"ready": None})] == ["m3-0"]
    assert store.list(CHUNKS, where={"material_id": "missing"}) == []


def test_list_orders_numbers_numerically(store):
    for i in (10, 2, 33):
        store.set(CHUNKS, f"m1-{i}", {"material_id": "m1", "chunk_index": i})

    docs = store.list(CHUNKS, where={"material_id": "m1"}, order_by="chunk_index", order_type=int)

    assert [d.data["chunk_index"] for d in docs] == [2, 10, 33]


def test_list_descending_puts_missing_last_and_limits(store):
    store.set(SUBMISSIONS, "old", {"updated_at": "2024-01-01T00:00:00+00:00"})
    store.set(SUBMISSIONS, "none", {})
    store.set(SUBMISSIONS, "new", {"updated_at": "2024-03-01T00:00:00+00:00"})

    assert [d.id for d in store.list(SUBMISSIONS, order_by="updated_at")] == ["none", "old", "new"]
    assert [d.id for d in store.list(SUBMISSIONS, order_by="updated_at", descending=True)] == ["new", "old", "none"]
    assert [d.id for d in store.list(SUBMISSIONS, order_by="updated_at", descending=True, limit=1)] == ["new"]
