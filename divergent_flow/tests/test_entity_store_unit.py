import asyncio

import pytest

from divergent_flow.internal_core.contracts import Capture, Collection
from divergent_flow.internal_core.entity_store import DuplicateIdError, InMemoryEntityStore
from divergent_flow.mediator import CancellationToken, OperationCancelled


def _capture(capture_id: str = "c1", text: str = "buy milk", created_at: int = 1000) -> Capture:
    return Capture(id=capture_id, text=text, created_at=created_at)


def test_insert_then_get_returns_equal_copy() -> None:
    store = InMemoryEntityStore[Capture]("capture")
    capture = _capture()

    asyncio.run(store.insert(capture))
    fetched = asyncio.run(store.get_by_id("c1"))

    assert fetched == capture
    assert fetched is not capture
    assert store.name() == "memory:capture"


def test_get_unknown_id_returns_none() -> None:
    store = InMemoryEntityStore[Capture]("capture")
    assert asyncio.run(store.get_by_id("missing")) is None


def test_insert_duplicate_id_raises() -> None:
    store = InMemoryEntityStore[Capture]("capture")
    asyncio.run(store.insert(_capture()))
    with pytest.raises(DuplicateIdError):
        asyncio.run(store.insert(_capture(text="other")))
    assert len(store) == 1


def test_update_unknown_id_returns_none_without_creating() -> None:
    store = InMemoryEntityStore[Capture]("capture")
    assert asyncio.run(store.update("c9", _capture("c9"))) is None
    assert asyncio.run(store.get_all()) == []


def test_update_keeps_id_and_created_at() -> None:
    store = InMemoryEntityStore[Capture]("capture")
    asyncio.run(store.insert(_capture(created_at=1000)))

    replacement = Capture(id="c1", text="buy oat milk", created_at=5000, inferred_type="task")
    saved = asyncio.run(store.update("c1", replacement))

    assert saved is not None
    assert saved.text == "buy oat milk"
    assert saved.inferred_type == "task"
    assert saved.created_at == 1000


def test_patch_sees_current_state_and_keeps_immutable_fields() -> None:
    store = InMemoryEntityStore[Capture]("capture")
    asyncio.run(store.insert(_capture(created_at=1000)))
    seen: list = []

    def retag(current: Capture) -> dict:
        seen.append(current.text)
        return {"inferred_type": "task", "created_at": 1, "id": "c2"}

    saved = asyncio.run(store.patch("c1", retag))

    assert seen == ["buy milk"]
    assert (saved.id, saved.created_at, saved.text, saved.inferred_type) == ("c1", 1000, "buy milk", "task")
    assert asyncio.run(store.get_by_id("c1")) == saved
    assert asyncio.run(store.patch("c1", lambda current: None)) == saved
    assert asyncio.run(store.patch("c9", retag)) is None
    assert seen == ["buy milk"]


def test_delete_reports_whether_entity_existed() -> None:
    store = InMemoryEntityStore[Collection]("collection")
    asyncio.run(store.insert(Collection(id="col1", name="Errands", created_at=1)))

    assert asyncio.run(store.delete("col1")) is True
    assert asyncio.run(store.delete("col1")) is False
    assert asyncio.run(store.get_by_id("col1")) is None


def test_returned_entities_do_not_alias_stored_state() -> None:
    store = InMemoryEntityStore[Capture]("capture")
    asyncio.run(store.insert(_capture()))

    snapshot = asyncio.run(store.get_all())
    snapshot[0].text = "mutated"

    assert asyncio.run(store.get_by_id("c1")).text == "buy milk"


def test_get_all_preserves_insertion_order() -> None:
    store = InMemoryEntityStore[Capture]("capture")
    for capture_id in ("b", "a", "c"):
        asyncio.run(store.insert(_capture(capture_id)))

    assert [c.id for c in asyncio.run(store.get_all())] == ["b", "a", "c"]


def test_cancelled_token_stops_store_calls() -> None:
    store = InMemoryEntityStore[Capture]("capture")
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelled):
        asyncio.run(store.insert(_capture(), token))
    assert len(store) == 0


def test_concurrent_inserts_are_all_kept() -> None:
    store = InMemoryEntityStore[Capture]("capture")

    async def run() -> None:
        await asyncio.gather(*(store.insert(_capture(f"c{i}")) for i in range(50)))

    asyncio.run(run())
    assert len(store) == 50
