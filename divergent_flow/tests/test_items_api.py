from fastapi.testclient import TestClient

from divergent_flow.api.main import create_app
from divergent_flow.features.wiring import Services
from divergent_flow.inference import BasicTypeInferenceService
from divergent_flow.internal_core.config import AppConfig
from divergent_flow.internal_core.contracts import Capture, Collection, Item
from divergent_flow.internal_core.entity_store import InMemoryEntityStore
from divergent_flow.internal_core.projection import RedisProjectionWriter, item_key


def _create(client: TestClient, **body) -> dict:
    response = client.post("/api/items", json=body)
    assert response.status_code == 201
    return response.json()


def test_create_item_defaults_type_and_sets_location(client: TestClient) -> None:
    response = client.post("/api/items", json={"text": "renew passport", "collectionId": "col-1"})

    assert response.status_code == 201
    body = response.json()
    assert body["type"] == "capture"
    assert body["collectionId"] == "col-1"
    assert body["lastReviewedAt"] is None
    assert response.headers["location"].endswith(f"/api/items/{body['id']}")


def test_item_crud_flow(client: TestClient) -> None:
    created = _create(client, text="draft email")

    updated = client.put(f"/api/items/{created['id']}", json={"text": "send email", "inferredType": "task"})
    assert updated.status_code == 200
    assert updated.json()["text"] == "send email"
    assert updated.json()["createdAt"] == created["createdAt"]

    assert client.get(f"/api/items/{created['id']}").json()["inferredType"] == "task"
    assert [item["id"] for item in client.get("/api/items").json()] == [created["id"]]

    assert client.delete(f"/api/items/{created['id']}").status_code == 204
    assert client.get(f"/api/items/{created['id']}").status_code == 404


def test_item_validation_and_not_found(client: TestClient) -> None:
    invalid = client.post("/api/items", json={"text": "", "typeConfidence": -1})
    assert invalid.status_code == 400
    assert set(invalid.json()["errors"]) == {"Text", "TypeConfidence"}

    assert client.put("/api/items/nope", json={"text": "x"}).status_code == 404
    assert client.delete("/api/items/nope").status_code == 404


def test_review_queue_and_mark_reviewed(client: TestClient) -> None:
    first = _create(client, text="first")
    second = _create(client, text="second")

    queue = client.get("/api/items/review-queue", params={"limit": 1})
    assert queue.status_code == 200
    assert [item["id"] for item in queue.json()] == [first["id"]]

    reviewed = client.post(
        f"/api/items/{first['id']}/review",
        json={"confirmedType": "task", "confirmedConfidence": 95},
    )
    assert reviewed.status_code == 200
    assert reviewed.json()["lastReviewedAt"] is not None
    assert reviewed.json()["typeConfidence"] == 95

    queue_after = client.get("/api/items/review-queue").json()
    assert [item["id"] for item in queue_after] == [second["id"]]


def test_review_queue_rejects_non_positive_limit(client: TestClient) -> None:
    response = client.get("/api/items/review-queue", params={"limit": 0})
    assert response.status_code == 400
    assert "Limit" in response.json()["errors"]


def test_mark_reviewed_unknown_item_returns_404(client: TestClient) -> None:
    assert client.post("/api/items/ghost/review", json={}).status_code == 404


def test_dashboard_counts_items(client: TestClient) -> None:
    _create(client, text="pay rent", inferredType="action")
    _create(client, text="random idea", inferredType="idea")

    response = client.get("/api/items/dashboard")

    assert response.status_code == 200
    body = response.json()
    assert body["metrics"]["totalItems"] == 2
    assert body["metrics"]["actionItems"] == 1
    assert body["metrics"]["pendingReview"] == 2
    assert [task["text"] for task in body["todayTasks"]] == ["pay rent"]


def test_projection_outage_does_not_affect_responses(fake_redis) -> None:
    fake_redis.fail_writes = True
    services = Services(
        capture_store=InMemoryEntityStore[Capture]("capture"),
        item_store=InMemoryEntityStore[Item]("item"),
        collection_store=InMemoryEntityStore[Collection]("collection"),
        projection=RedisProjectionWriter(fake_redis),
        inference=BasicTypeInferenceService(),
    )
    client = TestClient(create_app(AppConfig(), services))

    created = client.post("/api/items", json={"text": "still works"})
    assert created.status_code == 201
    assert client.get(f"/api/items/{created.json()['id']}").status_code == 200

    fake_redis.fail_writes = False
    client.put(f"/api/items/{created.json()['id']}", json={"text": "synced now"})
    assert "synced now" in fake_redis.values[item_key(created.json()["id"])]
