from fastapi.testclient import TestClient


def _create(client: TestClient, **body) -> dict:
    response = client.post("/api/captures", json=body)
    assert response.status_code == 201
    return response.json()


def test_health_reports_healthy(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "Healthy"}


def test_create_capture_returns_201_with_location(client: TestClient) -> None:
    response = client.post("/api/captures", json={"text": "buy milk"})

    assert response.status_code == 201
    body = response.json()
    assert body["text"] == "buy milk"
    assert body["id"]
    assert isinstance(body["createdAt"], int)
    assert body["inferredType"] is None
    assert body["isMigrated"] is False
    assert response.headers["location"].endswith(f"/api/captures/{body['id']}")


def test_create_capture_ids_are_unique(client: TestClient) -> None:
    first = _create(client, text="one")
    second = _create(client, text="two")
    assert first["id"] != second["id"]


def test_create_capture_with_blank_text_returns_validation_problem(client: TestClient) -> None:
    response = client.post("/api/captures", json={"text": "   "})

    assert response.status_code == 400
    assert response.json() == {
        "title": "Validation failed",
        "status": 400,
        "errors": {"Text": ["'Text' must not be empty."]},
    }
    assert client.get("/api/captures").json() == []


def test_create_capture_without_text_field_is_a_validation_failure(client: TestClient) -> None:
    response = client.post("/api/captures", json={})
    assert response.status_code == 400
    assert "Text" in response.json()["errors"]


def test_out_of_range_confidence_reports_both_fields(client: TestClient) -> None:
    response = client.post("/api/captures", json={"text": "", "typeConfidence": 150})

    assert response.status_code == 400
    errors = response.json()["errors"]
    assert set(errors) == {"Text", "TypeConfidence"}
    assert errors["TypeConfidence"] == ["'TypeConfidence' must be between 0 and 100. You entered 150."]


def test_get_capture_round_trip_and_missing(client: TestClient) -> None:
    created = _create(client, text="call mom", inferredType="task", typeConfidence=42)

    fetched = client.get(f"/api/captures/{created['id']}")
    missing = client.get("/api/captures/does-not-exist")

    assert fetched.status_code == 200
    assert fetched.json() == created
    assert missing.status_code == 404
    assert missing.content == b""


def test_get_all_captures_lists_created(client: TestClient) -> None:
    ids = {_create(client, text=f"thought {n}")["id"] for n in range(3)}
    listed = client.get("/api/captures").json()
    assert {capture["id"] for capture in listed} == ids


def test_update_capture_replaces_mutable_fields(client: TestClient) -> None:
    created = _create(client, text="draft", inferredType="note", typeConfidence=20)

    response = client.put(
        f"/api/captures/{created['id']}",
        json={"text": "final", "inferredType": "task", "typeConfidence": 90},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == created["id"]
    assert body["createdAt"] == created["createdAt"]
    assert (body["text"], body["inferredType"], body["typeConfidence"]) == ("final", "task", 90)


def test_update_missing_capture_returns_404_and_creates_nothing(client: TestClient) -> None:
    response = client.put("/api/captures/ghost", json={"text": "hello"})
    assert response.status_code == 404
    assert client.get("/api/captures").json() == []


def test_update_with_invalid_body_is_rejected_before_lookup(client: TestClient) -> None:
    response = client.put("/api/captures/ghost", json={"text": ""})
    assert response.status_code == 400


def test_delete_capture_then_delete_again(client: TestClient) -> None:
    created = _create(client, text="temporary")

    first = client.delete(f"/api/captures/{created['id']}")
    second = client.delete(f"/api/captures/{created['id']}")

    assert first.status_code == 204
    assert first.content == b""
    assert second.status_code == 404
    assert client.get(f"/api/captures/{created['id']}").status_code == 404
