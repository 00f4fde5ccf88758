"""Tests for the /api/v1/addresses endpoints."""

from fastapi.testclient import TestClient

from tests.helpers import SHIP_FROM

RECIPIENT = {
    "name": "Jane Roe",
    "street1": "123 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip": "62701",
}


def _create(client: TestClient, label: str = "Warehouse", **overrides) -> dict:
    response = client.post("/api/v1/addresses/saved", json={"label": label, **SHIP_FROM, **overrides})
    assert response.status_code == 201, response.text
    return response.json()


class TestValidate:
    """Tests for single and batch validation."""

    def test_valid_address(self, client: TestClient):
        response = client.post("/api/v1/addresses/validate", json=RECIPIENT)
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "valid"
        assert body["provider"] == "mock"
        assert body["suggested_address"]["city"] == "SPRINGFIELD"

    def test_warning_address(self, client: TestClient):
        response = client.post("/api/v1/addresses/validate", json={**RECIPIENT, "street1": "PO Box 12"})
        body = response.json()
        assert body["status"] == "warning"
        assert body["messages"] == ["PO Box addresses may have delivery restrictions"]

    def test_missing_fields_fail_the_schema_check(self, client: TestClient):
        response = client.post("/api/v1/addresses/validate", json={"name": "Jane"})
        body = response.json()
        assert body["status"] == "invalid"
        assert body["provider"] == "schema"
        assert "street1: Street address is required" in body["messages"]

    def test_validate_batch(self, client: TestClient, uploaded: dict):
        batch_id = uploaded["batch_id"]
        response = client.post(f"/api/v1/addresses/validate-batch/{batch_id}")
        assert response.status_code == 200
        assert response.json() == {
            "batch_id": batch_id,
            "total_rows": 3,
            "valid": 3,
            "warning": 0,
            "invalid": 0,
            "stale_rows": 0,
            "status": "validated",
        }
        batch = client.get(f"/api/v1/batches/{batch_id}").json()
        assert batch["rows"][0]["validation"]["status"] == "valid"

    def test_validate_missing_batch(self, client: TestClient):
        response = client.post("/api/v1/addresses/validate-batch/BATCH-NOPE")
        assert response.status_code == 404


class TestSavedAddresses:
    """Tests for saved address CRUD."""

    def test_create_and_get(self, client: TestClient):
        created = _create(client, state="new jersey")
        assert created["state"] == "NJ"
        assert created["type"] == "ship_from"
        assert created["validated"] is True
        assert created["is_default"] is False

        response = client.get(f"/api/v1/addresses/saved/{created['id']}")
        assert response.json()["label"] == "Warehouse"

    def test_create_rejects_missing_fields(self, client: TestClient):
        response = client.post("/api/v1/addresses/saved", json={"name": "Jane"})
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "E-2005"
        assert "Label is required" in body["message"]

    def test_list_and_search(self, client: TestClient):
        _create(client, "Alpha")
        _create(client, "Bravo", type="ship_to", city="Boston")

        labels = [a["label"] for a in client.get("/api/v1/addresses/saved").json()]
        assert labels == ["Alpha", "Bravo"]
        response = client.get("/api/v1/addresses/saved", params={"search": "bost"})
        assert [a["label"] for a in response.json()] == ["Bravo"]
        response = client.get("/api/v1/addresses/saved", params={"type": "ship_from"})
        assert [a["label"] for a in response.json()] == ["Alpha"]

    def test_update(self, client: TestClient):
        created = _create(client)
        response = client.patch(
            f"/api/v1/addresses/saved/{created['id']}", json={"street1": "PO Box 9"}
        )
        assert response.status_code == 200
        assert response.json()["street1"] == "PO Box 9"
        assert response.json()["validated"] is False

    def test_default_management(self, client: TestClient):
        assert client.get("/api/v1/addresses/default-ship-from").json() is None

        first = _create(client, "First", is_default=True)
        second = _create(client, "Second")
        response = client.patch(f"/api/v1/addresses/saved/{second['id']}/default")
        assert response.json()["is_default"] is True

        default = client.get("/api/v1/addresses/default-ship-from").json()
        assert default["id"] == second["id"]
        first_now = client.get(f"/api/v1/addresses/saved/{first['id']}").json()
        assert first_now["is_default"] is False

    def test_delete(self, client: TestClient):
        created = _create(client)
        response = client.delete(f"/api/v1/addresses/saved/{created['id']}")
        assert response.json() == {"success": True, "deleted": True, "id": created["id"]}

        response = client.get(f"/api/v1/addresses/saved/{created['id']}")
        assert response.status_code == 404
        assert response.json()["code"] == "E-4003"
