"""Tests for the /api/v1/batches endpoints."""

from fastapi.testclient import TestClient

from tests.helpers import COMBINED_CSV, SHIP_FROM


def _upload(client: TestClient, content: bytes, filename: str = "orders.csv"):
    return client.post(
        "/api/v1/batches/upload",
        files={"file": (filename, content, "text/csv")},
    )


class TestUpload:
    """Tests for POST /batches/upload."""

    def test_creates_draft_batch(self, uploaded: dict):
        assert uploaded["batch_id"].startswith("BATCH-")
        assert uploaded["status"] == "draft"
        assert uploaded["current_step"] == 1
        assert uploaded["original_filename"] == "orders.csv"
        assert uploaded["stats"]["total_rows"] == 3
        assert uploaded["stats"]["total_weight"] == 44.0

        row = uploaded["rows"][1]
        assert row["row_number"] == 2
        assert row["recipient"]["state"] == "OR"
        assert row["package"]["weight"] == 24.0
        assert row["validation"]["status"] == "pending"
        assert row["shipping"]["service_type"] is None
        assert row["label"]["tracking_number"] is None

    def test_combined_layout_sets_ship_from(self, client: TestClient):
        response = _upload(client, COMBINED_CSV.encode(), "combined.csv")
        assert response.status_code == 201
        assert response.json()["ship_from"]["city"] == "Newark"

    def test_owner_is_recorded(self, client: TestClient):
        response = client.post(
            "/api/v1/batches/upload?owner_id=u1",
            files={"file": ("orders.csv", b"Name,Street,City,State,Zip\nA,1 Main St,X,IL,62701\n", "text/csv")},
        )
        assert response.json()["owner_id"] == "u1"

    def test_unrecognized_columns(self, client: TestClient):
        response = _upload(client, b"Foo,Bar\n1,2\n")
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "E-1002"

    def test_empty_file(self, client: TestClient):
        response = _upload(client, b"")
        assert response.status_code == 400
        assert response.json()["code"] == "E-1001"


class TestQueries:
    """Tests for listing and reading batches."""

    def test_list_batches(self, client: TestClient, uploaded: dict):
        response = client.get("/api/v1/batches")
        assert response.status_code == 200
        body = response.json()
        assert [b["batch_id"] for b in body["batches"]] == [uploaded["batch_id"]]
        assert "rows" not in body["batches"][0]
        assert body["pagination"] == {"page": 1, "limit": 20, "total": 1, "pages": 1}

    def test_list_filters_by_status(self, client: TestClient, uploaded: dict):
        response = client.get("/api/v1/batches", params={"status": "purchased"})
        assert response.json()["batches"] == []

    def test_get_batch(self, client: TestClient, uploaded: dict):
        response = client.get(f"/api/v1/batches/{uploaded['batch_id']}")
        assert response.status_code == 200
        assert len(response.json()["rows"]) == 3

    def test_get_missing_batch(self, client: TestClient):
        response = client.get("/api/v1/batches/BATCH-NOPE")
        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "code": "E-4001",
            "message": "Batch 'BATCH-NOPE' not found",
        }

    def test_stats(self, client: TestClient, uploaded: dict):
        response = client.get(f"/api/v1/batches/{uploaded['batch_id']}/stats")
        assert response.json()["total_weight"] == 44.0


class TestRows:
    """Tests for row edits and deletion."""

    def test_update_row(self, client: TestClient, uploaded: dict):
        row = uploaded["rows"][0]
        response = client.patch(
            f"/api/v1/batches/{uploaded['batch_id']}/rows/{row['id']}",
            json={"weight": 2, "weight_unit": "lb", "state": "Illinois"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["package"]["weight"] == 32.0
        assert body["package"]["weight_unit"] == "lb"
        assert body["recipient"]["state"] == "IL"
        assert body["revision"] == 1

    def test_update_row_rejects_bad_unit(self, client: TestClient, uploaded: dict):
        row = uploaded["rows"][0]
        response = client.patch(
            f"/api/v1/batches/{uploaded['batch_id']}/rows/{row['id']}",
            json={"weight_unit": "kg"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "E-2005"

    def test_update_row_rejects_unknown_field(self, client: TestClient, uploaded: dict):
        row = uploaded["rows"][0]
        response = client.patch(
            f"/api/v1/batches/{uploaded['batch_id']}/rows/{row['id']}",
            json={"color": "red"},
        )
        assert response.status_code == 422

    def test_update_missing_row(self, client: TestClient, uploaded: dict):
        response = client.patch(
            f"/api/v1/batches/{uploaded['batch_id']}/rows/missing", json={"city": "X"}
        )
        assert response.status_code == 404
        assert response.json()["code"] == "E-4002"

    def test_delete_row(self, client: TestClient, uploaded: dict):
        row = uploaded["rows"][0]
        response = client.delete(f"/api/v1/batches/{uploaded['batch_id']}/rows/{row['id']}")
        assert response.status_code == 200
        body = response.json()
        assert [r["row_number"] for r in body["rows"]] == [1, 2]
        assert body["stats"]["total_rows"] == 2


class TestWorkflow:
    """Tests for step, ship-from, cancel and delete."""

    def test_step_moves_status(self, client: TestClient, uploaded: dict):
        response = client.patch(f"/api/v1/batches/{uploaded['batch_id']}/step", json={"step": 2})
        assert response.status_code == 200
        assert response.json()["status"] == "validating"
        assert response.json()["current_step"] == 2

    def test_step_four_is_rejected(self, client: TestClient, uploaded: dict):
        response = client.patch(f"/api/v1/batches/{uploaded['batch_id']}/step", json={"step": 4})
        assert response.status_code == 400
        assert response.json()["code"] == "E-2001"

    def test_illegal_transition(self, client: TestClient, uploaded: dict):
        response = client.patch(f"/api/v1/batches/{uploaded['batch_id']}/step", json={"step": 3})
        assert response.status_code == 409
        assert response.json()["code"] == "E-3006"

    def test_set_ship_from(self, client: TestClient, uploaded: dict):
        response = client.patch(
            f"/api/v1/batches/{uploaded['batch_id']}/ship-from", json={"address": SHIP_FROM}
        )
        assert response.status_code == 200
        assert response.json()["ship_from"]["street1"] == "1 Dock Rd"

    def test_set_ship_from_from_saved_address(self, client: TestClient, uploaded: dict):
        saved = client.post("/api/v1/addresses/saved", json={"label": "Dock", **SHIP_FROM}).json()
        response = client.patch(
            f"/api/v1/batches/{uploaded['batch_id']}/ship-from",
            json={"saved_address_id": saved["id"]},
        )
        assert response.json()["ship_from_address_id"] == saved["id"]

    def test_set_ship_from_requires_a_source(self, client: TestClient, uploaded: dict):
        response = client.patch(f"/api/v1/batches/{uploaded['batch_id']}/ship-from", json={})
        assert response.status_code == 400
        assert response.json()["code"] == "E-2002"

    def test_cancel_then_edit(self, client: TestClient, uploaded: dict):
        batch_id = uploaded["batch_id"]
        response = client.post(f"/api/v1/batches/{batch_id}/cancel")
        assert response.json()["status"] == "cancelled"

        response = client.patch(f"/api/v1/batches/{batch_id}/step", json={"step": 2})
        assert response.status_code == 409
        assert response.json()["code"] == "E-3007"

    def test_delete_batch(self, client: TestClient, uploaded: dict):
        batch_id = uploaded["batch_id"]
        response = client.delete(f"/api/v1/batches/{batch_id}")
        assert response.json() == {"success": True, "deleted": True, "batch_id": batch_id}
        assert client.get(f"/api/v1/batches/{batch_id}").status_code == 404

    def test_purchased_batch_cannot_be_deleted(self, client: TestClient, ready_batch: dict):
        batch_id = ready_batch["batch_id"]
        client.post(f"/api/v1/shipping/purchase/{batch_id}")
        response = client.delete(f"/api/v1/batches/{batch_id}")
        assert response.status_code == 409
        assert response.json()["code"] == "E-3002"
