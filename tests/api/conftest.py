"""Fixtures for the HTTP API tests.

The client shares the root ``db`` session (in-memory, StaticPool) and the
heuristic ``pipeline`` with the service tests, so API tests can inspect
the database directly when a response is not enough.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from src.api.dependencies import get_pipeline, get_validation_config
from src.api.main import app
from src.config import AddressValidationConfig
from src.db.connection import get_db
from src.services.address_validation import AddressValidationPipeline
from tests.helpers import INDIVIDUAL_CSV, SHIP_FROM


@pytest.fixture
def client(
    db: Session,
    pipeline: AddressValidationPipeline,
    validation_config: AddressValidationConfig,
) -> Generator[TestClient, None, None]:
    """TestClient with the session and validation collaborators swapped in."""
    app.dependency_overrides.update({
        get_db: lambda: db,
        get_validation_config: lambda: validation_config,
        get_pipeline: lambda: pipeline,
    })
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def uploaded(client: TestClient) -> dict:
    """The three-row sample CSV, uploaded as orders.csv."""
    response = client.post(
        "/api/v1/batches/upload",
        files={"file": ("orders.csv", INDIVIDUAL_CSV.encode(), "text/csv")},
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def ready_batch(client: TestClient, uploaded: dict) -> dict:
    """Uploaded batch at shipping_selected with a ship-from set."""
    batch_id = uploaded["batch_id"]
    client.patch(f"/api/v1/batches/{batch_id}/step", json={"step": 2})
    client.patch(f"/api/v1/batches/{batch_id}/ship-from", json={"address": SHIP_FROM})
    response = client.post(f"/api/v1/shipping/select/{batch_id}", json={"strategy": "cheapest"})
    assert response.status_code == 200, response.text
    return uploaded
