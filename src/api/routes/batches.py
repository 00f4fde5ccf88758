"""API routes for batch upload and workflow management.

Provides endpoints for uploading CSV batches, listing and inspecting
them, editing rows, and moving batches through the wizard. All
endpoints use the /api/v1/batches prefix.
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from src.api.dependencies import get_pipeline, get_validation_config
from src.api.schemas import (
    BatchListResponse,
    BatchResponse,
    BatchStats,
    BatchSummaryResponse,
    RowUpdate,
    ShipFromUpdate,
    ShipmentRowResponse,
    StepUpdate,
)
from src.config import AddressValidationConfig
from src.db.connection import get_db
from src.services.address_validation import AddressValidationPipeline
from src.services.batch_ingestion import BatchIngestionEngine
from src.services.batch_service import BatchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/batches", tags=["batches"])


def _get_service(
    db: Session = Depends(get_db),
    pipeline: AddressValidationPipeline = Depends(get_pipeline),
    config: AddressValidationConfig = Depends(get_validation_config),
) -> BatchService:
    """Dependency injector for BatchService."""
    return BatchService(db, pipeline=pipeline, config=config)


@router.post("/upload", response_model=BatchResponse, status_code=201)
async def upload_batch(
    file: UploadFile = File(...),
    owner_id: str | None = None,
    db: Session = Depends(get_db),
) -> BatchResponse:
    """Upload a CSV file and create a draft batch from it.

    Args:
        file: The uploaded CSV file.
        owner_id: Optional owning user reference.
        db: Database session (injected).

    Returns:
        The created batch with its rows.
    """
    try:
        data = await file.read()
    finally:
        await file.close()

    logger.info("CSV upload received: filename=%s bytes=%d", file.filename, len(data))
    batch = BatchIngestionEngine(db).ingest(data, file.filename, owner_id=owner_id)
    return BatchResponse.from_batch(batch)


@router.get("", response_model=BatchListResponse)
def list_batches(
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
    owner_id: str | None = None,
    service: BatchService = Depends(_get_service),
) -> BatchListResponse:
    """List batches newest first, without rows.

    Args:
        status: Filter by batch status.
        page: 1-based page number.
        limit: Page size.
        owner_id: Filter by owner.
        service: BatchService (injected).
    """
    result = service.list_batches(status=status, page=page, limit=limit, owner_id=owner_id)
    return BatchListResponse(
        batches=[BatchSummaryResponse.from_batch(b) for b in result["batches"]],
        pagination=result["pagination"],
    )


@router.get("/{batch_id}", response_model=BatchResponse)
def get_batch(
    batch_id: str,
    service: BatchService = Depends(_get_service),
) -> BatchResponse:
    """Get a batch with all of its rows."""
    return BatchResponse.from_batch(service.get_batch(batch_id))


@router.get("/{batch_id}/stats", response_model=BatchStats)
def get_batch_stats(
    batch_id: str,
    service: BatchService = Depends(_get_service),
) -> BatchStats:
    """Recompute and return batch statistics."""
    return BatchStats(**service.update_stats(batch_id))


@router.patch("/{batch_id}/rows/{row_id}", response_model=ShipmentRowResponse)
def update_row(
    batch_id: str,
    row_id: str,
    data: RowUpdate,
    service: BatchService = Depends(_get_service),
) -> ShipmentRowResponse:
    """Edit a row. Its validation and shipping selection are reset.

    Args:
        batch_id: Batch identifier.
        row_id: Row UUID.
        data: Fields to change; omitted fields are untouched.
        service: BatchService (injected).
    """
    row = service.update_row(batch_id, row_id, data.model_dump(exclude_unset=True))
    return ShipmentRowResponse.from_row(row)


@router.delete("/{batch_id}/rows/{row_id}", response_model=BatchResponse)
def delete_row(
    batch_id: str,
    row_id: str,
    service: BatchService = Depends(_get_service),
) -> BatchResponse:
    """Delete a row; the remaining rows are renumbered."""
    return BatchResponse.from_batch(service.delete_row(batch_id, row_id))


@router.patch("/{batch_id}/step", response_model=BatchSummaryResponse)
def update_step(
    batch_id: str,
    data: StepUpdate,
    service: BatchService = Depends(_get_service),
) -> BatchSummaryResponse:
    """Move the batch wizard to step 1-3."""
    return BatchSummaryResponse.from_batch(service.update_step(batch_id, data.step))


@router.patch("/{batch_id}/ship-from", response_model=BatchSummaryResponse)
def set_ship_from(
    batch_id: str,
    data: ShipFromUpdate,
    service: BatchService = Depends(_get_service),
) -> BatchSummaryResponse:
    """Set the batch ship-from from an address or a saved address."""
    address = data.address.model_dump() if data.address else None
    batch = service.set_ship_from(
        batch_id, address=address, saved_address_id=data.saved_address_id
    )
    return BatchSummaryResponse.from_batch(batch)


@router.post("/{batch_id}/cancel", response_model=BatchSummaryResponse)
def cancel_batch(
    batch_id: str,
    service: BatchService = Depends(_get_service),
) -> BatchSummaryResponse:
    """Cancel a batch that has not been purchased."""
    return BatchSummaryResponse.from_batch(service.cancel_batch(batch_id))


@router.delete("/{batch_id}")
def delete_batch(
    batch_id: str,
    service: BatchService = Depends(_get_service),
) -> dict:
    """Delete a batch. Purchased batches cannot be deleted."""
    service.delete_batch(batch_id)
    return {"success": True, "deleted": True, "batch_id": batch_id}
