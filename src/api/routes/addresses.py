"""API routes for address validation and saved addresses.

All endpoints use the /api/v1/addresses prefix. Saved-address service
methods only flush; these routes commit.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.api.dependencies import get_pipeline, get_validation_config
from src.api.schemas import (
    BatchValidationResponse,
    PostalAddress,
    SavedAddressCreate,
    SavedAddressResponse,
    SavedAddressUpdate,
    ValidationResultResponse,
)
from src.config import AddressValidationConfig
from src.db.connection import get_db
from src.errors import ConflictError
from src.services.address_validation import AddressValidationPipeline, validate_address
from src.services.batch_service import BatchService
from src.services.saved_address_service import SavedAddressService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/addresses", tags=["addresses"])


def _get_service(
    db: Session = Depends(get_db),
    pipeline: AddressValidationPipeline = Depends(get_pipeline),
) -> SavedAddressService:
    """Dependency injector for SavedAddressService."""
    return SavedAddressService(db, pipeline=pipeline)


def _commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("Saved address write rejected by a constraint: %s", e.orig)
        raise ConflictError("Saved address conflicts with an existing default.") from e


@router.post("/validate", response_model=ValidationResultResponse)
async def validate_single_address(
    data: PostalAddress,
    pipeline: AddressValidationPipeline = Depends(get_pipeline),
) -> ValidationResultResponse:
    """Validate one address through the configured provider chain."""
    result = await validate_address(data.model_dump(), pipeline)
    return ValidationResultResponse(**result.to_dict())


@router.post("/validate-batch/{batch_id}", response_model=BatchValidationResponse)
async def validate_batch(
    batch_id: str,
    db: Session = Depends(get_db),
    pipeline: AddressValidationPipeline = Depends(get_pipeline),
    config: AddressValidationConfig = Depends(get_validation_config),
) -> BatchValidationResponse:
    """Validate every row of a batch and move it to validated."""
    service = BatchService(db, pipeline=pipeline, config=config)
    return BatchValidationResponse(**await service.validate_batch(batch_id))


@router.get("/default-ship-from", response_model=SavedAddressResponse | None)
def get_default_ship_from(
    owner_id: str | None = None,
    service: SavedAddressService = Depends(_get_service),
) -> SavedAddressResponse | None:
    """Get the default ship-from address, or null when none is set."""
    address = service.get_default_ship_from(owner_id)
    return SavedAddressResponse.model_validate(address) if address else None


@router.get("/saved", response_model=list[SavedAddressResponse])
def list_saved_addresses(
    type: str | None = None,
    owner_id: str | None = None,
    search: str | None = None,
    service: SavedAddressService = Depends(_get_service),
) -> list[SavedAddressResponse]:
    """List saved addresses, defaults first.

    Args:
        type: Filter by ship_from or ship_to.
        owner_id: Filter by owner.
        search: Partial match on label, name, company or city.
        service: SavedAddressService (injected).
    """
    addresses = service.list_addresses(type=type, owner_id=owner_id, search=search)
    return [SavedAddressResponse.model_validate(a) for a in addresses]


@router.post("/saved", response_model=SavedAddressResponse, status_code=201)
async def create_saved_address(
    data: SavedAddressCreate,
    service: SavedAddressService = Depends(_get_service),
    db: Session = Depends(get_db),
) -> SavedAddressResponse:
    """Create a saved address."""
    address = await service.create_address(**data.model_dump())
    _commit(db)
    return SavedAddressResponse.model_validate(address)


@router.get("/saved/{address_id}", response_model=SavedAddressResponse)
def get_saved_address(
    address_id: str,
    service: SavedAddressService = Depends(_get_service),
) -> SavedAddressResponse:
    """Get one saved address."""
    return SavedAddressResponse.model_validate(service.get_address(address_id))


@router.patch("/saved/{address_id}", response_model=SavedAddressResponse)
async def update_saved_address(
    address_id: str,
    data: SavedAddressUpdate,
    service: SavedAddressService = Depends(_get_service),
    db: Session = Depends(get_db),
) -> SavedAddressResponse:
    """Partially update a saved address, re-validating changed postal fields."""
    updates = {k: v for k, v in data.model_dump().items() if v is not None}
    address = await service.update_address(address_id, **updates)
    _commit(db)
    return SavedAddressResponse.model_validate(address)


@router.delete("/saved/{address_id}")
def delete_saved_address(
    address_id: str,
    service: SavedAddressService = Depends(_get_service),
    db: Session = Depends(get_db),
) -> dict:
    """Delete a saved address."""
    service.delete_address(address_id)
    db.commit()
    return {"success": True, "deleted": True, "id": address_id}


@router.patch("/saved/{address_id}/default", response_model=SavedAddressResponse)
def set_default_address(
    address_id: str,
    service: SavedAddressService = Depends(_get_service),
    db: Session = Depends(get_db),
) -> SavedAddressResponse:
    """Make an address the default for its type, clearing the previous one."""
    address = service.set_default(address_id)
    _commit(db)
    return SavedAddressResponse.model_validate(address)
