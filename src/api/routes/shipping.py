"""API routes for rates, shipping selection, purchase, labels and saved packages.

All endpoints use the /api/v1/shipping prefix.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.api.dependencies import get_pipeline, get_validation_config
from src.api.schemas import (
    BulkSelectionResponse,
    BulkShippingSelection,
    PurchaseResponse,
    RateOptionsResponse,
    RateQuoteResponse,
    SavedPackageCreate,
    SavedPackageResponse,
    SavedPackageUpdate,
    ShipmentRowResponse,
    ShippingSelection,
)
from src.config import AddressValidationConfig
from src.db.connection import get_db
from src.services.address_validation import AddressValidationPipeline
from src.services.batch_service import BatchService
from src.services.pricing_service import (
    calculate_rate,
    get_all_rates,
    get_pricing_table,
    normalize_weight,
)
from src.services.saved_package_service import SavedPackageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shipping", tags=["shipping"])


def _get_service(
    db: Session = Depends(get_db),
    pipeline: AddressValidationPipeline = Depends(get_pipeline),
    config: AddressValidationConfig = Depends(get_validation_config),
) -> BatchService:
    """Dependency injector for BatchService."""
    return BatchService(db, pipeline=pipeline, config=config)


def _get_package_service(db: Session = Depends(get_db)) -> SavedPackageService:
    """Dependency injector for SavedPackageService."""
    return SavedPackageService(db)


# Rates


@router.get("/pricing")
def pricing_table() -> dict:
    """Human-readable tier boundaries and prices per service."""
    return get_pricing_table()


@router.get("/calculate", response_model=RateQuoteResponse | RateOptionsResponse)
def calculate(
    weight: float,
    service_type: str | None = None,
    weight_unit: str = "oz",
) -> RateQuoteResponse | RateOptionsResponse:
    """Rate an ad hoc weight.

    Args:
        weight: Package weight.
        service_type: Rate one service; all available services when omitted.
        weight_unit: "oz" (default) or "lb".
    """
    weight_oz = normalize_weight(weight, weight_unit)
    if service_type:
        return RateQuoteResponse(**calculate_rate(weight_oz, service_type).to_dict())
    return RateOptionsResponse(**get_all_rates(weight_oz).to_dict())


@router.get("/rates/{batch_id}")
def rates_for_batch(
    batch_id: str,
    service: BatchService = Depends(_get_service),
) -> dict:
    """Available rates for every row of a batch."""
    return service.get_rates_for_batch(batch_id)


@router.get("/rates/{batch_id}/{row_id}", response_model=RateOptionsResponse)
def rates_for_row(
    batch_id: str,
    row_id: str,
    service: BatchService = Depends(_get_service),
) -> RateOptionsResponse:
    """Available rates for one row."""
    return RateOptionsResponse(**service.get_rates_for_row(batch_id, row_id).to_dict())


# Selection and purchase


@router.post("/select/{batch_id}", response_model=BulkSelectionResponse)
def bulk_select(
    batch_id: str,
    data: BulkShippingSelection,
    service: BatchService = Depends(_get_service),
) -> BulkSelectionResponse:
    """Select a service for every row using the "all" or "cheapest" strategy."""
    result = service.bulk_select_shipping(
        batch_id, strategy=data.strategy, service_type=data.service_type
    )
    return BulkSelectionResponse(**result)


@router.post("/select/{batch_id}/{row_id}", response_model=ShipmentRowResponse)
def select_for_row(
    batch_id: str,
    row_id: str,
    data: ShippingSelection,
    service: BatchService = Depends(_get_service),
) -> ShipmentRowResponse:
    """Select a service for one row."""
    row = service.select_shipping(batch_id, row_id, data.service_type)
    return ShipmentRowResponse.from_row(row)


@router.post("/purchase/{batch_id}", response_model=PurchaseResponse)
def purchase(
    batch_id: str,
    service: BatchService = Depends(_get_service),
) -> PurchaseResponse:
    """Purchase labels for every row of a batch."""
    return PurchaseResponse(**service.purchase_batch(batch_id))


# Labels (download must be registered before the per-row route)


@router.get("/labels/{batch_id}/download")
def download_labels(
    batch_id: str,
    service: BatchService = Depends(_get_service),
) -> dict:
    """Batch header plus one label entry per purchased row."""
    return service.generate_batch_labels(batch_id)


@router.get("/labels/{batch_id}/{row_id}")
def get_label(
    batch_id: str,
    row_id: str,
    service: BatchService = Depends(_get_service),
) -> dict:
    """Label projection for one purchased row."""
    return service.get_label(batch_id, row_id)


# Saved packages


@router.get("/packages", response_model=list[SavedPackageResponse])
def list_packages(
    owner_id: str | None = None,
    service: SavedPackageService = Depends(_get_package_service),
) -> list[SavedPackageResponse]:
    """List saved packages, defaults first."""
    return [SavedPackageResponse.model_validate(p) for p in service.list_packages(owner_id)]


@router.post("/packages", response_model=SavedPackageResponse, status_code=201)
def create_package(
    data: SavedPackageCreate,
    service: SavedPackageService = Depends(_get_package_service),
    db: Session = Depends(get_db),
) -> SavedPackageResponse:
    """Create a saved package."""
    package = service.create_package(**data.model_dump())
    db.commit()
    return SavedPackageResponse.model_validate(package)


@router.get("/packages/{package_id}", response_model=SavedPackageResponse)
def get_package(
    package_id: str,
    service: SavedPackageService = Depends(_get_package_service),
) -> SavedPackageResponse:
    """Get one saved package."""
    return SavedPackageResponse.model_validate(service.get_package(package_id))


@router.patch("/packages/{package_id}", response_model=SavedPackageResponse)
def update_package(
    package_id: str,
    data: SavedPackageUpdate,
    service: SavedPackageService = Depends(_get_package_service),
    db: Session = Depends(get_db),
) -> SavedPackageResponse:
    """Partially update a saved package."""
    updates = {k: v for k, v in data.model_dump().items() if v is not None}
    package = service.update_package(package_id, **updates)
    db.commit()
    return SavedPackageResponse.model_validate(package)


@router.delete("/packages/{package_id}")
def delete_package(
    package_id: str,
    service: SavedPackageService = Depends(_get_package_service),
    db: Session = Depends(get_db),
) -> dict:
    """Delete a saved package."""
    service.delete_package(package_id)
    db.commit()
    return {"success": True, "deleted": True, "id": package_id}


@router.patch("/packages/{package_id}/default", response_model=SavedPackageResponse)
def set_default_package(
    package_id: str,
    service: SavedPackageService = Depends(_get_package_service),
    db: Session = Depends(get_db),
) -> SavedPackageResponse:
    """Make a package the owner's default, clearing the previous one."""
    package = service.set_default(package_id)
    db.commit()
    return SavedPackageResponse.model_validate(package)
