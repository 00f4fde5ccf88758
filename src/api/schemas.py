"""Pydantic schemas for API request/response validation.

This module defines the data contracts for the ShipBatch REST API:
batches and rows, address validation, rates and shipping selection,
and the saved address/package templates.

Request bodies only describe shape; value rules (required fields, units,
positive weights) are enforced by the services so that violations carry
the registry's E-XXXX codes.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.db.models import Batch, ShipmentRow

# Postal address schemas


class PostalAddress(BaseModel):
    """Postal address as accepted and returned by the API."""

    name: str | None = None
    company: str | None = None
    street1: str | None = None
    street2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = "US"
    phone: str | None = None
    email: str | None = None


class ValidationResultResponse(BaseModel):
    """Response schema for a single-address validation."""

    status: str
    messages: list[str]
    suggested_address: dict[str, Any] | None = None
    provider: str


# Row schemas


class PackageInfo(BaseModel):
    """Package details of a row; weight in ounces."""

    weight: float
    weight_unit: str
    length: float | None = None
    width: float | None = None
    height: float | None = None
    dimension_unit: str


class RowValidationInfo(BaseModel):
    """Validation outcome stored on a row."""

    status: str
    messages: list[str] = Field(default_factory=list)
    validated_at: str | None = None
    suggested_address: dict[str, Any] | None = None


class RowShippingInfo(BaseModel):
    """Selected service; all None until a service is chosen."""

    service_type: str | None = None
    rate: float | None = None
    estimated_delivery: str | None = None


class RowLabelInfo(BaseModel):
    """Label fields, populated at purchase."""

    tracking_number: str | None = None
    label_url: str | None = None
    purchased_at: str | None = None


class ShipmentRowResponse(BaseModel):
    """Response schema for a shipment row."""

    id: str
    row_number: int
    recipient: PostalAddress
    package: PackageInfo
    reference: str | None = None
    sku: str | None = None
    notes: str | None = None
    validation: RowValidationInfo
    shipping: RowShippingInfo
    label: RowLabelInfo
    revision: int

    @classmethod
    def from_row(cls, row: ShipmentRow) -> "ShipmentRowResponse":
        """Project the flat row columns into nested API sections."""
        return cls(
            id=row.id,
            row_number=row.row_number,
            recipient=PostalAddress(**row.recipient),
            package=PackageInfo(
                weight=row.weight,
                weight_unit=row.weight_unit,
                length=row.length,
                width=row.width,
                height=row.height,
                dimension_unit=row.dimension_unit,
            ),
            reference=row.reference,
            sku=row.sku,
            notes=row.notes,
            validation=RowValidationInfo(
                status=row.validation_status,
                messages=row.messages,
                validated_at=row.validated_at,
                suggested_address=row.suggested_address,
            ),
            shipping=RowShippingInfo(
                service_type=row.service_type,
                rate=row.rate,
                estimated_delivery=row.estimated_delivery,
            ),
            label=RowLabelInfo(
                tracking_number=row.tracking_number,
                label_url=row.label_url,
                purchased_at=row.label_purchased_at,
            ),
            revision=row.revision,
        )


class RowUpdate(BaseModel):
    """Request schema for editing a row. Only fields that are sent are applied."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    company: str | None = None
    street1: str | None = None
    street2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None
    phone: str | None = None
    email: str | None = None
    weight: float | None = None
    weight_unit: str | None = None
    length: float | None = None
    width: float | None = None
    height: float | None = None
    dimension_unit: str | None = None
    reference: str | None = None
    sku: str | None = None
    notes: str | None = None


# Batch schemas


class BatchStats(BaseModel):
    """Derived batch statistics; estimated cost in dollars."""

    total_rows: int
    valid_rows: int
    warning_rows: int
    invalid_rows: int
    total_weight: float
    estimated_cost: float


class BatchSummaryResponse(BaseModel):
    """Response schema for a batch without its rows."""

    batch_id: str
    status: str
    current_step: int
    ship_from: dict[str, Any] | None = None
    ship_from_address_id: str | None = None
    stats: BatchStats
    original_filename: str | None = None
    owner_id: str | None = None
    created_at: str
    updated_at: str
    purchased_at: str | None = None

    @classmethod
    def from_batch(cls, batch: Batch) -> "BatchSummaryResponse":
        return cls(
            batch_id=batch.batch_id,
            status=batch.status,
            current_step=batch.current_step,
            ship_from=batch.ship_from,
            ship_from_address_id=batch.ship_from_address_id,
            stats=BatchStats(**batch.stats),
            original_filename=batch.original_filename,
            owner_id=batch.owner_id,
            created_at=batch.created_at,
            updated_at=batch.updated_at,
            purchased_at=batch.purchased_at,
        )


class BatchResponse(BatchSummaryResponse):
    """Response schema for a batch with its rows."""

    rows: list[ShipmentRowResponse] = Field(default_factory=list)

    @classmethod
    def from_batch(cls, batch: Batch) -> "BatchResponse":
        summary = BatchSummaryResponse.from_batch(batch)
        return cls(
            **summary.model_dump(),
            rows=[ShipmentRowResponse.from_row(row) for row in batch.rows],
        )


class PaginationInfo(BaseModel):
    """Page position for list endpoints."""

    page: int
    limit: int
    total: int
    pages: int


class BatchListResponse(BaseModel):
    """Response schema for listing batches."""

    batches: list[BatchSummaryResponse]
    pagination: PaginationInfo


class StepUpdate(BaseModel):
    """Request schema for moving the batch wizard."""

    step: int


class ShipFromUpdate(BaseModel):
    """Request schema for setting a batch ship-from.

    Either ``saved_address_id`` or ``address`` must be given; a saved
    address takes precedence.
    """

    address: PostalAddress | None = None
    saved_address_id: str | None = None


class BatchValidationResponse(BaseModel):
    """Summary of a bulk address validation."""

    batch_id: str
    total_rows: int
    valid: int
    warning: int
    invalid: int
    stale_rows: int
    status: str


# Shipping schemas


class RateQuoteResponse(BaseModel):
    """One service's rate for a weight."""

    available: bool
    service_type: str
    weight: float | None = None
    weight_lb: str | None = None
    rate: float | None = None
    estimated_delivery: str | None = None
    error: str | None = None


class RateOptionsResponse(BaseModel):
    """All available services for a weight, cheapest first."""

    weight: float
    weight_lb: str
    rates: list[RateQuoteResponse]
    cheapest: RateQuoteResponse | None = None
    fastest: RateQuoteResponse | None = None
    ground_available: bool


class ShippingSelection(BaseModel):
    """Request schema for selecting a service for one row."""

    service_type: str


class BulkShippingSelection(BaseModel):
    """Request schema for selecting services for every row."""

    strategy: str = "all"
    service_type: str = "ground"


class BulkSelectionResponse(BaseModel):
    """Outcome of a bulk shipping selection."""

    batch_id: str
    updated: int
    skipped: int
    errors: list[dict[str, Any]]
    estimated_cost: float


class PurchasedLabel(BaseModel):
    """Label line in a purchase result."""

    row_number: int
    tracking_number: str
    service_type: str
    rate: float | None = None


class PurchaseResponse(BaseModel):
    """Outcome of purchasing a batch."""

    success: bool
    batch_id: str
    purchased_at: str
    total_cost: float
    label_count: int
    labels: list[PurchasedLabel]


# Saved address schemas


class SavedAddressCreate(BaseModel):
    """Request schema for creating a saved address."""

    type: str = "ship_from"
    label: str = ""
    name: str = ""
    company: str | None = None
    street1: str = ""
    street2: str | None = None
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = "US"
    phone: str | None = None
    email: str | None = None
    is_default: bool = False
    owner_id: str = ""


class SavedAddressUpdate(BaseModel):
    """Request schema for partially updating a saved address."""

    type: str | None = None
    label: str | None = None
    name: str | None = None
    company: str | None = None
    street1: str | None = None
    street2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None
    phone: str | None = None
    email: str | None = None
    is_default: bool | None = None


class SavedAddressResponse(BaseModel):
    """Response schema for a saved address."""

    id: str
    type: str
    label: str
    is_default: bool
    name: str
    company: str | None = None
    street1: str
    street2: str | None = None
    city: str
    state: str
    zip: str
    country: str
    phone: str | None = None
    email: str | None = None
    validated: bool
    validated_address: dict[str, Any] | None = None
    owner_id: str
    created_at: str
    updated_at: str

    model_config = ConfigDict(from_attributes=True)


# Saved package schemas


class SavedPackageCreate(BaseModel):
    """Request schema for creating a saved package."""

    label: str = ""
    weight: float = 0
    weight_unit: str = "oz"
    length: float | None = None
    width: float | None = None
    height: float | None = None
    dimension_unit: str = "in"
    package_type: str = "box"
    is_default: bool = False
    owner_id: str = ""


class SavedPackageUpdate(BaseModel):
    """Request schema for partially updating a saved package."""

    label: str | None = None
    weight: float | None = None
    weight_unit: str | None = None
    length: float | None = None
    width: float | None = None
    height: float | None = None
    dimension_unit: str | None = None
    package_type: str | None = None
    is_default: bool | None = None


class SavedPackageResponse(BaseModel):
    """Response schema for a saved package."""

    id: str
    label: str
    is_default: bool
    weight: float
    weight_unit: str
    length: float | None = None
    width: float | None = None
    height: float | None = None
    dimension_unit: str
    package_type: str
    owner_id: str
    created_at: str
    updated_at: str

    model_config = ConfigDict(from_attributes=True)
