"""SQLAlchemy ORM models for the ShipBatch state database.

This module defines the batch workflow models (batches and their shipment
rows) and the reusable saved-record templates (ship-from/ship-to addresses
and package presets). Uses SQLAlchemy 2.0 style with Mapped and
mapped_column.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


def _load_json(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    return json.loads(raw)


# Enums matching the database schema constraints


class BatchStatus(str, Enum):
    """Status values for a shipment batch.

    Lifecycle: draft -> validating -> validated -> shipping_selected -> purchased
               any pre-purchase status -> cancelled
    """

    draft = "draft"
    validating = "validating"
    validated = "validated"
    shipping_selected = "shipping_selected"
    purchased = "purchased"
    cancelled = "cancelled"


class ValidationStatus(str, Enum):
    """Address validation outcome stored on each row."""

    pending = "pending"
    valid = "valid"
    warning = "warning"
    invalid = "invalid"


class AddressType(str, Enum):
    """Kinds of saved address templates."""

    ship_from = "ship_from"
    ship_to = "ship_to"


class PackageType(str, Enum):
    """Package presets offered for saved packages."""

    box = "box"
    envelope = "envelope"
    flat_rate_box = "flat_rate_box"
    flat_rate_envelope = "flat_rate_envelope"
    tube = "tube"
    custom = "custom"


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class Batch(Base):
    """A set of shipment rows uploaded together.

    The stat columns are derived from the rows and are refreshed by
    ``recompute_stats`` at every mutation boundary in the batch service.

    Attributes:
        batch_id: Public identifier, BATCH-<base36 time>-<random>
        status: Current workflow status
        current_step: Wizard step 1-4
        ship_from_json: Ship-from postal address as JSON
        ship_from_address_id: Saved address the ship-from was copied from
        total_rows: Row count (always equals len(rows))
        valid_rows / warning_rows / invalid_rows: Validation tallies
        total_weight_oz: Sum of row weights in ounces
        estimated_cost_cents: Sum of selected rates in cents
        original_filename: Name of the uploaded CSV
        owner_id: Owning user reference, if any
        purchased_at: ISO8601 timestamp of purchase
        version_id: Optimistic concurrency counter
    """

    __tablename__ = "batches"

    batch_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BatchStatus.draft.value
    )
    current_step: Mapped[int] = mapped_column(nullable=False, default=1)

    # Ship-from
    ship_from_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    ship_from_address_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True
    )

    # Stats
    total_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    valid_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    warning_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    invalid_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    total_weight_oz: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    # Cost tracking (in cents to avoid float issues)
    estimated_cost_cents: Mapped[int] = mapped_column(default=0, nullable=False)

    original_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    owner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Timestamps (ISO8601 strings for SQLite compatibility)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )
    purchased_at: Mapped[str | None] = mapped_column(String(50), nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    rows: Mapped[list["ShipmentRow"]] = relationship(
        "ShipmentRow",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="ShipmentRow.row_number",
    )

    __mapper_args__ = {"version_id_col": version_id}

    # Indexes
    __table_args__ = (
        Index("idx_batches_status", "status"),
        Index("idx_batches_created_at", "created_at"),
        Index("idx_batches_owner", "owner_id"),
    )

    @property
    def ship_from(self) -> dict | None:
        """Parse the ship-from JSON into a dict."""
        return _load_json(self.ship_from_json, None)

    @ship_from.setter
    def ship_from(self, value: dict | None) -> None:
        self.ship_from_json = json.dumps(value) if value else None

    @property
    def stats(self) -> dict:
        """Derived batch statistics, estimated cost in dollars."""
        return {
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "warning_rows": self.warning_rows,
            "invalid_rows": self.invalid_rows,
            "total_weight": self.total_weight_oz,
            "estimated_cost": round(self.estimated_cost_cents / 100, 2),
        }

    def __repr__(self) -> str:
        return f"<Batch(batch_id={self.batch_id!r}, status={self.status!r}, rows={self.total_rows})>"


class ShipmentRow(Base):
    """One shipment (recipient + package) within a batch.

    Weight is stored in ounces; ``weight_unit`` is kept for display only.

    Attributes:
        id: UUID primary key, stable across renumbering
        batch_id: Foreign key to parent batch
        row_number: 1-based position, contiguous within the batch
        validation_status: pending, valid, warning or invalid
        validation_messages: JSON list of advisory/error messages
        suggested_address_json: Normalized address offered to the user
        service_type: ground, priority, or NULL when none is selected
        rate_cents: Rate for the selected service in cents
        tracking_number: Assigned once at purchase
        revision: Incremented on every user edit of the row
    """

    __tablename__ = "shipment_rows"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    batch_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("batches.batch_id", ondelete="CASCADE"), nullable=False
    )
    row_number: Mapped[int] = mapped_column(nullable=False)

    # Recipient
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    company: Mapped[str | None] = mapped_column(String(200), nullable=True)
    street1: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    street2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    state: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    zip: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    country: Mapped[str] = mapped_column(String(2), nullable=False, default="US")
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Package
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=16.0)
    weight_unit: Mapped[str] = mapped_column(String(5), nullable=False, default="oz")
    length: Mapped[float | None] = mapped_column(Float, nullable=True)
    width: Mapped[float | None] = mapped_column(Float, nullable=True)
    height: Mapped[float | None] = mapped_column(Float, nullable=True)
    dimension_unit: Mapped[str] = mapped_column(
        String(5), nullable=False, default="in"
    )

    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Validation
    validation_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ValidationStatus.pending.value
    )
    validation_messages: Mapped[str | None] = mapped_column(Text, nullable=True)
    validated_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    suggested_address_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Shipping
    service_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    rate_cents: Mapped[int | None] = mapped_column(nullable=True)
    estimated_delivery: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Label (populated once, at purchase)
    tracking_number: Mapped[str | None] = mapped_column(
        String(50), nullable=True, unique=True
    )
    label_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    label_purchased_at: Mapped[str | None] = mapped_column(String(50), nullable=True)

    revision: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    # Relationships
    batch: Mapped["Batch"] = relationship("Batch", back_populates="rows")

    __table_args__ = (
        Index("idx_shipment_rows_batch_id", "batch_id"),
        Index("idx_shipment_rows_validation", "validation_status"),
    )

    @property
    def messages(self) -> list[str]:
        """Parse validation messages JSON into a list."""
        return _load_json(self.validation_messages, [])

    @messages.setter
    def messages(self, value: list[str]) -> None:
        self.validation_messages = json.dumps(value) if value else None

    @property
    def suggested_address(self) -> dict | None:
        """Parse the suggested address JSON into a dict."""
        return _load_json(self.suggested_address_json, None)

    @suggested_address.setter
    def suggested_address(self, value: dict | None) -> None:
        self.suggested_address_json = json.dumps(value) if value else None

    @property
    def recipient(self) -> dict:
        """Recipient postal address as a plain dict."""
        return {
            "name": self.name,
            "company": self.company,
            "street1": self.street1,
            "street2": self.street2,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "country": self.country,
            "phone": self.phone,
            "email": self.email,
        }

    @property
    def rate(self) -> float | None:
        """Selected rate in dollars."""
        if self.rate_cents is None:
            return None
        return round(self.rate_cents / 100, 2)

    def __repr__(self) -> str:
        return f"<ShipmentRow(id={self.id!r}, batch_id={self.batch_id!r}, row={self.row_number}, status={self.validation_status!r})>"


class SavedAddress(Base):
    """Reusable ship-from or ship-to address.

    At most one record per (type, owner_id) has ``is_default`` set; the
    partial unique index backs the service's clear-then-set operation.
    """

    __tablename__ = "saved_addresses"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AddressType.ship_from.value
    )
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    is_default: Mapped[bool] = mapped_column(
        nullable=False, default=False, server_default="0"
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    company: Mapped[str | None] = mapped_column(String(200), nullable=True)
    street1: Mapped[str] = mapped_column(String(255), nullable=False)
    street2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(2), nullable=False)
    zip: Mapped[str] = mapped_column(String(10), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False, default="US")
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    validated: Mapped[bool] = mapped_column(
        nullable=False, default=False, server_default="0"
    )
    validated_address_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str] = mapped_column(
        String(64), nullable=False, default="", server_default=""
    )
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    __table_args__ = (
        Index("idx_saved_addresses_owner_type", "owner_id", "type"),
        Index(
            "uq_saved_addresses_default",
            "type",
            "owner_id",
            unique=True,
            sqlite_where=text("is_default = 1"),
            postgresql_where=text("is_default"),
        ),
    )

    @property
    def validated_address(self) -> dict | None:
        """Parse the provider-normalized address JSON into a dict."""
        return _load_json(self.validated_address_json, None)

    @validated_address.setter
    def validated_address(self, value: dict | None) -> None:
        self.validated_address_json = json.dumps(value) if value else None

    def to_address(self) -> dict:
        """Postal address fields as a plain dict."""
        return {
            "name": self.name,
            "company": self.company,
            "street1": self.street1,
            "street2": self.street2,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "country": self.country,
            "phone": self.phone,
            "email": self.email,
        }

    def __repr__(self) -> str:
        return f"<SavedAddress(id={self.id!r}, label={self.label!r}, type={self.type!r})>"


class SavedPackage(Base):
    """Reusable package preset (weight, dimensions, packaging)."""

    __tablename__ = "saved_packages"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    is_default: Mapped[bool] = mapped_column(
        nullable=False, default=False, server_default="0"
    )
    weight: Mapped[float] = mapped_column(Float, nullable=False)
    weight_unit: Mapped[str] = mapped_column(String(5), nullable=False, default="oz")
    length: Mapped[float | None] = mapped_column(Float, nullable=True)
    width: Mapped[float | None] = mapped_column(Float, nullable=True)
    height: Mapped[float | None] = mapped_column(Float, nullable=True)
    dimension_unit: Mapped[str] = mapped_column(
        String(5), nullable=False, default="in"
    )
    package_type: Mapped[str] = mapped_column(
        String(30), nullable=False, default=PackageType.box.value
    )
    owner_id: Mapped[str] = mapped_column(
        String(64), nullable=False, default="", server_default=""
    )
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    __table_args__ = (
        Index(
            "uq_saved_packages_default",
            "owner_id",
            unique=True,
            sqlite_where=text("is_default = 1"),
            postgresql_where=text("is_default"),
        ),
    )

    @property
    def weight_oz(self) -> float:
        """Weight normalized to ounces."""
        if self.weight_unit == "lb":
            return self.weight * 16
        return self.weight

    def __repr__(self) -> str:
        return f"<SavedPackage(id={self.id!r}, label={self.label!r})>"
