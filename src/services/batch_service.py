"""Batch workflow controller.

Owns the batch status state machine and every mutation of a batch or its
rows after ingestion: row edits, bulk address validation, shipping
selection, purchase and label projections.

Every mutating operation runs inside ``batch_lock(batch_id)`` and ends with
``recompute_stats(batch)`` before committing, so the stat columns always
describe the rows that were written with them. The ``version_id`` column
catches writers from other processes; a stale write surfaces as E-3005.
"""

import asyncio
import logging
import math
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from src.config import AddressValidationConfig, load_config
from src.db.models import (
    Batch,
    BatchStatus,
    SavedAddress,
    ShipmentRow,
    ValidationStatus,
    utc_now_iso,
)
from src.errors import ConflictError, InputError, InvalidStateTransition, NotFoundError
from src.services.address_constants import get_state_abbreviation
from src.services.address_validation import (
    PIPELINE_UNAVAILABLE_MESSAGE,
    AddressValidationPipeline,
    ValidationResult,
    build_pipeline,
    validate_address,
)
from src.services.pricing_service import (
    RateOptions,
    ServiceType,
    calculate_batch_total,
    calculate_rate,
    get_all_rates,
    recommend_service,
)
from src.utils.ids import random_base36, time_base36

logger = logging.getLogger(__name__)


# Valid status transitions for the batch workflow. Purchase is gated by
# purchase_batch's row and ship-from checks, not by the prior status.
VALID_TRANSITIONS: dict[BatchStatus, list[BatchStatus]] = {
    BatchStatus.draft: [
        BatchStatus.validating,
        BatchStatus.validated,
        BatchStatus.purchased,
        BatchStatus.cancelled,
    ],
    BatchStatus.validating: [
        BatchStatus.draft,
        BatchStatus.validated,
        BatchStatus.shipping_selected,
        BatchStatus.purchased,
        BatchStatus.cancelled,
    ],
    BatchStatus.validated: [
        BatchStatus.draft,
        BatchStatus.validating,
        BatchStatus.shipping_selected,
        BatchStatus.purchased,
        BatchStatus.cancelled,
    ],
    BatchStatus.shipping_selected: [
        BatchStatus.draft,
        BatchStatus.validating,
        BatchStatus.validated,
        BatchStatus.purchased,
        BatchStatus.cancelled,
    ],
    BatchStatus.purchased: [],  # terminal
    BatchStatus.cancelled: [],  # terminal
}

# Wizard steps reachable through update_step; step 4 only via purchase_batch
STEP_STATUS: dict[int, BatchStatus] = {
    1: BatchStatus.draft,
    2: BatchStatus.validating,
    3: BatchStatus.shipping_selected,
}

SELECTION_STRATEGIES = ("all", "cheapest")

LABEL_URL_TEMPLATE = "/api/v1/shipping/labels/{batch_id}/{row_id}"

_RECIPIENT_FIELDS = (
    "name", "company", "street1", "street2", "city",
    "state", "zip", "country", "phone", "email",
)
_REQUIRED_RECIPIENT_FIELDS = ("name", "street1", "city", "state", "zip")
_DIMENSION_FIELDS = ("length", "width", "height")
_TEXT_FIELDS = ("reference", "sku", "notes")
_EDITABLE_FIELDS = frozenset(
    _RECIPIENT_FIELDS
    + _DIMENSION_FIELDS
    + _TEXT_FIELDS
    + ("weight", "weight_unit", "dimension_unit")
)

class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.holders = 0


# Only batches with an operation in flight have an entry
_batch_locks: dict[str, _LockEntry] = {}
_registry_lock = threading.Lock()


@contextmanager
def batch_lock(batch_id: str) -> Iterator[None]:
    """Serialize mutations of one batch within this process.

    Re-entrant, so a locked operation may call another locked operation
    on the same batch. The entry is dropped when its last holder or
    waiter leaves.
    """
    with _registry_lock:
        entry = _batch_locks.get(batch_id)
        if entry is None:
            entry = _batch_locks[batch_id] = _LockEntry()
        entry.holders += 1
    try:
        with entry.lock:
            yield
    finally:
        with _registry_lock:
            entry.holders -= 1
            if entry.holders == 0:
                _batch_locks.pop(batch_id, None)


def can_transition(current: str, target: str) -> bool:
    """Check whether a batch may move from ``current`` to ``target`` status."""
    return BatchStatus(target) in VALID_TRANSITIONS.get(BatchStatus(current), [])


def _rate_input(row: ShipmentRow) -> dict[str, Any]:
    # Row weights are stored in ounces; weight_unit is display-only
    return {
        "row_number": row.row_number,
        "weight": row.weight,
        "weight_unit": "oz",
        "service_type": row.service_type,
    }


def recompute_stats(batch: Batch) -> dict[str, Any]:
    """Refresh a batch's derived stat columns from its rows.

    Called at every mutation boundary. The estimated cost covers rows with
    a selected service only.

    Returns:
        The refreshed ``batch.stats``.
    """
    rows = list(batch.rows)
    counts = {status.value: 0 for status in ValidationStatus}
    for row in rows:
        counts[row.validation_status] = counts.get(row.validation_status, 0) + 1

    batch.total_rows = len(rows)
    batch.valid_rows = counts[ValidationStatus.valid.value]
    batch.warning_rows = counts[ValidationStatus.warning.value]
    batch.invalid_rows = counts[ValidationStatus.invalid.value]
    batch.total_weight_oz = round(sum(row.weight or 0 for row in rows), 2)
    selected = [_rate_input(row) for row in rows if row.service_type]
    batch.estimated_cost_cents = calculate_batch_total(selected).total_cost_cents
    return batch.stats


def generate_tracking_number(service_type: str) -> str:
    """Service-prefixed tracking number: GND/PRI + base36 time + 6 random chars."""
    prefix = "GND" if service_type == ServiceType.ground.value else "PRI"
    return f"{prefix}{time_base36()}{random_base36(6)}".upper()


def _clean_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _parse_positive(field: str, value: Any, allow_none: bool = False) -> float | None:
    if value is None or value == "":
        if allow_none:
            return None
        raise InputError.from_code("E-2005", details=f"{field}: value is required")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InputError.from_code("E-2005", details=f"{field}: must be a number") from e
    if not math.isfinite(number) or number <= 0:
        raise InputError.from_code("E-2005", details=f"{field}: must be greater than 0")
    return number


def _flatten_updates(updates: dict[str, Any]) -> dict[str, Any]:
    """Accept flat fields or nested ``recipient``/``package`` objects."""
    flat: dict[str, Any] = {}
    for key, value in updates.items():
        if key in ("recipient", "package") and isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    unknown = sorted(set(flat) - _EDITABLE_FIELDS)
    if unknown:
        raise InputError.from_code(
            "E-2005", details=f"unknown field(s): {', '.join(unknown)}"
        )
    return flat


def _reset_results(row: ShipmentRow) -> None:
    row.validation_status = ValidationStatus.pending.value
    row.messages = []
    row.validated_at = None
    row.suggested_address = None
    row.service_type = None
    row.rate_cents = None
    row.estimated_delivery = None


def _apply_validation(row: ShipmentRow, result: ValidationResult, when: str) -> None:
    row.validation_status = result.status
    row.messages = list(result.messages)
    row.validated_at = when
    if result.status in (ValidationStatus.valid.value, ValidationStatus.warning.value):
        row.suggested_address = result.suggested_address
    else:
        row.suggested_address = None


class BatchService:
    """Service for the batch workflow with state machine validation.

    Attributes:
        db: SQLAlchemy session for database operations.
    """

    def __init__(
        self,
        db: Session,
        pipeline: AddressValidationPipeline | None = None,
        config: AddressValidationConfig | None = None,
    ) -> None:
        """Initialize the batch service.

        Args:
            db: SQLAlchemy session for database operations.
            pipeline: Address validation chain; built from config on first use.
            config: Address validation settings; loaded from the config file
                when omitted.
        """
        self.db = db
        self._pipeline = pipeline
        self._config = config

    @property
    def config(self) -> AddressValidationConfig:
        if self._config is None:
            self._config = load_config().address_validation
        return self._config

    @property
    def pipeline(self) -> AddressValidationPipeline:
        if self._pipeline is None:
            self._pipeline = build_pipeline(self.config)
        return self._pipeline

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _commit(self, batch_id: str) -> None:
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning("Concurrent modification detected for batch %s", batch_id)
            raise ConflictError.from_code("E-3005", batch_id=batch_id) from e

    def _require_editable(self, batch: Batch, action: str) -> None:
        if batch.status == BatchStatus.purchased.value:
            raise ConflictError.from_code("E-3002", batch_id=batch.batch_id, action=action)
        if batch.status == BatchStatus.cancelled.value:
            raise ConflictError.from_code("E-3007", batch_id=batch.batch_id, action=action)

    def _transition(self, batch: Batch, target: BatchStatus) -> None:
        """Move a batch to ``target``; staying in the same status is a no-op."""
        if batch.status == target.value:
            return
        current = BatchStatus(batch.status)
        if target not in VALID_TRANSITIONS[current]:
            raise InvalidStateTransition(
                current.value,
                target.value,
                [s.value for s in VALID_TRANSITIONS[current]],
            )
        batch.status = target.value

    def _advance_if_all_selected(self, batch: Batch) -> None:
        """Move a validated batch to shipping_selected once every row has a service."""
        if not batch.rows or any(not row.service_type for row in batch.rows):
            return
        if batch.status in (BatchStatus.validating.value, BatchStatus.validated.value):
            self._transition(batch, BatchStatus.shipping_selected)
            batch.current_step = max(batch.current_step, 3)

    # =========================================================================
    # Batch queries
    # =========================================================================

    def get_batch(self, batch_id: str) -> Batch:
        """Get a batch by its ID.

        Raises:
            NotFoundError: E-4001 if the batch does not exist.
        """
        batch = self.db.query(Batch).filter(Batch.batch_id == batch_id).first()
        if batch is None:
            raise NotFoundError("Batch", batch_id)
        return batch

    def list_batches(
        self,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
        owner_id: str | None = None,
    ) -> dict[str, Any]:
        """List batches newest first with pagination.

        Args:
            status: Filter by batch status (optional).
            page: 1-based page number.
            limit: Page size, clamped to 1..100.
            owner_id: Filter by owner (optional).

        Returns:
            Dict with ``batches`` and ``pagination`` {page, limit, total, pages}.
        """
        page = max(page, 1)
        limit = min(max(limit, 1), 100)

        query = self.db.query(Batch)
        if status:
            query = query.filter(Batch.status == status)
        if owner_id:
            query = query.filter(Batch.owner_id == owner_id)

        total = query.count()
        batches = (
            query.order_by(Batch.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "batches": batches,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
        }

    def get_row(self, batch_id: str, row_id: str) -> ShipmentRow:
        """Get one row of a batch.

        Raises:
            NotFoundError: E-4001 for a missing batch, E-4002 for a missing row.
        """
        self.get_batch(batch_id)
        row = (
            self.db.query(ShipmentRow)
            .filter(ShipmentRow.batch_id == batch_id, ShipmentRow.id == row_id)
            .first()
        )
        if row is None:
            raise NotFoundError("Row", row_id)
        return row

    # =========================================================================
    # Batch mutations
    # =========================================================================

    def update_row(self, batch_id: str, row_id: str, updates: dict[str, Any]) -> ShipmentRow:
        """Apply field edits to a row and reset its validation and shipping.

        Weight edits are converted to ounces; ``weight_unit`` is kept for
        display. A full state name is converted to its two-letter code.

        Raises:
            InputError: E-2005 for unknown fields or bad values.
            ConflictError: E-3002/E-3007 for purchased/cancelled batches.
        """
        fields = _flatten_updates(updates)
        with batch_lock(batch_id):
            batch = self.get_batch(batch_id)
            self._require_editable(batch, "modified")
            row = self.get_row(batch_id, row_id)

            changes = self._row_changes(row, fields)
            for key, value in changes.items():
                setattr(row, key, value)
            _reset_results(row)
            row.revision += 1
            recompute_stats(batch)
            self._commit(batch_id)
            self.db.refresh(row)

        logger.info("Row updated: batch_id=%s row_id=%s revision=%d", batch_id, row_id, row.revision)
        return row

    @staticmethod
    def _row_changes(row: ShipmentRow, fields: dict[str, Any]) -> dict[str, Any]:
        """Convert and check edited values before any of them is applied."""
        changes: dict[str, Any] = {}
        for key in _RECIPIENT_FIELDS:
            if key not in fields:
                continue
            value = _clean_text(fields[key])
            if key == "state":
                value = value.upper()
                if len(value) > 2:
                    value = get_state_abbreviation(value) or value
            elif key == "country":
                value = value.upper() or "US"
            if key in _REQUIRED_RECIPIENT_FIELDS or key == "country":
                changes[key] = value
            else:
                changes[key] = value or None

        unit = _clean_text(fields.get("weight_unit")) or row.weight_unit
        if unit not in ("oz", "lb"):
            raise InputError.from_code("E-2005", details="weight_unit: must be oz or lb")
        changes["weight_unit"] = unit
        if "weight" in fields:
            weight = _parse_positive("weight", fields["weight"])
            changes["weight"] = weight * 16 if unit == "lb" else weight

        if "dimension_unit" in fields:
            dim_unit = _clean_text(fields["dimension_unit"])
            if dim_unit not in ("in", "cm"):
                raise InputError.from_code("E-2005", details="dimension_unit: must be in or cm")
            changes["dimension_unit"] = dim_unit
        for key in _DIMENSION_FIELDS:
            if key in fields:
                changes[key] = _parse_positive(key, fields[key], allow_none=True)
        for key in _TEXT_FIELDS:
            if key in fields:
                changes[key] = _clean_text(fields[key]) or None
        return changes

    def delete_row(self, batch_id: str, row_id: str) -> Batch:
        """Remove a row and renumber the remaining rows contiguously."""
        with batch_lock(batch_id):
            batch = self.get_batch(batch_id)
            self._require_editable(batch, "modified")
            row = self.get_row(batch_id, row_id)

            batch.rows.remove(row)
            for number, remaining in enumerate(batch.rows, start=1):
                remaining.row_number = number
            recompute_stats(batch)
            self._commit(batch_id)
            self.db.refresh(batch)

        logger.info("Row deleted: batch_id=%s row_id=%s rows=%d", batch_id, row_id, batch.total_rows)
        return batch

    def update_step(self, batch_id: str, step: int) -> Batch:
        """Move the wizard to step 1-3 and the matching status.

        Step 4 is reached only by ``purchase_batch``.

        Raises:
            InputError: E-2001 for a step outside 1-3.
            InvalidStateTransition: E-3006 if the status change is not allowed.
        """
        if step == 4:
            raise InputError.from_code(
                "E-2001", step=step, reason="Step 4 is reached by purchasing the batch."
            )
        if step not in STEP_STATUS:
            raise InputError.from_code(
                "E-2001", step=step, reason="Step must be between 1 and 4."
            )

        with batch_lock(batch_id):
            batch = self.get_batch(batch_id)
            self._require_editable(batch, "modified")
            self._transition(batch, STEP_STATUS[step])
            batch.current_step = step
            self._commit(batch_id)
            self.db.refresh(batch)

        logger.info("Batch step updated: batch_id=%s step=%d status=%s", batch_id, step, batch.status)
        return batch

    def set_ship_from(
        self,
        batch_id: str,
        address: dict[str, Any] | None = None,
        saved_address_id: str | None = None,
    ) -> Batch:
        """Set the batch ship-from from an address or a saved address.

        A saved address reference copies its fields and stores the reference.

        Raises:
            InputError: E-2002 if neither is given.
            NotFoundError: E-4003 for an unknown saved address.
        """
        with batch_lock(batch_id):
            batch = self.get_batch(batch_id)
            self._require_editable(batch, "modified")

            if saved_address_id:
                saved = self.db.get(SavedAddress, saved_address_id)
                if saved is None:
                    raise NotFoundError("Saved address", saved_address_id)
                batch.ship_from = saved.to_address()
                batch.ship_from_address_id = saved.id
            elif address:
                ship_from = {key: _clean_text(address.get(key)) for key in _RECIPIENT_FIELDS}
                ship_from["state"] = ship_from["state"].upper()
                ship_from["country"] = ship_from["country"].upper() or "US"
                batch.ship_from = ship_from
                batch.ship_from_address_id = None
            else:
                raise InputError.from_code("E-2002")

            self._commit(batch_id)
            self.db.refresh(batch)

        logger.info(
            "Ship-from set: batch_id=%s saved_address_id=%s", batch_id, saved_address_id
        )
        return batch

    def cancel_batch(self, batch_id: str) -> Batch:
        """Move a pre-purchase batch to cancelled."""
        with batch_lock(batch_id):
            batch = self.get_batch(batch_id)
            self._require_editable(batch, "cancelled")
            self._transition(batch, BatchStatus.cancelled)
            self._commit(batch_id)
            self.db.refresh(batch)

        logger.info("Batch cancelled: batch_id=%s", batch_id)
        return batch

    def delete_batch(self, batch_id: str) -> None:
        """Delete a batch and its rows.

        Raises:
            ConflictError: E-3002 if the batch is purchased.
        """
        with batch_lock(batch_id):
            batch = self.get_batch(batch_id)
            if batch.status == BatchStatus.purchased.value:
                raise ConflictError.from_code("E-3002", batch_id=batch_id, action="deleted")
            self.db.delete(batch)
            self._commit(batch_id)
        logger.info("Batch deleted: batch_id=%s", batch_id)

    def update_stats(self, batch_id: str) -> dict[str, Any]:
        """Recompute and persist batch stats."""
        with batch_lock(batch_id):
            batch = self.get_batch(batch_id)
            stats = recompute_stats(batch)
            self._commit(batch_id)
        return stats

    # =========================================================================
    # Address validation
    # =========================================================================

    async def _validate_one(
        self, address: dict[str, Any], semaphore: asyncio.Semaphore, row_number: int
    ) -> ValidationResult:
        async with semaphore:
            try:
                return await validate_address(address, self.pipeline)
            except Exception:
                logger.warning(
                    "Validation failed for row %d; marking as warning", row_number, exc_info=True
                )
                return ValidationResult(
                    ValidationStatus.warning.value, [PIPELINE_UNAVAILABLE_MESSAGE], None, "none"
                )

    async def validate_batch(self, batch_id: str) -> dict[str, Any]:
        """Validate every row's recipient address through the pipeline.

        Rows are snapshotted under the batch lock and validated concurrently
        without it (bounded by ``max_concurrency``). Results are written
        back only to rows whose revision is unchanged; rows edited during
        validation keep their pending state. Stats are recomputed once all
        rows are done and the batch moves to validated, or on to
        shipping_selected when every row already has a service.

        Returns:
            Summary with per-status counts and the number of stale rows.
        """
        with batch_lock(batch_id):
            batch = self.get_batch(batch_id)
            self._require_editable(batch, "validated")
            self._transition(batch, BatchStatus.validating)
            snapshot = [
                (row.id, row.row_number, row.revision, row.recipient) for row in batch.rows
            ]
            self._commit(batch_id)

        logger.info("Starting batch address validation: batch_id=%s rows=%d", batch_id, len(snapshot))

        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        results = await asyncio.gather(
            *(self._validate_one(address, semaphore, number) for _, number, _, address in snapshot)
        )

        with batch_lock(batch_id):
            self.db.expire_all()
            batch = self.get_batch(batch_id)
            self._require_editable(batch, "validated")
            rows_by_id = {row.id: row for row in batch.rows}
            now = utc_now_iso()
            stale = 0
            for (row_id, _, revision, _), result in zip(snapshot, results):
                row = rows_by_id.get(row_id)
                if row is None or row.revision != revision:
                    stale += 1
                    continue
                _apply_validation(row, result, now)

            recompute_stats(batch)
            self._transition(batch, BatchStatus.validated)
            self._advance_if_all_selected(batch)
            self._commit(batch_id)
            self.db.refresh(batch)

        logger.info(
            "Batch validation complete: batch_id=%s valid=%d warning=%d invalid=%d stale=%d",
            batch_id,
            batch.valid_rows,
            batch.warning_rows,
            batch.invalid_rows,
            stale,
        )
        return {
            "batch_id": batch_id,
            "total_rows": batch.total_rows,
            "valid": batch.valid_rows,
            "warning": batch.warning_rows,
            "invalid": batch.invalid_rows,
            "stale_rows": stale,
            "status": batch.status,
        }

    # =========================================================================
    # Rates and shipping selection
    # =========================================================================

    def get_rates_for_row(self, batch_id: str, row_id: str) -> RateOptions:
        """All available rates for one row's weight."""
        row = self.get_row(batch_id, row_id)
        return get_all_rates(row.weight)

    def get_rates_for_batch(self, batch_id: str) -> dict[str, Any]:
        """Available rates for every row plus its current selection."""
        batch = self.get_batch(batch_id)
        rows = []
        for row in batch.rows:
            options = get_all_rates(row.weight)
            rows.append({
                "row_id": row.id,
                "row_number": row.row_number,
                "recipient_name": row.name,
                "current_selection": row.service_type,
                **options.to_dict(),
            })
        return {"batch_id": batch_id, "row_count": len(rows), "rows": rows}

    def select_shipping(self, batch_id: str, row_id: str, service_type: str) -> ShipmentRow:
        """Select a service for one row.

        Raises:
            InputError: E-2003 for an unknown service, E-2004 when the
                service cannot carry the row's weight.
        """
        if service_type not in {s.value for s in ServiceType}:
            raise InputError.from_code("E-2003", service_type=service_type)

        with batch_lock(batch_id):
            batch = self.get_batch(batch_id)
            self._require_editable(batch, "modified")
            row = self.get_row(batch_id, row_id)

            quote = calculate_rate(row.weight, service_type)
            if not quote.available:
                raise InputError.from_code("E-2004", reason=quote.error)

            row.service_type = service_type
            row.rate_cents = quote.rate_cents
            row.estimated_delivery = quote.estimated_delivery
            recompute_stats(batch)
            self._advance_if_all_selected(batch)
            self._commit(batch_id)
            self.db.refresh(row)

        logger.info(
            "Shipping selected: batch_id=%s row_id=%s service=%s rate_cents=%d",
            batch_id,
            row_id,
            service_type,
            quote.rate_cents,
        )
        return row

    def bulk_select_shipping(
        self, batch_id: str, strategy: str = "all", service_type: str = ServiceType.ground.value
    ) -> dict[str, Any]:
        """Select a service for every row.

        Strategies:
            all: apply ``service_type`` to every row, falling back to the
                other service for rows it cannot carry.
            cheapest: per-row recommendation by weight.

        Rows no service can carry are reported in ``errors`` and left
        unselected.

        Raises:
            InputError: E-2006 for an unknown strategy, E-2003 for an
                unknown service.
        """
        if strategy not in SELECTION_STRATEGIES:
            raise InputError.from_code("E-2006", strategy=strategy)
        if strategy == "all" and service_type not in {s.value for s in ServiceType}:
            raise InputError.from_code("E-2003", service_type=service_type)

        updated = 0
        errors: list[dict[str, Any]] = []
        with batch_lock(batch_id):
            batch = self.get_batch(batch_id)
            self._require_editable(batch, "modified")

            for row in batch.rows:
                if strategy == "cheapest":
                    target = recommend_service(row.weight).value
                else:
                    target = service_type
                quote = calculate_rate(row.weight, target)
                if not quote.available:
                    alternate = (
                        ServiceType.priority.value
                        if target == ServiceType.ground.value
                        else ServiceType.ground.value
                    )
                    fallback = calculate_rate(row.weight, alternate)
                    if fallback.available:
                        quote = fallback
                if not quote.available:
                    errors.append({"row_number": row.row_number, "error": quote.error})
                    continue

                row.service_type = quote.service_type
                row.rate_cents = quote.rate_cents
                row.estimated_delivery = quote.estimated_delivery
                updated += 1

            recompute_stats(batch)
            self._advance_if_all_selected(batch)
            self._commit(batch_id)
            self.db.refresh(batch)

        logger.info(
            "Bulk shipping selection complete: batch_id=%s strategy=%s updated=%d skipped=%d",
            batch_id,
            strategy,
            updated,
            len(errors),
        )
        return {
            "batch_id": batch_id,
            "updated": updated,
            "skipped": len(errors),
            "errors": errors,
            "estimated_cost": batch.stats["estimated_cost"],
        }

    # =========================================================================
    # Purchase and labels
    # =========================================================================

    def _unique_tracking_number(self, service_type: str, issued: set[str]) -> str:
        while True:
            tracking = generate_tracking_number(service_type)
            if tracking in issued:
                continue
            exists = (
                self.db.query(ShipmentRow.id)
                .filter(ShipmentRow.tracking_number == tracking)
                .first()
            )
            if exists is None:
                issued.add(tracking)
                return tracking

    def purchase_batch(self, batch_id: str) -> dict[str, Any]:
        """Purchase labels for every row of a batch.

        Requires a ship-from street, zero invalid rows and a service on
        every row. Any pre-purchase status qualifies once those hold.
        Nothing is written when a guard fails.

        Raises:
            InputError: E-2002 without a ship-from street.
            ConflictError: E-3001 when rows are not ready, E-3002 if
                already purchased, E-3007 if cancelled.
        """
        with batch_lock(batch_id):
            batch = self.get_batch(batch_id)
            self._require_editable(batch, "purchased")

            ship_from = batch.ship_from or {}
            if not _clean_text(ship_from.get("street1")):
                raise InputError.from_code("E-2002")

            not_ready = [
                row
                for row in batch.rows
                if row.validation_status == ValidationStatus.invalid.value
                or not row.service_type
            ]
            if not_ready:
                raise ConflictError.from_code("E-3001", count=len(not_ready))

            self._transition(batch, BatchStatus.purchased)

            now = utc_now_iso()
            issued: set[str] = set()
            labels = []
            for row in batch.rows:
                row.tracking_number = self._unique_tracking_number(row.service_type, issued)
                row.label_url = LABEL_URL_TEMPLATE.format(batch_id=batch_id, row_id=row.id)
                row.label_purchased_at = now
                labels.append({
                    "row_number": row.row_number,
                    "tracking_number": row.tracking_number,
                    "service_type": row.service_type,
                    "rate": row.rate,
                })

            batch.current_step = 4
            batch.purchased_at = now
            recompute_stats(batch)
            self._commit(batch_id)
            self.db.refresh(batch)

        logger.info(
            "Batch purchased: batch_id=%s labels=%d total_cost_cents=%d",
            batch_id,
            len(labels),
            batch.estimated_cost_cents,
        )
        return {
            "success": True,
            "batch_id": batch_id,
            "purchased_at": batch.purchased_at,
            "total_cost": batch.stats["estimated_cost"],
            "label_count": len(labels),
            "labels": labels,
        }

    def get_label(self, batch_id: str, row_id: str) -> dict[str, Any]:
        """Label projection for one purchased row.

        Raises:
            ConflictError: E-3003 if the row has no label yet.
        """
        batch = self.get_batch(batch_id)
        row = self.get_row(batch_id, row_id)
        if not row.tracking_number:
            raise ConflictError.from_code("E-3003", row_id=row_id)
        return {
            "tracking_number": row.tracking_number,
            "label_url": row.label_url,
            "purchased_at": row.label_purchased_at,
            "service_type": row.service_type,
            "ship_from": batch.ship_from,
            "ship_to": row.recipient,
            "package": {
                "weight": row.weight,
                "weight_unit": row.weight_unit,
                "length": row.length,
                "width": row.width,
                "height": row.height,
                "dimension_unit": row.dimension_unit,
            },
            "rate": row.rate,
            "reference": row.reference or row.sku,
            "barcode": f"*{row.tracking_number}*",
        }

    def generate_batch_labels(self, batch_id: str) -> dict[str, Any]:
        """Batch header plus a flattened label per purchased row.

        Raises:
            ConflictError: E-3004 unless the batch is purchased.
        """
        batch = self.get_batch(batch_id)
        if batch.status != BatchStatus.purchased.value:
            raise ConflictError.from_code("E-3004", batch_id=batch_id)

        labels = [
            {
                "row_number": row.row_number,
                "tracking_number": row.tracking_number,
                "purchased_at": row.label_purchased_at,
                "service_type": row.service_type,
                "rate": row.rate,
                "recipient": {
                    "name": row.name,
                    "company": row.company,
                    "street1": row.street1,
                    "street2": row.street2,
                    "city": row.city,
                    "state": row.state,
                    "zip": row.zip,
                    "country": row.country or "US",
                },
                "weight": row.weight,
                "reference": row.reference or row.sku,
            }
            for row in batch.rows
            if row.tracking_number
        ]
        logger.info("Generated batch labels: batch_id=%s labels=%d", batch_id, len(labels))
        return {
            "batch": {
                "batch_id": batch.batch_id,
                "original_filename": batch.original_filename,
                "purchased_at": batch.purchased_at,
                "ship_from": batch.ship_from,
                "total_cost": batch.stats["estimated_cost"],
            },
            "labels": labels,
        }
