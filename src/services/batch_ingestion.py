"""CSV ingestion: raw upload bytes to a persisted draft Batch.

Pipeline:
    parse_csv -> map_headers -> detect_convention -> per-record transform
    -> check_row -> renumber -> persist

Example:
    engine = BatchIngestionEngine(db)
    batch = engine.ingest(upload_bytes, "orders.csv")
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from src.db.models import Batch, BatchStatus, ShipmentRow, ValidationStatus
from src.errors import InputError
from src.services import field_normalizer as fields
from src.services.batch_service import recompute_stats
from src.services.row_builder import (
    ShipmentDraft,
    check_row,
    transform_combined_record,
    transform_individual_record,
)
from src.services.value_parsers import parse_address
from src.utils.ids import generate_batch_id

logger = logging.getLogger(__name__)

COMBINED = "combined"
INDIVIDUAL = "individual"


@dataclass
class ParsedCsv:
    """Raw CSV content.

    Attributes:
        headers: Header cells exactly as they appeared.
        records: Data rows as lists of trimmed cell strings. Blank lines
            are dropped; ragged rows are kept as-is.
    """

    headers: list[str] = field(default_factory=list)
    records: list[list[str]] = field(default_factory=list)


def _decode(data: bytes | str) -> str:
    if isinstance(data, str):
        return data
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Spreadsheet exports are often cp1252
        return data.decode("latin-1")


def parse_csv(data: bytes | str) -> ParsedCsv:
    """Parse a CSV buffer permissively.

    Tolerates ragged rows and stray quotes, trims every cell and never
    casts values.

    Raises:
        InputError: E-1001 if there is no header or no data, E-1004 if
            the csv module rejects the content.
    """
    text = _decode(data)
    reader = csv.reader(io.StringIO(text, newline=""), skipinitialspace=True, strict=False)
    try:
        all_rows = [[cell.strip() for cell in row] for row in reader]
    except csv.Error as e:
        raise InputError.from_code("E-1004", details=str(e)) from e

    non_blank = [row for row in all_rows if any(cell for cell in row)]
    if len(non_blank) < 2:
        raise InputError.from_code("E-1001")

    return ParsedCsv(headers=non_blank[0], records=non_blank[1:])


def build_records(columns: list[str], rows: list[list[str]]) -> list[dict[str, Any]]:
    """Zip each row with the canonical column names.

    Missing trailing cells become "", surplus cells are dropped. When two
    columns map to the same field the first non-empty value wins.
    """
    records = []
    for row in rows:
        record: dict[str, Any] = {}
        for index, column in enumerate(columns):
            value = row[index] if index < len(row) else ""
            if not record.get(column):
                record[column] = value
        records.append(record)
    return records


def detect_convention(columns: list[str]) -> str | None:
    """Identify the address encoding used by a file.

    Returns:
        "combined" when a toAddress column exists, "individual" when any
        recipient name/street column exists, otherwise None.
    """
    column_set = set(columns)
    if fields.TO_ADDRESS in column_set:
        return COMBINED
    if column_set & fields.INDIVIDUAL_MARKERS:
        return INDIVIDUAL
    return None


def _draft_to_row(draft: ShipmentDraft) -> ShipmentRow:
    r = draft.recipient
    row = ShipmentRow(
        row_number=draft.row_number,
        name=r.name,
        company=r.company or None,
        street1=r.street1,
        street2=r.street2 or None,
        city=r.city,
        state=r.state,
        zip=r.zip,
        country=r.country or "US",
        phone=r.phone or None,
        email=r.email or None,
        weight=draft.weight,
        weight_unit=draft.weight_unit,
        length=draft.length,
        width=draft.width,
        height=draft.height,
        dimension_unit=draft.dimension_unit,
        reference=draft.reference or None,
        sku=draft.sku or None,
        notes=draft.notes or None,
        validation_status=draft.validation_status,
        revision=0,
    )
    row.messages = draft.messages
    return row


class BatchIngestionEngine:
    """Turns an uploaded CSV into a persisted draft Batch."""

    def __init__(self, db: Session) -> None:
        """Initialize with a SQLAlchemy session.

        Args:
            db: Active database session.
        """
        self.db = db

    def build_drafts(
        self, parsed: ParsedCsv
    ) -> tuple[list[ShipmentDraft], dict[str, str] | None]:
        """Build, check and renumber drafts for every record.

        Returns:
            (drafts, ship_from) where ship_from is parsed from the first
            record's fromAddress cell in the combined convention.

        Raises:
            InputError: E-1002 for unrecognized columns, E-1003 when every
                record was skipped.
        """
        mapping = fields.map_headers(parsed.headers)
        convention = detect_convention(mapping.columns)
        if convention is None:
            raise InputError.from_code("E-1002", columns=", ".join(parsed.headers))

        records = build_records(mapping.columns, parsed.records)
        transform = (
            transform_combined_record if convention == COMBINED else transform_individual_record
        )
        logger.info(
            "CSV format detected: convention=%s records=%d unmapped=%d",
            convention,
            len(records),
            len(mapping.unrecognized),
        )

        drafts: list[ShipmentDraft] = []
        skipped = 0
        error_rows = 0
        for index, record in enumerate(records, start=1):
            draft = transform(record, index)
            result = check_row(draft)
            if result.is_skip:
                skipped += 1
                logger.info("Skipping empty row %d", index)
                continue
            if not result.is_valid:
                draft.validation_status = ValidationStatus.invalid.value
                draft.messages = result.errors
                error_rows += 1
            drafts.append(draft)

        for number, draft in enumerate(drafts, start=1):
            draft.row_number = number

        if not drafts:
            raise InputError.from_code("E-1003")

        ship_from = None
        if convention == COMBINED and records[0].get(fields.FROM_ADDRESS):
            ship_from = parse_address(records[0][fields.FROM_ADDRESS]).to_dict()

        logger.info(
            "CSV rows processed: records=%d rows=%d skipped=%d invalid=%d",
            len(records),
            len(drafts),
            skipped,
            error_rows,
        )
        return drafts, ship_from

    def ingest(
        self, data: bytes | str, filename: str | None, owner_id: str | None = None
    ) -> Batch:
        """Parse a CSV upload and persist it as a new draft batch.

        Args:
            data: Raw CSV bytes (or already-decoded text).
            filename: Original upload filename.
            owner_id: Owning user reference.

        Returns:
            The committed Batch with status draft and current_step 1.

        Raises:
            InputError: E-1001..E-1004 for unusable input.
        """
        logger.info("Parsing CSV file %s", filename)
        parsed = parse_csv(data)
        drafts, ship_from = self.build_drafts(parsed)

        batch = Batch(
            batch_id=generate_batch_id(),
            status=BatchStatus.draft.value,
            current_step=1,
            original_filename=filename,
            owner_id=owner_id,
        )
        batch.ship_from = ship_from
        batch.rows = [_draft_to_row(d) for d in drafts]
        recompute_stats(batch)

        self.db.add(batch)
        self.db.commit()
        self.db.refresh(batch)

        logger.info(
            "Batch created: batch_id=%s rows=%d invalid=%d",
            batch.batch_id,
            batch.total_rows,
            batch.invalid_rows,
        )
        return batch
