"""Build canonical shipment rows from normalized CSV records.

A record is a dict keyed by canonical field (see field_normalizer). Two
transforms exist, one per input convention, and both produce a
``ShipmentDraft``. ``check_row`` then applies the local row rules that do
not need any address provider.
"""

from dataclasses import dataclass, field
from typing import Any

from src.services import field_normalizer as fields
from src.services.address_constants import ZIP_PATTERN, get_state_abbreviation
from src.services.value_parsers import (
    Dimensions,
    PostalAddress,
    parse_address,
    parse_dimensions,
    parse_number,
    parse_weight,
)

DEFAULT_WEIGHT_OZ = 16.0


@dataclass
class ShipmentDraft:
    """A shipment row before it is persisted.

    Attributes:
        row_number: 1-based position in the source file (renumbered later).
        recipient: Parsed recipient address.
        weight: Package weight in ounces.
        validation_status: "pending" or "invalid" after check_row.
        messages: Row-level validation errors.
    """

    row_number: int
    recipient: PostalAddress
    weight: float = DEFAULT_WEIGHT_OZ
    weight_unit: str = "oz"
    length: float | None = None
    width: float | None = None
    height: float | None = None
    dimension_unit: str = "in"
    reference: str = ""
    sku: str = ""
    notes: str = ""
    validation_status: str = "pending"
    messages: list[str] = field(default_factory=list)


@dataclass
class RowCheck:
    """Outcome of the local row rules."""

    is_valid: bool
    is_skip: bool
    errors: list[str] = field(default_factory=list)


def _text(record: dict[str, Any], key: str, default: str = "") -> str:
    value = record.get(key)
    if value is None or value == "":
        return default
    return str(value).strip()


def _positive_or_none(value: Any) -> float | None:
    number = parse_number(value)
    return number if number > 0 else None


def transform_combined_record(record: dict[str, Any], row_number: int) -> ShipmentDraft:
    """Build a draft from a record whose recipient is one free-text cell."""
    recipient = parse_address(record.get(fields.TO_ADDRESS))
    parsed = parse_weight(record.get(fields.WEIGHT))
    dims = parse_dimensions(record.get(fields.DIMENSIONS))
    return ShipmentDraft(
        row_number=row_number,
        recipient=recipient,
        weight=parsed.weight,
        weight_unit=parsed.weight_unit,
        length=dims.length,
        width=dims.width,
        height=dims.height,
        reference=_text(record, fields.REFERENCE),
        sku=_text(record, fields.SKU),
        notes=_text(record, fields.NOTES),
    )


def transform_individual_record(record: dict[str, Any], row_number: int) -> ShipmentDraft:
    """Build a draft from a record with one column per recipient field.

    Weight is ``weightLb * 16 + (weightOz or weight)`` ounces, defaulting to
    16 oz when nothing positive is present. A ``dimensions`` cell takes
    precedence over separate length/width/height columns.
    """
    weight_lb = parse_number(record.get(fields.WEIGHT_LB))
    weight_oz = parse_number(record.get(fields.WEIGHT_OZ)) or parse_number(
        record.get(fields.WEIGHT)
    )
    weight = weight_lb * 16 + weight_oz
    if weight <= 0:
        weight = DEFAULT_WEIGHT_OZ

    if record.get(fields.DIMENSIONS):
        dims = parse_dimensions(record.get(fields.DIMENSIONS))
    else:
        dims = Dimensions(
            length=_positive_or_none(record.get(fields.LENGTH)),
            width=_positive_or_none(record.get(fields.WIDTH)),
            height=_positive_or_none(record.get(fields.HEIGHT)),
        )

    recipient = PostalAddress(
        name=_text(record, fields.RECIPIENT_NAME),
        company=_text(record, fields.RECIPIENT_COMPANY),
        street1=_text(record, fields.RECIPIENT_STREET1),
        street2=_text(record, fields.RECIPIENT_STREET2),
        city=_text(record, fields.RECIPIENT_CITY),
        state=_text(record, fields.RECIPIENT_STATE).upper(),
        zip=_text(record, fields.RECIPIENT_ZIP),
        country=_text(record, fields.RECIPIENT_COUNTRY, "US"),
        phone=_text(record, fields.RECIPIENT_PHONE),
        email=_text(record, fields.RECIPIENT_EMAIL),
    )
    return ShipmentDraft(
        row_number=row_number,
        recipient=recipient,
        weight=weight,
        length=dims.length,
        width=dims.width,
        height=dims.height,
        reference=_text(record, fields.REFERENCE),
        sku=_text(record, fields.SKU),
        notes=_text(record, fields.NOTES),
    )


def check_row(draft: ShipmentDraft) -> RowCheck:
    """Apply the local row rules to a draft, normalizing it in place.

    A row with no name, street1 and city at all is an empty row to skip.
    Otherwise every required recipient field must be present, a long state
    name is converted to its code, and the zip must be ZIP or ZIP+4.
    A missing or non-positive weight becomes 16 oz.

    Returns:
        RowCheck with is_skip set for empty rows and the collected errors.
    """
    r = draft.recipient
    if not (r.name or r.street1 or r.city):
        return RowCheck(is_valid=False, is_skip=True, errors=["Empty row"])

    errors: list[str] = []
    if not r.name.strip():
        errors.append("Missing recipient name")
    if not r.street1.strip():
        errors.append("Missing street address")
    if not r.city.strip():
        errors.append("Missing city")
    if not r.state.strip():
        errors.append("Missing state")
    if not r.zip.strip():
        errors.append("Missing ZIP code")

    if len(r.state) > 2:
        code = get_state_abbreviation(r.state)
        if code:
            r.state = code
        else:
            errors.append(f'Invalid state format: "{r.state}" (expected 2-letter code)')

    if r.zip and not ZIP_PATTERN.match(r.zip):
        errors.append(f'Invalid ZIP code format: "{r.zip}"')

    if not draft.weight or draft.weight <= 0:
        draft.weight = DEFAULT_WEIGHT_OZ

    return RowCheck(is_valid=not errors, is_skip=False, errors=errors)
