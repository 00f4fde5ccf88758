"""Saved ship-from / ship-to address templates.

Methods do NOT call db.commit(); the caller (route or CLI) commits.
``set_default`` clears the other defaults of the same type and owner and
sets the new one inside the caller's transaction, so a commit never sees
zero or two defaults.

Example:
    svc = SavedAddressService(db, pipeline)
    address = await svc.create_address(label="Warehouse", name="Acme", ...)
    svc.set_default(address.id)
    db.commit()
"""

import logging
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from src.db.models import AddressType, SavedAddress, utc_now_iso
from src.errors import InputError, NotFoundError
from src.services.address_constants import get_state_abbreviation
from src.services.address_validation import AddressValidationPipeline, ValidationResult

logger = logging.getLogger(__name__)

# Edits to these fields invalidate a stored validation result
ADDRESS_FIELDS = ("street1", "street2", "city", "state", "zip")

_REQUIRED = {
    "label": "Label is required",
    "name": "Name is required",
    "street1": "Street address is required",
    "city": "City is required",
    "state": "State is required",
    "zip": "ZIP code is required",
}

_MAX_LENGTHS = {
    "label": 100,
    "name": 200,
    "company": 200,
    "street1": 255,
    "street2": 255,
    "city": 100,
    "zip": 10,
    "phone": 30,
    "email": 255,
}

_UPDATABLE = frozenset(
    {"type", "label", "name", "company", "street1", "street2", "city", "state",
     "zip", "country", "phone", "email"}
)


def normalize_state(value: str) -> str:
    """Upper-case a state and convert a full name to its two-letter code.

    Unknown names keep their first two letters.
    """
    state = value.strip().upper()
    if len(state) > 2:
        return get_state_abbreviation(state) or state[:2]
    return state


def _clean(data: dict[str, Any]) -> dict[str, Any]:
    cleaned = {}
    for key, value in data.items():
        cleaned[key] = value.strip() if isinstance(value, str) else value
    if cleaned.get("state"):
        cleaned["state"] = normalize_state(cleaned["state"])
    if "country" in cleaned:
        cleaned["country"] = (cleaned["country"] or "US").upper()
    if cleaned.get("email"):
        cleaned["email"] = cleaned["email"].lower()
    return cleaned


def _check(data: dict[str, Any], required: bool) -> None:
    problems = []
    if required:
        problems.extend(msg for key, msg in _REQUIRED.items() if not data.get(key))
    else:
        problems.extend(
            msg for key, msg in _REQUIRED.items() if key in data and not data[key]
        )
    for key, limit in _MAX_LENGTHS.items():
        value = data.get(key)
        if isinstance(value, str) and len(value) > limit:
            problems.append(f"{key} must be at most {limit} characters")
    address_type = data.get("type")
    if address_type is not None and address_type not in {t.value for t in AddressType}:
        problems.append(f"type must be one of: {', '.join(t.value for t in AddressType)}")
    if problems:
        raise InputError.from_code("E-2005", details="; ".join(problems))


class SavedAddressService:
    """CRUD and default management for saved addresses."""

    def __init__(self, db: Session, pipeline: AddressValidationPipeline | None = None) -> None:
        """Initialize with a SQLAlchemy session.

        Args:
            db: Active database session.
            pipeline: Validation chain used to record ``validated``; when
                omitted, addresses are saved unvalidated.
        """
        self.db = db
        self.pipeline = pipeline

    async def _validate(self, address: dict[str, Any]) -> ValidationResult | None:
        if self.pipeline is None:
            return None
        return await self.pipeline.validate(address)

    @staticmethod
    def _record_validation(record: SavedAddress, result: ValidationResult | None) -> None:
        if result is None:
            record.validated = False
            record.validated_address = None
            return
        record.validated = result.status == "valid"
        record.validated_address = result.suggested_address

    async def create_address(
        self,
        label: str,
        name: str,
        street1: str,
        city: str,
        state: str,
        zip: str,
        type: str = AddressType.ship_from.value,
        company: str | None = None,
        street2: str | None = None,
        country: str = "US",
        phone: str | None = None,
        email: str | None = None,
        is_default: bool = False,
        owner_id: str = "",
    ) -> SavedAddress:
        """Create a saved address, recording a provider validation result.

        Raises:
            InputError: E-2005 for missing or oversized fields.
        """
        data = _clean({
            "type": type,
            "label": label,
            "name": name,
            "company": company,
            "street1": street1,
            "street2": street2,
            "city": city,
            "state": state,
            "zip": zip,
            "country": country,
            "phone": phone,
            "email": email,
        })
        _check(data, required=True)

        record = SavedAddress(
            owner_id=owner_id or "",
            is_default=False,
            **{key: (value or None) if key in ("company", "street2", "phone", "email") else value
               for key, value in data.items()},
        )
        self._record_validation(record, await self._validate(record.to_address()))
        self.db.add(record)
        self.db.flush()
        if is_default:
            self.set_default(record.id)

        logger.info("Created saved address %s (%s)", record.id, record.label)
        return record

    def get_address(self, address_id: str) -> SavedAddress:
        """Get a saved address by ID.

        Raises:
            NotFoundError: E-4003 if it does not exist.
        """
        record = self.db.get(SavedAddress, address_id)
        if record is None:
            raise NotFoundError("Saved address", address_id)
        return record

    def list_addresses(
        self,
        type: str | None = None,
        owner_id: str | None = None,
        search: str | None = None,
    ) -> list[SavedAddress]:
        """List saved addresses, defaults first, then by label.

        Args:
            type: Filter by address type.
            owner_id: Filter by owner.
            search: Partial match on label, name, company or city.
        """
        query = self.db.query(SavedAddress)
        if type:
            query = query.filter(SavedAddress.type == type)
        if owner_id is not None:
            query = query.filter(SavedAddress.owner_id == owner_id)
        if search:
            term = f"%{search.lower()}%"
            query = query.filter(
                (func.lower(SavedAddress.label).like(term))
                | (func.lower(SavedAddress.name).like(term))
                | (func.lower(SavedAddress.company).like(term))
                | (func.lower(SavedAddress.city).like(term))
            )
        return query.order_by(SavedAddress.is_default.desc(), SavedAddress.label).all()

    async def update_address(self, address_id: str, **updates: Any) -> SavedAddress:
        """Partially update a saved address.

        Only non-None values are applied. Changing any postal field
        re-runs provider validation on the merged address.

        Raises:
            InputError: E-2005 for unknown fields or invalid values.
            NotFoundError: E-4003 if it does not exist.
        """
        record = self.get_address(address_id)
        is_default = updates.pop("is_default", None)
        unknown = sorted(set(updates) - _UPDATABLE)
        if unknown:
            raise InputError.from_code("E-2005", details=f"unknown field(s): {', '.join(unknown)}")

        data = _clean({key: value for key, value in updates.items() if value is not None})
        _check(data, required=False)

        changed = any(
            key in data and data[key] != getattr(record, key) for key in ADDRESS_FIELDS
        )
        if "type" in data and data["type"] != record.type and record.is_default:
            # A default does not follow the record into its new type
            record.is_default = False
        for key, value in data.items():
            setattr(record, key, value)
        if changed:
            self._record_validation(record, await self._validate(record.to_address()))

        record.updated_at = utc_now_iso()
        self.db.flush()
        if is_default:
            self.set_default(record.id)
        elif is_default is False and record.is_default:
            record.is_default = False
            self.db.flush()

        logger.info("Updated saved address %s (revalidated=%s)", address_id, changed)
        return record

    def delete_address(self, address_id: str) -> None:
        """Delete a saved address.

        Raises:
            NotFoundError: E-4003 if it does not exist.
        """
        record = self.get_address(address_id)
        self.db.delete(record)
        self.db.flush()
        logger.info("Deleted saved address %s", address_id)

    def set_default(self, address_id: str) -> SavedAddress:
        """Make one address the default for its type and owner.

        Clears every other default of the same (type, owner) before setting
        this one, within the caller's transaction.
        """
        record = self.get_address(address_id)
        self.db.execute(
            update(SavedAddress)
            .where(
                SavedAddress.type == record.type,
                SavedAddress.owner_id == record.owner_id,
                SavedAddress.id != record.id,
                SavedAddress.is_default.is_(True),
            )
            .values(is_default=False, updated_at=utc_now_iso())
        )
        record.is_default = True
        self.db.flush()
        logger.info("Default address set: %s (type=%s)", address_id, record.type)
        return record

    def get_default_ship_from(self, owner_id: str | None = None) -> SavedAddress | None:
        """Return the default ship-from address, if any."""
        query = self.db.query(SavedAddress).filter(
            SavedAddress.type == AddressType.ship_from.value,
            SavedAddress.is_default.is_(True),
        )
        if owner_id is not None:
            query = query.filter(SavedAddress.owner_id == owner_id)
        return query.first()
