"""Saved package presets.

Methods do NOT call db.commit(); the caller (route or CLI) commits.
"""

import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import update
from sqlalchemy.orm import Session

from src.db.models import PackageType, SavedPackage, utc_now_iso
from src.errors import InputError, NotFoundError

logger = logging.getLogger(__name__)


class PackageInput(BaseModel):
    """Value constraints shared by create and update."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    label: str = Field(min_length=1, max_length=100)
    weight: float = Field(gt=0)
    weight_unit: Literal["oz", "lb"] = "oz"
    length: float | None = Field(default=None, gt=0)
    width: float | None = Field(default=None, gt=0)
    height: float | None = Field(default=None, gt=0)
    dimension_unit: Literal["in", "cm"] = "in"
    package_type: PackageType = PackageType.box


def _check(data: dict[str, Any]) -> PackageInput:
    try:
        return PackageInput(**data)
    except ValidationError as e:
        details = ", ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise InputError.from_code("E-2005", details=details) from e


class SavedPackageService:
    """CRUD and default management for saved packages."""

    def __init__(self, db: Session) -> None:
        """Initialize with a SQLAlchemy session.

        Args:
            db: Active database session.
        """
        self.db = db

    def create_package(self, is_default: bool = False, owner_id: str = "", **fields: Any) -> SavedPackage:
        """Create a saved package.

        Args:
            is_default: Make this the owner's default package.
            owner_id: Owning user reference.
            **fields: Values accepted by ``PackageInput``.

        Raises:
            InputError: E-2005 when a value is missing or out of range.
        """
        values = _check(fields).model_dump()
        values["package_type"] = values["package_type"].value
        record = SavedPackage(owner_id=owner_id or "", is_default=False, **values)
        self.db.add(record)
        self.db.flush()
        if is_default:
            self.set_default(record.id)
        logger.info("Created saved package %s (%s)", record.id, record.label)
        return record

    def get_package(self, package_id: str) -> SavedPackage:
        """Get a saved package by ID.

        Raises:
            NotFoundError: E-4004 if it does not exist.
        """
        record = self.db.get(SavedPackage, package_id)
        if record is None:
            raise NotFoundError("Saved package", package_id)
        return record

    def list_packages(self, owner_id: str | None = None) -> list[SavedPackage]:
        """List saved packages, defaults first, then by label."""
        query = self.db.query(SavedPackage)
        if owner_id is not None:
            query = query.filter(SavedPackage.owner_id == owner_id)
        return query.order_by(SavedPackage.is_default.desc(), SavedPackage.label).all()

    def update_package(self, package_id: str, **updates: Any) -> SavedPackage:
        """Partially update a saved package; None values are ignored.

        The merged record is re-checked against ``PackageInput``.
        """
        record = self.get_package(package_id)
        is_default = updates.pop("is_default", None)
        current = {
            "label": record.label,
            "weight": record.weight,
            "weight_unit": record.weight_unit,
            "length": record.length,
            "width": record.width,
            "height": record.height,
            "dimension_unit": record.dimension_unit,
            "package_type": record.package_type,
        }
        current.update({key: value for key, value in updates.items() if value is not None})
        values = _check(current).model_dump()
        values["package_type"] = values["package_type"].value

        for key, value in values.items():
            setattr(record, key, value)
        record.updated_at = utc_now_iso()
        self.db.flush()
        if is_default:
            self.set_default(record.id)
        elif is_default is False and record.is_default:
            record.is_default = False
            self.db.flush()

        logger.info("Updated saved package %s", package_id)
        return record

    def delete_package(self, package_id: str) -> None:
        """Delete a saved package.

        Raises:
            NotFoundError: E-4004 if it does not exist.
        """
        record = self.get_package(package_id)
        self.db.delete(record)
        self.db.flush()
        logger.info("Deleted saved package %s", package_id)

    def set_default(self, package_id: str) -> SavedPackage:
        """Make one package the owner's default, clearing any other."""
        record = self.get_package(package_id)
        self.db.execute(
            update(SavedPackage)
            .where(
                SavedPackage.owner_id == record.owner_id,
                SavedPackage.id != record.id,
                SavedPackage.is_default.is_(True),
            )
            .values(is_default=False, updated_at=utc_now_iso())
        )
        record.is_default = True
        self.db.flush()
        logger.info("Default package set: %s", package_id)
        return record
