"""Database module for ShipBatch state management and persistence."""

from src.db.connection import (
    SessionLocal,
    engine,
    get_db,
    get_db_context,
    init_db,
)
from src.db.models import (
    AddressType,
    Batch,
    BatchStatus,
    PackageType,
    SavedAddress,
    SavedPackage,
    ShipmentRow,
    ValidationStatus,
)

__all__ = [
    # Models
    "Batch",
    "ShipmentRow",
    "SavedAddress",
    "SavedPackage",
    # Enums
    "BatchStatus",
    "ValidationStatus",
    "AddressType",
    "PackageType",
    # Connection
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "init_db",
]
