"""Service layer for ShipBatch.

Provides CSV ingestion, address validation, rating, the batch workflow
and saved-record management.
"""

from src.services.address_validation import (
    AddressValidationPipeline,
    ValidationResult,
    build_pipeline,
    validate_address,
)
from src.services.batch_ingestion import BatchIngestionEngine
from src.services.batch_service import BatchService, batch_lock, recompute_stats
from src.services.pricing_service import (
    ServiceType,
    calculate_rate,
    get_all_rates,
    get_pricing_table,
)
from src.services.saved_address_service import SavedAddressService
from src.services.saved_package_service import SavedPackageService

__all__ = [
    "BatchIngestionEngine",
    "BatchService",
    "batch_lock",
    "recompute_stats",
    "AddressValidationPipeline",
    "ValidationResult",
    "build_pipeline",
    "validate_address",
    "ServiceType",
    "calculate_rate",
    "get_all_rates",
    "get_pricing_table",
    "SavedAddressService",
    "SavedPackageService",
]
