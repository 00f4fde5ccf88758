"""Error handling framework for ShipBatch.

This package provides:
- Error code registry with E-XXXX format codes
- Typed domain exceptions carrying those codes

Error categories:
- E-1xxx: CSV/input errors
- E-2xxx: Request validation errors
- E-3xxx: Workflow conflicts
- E-4xxx: Not found
- E-5xxx: Address provider errors
"""

from src.errors.domain import (
    ConflictError,
    DomainError,
    InputError,
    InvalidStateTransition,
    NotFoundError,
)
from src.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Exceptions
    "DomainError",
    "InputError",
    "NotFoundError",
    "ConflictError",
    "InvalidStateTransition",
]
