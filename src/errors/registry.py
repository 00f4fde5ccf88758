"""Error code registry with E-XXXX format codes.

This module defines the error code system for ShipBatch, organizing errors
into categories:
- E-1xxx: CSV/input errors
- E-2xxx: Request validation errors
- E-3xxx: Workflow conflicts (business rules)
- E-4xxx: Not-found errors
- E-5xxx: Address provider errors (logged, never raised to callers)

Each error includes a code, title, message template, HTTP status and
remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    INPUT = "input"  # E-1xxx: CSV/input errors
    VALIDATION = "validation"  # E-2xxx: Request validation errors
    CONFLICT = "conflict"  # E-3xxx: Business rule conflicts
    NOT_FOUND = "not_found"  # E-4xxx: Missing resources
    PROVIDER = "provider"  # E-5xxx: Address provider errors


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action user should take to resolve.
        http_status: HTTP status the API returns for this error.
    """

    code: str  # E-XXXX format
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    http_status: int = 400


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Input errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.INPUT,
        title="Empty CSV",
        message_template="CSV file is empty or has no valid data rows.",
        remediation="Upload a CSV with a header row and at least one shipment row.",
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.INPUT,
        title="Unrecognized CSV Columns",
        message_template=(
            "CSV columns not recognized. Found columns: {columns}. Expected either: "
            "(1) 'To' column with full address, or (2) individual columns like: "
            "name, street1, city, state, zip, weight"
        ),
        remediation="Rename the columns to one of the supported layouts and upload again.",
    ),
    "E-1003": ErrorCode(
        code="E-1003",
        category=ErrorCategory.INPUT,
        title="No Valid Rows",
        message_template="No valid rows found in CSV file.",
        remediation="Check that rows contain a recipient name, street and city.",
    ),
    "E-1004": ErrorCode(
        code="E-1004",
        category=ErrorCategory.INPUT,
        title="CSV Parse Error",
        message_template="Failed to parse CSV: {details}",
        remediation="Save the file as UTF-8 CSV and upload again.",
    ),
    # Request validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Invalid Step",
        message_template="Invalid step number: {step}. {reason}",
        remediation="Use steps 1-3; step 4 is reached by purchasing the batch.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Missing Ship-From",
        message_template="Ship-from address is required.",
        remediation="Set a ship-from address on the batch before purchasing.",
    ),
    "E-2003": ErrorCode(
        code="E-2003",
        category=ErrorCategory.VALIDATION,
        title="Invalid Service Type",
        message_template="Invalid service type: '{service_type}'.",
        remediation="Use 'ground' or 'priority'.",
    ),
    "E-2004": ErrorCode(
        code="E-2004",
        category=ErrorCategory.VALIDATION,
        title="Service Not Available",
        message_template="{reason}",
        remediation="Choose a service that supports the package weight.",
    ),
    "E-2005": ErrorCode(
        code="E-2005",
        category=ErrorCategory.VALIDATION,
        title="Validation Failed",
        message_template="Validation failed: {details}",
        remediation="Correct the listed fields and retry.",
    ),
    "E-2006": ErrorCode(
        code="E-2006",
        category=ErrorCategory.VALIDATION,
        title="Invalid Selection Strategy",
        message_template="Invalid selection strategy: '{strategy}'.",
        remediation="Use 'all' or 'cheapest'.",
    ),
    # Workflow conflicts (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.CONFLICT,
        title="Rows Not Ready",
        message_template="{count} rows have validation errors or no shipping selected",
        remediation="Fix invalid rows and select shipping for every row, then retry.",
        http_status=409,
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.CONFLICT,
        title="Batch Purchased",
        message_template="Batch '{batch_id}' is purchased and cannot be {action}.",
        remediation="Purchased batches are read-only. Create a new batch instead.",
        http_status=409,
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.CONFLICT,
        title="Label Not Purchased",
        message_template="Label not yet purchased for row '{row_id}'.",
        remediation="Purchase the batch before requesting labels.",
        http_status=409,
    ),
    "E-3004": ErrorCode(
        code="E-3004",
        category=ErrorCategory.CONFLICT,
        title="Batch Not Purchased",
        message_template="Labels not yet purchased for batch '{batch_id}'.",
        remediation="Purchase the batch before downloading labels.",
        http_status=409,
    ),
    "E-3005": ErrorCode(
        code="E-3005",
        category=ErrorCategory.CONFLICT,
        title="Concurrent Modification",
        message_template="Batch '{batch_id}' was modified concurrently.",
        remediation="Reload the batch and retry the operation.",
        http_status=409,
    ),
    "E-3006": ErrorCode(
        code="E-3006",
        category=ErrorCategory.CONFLICT,
        title="Invalid Status Transition",
        message_template="Cannot transition from '{current}' to '{target}'. Allowed transitions: {allowed}",
        remediation="Complete the preceding workflow step first.",
        http_status=409,
    ),
    "E-3007": ErrorCode(
        code="E-3007",
        category=ErrorCategory.CONFLICT,
        title="Batch Cancelled",
        message_template="Batch '{batch_id}' is cancelled and cannot be {action}.",
        remediation="Upload the CSV again to start a new batch.",
        http_status=409,
    ),
    # Not found (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.NOT_FOUND,
        title="Batch Not Found",
        message_template="Batch '{identifier}' not found",
        remediation="Check the batch ID.",
        http_status=404,
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.NOT_FOUND,
        title="Row Not Found",
        message_template="Row '{identifier}' not found",
        remediation="Reload the batch; the row may have been deleted.",
        http_status=404,
    ),
    "E-4003": ErrorCode(
        code="E-4003",
        category=ErrorCategory.NOT_FOUND,
        title="Saved Address Not Found",
        message_template="Saved address '{identifier}' not found",
        remediation="Check the address ID.",
        http_status=404,
    ),
    "E-4004": ErrorCode(
        code="E-4004",
        category=ErrorCategory.NOT_FOUND,
        title="Saved Package Not Found",
        message_template="Saved package '{identifier}' not found",
        remediation="Check the package ID.",
        http_status=404,
    ),
    # Provider errors (E-5xxx)
    "E-5001": ErrorCode(
        code="E-5001",
        category=ErrorCategory.PROVIDER,
        title="Address Provider Unavailable",
        message_template="Address provider '{provider}' failed: {details}",
        remediation="Validation fell back to local checks. Check provider status.",
        http_status=503,
    ),
    "E-5002": ErrorCode(
        code="E-5002",
        category=ErrorCategory.PROVIDER,
        title="Address Provider Misconfigured",
        message_template="Address provider '{provider}' is not configured: {details}",
        remediation="Set the provider credentials in shipbatch.yaml or the environment.",
        http_status=503,
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category."""
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
