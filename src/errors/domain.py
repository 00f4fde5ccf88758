"""Typed domain exceptions for API error mapping.

Every domain exception carries a stable E-XXXX code from the registry,
so the HTTP layer and the CLI can report the same machine-readable code
without matching on message strings.

Usage:
    # In service layer
    raise NotFoundError("Batch", batch_id)
    raise ConflictError.from_code("E-3002", batch_id=batch_id, action="deleted")

    # In the API, one exception handler maps every DomainError
    # to {"success": false, "code": ..., "message": ...}.
"""

from src.errors.registry import get_error


class DomainError(Exception):
    """Base exception for all domain errors."""

    http_status = 400
    default_code = "E-2005"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    @classmethod
    def from_code(cls, code: str, **context: object) -> "DomainError":
        """Build an exception from a registry code and template context.

        Args:
            code: Error code in E-XXXX format.
            **context: Values substituted into the message template.

        Returns:
            Exception instance of the calling class.
        """
        error_def = get_error(code)
        if error_def is None:
            return cls(f"Unknown error: {code}", code=code)
        try:
            message = error_def.message_template.format(**context)
        except KeyError:
            # Keep template if some placeholders are missing
            message = error_def.message_template
        exc = cls.__new__(cls)
        DomainError.__init__(exc, message, code=code)
        return exc

    def to_dict(self) -> dict:
        """Serialize into the API error envelope."""
        return {"success": False, "code": self.code, "message": self.message}

    def __str__(self) -> str:
        return self.message


class InputError(DomainError):
    """Caller supplied unusable input. Maps to HTTP 400."""

    http_status = 400


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    http_status = 404
    default_code = "E-4001"

    _CODES = {
        "Batch": "E-4001",
        "Row": "E-4002",
        "Saved address": "E-4003",
        "Saved package": "E-4004",
    }

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(
            f"{resource_type} '{identifier}' not found",
            code=self._CODES.get(resource_type, self.default_code),
        )
        self.resource_type = resource_type
        self.identifier = identifier


class ConflictError(DomainError):
    """Business rule conflict. Maps to HTTP 409."""

    http_status = 409
    default_code = "E-3005"


class InvalidStateTransition(ConflictError):
    """Batch status change not allowed by the workflow. Maps to HTTP 409."""

    default_code = "E-3006"

    def __init__(self, current: str, target: str, allowed: list[str]) -> None:
        exc = DomainError.from_code(
            "E-3006",
            current=current,
            target=target,
            allowed=", ".join(allowed) or "none",
        )
        super().__init__(exc.message, code="E-3006")
        self.current = current
        self.target = target
        self.allowed = allowed
