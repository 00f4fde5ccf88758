"""Tests for the typed domain exceptions."""

import pytest

from src.errors import ConflictError, DomainError, InputError, InvalidStateTransition, NotFoundError


def test_from_code_renders_template():
    exc = ConflictError.from_code("E-3001", count=2)
    assert isinstance(exc, ConflictError)
    assert exc.code == "E-3001"
    assert exc.message == "2 rows have validation errors or no shipping selected"
    assert str(exc) == exc.message
    assert exc.http_status == 409


def test_from_code_with_missing_context_keeps_template():
    exc = InputError.from_code("E-2003")
    assert exc.message == "Invalid service type: '{service_type}'."


def test_from_code_unknown():
    exc = InputError.from_code("E-9999")
    assert exc.code == "E-9999"
    assert exc.message == "Unknown error: E-9999"


def test_default_codes():
    assert DomainError("boom").code == "E-2005"
    assert ConflictError("boom").code == "E-3005"


@pytest.mark.parametrize(
    "resource,code",
    [
        ("Batch", "E-4001"),
        ("Row", "E-4002"),
        ("Saved address", "E-4003"),
        ("Saved package", "E-4004"),
        ("Widget", "E-4001"),
    ],
)
def test_not_found_codes(resource, code):
    exc = NotFoundError(resource, "x1")
    assert exc.code == code
    assert exc.message == f"{resource} 'x1' not found"
    assert exc.http_status == 404


def test_invalid_transition():
    exc = InvalidStateTransition("purchased", "draft", [])
    assert isinstance(exc, ConflictError)
    assert exc.code == "E-3006"
    assert exc.message.endswith("Allowed transitions: none")
    assert (exc.current, exc.target) == ("purchased", "draft")


def test_to_dict():
    exc = InputError.from_code("E-2002")
    assert exc.to_dict() == {
        "success": False,
        "code": "E-2002",
        "message": "Ship-from address is required.",
    }
