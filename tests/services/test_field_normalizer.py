"""Tests for CSV header normalization."""

import pytest

from src.services import field_normalizer as fields
from src.services.field_normalizer import (
    CANONICAL_FIELDS,
    CSV_COLUMN_MAP,
    map_headers,
    normalize_header,
)


@pytest.mark.parametrize(
    "header,expected",
    [
        ("Name", fields.RECIPIENT_NAME),
        ("Full Name", fields.RECIPIENT_NAME),
        ("recipient.name", fields.RECIPIENT_NAME),
        ("Recipient Name", fields.RECIPIENT_NAME),
        ("Address Line 1", fields.RECIPIENT_STREET1),
        ("Street", fields.RECIPIENT_STREET1),
        ("Apt", fields.RECIPIENT_STREET2),
        ("Zip Code", fields.RECIPIENT_ZIP),
        ("Postal-Code", "postal-code"),
        ("ZIPCODE", fields.RECIPIENT_ZIP),
        ("State", fields.RECIPIENT_STATE),
        ("E-mail", fields.RECIPIENT_EMAIL),
        ("Phone2", fields.RECIPIENT_PHONE2),
        ("To", fields.TO_ADDRESS),
        ("Ship From", fields.FROM_ADDRESS),
        ("Weight*", fields.WEIGHT),
        ("Weight (lbs)", "weight (lbs)"),
        ("Weight LBS", fields.WEIGHT_LB),
        ("weight.oz", fields.WEIGHT_OZ),
        ("Dimensions*", fields.DIMENSIONS),
        ("Order Number", fields.REFERENCE),
        ("Special Instructions", fields.NOTES),
    ],
)
def test_normalize_header(header, expected):
    """Headers resolve through the alias table and its retry variants."""
    assert normalize_header(header) == expected


def test_byte_order_mark_and_whitespace_are_ignored():
    """A UTF-8 BOM on the first header does not block matching."""
    assert normalize_header("\ufeffName") == fields.RECIPIENT_NAME
    assert normalize_header("  City  ") == fields.RECIPIENT_CITY


def test_separator_runs_collapse():
    """Mixed runs of spaces and underscores behave like one separator."""
    assert normalize_header("ship _ to   name") == fields.RECIPIENT_NAME


def test_empty_header_is_unknown():
    assert normalize_header("") == "unknown"
    assert map_headers([""]).unrecognized == [""]


def test_unmapped_header_returns_normalized_text(caplog):
    """Unknown headers come back lower-cased and are logged."""
    assert normalize_header("Shoe Size") == "shoe size"
    assert "Shoe Size" in caplog.text


def test_map_headers_collects_unrecognized():
    mapping = map_headers(["Name", "Street", "Shoe Size", "City"])
    assert mapping.columns == [
        fields.RECIPIENT_NAME,
        fields.RECIPIENT_STREET1,
        "shoe size",
        fields.RECIPIENT_CITY,
    ]
    assert mapping.unrecognized == ["Shoe Size"]


def test_alias_table_is_read_only():
    with pytest.raises(TypeError):
        CSV_COLUMN_MAP["foo"] = fields.RECIPIENT_NAME  # type: ignore[index]


def test_every_alias_targets_a_canonical_field():
    assert set(CSV_COLUMN_MAP.values()) <= CANONICAL_FIELDS
