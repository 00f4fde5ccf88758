"""Tests for CLI output formatting."""

import json

import pytest

from src.cli import output
from src.cli.output import (
    format_batch_detail,
    format_batch_table,
    format_cost,
    format_pricing_table,
    format_rates,
)
from src.db.models import Batch
from src.services.pricing_service import get_all_rates, get_pricing_table


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Render tables without column wrapping."""
    monkeypatch.setattr(output.console, "width", 200)


class TestFormatCost:
    """Tests for cost formatting helper."""

    def test_formats_cents_to_dollars(self):
        """Converts cents integer to $X.XX string."""
        assert format_cost(1250) == "$12.50"
        assert format_cost(0) == "$0.00"
        assert format_cost(99) == "$0.99"
        assert format_cost(100000) == "$1,000.00"

    def test_none_returns_dash(self):
        """None cost displays as dash."""
        assert format_cost(None) == "-"


class TestFormatBatchTable:
    """Tests for batch list rendering."""

    def test_empty(self):
        assert format_batch_table([]) == "No batches found."

    def test_renders_batches_as_text(self, batch: Batch):
        output = format_batch_table([batch])
        assert "orders.csv" in output
        assert "draft" in output

    def test_json_matches_api_projection(self, batch: Batch):
        data = json.loads(format_batch_table([batch], as_json=True))
        assert data[0]["batch_id"] == batch.batch_id
        assert data[0]["stats"]["total_rows"] == 3
        assert "rows" not in data[0]


class TestFormatBatchDetail:
    """Tests for single batch rendering."""

    def test_renders_rows(self, batch: Batch):
        output = format_batch_detail(batch)
        assert batch.batch_id in output
        assert "not set" in output
        assert "Jane Roe" in output
        assert "44 oz" in output

    def test_lists_row_messages(self, db, batch: Batch):
        batch.rows[1].messages = ["ZIP code format may be non-standard"]
        db.commit()
        output = format_batch_detail(batch)
        assert "row 2: ZIP code format may be non-standard" in output

    def test_json(self, batch: Batch):
        data = json.loads(format_batch_detail(batch, as_json=True))
        assert [row["row_number"] for row in data["rows"]] == [1, 2, 3]
        assert data["rows"][0]["recipient"]["company"] == "Acme Corp"


class TestFormatRates:
    """Tests for rate and pricing rendering."""

    def test_rates_table(self):
        output = format_rates(get_all_rates(10).to_dict())
        assert "ground" in output
        assert "$2.95" in output

    def test_no_service(self):
        assert format_rates(get_all_rates(2000).to_dict()) == "No service can carry 2000 oz."

    def test_rates_json(self):
        data = json.loads(format_rates(get_all_rates(24).to_dict(), as_json=True))
        assert data["ground_available"] is False

    def test_pricing_table(self):
        output = format_pricing_table(get_pricing_table())
        assert "$2.50" in output
        assert "$50.00" in output
        assert json.loads(format_pricing_table(get_pricing_table(), as_json=True))["ground"]
