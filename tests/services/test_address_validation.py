"""Tests for the address validation pipeline and its validators."""

import json

import httpx
import pytest

from src.config import AddressValidationConfig
from src.services.address_validation import (
    BASIC_FALLBACK_MESSAGE,
    PIPELINE_UNAVAILABLE_MESSAGE,
    AddressValidationPipeline,
    BasicValidator,
    HeuristicValidator,
    USPSValidator,
    ValidationResult,
    build_pipeline,
    check_address_schema,
    validate_address,
)
from tests.helpers import RaisingValidator, StaticValidator

ADDRESS = {
    "name": "Jane Roe",
    "street1": "123 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip": "62701",
}

USPS_OK = """<?xml version="1.0" encoding="UTF-8"?>
<AddressValidateResponse>
  <Address ID="0">
    <Address2>123 MAIN ST</Address2>
    <City>SPRINGFIELD</City>
    <State>IL</State>
    <Zip5>62701</Zip5>
    <Zip4>1234</Zip4>
  </Address>
</AddressValidateResponse>"""

USPS_NOT_FOUND = """<?xml version="1.0" encoding="UTF-8"?>
<AddressValidateResponse>
  <Address ID="0">
    <Error>
      <Number>-2147219401</Number>
      <Description>Address Not Found.  </Description>
    </Error>
  </Address>
</AddressValidateResponse>"""


def _usps_pipeline(handler) -> AddressValidationPipeline:
    config = AddressValidationConfig(provider="usps", usps_user_id="U1")
    return build_pipeline(config, transport=httpx.MockTransport(handler))


def _google_pipeline(handler) -> AddressValidationPipeline:
    config = AddressValidationConfig(provider="google", google_api_key="K")
    return build_pipeline(config, transport=httpx.MockTransport(handler))


class TestBuildPipeline:
    """Tests for provider chain assembly."""

    @pytest.mark.parametrize(
        "provider,expected",
        [
            ("mock", ["mock", "basic"]),
            ("usps", ["usps", "mock", "basic"]),
            ("google", ["google", "mock", "basic"]),
        ],
    )
    def test_chain_order(self, provider, expected):
        pipeline = build_pipeline(AddressValidationConfig(provider=provider))
        assert [v.name for v in pipeline.validators] == expected
        assert pipeline.provider == expected[0]

    def test_default_config_is_heuristic(self):
        assert build_pipeline().provider == "mock"

    def test_empty_chain_rejected(self):
        with pytest.raises(ValueError):
            AddressValidationPipeline([])


class TestUSPSValidator:
    """Tests for the USPS Verify integration."""

    def test_request_document(self):
        xml = USPSValidator("U1").build_request_xml({**ADDRESS, "street2": "Apt 4"})
        assert 'USERID="U1"' in xml
        assert "<Address2>123 Main St</Address2>" in xml
        assert "<Address1>Apt 4</Address1>" in xml
        assert "<Zip5>62701</Zip5>" in xml

    async def test_standardized_address(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["api"] = request.url.params["API"]
            return httpx.Response(200, text=USPS_OK)

        result = await _usps_pipeline(handler).validate(ADDRESS)

        assert seen["api"] == "Verify"
        assert result.status == "valid"
        assert result.provider == "usps"
        assert result.suggested_address["street1"] == "123 MAIN ST"
        assert result.suggested_address["zip"] == "62701-1234"
        assert result.suggested_address["name"] == "Jane Roe"

    async def test_address_not_found_is_invalid(self):
        result = await _usps_pipeline(lambda r: httpx.Response(200, text=USPS_NOT_FOUND)).validate(
            ADDRESS
        )
        assert result.status == "invalid"
        assert result.messages == ["Address Not Found."]
        assert result.suggested_address is None

    async def test_http_error_falls_back_to_heuristic(self, caplog):
        result = await _usps_pipeline(lambda r: httpx.Response(503)).validate(ADDRESS)
        assert result.provider == "mock"
        assert result.status == "valid"
        assert "E-5001" in caplog.text
        assert "HTTP 503" in caplog.text

    async def test_timeout_falls_back(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = await _usps_pipeline(handler).validate(ADDRESS)
        assert result.provider == "mock"

    async def test_malformed_xml_falls_back(self):
        result = await _usps_pipeline(lambda r: httpx.Response(200, text="<oops")).validate(ADDRESS)
        assert result.provider == "mock"

    async def test_missing_user_id_falls_back(self, caplog):
        pipeline = build_pipeline(AddressValidationConfig(provider="usps"))
        result = await pipeline.validate(ADDRESS)
        assert result.provider == "mock"
        assert "E-5002" in caplog.text


class TestGoogleValidator:
    """Tests for the Google Address Validation integration."""

    async def test_complete_address_is_valid(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.url.params["key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "result": {
                    "verdict": {"addressComplete": True, "validationGranularity": "PREMISE"},
                    "address": {
                        "postalAddress": {
                            "addressLines": ["123 Main St"],
                            "locality": "Springfield",
                            "administrativeArea": "IL",
                            "postalCode": "62701-1234",
                        }
                    },
                }
            })

        result = await _google_pipeline(handler).validate(ADDRESS)

        assert seen["key"] == "K"
        assert seen["body"]["address"]["regionCode"] == "US"
        assert seen["body"]["address"]["addressLines"] == ["123 Main St"]
        assert result.status == "valid"
        assert result.provider == "google"
        assert result.suggested_address["zip"] == "62701-1234"

    async def test_incomplete_address_is_warning(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "result": {"verdict": {"hasUnconfirmedComponents": True}}
            })

        result = await _google_pipeline(handler).validate(ADDRESS)
        assert result.status == "warning"
        assert result.messages == [
            "Some address components could not be confirmed",
            "Address appears incomplete",
        ]

    async def test_response_without_verdict_falls_back(self):
        result = await _google_pipeline(lambda r: httpx.Response(200, json={})).validate(ADDRESS)
        assert result.provider == "mock"


class TestHeuristicValidator:
    """Tests for the local rule-based validator."""

    async def test_valid_address_is_normalized(self):
        result = await HeuristicValidator().validate({**ADDRESS, "city": "Springfield", "zip": "627 01"})
        assert result.status == "valid"
        assert result.suggested_address["city"] == "SPRINGFIELD"
        assert result.suggested_address["street1"] == "123 MAIN ST"
        assert result.suggested_address["zip"] == "62701"

    async def test_missing_fields_are_invalid(self):
        result = await HeuristicValidator().validate({**ADDRESS, "name": "", "street1": "12"})
        assert result.status == "invalid"
        assert result.messages == ["Name is required", "Street address is required"]
        assert result.suggested_address is None

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"state": "ZZ"}, 'State "ZZ" may not be a valid US state code'),
            ({"zip": "ABCDE"}, "ZIP code format may be non-standard"),
            ({"street1": "PO Box 12"}, "PO Box addresses may have delivery restrictions"),
        ],
    )
    async def test_warnings(self, overrides, message):
        result = await HeuristicValidator().validate({**ADDRESS, **overrides})
        assert result.status == "warning"
        assert result.messages == [message]
        assert result.suggested_address is not None


class TestPipelineFallback:
    """Tests for sequential fallthrough."""

    async def test_first_success_wins(self):
        first = StaticValidator(ValidationResult("valid", [], dict(ADDRESS), "first"), "first")
        second = StaticValidator(ValidationResult("invalid", ["no"], None, "second"), "second")
        result = await AddressValidationPipeline([first, second]).validate(ADDRESS)
        assert result.provider == "first"
        assert second.calls == []

    async def test_basic_fallback_message(self):
        pipeline = AddressValidationPipeline([RaisingValidator(RuntimeError("boom")), BasicValidator()])
        result = await pipeline.validate(ADDRESS)
        assert result.status == "valid"
        assert result.messages == [BASIC_FALLBACK_MESSAGE]
        assert result.provider == "basic"

    async def test_every_validator_failing_is_a_warning(self):
        failing = RaisingValidator(RuntimeError("boom"))
        result = await AddressValidationPipeline([failing]).validate(ADDRESS)
        assert failing.calls == 1
        assert result.status == "warning"
        assert result.messages == [PIPELINE_UNAVAILABLE_MESSAGE]
        assert result.suggested_address is None


class TestValidateAddress:
    """Tests for the schema check in front of the pipeline."""

    def test_schema_messages(self):
        cleaned, errors = check_address_schema({"street1": "123 Main St", "city": "", "zip": None})
        assert cleaned is None
        assert "name: Name is required" in errors
        assert "city: City is required" in errors
        assert "zip: ZIP code is required" in errors

    def test_schema_cleans_values(self):
        cleaned, errors = check_address_schema({**ADDRESS, "state": "illinois", "zip": " 62701 "})
        assert errors == []
        assert cleaned["state"] == "IL"
        assert cleaned["zip"] == "62701"
        assert cleaned["country"] == "US"

    async def test_schema_failure_skips_pipeline(self):
        validator = StaticValidator(ValidationResult("valid", [], None, "static"))
        result = await validate_address({"name": "Jane"}, AddressValidationPipeline([validator]))
        assert result.status == "invalid"
        assert result.provider == "schema"
        assert validator.calls == []

    async def test_cleaned_address_reaches_pipeline(self):
        validator = StaticValidator(ValidationResult("valid", [], None, "static"))
        result = await validate_address({**ADDRESS, "state": "il"}, AddressValidationPipeline([validator]))
        assert result.status == "valid"
        assert validator.calls[0]["state"] == "IL"
