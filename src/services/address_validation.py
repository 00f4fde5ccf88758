"""Address validation pipeline with provider fallback.

Validators share one interface, ``async validate(address) -> ValidationResult``.
The pipeline tries them in order and falls through to the next one when a
validator raises, so provider outages degrade to local checks instead of
failing the caller:

    usps | google  ->  heuristic ("mock")  ->  basic

Provider failures are logged as warnings (E-5001 / E-5002) and never
propagate out of ``AddressValidationPipeline.validate``.

Example:
    pipeline = build_pipeline(load_config().address_validation)
    result = await pipeline.validate({"name": "Jane Roe", "street1": "123 Main St", ...})
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any
from xml.parsers.expat import ExpatError

import httpx
import xmltodict
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.config import AddressValidationConfig
from src.errors import get_error
from src.services.address_constants import US_STATES, ZIP_PATTERN

logger = logging.getLogger(__name__)

USPS_API_URL = "https://secure.shippingapis.com/ShippingAPI.dll"
GOOGLE_API_URL = "https://addressvalidation.googleapis.com/v1:validateAddress"

BASIC_FALLBACK_MESSAGE = "Address validation API unavailable - basic checks passed"
PIPELINE_UNAVAILABLE_MESSAGE = "Validation service unavailable"

_ADDRESS_FIELDS = (
    "name", "company", "street1", "street2", "city",
    "state", "zip", "country", "phone", "email",
)


@dataclass
class ValidationResult:
    """Outcome of validating one address.

    Attributes:
        status: "valid", "warning" or "invalid".
        messages: Ordered advisory or error messages.
        suggested_address: Normalized address offered to the user; never
            set for "invalid".
        provider: Name of the validator that produced this result.
    """

    status: str
    messages: list[str] = field(default_factory=list)
    suggested_address: dict[str, Any] | None = None
    provider: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "messages": list(self.messages),
            "suggested_address": self.suggested_address,
            "provider": self.provider,
        }


class AddressProviderError(Exception):
    """A validator could not produce a result. Internal to the pipeline."""

    def __init__(self, provider: str, details: str, code: str = "E-5001") -> None:
        error_def = get_error(code)
        template = error_def.message_template if error_def else "{provider}: {details}"
        super().__init__(template.format(provider=provider, details=details))
        self.provider = provider
        self.details = details
        self.code = code


def _field(address: Mapping[str, Any], key: str) -> str:
    value = address.get(key)
    return str(value).strip() if value is not None else ""


def _as_dict(address: Mapping[str, Any]) -> dict[str, str]:
    data = {key: _field(address, key) for key in _ADDRESS_FIELDS}
    data["country"] = data["country"] or "US"
    return data


def _normalized_copy(address: Mapping[str, Any]) -> dict[str, str]:
    """Input address with street/city upper-cased and zip whitespace-stripped."""
    data = _as_dict(address)
    data["street1"] = data["street1"].upper()
    data["street2"] = data["street2"].upper()
    data["city"] = data["city"].upper()
    data["state"] = data["state"].upper()
    data["zip"] = "".join(data["zip"].split())
    return data


class AddressValidator:
    """Base class for validation strategies."""

    name = "base"

    async def validate(self, address: Mapping[str, Any]) -> ValidationResult:
        raise NotImplementedError


class USPSValidator(AddressValidator):
    """USPS Web Tools ``Verify`` API (XML over HTTP GET)."""

    name = "usps"

    def __init__(
        self,
        user_id: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.user_id = user_id
        self.timeout = timeout
        self.transport = transport

    def build_request_xml(self, address: Mapping[str, Any]) -> str:
        """Render the AddressValidateRequest document.

        USPS swaps the line names: Address1 is the secondary line.
        """
        data = _as_dict(address)
        doc = {
            "AddressValidateRequest": {
                "@USERID": self.user_id,
                "Revision": "1",
                "Address": {
                    "@ID": "0",
                    "Address1": data["street2"],
                    "Address2": data["street1"],
                    "City": data["city"],
                    "State": data["state"],
                    "Zip5": data["zip"][:5],
                    "Zip4": "",
                },
            }
        }
        return xmltodict.unparse(doc, full_document=False)

    async def validate(self, address: Mapping[str, Any]) -> ValidationResult:
        if not self.user_id:
            raise AddressProviderError(self.name, "USPS user id not set", code="E-5002")

        params = {"API": "Verify", "XML": self.build_request_xml(address)}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(USPS_API_URL, params=params)
            response.raise_for_status()
            parsed = xmltodict.parse(response.text)
        except httpx.TimeoutException as e:
            raise AddressProviderError(self.name, "request timed out") from e
        except httpx.HTTPStatusError as e:
            raise AddressProviderError(
                self.name, f"HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            # The request URL carries the user id; log the error type only
            raise AddressProviderError(self.name, type(e).__name__) from e
        except ExpatError as e:
            raise AddressProviderError(self.name, f"malformed response: {e}") from e

        return self._interpret(parsed, address)

    def _interpret(self, parsed: dict[str, Any], address: Mapping[str, Any]) -> ValidationResult:
        if "Error" in parsed:
            return self._error_result(parsed["Error"])

        response = parsed.get("AddressValidateResponse")
        if not isinstance(response, dict) or not isinstance(response.get("Address"), dict):
            raise AddressProviderError(self.name, "response has no Address element")
        result = response["Address"]
        if "Error" in result:
            return self._error_result(result["Error"])

        suggested = _as_dict(address)
        suggested["street1"] = result.get("Address2") or suggested["street1"]
        suggested["street2"] = result.get("Address1") or suggested["street2"]
        suggested["city"] = result.get("City") or suggested["city"]
        suggested["state"] = result.get("State") or suggested["state"]
        zip5, zip4 = result.get("Zip5"), result.get("Zip4")
        if zip5:
            suggested["zip"] = f"{zip5}-{zip4}" if zip4 else zip5
        return ValidationResult("valid", [], suggested, self.name)

    def _error_result(self, error: Any) -> ValidationResult:
        description = "Address validation failed"
        if isinstance(error, dict) and error.get("Description"):
            description = str(error["Description"]).strip()
        return ValidationResult("invalid", [description], None, self.name)


class GoogleValidator(AddressValidator):
    """Google Address Validation API (JSON over HTTP POST)."""

    name = "google"

    def __init__(
        self,
        api_key: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def validate(self, address: Mapping[str, Any]) -> ValidationResult:
        if not self.api_key:
            raise AddressProviderError(self.name, "Google API key not set", code="E-5002")

        data = _as_dict(address)
        body = {
            "address": {
                "regionCode": data["country"],
                "addressLines": [line for line in (data["street1"], data["street2"]) if line],
                "locality": data["city"],
                "administrativeArea": data["state"],
                "postalCode": data["zip"],
            }
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    GOOGLE_API_URL, params={"key": self.api_key}, json=body
                )
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            raise AddressProviderError(self.name, "request timed out") from e
        except httpx.HTTPStatusError as e:
            # Never echo the request URL; it carries the API key
            raise AddressProviderError(
                self.name, f"HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise AddressProviderError(self.name, type(e).__name__) from e
        except ValueError as e:
            raise AddressProviderError(self.name, "response is not JSON") from e

        try:
            result = payload["result"]
            verdict = result["verdict"]
        except (KeyError, TypeError) as e:
            raise AddressProviderError(self.name, "response has no verdict") from e

        complete = bool(verdict.get("addressComplete"))
        if complete and verdict.get("validationGranularity") != "OTHER":
            postal = (result.get("address") or {}).get("postalAddress") or {}
            suggested = dict(data)
            lines = postal.get("addressLines") or []
            if lines:
                suggested["street1"] = lines[0]
                suggested["street2"] = ", ".join(lines[1:])
            suggested["city"] = postal.get("locality") or data["city"]
            suggested["state"] = postal.get("administrativeArea") or data["state"]
            suggested["zip"] = postal.get("postalCode") or data["zip"]
            return ValidationResult("valid", [], suggested, self.name)

        messages = []
        if verdict.get("hasUnconfirmedComponents"):
            messages.append("Some address components could not be confirmed")
        if not complete:
            messages.append("Address appears incomplete")
        return ValidationResult("warning", messages, None, self.name)


def _required_field_messages(address: Mapping[str, Any], min_street: int) -> list[str]:
    messages = []
    if not _field(address, "name"):
        messages.append("Name is required")
    if len(_field(address, "street1")) < min_street:
        messages.append("Street address is required")
    if not _field(address, "city"):
        messages.append("City is required")
    if not _field(address, "state"):
        messages.append("State is required")
    if not _field(address, "zip"):
        messages.append("ZIP code is required")
    return messages


class HeuristicValidator(AddressValidator):
    """Local rule-based validation, used when no external provider is set.

    Missing required fields make the address invalid. An unknown state
    code, an odd zip format or a PO box only raise warnings.
    """

    name = "mock"

    async def validate(self, address: Mapping[str, Any]) -> ValidationResult:
        missing = _required_field_messages(address, min_street=3)
        if missing:
            return ValidationResult("invalid", missing, None, self.name)

        suggested = _normalized_copy(address)
        messages = []
        state = _field(address, "state")
        if state.upper() not in US_STATES:
            messages.append(f'State "{state}" may not be a valid US state code')
        if not ZIP_PATTERN.match(suggested["zip"]):
            messages.append("ZIP code format may be non-standard")
        if "po box" in _field(address, "street1").lower():
            messages.append("PO Box addresses may have delivery restrictions")

        status = "warning" if messages else "valid"
        return ValidationResult(status, messages, suggested, self.name)


class BasicValidator(AddressValidator):
    """Last resort: required-field presence only."""

    name = "basic"

    async def validate(self, address: Mapping[str, Any]) -> ValidationResult:
        missing = _required_field_messages(address, min_street=1)
        if missing:
            return ValidationResult("invalid", missing, None, self.name)
        suggested = _as_dict(address)
        suggested["state"] = suggested["state"].upper()
        return ValidationResult("valid", [BASIC_FALLBACK_MESSAGE], suggested, self.name)


class AddressValidationPipeline:
    """Ordered validator chain with sequential fallthrough on failure."""

    def __init__(self, validators: Sequence[AddressValidator]) -> None:
        if not validators:
            raise ValueError("AddressValidationPipeline needs at least one validator")
        self.validators = list(validators)

    @property
    def provider(self) -> str:
        """Name of the primary validator."""
        return self.validators[0].name

    async def validate(self, address: Mapping[str, Any]) -> ValidationResult:
        """Validate an address, falling back along the chain.

        Never raises: if every validator fails the result is a warning
        saying validation was unavailable.
        """
        for validator in self.validators:
            try:
                return await validator.validate(address)
            except AddressProviderError as e:
                logger.warning(
                    "%s: %s; falling back", e.code, e
                )
            except Exception as e:
                logger.warning(
                    "E-5001: validator %s raised %s; falling back",
                    validator.name,
                    type(e).__name__,
                    exc_info=True,
                )
        return ValidationResult("warning", [PIPELINE_UNAVAILABLE_MESSAGE], None, "none")


def build_pipeline(
    config: AddressValidationConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AddressValidationPipeline:
    """Assemble the validator chain for the configured provider.

    Args:
        config: Address validation settings; defaults to the heuristic provider.
        transport: Optional httpx transport (tests inject MockTransport).
    """
    config = config or AddressValidationConfig()
    validators: list[AddressValidator] = []
    if config.provider == "usps":
        validators.append(
            USPSValidator(config.usps_user_id, config.timeout_seconds, transport)
        )
    elif config.provider == "google":
        validators.append(
            GoogleValidator(config.google_api_key, config.timeout_seconds, transport)
        )
    validators.extend([HeuristicValidator(), BasicValidator()])
    logger.info("Address validation provider: %s", validators[0].name)
    return AddressValidationPipeline(validators)


class AddressInput(BaseModel):
    """Request-shape check applied before single-address validation."""

    model_config = ConfigDict(str_strip_whitespace=True, coerce_numbers_to_str=True)

    name: str = Field(min_length=1, max_length=100)
    company: str = Field(default="", max_length=100)
    street1: str = Field(min_length=1, max_length=200)
    street2: str = Field(default="", max_length=200)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=2, max_length=50)
    zip: str = Field(min_length=5, max_length=20)
    country: str = Field(default="US", max_length=50)
    phone: str = Field(default="", max_length=30)
    email: str = Field(default="", max_length=255)

    @field_validator("state")
    @classmethod
    def state_code(cls, value: str) -> str:
        return value[:2].upper()

    @field_validator("zip")
    @classmethod
    def zip_digits(cls, value: str) -> str:
        return "".join(ch for ch in value if ch.isdigit() or ch == "-")


_SCHEMA_MESSAGES = {
    "name": "Name is required",
    "street1": "Street address is required",
    "city": "City is required",
    "state": "State is required",
    "zip": "ZIP code is required",
}


def check_address_schema(address: Mapping[str, Any]) -> tuple[dict[str, str] | None, list[str]]:
    """Run the request-shape check.

    Returns:
        (cleaned address, []) on success, (None, ["<field>: <message>", ...])
        on failure.
    """
    data = {k: ("" if v is None else v) for k, v in address.items() if k in _ADDRESS_FIELDS}
    try:
        model = AddressInput(**data)
    except ValidationError as e:
        messages = []
        for err in e.errors():
            loc = ".".join(str(part) for part in err["loc"])
            if err["type"] in ("missing", "string_too_short") and loc in _SCHEMA_MESSAGES:
                msg = _SCHEMA_MESSAGES[loc]
            else:
                msg = err["msg"]
            messages.append(f"{loc}: {msg}")
        return None, messages
    return model.model_dump(), []


async def validate_address(
    address: Mapping[str, Any], pipeline: AddressValidationPipeline
) -> ValidationResult:
    """Validate one address: request-shape check, then the provider chain."""
    cleaned, errors = check_address_schema(address)
    if cleaned is None:
        return ValidationResult("invalid", errors, None, "schema")
    result = await pipeline.validate(cleaned)
    logger.info(
        "Address validation result: provider=%s status=%s messages=%d",
        result.provider,
        result.status,
        len(result.messages),
    )
    return result
