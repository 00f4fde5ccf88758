"""CSV header normalization to canonical shipment fields.

User-supplied CSVs never agree on column names, so every header is pushed
through a fixed sequence of lookup attempts against one immutable alias
table. The first attempt that hits wins.

Example:
    >>> normalize_header("Zip Code")
    'recipientZip'
    >>> map_headers(["Name", "Street", "Shoe Size"]).unrecognized
    ['Shoe Size']
"""

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType

logger = logging.getLogger(__name__)

# Canonical field identifiers
RECIPIENT_NAME = "recipientName"
RECIPIENT_COMPANY = "recipientCompany"
RECIPIENT_STREET1 = "recipientStreet1"
RECIPIENT_STREET2 = "recipientStreet2"
RECIPIENT_CITY = "recipientCity"
RECIPIENT_STATE = "recipientState"
RECIPIENT_ZIP = "recipientZip"
RECIPIENT_COUNTRY = "recipientCountry"
RECIPIENT_PHONE = "recipientPhone"
RECIPIENT_PHONE2 = "recipientPhone2"
RECIPIENT_EMAIL = "recipientEmail"
FROM_ADDRESS = "fromAddress"
TO_ADDRESS = "toAddress"
WEIGHT = "weight"
WEIGHT_LB = "weightLb"
WEIGHT_OZ = "weightOz"
DIMENSIONS = "dimensions"
LENGTH = "length"
WIDTH = "width"
HEIGHT = "height"
REFERENCE = "reference"
SKU = "sku"
NOTES = "notes"

# Aliases grouped by the canonical field they resolve to. Keys are matched
# after lower-casing; see normalize_header for the retry sequence.
_ALIASES: dict[str, tuple[str, ...]] = {
    RECIPIENT_NAME: (
        "recipient.name", "recipient_name", "recipientname", "recipient name",
        "name", "full_name", "fullname", "full name",
        "customer_name", "customername", "customer name",
        "ship_to_name", "shiptoname", "ship to name",
    ),
    RECIPIENT_COMPANY: (
        "recipient.company", "recipient_company", "recipientcompany",
        "recipient company", "company", "company_name", "companyname",
        "company name", "organization",
    ),
    RECIPIENT_STREET1: (
        "recipient.street1", "recipient_street1", "recipientstreet1",
        "recipient street1", "recipient_street_1", "recipient_address1",
        "recipientaddress1", "recipient address1",
        "street1", "street_1", "street 1", "address1", "address_1", "address 1",
        "address", "street", "street_address", "streetaddress", "street address",
        "address_line_1", "addressline1", "address line 1",
        "ship_to_address", "shiptoaddress", "ship to address",
    ),
    RECIPIENT_STREET2: (
        "recipient.street2", "recipient_street2", "recipientstreet2",
        "recipient street2", "recipient_street_2", "recipient_address2",
        "recipientaddress2", "recipient address2",
        "street2", "street_2", "street 2", "address2", "address_2", "address 2",
        "apt", "apartment", "suite", "unit",
        "address_line_2", "addressline2", "address line 2",
    ),
    RECIPIENT_CITY: (
        "recipient.city", "recipient_city", "recipientcity", "recipient city",
        "city", "town", "ship_to_city", "shiptocity", "ship to city",
    ),
    RECIPIENT_STATE: (
        "recipient.state", "recipient_state", "recipientstate", "recipient state",
        "state", "province", "region", "state_code", "statecode", "state code",
        "ship_to_state", "shiptostate", "ship to state",
    ),
    RECIPIENT_ZIP: (
        "recipient.zip", "recipient_zip", "recipientzip", "recipient zip",
        "recipient_zipcode", "recipientzipcode", "recipient zipcode",
        "recipient_postal", "recipientpostal", "recipient postal",
        "recipient_postal_code", "recipientpostalcode", "recipient postal code",
        "zip", "zipcode", "zip_code", "zip code",
        "postal", "postal_code", "postalcode", "postal code",
        "postcode", "post_code", "post code",
        "ship_to_zip", "shiptozip", "ship to zip",
    ),
    RECIPIENT_COUNTRY: (
        "recipient.country", "recipient_country", "recipientcountry",
        "recipient country", "country", "country_code", "countrycode",
        "country code",
    ),
    RECIPIENT_PHONE: (
        "recipient.phone", "recipient_phone", "recipientphone", "recipient phone",
        "phone", "phone1", "phone_number", "phonenumber", "phone number",
        "telephone", "tel", "mobile", "cell",
    ),
    RECIPIENT_PHONE2: ("phone2",),
    RECIPIENT_EMAIL: (
        "recipient.email", "recipient_email", "recipientemail", "recipient email",
        "email", "email_address", "emailaddress", "email address", "e-mail",
    ),
    FROM_ADDRESS: (
        "from", "from_address", "fromaddress", "from address",
        "sender", "sender_address", "ship_from", "shipfrom", "origin",
    ),
    TO_ADDRESS: (
        "to", "to_address", "toaddress", "to address",
        "recipient", "recipient_address", "ship_to", "shipto",
        "destination", "delivery_address",
    ),
    WEIGHT: (
        "weight", "weight*", "package.weight",
        "weight_oz", "weightoz", "weight oz",
        "weight_ounces", "weightounces", "weight ounces",
        "package_weight", "packageweight", "package weight",
    ),
    WEIGHT_LB: (
        "weight.lbs", "weight.lb",
        "weight_lb", "weightlb", "weight lb",
        "weight_lbs", "weightlbs", "weight lbs",
        "weight_pounds", "weightpounds", "weight pounds",
    ),
    WEIGHT_OZ: ("weight.oz", "weight.ounces"),
    DIMENSIONS: (
        "dimensions", "dimensions*", "dimension", "size",
        "package_size", "pkg_dimensions",
    ),
    LENGTH: ("length", "package.length", "pkg_length", "package_length"),
    WIDTH: ("width", "package.width", "pkg_width", "package_width"),
    HEIGHT: ("height", "package.height", "pkg_height", "package_height"),
    REFERENCE: (
        "reference", "ref", "order", "order_id", "orderid", "order id",
        "order_no", "orderno", "order_number", "ordernumber", "order number",
        "order_ref", "orderref", "order ref",
        "po_number", "ponumber", "po number",
        "invoice", "invoice_number", "invoicenumber", "invoice number",
    ),
    SKU: ("sku", "item_sku", "itemsku"),
    NOTES: (
        "notes", "note", "comments", "comment", "instructions",
        "special_instructions", "specialinstructions", "special instructions",
        "delivery_instructions", "deliveryinstructions", "delivery instructions",
    ),
}

CSV_COLUMN_MAP: MappingProxyType[str, str] = MappingProxyType(
    {alias: canonical for canonical, aliases in _ALIASES.items() for alias in aliases}
)

CANONICAL_FIELDS: frozenset[str] = frozenset(_ALIASES)

# Fields whose presence marks the individual-column convention
INDIVIDUAL_MARKERS: frozenset[str] = frozenset({RECIPIENT_NAME, RECIPIENT_STREET1})

_SEPARATOR_RUN = re.compile(r"[\s_]+")


@dataclass
class HeaderMapping:
    """Result of mapping a full header row.

    Attributes:
        columns: One entry per input header, canonical field when mapped,
            otherwise the normalized header text.
        unrecognized: Original header strings that did not map.
    """

    columns: list[str] = field(default_factory=list)
    unrecognized: list[str] = field(default_factory=list)


def _candidates(normalized: str) -> list[str]:
    """Lookup keys for a lower-cased, BOM-stripped header, in retry order."""
    cleaned = _SEPARATOR_RUN.sub("_", normalized).strip("_")
    return [
        normalized,
        normalized.replace(".", "_"),
        cleaned,
        cleaned.replace("*", ""),
        cleaned.replace("_", ""),
        cleaned.replace("_", " "),
    ]


def _lookup(header: str) -> tuple[str, bool]:
    if not header:
        return "unknown", False
    normalized = header.strip().lower().lstrip("\ufeff").strip()
    for key in _candidates(normalized):
        canonical = CSV_COLUMN_MAP.get(key)
        if canonical is not None:
            return canonical, True
    return normalized, False


def normalize_header(raw: str) -> str:
    """Map one raw CSV header to its canonical field.

    Args:
        raw: Header text exactly as it appeared in the file.

    Returns:
        The canonical field identifier, or the normalized header text
        when no alias matches.
    """
    canonical, matched = _lookup(raw)
    if not matched:
        logger.warning("Unmapped CSV column %r (normalized %r)", raw, canonical)
    return canonical


def map_headers(headers: list[str]) -> HeaderMapping:
    """Normalize a whole header row, collecting unmapped headers."""
    mapping = HeaderMapping()
    for header in headers:
        canonical, matched = _lookup(header)
        if not matched:
            logger.warning("Unmapped CSV column %r (normalized %r)", header, canonical)
            mapping.unrecognized.append(header)
        mapping.columns.append(canonical)
    return mapping
