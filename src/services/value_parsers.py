"""Free-text parsers for combined addresses, weights and dimensions.

All parsers are best-effort and total: malformed input produces empty or
default values, never an exception.
"""

import re
from dataclasses import asdict, dataclass


@dataclass
class PostalAddress:
    """A postal address with empty strings for unknown fields."""

    name: str = ""
    company: str = ""
    street1: str = ""
    street2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = "US"
    phone: str = ""
    email: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class ParsedWeight:
    """Weight in ounces. ``weight_unit`` is retained for display only."""

    weight: float
    weight_unit: str = "oz"


@dataclass
class Dimensions:
    """Package dimensions; all None when not parseable."""

    length: float | None = None
    width: float | None = None
    height: float | None = None


_STATE_ZIP = re.compile(r"^([A-Za-z]{2})\s+(\d{5}(?:-\d{4})?)$")
_ZIP_ONLY = re.compile(r"^\d{5}(?:-\d{4})?$")
_STATE_ONLY = re.compile(r"^[A-Za-z]{2}$")
_HAS_DIGIT = re.compile(r"\d")
_LEADING_NUMBER = re.compile(r"^(\d+(?:\.\d+)?)")
_DIMENSIONS = re.compile(
    r"(\d+(?:\.\d+)?)\s*[x×*\-]\s*(\d+(?:\.\d+)?)\s*[x×*\-]\s*(\d+(?:\.\d+)?)",
    re.IGNORECASE,
)
_POUND_MARKERS = ("lb", "pound")


def _assign_head(parts: list[str], tail_start: int, address: PostalAddress) -> None:
    """Fill name/street1/street2 from the segments before the city.

    The first segment is a street when it contains a digit, otherwise a
    recipient name followed by the street.
    """
    if _HAS_DIGIT.search(parts[0]):
        address.street1 = parts[0]
        middle = parts[1:tail_start]
    else:
        address.name = parts[0]
        address.street1 = parts[1] if len(parts) > 1 else ""
        middle = parts[2:tail_start]
    address.street2 = ", ".join(middle)


def parse_address(text: str | None) -> PostalAddress:
    """Parse a combined address string into a PostalAddress.

    Handles formats like:
    - "John Doe, 123 Main St, New York, NY 10001"
    - "John Doe, 123 Main St, Suite 100, New York, NY 10001"
    - "123 Main St, New York, NY, 10001"
    - "123 Main St, New York, NY 10001"

    Args:
        text: Free-text address, segments separated by commas.

    Returns:
        Parsed address. Unparsed fields are empty strings, state is
        upper-cased and country defaults to "US".
    """
    address = PostalAddress()
    if not text or not isinstance(text, str):
        return address

    parts = [p.strip() for p in text.split(",") if p.strip()]

    if len(parts) >= 4:
        last = parts[-1]
        state_zip = _STATE_ZIP.match(last)
        if state_zip:
            address.state, address.zip = state_zip.group(1), state_zip.group(2)
            address.city = parts[-2]
            _assign_head(parts, len(parts) - 2, address)
        elif _ZIP_ONLY.match(last):
            address.zip = last
            if _STATE_ONLY.match(parts[-2]):
                address.state = parts[-2]
                address.city = parts[-3]
                _assign_head(parts, len(parts) - 3, address)
        else:
            address.name = parts[0]
            address.street1 = parts[1]
            address.city = parts[2]
            pieces = last.split()
            if len(pieces) >= 2:
                address.state = pieces[0]
                address.zip = "".join(pieces[1:])
    elif len(parts) == 3:
        address.street1, address.city = parts[0], parts[1]
        state_zip = _STATE_ZIP.match(parts[2])
        if state_zip:
            address.state, address.zip = state_zip.group(1), state_zip.group(2)
    elif len(parts) == 2:
        address.street1, address.city = parts
    elif len(parts) == 1:
        address.street1 = parts[0]

    address.state = address.state.strip().upper()
    return address


def parse_weight(text: object) -> ParsedWeight:
    """Parse a weight expression into ounces.

    "15" and "15 oz" are ounces; anything mentioning pounds ("1.5 lb",
    "2 lbs", "3 pounds") is converted at 16 oz/lb. Empty, zero or
    non-numeric input defaults to 1 oz.
    """
    if text is None:
        return ParsedWeight(weight=1.0)
    value = str(text).strip().lower()
    match = _LEADING_NUMBER.match(value)
    if not match:
        return ParsedWeight(weight=1.0)
    number = float(match.group(1))
    if any(marker in value for marker in _POUND_MARKERS):
        return ParsedWeight(weight=number * 16)
    return ParsedWeight(weight=number or 1.0)


def parse_dimensions(text: object) -> Dimensions:
    """Parse "6x4x2", "6 x 4 x 2", "6*4*2", "6-4-2" or "6×4×2"."""
    if not text or not isinstance(text, str):
        return Dimensions()
    match = _DIMENSIONS.search(text)
    if not match:
        return Dimensions()
    length, width, height = (float(g) or None for g in match.groups())
    return Dimensions(length=length, width=width, height=height)


def parse_number(text: object) -> float:
    """Leading number of a cell value, 0.0 when absent."""
    if text is None:
        return 0.0
    match = re.match(r"^\s*(-?\d+(?:\.\d+)?|-?\.\d+)", str(text))
    if not match:
        return 0.0
    return float(match.group(1))
