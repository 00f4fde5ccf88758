"""Test helper utilities shared across test packages."""

from tests.helpers.sample_data import COMBINED_CSV, INDIVIDUAL_CSV, SHIP_FROM
from tests.helpers.validators import RaisingValidator, StaticValidator

__all__ = [
    "COMBINED_CSV",
    "INDIVIDUAL_CSV",
    "SHIP_FROM",
    "RaisingValidator",
    "StaticValidator",
]
