"""Weight-tiered shipping rates.

Two services, each an ascending table of (max ounces, price) tiers with a
hard weight cap. Prices are held in integer cents and rendered as dollars
at the edges.

Example:
    quote = calculate_rate(16, "ground")    # available, $3.00
    calculate_rate(17, "ground").error      # over the 16 oz cap
    get_all_rates(10).cheapest.service_type  # "ground"
"""

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ServiceType(str, Enum):
    """Shipping speed/price tiers selectable per row."""

    ground = "ground"
    priority = "priority"


@dataclass(frozen=True)
class PriceTier:
    """Upper-bound-inclusive weight tier."""

    max_weight_oz: int
    price_cents: int


PRICING_TIERS: dict[ServiceType, tuple[PriceTier, ...]] = {
    ServiceType.ground: (
        PriceTier(4, 250),
        PriceTier(8, 275),
        PriceTier(12, 295),
        PriceTier(16, 300),
    ),
    ServiceType.priority: (
        PriceTier(4, 400),
        PriceTier(8, 450),
        PriceTier(12, 500),
        PriceTier(16, 550),
        PriceTier(32, 600),
        PriceTier(48, 750),
        PriceTier(64, 900),
        PriceTier(80, 1050),
        PriceTier(160, 1500),
        PriceTier(320, 2500),
        PriceTier(1120, 5000),
    ),
}

MAX_WEIGHT_OZ: dict[ServiceType, int] = {
    ServiceType.ground: 16,
    ServiceType.priority: 1120,
}

DELIVERY_ESTIMATES: dict[ServiceType, str] = {
    ServiceType.ground: "5-7 business days",
    ServiceType.priority: "1-3 business days",
}

_OVER_CAP_MESSAGES: dict[ServiceType, str] = {
    ServiceType.ground: "Ground shipping not available for packages over 1 lb (16 oz)",
    ServiceType.priority: "Package exceeds maximum weight limit of 70 lbs",
}

_MAX_WEIGHT_LABELS: dict[ServiceType, str] = {
    ServiceType.ground: "16 oz (1 lb)",
    ServiceType.priority: "1120 oz (70 lbs)",
}


@dataclass
class RateQuote:
    """Result of rating one weight for one service.

    Attributes:
        available: Whether the service can carry this weight.
        service_type: Requested service.
        weight: Weight in ounces.
        rate_cents: Price in cents when available.
        estimated_delivery: Delivery window when available.
        error: Reason when not available.
    """

    available: bool
    service_type: str
    weight: float
    rate_cents: int | None = None
    estimated_delivery: str | None = None
    error: str | None = None

    @property
    def rate(self) -> float | None:
        """Price in dollars."""
        if self.rate_cents is None:
            return None
        return round(self.rate_cents / 100, 2)

    @property
    def weight_lb(self) -> str:
        return f"{self.weight / 16:.2f}"

    def to_dict(self) -> dict[str, Any]:
        if not self.available:
            return {"available": False, "service_type": self.service_type, "error": self.error}
        return {
            "available": True,
            "service_type": self.service_type,
            "weight": self.weight,
            "weight_lb": self.weight_lb,
            "rate": self.rate,
            "estimated_delivery": self.estimated_delivery,
        }


@dataclass
class RateOptions:
    """Every available service for one weight, cheapest first."""

    weight: float
    rates: list[RateQuote] = field(default_factory=list)
    ground_available: bool = False

    @property
    def cheapest(self) -> RateQuote | None:
        return self.rates[0] if self.rates else None

    @property
    def fastest(self) -> RateQuote | None:
        return next(
            (q for q in self.rates if q.service_type == ServiceType.priority.value), None
        )

    def to_dict(self) -> dict[str, Any]:
        cheapest, fastest = self.cheapest, self.fastest
        return {
            "weight": self.weight,
            "weight_lb": f"{self.weight / 16:.2f}",
            "rates": [q.to_dict() for q in self.rates],
            "cheapest": cheapest.to_dict() if cheapest else None,
            "fastest": fastest.to_dict() if fastest else None,
            "ground_available": self.ground_available,
        }


@dataclass
class BatchTotal:
    """Aggregate cost of a set of rows; unrateable rows land in ``errors``."""

    total_cost_cents: int = 0
    row_count: int = 0
    ground_count: int = 0
    priority_count: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    breakdown: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total_cost(self) -> float:
        return round(self.total_cost_cents / 100, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_cost": self.total_cost,
            "row_count": self.row_count,
            "ground_count": self.ground_count,
            "priority_count": self.priority_count,
            "errors": list(self.errors),
            "breakdown": list(self.breakdown),
        }


def _coerce_service(service_type: str | ServiceType) -> ServiceType | None:
    try:
        return ServiceType(service_type)
    except ValueError:
        return None


def calculate_rate(weight_oz: float, service_type: str | ServiceType = ServiceType.ground) -> RateQuote:
    """Rate one weight for one service.

    Args:
        weight_oz: Package weight in ounces.
        service_type: "ground" or "priority".

    Returns:
        RateQuote; unavailable quotes carry an explanatory error.
    """
    service = _coerce_service(service_type)
    requested = service.value if service else str(service_type)
    if service is None:
        return RateQuote(False, requested, weight_oz, error="Invalid service type")

    if weight_oz is None or not math.isfinite(weight_oz) or weight_oz <= 0:
        return RateQuote(False, requested, weight_oz, error="Weight must be greater than 0")

    if weight_oz > MAX_WEIGHT_OZ[service]:
        return RateQuote(False, requested, weight_oz, error=_OVER_CAP_MESSAGES[service])

    for tier in PRICING_TIERS[service]:
        if weight_oz <= tier.max_weight_oz:
            return RateQuote(
                True,
                requested,
                weight_oz,
                rate_cents=tier.price_cents,
                estimated_delivery=DELIVERY_ESTIMATES[service],
            )

    # The last tier bound equals the service cap, so this is unreachable
    raise AssertionError(f"No pricing tier for {weight_oz} oz ({requested})")


def get_all_rates(weight_oz: float) -> RateOptions:
    """Every service able to carry ``weight_oz``, sorted by price ascending."""
    quotes = [calculate_rate(weight_oz, service) for service in ServiceType]
    available = sorted((q for q in quotes if q.available), key=lambda q: q.rate_cents or 0)
    return RateOptions(
        weight=weight_oz,
        rates=available,
        ground_available=0 < weight_oz <= MAX_WEIGHT_OZ[ServiceType.ground],
    )


def recommend_service(weight_oz: float) -> ServiceType:
    """Ground when the weight fits under its cap, otherwise priority."""
    if weight_oz <= MAX_WEIGHT_OZ[ServiceType.ground]:
        return ServiceType.ground
    return ServiceType.priority


def normalize_weight(weight: float | None, unit: str | None = "oz") -> float:
    """Convert a weight to ounces."""
    if weight is None:
        return 0.0
    if unit == "lb":
        return weight * 16
    return weight


def _attr(row: Any, name: str, default: Any = None) -> Any:
    if isinstance(row, dict):
        return row.get(name, default)
    return getattr(row, name, default)


def calculate_batch_total(rows: Iterable[Any]) -> BatchTotal:
    """Sum the selected-service rate of every row.

    Rows expose ``row_number``, ``weight``, ``weight_unit`` and
    ``service_type`` as attributes or dict keys. Rows without a service are
    rated as ground. Unrateable rows are itemized in ``errors`` and do not
    stop the aggregation.
    """
    total = BatchTotal()
    for index, row in enumerate(rows, start=1):
        total.row_count += 1
        row_number = _attr(row, "row_number") or index
        weight = normalize_weight(_attr(row, "weight"), _attr(row, "weight_unit", "oz"))
        service_type = _attr(row, "service_type") or ServiceType.ground.value
        quote = calculate_rate(weight, service_type)

        if not quote.available:
            total.errors.append({"row_number": row_number, "error": quote.error})
            total.breakdown.append({
                "row_number": row_number,
                "weight": weight,
                "service_type": service_type,
                "rate": None,
                "error": quote.error,
            })
            continue

        total.total_cost_cents += quote.rate_cents or 0
        if quote.service_type == ServiceType.ground.value:
            total.ground_count += 1
        else:
            total.priority_count += 1
        total.breakdown.append({
            "row_number": row_number,
            "weight": weight,
            "service_type": service_type,
            "rate": quote.rate,
        })

    logger.debug(
        "Batch total: rows=%d cost_cents=%d errors=%d",
        total.row_count,
        total.total_cost_cents,
        len(total.errors),
    )
    return total


def _tier_label(max_weight_oz: int) -> str:
    if max_weight_oz <= 16:
        return f"{max_weight_oz} oz"
    return f"{max_weight_oz // 16} lbs"


def get_pricing_table() -> dict[str, Any]:
    """Human-readable tier boundaries and prices for display."""
    return {
        service.value: {
            "max_weight": _MAX_WEIGHT_LABELS[service],
            "estimated_delivery": DELIVERY_ESTIMATES[service],
            "tiers": [
                {"up_to": _tier_label(t.max_weight_oz), "price": f"${t.price_cents / 100:.2f}"}
                for t in PRICING_TIERS[service]
            ],
        }
        for service in ServiceType
    }
