# Fee / pricing calculator
# Pure functions: no I/O, no clock, amounts in integer paise

import math
from dataclasses import dataclass, field, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from .state_machine import OrderType

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Coordinates"]:
        if not data or data.get("lat") is None or data.get("lng") is None:
            return None
        return cls(lat=float(data["lat"]), lng=float(data["lng"]))


@dataclass(frozen=True)
class FeeConfig:
    """Store fee configuration, as returned by the settings collaborator"""
    tax_rate: float = 5.0
    platform_fee_paise: int = 98
    delivery_fee_base_paise: int = 3000
    delivery_fee_per_km_paise: int = 500
    free_delivery_threshold_paise: int = 50000
    delivery_radius_km: float = 10.0
    store_location: Coordinates = field(default_factory=lambda: Coordinates(28.6139, 77.2090))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeeConfig":
        defaults = cls()
        store = Coordinates.from_dict(data.get("store_location")) or defaults.store_location
        return cls(
            tax_rate=float(data.get("tax_rate", defaults.tax_rate)),
            platform_fee_paise=int(data.get("platform_fee_paise", defaults.platform_fee_paise)),
            delivery_fee_base_paise=int(data.get("delivery_fee_base_paise", defaults.delivery_fee_base_paise)),
            delivery_fee_per_km_paise=int(data.get("delivery_fee_per_km_paise", defaults.delivery_fee_per_km_paise)),
            free_delivery_threshold_paise=int(
                data.get("free_delivery_threshold_paise", defaults.free_delivery_threshold_paise)
            ),
            delivery_radius_km=float(data.get("delivery_radius_km", defaults.delivery_radius_km)),
            store_location=store,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class OfferTerms:
    """Discount terms of an offer, captured at quote/submission time"""
    code: str
    discount_type: str  # percentage | flat
    discount_value: float
    max_discount_paise: Optional[int] = None
    min_order_value_paise: int = 0
    offer_id: Optional[int] = None


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal_paise: int
    tax_paise: int
    delivery_fee_paise: int
    platform_fee_paise: int
    discount_paise: int
    grand_total_paise: int
    free_delivery_applied: bool
    within_service_radius: bool
    distance_km: Optional[float] = None
    offer_applied: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def round_half_up(value) -> int:
    """Round to the nearest integer, halves away from zero"""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_to_rupee(paise) -> int:
    """Round a paise amount to a whole rupee (still expressed in paise)"""
    return round_half_up(Decimal(str(paise)) / 100) * 100


def haversine_km(origin: Coordinates, destination: Coordinates) -> float:
    """Great-circle distance between two coordinates, in kilometres"""
    d_lat = math.radians(destination.lat - origin.lat)
    d_lng = math.radians(destination.lng - origin.lng)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(origin.lat)) * math.cos(math.radians(destination.lat)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def compute_discount(subtotal_paise: int, offer: Optional[OfferTerms]) -> int:
    """
    Raw discount for an offer, before the no-negative-total cap.

    Percentage offers round to a whole rupee and honour max_discount_paise;
    flat offers use their value verbatim (value is in rupees).
    An offer whose minimum order value is not met yields 0.
    """
    if offer is None:
        return 0
    if subtotal_paise < (offer.min_order_value_paise or 0):
        return 0

    if offer.discount_type == "percentage":
        discount = round_to_rupee(Decimal(subtotal_paise) * Decimal(str(offer.discount_value)) / 100)
        if offer.max_discount_paise is not None:
            discount = min(discount, offer.max_discount_paise)
    elif offer.discount_type == "flat":
        discount = round_half_up(Decimal(str(offer.discount_value)) * 100)
    else:
        raise ValueError(f"Unknown discount type: {offer.discount_type}")

    return max(0, discount)


def compute_delivery_fee(subtotal_paise: int, distance_km: float, fee_config: FeeConfig):
    """
    Returns (fee_paise, free_delivery_applied, within_service_radius).

    Distance exactly at the radius is still inside it; subtotal exactly at
    the threshold gets free delivery. Out-of-radius fees are 0 because the
    caller must block checkout anyway.
    """
    within_radius = distance_km <= fee_config.delivery_radius_km
    if not within_radius:
        return 0, False, False

    if subtotal_paise >= fee_config.free_delivery_threshold_paise:
        return 0, True, True

    fee = fee_config.delivery_fee_base_paise + fee_config.delivery_fee_per_km_paise * distance_km
    return round_to_rupee(fee), False, True


def compute_total(subtotal_paise: int, order_type: str,
                  fee_config: FeeConfig,
                  delivery_coordinates: Optional[Coordinates] = None,
                  offer: Optional[OfferTerms] = None,
                  include_platform_fee: bool = True) -> PriceBreakdown:
    """
    Compute the full price breakdown for a cart.

    Args:
        subtotal_paise: sum of line totals
        order_type: DineIn / Takeaway / Delivery
        fee_config: store fee configuration
        delivery_coordinates: customer location, required for Delivery
        offer: optional offer terms
        include_platform_fee: add fee_config.platform_fee_paise to the total

    Returns:
        PriceBreakdown
    """
    if subtotal_paise < 0:
        raise ValueError("Subtotal cannot be negative")

    order_type = OrderType(order_type)
    tax = round_half_up(Decimal(subtotal_paise) * Decimal(str(fee_config.tax_rate)) / 100)

    delivery_fee = 0
    free_delivery = False
    within_radius = True
    distance_km = None

    if order_type == OrderType.DELIVERY:
        if delivery_coordinates is None:
            raise ValueError("Delivery orders need customer coordinates")
        distance_km = haversine_km(fee_config.store_location, delivery_coordinates)
        delivery_fee, free_delivery, within_radius = compute_delivery_fee(subtotal_paise, distance_km, fee_config)

    platform_fee = fee_config.platform_fee_paise if include_platform_fee else 0

    discount = compute_discount(subtotal_paise, offer)
    # no negative totals
    discount = min(discount, subtotal_paise + tax + delivery_fee)

    grand_total = max(0, subtotal_paise + tax + delivery_fee + platform_fee - discount)

    return PriceBreakdown(
        subtotal_paise=subtotal_paise,
        tax_paise=tax,
        delivery_fee_paise=delivery_fee,
        platform_fee_paise=platform_fee,
        discount_paise=discount,
        grand_total_paise=grand_total,
        free_delivery_applied=free_delivery,
        within_service_radius=within_radius,
        distance_km=round(distance_km, 3) if distance_km is not None else None,
        offer_applied=discount > 0,
    )
