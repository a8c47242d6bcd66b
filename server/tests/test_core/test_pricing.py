# Fee / pricing calculator tests

import pytest

from core.pricing import (
    Coordinates, FeeConfig, OfferTerms, compute_delivery_fee, compute_discount, compute_total,
    haversine_km, round_half_up, round_to_rupee
)

STORE = Coordinates(28.6139, 77.2090)
THREE_KM = Coordinates(28.6139 + 3 / 111.195, 77.2090)
FIFTEEN_KM = Coordinates(28.6139 + 15 / 111.195, 77.2090)


def fee_config(**overrides):
    values = dict(
        tax_rate=5.0,
        platform_fee_paise=0,
        delivery_fee_base_paise=3000,
        delivery_fee_per_km_paise=500,
        free_delivery_threshold_paise=50000,
        delivery_radius_km=10.0,
        store_location=STORE,
    )
    values.update(overrides)
    return FeeConfig(**values)


class TestRounding:
    """Rounding helpers"""

    def test_round_half_up(self):
        assert round_half_up(50.5) == 51
        assert round_half_up(50.49) == 50
        assert round_half_up(2.5) == 3

    def test_round_to_rupee(self):
        assert round_to_rupee(4549) == 4500
        assert round_to_rupee(4550) == 4600
        assert round_to_rupee(4500) == 4500


class TestDistance:
    def test_haversine_three_km(self):
        assert haversine_km(STORE, THREE_KM) == pytest.approx(3.0, abs=0.01)

    def test_haversine_same_point(self):
        assert haversine_km(STORE, STORE) == 0


class TestDeliveryFee:
    """Delivery fee rules"""

    def test_fee_is_base_plus_per_km(self):
        fee, free, within = compute_delivery_fee(20000, 3.0, fee_config())
        assert fee == 4500
        assert free is False
        assert within is True

    def test_subtotal_exactly_at_threshold_is_free(self):
        fee, free, within = compute_delivery_fee(50000, 3.0, fee_config())
        assert fee == 0
        assert free is True
        assert within is True

    def test_distance_exactly_at_radius_is_within(self):
        fee, free, within = compute_delivery_fee(20000, 10.0, fee_config())
        assert within is True
        assert fee == 3000 + 500 * 10

    def test_outside_radius(self):
        fee, free, within = compute_delivery_fee(20000, 10.01, fee_config())
        assert (fee, free, within) == (0, False, False)


class TestDiscount:
    """Offer discounts"""

    def test_percentage_rounds_to_rupee(self):
        offer = OfferTerms(code="TEN", discount_type="percentage", discount_value=10)
        assert compute_discount(12345, offer) == 1200

    def test_percentage_capped_by_max_discount(self):
        offer = OfferTerms(code="TEN", discount_type="percentage", discount_value=10, max_discount_paise=5000)
        assert compute_discount(100000, offer) == 5000

    def test_flat_value_is_rupees(self):
        offer = OfferTerms(code="FLAT50", discount_type="flat", discount_value=50)
        assert compute_discount(20000, offer) == 5000

    def test_minimum_order_not_met(self):
        offer = OfferTerms(code="FLAT50", discount_type="flat", discount_value=50, min_order_value_paise=50000)
        assert compute_discount(49999, offer) == 0

    def test_unknown_discount_type(self):
        offer = OfferTerms(code="ODD", discount_type="bogo", discount_value=1)
        with pytest.raises(ValueError):
            compute_discount(20000, offer)


class TestComputeTotal:
    """compute_total"""

    def test_happy_path_delivery(self):
        """Rs 500, 3 km delivery: free delivery, tax 25, total 525"""
        breakdown = compute_total(50000, "Delivery", fee_config(), delivery_coordinates=THREE_KM)

        assert breakdown.delivery_fee_paise == 0
        assert breakdown.free_delivery_applied is True
        assert breakdown.tax_paise == 2500
        assert breakdown.grand_total_paise == 52500
        assert breakdown.within_service_radius is True
        assert breakdown.distance_km == pytest.approx(3.0, abs=0.01)

    def test_platform_fee_added(self):
        breakdown = compute_total(50000, "DineIn", fee_config(platform_fee_paise=98))
        assert breakdown.platform_fee_paise == 98
        assert breakdown.grand_total_paise == 50000 + 2500 + 98

    def test_platform_fee_can_be_excluded(self):
        breakdown = compute_total(50000, "DineIn", fee_config(platform_fee_paise=98), include_platform_fee=False)
        assert breakdown.grand_total_paise == 52500

    def test_tax_rounds_half_up(self):
        breakdown = compute_total(1010, "Takeaway", fee_config())
        assert breakdown.tax_paise == 51

    def test_non_delivery_has_no_delivery_fee(self):
        breakdown = compute_total(20000, "Takeaway", fee_config(), delivery_coordinates=THREE_KM)
        assert breakdown.delivery_fee_paise == 0
        assert breakdown.distance_km is None

    def test_paid_delivery_below_threshold(self):
        breakdown = compute_total(20000, "Delivery", fee_config(), delivery_coordinates=THREE_KM)
        assert breakdown.delivery_fee_paise == 4500
        assert breakdown.grand_total_paise == 20000 + 1000 + 4500

    def test_outside_radius_flagged(self):
        breakdown = compute_total(20000, "Delivery", fee_config(), delivery_coordinates=FIFTEEN_KM)
        assert breakdown.within_service_radius is False
        assert breakdown.delivery_fee_paise == 0

    def test_delivery_without_coordinates(self):
        with pytest.raises(ValueError):
            compute_total(20000, "Delivery", fee_config())

    def test_discount_never_makes_total_negative(self):
        offer = OfferTerms(code="HUGE", discount_type="flat", discount_value=1000)
        breakdown = compute_total(20000, "DineIn", fee_config(platform_fee_paise=98), offer=offer)

        assert breakdown.discount_paise == 20000 + 1000
        assert breakdown.grand_total_paise == 98
        assert breakdown.offer_applied is True

    def test_deterministic(self):
        offer = OfferTerms(code="TEN", discount_type="percentage", discount_value=10)
        first = compute_total(43210, "Delivery", fee_config(), delivery_coordinates=THREE_KM, offer=offer)
        second = compute_total(43210, "Delivery", fee_config(), delivery_coordinates=THREE_KM, offer=offer)
        assert first == second

    def test_unknown_order_type(self):
        with pytest.raises(ValueError):
            compute_total(20000, "Drone", fee_config())


class TestFeeConfig:
    def test_from_dict_uses_defaults(self):
        config = FeeConfig.from_dict({"tax_rate": 12})
        assert config.tax_rate == 12.0
        assert config.platform_fee_paise == 98
        assert config.store_location == Coordinates(28.6139, 77.2090)

    def test_to_dict_round_trips_store_location(self):
        config = fee_config(store_location=Coordinates(19.0, 72.8))
        assert FeeConfig.from_dict(config.to_dict()) == config
