# Core order operation tests

import pytest

from core.errors import InvalidTransition, OrderNotFound, StateConflict, ValidationError


class TestSubmitOrder:
    """Order submission"""

    def test_submit_cash_order(self, core_ops, draft_factory):
        order = core_ops.submit_order(draft_factory())

        assert len(order["order_id"]) == 32
        assert order["status"] == "Pending"
        assert order["payment_status"] == "Unpaid"
        assert order["payment_method"] == "Cash"
        assert order["is_accepted"] is False
        assert order["subtotal_paise"] == 50000
        assert order["tax_paise"] == 2500
        assert order["platform_fee_paise"] == 98
        assert order["total_amount_paise"] == 52598
        assert order["version"] == 1
        assert "52598" not in order["message"]
        assert "525.98" in order["message"]

    def test_happy_path_delivery_total(self, core_ops, support_ops, draft_factory, address_factory):
        """Rs 500 delivered 3 km away: free delivery, total Rs 525 without platform fee"""
        support_ops.update_fee_config({"platform_fee_paise": 0})

        order = core_ops.submit_order(draft_factory(order_type="Delivery", delivery_address=address_factory()))

        assert order["delivery_fee_paise"] == 0
        assert order["tax_paise"] == 2500
        assert order["total_amount_paise"] == 52500
        assert order["delivery_address"]["pincode"] == "110001"

    def test_empty_cart(self, core_ops, draft_factory):
        with pytest.raises(ValidationError):
            core_ops.submit_order(draft_factory(items=[]))

    def test_bad_quantity(self, core_ops, draft_factory):
        items = [{"name": "Bagel", "quantity": 0, "line_total_paise": 9000}]
        with pytest.raises(ValidationError):
            core_ops.submit_order(draft_factory(items=items))

    def test_delivery_requires_address(self, core_ops, draft_factory):
        with pytest.raises(ValidationError) as exc_info:
            core_ops.submit_order(draft_factory(order_type="Delivery"))
        assert exc_info.value.details["field"] == "delivery_address"

    def test_delivery_outside_radius(self, core_ops, draft_factory, address_factory, far_location):
        with pytest.raises(ValidationError) as exc_info:
            core_ops.submit_order(draft_factory(order_type="Delivery",
                                                delivery_address=address_factory(far_location)))
        assert exc_info.value.details["distance_km"] > 10

    def test_invalid_phone(self, core_ops, draft_factory):
        with pytest.raises(ValidationError):
            core_ops.submit_order(draft_factory(customer={"name": "Asha", "phone": "12345"}))

    def test_inconsistent_expected_total(self, core_ops, draft_factory):
        with pytest.raises(ValidationError) as exc_info:
            core_ops.submit_order(draft_factory(expected_total_paise=50000))
        assert exc_info.value.details["computed"] == 52598

    def test_matching_expected_total(self, core_ops, draft_factory):
        order = core_ops.submit_order(draft_factory(expected_total_paise=52598))
        assert order["total_amount_paise"] == 52598

    def test_unknown_offer_code(self, core_ops, draft_factory):
        with pytest.raises(ValidationError):
            core_ops.submit_order(draft_factory(offer_code="NOPE"))

    def test_offer_snapshot_stored(self, core_ops, support_ops, draft_factory):
        offer_id = support_ops.insert_offer("flat50", "Rs 50 off", "flat", 50)

        order = core_ops.submit_order(draft_factory(offer_code="FLAT50"))

        assert order["discount_paise"] == 5000
        assert order["total_amount_paise"] == 52598 - 5000
        assert order["applied_offer"] == {
            "offer_id": offer_id,
            "code": "FLAT50",
            "discount_type": "flat",
            "discount_value": 50,
            "discount_paise": 5000,
        }

    def test_offer_snapshot_survives_offer_edit(self, core_ops, support_ops, draft_factory):
        support_ops.insert_offer("FLAT50", "Rs 50 off", "flat", 50)
        order = core_ops.submit_order(draft_factory(offer_code="FLAT50"))

        support_ops.db.execute_single("UPDATE offers SET discount_value = 200 WHERE code = 'FLAT50'")

        stored = core_ops.query.get_order(order["order_id"])
        assert stored["discount_paise"] == 5000
        assert stored["applied_offer"]["discount_value"] == 50

    def test_offer_minimum_not_met(self, core_ops, support_ops, draft_factory):
        support_ops.insert_offer("BIG", "Big spender", "flat", 100, min_order_value_paise=100000)
        with pytest.raises(ValidationError):
            core_ops.submit_order(draft_factory(offer_code="BIG"))

    def test_repeat_customer_reuses_record(self, core_ops, draft_factory):
        first = core_ops.submit_order(draft_factory())
        second = core_ops.submit_order(draft_factory(customer={"name": "Asha V", "phone": "+91 98765 01234"}))

        assert first["customer"]["customer_id"] == second["customer"]["customer_id"]
        assert second["customer"]["name"] == "Asha V"
        assert second["customer"]["phone"] == "9876501234"

    def test_totals_not_recomputed_after_fee_change(self, core_ops, support_ops, cash_order):
        support_ops.update_fee_config({"tax_rate": 18})
        stored = core_ops.query.get_order(cash_order["order_id"])
        assert stored["tax_paise"] == 2500


class TestQuote:
    def test_quote_reports_invalid_offer(self, core_ops, draft_factory):
        quote = core_ops.quote_order(draft_factory()["items"], "DineIn", offer_code="NOPE")

        assert quote["grand_total_paise"] == 52598
        assert quote["offer_applied"] is False
        assert "not valid" in quote["offer_message"]

    def test_quote_delivery_needs_location(self, core_ops, draft_factory):
        with pytest.raises(ValidationError):
            core_ops.quote_order(draft_factory()["items"], "Delivery")

    def test_quote_with_percentage_offer(self, core_ops, support_ops, draft_factory, near_location):
        support_ops.insert_offer("TEN", "10% off", "percentage", 10, max_discount_paise=3000)

        quote = core_ops.quote_order(draft_factory()["items"], "Delivery", near_location, "ten")

        assert quote["discount_paise"] == 3000
        assert quote["offer_code"] == "TEN"
        assert quote["free_delivery_applied"] is True


class TestAcceptAndAdvance:
    """Store-driven transitions"""

    def test_accept_cash_order(self, core_ops, cash_order):
        order = core_ops.accept_order(cash_order["order_id"])

        assert order["is_accepted"] is True
        assert order["status"] == "Pending"
        assert order["accepted_at"] is not None
        assert order["version"] == 2

    def test_accept_is_idempotent_in_effect(self, core_ops, cash_order):
        first = core_ops.accept_order(cash_order["order_id"])

        with pytest.raises(StateConflict) as exc_info:
            core_ops.accept_order(cash_order["order_id"])
        assert exc_info.value.reason == StateConflict.ALREADY_ACCEPTED

        after = core_ops.query.get_order(cash_order["order_id"])
        assert after["is_accepted"] is True
        assert after["version"] == first["version"]

    def test_gateway_order_needs_payment_before_accept(self, core_ops, gateway_order):
        with pytest.raises(StateConflict) as exc_info:
            core_ops.accept_order(gateway_order["order_id"])
        assert exc_info.value.reason == StateConflict.PAYMENT_REQUIRED

        core_ops.record_payment_status(gateway_order["order_id"], "Paid", "webhook", reference="pay_1")
        assert core_ops.accept_order(gateway_order["order_id"])["is_accepted"] is True

    def test_full_lifecycle(self, core_ops, cash_order):
        order_id = cash_order["order_id"]
        core_ops.accept_order(order_id)

        for status in ("Preparing", "Ready", "Delivered"):
            assert core_ops.update_order_status(order_id, status)["status"] == status

        with pytest.raises(StateConflict):
            core_ops.update_order_status(order_id, "Cancelled")
        assert core_ops.query.get_order(order_id)["status"] == "Delivered"

    def test_cannot_skip_steps(self, core_ops, cash_order):
        core_ops.accept_order(cash_order["order_id"])

        with pytest.raises(InvalidTransition):
            core_ops.update_order_status(cash_order["order_id"], "Ready")
        assert core_ops.query.get_order(cash_order["order_id"])["status"] == "Pending"

    def test_preparing_requires_accept(self, core_ops, cash_order):
        with pytest.raises(InvalidTransition):
            core_ops.update_order_status(cash_order["order_id"], "Preparing")

    def test_unknown_order(self, core_ops):
        with pytest.raises(OrderNotFound):
            core_ops.accept_order("missing")


class TestCancelOrder:
    """Customer cancellation"""

    def test_cancel_within_window(self, core_ops, clock, cash_order):
        clock.advance(10)
        order = core_ops.cancel_order(cash_order["order_id"], reason="Changed my mind")

        assert order["status"] == "Cancelled"
        assert order["cancel_reason"] == "Changed my mind"
        assert order["is_accepted"] is False

    def test_cancel_exactly_at_boundary(self, core_ops, clock, cash_order):
        clock.advance(30)
        assert core_ops.cancel_order(cash_order["order_id"])["status"] == "Cancelled"

    def test_cancel_after_window(self, core_ops, clock, cash_order):
        clock.advance(30.000001)
        with pytest.raises(StateConflict) as exc_info:
            core_ops.cancel_order(cash_order["order_id"])
        assert exc_info.value.reason == StateConflict.WINDOW_EXPIRED
        assert core_ops.query.get_order(cash_order["order_id"])["status"] == "Pending"

    def test_cancel_after_accept(self, core_ops, clock, cash_order):
        core_ops.accept_order(cash_order["order_id"])
        clock.advance(5)
        with pytest.raises(StateConflict) as exc_info:
            core_ops.cancel_order(cash_order["order_id"])
        assert exc_info.value.reason == StateConflict.ALREADY_ACCEPTED

    def test_cancel_twice(self, core_ops, cash_order):
        core_ops.cancel_order(cash_order["order_id"])
        with pytest.raises(InvalidTransition):
            core_ops.cancel_order(cash_order["order_id"])

    def test_cancelled_order_cannot_be_accepted(self, core_ops, cash_order):
        core_ops.cancel_order(cash_order["order_id"])
        with pytest.raises(StateConflict) as exc_info:
            core_ops.accept_order(cash_order["order_id"])
        assert exc_info.value.reason == StateConflict.NOT_PENDING

    def test_status_update_to_cancelled_uses_window(self, core_ops, clock, cash_order):
        clock.advance(31)
        with pytest.raises(StateConflict) as exc_info:
            core_ops.update_order_status(cash_order["order_id"], "Cancelled", actor="owner")
        assert exc_info.value.reason == StateConflict.WINDOW_EXPIRED


class TestPayments:
    """Payment axis"""

    def test_attach_gateway_order(self, gateway_order):
        assert gateway_order["payment_status"] == "Initiated"
        assert gateway_order["gateway_order_id"] == "order_test_0001"

    def test_record_paid(self, core_ops, gateway_order):
        order = core_ops.record_payment_status(gateway_order["order_id"], "Paid", "webhook", reference="pay_1")

        assert order["changed"] is True
        assert order["payment_status"] == "Paid"
        assert order["gateway_payment_id"] == "pay_1"
        assert order["payment_verified_at"] is not None

    def test_duplicate_paid_is_noop(self, core_ops, gateway_order):
        first = core_ops.record_payment_status(gateway_order["order_id"], "Paid", "webhook", reference="pay_1")
        second = core_ops.record_payment_status(gateway_order["order_id"], "Paid", "webhook", reference="pay_1")

        assert second["changed"] is False
        assert second["version"] == first["version"]
        assert len(core_ops.query.list_payment_events(gateway_order["order_id"])) == 2

    def test_paid_never_downgraded(self, core_ops, gateway_order):
        core_ops.record_payment_status(gateway_order["order_id"], "Paid", "webhook")
        with pytest.raises(StateConflict) as exc_info:
            core_ops.record_payment_status(gateway_order["order_id"], "Failed", "webhook")
        assert exc_info.value.reason == StateConflict.ALREADY_PAID

    def test_late_failure_by_gateway_order_ignored(self, core_ops, gateway_order):
        core_ops.record_gateway_payment("order_test_0001", "Paid", "webhook", "pay_1")
        result = core_ops.record_gateway_payment("order_test_0001", "Failed", "webhook", "pay_1")

        assert result["changed"] is False
        assert result["payment_status"] == "Paid"

    def test_unknown_gateway_order(self, core_ops):
        assert core_ops.record_gateway_payment("order_unknown", "Paid", "webhook") is None

    def test_earlier_gateway_orders_stay_resolvable(self, core_ops, gateway_order):
        order_id = gateway_order["order_id"]
        core_ops.attach_gateway_order(order_id, "order_test_0002")

        assert core_ops.query.list_gateway_orders(order_id) == ["order_test_0001", "order_test_0002"]
        assert core_ops.query.find_order_id_by_gateway_order("order_test_0001") == order_id

        order = core_ops.record_gateway_payment("order_test_0001", "Paid", "webhook", "pay_1")
        assert order["payment_status"] == "Paid"
        assert order["gateway_payment_id"] == "pay_1"

    def test_failure_of_superseded_gateway_order_ignored(self, core_ops, gateway_order):
        core_ops.attach_gateway_order(gateway_order["order_id"], "order_test_0002")

        result = core_ops.record_gateway_payment("order_test_0001", "Failed", "webhook", "pay_1")

        assert result["changed"] is False
        assert result["payment_status"] == "Initiated"

    def test_rejected_report_leaves_payment_status(self, core_ops, gateway_order):
        core_ops.record_payment_rejection(gateway_order["order_id"], "verify", "pay_1", "signature mismatch")

        order = core_ops.query.get_order(gateway_order["order_id"])
        assert order["payment_status"] == "Initiated"
        assert order["version"] == gateway_order["version"]
        event = core_ops.query.list_payment_events(gateway_order["order_id"])[-1]
        assert (event["source"], event["to_status"], event["note"]) == ("verify", "Initiated", "signature mismatch")

    def test_failed_then_paid(self, core_ops, gateway_order):
        core_ops.record_payment_status(gateway_order["order_id"], "Failed", "verify")
        order = core_ops.record_payment_status(gateway_order["order_id"], "Paid", "webhook")
        assert order["payment_status"] == "Paid"

    def test_manual_verify_cash(self, core_ops, cash_order):
        order = core_ops.manual_verify_payment(cash_order["order_id"], note="Cash at counter", verified_by="owner")

        assert order["payment_status"] == "Paid"
        assert "owner" in order["payment_note"]
        events = core_ops.query.list_payment_events(cash_order["order_id"])
        assert events[-1]["source"] == "manual"

    def test_manual_verify_twice(self, core_ops, cash_order):
        core_ops.manual_verify_payment(cash_order["order_id"])
        with pytest.raises(StateConflict) as exc_info:
            core_ops.manual_verify_payment(cash_order["order_id"])
        assert exc_info.value.reason == StateConflict.ALREADY_PAID

    def test_manual_verify_resolves_unconfirmed_gateway_payment(self, core_ops, gateway_order):
        order = core_ops.manual_verify_payment(gateway_order["order_id"], note="Seen in gateway dashboard")
        assert order["payment_status"] == "Paid"

    def test_payment_events_recorded_in_order(self, core_ops, gateway_order):
        core_ops.record_payment_status(gateway_order["order_id"], "Paid", "verify", reference="pay_9")
        events = core_ops.query.list_payment_events(gateway_order["order_id"])

        assert [(e["from_status"], e["to_status"]) for e in events] == [
            ("Unpaid", "Initiated"),
            ("Initiated", "Paid"),
        ]


class TestPaymentScreenshot:
    """Manual UPI proof"""

    def test_upload_and_verify(self, core_ops, cash_order):
        order_id = cash_order["order_id"]
        uploaded = core_ops.upload_payment_screenshot(order_id, "https://cdn.example.com/proof.png")

        assert uploaded["payment_status"] == "Initiated"
        assert uploaded["payment_screenshot"]["verified"] is False

        verified = core_ops.verify_payment_screenshot(order_id, True, verified_by="owner")
        assert verified["payment_status"] == "Paid"
        assert verified["payment_screenshot"]["verified"] is True
        assert verified["payment_screenshot"]["verified_by"] == "owner"

    def test_reject_screenshot_keeps_payment_open(self, core_ops, cash_order):
        core_ops.upload_payment_screenshot(cash_order["order_id"], "https://cdn.example.com/proof.png")
        order = core_ops.verify_payment_screenshot(cash_order["order_id"], False)

        assert order["payment_status"] == "Initiated"
        assert order["payment_screenshot"]["verified"] is False
        assert order["payment_screenshot"]["verified_at"] is not None

    def test_invalid_url(self, core_ops, cash_order):
        with pytest.raises(ValidationError):
            core_ops.upload_payment_screenshot(cash_order["order_id"], "not-a-url")

    def test_not_for_gateway_orders(self, core_ops, gateway_order):
        with pytest.raises(ValidationError):
            core_ops.upload_payment_screenshot(gateway_order["order_id"], "https://cdn.example.com/proof.png")

    def test_verify_without_screenshot(self, core_ops, cash_order):
        with pytest.raises(ValidationError):
            core_ops.verify_payment_screenshot(cash_order["order_id"], True)


class TestVersioning:
    def test_stale_version_rejected(self, core_ops, cash_order):
        """A write carrying an old version token loses"""
        order_id = cash_order["order_id"]
        core_ops.accept_order(order_id)

        with pytest.raises(StateConflict) as exc_info:
            core_ops.db.execute_transaction([
                lambda: core_ops._apply_update(order_id, 1, {"status": "Cancelled"})
            ])
        assert exc_info.value.reason == StateConflict.CONCURRENT_UPDATE
        assert core_ops.query.get_order(order_id)["status"] == "Pending"
