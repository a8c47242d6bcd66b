# Core order operations
# Order submission and every state-machine mutation. Each mutation reads the
# row, runs the pure guard from core.state_machine and writes with a
# version-checked UPDATE, all inside one BEGIN IMMEDIATE transaction.

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from core.errors import StateConflict, ValidationError
from core.pricing import Coordinates, compute_total
from core.state_machine import (
    CANCELLATION_WINDOW_SECONDS, OrderSnapshot, OrderStatus, OrderType, PaymentMethod, PaymentStatus,
    check_accept, check_advance, check_cancel, check_payment_update
)
from utils.response import format_amount
from utils.validators import validate_coordinates, validate_string_length, validate_url
from .manager import DatabaseManager
from .query_operations import QueryOperations, order_to_dict
from .supporting_operations import SupportingOperations, to_timestamp, utc_now

logger = logging.getLogger(__name__)


class CoreOperations:
    """
    Core order lifecycle operations
    """
    def __init__(self, db_manager: DatabaseManager,
                 clock: Optional[Callable[[], datetime]] = None,
                 cancellation_window_seconds: float = CANCELLATION_WINDOW_SECONDS):
        self.db = db_manager
        self.clock = clock or utc_now
        self.cancellation_window_seconds = cancellation_window_seconds
        self.query = QueryOperations(db_manager, clock=self.clock)
        self.support = SupportingOperations(db_manager, clock=self.clock)

    # ===== internal helpers =====

    def _load_snapshot(self, order_id: str):
        row = self.query.fetch_order_row(order_id)
        return row, OrderSnapshot.from_record(row)

    def _apply_update(self, order_id: str, version: int, fields: Dict[str, Any]):
        """
        Conditional write guarded by the version token

        Raises:
            StateConflict: the row changed since it was read
        """
        fields = dict(fields)
        fields['updated_at'] = to_timestamp(self.clock())
        assignments = ", ".join(f"{name} = ?" for name in fields)

        cursor = self.db.conn.execute(
            f"UPDATE orders SET {assignments}, version = version + 1 WHERE order_id = ? AND version = ?",
            list(fields.values()) + [order_id, version]
        )
        if cursor.rowcount != 1:
            raise StateConflict(
                f"Order {order_id} was modified concurrently",
                StateConflict.CONCURRENT_UPDATE
            )

    def _record_payment_event(self, order_id: str, source: str, from_status: str, to_status: str,
                              reference: Optional[str] = None, note: Optional[str] = None):
        self.db.conn.execute("""
            INSERT INTO payment_events (order_id, source, from_status, to_status, reference, note, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, [order_id, source, from_status, to_status, reference, note, to_timestamp(self.clock())])

    def _current(self, order_id: str) -> Dict[str, Any]:
        return order_to_dict(self.query.fetch_order_row(order_id))

    # ===== submission =====

    def _validate_items(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not items:
            raise ValidationError("Cart is empty", {"field": "items"})

        normalized = []
        for index, item in enumerate(items):
            name = item.get('name')
            quantity = item.get('quantity')
            line_total = item.get('line_total_paise')

            if not validate_string_length(name or '', 1, 200):
                raise ValidationError(f"Item {index + 1} has no name", {"field": f"items[{index}].name"})
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise ValidationError(f"Item '{name}' quantity must be at least 1",
                                      {"field": f"items[{index}].quantity"})
            if not isinstance(line_total, int) or isinstance(line_total, bool) or line_total < 0:
                raise ValidationError(f"Item '{name}' has an invalid line total",
                                      {"field": f"items[{index}].line_total_paise"})

            normalized.append({
                'product_ref': item.get('product_ref'),
                'name': name,
                'quantity': quantity,
                'size': item.get('size'),
                'addons': list(item.get('addons') or []),
                'line_total_paise': line_total,
            })
        return normalized

    def _validate_delivery_address(self, order_type: OrderType,
                                   address: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if order_type != OrderType.DELIVERY:
            return None

        if not address or not validate_string_length(address.get('address') or '', 1):
            raise ValidationError("Delivery address is required", {"field": "delivery_address"})

        coordinates = address.get('coordinates') or {}
        if not validate_coordinates(coordinates.get('lat'), coordinates.get('lng')):
            raise ValidationError("Delivery location is required", {"field": "delivery_address.coordinates"})

        return {
            'address': address['address'].strip(),
            'landmark': address.get('landmark'),
            'pincode': address.get('pincode'),
            'coordinates': {'lat': float(coordinates['lat']), 'lng': float(coordinates['lng'])},
        }

    def quote_order(self, items: List[Dict[str, Any]], order_type: str,
                    delivery_coordinates: Optional[Dict[str, Any]] = None,
                    offer_code: Optional[str] = None) -> Dict[str, Any]:
        """
        Cart preview: price breakdown with the stored fee config.
        An unknown or inapplicable offer code is reported, not raised.
        """
        try:
            order_type = OrderType(order_type)
        except ValueError:
            raise ValidationError(f"Unknown order type: {order_type}", {"field": "order_type"})

        items = self._validate_items(items)
        coordinates = Coordinates.from_dict(delivery_coordinates)
        if order_type == OrderType.DELIVERY and coordinates is None:
            raise ValidationError("Delivery location is required", {"field": "delivery_coordinates"})

        offer = self.support.get_offer_terms(offer_code) if offer_code else None
        breakdown = compute_total(sum(item['line_total_paise'] for item in items), order_type.value,
                                  self.support.get_fee_config(), delivery_coordinates=coordinates, offer=offer)

        quote = breakdown.to_dict()
        quote['order_type'] = order_type.value
        quote['offer_code'] = offer.code if offer else None
        if offer_code and offer is None:
            quote['offer_message'] = f"Offer code {offer_code} is not valid"
        elif offer is not None and not breakdown.offer_applied:
            quote['offer_message'] = (f"Add items worth {format_amount(offer.min_order_value_paise)} "
                                      f"to use {offer.code}")
        else:
            quote['offer_message'] = None
        return quote

    def submit_order(self, draft: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an order record (status Pending, payment Unpaid)

        Totals are computed here once from the stored fee config and the
        offer snapshot, and never recomputed afterwards.

        Args:
            draft: {customer{name, phone}, items[], order_type, delivery_address,
                    payment_method, offer_code, customer_note, expected_total_paise}

        Returns:
            the created order

        Raises:
            ValidationError: empty cart, missing address, outside the delivery
                radius, unusable offer, inconsistent totals
        """
        try:
            order_type = OrderType(draft.get('order_type') or OrderType.DINE_IN.value)
        except ValueError:
            raise ValidationError(f"Unknown order type: {draft.get('order_type')}", {"field": "order_type"})
        try:
            payment_method = PaymentMethod(draft.get('payment_method') or PaymentMethod.CASH.value)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {draft.get('payment_method')}",
                                  {"field": "payment_method"})

        items = self._validate_items(draft.get('items') or [])
        delivery_address = self._validate_delivery_address(order_type, draft.get('delivery_address'))
        customer_info = draft.get('customer') or {}

        def submit_operation():
            customer = self.support.get_or_create_customer(customer_info.get('name') or '',
                                                           customer_info.get('phone') or '')
            fee_config = self.support.get_fee_config()

            offer = None
            offer_code = draft.get('offer_code')
            if offer_code:
                offer = self.support.get_offer_terms(offer_code)
                if offer is None:
                    raise ValidationError(f"Offer code {offer_code} is not valid", {"field": "offer_code"})

            subtotal = sum(item['line_total_paise'] for item in items)
            breakdown = compute_total(
                subtotal, order_type.value, fee_config,
                delivery_coordinates=Coordinates.from_dict(delivery_address['coordinates']) if delivery_address else None,
                offer=offer,
            )

            if not breakdown.within_service_radius:
                raise ValidationError(
                    f"Delivery location is {breakdown.distance_km} km away, outside the "
                    f"{fee_config.delivery_radius_km} km service radius",
                    {"field": "delivery_address.coordinates", "distance_km": breakdown.distance_km}
                )
            if offer is not None and not breakdown.offer_applied:
                raise ValidationError(
                    f"Offer {offer.code} needs a minimum order of {format_amount(offer.min_order_value_paise)}",
                    {"field": "offer_code"}
                )

            expected_total = draft.get('expected_total_paise')
            if expected_total is not None and expected_total != breakdown.grand_total_paise:
                raise ValidationError(
                    "Order total has changed, please review your cart",
                    {"field": "expected_total_paise", "expected": expected_total,
                     "computed": breakdown.grand_total_paise}
                )

            applied_offer = None
            if offer is not None:
                applied_offer = {
                    'offer_id': offer.offer_id,
                    'code': offer.code,
                    'discount_type': offer.discount_type,
                    'discount_value': offer.discount_value,
                    'discount_paise': breakdown.discount_paise,
                }

            order_id = uuid.uuid4().hex
            now = to_timestamp(self.clock())

            self.db.conn.execute("""
                INSERT INTO orders (order_id, customer_id, customer_name, customer_phone, items, order_type,
                                    delivery_address, customer_note, payment_method, payment_status, status,
                                    is_accepted, subtotal_paise, tax_paise, delivery_fee_paise, platform_fee_paise,
                                    discount_paise, total_amount_paise, applied_offer, version, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
            """, [order_id, customer['customer_id'], customer['name'], customer['phone'], json.dumps(items),
                  order_type.value, json.dumps(delivery_address) if delivery_address else None,
                  draft.get('customer_note'), payment_method.value, PaymentStatus.UNPAID.value,
                  OrderStatus.PENDING.value, breakdown.subtotal_paise, breakdown.tax_paise,
                  breakdown.delivery_fee_paise, breakdown.platform_fee_paise, breakdown.discount_paise,
                  breakdown.grand_total_paise, json.dumps(applied_offer) if applied_offer else None, now, now])

            logger.info(f"Order {order_id} submitted: {order_type.value}/{payment_method.value}, "
                        f"total {format_amount(breakdown.grand_total_paise)}")

            result = self._current(order_id)
            result['message'] = f"Order placed, total {format_amount(breakdown.grand_total_paise)}"
            return result

        return self.db.execute_transaction([submit_operation])[0]

    # ===== payment axis =====

    def record_payment_status(self, order_id: str, payment_status: str, source: str,
                              reference: Optional[str] = None, note: Optional[str] = None,
                              gateway_order_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Move the payment axis (Initiated / Paid / Failed)

        Duplicate terminal reports (e.g. a repeated webhook) are no-ops and
        return the order with changed=False. Paid is never downgraded.

        Args:
            order_id: order id
            payment_status: target status
            source: checkout / verify / webhook / manual / screenshot / gateway
            reference: gateway payment id or similar
            note: free text kept in the audit trail
            gateway_order_id: stored when a new gateway order is opened

        Raises:
            StateConflict: illegal payment transition
        """
        def payment_operation():
            row, snapshot = self._load_snapshot(order_id)
            target = check_payment_update(snapshot, payment_status)

            if target is None:
                result = order_to_dict(row)
                result['changed'] = False
                return result

            now = to_timestamp(self.clock())
            fields: Dict[str, Any] = {'payment_status': target.value}
            if target == PaymentStatus.PAID:
                fields['payment_verified_at'] = now
            if reference and source in ('verify', 'webhook', 'gateway'):
                fields['gateway_payment_id'] = reference
            if gateway_order_id:
                fields['gateway_order_id'] = gateway_order_id

            self._apply_update(order_id, row['version'], fields)
            if gateway_order_id:
                self.db.conn.execute(
                    "INSERT OR IGNORE INTO gateway_orders (gateway_order_id, order_id, created_at) VALUES (?, ?, ?)",
                    [gateway_order_id, order_id, now]
                )
            self._record_payment_event(order_id, source, snapshot.payment_status.value, target.value,
                                       reference or gateway_order_id, note)

            if snapshot.status == OrderStatus.CANCELLED and target == PaymentStatus.PAID:
                logger.warning(f"Payment confirmed for cancelled order {order_id}, refund needed")

            logger.info(f"Order {order_id} payment {snapshot.payment_status.value} -> {target.value} ({source})")
            result = self._current(order_id)
            result['changed'] = True
            return result

        return self.db.execute_transaction([payment_operation])[0]

    def record_payment_rejection(self, order_id: str, source: str, reference: Optional[str] = None,
                                 note: Optional[str] = None):
        """Audit a report that could not be trusted; the payment axis is left as it is"""
        def rejection_operation():
            row = self.query.fetch_order_row(order_id)
            status = row['payment_status']
            self._record_payment_event(order_id, source, status, status, reference, note)
            logger.warning(f"Order {order_id} {source} report rejected: {note}")

        self.db.execute_transaction([rejection_operation])

    def attach_gateway_order(self, order_id: str, gateway_order_id: str) -> Dict[str, Any]:
        """Gateway order opened for this record: payment becomes Initiated"""
        return self.record_payment_status(order_id, PaymentStatus.INITIATED.value, 'checkout',
                                          gateway_order_id=gateway_order_id)

    def record_gateway_payment(self, gateway_order_id: str, payment_status: str, source: str,
                               payment_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Payment update addressed by gateway order id (verify call / webhook)

        Any gateway order the record ever opened resolves, so a capture on
        an attempt that was later retried still settles the order. A failure
        on a superseded attempt leaves the current attempt alone.

        Returns:
            updated order, or None when no order carries that gateway id
        """
        order_id = self.query.find_order_id_by_gateway_order(gateway_order_id)
        if order_id is None:
            logger.warning(f"No order for gateway order {gateway_order_id}")
            return None

        if PaymentStatus(payment_status) == PaymentStatus.FAILED:
            result = self._current(order_id)
            if result['gateway_order_id'] != gateway_order_id:
                logger.info(f"Ignoring failure of superseded gateway order {gateway_order_id} for order {order_id}")
                result['changed'] = False
                return result

        try:
            return self.record_payment_status(order_id, payment_status, source, reference=payment_id)
        except StateConflict as e:
            if e.reason == StateConflict.ALREADY_PAID:
                # late failure report after a capture
                logger.info(f"Ignoring {payment_status} for already paid order {order_id}")
                result = self._current(order_id)
                result['changed'] = False
                return result
            raise

    def manual_verify_payment(self, order_id: str, note: Optional[str] = None,
                              verified_by: str = 'admin') -> Dict[str, Any]:
        """
        Operator confirms a cash / manual UPI / unreconciled gateway payment

        Raises:
            StateConflict(alreadyPaid): payment already confirmed
        """
        def verify_operation():
            row, snapshot = self._load_snapshot(order_id)
            if snapshot.payment_status == PaymentStatus.PAID:
                raise StateConflict(f"Payment for order {order_id} is already confirmed",
                                    StateConflict.ALREADY_PAID,
                                    {"payment_status": snapshot.payment_status.value})

            now = to_timestamp(self.clock())
            payment_note = f"Verified by {verified_by}" + (f": {note}" if note else "")
            self._apply_update(order_id, row['version'], {
                'payment_status': PaymentStatus.PAID.value,
                'payment_verified_at': now,
                'payment_note': payment_note,
            })
            self._record_payment_event(order_id, 'manual', snapshot.payment_status.value,
                                       PaymentStatus.PAID.value, note=payment_note)

            logger.info(f"Order {order_id} payment manually verified by {verified_by}")
            result = self._current(order_id)
            result['message'] = "Payment manually verified"
            return result

        return self.db.execute_transaction([verify_operation])[0]

    def upload_payment_screenshot(self, order_id: str, screenshot_url: str) -> Dict[str, Any]:
        """
        Customer attaches a manual UPI payment screenshot; payment becomes Initiated

        Raises:
            ValidationError: bad URL, or the order pays through the gateway
            StateConflict: payment already confirmed
        """
        if not validate_url(screenshot_url):
            raise ValidationError("Screenshot URL is required", {"field": "screenshot_url"})

        def upload_operation():
            row, snapshot = self._load_snapshot(order_id)
            if snapshot.payment_method != PaymentMethod.CASH:
                raise ValidationError("Screenshots are only used for manual UPI payments",
                                      {"field": "payment_method"})
            target = check_payment_update(snapshot, PaymentStatus.INITIATED.value)

            screenshot = {
                'url': screenshot_url,
                'uploaded_at': to_timestamp(self.clock()),
                'verified': False,
                'verified_at': None,
                'verified_by': None,
            }
            self._apply_update(order_id, row['version'], {
                'payment_screenshot': json.dumps(screenshot),
                'payment_status': target.value,
            })
            self._record_payment_event(order_id, 'screenshot', snapshot.payment_status.value, target.value,
                                       note=screenshot_url)

            result = self._current(order_id)
            result['message'] = "Payment screenshot uploaded"
            return result

        return self.db.execute_transaction([upload_operation])[0]

    def verify_payment_screenshot(self, order_id: str, verified: bool,
                                  verified_by: str = 'admin') -> Dict[str, Any]:
        """
        Operator reviews the screenshot. verified=True confirms the payment;
        False only records the review.
        """
        def review_operation():
            row, snapshot = self._load_snapshot(order_id)
            screenshot = json.loads(row['payment_screenshot']) if row['payment_screenshot'] else None
            if screenshot is None:
                raise ValidationError(f"Order {order_id} has no payment screenshot")

            now = to_timestamp(self.clock())
            screenshot.update({'verified': bool(verified), 'verified_at': now, 'verified_by': verified_by})
            fields: Dict[str, Any] = {'payment_screenshot': json.dumps(screenshot)}

            if verified and snapshot.payment_status != PaymentStatus.PAID:
                fields['payment_status'] = PaymentStatus.PAID.value
                fields['payment_verified_at'] = now
                self._record_payment_event(order_id, 'screenshot', snapshot.payment_status.value,
                                           PaymentStatus.PAID.value, note=f"Screenshot verified by {verified_by}")

            self._apply_update(order_id, row['version'], fields)

            result = self._current(order_id)
            result['message'] = "Payment verified" if verified else "Payment marked as unverified"
            return result

        return self.db.execute_transaction([review_operation])[0]

    # ===== fulfillment axis =====

    def accept_order(self, order_id: str, accepted_by: str = 'admin') -> Dict[str, Any]:
        """
        Store accepts a Pending order (isAccepted flips once)

        Raises:
            StateConflict: already accepted, not pending, payment not confirmed,
                or lost a race against a concurrent cancel
        """
        def accept_operation():
            row, snapshot = self._load_snapshot(order_id)
            try:
                check_accept(snapshot)
            except StateConflict as e:
                logger.warning(f"Accept rejected for order {order_id}: {e.reason}")
                raise

            now = to_timestamp(self.clock())
            self._apply_update(order_id, row['version'], {'is_accepted': 1, 'accepted_at': now})

            logger.info(f"Order {order_id} accepted by {accepted_by}")
            result = self._current(order_id)
            result['message'] = "Order accepted"
            return result

        return self.db.execute_transaction([accept_operation])[0]

    def update_order_status(self, order_id: str, new_status: str, actor: str = 'admin') -> Dict[str, Any]:
        """
        Advance Pending -> Preparing -> Ready -> Delivered, one step at a time.
        A Cancelled target goes through the cancellation guards.

        Raises:
            InvalidTransition: any other move
        """
        if new_status == OrderStatus.CANCELLED.value:
            return self.cancel_order(order_id, reason=f"Cancelled by {actor}", actor=actor)

        def advance_operation():
            row, snapshot = self._load_snapshot(order_id)
            try:
                target = check_advance(snapshot, new_status)
            except StateConflict as e:
                logger.warning(f"Transition rejected for order {order_id}: {e.message}")
                raise

            self._apply_update(order_id, row['version'], {'status': target.value})

            logger.info(f"Order {order_id} {snapshot.status.value} -> {target.value} by {actor}")
            result = self._current(order_id)
            result['message'] = f"Order is now {target.value}"
            return result

        return self.db.execute_transaction([advance_operation])[0]

    def cancel_order(self, order_id: str, reason: Optional[str] = None, actor: str = 'customer') -> Dict[str, Any]:
        """
        Cancel a Pending, unaccepted order within the cancellation window.
        The window is evaluated against the server clock, never the client's.

        Raises:
            StateConflict(alreadyAccepted | windowExpired): cancel not allowed
            InvalidTransition: order already past Pending
        """
        def cancel_operation():
            row, snapshot = self._load_snapshot(order_id)
            now = self.clock()
            try:
                check_cancel(snapshot, now, self.cancellation_window_seconds)
            except StateConflict as e:
                logger.warning(f"Cancel rejected for order {order_id}: {e.reason}")
                raise

            self._apply_update(order_id, row['version'], {
                'status': OrderStatus.CANCELLED.value,
                'cancelled_at': to_timestamp(now),
                'cancel_reason': reason or f"Cancelled by {actor}",
            })

            logger.info(f"Order {order_id} cancelled by {actor}")
            result = self._current(order_id)
            result['message'] = "Order cancelled successfully"
            return result

        return self.db.execute_transaction([cancel_operation])[0]
