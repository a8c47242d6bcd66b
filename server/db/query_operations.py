# Query operations: read-only views of orders and payments

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from core.errors import OrderNotFound, ValidationError
from core.state_machine import OrderStatus, PaymentMethod, parse_timestamp
from core.urgency import classify_urgency, minutes_pending, due_alert_marks, format_pending_time, DEFAULT_ALERT_MARKS
from .manager import DatabaseManager
from .supporting_operations import to_timestamp

# poll budget of the customer's payment confirmation (5 polls, 2 s apart)
DEFAULT_UNCONFIRMED_AFTER_SECONDS = 10

ORDER_COLUMNS = """
    order_id, customer_id, customer_name, customer_phone, items, order_type, delivery_address,
    customer_note, payment_method, payment_status, status, is_accepted, accepted_at,
    subtotal_paise, tax_paise, delivery_fee_paise, platform_fee_paise, discount_paise,
    total_amount_paise, applied_offer, gateway_order_id, gateway_payment_id, payment_verified_at,
    payment_screenshot, payment_note, cancelled_at, cancel_reason, version, created_at, updated_at
"""


def _json_or_none(value):
    return json.loads(value) if value else None


def order_to_dict(row) -> Dict[str, Any]:
    """sqlite row -> API shaped dict"""
    return {
        'order_id': row['order_id'],
        'customer': {
            'customer_id': row['customer_id'],
            'name': row['customer_name'],
            'phone': row['customer_phone'],
        },
        'items': json.loads(row['items']),
        'order_type': row['order_type'],
        'delivery_address': _json_or_none(row['delivery_address']),
        'customer_note': row['customer_note'],
        'payment_method': row['payment_method'],
        'payment_status': row['payment_status'],
        'status': row['status'],
        'is_accepted': bool(row['is_accepted']),
        'accepted_at': row['accepted_at'],
        'subtotal_paise': row['subtotal_paise'],
        'tax_paise': row['tax_paise'],
        'delivery_fee_paise': row['delivery_fee_paise'],
        'platform_fee_paise': row['platform_fee_paise'],
        'discount_paise': row['discount_paise'],
        'total_amount_paise': row['total_amount_paise'],
        'applied_offer': _json_or_none(row['applied_offer']),
        'gateway_order_id': row['gateway_order_id'],
        'gateway_payment_id': row['gateway_payment_id'],
        'payment_verified_at': row['payment_verified_at'],
        'payment_screenshot': _json_or_none(row['payment_screenshot']),
        'payment_note': row['payment_note'],
        'cancelled_at': row['cancelled_at'],
        'cancel_reason': row['cancel_reason'],
        'version': row['version'],
        'created_at': row['created_at'],
        'updated_at': row['updated_at'],
    }


class QueryOperations:
    """
    Query operations
    """
    def __init__(self, db_manager: DatabaseManager, clock: Optional[Callable[[], datetime]] = None):
        self.db = db_manager
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _board_condition(self, now: datetime, unconfirmed_after_seconds: float):
        """
        Gateway orders are shown once their payment settled, or once an open
        checkout outlived the customer's confirmation polling (unconfirmed,
        left for the operator). Fresh and never-opened checkouts stay hidden.
        """
        cutoff = to_timestamp(now - timedelta(seconds=unconfirmed_after_seconds))
        condition = ("(payment_method != ? OR payment_status IN ('Paid', 'Failed')"
                     " OR (payment_status = 'Initiated' AND created_at <= ?))")
        return condition, [PaymentMethod.GATEWAY.value, cutoff]

    @staticmethod
    def _is_unconfirmed(row) -> bool:
        return row['payment_method'] == PaymentMethod.GATEWAY.value and row['payment_status'] == 'Initiated'

    def fetch_order_row(self, order_id: str):
        row = self.db.conn.execute(
            f"SELECT {ORDER_COLUMNS} FROM orders WHERE order_id = ?", [order_id]
        ).fetchone()
        if not row:
            raise OrderNotFound(order_id)
        return row

    def get_order(self, order_id: str) -> Dict[str, Any]:
        """Full order record"""
        return order_to_dict(self.fetch_order_row(order_id))

    def get_order_status(self, order_id: str) -> Dict[str, Any]:
        """
        Tracking view polled by the customer's order screen.
        Internal gateway references and audit fields are left out.
        """
        order = self.get_order(order_id)
        for key in ('gateway_payment_id', 'payment_note', 'version', 'updated_at'):
            order.pop(key, None)
        order['customer'].pop('customer_id', None)
        return order

    def get_payment_status(self, order_id: str) -> Dict[str, Any]:
        """Server-authoritative payment status"""
        row = self.db.conn.execute("""
            SELECT order_id, payment_status, payment_method, gateway_payment_id,
                   payment_verified_at, total_amount_paise, status
            FROM orders WHERE order_id = ?
        """, [order_id]).fetchone()

        if not row:
            raise OrderNotFound(order_id)

        return {
            'order_id': row['order_id'],
            'payment_status': row['payment_status'],
            'payment_method': row['payment_method'],
            'gateway_payment_id': row['gateway_payment_id'],
            'payment_verified_at': row['payment_verified_at'],
            'total_amount_paise': row['total_amount_paise'],
            'order_status': row['status'],
        }

    def find_order_id_by_gateway_order(self, gateway_order_id: str) -> Optional[str]:
        """Resolves current and earlier (retried) gateway orders"""
        row = self.db.conn.execute("""
            SELECT order_id FROM gateway_orders WHERE gateway_order_id = ?
            UNION
            SELECT order_id FROM orders WHERE gateway_order_id = ?
        """, [gateway_order_id, gateway_order_id]).fetchone()
        return row['order_id'] if row else None

    def list_gateway_orders(self, order_id: str) -> List[str]:
        """Gateway order ids opened for an order, oldest first"""
        rows = self.db.conn.execute("""
            SELECT gateway_order_id FROM gateway_orders
            WHERE order_id = ? ORDER BY created_at ASC, rowid ASC
        """, [order_id]).fetchall()
        return [row['gateway_order_id'] for row in rows]

    def list_admin_orders(self, status: Optional[str] = None, offset: int = 0, limit: int = 100,
                          unconfirmed_after_seconds: float = DEFAULT_UNCONFIRMED_AFTER_SECONDS) -> Dict[str, Any]:
        """
        Operator order board, newest first.

        Gateway checkouts still inside the customer's confirmation polling, or
        never opened, are hidden. Older open checkouts are listed with
        payment_unconfirmed set. Each row carries urgency info.
        """
        if offset < 0 or limit <= 0 or limit > 200:
            raise ValidationError("limit must be 1-200 and offset non-negative")

        now = self.clock()
        visible, params = self._board_condition(now, unconfirmed_after_seconds)
        conditions = [visible]

        if status:
            try:
                OrderStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown order status: {status}")
            conditions.append("status = ?")
            params.append(status)

        where = " AND ".join(conditions)
        total_count = self.db.conn.execute(
            f"SELECT COUNT(*) FROM orders WHERE {where}", params
        ).fetchone()[0]

        rows = self.db.conn.execute(
            f"SELECT {ORDER_COLUMNS} FROM orders WHERE {where} ORDER BY created_at DESC LIMIT ? OFFSET ?",
            params + [limit, offset]
        ).fetchall()

        orders = []
        for row in rows:
            order = order_to_dict(row)
            created_at = parse_timestamp(row['created_at'])
            order['urgency'] = classify_urgency(row['status'], bool(row['is_accepted']), created_at, now).value
            order['minutes_pending'] = int(minutes_pending(created_at, now))
            order['pending_label'] = format_pending_time(created_at, now)
            order['payment_unconfirmed'] = self._is_unconfirmed(row)
            orders.append(order)

        return {
            'orders': orders,
            'total_count': total_count,
            'offset': offset,
            'limit': limit,
        }

    def get_pending_alerts(self, already_alerted: Optional[Dict[str, List[int]]] = None,
                           marks=DEFAULT_ALERT_MARKS,
                           since: Optional[datetime] = None,
                           unconfirmed_after_seconds: float = DEFAULT_UNCONFIRMED_AFTER_SECONDS) -> List[Dict[str, Any]]:
        """
        Pending, unaccepted orders that crossed an alert mark (minutes)
        not yet present in already_alerted[order_id].

        With since (the caller's previous check), marks already reached at
        that moment count as alerted.
        """
        already_alerted = already_alerted or {}
        now = self.clock()
        visible, params = self._board_condition(now, unconfirmed_after_seconds)
        rows = self.db.conn.execute(f"""
            SELECT order_id, customer_name, payment_method, payment_status, created_at FROM orders
            WHERE status = 'Pending' AND is_accepted = 0 AND {visible}
            ORDER BY created_at ASC
        """, params).fetchall()

        alerts = []
        for row in rows:
            created_at = parse_timestamp(row['created_at'])
            minutes = minutes_pending(created_at, now)
            alerted = set(already_alerted.get(row['order_id'], []))
            if since is not None:
                alerted.update(due_alert_marks(minutes_pending(created_at, since), set(), marks))
            due = due_alert_marks(minutes, alerted, marks)
            if due:
                alerts.append({
                    'order_id': row['order_id'],
                    'customer_name': row['customer_name'],
                    'minutes_pending': int(minutes),
                    'marks': due,
                    'payment_unconfirmed': self._is_unconfirmed(row),
                })
        return alerts

    def list_payment_events(self, order_id: str) -> List[Dict[str, Any]]:
        rows = self.db.conn.execute("""
            SELECT event_id, source, from_status, to_status, reference, note, created_at
            FROM payment_events WHERE order_id = ?
            ORDER BY event_id ASC
        """, [order_id]).fetchall()
        return [dict(row) for row in rows]
