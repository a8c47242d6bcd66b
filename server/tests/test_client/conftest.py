# Client-side fixtures: a scripted stand-in for OrderApiClient

import pytest

from core.errors import StateConflict

CREATED_AT = "2025-01-15T12:00:00.000000+00:00"


class ScriptedOrderApi:
    """
    Replays scripted responses. Each script entry is either a value to
    return or an exception to raise; the last entry repeats forever.
    """

    def __init__(self, payment_statuses=None, snapshots=None, cancel_result=None):
        self.payment_statuses = list(payment_statuses or [])
        self.snapshots = list(snapshots or [])
        self.cancel_result = cancel_result
        self.payment_calls = 0
        self.status_calls = 0
        self.cancel_calls = []
        self.verify_calls = []
        self.submitted = []

    @staticmethod
    def _next(script):
        entry = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def get_payment_status(self, order_id):
        self.payment_calls += 1
        status = self._next(self.payment_statuses)
        return {"order_id": order_id, "payment_status": status}

    async def get_order_status(self, order_id):
        self.status_calls += 1
        return dict(self._next(self.snapshots), order_id=order_id)

    async def cancel_order(self, order_id, reason=None):
        self.cancel_calls.append((order_id, reason))
        if isinstance(self.cancel_result, StateConflict):
            raise self.cancel_result
        return self.cancel_result

    async def verify_payment(self, order_id, gateway_order_id, payment_id, signature):
        self.verify_calls.append((order_id, gateway_order_id, payment_id, signature))
        return {"order_id": order_id, "payment_status": "Paid"}

    async def submit_order(self, draft):
        self.submitted.append(draft)
        order = {"order_id": "ord-1", "status": "Pending", "payment_method": draft["payment_method"]}
        return {"order": order, "checkout": {"order_id": "order_gw_1", "amount": 52598}}

    async def retry_payment(self, order_id):
        order = {"order_id": order_id, "status": "Pending", "payment_method": "Gateway"}
        return {"order": order, "checkout": {"order_id": "order_gw_2", "amount": 52598}}


def snapshot(status="Pending", is_accepted=False, created_at=CREATED_AT):
    return {"status": status, "is_accepted": is_accepted, "created_at": created_at}


@pytest.fixture
def scripted_api():
    return ScriptedOrderApi


@pytest.fixture
def order_snapshot():
    return snapshot
