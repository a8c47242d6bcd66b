# Shared fixtures: in-memory database, operations, controllable clock, sample orders

import pytest
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

os.environ['CONFIG_ENV'] = 'development'

from db.manager import DatabaseManager
from db.schema import create_tables
from db.core_operations import CoreOperations
from db.query_operations import QueryOperations
from db.supporting_operations import SupportingOperations

STORE_LAT = 28.6139
STORE_LNG = 77.2090
# roughly 3 km due north of the store
THREE_KM_NORTH = {"lat": STORE_LAT + 3 / 111.195, "lng": STORE_LNG}
# roughly 15 km due north, outside the 10 km radius
FIFTEEN_KM_NORTH = {"lat": STORE_LAT + 15 / 111.195, "lng": STORE_LNG}


class FakeClock:
    """Manually advanced UTC clock"""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


def make_draft(**overrides):
    """Cash dine-in order for Rs 500 unless overridden"""
    draft = {
        "customer": {"name": "Asha Verma", "phone": "9876501234"},
        "items": [
            {"product_ref": "p-croissant", "name": "Butter Croissant", "quantity": 2,
             "size": None, "addons": [], "line_total_paise": 30000},
            {"product_ref": "p-latte", "name": "Cafe Latte", "quantity": 1,
             "size": "Large", "addons": ["Extra shot"], "line_total_paise": 20000},
        ],
        "order_type": "DineIn",
        "payment_method": "Cash",
        "delivery_address": None,
        "offer_code": None,
        "customer_note": None,
    }
    draft.update(overrides)
    return draft


def delivery_address(coordinates=None):
    return {
        "address": "12 Park Street",
        "landmark": "Near the fountain",
        "pincode": "110001",
        "coordinates": dict(coordinates or THREE_KM_NORTH),
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_db():
    """In-memory database with the full schema"""
    db = DatabaseManager(":memory:", auto_connect=True)
    create_tables(db)
    yield db
    db.close()


@pytest.fixture
def support_ops(test_db, clock):
    return SupportingOperations(test_db, clock=clock)


@pytest.fixture
def query_ops(test_db, clock):
    return QueryOperations(test_db, clock=clock)


@pytest.fixture
def core_ops(test_db, clock):
    return CoreOperations(test_db, clock=clock, cancellation_window_seconds=30)


@pytest.fixture
def cash_order(core_ops):
    """Pending, unaccepted cash order"""
    return core_ops.submit_order(make_draft())


@pytest.fixture
def gateway_order(core_ops):
    """Pending gateway order with an open gateway checkout (payment Initiated)"""
    order = core_ops.submit_order(make_draft(payment_method="Gateway"))
    core_ops.attach_gateway_order(order["order_id"], "order_test_0001")
    return core_ops.query.get_order(order["order_id"])


@pytest.fixture
def draft_factory():
    return make_draft


@pytest.fixture
def address_factory():
    return delivery_address


@pytest.fixture
def near_location():
    return dict(THREE_KM_NORTH)


@pytest.fixture
def far_location():
    return dict(FIFTEEN_KM_NORTH)
