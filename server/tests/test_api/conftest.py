# API test fixtures: app wired to a temporary database, mock gateway and fake clock

import hashlib
import hmac

import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.auth.routes import get_clock, get_database
from api.payments.razorpay_service import MOCK_KEY_SECRET, MOCK_WEBHOOK_SECRET, RazorpayGateway
from api.payments.routes import get_gateway
from db.manager import DatabaseManager
from db.schema import create_tables
from db.supporting_operations import SupportingOperations

ADMIN_USERNAME = "owner"
ADMIN_PASSWORD = "correct-horse"

FEES = {
    "tax_rate": 5,
    "platform_fee_paise": 98,
    "delivery_fee_base_paise": 3000,
    "delivery_fee_per_km_paise": 500,
    "free_delivery_threshold_paise": 50000,
    "delivery_radius_km": 10,
    "store_location": {"lat": 28.6139, "lng": 77.2090},
}


def payment_signature(gateway_order_id, payment_id, secret=MOCK_KEY_SECRET):
    message = f"{gateway_order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def webhook_signature(body, secret=MOCK_WEBHOOK_SECRET):
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


@pytest.fixture
def db_path(tmp_path):
    """Database file with schema, fee/store settings and one admin"""
    path = str(tmp_path / "api.db")
    with DatabaseManager(path, auto_connect=True) as db:
        create_tables(db)
        support_ops = SupportingOperations(db)
        support_ops.seed_fee_config(FEES)
        support_ops.seed_store_config({"admin_phone": "9876543210", "upi_id": "bakery@upi"})
        support_ops.create_admin(ADMIN_USERNAME, ADMIN_PASSWORD)
    return path


@pytest.fixture
def gateway():
    return RazorpayGateway(None, None)


@pytest.fixture
def client(db_path, clock, gateway):
    def override_database():
        db = DatabaseManager(db_path, auto_connect=True)
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_database] = override_database
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_gateway] = lambda: gateway

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(client):
    response = client.post("/api/auth/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['data']['access_token']}"}


@pytest.fixture
def place_order(client, draft_factory):
    """Submit an order through the API and return {order, checkout}"""
    def place(**overrides):
        response = client.post("/api/orders", json=draft_factory(**overrides))
        assert response.status_code == 201, response.json()
        return response.json()["data"]
    return place


@pytest.fixture
def sign_payment():
    return payment_signature


@pytest.fixture
def sign_webhook():
    return webhook_signature
