# Supporting operations: customers, settings, offers, admin accounts
# Collaborators the order core reads from; kept deliberately thin

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from core.errors import AuthenticationError, ValidationError
from core.pricing import FeeConfig, OfferTerms
from utils.security import hash_password, verify_password
from utils.validators import normalize_phone, validate_phone, validate_string_length
from .manager import DatabaseManager

FEE_CONFIG_KEY = 'fee_config'
STORE_CONFIG_KEY = 'store_config'

DEFAULT_STORE_CONFIG = {
    'admin_phone': '9876543210',
    'upi_id': '',
    'merchant_name': 'Store',
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(value: datetime) -> str:
    return value.isoformat(timespec='microseconds')


class SupportingOperations:
    """
    Supporting operations
    """
    def __init__(self, db_manager: DatabaseManager, clock: Optional[Callable[[], datetime]] = None):
        self.db = db_manager
        self.clock = clock or utc_now

    def _now(self) -> str:
        return to_timestamp(self.clock())

    # ===== customers =====

    def get_or_create_customer(self, name: str, phone: str) -> Dict[str, Any]:
        """
        Find a customer by phone, creating it or refreshing the name.
        Must run inside the caller's transaction.
        """
        if not validate_string_length(name, 1, 100):
            raise ValidationError("Customer name is required", {"field": "customer.name"})
        if not validate_phone(phone):
            raise ValidationError("A valid 10-digit phone number is required", {"field": "customer.phone"})

        phone = normalize_phone(phone)
        name = name.strip()
        now = self._now()

        row = self.db.conn.execute(
            "SELECT customer_id, name FROM customers WHERE phone = ?", [phone]
        ).fetchone()

        if row:
            if row['name'] != name:
                self.db.conn.execute(
                    "UPDATE customers SET name = ?, updated_at = ? WHERE customer_id = ?",
                    [name, now, row['customer_id']]
                )
            return {'customer_id': row['customer_id'], 'name': name, 'phone': phone}

        cursor = self.db.conn.execute(
            "INSERT INTO customers (phone, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
            [phone, name, now, now]
        )
        return {'customer_id': cursor.lastrowid, 'name': name, 'phone': phone}

    # ===== settings =====

    def _get_setting(self, key: str) -> Optional[Dict[str, Any]]:
        row = self.db.conn.execute("SELECT value FROM settings WHERE key = ?", [key]).fetchone()
        return json.loads(row['value']) if row else None

    def _put_setting(self, key: str, value: Dict[str, Any], updated_by: str):
        self.db.conn.execute("""
            INSERT INTO settings (key, value, updated_at, updated_by) VALUES (?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at,
                updated_by = excluded.updated_by
        """, [key, json.dumps(value), self._now(), updated_by])

    def get_fee_config(self) -> FeeConfig:
        """Stored fee configuration, falling back to the built-in defaults"""
        stored = self._get_setting(FEE_CONFIG_KEY)
        return FeeConfig.from_dict(stored or {})

    def update_fee_config(self, changes: Dict[str, Any], updated_by: str = 'admin') -> FeeConfig:
        """
        Merge changes into the stored fee config

        Raises:
            ValidationError: negative amounts, tax rate outside 0-100
        """
        def update_operation():
            current = self.get_fee_config().to_dict()
            current.update({k: v for k, v in changes.items() if v is not None})
            merged = FeeConfig.from_dict(current)

            if not 0 <= merged.tax_rate <= 100:
                raise ValidationError("Tax rate must be between 0 and 100", {"field": "tax_rate"})
            for field_name in ('platform_fee_paise', 'delivery_fee_base_paise', 'delivery_fee_per_km_paise',
                               'free_delivery_threshold_paise', 'delivery_radius_km'):
                if getattr(merged, field_name) < 0:
                    raise ValidationError(f"{field_name} cannot be negative", {"field": field_name})

            self._put_setting(FEE_CONFIG_KEY, merged.to_dict(), updated_by)
            return merged

        return self.db.execute_transaction([update_operation])[0]

    def seed_fee_config(self, defaults: Dict[str, Any]) -> bool:
        """Store the config-file defaults unless a fee config already exists"""
        if self._get_setting(FEE_CONFIG_KEY) is not None:
            return False
        self.db.execute_transaction([
            lambda: self._put_setting(FEE_CONFIG_KEY, FeeConfig.from_dict(defaults).to_dict(), 'system')
        ])
        return True

    def get_store_config(self) -> Dict[str, Any]:
        config = dict(DEFAULT_STORE_CONFIG)
        config.update(self._get_setting(STORE_CONFIG_KEY) or {})
        return config

    def seed_store_config(self, defaults: Dict[str, Any]) -> bool:
        if self._get_setting(STORE_CONFIG_KEY) is not None:
            return False
        self.update_store_config(defaults, 'system')
        return True

    def update_store_config(self, changes: Dict[str, Any], updated_by: str = 'admin') -> Dict[str, Any]:
        def update_operation():
            config = self.get_store_config()
            config.update({k: v for k, v in changes.items() if v is not None})
            self._put_setting(STORE_CONFIG_KEY, config, updated_by)
            return config

        return self.db.execute_transaction([update_operation])[0]

    # ===== offers =====

    def get_offer_terms(self, code: str) -> Optional[OfferTerms]:
        """
        Active, currently valid offer by code (case-insensitive)

        Returns:
            OfferTerms or None
        """
        if not code:
            return None

        now = self._now()
        row = self.db.conn.execute("""
            SELECT offer_id, code, discount_type, discount_value, max_discount_paise, min_order_value_paise
            FROM offers
            WHERE code = ? AND is_active = 1
            AND (valid_from IS NULL OR valid_from <= ?)
            AND (valid_to IS NULL OR valid_to >= ?)
        """, [code.strip().upper(), now, now]).fetchone()

        if not row:
            return None

        return OfferTerms(
            code=row['code'],
            discount_type=row['discount_type'],
            discount_value=row['discount_value'],
            max_discount_paise=row['max_discount_paise'],
            min_order_value_paise=row['min_order_value_paise'] or 0,
            offer_id=row['offer_id'],
        )

    def insert_offer(self, code: str, title: str, discount_type: str, discount_value: float,
                     max_discount_paise: Optional[int] = None, min_order_value_paise: int = 0,
                     valid_from: Optional[datetime] = None, valid_to: Optional[datetime] = None,
                     is_active: bool = True) -> int:
        """Seed helper used by scripts/init_db.py and tests"""
        if discount_type not in ('percentage', 'flat'):
            raise ValidationError(f"Unknown discount type: {discount_type}")

        def insert_operation():
            cursor = self.db.conn.execute("""
                INSERT INTO offers (code, title, discount_type, discount_value, max_discount_paise,
                                    min_order_value_paise, valid_from, valid_to, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [code.upper(), title, discount_type, discount_value, max_discount_paise,
                  min_order_value_paise,
                  to_timestamp(valid_from) if valid_from else None,
                  to_timestamp(valid_to) if valid_to else None,
                  1 if is_active else 0, self._now()])
            return cursor.lastrowid

        return self.db.execute_transaction([insert_operation])[0]

    # ===== admin accounts =====

    def create_admin(self, username: str, password: str) -> int:
        if not validate_string_length(username, 3, 50):
            raise ValidationError("Username must be 3-50 characters")
        if not validate_string_length(password, 8):
            raise ValidationError("Password must be at least 8 characters")

        def create_operation():
            existing = self.db.conn.execute(
                "SELECT admin_id FROM admins WHERE username = ?", [username]
            ).fetchone()
            if existing:
                raise ValidationError(f"Admin '{username}' already exists")

            cursor = self.db.conn.execute(
                "INSERT INTO admins (username, password_hash, created_at) VALUES (?, ?, ?)",
                [username, hash_password(password), self._now()]
            )
            return cursor.lastrowid

        return self.db.execute_transaction([create_operation])[0]

    def authenticate_admin(self, username: str, password: str) -> Dict[str, Any]:
        """
        Raises:
            AuthenticationError: unknown user, inactive account or wrong password
        """
        row = self.db.conn.execute(
            "SELECT admin_id, username, password_hash, is_active FROM admins WHERE username = ?",
            [username]
        ).fetchone()

        if not row or not row['is_active'] or not verify_password(password, row['password_hash']):
            raise AuthenticationError("Invalid username or password")

        self.db.execute_single(
            "UPDATE admins SET last_login_at = ? WHERE admin_id = ?", [self._now(), row['admin_id']]
        )
        return {'admin_id': row['admin_id'], 'username': row['username']}

    def get_admin(self, admin_id: int) -> Optional[Dict[str, Any]]:
        row = self.db.conn.execute(
            "SELECT admin_id, username, is_active FROM admins WHERE admin_id = ?", [admin_id]
        ).fetchone()
        return dict(row) if row else None
