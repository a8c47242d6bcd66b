# Database schema
# Money columns are integer paise; JSON columns are stored as TEXT

from .manager import DatabaseManager

TABLES = [
    # customers: weak reference from orders, keyed by phone
    """
    CREATE TABLE IF NOT EXISTS customers (
        customer_id INTEGER PRIMARY KEY AUTOINCREMENT,
        phone VARCHAR(15) UNIQUE NOT NULL,
        name VARCHAR(100) NOT NULL,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    """,

    # orders: fulfillment axis (status) and payment axis (payment_status)
    """
    CREATE TABLE IF NOT EXISTS orders (
        order_id VARCHAR(32) PRIMARY KEY,
        customer_id INTEGER,
        customer_name VARCHAR(100) NOT NULL,
        customer_phone VARCHAR(15) NOT NULL,
        items TEXT NOT NULL,                          -- [{product_ref, name, quantity, size, addons, line_total_paise}]
        order_type VARCHAR(10) NOT NULL,              -- DineIn/Takeaway/Delivery
        delivery_address TEXT,                        -- {address, landmark, pincode, coordinates{lat,lng}}
        customer_note TEXT,
        payment_method VARCHAR(10) NOT NULL,          -- Cash/Gateway
        payment_status VARCHAR(10) NOT NULL,          -- Unpaid/Initiated/Paid/Failed
        status VARCHAR(10) NOT NULL DEFAULT 'Pending',
        is_accepted INTEGER NOT NULL DEFAULT 0,
        accepted_at TIMESTAMP,
        subtotal_paise INTEGER NOT NULL,
        tax_paise INTEGER NOT NULL DEFAULT 0,
        delivery_fee_paise INTEGER NOT NULL DEFAULT 0,
        platform_fee_paise INTEGER NOT NULL DEFAULT 0,
        discount_paise INTEGER NOT NULL DEFAULT 0,
        total_amount_paise INTEGER NOT NULL,
        applied_offer TEXT,                           -- snapshot {offer_id, code, discount_paise}
        gateway_order_id VARCHAR(64),
        gateway_payment_id VARCHAR(64),
        payment_verified_at TIMESTAMP,
        payment_screenshot TEXT,                      -- {url, uploaded_at, verified, verified_at, verified_by}
        payment_note TEXT,
        cancelled_at TIMESTAMP,
        cancel_reason TEXT,
        version INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL,
        CHECK (NOT (is_accepted = 1 AND status = 'Cancelled')),
        FOREIGN KEY (customer_id) REFERENCES customers(customer_id)
    )
    """,

    "CREATE INDEX IF NOT EXISTS idx_orders_payment ON orders(payment_status, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_orders_gateway ON orders(gateway_order_id)",
    "CREATE INDEX IF NOT EXISTS idx_orders_phone ON orders(customer_phone)",

    # every gateway order ever opened for an order; retries keep the earlier ids resolvable
    """
    CREATE TABLE IF NOT EXISTS gateway_orders (
        gateway_order_id VARCHAR(64) PRIMARY KEY,
        order_id VARCHAR(32) NOT NULL,
        created_at TIMESTAMP NOT NULL,
        FOREIGN KEY (order_id) REFERENCES orders(order_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_gateway_orders_order ON gateway_orders(order_id)",

    # payment audit trail
    """
    CREATE TABLE IF NOT EXISTS payment_events (
        event_id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id VARCHAR(32) NOT NULL,
        source VARCHAR(20) NOT NULL,                  -- checkout/verify/webhook/manual/screenshot/gateway
        from_status VARCHAR(10) NOT NULL,
        to_status VARCHAR(10) NOT NULL,
        reference VARCHAR(64),
        note TEXT,
        created_at TIMESTAMP NOT NULL,
        FOREIGN KEY (order_id) REFERENCES orders(order_id)
    )
    """,

    # offers: read-only to the order core
    """
    CREATE TABLE IF NOT EXISTS offers (
        offer_id INTEGER PRIMARY KEY AUTOINCREMENT,
        code VARCHAR(32) UNIQUE NOT NULL,
        title VARCHAR(100) NOT NULL,
        discount_type VARCHAR(10) NOT NULL DEFAULT 'percentage',
        discount_value REAL NOT NULL,
        max_discount_paise INTEGER,
        min_order_value_paise INTEGER NOT NULL DEFAULT 0,
        valid_from TIMESTAMP,
        valid_to TIMESTAMP,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP NOT NULL
    )
    """,

    # settings: fee_config / store_config as JSON documents
    """
    CREATE TABLE IF NOT EXISTS settings (
        key VARCHAR(32) PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP NOT NULL,
        updated_by VARCHAR(50) DEFAULT 'system'
    )
    """,

    """
    CREATE TABLE IF NOT EXISTS admins (
        admin_id INTEGER PRIMARY KEY AUTOINCREMENT,
        username VARCHAR(50) UNIQUE NOT NULL,
        password_hash VARCHAR(255) NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP NOT NULL,
        last_login_at TIMESTAMP
    )
    """,
]


def create_tables(db_manager: DatabaseManager):
    """Create every table and index (idempotent)"""
    for sql in TABLES:
        db_manager.execute_single(sql)
    db_manager.logger.info(f"Schema ready ({len(TABLES)} statements)")
