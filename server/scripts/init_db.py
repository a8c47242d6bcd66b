#!/usr/bin/env python3
# Database initialisation: schema, default settings, admin account, sample offers
#
# Usage:
#   CONFIG_ENV=development ADMIN_USERNAME=owner ADMIN_PASSWORD=... python scripts/init_db.py

import os
import sys
import logging
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.errors import ValidationError
from db.manager import DatabaseManager
from db.schema import create_tables
from db.supporting_operations import SupportingOperations
from utils.config import Config

SAMPLE_OFFERS = [
    # code, title, type, value, max discount (paise), min order (paise)
    ('WELCOME10', '10% off your first order', 'percentage', 10, 10000, 30000),
    ('FLAT50', 'Rs 50 off above Rs 500', 'flat', 50, None, 50000),
]


def insert_initial_data(db_manager: DatabaseManager, config: Config):
    support_ops = SupportingOperations(db_manager)

    if support_ops.seed_fee_config(config.get('fees', {})):
        logging.info("Default fee settings stored")
    else:
        logging.info("Fee settings already present")

    if support_ops.seed_store_config(config.get('store', {})):
        logging.info("Default store settings stored")

    username = os.getenv('ADMIN_USERNAME')
    password = os.getenv('ADMIN_PASSWORD')
    if username and password:
        try:
            support_ops.create_admin(username, password)
            logging.info(f"Admin account '{username}' created")
        except ValidationError as e:
            logging.info(f"Admin account not created: {e.message}")
    else:
        logging.info("ADMIN_USERNAME/ADMIN_PASSWORD not set, no admin account created")

    if config.env != 'production':
        for code, title, discount_type, value, max_discount, min_order in SAMPLE_OFFERS:
            if support_ops.get_offer_terms(code) is not None:
                continue
            support_ops.insert_offer(code, title, discount_type, value,
                                     max_discount_paise=max_discount, min_order_value_paise=min_order)
            logging.info(f"Sample offer {code} created")


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    config = Config()
    db_path = config.get_database_config()['path']

    logging.info(f"Initialising database: {db_path}")
    logging.info(f"Environment: {config.env}")

    try:
        with DatabaseManager(db_path) as db_manager:
            create_tables(db_manager)
            insert_initial_data(db_manager, config)

            counts = db_manager.check_integrity()
            logging.info("Database initialised")
            for table, count in counts.items():
                logging.info(f"  - {table}: {count} rows")

    except Exception as e:
        logging.error(f"Database initialisation failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
