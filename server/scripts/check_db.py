#!/usr/bin/env python3
# Integrity check: core tables present, no order both accepted and cancelled

import sys
import logging
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from db.manager import DatabaseManager
from utils.config import Config


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    config = Config()
    db_path = config.get_database_config()['path']
    logging.info(f"Checking database: {db_path}")

    try:
        with DatabaseManager(db_path) as db_manager:
            counts = db_manager.check_integrity()
    except (RuntimeError, ConnectionError) as e:
        logging.error(f"Integrity check failed: {e}")
        sys.exit(1)

    for table, count in counts.items():
        logging.info(f"  - {table}: {count} rows")


if __name__ == "__main__":
    main()
