# Logging setup

import logging
import logging.handlers
import os
from typing import Dict, Any

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'

# third-party loggers that are noisy at DEBUG
QUIET_LOGGERS = {
    'uvicorn.access': 'WARNING',   # duplicates the request middleware
    'urllib3': 'WARNING',          # razorpay's HTTP transport
    'httpx': 'WARNING',
    'httpcore': 'WARNING',
}

SIZE_UNITS = {'KB': 1024, 'MB': 1024 ** 2, 'GB': 1024 ** 3}


def _parse_size(size_str) -> int:
    """'10MB' -> 10485760"""
    size_str = str(size_str).strip().upper()
    for unit, factor in SIZE_UNITS.items():
        if size_str.endswith(unit):
            return int(size_str[:-len(unit)]) * factor
    return int(size_str)


def setup_logging(config: Dict[str, Any]):
    """
    Configure the root logger from the `logging` config section.

    Console output always, a rotating file when file_enabled, and
    per-logger levels from `logging.loggers` (e.g. {"db.manager": "INFO"}).
    """
    log_config = config.get('logging', {})

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    level = log_config.get('level', 'INFO').upper()
    root.setLevel(getattr(logging, level))

    formatter = logging.Formatter(log_config.get('format', DEFAULT_FORMAT))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_config.get('file_enabled', False):
        file_path = log_config.get('file_path', 'logs/app.log')
        log_dir = os.path.dirname(file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            file_path,
            maxBytes=_parse_size(log_config.get('max_file_size', '10MB')),
            backupCount=log_config.get('backup_count', 5),
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    overrides = dict(QUIET_LOGGERS)
    overrides.update(log_config.get('loggers', {}))
    for name, logger_level in overrides.items():
        logging.getLogger(name).setLevel(getattr(logging, str(logger_level).upper()))

    logging.info(f"Logging initialised, level: {level}")
