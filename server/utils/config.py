# Configuration management
# JSON config files per environment, ${ENV_VAR} placeholders substituted at load time

import json
import os
import logging
import re
from typing import Dict, Any

SERVER_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

CONFIG_FILES = {
    'production': 'config/config-prod.json',
    'development': 'config/config-dev.json',
}

REQUIRED_SECTIONS = ['app', 'server', 'database', 'auth', 'logging']


def _replace_env_vars(value: str) -> str:
    """
    Replace ${ENV_VAR} placeholders with environment values.
    Unknown variables are left as-is.
    """
    def replace_match(match):
        env_var = match.group(1)
        return os.getenv(env_var, match.group(0))

    return re.sub(r'\$\{([^}]+)\}', replace_match, value)


def _process_config_values(config: Any) -> Any:
    """Recursively substitute environment variables"""
    if isinstance(config, dict):
        return {k: _process_config_values(v) for k, v in config.items()}
    elif isinstance(config, list):
        return [_process_config_values(item) for item in config]
    elif isinstance(config, str):
        return _replace_env_vars(config)
    else:
        return config


def is_unresolved(value: Any) -> bool:
    """True for empty values and placeholders whose env var was not set"""
    return not value or (isinstance(value, str) and value.startswith('${'))


def load_config() -> Dict[str, Any]:
    """
    Load the config file selected by CONFIG_ENV.

    Returns:
        config dict
    """
    config_env = os.getenv('CONFIG_ENV', 'development')
    config_file = CONFIG_FILES.get(config_env, 'config/config.json')

    if not os.path.isabs(config_file):
        config_file = os.path.join(SERVER_DIR, config_file)

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = json.load(f)

        config = _process_config_values(config)
        config.pop('_comment', None)

        logging.info(f"Loaded config file: {config_file}")
        return config

    except FileNotFoundError:
        logging.error(f"Config file not found: {config_file}")
        raise
    except json.JSONDecodeError as e:
        logging.error(f"Config file is not valid JSON: {e}")
        raise


def get_database_path(config: Dict[str, Any]) -> str:
    """Database path, relative paths resolved against the server directory"""
    db_path = config.get('database', {}).get('path', 'data/bakery.db')

    if db_path != ':memory:' and not os.path.isabs(db_path):
        db_path = os.path.join(SERVER_DIR, db_path)

    return db_path


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Check required sections and the JWT secret.

    Returns:
        validation result
    """
    for section in REQUIRED_SECTIONS:
        if section not in config:
            logging.error(f"Config is missing required section: {section}")
            return False

    if is_unresolved(config.get('auth', {}).get('jwt_secret_key')):
        logging.error("JWT secret key is not configured")
        return False

    ordering = config.get('ordering', {})
    if ordering.get('cancellation_window_seconds', 30) <= 0:
        logging.error("ordering.cancellation_window_seconds must be positive")
        return False
    if ordering.get('payment_poll_max_attempts', 5) < 1:
        logging.error("ordering.payment_poll_max_attempts must be at least 1")
        return False

    payments = config.get('payments', {})
    if is_unresolved(payments.get('razorpay_key_id')) != is_unresolved(payments.get('razorpay_key_secret')):
        logging.error("Razorpay key id and secret must be configured together")
        return False

    return True


class Config:
    """
    Configuration holder
    """
    def __init__(self):
        self.env = os.getenv('CONFIG_ENV', 'development')
        self.config = load_config()

        if not validate_config(self.config):
            raise ValueError("Config validation failed")

    def get(self, key: str, default=None):
        """
        Dotted-key lookup, e.g. 'ordering.cancellation_window_seconds'

        Args:
            key: dotted key
            default: returned when any segment is missing

        Returns:
            config value
        """
        value = self.config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_database_config(self) -> Dict[str, Any]:
        db_config = self.config.get('database', {}).copy()
        db_config['path'] = get_database_path(self.config)
        return db_config

    def get_ordering_config(self) -> Dict[str, Any]:
        """Timing knobs of the order lifecycle, with the documented defaults"""
        ordering = self.config.get('ordering', {})
        return {
            'cancellation_window_seconds': ordering.get('cancellation_window_seconds', 30),
            'payment_poll_interval_seconds': ordering.get('payment_poll_interval_seconds', 2),
            'payment_poll_max_attempts': ordering.get('payment_poll_max_attempts', 5),
            'status_poll_interval_seconds': ordering.get('status_poll_interval_seconds', 5),
            'pending_alert_minutes': ordering.get('pending_alert_minutes', [10, 20, 30, 45, 60]),
        }
