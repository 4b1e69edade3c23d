#!/usr/bin/env python3
"""
MailShield Configuration
Environment-driven settings shared by the detection modules and services.

Settings are read from the process environment after loading the .env file
named by MAILSHIELD_ENV_FILE (default /etc/mailshield/.env). JSON config
files fall back to built-in defaults when they are missing or unreadable.
"""

import os
import json
import logging
from typing import Any, Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_FILE = os.getenv('MAILSHIELD_ENV_FILE', '/etc/mailshield/.env')
load_dotenv(ENV_FILE)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {value!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid number for {name}: {value!r}, using {default}")
        return default


def get_database_url() -> str:
    """
    Database URL for the list, policy and click stores.

    MAILSHIELD_DATABASE_URL wins. Otherwise a MySQL URL is assembled from
    DB_HOST/DB_USER/DB_PASSWORD/DB_NAME when DB_HOST is set, and an
    in-memory SQLite database is used as a last resort.
    """
    url = os.getenv('MAILSHIELD_DATABASE_URL')
    if url:
        return url

    host = os.getenv('DB_HOST')
    if host:
        user = os.getenv('DB_USER', 'mailshield')
        password = os.getenv('DB_PASSWORD', '')
        database = os.getenv('DB_NAME', 'mailshield')
        port = os.getenv('DB_PORT', '3306')
        if password:
            return f"mysql+pymysql://{user}:{password}@{host}:{port}/{database}"
        return f"mysql+pymysql://{user}@{host}:{port}/{database}"

    return 'sqlite://'


def get_redis_url() -> Optional[str]:
    return os.getenv('MAILSHIELD_REDIS_URL') or None


def get_geoip_db_path() -> Optional[str]:
    return os.getenv('MAILSHIELD_GEOIP_DB') or None


WHOIS_TIMEOUT = _env_int('MAILSHIELD_WHOIS_TIMEOUT', 10)
FEED_TIMEOUT = _env_float('MAILSHIELD_FEED_TIMEOUT', 5.0)
REPUTATION_CACHE_TTL = _env_int('MAILSHIELD_REPUTATION_CACHE_TTL', 3600)

CLICK_MAX_REDIRECTS = _env_int('MAILSHIELD_CLICK_MAX_REDIRECTS', 10)
CLICK_REDIRECT_TIMEOUT = _env_float('MAILSHIELD_CLICK_REDIRECT_TIMEOUT', 5.0)
CLICK_CACHE_TTL = _env_int('MAILSHIELD_CLICK_CACHE_TTL', 300)

CONFIG_DIR = os.getenv('MAILSHIELD_CONFIG_DIR', '/etc/mailshield')


def load_json_config(filename: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
    """
    Load a JSON config file from CONFIG_DIR (or an absolute path).
    Returns a copy of `defaults` if the file is missing or invalid.
    """
    path = filename if os.path.isabs(filename) else os.path.join(CONFIG_DIR, filename)
    try:
        if os.path.exists(path):
            with open(path, 'r') as f:
                config = json.load(f)
            if isinstance(config, dict):
                return config
            logger.error(f"Config file {path} is not a JSON object, using defaults")
        else:
            logger.debug(f"Config file not found: {path}, using defaults")
    except Exception as e:
        logger.error(f"Error loading config {path}: {e}, using defaults")
    return json.loads(json.dumps(defaults))
