"""
Application configuration loaded from environment variables.

Values are read once at import time (after ``load_dotenv``) and exposed as
module-level constants.
"""

import os
from typing import List
from urllib.parse import urlparse

from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = True) -> bool:
    """
    Parse a boolean environment variable from a string value.

    .env files store all values as strings, so "true", "1" and "yes"
    (any case) are True and everything else is False.

    Args:
        key: Environment variable name
        default: Default value if the variable is not set

    Returns:
        bool: Parsed boolean value
    """
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def get_int_env(key: str, default: int) -> int:
    """Parse an integer environment variable, raising ValueError naming the key."""
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {value!r}")


def get_list_env(key: str) -> List[str]:
    """Comma-separated list, lowercased, blanks dropped."""
    raw = os.getenv(key, "")
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


VALID_ENVS = ("dev", "prod", "test")

ENV = os.getenv("ENV", "dev").strip().lower()
IS_TEST_ENV = ENV == "test"
IS_PROD = ENV == "prod"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

SESSION_TTL_HOURS = get_int_env("SESSION_TTL_HOURS", 24 * 30)
PASSWORD_RESET_TTL_MINUTES = get_int_env("PASSWORD_RESET_TTL_MINUTES", 120)
PUBLIC_URL = os.getenv("PUBLIC_URL", "").strip().rstrip("/")
ADMIN_EMAILS = get_list_env("ADMIN_EMAILS")
AVATAR_DIR = os.getenv("AVATAR_DIR", "./data/avatars")

LOGIN_RATE_LIMIT = get_int_env("LOGIN_RATE_LIMIT", 10)
LOGIN_RATE_WINDOW_SECONDS = get_int_env("LOGIN_RATE_WINDOW_SECONDS", 300)

FCM_CREDENTIALS_PATH = os.getenv("FCM_CREDENTIALS_PATH", "").strip()
FCM_PROJECT_ID = os.getenv("FCM_PROJECT_ID", "").strip()

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")


def is_admin_email(email: str) -> bool:
    return bool(email) and email.strip().lower() in ADMIN_EMAILS


def validate() -> None:
    """
    Check configuration values that cannot be defaulted safely.

    Raises:
        ValueError: Naming the offending variable
    """
    if ENV not in VALID_ENVS:
        raise ValueError(f"ENV must be one of {', '.join(VALID_ENVS)}, got {ENV!r}")
    if SESSION_TTL_HOURS <= 0:
        raise ValueError("SESSION_TTL_HOURS must be positive")
    if PASSWORD_RESET_TTL_MINUTES <= 0:
        raise ValueError("PASSWORD_RESET_TTL_MINUTES must be positive")
    if LOGIN_RATE_LIMIT <= 0 or LOGIN_RATE_WINDOW_SECONDS <= 0:
        raise ValueError("LOGIN_RATE_LIMIT and LOGIN_RATE_WINDOW_SECONDS must be positive")
    if PUBLIC_URL:
        parsed = urlparse(PUBLIC_URL)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("PUBLIC_URL must be an absolute http(s) URL")
