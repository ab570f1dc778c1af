"Loads environment variables and applies type-safe parsing"

import os
import datetime
from typing import Callable, Any, Optional
from dotenv import load_dotenv

from . import constants

load_dotenv()


def get_env(
    key: str,
    default: Any = None,
    cast: Callable[[str], Any] = str,
    strip_quotes: bool = True,
) -> Any:
    """Helper to safely fetch and cast environment variables."""
    val = os.getenv(key, default)
    if val is None:
        return default
    if strip_quotes and isinstance(val, str):
        val = val.strip('"').strip("'")
    try:
        return cast(val)
    except (ValueError, TypeError):
        return default


def get_bool(key: str, default: bool = False) -> bool:
    """Helper to parse booleans consistently."""
    val = os.getenv(key, str(default))
    val = val.strip('"').strip("'").lower()
    return val in ("true", "1", "t", "yes", "y")


def _parse_date(value: str) -> datetime.datetime:
    """Parse ``YYYY-MM-DD`` (or a full ISO timestamp) into an aware datetime.

    Values without an offset are Sri Lanka wall-clock time.
    """
    if not isinstance(value, datetime.datetime):
        value = value.strip()
        if len(value) == 10:
            value = datetime.datetime.strptime(value, "%Y-%m-%d")
        else:
            value = datetime.datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=constants.Timezone.sri_lanka)
    return value


def get_date(key: str, default: str) -> Optional[datetime.datetime]:
    """Helper to fetch a calendar date, falling back to ``default`` when malformed."""
    return get_env(key, _parse_date(default), cast=_parse_date)


admin_password_hash = get_env("admin_password_hash")
secret_key = get_env("secret_key")
if not admin_password_hash or not secret_key:
    raise ValueError(
        "error: admin_password_hash and secret_key must be set in the .env"
    )
debug = get_bool("flask_debug", False)
app_version = get_env("app_version", "1.0.0")
permanent_session_lifetime = datetime.timedelta(
    days=get_env("permanent_session_lifetime_days", 7, cast=int)
)
database_url = get_env("database_url", f"sqlite:///{constants.Path.database}")
rate_limit_storage_uri = get_env("rate_limit_storage", "memory://")
rate_limit_enabled = get_bool("rate_limit_enabled", True)
host = get_env("host", "0.0.0.0")
port = get_env("port", 5000, cast=int)

payhere_config = {
    "merchant_id": get_env("payhere_merchant_id", ""),
    "merchant_secret": get_env("payhere_merchant_secret", ""),
    "mode": "live" if get_env("payhere_mode", "sandbox") == "live" else "sandbox",
    "currency": get_env("payhere_currency", constants.Pricing.currency),
    "return_url": get_env(
        "payhere_return_url", "http://localhost:5000/competitions/payment/success"
    ),
    "cancel_url": get_env(
        "payhere_cancel_url", "http://localhost:5000/competitions/payment/cancel"
    ),
    "notify_url": get_env(
        "payhere_notify_url",
        "http://localhost:5000/API/Competitions/Payment/Notify",
    ),
}

# Boundaries are calendar days in Sri Lanka time, inclusive on both ends.
registration_periods = {
    "early_bird_start": get_date("early_bird_start", "2025-11-11"),
    "early_bird_end": get_date("early_bird_end", "2025-11-20"),
    "standard_start": get_date("standard_start", "2025-11-21"),
    "standard_end": get_date("standard_end", "2025-12-20"),
    "late_start": get_date("late_start", "2025-12-21"),
    "late_end": get_date("late_end", "2025-12-24"),
}

cart_config = {
    "expiry_minutes": get_env(
        "cart_expiry_minutes", constants.Cart.expiry_minutes, cast=int
    ),
    "expiry_disabled": get_bool("cart_expiry_disabled", False),
}

identifier_max_retries = get_env(
    "identifier_max_retries", constants.Identifier.max_retries, cast=int
)
