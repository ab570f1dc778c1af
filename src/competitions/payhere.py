"""PayHere request signing and notification verification.

The hash is ``MD5(merchant_id + order_id + amount + currency + MD5(secret))``
with both digests as uppercase hex. Field order and casing are part of the
gateway contract.
"""

import hashlib
import hmac
from typing import Optional

from . import constants
from .models import PaymentStatus


def _md5_upper(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest().upper()


def generate_payhere_hash(
    merchant_id: str,
    order_id: str,
    amount: str,
    currency: str,
    merchant_secret: str,
) -> str:
    "Hash sent with the checkout form"
    hashed_secret = _md5_upper(merchant_secret)
    return _md5_upper(f"{merchant_id}{order_id}{amount}{currency}{hashed_secret}")


def verify_payhere_signature(
    merchant_id: str,
    order_id: str,
    amount: str,
    currency: str,
    status_code: str,
    md5sig: Optional[str],
    merchant_secret: str,
) -> bool:
    """Check the ``md5sig`` of a payment notification.

    Returns False for any mismatch or missing field; a False result means the
    notification must be rejected, not retried.
    """
    fields = (merchant_id, order_id, amount, currency, status_code, md5sig)
    if any(not isinstance(field, str) for field in fields) or not merchant_secret:
        return False

    hashed_secret = _md5_upper(merchant_secret)
    calculated = _md5_upper(
        f"{merchant_id}{order_id}{amount}{currency}{status_code}{hashed_secret}"
    )
    return hmac.compare_digest(calculated.encode("utf-8"), md5sig.encode("utf-8"))


def get_payhere_url(mode: str = "sandbox") -> str:
    "Checkout URL for the configured mode"
    urls = constants.PayHere.checkout_urls
    return urls["live"] if mode == "live" else urls["sandbox"]


def format_amount(amount) -> str:
    "PayHere expects amounts with exactly two decimals"
    return f"{float(amount):.2f}"


def payment_status_for(status_code: str) -> Optional[PaymentStatus]:
    """Map a notification ``status_code`` onto a payment status (None when unknown)."""
    return {
        constants.PayHere.status_success: PaymentStatus.COMPLETED,
        constants.PayHere.status_pending: PaymentStatus.PENDING,
        constants.PayHere.status_cancelled: PaymentStatus.CANCELLED,
        constants.PayHere.status_failed: PaymentStatus.FAILED,
        constants.PayHere.status_charged_back: PaymentStatus.REFUNDED,
    }.get(str(status_code).strip() if status_code is not None else "")


def build_payment_data(
    payhere_config: dict,
    order_id: str,
    amount,
    items_description: str,
    customer: dict,
) -> dict:
    """Return the form fields the browser posts to the PayHere checkout page."""
    formatted_amount = format_amount(amount)
    return {
        "merchant_id": payhere_config["merchant_id"],
        "return_url": payhere_config["return_url"],
        "cancel_url": payhere_config["cancel_url"],
        "notify_url": payhere_config["notify_url"],
        "order_id": order_id,
        "items": items_description,
        "currency": payhere_config["currency"],
        "amount": formatted_amount,
        "first_name": customer.get("first_name", ""),
        "last_name": customer.get("last_name", ""),
        "email": customer.get("email", ""),
        "phone": customer.get("phone") or "",
        "address": customer.get("address") or "",
        "city": customer.get("city") or "",
        "country": customer.get("country", ""),
        "hash": generate_payhere_hash(
            payhere_config["merchant_id"],
            order_id,
            formatted_amount,
            payhere_config["currency"],
            payhere_config["merchant_secret"],
        ),
    }
