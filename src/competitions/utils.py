"Utility functions for validation, sanitizing, cart timing and formatting"

import re
import datetime
from typing import Any, List, Optional, Tuple
import bleach  # type: ignore

from . import constants
from . import models
from .registration import Clock, utc_now


def _ensure_aware(dt: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Return timezone-aware datetime (UTC). If dt is None return None.
    If dt.tzinfo is None assume UTC (replace tzinfo)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.timezone.utc)
    return dt


def is_valid_email(email: Any) -> bool:
    "Validate email format using regex"
    if not isinstance(email, str):
        return False
    return re.fullmatch(r"[^\s@]+@[^\s@]+\.[^\s@]+", email) is not None


def is_valid_phone(phone: Any) -> bool:
    "Validate an international phone number (+ and country code required)"
    if not isinstance(phone, str):
        return False
    cleaned = re.sub(r"[\s\-()]", "", phone)
    return re.fullmatch(r"\+\d{1,3}\d{9,14}", cleaned) is not None


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


_PHONE_FORMAT_ERROR = "Invalid phone number format (use format: +94771234567)"


def validate_member_info(
    member: dict, is_student: bool = False, is_kids: bool = False
) -> Tuple[bool, List[str]]:
    """Validate one member of an entry.

    Kids entries are checked against the parent/guardian fields, student
    entries against the institution fields, and every other entry against the
    plain contact fields. Returns ``(valid, errors)``.
    """
    errors: List[str] = []

    name = member.get("name")
    if _is_blank(name) or len(name.strip()) < 2:
        errors.append("Name must be at least 2 characters")

    if is_kids:
        if not is_valid_email(member.get("parent_email")):
            errors.append("Valid parent/guardian email is required")
        if _is_blank(member.get("parent_phone")):
            errors.append("Parent/guardian phone number is required")
        elif not is_valid_phone(member.get("parent_phone")):
            errors.append(_PHONE_FORMAT_ERROR)
        if _is_blank(member.get("parent_first_name")):
            errors.append("Parent/guardian first name is required")
        if _is_blank(member.get("parent_last_name")):
            errors.append("Parent/guardian last name is required")
        if _is_blank(member.get("date_of_birth")):
            errors.append("Child's date of birth is required")
        if _is_blank(member.get("postal_address")):
            errors.append("Postal address is required for kids registrations")
    elif is_student:
        if not is_valid_email(member.get("student_email")):
            errors.append("Valid student email is required")
        if _is_blank(member.get("phone")):
            errors.append("Phone number is required")
        elif not is_valid_phone(member.get("phone")):
            errors.append(_PHONE_FORMAT_ERROR)
        if _is_blank(member.get("institution")):
            errors.append("Institution name is required for student registrations")
        if _is_blank(member.get("course_of_study")):
            errors.append("Course of study is required for student registrations")
        if _is_blank(member.get("date_of_birth")):
            errors.append("Date of birth is required for student registrations")
        if _is_blank(member.get("id_card_url")):
            errors.append(
                "Student ID card upload is required for student registrations"
            )
    else:
        if not is_valid_email(member.get("email")):
            errors.append("Valid email is required")
        if _is_blank(member.get("phone")):
            errors.append("Phone number is required")
        elif not is_valid_phone(member.get("phone")):
            errors.append(_PHONE_FORMAT_ERROR)

    return len(errors) == 0, errors


def sanitize_input(value: Optional[str]) -> str:
    "Strip markup and surrounding whitespace from user text"
    if not isinstance(value, str):
        return ""
    return bleach.clean(value, tags=[], strip=True).strip()


def get_participant_type(type_name: Optional[str]) -> models.RegistrationType:
    """Map a free-form registration type name (e.g. "Group Entry") to a type."""
    normalized = (type_name or "").upper()
    exact = models.RegistrationType.coerce(normalized)
    if exact is not None:
        return exact
    if "TEAM" in normalized or "GROUP" in normalized:
        return models.RegistrationType.TEAM
    if "COMPANY" in normalized:
        return models.RegistrationType.COMPANY
    if "STUDENT" in normalized:
        return models.RegistrationType.STUDENT
    if "KID" in normalized:
        return models.RegistrationType.KIDS
    return models.RegistrationType.INDIVIDUAL


def calculate_cart_expiry(
    expiry_disabled: bool = False,
    expiry_minutes: int = constants.Cart.expiry_minutes,
    clock: Clock = utc_now,
) -> datetime.datetime:
    "Return when a cart created now expires (ten years out when expiry is disabled)"
    now = _ensure_aware(clock())
    if expiry_disabled:
        try:
            return now.replace(year=now.year + constants.Cart.disabled_expiry_years)
        except ValueError:
            # 29 February
            return now.replace(
                year=now.year + constants.Cart.disabled_expiry_years, day=28
            )
    return now + datetime.timedelta(minutes=expiry_minutes)


def is_cart_expired(
    expires_at: datetime.datetime,
    expiry_disabled: bool = False,
    clock: Clock = utc_now,
) -> bool:
    "Check whether a cart has passed its expiry time"
    if expiry_disabled:
        return False
    return _ensure_aware(clock()) > _ensure_aware(expires_at)


def calculate_cart_total(subtotal: float, discount: float = 0) -> float:
    "Subtotal minus discount, never below zero"
    return max(0, subtotal - discount)


def format_currency(amount: float, currency: str = constants.Pricing.currency) -> str:
    "Formats an amount as e.g. 'LKR 2,000.00'"
    return f"{currency} {amount:,.2f}"


def format_currency_simple(
    amount: float, currency: str = constants.Pricing.currency
) -> str:
    "Formats an amount as e.g. '2,000 LKR'"
    return f"{amount:,} {currency}"


def format_date(value: Any) -> str:
    "Formats a date as e.g. 'November 21, 2025'"
    if isinstance(value, str):
        try:
            value = datetime.datetime.fromisoformat(value.strip())
        except ValueError:
            return ""
    if not isinstance(value, (datetime.date, datetime.datetime)):
        return ""
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def is_registration_open(
    start_date: datetime.datetime,
    deadline: datetime.datetime,
    clock: Clock = utc_now,
) -> bool:
    "Check whether now falls between the start date and the deadline"
    now = _ensure_aware(clock())
    return _ensure_aware(start_date) <= now <= _ensure_aware(deadline)


def get_days_remaining(deadline: datetime.datetime, clock: Clock = utc_now) -> int:
    "Whole days left until the deadline, rounded up"
    diff = _ensure_aware(deadline) - _ensure_aware(clock())
    seconds = diff.total_seconds()
    return int(-(-seconds // 86400))


def _iso(value: Optional[datetime.datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def serialize_cart_item(item: models.RegistrationCartItem) -> dict:
    "JSON shape of a cart item"
    return {
        "id": item.item_id,
        "competition_title": item.competition.title if item.competition else None,
        "registration_type": item.participant_type.value,
        "registration_type_label": item.participant_type.label,
        "period": item.period.value,
        "country": item.country,
        "member_count": len(item.members or []),
        "unit_price": item.unit_price,
        "subtotal": item.subtotal,
        "subtotal_display": format_currency(item.subtotal),
    }


def summarize_cart(cart: Optional[models.RegistrationCart]) -> dict:
    "Item list and totals for a cart (an empty summary when there is no cart)"
    items = list(cart.items) if cart is not None else []
    subtotal = sum(item.subtotal for item in items)
    total = calculate_cart_total(subtotal)
    return {
        "item_count": len(items),
        "subtotal": subtotal,
        "discount": 0,
        "total": total,
        "total_display": format_currency(total),
        "currency": constants.Pricing.currency,
        "expires_at": _iso(cart.expires_at) if cart is not None else None,
        "items": [serialize_cart_item(item) for item in items],
    }


def serialize_registration(entry: models.CompetitionRegistration) -> dict:
    "JSON shape of a registration"
    return {
        "id": entry.registration_id,
        "registration_number": entry.registration_number,
        "display_code": entry.display_code,
        "competition": entry.competition.slug if entry.competition else None,
        "participant_type": entry.participant_type.value,
        "country": entry.country,
        "team_name": entry.team_name,
        "company_name": entry.company_name,
        "members": entry.members,
        "amount_paid": entry.amount_paid,
        "currency": entry.currency,
        "status": entry.status.value,
        "submission_status": entry.submission_status.value,
        "order_id": entry.payment.order_id if entry.payment else None,
        "registered_at": _iso(entry.registered_at),
        "confirmed_at": _iso(entry.confirmed_at),
        "submitted_at": _iso(entry.submitted_at),
    }


def serialize_payment(payment: models.CompetitionPayment) -> dict:
    "JSON shape of a payment, without gateway response details"
    return {
        "order_id": payment.order_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "method": payment.method.value,
        "status": payment.status.value,
        "status_label": payment.status.label,
        "initiated_at": _iso(payment.initiated_at),
        "completed_at": _iso(payment.completed_at),
        "registrations": [
            {
                "registration_number": entry.registration_number,
                "display_code": entry.display_code,
                "status": entry.status.value,
            }
            for entry in payment.registrations
        ],
    }
