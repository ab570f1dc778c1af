"""Unit tests for validation, cart timing and formatting helpers."""
import datetime

import pytest

from competitions import utils
from competitions.models import RegistrationType

UTC = datetime.timezone.utc
NOW = datetime.datetime(2025, 11, 15, 10, 0, tzinfo=UTC)


def fixed(moment):
    return lambda: moment


class TestContactValidation:
    """Test email and phone checks."""

    @pytest.mark.parametrize(
        "email, expected",
        [
            ("nimal@example.com", True),
            ("a.b+c@studio.co.uk", True),
            ("nimal@example", False),
            ("nimal example.com", False),
            ("", False),
            (None, False),
        ],
    )
    def test_is_valid_email(self, email, expected):
        """Test the email pattern."""
        assert utils.is_valid_email(email) is expected

    @pytest.mark.parametrize(
        "phone, expected",
        [
            ("+94771234567", True),
            ("+94 77 123 4567", True),
            ("+1 (415) 555-0100", True),
            ("0771234567", False),
            ("+9477123", False),
            (None, False),
        ],
    )
    def test_is_valid_phone(self, phone, expected):
        """Test an international prefix is required and separators are ignored."""
        assert utils.is_valid_phone(phone) is expected


class TestValidateMemberInfo:
    """Test per-entry member validation."""

    def test_valid_regular_member(self):
        """Test a complete single entry member passes."""
        valid, errors = utils.validate_member_info(
            {"name": "Nimal Perera", "email": "nimal@example.com", "phone": "+94771234567"}
        )
        assert valid
        assert errors == []

    def test_regular_member_errors(self):
        """Test each missing field reports its own error."""
        valid, errors = utils.validate_member_info(
            {"name": "N", "email": "bad", "phone": "0771234567"}
        )
        assert not valid
        assert errors == [
            "Name must be at least 2 characters",
            "Valid email is required",
            "Invalid phone number format (use format: +94771234567)",
        ]

    def test_student_requires_institution_fields(self):
        """Test student entries need the institution details and an ID card."""
        valid, errors = utils.validate_member_info(
            {"name": "Kamal", "student_email": "k@uni.lk", "phone": "+94771234567"},
            is_student=True,
        )
        assert not valid
        assert "Institution name is required for student registrations" in errors
        assert "Course of study is required for student registrations" in errors
        assert "Student ID card upload is required for student registrations" in errors

    def test_kids_are_validated_against_guardian(self):
        """Test kids entries use the parent contact, not the child's."""
        member = {
            "name": "Little One",
            "parent_email": "parent@example.com",
            "parent_phone": "+94771234567",
            "parent_first_name": "Sunil",
            "parent_last_name": "Silva",
            "date_of_birth": "2015-04-01",
            "postal_address": "12 Galle Road, Colombo",
        }
        valid, errors = utils.validate_member_info(member, is_kids=True)
        assert valid, errors

        del member["postal_address"]
        valid, errors = utils.validate_member_info(member, is_kids=True)
        assert not valid
        assert errors == ["Postal address is required for kids registrations"]


class TestSanitizeAndTypes:
    """Test sanitising and type mapping."""

    def test_sanitize_strips_markup(self):
        """Test tags are removed and whitespace trimmed."""
        assert utils.sanitize_input("  <b>Team</b> Alpha ") == "Team Alpha"
        assert utils.sanitize_input(None) == ""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Single Entry", RegistrationType.INDIVIDUAL),
            ("Group Entry", RegistrationType.TEAM),
            ("team", RegistrationType.TEAM),
            ("Company Entry", RegistrationType.COMPANY),
            ("Student Entry", RegistrationType.STUDENT),
            ("Kids' Tree Category", RegistrationType.KIDS),
            (None, RegistrationType.INDIVIDUAL),
        ],
    )
    def test_get_participant_type(self, name, expected):
        """Test display names map onto registration types."""
        assert utils.get_participant_type(name) == expected


class TestCartTiming:
    """Test cart expiry helpers."""

    def test_expiry_after_configured_minutes(self):
        """Test a new cart expires after the configured minutes."""
        expires = utils.calculate_cart_expiry(expiry_minutes=30, clock=fixed(NOW))
        assert expires == NOW + datetime.timedelta(minutes=30)

    def test_disabled_expiry_is_ten_years_out(self):
        """Test disabled expiry pushes the date ten years ahead."""
        expires = utils.calculate_cart_expiry(expiry_disabled=True, clock=fixed(NOW))
        assert expires.year == 2035

    def test_disabled_expiry_on_leap_day(self):
        """Test 29 February does not break the ten-year shift."""
        leap_day = datetime.datetime(2028, 2, 29, tzinfo=UTC)
        expires = utils.calculate_cart_expiry(expiry_disabled=True, clock=fixed(leap_day))
        assert (expires.year, expires.month, expires.day) == (2038, 2, 28)

    def test_is_cart_expired(self):
        """Test naive stored timestamps compare as UTC."""
        stored = datetime.datetime(2025, 11, 15, 10, 30)
        assert not utils.is_cart_expired(stored, clock=fixed(NOW))
        later = NOW + datetime.timedelta(minutes=31)
        assert utils.is_cart_expired(stored, clock=fixed(later))
        assert not utils.is_cart_expired(stored, expiry_disabled=True, clock=fixed(later))


class TestMoneyAndDates:
    """Test totals and formatting."""

    def test_cart_total_never_negative(self):
        """Test the total is clamped at zero."""
        assert utils.calculate_cart_total(5000, 500) == 4500
        assert utils.calculate_cart_total(100, 500) == 0

    def test_currency_formats(self):
        """Test both currency renderings."""
        assert utils.format_currency(2000) == "LKR 2,000.00"
        assert utils.format_currency_simple(2000) == "2,000 LKR"

    def test_format_date(self):
        """Test long-form dates from objects and ISO strings."""
        assert utils.format_date(datetime.date(2025, 11, 21)) == "November 21, 2025"
        assert utils.format_date("2025-12-01T10:00:00") == "December 1, 2025"
        assert utils.format_date(None) == ""

    @pytest.mark.parametrize("value", ["", "not a date", "2025-13-40"])
    def test_format_date_malformed_string(self, value):
        """Test unparseable strings render as empty instead of raising."""
        assert utils.format_date(value) == ""

    def test_registration_open_and_days_remaining(self):
        """Test the open window and the rounded-up day count."""
        start = datetime.datetime(2025, 11, 11, tzinfo=UTC)
        deadline = datetime.datetime(2025, 11, 16, 12, 0, tzinfo=UTC)
        assert utils.is_registration_open(start, deadline, clock=fixed(NOW))
        assert not utils.is_registration_open(
            start, deadline, clock=fixed(deadline + datetime.timedelta(seconds=1))
        )
        assert utils.get_days_remaining(deadline, clock=fixed(NOW)) == 2


class TestSummarizeCart:
    """Test the cart summary without a database."""

    def test_no_cart(self):
        """Test a missing cart summarises as empty."""
        summary = utils.summarize_cart(None)
        assert summary["item_count"] == 0
        assert summary["total"] == 0
        assert summary["items"] == []
        assert summary["expires_at"] is None
