"""Unit tests for PayHere signing and verification."""
import pytest

from competitions import payhere
from competitions.models import PaymentStatus

CHECKOUT_HASH = "B7244B65218820BF47AD131444C56E86"
NOTIFY_SIGNATURE = "02D081E9E304A37053056B741FB52E83"


class TestGeneratePayhereHash:
    """Test the checkout hash."""

    def test_known_value(self):
        """Test against a precomputed double MD5."""
        assert payhere.generate_payhere_hash("M1", "O1", "100.00", "LKR", "secret") == (
            CHECKOUT_HASH
        )

    def test_is_uppercase_hex(self):
        """Test output is 32 uppercase hex characters."""
        digest = payhere.generate_payhere_hash("1211149", "ORDER-1", "2000.00", "LKR", "s")
        assert len(digest) == 32
        assert digest == digest.upper()
        int(digest, 16)

    def test_amount_formatting_changes_hash(self):
        """Test "100" and "100.00" are not interchangeable."""
        assert payhere.generate_payhere_hash("M1", "O1", "100", "LKR", "secret") != (
            CHECKOUT_HASH
        )


class TestVerifyPayhereSignature:
    """Test notification verification."""

    def test_valid_signature(self):
        """Test the signature over the status code is accepted."""
        assert payhere.verify_payhere_signature(
            "M1", "O1", "100.00", "LKR", "2", NOTIFY_SIGNATURE, "secret"
        )

    def test_single_flipped_character_is_rejected(self):
        """Test any tampering with the signature is rejected."""
        tampered = "12" + NOTIFY_SIGNATURE[2:]
        assert not payhere.verify_payhere_signature(
            "M1", "O1", "100.00", "LKR", "2", tampered, "secret"
        )

    def test_lowercase_signature_is_rejected(self):
        """Test the comparison is case sensitive."""
        assert not payhere.verify_payhere_signature(
            "M1", "O1", "100.00", "LKR", "2", NOTIFY_SIGNATURE.lower(), "secret"
        )

    def test_status_code_is_part_of_signature(self):
        """Test a signature for success cannot be replayed as another status."""
        assert not payhere.verify_payhere_signature(
            "M1", "O1", "100.00", "LKR", "-1", NOTIFY_SIGNATURE, "secret"
        )

    def test_checkout_hash_is_not_a_notification_signature(self):
        """Test the checkout hash does not verify a notification."""
        assert not payhere.verify_payhere_signature(
            "M1", "O1", "100.00", "LKR", "2", CHECKOUT_HASH, "secret"
        )

    def test_wrong_secret_is_rejected(self):
        """Test a different merchant secret fails."""
        assert not payhere.verify_payhere_signature(
            "M1", "O1", "100.00", "LKR", "2", NOTIFY_SIGNATURE, "other"
        )

    @pytest.mark.parametrize("missing", range(6))
    def test_missing_field_is_rejected(self, missing):
        """Test a missing field returns False instead of raising."""
        fields = ["M1", "O1", "100.00", "LKR", "2", NOTIFY_SIGNATURE]
        fields[missing] = None
        assert not payhere.verify_payhere_signature(*fields, "secret")

    def test_empty_secret_is_rejected(self):
        """Test an unconfigured merchant secret never verifies."""
        assert not payhere.verify_payhere_signature(
            "M1", "O1", "100.00", "LKR", "2", NOTIFY_SIGNATURE, ""
        )


class TestHelpers:
    """Test URL, amount and status helpers."""

    def test_checkout_urls(self):
        """Test sandbox is used for anything but live."""
        assert payhere.get_payhere_url("live") == "https://www.payhere.lk/pay/checkout"
        assert payhere.get_payhere_url("sandbox") == (
            "https://sandbox.payhere.lk/pay/checkout"
        )
        assert payhere.get_payhere_url("anything") == payhere.get_payhere_url("sandbox")

    @pytest.mark.parametrize(
        "amount, expected",
        [(2000, "2000.00"), (2500.5, "2500.50"), ("8000", "8000.00")],
    )
    def test_format_amount(self, amount, expected):
        """Test amounts are rendered with two decimals."""
        assert payhere.format_amount(amount) == expected

    @pytest.mark.parametrize(
        "code, expected",
        [
            ("2", PaymentStatus.COMPLETED),
            ("0", PaymentStatus.PENDING),
            ("-1", PaymentStatus.CANCELLED),
            ("-2", PaymentStatus.FAILED),
            ("-3", PaymentStatus.REFUNDED),
            (" 2 ", PaymentStatus.COMPLETED),
            ("7", None),
            (None, None),
        ],
    )
    def test_payment_status_for(self, code, expected):
        """Test notification status codes map onto payment statuses."""
        assert payhere.payment_status_for(code) == expected


class TestBuildPaymentData:
    """Test the checkout form payload."""

    PAYHERE_CONFIG = {
        "merchant_id": "M1",
        "merchant_secret": "secret",
        "mode": "sandbox",
        "currency": "LKR",
        "return_url": "https://example.com/return",
        "cancel_url": "https://example.com/cancel",
        "notify_url": "https://example.com/notify",
    }

    def test_payload(self):
        """Test fields are copied and the hash is computed over the formatted amount."""
        data = payhere.build_payment_data(
            self.PAYHERE_CONFIG,
            "O1",
            100,
            "Competition registration (1 entry)",
            {"first_name": "Nimal", "last_name": "Perera", "email": "n@example.com",
             "country": "Sri Lanka", "phone": None},
        )

        assert data["amount"] == "100.00"
        assert data["hash"] == CHECKOUT_HASH
        assert data["order_id"] == "O1"
        assert data["notify_url"] == "https://example.com/notify"
        assert data["first_name"] == "Nimal"
        assert data["phone"] == ""
        assert data["city"] == ""
        assert "merchant_secret" not in data
