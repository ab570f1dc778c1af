"containing various constants used throughout the competition registration backend"

import os
import datetime


class Path:
    "Define all Paths Of Files"
    base_dir = os.path.dirname(os.path.abspath(__file__))
    root_dir = os.path.abspath(os.path.join(base_dir, "..", ".."))
    static_dir = os.path.join(root_dir, "static")
    database_dir = os.path.join(static_dir, "database")
    database = os.path.join(database_dir, "competitions.db")


class Identifier:
    "Alphabet and formats for registration numbers, display codes and order ids"

    # no 0, O, I, l, 1 (and no 8)
    alphabet = "2345679ABCDEFGHJKLMNPQRSTUVWXYZ"
    code_length = 6
    display_code_prefix = "ARC"
    order_prefix = "ORDER-AC"
    order_sequence_width = 5
    order_timestamp_digits = 6
    max_retries = 10


class Timezone:
    "Fixed offset used for every registration period decision"
    sri_lanka = datetime.timezone(
        datetime.timedelta(hours=5, minutes=30), "Asia/Colombo"
    )


class Pricing:
    "Registration fees in LKR"
    currency = "LKR"
    student_fee = 2000
    kids_fee = 2000
    fallback_fee = 3000
    individual = {"EARLY_BIRD": 2000, "STANDARD": 3000, "LATE": 5000}
    group = {"EARLY_BIRD": 4000, "STANDARD": 5000, "LATE": 8000}


class PayHere:
    "PayHere checkout endpoints and notification status codes"
    checkout_urls = {
        "sandbox": "https://sandbox.payhere.lk/pay/checkout",
        "live": "https://www.payhere.lk/pay/checkout",
    }
    status_success = "2"
    status_pending = "0"
    status_cancelled = "-1"
    status_failed = "-2"
    status_charged_back = "-3"


class Cart:
    "Cart expiry windows"
    expiry_minutes = 30
    disabled_expiry_years = 10


class AppConfig:
    "Request limits for the public API"
    max_members_per_entry = 10
    max_items_per_cart = 20
    admin_page_size = 200


competitions_data = [
    {
        "slug": "archalley-competition-2025",
        "title": "Archalley Competition 2025 - Christmas Tree",
        "year": 2025,
        "start_date": datetime.datetime(2025, 11, 11),
        "end_date": datetime.datetime(2025, 12, 31),
        "registration_deadline": datetime.datetime(2025, 12, 24, 23, 59),
        "max_team_size": 4,
    },
]

