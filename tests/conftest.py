"""Shared fixtures.

The application reads its settings from the environment when it is imported,
so the environment is prepared here before any ``competitions`` module loads.
"""
import os
import datetime
import tempfile

import bcrypt
import pytest

ADMIN_PASSWORD = "correct horse battery"
MERCHANT_ID = "1211149"
MERCHANT_SECRET = "test-merchant-secret"

_test_db_dir = tempfile.mkdtemp(prefix="competitions-tests-")

os.environ["secret_key"] = "test-secret-key"
os.environ["admin_password_hash"] = bcrypt.hashpw(
    ADMIN_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)
).decode("utf-8")
os.environ["database_url"] = f"sqlite:///{os.path.join(_test_db_dir, 'test.db')}"
os.environ["rate_limit_enabled"] = "false"
os.environ["payhere_merchant_id"] = MERCHANT_ID
os.environ["payhere_merchant_secret"] = MERCHANT_SECRET
os.environ["payhere_mode"] = "sandbox"
os.environ["payhere_currency"] = "LKR"
os.environ["early_bird_start"] = "2025-11-11"
os.environ["early_bird_end"] = "2025-11-20"
os.environ["standard_start"] = "2025-11-21"
os.environ["standard_end"] = "2025-12-20"
os.environ["late_start"] = "2025-12-21"
os.environ["late_end"] = "2025-12-24"
os.environ["cart_expiry_minutes"] = "30"
os.environ["cart_expiry_disabled"] = "false"
os.environ["identifier_max_retries"] = "10"

UTC = datetime.timezone.utc
EARLY_BIRD_NOW = datetime.datetime(2025, 11, 15, 10, 0, tzinfo=UTC)


class FixedClock:
    """Callable clock that stays where it is put."""

    def __init__(self, moment: datetime.datetime):
        self.moment = moment

    def __call__(self) -> datetime.datetime:
        return self.moment

    def advance(self, **delta):
        self.moment = self.moment + datetime.timedelta(**delta)


@pytest.fixture
def db():
    """Fresh schema with the configured competitions, and an open session."""
    from competitions import database, models

    models.Base.metadata.drop_all(bind=database.db_engine)
    models.Base.metadata.create_all(bind=database.db_engine)
    with database.get_db_session() as session:
        database.populate_competitions(session)
        yield session


@pytest.fixture
def make_clock():
    """Factory for clocks pinned to a given instant."""
    return FixedClock


@pytest.fixture
def clock():
    """Clock used by the app routes, inside the early bird window by default."""
    return FixedClock(EARLY_BIRD_NOW)


@pytest.fixture
def app(db, clock):
    from competitions.app import flask_app

    flask_app.config.update(
        TESTING=True,
        WTF_CSRF_ENABLED=False,
        COMPETITION_CLOCK=clock,
    )
    yield flask_app
    flask_app.config.pop("COMPETITION_CLOCK", None)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(app):
    test_client = app.test_client()
    response = test_client.post("/AdminLogin", json={"password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return test_client


@pytest.fixture
def admin_password():
    return ADMIN_PASSWORD
