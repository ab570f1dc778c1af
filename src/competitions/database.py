"""DataBase code for competitions, carts, registrations and payments"""

import datetime
import logging
import os
from contextlib import contextmanager
from typing import Iterator, List, Optional
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from . import config
from . import constants
from . import models
from . import registration

logger = logging.getLogger(__name__)


def _build_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, connect_args={"check_same_thread": False})


db_engine = _build_engine(config.database_url)


def create_database():
    "Create the database and its tables if they do not exist"
    if db_engine.url.get_backend_name() == "sqlite" and db_engine.url.database:
        directory = os.path.dirname(os.path.abspath(db_engine.url.database))
        os.makedirs(directory, exist_ok=True)
    models.Base.metadata.create_all(bind=db_engine)


@contextmanager
def get_db_session() -> Iterator[Session]:
    "Get a database session"
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = session_local()
    try:
        yield db
    finally:
        db.close()


def populate_competitions(db: Session):
    "Insert the configured competitions that are not in the database yet"
    existing = {slug for (slug,) in db.query(models.Competition.slug).all()}
    added = 0
    for competition_data in constants.competitions_data:
        if competition_data["slug"] in existing:
            continue
        db.add(models.Competition(**competition_data))
        added += 1
    if added:
        db.commit()
        logger.info("Added %s competitions", added)


class ColumnIdentifierStore:
    """Identifier lookups against one unique string column.

    Implements ``registration.IdentifierStore`` without exposing the session
    or model to the identifier rules.
    """

    def __init__(self, db: Session, column):
        self.db = db
        self.column = column

    def exists(self, identifier: str) -> bool:
        statement = select(self.column).where(self.column == identifier).limit(1)
        return self.db.execute(statement).first() is not None

    def count_by_prefix(self, prefix: str) -> int:
        statement = select(func.count()).where(self.column.startswith(prefix))
        return self.db.execute(statement).scalar() or 0


def registration_number_store(db: Session) -> ColumnIdentifierStore:
    return ColumnIdentifierStore(db, models.CompetitionRegistration.registration_number)


def display_code_store(db: Session) -> ColumnIdentifierStore:
    return ColumnIdentifierStore(db, models.CompetitionRegistration.display_code)


def order_id_store(db: Session) -> ColumnIdentifierStore:
    return ColumnIdentifierStore(db, models.CompetitionPayment.order_id)


def next_order_id(db: Session, clock: registration.Clock = registration.utc_now) -> str:
    """Allocate the next order id.

    The sequence is ``count(existing orders this year) + 1`` and is not atomic;
    the timestamp suffix on the id and the unique ``order_id`` column are the
    only protection against two checkouts racing for the same number.
    """
    sequence = registration.get_next_order_sequence(order_id_store(db), clock=clock)
    return registration.generate_order_id(sequence, clock=clock)


class _ReservingStore:
    """Wraps a store so identifiers handed out in the current unit of work
    (not flushed yet) also count as taken."""

    def __init__(self, store: ColumnIdentifierStore, reserved: set):
        self.store = store
        self.reserved = reserved

    def exists(self, identifier: str) -> bool:
        return identifier in self.reserved or self.store.exists(identifier)

    def count_by_prefix(self, prefix: str) -> int:
        return self.store.count_by_prefix(prefix)


def _take_result(result: registration.GenerationResult, kind: str, reserved: set) -> str:
    for collision in result.collisions:
        logger.warning("%s collision detected: %s, retrying", kind, collision)
    if result.exhausted:
        logger.error("Gave up generating a %s after %s attempts", kind, result.attempts)
        raise registration.ExhaustedRetriesError(kind, result.attempts)
    reserved.add(result.value)
    return result.value


def new_registration_number(db: Session, reserved: Optional[set] = None) -> str:
    "Unique registration number, logging any collisions along the way"
    reserved = reserved if reserved is not None else set()
    result = registration.try_generate_unique_registration_number(
        _ReservingStore(registration_number_store(db), reserved),
        max_retries=config.identifier_max_retries,
    )
    return _take_result(result, "registration number", reserved)


def new_display_code(
    db: Session, year: Optional[int] = None, reserved: Optional[set] = None
) -> str:
    "Unique display code for ``year``, logging any collisions along the way"
    reserved = reserved if reserved is not None else set()
    result = registration.try_generate_unique_display_code(
        _ReservingStore(display_code_store(db), reserved),
        year,
        max_retries=config.identifier_max_retries,
    )
    return _take_result(result, "display code", reserved)


def get_competition_by_slug(db: Session, slug: str) -> Optional[models.Competition]:
    "Fetch a competition by its slug"
    return db.query(models.Competition).filter(models.Competition.slug == slug).first()


def get_active_cart(db: Session, token: str) -> Optional[models.RegistrationCart]:
    "Fetch the active cart for a browser token"
    return (
        db.query(models.RegistrationCart)
        .filter(
            models.RegistrationCart.token == token,
            models.RegistrationCart.status == models.CartStatus.ACTIVE,
        )
        .order_by(models.RegistrationCart.created_at.desc())
        .first()
    )


def get_payment_by_order_id(
    db: Session, order_id: str
) -> Optional[models.CompetitionPayment]:
    "Fetch a payment by its public order id"
    return (
        db.query(models.CompetitionPayment)
        .filter(models.CompetitionPayment.order_id == order_id)
        .first()
    )


def get_registrations(
    db: Session,
    status: Optional[models.RegistrationStatus] = None,
    participant_type: Optional[models.RegistrationType] = None,
    limit: int = constants.AppConfig.admin_page_size,
) -> List[models.CompetitionRegistration]:
    "Most recent registrations, optionally filtered by status and type"
    query = db.query(models.CompetitionRegistration)
    if status is not None:
        query = query.filter(models.CompetitionRegistration.status == status)
    if participant_type is not None:
        query = query.filter(
            models.CompetitionRegistration.participant_type == participant_type
        )
    return (
        query.order_by(models.CompetitionRegistration.registered_at.desc())
        .limit(limit)
        .all()
    )


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def update_registration_status(
    db: Session,
    registration_id: int,
    status: models.RegistrationStatus,
    **additional_data,
) -> Optional[models.CompetitionRegistration]:
    """Set a registration's status, stamping ``confirmed_at`` / ``submitted_at``.

    Does not commit.
    """
    entry = db.get(models.CompetitionRegistration, registration_id)
    if entry is None:
        return None

    entry.status = status
    for key, value in additional_data.items():
        setattr(entry, key, value)

    if (
        status == models.RegistrationStatus.CONFIRMED
        and "confirmed_at" not in additional_data
    ):
        entry.confirmed_at = _now()

    if (
        status == models.RegistrationStatus.SUBMITTED
        and "submitted_at" not in additional_data
    ):
        entry.submitted_at = _now()
        entry.submission_status = models.SubmissionStatus.SUBMITTED

    return entry


def update_submission_status(
    db: Session,
    registration_id: int,
    submission_status: models.SubmissionStatus,
    **additional_data,
) -> Optional[models.CompetitionRegistration]:
    """Set a registration's submission status.

    A (re)submission stamps ``submitted_at`` and moves a CONFIRMED
    registration to SUBMITTED. Does not commit.
    """
    entry = db.get(models.CompetitionRegistration, registration_id)
    if entry is None:
        return None

    entry.submission_status = submission_status
    for key, value in additional_data.items():
        setattr(entry, key, value)

    if (
        submission_status
        in (models.SubmissionStatus.SUBMITTED, models.SubmissionStatus.RESUBMITTED)
        and "submitted_at" not in additional_data
    ):
        entry.submitted_at = _now()
        if entry.status == models.RegistrationStatus.CONFIRMED:
            entry.status = models.RegistrationStatus.SUBMITTED

    return entry


def confirm_payment(db: Session, payment: models.CompetitionPayment) -> List[str]:
    """Mark a payment completed and confirm its registrations.

    Each confirmed registration without a display code gets one. Returns the
    confirmed registration numbers. Does not commit.
    """
    now = _now()
    payment.status = models.PaymentStatus.COMPLETED
    payment.completed_at = now

    reserved: set = set()
    confirmed = []
    for entry in payment.registrations:
        if entry.status == models.RegistrationStatus.PENDING:
            entry.status = models.RegistrationStatus.CONFIRMED
            entry.confirmed_at = now
        if not entry.display_code:
            year = entry.competition.year if entry.competition else None
            entry.display_code = new_display_code(db, year, reserved)
        confirmed.append(entry.registration_number)
    return confirmed


def revert_payment(db: Session, payment: models.CompetitionPayment) -> int:
    """Send a completed payment back to PENDING along with its registrations.

    Display codes are kept so a re-verification shows the same public code.
    Returns the number of registrations reverted. Does not commit.
    """
    payment.status = models.PaymentStatus.PENDING
    payment.completed_at = None

    reverted = 0
    for entry in payment.registrations:
        if entry.status == models.RegistrationStatus.CONFIRMED:
            entry.status = models.RegistrationStatus.PENDING
            entry.confirmed_at = None
            reverted += 1
    return reverted
