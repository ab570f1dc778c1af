"""ORM models for the application using SQLAlchemy."""

from __future__ import annotations

import enum
import datetime
from typing import Optional

from sqlalchemy.orm import (
    DeclarativeBase,
    relationship,
    Mapped,
    mapped_column,
)
from sqlalchemy import (
    String,
    ForeignKey,
    TEXT,
    JSON,
    Enum as sql_alchemy_enum,
    DateTime,
    Index,
)


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class LabeledEnum(enum.Enum):
    """Enum base class with an additional label attribute for display."""

    label: str

    def __new__(cls, value, label):
        obj = object.__new__(cls)
        obj._value_ = value
        obj.label = label
        return obj

    @classmethod
    def coerce(cls, raw_value):
        """Return the member for ``raw_value`` (member, value or name), else ``None``."""
        if isinstance(raw_value, cls):
            return raw_value
        if not isinstance(raw_value, str):
            return None
        normalized = raw_value.strip().upper()
        for member in cls:
            if member.value == normalized or member.name == normalized:
                return member
        return None


class RegistrationType(LabeledEnum):
    """Kind of entry a participant registers for."""

    INDIVIDUAL = ("INDIVIDUAL", "Single Entry")
    TEAM = ("TEAM", "Group Entry")
    COMPANY = ("COMPANY", "Company Entry")
    STUDENT = ("STUDENT", "Student Entry")
    KIDS = ("KIDS", "Kids' Tree Category")


class RegistrationPeriod(LabeledEnum):
    """Named date windows controlling the pricing tier."""

    EARLY_BIRD = ("EARLY_BIRD", "Early Bird")
    STANDARD = ("STANDARD", "Standard")
    LATE = ("LATE", "Late")


class CompetitionStatus(LabeledEnum):
    UPCOMING = ("UPCOMING", "Coming Soon")
    REGISTRATION_OPEN = ("REGISTRATION_OPEN", "Registration Open")
    REGISTRATION_CLOSED = ("REGISTRATION_CLOSED", "Registration Closed")
    IN_PROGRESS = ("IN_PROGRESS", "In Progress")
    JUDGING = ("JUDGING", "Judging Phase")
    COMPLETED = ("COMPLETED", "Completed")
    CANCELLED = ("CANCELLED", "Cancelled")


class CartStatus(LabeledEnum):
    ACTIVE = ("ACTIVE", "Active")
    COMPLETED = ("COMPLETED", "Completed")
    EXPIRED = ("EXPIRED", "Expired")
    ABANDONED = ("ABANDONED", "Abandoned")


class RegistrationStatus(LabeledEnum):
    """Enumeration for the lifecycle of a registration."""

    PENDING = ("PENDING", "Pending Confirmation")
    CONFIRMED = ("CONFIRMED", "Confirmed")
    SUBMITTED = ("SUBMITTED", "Project Submitted")
    UNDER_REVIEW = ("UNDER_REVIEW", "Under Review")
    COMPLETED = ("COMPLETED", "Completed")
    CANCELLED = ("CANCELLED", "Cancelled")
    REFUNDED = ("REFUNDED", "Refunded")


class SubmissionStatus(LabeledEnum):
    NOT_SUBMITTED = ("NOT_SUBMITTED", "Not Submitted")
    DRAFT = ("DRAFT", "Draft")
    IN_PROGRESS = ("IN_PROGRESS", "In Progress")
    SUBMITTED = ("SUBMITTED", "Submitted")
    RESUBMITTED = ("RESUBMITTED", "Resubmitted")
    ACCEPTED = ("ACCEPTED", "Accepted")
    REJECTED = ("REJECTED", "Rejected")


class PaymentStatus(LabeledEnum):
    """Enumeration for the status of a payment."""

    PENDING = ("PENDING", "Payment Pending")
    PROCESSING = ("PROCESSING", "Processing Payment")
    COMPLETED = ("COMPLETED", "Payment Completed")
    FAILED = ("FAILED", "Payment Failed")
    CANCELLED = ("CANCELLED", "Payment Cancelled")
    REFUNDED = ("REFUNDED", "Payment Refunded")
    PARTIALLY_REFUNDED = ("PARTIALLY_REFUNDED", "Partially Refunded")
    EXPIRED = ("EXPIRED", "Payment Expired")


class PaymentMethod(LabeledEnum):
    CARD = ("CARD", "Card (PayHere)")
    BANK_TRANSFER = ("BANK_TRANSFER", "Bank Transfer")


class Competition(Base):
    """Represents a competition that accepts registrations."""

    __tablename__ = "competitions"
    competition_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    year: Mapped[int] = mapped_column(nullable=False, index=True)
    start_date: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    registration_deadline: Mapped[datetime.datetime] = mapped_column(
        DateTime, nullable=False
    )
    max_team_size: Mapped[int] = mapped_column(default=1)
    status: Mapped[CompetitionStatus] = mapped_column(
        sql_alchemy_enum(CompetitionStatus),
        default=CompetitionStatus.REGISTRATION_OPEN,
        nullable=False,
    )

    registrations = relationship(
        "CompetitionRegistration",
        back_populates="competition",
        cascade="all, delete-orphan",
    )


class RegistrationCart(Base):
    """Pending entries collected before checkout, keyed by a browser token."""

    __tablename__ = "registration_carts"
    cart_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[CartStatus] = mapped_column(
        sql_alchemy_enum(CartStatus), default=CartStatus.ACTIVE, nullable=False
    )
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utc_now)
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)

    items = relationship(
        "RegistrationCartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
    )


class RegistrationCartItem(Base):
    """A single priced entry in a cart."""

    __tablename__ = "registration_cart_items"
    item_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    cart_id: Mapped[int] = mapped_column(
        ForeignKey("registration_carts.cart_id"), nullable=False, index=True
    )
    competition_id: Mapped[int] = mapped_column(
        ForeignKey("competitions.competition_id"), nullable=False
    )
    participant_type: Mapped[RegistrationType] = mapped_column(
        sql_alchemy_enum(RegistrationType), nullable=False
    )
    period: Mapped[RegistrationPeriod] = mapped_column(
        sql_alchemy_enum(RegistrationPeriod), nullable=False
    )
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    team_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    referral_source: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    members: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    unit_price: Mapped[int] = mapped_column(nullable=False)
    subtotal: Mapped[int] = mapped_column(nullable=False)

    cart = relationship("RegistrationCart", back_populates="items")
    competition = relationship("Competition")


class CompetitionPayment(Base):
    """A checkout attempt, identified publicly by its order id."""

    __tablename__ = "competition_payments"
    __table_args__ = (
        Index("payments_status_initiated_idx", "status", "initiated_at"),
    )
    payment_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    amount: Mapped[int] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="LKR")
    merchant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    method: Mapped[PaymentMethod] = mapped_column(
        sql_alchemy_enum(PaymentMethod), default=PaymentMethod.CARD, nullable=False
    )
    status: Mapped[PaymentStatus] = mapped_column(
        sql_alchemy_enum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    status_code: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True
    )
    error_message: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    customer_details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    response_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    bank_slip_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    initiated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, default=_utc_now
    )
    completed_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime, nullable=True
    )
    refunded_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime, nullable=True
    )

    registrations = relationship("CompetitionRegistration", back_populates="payment")


class CompetitionRegistration(Base):
    """A participant's entry in a competition."""

    __tablename__ = "competition_registrations"
    __table_args__ = (
        Index("registrations_competition_status_idx", "competition_id", "status"),
    )
    registration_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    registration_number: Mapped[str] = mapped_column(
        String(16), nullable=False, unique=True
    )
    display_code: Mapped[Optional[str]] = mapped_column(
        String(32), nullable=True, unique=True
    )
    competition_id: Mapped[int] = mapped_column(
        ForeignKey("competitions.competition_id"), nullable=False
    )
    payment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("competition_payments.payment_id"), nullable=True, index=True
    )
    participant_type: Mapped[RegistrationType] = mapped_column(
        sql_alchemy_enum(RegistrationType), nullable=False
    )
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    team_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    referral_source: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    members: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    amount_paid: Mapped[int] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="LKR")
    status: Mapped[RegistrationStatus] = mapped_column(
        sql_alchemy_enum(RegistrationStatus),
        default=RegistrationStatus.PENDING,
        nullable=False,
    )
    submission_status: Mapped[SubmissionStatus] = mapped_column(
        sql_alchemy_enum(SubmissionStatus),
        default=SubmissionStatus.NOT_SUBMITTED,
        nullable=False,
    )
    registered_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, default=_utc_now
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, default=_utc_now, onupdate=_utc_now
    )
    confirmed_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime, nullable=True
    )
    submitted_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        DateTime, nullable=True
    )

    competition = relationship("Competition", back_populates="registrations")
    payment = relationship("CompetitionPayment", back_populates="registrations")
