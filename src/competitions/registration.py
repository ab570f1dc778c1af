"""Registration identifiers, registration periods and pricing.

Everything here is a pure rule except the ``*_unique_*`` generators, which
read from an :class:`IdentifierStore` and nothing else. "Now" always comes
from an injectable clock so that period boundaries can be tested without
touching the wall clock.

Periods and prices are derived on demand and never stored, so re-evaluating
the same registration on a later day can produce a different price.
"""

from __future__ import annotations

import datetime
import secrets
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Union

from . import constants
from .models import RegistrationPeriod, RegistrationType

Clock = Callable[[], datetime.datetime]
RandomBytes = Callable[[int], bytes]

SRI_LANKA_TZ = constants.Timezone.sri_lanka
_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


def utc_now() -> datetime.datetime:
    "Default clock: the current instant in UTC"
    return datetime.datetime.now(datetime.timezone.utc)


class ExhaustedRetriesError(Exception):
    """Raised when every draw of a unique generator collided with a stored identifier."""

    def __init__(self, kind: str, attempts: int):
        super().__init__(
            f"Failed to generate unique {kind} after {attempts} attempts"
        )
        self.kind = kind
        self.attempts = attempts


class IdentifierStore(Protocol):
    """The only persistence surface the identifier rules depend on."""

    def exists(self, identifier: str) -> bool: ...

    def count_by_prefix(self, prefix: str) -> int: ...


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of a bounded unique-identifier search."""

    value: Optional[str]
    attempts: int
    collisions: tuple = ()

    @property
    def exhausted(self) -> bool:
        return self.value is None


# ============================================
# IDENTIFIER GENERATION
# ============================================


def _random_code(random_bytes: RandomBytes) -> str:
    alphabet = constants.Identifier.alphabet
    length = constants.Identifier.code_length
    drawn = random_bytes(length)
    return "".join(alphabet[byte % len(alphabet)] for byte in drawn[:length])


def _current_year(year: Optional[int], clock: Clock) -> int:
    if year:
        return year
    return get_current_date_in_sri_lanka(clock).year


def generate_registration_number(
    random_bytes: RandomBytes = secrets.token_bytes,
) -> str:
    """Return a 6-character registration number, e.g. ``X7K9M2``.

    Not unique by construction; use :func:`generate_unique_registration_number`
    when the result is going to be persisted.
    """
    return _random_code(random_bytes)


def generate_display_code(
    year: Optional[int] = None,
    random_bytes: RandomBytes = secrets.token_bytes,
    clock: Clock = utc_now,
) -> str:
    """Return an anonymous public code such as ``ARC2025-X7K9M2``.

    Shown next to published entries instead of the participant's name.
    """
    prefix = f"{constants.Identifier.display_code_prefix}{_current_year(year, clock)}"
    return f"{prefix}-{_random_code(random_bytes)}"


def _search_unique(
    draw: Callable[[], str], store: IdentifierStore, max_retries: int
) -> GenerationResult:
    collisions = []
    for attempt in range(1, max_retries + 1):
        candidate = draw()
        if not store.exists(candidate):
            return GenerationResult(candidate, attempt, tuple(collisions))
        collisions.append(candidate)
    return GenerationResult(None, max_retries, tuple(collisions))


def try_generate_unique_registration_number(
    store: IdentifierStore,
    max_retries: int = constants.Identifier.max_retries,
    random_bytes: RandomBytes = secrets.token_bytes,
) -> GenerationResult:
    "Search for an unused registration number without raising"
    return _search_unique(
        lambda: generate_registration_number(random_bytes), store, max_retries
    )


def generate_unique_registration_number(
    store: IdentifierStore,
    max_retries: int = constants.Identifier.max_retries,
    random_bytes: RandomBytes = secrets.token_bytes,
) -> str:
    """Return a registration number not yet present in ``store``.

    Raises:
        ExhaustedRetriesError: after ``max_retries`` consecutive collisions
    """
    result = try_generate_unique_registration_number(store, max_retries, random_bytes)
    if result.exhausted:
        raise ExhaustedRetriesError("registration number", result.attempts)
    return result.value


def try_generate_unique_display_code(
    store: IdentifierStore,
    year: Optional[int] = None,
    max_retries: int = constants.Identifier.max_retries,
    random_bytes: RandomBytes = secrets.token_bytes,
    clock: Clock = utc_now,
) -> GenerationResult:
    "Search for an unused display code for ``year`` without raising"
    year = _current_year(year, clock)
    return _search_unique(
        lambda: generate_display_code(year, random_bytes), store, max_retries
    )


def generate_unique_display_code(
    store: IdentifierStore,
    year: Optional[int] = None,
    max_retries: int = constants.Identifier.max_retries,
    random_bytes: RandomBytes = secrets.token_bytes,
    clock: Clock = utc_now,
) -> str:
    """Return a display code for ``year`` not yet present in ``store``.

    Raises:
        ExhaustedRetriesError: after ``max_retries`` consecutive collisions
    """
    result = try_generate_unique_display_code(
        store, year, max_retries, random_bytes, clock
    )
    if result.exhausted:
        raise ExhaustedRetriesError("display code", result.attempts)
    return result.value


def order_id_prefix(year: Optional[int] = None, clock: Clock = utc_now) -> str:
    return f"{constants.Identifier.order_prefix}{_current_year(year, clock)}"


def generate_order_id(
    sequence: int, year: Optional[int] = None, clock: Clock = utc_now
) -> str:
    """Return ``ORDER-AC{year}-{sequence:05d}-{last 6 digits of epoch millis}``.

    The sequence comes from a count-then-use read (see
    :func:`get_next_order_sequence`), so two concurrent checkouts can share it.
    The timestamp suffix makes that unlikely to produce the same order id but
    does not rule it out; the unique column on the payments table is the
    final guard.
    """
    now = clock()
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    millis = (now - _EPOCH) // datetime.timedelta(milliseconds=1)
    digits = constants.Identifier.order_timestamp_digits
    suffix = str(millis)[-digits:].zfill(digits)
    padded_sequence = str(sequence).zfill(constants.Identifier.order_sequence_width)
    return f"{order_id_prefix(year, clock)}-{padded_sequence}-{suffix}"


def get_next_order_sequence(
    store: IdentifierStore, year: Optional[int] = None, clock: Clock = utc_now
) -> int:
    "Count this year's orders and return the next sequence number (racy)"
    return store.count_by_prefix(order_id_prefix(year, clock)) + 1


# ============================================
# TIMEZONE-AWARE PERIOD RESOLUTION
# ============================================


def _to_sri_lanka(moment: datetime.datetime) -> datetime.datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    return moment.astimezone(SRI_LANKA_TZ)


def get_current_date_in_sri_lanka(clock: Clock = utc_now) -> datetime.datetime:
    """Return the current wall-clock time at UTC+05:30, whatever the host timezone."""
    return _to_sri_lanka(clock())


def compare_dates_by_calendar_day(
    first: datetime.datetime, second: datetime.datetime
) -> int:
    """Compare two instants by their Sri Lanka calendar day.

    Returns -1, 0 or 1. Naive datetimes are taken to be UTC.
    """
    first_day = _to_sri_lanka(first).date()
    second_day = _to_sri_lanka(second).date()
    if first_day < second_day:
        return -1
    if first_day > second_day:
        return 1
    return 0


def is_within_window(
    moment: datetime.datetime, start: datetime.datetime, end: datetime.datetime
) -> bool:
    "Inclusive calendar-day window check"
    return (
        compare_dates_by_calendar_day(moment, start) >= 0
        and compare_dates_by_calendar_day(moment, end) <= 0
    )


def get_registration_period(
    early_bird_start: datetime.datetime,
    early_bird_end: datetime.datetime,
    standard_start: datetime.datetime,
    standard_end: datetime.datetime,
    late_start: datetime.datetime,
    late_end: datetime.datetime,
    clock: Clock = utc_now,
) -> RegistrationPeriod:
    """Resolve the pricing period for today in Sri Lanka.

    Windows are checked EARLY_BIRD, then LATE, then STANDARD, so overlapping
    configuration still resolves deterministically. A date outside every
    window is priced as STANDARD.
    """
    today = get_current_date_in_sri_lanka(clock)

    if is_within_window(today, early_bird_start, early_bird_end):
        return RegistrationPeriod.EARLY_BIRD
    if is_within_window(today, late_start, late_end):
        return RegistrationPeriod.LATE
    if is_within_window(today, standard_start, standard_end):
        return RegistrationPeriod.STANDARD
    return RegistrationPeriod.STANDARD


@dataclass(frozen=True)
class PeriodSchedule:
    """The six configured period boundaries."""

    early_bird_start: datetime.datetime
    early_bird_end: datetime.datetime
    standard_start: datetime.datetime
    standard_end: datetime.datetime
    late_start: datetime.datetime
    late_end: datetime.datetime

    @classmethod
    def from_config(cls, periods: dict) -> "PeriodSchedule":
        return cls(**periods)

    def boundaries(self) -> tuple:
        return (
            self.early_bird_start,
            self.early_bird_end,
            self.standard_start,
            self.standard_end,
            self.late_start,
            self.late_end,
        )

    def period_end(self, period: RegistrationPeriod) -> datetime.datetime:
        "Last calendar day of ``period``"
        return {
            RegistrationPeriod.EARLY_BIRD: self.early_bird_end,
            RegistrationPeriod.STANDARD: self.standard_end,
            RegistrationPeriod.LATE: self.late_end,
        }[period]


def get_current_period(
    schedule: PeriodSchedule, clock: Clock = utc_now
) -> RegistrationPeriod:
    return get_registration_period(*schedule.boundaries(), clock=clock)


# ============================================
# PRICING
# ============================================


def calculate_registration_price(
    registration_type: Union[RegistrationType, str, None],
    period: Union[RegistrationPeriod, str, None],
) -> int:
    """Return the fee in LKR for ``registration_type`` during ``period``.

    Student and kids entries cost the same in every period. An unrecognised
    period is priced at the STANDARD tier and an unrecognised type at the
    single-entry STANDARD fee; this function never raises.
    """
    reg_type = RegistrationType.coerce(registration_type)
    reg_period = RegistrationPeriod.coerce(period) or RegistrationPeriod.STANDARD

    if reg_type == RegistrationType.KIDS:
        return constants.Pricing.kids_fee

    if reg_type == RegistrationType.STUDENT:
        return constants.Pricing.student_fee

    if reg_type == RegistrationType.INDIVIDUAL:
        return constants.Pricing.individual[reg_period.value]

    if reg_type in (RegistrationType.TEAM, RegistrationType.COMPANY):
        return constants.Pricing.group[reg_period.value]

    return constants.Pricing.fallback_fee


def get_price_list(period: Union[RegistrationPeriod, str, None]) -> dict:
    "Price of every registration type for ``period``, keyed by type value"
    return {
        reg_type.value: calculate_registration_price(reg_type, period)
        for reg_type in RegistrationType
    }
