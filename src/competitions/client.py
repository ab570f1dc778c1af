"Public competition routes: pricing, cart, checkout and the PayHere callback"

import secrets
import datetime
from sqlalchemy import exc
from flask_wtf.csrf import generate_csrf  # type:ignore
from flask import (
    Blueprint,
    abort,
    request,
    session,
    jsonify,
    current_app,
)

from . import config
from . import database
from . import constants
from . import models
from . import payhere
from . import registration
from . import utils
from .extensions import csrf_protector, limiter

client_blueprint = Blueprint("client", __name__)

_MEMBER_TEXT_FIELDS = (
    "name",
    "first_name",
    "last_name",
    "email",
    "phone",
    "role",
    "student_id",
    "institution",
    "course_of_study",
    "date_of_birth",
    "student_email",
    "id_card_url",
    "parent_first_name",
    "parent_last_name",
    "parent_email",
    "parent_phone",
    "postal_address",
)

_REQUIRED_AGREEMENTS = (
    "agreed_to_terms",
    "agreed_to_website_terms",
    "agreed_to_privacy_policy",
    "agreed_to_refund_policy",
)

_UNSETTLED_PAYMENT_STATUSES = (
    models.PaymentStatus.PENDING,
    models.PaymentStatus.PROCESSING,
)

_SINGLE_MEMBER_TYPES = (
    models.RegistrationType.INDIVIDUAL,
    models.RegistrationType.STUDENT,
    models.RegistrationType.KIDS,
)


def _clock() -> registration.Clock:
    """Clock used by the routes; tests swap it through the app config."""
    return current_app.config.get("COMPETITION_CLOCK") or registration.utc_now


def _current_period() -> models.RegistrationPeriod:
    schedule = registration.PeriodSchedule.from_config(config.registration_periods)
    return registration.get_current_period(schedule, clock=_clock())


def _cart_token(create: bool = False):
    token = session.get("cart_token")
    if token is None and create:
        token = secrets.token_urlsafe(16)
        session["cart_token"] = token
    return token


def _error(message, status_code, **extra):
    payload = {"success": False, "error": message}
    payload.update(extra)
    return jsonify(payload), status_code


def _clean_member(raw_member: dict) -> dict:
    return {
        field: utils.sanitize_input(raw_member.get(field))
        for field in _MEMBER_TEXT_FIELDS
        if raw_member.get(field) is not None
    }


def _validate_entry(request_data: dict, competition: models.Competition):
    """Return (participant_type, members, errors) for a cart entry."""
    errors = []

    participant_type = models.RegistrationType.coerce(
        request_data.get("participant_type")
    )
    if participant_type is None:
        return None, [], ["Unknown registration type"]

    raw_members = request_data.get("members")
    if not isinstance(raw_members, list) or not raw_members:
        return participant_type, [], ["At least one member is required"]

    if participant_type in _SINGLE_MEMBER_TYPES:
        max_members = 1
    else:
        max_members = min(competition.max_team_size, constants.AppConfig.max_members_per_entry)
    if len(raw_members) > max_members:
        errors.append(f"This registration type allows at most {max_members} member(s)")

    members = []
    for index, raw_member in enumerate(raw_members, start=1):
        if not isinstance(raw_member, dict):
            errors.append(f"Member {index}: invalid member data")
            continue
        member = _clean_member(raw_member)
        is_valid, member_errors = utils.validate_member_info(
            member,
            is_student=participant_type == models.RegistrationType.STUDENT,
            is_kids=participant_type == models.RegistrationType.KIDS,
        )
        if not is_valid:
            errors.extend(f"Member {index}: {error}" for error in member_errors)
        members.append(member)

    if not utils.sanitize_input(request_data.get("country")):
        errors.append("Country is required")

    agreements = request_data.get("agreements")
    if not isinstance(agreements, dict) or not all(
        agreements.get(key) is True for key in _REQUIRED_AGREEMENTS
    ):
        errors.append("All terms and policies must be accepted")

    return participant_type, members, errors


@client_blueprint.route("/API/CSRFToken")
def api_csrf_token():
    """Token for the ``X-CSRFToken`` header of every state-changing request."""
    return jsonify({"success": True, "data": {"csrf_token": generate_csrf()}})


@client_blueprint.route("/API/Competitions/Pricing")
def api_pricing():
    """Current registration period and the price of every registration type."""
    period = _current_period()
    schedule = registration.PeriodSchedule.from_config(config.registration_periods)
    period_end = schedule.period_end(period)
    # the end day is inclusive, so the period closes at the following midnight
    closes_at = period_end + datetime.timedelta(days=1)
    prices = registration.get_price_list(period)
    days_remaining = max(0, utils.get_days_remaining(closes_at, clock=_clock()))
    return jsonify(
        {
            "success": True,
            "data": {
                "period": period.value,
                "period_label": period.label,
                "period_ends": utils.format_date(period_end),
                "days_remaining": days_remaining,
                "currency": constants.Pricing.currency,
                "prices": prices,
                "price_labels": {
                    reg_type: utils.format_currency_simple(price)
                    for reg_type, price in prices.items()
                },
            },
        }
    )


@client_blueprint.route("/API/Competitions/Cart")
def api_get_cart():
    """Return the visitor's active cart."""
    token = _cart_token()
    if token is None:
        return jsonify({"success": True, "data": utils.summarize_cart(None)})

    with database.get_db_session() as db:
        cart = database.get_active_cart(db, token)
        if cart is not None and utils.is_cart_expired(
            cart.expires_at, config.cart_config["expiry_disabled"], clock=_clock()
        ):
            cart.status = models.CartStatus.EXPIRED
            db.commit()
            cart = None
        return jsonify({"success": True, "data": utils.summarize_cart(cart)})


@client_blueprint.route("/API/Competitions/Cart/Add", methods=["POST"])
@limiter.limit("30 per minute")
def api_add_to_cart():
    """Validate an entry, price it for the current period and add it to the cart."""
    request_data = request.get_json(silent=True) or {}
    clock = _clock()

    with database.get_db_session() as db:
        competition = database.get_competition_by_slug(
            db, str(request_data.get("competition_slug") or "")
        )
        if competition is None:
            return _error("Competition not found", 404)

        if competition.status != models.CompetitionStatus.REGISTRATION_OPEN or not (
            utils.is_registration_open(
                competition.start_date, competition.registration_deadline, clock=clock
            )
        ):
            return _error("Registration is closed for this competition", 400)

        participant_type, members, errors = _validate_entry(request_data, competition)
        if errors:
            return _error("Validation failed", 400, details=errors)

        period = _current_period()
        unit_price = registration.calculate_registration_price(participant_type, period)

        token = _cart_token(create=True)
        cart = database.get_active_cart(db, token)
        if cart is not None and utils.is_cart_expired(
            cart.expires_at, config.cart_config["expiry_disabled"], clock=clock
        ):
            cart.status = models.CartStatus.EXPIRED
            cart = None
        if cart is None:
            cart = models.RegistrationCart(
                token=token,
                expires_at=utils.calculate_cart_expiry(
                    config.cart_config["expiry_disabled"],
                    config.cart_config["expiry_minutes"],
                    clock=clock,
                ),
            )
            db.add(cart)
        elif len(cart.items) >= constants.AppConfig.max_items_per_cart:
            return _error("Cart is full", 400)

        item = models.RegistrationCartItem(
            competition=competition,
            participant_type=participant_type,
            period=period,
            country=utils.sanitize_input(request_data.get("country")),
            team_name=utils.sanitize_input(request_data.get("team_name")) or None,
            company_name=utils.sanitize_input(request_data.get("company_name")) or None,
            referral_source=utils.sanitize_input(request_data.get("referral_source"))
            or None,
            members=members,
            unit_price=unit_price,
            subtotal=unit_price,
        )
        cart.items.append(item)

        try:
            db.commit()
        except exc.SQLAlchemyError as error:
            db.rollback()
            current_app.logger.error("error adding entry to cart: %s", error)
            return _error("Could not add the entry to your cart", 500)

        db.refresh(cart)
        return jsonify({"success": True, "data": utils.summarize_cart(cart)}), 201


@client_blueprint.route("/API/Competitions/Cart/Remove/<int:item_id>", methods=["POST"])
def api_remove_from_cart(item_id):
    """Remove one entry from the visitor's cart."""
    token = _cart_token()
    if token is None:
        return _error("Cart is empty", 404)

    with database.get_db_session() as db:
        cart = database.get_active_cart(db, token)
        item = None
        if cart is not None:
            item = next((i for i in cart.items if i.item_id == item_id), None)
        if item is None:
            return _error("Cart item not found", 404)

        cart.items.remove(item)
        try:
            db.commit()
        except exc.SQLAlchemyError as error:
            db.rollback()
            current_app.logger.error("error removing cart item %s: %s", item_id, error)
            return _error("Could not update your cart", 500)

        db.refresh(cart)
        return jsonify({"success": True, "data": utils.summarize_cart(cart)})


def _validate_customer(customer) -> list:
    if not isinstance(customer, dict):
        return ["Complete customer information is required"]
    errors = []
    for field in ("first_name", "last_name", "country"):
        if not utils.sanitize_input(customer.get(field)):
            errors.append(f"{field.replace('_', ' ').capitalize()} is required")
    if not utils.is_valid_email(customer.get("email")):
        errors.append("Valid email is required")
    return errors


@client_blueprint.route("/API/Competitions/Checkout", methods=["POST"])
@limiter.limit("10 per minute")
def api_checkout():
    """Turn the cart into a payment and pending registrations.

    Card payments return the PayHere form data; bank transfers wait for an
    admin to verify the slip.
    """
    request_data = request.get_json(silent=True) or {}
    clock = _clock()

    payment_method = str(request_data.get("payment_method") or "card").lower()
    if payment_method not in ("card", "bank"):
        return _error("Unknown payment method", 400)

    customer = request_data.get("customer_info")
    customer_errors = _validate_customer(customer)
    if customer_errors:
        return _error("Complete customer information is required", 400, details=customer_errors)
    customer = {
        key: utils.sanitize_input(value)
        for key, value in customer.items()
        if isinstance(value, str)
    }

    token = _cart_token()
    if token is None:
        return _error("Cart is empty", 400)

    with database.get_db_session() as db:
        cart = database.get_active_cart(db, token)
        if cart is None or not cart.items:
            return _error("Cart is empty", 400)

        if utils.is_cart_expired(
            cart.expires_at, config.cart_config["expiry_disabled"], clock=clock
        ):
            cart.status = models.CartStatus.EXPIRED
            db.commit()
            return _error("Cart has expired. Please add items again.", 400)

        total_amount = sum(item.subtotal for item in cart.items)
        order_id = database.next_order_id(db, clock=clock)

        payment = models.CompetitionPayment(
            order_id=order_id,
            amount=total_amount,
            currency=config.payhere_config["currency"],
            merchant_id=config.payhere_config["merchant_id"] or None,
            method=(
                models.PaymentMethod.BANK_TRANSFER
                if payment_method == "bank"
                else models.PaymentMethod.CARD
            ),
            status=models.PaymentStatus.PENDING,
            customer_details=customer,
            bank_slip_url=utils.sanitize_input(request_data.get("bank_slip_url"))
            or None,
        )
        db.add(payment)

        reserved = set()
        registration_numbers = []
        for item in cart.items:
            registration_number = database.new_registration_number(db, reserved)
            registration_numbers.append(registration_number)
            db.add(
                models.CompetitionRegistration(
                    registration_number=registration_number,
                    competition_id=item.competition_id,
                    payment=payment,
                    participant_type=item.participant_type,
                    country=item.country,
                    team_name=item.team_name,
                    company_name=item.company_name,
                    referral_source=item.referral_source,
                    members=item.members,
                    amount_paid=item.subtotal,
                    currency=payment.currency,
                    status=models.RegistrationStatus.PENDING,
                )
            )

        items_description = ", ".join(
            f"{item.competition.title} - {item.participant_type.label}"
            for item in cart.items
        )
        cart.status = models.CartStatus.COMPLETED

        try:
            db.commit()
        except exc.SQLAlchemyError as error:
            db.rollback()
            current_app.logger.error("Checkout failed for order %s: %s", order_id, error)
            return _error("Could not complete checkout. Please try again.", 500)

    current_app.logger.info(
        "Order %s created (%s, %s entries, %s %s)",
        order_id,
        payment_method,
        len(registration_numbers),
        total_amount,
        config.payhere_config["currency"],
    )
    session.pop("cart_token", None)

    if payment_method == "bank":
        return jsonify(
            {
                "success": True,
                "data": {
                    "order_id": order_id,
                    "registration_numbers": registration_numbers,
                    "payment_data": None,
                    "payment_url": "",
                },
                "message": "Bank transfer details submitted. Awaiting verification.",
            }
        )

    return jsonify(
        {
            "success": True,
            "data": {
                "order_id": order_id,
                "registration_numbers": registration_numbers,
                "payment_data": payhere.build_payment_data(
                    config.payhere_config,
                    order_id,
                    total_amount,
                    items_description,
                    customer,
                ),
                "payment_url": payhere.get_payhere_url(config.payhere_config["mode"]),
            },
        }
    )


@client_blueprint.route("/API/Competitions/Payment/Notify", methods=["POST"])
@csrf_protector.exempt
def api_payment_notify():
    """PayHere server-to-server notification.

    The signature is checked before anything else is trusted; a bad signature
    marks the payment FAILED and is answered with 400.
    """
    form = request.form
    notification = {
        key: form.get(key)
        for key in (
            "merchant_id",
            "order_id",
            "payhere_amount",
            "payhere_currency",
            "status_code",
            "md5sig",
            "method",
            "status_message",
            "payment_id",
            "card_holder_name",
            "card_no",
        )
    }
    order_id = notification["order_id"] or ""
    current_app.logger.info(
        "PayHere notification for %s (status %s)",
        order_id,
        notification["status_code"],
    )

    with database.get_db_session() as db:
        payment = database.get_payment_by_order_id(db, order_id)
        if payment is None:
            current_app.logger.error("Payment not found: %s", order_id)
            return _error("Payment not found", 404)

        is_valid = payhere.verify_payhere_signature(
            notification["merchant_id"],
            notification["order_id"],
            notification["payhere_amount"],
            notification["payhere_currency"],
            notification["status_code"],
            notification["md5sig"],
            config.payhere_config["merchant_secret"],
        )

        try:
            if not is_valid:
                current_app.logger.error(
                    "Invalid PayHere signature for %s from %s",
                    order_id,
                    request.remote_addr,
                )
                # settled payments are never touched by an unverified notification
                if payment.status in _UNSETTLED_PAYMENT_STATUSES:
                    payment.status = models.PaymentStatus.FAILED
                    payment.error_message = "Invalid signature"
                    db.commit()
                return _error("Invalid signature", 400)

            new_status = payhere.payment_status_for(notification["status_code"])
            payment.status_code = notification["status_code"]
            payment.response_data = notification
            if notification["payment_id"]:
                payment.gateway_payment_id = notification["payment_id"]

            if new_status == models.PaymentStatus.COMPLETED:
                if payment.status != models.PaymentStatus.COMPLETED:
                    confirmed = database.confirm_payment(db, payment)
                    current_app.logger.info(
                        "Payment %s completed, confirmed %s",
                        order_id,
                        ", ".join(confirmed),
                    )
            elif new_status in (
                models.PaymentStatus.CANCELLED,
                models.PaymentStatus.FAILED,
            ):
                payment.status = new_status
                payment.error_message = notification["status_message"]
            elif new_status == models.PaymentStatus.REFUNDED:
                payment.status = new_status
                payment.refunded_at = datetime.datetime.now(datetime.timezone.utc)
                for entry in payment.registrations:
                    entry.status = models.RegistrationStatus.REFUNDED

            db.commit()
        except exc.SQLAlchemyError as error:
            db.rollback()
            current_app.logger.error(
                "error processing PayHere notification for %s: %s", order_id, error
            )
            return _error("Internal server error", 500)

    return jsonify({"success": True})


@client_blueprint.route("/API/Competitions/Payment/<order_id>")
def api_payment_status(order_id):
    """Payment status and issued codes, polled by the payment result pages."""
    with database.get_db_session() as db:
        payment = database.get_payment_by_order_id(db, order_id)
        if payment is None:
            abort(404)
        return jsonify({"success": True, "data": utils.serialize_payment(payment)})
