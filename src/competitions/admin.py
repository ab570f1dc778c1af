"""admin routes for reviewing registrations and verifying payments"""

import bcrypt
from sqlalchemy import exc
from flask import (
    Blueprint,
    request,
    session,
    jsonify,
    current_app,
)

from . import config
from . import database
from . import models
from . import utils
from .auth import admin_required
from .extensions import limiter

admin_blueprint = Blueprint("admin", __name__)


def _error(message, status_code):
    return jsonify({"success": False, "error": message}), status_code


@admin_blueprint.route("/AdminLogin", methods=["POST"])
@limiter.limit("5 per 15 minutes")
def admin_login():
    """admin authentication against the configured bcrypt hash"""
    request_data = request.get_json(silent=True) or request.form
    admin_pass = str(request_data.get("password") or "")
    if admin_pass and bcrypt.checkpw(
        admin_pass.encode("utf-8"),
        config.admin_password_hash.encode("utf-8"),
    ):
        session["admin_logged_in"] = True
        current_app.logger.info("admin logged in from %s", request.remote_addr)
        return jsonify({"success": True})

    current_app.logger.warning("Failed admin login from %s", request.remote_addr)
    return _error("Invalid admin password", 401)


@admin_blueprint.route("/AdminLogout", methods=["POST"])
def admin_logout():
    session.pop("admin_logged_in", None)
    return jsonify({"success": True})


@admin_blueprint.route("/API/Admin/Registrations")
@admin_required
def admin_list_registrations():
    """Recent registrations, filtered by ``?status=`` and ``?type=`` when given.

    ``type`` accepts a type value or its display name, e.g. ``Group Entry``.
    """
    raw_status = request.args.get("status")
    status = None
    if raw_status:
        status = models.RegistrationStatus.coerce(raw_status)
        if status is None:
            return _error("Unknown registration status", 400)

    raw_type = request.args.get("type")
    participant_type = utils.get_participant_type(raw_type) if raw_type else None

    with database.get_db_session() as db:
        registrations = database.get_registrations(db, status, participant_type)
        return jsonify(
            {
                "success": True,
                "data": [utils.serialize_registration(r) for r in registrations],
            }
        )


@admin_blueprint.route("/API/Admin/Payments/<order_id>/Verify", methods=["POST"])
@admin_required
def admin_verify_payment(order_id):
    """Approve a bank transfer: the payment completes and its registrations are confirmed."""
    with database.get_db_session() as db:
        payment = database.get_payment_by_order_id(db, order_id)
        if payment is None:
            return _error("Payment not found", 404)
        if payment.status == models.PaymentStatus.COMPLETED:
            return _error("Payment is already verified", 409)

        try:
            confirmed = database.confirm_payment(db, payment)
            db.commit()
        except exc.SQLAlchemyError as error:
            db.rollback()
            current_app.logger.error("error verifying Payment %s: %s", order_id, error)
            return _error("Could not verify the payment", 500)

        current_app.logger.info(
            "admin verified payment %s (%s registrations)", order_id, len(confirmed)
        )
        return jsonify({"success": True, "data": utils.serialize_payment(payment)})


@admin_blueprint.route("/API/Admin/Payments/<order_id>/Revert", methods=["POST"])
@admin_required
def admin_revert_payment(order_id):
    """Undo a verification: the payment and its registrations go back to PENDING."""
    with database.get_db_session() as db:
        payment = database.get_payment_by_order_id(db, order_id)
        if payment is None:
            return _error("Payment not found", 404)
        if payment.status != models.PaymentStatus.COMPLETED:
            return _error("Only completed payments can be reverted", 409)

        try:
            reverted = database.revert_payment(db, payment)
            db.commit()
        except exc.SQLAlchemyError as error:
            db.rollback()
            current_app.logger.error("error reverting Payment %s: %s", order_id, error)
            return _error("Could not revert the payment", 500)

        current_app.logger.info(
            "admin reverted payment %s (%s registrations)", order_id, reverted
        )
        return jsonify({"success": True, "data": utils.serialize_payment(payment)})


@admin_blueprint.route(
    "/API/Admin/Registrations/<int:registration_id>/SubmissionStatus",
    methods=["POST"],
)
@admin_required
def admin_update_submission_status(registration_id):
    """Set the submission status of a registration."""
    request_data = request.get_json(silent=True) or {}
    submission_status = models.SubmissionStatus.coerce(
        request_data.get("submission_status")
    )
    if submission_status is None:
        return _error("Unknown submission status", 400)

    with database.get_db_session() as db:
        try:
            entry = database.update_submission_status(
                db, registration_id, submission_status
            )
            if entry is None:
                return _error("Registration not found", 404)
            db.commit()
        except exc.SQLAlchemyError as error:
            db.rollback()
            current_app.logger.error(
                "error updating submission status of Registration %s: %s",
                registration_id,
                error,
            )
            return _error("Could not update the submission status", 500)

        return jsonify({"success": True, "data": utils.serialize_registration(entry)})


@admin_blueprint.route("/API/Admin/Registrations/Delete", methods=["POST"])
@admin_required
def admin_delete_registrations():
    """Delete the registrations listed in ``registration_ids``."""
    request_data = request.get_json(silent=True) or {}
    raw_ids = request_data.get("registration_ids")
    if not isinstance(raw_ids, list) or not raw_ids:
        return _error("registration_ids must be a non-empty list", 400)
    try:
        registration_ids = [int(value) for value in raw_ids]
    except (TypeError, ValueError):
        return _error("registration_ids must be integers", 400)

    with database.get_db_session() as db:
        try:
            deleted = (
                db.query(models.CompetitionRegistration)
                .filter(
                    models.CompetitionRegistration.registration_id.in_(registration_ids)
                )
                .delete(synchronize_session=False)
            )
            db.commit()
        except exc.SQLAlchemyError as error:
            db.rollback()
            current_app.logger.error("error deleting registrations: %s", error)
            return _error("Could not delete the registrations", 500)

    current_app.logger.info("admin deleted %s registrations", deleted)
    return jsonify({"success": True, "data": {"deleted": deleted}})
