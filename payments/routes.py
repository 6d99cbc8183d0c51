# payments/routes.py
import logging
from datetime import date
from decimal import Decimal, InvalidOperation

from flask import Blueprint, current_app, g, jsonify, request

from middleware.auth import admin_required, authenticate, invalidate_compliance
from notifications.dispatcher import get_dispatcher
from notifications.models import TYPE_PAYMENT_STATUS
from notifications.utils import push_notification
from payments.compliance import get_evaluator
from payments.models import STATUS_PAID, STATUSES
from payments.periods import normalize_period, utcnow
from payments.reminders import run_batch
from payments.store import PaymentFilter, PaymentPatch, PaymentStore
from users.store import UserStore

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _int_arg(name):
    value = request.args.get(name)
    return int(value) if value not in (None, "") else None


def _date_arg(name):
    value = request.args.get(name)
    return date.fromisoformat(value[:10]) if value else None


def _store():
    return PaymentStore(current_app.config.get("DEFAULT_PAYMENT_METHOD", "MOMO"))


def _notify_status_change(user, record):
    """Mail + in-app notice about a status change; failures only get logged."""
    details = {
        "status": record.status,
        "payment_month": record.period_key,
        "amount": record.amount,
        "payment_method": record.payment_method,
        "paid_at": record.paid_at,
    }
    try:
        get_dispatcher().send_status_update(user.email, user.username, details)
    except Exception:
        logger.exception("Failed to send payment status update email to %s", user.email)
    push_notification(
        user.id,
        f"Your payment for {record.period_key:%B %Y} is now {record.status}.",
        ntype=TYPE_PAYMENT_STATUS,
        meta=details,
    )


# ---------- List payments (admin: all, others: own) ----------
@payments_bp.route("", methods=["GET"])
@authenticate
def list_payments():
    user = g.current_user
    try:
        criteria = PaymentFilter(
            user_id=_int_arg("user_id") if user.is_admin else user.id,
            status=request.args.get("status") or None,
            month=_int_arg("month"),
            year=_int_arg("year"),
            start=_date_arg("start_date"),
            end=_date_arg("end_date"),
        )
    except ValueError:
        return jsonify({"error": "Invalid filter value"}), 400

    payments = _store().list(criteria)
    return jsonify({"payments": [p.to_dict() for p in payments]}), 200


# ---------- Caller's payment status ----------
@payments_bp.route("/my-status", methods=["GET"])
@authenticate
def my_status():
    return jsonify(get_evaluator().get_status(g.current_user.id, utcnow())), 200


@payments_bp.route("/<int:payment_id>", methods=["GET"])
@authenticate
def get_payment(payment_id):
    record = _store().require(payment_id)
    if not g.current_user.is_admin and record.user_id != g.current_user.id:
        return jsonify({"error": "Access denied"}), 403
    return jsonify({"payment": record.to_dict()}), 200


# ---------- Admin: create (or update the existing record for that month) ----------
@payments_bp.route("", methods=["POST"])
@authenticate
@admin_required
def create_payment():
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    amount = data.get("amount")
    status = data.get("status")
    payment_method = data.get("payment_method")

    if not user_id or not amount or not data.get("payment_month"):
        return jsonify({"error": "User ID, amount, and payment month are required"}), 400
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        return jsonify({"error": "User ID must be an integer"}), 400
    try:
        amount = Decimal(str(amount))
        period = normalize_period(data.get("payment_month"))
    except (InvalidOperation, ValueError):
        return jsonify({"error": "Invalid amount or payment month"}), 400
    if status is not None and status not in STATUSES:
        return jsonify({"error": "Valid status (paid, unpaid, or late) is required"}), 400

    user = UserStore().require(user_id)
    if user.is_admin:
        return jsonify({"error": "Cannot create payment records for admin users"}), 400

    store = _store()
    now = utcnow()
    existing = store.for_period(user.id, period)

    if existing is not None:
        old_status = existing.status
        patch = PaymentPatch(amount=amount)
        if status:
            patch.status = status
            if status == STATUS_PAID:
                patch.paid_at = now     # re-recording a payment restarts the window
        if payment_method:
            patch.payment_method = payment_method
        record = store.update(existing, patch, now=now)
        invalidate_compliance(user.id)
        if status and status != old_status:
            _notify_status_change(user, record)
        return jsonify({"message": "Payment updated successfully", "payment": record.to_dict()}), 200

    record = store.insert(
        user.id, amount, period,
        status=status or "unpaid",
        payment_method=payment_method,
        now=now,
    )
    invalidate_compliance(user.id)
    if status:
        _notify_status_change(user, record)
    return jsonify({"message": "Payment created successfully", "payment": record.to_dict()}), 201


# ---------- Admin: update status / method / month ----------
@payments_bp.route("/<int:payment_id>", methods=["PUT"])
@authenticate
@admin_required
def update_payment(payment_id):
    data = request.get_json(silent=True) or {}
    store = _store()
    record = store.require(payment_id)
    old_status = record.status

    status = data.get("status")
    if status is not None and status not in STATUSES:
        return jsonify({"error": "Valid status (paid, unpaid, or late) is required"}), 400

    patch = PaymentPatch()
    if status is not None:
        patch.status = status
    if "payment_method" in data:
        patch.payment_method = data.get("payment_method")
    if data.get("payment_month"):
        try:
            period = normalize_period(data["payment_month"])
        except ValueError:
            return jsonify({"error": "Invalid payment month"}), 400
        if period != record.period_key and store.for_period(record.user_id, period) is not None:
            return jsonify({"error": "Payment already exists for this month"}), 400
        patch.period_key = period

    if patch.is_empty():
        return jsonify({"error": "No fields to update"}), 400

    record = store.update(record, patch)
    invalidate_compliance(record.user_id)

    if status is not None and status != old_status:
        user = UserStore().get(record.user_id)
        if user is not None:
            _notify_status_change(user, record)

    return jsonify({"message": "Payment updated successfully", "payment": record.to_dict()}), 200


@payments_bp.route("/<int:payment_id>", methods=["DELETE"])
@authenticate
@admin_required
def delete_payment(payment_id):
    store = _store()
    record = store.require(payment_id)
    user_id = record.user_id
    store.delete(record)
    invalidate_compliance(user_id)
    return jsonify({"message": "Payment deleted successfully"}), 200


# ---------- Admin / cron: run the payment check now ----------
@payments_bp.route("/check-and-remind", methods=["POST"])
@authenticate
@admin_required
def check_and_remind():
    result = run_batch(now=utcnow())
    body = result.to_dict()
    body["message"] = result.summary()
    return jsonify(body), 200
