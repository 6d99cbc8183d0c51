# middleware/auth.py
"""
Access gate for every authenticated route.

    @bp.route(...)
    @authenticate          # JWT -> user -> approved -> paid within 30 days
    @admin_required        # optional, after authenticate
    def view(): ...

Admins skip the payment check. A failed payment lookup denies access.
"""
import logging
import threading
import time
from functools import wraps

from flask import current_app, g, jsonify
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from payments.compliance import get_evaluator
from payments.errors import DependencyFailure, PaymentRequired
from payments.periods import utcnow
from users.store import UserStore

logger = logging.getLogger(__name__)

# user_id -> (allowed, expires_at); only used when COMPLIANCE_CACHE_SECONDS > 0
_COMPLIANCE_CACHE = {}
_cache_lock = threading.Lock()


def invalidate_compliance(user_id=None):
    """Drop cached gate decisions for one user (or everyone)."""
    with _cache_lock:
        if user_id is None:
            _COMPLIANCE_CACHE.clear()
        else:
            _COMPLIANCE_CACHE.pop(int(user_id), None)


def check_payment_access(user, now=None):
    """
    Raise PaymentRequired unless ``user`` may use the API right now.
    DependencyFailure propagates: the caller must deny, never allow.
    """
    if user.is_admin:
        return

    ttl = current_app.config.get("COMPLIANCE_CACHE_SECONDS", 0)
    allowed = None
    if ttl > 0:
        with _cache_lock:
            entry = _COMPLIANCE_CACHE.get(user.id)
        if entry and entry[1] > time.time():
            allowed = entry[0]

    if allowed is None:
        allowed = get_evaluator().is_compliant(user.id, user.role, now or utcnow())
        if ttl > 0:
            with _cache_lock:
                _COMPLIANCE_CACHE[user.id] = (allowed, time.time() + ttl)

    if not allowed:
        cfg = current_app.config
        raise PaymentRequired(
            amount_due=cfg.get("MONTHLY_FEE"),
            currency=cfg.get("PAYMENT_CURRENCY", "RWF"),
            instructions=cfg.get("PAYMENT_INSTRUCTIONS", ""),
        )


def authenticate(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        # missing / invalid / expired tokens are rendered by the JWT loaders (401)
        verify_jwt_in_request()

        try:
            user = UserStore().get(get_jwt_identity())
        except (TypeError, ValueError):
            return jsonify({"error": "Invalid or expired token."}), 401
        except DependencyFailure as e:
            logger.error("Authentication lookup failed: %s", e)
            return jsonify({"error": "Authentication error."}), 503

        if user is None:
            return jsonify({"error": "User not found."}), 401

        if not user.approved:
            return jsonify({"error": "Account not approved by admin."}), 403

        try:
            check_payment_access(user)
        except DependencyFailure as e:
            logger.error("Payment check failed for user %s, denying access: %s", user.id, e)
            return jsonify({"error": "Authentication error."}), 503

        g.current_user = user
        return fn(*args, **kwargs)

    return wrapper


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None or not user.is_admin:
            return jsonify({"error": "Admin access required."}), 403
        return fn(*args, **kwargs)

    return wrapper
