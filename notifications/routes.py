# notifications/routes.py
from flask import Blueprint, g, jsonify, request

from extensions import db
from middleware.auth import authenticate
from notifications.models import Notification

notifications_bp = Blueprint(
    "notifications", __name__, url_prefix="/api/notifications", template_folder="templates"
)


def _own_note(note_id):
    note = db.session.get(Notification, note_id)
    if note is None:
        return None, (jsonify({"error": "Notification not found"}), 404)
    if note.user_id != g.current_user.id:
        return None, (jsonify({"error": "Forbidden"}), 403)
    return note, None


# -------- Caller's notifications, newest first (?unread=1 for unread only) --------
@notifications_bp.route("", methods=["GET"])
@authenticate
def list_notifications():
    query = Notification.query.filter_by(user_id=g.current_user.id)
    if request.args.get("unread") in ("1", "true"):
        query = query.filter_by(is_read=False)
    notes = query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
    return jsonify({"notifications": [n.to_dict() for n in notes]}), 200


@notifications_bp.route("/<int:note_id>/read", methods=["POST"])
@authenticate
def mark_read(note_id):
    note, error = _own_note(note_id)
    if error:
        return error

    if not note.is_read:
        note.is_read = True
        db.session.commit()
    return jsonify({"notification": note.to_dict()}), 200
