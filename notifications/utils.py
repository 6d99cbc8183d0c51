# notifications/utils.py
import json
import logging

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from notifications.models import TYPE_INFO, Notification

logger = logging.getLogger(__name__)


def push_notification(user_id: int, message: str, ntype: str = TYPE_INFO, meta: dict | str | None = None):
    """
    Store an in-app notification. Best-effort: a DB failure is logged and
    None is returned, the caller's own work is never rolled back by it.
    """
    if isinstance(meta, dict):
        meta = json.dumps(meta, default=str)
    n = Notification(user_id=user_id, message=message, type=ntype, meta=meta)
    try:
        db.session.add(n)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to store %s notification for user %s", ntype, user_id)
        return None
    return n.to_dict()
