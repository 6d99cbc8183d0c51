# notifications/models.py
import json
from datetime import datetime

from extensions import db

TYPE_INFO = "info"
TYPE_PAYMENT_DUE = "payment_due"
TYPE_PRE_BLOCK = "pre_block"
TYPE_PAYMENT_STATUS = "payment_status"


class Notification(db.Model):
    """In-app copy of a payment mail, shown in the user's notification list."""
    __tablename__ = "notification"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    message = db.Column(db.String(500), nullable=False)
    type = db.Column(db.String(50), nullable=False, default=TYPE_INFO)
    meta = db.Column(db.Text, nullable=True)    # JSON text
    is_read = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    @property
    def payload(self):
        if not self.meta:
            return None
        try:
            return json.loads(self.meta)
        except ValueError:
            return self.meta

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "message": self.message,
            "type": self.type,
            "meta": self.payload,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.type} user={self.user_id} read={self.is_read}>"
