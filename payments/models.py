# payments/models.py

from datetime import datetime
from extensions import db

STATUS_UNPAID = "unpaid"
STATUS_PAID = "paid"
STATUS_LATE = "late"
STATUSES = (STATUS_UNPAID, STATUS_PAID, STATUS_LATE)


class PaymentRecord(db.Model):
    """One monthly subscription obligation per (user, month)."""
    __tablename__ = "user_payments"
    __table_args__ = (
        db.UniqueConstraint("user_id", "payment_month", name="unique_user_month"),
        db.CheckConstraint(
            "status IN ('unpaid', 'paid', 'late')", name="ck_user_payments_status"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    # first day of the month this payment covers
    period_key = db.Column("payment_month", db.Date, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_UNPAID, index=True)
    payment_method = db.Column(db.String(50), nullable=True, default="MOMO")

    # set only on the transition into "paid", cleared on the way out
    paid_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_paid(self):
        return self.status == STATUS_PAID

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": str(self.amount) if self.amount is not None else None,
            "payment_month": self.period_key.isoformat() if self.period_key else None,
            "status": self.status,
            "payment_method": self.payment_method,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<PaymentRecord user={self.user_id} month={self.period_key} status={self.status}>"
