# payments/store.py
"""
Data access for payment records.

Route handlers and the compliance core go through ``PaymentStore`` instead of
building queries inline, so filters stay typed (``PaymentFilter``), partial
updates stay explicit (``PaymentPatch``) and database failures surface as
``RecordConflict`` / ``DependencyFailure`` rather than raw SQLAlchemy errors.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import extract
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from payments.errors import DependencyFailure, NotFound, RecordConflict
from payments.models import PaymentRecord, STATUS_PAID, STATUS_UNPAID
from payments.periods import utcnow
from utils.patch import Patch, UNSET

DEFAULT_METHOD = "MOMO"


def _is_period_conflict(error):
    # postgres names the constraint, sqlite lists the columns
    message = str(error.orig).lower()
    return "unique_user_month" in message or ("unique" in message and "payment_month" in message)


@dataclass
class PaymentFilter:
    user_id: Optional[int] = None
    status: Optional[str] = None
    month: Optional[int] = None
    year: Optional[int] = None
    start: Optional[date] = None        # period_key >= start
    end: Optional[date] = None          # period_key <= end
    paid_since: Optional[datetime] = None

    def clauses(self):
        clauses = []
        if self.user_id is not None:
            clauses.append(PaymentRecord.user_id == self.user_id)
        if self.status is not None:
            clauses.append(PaymentRecord.status == self.status)
        if self.month is not None:
            clauses.append(extract("month", PaymentRecord.period_key) == self.month)
        if self.year is not None:
            clauses.append(extract("year", PaymentRecord.period_key) == self.year)
        if self.start is not None:
            clauses.append(PaymentRecord.period_key >= self.start)
        if self.end is not None:
            clauses.append(PaymentRecord.period_key <= self.end)
        if self.paid_since is not None:
            clauses.append(PaymentRecord.paid_at.isnot(None))
            clauses.append(PaymentRecord.paid_at >= self.paid_since)
        return clauses


@dataclass
class PaymentPatch(Patch):
    amount: object = UNSET
    status: object = UNSET
    payment_method: object = UNSET
    period_key: object = UNSET
    paid_at: object = UNSET     # only honoured while the record ends up "paid"


class PaymentStore:

    def __init__(self, default_method=DEFAULT_METHOD):
        self.default_method = default_method

    # ---------- reads ----------
    def get(self, payment_id):
        try:
            return db.session.get(PaymentRecord, int(payment_id))
        except SQLAlchemyError as e:
            db.session.rollback()
            raise DependencyFailure(f"Failed to load payment {payment_id}: {e}")

    def require(self, payment_id):
        record = self.get(payment_id)
        if record is None:
            raise NotFound("Payment not found", payment_id=payment_id)
        return record

    def for_period(self, user_id, period_key):
        try:
            return PaymentRecord.query.filter_by(user_id=user_id, period_key=period_key).first()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise DependencyFailure(f"Failed to load payment for user {user_id} / {period_key}: {e}")

    def latest_paid(self, user_id, since=None):
        """Most recent paid record with a paid_at, optionally no older than ``since``."""
        criteria = PaymentFilter(user_id=user_id, status=STATUS_PAID, paid_since=since)
        try:
            query = PaymentRecord.query.filter(*criteria.clauses())
            if since is None:
                query = query.filter(PaymentRecord.paid_at.isnot(None))
            return query.order_by(PaymentRecord.paid_at.desc()).first()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise DependencyFailure(f"Failed to load last payment for user {user_id}: {e}")

    def list(self, criteria=None):
        criteria = criteria or PaymentFilter()
        try:
            return (
                PaymentRecord.query
                .filter(*criteria.clauses())
                .order_by(PaymentRecord.period_key.desc(), PaymentRecord.created_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            raise DependencyFailure(f"Failed to list payments: {e}")

    # ---------- writes ----------
    def insert(self, user_id, amount, period_key, status=STATUS_UNPAID,
               payment_method=None, now=None):
        """
        Create the record for (user_id, period_key).
        Raises RecordConflict when that pair already exists.
        """
        record = PaymentRecord(
            user_id=user_id,
            amount=Decimal(str(amount)),
            period_key=period_key,
            status=status,
            payment_method=payment_method or self.default_method,
            paid_at=(now or utcnow()) if status == STATUS_PAID else None,
        )
        db.session.add(record)
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            if _is_period_conflict(e):
                raise RecordConflict(user_id, period_key)
            raise DependencyFailure(f"Failed to create payment for user {user_id}: {e.orig}")
        except SQLAlchemyError as e:
            db.session.rollback()
            raise DependencyFailure(f"Failed to create payment for user {user_id}: {e}")
        return record

    def update(self, record, patch, now=None):
        """
        Apply a partial update. Entering "paid" stamps paid_at, leaving it
        clears paid_at, so status and paid_at never disagree after a write.
        """
        now = now or utcnow()
        changes = patch.changes()
        record_id, user_id = record.id, record.user_id
        period_key = changes.get("period_key", record.period_key)

        # the record may be expired; a refresh must not flush a half-applied month change
        with db.session.no_autoflush:
            if "amount" in changes:
                record.amount = Decimal(str(changes["amount"]))
            if "period_key" in changes:
                record.period_key = changes["period_key"]
            if "payment_method" in changes:
                record.payment_method = changes["payment_method"] or self.default_method

            if "status" in changes:
                new_status = changes["status"]
                if new_status == STATUS_PAID:
                    if record.status != STATUS_PAID or record.paid_at is None:
                        record.paid_at = now
                else:
                    record.paid_at = None
                record.status = new_status

            if "paid_at" in changes and record.status == STATUS_PAID:
                record.paid_at = changes["paid_at"] or now

            if not record.payment_method:
                record.payment_method = self.default_method

        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            if _is_period_conflict(e):
                raise RecordConflict(user_id, period_key)
            raise DependencyFailure(f"Failed to update payment {record_id}: {e.orig}")
        except SQLAlchemyError as e:
            db.session.rollback()
            raise DependencyFailure(f"Failed to update payment {record_id}: {e}")
        return record

    def delete(self, record):
        try:
            db.session.delete(record)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise DependencyFailure(f"Failed to delete payment {record.id}: {e}")
