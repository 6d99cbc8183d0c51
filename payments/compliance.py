# payments/compliance.py
"""
Monthly payment compliance.

A non-admin user is compliant while they hold a payment record marked paid
within the trailing window (30 days). ``ComplianceEvaluator.evaluate_user``
keeps the user's current-month record in line with that rule and reports
which reminders are due; ``is_compliant`` is the read-only check behind the
access gate.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from flask import current_app

from payments.errors import RecordConflict
from payments.models import STATUS_PAID, STATUS_UNPAID
from payments.periods import (
    WINDOW_DAYS,
    block_date_for,
    current_period_key,
    days_until_block,
    lookback_boundary,
    utcnow,
)
from payments.store import PaymentPatch, PaymentStore
from users.models import ROLE_ADMIN

logger = logging.getLogger(__name__)

MONTHLY_FEE = Decimal("15000")
PRE_BLOCK_DAYS = 2


@dataclass
class ComplianceSnapshot:
    last_paid_at: Optional[datetime]        # latest paid_at inside the window
    last_ever_paid_at: Optional[datetime]   # latest paid_at regardless of window
    block_date: Optional[datetime]
    days_until_block: int

    @property
    def is_compliant(self):
        return self.last_paid_at is not None


@dataclass
class Evaluation:
    user_id: int
    created: bool = False
    updated: bool = False
    reminder_needed: bool = False
    pre_block_reminder_needed: bool = False
    snapshot: Optional[ComplianceSnapshot] = field(default=None, repr=False)

    @property
    def record_mutated(self):
        return self.created or self.updated


class ComplianceEvaluator:

    def __init__(self, store=None, monthly_fee=MONTHLY_FEE,
                 window_days=WINDOW_DAYS, pre_block_days=PRE_BLOCK_DAYS):
        self.store = store or PaymentStore()
        self.monthly_fee = Decimal(str(monthly_fee))
        self.window_days = window_days
        self.pre_block_days = pre_block_days

    @classmethod
    def from_config(cls, config, store=None):
        return cls(
            store=store or PaymentStore(config.get("DEFAULT_PAYMENT_METHOD", "MOMO")),
            monthly_fee=config.get("MONTHLY_FEE", MONTHLY_FEE),
            window_days=config.get("PAYMENT_WINDOW_DAYS", WINDOW_DAYS),
            pre_block_days=config.get("PRE_BLOCK_REMINDER_DAYS", PRE_BLOCK_DAYS),
        )

    # ---------- read side ----------
    def snapshot(self, user_id, now=None, fresh=None):
        now = now or utcnow()
        if fresh is None:
            fresh = self.store.latest_paid(user_id, since=lookback_boundary(now, self.window_days))
        last_ever = self.store.latest_paid(user_id)

        last_ever_paid_at = last_ever.paid_at if last_ever else None
        block_date = block_date_for(last_ever_paid_at, self.window_days)
        return ComplianceSnapshot(
            last_paid_at=fresh.paid_at if fresh else None,
            last_ever_paid_at=last_ever_paid_at,
            block_date=block_date,
            days_until_block=days_until_block(block_date, now),
        )

    def is_compliant(self, user_id, role, now=None):
        """Admins always pass. Store failures propagate as DependencyFailure."""
        if role == ROLE_ADMIN:
            return True
        boundary = lookback_boundary(now or utcnow(), self.window_days)
        return self.store.latest_paid(user_id, since=boundary) is not None

    def get_status(self, user_id, now=None):
        snap = self.snapshot(user_id, now)
        return {
            "status": "active" if snap.is_compliant else "blocked",
            "last_payment_at": snap.last_ever_paid_at.isoformat() if snap.last_ever_paid_at else None,
            "block_date": snap.block_date.isoformat() if snap.block_date else None,
            "days_until_block": snap.days_until_block,
        }

    # ---------- write side ----------
    def evaluate_user(self, user_id, now=None):
        """
        Bring the user's current-month record in line with their payment
        history and report which reminders are due.

        - fresh payment from an earlier month: open the current month as
          unpaid (or reset a stale "paid" current record) and remind
        - fresh payment for this month: nothing to do
        - no fresh payment: always remind; reset a stale "paid" current
          record or open the current month as unpaid
        - independently, flag the pre-block reminder when the block date is
          exactly ``pre_block_days`` away
        """
        now = now or utcnow()
        period = current_period_key(now)
        boundary = lookback_boundary(now, self.window_days)
        result = Evaluation(user_id=user_id)

        fresh = self.store.latest_paid(user_id, since=boundary)
        current = self.store.for_period(user_id, period)

        if fresh is not None:
            if fresh.period_key != period:
                if current is None:
                    if self._open_period(user_id, period, now):
                        result.created = True
                        result.reminder_needed = True
                elif self._is_stale_paid(current, boundary):
                    self._reset(current, now)
                    result.updated = True
                    result.reminder_needed = True
            elif fresh.paid_at < boundary and current is not None:
                # window edge: the payment aged out between the two reads
                self._reset(current, now)
                result.updated = True
                result.reminder_needed = True
        else:
            result.reminder_needed = True
            if current is None:
                result.created = self._open_period(user_id, period, now)
            elif self._is_stale_paid(current, boundary):
                self._reset(current, now)
                result.updated = True

        result.snapshot = self.snapshot(user_id, now, fresh=fresh)
        if result.snapshot.block_date is not None \
                and result.snapshot.days_until_block == self.pre_block_days:
            result.pre_block_reminder_needed = True

        return result

    @staticmethod
    def _is_stale_paid(record, boundary):
        return record.status == STATUS_PAID and (record.paid_at is None or record.paid_at < boundary)

    def _open_period(self, user_id, period, now):
        """Create the unpaid record for ``period``; False if another writer got there first."""
        try:
            self.store.insert(user_id, self.monthly_fee, period, status=STATUS_UNPAID, now=now)
        except RecordConflict:
            logger.info("Payment for user %s / %s already created elsewhere", user_id, period)
            return False
        logger.info("Opened unpaid payment for user %s / %s", user_id, period)
        return True

    def _reset(self, record, now):
        logger.info(
            "Resetting stale payment %s for user %s (paid_at=%s)",
            record.id, record.user_id, record.paid_at,
        )
        self.store.update(record, PaymentPatch(status=STATUS_UNPAID), now=now)


def get_evaluator():
    return ComplianceEvaluator.from_config(current_app.config)
