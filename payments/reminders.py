# payments/reminders.py
"""
Daily payment check: evaluate every approved non-admin user and send the
reminders the evaluator asks for.

One user's failure (store error, mail error) is logged and skipped; the
batch always runs to the end and reports its counts.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass

from notifications.dispatcher import get_dispatcher
from notifications.models import TYPE_PAYMENT_DUE, TYPE_PRE_BLOCK
from notifications.utils import push_notification
from payments.compliance import get_evaluator
from payments.errors import DependencyFailure
from payments.periods import as_utc_naive, utcnow
from users.store import UserStore

logger = logging.getLogger(__name__)

# ticks never overlap: the scheduler job and the admin endpoint share this lock
_batch_lock = threading.Lock()

_in_flight = set()
_in_flight_lock = threading.Lock()


class UserBusy(Exception):
    """The user is already being evaluated by another worker."""


@contextmanager
def single_flight(user_id):
    with _in_flight_lock:
        if user_id in _in_flight:
            raise UserBusy(user_id)
        _in_flight.add(user_id)
    try:
        yield
    finally:
        with _in_flight_lock:
            _in_flight.discard(user_id)


@dataclass
class BatchResult:
    reminders_sent: int = 0
    pre_block_reminders_sent: int = 0
    records_created: int = 0
    records_updated: int = 0
    users_checked: int = 0
    users_failed: int = 0

    def to_dict(self):
        return asdict(self)

    def summary(self):
        return (
            f"Payment check completed. {self.reminders_sent} monthly reminders sent, "
            f"{self.pre_block_reminders_sent} upcoming-block reminders sent, "
            f"{self.records_created} payments created, {self.records_updated} payments updated, "
            f"{self.users_failed} of {self.users_checked} users skipped."
        )


def run_batch(now=None, evaluator=None, dispatcher=None, user_store=None):
    """Run the payment check for all billable users. Never raises."""
    now = as_utc_naive(now) or utcnow()
    evaluator = evaluator or get_evaluator()
    dispatcher = dispatcher or get_dispatcher()
    user_store = user_store or UserStore()
    result = BatchResult()

    with _batch_lock:
        logger.info("Running payment check at %s", now.isoformat())
        try:
            users = user_store.billable()
        except DependencyFailure as e:
            logger.error("Payment check aborted, could not list users: %s", e)
            return result

        # plain values: a rollback inside one evaluation expires every ORM instance
        targets = [(u.id, u.email, u.username) for u in users]
        result.users_checked = len(targets)

        for user_id, email, username in targets:
            try:
                with single_flight(user_id):
                    evaluation = evaluator.evaluate_user(user_id, now)
            except UserBusy:
                logger.warning("User %s is already being evaluated, skipping", user_id)
                result.users_failed += 1
                continue
            except DependencyFailure as e:
                logger.error("Payment check failed for user %s: %s", user_id, e)
                result.users_failed += 1
                continue
            except Exception:
                logger.exception("Unexpected error during payment check for user %s", user_id)
                result.users_failed += 1
                continue

            if evaluation.created:
                result.records_created += 1
            if evaluation.updated:
                result.records_updated += 1

            if evaluation.reminder_needed and _send_due_reminder(dispatcher, user_id, email, username):
                result.reminders_sent += 1

            if evaluation.pre_block_reminder_needed and _send_pre_block_reminder(
                dispatcher, user_id, email, username, evaluation.snapshot
            ):
                result.pre_block_reminders_sent += 1

        logger.info(result.summary())
    return result


def _send_due_reminder(dispatcher, user_id, email, username):
    try:
        dispatcher.send_due_reminder(email, username)
    except Exception:
        logger.exception("Failed to send payment reminder to %s", email)
        return False

    push_notification(user_id, "Your monthly payment is due.", ntype=TYPE_PAYMENT_DUE)
    logger.info("Payment reminder sent to %s", email)
    return True


def _send_pre_block_reminder(dispatcher, user_id, email, username, snapshot):
    details = {
        "last_paid_at": snapshot.last_ever_paid_at,
        "block_date": snapshot.block_date,
        "days_until_block": snapshot.days_until_block,
    }
    try:
        dispatcher.send_pre_block_reminder(email, username, details)
    except Exception:
        logger.exception("Failed to send upcoming block reminder to %s", email)
        return False

    push_notification(
        user_id,
        f"Your access will be blocked in {snapshot.days_until_block} days unless you pay.",
        ntype=TYPE_PRE_BLOCK,
        meta=details,
    )
    logger.info("Upcoming block reminder (%s days) sent to %s", snapshot.days_until_block, email)
    return True
