from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from conftest import CURRENT_PERIOD, NOW, PREVIOUS_PERIOD, payments_for
from extensions import db
from payments.compliance import ComplianceEvaluator
from payments.errors import DependencyFailure
from payments.models import PaymentRecord
from payments.store import PaymentStore


@pytest.fixture
def evaluator(app):
    return ComplianceEvaluator.from_config(app.config)


def test_user_without_records_gets_unpaid_current_month(evaluator, make_user):
    user = make_user()

    result = evaluator.evaluate_user(user.id, NOW)

    assert result.created and result.record_mutated
    assert result.reminder_needed
    assert not result.pre_block_reminder_needed
    [record] = payments_for(user.id)
    assert record.status == "unpaid"
    assert record.period_key == CURRENT_PERIOD
    assert record.amount == Decimal("15000")
    assert record.paid_at is None
    assert record.payment_method == "MOMO"


def test_fresh_payment_from_previous_month_opens_current_month(evaluator, make_user, make_payment):
    user = make_user()
    make_payment(user, PREVIOUS_PERIOD, paid_at=NOW - timedelta(days=10))

    result = evaluator.evaluate_user(user.id, NOW)

    assert evaluator.is_compliant(user.id, "staff", NOW)
    assert result.created
    assert result.reminder_needed
    records = payments_for(user.id)
    assert [r.period_key for r in records] == [PREVIOUS_PERIOD, CURRENT_PERIOD]
    assert records[1].status == "unpaid"


def test_current_month_paid_recently_is_left_alone(evaluator, make_user, make_payment):
    user = make_user()
    record = make_payment(user, CURRENT_PERIOD, paid_at=NOW - timedelta(days=5))
    paid_at = record.paid_at

    result = evaluator.evaluate_user(user.id, NOW)

    assert not result.record_mutated
    assert not result.reminder_needed
    assert not result.pre_block_reminder_needed
    [record] = payments_for(user.id)
    assert record.status == "paid"
    assert record.paid_at == paid_at


def test_stale_paid_current_record_is_reset_when_not_compliant(evaluator, make_user, make_payment):
    user = make_user()
    # recorded in advance, more than 30 days ago
    make_payment(user, CURRENT_PERIOD, paid_at=NOW - timedelta(days=35))

    result = evaluator.evaluate_user(user.id, NOW)

    assert result.updated and not result.created
    assert result.reminder_needed
    [record] = payments_for(user.id)
    assert record.status == "unpaid"
    assert record.paid_at is None


def test_stale_paid_current_record_is_reset_even_with_fresh_older_month(evaluator, make_user, make_payment):
    user = make_user()
    make_payment(user, PREVIOUS_PERIOD, paid_at=NOW - timedelta(days=3))
    make_payment(user, CURRENT_PERIOD, paid_at=NOW - timedelta(days=40))

    result = evaluator.evaluate_user(user.id, NOW)

    assert result.updated
    assert result.reminder_needed
    current = PaymentRecord.query.filter_by(user_id=user.id, period_key=CURRENT_PERIOD).one()
    assert current.status == "unpaid" and current.paid_at is None


def test_existing_unpaid_current_record_is_not_duplicated(evaluator, make_user, make_payment):
    user = make_user()
    make_payment(user, CURRENT_PERIOD, status="unpaid")

    result = evaluator.evaluate_user(user.id, NOW)

    assert not result.record_mutated
    assert result.reminder_needed
    assert len(payments_for(user.id)) == 1


def test_creation_conflict_is_swallowed(app, make_user, make_payment):
    user = make_user()
    make_payment(user, CURRENT_PERIOD, status="unpaid")

    class RacingStore(PaymentStore):
        # the current-month read misses a record another writer just inserted
        def for_period(self, user_id, period_key):
            return None

    evaluator = ComplianceEvaluator.from_config(app.config, store=RacingStore())
    result = evaluator.evaluate_user(user.id, NOW)

    assert not result.created
    assert result.reminder_needed
    assert len(payments_for(user.id)) == 1


def test_status_and_paid_at_stay_consistent_after_evaluation(evaluator, make_user, make_payment):
    users = [make_user() for _ in range(3)]
    make_payment(users[0], CURRENT_PERIOD, paid_at=NOW - timedelta(days=31))
    make_payment(users[1], PREVIOUS_PERIOD, paid_at=NOW - timedelta(days=12))

    for user in users:
        evaluator.evaluate_user(user.id, NOW)

    for record in PaymentRecord.query.all():
        assert (record.status == "paid") == (record.paid_at is not None)


@pytest.mark.parametrize("days_ago, expected", [(29, True), (31, False)])
def test_freshness_window(evaluator, make_user, make_payment, days_ago, expected):
    user = make_user()
    make_payment(user, PREVIOUS_PERIOD, paid_at=NOW - timedelta(days=days_ago))

    assert evaluator.is_compliant(user.id, "staff", NOW) is expected


def test_admin_is_always_compliant(evaluator, make_user):
    admin = make_user(role="admin")

    assert evaluator.is_compliant(admin.id, "admin", NOW)
    assert evaluator.is_compliant(admin.id, "admin", NOW + timedelta(days=3650))


def test_is_compliant_propagates_store_failure(app, make_user):
    user = make_user()

    class BrokenStore(PaymentStore):
        def latest_paid(self, user_id, since=None):
            raise DependencyFailure("database unavailable")

    evaluator = ComplianceEvaluator.from_config(app.config, store=BrokenStore())
    with pytest.raises(DependencyFailure):
        evaluator.is_compliant(user.id, "staff", NOW)
    # admins never touch the store
    assert evaluator.is_compliant(user.id, "admin", NOW)


@pytest.mark.parametrize(
    "offset_days, expected",
    [(27, False), (28, True), (29, False)],
)
def test_pre_block_reminder_fires_exactly_two_days_before(evaluator, make_user, make_payment,
                                                          offset_days, expected):
    user = make_user()
    paid_at = datetime(2026, 9, 1, 0, 0)
    make_payment(user, date(2026, 9, 1), paid_at=paid_at)

    result = evaluator.evaluate_user(user.id, paid_at + timedelta(days=offset_days))

    assert result.pre_block_reminder_needed is expected
    if expected:
        assert result.snapshot.days_until_block == 2
        assert result.snapshot.block_date == datetime(2026, 10, 1, 0, 0)


def test_pre_block_reminder_uses_last_payment_outside_window(evaluator, make_user, make_payment):
    user = make_user()
    # two paid months: the latest paid_at drives the block date
    make_payment(user, date(2026, 8, 1), paid_at=datetime(2026, 8, 2))
    make_payment(user, date(2026, 9, 1), paid_at=datetime(2026, 9, 3))

    snap = evaluator.snapshot(user.id, datetime(2026, 10, 1, 8, 0))

    assert snap.last_ever_paid_at == datetime(2026, 9, 3)
    assert snap.block_date == datetime(2026, 10, 3)
    assert snap.days_until_block == 2
    assert snap.is_compliant


def test_get_status_reports_active_and_blocked(evaluator, make_user, make_payment):
    active = make_user()
    make_payment(active, CURRENT_PERIOD, paid_at=datetime(2026, 10, 10, 0, 0))
    blocked = make_user()
    make_payment(blocked, date(2026, 8, 1), paid_at=datetime(2026, 8, 1))
    never = make_user()

    status = evaluator.get_status(active.id, NOW)
    assert status["status"] == "active"
    assert status["days_until_block"] == 25
    assert status["block_date"] == "2026-11-09T00:00:00"
    assert status["last_payment_at"] == "2026-10-10T00:00:00"

    assert evaluator.get_status(blocked.id, NOW)["status"] == "blocked"
    assert evaluator.get_status(never.id, NOW) == {
        "status": "blocked",
        "last_payment_at": None,
        "block_date": None,
        "days_until_block": 0,
    }


def test_get_status_agrees_with_gate_on_the_last_day(evaluator, make_user, make_payment):
    # block date falls this morning: a day is still counted, but access is gone
    now = datetime(2026, 10, 15, 18, 0)
    user = make_user()
    make_payment(user, date(2026, 9, 1), paid_at=now - timedelta(days=30, hours=12))

    status = evaluator.get_status(user.id, now)

    assert not evaluator.is_compliant(user.id, "staff", now)
    assert status["status"] == "blocked"
    assert status["days_until_block"] == 1
