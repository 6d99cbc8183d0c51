from datetime import date, datetime

import pytest

from conftest import NOW, payments_for
from payments.errors import NotFound, RecordConflict
from payments.models import PaymentRecord
from payments.store import PaymentFilter, PaymentPatch, PaymentStore


@pytest.fixture
def store(app):
    return PaymentStore(default_method="MOMO")


def test_insert_paid_stamps_paid_at(store, make_user):
    user = make_user()

    record = store.insert(user.id, "15000", date(2026, 10, 1), status="paid", now=NOW)

    assert record.paid_at == NOW
    assert record.payment_method == "MOMO"


def test_insert_duplicate_period_is_a_record_conflict(store, make_user):
    user = make_user()
    store.insert(user.id, 15000, date(2026, 10, 1), now=NOW)

    with pytest.raises(RecordConflict) as exc:
        store.insert(user.id, 15000, date(2026, 10, 1), now=NOW)

    assert exc.value.status_code == 409
    assert exc.value.period_key == date(2026, 10, 1)
    assert len(payments_for(user.id)) == 1


def test_same_period_for_different_users(store, make_user):
    store.insert(make_user().id, 15000, date(2026, 10, 1), now=NOW)
    store.insert(make_user().id, 15000, date(2026, 10, 1), now=NOW)


def test_update_keeps_status_and_paid_at_consistent(store, make_user, make_payment):
    record = make_payment(make_user(), date(2026, 10, 1), status="unpaid")

    store.update(record, PaymentPatch(status="paid"), now=NOW)
    assert (record.status, record.paid_at) == ("paid", NOW)

    # already paid: a second "paid" keeps the original timestamp
    store.update(record, PaymentPatch(status="paid"), now=datetime(2026, 10, 20))
    assert record.paid_at == NOW

    store.update(record, PaymentPatch(status="late"), now=NOW)
    assert (record.status, record.paid_at) == ("late", None)


def test_paid_at_patch_ignored_unless_paid(store, make_user, make_payment):
    record = make_payment(make_user(), date(2026, 10, 1), status="unpaid")

    store.update(record, PaymentPatch(paid_at=NOW), now=NOW)

    assert record.paid_at is None


def test_update_period_onto_existing_month_conflicts(store, make_user, make_payment):
    user = make_user()
    make_payment(user, date(2026, 9, 1), status="unpaid")
    record = make_payment(user, date(2026, 10, 1), status="unpaid")

    with pytest.raises(RecordConflict):
        store.update(record, PaymentPatch(period_key=date(2026, 9, 1)), now=NOW)


def test_latest_paid(store, make_user, make_payment):
    user = make_user()
    make_payment(user, date(2026, 8, 1), paid_at=datetime(2026, 8, 2))
    newest = make_payment(user, date(2026, 9, 1), paid_at=datetime(2026, 9, 20))
    make_payment(user, date(2026, 10, 1), status="unpaid")

    assert store.latest_paid(user.id).id == newest.id
    assert store.latest_paid(user.id, since=datetime(2026, 9, 21)) is None


def test_list_filters(store, make_user, make_payment):
    alice, bob = make_user(), make_user()
    make_payment(alice, date(2026, 9, 1), paid_at=datetime(2026, 9, 2))
    make_payment(alice, date(2026, 10, 1), status="unpaid")
    make_payment(bob, date(2026, 10, 1), status="late")

    def periods(**kwargs):
        return [(r.user_id, r.period_key.month) for r in store.list(PaymentFilter(**kwargs))]

    assert periods(user_id=alice.id) == [(alice.id, 10), (alice.id, 9)]
    assert periods(status="late") == [(bob.id, 10)]
    assert periods(month=9, year=2026) == [(alice.id, 9)]
    assert periods(end=date(2026, 9, 30)) == [(alice.id, 9)]
    assert periods(paid_since=datetime(2026, 9, 1)) == [(alice.id, 9)]


def test_require_missing(store):
    with pytest.raises(NotFound):
        store.require(404)


def test_delete(store, make_user, make_payment):
    user = make_user()
    record = make_payment(user, date(2026, 10, 1), status="unpaid")

    store.delete(record)

    assert payments_for(user.id) == []


def test_month_uniqueness_is_a_table_constraint(app):
    constraint = next(c for c in PaymentRecord.__table__.constraints if c.name == "unique_user_month")

    assert [col.name for col in constraint.columns] == ["user_id", "payment_month"]


def test_failed_month_change_leaves_record_untouched(store, make_user, make_payment):
    user = make_user()
    make_payment(user, date(2026, 9, 1), status="unpaid")
    record = make_payment(user, date(2026, 10, 1), status="unpaid")

    with pytest.raises(RecordConflict):
        store.update(record, PaymentPatch(period_key=date(2026, 9, 1), status="paid"), now=NOW)

    assert [(r.period_key, r.status, r.paid_at) for r in payments_for(user.id)] == [
        (date(2026, 9, 1), "unpaid", None),
        (date(2026, 10, 1), "unpaid", None),
    ]
