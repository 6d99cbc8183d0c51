"""
Pytest configuration for the SPEMS payments API.

Provides fixtures for:
- an application on an in-memory SQLite database (scheduler off, mail suppressed)
- user / payment factories and bearer-token headers
- a recording stand-in for the mail dispatcher
"""

from __future__ import annotations

import itertools
from datetime import date, datetime
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from config import TestConfig
from extensions import db
from middleware.auth import invalidate_compliance
from payments.errors import DependencyFailure
from payments.models import PaymentRecord
from users.models import User

# Fixed evaluation time for engine tests: mid-month, mid-morning
NOW = datetime(2026, 10, 15, 9, 0, 0)
CURRENT_PERIOD = date(2026, 10, 1)
PREVIOUS_PERIOD = date(2026, 9, 1)


class RecordingDispatcher:
    """Collects outgoing mails instead of sending them; can be told to fail for some addresses."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.due = []
        self.pre_block = []
        self.status_updates = []
        self.instructions = []

    def _check(self, email):
        if email in self.fail_for:
            raise DependencyFailure(f"SMTP unavailable for {email}")

    def send_due_reminder(self, email, display_name):
        self._check(email)
        self.due.append((email, display_name))

    def send_payment_instructions(self, email, display_name):
        self._check(email)
        self.instructions.append((email, display_name))

    def send_pre_block_reminder(self, email, display_name, details):
        self._check(email)
        self.pre_block.append((email, display_name, details))

    def send_status_update(self, email, display_name, details):
        self._check(email)
        self.status_updates.append((email, display_name, details))


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
    invalidate_compliance()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make(role="staff", approved=True, username=None, email=None, password="secret123"):
        n = next(counter)
        user = User(
            username=username or f"user{n}",
            email=email or f"user{n}@example.com",
            role=role,
            approved=approved,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_payment(app):
    def _make(user, period_key, status="paid", paid_at=None, amount="15000", method="MOMO"):
        record = PaymentRecord(
            user_id=user.id,
            period_key=period_key,
            status=status,
            paid_at=paid_at,
            amount=Decimal(amount),
            payment_method=method,
        )
        db.session.add(record)
        db.session.commit()
        return record

    return _make


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}"}

    return _headers


def payments_for(user_id):
    return PaymentRecord.query.filter_by(user_id=user_id).order_by(PaymentRecord.period_key).all()
