# notifications/dispatcher.py
"""
Outbound payment mails (monthly due reminder, pre-block warning, status change).

Callers treat every send as fire-and-forget: a failed send raises
DependencyFailure, which they log and move past. Nothing here retries.
"""
import logging
import smtplib
from decimal import Decimal

from flask import current_app, render_template
from flask_mail import Message

from extensions import mail
from payments.errors import DependencyFailure

logger = logging.getLogger(__name__)


def _fmt_date(value):
    return value.strftime("%Y-%m-%d") if value else "-"


class NotificationDispatcher:

    def __init__(self, monthly_fee=Decimal("15000"), currency="RWF",
                 instructions="", frontend_url=""):
        self.monthly_fee = monthly_fee
        self.currency = currency
        self.instructions = instructions
        self.frontend_url = frontend_url

    @classmethod
    def from_config(cls, config):
        return cls(
            monthly_fee=config.get("MONTHLY_FEE", Decimal("15000")),
            currency=config.get("PAYMENT_CURRENCY", "RWF"),
            instructions=config.get("PAYMENT_INSTRUCTIONS", ""),
            frontend_url=config.get("FRONTEND_URL", ""),
        )

    def _send(self, to, subject, template, **context):
        context.setdefault("amount", f"{self.monthly_fee:,.0f}")
        context.setdefault("currency", self.currency)
        context.setdefault("instructions", self.instructions)
        context.setdefault("frontend_url", self.frontend_url)

        msg = Message(
            subject=subject,
            recipients=[to],
            html=render_template(f"emails/{template}.html", **context),
            body=render_template(f"emails/{template}.txt", **context),
        )
        try:
            mail.send(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DependencyFailure(f"Failed to send '{subject}' to {to}: {e}")
        logger.debug("Sent %s mail to %s", template, to)

    def send_due_reminder(self, email, display_name):
        self._send(
            email,
            "Monthly payment reminder",
            "payment_reminder",
            name=display_name,
        )

    # Same mail, sent when an admin approves an account
    send_payment_instructions = send_due_reminder

    def send_pre_block_reminder(self, email, display_name, details):
        """details: last_paid_at, block_date, days_until_block"""
        self._send(
            email,
            f"Your access will be blocked in {details['days_until_block']} days",
            "pre_block_reminder",
            name=display_name,
            last_paid_at=_fmt_date(details.get("last_paid_at")),
            block_date=_fmt_date(details.get("block_date")),
            days_until_block=details["days_until_block"],
        )

    def send_status_update(self, email, display_name, details):
        """details: status, payment_month, amount, payment_method, paid_at"""
        self._send(
            email,
            f"Payment status updated: {details['status']}",
            "payment_status_update",
            name=display_name,
            status=details["status"],
            payment_month=_fmt_date(details.get("payment_month")),
            payment_amount=f"{Decimal(str(details.get('amount') or 0)):,.0f}",
            payment_method=details.get("payment_method") or "MOMO",
            paid_at=_fmt_date(details.get("paid_at")),
        )


def get_dispatcher():
    return NotificationDispatcher.from_config(current_app.config)
