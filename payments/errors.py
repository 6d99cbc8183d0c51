# payments/errors.py
"""
Errors raised by the payment compliance core.

Every error carries the HTTP status the API layer renders it with, so the
app-level error handler can turn any of them into a JSON response.
"""


class PaymentError(Exception):
    status_code = 500

    def __init__(self, message, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self):
        payload = {"error": self.message}
        payload.update(self.extra)
        return payload


class Conflict(PaymentError):
    status_code = 409


class RecordConflict(Conflict):
    """A payment record already exists for (user_id, period_key)."""

    def __init__(self, user_id, period_key, message=None):
        super().__init__(
            message or f"Payment already exists for user {user_id} and month {period_key}",
            user_id=user_id,
            payment_month=period_key.isoformat() if period_key else None,
        )
        self.user_id = user_id
        self.period_key = period_key


class DependencyFailure(PaymentError):
    """The data store or the mail transport failed."""
    status_code = 503


class PaymentRequired(PaymentError):
    status_code = 402

    def __init__(self, amount_due, currency, instructions, message=None):
        super().__init__(
            message or (
                f"Account blocked. Please make your monthly payment "
                f"({amount_due:,.0f} {currency}) to continue using the system."
            ),
            amount_due=str(amount_due),
            currency=currency,
            instructions=instructions,
        )
        self.amount_due = amount_due
        self.currency = currency
        self.instructions = instructions


class NotFound(PaymentError):
    status_code = 404
