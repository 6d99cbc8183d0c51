# payments/cli.py
from datetime import datetime

import click
from flask.cli import AppGroup

from payments.periods import as_utc_naive
from payments.reminders import run_batch

payments_cli = AppGroup("payments", help="Monthly payment maintenance.")


def _parse_now(ctx, param, value):
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return as_utc_naive(datetime.fromisoformat(text))
    except ValueError:
        raise click.BadParameter(f"not an ISO timestamp: {value}")


@payments_cli.command("check")
@click.option("--now", "now_", default=None, callback=_parse_now,
              help="Evaluate as of this ISO timestamp (UTC unless an offset is given).")
def check_and_remind(now_):
    """Run the payment check / reminder batch once (for OS cron)."""
    result = run_batch(now=now_)
    click.echo(result.summary())
