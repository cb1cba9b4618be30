"""
Payment confirmation notifications.

This is intentionally thin. The reconciliation service drives the when;
this module handles the how.
"""
import logging
from html import escape

from app.integrations import email

logger = logging.getLogger(__name__)

SUBJECT_PAYMENT_CONFIRMED = "Enrollment confirmed: {batch}"

MSG_PAYMENT_CONFIRMED = """\
<div style="font-family: Arial, sans-serif; max-width: 560px; margin: 0 auto;">
  <h2>Your enrollment is confirmed</h2>
  <p>Thank you for your payment. Here are the details of your purchase:</p>
  <table cellpadding="6" style="border-collapse: collapse;">
    <tr><td><strong>Batch</strong></td><td>{batch}</td></tr>
    <tr><td><strong>Subjects</strong></td><td>{subjects}</td></tr>
    <tr><td><strong>Amount paid</strong></td><td>&#8377;{amount}</td></tr>
    <tr><td><strong>Transaction ID</strong></td><td>{transaction_id}</td></tr>
  </table>
  <p>You can access your courses from your dashboard.</p>
</div>
"""


def format_amount(amount) -> str:
    value = float(amount or 0)
    if value.is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def render_payment_confirmation(batch: str, subjects: str, amount, transaction_id: str) -> str:
    return MSG_PAYMENT_CONFIRMED.format(
        batch=escape(batch or "Your batch"),
        subjects=escape(subjects or "No subjects"),
        amount=format_amount(amount),
        transaction_id=escape(transaction_id or "-"),
    )


def notify_payment_confirmed(
    to: str,
    batch: str,
    subjects: str,
    amount,
    transaction_id: str,
) -> bool:
    """Send the enrollment confirmation e-mail. Returns False when skipped or failed."""
    if not email.is_enabled():
        logger.info("Payment confirmation skipped for %s (e-mail disabled)", to)
        return False
    if not to:
        logger.info("Payment confirmation skipped: no customer e-mail on order")
        return False

    html = render_payment_confirmation(batch, subjects, amount, transaction_id)
    sent = email.send_email(to, SUBJECT_PAYMENT_CONFIRMED.format(batch=batch or "your batch"), html)
    if sent:
        logger.info("Payment confirmation sent to %s", to)
    return sent
