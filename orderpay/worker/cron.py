"""Cron: deliver emails stored while Resend was not configured."""

from orderpay.core.logging import get_logger
from orderpay.services.email import Mailer

log = get_logger(__name__)

FLUSH_BATCH_SIZE = 50


async def run_flush_stored_emails(mailer: Mailer) -> int:
    """Send up to one batch of stored emails. No-op until RESEND_API_KEY is set."""
    if not mailer.configured:
        return 0
    sent = await mailer.flush_stored(limit=FLUSH_BATCH_SIZE)
    if sent:
        log.info("stored_emails_flushed", sent=sent)
    return sent
