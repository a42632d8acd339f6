"""Hand-off of composed emails to the Celery worker."""

from __future__ import annotations

import structlog

from consentlink.tasks.send_email import send_email

logger = structlog.get_logger()


def dispatch_email(message: dict) -> bool:
    """Enqueue one email. Never raises.

    A broker outage must not fail the request that produced the email;
    the rows it committed stay valid and staff can use resend later.
    """
    try:
        send_email.delay(message)
    except Exception as e:
        logger.warning("consent_email_dispatch_failed", to=message.get("to"), error=str(e))
        return False
    return True


def dispatch_emails(messages: list[dict]) -> int:
    """Enqueue a batch, returning how many were handed off."""
    return sum(1 for m in messages if dispatch_email(m))
