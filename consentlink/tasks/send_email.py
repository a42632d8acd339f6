"""Celery task: deliver one consent email over SMTP.

Enqueued by the consent request and resend handlers after their rows are
committed. Delivery failures are retried here and never reach the caller
that enqueued the message.
"""

from __future__ import annotations

import structlog

from consentlink.celery_app import app
from consentlink.exceptions import TransientError
from consentlink.services.email import Mailer

logger = structlog.get_logger()


@app.task(
    name="consentlink.tasks.send_email.send_email",
    autoretry_for=(TransientError,),
    retry_backoff=30,
    retry_backoff_max=600,
    retry_jitter=True,
    max_retries=5,
)
def send_email(message: dict) -> bool:
    """Send ``{to, subject, html, text}`` via SMTP.

    Returns:
        True if the message was handed to the SMTP server, False if SMTP
        is not configured.
    """
    return Mailer().send(message)
