"""Consent email composition (Jinja2) and SMTP delivery.

Composition runs inside the request; delivery runs inside the Celery
worker (see ``consentlink.tasks.send_email``). Messages travel between
the two as plain dicts ``{to, subject, html, text}`` so they serialize
as JSON.
"""

from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from urllib.parse import urlencode

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from consentlink.config import settings
from consentlink.exceptions import TransientError

logger = structlog.get_logger()

TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "emails"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)


def consent_url(token: str) -> str:
    """Public link a recipient follows to view and sign a document."""
    return f"{settings.CLIENT_URL.rstrip('/')}/consent?{urlencode({'token': token})}"


def build_consent_email(
    to: str,
    recipient_name: str,
    document_name: str,
    token: str,
) -> dict:
    url = consent_url(token)
    context = {
        "recipient_name": recipient_name,
        "document_name": document_name,
        "consent_url": url,
    }
    return {
        "to": to,
        "subject": f"Digital Consent Request: {document_name}",
        "html": _env.get_template("consent_request.html").render(**context),
        "text": _env.get_template("consent_request.txt").render(**context),
    }


class Mailer:
    """Minimal SMTP sender."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
        use_tls: bool | None = None,
        sender: str | None = None,
    ):
        self.host = settings.SMTP_HOST if host is None else host
        self.port = port or settings.SMTP_PORT
        self.user = settings.SMTP_USER if user is None else user
        self.password = settings.SMTP_PASSWORD if password is None else password
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self.sender = sender or settings.EMAIL_FROM

    def send(self, message: dict) -> bool:
        """Send one message. Returns False when SMTP is not configured.

        Raises:
            TransientError: the SMTP server refused or could not be reached.
        """
        if not self.host:
            logger.info("email_not_sent_smtp_unconfigured", to=message["to"], subject=message["subject"])
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = message["subject"]
        msg["From"] = self.sender
        msg["To"] = message["to"]
        if message.get("text"):
            msg.attach(MIMEText(message["text"], "plain"))
        if message.get("html"):
            msg.attach(MIMEText(message["html"], "html"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                if self.use_tls:
                    server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("email_send_failed", to=message["to"], error=str(e))
            raise TransientError(f"Failed to send email to {message['to']}") from e

        logger.info("email_sent", to=message["to"], subject=message["subject"])
        return True
