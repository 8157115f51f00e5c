"""
Email adapter for the portfolio backend.

send_email() talks SMTP with the credentials from Settings. dispatch_email()
is the notifier handed to services: it queues send_email() on a shared thread
pool and returns immediately, logging failures for operators.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional
import logging
import smtplib
import ssl

from .config import get_settings

logger = logging.getLogger(__name__)

_executor: Optional[ThreadPoolExecutor] = None


def get_executor() -> ThreadPoolExecutor:
    """Return the shared mail executor, create it if it does not exist."""
    global _executor
    if not _executor:
        _executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="portfolio.mailer")
    return _executor


def send_email(subject: str, to_email: str, html_body: str, text_body: str | None = None) -> bool:
    """
    Send an email using the SMTP credentials from the environment.
    Returns False without sending when SMTP is not configured.
    """
    settings = get_settings()
    if not (
        settings.smtp_host
        and settings.smtp_user
        and settings.smtp_password
        and settings.smtp_from
        and settings.smtp_port
    ):
        logger.warning("SMTP not configured; skipping mail to %s", to_email)
        return False
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.smtp_from
    msg["To"] = to_email
    plain = text_body or html_body
    msg.attach(MIMEText(plain, "plain", "utf-8"))
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    port = settings.smtp_port or 465
    try:
        if port == 465:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(settings.smtp_host, port, context=context) as server:
                server.login(settings.smtp_user, settings.smtp_password)
                server.sendmail(settings.smtp_from, [to_email], msg.as_string())
        else:
            with smtplib.SMTP(settings.smtp_host, port) as server:
                server.ehlo()
                server.starttls(context=ssl.create_default_context())
                server.login(settings.smtp_user, settings.smtp_password)
                server.sendmail(settings.smtp_from, [to_email], msg.as_string())
        return True
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed sending mail to %s", to_email)
        return False


def _deliver(to_email: str, subject: str, html_body: str, text_body: str | None) -> bool:
    sent = send_email(subject, to_email, html_body, text_body)
    if not sent:
        logger.error("Mail '%s' to %s was not delivered", subject, to_email)
    return sent


def _report(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Mail dispatch crashed", exc_info=exc)


def dispatch_email(to_email: str, subject: str, html_body: str, text_body: str | None = None) -> None:
    """Queue a mail for delivery without waiting on it."""
    future = get_executor().submit(_deliver, to_email, subject, html_body, text_body)
    future.add_done_callback(_report)
