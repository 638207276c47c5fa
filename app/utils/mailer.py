"""Transactional email delivery over SMTP.

Sign-in codes are delivered with smtplib (STARTTLS) inside a worker thread
so the event loop is never blocked on the SMTP conversation.

When EMAIL_SERVER_HOST is not configured the message is not sent and a
warning is logged; the code itself is never logged.
"""

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.config import SMTPSettings, get_smtp_settings
from app.exceptions import CollaboratorUnavailableError
from app.utils.logging import get_logger, mask_email

log = get_logger(__name__)


def _send_sync(settings: SMTPSettings, to: str, subject: str, html: str, text: str) -> None:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.sender
    msg["To"] = to
    msg.attach(MIMEText(text, "plain", "utf-8"))
    msg.attach(MIMEText(html, "html", "utf-8"))

    with smtplib.SMTP(settings.host, settings.port, timeout=15) as conn:
        conn.ehlo()
        if settings.port != 25:
            conn.starttls()
            conn.ehlo()
        if settings.username and settings.password:
            conn.login(settings.username, settings.password)
        conn.sendmail(settings.sender, [to], msg.as_string())


async def send_email(to: str, subject: str, html: str, text: str) -> bool:
    """Send an email.

    Returns:
        True if delivered to the SMTP server, False if SMTP is not configured.

    Raises:
        CollaboratorUnavailableError: If the SMTP conversation fails.
    """
    settings = get_smtp_settings()
    if settings is None:
        log.warning("email_not_configured", to=mask_email(to), subject=subject)
        return False

    try:
        await asyncio.to_thread(_send_sync, settings, to, subject, html, text)
    except (smtplib.SMTPException, OSError) as e:
        log.error("email_send_failed", to=mask_email(to), error=type(e).__name__)
        raise CollaboratorUnavailableError("smtp", "Failed to send email") from e

    log.info("email_sent", to=mask_email(to), subject=subject)
    return True


def render_sign_in_email(code: str, host: str, max_age_minutes: int) -> tuple[str, str]:
    """Build (html, text) bodies for a sign-in code email."""
    text = (
        f"Sign in to {host}\n\n"
        f"Your verification code is: {code}\n\n"
        f"This code expires in {max_age_minutes} minutes. "
        "If you did not request this email you can safely ignore it.\n"
    )
    html = (
        '<body style="font-family: Helvetica, Arial, sans-serif;">'
        f"<h2>Sign in to {host}</h2>"
        "<p>Your verification code is:</p>"
        f'<p style="font-size: 28px; letter-spacing: 6px; font-weight: bold;">{code}</p>'
        f"<p>This code expires in {max_age_minutes} minutes.</p>"
        "<p>If you did not request this email you can safely ignore it.</p>"
        "</body>"
    )
    return html, text
