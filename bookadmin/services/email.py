"""Outgoing email: build account emails and deliver them over SMTP, never failing the caller."""

import logging
import smtplib
from email.message import EmailMessage

from pydantic import BaseModel

from bookadmin.core.config import Settings

logger = logging.getLogger(__name__)


class OutgoingEmail(BaseModel):
    to: str
    subject: str
    body: str


def password_reset_email(to: str, token: str, name: str, settings: Settings) -> OutgoingEmail:
    link = f"{settings.FRONTEND_URL}/system/reset-password?token={token}"
    return OutgoingEmail(
        to=to,
        subject="Password reset request",
        body=(
            f"Hello {name or 'there'},\n\n"
            "We received a request to reset your password. Use the link below to choose a new one:\n\n"
            f"{link}\n\n"
            f"This link expires in {settings.PASSWORD_RESET_EXPIRE_HOURS} hour(s). "
            "If you did not ask for a reset, you can ignore this email.\n"
        ),
    )


def account_setup_email(to: str, token: str, name: str, settings: Settings) -> OutgoingEmail:
    link = f"{settings.FRONTEND_URL}/system/reset-password?token={token}&setup=1"
    return OutgoingEmail(
        to=to,
        subject="Set up your account",
        body=(
            f"Hello {name or 'there'},\n\n"
            "An account has been created for you. Choose a password to activate it:\n\n"
            f"{link}\n\n"
            f"This link expires in {settings.ACCOUNT_SETUP_EXPIRE_HOURS} hours.\n"
        ),
    )


def email_verification_email(to: str, token: str, name: str, settings: Settings) -> OutgoingEmail:
    link = f"{settings.FRONTEND_URL}/system/verify-email?token={token}"
    return OutgoingEmail(
        to=to,
        subject="Verify your email address",
        body=(
            f"Hello {name or 'there'},\n\n"
            "Please confirm your email address by opening this link:\n\n"
            f"{link}\n\n"
            f"This link expires in {settings.EMAIL_VERIFICATION_EXPIRE_HOURS} hours.\n"
        ),
    )


def send_email(message: OutgoingEmail, settings: Settings) -> bool:
    """
    Deliver message via SMTP. Returns True if sent.

    Delivery problems are logged and reported as False; they never propagate,
    so a failed send cannot fail the request that triggered it.
    """
    if not settings.SMTP_HOST:
        logger.info("SMTP not configured; skipping email %r to %s", message.subject, message.to)
        return False

    msg = EmailMessage()
    msg["Subject"] = message.subject
    msg["From"] = settings.EMAIL_FROM
    msg["To"] = message.to
    msg.set_content(message.body)

    try:
        with smtplib.SMTP(
            settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SEC
        ) as server:
            if settings.SMTP_USE_TLS:
                server.starttls()
            if settings.SMTP_USER and settings.SMTP_PASSWORD is not None:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD.get_secret_value())
            server.send_message(msg)
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send email %r to %s", message.subject, message.to)
        return False
    logger.info("Sent email %r to %s", message.subject, message.to)
    return True
