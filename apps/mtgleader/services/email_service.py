"""
Email service using SendGrid for sending notifications.
"""

import asyncio
import logging
import os

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

from mtgleader.config import get_bool_env

logger = logging.getLogger(__name__)

# SendGrid Configuration
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
SENDGRID_FROM_EMAIL = os.getenv("SENDGRID_FROM_EMAIL", "noreply@mtgleader.app")
ENABLE_EMAIL = get_bool_env("ENABLE_EMAIL", default=True)


def _send(message: Mail) -> int:
    sg = SendGridAPIClient(SENDGRID_API_KEY)
    response = sg.send(message)
    return response.status_code


async def send_password_reset_email(to_email: str, reset_url: str, ttl_minutes: int) -> bool:
    """
    Send a password reset link via SendGrid.

    Args:
        to_email: Recipient address
        reset_url: Absolute URL carrying the raw reset token
        ttl_minutes: How long the link stays valid

    Returns:
        bool: True if the email was sent (or sending is disabled), False on failure
    """
    if not ENABLE_EMAIL:
        logger.info("Email sending is disabled. Password reset email skipped.")
        return True

    if not SENDGRID_API_KEY:
        logger.warning("SENDGRID_API_KEY not configured. Password reset email skipped.")
        return True

    try:
        body_lines = [
            "Someone asked to reset the password for your MTG Leader account.",
            "",
            "Use the link below to choose a new password:",
            reset_url,
            "",
            f"The link expires in {ttl_minutes} minutes and can only be used once.",
            "If you did not ask for this, you can ignore this email.",
        ]
        message = Mail(
            from_email=Email(SENDGRID_FROM_EMAIL),
            to_emails=To(to_email),
            subject="Reset your MTG Leader password",
            plain_text_content=Content("text/plain", "\n".join(body_lines)),
        )

        status_code = await asyncio.to_thread(_send, message)
        if 200 <= status_code < 300:
            logger.info(f"Password reset email sent to {to_email}")
            return True
        logger.error(f"SendGrid returned status {status_code} for password reset email")
        return False

    except Exception as e:
        logger.error(f"Failed to send password reset email: {str(e)}")
        return False
