"""
Outbound email for the auth service (password reset links).
"""
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import logging
import smtplib
import ssl

from ..config import Settings

logger = logging.getLogger(__name__)

PASSWORD_RESET_SUBJECT = "{brand} Password Reset Request"

PASSWORD_RESET_HTML = """
<h1>Password Reset Request</h1>
<p>You have requested a password reset for your {brand} account. Please click the link below to reset your password:</p>
<a href="{reset_link}" clicktracking=off>{reset_link}</a>
<p>This link will expire in {minutes} minutes.</p>
<p>If you did not request this, please ignore this email.</p>
"""


class EmailService:
    def __init__(self, settings: Settings):
        self._settings = settings

    def _create_message(self, to_email: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f'"{self._settings.BRAND_NAME}" <{self._settings.SMTP_FROM_EMAIL or self._settings.SMTP_USER}>'
        msg["To"] = to_email
        msg.attach(MIMEText(html_body, "html"))
        return msg

    def send(self, to_email: str, subject: str, html_body: str) -> bool:
        """
        Deliver one HTML email.

        Returns:
            True if the SMTP server accepted the message, False otherwise.
            Failures are logged, never raised.
        """
        settings = self._settings
        if not settings.SMTP_ENABLED:
            logger.warning("SMTP disabled, email '%s' not sent to %s", subject, to_email)
            return False

        if not settings.SMTP_HOST:
            logger.error("SMTP host not configured")
            return False

        message = self._create_message(to_email, subject, html_body)
        smtp_password = settings.SMTP_PASSWORD.get_secret_value() if settings.SMTP_PASSWORD else ""

        try:
            if settings.SMTP_USE_TLS and not settings.SMTP_STARTTLS:
                # Implicit TLS (port 465)
                context = ssl.create_default_context()
                with smtplib.SMTP_SSL(
                    settings.SMTP_HOST,
                    settings.SMTP_PORT,
                    context=context,
                    timeout=settings.SMTP_TIMEOUT_SECONDS,
                ) as server:
                    if settings.SMTP_USER:
                        server.login(settings.SMTP_USER, smtp_password)
                    server.send_message(message)
            else:
                # STARTTLS (port 587) or plain
                with smtplib.SMTP(
                    settings.SMTP_HOST,
                    settings.SMTP_PORT,
                    timeout=settings.SMTP_TIMEOUT_SECONDS,
                ) as server:
                    if settings.SMTP_STARTTLS:
                        server.starttls(context=ssl.create_default_context())
                    if settings.SMTP_USER:
                        server.login(settings.SMTP_USER, smtp_password)
                    server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %s", to_email, e)
            return False

        logger.info("Email sent to %s", to_email)
        return True

    def send_password_reset(self, to_email: str, reset_link: str) -> bool:
        brand = self._settings.BRAND_NAME
        html_body = PASSWORD_RESET_HTML.format(
            brand=brand,
            reset_link=reset_link,
            minutes=self._settings.RESET_TOKEN_EXPIRE_MINUTES,
        )
        return self.send(to_email, PASSWORD_RESET_SUBJECT.format(brand=brand), html_body)
