"""
Mail sender for verification codes.

Supports SMTP, Resend API, and console logging modes.
"""

import logging
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib
import httpx

from config.email_config import RESEND_API_URL, EMAIL_DEFAULTS, EMAIL_SUBJECTS

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    """The configured provider did not accept the message."""


@dataclass(frozen=True)
class MailConfig:
    mode: str = EMAIL_DEFAULTS["mode"]
    from_email: str = EMAIL_DEFAULTS["from_email"]
    from_name: str = EMAIL_DEFAULTS["from_name"]
    team_name: str = EMAIL_DEFAULTS["team_name"]
    resend_api_key: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 465
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    code_expire_minutes: int = 10


class MailSender:
    """
    Sends one-time codes by email.

    Modes:
        - console: Log emails to console (development)
        - smtp: Send via SMTP
        - resend: Send via Resend HTTP API
    """

    def __init__(self, config: MailConfig):
        self._config = config
        self._mode = config.mode

        if self._mode == "resend" and not config.resend_api_key:
            logger.warning("Resend API key not configured, falling back to console mode")
            self._mode = "console"
        elif self._mode == "smtp" and not config.smtp_host:
            logger.warning("SMTP host not configured, falling back to console mode")
            self._mode = "console"

        logger.info(f"Mail sender initialized in {self._mode} mode")

    @property
    def mode(self) -> str:
        return self._mode

    async def send_verification_token(self, email: str, token: str) -> None:
        """Send an email verification code."""
        await self._send_code(
            email,
            token,
            subject=EMAIL_SUBJECTS["verification"],
            heading="Welcome to AAng Logistics",
            body="Please use this code to verify your email address:",
        )

    async def send_password_reset_token(self, email: str, token: str) -> None:
        """Send a password reset code."""
        await self._send_code(
            email,
            token,
            subject=EMAIL_SUBJECTS["password_reset"],
            heading="AAng Logistics",
            body="To reset your password, please use the following code:",
        )

    async def send_pin_reset_token(self, email: str, token: str) -> None:
        """Send an AuthPin reset code."""
        await self._send_code(
            email,
            token,
            subject=EMAIL_SUBJECTS["pin_reset"],
            heading="AAng Logistics",
            body="To reset or update your PIN, please use the following code:",
        )

    async def _send_code(self, to: str, code: str, subject: str, heading: str, body: str) -> None:
        minutes = self._config.code_expire_minutes
        html = f"""
<h1>{heading}</h1>
<p>{body}</p>
<h3>{code}</h3>
<p>This code expires in {minutes} minutes. Do not share it with anyone.</p>
<p>If you did not request this code, please ignore this email.</p>
<p>Best regards,<br/>{self._config.team_name}</p>
"""
        text = (
            f"{heading}\n\n{body}\n\n{code}\n\n"
            f"This code expires in {minutes} minutes. Do not share it with anyone.\n"
            f"If you did not request this code, please ignore this email.\n\n"
            f"Best regards,\n{self._config.team_name}\n"
        )
        await self._send(to, subject, html, text)

    async def _send(self, to: str, subject: str, html: str, text: str) -> None:
        """
        Send via the configured provider.

        Raises:
            MailDeliveryError: If the provider rejects the message
        """
        if self._mode == "console":
            self._send_console(to, subject)
        elif self._mode == "smtp":
            await self._send_smtp(to, subject, html, text)
        elif self._mode == "resend":
            await self._send_resend(to, subject, html, text)
        else:
            raise MailDeliveryError(f"Unknown email mode: {self._mode}")

    def _send_console(self, to: str, subject: str) -> None:
        """Log the envelope only. Codes are never written to logs."""
        logger.info(f"EMAIL (console mode) to={to} subject={subject!r}")

    async def _send_smtp(self, to: str, subject: str, html: str, text: str) -> None:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = f"{self._config.from_name} <{self._config.from_email}>"
        message["To"] = to
        message.attach(MIMEText(text, "plain"))
        message.attach(MIMEText(html, "html"))

        # Port 465 is implicit TLS, anything else upgrades with STARTTLS
        use_tls = self._config.smtp_port == 465

        try:
            await aiosmtplib.send(
                message,
                hostname=self._config.smtp_host,
                port=self._config.smtp_port,
                username=self._config.smtp_user,
                password=self._config.smtp_password,
                use_tls=use_tls,
                start_tls=not use_tls,
            )
        except aiosmtplib.SMTPException as e:
            logger.error(f"Failed to send email via SMTP: {e}")
            raise MailDeliveryError(str(e))

        logger.info(f"Email sent via SMTP to {to}")

    async def _send_resend(self, to: str, subject: str, html: str, text: str) -> None:
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {self._config.resend_api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": f"{self._config.from_name} <{self._config.from_email}>",
                        "to": [to],
                        "subject": subject,
                        "html": html,
                        "text": text,
                    },
                )
            except httpx.HTTPError as e:
                logger.error(f"Failed to send email via Resend: {e}")
                raise MailDeliveryError(str(e))

        if response.status_code != 200:
            try:
                error_msg = response.json().get("message", "Unknown error")
            except ValueError:
                error_msg = response.text
            logger.error(f"Resend API error: {error_msg}")
            raise MailDeliveryError(error_msg)

        logger.info(f"Email sent via Resend to {to}")
