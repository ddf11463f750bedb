import asyncio
import logging
import smtplib
from email.message import EmailMessage
from html import escape

from app.core.config import Settings

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Sends invitation emails over SMTP, or logs them when SMTP is not configured."""

    def __init__(self, config: Settings):
        self.config = config

    @property
    def smtp_configured(self) -> bool:
        return bool(self.config.SMTP_HOST and self.config.SMTP_USERNAME and self.config.SMTP_PASSWORD)

    def invitation_link(self, token: str) -> str:
        return f"{self.config.FRONTEND_URL.rstrip('/')}/accept-invite/{token}"

    async def send_invitation_email(
        self,
        to_email: str,
        token: str,
        inviter_name: str,
        family_name: str,
        role: str,
    ) -> None:
        link = self.invitation_link(token)
        subject = f"{inviter_name} invited you to join {family_name}"
        text = (
            f"Hello,\n\n"
            f"{inviter_name} has invited you to join the family '{family_name}' as {role}.\n"
            f"Accept the invitation here: {link}\n\n"
            f"This link expires in {self.config.INVITATION_EXPIRY_DAYS} days.\n"
        )
        html = (
            f"<p>Hello,</p>"
            f"<p>{escape(inviter_name)} has invited you to join the family "
            f"<strong>{escape(family_name)}</strong> as {escape(role)}.</p>"
            f"<p><a href=\"{escape(link)}\">Accept invitation</a></p>"
            f"<p>This link expires in {self.config.INVITATION_EXPIRY_DAYS} days.</p>"
        )
        await self.send(to_email, subject, text, html)

    async def send(self, to_email: str, subject: str, text: str, html: str) -> None:
        if not self.smtp_configured:
            logger.info("SMTP not configured; email to %s not sent. Subject: %s", to_email, subject)
            logger.debug("Email body:\n%s", text)
            return

        message = EmailMessage()
        message["From"] = self.config.EMAIL_FROM
        message["To"] = to_email
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")

        await asyncio.to_thread(self._deliver, message)
        logger.info("Email sent to %s", to_email)

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.config.SMTP_HOST, self.config.SMTP_PORT, timeout=30) as server:
            server.starttls()
            server.login(self.config.SMTP_USERNAME, self.config.SMTP_PASSWORD)
            server.send_message(message)
