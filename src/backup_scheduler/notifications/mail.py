import asyncio
import json
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, Optional, Protocol

from backup_scheduler.config import Settings
from backup_scheduler.domain.task import NotificationTargets
from backup_scheduler.errors import DeliveryFailure
from backup_scheduler.notifications.channels import NotificationChannel
from backup_scheduler.notifications.context import NotificationContext

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    async def send(self, to: str, subject: str, body: str, log: Optional[Dict[str, Any]] = None) -> None:
        """Send a plain text message, with the run log attached when given. Raise DeliveryFailure if it could not be sent."""
        ...


class SmtpMailer:
    """Sends mail through an SMTP relay without blocking the event loop."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _build_message(self, to: str, subject: str, body: str, log: Optional[Dict[str, Any]] = None) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.settings.mail_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        if log is not None:
            message.add_attachment(json.dumps(log, indent=2), subtype="json", filename="backup-log.json")
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=self.settings.smtp_timeout) as smtp:
            if self.settings.smtp_use_tls:
                smtp.starttls()
            if self.settings.smtp_username:
                smtp.login(self.settings.smtp_username, self.settings.smtp_password or "")
            smtp.send_message(message)

    async def send(self, to: str, subject: str, body: str, log: Optional[Dict[str, Any]] = None) -> None:
        message = self._build_message(to, subject, body, log)
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryFailure("email", str(e)) from e
        logger.info("Sent email to %s: %s", to, subject)


class EmailChannel(NotificationChannel):
    """
    Mails the full output of the run to the task's notification address.
    """
    name = "email"

    def __init__(self, settings: Settings, mailer: Optional[Mailer] = None):
        super().__init__(settings)
        self.mailer: Mailer = mailer or SmtpMailer(settings)

    def target(self, targets: NotificationTargets) -> Optional[str]:
        return targets.email

    def format(self, context: NotificationContext) -> Dict[str, Any]:
        outcome = "succeeded" if context.successful else "failed"
        lines = [
            context.message,
            "",
            f"Backup Type: {context.backup_type}",
            f"Remote Server: {context.remote_server}",
            f"Backup Destination: {context.destination}",
            f"Result: {context.result.capitalize()}",
            f"Ran at: {context.ran_at(self.settings.timezone)}",
            "",
            "Output:",
            context.log.output if context.log else "",
            "",
            f"This notification was sent by {self.settings.app_name}.",
        ]
        return {
            "subject": f"{context.title} {outcome}",
            "body": "\n".join(lines),
            "log": context.log.model_dump(mode="json") if context.log else None,
        }

    async def deliver(self, target: str, payload: Dict[str, Any]) -> None:
        await self.mailer.send(target, payload["subject"], payload["body"], payload["log"])
