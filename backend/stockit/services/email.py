"""Outgoing email.

`EmailSender` is the delivery interface the rest of the app depends on;
`SMTPEmailSender` delivers over SMTP. smtplib blocks, so delivery runs in
a worker thread.

When no SMTP host is configured (development, CI) messages are logged
and dropped instead of sent.
"""

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

from stockit.config import settings

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    filename: str
    content: bytes
    mime_type: str = "application/octet-stream"


class EmailSender:
    async def send(
        self,
        recipients: list[str],
        subject: str,
        html_body: str,
        text_body: str | None = None,
        attachments: list[Attachment] | None = None,
    ) -> None:
        raise NotImplementedError


class SMTPEmailSender(EmailSender):
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender or username
        self.timeout = timeout

    def build_message(
        self,
        recipients: list[str],
        subject: str,
        html_body: str,
        text_body: str | None = None,
        attachments: list[Attachment] | None = None,
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg.set_content(text_body or "This message requires an HTML capable email client.")
        msg.add_alternative(html_body, subtype="html")

        for attachment in attachments or []:
            maintype, _, subtype = attachment.mime_type.partition("/")
            msg.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=attachment.filename,
            )
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)

    async def send(
        self,
        recipients: list[str],
        subject: str,
        html_body: str,
        text_body: str | None = None,
        attachments: list[Attachment] | None = None,
    ) -> None:
        if not recipients:
            return
        if not self.host:
            logger.info(
                "SMTP not configured; dropping email %r to %s",
                subject,
                ", ".join(recipients),
            )
            return

        msg = self.build_message(recipients, subject, html_body, text_body, attachments)
        await asyncio.to_thread(self._deliver, msg)
        logger.info("Sent email %r to %d recipient(s)", subject, len(recipients))


_sender: EmailSender | None = None


def get_email_sender() -> EmailSender:
    global _sender
    if _sender is None:
        _sender = SMTPEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=settings.email_from,
        )
    return _sender
