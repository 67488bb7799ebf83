"""
SMTP transport: smtplib + email.message.

- secure=True → SMTP_SSL (implicit TLS, 보통 465)
- secure=False → SMTP + 서버가 지원하면 STARTTLS
- user가 있으면 login
- 블로킹 호출은 asyncio.to_thread로 event loop 밖에서 실행
"""

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage

from src.app.providers.base import MailTransport, OutboundMessage
from src.domain.errors import DeliveryFailure, ErrorCodes
from src.domain.schemas import SmtpConfig

logger = logging.getLogger(__name__)

DEFAULT_SMTP_TIMEOUT = 30.0


def build_email(message: OutboundMessage) -> EmailMessage:
    """OutboundMessage → EmailMessage (text 본문 + 첨부)."""
    msg = EmailMessage()
    msg["From"] = message.sender
    msg["To"] = message.recipient
    msg["Subject"] = message.subject
    msg.set_content(message.body or "")

    for attachment in message.attachments:
        maintype, _, subtype = attachment.mime_type.partition("/")
        msg.add_attachment(
            attachment.read(),
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.file_name,
        )
    return msg


class SmtpTransport(MailTransport):
    """
    SMTP 전송.

    메시지마다 접속 → 전송 → 종료 (연결 재사용 없음).
    """

    def __init__(self, config: SmtpConfig, timeout: float = DEFAULT_SMTP_TIMEOUT):
        self.config = config
        self.timeout = timeout

    @property
    def sender(self) -> str:
        return self.config.user

    def _connect(self) -> smtplib.SMTP:
        cfg = self.config
        if cfg.secure:
            return smtplib.SMTP_SSL(
                cfg.host,
                cfg.port,
                timeout=self.timeout,
                context=ssl.create_default_context(),
            )

        server = smtplib.SMTP(cfg.host, cfg.port, timeout=self.timeout)
        server.ehlo()
        if server.has_extn("starttls"):
            server.starttls(context=ssl.create_default_context())
            server.ehlo()
        return server

    def _send_sync(self, message: OutboundMessage) -> None:
        email = build_email(message)
        server = self._connect()
        try:
            if self.config.user:
                server.login(self.config.user, self.config.password)
            server.send_message(email)
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                server.close()

    async def send(self, message: OutboundMessage) -> None:
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryFailure(
                ErrorCodes.DELIVERY_FAILED,
                email=message.recipient,
                error=str(e),
            ) from e

        logger.info(
            f"Sent message to {message.recipient} "
            f"({len(message.attachments)} attachments)"
        )
