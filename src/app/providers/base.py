"""
Mail transport 추상 인터페이스.

- Transport 추상화로 SMTP 외 구현(테스트용 fake 등) 교체 가능
- 메시지 조립은 호출자(DeliveryCoordinator), 전송만 transport
- 실패는 DeliveryFailure로 통일 (record 1건 단위에서 잡음)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.domain.constants import get_mime_type


# =============================================================================
# Message Data Classes
# =============================================================================

@dataclass
class Attachment:
    """
    첨부 파일 1개.

    content(메모리 바이트) 또는 path(디스크 파일) 중 하나.
    렌더된 PDF는 content, adjuntos/ 추가 파일은 path.
    """
    file_name: str
    content: bytes | None = None
    path: Path | None = None

    @property
    def mime_type(self) -> str:
        return get_mime_type(self.file_name)

    def read(self) -> bytes:
        """첨부 바이트 (path면 전송 시점에 읽음)."""
        if self.content is not None:
            return self.content
        if self.path is not None:
            return Path(self.path).read_bytes()
        return b""


@dataclass
class OutboundMessage:
    """발송할 메시지 1건 (수신자 1명)."""
    sender: str
    recipient: str
    subject: str
    body: str
    attachments: list[Attachment] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.sender,
            "to": self.recipient,
            "subject": self.subject,
            "attachments": [a.file_name for a in self.attachments],
        }


# =============================================================================
# Abstract Transport
# =============================================================================

class MailTransport(ABC):
    """
    메일 전송 추상 인터페이스.

    역할: 완성된 메시지 1건 전송 (재시도 없음)
    """

    @property
    @abstractmethod
    def sender(self) -> str:
        """From 주소."""
        ...

    @abstractmethod
    async def send(self, message: OutboundMessage) -> None:
        """
        메시지 전송.

        Args:
            message: OutboundMessage

        Raises:
            DeliveryFailure: 접속/인증/전송 실패
        """
        ...
