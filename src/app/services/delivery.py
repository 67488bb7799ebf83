"""
Delivery Coordinator: record별 메시지 1건 발송.

규칙:
- artifact가 없는 그룹은 발송/카운트 대상 아님
- 첨부 = 렌더된 PDF 전부 + 존재하는 추가 파일 (발송 시점에 재확인)
- record 1건 발송 실패는 기록 후 다음 record 진행 (배치 중단 없음)
- 재시도 없음
"""

import logging
from collections.abc import Callable
from pathlib import Path

from src.app.providers.base import Attachment, MailTransport, OutboundMessage
from src.domain.errors import BatchError, ErrorCodes
from src.domain.schemas import (
    ArtifactGroup,
    DeliveryError,
    DeliveryReport,
    ProgressEvent,
)

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], None]


def existing_extra_files(extra_files: list[str | Path] | None) -> list[Path]:
    """빈 값/존재하지 않는 경로는 조용히 제외."""
    result: list[Path] = []
    for entry in extra_files or []:
        if not entry or not str(entry).strip():
            continue
        path = Path(entry)
        if path.is_file():
            result.append(path)
        else:
            logger.debug(f"Extra attachment not found, skipped: {path}")
    return result


class DeliveryCoordinator:
    """
    ArtifactGroup 목록 → 메시지 발송.

    Usage:
        coordinator = DeliveryCoordinator(transport, "Documentos", "Adjunto ...")
        report = await coordinator.deliver(groups)
    """

    def __init__(
        self,
        transport: MailTransport,
        subject: str,
        body: str,
        extra_files: list[str | Path] | None = None,
        sender: str | None = None,
        progress: ProgressSink | None = None,
    ):
        """
        Args:
            transport: 메일 전송 구현
            subject: 모든 메시지 공통 제목
            body: 모든 메시지 공통 본문 (text)
            extra_files: 모든 메시지에 붙일 추가 파일 경로
            sender: From 주소 (None이면 transport.sender)
            progress: 진행 이벤트 sink
        """
        self.transport = transport
        self.subject = subject
        self.body = body
        self.extra_files = list(extra_files or [])
        self.sender = sender if sender is not None else transport.sender
        self.progress = progress

    def build_message(self, group: ArtifactGroup) -> OutboundMessage:
        attachments = [
            Attachment(file_name=a.file_name, content=a.content)
            for a in group.artifacts
        ]
        attachments.extend(
            Attachment(file_name=p.name, path=p)
            for p in existing_extra_files(self.extra_files)
        )
        return OutboundMessage(
            sender=self.sender,
            recipient=group.delivery_key,
            subject=self.subject,
            body=self.body,
            attachments=attachments,
        )

    async def deliver(self, groups: list[ArtifactGroup]) -> DeliveryReport:
        """
        그룹마다 메시지 1건 발송.

        Returns:
            DeliveryReport (attempted, sent, errors)
        """
        targets = [g for g in groups if not g.is_empty]
        skipped = len(groups) - len(targets)
        if skipped:
            logger.info(f"{skipped} record(s) have no documents, not sending")

        report = DeliveryReport()
        total = len(targets)

        for index, group in enumerate(targets, start=1):
            report.attempted += 1
            ok = True
            message = self.build_message(group)

            try:
                await self.transport.send(message)
                report.sent += 1
            except BatchError as e:
                ok = False
                logger.error(f"Failed to send to {group.delivery_key}: {e}")
                report.errors.append(
                    DeliveryError(
                        delivery_key=group.delivery_key,
                        error=str(e.context.get("error", e)),
                        code=e.code,
                    )
                )
            except Exception as e:
                ok = False
                logger.error(f"Failed to send to {group.delivery_key}: {e}")
                report.errors.append(
                    DeliveryError(
                        delivery_key=group.delivery_key,
                        error=str(e),
                        code=ErrorCodes.DELIVERY_FAILED,
                    )
                )

            if self.progress is not None:
                self.progress(ProgressEvent(
                    phase="sending",
                    current=index,
                    total=total,
                    record=group.label or None,
                    delivery_key=group.delivery_key,
                    attachments=len(message.attachments),
                    ok=ok,
                ))

        logger.info(
            f"Delivery finished: {report.sent}/{report.attempted} sent, "
            f"{report.failed} failed"
        )
        return report
