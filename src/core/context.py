"""
Runtime context: 프로세스 수명 동안 공유되는 가변 상태.

- 렌더 엔진 handle (탐색 또는 수동 선택으로 설정)
- SMTP 접속 정보

규칙:
- 전역 변수 대신 이 객체를 orchestrator/서비스 생성 시 주입
- 변경은 reconfigure()로만, 값은 통째로 교체 (부분 수정 없음)
- 배치 실행 중 동시 접근 없음 → 락 불필요
"""

import logging
from dataclasses import dataclass

from src.domain.schemas import SmtpConfig

logger = logging.getLogger(__name__)

_UNSET = object()


@dataclass
class RuntimeContext:
    """렌더 엔진 handle + SMTP 설정."""

    engine_handle: str | None = None
    smtp: SmtpConfig | None = None

    @property
    def engine_available(self) -> bool:
        return bool(self.engine_handle)

    @property
    def smtp_configured(self) -> bool:
        return self.smtp is not None

    def reconfigure(
        self,
        engine_handle: "str | None | object" = _UNSET,
        smtp: "SmtpConfig | None | object" = _UNSET,
    ) -> None:
        """
        값 교체.

        넘긴 인자만 교체하고 나머지는 유지. None을 넘기면 해제.
        """
        if engine_handle is not _UNSET:
            logger.info(f"Render engine handle set: {engine_handle}")
            self.engine_handle = engine_handle  # type: ignore[assignment]
        if smtp is not _UNSET:
            host = smtp.host if isinstance(smtp, SmtpConfig) else None
            logger.info(f"SMTP configuration replaced (host={host})")
            self.smtp = smtp  # type: ignore[assignment]
