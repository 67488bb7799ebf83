"""
ID 생성: run_id

규칙:
- 배치 실행마다 새 run_id 발급
- run_id는 run log 파일명에도 쓰이므로 파일명 안전 문자만
"""

import uuid
from datetime import UTC, datetime

from src.domain.constants import RUN_ID_PREFIX


def generate_run_id() -> str:
    """
    Run ID 생성.

    고유성 보장: UUID v4
    포맷: RUN-{timestamp}-{uuid[:8]}

    Returns:
        run_id 문자열
    """
    now = datetime.now(UTC)
    timestamp = now.strftime("%Y%m%d%H%M%S")
    unique = uuid.uuid4().hex[:8]

    return f"{RUN_ID_PREFIX}{timestamp}-{unique}"
