"""
Application Services.

역할:
- orchestrator: records x templates 배치 실행 (렌더 모드 / 통합 모드)
- delivery: record별 메일 1통 발송
- naming: 출력 파일명 정책
"""

from .delivery import DeliveryCoordinator
from .naming import build_file_name, sanitize_name
from .orchestrator import BatchOrchestrator

__all__ = [
    "BatchOrchestrator",
    "DeliveryCoordinator",
    "build_file_name",
    "sanitize_name",
]
