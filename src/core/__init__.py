"""
Core layer: 실행 상태, 설정, 저장소, run log.

역할:
- RuntimeContext (엔진 handle, SMTP 설정)
- 설정 파일 (default.yaml, config.json)
- salida/ 고유 파일명 저장, 원자적 JSON 쓰기
"""

from .context import RuntimeContext
from .ids import generate_run_id
from .logging import create_run_log, emit_failure, save_run_log
from .settings import SettingsStore, load_config
from .storage import atomic_write_json, ensure_subfolders, get_unique_file_path, write_artifact

__all__ = [
    # context
    "RuntimeContext",
    # ids
    "generate_run_id",
    # logging
    "create_run_log",
    "emit_failure",
    "save_run_log",
    # settings
    "SettingsStore",
    "load_config",
    # storage
    "atomic_write_json",
    "ensure_subfolders",
    "get_unique_file_path",
    "write_artifact",
]
