"""
Settings: 앱 기본 설정(default.yaml) + 사용자 설정 저장소(config.json).

규칙:
- default.yaml: 코드 동작 기본값 (타임아웃, 이름 필드 등). 없으면 {}
- config.json: 마지막 작업 폴더 + SMTP 정보
- 저장은 항상 merge (부분 업데이트가 기존 키를 지우지 않음)
- read-modify-write 구간은 FileLock으로 보호 (CLI/API 동시 사용)
"""

import json
import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import yaml
from filelock import FileLock, Timeout

from src.core.storage import atomic_write_json
from src.domain.errors import ErrorCodes, SettingsError
from src.domain.schemas import SmtpConfig

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "default.yaml"
DEFAULT_SETTINGS_PATH = Path.home() / ".docmerge" / "config.json"

BASE_FOLDER_KEY = "baseFolder"
SMTP_CONFIG_KEY = "smtpConfig"


# =============================================================================
# default.yaml
# =============================================================================


def load_config(config_path: Path | None = None) -> dict:
    """설정 파일 로드."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        data: dict[Any, Any] = yaml.safe_load(f) or {}
        return data


def config_value(config: dict, section: str, key: str, default: Any) -> Any:
    """config[section][key] (없으면 default)."""
    value = (config.get(section) or {}).get(key)
    return default if value is None else value


# =============================================================================
# config.json (사용자 설정)
# =============================================================================


class SettingsStore:
    """
    사용자 설정 저장소.

    Usage:
        store = SettingsStore(path)
        store.save({"baseFolder": "/data/lote"})
        store.save({"smtpConfig": {...}})   # baseFolder 유지
    """

    LOCK_TIMEOUT = 10.0

    def __init__(self, path: Path | None = None):
        """
        Args:
            path: config.json 경로 (None이면 ~/.docmerge/config.json)
        """
        self.path = path or DEFAULT_SETTINGS_PATH
        self._lock_path = self.path.with_name(self.path.name + ".lock")

    @staticmethod
    def defaults() -> dict[str, Any]:
        return {BASE_FOLDER_KEY: None, SMTP_CONFIG_KEY: None}

    @contextmanager
    def _locked(self) -> Generator[None, None, None]:
        """
        설정 파일 락.

        Raises:
            SettingsError: SETTINGS_WRITE_FAILED (락 타임아웃)
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(self._lock_path, timeout=self.LOCK_TIMEOUT)
        try:
            lock.acquire()
        except Timeout as e:
            raise SettingsError(
                ErrorCodes.SETTINGS_WRITE_FAILED,
                path=str(self.path),
                error="lock timeout",
                timeout=self.LOCK_TIMEOUT,
            ) from e
        try:
            yield
        finally:
            lock.release()

    def load(self) -> dict[str, Any]:
        """
        설정 로드.

        파일이 없거나 깨져 있으면 기본값 (경고 로그만).
        """
        if not self.path.exists():
            return self.defaults()

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load settings {self.path}: {e}")
            return self.defaults()

        if not isinstance(data, dict):
            logger.error(f"Settings file {self.path} is not a JSON object, ignoring")
            return self.defaults()

        return {**self.defaults(), **data}

    def save(self, partial: dict[str, Any]) -> dict[str, Any]:
        """
        부분 업데이트를 기존 설정에 merge하여 저장.

        Args:
            partial: 변경할 키만 담은 dict

        Returns:
            저장된 전체 설정

        Raises:
            SettingsError: SETTINGS_WRITE_FAILED
        """
        with self._locked():
            merged = {**self.load(), **partial}
            try:
                atomic_write_json(self.path, merged)
            except OSError as e:
                raise SettingsError(
                    ErrorCodes.SETTINGS_WRITE_FAILED,
                    path=str(self.path),
                    error=str(e),
                ) from e

        logger.info(f"Settings saved: keys={sorted(partial)}")
        return merged

    # =========================================================================
    # Typed accessors
    # =========================================================================

    def get_base_folder(self) -> Path | None:
        value = self.load().get(BASE_FOLDER_KEY)
        return Path(value) if value else None

    def save_base_folder(self, base_folder: Path) -> dict[str, Any]:
        return self.save({BASE_FOLDER_KEY: str(base_folder)})

    def get_smtp_config(self) -> SmtpConfig | None:
        value = self.load().get(SMTP_CONFIG_KEY)
        if not value:
            return None
        return SmtpConfig.from_dict(value)

    def save_smtp_config(self, smtp: SmtpConfig) -> dict[str, Any]:
        return self.save({SMTP_CONFIG_KEY: smtp.to_dict()})
