"""
출력 저장소: 작업 폴더 구조, 고유 파일명, artifact 저장, 원자적 JSON 쓰기.

규칙:
- <base>/ 에 excel, plantillas, adjuntos, salida 하위 폴더 보장 (idempotent)
- 같은 폴더에 같은 이름 금지 → name(n).ext, n은 쓰는 시점에 비어있는 최소값
- 이름은 미리 예약하지 않음 (쓰는 시점의 파일시스템 상태 기준)
- 저장 실패는 artifact 단위 PersistFailure
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from src.domain.constants import BASE_SUBFOLDERS, OUTPUT_DIR
from src.domain.errors import ErrorCodes, PersistFailure
from src.domain.schemas import RenderedArtifact

logger = logging.getLogger(__name__)

# 동시 생성으로 이름이 선점됐을 때 재시도 횟수
MAX_CREATE_ATTEMPTS = 50


# =============================================================================
# Base Folder Layout
# =============================================================================


def ensure_subfolders(base_path: Path) -> list[str]:
    """
    작업 폴더 하위 구조 생성.

    이미 있는 폴더/내용은 건드리지 않음.

    Args:
        base_path: 작업 폴더 경로

    Returns:
        이번 호출에서 새로 만든 폴더 이름 목록 (두 번째 호출부터는 [])
    """
    created: list[str] = []
    for name in BASE_SUBFOLDERS:
        folder = base_path / name
        if not folder.exists():
            folder.mkdir(parents=True)
            created.append(name)

    if created:
        logger.info(f"Created subfolders in {base_path}: {created}")
    return created


def get_output_dir(base_path: Path) -> Path:
    """<base>/salida 경로."""
    return base_path / OUTPUT_DIR


# =============================================================================
# Unique Path
# =============================================================================


def get_unique_file_path(base_dir: Path, file_name: str) -> Path:
    """
    충돌하지 않는 파일 경로 반환.

    a.pdf가 있으면 a(1).pdf, 그것도 있으면 a(2).pdf ...

    Note:
        호출 시점의 파일시스템 기준. 이름을 예약하지 않으므로
        병렬 writer가 있으면 같은 경로로 결정될 수 있음 (write_artifact는
        배타적 생성으로 이를 감지).
    """
    candidate = base_dir / file_name
    stem = candidate.stem
    suffix = candidate.suffix

    counter = 0
    while candidate.exists():
        counter += 1
        candidate = base_dir / f"{stem}({counter}){suffix}"

    return candidate


def write_artifact(output_dir: Path, artifact: RenderedArtifact) -> Path:
    """
    artifact를 output_dir에 고유 이름으로 저장.

    Args:
        output_dir: 저장 폴더 (보통 <base>/salida)
        artifact: 렌더링된 artifact

    Returns:
        실제 저장된 경로 (artifact.saved_path에도 기록)

    Raises:
        PersistFailure: PERSIST_FAILED
    """
    try:
        output_dir.mkdir(parents=True, exist_ok=True)

        for _ in range(MAX_CREATE_ATTEMPTS):
            target = get_unique_file_path(output_dir, artifact.file_name)
            try:
                # "xb": 확인 ~ 생성 사이에 다른 writer가 만들었으면 FileExistsError
                with open(target, "xb") as f:
                    f.write(artifact.content)
            except FileExistsError:
                continue

            artifact.saved_path = target
            return target

        raise PersistFailure(
            ErrorCodes.PERSIST_FAILED,
            file_name=artifact.file_name,
            error="could not allocate a unique file name",
        )

    except PersistFailure:
        raise
    except OSError as e:
        raise PersistFailure(
            ErrorCodes.PERSIST_FAILED,
            file_name=artifact.file_name,
            error=str(e),
        ) from e


# =============================================================================
# Atomic JSON
# =============================================================================


def _fsync_dir(dir_path: Path) -> None:
    """
    디렉토리 fsync (가능한 환경에서).

    rename 후 디렉토리 엔트리까지 내구성을 강화하려면 필요.
    """
    try:
        dir_fd = os.open(str(dir_path), os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except (OSError, AttributeError) as e:
        # O_DIRECTORY 미지원 (Windows), 권한 문제 등
        logger.debug(f"Directory fsync skipped for {dir_path}: {e}")


def atomic_write_json(path: Path, data: dict) -> None:
    """
    원자적 JSON 쓰기.

    동작:
    - 중간 상태 없음: temp → replace
    - 파일 fsync + 디렉토리 fsync (가능한 환경에서)
    - 실패 시 temp 파일 삭제, 기존 파일 보존

    Args:
        path: 저장할 파일 경로
        data: JSON 직렬화할 데이터
    """
    dir_path = path.parent
    dir_path.mkdir(parents=True, exist_ok=True)

    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=dir_path,
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as f:
            temp_path = Path(f.name)
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            try:
                os.fsync(f.fileno())
            except OSError as e:
                logger.warning(
                    f"File fsync failed for {path}: {e}. "
                    f"Data may not be durable on power loss."
                )

        os.replace(temp_path, path)
        _fsync_dir(dir_path)

    except Exception:
        if temp_path and temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                pass
        raise
