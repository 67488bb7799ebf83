"""
Domain Constants: 파이프라인 전역 상수.

폴더 구조, 파일명 정책, MIME 타입 등 시스템 전반에서 사용되는 값들.
"""

# =============================================================================
# Base Folder Structure (작업 폴더 구조)
# =============================================================================
# <base>/
# ├── excel/        # 입력 스프레드시트
# ├── plantillas/   # DOCX 템플릿
# ├── adjuntos/     # 추가 첨부파일
# └── salida/       # 렌더링 결과 (PDF)

EXCEL_DIR = "excel"
TEMPLATES_DIR = "plantillas"
ATTACHMENTS_DIR = "adjuntos"
OUTPUT_DIR = "salida"

BASE_SUBFOLDERS = (EXCEL_DIR, TEMPLATES_DIR, ATTACHMENTS_DIR, OUTPUT_DIR)

# =============================================================================
# Output Filenames (출력 파일명 정책)
# =============================================================================
# {이름}_{템플릿}.pdf, 이름 필드가 없으면 documento_{순번:03d}_{템플릿}.pdf

OUTPUT_EXTENSION = ".pdf"
DEFAULT_NAME_FIELDS = ("nombre", "name")
FALLBACK_NAME_PREFIX = "documento"
FALLBACK_ORDINAL_WIDTH = 3

# =============================================================================
# Extraction
# =============================================================================

PREVIEW_ROW_COUNT = 5

# =============================================================================
# Render Engine (LibreOffice)
# =============================================================================

ENGINE_VERSION_SIGNATURE = "libreoffice"
ENGINE_COMMANDS = ("soffice", "libreoffice")

# =============================================================================
# Hash & ID Prefixes
# =============================================================================

RUN_ID_PREFIX = "RUN-"

# =============================================================================
# MIME Types
# =============================================================================

MIME_TYPES = {
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".txt": "text/plain",
    ".zip": "application/zip",
}


def get_mime_type(filename: str) -> str:
    """
    파일명에서 MIME 타입 추출.

    Args:
        filename: 파일명 (확장자 포함)

    Returns:
        MIME 타입 문자열 (알 수 없으면 octet-stream)
    """
    import os

    ext = os.path.splitext(filename)[1].lower()
    return MIME_TYPES.get(ext, "application/octet-stream")
