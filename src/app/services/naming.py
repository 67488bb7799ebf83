"""
출력 파일명 정책.

{이름}_{템플릿}.pdf
- 이름: name_fields 중 처음으로 값이 있는 필드
- 영숫자, 공백, '-', '_' 외 문자 제거 → trim → 공백 연속은 '_'
- 이름이 없거나 정리 후 비면 documento_{순번:03d}
"""

import re

from src.domain.constants import (
    DEFAULT_NAME_FIELDS,
    FALLBACK_NAME_PREFIX,
    FALLBACK_ORDINAL_WIDTH,
    OUTPUT_EXTENSION,
)
from src.domain.schemas import Record

_DISALLOWED = re.compile(r"[^a-zA-Z0-9\s\-_]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_name(name: str) -> str:
    """파일명에 쓸 수 있게 이름 정리 (결과가 ""일 수 있음)."""
    cleaned = _DISALLOWED.sub("", name or "").strip()
    return _WHITESPACE.sub("_", cleaned)


def fallback_stem(ordinal: int) -> str:
    return f"{FALLBACK_NAME_PREFIX}_{ordinal:0{FALLBACK_ORDINAL_WIDTH}d}"


def build_file_name(
    record: Record,
    template_stem: str,
    name_fields: tuple[str, ...] | list[str] = DEFAULT_NAME_FIELDS,
) -> str:
    """
    record + 템플릿 → 출력 파일명.

    Args:
        record: 대상 레코드 (ordinal은 fallback 순번)
        template_stem: 템플릿 파일명 (확장자 제외)
        name_fields: 이름 후보 필드 (우선순위 순)

    Returns:
        예: "Juan_Perez_carta.pdf", "documento_007_carta.pdf"
    """
    stem = sanitize_name(record.first_of(name_fields)) or fallback_stem(record.ordinal)
    return f"{stem}_{template_stem}{OUTPUT_EXTENSION}"
