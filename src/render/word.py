"""
Word (DOCX) merge engine: python-docx 기반.

규칙:
- placeholder: {nombre}, {Email}, {fecha de pago} 등 단일 중괄호
- lookup은 대소문자 무시 (Record 키가 strip + lower로 정규화되어 있으므로
  placeholder 이름도 같은 방식으로 정규화)
- 값이 없는 placeholder는 에러/삭제 없이 {원래이름} 그대로 출력
- Word가 run을 쪼개 놓은 placeholder도 처리 (시작 run의 서식 유지)
- 템플릿 읽기/파싱 실패 → MergeFailure (job 1건 단위)
"""

import bisect
import io
import logging
import re
from collections.abc import Callable, Iterator
from pathlib import Path

from docx import Document
from docx.document import Document as DocumentObject
from docx.table import Table
from docx.text.paragraph import Paragraph

from src.domain.errors import ErrorCodes, MergeFailure
from src.domain.schemas import Record, normalize_key

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{([^{}]+)\}")


class DocxMerger:
    """
    Word 템플릿 merge.

    Usage:
        merger = DocxMerger(template_path)
        docx_bytes = merger.merge(record)
    """

    def __init__(self, template_path: Path):
        """
        Args:
            template_path: DOCX 템플릿 파일 경로
        """
        self.template_path = Path(template_path)
        self._template_bytes: bytes | None = None

    def _load_template(self) -> bytes:
        """
        템플릿 바이트 로드 (lazy, 1회).

        Raises:
            MergeFailure: TEMPLATE_NOT_FOUND, MERGE_FAILED
        """
        if self._template_bytes is None:
            if not self.template_path.is_file():
                raise MergeFailure(
                    ErrorCodes.TEMPLATE_NOT_FOUND,
                    template=str(self.template_path),
                )
            try:
                self._template_bytes = self.template_path.read_bytes()
            except OSError as e:
                raise MergeFailure(
                    ErrorCodes.MERGE_FAILED,
                    template=str(self.template_path),
                    error=str(e),
                ) from e
        return self._template_bytes

    def _open(self) -> DocumentObject:
        """record마다 새로 파싱한 Document."""
        content = self._load_template()
        try:
            return Document(io.BytesIO(content))
        except Exception as e:
            raise MergeFailure(
                ErrorCodes.MERGE_FAILED,
                template=str(self.template_path),
                error=f"corrupt template: {e}",
            ) from e

    def merge(self, record: Record) -> bytes:
        """
        record 값을 채운 DOCX 생성.

        Args:
            record: 정규화된 레코드

        Returns:
            merge된 DOCX 바이트

        Raises:
            MergeFailure: TEMPLATE_NOT_FOUND, MERGE_FAILED
        """
        try:
            doc = self._open()

            def resolve(name: str) -> str:
                value = record.get(name)
                if value is None:
                    return "{" + name + "}"
                return value

            for paragraph in iter_paragraphs(doc):
                replace_placeholders(paragraph, resolve)

            buffer = io.BytesIO()
            doc.save(buffer)
            return buffer.getvalue()

        except MergeFailure:
            raise
        except Exception as e:
            raise MergeFailure(
                ErrorCodes.MERGE_FAILED,
                template=str(self.template_path),
                error=str(e),
            ) from e

    def get_placeholders(self) -> list[str]:
        """
        템플릿에서 사용된 placeholder 목록 추출 (등장 순서, 중복 제거).

        Returns:
            placeholder 이름 목록 (예: ["Nombre", "email", ...])
        """
        doc = self._open()

        seen: dict[str, None] = {}
        for paragraph in iter_paragraphs(doc):
            text = "".join(run.text for run in paragraph.runs)
            for match in PLACEHOLDER_PATTERN.finditer(text):
                seen.setdefault(match.group(1), None)
        return list(seen)

    def missing_fields(self, available: set[str]) -> list[str]:
        """available(정규화된 키)로 채울 수 없는 placeholder 목록."""
        return [
            name for name in self.get_placeholders()
            if normalize_key(name) not in available
        ]


# =============================================================================
# Paragraph traversal / replacement
# =============================================================================


def iter_paragraphs(doc: DocumentObject) -> Iterator[Paragraph]:
    """
    본문, 표(중첩 포함), 섹션 머리글/바닥글의 모든 paragraph.

    병합 셀은 같은 paragraph가 여러 번 나오므로 한 번만 yield.
    이전 섹션에 연결된 머리글/바닥글은 건드리지 않음 (접근 시 정의가 생성됨).
    """
    # id()가 아니라 element 자체를 보관 (proxy가 해제되면 id가 재사용됨)
    seen: set = set()

    def unique(paragraphs: list[Paragraph]) -> Iterator[Paragraph]:
        for paragraph in paragraphs:
            element = paragraph._p
            if element not in seen:
                seen.add(element)
                yield paragraph

    def walk_tables(tables: list[Table]) -> Iterator[Paragraph]:
        for table in tables:
            for row in table.rows:
                for cell in row.cells:
                    yield from unique(cell.paragraphs)
                    yield from walk_tables(cell.tables)

    yield from unique(doc.paragraphs)
    yield from walk_tables(doc.tables)

    for section in doc.sections:
        parts = (
            section.header,
            section.footer,
            section.first_page_header,
            section.first_page_footer,
            section.even_page_header,
            section.even_page_footer,
        )
        for part in parts:
            if part.is_linked_to_previous:
                continue
            yield from unique(part.paragraphs)
            yield from walk_tables(part.tables)


def replace_placeholders(paragraph: Paragraph, resolve: Callable[[str], str]) -> int:
    """
    paragraph 안의 {name} 치환.

    여러 run에 걸친 placeholder는 시작 run에 값을 넣고 나머지 run에서
    해당 글자를 지움. 뒤에서부터 치환하므로 앞쪽 offset은 그대로 유효.

    Returns:
        치환한 placeholder 수
    """
    runs = paragraph.runs
    if not runs:
        return 0

    originals = [run.text for run in runs]
    full_text = "".join(originals)
    if "{" not in full_text:
        return 0

    matches = list(PLACEHOLDER_PATTERN.finditer(full_text))
    if not matches:
        return 0

    starts: list[int] = []
    offset = 0
    for text in originals:
        starts.append(offset)
        offset += len(text)

    texts = list(originals)
    for match in reversed(matches):
        replacement = resolve(match.group(1))
        first = bisect.bisect_right(starts, match.start()) - 1
        last = bisect.bisect_right(starts, match.end() - 1) - 1
        head = match.start() - starts[first]
        tail = match.end() - starts[last]

        if first == last:
            text = texts[first]
            texts[first] = text[:head] + replacement + text[tail:]
        else:
            texts[first] = texts[first][:head] + replacement
            for idx in range(first + 1, last):
                texts[idx] = ""
            texts[last] = texts[last][tail:]

    for run, original, text in zip(runs, originals, texts):
        if text != original:
            run.text = text

    return len(matches)


def merge_docx(template_path: Path, record: Record) -> bytes:
    """
    DOCX merge (간편 함수).

    Args:
        template_path: DOCX 템플릿 파일 경로
        record: 채울 레코드

    Returns:
        merge된 DOCX 바이트
    """
    return DocxMerger(template_path).merge(record)
