"""
XLSX tabular extractor: openpyxl 기반.

규칙:
- 첫 번째 시트만, 첫 행 = 헤더 (정규화 없이 그대로)
- 데이터 행: 하나라도 값이 있으면 포함, 전부 비면 제외
- 셀 값은 화면 표시와 같은 문자열로 변환 후 trim, 빈 셀 → ""
- 셀 변환 실패는 "" 로 degrade (예외 없음)
"""

import logging
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

from openpyxl import load_workbook

from src.domain.constants import PREVIEW_ROW_COUNT
from src.domain.errors import ErrorCodes, SourceNotFound, SpreadsheetUnreadable
from src.domain.schemas import Record, SheetData

logger = logging.getLogger(__name__)


class ExcelExtractor:
    """
    스프레드시트 → SheetData.

    Usage:
        extractor = ExcelExtractor()
        sheet = extractor.read(Path("excel/personas.xlsx"))
        records = build_records(sheet.headers, sheet.rows)
    """

    def __init__(self, preview_size: int = PREVIEW_ROW_COUNT):
        self.preview_size = preview_size

    def read(self, xlsx_path: Path) -> SheetData:
        """
        첫 시트 읽기.

        Args:
            xlsx_path: XLSX 파일 경로

        Returns:
            SheetData (headers, rows, total_rows, preview_rows)

        Raises:
            SourceNotFound: SOURCE_NOT_FOUND
            SpreadsheetUnreadable: SPREADSHEET_UNREADABLE
        """
        xlsx_path = Path(xlsx_path)
        if not xlsx_path.is_file():
            raise SourceNotFound(ErrorCodes.SOURCE_NOT_FOUND, path=str(xlsx_path))

        try:
            wb = load_workbook(xlsx_path, read_only=True, data_only=True)
        except Exception as e:
            raise SpreadsheetUnreadable(
                ErrorCodes.SPREADSHEET_UNREADABLE,
                path=str(xlsx_path),
                error=str(e),
            ) from e

        try:
            if not wb.worksheets:
                return SheetData(preview_size=self.preview_size)

            ws = wb.worksheets[0]
            raw_rows = ws.iter_rows(values_only=True)

            header_row = next(raw_rows, None)
            headers = [_header_text(v) for v in header_row] if header_row else []

            rows: list[list[str]] = []
            for raw in raw_rows:
                values = [cell_to_text(v) for v in raw]
                if any(values):
                    rows.append(values)

        except Exception as e:
            raise SpreadsheetUnreadable(
                ErrorCodes.SPREADSHEET_UNREADABLE,
                path=str(xlsx_path),
                error=str(e),
            ) from e
        finally:
            wb.close()

        logger.info(f"Read {len(rows)} rows x {len(headers)} columns from {xlsx_path.name}")
        return SheetData(headers=headers, rows=rows, preview_size=self.preview_size)


def _header_text(value: Any) -> str:
    """헤더는 정규화 없이 문자열로만."""
    if value is None:
        return ""
    return cell_to_text(value) if not isinstance(value, str) else value


def cell_to_text(value: Any) -> str:
    """
    셀 값 → 표시 문자열.

    - None → ""
    - 정수값 float → "5" (5.0 아님)
    - bool → "TRUE"/"FALSE"
    - 날짜 → ISO (시간이 00:00이면 날짜만)
    - 변환 실패 → ""
    """
    try:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, float):
            if value.is_integer():
                return str(int(value))
            return str(value)
        if isinstance(value, datetime):
            if value.time() == time(0, 0):
                return value.date().isoformat()
            return value.isoformat(sep=" ")
        if isinstance(value, (date, time)):
            return value.isoformat()
        return str(value).strip()
    except Exception:
        logger.debug(f"Unconvertible cell value {value!r}, using empty string")
        return ""


def build_records(headers: list[str], rows: list[list[str]]) -> list[Record]:
    """
    헤더 + 행 → Record 목록 (ordinal은 1부터).

    키 정규화: strip + lower
    """
    return [Record.from_row(i + 1, headers, row) for i, row in enumerate(rows)]


def read_excel(xlsx_path: Path) -> SheetData:
    """XLSX 읽기 (간편 함수)."""
    return ExcelExtractor().read(xlsx_path)
