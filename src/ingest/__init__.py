"""
Ingest layer: 입력 스프레드시트 → 레코드.

역할:
- 첫 시트 헤더/행 추출 (openpyxl)
- 빈 행 제거, 셀 값 문자열 정리
"""

from .excel import ExcelExtractor, build_records, read_excel

__all__ = [
    "ExcelExtractor",
    "build_records",
    "read_excel",
]
