"""
Render layer: DOCX merge + PDF 변환.

역할:
- 템플릿 + 레코드 → merge된 DOCX (python-docx)
- DOCX → PDF (LibreOffice headless)
"""

from .pdf import CommandProbe, PathProbe, RenderService, default_probes
from .word import DocxMerger, merge_docx

__all__ = [
    "merge_docx",
    "DocxMerger",
    "RenderService",
    "CommandProbe",
    "PathProbe",
    "default_probes",
]
