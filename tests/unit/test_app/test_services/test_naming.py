"""
test_naming.py - 출력 파일명 정책 테스트
"""

from src.app.services.naming import build_file_name, sanitize_name
from src.domain.schemas import Record


def record(ordinal: int = 1, **fields: str) -> Record:
    return Record.from_row(ordinal, list(fields), list(fields.values()))


class TestSanitizeName:

    def test_collapses_whitespace(self):
        assert sanitize_name("  Juan   Pérez  López ") == "Juan_Prez_Lpez"

    def test_keeps_hyphen_underscore(self):
        assert sanitize_name("Ana-María_2") == "Ana-Mara_2"

    def test_strips_punctuation(self):
        assert sanitize_name("O'Brien, Jr.") == "OBrien_Jr"

    def test_all_disallowed(self):
        assert sanitize_name("¿¡!?") == ""


class TestBuildFileName:

    def test_uses_nombre(self):
        assert build_file_name(record(Nombre="Juan Pérez"), "carta") == "Juan_Prez_carta.pdf"

    def test_falls_back_to_name(self):
        assert build_file_name(record(Name="John Smith"), "carta") == "John_Smith_carta.pdf"

    def test_nombre_preferred_over_name(self):
        assert build_file_name(record(Name="John", Nombre="Juan"), "carta") == "Juan_carta.pdf"

    def test_ordinal_fallback(self):
        assert build_file_name(record(7, Email="x@y.com"), "recibo") == "documento_007_recibo.pdf"

    def test_empty_sanitized_name_uses_fallback(self):
        assert build_file_name(record(12, Nombre="¿?"), "recibo") == "documento_012_recibo.pdf"

    def test_custom_name_fields(self):
        result = build_file_name(record(Cliente="ACME SA"), "factura", name_fields=("cliente",))

        assert result == "ACME_SA_factura.pdf"
