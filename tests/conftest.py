"""
Pytest fixtures for the batch pipeline tests.

구성:
- 실제 .docx (python-docx) / .xlsx (openpyxl) 파일을 tmp_path에 생성
- 렌더 엔진은 FakeRunner (soffice 명령을 흉내, PDF 대신 텍스트 덤프 생성)
- 메일은 FakeTransport (전송 대신 기록)
"""

import io
from collections.abc import Callable
from pathlib import Path

import pytest
import yaml
from docx import Document
from openpyxl import Workbook

from src.app.providers.base import MailTransport, OutboundMessage
from src.core.context import RuntimeContext
from src.core.storage import ensure_subfolders
from src.domain.errors import DeliveryFailure, ErrorCodes
from src.domain.schemas import SmtpConfig
from src.render.pdf import CommandResult, RenderService

FAKE_PDF_HEADER = b"%PDF-FAKE\n"
FAKE_ENGINE = "/opt/fake/soffice"


# =============================================================================
# Path Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """프로젝트 루트 경로."""
    return Path(__file__).parent.parent


@pytest.fixture
def default_config_path(project_root: Path) -> Path:
    """default.yaml 경로."""
    return project_root / "default.yaml"


@pytest.fixture
def default_config(default_config_path: Path) -> dict:
    """기본 설정 로드."""
    with open(default_config_path, encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """excel/plantillas/adjuntos/salida 가 있는 작업 폴더."""
    base = tmp_path / "lote"
    base.mkdir()
    ensure_subfolders(base)
    return base


# =============================================================================
# Document Builders
# =============================================================================

@pytest.fixture
def make_docx() -> Callable[..., Path]:
    """
    DOCX 템플릿 생성 함수.

    Usage:
        path = make_docx(tmp_path / "carta.docx", ["Hola {nombre}"])
    """

    def _make(
        path: Path,
        paragraphs: list[str],
        table: list[list[str]] | None = None,
        header: str | None = None,
    ) -> Path:
        doc = Document()
        for text in paragraphs:
            doc.add_paragraph(text)
        if table:
            tbl = doc.add_table(rows=len(table), cols=len(table[0]))
            for r, row in enumerate(table):
                for c, value in enumerate(row):
                    tbl.cell(r, c).text = value
        if header is not None:
            section = doc.sections[0]
            section.header.is_linked_to_previous = False
            section.header.paragraphs[0].text = header
        path.parent.mkdir(parents=True, exist_ok=True)
        doc.save(path)
        return path

    return _make


@pytest.fixture
def make_xlsx() -> Callable[..., Path]:
    """
    XLSX 생성 함수 (첫 시트, 첫 행 = 헤더).

    Usage:
        path = make_xlsx(tmp_path / "datos.xlsx", ["Nombre", "Email"], [["Ana", "a@x.com"]])
    """

    def _make(path: Path, headers: list, rows: list[list]) -> Path:
        wb = Workbook()
        ws = wb.active
        ws.title = "Datos"
        ws.append(headers)
        for row in rows:
            ws.append(row)
        path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(path)
        return path

    return _make


def docx_text(content: bytes) -> str:
    """DOCX 바이트 → 본문 텍스트 (줄 단위)."""
    doc = Document(io.BytesIO(content))
    return "\n".join(p.text for p in doc.paragraphs)


@pytest.fixture
def read_docx_text() -> Callable[[bytes], str]:
    return docx_text


@pytest.fixture
def read_pdf_text() -> Callable[[bytes], str]:
    """FakeRunner가 만든 PDF → 원본 DOCX 텍스트."""

    def _read(content: bytes) -> str:
        assert content.startswith(FAKE_PDF_HEADER)
        return content[len(FAKE_PDF_HEADER):].decode("utf-8")

    return _read


# =============================================================================
# Fake Render Engine
# =============================================================================

class FakeRunner:
    """
    soffice 명령 흉내.

    - --version → "LibreOffice 7.6.4.1"
    - --terminate_after_init → 성공
    - --convert-to pdf → outdir/document.pdf 생성 (DOCX 본문 텍스트 덤프)

    fail_when(docx_text) 가 True면 변환 실패 (returncode 1).
    """

    def __init__(self, fail_when: Callable[[str], bool] | None = None):
        self.calls: list[list[str]] = []
        self.fail_when = fail_when
        self.version_output = "LibreOffice 7.6.4.1 60(Build:1)"

    async def __call__(self, args: list[str], timeout: float) -> CommandResult:
        self.calls.append(list(args))

        if "--version" in args:
            return CommandResult(returncode=0, stdout=self.version_output)
        if "--terminate_after_init" in args:
            return CommandResult(returncode=0)

        outdir = Path(args[args.index("--outdir") + 1])
        source = Path(args[-1])
        text = docx_text(source.read_bytes())
        if self.fail_when is not None and self.fail_when(text):
            return CommandResult(returncode=1, stderr="Error: source file could not be loaded")

        (outdir / f"{source.stem}.pdf").write_bytes(FAKE_PDF_HEADER + text.encode("utf-8"))
        return CommandResult(returncode=0, stdout=f"convert {source} -> pdf")

    @property
    def conversions(self) -> list[list[str]]:
        return [c for c in self.calls if "--convert-to" in c]


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def runtime_context() -> RuntimeContext:
    """엔진 handle이 이미 잡혀 있는 context."""
    return RuntimeContext(engine_handle=FAKE_ENGINE)


@pytest.fixture
def render_service(runtime_context: RuntimeContext, fake_runner: FakeRunner) -> RenderService:
    return RenderService(runtime_context, probes=[], runner=fake_runner)


# =============================================================================
# Fake Mail Transport
# =============================================================================

class FakeTransport(MailTransport):
    """전송 대신 기록. fail_for에 있는 수신자는 DeliveryFailure."""

    def __init__(self, config: SmtpConfig | None = None, fail_for: set[str] | None = None):
        self.config = config
        self.fail_for = fail_for or set()
        self.sent: list[OutboundMessage] = []

    @property
    def sender(self) -> str:
        return self.config.user if self.config else "noreply@example.com"

    async def send(self, message: OutboundMessage) -> None:
        if message.recipient in self.fail_for:
            raise DeliveryFailure(
                ErrorCodes.DELIVERY_FAILED,
                email=message.recipient,
                error="550 mailbox unavailable",
            )
        self.sent.append(message)


@pytest.fixture
def smtp_config() -> SmtpConfig:
    return SmtpConfig(host="smtp.example.com", port=587, secure=False, user="envios@example.com", password="s3cret")


@pytest.fixture
def fake_transport(smtp_config: SmtpConfig) -> FakeTransport:
    return FakeTransport(smtp_config)


@pytest.fixture
def fake_transport_cls() -> type[FakeTransport]:
    return FakeTransport


@pytest.fixture
def fake_runner_cls() -> type[FakeRunner]:
    return FakeRunner
