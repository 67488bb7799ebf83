"""
E2E 테스트용 앱 설정.

- 임시 default.yaml (설정 파일 / run log 는 tmp_path 아래)
- 시작 시 엔진 탐색 끔 → FakeRunner + 고정 handle 주입
- 메일은 FakeTransport
"""

from collections.abc import Generator
from pathlib import Path

import pytest
import yaml
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.app.main import create_app

FAKE_ENGINE = "/opt/fake/soffice"


@pytest.fixture
def app_config(tmp_path: Path) -> Path:
    """테스트용 default.yaml."""
    config = {
        "paths": {
            "settings_file": str(tmp_path / "settings" / "config.json"),
            "logs_dir": str(tmp_path / "logs"),
        },
        "render": {"discover_on_startup": False},
    }
    path = tmp_path / "default.yaml"
    path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return path


@pytest.fixture
def api_app(app_config: Path) -> FastAPI:
    return create_app(app_config)


@pytest.fixture
def client(api_app: FastAPI, fake_runner, fake_transport) -> Generator[TestClient, None, None]:
    """
    FastAPI TestClient.

    lifespan 이후 렌더 엔진 / 메일 전송을 fake로 교체.
    """
    with TestClient(api_app) as client:
        api_app.state.render_service.runner = fake_runner
        api_app.state.context.reconfigure(engine_handle=FAKE_ENGINE)
        api_app.state.transport_factory = lambda config: fake_transport
        yield client


@pytest.fixture
def batch_files(workspace: Path, make_xlsx, make_docx) -> dict[str, Path]:
    """작업 폴더 + 스프레드시트 2행 + 템플릿 2개."""
    return {
        "base": workspace,
        "excel": make_xlsx(
            workspace / "excel" / "clientes.xlsx",
            ["Nombre", "Email", "Importe"],
            [["Ana Ruiz", "ana@example.com", 120], ["Luis Mora", "luis@example.com", 80]],
        ),
        "carta": make_docx(workspace / "plantillas" / "carta.docx", ["Estimado/a {Nombre}", "Importe: {importe}"]),
        "recibo": make_docx(workspace / "plantillas" / "recibo.docx", ["Recibo de {nombre}"]),
    }
