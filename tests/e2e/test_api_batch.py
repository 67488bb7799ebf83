"""
test_api_batch.py - Batch API E2E 테스트

엔드포인트:
- POST /api/batch/generate
- POST /api/batch/generate/stream
- POST /api/batch/generate-and-send
- POST /api/batch/generate-and-send/stream
"""

import json
from pathlib import Path

import pytest

pytestmark = pytest.mark.e2e


def batch_form(files: dict[str, Path], *templates: str) -> dict:
    return {
        "base_folder": str(files["base"]),
        "excel_file": str(files["excel"]),
        "templates": [str(files[t]) for t in templates or ("carta", "recibo")],
    }


def send_form(files: dict[str, Path], **extra) -> dict:
    return {
        **batch_form(files),
        "email_column": "Email",
        "subject": "Sus documentos",
        "body": "Adjuntamos la documentación.",
        **extra,
    }


def parse_sse(text: str) -> list[tuple[str, dict]]:
    """SSE 본문 → [(event, data), ...]."""
    events = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


@pytest.fixture
def smtp_configured(client):
    response = client.post(
        "/api/settings/smtp",
        data={"host": "smtp.example.com", "port": "587", "user": "envios@example.com", "password": "s3cret"},
    )
    assert response.status_code == 200


# =============================================================================
# Render mode
# =============================================================================

class TestGenerate:

    def test_generates_all_documents(self, client, batch_files):
        response = client.post("/api/batch/generate", data=batch_form(batch_files))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["mode"] == "generate"
        assert data["render"] == {"attempted": 4, "succeeded": 4, "failed": 0, "skipped_records": 0}
        assert sorted(Path(f).name for f in data["files"]) == [
            "Ana_Ruiz_carta.pdf",
            "Ana_Ruiz_recibo.pdf",
            "Luis_Mora_carta.pdf",
            "Luis_Mora_recibo.pdf",
        ]
        assert "delivery" not in data

    def test_run_log_written(self, client, batch_files, tmp_path):
        data = client.post("/api/batch/generate", data=batch_form(batch_files)).json()

        assert (tmp_path / "logs" / f"run_{data['run_id']}.json").exists()

    def test_engine_missing(self, client, api_app, batch_files):
        api_app.state.context.reconfigure(engine_handle=None)

        response = client.post("/api/batch/generate", data=batch_form(batch_files))

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "ENGINE_NOT_CONFIGURED"

    def test_unreadable_spreadsheet(self, client, batch_files):
        form = {**batch_form(batch_files), "excel_file": str(batch_files["base"] / "excel" / "otro.xlsx")}

        response = client.post("/api/batch/generate", data=form)

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "EXTRACTION_FAILED"

    def test_base_folder_is_a_file(self, client, batch_files, tmp_path):
        base = tmp_path / "lote.txt"
        base.write_text("x")
        form = {**batch_form(batch_files), "base_folder": str(base)}

        response = client.post("/api/batch/generate", data=form)

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "WORKSPACE_UNAVAILABLE"

    def test_templates_required(self, client, batch_files):
        form = batch_form(batch_files)
        del form["templates"]

        response = client.post("/api/batch/generate", data=form)

        assert response.status_code == 422

    def test_stream(self, client, batch_files):
        response = client.post("/api/batch/generate/stream", data=batch_form(batch_files, "carta"))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        assert [name for name, _ in events] == ["progress", "progress", "done"]
        assert [data["current"] for _, data in events[:2]] == [1, 2]
        assert events[0][1]["fileName"] == "Ana_Ruiz_carta.pdf"
        assert events[-1][1]["render"]["succeeded"] == 2

    def test_stream_precondition_error(self, client, api_app, batch_files):
        api_app.state.context.reconfigure(engine_handle=None)

        response = client.post("/api/batch/generate/stream", data=batch_form(batch_files))

        events = parse_sse(response.text)
        assert events == [("error", {"code": "ENGINE_NOT_CONFIGURED"})]


# =============================================================================
# Integrated mode
# =============================================================================

class TestGenerateAndSend:

    def test_smtp_missing(self, client, batch_files, fake_runner):
        response = client.post("/api/batch/generate-and-send", data=send_form(batch_files))

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "SMTP_NOT_CONFIGURED"
        assert fake_runner.conversions == []

    def test_sends_one_message_per_record(self, client, smtp_configured, batch_files, fake_transport):
        response = client.post("/api/batch/generate-and-send", data=send_form(batch_files))

        assert response.status_code == 200
        data = response.json()
        assert data["delivery"] == {"attempted": 2, "sent": 2, "failed": 0, "errors": []}
        assert data["persist"]["succeeded"] == 4
        assert [m.recipient for m in fake_transport.sent] == ["ana@example.com", "luis@example.com"]
        assert fake_transport.sent[0].subject == "Sus documentos"
        assert len(fake_transport.sent[0].attachments) == 2

    def test_extra_files(self, client, smtp_configured, batch_files, fake_transport):
        extra = batch_files["base"] / "adjuntos" / "condiciones.pdf"
        extra.write_bytes(b"%PDF condiciones")

        client.post("/api/batch/generate-and-send", data=send_form(batch_files, extra_files=[str(extra)]))

        assert [a.file_name for a in fake_transport.sent[1].attachments][-1] == "condiciones.pdf"

    def test_email_column_missing(self, client, smtp_configured, batch_files):
        form = send_form(batch_files, email_column="Correo")

        response = client.post("/api/batch/generate-and-send", data=form)

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "COLUMN_NOT_FOUND"
        assert detail["headers"] == ["Nombre", "Email", "Importe"]

    def test_stream_phases(self, client, smtp_configured, batch_files):
        response = client.post("/api/batch/generate-and-send/stream", data=send_form(batch_files))

        events = parse_sse(response.text)
        phases = [data.get("phase") for name, data in events if name == "progress"]
        assert phases == ["generating"] * 4 + ["sending"] * 2
        sending = [data for name, data in events if data.get("phase") == "sending"]
        assert sending[0]["email"] == "ana@example.com"
        assert sending[0]["attachments"] == 2
        name, summary = events[-1]
        assert name == "done"
        assert summary["delivery"]["sent"] == 2
