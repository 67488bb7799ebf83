#!/usr/bin/env python3
"""
run_batch.py - 문서 일괄 생성 / 발송 (headless)

작업 폴더 구조:
    <base>/excel        입력 스프레드시트
    <base>/plantillas   DOCX 템플릿
    <base>/adjuntos     추가 첨부 파일
    <base>/salida       생성된 PDF

사용법:
    # 렌더 엔진 확인
    python scripts/run_batch.py check-engine

    # PDF 생성
    python scripts/run_batch.py generate --base ~/lote \\
        --excel ~/lote/excel/datos.xlsx \\
        --template ~/lote/plantillas/carta.docx --template ~/lote/plantillas/recibo.docx

    # 생성 + 발송 (SMTP 설정은 config.json, 비밀번호는 SMTP_PASSWORD 가능)
    python scripts/run_batch.py send --base ~/lote --excel ~/lote/excel/datos.xlsx \\
        --template ~/lote/plantillas/carta.docx --email-column Email \\
        --subject "Documentos" --body "Adjuntamos sus documentos." \\
        --extra ~/lote/adjuntos/condiciones.pdf

종료 코드: 0 = 완료 (단위 실패 포함, 요약 JSON 참고), 1 = 배치 중단
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

# 프로젝트 루트를 path에 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.app.providers.smtp import DEFAULT_SMTP_TIMEOUT, SmtpTransport  # noqa: E402
from src.app.services.orchestrator import BatchOrchestrator  # noqa: E402
from src.core.context import RuntimeContext  # noqa: E402
from src.core.settings import SettingsStore, config_value, load_config  # noqa: E402
from src.domain.constants import DEFAULT_NAME_FIELDS  # noqa: E402
from src.domain.errors import BatchError  # noqa: E402
from src.domain.schemas import ProgressEvent  # noqa: E402
from src.render.pdf import (  # noqa: E402
    DEFAULT_FUNCTIONAL_TIMEOUT,
    DEFAULT_RENDER_TIMEOUT,
    DEFAULT_VERSION_TIMEOUT,
    RenderService,
    default_probes,
)

logger = logging.getLogger("run_batch")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="스프레드시트 x Word 템플릿 → PDF 일괄 생성 / 발송",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=str, help="default.yaml 경로 (기본: 프로젝트 루트)")
    parser.add_argument("--settings", type=str, help="config.json 경로 (기본: ~/.docmerge/config.json)")
    parser.add_argument("--engine", type=str, help="soffice 실행 파일 직접 지정 (자동 탐색 대신)")
    parser.add_argument("--log-dir", type=str, help="run log 저장 폴더")
    parser.add_argument("-v", "--verbose", action="store_true", help="DEBUG 로그")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("check-engine", help="렌더 엔진 탐색")

    def add_batch_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--base", type=str, help="작업 폴더 (기본: 마지막으로 저장된 폴더)")
        p.add_argument("--excel", type=str, required=True, help="입력 .xlsx")
        p.add_argument(
            "--template",
            action="append",
            required=True,
            help="DOCX 템플릿 (여러 번 지정 가능, 지정 순서대로 처리)",
        )

    generate = sub.add_parser("generate", help="PDF 생성 후 salida/에 저장")
    add_batch_args(generate)

    send = sub.add_parser("send", help="PDF 생성 + record별 메일 발송 + 저장")
    add_batch_args(send)
    send.add_argument("--email-column", type=str, required=True, help="수신자 컬럼 이름")
    send.add_argument("--subject", type=str, default="", help="메일 제목")
    body = send.add_mutually_exclusive_group()
    body.add_argument("--body", type=str, default="", help="메일 본문")
    body.add_argument("--body-file", type=str, help="메일 본문 파일 (UTF-8)")
    send.add_argument("--extra", action="append", default=[], help="추가 첨부 파일 (여러 번 지정 가능)")

    return parser


def log_progress(event: ProgressEvent) -> None:
    target = event.delivery_key or event.file_name or event.template or ""
    status = "ok" if event.ok else "FAILED"
    logger.info(f"[{event.phase}] {event.current}/{event.total} {target} {status}")


async def prepare_engine(service: RenderService, engine: str | None) -> bool:
    """--engine이 있으면 수동 선택, 없으면 자동 탐색."""
    if engine:
        await service.select_manually(engine)
        return True
    result = await service.discover()
    return result.available


async def run(args: argparse.Namespace) -> int:
    config = load_config(Path(args.config) if args.config else None)

    settings_file = args.settings or config_value(config, "paths", "settings_file", None)
    store = SettingsStore(Path(settings_file).expanduser() if settings_file else None)

    smtp = store.get_smtp_config()
    password = os.environ.get("SMTP_PASSWORD")
    if smtp is not None and password:
        smtp = replace(smtp, password=password)

    context = RuntimeContext(smtp=smtp)
    service = RenderService(
        context,
        probes=default_probes(
            version_timeout=config_value(config, "render", "version_probe_timeout", DEFAULT_VERSION_TIMEOUT),
            functional_timeout=config_value(config, "render", "functional_probe_timeout", DEFAULT_FUNCTIONAL_TIMEOUT),
        ),
        timeout=config_value(config, "render", "timeout_seconds", DEFAULT_RENDER_TIMEOUT),
    )

    try:
        found = await prepare_engine(service, args.engine)
    except BatchError as e:
        logger.error(f"Engine selection rejected: {e}")
        print(json.dumps({"success": False, **e.to_dict()}, ensure_ascii=False, indent=2))
        return 1

    if args.command == "check-engine":
        print(json.dumps({"available": found, "path": service.handle}, ensure_ascii=False, indent=2))
        return 0 if found else 1

    base = Path(args.base).expanduser() if args.base else store.get_base_folder()
    if base is None:
        logger.error("작업 폴더 없음: --base를 지정하세요")
        return 1

    smtp_timeout = config_value(config, "delivery", "smtp_timeout_seconds", DEFAULT_SMTP_TIMEOUT)
    log_dir = args.log_dir or config_value(config, "paths", "logs_dir", None)

    orchestrator = BatchOrchestrator(
        context,
        service,
        transport_factory=lambda cfg: SmtpTransport(cfg, timeout=smtp_timeout),
        progress=log_progress,
        name_fields=tuple(config_value(config, "naming", "name_fields", DEFAULT_NAME_FIELDS)),
        logs_dir=Path(log_dir).expanduser() if log_dir else None,
    )

    try:
        if args.command == "generate":
            report = await orchestrator.generate(base, Path(args.excel), args.template)
        else:
            body = args.body
            if args.body_file:
                body = Path(args.body_file).read_text(encoding="utf-8")
            report = await orchestrator.generate_and_send(
                base,
                Path(args.excel),
                args.template,
                email_column=args.email_column,
                subject=args.subject,
                body=body,
                extra_files=args.extra,
            )
    except BatchError as e:
        logger.error(f"Batch aborted: {e}")
        print(json.dumps({"success": False, **e.to_dict()}, ensure_ascii=False, indent=2, default=str))
        return 1

    try:
        store.save_base_folder(base)
    except BatchError as e:
        logger.warning(f"Could not remember base folder: {e}")

    print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    # .env 파일 로드 (SMTP_PASSWORD 등)
    load_dotenv()

    args = build_parser().parse_args(argv)

    # 로깅 설정 (stdout은 JSON 요약 전용)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    return asyncio.run(run(args))


if __name__ == "__main__":
    exit(main())
