"""
Batch Orchestrator: records x templates → merge → render → (send) → persist.

상태:
    IDLE → EXTRACTING → RENDERING → (DELIVERING) → PERSISTING → DONE
    FAILED는 EXTRACTING 단계(전제조건 검사 포함)에서만 도달

규칙:
- 전제조건 위반(엔진 없음, SMTP 없음, 스프레드시트 불량, 이메일 컬럼 없음)
  → 부수효과 전에 raise
- (record, template) 1건 실패는 기록 후 다음 job 진행 (배치 중단 없음)
- 렌더 모드: job마다 즉시 salida/에 저장
- 통합 모드: 전부 메모리에 버퍼링 → 발송 → 저장 (발송 결과와 무관하게 저장)
- 모든 job은 순차 실행 (엔진은 공유 외부 프로세스, 동시 호출 안 함)
- RunLog는 성공/실패 모두 저장 (logs_dir 설정 시)
"""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from src.app.providers.base import MailTransport
from src.app.providers.smtp import SmtpTransport
from src.app.services.delivery import DeliveryCoordinator, ProgressSink
from src.app.services.naming import build_file_name
from src.core.context import RuntimeContext
from src.core.logging import (
    complete_run_log,
    create_run_log,
    emit_error,
    emit_failure,
    save_run_log,
)
from src.core.storage import ensure_subfolders, get_output_dir, write_artifact
from src.domain.constants import DEFAULT_NAME_FIELDS
from src.domain.errors import (
    BatchError,
    ColumnNotFound,
    DeliveryUnavailable,
    ErrorCodes,
    FatalExtraction,
    PersistFailure,
    WorkspaceUnavailable,
)
from src.domain.schemas import (
    ArtifactGroup,
    BatchMode,
    BatchReport,
    BatchState,
    JobOutcome,
    MergeJob,
    ProgressEvent,
    Record,
    RenderedArtifact,
    RunLog,
    SmtpConfig,
    normalize_key,
)
from src.ingest.excel import ExcelExtractor, build_records
from src.render.pdf import RenderService
from src.render.word import DocxMerger

logger = logging.getLogger(__name__)

TransportFactory = Callable[[SmtpConfig], MailTransport]


def unique_templates(templates: list[str | Path]) -> list[Path]:
    """템플릿 목록 중복 제거 (첫 등장 순서 유지)."""
    seen: dict[Path, None] = {}
    for template in templates:
        seen.setdefault(Path(template), None)
    return list(seen)


class BatchOrchestrator:
    """
    배치 실행기.

    Usage:
        context = RuntimeContext()
        service = RenderService(context)
        await service.discover()

        orchestrator = BatchOrchestrator(context, service, progress=print)
        report = await orchestrator.generate(base, base / "excel/datos.xlsx", templates)
    """

    def __init__(
        self,
        context: RuntimeContext,
        render_service: RenderService,
        merger_factory: Callable[[Path], DocxMerger] = DocxMerger,
        extractor: ExcelExtractor | None = None,
        transport_factory: TransportFactory | None = None,
        progress: ProgressSink | None = None,
        name_fields: tuple[str, ...] | list[str] = DEFAULT_NAME_FIELDS,
        logs_dir: Path | None = None,
    ):
        """
        Args:
            context: 엔진 handle + SMTP 설정
            render_service: DOCX → PDF 변환
            merger_factory: 템플릿 경로 → merger (테스트에서 교체)
            extractor: 스프레드시트 reader
            transport_factory: SmtpConfig → MailTransport (None이면 SmtpTransport)
            progress: 진행 이벤트 sink
            name_fields: 출력 파일명에 쓸 이름 필드 (우선순위 순)
            logs_dir: run log 저장 위치 (None이면 저장 안 함)
        """
        self.context = context
        self.render_service = render_service
        self.merger_factory = merger_factory
        self.extractor = extractor or ExcelExtractor()
        self.transport_factory: TransportFactory = transport_factory or SmtpTransport
        self.progress = progress
        self.name_fields = tuple(name_fields)
        self.logs_dir = logs_dir

        self.state = BatchState.IDLE
        self.history: list[BatchState] = [BatchState.IDLE]

    # =========================================================================
    # State / helpers
    # =========================================================================

    def _transition(self, state: BatchState) -> None:
        logger.debug(f"Batch state: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _reset(self) -> None:
        self.state = BatchState.IDLE
        self.history = [BatchState.IDLE]

    def _emit(self, event: ProgressEvent) -> None:
        if self.progress is None:
            return
        try:
            self.progress(event)
        except Exception as e:
            # 진행 이벤트는 보장 전달 아님 → 배치는 계속
            logger.warning(f"Progress sink raised {type(e).__name__}: {e}")

    async def _extract(self, excel_file: Path) -> tuple[list[str], list[Record]]:
        """
        Raises:
            FatalExtraction: EXTRACTION_FAILED
        """
        try:
            sheet = await asyncio.to_thread(self.extractor.read, Path(excel_file))
        except BatchError as e:
            raise FatalExtraction(
                ErrorCodes.EXTRACTION_FAILED,
                path=str(excel_file),
                cause=e.code,
                error=str(e.context.get("error", e)),
            ) from e
        except Exception as e:
            raise FatalExtraction(
                ErrorCodes.EXTRACTION_FAILED,
                path=str(excel_file),
                error=str(e),
            ) from e

        records = build_records(sheet.headers, sheet.rows)
        logger.info(f"Extracted {len(records)} records from {Path(excel_file).name}")
        return sheet.headers, records

    def _prepare_workspace(self, base_folder: Path) -> None:
        """
        Raises:
            WorkspaceUnavailable: WORKSPACE_UNAVAILABLE
        """
        try:
            ensure_subfolders(base_folder)
        except OSError as e:
            raise WorkspaceUnavailable(
                ErrorCodes.WORKSPACE_UNAVAILABLE,
                path=str(base_folder),
                error=str(e),
            ) from e

    def _fail(self, run_log: RunLog, report: BatchReport, error: BatchError) -> None:
        """전제조건 실패 → FAILED 기록 (호출자가 re-raise)."""
        self._transition(BatchState.FAILED)
        report.state = BatchState.FAILED
        emit_error(run_log, "batch", error)
        complete_run_log(
            run_log,
            BatchState.FAILED,
            error_code=error.code,
            error_context=error.context,
        )
        logger.error(f"Batch {run_log.run_id} aborted: {error}")

    def _finish(self, run_log: RunLog, report: BatchReport) -> None:
        self._transition(BatchState.DONE)
        report.state = BatchState.DONE
        report.failures = list(run_log.failures)
        counts = {
            "records": report.total_records,
            "templates": report.total_templates,
            "jobs_attempted": report.jobs_attempted,
            "jobs_succeeded": report.jobs_succeeded,
            "jobs_failed": report.jobs_failed,
            "skipped_records": report.skipped_records,
            "persisted": report.persisted,
            "persist_failed": report.persist_failed,
        }
        if report.delivery is not None:
            counts["delivery_attempted"] = report.delivery.attempted
            counts["delivery_sent"] = report.delivery.sent
            counts["delivery_failed"] = report.delivery.failed
        complete_run_log(run_log, BatchState.DONE, counts=counts)

    def _save_log(self, run_log: RunLog) -> None:
        if self.logs_dir is None:
            return
        try:
            path = save_run_log(run_log, Path(self.logs_dir))
            logger.debug(f"Run log saved: {path}")
        except OSError as e:
            logger.error(f"Failed to save run log {run_log.run_id}: {e}")

    def _warn_missing_placeholders(
        self,
        run_log: RunLog,
        mergers: dict[Path, DocxMerger],
        headers: list[str],
    ) -> None:
        """헤더로 채울 수 없는 placeholder는 경고만 (그대로 {name} 출력)."""
        available = {normalize_key(h) for h in headers if normalize_key(h)}
        for template, merger in mergers.items():
            try:
                missing = merger.missing_fields(available)
            except BatchError:
                continue  # job 단위에서 MergeFailure로 기록됨
            if missing:
                logger.warning(f"Template {template.name} has unmatched placeholders: {missing}")
                emit_failure(
                    run_log,
                    code=ErrorCodes.PLACEHOLDER_UNRESOLVED,
                    unit=f"template:{template.name}",
                    message=f"No column for placeholders: {', '.join(missing)}",
                    level="warning",
                    template=str(template),
                    placeholders=missing,
                )

    async def _run_job(
        self,
        job: MergeJob,
        merger: DocxMerger,
        run_log: RunLog,
        delivery_key: str | None = None,
    ) -> JobOutcome:
        """merge → render → artifact. 실패는 JobOutcome.error로 반환."""
        try:
            docx_bytes = await asyncio.to_thread(merger.merge, job.record)
            pdf_bytes = await self.render_service.render(docx_bytes)
        except Exception as e:
            logger.error(
                f"Job {job.sequence} failed (record {job.record.ordinal}, "
                f"template {job.template.name}): {e}"
            )
            emit_error(
                run_log,
                f"job:{job.sequence}",
                e,
                record=job.record.ordinal,
                template=str(job.template),
            )
            return JobOutcome(job=job, error=e)

        artifact = RenderedArtifact(
            file_name=build_file_name(job.record, job.template.stem, self.name_fields),
            content=pdf_bytes,
            template=job.template,
            record_ordinal=job.record.ordinal,
            delivery_key=delivery_key,
        )
        return JobOutcome(job=job, artifact=artifact)

    def _persist(
        self,
        output_dir: Path,
        artifact: RenderedArtifact,
        run_log: RunLog,
        report: BatchReport,
    ) -> None:
        try:
            path = write_artifact(output_dir, artifact)
        except PersistFailure as e:
            logger.error(f"Failed to save {artifact.file_name}: {e}")
            emit_error(run_log, f"artifact:{artifact.file_name}", e)
            report.persist_failed += 1
            return
        report.files.append(path)

    # =========================================================================
    # Render mode
    # =========================================================================

    async def generate(
        self,
        base_folder: Path,
        excel_file: Path,
        templates: list[str | Path],
    ) -> BatchReport:
        """
        렌더 모드: record x template 전부 렌더 후 즉시 저장.

        Args:
            base_folder: 작업 폴더 (하위 폴더 자동 생성)
            excel_file: 입력 스프레드시트
            templates: DOCX 템플릿 목록 (등록 순서 = 처리 순서)

        Returns:
            BatchReport

        Raises:
            RenderUnavailable: 엔진 handle 없음
            FatalExtraction: 스프레드시트를 읽을 수 없음
            WorkspaceUnavailable: 작업 폴더 하위 구조를 만들 수 없음
        """
        self._reset()
        base_folder = Path(base_folder)
        run_log = create_run_log(BatchMode.GENERATE.value)
        report = BatchReport(run_id=run_log.run_id, mode=BatchMode.GENERATE)

        try:
            self._transition(BatchState.EXTRACTING)
            try:
                self.render_service.require_engine()
                headers, records = await self._extract(Path(excel_file))
                self._prepare_workspace(base_folder)
            except BatchError as e:
                self._fail(run_log, report, e)
                raise

            template_paths = unique_templates(templates)
            mergers = {t: self.merger_factory(t) for t in template_paths}
            report.total_records = len(records)
            report.total_templates = len(template_paths)
            self._warn_missing_placeholders(run_log, mergers, headers)

            output_dir = get_output_dir(base_folder)
            total = len(records) * len(template_paths)
            logger.info(
                f"Rendering {len(records)} records x {len(template_paths)} templates "
                f"({total} jobs) into {output_dir}"
            )

            self._transition(BatchState.RENDERING)
            sequence = 0
            for record in records:
                for template in template_paths:
                    sequence += 1
                    job = MergeJob(record=record, template=template, sequence=sequence)
                    outcome = await self._run_job(job, mergers[template], run_log)

                    report.jobs_attempted += 1
                    if outcome.ok:
                        report.jobs_succeeded += 1
                        self._persist(output_dir, outcome.artifact, run_log, report)
                    else:
                        report.jobs_failed += 1

                    self._emit(ProgressEvent(
                        phase="rendering",
                        current=sequence,
                        total=total,
                        file_name=outcome.artifact.file_name if outcome.ok else None,
                        record=record.first_of(self.name_fields) or None,
                        template=template.stem,
                        ok=outcome.ok,
                    ))

            # 렌더 모드는 job마다 저장을 끝냄
            self._transition(BatchState.PERSISTING)
            self._finish(run_log, report)
            logger.info(
                f"Batch {run_log.run_id} done: {report.jobs_succeeded}/{report.jobs_attempted} "
                f"rendered, {report.persisted} saved"
            )
            return report

        finally:
            self._save_log(run_log)

    # =========================================================================
    # Integrated mode (generate + send)
    # =========================================================================

    async def generate_and_send(
        self,
        base_folder: Path,
        excel_file: Path,
        templates: list[str | Path],
        email_column: str,
        subject: str,
        body: str,
        extra_files: list[str | Path] | None = None,
    ) -> BatchReport:
        """
        통합 모드: 전부 메모리에 렌더 → record별 1통 발송 → 전부 저장.

        Args:
            base_folder: 작업 폴더
            excel_file: 입력 스프레드시트
            templates: DOCX 템플릿 목록
            email_column: 수신자 컬럼 이름 (대소문자 무시)
            subject: 메일 제목 (공통)
            body: 메일 본문 (공통)
            extra_files: 모든 메일에 붙일 추가 파일

        Returns:
            BatchReport (delivery 포함)

        Raises:
            DeliveryUnavailable: SMTP 미설정
            RenderUnavailable: 엔진 handle 없음
            FatalExtraction: 스프레드시트를 읽을 수 없음
            ColumnNotFound: 이메일 컬럼 없음
            WorkspaceUnavailable: 작업 폴더 하위 구조를 만들 수 없음
        """
        self._reset()
        base_folder = Path(base_folder)
        run_log = create_run_log(BatchMode.GENERATE_AND_SEND.value)
        report = BatchReport(run_id=run_log.run_id, mode=BatchMode.GENERATE_AND_SEND)

        try:
            self._transition(BatchState.EXTRACTING)
            try:
                smtp = self.context.smtp
                if smtp is None:
                    raise DeliveryUnavailable(ErrorCodes.SMTP_NOT_CONFIGURED)
                self.render_service.require_engine()

                headers, records = await self._extract(Path(excel_file))
                email_key = normalize_key(email_column)
                if not email_key or email_key not in {normalize_key(h) for h in headers}:
                    raise ColumnNotFound(
                        ErrorCodes.COLUMN_NOT_FOUND,
                        column=email_column,
                        headers=list(headers),
                    )
                self._prepare_workspace(base_folder)
            except BatchError as e:
                self._fail(run_log, report, e)
                raise

            template_paths = unique_templates(templates)
            mergers = {t: self.merger_factory(t) for t in template_paths}
            report.total_records = len(records)
            report.total_templates = len(template_paths)
            self._warn_missing_placeholders(run_log, mergers, headers)

            # === Phase 1: 메모리에 렌더 ===
            self._transition(BatchState.RENDERING)
            groups = await self._render_groups(records, template_paths, mergers, email_key, run_log, report)
            logger.info(
                f"Phase 1 done: documents for {sum(not g.is_empty for g in groups)} "
                f"of {len(groups)} recipients"
            )

            # === Phase 2: 발송 ===
            self._transition(BatchState.DELIVERING)
            coordinator = DeliveryCoordinator(
                transport=self.transport_factory(smtp),
                subject=subject,
                body=body,
                extra_files=extra_files,
                sender=smtp.user,
                progress=self._emit,
            )
            report.delivery = await coordinator.deliver(groups)
            for error in report.delivery.errors:
                emit_failure(
                    run_log,
                    code=error.code,
                    unit=f"email:{error.delivery_key}",
                    message=error.error,
                    email=error.delivery_key,
                )

            # === Phase 3: 저장 (발송 결과와 무관) ===
            self._transition(BatchState.PERSISTING)
            output_dir = get_output_dir(base_folder)
            for group in groups:
                for artifact in group.artifacts:
                    self._persist(output_dir, artifact, run_log, report)

            self._finish(run_log, report)
            logger.info(
                f"Batch {run_log.run_id} done: {report.delivery.sent}/{report.delivery.attempted} "
                f"sent, {report.persisted} saved"
            )
            return report

        finally:
            self._save_log(run_log)

    async def _render_groups(
        self,
        records: list[Record],
        template_paths: list[Path],
        mergers: dict[Path, DocxMerger],
        email_key: str,
        run_log: RunLog,
        report: BatchReport,
    ) -> list[ArtifactGroup]:
        """
        record별 ArtifactGroup 생성 (디스크/발송 없음).

        이메일이 빈 record는 건너뛰고 집계만. progress current는
        전체 cross-product 기준 row-major 인덱스.
        """
        total = len(records) * len(template_paths)
        groups: list[ArtifactGroup] = []

        for index, record in enumerate(records):
            email = record.get(email_key, "") or ""
            label = record.first_of(self.name_fields) or f"#{record.ordinal}"

            if not email.strip():
                logger.warning(f"Record {record.ordinal}: blank email, skipping")
                report.skipped_records += 1
                emit_failure(
                    run_log,
                    code=ErrorCodes.EMAIL_BLANK,
                    unit=f"record:{record.ordinal}",
                    message="Blank email, record skipped",
                    level="warning",
                )
                continue

            group = ArtifactGroup(delivery_key=email.strip(), record_ordinal=record.ordinal, label=label)
            for t_index, template in enumerate(template_paths):
                sequence = index * len(template_paths) + t_index + 1
                job = MergeJob(record=record, template=template, sequence=sequence)
                outcome = await self._run_job(job, mergers[template], run_log, delivery_key=group.delivery_key)

                report.jobs_attempted += 1
                if outcome.ok:
                    report.jobs_succeeded += 1
                    group.artifacts.append(outcome.artifact)
                else:
                    report.jobs_failed += 1

                self._emit(ProgressEvent(
                    phase="generating",
                    current=sequence,
                    total=total,
                    file_name=outcome.artifact.file_name if outcome.ok else None,
                    record=label,
                    template=template.stem,
                    ok=outcome.ok,
                ))

            groups.append(group)

        return groups
