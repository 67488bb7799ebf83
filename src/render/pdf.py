"""
PDF 렌더 서비스: LibreOffice(soffice) headless 변환.

엔진 탐색 순서:
1. 명령어 직접 실행 (soffice --version, libreoffice --version) + 버전 문자열 확인
2. 플랫폼별 설치 경로 목록: 파일 존재 + headless 기동 확인
첫 성공을 RuntimeContext에 캐시 (프로세스 수명 동안).
probe 자체는 상태를 바꾸지 않음 → mock probe로 재테스트 가능.

변환:
- handle 없으면 RenderUnavailable (탐색 먼저)
- 엔진 에러/타임아웃/출력 없음 → RenderFailure (stderr 포함)
"""

import asyncio
import logging
import os
import shutil
import sys
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from src.core.context import RuntimeContext
from src.domain.constants import ENGINE_COMMANDS, ENGINE_VERSION_SIGNATURE
from src.domain.errors import ErrorCodes, RenderFailure, RenderUnavailable
from src.domain.schemas import DiscoveryResult

logger = logging.getLogger(__name__)

DEFAULT_RENDER_TIMEOUT = 120.0
DEFAULT_VERSION_TIMEOUT = 3.0
DEFAULT_FUNCTIONAL_TIMEOUT = 5.0


# =============================================================================
# Command Runner
# =============================================================================


@dataclass
class CommandResult:
    """외부 명령 실행 결과."""
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


CommandRunner = Callable[[list[str], float], Awaitable[CommandResult]]


async def run_command(args: list[str], timeout: float) -> CommandResult:
    """
    외부 명령 실행 (asyncio subprocess).

    실행 파일이 없으면 returncode 127, 타임아웃이면 kill 후 timed_out=True.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError, OSError) as e:
        return CommandResult(returncode=127, stderr=str(e))

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return CommandResult(returncode=-1, stderr=f"timed out after {timeout}s", timed_out=True)

    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def _is_engine_version(output: str) -> bool:
    return ENGINE_VERSION_SIGNATURE in output.lower()


# =============================================================================
# Discovery Probes
# =============================================================================


class EngineProbe(ABC):
    """
    엔진 탐색 전략 1개.

    역할: found/not-found 판정만 (캐시/상태 변경 금지)
    """

    method: str = ""

    @abstractmethod
    async def probe(self, runner: CommandRunner) -> DiscoveryResult:
        ...


class CommandProbe(EngineProbe):
    """PATH 상의 명령어를 --version으로 실행해 서명 확인."""

    method = "command"

    def __init__(self, command: str, timeout: float = DEFAULT_VERSION_TIMEOUT):
        self.command = command
        self.timeout = timeout

    async def probe(self, runner: CommandRunner) -> DiscoveryResult:
        result = await runner([self.command, "--version"], self.timeout)
        if result.ok and _is_engine_version(result.stdout):
            handle = shutil.which(self.command) or self.command
            return DiscoveryResult(
                available=True,
                handle=handle,
                method=self.method,
                version=result.stdout.strip(),
            )
        return DiscoveryResult(available=False)

    def __repr__(self) -> str:
        return f"CommandProbe({self.command!r})"


class PathProbe(EngineProbe):
    """설치 경로에 실행 파일이 있고 headless 기동이 되는지 확인."""

    method = "path"

    def __init__(self, path: str, timeout: float = DEFAULT_FUNCTIONAL_TIMEOUT):
        self.path = path
        self.timeout = timeout

    async def probe(self, runner: CommandRunner) -> DiscoveryResult:
        if not os.path.isfile(self.path):
            return DiscoveryResult(available=False)

        result = await runner([self.path, "--headless", "--terminate_after_init"], self.timeout)
        if result.ok:
            return DiscoveryResult(available=True, handle=self.path, method=self.method)

        logger.warning(
            f"Engine executable found but not functional: {self.path} "
            f"({result.stderr.strip() or result.returncode})"
        )
        return DiscoveryResult(available=False)

    def __repr__(self) -> str:
        return f"PathProbe({self.path!r})"


def get_install_paths(platform: str | None = None) -> list[str]:
    """플랫폼별 LibreOffice 설치 경로 후보 (우선순위 순)."""
    platform = platform or sys.platform

    if platform == "win32":
        candidates = [
            r"C:\Program Files\LibreOffice\program\soffice.exe",
            r"C:\Program Files (x86)\LibreOffice\program\soffice.exe",
            os.path.expandvars(r"C:\Users\%USERNAME%\AppData\Local\Programs\LibreOffice\program\soffice.exe"),
        ]
        for env_var in ("PROGRAMFILES", "PROGRAMFILES(X86)"):
            root = os.environ.get(env_var)
            if root:
                candidates.append(os.path.join(root, "LibreOffice", "program", "soffice.exe"))
    elif platform == "darwin":
        candidates = [
            "/Applications/LibreOffice.app/Contents/MacOS/soffice",
            "/usr/local/bin/soffice",
            "/opt/homebrew/bin/soffice",
        ]
    else:
        candidates = [
            "/usr/bin/soffice",
            "/usr/local/bin/soffice",
            "/opt/libreoffice/program/soffice",
            "/snap/bin/libreoffice",
        ]

    # 중복 제거 (순서 유지)
    return list(dict.fromkeys(candidates))


def default_probes(
    platform: str | None = None,
    version_timeout: float = DEFAULT_VERSION_TIMEOUT,
    functional_timeout: float = DEFAULT_FUNCTIONAL_TIMEOUT,
) -> list[EngineProbe]:
    """기본 탐색 순서: 명령어 → 설치 경로."""
    probes: list[EngineProbe] = [CommandProbe(cmd, version_timeout) for cmd in ENGINE_COMMANDS]
    probes.extend(PathProbe(p, functional_timeout) for p in get_install_paths(platform))
    return probes


# =============================================================================
# Render Service
# =============================================================================


class RenderService:
    """
    DOCX → PDF 렌더 서비스.

    Usage:
        service = RenderService(context)
        await service.discover()
        pdf_bytes = await service.render(docx_bytes)
    """

    def __init__(
        self,
        context: RuntimeContext,
        probes: list[EngineProbe] | None = None,
        runner: CommandRunner | None = None,
        timeout: float = DEFAULT_RENDER_TIMEOUT,
        version_timeout: float = DEFAULT_VERSION_TIMEOUT,
    ):
        """
        Args:
            context: 엔진 handle을 보관하는 RuntimeContext
            probes: 탐색 전략 목록 (None이면 default_probes())
            runner: 외부 명령 실행기 (테스트에서 교체)
            timeout: 변환 1회 제한 시간 (초)
            version_timeout: 수동 선택 검증 제한 시간 (초)
        """
        self.context = context
        self.probes = probes if probes is not None else default_probes()
        self.runner: CommandRunner = runner or run_command
        self.timeout = timeout
        self.version_timeout = version_timeout

    @property
    def handle(self) -> str | None:
        return self.context.engine_handle

    async def discover(self) -> DiscoveryResult:
        """
        순서대로 probe, 첫 성공을 캐시.

        실패 시 기존 캐시는 유지.

        Returns:
            DiscoveryResult (available=False면 handle None)
        """
        logger.info("Searching for render engine...")
        for probe in self.probes:
            try:
                result = await probe.probe(self.runner)
            except Exception as e:
                logger.warning(f"Probe {probe!r} raised {type(e).__name__}: {e}")
                continue

            if result.available:
                logger.info(f"Render engine found via {result.method}: {result.handle}")
                self.context.reconfigure(engine_handle=result.handle)
                return result

        logger.warning("Render engine not found automatically")
        return DiscoveryResult(available=False)

    async def select_manually(self, path: str) -> DiscoveryResult:
        """
        사용자가 지정한 실행 파일로 handle 교체.

        Args:
            path: soffice 실행 파일 경로

        Returns:
            DiscoveryResult (method="manual", version 포함)

        Raises:
            RenderUnavailable: ENGINE_SELECTION_INVALID (캐시는 변경하지 않음)
        """
        result = await self.runner([path, "--version"], self.version_timeout)
        if not (result.ok and _is_engine_version(result.stdout)):
            logger.warning(f"Selected file is not a valid render engine: {path}")
            raise RenderUnavailable(
                ErrorCodes.ENGINE_SELECTION_INVALID,
                path=path,
                error=result.stderr.strip() or "version signature not found",
            )

        self.context.reconfigure(engine_handle=path)
        logger.info(f"Render engine configured manually: {path}")
        return DiscoveryResult(
            available=True,
            handle=path,
            method="manual",
            version=result.stdout.strip(),
        )

    def require_engine(self) -> str:
        """
        캐시된 handle 반환.

        Raises:
            RenderUnavailable: ENGINE_NOT_CONFIGURED
        """
        handle = self.context.engine_handle
        if not handle:
            raise RenderUnavailable(ErrorCodes.ENGINE_NOT_CONFIGURED)
        return handle

    async def render(self, docx_bytes: bytes) -> bytes:
        """
        DOCX 바이트 → PDF 바이트.

        Args:
            docx_bytes: merge된 DOCX

        Returns:
            PDF 바이트

        Raises:
            RenderUnavailable: ENGINE_NOT_CONFIGURED
            RenderFailure: RENDER_FAILED
        """
        handle = self.require_engine()

        with tempfile.TemporaryDirectory(prefix="docmerge-render-") as tmp:
            tmp_dir = Path(tmp)
            source = tmp_dir / "document.docx"
            source.write_bytes(docx_bytes)
            profile_dir = tmp_dir / "profile"

            args = [
                handle,
                f"-env:UserInstallation={profile_dir.as_uri()}",
                "--headless",
                "--convert-to",
                "pdf",
                "--outdir",
                str(tmp_dir),
                str(source),
            ]
            result = await self.runner(args, self.timeout)

            if not result.ok:
                raise RenderFailure(
                    ErrorCodes.RENDER_FAILED,
                    engine=handle,
                    returncode=result.returncode,
                    error=result.stderr.strip() or "conversion failed",
                )

            output = tmp_dir / "document.pdf"
            if not output.is_file():
                raise RenderFailure(
                    ErrorCodes.RENDER_FAILED,
                    engine=handle,
                    error=result.stderr.strip() or "engine produced no output",
                )

            return output.read_bytes()
