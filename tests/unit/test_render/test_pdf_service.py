"""
test_pdf_service.py - 렌더 엔진 탐색 / 수동 선택 / 변환 테스트

검증 포인트:
- probe 순서대로, 첫 성공만 캐시
- 탐색 실패 시 기존 handle 유지
- 기능 확인 실패한 설치 경로는 건너뜀
- 수동 선택: 유효하지 않으면 handle 변경 없음
- handle 없이 render → RenderUnavailable
- 엔진 에러 → RenderFailure (stderr 포함)
"""

from pathlib import Path

import pytest

from src.core.context import RuntimeContext
from src.domain.errors import ErrorCodes, RenderFailure, RenderUnavailable
from src.domain.schemas import DiscoveryResult
from src.render.pdf import (
    CommandProbe,
    CommandResult,
    PathProbe,
    RenderService,
    default_probes,
    get_install_paths,
    run_command,
)


class ScriptedRunner:
    """args[0] 기준으로 미리 정한 결과를 돌려주는 runner."""

    def __init__(self, results: dict[str, CommandResult]):
        self.results = results
        self.calls: list[list[str]] = []

    async def __call__(self, args: list[str], timeout: float) -> CommandResult:
        self.calls.append(list(args))
        return self.results.get(args[0], CommandResult(returncode=127, stderr="not found"))


class StaticProbe:
    """고정 결과 probe (호출 횟수 기록)."""

    def __init__(self, result: DiscoveryResult):
        self.result = result
        self.calls = 0

    async def probe(self, runner) -> DiscoveryResult:
        self.calls += 1
        return self.result


# =============================================================================
# Probes
# =============================================================================

class TestCommandProbe:

    @pytest.mark.asyncio
    async def test_found_when_version_matches(self):
        runner = ScriptedRunner({"soffice": CommandResult(0, stdout="LibreOffice 7.6.4.1")})

        result = await CommandProbe("soffice").probe(runner)

        assert result.available is True
        assert result.method == "command"
        assert "LibreOffice" in result.version
        assert runner.calls == [["soffice", "--version"]]

    @pytest.mark.asyncio
    async def test_not_found_when_signature_missing(self):
        runner = ScriptedRunner({"soffice": CommandResult(0, stdout="OpenOffice 4.1")})

        result = await CommandProbe("soffice").probe(runner)

        assert result.available is False
        assert result.handle is None

    @pytest.mark.asyncio
    async def test_not_found_on_error(self):
        result = await CommandProbe("soffice").probe(ScriptedRunner({}))

        assert result.available is False


class TestPathProbe:

    @pytest.mark.asyncio
    async def test_missing_file_not_executed(self, tmp_path: Path):
        runner = ScriptedRunner({})

        result = await PathProbe(str(tmp_path / "soffice")).probe(runner)

        assert result.available is False
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_functional_check(self, tmp_path: Path):
        exe = tmp_path / "soffice"
        exe.write_text("#!/bin/sh\n")
        runner = ScriptedRunner({str(exe): CommandResult(0)})

        result = await PathProbe(str(exe)).probe(runner)

        assert result.available is True
        assert result.handle == str(exe)
        assert runner.calls == [[str(exe), "--headless", "--terminate_after_init"]]

    @pytest.mark.asyncio
    async def test_non_functional(self, tmp_path: Path):
        exe = tmp_path / "soffice"
        exe.write_text("#!/bin/sh\n")
        runner = ScriptedRunner({str(exe): CommandResult(-1, timed_out=True)})

        result = await PathProbe(str(exe)).probe(runner)

        assert result.available is False


class TestInstallPaths:

    def test_linux(self):
        assert get_install_paths("linux") == [
            "/usr/bin/soffice",
            "/usr/local/bin/soffice",
            "/opt/libreoffice/program/soffice",
            "/snap/bin/libreoffice",
        ]

    def test_darwin(self):
        assert get_install_paths("darwin")[0] == "/Applications/LibreOffice.app/Contents/MacOS/soffice"

    def test_windows_env_vars(self, monkeypatch):
        monkeypatch.setenv("PROGRAMFILES", r"D:\Apps")

        paths = get_install_paths("win32")

        assert paths[0] == r"C:\Program Files\LibreOffice\program\soffice.exe"
        assert any(p.startswith(r"D:\Apps") for p in paths)
        assert len(paths) == len(set(paths))

    def test_default_probe_order(self):
        probes = default_probes("linux")

        assert [type(p) for p in probes[:2]] == [CommandProbe, CommandProbe]
        assert all(isinstance(p, PathProbe) for p in probes[2:])


# =============================================================================
# Discovery
# =============================================================================

class TestDiscover:

    @pytest.mark.asyncio
    async def test_first_success_wins_and_is_cached(self):
        context = RuntimeContext()
        miss = StaticProbe(DiscoveryResult(available=False))
        hit = StaticProbe(DiscoveryResult(available=True, handle="/usr/bin/soffice", method="path"))
        never = StaticProbe(DiscoveryResult(available=True, handle="/other", method="path"))
        service = RenderService(context, probes=[miss, hit, never], runner=ScriptedRunner({}))

        result = await service.discover()

        assert result.handle == "/usr/bin/soffice"
        assert context.engine_handle == "/usr/bin/soffice"
        assert (miss.calls, hit.calls, never.calls) == (1, 1, 0)

    @pytest.mark.asyncio
    async def test_failure_leaves_cache_untouched(self):
        context = RuntimeContext(engine_handle="/previous/soffice")
        service = RenderService(
            context,
            probes=[StaticProbe(DiscoveryResult(available=False))],
            runner=ScriptedRunner({}),
        )

        result = await service.discover()

        assert result.available is False
        assert context.engine_handle == "/previous/soffice"

    @pytest.mark.asyncio
    async def test_probe_exception_skipped(self):
        class Exploding:
            async def probe(self, runner):
                raise PermissionError("denied")

        context = RuntimeContext()
        hit = StaticProbe(DiscoveryResult(available=True, handle="/usr/bin/soffice", method="path"))
        service = RenderService(context, probes=[Exploding(), hit], runner=ScriptedRunner({}))

        result = await service.discover()

        assert result.available is True
        assert hit.calls == 1

    @pytest.mark.asyncio
    async def test_discovery_is_repeatable_with_mock_probes(self):
        context = RuntimeContext()
        probe = StaticProbe(DiscoveryResult(available=True, handle="/a", method="command"))
        service = RenderService(context, probes=[probe], runner=ScriptedRunner({}))

        await service.discover()
        await service.discover()

        assert probe.calls == 2
        assert context.engine_handle == "/a"


class TestSelectManually:

    @pytest.mark.asyncio
    async def test_valid_selection_replaces_handle(self):
        context = RuntimeContext(engine_handle="/old")
        runner = ScriptedRunner({"/new/soffice": CommandResult(0, stdout="LibreOffice 24.2")})
        service = RenderService(context, probes=[], runner=runner)

        result = await service.select_manually("/new/soffice")

        assert result.method == "manual"
        assert result.version == "LibreOffice 24.2"
        assert context.engine_handle == "/new/soffice"

    @pytest.mark.asyncio
    async def test_invalid_selection_rejected_without_mutation(self):
        context = RuntimeContext(engine_handle="/old")
        runner = ScriptedRunner({"/bin/ls": CommandResult(0, stdout="ls (GNU coreutils) 9.4")})
        service = RenderService(context, probes=[], runner=runner)

        with pytest.raises(RenderUnavailable) as exc_info:
            await service.select_manually("/bin/ls")

        assert exc_info.value.code == ErrorCodes.ENGINE_SELECTION_INVALID
        assert context.engine_handle == "/old"


# =============================================================================
# Render
# =============================================================================

class TestRender:

    @pytest.mark.asyncio
    async def test_requires_handle(self, fake_runner):
        service = RenderService(RuntimeContext(), probes=[], runner=fake_runner)

        with pytest.raises(RenderUnavailable) as exc_info:
            await service.render(b"docx")

        assert exc_info.value.code == ErrorCodes.ENGINE_NOT_CONFIGURED
        assert fake_runner.calls == []

    @pytest.mark.asyncio
    async def test_converts_via_engine(self, tmp_path: Path, make_docx, render_service, fake_runner, read_pdf_text):
        docx = make_docx(tmp_path / "carta.docx", ["Hola Ana"]).read_bytes()

        pdf = await render_service.render(docx)

        assert read_pdf_text(pdf) == "Hola Ana"
        args = fake_runner.conversions[0]
        assert args[0] == render_service.handle
        assert args[1].startswith("-env:UserInstallation=file://")
        assert args[2:6] == ["--headless", "--convert-to", "pdf", "--outdir"]

    @pytest.mark.asyncio
    async def test_engine_error_wrapped(self, runtime_context):
        runner = ScriptedRunner({runtime_context.engine_handle: CommandResult(1, stderr="General Error")})
        service = RenderService(runtime_context, probes=[], runner=runner)

        with pytest.raises(RenderFailure) as exc_info:
            await service.render(b"docx")

        assert exc_info.value.code == ErrorCodes.RENDER_FAILED
        assert exc_info.value.context["error"] == "General Error"

    @pytest.mark.asyncio
    async def test_no_output_is_failure(self, runtime_context):
        runner = ScriptedRunner({runtime_context.engine_handle: CommandResult(0)})
        service = RenderService(runtime_context, probes=[], runner=runner)

        with pytest.raises(RenderFailure) as exc_info:
            await service.render(b"docx")

        assert "no output" in exc_info.value.context["error"]


class TestRunCommand:

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path: Path):
        result = await run_command([str(tmp_path / "nope")], timeout=1)

        assert result.returncode == 127
        assert result.ok is False
