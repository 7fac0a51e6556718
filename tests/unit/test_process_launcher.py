"""Tests for the process launcher."""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path

import psutil
import pytest

from stack_supervisor.errors import LaunchError
from stack_supervisor.process_launcher import (
    ProcessHandle,
    ProcessState,
    launch,
    normalize_command,
    read_log_tail,
)


def _kill(handle: ProcessHandle) -> None:
    if handle.process is not None and handle.process.poll() is None:
        handle.process.kill()
        handle.process.wait()


class TestProcessHandle:
    def test_lifecycle_transitions(self, tmp_path: Path) -> None:
        handle = ProcessHandle(name="backend", process=None, log_path=tmp_path / "backend.log")

        for state in (ProcessState.STARTING, ProcessState.HEALTHY, ProcessState.STOPPING, ProcessState.STOPPED):
            handle.transition(state)

        assert handle.state is ProcessState.STOPPED
        assert handle.is_terminal

    @pytest.mark.parametrize(
        "path",
        [
            (ProcessState.HEALTHY,),
            (ProcessState.STARTING, ProcessState.STOPPED),
            (ProcessState.STARTING, ProcessState.FAILED, ProcessState.STOPPING),
        ],
    )
    def test_illegal_transitions(self, tmp_path: Path, path) -> None:
        handle = ProcessHandle(name="backend", process=None, log_path=tmp_path / "backend.log")
        with pytest.raises(ValueError, match="illegal transition"):
            for state in path:
                handle.transition(state)

    def test_handle_without_process(self, tmp_path: Path) -> None:
        handle = ProcessHandle(name="frontend", process=None, log_path=tmp_path / "frontend.log")
        assert handle.pid is None
        assert handle.returncode is None
        assert handle.is_running() is False


def test_normalize_command() -> None:
    assert normalize_command("uvicorn main:app --port '8000'") == ["uvicorn", "main:app", "--port", "8000"]
    assert normalize_command(("python", 3)) == ["python", "3"]


def test_read_log_tail(tmp_path: Path) -> None:
    log = tmp_path / "service.log"
    log.write_text("".join(f"line {i}\n" for i in range(30)))

    assert read_log_tail(log, 3) == ["line 27", "line 28", "line 29"]
    assert read_log_tail(tmp_path / "missing.log") == []


class TestLaunch:
    @pytest.mark.asyncio
    async def test_running_child_is_starting(self, tmp_path: Path) -> None:
        log = tmp_path / "logs" / "backend.log"
        handle = await launch(
            "backend",
            [sys.executable, "-c", "import time; print('booting', flush=True); time.sleep(30)"],
            tmp_path,
            {"STACK_TEST_MARKER": "1"},
            log,
            grace_seconds=0.2,
        )
        try:
            assert handle.state is ProcessState.STARTING
            assert handle.is_running()
            assert handle.pid is not None
        finally:
            _kill(handle)

    @pytest.mark.asyncio
    async def test_output_and_env_reach_log(self, tmp_path: Path) -> None:
        log = tmp_path / "backend.log"
        log.write_text("stale line from a previous run\n")
        script = "import os, sys; print('out', os.environ['STACK_TEST_MARKER']); print('err', file=sys.stderr)"

        handle = await launch("backend", [sys.executable, "-c", script], None, {"STACK_TEST_MARKER": "42"}, log, grace_seconds=0.1)
        await asyncio.to_thread(handle.process.wait, 10)

        content = log.read_text()
        assert "stale line" not in content
        assert "out 42" in content
        assert "err" in content
        assert handle.returncode == 0

    @pytest.mark.asyncio
    async def test_immediate_nonzero_exit(self, tmp_path: Path) -> None:
        log = tmp_path / "backend.log"
        script = "import sys; print('ModuleNotFoundError: main', flush=True); sys.exit(3)"

        with pytest.raises(LaunchError) as excinfo:
            await launch("backend", [sys.executable, "-c", script], None, None, log, grace_seconds=5.0)

        assert "exited immediately with code 3" in str(excinfo.value)
        assert excinfo.value.log_tail == ("ModuleNotFoundError: main",)

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path: Path) -> None:
        with pytest.raises(LaunchError, match="not found"):
            await launch("frontend", ["definitely-not-a-real-binary-xyz"], None, None, tmp_path / "f.log")

    @pytest.mark.asyncio
    async def test_missing_cwd(self, tmp_path: Path) -> None:
        with pytest.raises(LaunchError, match="working directory"):
            await launch("frontend", [sys.executable, "-V"], tmp_path / "nope", None, tmp_path / "f.log")

    @pytest.mark.asyncio
    async def test_empty_command(self, tmp_path: Path) -> None:
        with pytest.raises(LaunchError, match="command is empty"):
            await launch("frontend", "   ", None, None, tmp_path / "f.log")

    @pytest.mark.asyncio
    async def test_string_command_is_split(self, tmp_path: Path) -> None:
        log = tmp_path / "b.log"
        handle = await launch("backend", f"{sys.executable} -c 'print(123)'", None, None, log, grace_seconds=0.1)
        await asyncio.to_thread(handle.process.wait, 10)
        assert "123" in log.read_text()

    @pytest.mark.asyncio
    async def test_unwritable_log_location(self, tmp_path: Path) -> None:
        blocker = tmp_path / "logs"
        blocker.write_text("a file where the log directory should be")

        with pytest.raises(LaunchError, match="cannot open log file"):
            await launch("backend", [sys.executable, "-V"], None, None, blocker / "backend.log")


def _gone(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


async def _wait_gone(pid: int, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if _gone(pid):
            return True
        await asyncio.sleep(0.05)
    return _gone(pid)


class TestGraceWindowCleanup:
    @pytest.mark.asyncio
    async def test_cancelled_launch_kills_child(self, tmp_path: Path) -> None:
        log = tmp_path / "backend.log"
        script = "import os, time; print(os.getpid(), flush=True); time.sleep(60)"

        task = asyncio.create_task(launch("backend", [sys.executable, "-c", script], None, None, log, grace_seconds=30.0))
        deadline = time.monotonic() + 10
        while not (log.exists() and log.read_text().strip()):
            assert time.monotonic() < deadline, "child never wrote its PID"
            await asyncio.sleep(0.05)
        pid = int(log.read_text().split()[0])
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert await _wait_gone(pid)

    @pytest.mark.asyncio
    async def test_immediate_exit_sweeps_grandchildren(self, tmp_path: Path) -> None:
        log = tmp_path / "backend.log"
        script = (
            "import subprocess, sys\n"
            "worker = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
            "print(worker.pid, flush=True)\n"
            "sys.exit(4)\n"
        )

        with pytest.raises(LaunchError, match="code 4") as excinfo:
            await launch("backend", [sys.executable, "-c", script], None, None, log, grace_seconds=5.0)

        worker_pid = int(excinfo.value.log_tail[0])
        assert await _wait_gone(worker_pid)
