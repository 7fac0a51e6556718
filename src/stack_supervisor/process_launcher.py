"""
Process Launcher

Spawns a supervised service with its combined stdout/stderr redirected to a
dedicated, freshly truncated log file, and tracks it with a ``ProcessHandle``.

A child that cannot be executed, or that exits nonzero within a short grace
window, raises ``LaunchError``. A child that starts and crashes later is left
for the health prober to notice.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import subprocess
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Union

import psutil

from .errors import LaunchError
from .port_reaper_helpers import kill_process_group, kill_process_tree

logger = logging.getLogger(__name__)

DEFAULT_LAUNCH_GRACE_SECONDS = 0.5
_GRACE_POLL_SECONDS = 0.05
_LOG_TAIL_LINES = 20
_DISCARD_WAIT_SECONDS = 1.0

Command = Union[str, Sequence[str]]


class ProcessState(Enum):
    """Lifecycle of a supervised process."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    HEALTHY = "healthy"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: Dict[ProcessState, FrozenSet[ProcessState]] = {
    ProcessState.NOT_STARTED: frozenset({ProcessState.STARTING}),
    ProcessState.STARTING: frozenset({ProcessState.HEALTHY, ProcessState.STOPPING, ProcessState.FAILED}),
    ProcessState.HEALTHY: frozenset({ProcessState.STOPPING, ProcessState.FAILED}),
    ProcessState.STOPPING: frozenset({ProcessState.STOPPED, ProcessState.FAILED}),
    ProcessState.STOPPED: frozenset(),
    ProcessState.FAILED: frozenset(),
}


@dataclass
class ProcessHandle:
    """A single supervised child process. Owned exclusively by the supervisor."""

    name: str
    process: Optional[psutil.Popen]
    log_path: Path
    started_at: float = field(default_factory=time.time)
    state: ProcessState = ProcessState.NOT_STARTED

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    @property
    def returncode(self) -> Optional[int]:
        if self.process is None:
            return None
        return self.process.poll()

    @property
    def is_terminal(self) -> bool:
        return self.state in (ProcessState.STOPPED, ProcessState.FAILED)

    def is_running(self) -> bool:
        """True while the OS process exists and has not exited."""
        if self.process is None:
            return False
        return self.process.poll() is None

    def transition(self, new_state: ProcessState) -> None:
        """Move to *new_state*, rejecting moves the lifecycle does not allow."""
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise ValueError(f"{self.name}: illegal transition {self.state.value} -> {new_state.value}")
        logger.debug("%s: %s -> %s", self.name, self.state.value, new_state.value)
        self.state = new_state


def normalize_command(command: Command) -> List[str]:
    """Return an argv list; strings are split with shell rules."""
    if isinstance(command, str):
        return shlex.split(command)
    return [str(part) for part in command]


def read_log_tail(log_path: Path, lines: int = _LOG_TAIL_LINES) -> List[str]:
    """Return up to *lines* trailing lines of a log file (empty if missing)."""
    try:
        with log_path.open("r", encoding="utf-8", errors="replace") as fh:
            return [line.rstrip("\n") for line in deque(fh, maxlen=lines)]
    except FileNotFoundError:  # policy_guard: allow-silent-handler
        return []


async def launch(
    name: str,
    command: Command,
    cwd: Union[str, Path, None],
    env: Optional[Mapping[str, str]],
    log_path: Union[str, Path],
    *,
    grace_seconds: float = DEFAULT_LAUNCH_GRACE_SECONDS,
) -> ProcessHandle:
    """
    Start *command* as service *name* and return its handle.

    Args:
        name: Service name ("backend" or "frontend")
        command: argv list, or a string split with shell rules
        cwd: Working directory for the child (None for the current one)
        env: Variables layered over the supervisor's own environment
        log_path: File receiving stdout and stderr; truncated first
        grace_seconds: Window in which a nonzero exit counts as a launch failure

    Returns:
        ProcessHandle in the STARTING state

    Raises:
        LaunchError: If the child cannot be started or dies within the grace window
    """
    argv = normalize_command(command)
    if not argv:
        raise LaunchError.empty_command(name)

    working_dir = Path(cwd) if cwd is not None else None
    if working_dir is not None and not working_dir.is_dir():
        raise LaunchError.missing_cwd(name, str(working_dir))

    log_path = Path(log_path)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_file = log_path.open("wb")
    except OSError as exc:
        raise LaunchError.spawn_failed(name, f"cannot open log file {log_path}: {exc}") from exc

    child_env = dict(os.environ)
    if env:
        child_env.update({str(key): str(value) for key, value in env.items()})

    handle = ProcessHandle(name=name, process=None, log_path=log_path)
    with log_file:
        try:
            handle.process = psutil.Popen(
                argv,
                cwd=str(working_dir) if working_dir is not None else None,
                env=child_env,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            raise LaunchError.executable_not_found(name, argv[0]) from exc
        except (PermissionError, OSError) as exc:
            raise LaunchError.spawn_failed(name, str(exc)) from exc

    handle.started_at = time.time()
    handle.transition(ProcessState.STARTING)
    logger.info("Started %s (PID %s): %s; logging to %s", name, handle.pid, shlex.join(argv), log_path)

    try:
        await _watch_grace_window(handle, grace_seconds)
    except BaseException:
        # Not yet owned by the supervisor, so nothing else would stop it.
        _discard(handle)
        raise
    return handle


async def _watch_grace_window(handle: ProcessHandle, grace_seconds: float) -> None:
    deadline = time.monotonic() + grace_seconds
    while True:
        returncode = handle.returncode
        if returncode is not None and returncode != 0:
            handle.transition(ProcessState.FAILED)
            raise LaunchError.exited_immediately(handle.name, returncode, read_log_tail(handle.log_path))
        remaining = deadline - time.monotonic()
        if returncode is not None or remaining <= 0:
            return
        await asyncio.sleep(min(_GRACE_POLL_SECONDS, remaining))


def _discard(handle: ProcessHandle) -> None:
    """Kill a child that failed or was interrupted inside the grace window."""
    if handle.is_running():
        try:
            survivors = kill_process_tree(handle.process, owner=handle.name, timeout=_DISCARD_WAIT_SECONDS)
        except RuntimeError as exc:  # policy_guard: allow-silent-handler
            logger.error("Could not kill %s: %s", handle.name, exc)
        else:
            if survivors:
                logger.error("%s process(es) %s survived SIGKILL", handle.name, survivors)
    if handle.pid is not None:
        kill_process_group(handle.pid, owner=handle.name)
    if not handle.is_terminal:
        handle.transition(ProcessState.FAILED)


__all__ = [
    "Command",
    "ProcessHandle",
    "ProcessState",
    "launch",
    "normalize_command",
    "read_log_tail",
    "DEFAULT_LAUNCH_GRACE_SECONDS",
]
