"""Failure taxonomy for supervised stack runs.

Startup failures (``PortStillBoundError``, ``LaunchError``,
``HealthTimeoutError``) are fatal: the supervisor tears down whatever it
started and re-raises them with ``stage`` naming the state that failed.
Validation failures (``ValidationCaseFailure``, ``LogAnomalyDetected``) are
recorded in the run result instead of being raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .health.log_scanner import ScanResult


class SupervisorError(RuntimeError):
    """Base class for every classified supervisor failure."""

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage

    def describe(self) -> str:
        """Return the message prefixed with the failing stage when known."""
        if self.stage:
            return f"[{self.stage}] {self}"
        return str(self)


class PortStillBoundError(SupervisorError):
    """A port could not be freed before startup."""

    def __init__(self, message: str, *, port: int, pid: Optional[int] = None, stage: Optional[str] = None) -> None:
        super().__init__(message, stage=stage)
        self.port = port
        self.pid = pid

    @classmethod
    def still_listening(cls, port: int, pid: Optional[int], grace_seconds: float) -> "PortStillBoundError":
        owner = f"PID {pid}" if pid is not None else "an unknown process"
        return cls(
            f"Port {port} is still bound by {owner} after {grace_seconds:g}s",
            port=port,
            pid=pid,
        )

    @classmethod
    def unknown_owner(cls, port: int) -> "PortStillBoundError":
        return cls(f"Port {port} has a listener whose owning process cannot be identified", port=port)

    @classmethod
    def access_denied(cls, port: int, pid: int) -> "PortStillBoundError":
        return cls(f"Permission denied while killing PID {pid} listening on port {port}", port=port, pid=pid)


class LaunchError(SupervisorError):
    """A child process could not be started or died within its grace window."""

    def __init__(self, message: str, *, service: str, log_tail: Sequence[str] = (), stage: Optional[str] = None) -> None:
        super().__init__(message, stage=stage)
        self.service = service
        self.log_tail = tuple(log_tail)

    @classmethod
    def executable_not_found(cls, service: str, executable: str) -> "LaunchError":
        return cls(f"{service}: executable {executable!r} not found", service=service)

    @classmethod
    def spawn_failed(cls, service: str, reason: str) -> "LaunchError":
        return cls(f"{service}: failed to spawn process: {reason}", service=service)

    @classmethod
    def missing_cwd(cls, service: str, cwd: str) -> "LaunchError":
        return cls(f"{service}: working directory {cwd} does not exist", service=service)

    @classmethod
    def empty_command(cls, service: str) -> "LaunchError":
        return cls(f"{service}: command is empty", service=service)

    @classmethod
    def exited_immediately(cls, service: str, returncode: int, log_tail: Sequence[str]) -> "LaunchError":
        return cls(
            f"{service}: process exited immediately with code {returncode}",
            service=service,
            log_tail=log_tail,
        )


class HealthTimeoutError(SupervisorError):
    """A started process never became healthy within its budget."""

    def __init__(self, message: str, *, service: str, url: str, stage: Optional[str] = None) -> None:
        super().__init__(message, stage=stage)
        self.service = service
        self.url = url

    @classmethod
    def timed_out(cls, service: str, url: str, max_wait_seconds: float) -> "HealthTimeoutError":
        return cls(f"{service}: {url} not healthy after {max_wait_seconds:g}s", service=service, url=url)

    @classmethod
    def process_exited(cls, service: str, url: str, returncode: Optional[int]) -> "HealthTimeoutError":
        return cls(
            f"{service}: process exited with code {returncode} before {url} became healthy",
            service=service,
            url=url,
        )


class ValidationCaseFailure(SupervisorError):
    """A single functional probe did not satisfy its expectations."""

    def __init__(self, message: str, *, case_name: str, reasons: Sequence[str] = ()) -> None:
        super().__init__(message, stage="validation")
        self.case_name = case_name
        self.reasons = tuple(reasons)

    @classmethod
    def from_reasons(cls, case_name: str, reasons: Sequence[str]) -> "ValidationCaseFailure":
        return cls(f"{case_name}: " + "; ".join(reasons), case_name=case_name, reasons=reasons)

    @classmethod
    def request_failed(cls, case_name: str, reason: str) -> "ValidationCaseFailure":
        detail = f"request failed: {reason}"
        return cls(f"{case_name}: {detail}", case_name=case_name, reasons=(detail,))


class LogAnomalyDetected(SupervisorError):
    """Failure patterns were found in service logs after validation."""

    def __init__(self, message: str, *, scan: "ScanResult") -> None:
        super().__init__(message, stage="log-scan")
        self.scan = scan

    @classmethod
    def from_scan(cls, scan: "ScanResult") -> "LogAnomalyDetected":
        count = len(scan.lines)
        noun = "line" if count == 1 else "lines"
        return cls(f"{count} log {noun} matched failure patterns", scan=scan)


__all__ = [
    "SupervisorError",
    "PortStillBoundError",
    "LaunchError",
    "HealthTimeoutError",
    "ValidationCaseFailure",
    "LogAnomalyDetected",
]
