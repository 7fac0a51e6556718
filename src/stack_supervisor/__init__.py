"""Dual-process supervisor with health-gated startup and log-scanning validation."""

from .errors import (
    HealthTimeoutError,
    LaunchError,
    LogAnomalyDetected,
    PortStillBoundError,
    SupervisorError,
    ValidationCaseFailure,
)
from .supervisor import Supervisor, SupervisorState

__version__ = "0.1.0"

__all__ = [
    "HealthTimeoutError",
    "LaunchError",
    "LogAnomalyDetected",
    "PortStillBoundError",
    "Supervisor",
    "SupervisorError",
    "SupervisorState",
    "ValidationCaseFailure",
]
