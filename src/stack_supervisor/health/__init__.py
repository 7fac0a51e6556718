"""
Readiness and failure-signal checks for supervised services.

- Health probing (is the service answering HTTP yet?)
- Log scanning (did the service log anything that looks like a failure?)
"""

from .health_prober import HealthProber, wait_healthy
from .log_scanner import DEFAULT_FAILURE_PATTERNS, LogFailurePattern, LogMatch, ScanResult, scan
from .types import HealthCheckSpec, is_success_status

__all__ = [
    "HealthProber",
    "wait_healthy",
    "HealthCheckSpec",
    "is_success_status",
    "DEFAULT_FAILURE_PATTERNS",
    "LogFailurePattern",
    "LogMatch",
    "ScanResult",
    "scan",
]
