"""Type definitions for health probing."""

from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import urlsplit

DEFAULT_INTERVAL_SECONDS = 0.5
DEFAULT_MAX_WAIT_SECONDS = 30.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 5.0


def is_success_status(status: int) -> bool:
    """Accept any 2xx status."""
    return 200 <= status < 300


@dataclass(frozen=True)
class HealthCheckSpec:
    """Where and how long to poll for readiness. Immutable once built."""

    url: str
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    accept_status: Callable[[int], bool] = field(default=is_success_status, compare=False)

    def __post_init__(self) -> None:
        parsed = urlsplit(self.url)
        if parsed.scheme.lower() not in {"http", "https"}:
            raise ValueError(f"Unsupported URL scheme: {self.url}")
        if not parsed.netloc:
            raise ValueError(f"URL missing network location: {self.url}")
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if self.max_wait_seconds < 0:
            raise ValueError("max_wait_seconds must be non-negative")
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive")
