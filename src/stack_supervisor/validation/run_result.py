"""Aggregate outcome of a validation run."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple

from ..errors import LogAnomalyDetected, ValidationCaseFailure
from ..health.log_scanner import ScanResult
from .cases import ValidationCase


@dataclass(frozen=True)
class CaseOutcome:
    """Result of running one validation case."""

    case: ValidationCase
    passed: bool
    detail: str
    status: Optional[int] = None
    failure: Optional[ValidationCaseFailure] = None
    elapsed_ms: float = 0.0


@dataclass(frozen=True)
class RunResult:
    """Everything a validation run found. Built once, never mutated."""

    service_health: Mapping[str, bool]
    outcomes: Tuple[CaseOutcome, ...]
    log_scan: ScanResult
    passed: bool = field(init=False)
    log_anomaly: Optional[LogAnomalyDetected] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "service_health", MappingProxyType(dict(self.service_health)))
        object.__setattr__(self, "outcomes", tuple(self.outcomes))
        anomaly = LogAnomalyDetected.from_scan(self.log_scan) if self.log_scan.matched else None
        object.__setattr__(self, "log_anomaly", anomaly)
        passed = all(self.service_health.values()) and all(o.passed for o in self.outcomes) and anomaly is None
        object.__setattr__(self, "passed", passed)

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1

    @property
    def failed_cases(self) -> Tuple[CaseOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if not outcome.passed)

    def format_summary(self) -> str:
        """Human-readable report listing every case and every matched log line."""
        lines: List[str] = ["Services:"]
        for name, healthy in self.service_health.items():
            lines.append(f"  {name}: {'healthy' if healthy else 'UNHEALTHY'}")

        lines.append(f"Validation cases ({len(self.outcomes) - len(self.failed_cases)}/{len(self.outcomes)} passed):")
        for outcome in self.outcomes:
            marker = "PASS" if outcome.passed else "FAIL"
            status = f" -> {outcome.status}" if outcome.status is not None else ""
            lines.append(f"  [{marker}] {outcome.case.name} ({outcome.case.describe()}{status})")
            if not outcome.passed:
                lines.append(f"         {outcome.detail}")

        if self.log_anomaly is None:
            lines.append("Log scan: clean")
        else:
            lines.append(f"Log scan: {self.log_anomaly}")
            for match in self.log_scan.lines:
                lines.append(f"  {match}")

        lines.append(f"Result: {'PASS' if self.passed else 'FAIL'}")
        return "\n".join(lines)
