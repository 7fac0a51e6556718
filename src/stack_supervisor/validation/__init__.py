"""Functional validation of a running stack."""

from .cases import ResponseExpectation, ResponseSnapshot, ValidationCase, json_contains, parse_status_spec
from .run_result import CaseOutcome, RunResult
from .validation_runner import ValidationRunner

__all__ = [
    "CaseOutcome",
    "ResponseExpectation",
    "ResponseSnapshot",
    "RunResult",
    "ValidationCase",
    "ValidationRunner",
    "json_contains",
    "parse_status_spec",
]
