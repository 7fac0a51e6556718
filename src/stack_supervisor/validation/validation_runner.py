"""
Validation Runner

Exercises a READY stack with functional HTTP requests, then scans the
service logs once every request has finished. Any failed case or log match
fails the run, and a failed run asks the supervisor to tear the stack down.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, List, Mapping, Optional, Sequence, Union

import aiohttp
import orjson
from aiohttp import ClientError, ClientTimeout

from ..errors import ValidationCaseFailure
from ..health.log_scanner import LogFailurePattern, scan
from ..supervisor_helpers.states import SupervisorState
from .cases import ResponseSnapshot, ValidationCase
from .run_result import CaseOutcome, RunResult

if TYPE_CHECKING:
    from ..supervisor import Supervisor

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_CASE_TIMEOUT_SECONDS = 10.0


class ValidationRunner:
    """Runs validation cases against the services of a ready supervisor."""

    def __init__(
        self,
        supervisor: "Supervisor",
        *,
        failure_patterns: Optional[LogFailurePattern] = None,
        base_urls: Optional[Mapping[str, str]] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        case_timeout_seconds: float = DEFAULT_CASE_TIMEOUT_SECONDS,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.supervisor = supervisor
        self.failure_patterns = failure_patterns or supervisor.config.failure_patterns
        self.base_urls = dict(base_urls) if base_urls is not None else supervisor.config.base_urls
        self.max_concurrency = max_concurrency
        self.case_timeout_seconds = case_timeout_seconds

    async def validate(self, cases: Sequence[ValidationCase], log_paths: Sequence[Union[str, Path]]) -> RunResult:
        """
        Run every case, scan the logs, and build the run result.

        Cases never stop each other: all of them run even after a failure.
        Non-serial cases run concurrently (bounded by ``max_concurrency``);
        serial cases run afterwards one at a time, in declaration order. The
        log scan happens only after every case has completed.

        Returns:
            RunResult with outcomes in declaration order
        """
        if self.supervisor.state is not SupervisorState.READY:
            raise RuntimeError(f"Validation requires a ready stack (state: {self.supervisor.state.value})")

        outcomes: List[Optional[CaseOutcome]] = [None] * len(cases)
        timeout = ClientTimeout(total=self.case_timeout_seconds)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async with aiohttp.ClientSession(timeout=timeout) as session:

            async def run_at(index: int) -> None:
                async with semaphore:
                    outcomes[index] = await self.run_case(session, cases[index])

            concurrent = [index for index, case in enumerate(cases) if not case.serial]
            await asyncio.gather(*(run_at(index) for index in concurrent))

            for index, case in enumerate(cases):
                if case.serial:
                    outcomes[index] = await self.run_case(session, case)

        log_scan = await asyncio.to_thread(scan, list(log_paths), self.failure_patterns)
        result = RunResult(
            service_health=self.supervisor.service_health(),
            outcomes=tuple(outcome for outcome in outcomes if outcome is not None),
            log_scan=log_scan,
        )

        if result.passed:
            logger.info("Validation passed: %d case(s), logs clean", len(result.outcomes))
        else:
            logger.error(
                "Validation failed: %d failed case(s), %d log match(es)",
                len(result.failed_cases),
                len(log_scan.lines),
            )
            await self.supervisor.abort("validation failed")
        return result

    async def run_case(self, session: aiohttp.ClientSession, case: ValidationCase) -> CaseOutcome:
        """Execute one case; request errors become a failed outcome, never an exception."""
        try:
            url = case.resolve_url(self.base_urls)
        except ValueError as exc:
            failure = ValidationCaseFailure.request_failed(case.name, str(exc))
            return CaseOutcome(case=case, passed=False, detail=failure.reasons[0], failure=failure)

        try:
            response = await self._send(session, case, url)
        except asyncio.TimeoutError:  # Recorded as a case failure  # policy_guard: allow-silent-handler
            failure = ValidationCaseFailure.request_failed(case.name, f"timed out after {self.case_timeout_seconds:g}s")
            return CaseOutcome(case=case, passed=False, detail=failure.reasons[0], failure=failure)
        except (ClientError, OSError) as exc:  # Recorded as a case failure  # policy_guard: allow-silent-handler
            failure = ValidationCaseFailure.request_failed(case.name, f"{type(exc).__name__}: {exc}")
            return CaseOutcome(case=case, passed=False, detail=failure.reasons[0], failure=failure)
        elapsed_ms = response.elapsed_ms

        reasons = case.evaluate(response)
        if reasons:
            failure = ValidationCaseFailure.from_reasons(case.name, reasons)
            logger.warning("Case %s failed: %s", case.name, "; ".join(reasons))
            return CaseOutcome(
                case=case,
                passed=False,
                detail="; ".join(reasons),
                status=response.status,
                failure=failure,
                elapsed_ms=elapsed_ms,
            )

        logger.info("Case %s passed (HTTP %s, %.0fms)", case.name, response.status, elapsed_ms)
        return CaseOutcome(case=case, passed=True, detail="ok", status=response.status, elapsed_ms=elapsed_ms)

    async def _send(self, session: aiohttp.ClientSession, case: ValidationCase, url: str) -> ResponseSnapshot:
        kwargs = {"headers": dict(case.headers)}
        if case.has_body:
            kwargs["json"] = case.body

        started = time.monotonic()
        async with session.request(case.method, url, **kwargs) as response:
            raw = await response.read()
            elapsed_ms = (time.monotonic() - started) * 1000
            return ResponseSnapshot(
                status=response.status,
                text=raw.decode("utf-8", errors="replace"),
                headers=dict(response.headers),
                json=_decode_json(raw),
                elapsed_ms=elapsed_ms,
            )


def _decode_json(raw: bytes):
    if not raw:
        return None
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:  # Non-JSON bodies are fine  # policy_guard: allow-silent-handler
        return None
