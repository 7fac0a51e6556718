"""Tests for log failure scanning."""

from __future__ import annotations

from pathlib import Path

import pytest

from stack_supervisor.health.log_scanner import (
    LogFailurePattern,
    LogMatch,
    read_complete_lines,
    scan,
)


class TestLogFailurePattern:
    def test_case_insensitive(self) -> None:
        pattern = LogFailurePattern()
        assert pattern.matches("ERROR: could not store item")
        assert pattern.matches("Traceback (most recent call last):")
        assert pattern.matches("raised ValueError")
        assert not pattern.matches("INFO: 127.0.0.1 - POST /items 201")
        assert not pattern.matches("status: OK")

    @pytest.mark.parametrize("patterns", [["traceback"], ["TRACEBACK"], ["TraceBack"]])
    def test_pattern_casing_is_irrelevant(self, patterns) -> None:
        assert LogFailurePattern.of(patterns).matches("Traceback (most recent call last):")

    def test_ignore_exempts_line(self) -> None:
        pattern = LogFailurePattern.of(["error"], ignore=["error_count=0"])
        assert not pattern.matches("stats: ERROR_COUNT=0")
        assert pattern.matches("error while saving")

    def test_requires_a_pattern(self) -> None:
        with pytest.raises(ValueError):
            LogFailurePattern.of(["", ""])


class TestReadCompleteLines:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert read_complete_lines(tmp_path / "absent.log") == []

    def test_drops_unterminated_tail(self, tmp_path: Path) -> None:
        log = tmp_path / "service.log"
        log.write_bytes(b"first\r\nsecond\npartial err")
        assert read_complete_lines(log) == ["first", "second"]

    def test_undecodable_bytes(self, tmp_path: Path) -> None:
        log = tmp_path / "service.log"
        log.write_bytes(b"bad \xff byte\n")
        assert read_complete_lines(log) == ["bad � byte"]


class TestScan:
    def test_clean_logs(self, tmp_path: Path) -> None:
        log = tmp_path / "backend.log"
        log.write_text("INFO: Application startup complete.\nINFO: POST /items 201\n")

        result = scan([log])

        assert result.matched is False
        assert result.lines == ()

    def test_matches_across_files_in_order(self, tmp_path: Path) -> None:
        backend = tmp_path / "backend.log"
        frontend = tmp_path / "frontend.log"
        backend.write_text("ok\nERROR: could not store item\n")
        frontend.write_text("Traceback (most recent call last):\n")

        result = scan([backend, str(frontend), tmp_path / "missing.log"])

        assert result.matched is True
        assert result.lines == (
            LogMatch(path=backend, line_number=2, line="ERROR: could not store item"),
            LogMatch(path=frontend, line_number=1, line="Traceback (most recent call last):"),
        )
        assert str(result.lines[0]) == f"{backend}:2: ERROR: could not store item"

    def test_custom_pattern_iterable(self, tmp_path: Path) -> None:
        log = tmp_path / "backend.log"
        log.write_text("panic: runtime error\nERROR ignored by custom set\n")

        result = scan([log], ["panic"])

        assert [match.line_number for match in result.lines] == [1]

    def test_partial_line_not_reported(self, tmp_path: Path) -> None:
        log = tmp_path / "backend.log"
        log.write_text("fine\nERROR half-writ")
        assert scan([log]).matched is False
