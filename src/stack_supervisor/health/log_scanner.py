"""
Log scanning for failure signatures.

Single responsibility: "Did any service log a line that looks like a failure?"

Each log file is read in full (logs are truncated at launch, so the content is
the current run only). A trailing line without a newline may still be in the
middle of being written and is ignored; files that do not exist yet count as
empty.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_PATTERNS: Tuple[str, ...] = ("error", "exception", "traceback")

PathLike = Union[str, Path]


@dataclass(frozen=True)
class LogFailurePattern:
    """Case-insensitive substrings marking a failure, plus substrings that exempt a line."""

    patterns: Tuple[str, ...] = DEFAULT_FAILURE_PATTERNS
    ignore: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        cleaned = tuple(p.lower() for p in self.patterns if p)
        if not cleaned:
            raise ValueError("At least one non-empty failure pattern is required")
        object.__setattr__(self, "patterns", cleaned)
        object.__setattr__(self, "ignore", tuple(p.lower() for p in self.ignore if p))

    @classmethod
    def of(cls, patterns: Iterable[str], ignore: Iterable[str] = ()) -> "LogFailurePattern":
        return cls(patterns=tuple(patterns), ignore=tuple(ignore))

    def matches(self, line: str) -> bool:
        lowered = line.lower()
        if not any(pattern in lowered for pattern in self.patterns):
            return False
        return not any(exempt in lowered for exempt in self.ignore)


@dataclass(frozen=True)
class LogMatch:
    path: Path
    line_number: int
    line: str

    def __str__(self) -> str:
        return f"{self.path}:{self.line_number}: {self.line}"


@dataclass(frozen=True)
class ScanResult:
    matched: bool
    lines: Tuple[LogMatch, ...] = ()


def read_complete_lines(path: Path) -> List[str]:
    """Return the complete (newline-terminated) lines of *path*."""
    try:
        raw = path.read_bytes()
    except FileNotFoundError:  # Process has not flushed its first line yet  # policy_guard: allow-silent-handler
        logger.debug("Log file %s does not exist yet; treating as empty", path)
        return []

    text = raw.decode("utf-8", errors="replace")
    lines = text.split("\n")
    # The last element is either "" (text ended with a newline) or an unterminated line.
    return [line.rstrip("\r") for line in lines[:-1]]


def scan(log_paths: Sequence[PathLike], patterns: Union[LogFailurePattern, Iterable[str], None] = None) -> ScanResult:
    """
    Scan *log_paths* for lines matching any failure pattern.

    Args:
        log_paths: Log files to read
        patterns: A LogFailurePattern, an iterable of substrings, or None for the defaults

    Returns:
        ScanResult listing every matching line
    """
    if patterns is None:
        failure_pattern = LogFailurePattern()
    elif isinstance(patterns, LogFailurePattern):
        failure_pattern = patterns
    else:
        failure_pattern = LogFailurePattern.of(patterns)

    matches: List[LogMatch] = []
    for raw_path in log_paths:
        path = Path(raw_path)
        for index, line in enumerate(read_complete_lines(path), start=1):
            if failure_pattern.matches(line):
                matches.append(LogMatch(path=path, line_number=index, line=line))

    if matches:
        logger.warning("Found %d log line(s) matching failure patterns", len(matches))
    return ScanResult(matched=bool(matches), lines=tuple(matches))
