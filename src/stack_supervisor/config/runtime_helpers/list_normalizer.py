"""Splitting of delimited environment values such as ``STACK_FAILURE_PATTERNS``."""

from __future__ import annotations

from typing import Iterable


class ListNormalizer:
    """Turns ``"error, fatal,,error"`` into ``("error", "fatal")``."""

    @staticmethod
    def split_and_normalize(raw_value: str, separator: str) -> list[str]:
        """Split on *separator* (no splitting when empty), strip items, drop blanks."""
        parts = raw_value.split(separator) if separator else [raw_value]
        return [part.strip() for part in parts if part.strip()]

    @staticmethod
    def deduplicate_preserving_order(items: Iterable[str]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(items))
