"""Reading ``KEY=value`` defaults from a .env file."""

from __future__ import annotations

import logging
import shlex
from pathlib import Path
from typing import Dict, Optional, Tuple

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

_EXPORT_PREFIX = "export "


class DotenvLoader:
    """Loads supervisor settings from the .env file next to the stack file."""

    @staticmethod
    def load_from_file(path: Path) -> Dict[str, str]:
        """
        Load key-value pairs from a .env file.

        Supported forms::

            STACK_BACKEND_PORT=9000
            export STACK_LOG_DIR="/var/log/stack"   # trailing comment
            STACK_FAILURE_PATTERNS='error,fatal'

        Values may be quoted; unquoted values end at `` #``. Lines without
        ``=`` are ignored.

        Args:
            path: Path to the .env file

        Returns:
            Mapping of variable names to values (empty when the file is absent)

        Raises:
            ConfigurationError: If the file exists but cannot be read
        """
        if not path.exists():
            return {}

        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError.load_failed(path, str(exc)) from exc

        values: Dict[str, str] = {}
        for line_number, line in enumerate(text.splitlines(), start=1):
            parsed = DotenvLoader._parse_line(line)
            if parsed is None:
                continue
            key, value = parsed
            if not key.replace("_", "").isalnum():
                logger.debug("%s:%d: skipping invalid variable name %r", path, line_number, key)
                continue
            values[key] = value
        return values

    @staticmethod
    def _parse_line(line: str) -> Optional[Tuple[str, str]]:
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            return None
        if stripped.startswith(_EXPORT_PREFIX):
            stripped = stripped[len(_EXPORT_PREFIX) :].lstrip()

        key, raw_value = stripped.split("=", 1)
        return key.strip(), DotenvLoader._parse_value(raw_value.strip())

    @staticmethod
    def _parse_value(raw_value: str) -> str:
        if raw_value[:1] in ("'", '"'):
            try:
                tokens = shlex.split(raw_value, comments=True)
            except ValueError:  # Unbalanced quote; keep the text as written  # policy_guard: allow-silent-handler
                return raw_value.strip("'\"")
            return tokens[0] if tokens else ""
        comment_at = raw_value.find(" #")
        if comment_at != -1:
            raw_value = raw_value[:comment_at]
        return raw_value.strip()
