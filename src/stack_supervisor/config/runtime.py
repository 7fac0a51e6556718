"""
Environment-backed settings for the supervisor.

Every ``STACK_*`` override is read through these helpers. A value comes from
the process environment first, then from the ``.env`` file in the working
directory (or the file named by ``STACK_ENV_FILE``). Blank values count as
unset. Malformed values raise ``ConfigurationError`` naming the variable.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence, TypeVar

from .errors import ConfigurationError

T = TypeVar("T")

ENV_FILE_VARIABLE = "STACK_ENV_FILE"
_DEFAULT_ENV_FILE = Path(".env")

_TRUE_VALUES = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_VALUES = frozenset({"0", "false", "f", "no", "n", "off"})

_DEFAULT_VALUES: dict[str, str] | None = None


def _env_file_candidates() -> tuple[Path, ...]:
    explicit = os.getenv(ENV_FILE_VARIABLE)
    if explicit and explicit.strip():
        return (Path(explicit.strip()).expanduser(),)
    return (_DEFAULT_ENV_FILE,)


def _load_default_values() -> dict[str, str]:
    """Read the .env values once per process."""
    from .runtime_helpers import DotenvLoader

    global _DEFAULT_VALUES
    if _DEFAULT_VALUES is None:
        defaults: dict[str, str] = {}
        for path in _env_file_candidates():
            for key, value in DotenvLoader.load_from_file(path).items():
                defaults.setdefault(key, value)
        _DEFAULT_VALUES = defaults
    return _DEFAULT_VALUES


def reset_default_values() -> None:
    """Forget cached .env values so the next lookup re-reads the file."""
    global _DEFAULT_VALUES
    _DEFAULT_VALUES = None


def _lookup(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        value = _load_default_values().get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _coerce(name: str, raw: str, cast: Callable[[str], T], expected: str) -> T:
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError.invalid_format(name, raw, expected) from exc


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(raw)


def env_str(name: str, or_value: Optional[str] = None, *, required: bool = False) -> Optional[str]:
    """Fetch a setting as a stripped string."""
    value = _lookup(name)
    if value is None:
        if required:
            raise ConfigurationError.missing_value(name, "set it in the environment or the .env file")
        return or_value
    return value


def env_int(name: str, or_value: Optional[int] = None, *, required: bool = False) -> Optional[int]:
    """Fetch a setting and coerce it to ``int``."""
    raw = env_str(name, required=required and or_value is None)
    if raw is None:
        return or_value
    return _coerce(name, raw, int, "an integer")


def env_float(name: str, or_value: Optional[float] = None, *, required: bool = False) -> Optional[float]:
    """Fetch a setting and coerce it to ``float``."""
    raw = env_str(name, required=required and or_value is None)
    if raw is None:
        return or_value
    return _coerce(name, raw, float, "a number")


def env_bool(name: str, or_value: Optional[bool] = None, *, required: bool = False) -> Optional[bool]:
    """Fetch a yes/no setting (``1/0``, ``true/false``, ``yes/no``, ``on/off``)."""
    raw = env_str(name, required=required and or_value is None)
    if raw is None:
        return or_value
    return _coerce(name, raw, _parse_bool, "a boolean (yes/no, true/false, on/off, 1/0)")


def env_list(
    name: str,
    *,
    or_value: Optional[Sequence[str]] = None,
    separator: str = ",",
    unique: bool = True,
) -> Optional[tuple[str, ...]]:
    """
    Fetch a delimited list such as ``STACK_FAILURE_PATTERNS=error,fatal``.

    Items are stripped and blank items dropped. A variable that is set but
    holds no items is an error rather than an empty list.
    """
    from .runtime_helpers import ListNormalizer

    raw = env_str(name)
    if raw is None:
        return None if or_value is None else tuple(or_value)

    items = ListNormalizer.split_and_normalize(raw, separator)
    if not items:
        raise ConfigurationError.missing_value(name, f"expected at least one {separator!r}-separated value")
    if unique:
        return ListNormalizer.deduplicate_preserving_order(items)
    return tuple(items)


def env_seconds(name: str, or_value: Optional[float] = None, *, required: bool = False) -> Optional[float]:
    """Fetch a duration in (fractional) seconds; negative values are rejected."""
    value = env_float(name, or_value, required=required)
    if value is not None and value < 0:
        raise ConfigurationError.invalid_value(name, value, "Durations must be non-negative")
    return value


@dataclass(frozen=True)
class JsonConfig:
    """A decoded JSON object and the file it came from."""

    path: Path
    payload: dict[str, object]


def load_json(config_path: Path | str) -> JsonConfig:
    """Load the JSON object stored at *config_path*."""
    path = Path(config_path).expanduser()
    if not path.is_file():
        raise ConfigurationError.load_failed(path, "file does not exist")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError.load_failed(path, f"invalid JSON at line {exc.lineno}: {exc.msg}") from exc
    except OSError as exc:
        raise ConfigurationError.load_failed(path, str(exc)) from exc

    if not isinstance(data, dict):
        raise ConfigurationError.load_failed(path, f"expected a JSON object at the top level, got {type(data).__name__}")
    return JsonConfig(path=path, payload=data)


__all__ = [
    "ConfigurationError",
    "ENV_FILE_VARIABLE",
    "JsonConfig",
    "env_bool",
    "env_float",
    "env_int",
    "env_list",
    "env_seconds",
    "env_str",
    "load_json",
    "reset_default_values",
]
