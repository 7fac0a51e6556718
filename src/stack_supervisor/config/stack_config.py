"""
Stack file loading.

The stack file is a JSON object describing the two supervised services, the
log failure patterns and the validation cases::

    {
      "log_dir": "logs",
      "failure_patterns": ["error", "exception", "traceback"],
      "backend": {"command": "uvicorn main:app --port {port}", "cwd": "backend",
                  "port": 8000, "health_path": "/docs"},
      "frontend": {"command": ["streamlit", "run", "app.py", "--server.port", "{port}"],
                   "cwd": "frontend", "port": 8501},
      "validation": {"cases": [{"name": "create item", "method": "POST", "path": "/items",
                                "json": {"name": "milk"},
                                "expect": {"status": 201, "json": {"name": "milk"}}}]}
    }

Relative paths resolve against the stack file's directory. ``{port}`` and
``{host}`` in commands are replaced with the service's values. A handful of
``STACK_*`` environment variables override the file.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from ..health.log_scanner import DEFAULT_FAILURE_PATTERNS, LogFailurePattern
from ..health.types import (
    DEFAULT_INTERVAL_SECONDS,
    DEFAULT_MAX_WAIT_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    HealthCheckSpec,
)
from ..validation.cases import NO_BODY, ResponseExpectation, ValidationCase, parse_status_spec
from .errors import ConfigurationError
from .runtime import env_int, env_list, env_seconds, env_str, load_json

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "stack.json"
DEFAULT_BACKEND_PORT = 8000
DEFAULT_FRONTEND_PORT = 8501
DEFAULT_HOST = "127.0.0.1"
DEFAULT_BACKEND_HEALTH_PATH = "/docs"
DEFAULT_FRONTEND_HEALTH_PATH = "/"
DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_CASE_TIMEOUT_SECONDS = 10.0
DEFAULT_TEARDOWN_GRACE_SECONDS = 5.0
SUPERVISOR_LOG_NAME = "supervisor.log"

_SERVICE_DEFAULTS = {
    "backend": (DEFAULT_BACKEND_PORT, DEFAULT_BACKEND_HEALTH_PATH),
    "frontend": (DEFAULT_FRONTEND_PORT, DEFAULT_FRONTEND_HEALTH_PATH),
}


@dataclass(frozen=True)
class ServiceConfig:
    """How to launch and probe one supervised service."""

    name: str
    command: Tuple[str, ...]
    port: int
    log_path: Path
    cwd: Optional[Path] = None
    env: Mapping[str, str] = field(default_factory=dict)
    host: str = DEFAULT_HOST
    health_path: str = "/"
    health_url: Optional[str] = None
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def health_spec(self) -> HealthCheckSpec:
        url = self.health_url or self.base_url + _as_path(self.health_path)
        return HealthCheckSpec(
            url=url,
            interval_seconds=self.interval_seconds,
            max_wait_seconds=self.max_wait_seconds,
            request_timeout_seconds=self.request_timeout_seconds,
        )


@dataclass(frozen=True)
class StackConfig:
    """Complete description of a supervised backend/frontend stack."""

    backend: ServiceConfig
    frontend: ServiceConfig
    log_dir: Path
    failure_patterns: LogFailurePattern = field(default_factory=LogFailurePattern)
    cases: Tuple[ValidationCase, ...] = ()
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    case_timeout_seconds: float = DEFAULT_CASE_TIMEOUT_SECONDS
    reap_grace_seconds: float = 3.0
    launch_grace_seconds: float = 0.5
    teardown_grace_seconds: float = DEFAULT_TEARDOWN_GRACE_SECONDS

    @property
    def services(self) -> Tuple[ServiceConfig, ServiceConfig]:
        """Services in start order."""
        return (self.backend, self.frontend)

    @property
    def ports(self) -> Tuple[int, ...]:
        return tuple(service.port for service in self.services)

    @property
    def base_urls(self) -> Dict[str, str]:
        return {service.name: service.base_url for service in self.services}

    @property
    def log_paths(self) -> Tuple[Path, ...]:
        return tuple(service.log_path for service in self.services)

    @property
    def supervisor_log(self) -> Path:
        return self.log_dir / SUPERVISOR_LOG_NAME


def resolve_config_path(path: Optional[Path | str] = None) -> Path:
    """Explicit path, else ``STACK_CONFIG``, else ``stack.json`` in the working directory."""
    if path is not None:
        return Path(path).expanduser()
    return Path(env_str("STACK_CONFIG", or_value=DEFAULT_CONFIG_FILE) or DEFAULT_CONFIG_FILE).expanduser()


def load_stack_config(path: Optional[Path | str] = None) -> StackConfig:
    """Load and validate the stack file, applying environment overrides."""
    config_path = resolve_config_path(path)
    json_config = load_json(config_path)
    base_dir = json_config.path.resolve().parent
    logger.debug("Loading stack config from %s", json_config.path)
    return parse_stack_config(json_config.payload, base_dir=base_dir)


def parse_stack_config(payload: Mapping[str, Any], *, base_dir: Path) -> StackConfig:
    """Build a StackConfig from an already-decoded stack file."""
    log_dir = _resolve_path(env_str("STACK_LOG_DIR") or _optional_str(payload, "log_dir") or "logs", base_dir)

    services = {}
    for name in ("backend", "frontend"):
        block = payload.get(name)
        if not isinstance(block, Mapping):
            raise ConfigurationError.missing_value(name, "stack file must define a service block")
        services[name] = _parse_service(name, block, base_dir=base_dir, log_dir=log_dir)

    if services["backend"].port == services["frontend"].port:
        raise ConfigurationError.port_conflict(services["backend"].port)

    validation = payload.get("validation") or {}
    if not isinstance(validation, Mapping):
        raise ConfigurationError.invalid_format("validation", repr(validation), "an object")

    max_concurrency = _positive_int(validation, "max_concurrency", DEFAULT_MAX_CONCURRENCY)
    raw_cases = validation.get("cases") or []
    if not isinstance(raw_cases, list):
        raise ConfigurationError.invalid_format("validation.cases", repr(raw_cases), "a list")

    return StackConfig(
        backend=services["backend"],
        frontend=services["frontend"],
        log_dir=log_dir,
        failure_patterns=_parse_failure_patterns(payload),
        cases=tuple(parse_case(raw, index) for index, raw in enumerate(raw_cases)),
        max_concurrency=max_concurrency,
        case_timeout_seconds=_positive_number(validation, "request_timeout_seconds", DEFAULT_CASE_TIMEOUT_SECONDS),
        reap_grace_seconds=_number(payload, "reap_grace_seconds", 3.0),
        launch_grace_seconds=_number(payload, "launch_grace_seconds", 0.5),
        teardown_grace_seconds=_number(payload, "teardown_grace_seconds", DEFAULT_TEARDOWN_GRACE_SECONDS),
    )


def parse_case(raw: Any, index: int = 0) -> ValidationCase:
    """Build a ValidationCase from its stack-file form."""
    if not isinstance(raw, Mapping):
        raise ConfigurationError.invalid_format(f"validation.cases[{index}]", repr(raw), "an object")

    name = _optional_str(raw, "name") or f"case-{index + 1}"
    url = _optional_str(raw, "url") or _optional_str(raw, "path") or "/"
    expect_block = raw.get("expect") or {}
    if not isinstance(expect_block, Mapping):
        raise ConfigurationError.invalid_format(f"{name}.expect", repr(expect_block), "an object")

    try:
        status = parse_status_spec(expect_block.get("status", "2xx"))
    except ValueError as exc:
        raise ConfigurationError.invalid_value(f"{name}.expect.status", expect_block.get("status"), str(exc)) from exc

    expectation = ResponseExpectation(
        status=status,
        json_subset=expect_block["json"] if "json" in expect_block else NO_BODY,
        body_contains=_optional_str(expect_block, "body_contains"),
    )
    headers = raw.get("headers") or {}
    if not isinstance(headers, Mapping):
        raise ConfigurationError.invalid_format(f"{name}.headers", repr(headers), "an object")

    return ValidationCase(
        name=name,
        method=_optional_str(raw, "method") or "GET",
        url=url,
        body=raw["json"] if "json" in raw else NO_BODY,
        headers=MappingProxyType({str(k): str(v) for k, v in headers.items()}),
        expect=expectation,
        target=_optional_str(raw, "target") or "backend",
        serial=bool(raw.get("serial", False)),
    )


def _parse_service(name: str, block: Mapping[str, Any], *, base_dir: Path, log_dir: Path) -> ServiceConfig:
    default_port, default_health_path = _SERVICE_DEFAULTS[name]
    port = env_int(f"STACK_{name.upper()}_PORT") or _positive_int(block, "port", default_port)
    host = _optional_str(block, "host") or DEFAULT_HOST

    raw_command = block.get("command")
    if not raw_command:
        raise ConfigurationError.missing_value(f"{name}.command")
    command = _format_command(name, raw_command, port=port, host=host)

    cwd_value = _optional_str(block, "cwd")
    env_block = block.get("env") or {}
    if not isinstance(env_block, Mapping):
        raise ConfigurationError.invalid_format(f"{name}.env", repr(env_block), "an object")

    log_file = _optional_str(block, "log_file")
    log_path = _resolve_path(log_file, base_dir) if log_file else log_dir / f"{name}.log"

    service = ServiceConfig(
        name=name,
        command=command,
        port=port,
        log_path=log_path,
        cwd=_resolve_path(cwd_value, base_dir) if cwd_value else None,
        env=MappingProxyType({str(k): str(v) for k, v in env_block.items()}),
        host=host,
        health_path=_optional_str(block, "health_path") or default_health_path,
        health_url=_optional_str(block, "health_url"),
        interval_seconds=env_seconds("STACK_HEALTH_INTERVAL_SECONDS")
        or _positive_number(block, "interval_seconds", DEFAULT_INTERVAL_SECONDS),
        max_wait_seconds=env_seconds("STACK_HEALTH_TIMEOUT_SECONDS")
        or _number(block, "max_wait_seconds", DEFAULT_MAX_WAIT_SECONDS),
        request_timeout_seconds=_positive_number(block, "request_timeout_seconds", DEFAULT_REQUEST_TIMEOUT_SECONDS),
    )
    try:
        service.health_spec()
    except ValueError as exc:
        raise ConfigurationError.invalid_value(f"{name}.health_url", service.health_url or service.health_path, str(exc)) from exc
    return service


def _parse_failure_patterns(payload: Mapping[str, Any]) -> LogFailurePattern:
    patterns = env_list("STACK_FAILURE_PATTERNS") or payload.get("failure_patterns") or DEFAULT_FAILURE_PATTERNS
    ignore = payload.get("ignore_patterns") or ()
    if isinstance(patterns, str) or isinstance(ignore, str):
        raise ConfigurationError.invalid_format("failure_patterns", repr(patterns), "a list of strings")
    try:
        return LogFailurePattern.of([str(p) for p in patterns], [str(p) for p in ignore])
    except ValueError as exc:
        raise ConfigurationError.invalid_value("failure_patterns", patterns, str(exc)) from exc


def _format_command(name: str, raw_command: Any, *, port: int, host: str) -> Tuple[str, ...]:
    if isinstance(raw_command, str):
        parts = shlex.split(raw_command)
    elif isinstance(raw_command, list):
        parts = [str(part) for part in raw_command]
    else:
        raise ConfigurationError.invalid_format(f"{name}.command", repr(raw_command), "a string or list")
    try:
        return tuple(part.format(port=port, host=host) for part in parts)
    except (KeyError, IndexError, ValueError) as exc:
        raise ConfigurationError.bad_placeholder(name, raw_command, f"{type(exc).__name__}: {exc}") from exc


def _resolve_path(value: str, base_dir: Path) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base_dir / path


def _as_path(path: str) -> str:
    return path if path.startswith("/") else f"/{path}"


def _optional_str(block: Mapping[str, Any], key: str) -> Optional[str]:
    value = block.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigurationError.invalid_format(key, repr(value), "a string")
    return value.strip() or None


def _number(block: Mapping[str, Any], key: str, default: float) -> float:
    value = block.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigurationError.invalid_value(key, value, "must be a non-negative number")
    return float(value)


def _positive_number(block: Mapping[str, Any], key: str, default: float) -> float:
    value = _number(block, key, default)
    if value == 0:
        raise ConfigurationError.invalid_value(key, value, "must be greater than zero")
    return value


def _positive_int(block: Mapping[str, Any], key: str, default: int) -> int:
    value = block.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError.invalid_value(key, value, "must be a positive integer")
    return value
