"""Root pytest configuration and shared fixtures."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

from stack_supervisor.config import StackConfig, parse_stack_config, runtime
from tests.helpers.stack_files import make_stack_payload


@pytest.fixture(autouse=True)
def _isolate_stack_environment(monkeypatch):
    """Keep developer STACK_* variables and .env files out of the tests."""
    for name in list(os.environ):
        if name.startswith("STACK_"):
            monkeypatch.delenv(name, raising=False)
    runtime._DEFAULT_VALUES = {}
    yield
    runtime.reset_default_values()


@pytest.fixture
def stack_config_factory(tmp_path: Path) -> Callable[..., StackConfig]:
    """Build a StackConfig for the real test services under ``tmp_path``."""

    def factory(**kwargs: Any) -> StackConfig:
        payload: Dict[str, Any] = make_stack_payload(tmp_path, **kwargs)
        return parse_stack_config(payload, base_dir=tmp_path)

    return factory
