"""Shared configuration helpers and the stack file loader."""

from .errors import ConfigurationError
from .runtime import (
    JsonConfig,
    env_bool,
    env_float,
    env_int,
    env_list,
    env_seconds,
    env_str,
    load_json,
)
from .stack_config import ServiceConfig, StackConfig, load_stack_config, parse_case, parse_stack_config

__all__ = [
    "ConfigurationError",
    "JsonConfig",
    "env_bool",
    "env_float",
    "env_int",
    "env_list",
    "env_seconds",
    "env_str",
    "load_json",
    "ServiceConfig",
    "StackConfig",
    "load_stack_config",
    "parse_case",
    "parse_stack_config",
]
