import json
from pathlib import Path

import pytest

from stack_supervisor.config import runtime
from stack_supervisor.config.errors import ConfigurationError
from stack_supervisor.config.runtime import (
    env_bool,
    env_float,
    env_int,
    env_list,
    env_seconds,
    env_str,
    load_json,
    reset_default_values,
)
from stack_supervisor.config.runtime_helpers import DotenvLoader, ListNormalizer

_CONST_8000 = 8000
_CONST_15 = 15


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("STACK_TEST_INT", "8000")
    monkeypatch.setenv("STACK_TEST_FLOAT", "0.25")
    monkeypatch.setenv("STACK_TEST_BOOL", "Yes")
    monkeypatch.setenv("STACK_TEST_LIST", "error, fatal, error ,panic")
    monkeypatch.setenv("STACK_TEST_SECONDS", "15")

    assert env_int("STACK_TEST_INT") == _CONST_8000
    assert env_float("STACK_TEST_FLOAT") == pytest.approx(0.25)
    assert env_bool("STACK_TEST_BOOL") is True
    assert env_list("STACK_TEST_LIST") == ("error", "fatal", "panic")
    assert env_list("STACK_TEST_LIST", unique=False) == ("error", "fatal", "error", "panic")
    assert env_seconds("STACK_TEST_SECONDS") == _CONST_15


def test_env_helpers_fall_back_to_defaults():
    assert env_str("STACK_TEST_MISSING", or_value="fallback") == "fallback"
    assert env_int("STACK_TEST_MISSING", or_value=3) == 3
    assert env_bool("STACK_TEST_MISSING", or_value=False) is False
    assert env_list("STACK_TEST_MISSING", or_value=["a"]) == ("a",)
    assert env_list("STACK_TEST_MISSING") is None


def test_env_helpers_errors(monkeypatch):
    with pytest.raises(ConfigurationError, match="STACK_TEST_MISSING is missing or empty"):
        env_int("STACK_TEST_MISSING", required=True)

    monkeypatch.setenv("STACK_TEST_BAD_INT", "eighty")
    with pytest.raises(ConfigurationError, match="Expected an integer"):
        env_int("STACK_TEST_BAD_INT")

    monkeypatch.setenv("STACK_TEST_BAD_FLOAT", "not-a-float")
    with pytest.raises(ConfigurationError, match="Expected a number"):
        env_float("STACK_TEST_BAD_FLOAT")

    monkeypatch.setenv("STACK_TEST_BAD_BOOL", "maybe")
    with pytest.raises(ConfigurationError, match="Expected a boolean"):
        env_bool("STACK_TEST_BAD_BOOL")

    monkeypatch.setenv("STACK_TEST_NEG_SECONDS", "-5")
    with pytest.raises(ConfigurationError, match="must be non-negative"):
        env_seconds("STACK_TEST_NEG_SECONDS")

    monkeypatch.setenv("STACK_TEST_EMPTY_LIST", " , ,")
    with pytest.raises(ConfigurationError, match="at least one"):
        env_list("STACK_TEST_EMPTY_LIST")


def test_blank_value_counts_as_missing(monkeypatch):
    monkeypatch.setenv("STACK_TEST_BLANK", "   ")
    assert env_str("STACK_TEST_BLANK", or_value="x") == "x"


def test_dotenv_values_used_when_environment_unset(monkeypatch, tmp_path):
    dotenv = tmp_path / "stack.env"
    dotenv.write_text("# comment\nexport STACK_TEST_FROM_FILE='8501'\n\nNOT_A_PAIR\n")
    monkeypatch.setenv("STACK_ENV_FILE", str(dotenv))
    reset_default_values()

    assert env_int("STACK_TEST_FROM_FILE") == 8501

    monkeypatch.setenv("STACK_TEST_FROM_FILE", "9000")
    assert env_int("STACK_TEST_FROM_FILE") == 9000


def test_dotenv_read_once(monkeypatch, tmp_path):
    dotenv = tmp_path / ".env"
    dotenv.write_text("STACK_TEST_CACHED=1\n")
    monkeypatch.setenv("STACK_ENV_FILE", str(dotenv))
    reset_default_values()

    assert env_int("STACK_TEST_CACHED") == 1
    dotenv.write_text("STACK_TEST_CACHED=2\n")
    assert env_int("STACK_TEST_CACHED") == 1
    assert runtime._DEFAULT_VALUES == {"STACK_TEST_CACHED": "1"}


def test_dotenv_loader_missing_file(tmp_path):
    assert DotenvLoader.load_from_file(tmp_path / "absent.env") == {}


def test_dotenv_loader_forms(tmp_path):
    dotenv = tmp_path / ".env"
    dotenv.write_text(
        'export A="1"\n'
        "B = two # trailing comment\n"
        "#C=3\n"
        "D='error,fatal'   # quoted\n"
        "E=a#b\n"
        "BAD KEY=4\n"
    )

    assert DotenvLoader.load_from_file(dotenv) == {"A": "1", "B": "two", "D": "error,fatal", "E": "a#b"}


def test_list_normalizer():
    assert ListNormalizer.split_and_normalize(" a ,, b ", ",") == ["a", "b"]
    assert ListNormalizer.split_and_normalize("a;b", "") == ["a;b"]
    assert ListNormalizer.deduplicate_preserving_order(["b", "a", "b"]) == ("b", "a")


def test_load_json_success(tmp_path):
    path = tmp_path / "stack.json"
    path.write_text(json.dumps({"backend": {"command": "serve"}}))

    config = load_json(path)

    assert config.path == Path(path)
    assert config.payload["backend"]["command"] == "serve"


def test_load_json_missing(tmp_path):
    with pytest.raises(ConfigurationError, match="does not exist"):
        load_json(tmp_path / "missing.json")


def test_load_json_invalid(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(ConfigurationError, match="invalid JSON at line 1"):
        load_json(path)


def test_load_json_requires_object(tmp_path):
    path = tmp_path / "list.json"
    path.write_text("[1, 2]")
    with pytest.raises(ConfigurationError, match="object at the top level, got list"):
        load_json(path)
