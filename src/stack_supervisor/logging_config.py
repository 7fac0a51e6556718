"""
Centralized logging configuration for the supervisor CLIs.

This module provides a single setup_logging function that configures:
- Console output on stdout (INFO, or DEBUG when verbose)
- File output to <log_dir>/supervisor.log, truncated on each run
- Quieter third-party loggers

The supervisor log lives beside the service logs and is never scanned for
failure patterns. Set STACK_LOG_APPEND=1 to keep earlier runs in it.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Optional

from .config import env_bool
from .config.stack_config import SUPERVISOR_LOG_NAME

_config_lock = threading.Lock()
_MODULE_LOGGER = logging.getLogger(__name__)

_TECHNICAL_FORMAT = "%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _reset_handlers(root_logger: logging.Logger) -> None:
    """Detach and close handlers left by an earlier setup_logging call."""
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        try:
            handler.close()
        except OSError as exc:  # policy_guard: allow-silent-handler
            _MODULE_LOGGER.debug("Could not close %r: %s", handler, exc)


def _build_console_handler(verbose: bool) -> logging.Handler:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(_TECHNICAL_FORMAT, _DATE_FORMAT))
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    return console_handler


def _build_file_handler(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    file_mode = "a" if env_bool("STACK_LOG_APPEND", or_value=False) else "w"
    file_handler = logging.FileHandler(log_dir / SUPERVISOR_LOG_NAME, mode=file_mode, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(_TECHNICAL_FORMAT, _DATE_FORMAT))
    file_handler.setLevel(logging.DEBUG)
    return file_handler


def _suppress_noisy_third_parties() -> None:
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("psutil").setLevel(logging.WARNING)


def setup_logging(log_dir: Optional[Path] = None, *, verbose: bool = False) -> None:
    """Configure logging for a supervisor run."""

    with _config_lock:
        root_logger = logging.getLogger()
        _reset_handlers(root_logger)

        root_logger.addHandler(_build_console_handler(verbose))
        if log_dir is not None:
            root_logger.addHandler(_build_file_handler(Path(log_dir)))

        root_logger.setLevel(logging.DEBUG if verbose or log_dir is not None else logging.INFO)
        _suppress_noisy_third_parties()
