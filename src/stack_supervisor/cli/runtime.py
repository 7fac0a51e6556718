from __future__ import annotations

"""Utilities for running supervisor CLIs with consistent interrupt handling."""

import asyncio
import logging
import signal
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130

MainFactory = Callable[[], Coroutine[Any, Any, int]]


def run_main(factory: MainFactory, *, command_name: str) -> int:
    """Run an async CLI body and translate Ctrl+C into a friendly exit code.

    SIGINT and SIGTERM both cancel the main task, so the body's own
    ``except asyncio.CancelledError`` / ``finally`` blocks perform teardown
    before the process exits.

    Args:
        factory: Callable returning the coroutine to execute.
        command_name: Name used in log messages.

    Returns:
        The coroutine's exit code, or 130 if it was interrupted before returning.
    """
    try:
        return asyncio.run(_run_with_sigterm(factory))
    except KeyboardInterrupt:  # Expected exception in operation  # policy_guard: allow-silent-handler
        logger.info("%s interrupted by user", command_name)
        return EXIT_INTERRUPTED
    except asyncio.CancelledError:  # SIGTERM cancelled the main task  # policy_guard: allow-silent-handler
        logger.info("%s terminated", command_name)
        return EXIT_INTERRUPTED


async def _run_with_sigterm(factory: MainFactory) -> int:
    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()
    installed = False
    if main_task is not None:
        try:
            loop.add_signal_handler(signal.SIGTERM, main_task.cancel)
            installed = True
        except (NotImplementedError, RuntimeError, ValueError):  # policy_guard: allow-silent-handler
            # Signal handlers are unavailable on Windows event loops and outside the main thread.
            logger.debug("SIGTERM handler not installed")
    try:
        return await factory()
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGTERM)
