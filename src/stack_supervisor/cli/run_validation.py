"""Start (or attach to) the stack, run validation cases, scan the logs.

Exit codes:
    0: Every case passed and the logs are clean
    1: Startup aborted, a case failed, or a log line matched a failure pattern
    2: Configuration error
    130: Interrupted

Usage:
    run-validation [--config stack.json]     # start, validate, shut down
    run-validation --attach                  # validate a stack started with run-stack --detach
    run-validation --keep-running            # leave a passing stack running
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional, Sequence

from ..config import ConfigurationError, StackConfig, load_stack_config
from ..errors import SupervisorError
from ..logging_config import setup_logging
from ..supervisor import Supervisor
from ..validation import RunResult, ValidationRunner
from .run_stack import EXIT_ABORTED, EXIT_CONFIG, print_failure
from .runtime import run_main

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="run-validation", description="Validate a running stack and scan its logs")
    parser.add_argument("--config", help="Stack file (default: $STACK_CONFIG or ./stack.json)")
    parser.add_argument("--attach", action="store_true", help="Validate an already running stack instead of starting one")
    parser.add_argument("--keep-running", action="store_true", help="Leave a self-started stack running after a passing run")
    parser.add_argument("--verbose", action="store_true", help="Debug logging on the console")
    return parser


async def run_validation(
    config: StackConfig,
    *,
    attach: bool = False,
    keep_running: bool = False,
    supervisor: Optional[Supervisor] = None,
) -> int:
    supervisor = supervisor or Supervisor(config)
    try:
        if attach:
            await supervisor.attach()
        else:
            await supervisor.start()
    except SupervisorError as exc:
        print_failure(exc)
        return EXIT_ABORTED

    if not config.cases:
        logger.warning("No validation cases configured; only the log scan will run")

    runner = ValidationRunner(
        supervisor,
        failure_patterns=config.failure_patterns,
        max_concurrency=config.max_concurrency,
        case_timeout_seconds=config.case_timeout_seconds,
    )
    try:
        result: RunResult = await runner.validate(config.cases, config.log_paths)
    except asyncio.CancelledError:
        await supervisor.abort("interrupted during validation")
        raise

    print(result.format_summary())
    if result.passed and not attach and not keep_running:
        await supervisor.shutdown()
    return result.exit_code


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_stack_config(args.config)
    except ConfigurationError as exc:
        print(f"✗ Configuration error: {exc}")
        return EXIT_CONFIG

    setup_logging(config.log_dir, verbose=args.verbose)
    return run_main(
        lambda: run_validation(config, attach=args.attach, keep_running=args.keep_running),
        command_name="run-validation",
    )


if __name__ == "__main__":
    raise SystemExit(main())
