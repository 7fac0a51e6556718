"""Start the backend and frontend with health-gated startup.

Exit codes:
    0: Stack reached READY (and, in the foreground, was shut down on request)
    1: Startup aborted, or a service died while supervised
    2: Configuration error
    130: Interrupted during startup

Usage:
    run-stack [--config stack.json]          # supervise in the foreground until Ctrl+C
    run-stack --detach                       # exit once READY, leave services running
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional, Sequence

from ..config import ConfigurationError, StackConfig, load_stack_config
from ..errors import LaunchError, SupervisorError
from ..logging_config import setup_logging
from ..supervisor import Supervisor
from .runtime import run_main

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="run-stack", description="Start backend and frontend, wait until both are healthy")
    parser.add_argument("--config", help="Stack file (default: $STACK_CONFIG or ./stack.json)")
    parser.add_argument("--detach", action="store_true", help="Exit as soon as the stack is ready, leaving it running")
    parser.add_argument("--verbose", action="store_true", help="Debug logging on the console")
    return parser


def print_failure(exc: SupervisorError) -> None:
    print(f"✗ Stack aborted: {exc.describe()}")
    if isinstance(exc, LaunchError) and exc.log_tail:
        print("  Last log lines:")
        for line in exc.log_tail:
            print(f"    {line}")


def print_ready(supervisor: Supervisor) -> None:
    print("✓ Stack ready")
    for service in supervisor.config.services:
        print(f"  {service.name}: {service.base_url} (log: {service.log_path})")


async def run_stack(config: StackConfig, *, detach: bool = False, supervisor: Optional[Supervisor] = None) -> int:
    supervisor = supervisor or Supervisor(config)
    try:
        await supervisor.start()
    except SupervisorError as exc:
        print_failure(exc)
        return EXIT_ABORTED

    print_ready(supervisor)
    if detach:
        logger.info("Detached; services keep running")
        return EXIT_OK

    try:
        exited = await supervisor.monitor()
    except asyncio.CancelledError:  # Ctrl+C / SIGTERM is the normal way to stop  # policy_guard: allow-silent-handler
        print("Shutting down...")
        await supervisor.shutdown()
        return EXIT_OK

    await supervisor.abort(f"{exited} exited")
    print(f"✗ {exited} exited unexpectedly; stack torn down")
    return EXIT_ABORTED


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_stack_config(args.config)
    except ConfigurationError as exc:
        print(f"✗ Configuration error: {exc}")
        return EXIT_CONFIG

    setup_logging(config.log_dir, verbose=args.verbose)
    return run_main(lambda: run_stack(config, detach=args.detach), command_name="run-stack")


if __name__ == "__main__":
    raise SystemExit(main())
