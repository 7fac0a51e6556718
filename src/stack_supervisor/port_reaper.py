"""
Port Reaper

Frees a TCP port by force-killing whatever process is listening on it, so a
restarted stack never answers health probes from a stale instance.

Usage:
    from stack_supervisor.port_reaper import reap

    result = await reap(8000)
    if result.killed:
        print(f"killed PID {result.pid}")
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional

import psutil

from .errors import PortStillBoundError
from .port_reaper_helpers import find_listener, kill_process_tree

logger = logging.getLogger(__name__)

DEFAULT_REAP_GRACE_SECONDS = 3.0
DEFAULT_REAP_POLL_INTERVAL_SECONDS = 0.1


@dataclass(frozen=True)
class ReapResult:
    """Outcome of a single reap attempt."""

    port: int
    killed: bool
    pid: Optional[int] = None


async def reap(
    port: int,
    *,
    grace_seconds: float = DEFAULT_REAP_GRACE_SECONDS,
    poll_interval: float = DEFAULT_REAP_POLL_INTERVAL_SECONDS,
) -> ReapResult:
    """
    Kill the process listening on *port* and wait for the port to become free.

    A free port is not an error: the call returns ``killed=False``.

    Args:
        port: TCP port to free
        grace_seconds: How long to wait for the port to be released after SIGKILL
        poll_interval: Delay between listener lookups while waiting

    Returns:
        ReapResult describing what was killed

    Raises:
        PortStillBoundError: If the port is still bound after the grace period,
            or its owner cannot be identified or signalled
    """
    binding = await asyncio.to_thread(find_listener, port)
    if binding is None:
        logger.debug("Port %s is free", port)
        return ReapResult(port=port, killed=False)

    if binding.pid is None:
        raise PortStillBoundError.unknown_owner(port)
    if binding.pid == os.getpid():
        raise PortStillBoundError(f"Port {port} is bound by the supervisor itself", port=port, pid=binding.pid)

    logger.info("Port %s is held by PID %s; killing it", port, binding.pid)
    try:
        process = psutil.Process(binding.pid)
    except psutil.NoSuchProcess:  # policy_guard: allow-silent-handler
        logger.debug("PID %s exited before it could be killed", binding.pid)
    except psutil.AccessDenied as exc:
        raise PortStillBoundError.access_denied(port, binding.pid) from exc
    else:
        try:
            survivors = await asyncio.to_thread(
                kill_process_tree,
                process,
                owner=f"port {port}",
                timeout=grace_seconds,
            )
        except RuntimeError as exc:
            raise PortStillBoundError.access_denied(port, binding.pid) from exc
        if survivors:
            logger.warning("PIDs %s survived SIGKILL for port %s", survivors, port)

    await _wait_until_free(port, pid=binding.pid, grace_seconds=grace_seconds, poll_interval=poll_interval)
    logger.info("Port %s freed (killed PID %s)", port, binding.pid)
    return ReapResult(port=port, killed=True, pid=binding.pid)


async def reap_ports(ports: Iterable[int], **kwargs) -> List[ReapResult]:
    """Reap each port in turn; the first ``PortStillBoundError`` propagates."""
    return [await reap(port, **kwargs) for port in ports]


async def _wait_until_free(port: int, *, pid: Optional[int], grace_seconds: float, poll_interval: float) -> None:
    deadline = time.monotonic() + grace_seconds
    while True:
        binding = await asyncio.to_thread(find_listener, port)
        if binding is None:
            return
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise PortStillBoundError.still_listening(port, binding.pid if binding.pid is not None else pid, grace_seconds)
        await asyncio.sleep(min(poll_interval, remaining))


__all__ = ["ReapResult", "reap", "reap_ports", "DEFAULT_REAP_GRACE_SECONDS"]
