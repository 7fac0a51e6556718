"""Teardown of supervised process handles."""

import asyncio
import logging
from typing import List, Sequence

from ..port_reaper_helpers import kill_process_group, terminate_process_tree
from ..process_launcher import ProcessHandle, ProcessState

logger = logging.getLogger(__name__)

DEFAULT_FORCE_KILL_TIMEOUT_SECONDS = 2.0


def stop_handle(handle: ProcessHandle, *, graceful_timeout: float, force_timeout: float) -> bool:
    """
    Stop one handle: SIGTERM its process tree, then SIGKILL survivors.

    A handle that already failed stays FAILED; every other live handle moves
    through STOPPING to STOPPED (or to FAILED if it cannot be killed).

    Returns:
        True when nothing from the handle is left running
    """
    if handle.state in (ProcessState.NOT_STARTED, ProcessState.STARTING, ProcessState.HEALTHY):
        handle.transition(ProcessState.STOPPING)

    stopped = True
    if handle.process is not None and handle.is_running():
        try:
            terminate_process_tree(
                handle.process,
                service_name=handle.name,
                graceful_timeout=graceful_timeout,
                force_timeout=force_timeout,
            )
        except RuntimeError as exc:
            logger.error("Failed to stop %s: %s", handle.name, exc)
            stopped = False
    if handle.pid is not None:
        kill_process_group(handle.pid, owner=handle.name)

    if handle.state is ProcessState.STOPPING:
        handle.transition(ProcessState.STOPPED if stopped else ProcessState.FAILED)
    return stopped


async def teardown_handles(
    handles: Sequence[ProcessHandle],
    *,
    graceful_timeout: float,
    force_timeout: float = DEFAULT_FORCE_KILL_TIMEOUT_SECONDS,
) -> List[str]:
    """
    Stop *handles* in reverse start order.

    Blocking waits run in a worker thread so the event loop stays responsive.

    Returns:
        Names of services that could not be stopped
    """
    survivors: List[str] = []
    for handle in reversed(list(handles)):
        if handle.state is ProcessState.STOPPED:
            continue
        stopped = await asyncio.to_thread(
            stop_handle,
            handle,
            graceful_timeout=graceful_timeout,
            force_timeout=force_timeout,
        )
        if not stopped:
            survivors.append(handle.name)
    return survivors

