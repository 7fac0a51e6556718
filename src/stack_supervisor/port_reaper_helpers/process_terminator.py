"""Terminate process trees with proper handling and timeouts."""

import logging
import os
import signal
from typing import Any, Callable, List, Optional, Sequence

import psutil

logger = logging.getLogger(__name__)


def collect_process_tree(process: psutil.Process) -> List[psutil.Process]:
    """Return *process* and its descendants, deepest children first."""
    try:
        children = process.children(recursive=True)
    except (psutil.NoSuchProcess, psutil.ZombieProcess):  # policy_guard: allow-silent-handler
        children = []
    except psutil.AccessDenied:  # policy_guard: allow-silent-handler
        logger.debug("Cannot list children of PID %s; signalling it alone", process.pid)
        children = []
    return list(reversed(children)) + [process]


def terminate_process_tree(
    process: psutil.Process,
    *,
    service_name: str,
    graceful_timeout: float,
    force_timeout: float,
    console_output_func: Optional[Callable[[str], Any]] = None,
) -> List[int]:
    """
    Terminate a process tree with graceful shutdown, then force kill if needed.

    Args:
        process: Root of the tree (usually the supervised child)
        service_name: Name of the service for logging
        graceful_timeout: Seconds to wait after SIGTERM
        force_timeout: Seconds to wait after SIGKILL
        console_output_func: Function receiving progress messages

    Returns:
        PIDs of every process in the tree that is now gone

    Raises:
        RuntimeError: If access is denied or a process persists after force kill
    """
    output = console_output_func or logger.info
    tree = collect_process_tree(process)

    output(f"🔪 Stopping {service_name} (PID {process.pid}, {len(tree)} process(es))")
    _signal_all(tree, "terminate", service_name)
    _, alive = psutil.wait_procs(tree, timeout=graceful_timeout)
    if not alive:
        output(f"✅ {service_name} terminated gracefully")
        return [proc.pid for proc in tree]

    output(f"⏱️ {len(alive)} {service_name} process(es) did not terminate within {graceful_timeout}s; sending SIGKILL")
    _signal_all(alive, "kill", service_name)
    _, still_alive = psutil.wait_procs(alive, timeout=force_timeout)
    if still_alive:
        pids = ", ".join(str(proc.pid) for proc in still_alive)
        raise RuntimeError(
            f"{service_name} process(es) {pids} persisted after SIGKILL for {force_timeout}s; manual intervention required."
        )
    output(f"✅ {service_name} force killed")
    return [proc.pid for proc in tree]


def kill_process_tree(process: psutil.Process, *, owner: str, timeout: float) -> List[int]:
    """SIGKILL a process tree immediately and wait up to *timeout* for it to exit.

    Returns the PIDs still alive afterwards.
    """
    tree = collect_process_tree(process)
    _signal_all(tree, "kill", owner)
    _, alive = psutil.wait_procs(tree, timeout=timeout)
    return [proc.pid for proc in alive]


def kill_process_group(pgid: int, *, owner: str) -> bool:
    """
    SIGKILL every member of process group *pgid*.

    Supervised children run in their own session, so the group id is the
    child's PID and the group outlives a leader that already exited.

    Returns:
        True when some member was signalled
    """
    killpg = getattr(os, "killpg", None)
    if killpg is None:
        return False
    try:
        killpg(pgid, signal.SIGKILL)
    except ProcessLookupError:  # Group already empty  # policy_guard: allow-silent-handler
        return False
    except PermissionError as exc:  # policy_guard: allow-silent-handler
        logger.debug("Cannot signal %s process group %s: %s", owner, pgid, exc)
        return False
    logger.debug("Killed leftover members of %s process group %s", owner, pgid)
    return True


def _signal_all(processes: Sequence[psutil.Process], action: str, service_name: str) -> None:
    for proc in processes:
        try:
            getattr(proc, action)()
        except psutil.NoSuchProcess:  # policy_guard: allow-silent-handler
            logger.debug("%s process %s exited before %s", service_name, proc.pid, action)
        except psutil.AccessDenied as access_exc:  # policy_guard: allow-silent-handler
            raise RuntimeError(f"Access denied while signalling {service_name} process {proc.pid}") from access_exc
