"""Find the process listening on a TCP port."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import psutil

logger = logging.getLogger(__name__)

_LISTEN = psutil.CONN_LISTEN


@dataclass(frozen=True)
class PortBinding:
    """A listening socket and the process that owns it (if visible)."""

    port: int
    pid: Optional[int]


def find_listener(port: int) -> Optional[PortBinding]:
    """
    Return the current listener on *port*, or None when the port is free.

    Bindings are never cached; every call inspects the live socket table.
    ``psutil.net_connections`` needs elevated privileges on some platforms
    (macOS), so an ``AccessDenied`` falls back to scanning processes one by one.
    """
    try:
        connections = psutil.net_connections(kind="inet")
    except psutil.AccessDenied:  # policy_guard: allow-silent-handler
        logger.debug("System-wide socket table denied; scanning processes for port %s", port)
        return _scan_processes(port)

    return _match_listener(port, connections, default_pid=None)


def is_port_free(port: int) -> bool:
    return find_listener(port) is None


def _match_listener(port: int, connections: Iterable, *, default_pid: Optional[int]) -> Optional[PortBinding]:
    unknown_owner: Optional[PortBinding] = None
    for conn in connections:
        if conn.status != _LISTEN or not conn.laddr or conn.laddr.port != port:
            continue
        pid = getattr(conn, "pid", None) or default_pid
        if pid is not None:
            return PortBinding(port=port, pid=pid)
        unknown_owner = PortBinding(port=port, pid=None)
    return unknown_owner


def _scan_processes(port: int) -> Optional[PortBinding]:
    for proc in psutil.process_iter(["pid"]):
        try:
            connections = _process_connections(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):  # policy_guard: allow-silent-handler
            continue
        binding = _match_listener(port, connections, default_pid=proc.pid)
        if binding is not None:
            return binding
    return None


def _process_connections(proc):
    # psutil >= 6 renamed connections() to net_connections()
    getter = getattr(proc, "net_connections", None) or proc.connections
    return getter(kind="inet")
