"""Socket helpers for tests that need real listeners."""

from __future__ import annotations

import socket
import subprocess
import sys
import time

_LISTENER_SCRIPT = """
import socket, sys, time
sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
sock.bind(("127.0.0.1", int(sys.argv[1])))
sock.listen(5)
while True:
    time.sleep(1)
"""


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def can_bind(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(("127.0.0.1", port))
        except OSError:
            return False
        return True


def accepts_connections(port: int) -> bool:
    try:
        with socket.create_connection(("127.0.0.1", port), timeout=0.5):
            return True
    except OSError:
        return False


def wait_for_listener(port: int, timeout: float = 10.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if accepts_connections(port):
            return
        time.sleep(0.05)
    raise TimeoutError(f"Nothing listening on port {port} after {timeout}s")


def spawn_listener(port: int) -> subprocess.Popen:
    """Start a bare TCP listener in a child process and wait until it is bound."""
    proc = subprocess.Popen([sys.executable, "-c", _LISTENER_SCRIPT, str(port)])
    try:
        wait_for_listener(port)
    except TimeoutError:
        proc.kill()
        proc.wait()
        raise
    return proc
