"""Helper modules for the port reaper and supervisor teardown."""

from .port_lookup import PortBinding, find_listener, is_port_free
from .process_terminator import collect_process_tree, kill_process_group, kill_process_tree, terminate_process_tree

__all__ = [
    "PortBinding",
    "find_listener",
    "is_port_free",
    "collect_process_tree",
    "kill_process_group",
    "kill_process_tree",
    "terminate_process_tree",
]
