"""Helper modules for the Supervisor slim coordinator."""

from .states import (
    ALLOWED_TRANSITIONS,
    STARTUP_STATES,
    TERMINAL_STATES,
    SupervisorState,
    check_transition,
    probing_state,
    starting_state,
)
from .teardown import stop_handle, teardown_handles

__all__ = [
    "ALLOWED_TRANSITIONS",
    "STARTUP_STATES",
    "TERMINAL_STATES",
    "SupervisorState",
    "check_transition",
    "probing_state",
    "starting_state",
    "stop_handle",
    "teardown_handles",
]
