"""Supervisor state machine definition."""

from enum import Enum
from typing import Dict, FrozenSet


class SupervisorState(Enum):
    """Startup and shutdown states of a supervised stack."""

    IDLE = "idle"
    REAPING_PORTS = "reaping_ports"
    STARTING_BACKEND = "starting_backend"
    PROBING_BACKEND = "probing_backend"
    STARTING_FRONTEND = "starting_frontend"
    PROBING_FRONTEND = "probing_frontend"
    READY = "ready"
    ABORTING = "aborting"
    ABORTED = "aborted"
    STOPPING = "stopping"
    STOPPED = "stopped"


S = SupervisorState

STARTUP_STATES: FrozenSet[SupervisorState] = frozenset(
    {S.REAPING_PORTS, S.STARTING_BACKEND, S.PROBING_BACKEND, S.STARTING_FRONTEND, S.PROBING_FRONTEND}
)
TERMINAL_STATES: FrozenSet[SupervisorState] = frozenset({S.ABORTED, S.STOPPED})

ALLOWED_TRANSITIONS: Dict[SupervisorState, FrozenSet[SupervisorState]] = {
    # IDLE -> PROBING_BACKEND is the attach path (stack started by an earlier run).
    S.IDLE: frozenset({S.REAPING_PORTS, S.PROBING_BACKEND}),
    S.REAPING_PORTS: frozenset({S.STARTING_BACKEND, S.ABORTING}),
    S.STARTING_BACKEND: frozenset({S.PROBING_BACKEND, S.ABORTING}),
    S.PROBING_BACKEND: frozenset({S.STARTING_FRONTEND, S.PROBING_FRONTEND, S.ABORTING}),
    S.STARTING_FRONTEND: frozenset({S.PROBING_FRONTEND, S.ABORTING}),
    S.PROBING_FRONTEND: frozenset({S.READY, S.ABORTING}),
    S.READY: frozenset({S.ABORTING, S.STOPPING}),
    S.ABORTING: frozenset({S.ABORTED}),
    S.STOPPING: frozenset({S.STOPPED}),
    S.ABORTED: frozenset(),
    S.STOPPED: frozenset(),
}

_STARTING_STATE = {"backend": S.STARTING_BACKEND, "frontend": S.STARTING_FRONTEND}
_PROBING_STATE = {"backend": S.PROBING_BACKEND, "frontend": S.PROBING_FRONTEND}


def starting_state(service_name: str) -> SupervisorState:
    return _STARTING_STATE[service_name]


def probing_state(service_name: str) -> SupervisorState:
    return _PROBING_STATE[service_name]


def check_transition(current: SupervisorState, new: SupervisorState) -> None:
    """Raise RuntimeError if the state machine does not allow ``current -> new``."""
    if new not in ALLOWED_TRANSITIONS[current]:
        raise RuntimeError(f"Illegal supervisor transition {current.value} -> {new.value}")
