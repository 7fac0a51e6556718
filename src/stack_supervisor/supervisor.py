"""
Supervisor

Drives a backend and a frontend through health-gated startup:

    IDLE -> REAPING_PORTS -> STARTING_BACKEND -> PROBING_BACKEND
         -> STARTING_FRONTEND -> PROBING_FRONTEND -> READY

Any failure moves to ABORTING, tears down every handle started so far in
reverse start order, lands in ABORTED and re-raises the classified error with
``stage`` set. An orderly shutdown from READY goes through STOPPING to STOPPED.

The supervisor is the only component that starts or stops supervised
processes; the validation runner asks it to abort instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from .config.stack_config import ServiceConfig, StackConfig
from .errors import HealthTimeoutError, SupervisorError
from .health.health_prober import HealthProber
from .port_reaper import ReapResult, reap
from .process_launcher import ProcessHandle, ProcessState, launch
from .supervisor_helpers import (
    TERMINAL_STATES,
    SupervisorState,
    check_transition,
    probing_state,
    starting_state,
    teardown_handles,
)

logger = logging.getLogger(__name__)

DEFAULT_MONITOR_INTERVAL_SECONDS = 1.0

Reaper = Callable[..., Awaitable[ReapResult]]
Launcher = Callable[..., Awaitable[ProcessHandle]]


class Supervisor:
    """Owns the process handles of one backend/frontend stack."""

    def __init__(
        self,
        config: StackConfig,
        *,
        reaper: Reaper = reap,
        launcher: Launcher = launch,
        prober: Optional[HealthProber] = None,
    ) -> None:
        self.config = config
        self._reaper = reaper
        self._launcher = launcher
        self._prober = prober or HealthProber()
        self._state = SupervisorState.IDLE
        self._handles: Dict[str, ProcessHandle] = {}
        self._healthy: Dict[str, bool] = {service.name: False for service in config.services}
        self._attached = False
        self.failure: Optional[SupervisorError] = None

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def handles(self) -> Tuple[ProcessHandle, ...]:
        """Handles in start order."""
        return tuple(self._handles.values())

    @property
    def log_paths(self) -> Tuple:
        return self.config.log_paths

    @property
    def attached(self) -> bool:
        return self._attached

    @property
    def exit_code(self) -> int:
        return 1 if self._state is SupervisorState.ABORTED else 0

    def service_health(self) -> Dict[str, bool]:
        return dict(self._healthy)

    def _transition(self, new_state: SupervisorState) -> None:
        check_transition(self._state, new_state)
        logger.debug("Supervisor: %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    # ---------------------------------------------------------------- startup

    async def start(self) -> None:
        """
        Reap ports, then launch and probe backend and frontend in order.

        Raises:
            PortStillBoundError, LaunchError, HealthTimeoutError: After teardown,
                with ``stage`` naming the state that failed
            asyncio.CancelledError: After teardown, when the caller is cancelled
        """
        if self._state is not SupervisorState.IDLE:
            raise RuntimeError(f"start() requires an idle supervisor (state: {self._state.value})")
        try:
            self._transition(SupervisorState.REAPING_PORTS)
            for port in self.config.ports:
                await self._reaper(port, grace_seconds=self.config.reap_grace_seconds)

            for service in self.config.services:
                self._transition(starting_state(service.name))
                handle = await self._launch_service(service)
                self._transition(probing_state(service.name))
                await self._probe_service(service, handle)
        except SupervisorError as exc:
            await self._fail(exc)
            raise
        except asyncio.CancelledError:
            logger.warning("Startup interrupted during %s", self._state.value)
            await self.abort("interrupted")
            raise
        except Exception:
            logger.exception("Startup failed unexpectedly during %s", self._state.value)
            await self.abort("unexpected error")
            raise

        self._transition(SupervisorState.READY)
        logger.info("Stack ready: %s", ", ".join(f"{s.name}={s.base_url}" for s in self.config.services))

    async def attach(self) -> None:
        """
        Adopt a stack that an earlier detached run left running.

        Nothing is launched; both services must pass their health probes.
        Teardown of an attached stack reaps the configured ports.
        """
        if self._state is not SupervisorState.IDLE:
            raise RuntimeError(f"attach() requires an idle supervisor (state: {self._state.value})")
        self._attached = True
        try:
            for service in self.config.services:
                self._transition(probing_state(service.name))
                await self._probe_service(service, None)
        except SupervisorError as exc:
            await self._fail(exc)
            raise
        except asyncio.CancelledError:
            await self.abort("interrupted")
            raise
        except Exception:
            logger.exception("Attach failed unexpectedly during %s", self._state.value)
            await self.abort("unexpected error")
            raise

        self._transition(SupervisorState.READY)
        logger.info("Attached to running stack")

    async def _launch_service(self, service: ServiceConfig) -> ProcessHandle:
        previous = self._handles.pop(service.name, None)
        if previous is not None and not previous.is_terminal:
            logger.info("Stopping previous %s handle before relaunch", service.name)
            await teardown_handles([previous], graceful_timeout=self.config.teardown_grace_seconds)

        handle = await self._launcher(
            service.name,
            service.command,
            service.cwd,
            service.env,
            service.log_path,
            grace_seconds=self.config.launch_grace_seconds,
        )
        self._handles[service.name] = handle
        return handle

    async def _probe_service(self, service: ServiceConfig, handle: Optional[ProcessHandle]) -> None:
        spec = service.health_spec()
        abort_when = (lambda: not handle.is_running()) if handle is not None else None
        healthy = await self._prober.wait_healthy(spec, abort_when=abort_when)
        if healthy:
            self._healthy[service.name] = True
            if handle is not None:
                handle.transition(ProcessState.HEALTHY)
            return

        if handle is not None:
            handle.transition(ProcessState.FAILED)
            if not handle.is_running():
                raise HealthTimeoutError.process_exited(service.name, spec.url, handle.returncode)
        raise HealthTimeoutError.timed_out(service.name, spec.url, spec.max_wait_seconds)

    # --------------------------------------------------------------- shutdown

    async def _fail(self, exc: SupervisorError) -> None:
        if exc.stage is None:
            exc.stage = self._state.value
        self.failure = exc
        logger.error("Startup failed: %s", exc.describe())
        await self.abort(str(exc))

    async def abort(self, reason: str) -> None:
        """Tear everything down and end in ABORTED. Safe to call repeatedly."""
        if self._state in TERMINAL_STATES or self._state is SupervisorState.ABORTING:
            return
        self._transition(SupervisorState.ABORTING)
        logger.warning("Aborting stack: %s", reason)
        await self._teardown()
        self._transition(SupervisorState.ABORTED)

    async def shutdown(self) -> None:
        """Orderly shutdown from READY, ending in STOPPED."""
        if self._state is not SupervisorState.READY:
            raise RuntimeError(f"shutdown() requires a ready supervisor (state: {self._state.value})")
        self._transition(SupervisorState.STOPPING)
        await self._teardown()
        self._transition(SupervisorState.STOPPED)

    async def close(self, reason: str = "closing") -> None:
        """Shut down from READY, abort from anywhere else (no-op once terminal)."""
        if self._state is SupervisorState.READY:
            await self.shutdown()
        elif self._state is not SupervisorState.IDLE:
            await self.abort(reason)

    async def _teardown(self) -> None:
        handles = list(self._handles.values())
        survivors = await teardown_handles(handles, graceful_timeout=self.config.teardown_grace_seconds)
        if survivors:
            logger.error("Could not stop: %s", ", ".join(survivors))

        if self._attached:
            await self._reap_attached_ports()
        for name in self._healthy:
            self._healthy[name] = False

    async def _reap_attached_ports(self) -> None:
        for port in reversed(self.config.ports):
            try:
                await self._reaper(port, grace_seconds=self.config.reap_grace_seconds)
            except SupervisorError as exc:  # Keep tearing down the remaining ports  # policy_guard: allow-silent-handler
                logger.error("Failed to free port %s: %s", port, exc)

    # ------------------------------------------------------------- monitoring

    async def monitor(self, poll_interval: float = DEFAULT_MONITOR_INTERVAL_SECONDS) -> str:
        """
        Wait until a supervised child exits while READY.

        Returns:
            Name of the first service found not running
        """
        if self._state is not SupervisorState.READY:
            raise RuntimeError(f"monitor() requires a ready supervisor (state: {self._state.value})")
        while True:
            exited = self._exited_services()
            if exited:
                name = exited[0]
                handle = self._handles[name]
                handle.transition(ProcessState.FAILED)
                self._healthy[name] = False
                logger.error("%s exited unexpectedly with code %s", name, handle.returncode)
                return name
            await asyncio.sleep(poll_interval)

    def _exited_services(self) -> List[str]:
        return [name for name, handle in self._handles.items() if not handle.is_running()]


__all__ = ["Supervisor", "SupervisorState"]
