"""HTTP readiness polling with a bounded, cancellable wait."""

import asyncio
import logging
import time
from typing import Callable, Optional

import aiohttp
from aiohttp import ClientError, ClientTimeout

from .types import HealthCheckSpec

logger = logging.getLogger(__name__)

_MIN_REQUEST_TIMEOUT_SECONDS = 0.05

AbortCheck = Callable[[], bool]


class HealthProber:
    """Polls a health endpoint until it answers with an accepted status."""

    async def wait_healthy(self, spec: HealthCheckSpec, *, abort_when: Optional[AbortCheck] = None) -> bool:
        """
        Poll ``spec.url`` every ``spec.interval_seconds`` until healthy or out of time.

        Connection failures and request timeouts count as "not yet healthy".
        Each request's timeout is capped to the remaining budget, so the call
        returns within ``max_wait_seconds`` plus one polling interval. Waiting
        uses ``asyncio.sleep``; cancelling the calling task stops it at once.

        Args:
            spec: Endpoint, interval, budget and status predicate
            abort_when: Optional check run before each attempt; True ends the wait early

        Returns:
            True if the endpoint became healthy, False otherwise
        """
        started = time.monotonic()
        deadline = started + spec.max_wait_seconds
        attempts = 0

        async with aiohttp.ClientSession() as session:
            while True:
                if abort_when is not None and abort_when():
                    logger.warning("Stopped probing %s after %d attempt(s): abort condition met", spec.url, attempts)
                    return False

                remaining = deadline - time.monotonic()
                request_timeout = max(min(spec.request_timeout_seconds, remaining), _MIN_REQUEST_TIMEOUT_SECONDS)
                status = await self._probe_once(session, spec.url, request_timeout)
                attempts += 1

                if status is not None and spec.accept_status(status):
                    logger.info(
                        "%s healthy (HTTP %s) after %.2fs, %d attempt(s)",
                        spec.url,
                        status,
                        time.monotonic() - started,
                        attempts,
                    )
                    return True

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning("%s not healthy after %gs (%d attempts)", spec.url, spec.max_wait_seconds, attempts)
                    return False
                await asyncio.sleep(min(spec.interval_seconds, remaining))

    async def _probe_once(self, session: aiohttp.ClientSession, url: str, timeout_seconds: float) -> Optional[int]:
        """Return the HTTP status, or None when the request did not complete."""
        try:
            async with session.get(url, timeout=ClientTimeout(total=timeout_seconds)) as response:
                return response.status
        except asyncio.TimeoutError:  # Endpoint still initializing  # policy_guard: allow-silent-handler
            logger.debug("Probe of %s timed out after %.2fs", url, timeout_seconds)
        except (ClientError, OSError) as exc:  # Listener not up yet  # policy_guard: allow-silent-handler
            logger.debug("Probe of %s failed: %s", url, exc)
        return None


async def wait_healthy(spec: HealthCheckSpec, *, abort_when: Optional[AbortCheck] = None) -> bool:
    """Module-level convenience wrapper around ``HealthProber.wait_healthy``."""
    return await HealthProber().wait_healthy(spec, abort_when=abort_when)
