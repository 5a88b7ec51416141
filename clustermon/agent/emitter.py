"""Heartbeat emitter run by the agent on every monitored host."""

import asyncio
import socket

import httpx

from clustermon.shared.errors import StartupError
from clustermon.shared.logger import get_logger

logger = get_logger("agent")


def resolve_identifier(configured: str | None = None) -> str:
    """Return the identifier this host reports under.

    Uses the configured value when present, otherwise the hostname. Called
    once at startup; the result is not re-resolved per heartbeat.
    """
    if configured:
        return configured

    try:
        hostname = socket.gethostname()
    except OSError as e:
        raise StartupError(f"Error getting hostname: {e}") from e
    if not hostname:
        raise StartupError("Hostname is empty and no host identifier is configured")

    logger.debug("Using hostname as identifier", extra={"log_data": {"identifier": hostname}})
    return hostname


class HeartbeatEmitter:
    """Sends a signed heartbeat to the collector on a fixed interval."""

    def __init__(
        self,
        server_address: str,
        shared_secret: str,
        identifier: str,
        ping_frequency: float = 60.0,
        request_timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.identifier = identifier
        self._url = f"{server_address.rstrip('/')}/ping"
        self._shared_secret = shared_secret
        self._ping_frequency = ping_frequency
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=request_timeout)
        self._stop_event = asyncio.Event()

    async def ping(self) -> bool:
        """Send one heartbeat. Returns False (after logging) on any failure."""
        try:
            response = await self._client.post(
                self._url,
                json={"identifier": self.identifier},
                headers={"Authorization": f"Bearer {self._shared_secret}"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Error sending heartbeat: {e!r}", extra={"log_data": {"url": self._url}})
            return False

        if not response.is_success:
            logger.error(
                "Collector rejected heartbeat",
                extra={"log_data": {"url": self._url, "status_code": response.status_code}},
            )
            return False

        logger.debug("Heartbeat sent", extra={"log_data": {"identifier": self.identifier}})
        return True

    async def run(self):
        """Heartbeat immediately, then every ``ping_frequency`` seconds until stopped."""
        logger.info("Starting agent", extra={"log_data": {"identifier": self.identifier}})
        loop = asyncio.get_running_loop()
        next_ping = loop.time()
        while not self._stop_event.is_set():
            next_ping = max(next_ping + self._ping_frequency, loop.time())
            await self.ping()
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=max(0.0, next_ping - loop.time())
                )
            except asyncio.TimeoutError:
                pass
        logger.debug("Stopping agent")

    def stop(self):
        self._stop_event.set()

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()
