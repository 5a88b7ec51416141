"""Reconciliation loop that keeps status page components in line with heartbeats."""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable

from clustermon.server.provider import (
    MAJOROUTAGE,
    OPERATIONAL,
    UNDERMAINTENANCE,
    Component,
    StatusProvider,
)
from clustermon.server.registry import HostStatus, HostStatusRecord, HostStatusRegistry
from clustermon.shared.errors import ProviderError
from clustermon.shared.logger import get_logger

PROVIDER_STATUS = {
    HostStatus.HEALTHY: OPERATIONAL,
    HostStatus.UNHEALTHY: MAJOROUTAGE,
}


@dataclass
class TickResult:
    checked: int = 0
    transitions: int = 0
    pushed: int = 0
    created: int = 0
    maintenance: int = 0
    unmapped: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class _ComponentIndex:
    """Component listing shared by every host reconciled in one tick.

    Fetched at most once per tick; a failed fetch is not repeated within
    the tick.
    """

    def __init__(self, fetch: Callable[[], Awaitable[list[Component]]]):
        self._fetch = fetch
        self._components: list[Component] | None = None
        self._error: Exception | None = None

    async def find(self, name: str) -> Component | None:
        if self._error is not None:
            raise self._error
        if self._components is None:
            try:
                self._components = await self._fetch()
            except Exception as e:
                self._error = e
                raise
        for component in self._components:
            if component.name == name:
                return component
        return None


class StatusReconciler:
    """Marks stale hosts unhealthy and pushes status transitions upstream."""

    def __init__(
        self,
        registry: HostStatusRegistry,
        provider: StatusProvider,
        page_id: str,
        unhealthy_time: float = 300.0,
        update_frequency: float = 60.0,
        create_components: bool = True,
        call_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._registry = registry
        self._provider = provider
        self._page_id = page_id
        self._unhealthy_time = unhealthy_time
        self._update_frequency = update_frequency
        self._create_components = create_components
        self._call_timeout = call_timeout
        self._clock = clock
        self._stop_event = asyncio.Event()
        self.logger = get_logger("reconciler")

    async def run(self):
        """Reconcile every ``update_frequency`` seconds until stopped."""
        self.logger.info("Starting status reconciler")
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._update_frequency
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=max(0.0, next_tick - loop.time())
                )
            except asyncio.TimeoutError:
                pass
            if self._stop_event.is_set():
                break
            # Fixed rate; ticks missed while a tick overran collapse into one.
            next_tick = max(next_tick + self._update_frequency, loop.time())
            try:
                await self.reconcile_once()
            except Exception:
                self.logger.exception("Reconciliation tick failed")
        self.logger.debug("Stopping status reconciler")

    def stop(self):
        self._stop_event.set()

    @property
    def page_id(self) -> str:
        return self._page_id

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    async def reconcile_once(self) -> TickResult:
        """Run one reconciliation tick over every known host."""
        self.logger.debug("Updating statuses")
        result = TickResult()
        index = _ComponentIndex(lambda: self._call(self._provider.list_components(self._page_id)))

        async def visit(record: HostStatusRecord):
            if self._stop_event.is_set():
                return
            result.checked += 1
            await self._reconcile_host(record, index, result)

        await self._registry.for_each(visit)
        self.logger.debug("Statuses updated", extra={"log_data": result.to_dict()})
        return result

    async def _reconcile_host(self, record: HostStatusRecord, index: _ComponentIndex, result: TickResult):
        async with record.lock:
            if self._clock() - record.reported_at >= self._unhealthy_time:
                record.status = HostStatus.UNHEALTHY
            if record.status == record.last_status:
                return
            observed = record.status
            previous = record.last_status
            component_id = record.component_id

        result.transitions += 1
        identifier = record.identifier
        self.logger.info(
            "Host status changed",
            extra={"log_data": {
                "identifier": identifier,
                "last_status": previous.value,
                "status": observed.value,
            }},
        )

        try:
            if component_id is None:
                component_id = await self._resolve_component(record, observed, index, result)
                if component_id is None:
                    await self._consume(record, observed)
                    return

            component = await self._call(self._provider.get_component(self._page_id, component_id))
            if component.status == UNDERMAINTENANCE:
                self.logger.debug(
                    "Component is under maintenance, skipping status update",
                    extra={"log_data": {"identifier": identifier, "component_id": component_id}},
                )
                result.maintenance += 1
                await self._consume(record, observed)
                return

            await self._call(
                self._provider.update_component(self._page_id, component_id, PROVIDER_STATUS[observed])
            )
        except (ProviderError, asyncio.TimeoutError) as e:
            result.failed += 1
            self.logger.error(
                f"Error reconciling host: {e!r}",
                extra={"log_data": {"identifier": identifier, "status": observed.value}},
            )
            return
        except Exception:
            result.failed += 1
            self.logger.exception(
                "Unexpected error reconciling host",
                extra={"log_data": {"identifier": identifier, "status": observed.value}},
            )
            return

        result.pushed += 1
        await self._consume(record, observed)
        self.logger.debug(
            "Component status updated",
            extra={"log_data": {"identifier": identifier, "status": observed.value}},
        )

    async def _resolve_component(
        self,
        record: HostStatusRecord,
        observed: HostStatus,
        index: _ComponentIndex,
        result: TickResult,
    ) -> str | None:
        """Find (or create) the component for a host.

        Returns the component id when the host's status still needs pushing,
        or None when nothing more is required for this transition.
        """
        identifier = record.identifier
        self.logger.debug(
            "Component ID not cached, fetching components",
            extra={"log_data": {"identifier": identifier}},
        )
        component = await index.find(identifier)

        if component is not None:
            self.logger.debug(
                "Component ID found",
                extra={"log_data": {"identifier": identifier, "component_id": component.id}},
            )
            async with record.lock:
                record.component_id = component.id
                record.unmapped = False
            return component.id

        if not self._create_components:
            result.unmapped += 1
            async with record.lock:
                record.unmapped = True
            self.logger.warning(
                "Unmapped host: no status page component matches identifier",
                extra={"log_data": {"identifier": identifier}},
            )
            return None

        self.logger.info(
            "Component ID not found, creating component for host",
            extra={"log_data": {"identifier": identifier}},
        )
        created = await self._call(
            self._provider.create_component(self._page_id, identifier, PROVIDER_STATUS[observed])
        )
        result.created += 1
        async with record.lock:
            record.component_id = created.id
            record.unmapped = False
        return None

    async def _consume(self, record: HostStatusRecord, observed: HostStatus):
        # Only the observed status is consumed; a heartbeat that landed while
        # the provider was being called is picked up by the next tick.
        async with record.lock:
            record.last_status = observed

    async def _call(self, awaitable: Awaitable[Any]) -> Any:
        if self._call_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self._call_timeout)
