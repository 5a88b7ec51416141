"""In-memory registry of host liveness.

Every host that has sent a heartbeat owns one ``HostStatusRecord``. Records are
created by the ping endpoint and mutated by both heartbeats and the
reconciliation loop, so each record carries its own lock; unrelated hosts never
contend with each other.
"""

import asyncio
import dataclasses
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable


class HostStatus(str, Enum):
    """Liveness classification of a host."""

    NONE = ""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class HostStatusRecord:
    identifier: str
    status: HostStatus = HostStatus.NONE
    reported_at: float = 0.0
    last_status: HostStatus = HostStatus.NONE
    component_id: str | None = None
    unmapped: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "reported_at": datetime.fromtimestamp(self.reported_at, timezone.utc).isoformat(),
        }

    def copy(self) -> "HostStatusRecord":
        return dataclasses.replace(self, lock=asyncio.Lock())


class HostStatusRegistry:
    """Owns the status record of every known host."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._records: dict[str, HostStatusRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._records

    def get(self, identifier: str) -> HostStatusRecord | None:
        return self._records.get(identifier)

    async def upsert_heartbeat(self, identifier: str) -> None:
        """Record a heartbeat, creating the host's record on first contact."""
        # No await between lookup and insert: creation cannot race.
        record = self._records.get(identifier)
        if record is None:
            record = HostStatusRecord(identifier=identifier)
            self._records[identifier] = record

        async with record.lock:
            record.status = HostStatus.HEALTHY
            record.reported_at = self._clock()

    async def for_each(self, visitor: Callable[[HostStatusRecord], Awaitable[None]]) -> None:
        """Await ``visitor`` for every record present when the call starts.

        Visitors may mutate the record in place but must hold ``record.lock``
        while doing so.
        """
        for record in list(self._records.values()):
            await visitor(record)

    def snapshot(self) -> dict[str, HostStatusRecord]:
        """Return detached copies of all records, keyed by identifier."""
        return {identifier: record.copy() for identifier, record in list(self._records.items())}
