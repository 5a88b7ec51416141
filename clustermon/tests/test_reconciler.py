"""Tests for the status reconciliation loop."""

import asyncio
import pytest
from clustermon.server.provider import MAJOROUTAGE, OPERATIONAL, UNDERMAINTENANCE
from clustermon.server.reconciler import StatusReconciler
from clustermon.server.registry import HostStatus, HostStatusRegistry
from clustermon.tests.fake_provider import FakeProvider

THRESHOLD = 300.0


class Clock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def registry(clock):
    return HostStatusRegistry(clock=clock)


@pytest.fixture
def provider():
    return FakeProvider()


def make_reconciler(registry, provider, clock, **kwargs):
    return StatusReconciler(
        registry=registry,
        provider=provider,
        page_id="page-1",
        unhealthy_time=THRESHOLD,
        update_frequency=0.01,
        clock=clock,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_first_heartbeat_pushes_operational(registry, provider, clock):
    component = provider.add_component("web-1", status=MAJOROUTAGE)
    await registry.upsert_heartbeat("web-1")

    result = await make_reconciler(registry, provider, clock).reconcile_once()

    assert result.transitions == 1
    assert result.pushed == 1
    assert provider.calls_to("update_component") == [
        ("update_component", "page-1", component.id, OPERATIONAL)
    ]
    record = registry.get("web-1")
    assert record.component_id == component.id
    assert record.last_status == HostStatus.HEALTHY


@pytest.mark.asyncio
async def test_stale_host_becomes_unhealthy_with_one_update(registry, provider, clock):
    component = provider.add_component("web-1")
    await registry.upsert_heartbeat("web-1")
    reconciler = make_reconciler(registry, provider, clock)
    await reconciler.reconcile_once()
    provider.calls.clear()

    clock.now += 360
    result = await reconciler.reconcile_once()

    assert registry.get("web-1").status == HostStatus.UNHEALTHY
    assert result.pushed == 1
    assert provider.calls_to("update_component") == [
        ("update_component", "page-1", component.id, MAJOROUTAGE)
    ]

    provider.calls.clear()
    result = await reconciler.reconcile_once()
    assert result.transitions == 0
    assert provider.calls == []


@pytest.mark.asyncio
async def test_threshold_boundary_is_inclusive(registry, provider, clock):
    provider.add_component("web-1")
    await registry.upsert_heartbeat("web-1")
    clock.now += THRESHOLD
    await make_reconciler(registry, provider, clock).reconcile_once()
    assert registry.get("web-1").status == HostStatus.UNHEALTHY


@pytest.mark.asyncio
async def test_repeated_heartbeats_report_one_transition(registry, provider, clock):
    provider.add_component("web-1")
    for _ in range(10):
        await registry.upsert_heartbeat("web-1")
        clock.now += 1

    result = await make_reconciler(registry, provider, clock).reconcile_once()

    assert result.transitions == 1
    assert len(provider.calls_to("update_component")) == 1


@pytest.mark.asyncio
async def test_component_list_fetched_once_per_host(registry, provider, clock):
    provider.add_component("web-1")
    await registry.upsert_heartbeat("web-1")
    reconciler = make_reconciler(registry, provider, clock)
    await reconciler.reconcile_once()

    clock.now += 600
    await reconciler.reconcile_once()
    await registry.upsert_heartbeat("web-1")
    await reconciler.reconcile_once()

    assert len(provider.calls_to("list_components")) == 1
    assert len(provider.calls_to("update_component")) == 3


@pytest.mark.asyncio
async def test_component_list_shared_within_tick(registry, provider, clock):
    for name in ("web-1", "web-2", "web-3"):
        provider.add_component(name)
        await registry.upsert_heartbeat(name)

    result = await make_reconciler(registry, provider, clock).reconcile_once()

    assert result.pushed == 3
    assert len(provider.calls_to("list_components")) == 1


@pytest.mark.asyncio
async def test_maintenance_suppresses_update_but_consumes_transition(registry, provider, clock):
    provider.add_component("web-1", status=UNDERMAINTENANCE)
    await registry.upsert_heartbeat("web-1")
    reconciler = make_reconciler(registry, provider, clock)

    result = await reconciler.reconcile_once()

    assert result.maintenance == 1
    assert provider.calls_to("update_component") == []
    assert registry.get("web-1").last_status == HostStatus.HEALTHY

    provider.calls.clear()
    result = await reconciler.reconcile_once()
    assert result.transitions == 0
    assert provider.calls == []


@pytest.mark.asyncio
async def test_failure_for_one_host_does_not_block_others(registry, provider, clock):
    failing = provider.add_component("host-a")
    healthy = provider.add_component("host-b")
    provider.failing.add(failing.id)
    await registry.upsert_heartbeat("host-a")
    await registry.upsert_heartbeat("host-b")

    result = await make_reconciler(registry, provider, clock).reconcile_once()

    assert result.failed == 1
    assert result.pushed == 1
    assert provider.components[healthy.id].status == OPERATIONAL
    assert registry.get("host-a").last_status == HostStatus.NONE
    assert registry.get("host-b").last_status == HostStatus.HEALTHY


@pytest.mark.asyncio
async def test_failed_transition_is_retried_next_tick(registry, provider, clock):
    component = provider.add_component("web-1", status=MAJOROUTAGE)
    provider.failing.add(component.id)
    await registry.upsert_heartbeat("web-1")
    reconciler = make_reconciler(registry, provider, clock)

    await reconciler.reconcile_once()
    provider.failing.clear()
    result = await reconciler.reconcile_once()

    assert result.pushed == 1
    assert provider.components[component.id].status == OPERATIONAL
    assert registry.get("web-1").last_status == HostStatus.HEALTHY


@pytest.mark.asyncio
async def test_list_failure_is_isolated_and_retried(registry, provider, clock):
    provider.add_component("web-1")
    provider.fail_list = True
    await registry.upsert_heartbeat("web-1")
    await registry.upsert_heartbeat("web-2")
    reconciler = make_reconciler(registry, provider, clock)

    result = await reconciler.reconcile_once()
    assert result.failed == 2
    assert len(provider.calls_to("list_components")) == 1
    assert registry.get("web-1").component_id is None

    provider.fail_list = False
    result = await reconciler.reconcile_once()
    assert result.failed == 0
    assert registry.get("web-1").component_id is not None


@pytest.mark.asyncio
async def test_missing_component_is_created(registry, provider, clock):
    await registry.upsert_heartbeat("web-new")

    result = await make_reconciler(registry, provider, clock).reconcile_once()

    assert result.created == 1
    assert provider.calls_to("create_component") == [
        ("create_component", "page-1", "web-new", OPERATIONAL)
    ]
    assert provider.calls_to("update_component") == []
    record = registry.get("web-new")
    assert record.component_id in provider.components
    assert record.last_status == HostStatus.HEALTHY


@pytest.mark.asyncio
async def test_missing_component_flagged_when_creation_disabled(registry, provider, clock):
    await registry.upsert_heartbeat("web-new")
    reconciler = make_reconciler(registry, provider, clock, create_components=False)

    result = await reconciler.reconcile_once()

    assert result.unmapped == 1
    assert provider.calls_to("create_component") == []
    record = registry.get("web-new")
    assert record.unmapped is True
    assert record.last_status == HostStatus.HEALTHY

    provider.calls.clear()
    await reconciler.reconcile_once()
    assert provider.calls_to("list_components") == []


@pytest.mark.asyncio
async def test_heartbeat_during_push_is_reported_next_tick(registry, provider, clock):
    component = provider.add_component("web-1")
    await registry.upsert_heartbeat("web-1")
    reconciler = make_reconciler(registry, provider, clock)
    await reconciler.reconcile_once()

    clock.now += 600
    original_update = provider.update_component

    async def update_then_heartbeat(page_id, component_id, status):
        await original_update(page_id, component_id, status)
        await registry.upsert_heartbeat("web-1")

    provider.update_component = update_then_heartbeat
    await reconciler.reconcile_once()
    provider.update_component = original_update

    record = registry.get("web-1")
    assert record.status == HostStatus.HEALTHY
    assert record.last_status == HostStatus.UNHEALTHY

    result = await reconciler.reconcile_once()
    assert result.pushed == 1
    assert provider.components[component.id].status == OPERATIONAL


@pytest.mark.asyncio
async def test_hanging_call_times_out(registry, provider, clock):
    provider.add_component("web-1")
    await registry.upsert_heartbeat("web-1")

    async def hang(page_id, component_id):
        await asyncio.sleep(10)

    provider.get_component = hang
    reconciler = make_reconciler(registry, provider, clock, call_timeout=0.05)

    result = await reconciler.reconcile_once()
    assert result.failed == 1
    assert registry.get("web-1").last_status == HostStatus.NONE


@pytest.mark.asyncio
async def test_run_ticks_until_stopped(registry, provider, clock):
    provider.add_component("web-1")
    await registry.upsert_heartbeat("web-1")
    reconciler = make_reconciler(registry, provider, clock)

    task = asyncio.create_task(reconciler.run())
    await asyncio.sleep(0.1)
    reconciler.stop()
    await asyncio.wait_for(task, timeout=1)

    assert reconciler.stopped
    assert registry.get("web-1").last_status == HostStatus.HEALTHY


@pytest.mark.asyncio
async def test_stop_interrupts_wait_promptly(registry, provider, clock):
    reconciler = StatusReconciler(
        registry=registry,
        provider=provider,
        page_id="page-1",
        update_frequency=3600,
        clock=clock,
    )
    task = asyncio.create_task(reconciler.run())
    await asyncio.sleep(0)
    reconciler.stop()
    await asyncio.wait_for(task, timeout=1)
    assert provider.calls == []


@pytest.mark.asyncio
async def test_unexpected_error_for_one_host_does_not_block_others(registry, provider, clock):
    broken = provider.add_component("host-a")
    working = provider.add_component("host-b")
    await registry.upsert_heartbeat("host-a")
    await registry.upsert_heartbeat("host-b")
    original_get = provider.get_component

    async def get_component(page_id, component_id):
        if component_id == broken.id:
            raise RuntimeError("adapter bug")
        return await original_get(page_id, component_id)

    provider.get_component = get_component
    result = await make_reconciler(registry, provider, clock).reconcile_once()

    assert result.failed == 1
    assert result.pushed == 1
    assert provider.components[working.id].status == OPERATIONAL
    assert registry.get("host-a").last_status == HostStatus.NONE
    assert registry.get("host-b").last_status == HostStatus.HEALTHY


@pytest.mark.asyncio
async def test_run_keeps_fixed_rate_when_ticks_are_slow(registry, provider, clock):
    reconciler = make_reconciler(registry, provider, clock)
    reconciler._update_frequency = 0.1
    loop = asyncio.get_running_loop()
    started = []

    async def slow_tick():
        started.append(loop.time())
        await asyncio.sleep(0.06)

    reconciler.reconcile_once = slow_tick
    task = asyncio.create_task(reconciler.run())
    for _ in range(200):
        if len(started) >= 5:
            break
        await asyncio.sleep(0.01)
    reconciler.stop()
    await asyncio.wait_for(task, timeout=1)

    gaps = [b - a for a, b in zip(started, started[1:])]
    assert len(gaps) >= 4
    assert sum(gaps) / len(gaps) < 0.14
