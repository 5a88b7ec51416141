"""Collector server: host status registry, reconciliation and HTTP surface."""

from clustermon.server.registry import HostStatus, HostStatusRecord, HostStatusRegistry
from clustermon.server.reconciler import StatusReconciler, TickResult
from clustermon.server.provider import InstatusProvider, StatusProvider, resolve_page_id
from clustermon.server.app import create_app

__all__ = [
    "HostStatus",
    "HostStatusRecord",
    "HostStatusRegistry",
    "StatusReconciler",
    "TickResult",
    "InstatusProvider",
    "StatusProvider",
    "resolve_page_id",
    "create_app",
]
