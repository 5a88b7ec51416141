"""Heartbeat agent run on each monitored host."""

from clustermon.agent.emitter import HeartbeatEmitter, resolve_identifier

__all__ = ["HeartbeatEmitter", "resolve_identifier"]
