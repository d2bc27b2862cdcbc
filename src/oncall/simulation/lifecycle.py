"""Incident lifecycle: auto-resolution policy and the uptime figure."""

from __future__ import annotations

from typing import Callable, Iterable

from .catalog import check_exhaustive
from .models import (
    ContainerdHealth,
    FlydStatus,
    GameState,
    Incident,
    IncidentType,
    MigrationState,
    NetworkStatus,
    Worker,
)

MIN_AUTO_RESOLVE_AGE_MS = 10_000
MAX_UPTIME_PENALTY = 50.0

ResolveRule = Callable[[Worker], bool]


def _flyd_running(worker: Worker) -> bool:
    return worker.flyd_status is FlydStatus.RUNNING


def _containerd_healthy(worker: Worker) -> bool:
    return worker.containerd_health is ContainerdHealth.HEALTHY


def _network_connected(worker: Worker) -> bool:
    return worker.network_status is NetworkStatus.CONNECTED


def _past_hydration(worker: Worker) -> bool:
    return all(
        op.state is not MigrationState.HYDRATING or op.progress > 80
        for op in worker.active_fsms
    )


def _never(worker: Worker) -> bool:
    return False


AUTO_RESOLVE_RULES: dict[IncidentType, ResolveRule] = {
    IncidentType.FLYD_STALLED: _flyd_running,
    IncidentType.MEMORY_LEAK: _flyd_running,
    IncidentType.CONFIG_CORRUPTION: _flyd_running,
    IncidentType.CONTAINERD_SYNC: _containerd_healthy,
    IncidentType.MIGRATION_STUCK: _past_hydration,
    IncidentType.NETWORK_PARTITION: _network_connected,
    IncidentType.NETWORK_CONGESTION: _network_connected,
    IncidentType.DNS_FAILURE: _network_connected,
    # Only a drain clears these
    IncidentType.HARDWARE_DEGRADATION: _never,
    IncidentType.STORAGE_SPREADING: _never,
    IncidentType.NETWORK_HARDWARE_FAILURE: _never,
    # No condition; deadline only
    IncidentType.STORAGE_CORRUPTION: _never,
    IncidentType.DISK_IO_BOTTLENECK: _never,
    IncidentType.KERNEL_PANIC: _never,
}

check_exhaustive(AUTO_RESOLVE_RULES, "AUTO_RESOLVE_RULES")


def should_auto_resolve(incident: Incident, worker: Worker | None, now: float) -> bool:
    if incident.resolved:
        return False
    if now - incident.timestamp < MIN_AUTO_RESOLVE_AGE_MS:
        return False
    if worker is not None and AUTO_RESOLVE_RULES[incident.type](worker):
        return True
    return incident.auto_resolve_time is not None and now > incident.auto_resolve_time


def resolve_incidents(
    incidents: Iterable[Incident], workers: Iterable[Worker], now: float
) -> tuple[Incident, ...]:
    """Apply the auto-resolution policy against the post-tick workers."""
    by_id = {w.worker_id: w for w in workers}
    return tuple(
        incident.mark_resolved()
        if should_auto_resolve(incident, by_id.get(incident.worker_id), now)
        else incident
        for incident in incidents
    )


def compute_uptime(incidents: Iterable[Incident]) -> float:
    """100 minus the capped sum of unresolved impact, never below zero."""
    impact = sum(i.uptime_impact for i in incidents if not i.resolved)
    return max(0.0, 100.0 - min(MAX_UPTIME_PENALTY, impact))


def migration_success_ratio(state: GameState) -> float | None:
    """Share of migrations that succeeded, or None before the first one."""
    total = state.score.successful_migrations + state.score.failed_migrations
    if total == 0:
        return None
    return state.score.successful_migrations / total
