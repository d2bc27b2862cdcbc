"""Unit tests for the context-aware incident generator."""

from __future__ import annotations

from dataclasses import replace

import pytest

from oncall.simulation.catalog import CATALOG, DRAIN_REQUIRED, GENERATION_ORDER
from oncall.simulation.generator import (
    BASE_INCIDENT_RATE,
    DEGRADED_STRESS_MULTIPLIER,
    build_incident,
    candidate_pool,
    generate_incident,
    incident_rate,
    register_incident,
)
from oncall.simulation.models import (
    ContainerdHealth,
    FlydStatus,
    FSMOperation,
    FSMType,
    GameState,
    IncidentType,
    MigrationState,
    NetworkStatus,
    WorkerStatus,
)
from oncall.simulation.workers import make_worker
from tests.lib.sim_fakes import ScriptedRandom

pytestmark = pytest.mark.unit

NOW = 2_000_000.0

DAEMON = {IncidentType.FLYD_STALLED, IncidentType.MEMORY_LEAK, IncidentType.CONFIG_CORRUPTION}
NETWORK = {
    IncidentType.NETWORK_PARTITION,
    IncidentType.NETWORK_CONGESTION,
    IncidentType.NETWORK_HARDWARE_FAILURE,
}


def _migrating(worker):
    op = FSMOperation("m-1", FSMType.MIGRATION, MigrationState.CLONING, 10, "machine-1", NOW)
    return replace(worker, active_fsms=(op,))


# --------------------------------------------------------------------------
# Candidate pool
# --------------------------------------------------------------------------

class TestCandidatePool:
    def test_healthy_worker_gets_everything_generated(self):
        assert candidate_pool(make_worker(1)) == list(GENERATION_ORDER)

    def test_stalled_daemon_excludes_daemon_incidents(self):
        w = replace(make_worker(1), flyd_status=FlydStatus.STALLED)
        pool = set(candidate_pool(w))
        assert not pool & DAEMON
        assert IncidentType.CONTAINERD_SYNC in pool

    def test_restarting_daemon_excludes_restart_class(self):
        w = replace(make_worker(1), flyd_status=FlydStatus.RESTARTING, restart_start_time=NOW)
        pool = set(candidate_pool(w))
        assert not pool & DAEMON
        assert IncidentType.CONTAINERD_SYNC not in pool
        assert IncidentType.KERNEL_PANIC not in pool
        assert IncidentType.HARDWARE_DEGRADATION in pool

    def test_degraded_containerd_excludes_sync(self):
        w = replace(make_worker(1), containerd_health=ContainerdHealth.DEGRADED)
        assert IncidentType.CONTAINERD_SYNC not in candidate_pool(w)

    def test_degraded_network_excludes_network(self):
        w = replace(make_worker(1), network_status=NetworkStatus.DEGRADED)
        assert not set(candidate_pool(w)) & NETWORK

    def test_active_migration_excludes_daemon_and_drain_types(self):
        pool = set(candidate_pool(_migrating(make_worker(1))))
        assert not pool & DAEMON
        assert not pool & DRAIN_REQUIRED
        assert IncidentType.KERNEL_PANIC in pool
        assert IncidentType.DNS_FAILURE in pool

    def test_baseline_always_eligible(self):
        w = replace(
            _migrating(make_worker(1)),
            flyd_status=FlydStatus.RESTARTING,
            restart_start_time=NOW,
            containerd_health=ContainerdHealth.FAILED,
            network_status=NetworkStatus.DISCONNECTED,
        )
        pool = candidate_pool(w)
        assert IncidentType.DISK_IO_BOTTLENECK in pool
        assert IncidentType.DNS_FAILURE in pool
        assert IncidentType.STORAGE_CORRUPTION in pool

    def test_never_offers_migration_stuck(self):
        assert IncidentType.MIGRATION_STUCK not in candidate_pool(make_worker(1))


# --------------------------------------------------------------------------
# Generator firing
# --------------------------------------------------------------------------

class TestGenerateIncident:
    def test_no_workers(self):
        assert generate_incident(GameState(), ScriptedRandom(), NOW) is None

    @pytest.mark.parametrize("status", [WorkerStatus.DEGRADED, WorkerStatus.CRITICAL])
    def test_failing_worker_skipped_without_a_draw(self, status):
        state = GameState(workers=(replace(make_worker(1), status=status),))
        rng = ScriptedRandom(draws=[0.0])
        assert generate_incident(state, rng, NOW) is None
        assert rng.draw_count == 0

    def test_draw_below_rate_fires(self):
        state = GameState(workers=(make_worker(1),))
        incident = generate_incident(state, ScriptedRandom(draws=[0.44]), NOW)
        assert incident is not None

    def test_draw_at_rate_does_not_fire(self):
        state = GameState(workers=(make_worker(1),))
        assert generate_incident(state, ScriptedRandom(draws=[BASE_INCIDENT_RATE]), NOW) is None

    def test_picks_worker_then_pool_entry(self):
        state = GameState(workers=(make_worker(1), make_worker(2)))
        rng = ScriptedRandom(draws=[0.1], picks=[1, 2])
        incident = generate_incident(state, rng, NOW)
        assert incident.worker_id == "worker-2"
        assert incident.type is GENERATION_ORDER[2]

    def test_incident_carries_catalog_profile(self):
        state = GameState(workers=(make_worker(1),))
        index = GENERATION_ORDER.index(IncidentType.STORAGE_SPREADING)
        incident = generate_incident(state, ScriptedRandom(draws=[0.1], picks=[0, index]), NOW)
        profile = CATALOG[IncidentType.STORAGE_SPREADING]
        assert incident.title == profile.title
        assert incident.severity is profile.severity
        assert incident.uptime_impact == 30
        assert incident.requires_drain is True
        assert incident.timestamp == NOW
        assert incident.resolved is False
        assert incident.auto_resolve_time is None

    def test_first_occurrence_gets_note(self):
        state = GameState(workers=(make_worker(1),))
        incident = generate_incident(state, ScriptedRandom(draws=[0.1]), NOW)
        assert incident.is_first_time is True
        assert CATALOG[incident.type].first_time_note in incident.description

    def test_seen_type_is_plain(self):
        state = GameState(
            workers=(make_worker(1),),
            seen_incident_types=frozenset({GENERATION_ORDER[0]}),
        )
        incident = generate_incident(state, ScriptedRandom(draws=[0.1]), NOW)
        assert incident.is_first_time is False
        assert incident.description == CATALOG[incident.type].description

    def test_ids_are_unique(self):
        rng = ScriptedRandom()
        ids = {
            build_incident(IncidentType.DNS_FAILURE, "worker-1", NOW, rng).incident_id
            for _ in range(50)
        }
        assert len(ids) == 50


class TestIncidentRate:
    def test_healthy_rate(self):
        assert incident_rate(make_worker(1)) == BASE_INCIDENT_RATE

    def test_degraded_multiplier(self):
        w = replace(make_worker(1), status=WorkerStatus.DEGRADED)
        assert incident_rate(w) == pytest.approx(BASE_INCIDENT_RATE * DEGRADED_STRESS_MULTIPLIER)


# --------------------------------------------------------------------------
# Registration (ADD_INCIDENT)
# --------------------------------------------------------------------------

class TestRegisterIncident:
    def _add(self, kind, worker_id="worker-1"):
        state = GameState(workers=(make_worker(1),))
        incident = build_incident(kind, worker_id, NOW, ScriptedRandom())
        return register_incident(state, incident), incident

    @pytest.mark.parametrize(
        "kind, field, value",
        [
            (IncidentType.FLYD_STALLED, "flyd_status", FlydStatus.STALLED),
            (IncidentType.CONFIG_CORRUPTION, "flyd_status", FlydStatus.STALLED),
            (IncidentType.CONTAINERD_SYNC, "containerd_health", ContainerdHealth.DEGRADED),
            (IncidentType.NETWORK_PARTITION, "network_status", NetworkStatus.DEGRADED),
            (IncidentType.DNS_FAILURE, "network_status", NetworkStatus.DEGRADED),
            (IncidentType.STORAGE_CORRUPTION, "status", WorkerStatus.DEGRADED),
            (IncidentType.DISK_IO_BOTTLENECK, "status", WorkerStatus.DEGRADED),
            (IncidentType.KERNEL_PANIC, "status", WorkerStatus.CRITICAL),
            (IncidentType.HARDWARE_DEGRADATION, "status", WorkerStatus.CRITICAL),
            (IncidentType.STORAGE_SPREADING, "status", WorkerStatus.CRITICAL),
            (IncidentType.NETWORK_HARDWARE_FAILURE, "status", WorkerStatus.CRITICAL),
        ],
    )
    def test_worker_effect(self, kind, field, value):
        state, _ = self._add(kind)
        assert getattr(state.workers[0], field) == value

    def test_memory_leak_leaves_worker_alone(self):
        state, _ = self._add(IncidentType.MEMORY_LEAK)
        assert state.workers[0] == make_worker(1)

    def test_appends_and_marks_seen(self):
        state, incident = self._add(IncidentType.DNS_FAILURE)
        assert state.incidents == (incident,)
        assert IncidentType.DNS_FAILURE in state.seen_incident_types

    def test_unknown_worker_still_recorded(self):
        state, incident = self._add(IncidentType.KERNEL_PANIC, worker_id="worker-9")
        assert state.incidents == (incident,)
        assert state.workers[0].status is WorkerStatus.HEALTHY

    def test_seen_types_only_grow(self):
        state, _ = self._add(IncidentType.DNS_FAILURE)
        again = build_incident(IncidentType.KERNEL_PANIC, "worker-1", NOW, ScriptedRandom())
        state = register_incident(state, again)
        assert state.seen_incident_types == {IncidentType.DNS_FAILURE, IncidentType.KERNEL_PANIC}
