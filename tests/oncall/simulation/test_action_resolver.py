"""Unit tests for player actions: restart, drain, checks and incident fixes."""

from __future__ import annotations

from dataclasses import replace

import pytest

from oncall.simulation.actions import (
    INVESTIGATION_BONUS,
    check_containerd,
    drain_worker,
    force_transition,
    inspect_lvm,
    investigate_incident,
    quick_fix,
    quick_fix_probability,
    restart_flyd,
    view_logs,
)
from oncall.simulation.catalog import CATALOG
from oncall.simulation.generator import build_incident
from oncall.simulation.models import (
    ContainerdHealth,
    FeedbackKind,
    FlydStatus,
    FSMOperation,
    FSMType,
    GameState,
    IncidentType,
    InertState,
    MigrationState,
    NetworkStatus,
    WorkerStatus,
)
from oncall.simulation.workers import make_worker
from tests.lib.sim_fakes import ScriptedRandom

pytestmark = pytest.mark.unit

NOW = 5_000_000.0


def _world(*incidents, workers=None):
    workers = workers or (make_worker(1), make_worker(2))
    return GameState(workers=tuple(workers), incidents=tuple(incidents), game_started=True)


def _incident(kind, worker_id="worker-1", n=1, **kw):
    incident = build_incident(kind, worker_id, NOW - 100, ScriptedRandom())
    return replace(incident, incident_id=f"incident-{n}", **kw)


# --------------------------------------------------------------------------
# Restart flyd
# --------------------------------------------------------------------------

class TestRestartFlyd:
    def test_clears_restart_class_incidents_on_that_worker(self):
        state = _world(
            _incident(IncidentType.FLYD_STALLED, n=1),
            _incident(IncidentType.CONTAINERD_SYNC, n=2),
            _incident(IncidentType.STORAGE_SPREADING, n=3),
            _incident(IncidentType.FLYD_STALLED, worker_id="worker-2", n=4),
        )
        out = restart_flyd(state, "worker-1", NOW)
        assert [i.resolved for i in out.incidents] == [True, True, False, False]

    def test_young_incidents_resolve_immediately(self):
        state = _world(replace(_incident(IncidentType.MEMORY_LEAK), timestamp=NOW))
        out = restart_flyd(state, "worker-1", NOW)
        assert out.incidents[0].resolved

    def test_worker_enters_restarting(self):
        out = restart_flyd(_world(), "worker-1", NOW)
        worker = out.find_worker("worker-1")
        assert worker.flyd_status is FlydStatus.RESTARTING
        assert worker.restart_start_time == NOW
        assert out.find_worker("worker-2").flyd_status is FlydStatus.RUNNING

    def test_counts_as_risky(self):
        out = restart_flyd(_world(), "worker-1", NOW)
        assert out.score.risky_actions == 1
        assert out.score.successful_migrations == 0

    def test_feedback(self):
        feedback = restart_flyd(_world(), "worker-1", NOW).action_feedback
        assert feedback.kind is FeedbackKind.ACTION
        assert feedback.title == "flyd Restart Initiated"
        assert "3 seconds" in feedback.message
        assert feedback.timestamp == NOW


# --------------------------------------------------------------------------
# Drain
# --------------------------------------------------------------------------

class TestDrainWorker:
    def test_success(self):
        state = _world(
            _incident(IncidentType.HARDWARE_DEGRADATION, n=1),
            _incident(IncidentType.FLYD_STALLED, n=2),
        )
        state = state.with_worker(
            replace(make_worker(1), network_status=NetworkStatus.DEGRADED)
        )
        out = drain_worker(state, "worker-1", ScriptedRandom(draws=[0.5]), NOW)

        worker = out.find_worker("worker-1")
        assert worker.status is WorkerStatus.DEGRADED
        assert worker.network_status is NetworkStatus.CONNECTED
        (op,) = worker.active_fsms
        assert op.type is FSMType.MIGRATION
        assert op.state is MigrationState.PENDING
        assert op.progress == 0
        assert op.start_time == NOW
        assert op.op_id == f"migration-{int(NOW)}"
        assert op.machine_id.startswith("machine-")

        assert [i.resolved for i in out.incidents] == [True, False]
        assert out.score.risky_actions == 1
        assert out.score.successful_migrations == 0
        assert out.action_feedback.kind is FeedbackKind.WARNING
        assert out.action_feedback.title == "Worker Drain Started"
        assert "12 machines" in out.action_feedback.message

    def test_failure(self):
        state = _world(_incident(IncidentType.HARDWARE_DEGRADATION))
        out = drain_worker(state, "worker-1", ScriptedRandom(draws=[0.05]), NOW)

        worker = out.find_worker("worker-1")
        assert worker.status is WorkerStatus.CRITICAL
        (op,) = worker.active_fsms
        assert op.state is MigrationState.ERROR_RECOVERY
        assert op.op_id.startswith("migration-failed-")
        assert not out.incidents[0].resolved
        assert out.score.failed_migrations == 1
        assert out.score.risky_actions == 1
        assert out.action_feedback.kind is FeedbackKind.ERROR
        assert out.action_feedback.title == "Worker Drain Failed"

    def test_draw_at_failure_rate_fails(self):
        out = drain_worker(_world(), "worker-1", ScriptedRandom(draws=[0.1]), NOW)
        assert out.find_worker("worker-1").status is WorkerStatus.CRITICAL

    def test_replaces_existing_operations(self):
        old = FSMOperation("old", FSMType.BOOT, InertState.PENDING, 0, "m", NOW)
        state = _world(workers=(replace(make_worker(1), active_fsms=(old,)),))
        out = drain_worker(state, "worker-1", ScriptedRandom(draws=[0.5]), NOW)
        assert [op.op_id for op in out.find_worker("worker-1").active_fsms] == [
            f"migration-{int(NOW)}"
        ]

    def test_consumes_one_draw_for_outcome(self):
        rng = ScriptedRandom(draws=[0.5])
        drain_worker(_world(), "worker-1", rng, NOW)
        assert rng.draw_count == 1


# --------------------------------------------------------------------------
# Read-only checks
# --------------------------------------------------------------------------

class TestChecks:
    @pytest.mark.parametrize("health", list(ContainerdHealth))
    def test_containerd_reports_health(self, health):
        state = _world(workers=(replace(make_worker(1), containerd_health=health),))
        out = check_containerd(state, "worker-1", NOW)
        assert out.workers == state.workers
        assert out.action_feedback.title == "containerd Health Check"
        assert out.action_feedback.message.startswith(f"Status: {health.value}.")

    @pytest.mark.parametrize(
        "disk, kind",
        [
            (95.0, FeedbackKind.ERROR),
            (90.1, FeedbackKind.ERROR),
            (90.0, FeedbackKind.WARNING),
            (85.0, FeedbackKind.WARNING),
            (80.0, FeedbackKind.ACTION),
            (40.0, FeedbackKind.ACTION),
        ],
    )
    def test_lvm_grades_disk(self, disk, kind):
        state = _world(workers=(replace(make_worker(1), disk=disk),))
        out = inspect_lvm(state, "worker-1", NOW)
        assert out.action_feedback.kind is kind
        assert out.action_feedback.message.startswith(f"Disk usage: {disk:.1f}%.")
        assert out.score == state.score


# --------------------------------------------------------------------------
# Investigate / logs
# --------------------------------------------------------------------------

class TestInvestigation:
    def test_investigate_sets_flag_and_explains(self):
        state = _world(_incident(IncidentType.KERNEL_PANIC))
        out = investigate_incident(state, "incident-1", NOW)
        assert out.incidents[0].investigated
        profile = CATALOG[IncidentType.KERNEL_PANIC]
        assert out.action_feedback.kind is FeedbackKind.INVESTIGATION
        assert out.action_feedback.title == profile.investigation_title
        assert out.action_feedback.message == profile.investigation

    def test_investigate_twice_refreshes_feedback_only(self):
        state = _world(_incident(IncidentType.KERNEL_PANIC))
        once = investigate_incident(state, "incident-1", NOW)
        twice = investigate_incident(once, "incident-1", NOW + 50)
        assert twice.incidents == once.incidents
        assert twice.action_feedback.timestamp == NOW + 50

    def test_view_logs(self):
        state = _world(_incident(IncidentType.DNS_FAILURE))
        out = view_logs(state, "incident-1", NOW)
        assert out.incidents[0].log_viewed
        assert not out.incidents[0].investigated
        assert out.action_feedback.title == "flyd Logs Retrieved"
        assert out.action_feedback.message == CATALOG[IncidentType.DNS_FAILURE].log_line

    def test_view_logs_is_idempotent(self):
        state = _world(_incident(IncidentType.DNS_FAILURE))
        once = view_logs(state, "incident-1", NOW)
        assert view_logs(once, "incident-1", NOW).incidents == once.incidents


# --------------------------------------------------------------------------
# Force transition
# --------------------------------------------------------------------------

class TestForceTransition:
    def test_failure(self):
        state = _world(_incident(IncidentType.MIGRATION_STUCK))
        out = force_transition(state, "incident-1", ScriptedRandom(draws=[0.2]), NOW)
        assert not out.incidents[0].resolved
        assert out.score.failed_migrations == 1
        assert out.score.risky_actions == 2
        assert out.action_feedback.kind is FeedbackKind.ERROR
        assert out.action_feedback.title == "FSM Force Transition Failed"

    def test_success(self):
        state = _world(_incident(IncidentType.MIGRATION_STUCK))
        out = force_transition(state, "incident-1", ScriptedRandom(draws=[0.9]), NOW)
        assert out.incidents[0].resolved
        assert out.score.failed_migrations == 0
        assert out.score.risky_actions == 2
        assert out.action_feedback.kind is FeedbackKind.SUCCESS

    def test_failure_never_reopens(self):
        state = _world(_incident(IncidentType.MIGRATION_STUCK, resolved=True))
        out = force_transition(state, "incident-1", ScriptedRandom(draws=[0.0]), NOW)
        assert out.incidents[0].resolved


# --------------------------------------------------------------------------
# Quick fix
# --------------------------------------------------------------------------

class TestQuickFixProbability:
    def test_base_rate(self):
        assert quick_fix_probability(_incident(IncidentType.FLYD_STALLED)) == 0.2

    def test_investigation_bonus_is_not_clamped(self):
        inc = _incident(IncidentType.DNS_FAILURE, investigated=True)
        assert quick_fix_probability(inc) == pytest.approx(0.25 + INVESTIGATION_BONUS)
        assert quick_fix_probability(inc) > 1


class TestQuickFix:
    def test_direct_success(self):
        state = _world(_incident(IncidentType.DNS_FAILURE))
        out = quick_fix(state, "incident-1", ScriptedRandom(draws=[0.1]), NOW)
        assert out.incidents[0].resolved
        assert out.score.successful_migrations == 1
        assert out.score.risky_actions == 0
        assert out.action_feedback.kind is FeedbackKind.SUCCESS
        assert out.action_feedback.title == "Quick Fix Applied"
        assert "Flush DNS cache" in out.action_feedback.message
        assert "Incident resolved immediately." in out.action_feedback.message
        assert "Consider investigating first" in out.action_feedback.message

    def test_direct_failure(self):
        state = _world(_incident(IncidentType.DNS_FAILURE))
        out = quick_fix(state, "incident-1", ScriptedRandom(draws=[0.9]), NOW)
        assert not out.incidents[0].resolved
        assert out.score.failed_migrations == 1
        assert out.action_feedback.kind is FeedbackKind.WARNING
        assert out.action_feedback.title == "Quick Fix Failed"
        assert "Investigation might reveal better solutions." in out.action_feedback.message

    def test_investigated_fix_uses_bonus(self):
        state = _world(_incident(IncidentType.DNS_FAILURE, investigated=True))
        out = quick_fix(state, "incident-1", ScriptedRandom(draws=[0.99]), NOW)
        assert out.incidents[0].resolved
        assert "Investigation data helped" in out.action_feedback.message

    def test_restart_alias(self):
        state = _world(
            _incident(IncidentType.FLYD_STALLED, n=1),
            _incident(IncidentType.MEMORY_LEAK, n=2),
        )
        out = quick_fix(state, "incident-1", ScriptedRandom(draws=[0.1]), NOW)
        assert all(i.resolved for i in out.incidents)
        assert out.find_worker("worker-1").flyd_status is FlydStatus.RESTARTING
        assert out.score.risky_actions == 1
        assert out.action_feedback.title == "flyd Restart Initiated"

    def test_kernel_panic_alias_resolves_itself(self):
        state = _world(_incident(IncidentType.KERNEL_PANIC))
        out = quick_fix(state, "incident-1", ScriptedRandom(draws=[0.1]), NOW)
        assert out.incidents[0].resolved
        assert out.find_worker("worker-1").flyd_status is FlydStatus.RESTARTING

    def test_drain_alias_success(self):
        state = _world(_incident(IncidentType.HARDWARE_DEGRADATION, investigated=True))
        rng = ScriptedRandom(draws=[0.5, 0.5])
        out = quick_fix(state, "incident-1", rng, NOW)
        assert rng.draw_count == 2
        assert out.incidents[0].resolved
        assert out.score.successful_migrations == 1
        assert out.score.risky_actions == 1
        assert out.find_worker("worker-1").status is WorkerStatus.DEGRADED
        assert out.action_feedback.title == "Emergency Drain Started"

    def test_drain_alias_failure(self):
        state = _world(_incident(IncidentType.STORAGE_SPREADING))
        out = quick_fix(state, "incident-1", ScriptedRandom(draws=[0.05, 0.05]), NOW)
        assert not out.incidents[0].resolved
        assert out.score.failed_migrations == 1
        assert out.find_worker("worker-1").status is WorkerStatus.CRITICAL
        assert out.action_feedback.title == "Emergency Drain Failed"

    def test_alias_without_worker_resolves_directly(self):
        state = _world(_incident(IncidentType.FLYD_STALLED, worker_id="ghost"))
        out = quick_fix(state, "incident-1", ScriptedRandom(draws=[0.1]), NOW)
        assert out.incidents[0].resolved
        assert out.score.successful_migrations == 1
        assert out.score.risky_actions == 0
        assert "Restart initiated" in out.action_feedback.message
        assert out.workers == state.workers

    def test_failed_alias_never_runs_the_action(self):
        state = _world(_incident(IncidentType.FLYD_STALLED))
        out = quick_fix(state, "incident-1", ScriptedRandom(draws=[0.9]), NOW)
        assert out.find_worker("worker-1").flyd_status is FlydStatus.RUNNING
        assert out.score.failed_migrations == 1


# --------------------------------------------------------------------------
# Unknown ids
# --------------------------------------------------------------------------

class TestUnknownIds:
    @pytest.mark.parametrize(
        "call",
        [
            lambda s, r: restart_flyd(s, "worker-9", NOW),
            lambda s, r: drain_worker(s, "worker-9", r, NOW),
            lambda s, r: check_containerd(s, "worker-9", NOW),
            lambda s, r: inspect_lvm(s, "worker-9", NOW),
            lambda s, r: investigate_incident(s, "incident-9", NOW),
            lambda s, r: view_logs(s, "incident-9", NOW),
            lambda s, r: force_transition(s, "incident-9", r, NOW),
            lambda s, r: quick_fix(s, "incident-9", r, NOW),
        ],
    )
    def test_returns_same_snapshot(self, call):
        state = _world(_incident(IncidentType.DNS_FAILURE))
        rng = ScriptedRandom()
        assert call(state, rng) is state
        assert rng.draw_count == 0
