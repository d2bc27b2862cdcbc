"""Action resolver: player-initiated operations against the world.

Each function takes the current snapshot and returns the next one.  An
unknown worker or incident id returns the very same snapshot object.
Stochastic outcomes draw from the injected ``rng`` so tests can force
either branch.
"""

from __future__ import annotations

import random
from dataclasses import replace
from typing import Iterable

from .catalog import CATALOG, RESTART_RESOLVES, FixAlias
from .models import (
    ActionFeedback,
    ContainerdHealth,
    FeedbackKind,
    FlydStatus,
    FSMOperation,
    FSMType,
    GameState,
    Incident,
    MigrationState,
    NetworkStatus,
    WorkerStatus,
)
from .workers import RESTART_DURATION_MS

DRAIN_FAILURE_RATE = 0.1
FORCE_TRANSITION_FAILURE_RATE = 0.3
INVESTIGATION_BONUS = 0.8

DISK_WARNING_PCT = 80
DISK_CRITICAL_PCT = 90

_DRAIN_FAILED_MESSAGE = (
    "CRITICAL: Drain operation failed! FSM entered error_recovery state. "
    "dm-clone hydration failed due to storage corruption. Manual intervention required."
)

_CONTAINERD_VERDICTS = {
    ContainerdHealth.HEALTHY: "All container operations normal. Lease database synchronized.",
    ContainerdHealth.DEGRADED: (
        "Some containers failing to start. Lease mismatch detected. "
        "Consider restarting flyd to resync."
    ),
    ContainerdHealth.FAILED: (
        "CRITICAL: containerd daemon not responding. All container operations "
        "failing. Immediate flyd restart required."
    ),
}


def _feedback(state: GameState, kind: FeedbackKind, title: str, message: str, now: float) -> GameState:
    return replace(state, action_feedback=ActionFeedback(kind, title, message, now))


def _resolve_where(incidents: Iterable[Incident], predicate) -> tuple[Incident, ...]:
    return tuple(i.mark_resolved() if predicate(i) else i for i in incidents)


def _migration_op(rng: random.Random, now: float, failed: bool) -> FSMOperation:
    prefix = "migration-failed" if failed else "migration"
    return FSMOperation(
        op_id=f"{prefix}-{int(now)}",
        type=FSMType.MIGRATION,
        state=MigrationState.ERROR_RECOVERY if failed else MigrationState.PENDING,
        progress=0.0,
        machine_id=f"machine-{rng.randrange(1000)}",
        start_time=now,
    )


# -- Restart -------------------------------------------------------------------

def restart_flyd(
    state: GameState,
    worker_id: str,
    now: float,
    also_resolve: str | None = None,
) -> GameState:
    """Put the worker's daemon into ``restarting``.

    Every unresolved restart-class incident on the worker resolves at
    once, whatever its age.  ``also_resolve`` names one more incident to
    close (the quick fix that triggered the restart).  Always risky.
    """
    worker = state.find_worker(worker_id)
    if worker is None:
        return state

    def cleared(incident: Incident) -> bool:
        if incident.incident_id == also_resolve:
            return True
        return incident.worker_id == worker_id and incident.type in RESTART_RESOLVES

    state = state.with_worker(
        replace(worker, flyd_status=FlydStatus.RESTARTING, restart_start_time=now)
    )
    state = replace(
        state,
        incidents=_resolve_where(state.incidents, cleared),
        score=replace(state.score, risky_actions=state.score.risky_actions + 1),
    )
    seconds = RESTART_DURATION_MS // 1000
    return _feedback(
        state,
        FeedbackKind.ACTION,
        "flyd Restart Initiated",
        f"Restarting flyd process... This will take {seconds} seconds. "
        "All flyd-related incidents on this worker will be resolved.",
        now,
    )


# -- Drain ---------------------------------------------------------------------

def drain_worker(
    state: GameState,
    worker_id: str,
    rng: random.Random,
    now: float,
    target_incident: str | None = None,
) -> GameState:
    """Evacuate a worker through a fresh migration FSM.

    Succeeds 90% of the time.  Success leaves the worker ``degraded``
    with a pending migration and resolves its drain-only incidents.
    Failure leaves it ``critical`` with a migration stuck in
    ``error_recovery``.

    ``target_incident`` marks an emergency drain started from a quick
    fix: on success that incident also resolves and the migration counts
    as successful.
    """
    worker = state.find_worker(worker_id)
    if worker is None:
        return state

    success = rng.random() > DRAIN_FAILURE_RATE
    emergency = target_incident is not None
    score = state.score

    if not success:
        state = state.with_worker(
            replace(
                worker,
                status=WorkerStatus.CRITICAL,
                active_fsms=(_migration_op(rng, now, failed=True),),
            )
        )
        state = replace(
            state,
            score=replace(
                score,
                risky_actions=score.risky_actions + 1,
                failed_migrations=score.failed_migrations + 1,
            ),
        )
        title = "Emergency Drain Failed" if emergency else "Worker Drain Failed"
        return _feedback(state, FeedbackKind.ERROR, title, _DRAIN_FAILED_MESSAGE, now)

    def cleared(incident: Incident) -> bool:
        if incident.incident_id == target_incident:
            return True
        return incident.worker_id == worker_id and incident.requires_drain

    state = state.with_worker(
        replace(
            worker,
            status=WorkerStatus.DEGRADED,
            network_status=NetworkStatus.CONNECTED,
            active_fsms=(_migration_op(rng, now, failed=False),),
        )
    )
    state = replace(
        state,
        incidents=_resolve_where(state.incidents, cleared),
        score=replace(
            score,
            risky_actions=score.risky_actions + 1,
            successful_migrations=score.successful_migrations + (1 if emergency else 0),
        ),
    )
    machines = worker.active_machines
    if emergency:
        return _feedback(
            state,
            FeedbackKind.WARNING,
            "Emergency Drain Started",
            f"Initiating emergency worker drain. All {machines} machines will migrate "
            "using dm-clone to other workers. This will take ~75 seconds.",
            now,
        )
    return _feedback(
        state,
        FeedbackKind.WARNING,
        "Worker Drain Started",
        f"Initiating graceful worker drain. All {machines} machines will migrate "
        "using dm-clone to other workers. This will take ~75 seconds. All incidents "
        "requiring a drain on this worker have been resolved.",
        now,
    )


# -- Read-only checks ----------------------------------------------------------

def check_containerd(state: GameState, worker_id: str, now: float) -> GameState:
    worker = state.find_worker(worker_id)
    if worker is None:
        return state
    health = worker.containerd_health
    return _feedback(
        state,
        FeedbackKind.ACTION,
        "containerd Health Check",
        f"Status: {health.value}. {_CONTAINERD_VERDICTS[health]}",
        now,
    )


def inspect_lvm(state: GameState, worker_id: str, now: float) -> GameState:
    """Grade the disk gauge: above 90% is an error, above 80% a warning."""
    worker = state.find_worker(worker_id)
    if worker is None:
        return state
    disk = worker.disk
    if disk > DISK_CRITICAL_PCT:
        kind = FeedbackKind.ERROR
        verdict = (
            "CRITICAL: Volume group nearly full. Risk of write failures. "
            "Immediate worker drain recommended."
        )
    elif disk > DISK_WARNING_PCT:
        kind = FeedbackKind.WARNING
        verdict = "WARNING: High disk usage. Monitor closely and consider proactive migration."
    else:
        kind = FeedbackKind.ACTION
        verdict = "LVM volumes healthy. Metadata intact, no corruption detected."
    return _feedback(
        state, kind, "LVM Health Inspection", f"Disk usage: {disk:.1f}%. {verdict}", now
    )


# -- Incident actions ----------------------------------------------------------

def _update_incident(state: GameState, updated: Incident) -> GameState:
    return state.with_incidents(
        updated if i.incident_id == updated.incident_id else i for i in state.incidents
    )


def investigate_incident(state: GameState, incident_id: str, now: float) -> GameState:
    incident = state.find_incident(incident_id)
    if incident is None:
        return state
    if not incident.investigated:
        state = _update_incident(state, replace(incident, investigated=True))
    profile = CATALOG[incident.type]
    return _feedback(
        state, FeedbackKind.INVESTIGATION, profile.investigation_title, profile.investigation, now
    )


def view_logs(state: GameState, incident_id: str, now: float) -> GameState:
    incident = state.find_incident(incident_id)
    if incident is None:
        return state
    if not incident.log_viewed:
        state = _update_incident(state, replace(incident, log_viewed=True))
    return _feedback(
        state, FeedbackKind.ACTION, "flyd Logs Retrieved", CATALOG[incident.type].log_line, now
    )


def force_transition(
    state: GameState, incident_id: str, rng: random.Random, now: float
) -> GameState:
    """Shove the stuck FSM along.  70% success, always double risk."""
    incident = state.find_incident(incident_id)
    if incident is None:
        return state

    success = rng.random() > FORCE_TRANSITION_FAILURE_RATE
    if success:
        state = _update_incident(state, incident.mark_resolved())
    score = state.score
    state = replace(
        state,
        score=replace(
            score,
            risky_actions=score.risky_actions + 2,
            failed_migrations=score.failed_migrations + (0 if success else 1),
        ),
    )
    if success:
        return _feedback(
            state,
            FeedbackKind.SUCCESS,
            "FSM Force Transition Successful",
            "Forced FSM state transition completed. Machine recovered to running "
            "state. Risk: potential data inconsistency.",
            now,
        )
    return _feedback(
        state,
        FeedbackKind.ERROR,
        "FSM Force Transition Failed",
        "FAILED: Force transition caused data corruption. Machine lost! This is "
        "why force transitions are dangerous in production.",
        now,
    )


def quick_fix_probability(incident: Incident) -> float:
    """Base success rate, plus the investigation bonus.  Not clamped."""
    rate = CATALOG[incident.type].quick_fix.success
    if incident.investigated:
        rate += INVESTIGATION_BONUS
    return rate


def quick_fix(state: GameState, incident_id: str, rng: random.Random, now: float) -> GameState:
    """One-click remediation.

    A successful fix whose type aliases to a full action hands over to
    that action (restart or emergency drain).  Everything else resolves
    or fails the incident directly.
    """
    incident = state.find_incident(incident_id)
    if incident is None:
        return state

    fix = CATALOG[incident.type].quick_fix
    success = rng.random() < quick_fix_probability(incident)
    worker = state.find_worker(incident.worker_id)

    if success and fix.alias is not None and worker is not None:
        if fix.alias is FixAlias.DRAIN_WORKER:
            return drain_worker(state, worker.worker_id, rng, now, target_incident=incident_id)
        return restart_flyd(state, worker.worker_id, now, also_resolve=incident_id)

    if success and fix.takes_time and worker is not None:
        state = state.with_worker(
            replace(worker, flyd_status=FlydStatus.RESTARTING, restart_start_time=now)
        )
    if success:
        state = _update_incident(state, incident.mark_resolved())

    score = state.score
    state = replace(
        state,
        score=replace(
            score,
            successful_migrations=score.successful_migrations + (1 if success else 0),
            failed_migrations=score.failed_migrations + (0 if success else 1),
        ),
    )

    if success:
        timing = (
            "Restart initiated - will take 3 seconds."
            if fix.takes_time
            else "Incident resolved immediately."
        )
        hint = (
            "Investigation data helped improve success rate."
            if incident.investigated
            else "Consider investigating first for better outcomes."
        )
        return _feedback(
            state,
            FeedbackKind.SUCCESS,
            "Quick Fix Applied",
            f"Applied quick fix: {fix.action}. {timing} {hint}",
            now,
        )
    hint = (
        "Try alternative approaches."
        if incident.investigated
        else "Investigation might reveal better solutions."
    )
    return _feedback(
        state,
        FeedbackKind.WARNING,
        "Quick Fix Failed",
        f"Quick fix ({fix.action}) failed to resolve the incident. {hint}",
        now,
    )
