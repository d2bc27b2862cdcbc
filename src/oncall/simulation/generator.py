"""Incident generator: context-aware, probabilistic incident producer.

Fires on its own coarse cadence.  Each firing picks one worker at random
and may raise one incident against it.  The candidate pool depends on what
the worker is doing right now, so a daemon that is already restarting is
not told it has stalled, and a worker mid-drain is not handed another
evacuation-only fault.
"""

from __future__ import annotations

import random
from dataclasses import replace

from loguru import logger

from .catalog import (
    CATALOG,
    DRAIN_REQUIRED,
    GENERATION_ORDER,
    RESTART_CONFLICTS,
    IncidentCategory,
)
from .models import (
    ContainerdHealth,
    FlydStatus,
    GameState,
    Incident,
    IncidentType,
    NetworkStatus,
    Worker,
    WorkerStatus,
)

BASE_INCIDENT_RATE = 0.45
# Applied to degraded workers, which are skipped before the rate is used
DEGRADED_STRESS_MULTIPLIER = 1.5

_SKIP_STATUSES = (WorkerStatus.CRITICAL, WorkerStatus.DEGRADED)


def incident_rate(worker: Worker) -> float:
    multiplier = DEGRADED_STRESS_MULTIPLIER if worker.status is WorkerStatus.DEGRADED else 1.0
    return BASE_INCIDENT_RATE * multiplier


def _category_eligible(category: IncidentCategory, worker: Worker) -> bool:
    if category is IncidentCategory.DAEMON:
        return worker.flyd_status is FlydStatus.RUNNING and not worker.has_active_migration
    if category is IncidentCategory.CONTAINERD:
        return worker.containerd_health is ContainerdHealth.HEALTHY
    if category is IncidentCategory.NETWORK:
        return worker.network_status is NetworkStatus.CONNECTED
    return category in (
        IncidentCategory.STORAGE,
        IncidentCategory.HARDWARE,
        IncidentCategory.BASELINE,
    )


def candidate_pool(worker: Worker) -> list[IncidentType]:
    """Incident types that may be raised against ``worker`` right now."""
    pool = [
        t for t in GENERATION_ORDER
        if _category_eligible(CATALOG[t].category, worker)
    ]
    if worker.flyd_status is FlydStatus.RESTARTING:
        pool = [t for t in pool if t not in RESTART_CONFLICTS]
    if worker.has_active_migration:
        pool = [t for t in pool if t not in DRAIN_REQUIRED]
    return pool


def build_incident(
    incident_type: IncidentType,
    worker_id: str | None,
    now: float,
    rng: random.Random,
    first_time: bool = False,
) -> Incident:
    """Instantiate a catalog incident.

    First-of-its-kind incidents carry the educational note after their
    description.
    """
    profile = CATALOG[incident_type]
    description = profile.description
    if first_time:
        description = f"{description} {profile.first_time_note}"
    return Incident(
        incident_id=f"incident-{int(now)}-{rng.randrange(1_000_000):06d}",
        type=incident_type,
        severity=profile.severity,
        title=profile.title,
        description=description,
        timestamp=now,
        worker_id=worker_id,
        uptime_impact=float(profile.uptime_impact),
        requires_drain=profile.requires_drain,
        is_first_time=first_time,
    )


def generate_incident(state: GameState, rng: random.Random, now: float) -> Incident | None:
    """One generator firing against ``state``.  Returns None when nothing fires."""
    if not state.workers:
        logger.debug("Incident check skipped: no workers")
        return None

    worker = rng.choice(state.workers)
    if worker.status in _SKIP_STATUSES:
        logger.debug(f"Incident check skipped: {worker.worker_id} is {worker.status.value}")
        return None

    rate = incident_rate(worker)
    if rng.random() >= rate:
        logger.debug(f"No incident for {worker.worker_id} (rate {rate:.2f})")
        return None

    pool = candidate_pool(worker)
    logger.debug(f"Incident pool for {worker.worker_id}: {len(pool)} candidates")
    if not pool:
        return None

    incident_type = rng.choice(pool)
    first_time = incident_type not in state.seen_incident_types
    incident = build_incident(incident_type, worker.worker_id, now, rng, first_time)
    logger.info(
        f"Incident {incident.incident_id}: {incident.title} "
        f"on {worker.worker_id} ({incident.severity.value})"
    )
    return incident


def register_incident(state: GameState, incident: Incident) -> GameState:
    """Add ``incident`` to the world and apply its immediate worker effect.

    The type is recorded as seen; the seen set only ever grows.
    """
    effect = CATALOG[incident.type].worker_effect
    worker = state.find_worker(incident.worker_id)
    if worker is not None and effect:
        state = state.with_worker(replace(worker, **effect))
    return replace(
        state,
        incidents=state.incidents + (incident,),
        seen_incident_types=state.seen_incident_types | {incident.type},
    )
