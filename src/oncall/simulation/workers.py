"""Worker model: dynamic gauges, restart progression, per-tick update."""

from __future__ import annotations

import random
from dataclasses import replace
from typing import Iterable

from .catalog import profile_for
from .fsm import advance_all
from .models import (
    ContainerdHealth,
    FlydStatus,
    Gauges,
    Incident,
    MigrationState,
    Worker,
    WorkerStatus,
    round_tenth,
)

STAT_FLOOR = 5.0
STAT_CEILING = 100.0
JITTER_SPAN = 10.0  # +/-5 around the baseline

RESTART_DURATION_MS = 3000

# Every migration FSM adds this, plus the surcharge while hydrating
MIGRATION_LOAD = Gauges(cpu=15, memory=25)
HYDRATION_SURCHARGE = Gauges(cpu=10, memory=15)

FLYD_PENALTY: dict[FlydStatus, Gauges] = {
    FlydStatus.RUNNING: Gauges(),
    FlydStatus.RESTARTING: Gauges(cpu=30, memory=20),
    FlydStatus.STALLED: Gauges(cpu=40, memory=25),
}

DEFAULT_BASELINE = Gauges(cpu=45, memory=62, disk=78)
DEFAULT_MACHINES = 12


def make_worker(number: int, base: Gauges = DEFAULT_BASELINE) -> Worker:
    """A fresh, fully healthy worker reading exactly its baseline."""
    return Worker(
        worker_id=f"worker-{number}",
        name=f"fly-worker-ord-{number:02d}",
        base_stats=base,
        cpu=base.cpu,
        memory=base.memory,
        disk=base.disk,
        active_machines=DEFAULT_MACHINES,
    )


def _jitter(rng: random.Random) -> float:
    return (rng.random() - 0.5) * JITTER_SPAN


def _clamp(value: float, low: float) -> float:
    return round_tenth(max(low, min(STAT_CEILING, value)))


def compute_dynamic_stats(
    worker: Worker, incidents: Iterable[Incident], rng: random.Random
) -> Gauges:
    """Derive this tick's gauges for ``worker``.

    Baseline plus jitter plus every applicable penalty, then clamped:
    cpu and memory to [5, 100], disk to [baseline disk, 100].
    Draws exactly three values from ``rng`` (cpu, memory, disk order).
    """
    base = worker.base_stats
    reading = Gauges(
        base.cpu + _jitter(rng),
        base.memory + _jitter(rng),
        base.disk + _jitter(rng),
    )

    for incident in incidents:
        if incident.worker_id == worker.worker_id and not incident.resolved:
            reading = reading + profile_for(incident.type).penalty

    for op in worker.active_fsms:
        if op.is_migration:
            reading = reading + MIGRATION_LOAD
            if op.state is MigrationState.HYDRATING:
                reading = reading + HYDRATION_SURCHARGE

    reading = reading + FLYD_PENALTY[worker.flyd_status]

    return Gauges(
        cpu=_clamp(reading.cpu, STAT_FLOOR),
        memory=_clamp(reading.memory, STAT_FLOOR),
        disk=_clamp(reading.disk, base.disk),
    )


def progress_restart(worker: Worker, now: float) -> Worker:
    """Promote a restarting daemon back to running once its time is up."""
    if worker.flyd_status is not FlydStatus.RESTARTING or worker.restart_start_time is None:
        return worker
    if now - worker.restart_start_time <= RESTART_DURATION_MS:
        return worker
    return replace(
        worker,
        flyd_status=FlydStatus.RUNNING,
        restart_start_time=None,
        containerd_health=ContainerdHealth.HEALTHY,
    )


def tick_worker(
    worker: Worker,
    incidents: Iterable[Incident],
    rng: random.Random,
    now: float,
) -> Worker:
    """One tick of worker progression.

    Order matters: restart progression, then FSM advancement (which may
    bring a drained worker back to healthy), then the gauges, which see
    the already-advanced FSM list.
    """
    worker = progress_restart(worker, now)

    active, any_completed = advance_all(worker.active_fsms, now)
    status = worker.status
    if status is WorkerStatus.DEGRADED and not active and any_completed:
        status = WorkerStatus.HEALTHY
    worker = replace(worker, active_fsms=active, status=status)

    gauges = compute_dynamic_stats(worker, incidents, rng)
    return replace(worker, cpu=gauges.cpu, memory=gauges.memory, disk=gauges.disk)


def clone_worker(template: Worker, number: int) -> Worker:
    """New fleet member sharing ``template``'s baseline."""
    return make_worker(number, template.base_stats)
