"""World-state data model: workers, FSM operations, incidents, score.

Every entity here is a frozen dataclass.  The reducer never mutates a
snapshot in place; it builds a new one with ``dataclasses.replace`` and
hands it back, so a ``GameState`` read by the presentation layer (or by
the incident-generation timer) can never change underneath the reader.

Collections inside a snapshot are tuples (ordered) or frozensets
(membership only).  Enum members carry the lowercase wire value used in
``to_dict()`` payloads, so the HTTP/WebSocket surface and the test
assertions speak the same vocabulary as the dashboards.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable


# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

class WorkerStatus(Enum):
    """Aggregate health of a worker host."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    OFFLINE = "offline"


class FlydStatus(Enum):
    """Operational mode of the per-worker orchestration daemon."""
    RUNNING = "running"
    STALLED = "stalled"
    RESTARTING = "restarting"


class ContainerdHealth(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"


class NetworkStatus(Enum):
    CONNECTED = "connected"
    DEGRADED = "degraded"
    DISCONNECTED = "disconnected"


class FSMType(Enum):
    """Kinds of long-running operation a worker can track."""
    MACHINE_CREATION = "machine_creation"
    MIGRATION = "migration"
    BOOT = "boot"
    CLEANUP = "cleanup"


class MigrationState(Enum):
    """Named states of a migration FSM.

    The first six form the time-gated timeline; ERROR_RECOVERY sits outside
    it and is only entered when a drain fails.
    """
    PENDING = "pending"
    CLONING = "cloning"
    HYDRATING = "hydrating"
    BOOTING_NEW = "booting_new"
    RUNNING_NEW = "running_new"
    CLEANUP_OLD = "cleanup_old"
    ERROR_RECOVERY = "error_recovery"


class InertState(Enum):
    """Single state shared by operation kinds with no progression yet."""
    PENDING = "pending"


# Operation kind -> the enum its ``state`` must be drawn from
STATE_VOCABULARY: dict[FSMType, type[Enum]] = {
    FSMType.MIGRATION: MigrationState,
    FSMType.MACHINE_CREATION: InertState,
    FSMType.BOOT: InertState,
    FSMType.CLEANUP: InertState,
}


class IncidentType(Enum):
    FLYD_STALLED = "flyd_stalled"
    MIGRATION_STUCK = "migration_stuck"
    NETWORK_PARTITION = "network_partition"
    STORAGE_CORRUPTION = "storage_corruption"
    CONTAINERD_SYNC = "containerd_sync"
    MEMORY_LEAK = "memory_leak"
    DISK_IO_BOTTLENECK = "disk_io_bottleneck"
    KERNEL_PANIC = "kernel_panic"
    NETWORK_CONGESTION = "network_congestion"
    DNS_FAILURE = "dns_failure"
    CONFIG_CORRUPTION = "config_corruption"
    HARDWARE_DEGRADATION = "hardware_degradation"
    STORAGE_SPREADING = "storage_spreading"
    NETWORK_HARDWARE_FAILURE = "network_hardware_failure"


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FeedbackKind(Enum):
    """Tone of the transient feedback message shown after an action."""
    INVESTIGATION = "investigation"
    ACTION = "action"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


def round_tenth(value: float) -> float:
    """Round half-up to one decimal place (57.25 -> 57.3, not 57.2)."""
    return math.floor(value * 10 + 0.5) / 10


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    result = float(value)
    if not math.isfinite(result):
        raise ValueError(f"expected a finite number, got {value!r}")
    return result


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Gauges:
    """A cpu/memory/disk triple in percent.

    Used for a worker's immutable baseline, for each tick's reading, and
    for the additive penalty tables.
    """

    cpu: float = 0.0
    memory: float = 0.0
    disk: float = 0.0

    def __add__(self, other: Gauges) -> Gauges:
        return Gauges(
            self.cpu + other.cpu,
            self.memory + other.memory,
            self.disk + other.disk,
        )

    def to_dict(self) -> dict[str, float]:
        return {"cpu": self.cpu, "memory": self.memory, "disk": self.disk}


@dataclass(frozen=True)
class FSMOperation:
    """A multi-step operation owned by exactly one worker."""

    op_id: str
    type: FSMType
    state: Enum
    progress: float
    machine_id: str
    start_time: float  # wall-clock ms

    def __post_init__(self) -> None:
        vocabulary = STATE_VOCABULARY[self.type]
        if not isinstance(self.state, vocabulary):
            raise ValueError(
                f"{self.type.value} operation cannot be in state {self.state!r}"
            )

    @property
    def is_migration(self) -> bool:
        return self.type is FSMType.MIGRATION

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.op_id,
            "type": self.type.value,
            "state": self.state.value,
            "progress": self.progress,
            "machine_id": self.machine_id,
            "start_time": self.start_time,
        }


@dataclass(frozen=True)
class Worker:
    """A simulated compute host running the orchestration daemon."""

    worker_id: str
    name: str
    base_stats: Gauges
    status: WorkerStatus = WorkerStatus.HEALTHY
    cpu: float = 0.0
    memory: float = 0.0
    disk: float = 0.0
    flyd_status: FlydStatus = FlydStatus.RUNNING
    containerd_health: ContainerdHealth = ContainerdHealth.HEALTHY
    network_status: NetworkStatus = NetworkStatus.CONNECTED
    active_machines: int = 12
    active_fsms: tuple[FSMOperation, ...] = ()
    restart_start_time: float | None = None

    @property
    def gauges(self) -> Gauges:
        return Gauges(self.cpu, self.memory, self.disk)

    @property
    def has_active_migration(self) -> bool:
        """True while any migration FSM on this worker is unfinished."""
        return any(op.is_migration and op.progress < 100 for op in self.active_fsms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.worker_id,
            "name": self.name,
            "status": self.status.value,
            "cpu": self.cpu,
            "memory": self.memory,
            "disk": self.disk,
            "flyd_status": self.flyd_status.value,
            "containerd_health": self.containerd_health.value,
            "network_status": self.network_status.value,
            "active_machines": self.active_machines,
            "active_fsms": [op.to_dict() for op in self.active_fsms],
            "restart_start_time": self.restart_start_time,
            "base_stats": self.base_stats.to_dict(),
        }


@dataclass(frozen=True)
class Incident:
    """A discrete fault event.  ``worker_id`` is a reference, not ownership."""

    incident_id: str
    type: IncidentType
    severity: Severity
    title: str
    description: str
    timestamp: float  # wall-clock ms
    worker_id: str | None = None
    resolved: bool = False
    auto_resolve_time: float | None = None
    investigated: bool = False
    log_viewed: bool = False
    uptime_impact: float = 0.0
    requires_drain: bool = False
    is_first_time: bool = False

    def mark_resolved(self) -> Incident:
        if self.resolved:
            return self
        return replace(self, resolved=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.incident_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "worker_id": self.worker_id,
            "title": self.title,
            "description": self.description,
            "timestamp": self.timestamp,
            "resolved": self.resolved,
            "auto_resolve_time": self.auto_resolve_time,
            "investigated": self.investigated,
            "log_viewed": self.log_viewed,
            "uptime_impact": self.uptime_impact,
            "requires_drain": self.requires_drain,
            "is_first_time": self.is_first_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Incident:
        """Build an incident from a wire payload (enum values as strings)."""
        return cls(
            incident_id=str(data["id"]),
            type=IncidentType(data["type"]),
            severity=Severity(data["severity"]),
            title=data.get("title", ""),
            description=data.get("description", ""),
            timestamp=float(data["timestamp"]),
            worker_id=data.get("worker_id"),
            resolved=bool(data.get("resolved", False)),
            auto_resolve_time=_optional_float(data.get("auto_resolve_time")),
            investigated=bool(data.get("investigated", False)),
            log_viewed=bool(data.get("log_viewed", False)),
            uptime_impact=float(data.get("uptime_impact", 0.0)),
            requires_drain=bool(data.get("requires_drain", False)),
            is_first_time=bool(data.get("is_first_time", False)),
        )


@dataclass(frozen=True)
class Score:
    """Headline KPIs.

    ``uptime`` is recomputed from scratch every tick; the counters only
    ever grow.
    """

    uptime: float = 100.0
    successful_migrations: int = 0
    failed_migrations: int = 0
    risky_actions: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "uptime": self.uptime,
            "successful_migrations": self.successful_migrations,
            "failed_migrations": self.failed_migrations,
            "risky_actions": self.risky_actions,
        }


@dataclass(frozen=True)
class ActionFeedback:
    kind: FeedbackKind
    title: str
    message: str
    timestamp: float  # wall-clock ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "title": self.title,
            "message": self.message,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class GameState:
    """One immutable snapshot of the whole world.

    Selection, tutorial and help fields are presentation state the engine
    carries through untouched.
    """

    workers: tuple[Worker, ...] = ()
    incidents: tuple[Incident, ...] = ()
    score: Score = field(default_factory=Score)
    day: int = 1
    time_in_day: int = 0
    game_speed: float = 1.0
    paused: bool = False
    game_started: bool = False
    game_ended: bool = False
    final_score: str | None = None
    action_feedback: ActionFeedback | None = None
    seen_incident_types: frozenset[IncidentType] = frozenset()
    selected_worker: str | None = None
    selected_incident: str | None = None
    tutorial_step: int = 0
    show_tutorial: bool = True
    show_help: bool = False

    @property
    def is_running(self) -> bool:
        """True when clock ticks and incident generation should fire."""
        return self.game_started and not self.paused and not self.game_ended

    # -- Lookups ---------------------------------------------------------------

    def find_worker(self, worker_id: str | None) -> Worker | None:
        for worker in self.workers:
            if worker.worker_id == worker_id:
                return worker
        return None

    def find_incident(self, incident_id: str | None) -> Incident | None:
        for incident in self.incidents:
            if incident.incident_id == incident_id:
                return incident
        return None

    def active_incidents(self) -> list[Incident]:
        return [i for i in self.incidents if not i.resolved]

    def recent_resolved(self, limit: int = 3) -> list[Incident]:
        """Tail of the resolved history, oldest first."""
        resolved = [i for i in self.incidents if i.resolved]
        return resolved[-limit:] if limit > 0 else []

    # -- Copy-on-write helpers -------------------------------------------------

    def with_worker(self, worker: Worker) -> GameState:
        workers = tuple(
            worker if w.worker_id == worker.worker_id else w for w in self.workers
        )
        return replace(self, workers=workers)

    def with_incidents(self, incidents: Iterable[Incident]) -> GameState:
        return replace(self, incidents=tuple(incidents))

    def to_dict(self) -> dict[str, Any]:
        return {
            "day": self.day,
            "time_in_day": self.time_in_day,
            "game_speed": self.game_speed,
            "paused": self.paused,
            "game_started": self.game_started,
            "game_ended": self.game_ended,
            "final_score": self.final_score,
            "workers": [w.to_dict() for w in self.workers],
            "incidents": [i.to_dict() for i in self.incidents],
            "active_incidents": [i.incident_id for i in self.active_incidents()],
            "recent_resolved": [i.incident_id for i in self.recent_resolved()],
            "score": self.score.to_dict(),
            "action_feedback": (
                self.action_feedback.to_dict() if self.action_feedback else None
            ),
            "seen_incident_types": sorted(t.value for t in self.seen_incident_types),
            "selected_worker": self.selected_worker,
            "selected_incident": self.selected_incident,
            "tutorial_step": self.tutorial_step,
            "show_tutorial": self.show_tutorial,
            "show_help": self.show_help,
        }
