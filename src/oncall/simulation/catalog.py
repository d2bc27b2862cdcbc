"""Incident catalog: the per-type policy tables.

Every incident type has exactly one ``IncidentProfile`` holding everything
the engine needs to know about it:

  - what a freshly generated incident looks like (severity, title,
    description, uptime weight, whether only a drain clears it);
  - which generation pool it belongs to (``IncidentCategory``);
  - how much extra load it puts on its worker each tick;
  - what it does to the worker's subsystems the moment it appears;
  - the investigation narrative and the daemon log line;
  - the one-click quick fix offered for it.

The tables are checked for exhaustiveness over ``IncidentType`` at import
time.  A missing entry is a configuration error, not a silent fallback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .models import (
    ContainerdHealth,
    FlydStatus,
    Gauges,
    IncidentType,
    NetworkStatus,
    Severity,
    WorkerStatus,
)


class CatalogError(ValueError):
    """A policy table does not cover every incident type."""


class IncidentCategory(Enum):
    """Generation pool an incident type is drawn from."""
    DAEMON = "daemon"
    CONTAINERD = "containerd"
    NETWORK = "network"
    STORAGE = "storage"
    HARDWARE = "hardware"
    BASELINE = "baseline"
    MIGRATION = "migration"  # never generated, only injected via ADD_INCIDENT


class FixAlias(Enum):
    """Full action a successful quick fix delegates to."""
    RESTART_FLYD = "restart_flyd"
    DRAIN_WORKER = "drain_worker"


@dataclass(frozen=True)
class QuickFix:
    action: str
    success: float
    takes_time: bool
    alias: FixAlias | None = None


@dataclass(frozen=True)
class IncidentProfile:
    severity: Severity
    category: IncidentCategory
    title: str
    description: str
    uptime_impact: float
    penalty: Gauges
    investigation_title: str
    investigation: str
    log_line: str
    quick_fix: QuickFix
    first_time_note: str
    requires_drain: bool = False
    worker_effect: dict[str, Any] = field(default_factory=dict)


CATALOG: dict[IncidentType, IncidentProfile] = {
    IncidentType.FLYD_STALLED: IncidentProfile(
        severity=Severity.HIGH,
        category=IncidentCategory.DAEMON,
        title="flyd Process Stalled",
        description="flyd process on worker has become unresponsive. FSM operations are backing up.",
        uptime_impact=15,
        penalty=Gauges(cpu=25, memory=15),
        investigation_title="Investigation Complete",
        investigation=(
            "Root cause: flyd FSM stuck in machine_boot transition for 300+ seconds. "
            "Worker has 8 pending FSM operations queued. Restart will clear the queue "
            "and resume normal operations."
        ),
        log_line=(
            "ERROR [FSM] machine_boot transition timeout after 300s. "
            "State: pending -> stuck. Queue depth: 8 operations"
        ),
        quick_fix=QuickFix("Restart flyd", 0.2, takes_time=True, alias=FixAlias.RESTART_FLYD),
        first_time_note=(
            "flyd drives every machine through its FSM. When it stalls, nothing new "
            "boots and queued operations pile up until the daemon is restarted."
        ),
        worker_effect={"flyd_status": FlydStatus.STALLED},
    ),
    IncidentType.MIGRATION_STUCK: IncidentProfile(
        severity=Severity.HIGH,
        category=IncidentCategory.MIGRATION,
        title="Migration Stuck",
        description="dm-clone hydration has stopped making progress. Migration cannot complete.",
        uptime_impact=12,
        penalty=Gauges(cpu=20, memory=30),
        investigation_title="Migration Analysis",
        investigation=(
            "dm-clone hydration stalled at 45% for 12 minutes. Network throughput "
            "dropped to 0 MB/s. Target worker may have storage issues or network partition."
        ),
        log_line=(
            "WARN [dm-clone] hydration stalled. Progress: 45%. "
            "Network throughput: 0 MB/s. Retry count: 15"
        ),
        quick_fix=QuickFix("Cancel migration", 0.15, takes_time=False),
        first_time_note=(
            "Migrations copy a volume block by block while the new machine boots. "
            "Hydration is the slowest phase and the one most likely to stall."
        ),
    ),
    IncidentType.CONTAINERD_SYNC: IncidentProfile(
        severity=Severity.MEDIUM,
        category=IncidentCategory.CONTAINERD,
        title="containerd Sync Issue",
        description=(
            "Lease database mismatch between flyd and containerd. "
            "Some containers in unknown state."
        ),
        uptime_impact=10,
        penalty=Gauges(cpu=15, memory=20),
        investigation_title="Sync Investigation",
        investigation=(
            "flyd lease database shows 12 active containers, but containerd reports "
            "only 8 running. 4 containers in unknown state. Restart will force lease "
            "reconciliation."
        ),
        log_line=(
            "ERROR [lease] mismatch detected. Expected: 12 containers, Actual: 8. "
            "Missing: [app-1, app-2, app-3, app-4]"
        ),
        quick_fix=QuickFix("Restart flyd", 0.25, takes_time=True, alias=FixAlias.RESTART_FLYD),
        first_time_note=(
            "flyd and containerd each keep their own record of running containers. "
            "A flyd restart reconciles the two lease tables."
        ),
        worker_effect={"containerd_health": ContainerdHealth.DEGRADED},
    ),
    IncidentType.NETWORK_PARTITION: IncidentProfile(
        severity=Severity.HIGH,
        category=IncidentCategory.NETWORK,
        title="Network Partition",
        description=(
            "Worker lost connectivity to coordination services. "
            "Local containers still running."
        ),
        uptime_impact=14,
        penalty=Gauges(cpu=10),
        investigation_title="Network Diagnosis",
        investigation=(
            "Worker lost connectivity to coordination services. 5 consecutive "
            "connection failures detected. Local containers still running but no new "
            "deployments possible."
        ),
        log_line=(
            "ERROR [coordination] connection failed. Endpoint: coord.fly.io:443. "
            "Retry 5/5 failed. Backoff: 30s"
        ),
        quick_fix=QuickFix("Restart networking", 0.2, takes_time=False),
        first_time_note=(
            "A partitioned worker keeps serving what it already runs, "
            "but the control plane can no longer schedule onto it."
        ),
        worker_effect={"network_status": NetworkStatus.DEGRADED},
    ),
    IncidentType.STORAGE_CORRUPTION: IncidentProfile(
        severity=Severity.HIGH,
        category=IncidentCategory.STORAGE,
        title="Storage Corruption",
        description="LVM metadata corruption detected. Data integrity at risk.",
        uptime_impact=18,
        penalty=Gauges(cpu=10, disk=20),
        investigation_title="Storage Analysis",
        investigation=(
            "LVM metadata corruption detected in volume group. 2 logical volumes "
            "affected. Data integrity at risk. Immediate evacuation required before "
            "total failure."
        ),
        log_line=(
            "FATAL [LVM] metadata read failed. VG: fly-volumes. "
            "Corrupted LVs: vol-abc123, vol-def456"
        ),
        quick_fix=QuickFix("Mark volumes read-only", 0.1, takes_time=False),
        first_time_note=(
            "Volumes live in an LVM volume group. Corrupt metadata can take "
            "every volume on the host down with it."
        ),
        worker_effect={"status": WorkerStatus.DEGRADED},
    ),
    IncidentType.MEMORY_LEAK: IncidentProfile(
        severity=Severity.HIGH,
        category=IncidentCategory.DAEMON,
        title="flyd Memory Leak",
        description="flyd process memory usage growing rapidly. FSM tracker leaking references.",
        uptime_impact=8,
        penalty=Gauges(cpu=10, memory=35),
        investigation_title="Memory Analysis",
        investigation=(
            "flyd process has grown to 2.8GB of memory usage. Leak detected in FSM "
            "state tracking. Restart will reclaim memory and reset the process heap."
        ),
        log_line=(
            "WARN [memory] Process memory usage: 2.8GB. Heap growth rate: +50MB/min. "
            "FSM tracker leaking references."
        ),
        quick_fix=QuickFix("Restart flyd", 0.2, takes_time=True, alias=FixAlias.RESTART_FLYD),
        first_time_note=(
            "A leaking daemon keeps working until the host runs out of memory. "
            "Restarting it early is cheaper than waiting for the OOM killer."
        ),
    ),
    IncidentType.DISK_IO_BOTTLENECK: IncidentProfile(
        severity=Severity.MEDIUM,
        category=IncidentCategory.BASELINE,
        title="Disk I/O Bottleneck",
        description=(
            "High disk queue depth causing slow machine operations. "
            "I/O latency increasing."
        ),
        uptime_impact=6,
        penalty=Gauges(cpu=15, disk=25),
        investigation_title="I/O Analysis",
        investigation=(
            "Disk I/O queue depth at 128+. Average latency 250ms. Multiple machines "
            "experiencing slow boot times. Consider migrating machines to reduce load."
        ),
        log_line=(
            "WARN [io] Disk I/O queue depth: 128. Average latency: 250ms. "
            "Throttling machine creation operations."
        ),
        quick_fix=QuickFix("Throttle I/O", 0.2, takes_time=False),
        first_time_note=(
            "Noisy neighbours share the same disks. Moving busy machines away "
            "relieves the queue."
        ),
        worker_effect={"status": WorkerStatus.DEGRADED},
    ),
    IncidentType.KERNEL_PANIC: IncidentProfile(
        severity=Severity.CRITICAL,
        category=IncidentCategory.HARDWARE,
        title="Kernel Panic",
        description="Worker kernel panic detected. Likely caused by faulty hardware or driver issue.",
        uptime_impact=20,
        penalty=Gauges(cpu=30, memory=20),
        investigation_title="Kernel Analysis",
        investigation=(
            "Worker kernel panic detected in dmesg logs. Likely caused by faulty "
            "hardware or driver issue. Worker requires immediate reboot."
        ),
        log_line=(
            "FATAL [kernel] Kernel panic detected. "
            "Call trace: [flyio_virtio_driver+0x1234]. Worker unstable."
        ),
        quick_fix=QuickFix("Reboot worker", 0.15, takes_time=True, alias=FixAlias.RESTART_FLYD),
        first_time_note=(
            "A kernel panic takes every machine on the host with it. "
            "Check dmesg before assuming it was a one-off."
        ),
        worker_effect={"status": WorkerStatus.CRITICAL},
    ),
    IncidentType.NETWORK_CONGESTION: IncidentProfile(
        severity=Severity.MEDIUM,
        category=IncidentCategory.NETWORK,
        title="Network Congestion",
        description="High packet loss and latency affecting machine operations and migrations.",
        uptime_impact=8,
        penalty=Gauges(cpu=15),
        investigation_title="Network Analysis",
        investigation=(
            "Network interface showing 85% packet loss and high retransmit rate. "
            "Possible switch issue or NIC failure. Consider draining worker."
        ),
        log_line=(
            "ERROR [network] Packet loss: 85%. RTT: 1250ms. TCP retransmits: 42%. "
            "Network interface degraded."
        ),
        quick_fix=QuickFix("Reset NIC", 0.15, takes_time=False),
        first_time_note=(
            "Congestion burns CPU on retransmits and slows every migration "
            "that crosses the link."
        ),
        worker_effect={"network_status": NetworkStatus.DEGRADED},
    ),
    IncidentType.DNS_FAILURE: IncidentProfile(
        severity=Severity.LOW,
        category=IncidentCategory.BASELINE,
        title="DNS Resolution Failure",
        description=(
            "Worker unable to resolve internal DNS names. "
            "Local resolver cache may be corrupted."
        ),
        uptime_impact=2,
        penalty=Gauges(cpu=5),
        investigation_title="DNS Analysis",
        investigation=(
            "Worker unable to resolve internal DNS names. Local resolver cache "
            "corrupted. Restart networking services to rebuild cache."
        ),
        log_line=(
            "ERROR [dns] Failed to resolve coord.fly.io. Error: SERVFAIL. "
            "Local resolver cache may be corrupted."
        ),
        quick_fix=QuickFix("Flush DNS cache", 0.25, takes_time=False),
        first_time_note=(
            "Internal service discovery runs over DNS. A bad resolver cache "
            "looks like every dependency going down at once."
        ),
        worker_effect={"network_status": NetworkStatus.DEGRADED},
    ),
    IncidentType.CONFIG_CORRUPTION: IncidentProfile(
        severity=Severity.HIGH,
        category=IncidentCategory.DAEMON,
        title="flyd Config Corruption",
        description="flyd configuration file has become corrupted with invalid JSON syntax.",
        uptime_impact=12,
        penalty=Gauges(cpu=20, memory=10),
        investigation_title="Config Analysis",
        investigation=(
            "flyd configuration file corrupted with invalid JSON. Detected 3 syntax "
            "errors. Restart will reload from backup config."
        ),
        log_line=(
            "ERROR [config] Failed to parse /etc/flyd/config.json: Unexpected token "
            "at line 42. Using fallback config."
        ),
        quick_fix=QuickFix("Restore config", 0.2, takes_time=True, alias=FixAlias.RESTART_FLYD),
        first_time_note=(
            "flyd falls back to a stale config when the live one will not parse. "
            "A restart reloads it from the last good backup."
        ),
        worker_effect={"flyd_status": FlydStatus.STALLED},
    ),
    IncidentType.HARDWARE_DEGRADATION: IncidentProfile(
        severity=Severity.CRITICAL,
        category=IncidentCategory.HARDWARE,
        title="Hardware Degradation",
        description="ECC memory errors increasing exponentially. Hardware failure imminent.",
        uptime_impact=22,
        penalty=Gauges(cpu=20, memory=10, disk=10),
        investigation_title="Hardware Analysis",
        investigation=(
            "CRITICAL: ECC memory errors increasing exponentially. CPU thermal "
            "throttling detected. Hardware failure imminent within 2-4 hours. "
            "IMMEDIATE DRAIN REQUIRED."
        ),
        log_line=(
            "FATAL [hardware] ECC errors: 847 in last hour. CPU temp: 89°C "
            "(throttling). Memory test failures detected."
        ),
        quick_fix=QuickFix("Emergency drain", 0.1, takes_time=True, alias=FixAlias.DRAIN_WORKER),
        first_time_note=(
            "Failing hardware never heals on its own. The only safe move is to "
            "evacuate the host before it dies."
        ),
        requires_drain=True,
        worker_effect={"status": WorkerStatus.CRITICAL},
    ),
    IncidentType.STORAGE_SPREADING: IncidentProfile(
        severity=Severity.CRITICAL,
        category=IncidentCategory.STORAGE,
        title="Storage Corruption Spreading",
        description=(
            "LVM corruption spreading across volume group. "
            "Immediate evacuation required."
        ),
        uptime_impact=30,
        penalty=Gauges(cpu=15, disk=30),
        investigation_title="Storage Analysis",
        investigation=(
            "CRITICAL: LVM corruption spreading across volume group. 6 volumes now "
            "affected, up from 2. Filesystem errors detected. IMMEDIATE DRAIN "
            "REQUIRED to prevent total data loss."
        ),
        log_line=(
            "FATAL [storage] LVM corruption spreading. Affected LVs: 6/12. "
            "Filesystem errors: ext4 journal corruption detected."
        ),
        quick_fix=QuickFix("Emergency drain", 0.1, takes_time=True, alias=FixAlias.DRAIN_WORKER),
        first_time_note=(
            "Spreading corruption means the volume group itself is failing. "
            "Every minute on this host risks more customer data."
        ),
        requires_drain=True,
        worker_effect={"status": WorkerStatus.CRITICAL},
    ),
    IncidentType.NETWORK_HARDWARE_FAILURE: IncidentProfile(
        severity=Severity.CRITICAL,
        category=IncidentCategory.NETWORK,
        title="Network Hardware Failure",
        description="NIC firmware corruption detected. Connection drops every 30-60 seconds.",
        uptime_impact=25,
        penalty=Gauges(cpu=15),
        investigation_title="Network Hardware Analysis",
        investigation=(
            "CRITICAL: NIC firmware corruption detected. Switch port showing CRC "
            "errors. Connection drops every 30-60 seconds. IMMEDIATE DRAIN REQUIRED "
            "before total network failure."
        ),
        log_line=(
            "FATAL [network] NIC firmware CRC mismatch. Switch port errors: 1247. "
            "Connection drops every 45s average."
        ),
        quick_fix=QuickFix("Emergency drain", 0.1, takes_time=True, alias=FixAlias.DRAIN_WORKER),
        first_time_note=(
            "A flapping NIC cannot be fixed remotely. Drain the worker while "
            "the link still holds long enough to migrate."
        ),
        requires_drain=True,
        worker_effect={"status": WorkerStatus.CRITICAL},
    ),
}

# Pool order the generator walks when building its candidate list
GENERATION_ORDER: tuple[IncidentType, ...] = (
    IncidentType.FLYD_STALLED,
    IncidentType.MEMORY_LEAK,
    IncidentType.CONFIG_CORRUPTION,
    IncidentType.CONTAINERD_SYNC,
    IncidentType.NETWORK_PARTITION,
    IncidentType.NETWORK_CONGESTION,
    IncidentType.NETWORK_HARDWARE_FAILURE,
    IncidentType.STORAGE_CORRUPTION,
    IncidentType.STORAGE_SPREADING,
    IncidentType.HARDWARE_DEGRADATION,
    IncidentType.KERNEL_PANIC,
    IncidentType.DISK_IO_BOTTLENECK,
    IncidentType.DNS_FAILURE,
)

# Cleared outright the moment flyd is restarted
RESTART_RESOLVES: frozenset[IncidentType] = frozenset({
    IncidentType.FLYD_STALLED,
    IncidentType.CONTAINERD_SYNC,
    IncidentType.MEMORY_LEAK,
    IncidentType.CONFIG_CORRUPTION,
})

# Not generated while the daemon is already restarting
RESTART_CONFLICTS: frozenset[IncidentType] = RESTART_RESOLVES | {IncidentType.KERNEL_PANIC}

# Not generated while a migration is in flight
DRAIN_REQUIRED: frozenset[IncidentType] = frozenset(
    t for t, p in CATALOG.items() if p.requires_drain
)


def profile_for(incident_type: IncidentType) -> IncidentProfile:
    return CATALOG[incident_type]


def check_exhaustive(table: dict, name: str) -> None:
    """Raise CatalogError unless ``table`` has an entry for every type."""
    missing = [t.value for t in IncidentType if t not in table]
    if missing:
        raise CatalogError(f"{name} has no entry for: {', '.join(missing)}")


def _check_catalog() -> None:
    check_exhaustive(CATALOG, "CATALOG")
    for incident_type, profile in CATALOG.items():
        if not 0.0 <= profile.quick_fix.success <= 1.0:
            raise CatalogError(
                f"{incident_type.value}: quick-fix success {profile.quick_fix.success} "
                "is not a probability"
            )
    generated = set(GENERATION_ORDER)
    for incident_type, profile in CATALOG.items():
        never_generated = profile.category is IncidentCategory.MIGRATION
        if never_generated == (incident_type in generated):
            raise CatalogError(
                f"{incident_type.value}: category {profile.category.value} does not "
                "match GENERATION_ORDER"
            )


_check_catalog()
