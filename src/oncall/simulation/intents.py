"""Tagged intents: the one dispatch surface into the engine.

Every intent is a small frozen dataclass with a ``tag`` class attribute
matching its wire name.  ``parse_intent`` turns a JSON-style dict
(``{"type": "DRAIN_WORKER", "worker_id": "worker-1"}``) into the right
intent, raising ``IntentError`` for anything malformed.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar

from .models import (
    ContainerdHealth,
    FlydStatus,
    Incident,
    IncidentType,
    NetworkStatus,
    WorkerStatus,
)


class IntentError(ValueError):
    """An intent is structurally invalid (unknown tag, bad field, bad value)."""


@dataclass(frozen=True)
class Intent:
    tag: ClassVar[str] = ""


@dataclass(frozen=True)
class StartGame(Intent):
    tag: ClassVar[str] = "START_GAME"


@dataclass(frozen=True)
class PauseGame(Intent):
    tag: ClassVar[str] = "PAUSE_GAME"


@dataclass(frozen=True)
class ResumeGame(Intent):
    tag: ClassVar[str] = "RESUME_GAME"


@dataclass(frozen=True)
class ResetGame(Intent):
    tag: ClassVar[str] = "RESET_GAME"


@dataclass(frozen=True)
class Tick(Intent):
    tag: ClassVar[str] = "TICK"


@dataclass(frozen=True)
class SetGameSpeed(Intent):
    tag: ClassVar[str] = "SET_GAME_SPEED"
    speed: float = 1.0

    def __post_init__(self) -> None:
        if not isinstance(self.speed, (int, float)) or isinstance(self.speed, bool):
            raise IntentError(f"game speed must be a number, got {self.speed!r}")
        if not math.isfinite(self.speed):
            raise IntentError(f"game speed must be finite, got {self.speed}")
        if self.speed <= 0:
            raise IntentError(f"game speed must be positive, got {self.speed}")


@dataclass(frozen=True)
class SelectWorker(Intent):
    tag: ClassVar[str] = "SELECT_WORKER"
    worker_id: str | None = None


@dataclass(frozen=True)
class SelectIncident(Intent):
    tag: ClassVar[str] = "SELECT_INCIDENT"
    incident_id: str | None = None


# -- Worker actions ------------------------------------------------------------

@dataclass(frozen=True)
class RestartFlyd(Intent):
    tag: ClassVar[str] = "RESTART_FLYD"
    worker_id: str


@dataclass(frozen=True)
class DrainWorker(Intent):
    tag: ClassVar[str] = "DRAIN_WORKER"
    worker_id: str


@dataclass(frozen=True)
class CheckContainerd(Intent):
    tag: ClassVar[str] = "CHECK_CONTAINERD"
    worker_id: str


@dataclass(frozen=True)
class InspectLvm(Intent):
    tag: ClassVar[str] = "INSPECT_LVM"
    worker_id: str


# -- Incident actions ----------------------------------------------------------

@dataclass(frozen=True)
class InvestigateIncident(Intent):
    tag: ClassVar[str] = "INVESTIGATE_INCIDENT"
    incident_id: str


@dataclass(frozen=True)
class ViewFlydLogs(Intent):
    tag: ClassVar[str] = "VIEW_FLYD_LOGS"
    incident_id: str


@dataclass(frozen=True)
class ForceFsmTransition(Intent):
    tag: ClassVar[str] = "FORCE_FSM_TRANSITION"
    incident_id: str


@dataclass(frozen=True)
class QuickFixIncident(Intent):
    tag: ClassVar[str] = "QUICK_FIX_INCIDENT"
    incident_id: str


# -- World edits ---------------------------------------------------------------

@dataclass(frozen=True)
class AddIncident(Intent):
    tag: ClassVar[str] = "ADD_INCIDENT"
    incident: Incident

    def __post_init__(self) -> None:
        if not isinstance(self.incident, Incident):
            raise IntentError(f"ADD_INCIDENT needs an Incident, got {type(self.incident).__name__}")


# Fields UPDATE_WORKER may touch, with the type each value is coerced to
WORKER_UPDATABLE: dict[str, type] = {
    "status": WorkerStatus,
    "cpu": float,
    "memory": float,
    "disk": float,
    "flyd_status": FlydStatus,
    "containerd_health": ContainerdHealth,
    "network_status": NetworkStatus,
    "active_machines": int,
    "restart_start_time": float,
}


def _coerce_update(name: str, value: Any) -> Any:
    if name not in WORKER_UPDATABLE:
        raise IntentError(f"worker field {name!r} cannot be updated")
    target = WORKER_UPDATABLE[name]
    if value is None and name == "restart_start_time":
        return None
    if isinstance(value, target):
        return value
    try:
        coerced = target(value)
    except (TypeError, ValueError) as exc:
        raise IntentError(f"invalid value for {name}: {value!r}") from exc
    if target is float and not math.isfinite(coerced):
        raise IntentError(f"invalid value for {name}: {value!r}")
    return coerced


@dataclass(frozen=True)
class UpdateWorker(Intent):
    tag: ClassVar[str] = "UPDATE_WORKER"
    worker_id: str
    updates: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.updates, dict):
            raise IntentError(
                f"UPDATE_WORKER updates must be an object, got {type(self.updates).__name__}"
            )
        coerced = {k: _coerce_update(k, v) for k, v in self.updates.items()}
        object.__setattr__(self, "updates", coerced)


@dataclass(frozen=True)
class ClearFeedback(Intent):
    tag: ClassVar[str] = "CLEAR_FEEDBACK"


@dataclass(frozen=True)
class MarkIncidentTypeSeen(Intent):
    tag: ClassVar[str] = "MARK_INCIDENT_TYPE_SEEN"
    incident_type: IncidentType

    def __post_init__(self) -> None:
        if not isinstance(self.incident_type, IncidentType):
            try:
                object.__setattr__(self, "incident_type", IncidentType(self.incident_type))
            except ValueError as exc:
                raise IntentError(f"unknown incident type {self.incident_type!r}") from exc


# -- Tutorial / help -----------------------------------------------------------

@dataclass(frozen=True)
class NextTutorialStep(Intent):
    tag: ClassVar[str] = "NEXT_TUTORIAL_STEP"


@dataclass(frozen=True)
class SkipTutorial(Intent):
    tag: ClassVar[str] = "SKIP_TUTORIAL"


@dataclass(frozen=True)
class ShowHelp(Intent):
    tag: ClassVar[str] = "SHOW_HELP"


@dataclass(frozen=True)
class HideHelp(Intent):
    tag: ClassVar[str] = "HIDE_HELP"


INTENT_TYPES: dict[str, type[Intent]] = {
    cls.tag: cls
    for cls in (
        StartGame, PauseGame, ResumeGame, ResetGame, Tick, SetGameSpeed,
        SelectWorker, SelectIncident,
        RestartFlyd, DrainWorker, CheckContainerd, InspectLvm,
        InvestigateIncident, ViewFlydLogs, ForceFsmTransition, QuickFixIncident,
        AddIncident, UpdateWorker, ClearFeedback, MarkIncidentTypeSeen,
        NextTutorialStep, SkipTutorial, ShowHelp, HideHelp,
    )
}


def parse_intent(payload: dict[str, Any]) -> Intent:
    """Build an intent from a wire dict keyed by ``type``."""
    if not isinstance(payload, dict):
        raise IntentError("intent payload must be an object")
    body = dict(payload)
    tag = body.pop("type", None)
    cls = INTENT_TYPES.get(tag) if isinstance(tag, str) else None
    if cls is None:
        raise IntentError(f"unknown intent type {tag!r}")

    known = {f.name for f in fields(cls)}
    unexpected = set(body) - known
    if unexpected:
        raise IntentError(f"{tag} does not accept: {', '.join(sorted(unexpected))}")

    if cls is AddIncident and isinstance(body.get("incident"), dict):
        try:
            body["incident"] = Incident.from_dict(body["incident"])
        except (KeyError, TypeError, ValueError) as exc:
            raise IntentError(f"invalid incident: {exc}") from exc

    try:
        return cls(**body)
    except TypeError as exc:
        raise IntentError(f"{tag}: {exc}") from exc
