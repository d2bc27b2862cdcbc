"""Game control API: lifecycle, worker and incident actions, generic dispatch."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from oncall.simulation import GameSession, GameState, IntentError, parse_intent
from oncall.simulation.intents import (
    CheckContainerd,
    DrainWorker,
    ForceFsmTransition,
    InspectLvm,
    Intent,
    InvestigateIncident,
    PauseGame,
    QuickFixIncident,
    ResetGame,
    RestartFlyd,
    ResumeGame,
    SetGameSpeed,
    StartGame,
    ViewFlydLogs,
)
from oncall.simulation.lifecycle import migration_success_ratio

router = APIRouter(prefix="/api/game", tags=["game"])


class SpeedRequest(BaseModel):
    speed: float = Field(gt=0, allow_inf_nan=False)


def _get_session(request: Request) -> GameSession:
    """Retrieve the GameSession from app state."""
    session = getattr(request.app.state, "game_session", None)
    if session is None:
        raise HTTPException(503, "Game session not available")
    return session


def _summary(state: GameState) -> dict:
    return {
        "day": state.day,
        "time_in_day": state.time_in_day,
        "game_started": state.game_started,
        "paused": state.paused,
        "game_ended": state.game_ended,
        "final_score": state.final_score,
        "score": state.score.to_dict(),
        "action_feedback": state.action_feedback.to_dict() if state.action_feedback else None,
    }


def _apply(session: GameSession, intent: Intent) -> dict:
    before, after = session.transition(intent)
    return {"intent": intent.tag, "changed": after is not before, **_summary(after)}


def _require_worker(session: GameSession, worker_id: str) -> None:
    if session.state.find_worker(worker_id) is None:
        raise HTTPException(404, f"Unknown worker: {worker_id}")


def _require_incident(session: GameSession, incident_id: str) -> None:
    if session.state.find_incident(incident_id) is None:
        raise HTTPException(404, f"Unknown incident: {incident_id}")


# -- State ---------------------------------------------------------------------

@router.get("/state")
async def get_game_state(request: Request):
    """Full world snapshot."""
    session = _get_session(request)
    state = session.state
    snapshot = state.to_dict()
    snapshot["migration_success_ratio"] = migration_success_ratio(state)
    snapshot["total_days"] = session.rules.total_days
    return snapshot


# -- Lifecycle -----------------------------------------------------------------

@router.post("/start")
async def start_game(request: Request):
    session = _get_session(request)
    if session.state.game_ended:
        raise HTTPException(400, "Game has ended; reset before starting again")
    return _apply(session, StartGame())


@router.post("/pause")
async def pause_game(request: Request):
    session = _get_session(request)
    if not session.state.game_started:
        raise HTTPException(400, "Game has not started")
    return _apply(session, PauseGame())


@router.post("/resume")
async def resume_game(request: Request):
    session = _get_session(request)
    if not session.state.game_started:
        raise HTTPException(400, "Game has not started")
    return _apply(session, ResumeGame())


@router.post("/reset")
async def reset_game(request: Request):
    """Back to day 1 with a single healthy worker."""
    session = _get_session(request)
    return _apply(session, ResetGame())


@router.post("/speed")
async def set_speed(body: SpeedRequest, request: Request):
    session = _get_session(request)
    result = _apply(session, SetGameSpeed(speed=body.speed))
    result["game_speed"] = session.state.game_speed
    return result


# -- Worker actions ------------------------------------------------------------

@router.post("/workers/{worker_id}/restart")
async def restart_flyd(worker_id: str, request: Request):
    session = _get_session(request)
    _require_worker(session, worker_id)
    return _apply(session, RestartFlyd(worker_id=worker_id))


@router.post("/workers/{worker_id}/drain")
async def drain_worker(worker_id: str, request: Request):
    session = _get_session(request)
    _require_worker(session, worker_id)
    return _apply(session, DrainWorker(worker_id=worker_id))


@router.post("/workers/{worker_id}/check-containerd")
async def check_containerd(worker_id: str, request: Request):
    session = _get_session(request)
    _require_worker(session, worker_id)
    return _apply(session, CheckContainerd(worker_id=worker_id))


@router.post("/workers/{worker_id}/inspect-lvm")
async def inspect_lvm(worker_id: str, request: Request):
    session = _get_session(request)
    _require_worker(session, worker_id)
    return _apply(session, InspectLvm(worker_id=worker_id))


# -- Incident actions ----------------------------------------------------------

@router.post("/incidents/{incident_id}/investigate")
async def investigate_incident(incident_id: str, request: Request):
    session = _get_session(request)
    _require_incident(session, incident_id)
    return _apply(session, InvestigateIncident(incident_id=incident_id))


@router.post("/incidents/{incident_id}/logs")
async def view_logs(incident_id: str, request: Request):
    session = _get_session(request)
    _require_incident(session, incident_id)
    return _apply(session, ViewFlydLogs(incident_id=incident_id))


@router.post("/incidents/{incident_id}/force-transition")
async def force_transition(incident_id: str, request: Request):
    """Highest-risk action: counts double against the operator."""
    session = _get_session(request)
    _require_incident(session, incident_id)
    return _apply(session, ForceFsmTransition(incident_id=incident_id))


@router.post("/incidents/{incident_id}/quick-fix")
async def quick_fix(incident_id: str, request: Request):
    session = _get_session(request)
    _require_incident(session, incident_id)
    return _apply(session, QuickFixIncident(incident_id=incident_id))


# -- Generic dispatch ----------------------------------------------------------

@router.post("/dispatch")
async def dispatch_intent(payload: dict[str, Any], request: Request):
    """Apply any tagged intent, e.g. ``{"type": "SELECT_WORKER", "worker_id": "worker-2"}``.

    Unknown ids are accepted and leave the world unchanged.
    """
    session = _get_session(request)
    try:
        intent = parse_intent(payload)
    except IntentError as e:
        raise HTTPException(400, str(e))
    return _apply(session, intent)
