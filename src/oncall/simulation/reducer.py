"""World-state reducer.

``reduce(state, intent, rng=..., now=...)`` is the single state-transition
function.  It is pure apart from the injected random source: the same
snapshot, intent, rng state and ``now`` always give the same result.
Intents addressing an unknown worker or incident return the input
snapshot itself.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, replace
from typing import Callable

from loguru import logger

from . import actions
from .clock import GameRules, advance_clock
from .generator import register_incident
from .intents import (
    AddIncident,
    CheckContainerd,
    ClearFeedback,
    DrainWorker,
    ForceFsmTransition,
    HideHelp,
    InspectLvm,
    Intent,
    InvestigateIncident,
    MarkIncidentTypeSeen,
    NextTutorialStep,
    PauseGame,
    QuickFixIncident,
    ResetGame,
    RestartFlyd,
    ResumeGame,
    SelectIncident,
    SelectWorker,
    SetGameSpeed,
    ShowHelp,
    SkipTutorial,
    StartGame,
    Tick,
    UpdateWorker,
    ViewFlydLogs,
)
from .lifecycle import compute_uptime, resolve_incidents
from .models import FlydStatus, GameState, round_tenth
from .scoring import final_rating
from .workers import STAT_CEILING, STAT_FLOOR, make_worker, tick_worker


def initial_state(game_speed: float = 1.0) -> GameState:
    """A fresh, not-yet-started world with a single healthy worker."""
    return GameState(workers=(make_worker(1),), game_speed=game_speed)


@dataclass(frozen=True)
class _Context:
    rng: random.Random
    now: float
    rules: GameRules


Handler = Callable[[GameState, Intent, _Context], GameState]


# -- Lifecycle -----------------------------------------------------------------

def _start(state: GameState, intent: StartGame, ctx: _Context) -> GameState:
    if state.game_ended:
        return state
    first = state.workers[0].worker_id if state.workers else None
    return replace(state, game_started=True, paused=False, selected_worker=first)


def _pause(state: GameState, intent: PauseGame, ctx: _Context) -> GameState:
    return state if state.paused else replace(state, paused=True)


def _resume(state: GameState, intent: ResumeGame, ctx: _Context) -> GameState:
    return replace(state, paused=False) if state.paused else state


def _reset(state: GameState, intent: ResetGame, ctx: _Context) -> GameState:
    return initial_state(state.game_speed)


def _set_speed(state: GameState, intent: SetGameSpeed, ctx: _Context) -> GameState:
    return replace(state, game_speed=float(intent.speed))


def _tick(state: GameState, intent: Tick, ctx: _Context) -> GameState:
    if not state.is_running:
        return state

    state = advance_clock(state, ctx.rules)

    # Gauges see the incidents as they stood before this tick's resolutions
    workers = tuple(
        tick_worker(w, state.incidents, ctx.rng, ctx.now) for w in state.workers
    )
    incidents = resolve_incidents(state.incidents, workers, ctx.now)
    score = replace(state.score, uptime=compute_uptime(incidents))

    feedback = state.action_feedback
    if feedback is not None and ctx.now - feedback.timestamp > ctx.rules.feedback_ttl_ms:
        feedback = None

    state = replace(
        state,
        workers=workers,
        incidents=incidents,
        score=score,
        action_feedback=feedback,
    )
    if state.game_ended:
        state = replace(state, final_score=final_rating(state.score))
    return state


# -- Presentation pass-through -------------------------------------------------

def _select_worker(state: GameState, intent: SelectWorker, ctx: _Context) -> GameState:
    return replace(state, selected_worker=intent.worker_id)


def _select_incident(state: GameState, intent: SelectIncident, ctx: _Context) -> GameState:
    return replace(state, selected_incident=intent.incident_id)


def _clear_feedback(state: GameState, intent: ClearFeedback, ctx: _Context) -> GameState:
    return replace(state, action_feedback=None)


def _next_tutorial(state: GameState, intent: NextTutorialStep, ctx: _Context) -> GameState:
    return replace(state, tutorial_step=state.tutorial_step + 1)


def _skip_tutorial(state: GameState, intent: SkipTutorial, ctx: _Context) -> GameState:
    return replace(state, show_tutorial=False)


def _show_help(state: GameState, intent: ShowHelp, ctx: _Context) -> GameState:
    return replace(state, show_help=True)


def _hide_help(state: GameState, intent: HideHelp, ctx: _Context) -> GameState:
    return replace(state, show_help=False)


def _mark_seen(state: GameState, intent: MarkIncidentTypeSeen, ctx: _Context) -> GameState:
    if intent.incident_type in state.seen_incident_types:
        return state
    return replace(
        state, seen_incident_types=state.seen_incident_types | {intent.incident_type}
    )


# -- Actions -------------------------------------------------------------------

def _restart(state: GameState, intent: RestartFlyd, ctx: _Context) -> GameState:
    return actions.restart_flyd(state, intent.worker_id, ctx.now)


def _drain(state: GameState, intent: DrainWorker, ctx: _Context) -> GameState:
    return actions.drain_worker(state, intent.worker_id, ctx.rng, ctx.now)


def _check_containerd(state: GameState, intent: CheckContainerd, ctx: _Context) -> GameState:
    return actions.check_containerd(state, intent.worker_id, ctx.now)


def _inspect_lvm(state: GameState, intent: InspectLvm, ctx: _Context) -> GameState:
    return actions.inspect_lvm(state, intent.worker_id, ctx.now)


def _investigate(state: GameState, intent: InvestigateIncident, ctx: _Context) -> GameState:
    return actions.investigate_incident(state, intent.incident_id, ctx.now)


def _view_logs(state: GameState, intent: ViewFlydLogs, ctx: _Context) -> GameState:
    return actions.view_logs(state, intent.incident_id, ctx.now)


def _force(state: GameState, intent: ForceFsmTransition, ctx: _Context) -> GameState:
    return actions.force_transition(state, intent.incident_id, ctx.rng, ctx.now)


def _quick_fix(state: GameState, intent: QuickFixIncident, ctx: _Context) -> GameState:
    return actions.quick_fix(state, intent.incident_id, ctx.rng, ctx.now)


# -- World edits ---------------------------------------------------------------

def _add_incident(state: GameState, intent: AddIncident, ctx: _Context) -> GameState:
    if state.find_incident(intent.incident.incident_id) is not None:
        return state
    return register_incident(state, intent.incident)


def _update_worker(state: GameState, intent: UpdateWorker, ctx: _Context) -> GameState:
    worker = state.find_worker(intent.worker_id)
    if worker is None:
        return state
    updated = replace(worker, **intent.updates)
    updated = replace(
        updated,
        cpu=round_tenth(max(STAT_FLOOR, min(STAT_CEILING, updated.cpu))),
        memory=round_tenth(max(STAT_FLOOR, min(STAT_CEILING, updated.memory))),
        disk=round_tenth(max(updated.base_stats.disk, min(STAT_CEILING, updated.disk))),
    )
    if updated.flyd_status is FlydStatus.RESTARTING and updated.restart_start_time is None:
        updated = replace(updated, restart_start_time=ctx.now)
    return state.with_worker(updated)


_HANDLERS: dict[type[Intent], Handler] = {
    StartGame: _start,
    PauseGame: _pause,
    ResumeGame: _resume,
    ResetGame: _reset,
    SetGameSpeed: _set_speed,
    Tick: _tick,
    SelectWorker: _select_worker,
    SelectIncident: _select_incident,
    ClearFeedback: _clear_feedback,
    NextTutorialStep: _next_tutorial,
    SkipTutorial: _skip_tutorial,
    ShowHelp: _show_help,
    HideHelp: _hide_help,
    MarkIncidentTypeSeen: _mark_seen,
    RestartFlyd: _restart,
    DrainWorker: _drain,
    CheckContainerd: _check_containerd,
    InspectLvm: _inspect_lvm,
    InvestigateIncident: _investigate,
    ViewFlydLogs: _view_logs,
    ForceFsmTransition: _force,
    QuickFixIncident: _quick_fix,
    AddIncident: _add_incident,
    UpdateWorker: _update_worker,
}


def reduce(
    state: GameState,
    intent: Intent,
    *,
    rng: random.Random,
    now: float,
    rules: GameRules | None = None,
) -> GameState:
    """Apply one intent to ``state`` and return the next snapshot."""
    handler = _HANDLERS.get(type(intent))
    if handler is None:
        logger.debug(f"Ignoring unhandled intent {intent!r}")
        return state
    result = handler(state, intent, _Context(rng, now, rules or GameRules()))
    if result is state and not isinstance(intent, Tick):
        logger.debug(f"{intent.tag} left the world unchanged")
    return result
