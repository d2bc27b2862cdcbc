"""Simulated calendar: time-in-day, day rollover, fleet growth, game end."""

from __future__ import annotations

from dataclasses import dataclass, replace

from loguru import logger

from .models import GameState
from .workers import clone_worker


@dataclass(frozen=True)
class GameRules:
    """Calendar and fleet limits for one game."""

    day_length: int = 300
    total_days: int = 7
    max_workers: int = 4
    feedback_ttl_ms: float = 10_000


def advance_clock(state: GameState, rules: GameRules) -> GameState:
    """Advance time-in-day by one unit.

    At the day boundary time wraps to 0, the day increments, and, while
    the fleet is below ``max_workers``, one worker joins cloned from the
    first worker's baseline.  Crossing past ``total_days`` ends the game.
    """
    time_in_day = state.time_in_day + 1
    if time_in_day < rules.day_length:
        return replace(state, time_in_day=time_in_day)

    day = state.day + 1
    workers = state.workers
    if workers and len(workers) < rules.max_workers:
        newcomer = clone_worker(workers[0], len(workers) + 1)
        workers = workers + (newcomer,)
        logger.info(f"Day {day}: {newcomer.name} joined the fleet")
    return replace(
        state,
        time_in_day=0,
        day=day,
        workers=workers,
        game_ended=day > rules.total_days,
    )
