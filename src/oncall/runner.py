"""Run a complete game headless on a virtual clock and report the outcome.

Usage:
    oncall-sim [--seed N] [--policy idle|responder] [--days N] [--verbose]

No real sleeping happens: the clock jumps forward one tick period per tick
and the incident generator fires every ``incident_interval_ms`` of virtual
time, exactly as the live timers would schedule them.
"""

from __future__ import annotations

import argparse
import random
import sys
from typing import Callable

from loguru import logger

from oncall.comms import EventBus
from oncall.simulation import (
    GameSession,
    IncidentType,
    SessionConfig,
    WorkerStatus,
    migration_success_ratio,
)
from oncall.simulation.catalog import DRAIN_REQUIRED
from oncall.simulation.intents import (
    DrainWorker,
    InvestigateIncident,
    QuickFixIncident,
    StartGame,
)


class VirtualClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def idle_policy(session: GameSession) -> None:
    """Never touch anything; incidents only clear on their own."""


def responder_policy(session: GameSession) -> None:
    """Investigate then quick-fix every open incident; drain failing hosts."""
    for incident in session.state.active_incidents():
        if not incident.investigated:
            session.dispatch(InvestigateIncident(incident_id=incident.incident_id))
        session.dispatch(QuickFixIncident(incident_id=incident.incident_id))

    state = session.state
    for worker in state.workers:
        if worker.status is not WorkerStatus.CRITICAL or worker.has_active_migration:
            continue
        needs_drain = any(
            i.worker_id == worker.worker_id and i.type in DRAIN_REQUIRED
            for i in state.active_incidents()
        )
        if needs_drain:
            session.dispatch(DrainWorker(worker_id=worker.worker_id))


POLICIES: dict[str, Callable[[GameSession], None]] = {
    "idle": idle_policy,
    "responder": responder_policy,
}


def run_game(
    seed: int | None = None,
    policy: str = "idle",
    config: SessionConfig | None = None,
    max_ticks: int | None = None,
) -> dict:
    """Play one game to its end and return a summary dict."""
    config = config or SessionConfig(rng_seed=seed)
    clock = VirtualClock()
    bus = EventBus()
    incidents_feed = bus.subscribe()
    session = GameSession(
        config=config, event_bus=bus, rng=random.Random(seed), clock=clock
    )
    act = POLICIES[policy]

    tick_ms = config.tick_period_ms / config.game_speed
    limit = max_ticks or (config.total_days * config.day_length + 1)
    since_generation = 0.0
    created = 0
    ticks = 0

    session.dispatch(StartGame())
    while not session.state.game_ended and ticks < limit:
        clock.advance(tick_ms)
        session.tick()
        ticks += 1

        since_generation += tick_ms
        if since_generation >= config.incident_interval_ms:
            since_generation -= config.incident_interval_ms
            if session.generate_incident() is not None:
                created += 1
                act(session)

        # Drain the feed so the bounded queue never stalls publishing
        while not incidents_feed.empty():
            incidents_feed.get_nowait()

    bus.unsubscribe(incidents_feed)
    state = session.state
    seen = sorted(t.value for t in state.seen_incident_types)
    return {
        "seed": seed,
        "policy": policy,
        "ticks": ticks,
        "day": state.day,
        "game_ended": state.game_ended,
        "final_score": state.final_score,
        "score": state.score.to_dict(),
        "incidents_created": created,
        "incidents_open": len(state.active_incidents()),
        "workers": len(state.workers),
        "migration_success_ratio": migration_success_ratio(state),
        "incident_types_seen": seen,
        "incident_types_unseen": sorted(
            t.value for t in IncidentType if t.value not in seen
        ),
    }


def _print_report(result: dict) -> None:
    score = result["score"]
    ratio = result["migration_success_ratio"]
    print(f"\n{'='*60}")
    print(f"  ONCALL-SIM  seed={result['seed']}  policy={result['policy']}")
    print(f"{'='*60}")
    print(f"  Ticks played:        {result['ticks']}")
    print(f"  Final day:           {result['day']}")
    print(f"  Workers:             {result['workers']}")
    print(f"  Incidents created:   {result['incidents_created']} "
          f"({result['incidents_open']} still open)")
    print(f"  Uptime:              {score['uptime']:.1f}%")
    print(f"  Migrations:          {score['successful_migrations']} ok / "
          f"{score['failed_migrations']} failed"
          + (f" ({ratio:.0%})" if ratio is not None else ""))
    print(f"  Risky actions:       {score['risky_actions']}")
    print(f"  Rating:              {result['final_score'] or 'game not finished'}")
    print()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run a headless on-call simulation")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--policy", choices=sorted(POLICIES), default="idle", help="Operator policy"
    )
    parser.add_argument("--days", type=int, default=7, help="Number of simulated days")
    parser.add_argument("--verbose", action="store_true", help="Show engine debug logs")
    args = parser.parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "WARNING")

    if args.days < 1:
        parser.error("--days must be at least 1")

    result = run_game(
        seed=args.seed,
        policy=args.policy,
        config=SessionConfig(rng_seed=args.seed, total_days=args.days),
    )
    _print_report(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
