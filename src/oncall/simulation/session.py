"""GameSession: owns the live snapshot, its timers, and event publishing.

Architecture
------------
The reducer is pure.  Everything impure lives here:

  - the current ``GameState`` snapshot, replaced atomically under a lock;
  - the injected random source and wall clock;
  - two ``PeriodicTimer`` threads, main tick and incident generation;
  - the ``EventBus`` the HTTP/WebSocket layer listens on.

Timers are armed exactly while the session is started and the snapshot
says ``game_started and not paused and not game_ended``.  Every dispatch
re-syncs them, so pausing cancels the threads rather than letting them
spin.  A game-speed change re-arms the tick timer at the new period.

Tests drive a session without ever calling ``start()``: ``tick()`` and
``generate_incident()`` do exactly what the timers would.

Events published on the EventBus:
  - ``game_state_change``: start, pause, resume, reset, speed change, end
  - ``world_snapshot``: after every applied tick
  - ``incident_created``: one per new incident
  - ``action_feedback``: the feedback slot was replaced
  - ``game_over``: the game reached its terminal state
"""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from loguru import logger

from .clock import GameRules
from .generator import generate_incident
from .intents import AddIncident, Intent, ResetGame, StartGame, Tick
from .models import GameState, Incident
from .reducer import initial_state, reduce

if TYPE_CHECKING:
    from oncall.comms.event_bus import EventBus


def wall_clock_ms() -> float:
    return time.time() * 1000.0


@dataclass(frozen=True)
class SessionConfig:
    """Engine-side session settings, independent of the web layer."""

    game_speed: float = 1.0
    tick_period_ms: float = 1000
    incident_interval_ms: float = 5000
    total_days: int = 7
    day_length: int = 300
    max_workers: int = 4
    rng_seed: int | None = None
    autostart: bool = False

    @property
    def rules(self) -> GameRules:
        return GameRules(
            day_length=self.day_length,
            total_days=self.total_days,
            max_workers=self.max_workers,
        )


class PeriodicTimer:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread until cancelled."""

    def __init__(self, interval: float, callback: Callable[[], object], name: str) -> None:
        self.interval = interval
        self._callback = callback
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        """Stop firing.  A callback already running finishes on its own."""
        self._stopped.set()

    def join(self, timeout: float = 2.0) -> None:
        # The callback itself may cancel its own timer; never join ourselves
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=timeout)

    @property
    def active(self) -> bool:
        return self._thread.is_alive() and not self._stopped.is_set()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self._callback()
            except Exception:
                logger.exception(f"{self._thread.name} callback failed")


class GameSession:
    """One game: snapshot + timers + event publishing."""

    def __init__(
        self,
        config: SessionConfig | None = None,
        event_bus: EventBus | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.config = config or SessionConfig()
        self.rules = self.config.rules
        self._event_bus = event_bus
        self._rng = rng if rng is not None else random.Random(self.config.rng_seed)
        self._clock = clock or wall_clock_ms
        self._lock = threading.RLock()
        self._state = initial_state(self.config.game_speed)
        self._active = False
        self._tick_timer: PeriodicTimer | None = None
        self._incident_timer: PeriodicTimer | None = None

    # -- Public interface -------------------------------------------------------

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def event_bus(self) -> EventBus | None:
        return self._event_bus

    def get_state(self) -> dict:
        """Serializable snapshot for API/frontend."""
        return self._state.to_dict()

    @property
    def timers_armed(self) -> bool:
        return self._tick_timer is not None and self._incident_timer is not None

    def dispatch(self, intent: Intent) -> GameState:
        """Apply one intent against the latest snapshot, strictly one at a time."""
        return self.transition(intent)[1]

    def transition(self, intent: Intent) -> tuple[GameState, GameState]:
        """Like ``dispatch`` but returns ``(before, after)`` read under the same lock.

        ``after is before`` means the intent left the world untouched.
        """
        with self._lock:
            before = self._state
            after = reduce(before, intent, rng=self._rng, now=self._clock(), rules=self.rules)
            self._state = after
            if after is not before:
                self._publish(before, after, intent)
            self._sync_timers()
            return before, after

    def tick(self) -> GameState:
        return self.dispatch(Tick())

    def generate_incident(self) -> Incident | None:
        """One incident-generator firing against the current snapshot."""
        with self._lock:
            if not self._state.is_running:
                return None
            incident = generate_incident(self._state, self._rng, self._clock())
            if incident is not None:
                self.dispatch(AddIncident(incident))
            return incident

    def reset(self) -> GameState:
        return self.dispatch(ResetGame())

    # -- Lifecycle --------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self._active:
                return
            self._active = True
            logger.info(
                f"Game session started (tick {self.config.tick_period_ms}ms, "
                f"incidents every {self.config.incident_interval_ms}ms)"
            )
            if self.config.autostart and not self._state.game_started:
                self.dispatch(StartGame())
            else:
                self._sync_timers()

    def stop(self) -> None:
        with self._lock:
            self._active = False
            cancelled = self._disarm()
        # Join outside the lock; a firing callback may be waiting on it
        for timer in cancelled:
            timer.join()
        logger.info("Game session stopped")

    # -- Timers -----------------------------------------------------------------

    def _tick_interval(self) -> float:
        return self.config.tick_period_ms / self._state.game_speed / 1000.0

    def _sync_timers(self) -> None:
        should_run = self._active and self._state.is_running
        if not should_run:
            if self.timers_armed:
                self._disarm()
            return

        interval = self._tick_interval()
        if self._tick_timer is not None and self._tick_timer.interval != interval:
            logger.debug(f"Re-arming tick timer at {interval:.3f}s")
            self._tick_timer.cancel()
            self._tick_timer = None
        if self._tick_timer is None:
            self._tick_timer = PeriodicTimer(interval, self.tick, name="oncall-tick")
            self._tick_timer.start()
        if self._incident_timer is None:
            self._incident_timer = PeriodicTimer(
                self.config.incident_interval_ms / 1000.0,
                self.generate_incident,
                name="oncall-incidents",
            )
            self._incident_timer.start()
            logger.debug("Timers armed")

    def _disarm(self) -> list[PeriodicTimer]:
        cancelled = [t for t in (self._tick_timer, self._incident_timer) if t is not None]
        for timer in cancelled:
            timer.cancel()
        if cancelled:
            logger.debug("Timers disarmed")
        self._tick_timer = None
        self._incident_timer = None
        return cancelled

    # -- Events -----------------------------------------------------------------

    def _publish(self, before: GameState, after: GameState, intent: Intent) -> None:
        ended_now = after.game_ended and not before.game_ended
        if ended_now:
            logger.info(f"Game over on day {after.day}: {after.final_score}")

        bus = self._event_bus
        if bus is None:
            return

        if isinstance(intent, Tick):
            bus.publish("world_snapshot", after.to_dict())

        known = {i.incident_id for i in before.incidents}
        for incident in after.incidents:
            if incident.incident_id not in known:
                bus.publish("incident_created", incident.to_dict())

        if after.action_feedback is not None and after.action_feedback is not before.action_feedback:
            bus.publish("action_feedback", after.action_feedback.to_dict())

        if (
            isinstance(intent, ResetGame)
            or before.game_started != after.game_started
            or before.paused != after.paused
            or before.game_ended != after.game_ended
            or before.game_speed != after.game_speed
        ):
            bus.publish("game_state_change", {
                "game_started": after.game_started,
                "paused": after.paused,
                "game_ended": after.game_ended,
                "game_speed": after.game_speed,
                "day": after.day,
            })

        if ended_now:
            bus.publish("game_over", {
                "final_score": after.final_score,
                "day": after.day,
                "score": after.score.to_dict(),
            })
