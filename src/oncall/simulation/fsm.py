"""Migration FSM progression.

A migration moves through six time-gated bands:

  pending -> cloning -> hydrating -> booting_new -> running_new -> cleanup_old

The state and progress of an operation are a pure function of the time
elapsed since its ``start_time``.  Nothing is accumulated between ticks,
so a delayed tick (or a paused-then-resumed game) lands the operation
exactly where the wall clock says it should be.

``error_recovery`` sits outside the timeline.  An operation in that state
never advances on its own.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable

from .models import FSMOperation, MigrationState, round_tenth


@dataclass(frozen=True)
class MigrationStep:
    """Where a migration is on its timeline."""

    state: MigrationState
    progress: float


@dataclass(frozen=True)
class _Band:
    state: MigrationState
    start_ms: float
    end_ms: float
    progress_from: float
    progress_to: float


# Half-open bands [start_ms, end_ms); anything past the last band is done
_BANDS: tuple[_Band, ...] = (
    _Band(MigrationState.PENDING,     0,    1000, 0,  0),
    _Band(MigrationState.CLONING,     1000, 2000, 0,  30),
    _Band(MigrationState.HYDRATING,   2000, 3500, 30, 80),
    _Band(MigrationState.BOOTING_NEW, 3500, 4500, 80, 95),
    _Band(MigrationState.RUNNING_NEW, 4500, 5000, 95, 99),
)

MIGRATION_DURATION_MS = _BANDS[-1].end_ms
COMPLETE = 100.0


def migration_step(elapsed_ms: float) -> MigrationStep:
    """Total function from elapsed time to ``(state, progress)``.

    Negative elapsed time (a clock that stepped backwards) is treated as
    zero.
    """
    elapsed = max(0.0, elapsed_ms)
    for band in _BANDS:
        if elapsed < band.end_ms:
            span = band.end_ms - band.start_ms
            fraction = (elapsed - band.start_ms) / span
            progress = band.progress_from + fraction * (band.progress_to - band.progress_from)
            return MigrationStep(band.state, round_tenth(min(band.progress_to, progress)))
    return MigrationStep(MigrationState.CLEANUP_OLD, COMPLETE)


def advance_operation(op: FSMOperation, now: float) -> FSMOperation:
    """Re-evaluate one operation at wall-clock time ``now`` (ms).

    Only migrations progress; inert operation kinds and migrations stuck
    in ``error_recovery`` come back unchanged.
    """
    if not op.is_migration or op.state is MigrationState.ERROR_RECOVERY:
        return op
    step = migration_step(now - op.start_time)
    # Never step backwards, even if the clock does
    progress = max(op.progress, step.progress)
    if step.state is op.state and progress == op.progress:
        return op
    return replace(op, state=step.state, progress=progress)


def is_complete(op: FSMOperation) -> bool:
    return op.progress >= COMPLETE


def advance_all(
    ops: Iterable[FSMOperation], now: float
) -> tuple[tuple[FSMOperation, ...], bool]:
    """Advance every operation and drop the finished ones.

    Returns ``(still_active, any_completed)``.
    """
    advanced = [advance_operation(op, now) for op in ops]
    active = tuple(op for op in advanced if not is_complete(op))
    return active, len(active) < len(advanced)
