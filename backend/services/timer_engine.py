"""
Timer Engine — pull-based countdown for the voting window.

There is no ticking background task. A TimerState stores the wall-clock
deadline (``target_ts``) while running, and every read resolves the live
remaining time as ``target_ts - now``. Resolution is a pure function of
(stored state, now), so any number of concurrent readers can recompute it and
all of them observe the same running -> completed transition.

All times are epoch milliseconds.
"""

import json
import logging
import time
from typing import Optional

from errors import InvalidExtension, InvalidTimerState, NotPaused, NotRunning
from state import DEFAULT_TIMER_SECONDS, TimerState, TimerStatus

logger = logging.getLogger(__name__)

DEFAULT_TIMER_MS = DEFAULT_TIMER_SECONDS * 1000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _make(
    status: TimerStatus,
    duration_ms: int,
    remaining_ms: int,
    now: int,
    target_ts: Optional[int] = None,
) -> TimerState:
    return TimerState(
        status=status.value,
        duration_ms=duration_ms,
        remaining_ms=remaining_ms,
        updated_at=now,
        target_ts=target_ts,
    )


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------

def reset(duration_ms: int, now: int) -> TimerState:
    """Default timer used by the idle stage: idle, full duration, no deadline."""
    return _make(TimerStatus.IDLE, duration_ms, duration_ms, now)


def arm(duration_ms: int, now: int) -> TimerState:
    """
    Prepare a window without starting it.

    The countdown only begins once the producer resumes the timer.
    """
    return _make(TimerStatus.PAUSED, duration_ms, duration_ms, now)


def start_running(duration_ms: int, now: int) -> TimerState:
    """Arm a window directly into the running state (used when reopening)."""
    return _make(TimerStatus.RUNNING, duration_ms, duration_ms, now, now + duration_ms)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def resolve(timer: TimerState, now: int) -> TimerState:
    """
    Resolve a stored timer against the current time.

    Non-running timers are returned unchanged. A running timer whose deadline
    has passed becomes completed with zero remaining; otherwise the remaining
    time is recomputed from the deadline. Never raises.

    Args:
        timer: The stored TimerState.
        now:   Current epoch milliseconds.

    Returns:
        The resolved TimerState (a new dict when anything changed).
    """
    if timer["status"] != TimerStatus.RUNNING.value:
        return timer

    target = timer["target_ts"] if timer["target_ts"] is not None else now
    remaining = target - now
    if remaining <= 0:
        return _make(TimerStatus.COMPLETED, timer["duration_ms"], 0, now)

    return TimerState(
        status=timer["status"],
        duration_ms=timer["duration_ms"],
        remaining_ms=remaining,
        updated_at=now,
        target_ts=target,
    )


def status_changed(before: TimerState, after: TimerState) -> bool:
    """True when resolution moved the timer to a different status."""
    return before["status"] != after["status"]


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

def pause(timer: TimerState, now: int) -> TimerState:
    current = resolve(timer, now)
    if current["status"] != TimerStatus.RUNNING.value:
        raise NotRunning()

    remaining = max(current["target_ts"] - now, 0)
    return _make(TimerStatus.PAUSED, current["duration_ms"], remaining, now)


def resume(timer: TimerState, now: int) -> TimerState:
    current = resolve(timer, now)
    if current["status"] != TimerStatus.PAUSED.value:
        raise NotPaused()

    return _make(
        TimerStatus.RUNNING,
        current["duration_ms"],
        current["remaining_ms"],
        now,
        now + current["remaining_ms"],
    )


def extend(timer: TimerState, delta_ms: int, now: int) -> TimerState:
    """
    Add time to the current window.

    A running timer keeps counting toward a deadline pushed forward by delta;
    a paused timer gains delta on both its remaining time and its duration.

    Raises:
        InvalidExtension:  delta_ms is not positive.
        InvalidTimerState: the timer is idle or completed.
    """
    if delta_ms <= 0:
        raise InvalidExtension()

    current = resolve(timer, now)

    if current["status"] == TimerStatus.RUNNING.value:
        target = current["target_ts"] + delta_ms
        return _make(
            TimerStatus.RUNNING,
            current["duration_ms"] + delta_ms,
            max(target - now, 0),
            now,
            target,
        )

    if current["status"] == TimerStatus.PAUSED.value:
        return _make(
            TimerStatus.PAUSED,
            current["duration_ms"] + delta_ms,
            current["remaining_ms"] + delta_ms,
            now,
        )

    raise InvalidTimerState(f"Cannot extend timer while {current['status']}")


def force_complete(timer: TimerState, now: int) -> TimerState:
    """Make the timer inert regardless of its prior status. Idempotent."""
    if timer["status"] == TimerStatus.COMPLETED.value and timer["target_ts"] is None:
        return timer
    return _make(TimerStatus.COMPLETED, timer["duration_ms"], 0, now)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def dumps(timer: TimerState) -> str:
    return json.dumps(dict(timer))


def loads(raw: Optional[str], default_duration_ms: int, now: int) -> TimerState:
    """
    Parse a stored timer, falling back to the default timer on missing or
    malformed data.
    """
    if not raw:
        return reset(default_duration_ms, now)

    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.warning("Discarding unreadable timer state: %r", raw)
        return reset(default_duration_ms, now)

    if (
        isinstance(parsed, dict)
        and parsed.get("status") in {s.value for s in TimerStatus}
        and isinstance(parsed.get("duration_ms"), int)
        and isinstance(parsed.get("remaining_ms"), int)
        and isinstance(parsed.get("updated_at"), int)
    ):
        target = parsed.get("target_ts")
        return TimerState(
            status=parsed["status"],
            duration_ms=parsed["duration_ms"],
            remaining_ms=parsed["remaining_ms"],
            updated_at=parsed["updated_at"],
            target_ts=target if isinstance(target, int) else None,
        )

    logger.warning("Discarding malformed timer state: %r", raw)
    return reset(default_duration_ms, now)

