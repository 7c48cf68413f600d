"""
Round Engine — the stage machine for a rating round.

Every transition is a pure function: it takes the current RoundState and the
current time and returns a Transition describing the next RoundState, the item
status changes to apply, and the lifecycle events to announce. Nothing here
touches the database or the prediction service; show_service applies the
Transition inside a single transaction.

Stage graph:
    idle/results/locked/voting --advance--> voting
    voting --lock--> locked
    locked --reopen--> voting
    locked --show_results--> results
    any --reset--> idle
    voting --(timer completed on read)--> locked
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from errors import NoActiveItem, WrongStage
from services import timer_engine
from state import ItemStatus, RoundState, Stage, TimerStatus, Verdict, VERDICT_THRESHOLD


class LifecycleEvent(str, Enum):
    """Events announced to external collaborators after a transition."""

    ROUND_OPENED = "round_opened"
    ROUND_LOCKED = "round_locked"
    ROUND_REOPENED = "round_reopened"


@dataclass
class Transition:
    state: RoundState
    status_changes: List[Tuple[str, ItemStatus]] = field(default_factory=list)
    events: List[LifecycleEvent] = field(default_factory=list)

    @property
    def stage(self) -> Stage:
        return Stage(self.state["stage"])


def initial_state(duration_ms: int, now: int) -> RoundState:
    """The record a fresh process starts from: idle, no item, default timer."""
    return RoundState(
        stage=Stage.IDLE.value,
        current_item_id=None,
        timer=timer_engine.reset(duration_ms, now),
        version=0,
    )


def _next(state: RoundState, **changes) -> RoundState:
    return RoundState(
        stage=changes.get("stage", state["stage"]),
        current_item_id=changes.get("current_item_id", state["current_item_id"]),
        timer=changes.get("timer", state["timer"]),
        version=state["version"],
    )


def _require_item(state: RoundState, message: str) -> str:
    item_id = state["current_item_id"]
    if not item_id:
        raise NoActiveItem(message)
    return item_id


# ---------------------------------------------------------------------------
# Stage transitions
# ---------------------------------------------------------------------------

def advance(
    state: RoundState,
    next_item_id: str,
    duration_ms: int,
    now: int,
) -> Transition:
    """
    Put the next queued item on stage and arm (but do not start) the timer.

    The caller is responsible for taking ``next_item_id`` off the queue and
    raising EmptyQueue when there is none.

    Args:
        state:        The current RoundState.
        next_item_id: Item just dequeued at the lowest rank.
        duration_ms:  Configured window length.
        now:          Current epoch milliseconds.

    Returns:
        A Transition into the voting stage that retires the previous item.
    """
    changes: List[Tuple[str, ItemStatus]] = []
    previous = state["current_item_id"]
    if previous and previous != next_item_id:
        changes.append((previous, ItemStatus.DONE))
    changes.append((next_item_id, ItemStatus.VOTING))

    return Transition(
        state=_next(
            state,
            stage=Stage.VOTING.value,
            current_item_id=next_item_id,
            timer=timer_engine.arm(duration_ms, now),
        ),
        status_changes=changes,
        events=[LifecycleEvent.ROUND_OPENED],
    )


def lock(state: RoundState, now: int) -> Transition:
    item_id = _require_item(state, "No active item to lock")
    if state["stage"] != Stage.VOTING.value:
        raise WrongStage("Only items in voting can be locked")

    return Transition(
        state=_next(
            state,
            stage=Stage.LOCKED.value,
            timer=timer_engine.force_complete(state["timer"], now),
        ),
        status_changes=[(item_id, ItemStatus.LOCKED)],
        events=[LifecycleEvent.ROUND_LOCKED],
    )


def reopen(state: RoundState, duration_ms: int, now: int) -> Transition:
    """
    Send a locked item back to voting with a fresh window that is already
    counting down. Unlike advance(), the timer does not wait for a resume.
    """
    item_id = _require_item(state, "No active item to reopen")
    if state["stage"] != Stage.LOCKED.value:
        raise WrongStage("Can only reopen voting from locked stage")

    return Transition(
        state=_next(
            state,
            stage=Stage.VOTING.value,
            timer=timer_engine.start_running(duration_ms, now),
        ),
        status_changes=[(item_id, ItemStatus.VOTING)],
        events=[LifecycleEvent.ROUND_REOPENED],
    )


def show_results(state: RoundState, now: int) -> Transition:
    item_id = _require_item(state, "No active item to show results for")
    if state["stage"] != Stage.LOCKED.value:
        raise WrongStage("Can only show results after locking votes")

    return Transition(
        state=_next(
            state,
            stage=Stage.RESULTS.value,
            timer=timer_engine.force_complete(state["timer"], now),
        ),
        status_changes=[(item_id, ItemStatus.DONE)],
    )


def reset(state: RoundState, duration_ms: int, now: int) -> Transition:
    return Transition(
        state=_next(
            state,
            stage=Stage.IDLE.value,
            current_item_id=None,
            timer=timer_engine.reset(duration_ms, now),
        ),
    )


def apply_auto_lock(state: RoundState, now: int) -> Transition:
    """
    Resolve the timer and lock the round if its window has run out.

    This runs on every snapshot read. It announces no lifecycle event: the
    explicit lock() path is the only one that asks for prediction resolution.
    """
    timer = timer_engine.resolve(state["timer"], now)
    if not (
        state["stage"] == Stage.VOTING.value
        and timer["status"] == TimerStatus.COMPLETED.value
    ):
        return Transition(state=_next(state, timer=timer))

    changes: List[Tuple[str, ItemStatus]] = []
    if state["current_item_id"]:
        changes.append((state["current_item_id"], ItemStatus.LOCKED))

    # Second resolution after the lock; completion is idempotent.
    timer = timer_engine.force_complete(timer_engine.resolve(timer, now), now)
    return Transition(
        state=_next(state, stage=Stage.LOCKED.value, timer=timer),
        status_changes=changes,
    )


# ---------------------------------------------------------------------------
# Timer controls
# ---------------------------------------------------------------------------

def pause_timer(state: RoundState, now: int) -> Transition:
    return Transition(state=_next(state, timer=timer_engine.pause(state["timer"], now)))


def resume_timer(state: RoundState, now: int) -> Transition:
    return Transition(state=_next(state, timer=timer_engine.resume(state["timer"], now)))


def extend_timer(state: RoundState, delta_ms: int, now: int) -> Transition:
    return Transition(
        state=_next(state, timer=timer_engine.extend(state["timer"], delta_ms, now))
    )


# ---------------------------------------------------------------------------
# Prediction verdict
# ---------------------------------------------------------------------------

def verdict_for_average(average: Optional[float]) -> Optional[Verdict]:
    """Judge average >= 2.5 is the high outcome, anything lower the low one."""
    if average is None:
        return None
    return Verdict.HIGH if average >= VERDICT_THRESHOLD else Verdict.LOW
