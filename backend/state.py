"""
Show state records — the data structures passed through the round lifecycle.

The timer and the round are plain TypedDicts so they serialize to the
run-state table without adapters. Engine functions never mutate a record in
place; they take the current record and return the next one.
"""

from enum import Enum
from typing import Optional
from typing_extensions import TypedDict


class Stage(str, Enum):
    """Coarse phase of a round."""

    IDLE = "idle"
    # Reserved in the stored data model; no transition ever enters it.
    READY = "ready"
    VOTING = "voting"
    LOCKED = "locked"
    RESULTS = "results"


class ItemStatus(str, Enum):
    QUEUED = "queued"
    VOTING = "voting"
    LOCKED = "locked"
    DONE = "done"


class TimerStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class Verdict(str, Enum):
    """Outcome reported to the prediction service when a round is locked."""

    HIGH = "high"
    LOW = "low"


class TimerState(TypedDict):
    """
    Countdown for the current voting window.

    Fields:
        status:       idle | running | paused | completed
        duration_ms:  Configured window length (grows with extensions).
        remaining_ms: Remaining time as of updated_at. While running this is
                      a snapshot only; the live value is target_ts - now.
        updated_at:   Epoch milliseconds of the last mutation or resolution.
        target_ts:    Wall-clock deadline in epoch ms. Set iff running.
    """

    status: str
    duration_ms: int
    remaining_ms: int
    updated_at: int
    target_ts: Optional[int]


class RoundState(TypedDict):
    """
    The versioned round record: everything a stage transition reads or writes.

    Fields:
        stage:           Current Stage value.
        current_item_id: Item on stage, or None.
        timer:           The TimerState for the current window.
        version:         Incremented on every successful save; used as the
                         compare-and-set token against concurrent writers.
    """

    stage: str
    current_item_id: Optional[str]
    timer: TimerState
    version: int


# Default voting window when no setting has been stored
DEFAULT_TIMER_SECONDS = 120

# Default grace window after the deadline (seconds)
DEFAULT_GRACE_WINDOW_SECONDS = 3

# Queue ranks are spaced by this step so entries can be slotted in later
RANK_STEP = 10

# Judge average at or above this resolves the prediction as the high outcome
VERDICT_THRESHOLD = 2.5

MIN_SCORE = 1
MAX_SCORE = 5
