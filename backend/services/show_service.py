"""
Show Service — the round lifecycle engine as seen by the API.

Each control operation runs in one transaction: load the round record, apply a
pure round_engine transition, write item status changes, and compare-and-set
the record. Lifecycle events go to the prediction hooks only after the commit,
and every mutation answers with a fresh snapshot.

All functions take an optional ``now`` (epoch milliseconds) so callers and
tests can pin the clock.
"""

import logging
import math
import uuid
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from database import transactional
from errors import (
    EmptyQueue,
    InvalidExtension,
    InvalidScore,
    ItemNotFound,
    NoActiveItem,
    NotInQueue,
    StateConflict,
    WrongStage,
)
from models.item import Item
from services import (
    item_service,
    queue_service,
    round_engine,
    run_state_service,
    settings_service,
    timer_engine,
    vote_service,
)
from services.prediction_service import PredictionHooks
from services.round_engine import LifecycleEvent, Transition
from state import MAX_SCORE, MIN_SCORE, RoundState, Stage

logger = logging.getLogger(__name__)


def _now(now: Optional[int]) -> int:
    return now if now is not None else timer_engine.now_ms()


async def _load(session: AsyncSession, now: int) -> RoundState:
    duration_ms = await settings_service.get_default_duration_ms(session)
    return await run_state_service.load_round_state(session, duration_ms, now)


async def _apply(
    session: AsyncSession,
    before: RoundState,
    transition: Transition,
) -> RoundState:
    """Write a transition's item status changes and save the round record."""
    for item_id, status in transition.status_changes:
        await item_service.set_item_status(session, item_id, status)

    saved = await run_state_service.save_round_state(session, transition.state)
    if before["stage"] != saved["stage"] or before["current_item_id"] != saved["current_item_id"]:
        logger.info(
            "Stage %s -> %s (item=%s, version=%s)",
            before["stage"],
            saved["stage"],
            saved["current_item_id"],
            saved["version"],
        )
    return saved


def _announce(
    hooks: Optional[PredictionHooks],
    transition: Transition,
    window_seconds: int = 0,
    average: Optional[float] = None,
) -> None:
    if hooks is None:
        return

    item_id = transition.state["current_item_id"]
    for event in transition.events:
        if event == LifecycleEvent.ROUND_OPENED:
            hooks.round_opened(item_id, window_seconds)
        elif event == LifecycleEvent.ROUND_LOCKED:
            hooks.round_locked(item_id, average)
        elif event == LifecycleEvent.ROUND_REOPENED:
            hooks.round_reopened(item_id, window_seconds)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

async def _build_snapshot(session: AsyncSession, state: RoundState, now: int) -> dict:
    current_item = None
    current_votes = None
    audience_votes = None

    item_id = state["current_item_id"]
    if item_id:
        item = await item_service.get_item(session, item_id)
        current_item = item.to_dict() if item else None
        current_votes = (await vote_service.judge_summary(session, item_id)).model_dump()
        audience_votes = (await vote_service.audience_summary(session, item_id)).model_dump()

    entries = await queue_service.list_entries(session)
    queue = [
        {"position": index + 1, "rank": entry.rank, "item": item.to_dict()}
        for index, (entry, item) in enumerate(entries)
    ]

    return {
        "stage": state["stage"],
        "current_item": current_item,
        "queue": queue,
        "timer": dict(state["timer"]),
        "current_votes": current_votes,
        "audience_votes": audience_votes,
        "show_overlay_voting": await run_state_service.get_overlay_voting(session),
        "grace_window_ms": await settings_service.get_grace_window_ms(session),
        "version": state["version"],
        "server_time": now,
    }


@transactional
async def _persist_projection(
    session: AsyncSession,
    before: RoundState,
    transition: Transition,
) -> RoundState:
    return await _apply(session, before, transition)


async def _settle(session: AsyncSession, now: int) -> RoundState:
    """
    Resolve the timer and apply the auto-lock rule to the stored record.

    The record is written back only when the stage or the timer status
    changed; on a version conflict the read is retried once and otherwise the
    projection is returned unpersisted.
    """
    projected = None
    for attempt in range(2):
        state = await _load(session, now)
        transition = round_engine.apply_auto_lock(state, now)
        projected = transition.state

        if projected["stage"] == state["stage"] and not timer_engine.status_changed(
            state["timer"], projected["timer"]
        ):
            break

        try:
            projected = await _persist_projection(session, state, transition)
        except StateConflict:
            if attempt == 0:
                continue
            logger.warning("Serving unpersisted snapshot after repeated version conflict")
            break

        if transition.stage == Stage.LOCKED and state["stage"] != Stage.LOCKED.value:
            logger.info("Voting window expired, auto-locked item %s", projected["current_item_id"])
        break

    return projected


async def get_state(session: AsyncSession, now: Optional[int] = None) -> dict:
    """Build the show snapshot from the settled round record."""
    now = _now(now)
    state = await _settle(session, now)
    return await _build_snapshot(session, state, now)


# ---------------------------------------------------------------------------
# Stage transitions
# ---------------------------------------------------------------------------

@transactional
async def _advance(session: AsyncSession, now: int) -> Transition:
    state = await _load(session, now)
    entry = await queue_service.dequeue_lowest(session)
    if entry is None:
        raise EmptyQueue()

    duration_ms = await settings_service.get_default_duration_ms(session)
    transition = round_engine.advance(state, entry.item_id, duration_ms, now)
    await _apply(session, state, transition)
    return transition


async def advance(
    session: AsyncSession,
    hooks: Optional[PredictionHooks] = None,
    now: Optional[int] = None,
) -> dict:
    """Put the next queued item on stage with an armed, paused timer."""
    now = _now(now)
    transition = await _advance(session, now)
    _announce(
        hooks,
        transition,
        window_seconds=transition.state["timer"]["duration_ms"] // 1000,
    )
    return await get_state(session, now)


@transactional
async def _lock(session: AsyncSession, now: int):
    state = await _load(session, now)
    transition = round_engine.lock(state, now)
    summary = await vote_service.judge_summary(session, state["current_item_id"])
    await _apply(session, state, transition)
    return transition, summary.average


async def lock(
    session: AsyncSession,
    hooks: Optional[PredictionHooks] = None,
    now: Optional[int] = None,
) -> dict:
    """Close voting on the current item and resolve its prediction."""
    now = _now(now)
    transition, average = await _lock(session, now)
    _announce(hooks, transition, average=average)
    return await get_state(session, now)


@transactional
async def _reopen(session: AsyncSession, now: int) -> Transition:
    state = await _load(session, now)
    duration_ms = await settings_service.get_default_duration_ms(session)
    transition = round_engine.reopen(state, duration_ms, now)
    await _apply(session, state, transition)
    return transition


async def reopen(
    session: AsyncSession,
    hooks: Optional[PredictionHooks] = None,
    now: Optional[int] = None,
) -> dict:
    """Send the locked item back to voting with a running timer."""
    now = _now(now)
    transition = await _reopen(session, now)
    _announce(
        hooks,
        transition,
        window_seconds=transition.state["timer"]["duration_ms"] // 1000,
    )
    return await get_state(session, now)


@transactional
async def _show_results(session: AsyncSession, now: int) -> None:
    state = await _load(session, now)
    await _apply(session, state, round_engine.show_results(state, now))


async def show_results(session: AsyncSession, now: Optional[int] = None) -> dict:
    now = _now(now)
    await _show_results(session, now)
    return await get_state(session, now)


@transactional
async def _reset_to_idle(session: AsyncSession, now: int) -> None:
    state = await _load(session, now)
    duration_ms = await settings_service.get_default_duration_ms(session)
    await _apply(session, state, round_engine.reset(state, duration_ms, now))


async def reset_to_idle(session: AsyncSession, now: Optional[int] = None) -> dict:
    now = _now(now)
    await _reset_to_idle(session, now)
    return await get_state(session, now)


# ---------------------------------------------------------------------------
# Timer controls
# ---------------------------------------------------------------------------

@transactional
async def _pause_timer(session: AsyncSession, now: int) -> None:
    state = await _load(session, now)
    await _apply(session, state, round_engine.pause_timer(state, now))


async def pause_timer(session: AsyncSession, now: Optional[int] = None) -> dict:
    now = _now(now)
    await _pause_timer(session, now)
    return await get_state(session, now)


@transactional
async def _resume_timer(session: AsyncSession, now: int) -> None:
    state = await _load(session, now)
    await _apply(session, state, round_engine.resume_timer(state, now))


async def resume_timer(session: AsyncSession, now: Optional[int] = None) -> dict:
    now = _now(now)
    await _resume_timer(session, now)
    return await get_state(session, now)


@transactional
async def _extend_timer(session: AsyncSession, delta_ms: int, now: int) -> None:
    state = await _load(session, now)
    await _apply(session, state, round_engine.extend_timer(state, delta_ms, now))


async def extend_timer(
    session: AsyncSession,
    seconds: float,
    now: Optional[int] = None,
) -> dict:
    """Add ``seconds`` to the window. Raises InvalidExtension unless positive."""
    now = _now(now)
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        raise InvalidExtension("Extension must be a number of seconds")
    if not math.isfinite(seconds):
        raise InvalidExtension("Extension must be a finite number of seconds")
    await _extend_timer(session, int(round(seconds * 1000)), now)
    return await get_state(session, now)


# ---------------------------------------------------------------------------
# Queue and overlay
# ---------------------------------------------------------------------------

@transactional
async def _reorder_queue(session: AsyncSession, item_ids: List[str]) -> None:
    await queue_service.reorder(session, item_ids)


async def reorder_queue(
    session: AsyncSession,
    item_ids: List[str],
    now: Optional[int] = None,
) -> dict:
    now = _now(now)
    await _reorder_queue(session, item_ids)
    return await get_state(session, now)


@transactional
async def _remove_from_queue(session: AsyncSession, item_id: str) -> None:
    if not await queue_service.remove(session, item_id):
        raise NotInQueue(item_id)
    logger.info("Removed item %s from queue", item_id)


async def remove_from_queue(
    session: AsyncSession,
    item_id: str,
    now: Optional[int] = None,
) -> dict:
    now = _now(now)
    await _remove_from_queue(session, item_id)
    return await get_state(session, now)


@transactional
async def _set_visibility(session: AsyncSession, show: bool) -> None:
    await run_state_service.set_overlay_voting(session, show)


async def set_visibility(
    session: AsyncSession,
    show: bool,
    now: Optional[int] = None,
) -> dict:
    """Toggle whether the public overlay shows live voting."""
    now = _now(now)
    await _set_visibility(session, show)
    return await get_state(session, now)


# ---------------------------------------------------------------------------
# Judge votes
# ---------------------------------------------------------------------------

def _judge_score(score) -> int:
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise InvalidScore(f"Score must be an integer between {MIN_SCORE} and {MAX_SCORE}")
    if not float(score).is_integer() or not MIN_SCORE <= score <= MAX_SCORE:
        raise InvalidScore(f"Score must be an integer between {MIN_SCORE} and {MAX_SCORE}")
    return int(score)


@transactional
async def _upsert_vote(
    session: AsyncSession,
    item_id: str,
    judge_id: str,
    score: int,
    now: int,
) -> None:
    if await item_service.get_item(session, item_id) is None:
        raise ItemNotFound(item_id)
    await vote_service.upsert_vote(session, item_id, judge_id, score, now=now)


async def upsert_vote(
    session: AsyncSession,
    item_id: str,
    judge_id: str,
    score,
    now: Optional[int] = None,
) -> dict:
    """Store a judge's score (integer 1-5). Re-voting overwrites."""
    now = _now(now)
    await _upsert_vote(session, item_id, judge_id, _judge_score(score), now)
    return await get_state(session, now)


@transactional
async def _delete_vote(session: AsyncSession, item_id: str, judge_id: str) -> None:
    await vote_service.delete_vote(session, item_id, judge_id)


async def delete_vote(
    session: AsyncSession,
    item_id: str,
    judge_id: str,
    now: Optional[int] = None,
) -> dict:
    now = _now(now)
    await _delete_vote(session, item_id, judge_id)
    return await get_state(session, now)


@transactional
async def _clear_all_votes(session: AsyncSession) -> None:
    await vote_service.clear_all_votes(session)
    await vote_service.clear_all_audience_votes(session)
    logger.info("Cleared all judge and audience votes")


async def clear_all_votes(session: AsyncSession, now: Optional[int] = None) -> dict:
    now = _now(now)
    await _clear_all_votes(session)
    return await get_state(session, now)


async def _open_item(session: AsyncSession, now: int) -> Optional[str]:
    """The item open for voting at ``now``, or None once the window has closed."""
    state = round_engine.apply_auto_lock(await _load(session, now), now).state
    if state["stage"] != Stage.VOTING.value:
        return None
    return state["current_item_id"]


@transactional
async def _record_judge_vote(session: AsyncSession, judge_id: str, score: int, now: int):
    item_id = await _open_item(session, now)
    if item_id is None:
        raise WrongStage("Voting is not currently active")

    await vote_service.upsert_vote(session, item_id, judge_id, score, now=now)
    return item_id, await vote_service.judge_summary(session, item_id)


async def submit_judge_vote(
    session: AsyncSession,
    judge_id: str,
    score,
    now: Optional[int] = None,
) -> dict:
    """
    Record a judge's score for the item currently in voting.

    Unlike upsert_vote, which lets the producer correct any item at any time,
    this is the live path: it settles the round first and only accepts the
    vote while the window is open.

    Raises:
        InvalidScore: score is not an integer 1-5, or judge_id is blank.
        WrongStage:   no round is open for voting.
        NoActiveItem: the stage is voting but nothing is on stage.
    """
    now = _now(now)
    value = _judge_score(score)
    judge_id = (judge_id or "").strip()
    if not judge_id:
        raise InvalidScore("judge_id is required")

    state = await _settle(session, now)
    if state["stage"] != Stage.VOTING.value:
        raise WrongStage("Voting is not currently active")
    if not state["current_item_id"]:
        raise NoActiveItem("No active item to vote on")

    item_id, summary = await _record_judge_vote(session, judge_id, value, now)
    logger.debug("Judge %s scored item %s: %s", judge_id, item_id, value)
    return {
        "judge_id": judge_id,
        "item_id": item_id,
        "score": value,
        "current_votes": summary.model_dump(),
    }


# ---------------------------------------------------------------------------
# Audience votes
# ---------------------------------------------------------------------------

def _audience_score(score) -> int:
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise InvalidScore(f"Score must be a number between {MIN_SCORE} and {MAX_SCORE}")
    if not math.isfinite(score) or not MIN_SCORE <= score <= MAX_SCORE:
        raise InvalidScore(f"Score must be a number between {MIN_SCORE} and {MAX_SCORE}")
    return int(math.floor(score + 0.5))


@transactional
async def _record_audience_vote(
    session: AsyncSession,
    value: int,
    voter_id: str,
    item_id: Optional[str],
    now: int,
) -> dict:
    current = await _open_item(session, now)
    if not current:
        raise WrongStage("Audience voting is closed")
    if item_id and item_id != current:
        raise WrongStage("Item is not currently open for voting")

    await vote_service.upsert_audience_vote(session, current, voter_id, value, now=now)
    summary = await vote_service.audience_summary(session, current)
    return {
        "voter_id": voter_id,
        "item_id": current,
        "score": value,
        "audience_votes": summary.model_dump(),
    }


async def submit_audience_vote(
    session: AsyncSession,
    score,
    voter_id: Optional[str] = None,
    item_id: Optional[str] = None,
    now: Optional[int] = None,
) -> dict:
    """
    Record an anonymous vote for the item currently in voting.

    The round is settled first, so a window that ran out closes voting even
    if no client has polled the snapshot since.

    Args:
        session:  Active session.
        score:    Number in [1, 5]; rounded half-up before storage.
        voter_id: Stable id of the voter. Trimmed; generated when blank.
        item_id:  Optional guard; must match the item on stage.
        now:      Epoch milliseconds.

    Returns:
        dict with the voter_id to reuse and the item's audience summary.

    Raises:
        InvalidScore: score is not a number in range.
        WrongStage:   no round is open for voting, or item_id is not on stage.
    """
    now = _now(now)
    value = _audience_score(score)
    voter_id = (voter_id or "").strip() or str(uuid.uuid4())

    await _settle(session, now)
    return await _record_audience_vote(session, value, voter_id, item_id, now)


# ---------------------------------------------------------------------------
# Items, settings and housekeeping
# ---------------------------------------------------------------------------

@transactional
async def register_items(session: AsyncSession, names: List[str]) -> List[Item]:
    """Create queued items and append them to the queue in the given order."""
    items = []
    for name in names:
        item = await item_service.create_item(session, name.strip())
        await queue_service.enqueue(session, item.id)
        items.append(item)
    logger.info("Registered %d items", len(items))
    return items


async def list_items(session: AsyncSession) -> List[Item]:
    return await item_service.list_items(session)


async def rename_item(session: AsyncSession, item_id: str, name: str) -> Item:
    item = await item_service.rename_item(session, item_id, name.strip())
    if item is None:
        raise ItemNotFound(item_id)
    return item


async def get_leaderboard(session: AsyncSession) -> List[dict]:
    return await item_service.leaderboard(session)


async def get_settings(session: AsyncSession) -> settings_service.ShowSettings:
    return await settings_service.get_settings(session)


@transactional
async def update_settings(
    session: AsyncSession,
    default_timer_seconds: Optional[int] = None,
    grace_window_seconds: Optional[int] = None,
) -> settings_service.ShowSettings:
    """Takes effect from the next advance, reopen or reset."""
    return await settings_service.update_settings(
        session,
        default_timer_seconds=default_timer_seconds,
        grace_window_seconds=grace_window_seconds,
    )


@transactional
async def _clear_everything(session: AsyncSession, now: int) -> None:
    state = await _load(session, now)
    duration_ms = await settings_service.get_default_duration_ms(session)
    await _apply(session, state, round_engine.reset(state, duration_ms, now))

    await queue_service.clear(session)
    await vote_service.clear_all_votes(session)
    await vote_service.clear_all_audience_votes(session)
    await item_service.delete_all_items(session)
    logger.info("Cleared queue, votes and items")


async def clear_everything(session: AsyncSession, now: Optional[int] = None) -> dict:
    """Reset to idle and delete every item, queue entry and vote."""
    now = _now(now)
    await _clear_everything(session, now)
    return await get_state(session, now)
