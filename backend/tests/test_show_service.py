"""
Tests for the round lifecycle as driven through show_service.

Every call pins ``now`` so the timer never depends on the wall clock.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import AsyncMock, patch

from errors import (
    EmptyQueue,
    InvalidExtension,
    InvalidScore,
    InvalidTimerState,
    ItemNotFound,
    NoActiveItem,
    NotInQueue,
    NotPaused,
    NotRunning,
    QueueMismatch,
    StateConflict,
    WrongStage,
)
from models.item import Item
from services import item_service, queue_service, run_state_service, show_service, vote_service
from state import DEFAULT_TIMER_SECONDS, ItemStatus, Stage, TimerStatus

T0 = 1_700_000_000_000


class RecordingHooks:
    """Stands in for PredictionHooks and records what the engine announced."""

    def __init__(self):
        self.calls = []

    def round_opened(self, item_id, window_seconds):
        self.calls.append(("opened", item_id, window_seconds))

    def round_locked(self, item_id, average):
        self.calls.append(("locked", item_id, average))

    def round_reopened(self, item_id, window_seconds):
        self.calls.append(("reopened", item_id, window_seconds))


async def _status(session, item_id):
    result = await session.get(Item, item_id, populate_existing=True)
    return result.status


@pytest.fixture
def hooks():
    return RecordingHooks()


# ---------------------------------------------------------------------------
# Stage sequence
# ---------------------------------------------------------------------------

class TestStageSequence:
    @pytest.mark.asyncio
    async def test_initial_snapshot(self, session):
        snapshot = await show_service.get_state(session, now=T0)
        assert snapshot["stage"] == Stage.IDLE.value
        assert snapshot["current_item"] is None
        assert snapshot["queue"] == []
        assert snapshot["timer"]["status"] == TimerStatus.IDLE.value
        assert snapshot["timer"]["duration_ms"] == DEFAULT_TIMER_SECONDS * 1000
        assert snapshot["current_votes"] is None
        assert snapshot["audience_votes"] is None
        assert snapshot["show_overlay_voting"] is False
        assert snapshot["version"] == 0

    @pytest.mark.asyncio
    async def test_advance_puts_first_item_on_stage(self, session, hooks):
        first, second = await show_service.register_items(session, ["First", "Second"])

        snapshot = await show_service.advance(session, hooks=hooks, now=T0)
        assert snapshot["stage"] == Stage.VOTING.value
        assert snapshot["current_item"]["id"] == first.id
        assert snapshot["current_item"]["status"] == ItemStatus.VOTING.value
        assert snapshot["timer"]["status"] == TimerStatus.PAUSED.value
        assert [e["item"]["id"] for e in snapshot["queue"]] == [second.id]
        assert snapshot["queue"][0]["position"] == 1
        assert hooks.calls == [("opened", first.id, DEFAULT_TIMER_SECONDS)]

    @pytest.mark.asyncio
    async def test_advance_marks_previous_done(self, session, hooks):
        first, second = await show_service.register_items(session, ["First", "Second"])
        await show_service.advance(session, hooks=hooks, now=T0)
        await show_service.advance(session, hooks=hooks, now=T0 + 1)

        assert await _status(session, first.id) == ItemStatus.DONE.value
        assert await _status(session, second.id) == ItemStatus.VOTING.value

    @pytest.mark.asyncio
    async def test_advance_on_empty_queue_changes_nothing(self, session, hooks):
        before = await show_service.get_state(session, now=T0)

        with pytest.raises(EmptyQueue):
            await show_service.advance(session, hooks=hooks, now=T0)

        after = await show_service.get_state(session, now=T0)
        assert after == before
        assert hooks.calls == []

    @pytest.mark.asyncio
    async def test_full_sequence_returns_to_idle(self, session, hooks):
        (item,) = await show_service.register_items(session, ["Only"])
        await show_service.advance(session, hooks=hooks, now=T0)
        await show_service.lock(session, hooks=hooks, now=T0 + 1)
        await show_service.reopen(session, hooks=hooks, now=T0 + 2)
        await show_service.lock(session, hooks=hooks, now=T0 + 3)
        results = await show_service.show_results(session, now=T0 + 4)
        assert results["stage"] == Stage.RESULTS.value
        assert await _status(session, item.id) == ItemStatus.DONE.value

        snapshot = await show_service.reset_to_idle(session, now=T0 + 5)
        assert snapshot["stage"] == Stage.IDLE.value
        assert snapshot["current_item"] is None
        assert snapshot["timer"]["status"] == TimerStatus.IDLE.value
        assert snapshot["timer"]["remaining_ms"] == DEFAULT_TIMER_SECONDS * 1000

        assert [c[0] for c in hooks.calls] == ["opened", "locked", "reopened", "locked"]

    @pytest.mark.asyncio
    async def test_reopen_starts_running_timer(self, session):
        await show_service.register_items(session, ["Only"])
        await show_service.advance(session, now=T0)
        await show_service.lock(session, now=T0 + 1)

        snapshot = await show_service.reopen(session, now=T0 + 10)
        assert snapshot["stage"] == Stage.VOTING.value
        assert snapshot["timer"]["status"] == TimerStatus.RUNNING.value
        assert snapshot["timer"]["target_ts"] == T0 + 10 + DEFAULT_TIMER_SECONDS * 1000

    @pytest.mark.asyncio
    async def test_lock_without_item(self, session):
        with pytest.raises(NoActiveItem):
            await show_service.lock(session, now=T0)

    @pytest.mark.asyncio
    async def test_wrong_stage_errors(self, session):
        await show_service.register_items(session, ["Only"])
        await show_service.advance(session, now=T0)

        with pytest.raises(WrongStage):
            await show_service.reopen(session, now=T0)
        with pytest.raises(WrongStage):
            await show_service.show_results(session, now=T0)

        await show_service.lock(session, now=T0)
        with pytest.raises(WrongStage):
            await show_service.lock(session, now=T0)

    @pytest.mark.asyncio
    async def test_lock_reports_judge_average(self, session, hooks):
        (item,) = await show_service.register_items(session, ["Only"])
        await show_service.advance(session, now=T0)
        await show_service.upsert_vote(session, item.id, "judge-a", 2, now=T0)
        await show_service.upsert_vote(session, item.id, "judge-b", 3, now=T0)
        await show_service.submit_audience_vote(session, score=5, now=T0)

        await show_service.lock(session, hooks=hooks, now=T0 + 1)
        assert hooks.calls == [("locked", item.id, 2.5)]

    @pytest.mark.asyncio
    async def test_version_increments_per_mutation(self, session):
        await show_service.register_items(session, ["A"])
        snapshot = await show_service.advance(session, now=T0)
        assert snapshot["version"] == 1
        snapshot = await show_service.resume_timer(session, now=T0)
        assert snapshot["version"] == 2


# ---------------------------------------------------------------------------
# Auto-lock on read
# ---------------------------------------------------------------------------

class TestAutoLock:
    @pytest.mark.asyncio
    async def test_expired_window_locks_on_read(self, session, hooks):
        await show_service.update_settings(session, default_timer_seconds=1)
        (item,) = await show_service.register_items(session, ["Quick"])
        await show_service.advance(session, hooks=hooks, now=T0)
        await show_service.resume_timer(session, now=T0)
        hooks.calls.clear()

        snapshot = await show_service.get_state(session, now=T0 + 1_500)
        assert snapshot["stage"] == Stage.LOCKED.value
        assert snapshot["timer"]["status"] == TimerStatus.COMPLETED.value
        assert snapshot["timer"]["remaining_ms"] == 0
        assert await _status(session, item.id) == ItemStatus.LOCKED.value
        # The implicit lock does not ask for prediction resolution.
        assert hooks.calls == []

    @pytest.mark.asyncio
    async def test_auto_lock_is_persisted_once(self, session):
        await show_service.update_settings(session, default_timer_seconds=1)
        await show_service.register_items(session, ["Quick"])
        await show_service.advance(session, now=T0)
        await show_service.resume_timer(session, now=T0)

        first = await show_service.get_state(session, now=T0 + 2_000)
        second = await show_service.get_state(session, now=T0 + 3_000)
        assert first["version"] == second["version"] == 3
        assert second["stage"] == Stage.LOCKED.value

    @pytest.mark.asyncio
    async def test_running_reads_do_not_write(self, session):
        await show_service.register_items(session, ["Slow"])
        await show_service.advance(session, now=T0)
        await show_service.resume_timer(session, now=T0)

        snapshot = await show_service.get_state(session, now=T0 + 5_000)
        assert snapshot["version"] == 2
        assert snapshot["timer"]["remaining_ms"] == DEFAULT_TIMER_SECONDS * 1000 - 5_000

    @pytest.mark.asyncio
    async def test_explicit_lock_after_expiry_still_resolves(self, session, hooks):
        await show_service.update_settings(session, default_timer_seconds=1)
        (item,) = await show_service.register_items(session, ["Quick"])
        await show_service.advance(session, now=T0)
        await show_service.resume_timer(session, now=T0)

        await show_service.lock(session, hooks=hooks, now=T0 + 5_000)
        assert hooks.calls == [("locked", item.id, None)]

    @pytest.mark.asyncio
    async def test_expired_window_rejects_audience_vote_without_a_read(self, session):
        await show_service.update_settings(session, default_timer_seconds=1)
        (item,) = await show_service.register_items(session, ["Quick"])
        await show_service.advance(session, now=T0)
        await show_service.resume_timer(session, now=T0)

        with pytest.raises(WrongStage):
            await show_service.submit_audience_vote(session, score=5, now=T0 + 10_000)

        # The vote path persisted the lock itself.
        assert await run_state_service.get_value(session, run_state_service.STAGE_KEY) == "locked"
        assert await _status(session, item.id) == ItemStatus.LOCKED.value
        summary = await vote_service.audience_summary(session, item.id)
        assert summary.count == 0


# ---------------------------------------------------------------------------
# Timer controls
# ---------------------------------------------------------------------------

class TestTimerControls:
    @pytest.mark.asyncio
    async def test_pause_and_resume(self, session):
        await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)

        with pytest.raises(NotRunning):
            await show_service.pause_timer(session, now=T0)

        await show_service.resume_timer(session, now=T0)
        with pytest.raises(NotPaused):
            await show_service.resume_timer(session, now=T0 + 1)

        snapshot = await show_service.pause_timer(session, now=T0 + 20_000)
        assert snapshot["timer"]["status"] == TimerStatus.PAUSED.value
        assert snapshot["timer"]["remaining_ms"] == DEFAULT_TIMER_SECONDS * 1000 - 20_000

    @pytest.mark.asyncio
    async def test_extend_paused(self, session):
        await show_service.update_settings(session, default_timer_seconds=30)
        await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)
        await show_service.resume_timer(session, now=T0)
        await show_service.pause_timer(session, now=T0 + 20_000)

        snapshot = await show_service.extend_timer(session, 30, now=T0 + 25_000)
        assert snapshot["timer"]["remaining_ms"] == 40_000
        assert snapshot["timer"]["duration_ms"] == 60_000

    @pytest.mark.asyncio
    async def test_extend_running_moves_deadline(self, session):
        await show_service.update_settings(session, default_timer_seconds=30)
        await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)
        await show_service.resume_timer(session, now=T0)

        snapshot = await show_service.extend_timer(session, 30, now=T0 + 20_000)
        assert snapshot["timer"]["target_ts"] == T0 + 60_000
        assert snapshot["timer"]["remaining_ms"] == 40_000

    @pytest.mark.asyncio
    async def test_extend_rejects_non_positive(self, session):
        await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)
        with pytest.raises(InvalidExtension):
            await show_service.extend_timer(session, 0, now=T0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seconds", [float("nan"), float("inf"), float("-inf")])
    async def test_extend_rejects_non_finite(self, session, seconds):
        await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)

        with pytest.raises(InvalidExtension):
            await show_service.extend_timer(session, seconds, now=T0)

        snapshot = await show_service.get_state(session, now=T0)
        assert snapshot["timer"]["duration_ms"] == DEFAULT_TIMER_SECONDS * 1000

    @pytest.mark.asyncio
    async def test_extend_idle_timer(self, session):
        with pytest.raises(InvalidTimerState):
            await show_service.extend_timer(session, 10, now=T0)


# ---------------------------------------------------------------------------
# Queue and overlay
# ---------------------------------------------------------------------------

class TestQueueOperations:
    @pytest.mark.asyncio
    async def test_reorder(self, session):
        a, b, c = await show_service.register_items(session, ["A", "B", "C"])
        snapshot = await show_service.reorder_queue(session, [c.id, a.id, b.id], now=T0)
        assert [e["item"]["id"] for e in snapshot["queue"]] == [c.id, a.id, b.id]
        assert [e["rank"] for e in snapshot["queue"]] == [10, 20, 30]

        advanced = await show_service.advance(session, now=T0)
        assert advanced["current_item"]["id"] == c.id

    @pytest.mark.asyncio
    async def test_rejected_reorder_leaves_order(self, session):
        a, b, c = await show_service.register_items(session, ["A", "B", "C"])

        with pytest.raises(QueueMismatch):
            await show_service.reorder_queue(session, [a.id, b.id, b.id], now=T0)
        with pytest.raises(QueueMismatch):
            await show_service.reorder_queue(session, [a.id, c.id], now=T0)

        assert await queue_service.list_item_ids(session) == [a.id, b.id, c.id]

    @pytest.mark.asyncio
    async def test_remove_from_queue(self, session):
        a, b = await show_service.register_items(session, ["A", "B"])
        snapshot = await show_service.remove_from_queue(session, a.id, now=T0)
        assert [e["item"]["id"] for e in snapshot["queue"]] == [b.id]
        assert snapshot["stage"] == Stage.IDLE.value

        with pytest.raises(NotInQueue):
            await show_service.remove_from_queue(session, a.id, now=T0)

    @pytest.mark.asyncio
    async def test_set_visibility(self, session):
        snapshot = await show_service.set_visibility(session, True, now=T0)
        assert snapshot["show_overlay_voting"] is True
        snapshot = await show_service.set_visibility(session, False, now=T0)
        assert snapshot["show_overlay_voting"] is False


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------

class TestVotes:
    @pytest.mark.asyncio
    async def test_revote_keeps_latest(self, session):
        (item,) = await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)
        await show_service.upsert_vote(session, item.id, "judge-a", 2, now=T0)
        snapshot = await show_service.upsert_vote(session, item.id, "judge-a", 5, now=T0 + 1)

        votes = snapshot["current_votes"]
        assert votes["count"] == 1
        assert votes["average"] == 5.0
        assert votes["distribution"] == [0, 0, 0, 0, 1]
        assert votes["votes"][0] == {"judge_id": "judge-a", "score": 5, "updated_at": T0 + 1}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("score", [0, 6, 2.5, "3", True, float("nan")])
    async def test_invalid_judge_score(self, session, score):
        (item,) = await show_service.register_items(session, ["A"])
        with pytest.raises(InvalidScore):
            await show_service.upsert_vote(session, item.id, "judge-a", score, now=T0)

    @pytest.mark.asyncio
    async def test_whole_float_score_accepted(self, session):
        (item,) = await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)
        snapshot = await show_service.upsert_vote(session, item.id, "judge-a", 4.0, now=T0)
        assert snapshot["current_votes"]["votes"][0]["score"] == 4

    @pytest.mark.asyncio
    async def test_vote_for_unknown_item(self, session):
        with pytest.raises(ItemNotFound):
            await show_service.upsert_vote(session, "missing", "judge-a", 3, now=T0)

    @pytest.mark.asyncio
    async def test_delete_and_clear_votes(self, session):
        (item,) = await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)
        await show_service.upsert_vote(session, item.id, "judge-a", 3, now=T0)
        await show_service.upsert_vote(session, item.id, "judge-b", 4, now=T0)

        snapshot = await show_service.delete_vote(session, item.id, "judge-a", now=T0)
        assert snapshot["current_votes"]["count"] == 1

        await show_service.submit_audience_vote(session, score=4, now=T0)
        snapshot = await show_service.clear_all_votes(session, now=T0)
        assert snapshot["current_votes"]["count"] == 0
        assert snapshot["audience_votes"]["count"] == 0


class TestAudienceVotes:
    @pytest.mark.asyncio
    async def test_generates_voter_id_and_rounds(self, session):
        (item,) = await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)

        result = await show_service.submit_audience_vote(session, score=3.5, now=T0)
        assert result["voter_id"]
        assert result["item_id"] == item.id
        assert result["score"] == 4
        assert result["audience_votes"]["count"] == 1

    @pytest.mark.asyncio
    async def test_repeat_voter_overwrites(self, session):
        await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)

        first = await show_service.submit_audience_vote(session, score=1, now=T0)
        second = await show_service.submit_audience_vote(
            session, score=5, voter_id=first["voter_id"], now=T0
        )
        assert second["audience_votes"]["count"] == 1
        assert second["audience_votes"]["average"] == 5.0

    @pytest.mark.asyncio
    async def test_closed_outside_voting(self, session):
        await show_service.register_items(session, ["A"])
        with pytest.raises(WrongStage):
            await show_service.submit_audience_vote(session, score=3, now=T0)

        await show_service.advance(session, now=T0)
        await show_service.lock(session, now=T0)
        with pytest.raises(WrongStage):
            await show_service.submit_audience_vote(session, score=3, now=T0)

    @pytest.mark.asyncio
    async def test_item_guard(self, session):
        await show_service.register_items(session, ["A", "B"])
        await show_service.advance(session, now=T0)
        queued = await queue_service.list_item_ids(session)

        with pytest.raises(WrongStage):
            await show_service.submit_audience_vote(session, score=3, item_id=queued[0], now=T0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("score", [0.4, 5.5, float("inf"), None])
    async def test_invalid_audience_score(self, session, score):
        await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)
        with pytest.raises(InvalidScore):
            await show_service.submit_audience_vote(session, score=score, now=T0)

    @pytest.mark.asyncio
    async def test_blank_voter_ids_are_separate_voters(self, session):
        await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)

        first = await show_service.submit_audience_vote(session, score=1, voter_id="   ", now=T0)
        second = await show_service.submit_audience_vote(session, score=5, voter_id="", now=T0)
        assert first["voter_id"].strip() == first["voter_id"] != ""
        assert first["voter_id"] != second["voter_id"]
        assert second["audience_votes"]["count"] == 2

    @pytest.mark.asyncio
    async def test_voter_id_is_trimmed(self, session):
        await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)

        await show_service.submit_audience_vote(session, score=1, voter_id=" viewer-1 ", now=T0)
        result = await show_service.submit_audience_vote(
            session, score=4, voter_id="viewer-1", now=T0
        )
        assert result["voter_id"] == "viewer-1"
        assert result["audience_votes"]["count"] == 1
        assert result["audience_votes"]["average"] == 4.0


# ---------------------------------------------------------------------------
# Judge console votes
# ---------------------------------------------------------------------------

class TestJudgeConsoleVotes:
    @pytest.mark.asyncio
    async def test_scores_item_on_stage(self, session):
        (item,) = await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)

        await show_service.submit_judge_vote(session, "judge-a", 2, now=T0)
        result = await show_service.submit_judge_vote(session, " judge-a ", 4.0, now=T0)
        assert result["item_id"] == item.id
        assert result["judge_id"] == "judge-a"
        assert result["score"] == 4
        assert result["current_votes"]["count"] == 1
        assert result["current_votes"]["average"] == 4.0

    @pytest.mark.asyncio
    async def test_rejected_outside_voting(self, session):
        (item,) = await show_service.register_items(session, ["A"])
        with pytest.raises(WrongStage):
            await show_service.submit_judge_vote(session, "judge-a", 3, now=T0)

        await show_service.advance(session, now=T0)
        await show_service.lock(session, now=T0)
        with pytest.raises(WrongStage):
            await show_service.submit_judge_vote(session, "judge-a", 3, now=T0)

        summary = await vote_service.judge_summary(session, item.id)
        assert summary.count == 0

    @pytest.mark.asyncio
    async def test_expired_window_rejects_vote_without_a_read(self, session):
        await show_service.update_settings(session, default_timer_seconds=1)
        (item,) = await show_service.register_items(session, ["Quick"])
        await show_service.advance(session, now=T0)
        await show_service.resume_timer(session, now=T0)

        with pytest.raises(WrongStage):
            await show_service.submit_judge_vote(session, "judge-a", 5, now=T0 + 2_000)

        assert await _status(session, item.id) == ItemStatus.LOCKED.value
        summary = await vote_service.judge_summary(session, item.id)
        assert summary.count == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("judge_id,score", [("judge-a", 2.5), ("judge-a", 6), ("  ", 3)])
    async def test_invalid_vote(self, session, judge_id, score):
        await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)
        with pytest.raises(InvalidScore):
            await show_service.submit_judge_vote(session, judge_id, score, now=T0)


# ---------------------------------------------------------------------------
# Concurrent transitions
# ---------------------------------------------------------------------------

class TestConcurrentTransitions:
    @pytest.mark.asyncio
    async def test_stale_advance_loses_to_lock(self, session_factory, hooks):
        async with session_factory() as first, session_factory() as second:
            a, b = await show_service.register_items(first, ["A", "B"])
            await show_service.advance(first, now=T0)

            # Both producers start from the same version.
            stale = await show_service._load(second, T0 + 1)
            await second.rollback()

            await show_service.lock(first, now=T0 + 1)

            with patch("services.show_service._load", AsyncMock(return_value=stale)):
                with pytest.raises(StateConflict):
                    await show_service.advance(second, hooks=hooks, now=T0 + 2)

        assert hooks.calls == []

        async with session_factory() as check:
            snapshot = await show_service.get_state(check, now=T0 + 3)
            assert snapshot["stage"] == Stage.LOCKED.value
            assert snapshot["current_item"]["id"] == a.id
            assert snapshot["version"] == 2
            assert await queue_service.list_item_ids(check) == [b.id]
            assert await _status(check, a.id) == ItemStatus.LOCKED.value
            assert await _status(check, b.id) == ItemStatus.QUEUED.value


# ---------------------------------------------------------------------------
# Items and housekeeping
# ---------------------------------------------------------------------------

class TestHousekeeping:
    @pytest.mark.asyncio
    async def test_register_strips_names_and_enqueues(self, session):
        items = await show_service.register_items(session, ["  Spaced  ", "Plain"])
        assert [i.name for i in items] == ["Spaced", "Plain"]
        assert await queue_service.list_item_ids(session) == [i.id for i in items]

    @pytest.mark.asyncio
    async def test_rename_missing(self, session):
        with pytest.raises(ItemNotFound):
            await show_service.rename_item(session, "missing", "Name")

    @pytest.mark.asyncio
    async def test_clear_everything(self, session):
        item, _ = await show_service.register_items(session, ["A", "B"])
        await show_service.advance(session, now=T0)
        await show_service.upsert_vote(session, item.id, "judge-a", 3, now=T0)
        await show_service.set_visibility(session, True, now=T0)

        snapshot = await show_service.clear_everything(session, now=T0 + 1)
        assert snapshot["stage"] == Stage.IDLE.value
        assert snapshot["current_item"] is None
        assert snapshot["queue"] == []
        assert await item_service.list_items(session) == []
        assert snapshot["show_overlay_voting"] is True

    @pytest.mark.asyncio
    async def test_settings_apply_to_next_round(self, session):
        await show_service.register_items(session, ["A"])
        settings = await show_service.update_settings(session, default_timer_seconds=45)
        assert settings.default_timer_seconds == 45

        snapshot = await show_service.advance(session, now=T0)
        assert snapshot["timer"]["duration_ms"] == 45_000
        assert snapshot["grace_window_ms"] == 3_000

    @pytest.mark.asyncio
    async def test_leaderboard(self, session):
        a, b = await show_service.register_items(session, ["A", "B"])
        await show_service.upsert_vote(session, a.id, "judge-a", 1, now=T0)
        await show_service.upsert_vote(session, b.id, "judge-a", 5, now=T0)

        board = await show_service.get_leaderboard(session)
        assert [row["item"]["id"] for row in board] == [b.id, a.id]

    @pytest.mark.asyncio
    async def test_stage_survives_a_new_session(self, session, session_factory):
        (item,) = await show_service.register_items(session, ["A"])
        await show_service.advance(session, now=T0)
        await show_service.resume_timer(session, now=T0)

        async with session_factory() as restarted:
            snapshot = await show_service.get_state(restarted, now=T0 + 10_000)
            assert snapshot["stage"] == Stage.VOTING.value
            assert snapshot["current_item"]["id"] == item.id
            assert snapshot["timer"]["remaining_ms"] == DEFAULT_TIMER_SECONDS * 1000 - 10_000
            assert await run_state_service.get_value(restarted, run_state_service.STAGE_KEY) == "voting"
