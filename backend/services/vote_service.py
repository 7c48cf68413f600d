"""
Vote Service — judge votes and audience votes.

Both stores are last-write-wins upserts keyed by (item, voter) and share one
aggregation rule: a five-bucket distribution and an average quantized to the
nearest quarter point. Judge and audience votes live in separate tables and
are summarized independently.
"""

import logging
import math
from typing import Iterable, List, Optional

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from database import dialect_insert
from models.vote import AudienceVote, Vote
from services.timer_engine import now_ms
from state import MAX_SCORE, MIN_SCORE

logger = logging.getLogger(__name__)


class VoteEntry(BaseModel):
    judge_id: str
    score: int
    updated_at: int


class VoteSummary(BaseModel):
    average: Optional[float] = None
    distribution: List[int]
    count: int


class JudgeVoteSummary(VoteSummary):
    votes: List[VoteEntry] = []


def quantize_average(total: float, count: int) -> Optional[float]:
    """Average rounded half-up to the nearest 0.25, or None with no votes."""
    if count <= 0:
        return None
    return math.floor(total / count * 4 + 0.5) / 4


def summarize_scores(scores: Iterable[int]) -> VoteSummary:
    """
    Aggregate raw scores.

    Out-of-range values are left out of the distribution but still count
    toward the average and the vote count.
    """
    distribution = [0] * (MAX_SCORE - MIN_SCORE + 1)
    total = 0
    count = 0
    for score in scores:
        if MIN_SCORE <= score <= MAX_SCORE:
            distribution[score - MIN_SCORE] += 1
        total += score
        count += 1

    return VoteSummary(
        average=quantize_average(total, count),
        distribution=distribution,
        count=count,
    )


# ---------------------------------------------------------------------------
# Judge votes
# ---------------------------------------------------------------------------

async def upsert_vote(
    session: AsyncSession,
    item_id: str,
    judge_id: str,
    score: int,
    now: Optional[int] = None,
) -> None:
    """Store a judge's score, replacing any earlier score for the same item."""
    stmt = dialect_insert(session, Vote).values(
        item_id=item_id,
        judge_id=judge_id,
        score=score,
        updated_at=now if now is not None else now_ms(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Vote.item_id, Vote.judge_id],
        set_={"score": stmt.excluded.score, "updated_at": stmt.excluded.updated_at},
    )
    await session.execute(stmt)


async def delete_vote(session: AsyncSession, item_id: str, judge_id: str) -> bool:
    result = await session.execute(
        delete(Vote).where(Vote.item_id == item_id, Vote.judge_id == judge_id)
    )
    return result.rowcount > 0


async def list_votes(session: AsyncSession, item_id: str) -> List[Vote]:
    """Judge votes for an item, most recent first."""
    result = await session.execute(
        select(Vote)
        .where(Vote.item_id == item_id)
        .order_by(Vote.updated_at.desc(), Vote.judge_id.asc())
    )
    return list(result.scalars().all())


async def judge_summary(session: AsyncSession, item_id: str) -> JudgeVoteSummary:
    votes = await list_votes(session, item_id)
    summary = summarize_scores(v.score for v in votes)
    return JudgeVoteSummary(
        **summary.model_dump(),
        votes=[VoteEntry(**v.to_dict()) for v in votes],
    )


async def clear_votes(session: AsyncSession, item_id: str) -> None:
    await session.execute(delete(Vote).where(Vote.item_id == item_id))


async def clear_all_votes(session: AsyncSession) -> None:
    await session.execute(delete(Vote))


# ---------------------------------------------------------------------------
# Audience votes
# ---------------------------------------------------------------------------

async def upsert_audience_vote(
    session: AsyncSession,
    item_id: str,
    voter_id: str,
    score: int,
    now: Optional[int] = None,
) -> None:
    stmt = dialect_insert(session, AudienceVote).values(
        item_id=item_id,
        voter_id=voter_id,
        score=score,
        updated_at=now if now is not None else now_ms(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[AudienceVote.item_id, AudienceVote.voter_id],
        set_={"score": stmt.excluded.score, "updated_at": stmt.excluded.updated_at},
    )
    await session.execute(stmt)


async def audience_summary(session: AsyncSession, item_id: str) -> VoteSummary:
    result = await session.execute(
        select(AudienceVote.score).where(AudienceVote.item_id == item_id)
    )
    return summarize_scores(result.scalars().all())


async def clear_audience_votes(session: AsyncSession, item_id: str) -> None:
    await session.execute(delete(AudienceVote).where(AudienceVote.item_id == item_id))


async def clear_all_audience_votes(session: AsyncSession) -> None:
    await session.execute(delete(AudienceVote))
