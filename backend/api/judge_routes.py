"""
REST API routes for the judge console.

Endpoints:
    POST /api/judge/vote — Score the item currently in voting

Judges only ever vote on the live round; corrections to other items go
through the producer's /control/votes routes.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_session
from services import show_service

judge_router = APIRouter()


class JudgeConsoleVoteRequest(BaseModel):
    judge_id: str = Field(..., min_length=1, max_length=64)
    score: float = Field(..., allow_inf_nan=False)


@judge_router.post("/judge/vote")
async def submit_judge_vote(
    request: JudgeConsoleVoteRequest,
    session: AsyncSession = Depends(get_session),
):
    """
    Record the judge's score for the item on stage.

    Answers 409 when the window is closed, including one that ran out since
    the last snapshot read.
    """
    return await show_service.submit_judge_vote(session, request.judge_id, request.score)
