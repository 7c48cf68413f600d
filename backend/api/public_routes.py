"""
REST API routes polled and called by the public side of the show.

Endpoints:
    GET  /api/health                 — Health check
    GET  /api/public/overlay/state   — Snapshot for the stream overlay
    POST /api/public/audience/vote   — Anonymous audience vote
    GET  /api/public/leaderboard     — Items ranked by judge average
    POST /api/public/chat/message    — Chat message forwarded by the chat bot
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_session
from services import chat_votes, show_service

public_router = APIRouter()


# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------

class AudienceVoteRequest(BaseModel):
    score: float
    voter_id: Optional[str] = Field(None, max_length=64)
    item_id: Optional[str] = None


class ChatMessageRequest(BaseModel):
    voter_id: str = Field(..., min_length=1, max_length=64)
    message: str


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@public_router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "Rating Show API"}


@public_router.get("/public/overlay/state")
async def get_overlay_state(session: AsyncSession = Depends(get_session)):
    """Same snapshot the control surface sees; overlays poll this."""
    return await show_service.get_state(session)


@public_router.post("/public/audience/vote")
async def submit_audience_vote(
    request: AudienceVoteRequest,
    session: AsyncSession = Depends(get_session),
):
    """
    Record an audience vote for the item currently in voting.

    The response carries the voter_id to send back on later votes so a
    re-vote replaces the earlier one.
    """
    return await show_service.submit_audience_vote(
        session,
        score=request.score,
        voter_id=request.voter_id,
        item_id=request.item_id,
    )


@public_router.get("/public/leaderboard")
async def get_leaderboard(session: AsyncSession = Depends(get_session)):
    return await show_service.get_leaderboard(session)


@public_router.post("/public/chat/message")
async def ingest_chat_message(
    request: ChatMessageRequest,
    session: AsyncSession = Depends(get_session),
):
    recorded = await chat_votes.record_chat_vote(session, request.voter_id, request.message)
    return {"recorded": recorded}
