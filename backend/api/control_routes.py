"""
REST API routes for the producer control surface.

Endpoints:
    GET    /api/control/state                      — Current show snapshot
    POST   /api/control/start                      — Advance to the next queued item
    POST   /api/control/lock                       — Lock voting on the current item
    POST   /api/control/reopen                     — Reopen voting after a lock
    POST   /api/control/results                    — Reveal results
    POST   /api/control/reset                      — Back to idle
    POST   /api/control/timer/pause                — Pause the countdown
    POST   /api/control/timer/resume               — Resume the countdown
    POST   /api/control/timer/extend               — Add seconds to the window
    PUT    /api/control/queue                      — Reorder the queue
    DELETE /api/control/queue/{item_id}            — Remove an item from the queue
    POST   /api/control/overlay/voting             — Show or hide live voting on the overlay
    PUT    /api/control/votes/{item_id}/{judge_id} — Record a judge score
    DELETE /api/control/votes/{item_id}/{judge_id} — Withdraw a judge score
    DELETE /api/control/votes                      — Clear all judge and audience votes
    POST   /api/control/clear-all                  — Delete every item, queue entry and vote
    GET    /api/control/settings                   — Read show settings
    PUT    /api/control/settings                   — Update show settings

Every mutation answers with the full snapshot. Control errors are rendered by
the ControlActionError handler in main.py.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_session
from services import show_service
from services.prediction_service import PredictionHooks, get_prediction_hooks

control_router = APIRouter()


# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------

class ExtendTimerRequest(BaseModel):
    seconds: float = Field(..., allow_inf_nan=False)


class QueueOrderRequest(BaseModel):
    queue: List[str]


class OverlayVotingRequest(BaseModel):
    show: bool


class JudgeVoteRequest(BaseModel):
    score: float


class SettingsUpdateRequest(BaseModel):
    defaultTimerSeconds: Optional[int] = Field(None, gt=0)
    graceWindowSeconds: Optional[int] = Field(None, ge=0)


def _settings_response(settings) -> dict:
    return {
        "defaultTimerSeconds": settings.default_timer_seconds,
        "graceWindowSeconds": settings.grace_window_seconds,
    }


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------

@control_router.get("/control/state")
async def get_show_state(session: AsyncSession = Depends(get_session)):
    """Current snapshot. Applies the auto-lock rule if the window ran out."""
    return await show_service.get_state(session)


@control_router.post("/control/start")
async def start_next_item(
    session: AsyncSession = Depends(get_session),
    hooks: PredictionHooks = Depends(get_prediction_hooks),
):
    return await show_service.advance(session, hooks=hooks)


@control_router.post("/control/lock")
async def lock_voting(
    session: AsyncSession = Depends(get_session),
    hooks: PredictionHooks = Depends(get_prediction_hooks),
):
    return await show_service.lock(session, hooks=hooks)


@control_router.post("/control/reopen")
async def reopen_voting(
    session: AsyncSession = Depends(get_session),
    hooks: PredictionHooks = Depends(get_prediction_hooks),
):
    return await show_service.reopen(session, hooks=hooks)


@control_router.post("/control/results")
async def show_results(session: AsyncSession = Depends(get_session)):
    return await show_service.show_results(session)


@control_router.post("/control/reset")
async def reset_show(session: AsyncSession = Depends(get_session)):
    return await show_service.reset_to_idle(session)


# ---------------------------------------------------------------------------
# Timer
# ---------------------------------------------------------------------------

@control_router.post("/control/timer/pause")
async def pause_timer(session: AsyncSession = Depends(get_session)):
    return await show_service.pause_timer(session)


@control_router.post("/control/timer/resume")
async def resume_timer(session: AsyncSession = Depends(get_session)):
    return await show_service.resume_timer(session)


@control_router.post("/control/timer/extend")
async def extend_timer(
    request: ExtendTimerRequest,
    session: AsyncSession = Depends(get_session),
):
    return await show_service.extend_timer(session, request.seconds)


# ---------------------------------------------------------------------------
# Queue & overlay
# ---------------------------------------------------------------------------

@control_router.put("/control/queue")
async def reorder_queue(
    request: QueueOrderRequest,
    session: AsyncSession = Depends(get_session),
):
    return await show_service.reorder_queue(session, request.queue)


@control_router.delete("/control/queue/{item_id}")
async def remove_from_queue(
    item_id: str,
    session: AsyncSession = Depends(get_session),
):
    return await show_service.remove_from_queue(session, item_id)


@control_router.post("/control/overlay/voting")
async def set_overlay_voting(
    request: OverlayVotingRequest,
    session: AsyncSession = Depends(get_session),
):
    return await show_service.set_visibility(session, request.show)


# ---------------------------------------------------------------------------
# Judge votes
# ---------------------------------------------------------------------------

@control_router.put("/control/votes/{item_id}/{judge_id}")
async def upsert_judge_vote(
    item_id: str,
    judge_id: str,
    request: JudgeVoteRequest,
    session: AsyncSession = Depends(get_session),
):
    return await show_service.upsert_vote(session, item_id, judge_id, request.score)


@control_router.delete("/control/votes/{item_id}/{judge_id}")
async def delete_judge_vote(
    item_id: str,
    judge_id: str,
    session: AsyncSession = Depends(get_session),
):
    return await show_service.delete_vote(session, item_id, judge_id)


@control_router.delete("/control/votes")
async def clear_all_votes(session: AsyncSession = Depends(get_session)):
    return await show_service.clear_all_votes(session)


@control_router.post("/control/clear-all")
async def clear_everything(session: AsyncSession = Depends(get_session)):
    return await show_service.clear_everything(session)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@control_router.get("/control/settings")
async def get_settings(session: AsyncSession = Depends(get_session)):
    return _settings_response(await show_service.get_settings(session))


@control_router.put("/control/settings")
async def update_settings(
    request: SettingsUpdateRequest,
    session: AsyncSession = Depends(get_session),
):
    settings = await show_service.update_settings(
        session,
        default_timer_seconds=request.defaultTimerSeconds,
        grace_window_seconds=request.graceWindowSeconds,
    )
    return _settings_response(settings)
