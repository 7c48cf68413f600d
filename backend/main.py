"""
Rating Show — FastAPI application entrypoint.

Start the server:
    uvicorn main:app --reload --port 8000

API Overview:
    GET    /api/control/state                      — Show snapshot (producer)
    POST   /api/control/start                      — Advance to the next item
    POST   /api/control/lock                       — Lock voting
    POST   /api/control/reopen                     — Reopen voting
    POST   /api/control/results                    — Reveal results
    POST   /api/control/reset                      — Reset to idle
    POST   /api/control/timer/{pause,resume,extend}
    PUT    /api/control/queue                      — Reorder queue
    DELETE /api/control/queue/{item_id}            — Remove from queue
    POST   /api/control/overlay/voting             — Overlay voting visibility
    PUT    /api/control/votes/{item_id}/{judge_id} — Judge score
    DELETE /api/control/votes/{item_id}/{judge_id} — Withdraw judge score
    DELETE /api/control/votes                      — Clear all votes
    POST   /api/control/clear-all                  — Clear everything
    GET    /api/control/settings                   — Show settings
    PUT    /api/control/settings                   — Update show settings
    GET    /api/public/overlay/state               — Show snapshot (overlay)
    POST   /api/public/audience/vote               — Audience vote
    GET    /api/public/leaderboard                 — Leaderboard
    POST   /api/public/chat/message                — Chat vote ingestion
    GET    /api/items/                             — List items
    POST   /api/items/                             — Register items
    PUT    /api/items/{item_id}                    — Rename item
    POST   /api/judge/vote                         — Judge vote on the live round
    GET    /api/health                             — Health check
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.control_routes import control_router
from api.item_routes import item_router
from api.judge_routes import judge_router
from api.public_routes import public_router
from database import close_db, init_db
from errors import ControlActionError
from services.prediction_service import get_prediction_hooks

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown logic."""
    logger.info("Rating Show API starting up...")
    await init_db()
    logger.info("Database initialized.")
    yield
    await get_prediction_hooks().drain()
    await close_db()
    logger.info("Rating Show API shutting down...")


app = FastAPI(
    title="Rating Show API",
    description=(
        "Backend for a live rating show. Runs the round lifecycle (queue, "
        "timed voting window, judge and audience votes, results) and serves "
        "the snapshot that producer, judge and overlay clients poll."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: all origins unless CORS_ORIGINS narrows it down
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ControlActionError)
async def control_action_error_handler(request: Request, exc: ControlActionError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Mount REST routes under /api prefix
app.include_router(control_router, prefix="/api")
app.include_router(public_router, prefix="/api")
app.include_router(item_router, prefix="/api")
app.include_router(judge_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
