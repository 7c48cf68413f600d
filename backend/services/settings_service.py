"""
Settings Service — typed wrapper over the run-state ``settings`` key.

Holds the producer-tunable show settings. Missing keys and unreadable JSON
fall back to the defaults.
"""

import json
import logging
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from services import run_state_service
from state import DEFAULT_GRACE_WINDOW_SECONDS, DEFAULT_TIMER_SECONDS

logger = logging.getLogger(__name__)


class ShowSettings(BaseModel):
    default_timer_seconds: int = Field(default=DEFAULT_TIMER_SECONDS, gt=0)
    grace_window_seconds: int = Field(default=DEFAULT_GRACE_WINDOW_SECONDS, ge=0)


async def get_settings(session: AsyncSession) -> ShowSettings:
    raw = await run_state_service.get_value(session, run_state_service.SETTINGS_KEY)
    if not raw:
        return ShowSettings()

    try:
        parsed = json.loads(raw)
        return ShowSettings(**{k: v for k, v in parsed.items() if v is not None})
    except (ValueError, TypeError, AttributeError):
        logger.warning("Stored settings are unreadable, using defaults")
        return ShowSettings()


async def update_settings(
    session: AsyncSession,
    default_timer_seconds: Optional[int] = None,
    grace_window_seconds: Optional[int] = None,
) -> ShowSettings:
    """Merge the given values over the stored settings and persist them."""
    current = await get_settings(session)
    updated = ShowSettings(
        default_timer_seconds=(
            default_timer_seconds
            if default_timer_seconds is not None
            else current.default_timer_seconds
        ),
        grace_window_seconds=(
            grace_window_seconds
            if grace_window_seconds is not None
            else current.grace_window_seconds
        ),
    )
    await run_state_service.set_value(
        session, run_state_service.SETTINGS_KEY, updated.model_dump_json()
    )
    logger.info("Settings updated: %s", updated.model_dump())
    return updated


async def get_default_duration_ms(session: AsyncSession) -> int:
    settings = await get_settings(session)
    return settings.default_timer_seconds * 1000


async def get_grace_window_ms(session: AsyncSession) -> int:
    settings = await get_settings(session)
    return settings.grace_window_seconds * 1000
