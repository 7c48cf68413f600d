"""
Run-State Service — key/value access to scalar process state.

The round record (stage, current item, timer) is spread over several keys and
guarded by ``round_version``. Saving the record is a compare-and-set on that
key, which makes it the serialization point between concurrent control
requests: the loser of a race gets StateConflict and its transaction rolls
back.

None of these functions commit; callers own the transaction.
"""

import logging
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database import dialect_insert
from errors import StateConflict
from models.run_state import RunStateEntry
from services import timer_engine
from state import RoundState, Stage

logger = logging.getLogger(__name__)

STAGE_KEY = "stage"
CURRENT_ITEM_KEY = "current_item_id"
TIMER_KEY = "timer_state"
VERSION_KEY = "round_version"
OVERLAY_VOTING_KEY = "show_overlay_voting"
SETTINGS_KEY = "settings"
PREDICTION_KEY = "prediction_id"

_STAGES = {s.value for s in Stage}


async def get_value(session: AsyncSession, key: str) -> Optional[str]:
    result = await session.execute(
        select(RunStateEntry.value).where(RunStateEntry.key == key)
    )
    return result.scalar_one_or_none()


async def set_value(session: AsyncSession, key: str, value: str) -> None:
    """Upsert a single key. Atomic at the row level."""
    stmt = dialect_insert(session, RunStateEntry).values(key=key, value=value)
    stmt = stmt.on_conflict_do_update(
        index_elements=[RunStateEntry.key],
        set_={"value": stmt.excluded.value},
    )
    await session.execute(stmt)


async def clear_value(session: AsyncSession, key: str) -> None:
    await session.execute(delete(RunStateEntry).where(RunStateEntry.key == key))


def normalize_stage(value: Optional[str]) -> str:
    """Unknown or missing stage values read as idle."""
    if value in _STAGES:
        return value
    return Stage.IDLE.value


# ---------------------------------------------------------------------------
# Round record
# ---------------------------------------------------------------------------

async def load_round_state(
    session: AsyncSession,
    default_duration_ms: int,
    now: int,
) -> RoundState:
    """
    Read the round record. Missing keys fall back to the idle defaults so a
    fresh database behaves like a freshly reset show.
    """
    result = await session.execute(
        select(RunStateEntry.key, RunStateEntry.value).where(
            RunStateEntry.key.in_([STAGE_KEY, CURRENT_ITEM_KEY, TIMER_KEY, VERSION_KEY])
        )
    )
    values = {key: value for key, value in result.all()}

    try:
        version = int(values.get(VERSION_KEY, "0"))
    except ValueError:
        version = 0

    return RoundState(
        stage=normalize_stage(values.get(STAGE_KEY)),
        current_item_id=values.get(CURRENT_ITEM_KEY) or None,
        timer=timer_engine.loads(values.get(TIMER_KEY), default_duration_ms, now),
        version=version,
    )


async def _bump_version(session: AsyncSession, expected: int) -> int:
    new_version = expected + 1
    if expected == 0:
        # First save on a fresh store: the version row may not exist yet.
        stmt = (
            dialect_insert(session, RunStateEntry)
            .values(key=VERSION_KEY, value=str(new_version))
            .on_conflict_do_nothing(index_elements=[RunStateEntry.key])
        )
        result = await session.execute(stmt)
        if result.rowcount == 1:
            return new_version

    result = await session.execute(
        update(RunStateEntry)
        .where(RunStateEntry.key == VERSION_KEY, RunStateEntry.value == str(expected))
        .values(value=str(new_version))
    )
    if result.rowcount != 1:
        logger.warning("Round state version conflict (expected %s)", expected)
        raise StateConflict(expected)
    return new_version


async def save_round_state(session: AsyncSession, state: RoundState) -> RoundState:
    """
    Persist the round record if nobody else saved since it was loaded.

    Args:
        session: Active session; the caller commits.
        state:   The next RoundState. Its ``version`` must be the version that
                 was loaded.

    Returns:
        The saved RoundState carrying the new version.

    Raises:
        StateConflict: another writer saved a newer version first.
    """
    new_version = await _bump_version(session, state["version"])

    await set_value(session, STAGE_KEY, state["stage"])
    if state["current_item_id"]:
        await set_value(session, CURRENT_ITEM_KEY, state["current_item_id"])
    else:
        await clear_value(session, CURRENT_ITEM_KEY)
    await set_value(session, TIMER_KEY, timer_engine.dumps(state["timer"]))

    return RoundState(
        stage=state["stage"],
        current_item_id=state["current_item_id"],
        timer=state["timer"],
        version=new_version,
    )


# ---------------------------------------------------------------------------
# Overlay visibility
# ---------------------------------------------------------------------------

async def get_overlay_voting(session: AsyncSession) -> bool:
    return await get_value(session, OVERLAY_VOTING_KEY) == "true"


async def set_overlay_voting(session: AsyncSession, show: bool) -> None:
    await set_value(session, OVERLAY_VOTING_KEY, "true" if show else "false")
