"""
Queue Service — ordered list of pending items.

Order is defined by a sparse integer rank: new entries go in at max + 10, and
a reorder reassigns every rank densely as (index + 1) * 10. None of these
functions commit; the caller's transaction makes a reorder all-or-nothing.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from errors import QueueMismatch
from models.item import Item
from models.queue_entry import QueueEntry
from state import RANK_STEP

logger = logging.getLogger(__name__)


async def list_entries(session: AsyncSession) -> List[Tuple[QueueEntry, Item]]:
    """All queue entries with their items, ascending by rank."""
    result = await session.execute(
        select(QueueEntry, Item)
        .join(Item, Item.id == QueueEntry.item_id)
        .order_by(QueueEntry.rank.asc())
    )
    return [(entry, item) for entry, item in result.all()]


async def list_item_ids(session: AsyncSession) -> List[str]:
    result = await session.execute(
        select(QueueEntry.item_id).order_by(QueueEntry.rank.asc())
    )
    return list(result.scalars().all())


async def enqueue(session: AsyncSession, item_id: str) -> QueueEntry:
    result = await session.execute(select(func.coalesce(func.max(QueueEntry.rank), 0)))
    next_rank = result.scalar_one() + RANK_STEP

    entry = QueueEntry(item_id=item_id, rank=next_rank)
    session.add(entry)
    await session.flush()
    return entry


async def dequeue_lowest(session: AsyncSession) -> Optional[QueueEntry]:
    """Remove and return the entry with the smallest rank, or None when empty."""
    result = await session.execute(
        select(QueueEntry).order_by(QueueEntry.rank.asc()).limit(1)
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        return None

    await session.delete(entry)
    await session.flush()
    return entry


async def remove(session: AsyncSession, item_id: str) -> bool:
    """Remove an item from the queue. Returns whether it was there."""
    result = await session.execute(
        delete(QueueEntry).where(QueueEntry.item_id == item_id)
    )
    return result.rowcount > 0


async def reorder(session: AsyncSession, ordered_ids: List[str]) -> None:
    """
    Reassign ranks so the queue follows ``ordered_ids``.

    Raises:
        QueueMismatch: ordered_ids is not exactly a permutation of the queued
                       item ids (missing, extra or duplicated entries).
    """
    existing = await list_item_ids(session)

    if len(ordered_ids) != len(existing):
        raise QueueMismatch(
            f"Queue length mismatch: got {len(ordered_ids)} ids, queue has {len(existing)}"
        )
    if set(ordered_ids) != set(existing) or len(set(ordered_ids)) != len(ordered_ids):
        unknown = [i for i in ordered_ids if i not in set(existing)]
        detail = f"Items not in queue: {unknown}" if unknown else "Duplicate ids in queue order"
        raise QueueMismatch(detail)

    for index, item_id in enumerate(ordered_ids):
        await session.execute(
            update(QueueEntry)
            .where(QueueEntry.item_id == item_id)
            .values(rank=(index + 1) * RANK_STEP)
        )
    logger.info("Queue reordered: %s", ordered_ids)


async def clear(session: AsyncSession) -> None:
    await session.execute(delete(QueueEntry))
