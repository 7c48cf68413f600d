"""
Item Service — CRUD for submissions and the leaderboard query.
"""

from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.item import Item
from services import vote_service
from state import ItemStatus


async def create_item(
    session: AsyncSession,
    name: str,
    item_id: Optional[str] = None,
) -> Item:
    """Create a queued item. Does not enqueue it and does not commit."""
    item = Item(name=name, status=ItemStatus.QUEUED.value)
    if item_id:
        item.id = item_id

    session.add(item)
    await session.flush()
    return item


async def get_item(session: AsyncSession, item_id: str) -> Optional[Item]:
    result = await session.execute(select(Item).where(Item.id == item_id))
    return result.scalar_one_or_none()


async def list_items(session: AsyncSession) -> List[Item]:
    """All items, newest first."""
    result = await session.execute(select(Item).order_by(Item.created_at.desc()))
    return list(result.scalars().all())


async def set_item_status(session: AsyncSession, item_id: str, status: ItemStatus) -> None:
    await session.execute(
        update(Item).where(Item.id == item_id).values(status=status.value)
    )


async def rename_item(session: AsyncSession, item_id: str, name: str) -> Optional[Item]:
    """Rename an item and commit. Returns None if not found."""
    item = await get_item(session, item_id)
    if item is None:
        return None

    item.name = name
    await session.commit()
    await session.refresh(item)
    return item


async def delete_all_items(session: AsyncSession) -> None:
    await session.execute(delete(Item))


async def leaderboard(session: AsyncSession) -> List[dict]:
    """
    Every item with its judge summary, best average first.

    Items without votes sort last; ties go to the newest item.
    """
    items = await list_items(session)
    rows = []
    for item in items:
        summary = await vote_service.judge_summary(session, item.id)
        rows.append({
            "item": item.to_dict(),
            "average": summary.average,
            "vote_count": summary.count,
            "distribution": summary.distribution,
        })

    # list_items is newest-first and sorted() is stable, so ties keep that order
    return sorted(
        rows,
        key=lambda r: (r["average"] is None, -(r["average"] or 0.0)),
    )
