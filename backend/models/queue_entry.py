"""
QueueEntry model — one row per queued item, ordered by a sparse rank.
"""

from sqlalchemy import Column, ForeignKey, Integer, String

from models.item import Base


class QueueEntry(Base):
    __tablename__ = "queue_entries"

    item_id = Column(
        String(36),
        ForeignKey("items.id", ondelete="CASCADE"),
        primary_key=True,
    )
    rank = Column(Integer, nullable=False, index=True)
