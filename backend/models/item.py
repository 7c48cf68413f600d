"""
Item model — a submission queued for rating.

Items are created by the registration endpoint (standing in for the upload
pipeline). The round engine only reads their identity and writes ``status``.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import DeclarativeBase

from state import ItemStatus


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""

    pass


class Item(Base):
    __tablename__ = "items"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    name = Column(String(255), nullable=False)
    status = Column(
        String(20),
        nullable=False,
        default=ItemStatus.QUEUED.value,
    )
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        """Serialize to a JSON-friendly dict."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
