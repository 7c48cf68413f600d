"""Persistence models for the rating show."""

from .item import Base, Item
from .queue_entry import QueueEntry
from .run_state import RunStateEntry
from .vote import AudienceVote, Vote

__all__ = [
    "Base",
    "Item",
    "QueueEntry",
    "RunStateEntry",
    "Vote",
    "AudienceVote",
]
