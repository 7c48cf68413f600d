"""
Chat vote source — turns chat messages into audience votes.

The chat connection itself lives outside this service; it forwards each
message with the sender's stable id. A message counts as a vote when it is a
bare score ("3") or a vote command ("!v 3", "!vote 3").
"""

import logging
import re
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from errors import WrongStage
from services import show_service

logger = logging.getLogger(__name__)

_DIRECT_SCORE = re.compile(r"^([1-5])$")
_VOTE_COMMAND = re.compile(r"^!v(?:ote)?\s*([1-5])$", re.IGNORECASE)


def parse_chat_score(message: str) -> Optional[int]:
    """Return the score carried by a chat message, or None."""
    trimmed = (message or "").strip()
    match = _DIRECT_SCORE.match(trimmed) or _VOTE_COMMAND.match(trimmed)
    if not match:
        return None
    return int(match.group(1))


async def record_chat_vote(
    session: AsyncSession,
    voter_id: str,
    message: str,
    now: Optional[int] = None,
) -> bool:
    """
    Record a chat message as an audience vote for the item on stage.

    Returns False when the message is not a vote or no round is open.
    """
    score = parse_chat_score(message)
    if score is None:
        return False

    try:
        await show_service.submit_audience_vote(
            session, score=score, voter_id=voter_id, now=now
        )
    except WrongStage:
        logger.debug("Ignoring chat vote from %s outside a voting round", voter_id)
        return False

    logger.debug("Chat vote recorded: voter=%s score=%s", voter_id, score)
    return True
