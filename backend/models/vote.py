"""
Vote models — judge scores and audience scores.

The two tables are structurally identical but kept separate: a judge vote is
keyed by an authenticated judge id, an audience vote by an anonymous voter id.
Both have one live score per (item, voter); a re-vote overwrites it.
"""

from sqlalchemy import BigInteger, Column, ForeignKey, Integer, String

from models.item import Base


class Vote(Base):
    __tablename__ = "votes"

    item_id = Column(
        String(36),
        ForeignKey("items.id", ondelete="CASCADE"),
        primary_key=True,
    )
    judge_id = Column(String(64), primary_key=True)
    score = Column(Integer, nullable=False)
    updated_at = Column(BigInteger, nullable=False)

    def to_dict(self) -> dict:
        return {
            "judge_id": self.judge_id,
            "score": self.score,
            "updated_at": self.updated_at,
        }


class AudienceVote(Base):
    __tablename__ = "audience_votes"

    item_id = Column(
        String(36),
        ForeignKey("items.id", ondelete="CASCADE"),
        primary_key=True,
    )
    voter_id = Column(String(64), primary_key=True)
    score = Column(Integer, nullable=False)
    updated_at = Column(BigInteger, nullable=False)
