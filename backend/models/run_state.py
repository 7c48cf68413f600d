"""
RunStateEntry model — scalar process state as a key/value table.

Holds the stage, current item, serialized timer, round version, overlay
visibility flag, serialized settings and the open prediction id.
"""

from sqlalchemy import Column, String, Text

from models.item import Base


class RunStateEntry(Base):
    __tablename__ = "run_state"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
