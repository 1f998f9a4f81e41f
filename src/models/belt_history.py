"""
BeltHistory model - audit snapshot of a belt at creation time.

Usage lists are denormalized into JSON text columns (Text for SQLite
compatibility) so the snapshot survives later cascades and belt deletion.
"""

import json

from sqlalchemy import Column, Integer, String, Text, Index

from .base import BaseModel


class BeltHistory(BaseModel):
    """
    BeltHistory snapshot.

    Attributes:
        belt_id: Belt id (not a foreign key; history outlives belts)
        belt_number: Belt number at snapshot time
        rating: Rating at snapshot time
        cover_batches_data: JSON list of {"batch_id", "consumed_kg"}
        skim_batches_data: JSON list of {"batch_id", "consumed_kg"}
        remarks: Optional free text
    """

    __tablename__ = "belt_history"

    belt_id = Column(Integer, nullable=False)
    belt_number = Column(String(100), nullable=True)
    rating = Column(String(50), nullable=True)
    cover_batches_data = Column(Text, nullable=False, default="[]")
    skim_batches_data = Column(Text, nullable=False, default="[]")
    remarks = Column(Text, nullable=True)

    __table_args__ = (Index("idx_belt_history_belt", "belt_id"),)

    def get_cover_batches(self) -> list:
        """
        Parse and return the cover usage snapshot.

        Returns:
            List of usage dicts; empty list if missing or invalid JSON.
        """
        return _load_list(self.cover_batches_data)

    def get_skim_batches(self) -> list:
        """
        Parse and return the skim usage snapshot.

        Returns:
            List of usage dicts; empty list if missing or invalid JSON.
        """
        return _load_list(self.skim_batches_data)

    def __repr__(self) -> str:
        return f"BeltHistory(id={self.id}, belt_id={self.belt_id}, belt_number='{self.belt_number}')"


def _load_list(data) -> list:
    if not data:
        return []
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        return []
