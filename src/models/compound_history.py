"""
CompoundHistory model - audit snapshot of a compound batch.

Written once when a batch is created and updated once, the first time a
cover or skim production date is stamped on the batch. Not authoritative:
the ledger never reads it back.
"""

from sqlalchemy import Column, Integer, String, Date, Numeric, Index

from .base import BaseModel


class CompoundHistory(BaseModel):
    """
    CompoundHistory snapshot.

    Attributes:
        batch_id: CompoundBatch id (not a foreign key; history outlives batches)
        compound_code / compound_name: Compound identity at snapshot time
        date: Batch date
        batches / weight_per_batch / total_inventory: Lot size
        closing_balance: inventory_remaining when the snapshot was written
        cover_compound_produced_on / skim_compound_produced_on: Stamped dates
    """

    __tablename__ = "compound_history"

    batch_id = Column(Integer, nullable=False)
    compound_code = Column(String(50), nullable=False)
    compound_name = Column(String(200), nullable=True)
    date = Column(Date, nullable=False)
    batches = Column(Integer, nullable=False)
    weight_per_batch = Column(Numeric(12, 3), nullable=False)
    total_inventory = Column(Numeric(12, 3), nullable=False)
    closing_balance = Column(Numeric(12, 3), nullable=False)
    cover_compound_produced_on = Column(Date, nullable=True)
    skim_compound_produced_on = Column(Date, nullable=True)

    __table_args__ = (
        Index("idx_compound_history_batch", "batch_id"),
        Index("idx_compound_history_code", "compound_code"),
    )

    def __repr__(self) -> str:
        return (
            f"CompoundHistory(id={self.id}, batch_id={self.batch_id}, "
            f"code='{self.compound_code}', date={self.date})"
        )
