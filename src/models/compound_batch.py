"""
CompoundBatch model - one dated lot of compound in the inventory ledger.

A batch is created on demand (or manually) with a fixed total weight and is
drained by FIFO consumption. The ledger holds at most one batch per calendar
day across all compounds; the UNIQUE constraint on `date` enforces that.

Invariant (checked by the database and by audit_ledger):
    inventory_remaining + consumed == total_inventory, both >= 0
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    Numeric,
    Index,
    CheckConstraint,
    UniqueConstraint,
)

from .base import BaseModel
from ..utils.constants import MIN_BATCH_REMAINING_KG


class CompoundBatch(BaseModel):
    """
    CompoundBatch model.

    Attributes:
        compound_code: Compound this lot belongs to
        compound_name: Denormalized name from CompoundMaster
        date: Lot date, globally unique (one batch per day system-wide)
        batches: Number of mixer batches in the lot
        weight_per_batch: Kilograms per mixer batch
        total_inventory: batches * weight_per_batch
        inventory_remaining: Kilograms still available
        consumed: Kilograms consumed so far
        cover_compound_produced_on: Stamped on first cover consumption, then immutable
        skim_compound_produced_on: Stamped on first skim consumption, then immutable
    """

    __tablename__ = "compound_batches"

    compound_code = Column(String(50), nullable=False)
    compound_name = Column(String(200), nullable=True)
    date = Column(Date, nullable=False)
    batches = Column(Integer, nullable=False)
    weight_per_batch = Column(Numeric(12, 3), nullable=False)
    total_inventory = Column(Numeric(12, 3), nullable=False)
    inventory_remaining = Column(Numeric(12, 3), nullable=False, default=Decimal("0"))
    consumed = Column(Numeric(12, 3), nullable=False, default=Decimal("0"))
    cover_compound_produced_on = Column(Date, nullable=True)
    skim_compound_produced_on = Column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("date", name="uq_compound_batches_date"),
        # FIFO lookup: oldest batch with stock for a code
        Index("idx_compound_batch_fifo", "compound_code", "date"),
        Index("idx_compound_batch_cover_produced", "cover_compound_produced_on"),
        Index("idx_compound_batch_skim_produced", "skim_compound_produced_on"),
        CheckConstraint("batches > 0", name="ck_compound_batch_batches_positive"),
        CheckConstraint(
            "inventory_remaining >= 0", name="ck_compound_batch_remaining_non_negative"
        ),
        CheckConstraint("consumed >= 0", name="ck_compound_batch_consumed_non_negative"),
    )

    @property
    def is_depleted(self) -> bool:
        """True once less than one gram remains."""
        return Decimal(str(self.inventory_remaining)) < MIN_BATCH_REMAINING_KG

    def __repr__(self) -> str:
        return (
            f"CompoundBatch(id={self.id}, code='{self.compound_code}', "
            f"date={self.date}, remaining={self.inventory_remaining}, "
            f"consumed={self.consumed})"
        )

    def to_dict(self, include_relationships: bool = False) -> dict:
        result = super().to_dict(include_relationships)
        result["is_depleted"] = self.is_depleted
        return result
