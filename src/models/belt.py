"""
Belt model and its compound usage rows.

A belt consumes two compound roles (cover and skim). The ordered list of
BeltBatchUsage rows per role is the belt's claim against the batch ledger:
it records exactly which batches supplied how many kilograms.

Invariant: for each role, sum(usage.consumed_kg) equals the belt's stored
requirement for that role (cover_compound_consumed_kg / skim_compound_consumed_kg).
"""

from decimal import Decimal
from typing import List

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Date,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import BeltStatus, CompoundRole, EntryType


class Belt(BaseModel):
    """
    Belt model.

    Attributes:
        belt_number: Unique belt identifier
        rating: Fabric rating string (e.g. "800/4")
        top_cover_mm / bottom_cover_mm: Cover thicknesses
        belt_length_m / belt_width_mm: Belt dimensions
        order_number / buyer_name: Order details
        cover_compound_code / skim_compound_code: Compounds consumed
        cover_compound_consumed_kg / skim_compound_consumed_kg: Last computed requirement
        cover_compound_produced_on / skim_compound_produced_on: Allocated production days
        calendaring_date: Calendaring day, also the preferred date for new batches
        status: BeltStatus value
        entry_type: EntryType value
    """

    __tablename__ = "belts"

    belt_number = Column(String(100), nullable=False, unique=True)
    rating = Column(String(50), nullable=True)
    top_cover_mm = Column(Numeric(8, 2), nullable=True)
    bottom_cover_mm = Column(Numeric(8, 2), nullable=True)
    belt_length_m = Column(Numeric(10, 2), nullable=True)
    belt_width_mm = Column(Numeric(10, 2), nullable=True)
    order_number = Column(String(100), nullable=True)
    buyer_name = Column(String(200), nullable=True)

    cover_compound_code = Column(String(50), nullable=False, index=True)
    skim_compound_code = Column(String(50), nullable=False, index=True)
    cover_compound_consumed_kg = Column(Numeric(12, 3), nullable=False)
    skim_compound_consumed_kg = Column(Numeric(12, 3), nullable=False)
    cover_compound_produced_on = Column(Date, nullable=True, index=True)
    skim_compound_produced_on = Column(Date, nullable=True, index=True)

    calendaring_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default=BeltStatus.IN_PRODUCTION.value)
    entry_type = Column(String(10), nullable=False, default=EntryType.AUTO.value)
    notes = Column(Text, nullable=True)

    usages = relationship(
        "BeltBatchUsage",
        back_populates="belt",
        cascade="all, delete-orphan",
        order_by="BeltBatchUsage.sequence",
    )

    __table_args__ = (
        Index("idx_belt_created", "created_at"),
        CheckConstraint(
            "cover_compound_consumed_kg > 0", name="ck_belt_cover_kg_positive"
        ),
        CheckConstraint(
            "skim_compound_consumed_kg > 0", name="ck_belt_skim_kg_positive"
        ),
    )

    def usages_for(self, role: CompoundRole) -> List["BeltBatchUsage"]:
        """Usage rows for one role, in allocation order."""
        role_value = CompoundRole(role).value
        return sorted(
            (usage for usage in self.usages if usage.role == role_value),
            key=lambda usage: usage.sequence,
        )

    @property
    def cover_batches_used(self) -> List["BeltBatchUsage"]:
        return self.usages_for(CompoundRole.COVER)

    @property
    def skim_batches_used(self) -> List["BeltBatchUsage"]:
        return self.usages_for(CompoundRole.SKIM)

    def compound_code_for(self, role: CompoundRole) -> str:
        if CompoundRole(role) == CompoundRole.COVER:
            return self.cover_compound_code
        return self.skim_compound_code

    def required_kg_for(self, role: CompoundRole) -> Decimal:
        if CompoundRole(role) == CompoundRole.COVER:
            return Decimal(str(self.cover_compound_consumed_kg))
        return Decimal(str(self.skim_compound_consumed_kg))

    def produced_on_for(self, role: CompoundRole):
        if CompoundRole(role) == CompoundRole.COVER:
            return self.cover_compound_produced_on
        return self.skim_compound_produced_on

    def used_kg_for(self, role: CompoundRole) -> Decimal:
        """Sum of consumed kilograms recorded for one role."""
        return sum(
            (Decimal(str(usage.consumed_kg)) for usage in self.usages_for(role)),
            Decimal("0"),
        )

    def __repr__(self) -> str:
        return f"Belt(id={self.id}, belt_number='{self.belt_number}')"

    def to_dict(self, include_relationships: bool = False) -> dict:
        result = super().to_dict(include_relationships)
        result["cover_batches_used"] = [usage.to_usage_dict() for usage in self.cover_batches_used]
        result["skim_batches_used"] = [usage.to_usage_dict() for usage in self.skim_batches_used]
        return result


class BeltBatchUsage(BaseModel):
    """
    One {batch_id, consumed_kg} entry of a belt's usage list.

    Attributes:
        belt_id: Owning belt
        role: "cover" or "skim"
        sequence: Position within the role's list (allocation order)
        batch_id: CompoundBatch that supplied the compound
        consumed_kg: Kilograms taken from that batch
    """

    __tablename__ = "belt_batch_usages"

    belt_id = Column(Integer, ForeignKey("belts.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(10), nullable=False)
    sequence = Column(Integer, nullable=False)
    batch_id = Column(
        Integer, ForeignKey("compound_batches.id", ondelete="RESTRICT"), nullable=False
    )
    consumed_kg = Column(Numeric(12, 3), nullable=False)

    belt = relationship("Belt", back_populates="usages")
    batch = relationship("CompoundBatch")

    __table_args__ = (
        Index("idx_belt_usage_belt", "belt_id", "role", "sequence"),
        Index("idx_belt_usage_batch", "batch_id"),
        CheckConstraint("consumed_kg > 0", name="ck_belt_usage_kg_positive"),
        CheckConstraint("role IN ('cover', 'skim')", name="ck_belt_usage_role"),
    )

    def to_usage_dict(self) -> dict:
        return {"batch_id": self.batch_id, "consumed_kg": str(Decimal(str(self.consumed_kg)))}

    def __repr__(self) -> str:
        return (
            f"BeltBatchUsage(belt_id={self.belt_id}, role='{self.role}', "
            f"batch_id={self.batch_id}, consumed_kg={self.consumed_kg})"
        )
