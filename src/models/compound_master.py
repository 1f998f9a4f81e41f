"""
CompoundMaster model - reference data for rubber compounds.

Each row describes one compound code and the default weight of a single
mixer batch. The ledger reads it when it has to create a batch on demand.
"""

from sqlalchemy import Column, String, Numeric, Index, CheckConstraint

from .base import BaseModel


class CompoundMaster(BaseModel):
    """
    CompoundMaster model.

    Attributes:
        compound_code: Short unique code used throughout the ledger (e.g. "nk5")
        compound_name: Human readable name (e.g. "Nk-5")
        category: "cover" or "skim"
        default_weight_per_batch: Kilograms produced by one mixer batch
    """

    __tablename__ = "compound_masters"

    compound_code = Column(String(50), nullable=False, unique=True)
    compound_name = Column(String(200), nullable=False)
    category = Column(String(20), nullable=False, default="cover")
    default_weight_per_batch = Column(Numeric(12, 3), nullable=False)

    __table_args__ = (
        Index("idx_compound_master_name", "compound_name"),
        CheckConstraint(
            "default_weight_per_batch > 0", name="ck_compound_master_weight_positive"
        ),
        CheckConstraint(
            "category IN ('cover', 'skim')", name="ck_compound_master_category"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"CompoundMaster(id={self.id}, code='{self.compound_code}', "
            f"name='{self.compound_name}')"
        )
