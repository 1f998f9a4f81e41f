"""Tests for batch and belt history snapshots."""

from decimal import Decimal

from src.services.belt_service import create_belt, update_belt
from src.services.compound_batch_service import create_compound_batch
from src.services.history_service import list_belt_history, list_compound_history


class TestCompoundHistory:
    def test_snapshot_per_batch(self, catalog):
        first = create_compound_batch("nk5", "2025-03-03", 2)
        create_compound_batch("sk2", "2025-03-04", 1)

        history = list_compound_history()
        assert [h["batch_id"] for h in history][0] == first["id"]
        assert len(history) == 2
        assert len(list_compound_history(compound_code="sk2")) == 1

        snapshot = list_compound_history(batch_id=first["id"])[0]
        assert snapshot["date"] == "2025-03-03"
        assert snapshot["batches"] == 2
        assert Decimal(snapshot["total_inventory"]) == Decimal("180")
        assert snapshot["cover_compound_produced_on"] is None

    def test_belt_stamps_batch_snapshot(self, catalog):
        batch = create_compound_batch("nk5", "2025-03-03", 2)
        create_compound_batch("sk2", "2025-03-04", 1)
        create_belt(
            {"belt_number": "B1"},
            cover_compound_code="nk5",
            skim_compound_code="sk2",
            cover_consumed_kg="30",
            skim_consumed_kg="5",
            calendaring_date="2025-03-17",
        )

        snapshot = list_compound_history(batch_id=batch["id"])[-1]
        assert snapshot["cover_compound_produced_on"] == "2025-03-08"
        assert Decimal(snapshot["closing_balance"]) == Decimal("150")


class TestBeltHistory:
    def test_snapshot_written_once_at_creation(self, catalog):
        belt = create_belt(
            {"belt_number": "B1", "rating": "630/4"},
            cover_compound_code="nk5",
            skim_compound_code="sk2",
            cover_consumed_kg="30",
            skim_consumed_kg="5",
        )
        update_belt(belt["id"], cover_consumed_kg="40")

        history = list_belt_history(belt_id=belt["id"])
        assert len(history) == 1
        assert history[0]["belt_number"] == "B1"
        assert history[0]["rating"] == "630/4"
        assert [Decimal(e["consumed_kg"]) for e in history[0]["cover_batches_used"]] == [
            Decimal("30")
        ]
