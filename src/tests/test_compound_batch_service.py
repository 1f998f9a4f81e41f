"""
Tests for the compound batch store.

Covers:
- Globally unique batch dates and the free-date search
- On-demand batch generation (batch count range, master weight, duplicate-date retry)
- Manual creation, editing and deletion
- FIFO queries and inventory summaries
"""

import random
from datetime import date
from decimal import Decimal

import pytest

from src.models import CompoundBatch
from src.services import compound_batch_service
from src.services.compound_batch_service import (
    create_compound_batch,
    delete_compound_batch,
    find_free_batch_date,
    generate_compound_batch,
    get_compound_batch,
    get_fifo_batches,
    get_inventory_summary,
    get_next_available_batch,
    is_production_date_used,
    list_compound_batches,
    update_compound_batch,
)
from src.services.compound_consumption_service import consume_compound
from src.services.database import session_scope
from src.services.exceptions import (
    CapacityExhaustedError,
    CompoundBatchNotFoundError,
    CompoundMasterNotFoundError,
    ValidationError,
)
from src.services.history_service import list_compound_history
from src.services.ledger_audit_service import audit_ledger


class TestFindFreeBatchDate:
    def test_free_day_returned_as_is(self, catalog):
        with session_scope() as session:
            assert find_free_batch_date(date(2025, 3, 3), session) == date(2025, 3, 3)

    def test_sunday_snaps_forward(self, catalog):
        with session_scope() as session:
            assert find_free_batch_date("2025-03-09", session) == date(2025, 3, 10)

    def test_skips_days_used_by_any_compound(self, catalog):
        """Batch dates are unique across all compounds, not per compound."""
        create_compound_batch("nk5", "2025-03-03", 1)
        create_compound_batch("sk2", "2025-03-04", 1)
        with session_scope() as session:
            assert find_free_batch_date(date(2025, 3, 3), session) == date(2025, 3, 5)

    def test_bounded_search(self, catalog, ledger_config):
        ledger_config.configure_ledger(max_free_date_search_days=2)
        create_compound_batch("nk5", "2025-03-03", 1)
        create_compound_batch("nk5", "2025-03-04", 1)
        with session_scope() as session:
            with pytest.raises(CapacityExhaustedError):
                find_free_batch_date(date(2025, 3, 3), session)


class TestGenerateCompoundBatch:
    def test_generated_batch_uses_master_weight_and_count_range(self, catalog):
        with session_scope() as session:
            batch = generate_compound_batch("nk5", date(2025, 3, 3), session, random.Random(7))
            batch_id = batch.id

        result = get_compound_batch(batch_id)
        assert result["date"] == "2025-03-03"
        assert 100 <= result["batches"] <= 110
        assert Decimal(result["weight_per_batch"]) == Decimal("90")
        assert Decimal(result["total_inventory"]) == Decimal("90") * result["batches"]
        assert Decimal(result["inventory_remaining"]) == Decimal(result["total_inventory"])
        assert Decimal(result["consumed"]) == Decimal("0")

    def test_generation_writes_history_snapshot(self, catalog):
        with session_scope() as session:
            batch_id = generate_compound_batch("sk2", date(2025, 3, 3), session).id

        history = list_compound_history(batch_id=batch_id)
        assert len(history) == 1
        assert history[0]["compound_code"] == "sk2"
        assert Decimal(history[0]["closing_balance"]) == Decimal(history[0]["total_inventory"])

    def test_unknown_compound_raises(self, catalog):
        with session_scope() as session:
            with pytest.raises(CompoundMasterNotFoundError):
                generate_compound_batch("zz9", date(2025, 3, 3), session)

    def test_duplicate_date_retried_on_next_working_day(self, catalog, monkeypatch):
        """A date lost to another writer rolls back to the savepoint and moves on."""
        create_compound_batch("sk2", "2025-03-03", 1)
        # Simulate the race: the free-date check misses the existing batch
        monkeypatch.setattr(compound_batch_service, "exists_by_date", lambda day, session: False)

        with session_scope() as session:
            batch = generate_compound_batch("nk5", date(2025, 3, 3), session)
            batch_date = batch.date

        assert batch_date == date(2025, 3, 4)
        dates = sorted(b["date"] for b in list_compound_batches())
        assert dates == ["2025-03-03", "2025-03-04"]


class TestManualBatches:
    def test_create_with_default_weight(self, catalog):
        batch = create_compound_batch("nk8", "2025-03-03", 2)
        assert Decimal(batch["total_inventory"]) == Decimal("200")
        assert batch["compound_name"] == "NK-8"

    def test_create_with_explicit_weight(self, catalog):
        batch = create_compound_batch("nk8", "2025-03-03", 2, weight_per_batch="75.5")
        assert Decimal(batch["total_inventory"]) == Decimal("151")

    def test_taken_date_rejected(self, catalog):
        create_compound_batch("nk5", "2025-03-03", 1)
        with pytest.raises(ValidationError) as exc_info:
            create_compound_batch("sk2", "2025-03-03", 1)
        assert "already exists" in str(exc_info.value)

    def test_invalid_input(self, catalog):
        with pytest.raises(ValidationError) as exc_info:
            create_compound_batch("nk5", "not-a-date", 0)
        assert len(exc_info.value.errors) == 2

    def test_unknown_compound(self, catalog):
        with pytest.raises(CompoundMasterNotFoundError):
            create_compound_batch("zz9", "2025-03-03", 1)

    def test_delete_unused_batch(self, catalog):
        batch = create_compound_batch("nk5", "2025-03-03", 1)
        deleted = delete_compound_batch(batch["id"])
        assert deleted["id"] == batch["id"]
        with pytest.raises(CompoundBatchNotFoundError):
            get_compound_batch(batch["id"])

    def test_delete_consumed_batch_rejected(self, catalog):
        batch = create_compound_batch("nk5", "2025-03-03", 1)
        consume_compound("nk5", "10", "2025-03-03")
        with pytest.raises(ValidationError):
            delete_compound_batch(batch["id"])

    def test_delete_missing_batch(self, catalog):
        with pytest.raises(CompoundBatchNotFoundError):
            delete_compound_batch(999)


class TestUpdateCompoundBatch:
    @pytest.fixture
    def used_batch(self, catalog):
        """One 90 kg nk5 batch with 30 kg consumed."""
        batch = create_compound_batch("nk5", "2025-03-03", 1)
        consume_compound("nk5", "30", "2025-03-03")
        return batch

    def test_move_to_free_date(self, used_batch):
        updated = update_compound_batch(used_batch["id"], batch_date="2025-03-05")

        assert updated["date"] == "2025-03-05"
        assert Decimal(updated["consumed"]) == Decimal("30")
        history = list_compound_history(batch_id=used_batch["id"])
        assert history[-1]["date"] == "2025-03-05"

    def test_taken_date_rejected(self, used_batch):
        create_compound_batch("sk2", "2025-03-04", 1)
        with pytest.raises(ValidationError) as exc_info:
            update_compound_batch(used_batch["id"], batch_date="2025-03-04")
        assert "already exists" in str(exc_info.value)
        assert get_compound_batch(used_batch["id"])["date"] == "2025-03-03"

    def test_taken_date_caught_by_unique_constraint(self, used_batch, monkeypatch):
        """A date claimed between the check and the write still fails cleanly."""
        create_compound_batch("sk2", "2025-03-04", 1)
        monkeypatch.setattr(compound_batch_service, "exists_by_date", lambda day, session: False)

        with pytest.raises(ValidationError) as exc_info:
            update_compound_batch(used_batch["id"], batch_date="2025-03-04")
        assert "already exists" in str(exc_info.value)
        assert get_compound_batch(used_batch["id"])["date"] == "2025-03-03"

    def test_same_date_is_not_a_conflict(self, used_batch):
        updated = update_compound_batch(used_batch["id"], batch_date="2025-03-03", batches=2)
        assert updated["date"] == "2025-03-03"

    def test_more_batches_keep_consumed(self, used_batch):
        updated = update_compound_batch(used_batch["id"], batches=2)

        assert updated["batches"] == 2
        assert Decimal(updated["total_inventory"]) == Decimal("180")
        assert Decimal(updated["consumed"]) == Decimal("30")
        assert Decimal(updated["inventory_remaining"]) == Decimal("150")
        assert audit_ledger(check_attribution=False) == []

    def test_lighter_batches_shrink_remaining(self, used_batch):
        updated = update_compound_batch(used_batch["id"], weight_per_batch="40")

        assert Decimal(updated["weight_per_batch"]) == Decimal("40")
        assert Decimal(updated["total_inventory"]) == Decimal("40")
        assert Decimal(updated["inventory_remaining"]) == Decimal("10")
        history = list_compound_history(batch_id=used_batch["id"])
        assert Decimal(history[-1]["closing_balance"]) == Decimal("10")

    def test_shrinking_to_consumed_empties_batch(self, used_batch):
        updated = update_compound_batch(used_batch["id"], weight_per_batch="30")
        assert Decimal(updated["inventory_remaining"]) == Decimal("0")
        assert get_fifo_batches("nk5") == []

    def test_total_below_consumed_rejected(self, used_batch):
        with pytest.raises(ValidationError) as exc_info:
            update_compound_batch(used_batch["id"], weight_per_batch="20")
        assert "already consumed" in str(exc_info.value)

        unchanged = get_compound_batch(used_batch["id"])
        assert Decimal(unchanged["total_inventory"]) == Decimal("90")
        assert Decimal(unchanged["inventory_remaining"]) == Decimal("60")

    def test_invalid_input(self, used_batch):
        with pytest.raises(ValidationError) as exc_info:
            update_compound_batch(used_batch["id"], batches=0, weight_per_batch="-1")
        assert len(exc_info.value.errors) == 2

    def test_missing_batch(self, catalog):
        with pytest.raises(CompoundBatchNotFoundError):
            update_compound_batch(999, batches=2)


class TestQueries:
    def test_list_newest_first_and_filters(self, catalog):
        create_compound_batch("nk5", "2025-03-03", 1)
        create_compound_batch("nk5", "2025-03-05", 1)
        create_compound_batch("sk2", "2025-03-04", 1)

        assert [b["date"] for b in list_compound_batches(compound_code="nk5")] == [
            "2025-03-05",
            "2025-03-03",
        ]
        assert len(list_compound_batches(batch_date="2025-03-04")) == 1

    def test_fifo_order_skips_empty_batches(self, catalog):
        first = create_compound_batch("nk5", "2025-03-03", 1)
        second = create_compound_batch("nk5", "2025-03-04", 1)
        consume_compound("nk5", "90", "2025-03-03")

        fifo = get_fifo_batches("nk5")
        assert [b["id"] for b in fifo] == [second["id"]]
        assert first["id"] not in [b["id"] for b in fifo]

    def test_float_dust_counts_as_empty(self, catalog, test_db):
        batch = create_compound_batch("nk5", "2025-03-03", 1)
        with session_scope() as session:
            row = session.get(CompoundBatch, batch["id"])
            row.inventory_remaining = Decimal("0.0004")
            row.consumed = Decimal("89.9996")

        with session_scope() as session:
            assert get_next_available_batch("nk5", session) is None

    def test_inventory_summary(self, catalog):
        create_compound_batch("nk5", "2025-03-03", 1)
        create_compound_batch("nk5", "2025-03-04", 1)
        consume_compound("nk5", "100", "2025-03-03")

        summary = get_inventory_summary("nk5")
        assert summary["batch_count"] == 2
        assert summary["active_batch_count"] == 1
        assert summary["total_inventory"] == Decimal("180")
        assert summary["consumed"] == Decimal("100")
        assert summary["inventory_remaining"] == Decimal("80")

    def test_is_production_date_used(self, catalog):
        create_compound_batch("nk5", "2025-03-03", 1)
        create_compound_batch("sk2", "2025-03-04", 1)
        consume_compound("nk5", "5", "2025-03-03", produced_on="2025-02-20", role="cover")
        consume_compound("sk2", "5", "2025-03-04", produced_on="2025-02-21", role="skim")

        assert is_production_date_used("2025-02-20") == "cover"
        assert is_production_date_used(date(2025, 2, 21)) == "skim"
        assert is_production_date_used("2025-02-22") is None
