"""Tests for the ledger audit."""

from datetime import date
from decimal import Decimal

import pytest

from src.models import Belt, CompoundBatch
from src.services.belt_service import create_belt
from src.services.compound_batch_service import create_compound_batch
from src.services.compound_consumption_service import consume_compound
from src.services.database import session_scope
from src.services.exceptions import LedgerIntegrityError
from src.services.ledger_audit_service import audit_ledger, verify_ledger


@pytest.fixture
def belt(catalog):
    return create_belt(
        {"belt_number": "B1"},
        cover_compound_code="nk5",
        skim_compound_code="sk2",
        cover_consumed_kg="100",
        skim_consumed_kg="20",
        calendaring_date="2025-03-17",
    )


class TestAuditLedger:
    def test_empty_ledger_is_clean(self, test_db):
        assert audit_ledger() == []
        verify_ledger()

    def test_belt_ledger_is_clean(self, belt):
        assert audit_ledger() == []

    def test_unattributed_consumption(self, catalog):
        create_compound_batch("nk5", "2025-03-03", 1)
        consume_compound("nk5", "10", "2025-03-03")

        issues = audit_ledger()
        assert len(issues) == 1
        assert "belts account for 0" in issues[0]
        assert audit_ledger(check_attribution=False) == []

    def test_broken_conservation(self, catalog):
        batch = create_compound_batch("nk5", "2025-03-03", 1)
        with session_scope() as session:
            session.get(CompoundBatch, batch["id"]).consumed = Decimal("5")

        issues = audit_ledger(check_attribution=False)
        assert len(issues) == 1
        assert "!= total" in issues[0]

    def test_usage_not_matching_requirement(self, belt):
        with session_scope() as session:
            session.get(Belt, belt["id"]).cover_compound_consumed_kg = Decimal("99")

        issues = audit_ledger()
        assert any("cover usage" in issue for issue in issues)

    def test_shared_production_dates(self, belt):
        with session_scope() as session:
            session.get(Belt, belt["id"]).skim_compound_produced_on = date(2025, 3, 8)

        issues = audit_ledger()
        assert any("cover and skim share" in issue for issue in issues)

    def test_date_used_by_two_belts(self, belt):
        second = create_belt(
            {"belt_number": "B2"},
            cover_compound_code="nk5",
            skim_compound_code="sk2",
            cover_consumed_kg="10",
            skim_consumed_kg="10",
            calendaring_date="2025-03-17",
        )
        with session_scope() as session:
            session.get(Belt, second["id"]).cover_compound_produced_on = date(2025, 3, 8)

        issues = audit_ledger()
        assert any("used by several belts" in issue for issue in issues)

    def test_verify_raises(self, catalog):
        create_compound_batch("nk5", "2025-03-03", 1)
        consume_compound("nk5", "10", "2025-03-03")
        with pytest.raises(LedgerIntegrityError):
            verify_ledger()
        verify_ledger(check_attribution=False)
