"""Ledger Audit Service - re-check the ledger invariants.

Checks performed:
- every batch: inventory_remaining + consumed == total_inventory, both >= 0
- every batch: belt usage rows pointing at it add up to its consumed
- every belt: usage per role adds up to the stored requirement
- every belt: cover and skim production dates differ
- no production date is shared by two belts

Issues are returned as human-readable strings; an empty list means the
ledger is consistent.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import Belt, BeltBatchUsage, CompoundBatch
from ..models.enums import CompoundRole
from ..utils.constants import USAGE_SUM_TOLERANCE
from ..utils.working_days import format_date
from .database import session_scope
from .exceptions import LedgerIntegrityError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def _kg(value) -> Decimal:
    return Decimal(str(value))


def _check_batches(
    batches: List[CompoundBatch], usage_by_batch: Dict[int, Decimal], check_attribution: bool
) -> List[str]:
    issues = []
    for batch in batches:
        label = f"Batch {batch.id} ({batch.compound_code} {format_date(batch.date)})"
        remaining = _kg(batch.inventory_remaining)
        consumed = _kg(batch.consumed)
        total = _kg(batch.total_inventory)
        if remaining < -USAGE_SUM_TOLERANCE:
            issues.append(f"{label}: inventory_remaining is negative ({remaining})")
        if consumed < -USAGE_SUM_TOLERANCE:
            issues.append(f"{label}: consumed is negative ({consumed})")
        if abs(remaining + consumed - total) > USAGE_SUM_TOLERANCE:
            issues.append(
                f"{label}: remaining {remaining} + consumed {consumed} != total {total}"
            )
        if check_attribution:
            attributed = usage_by_batch.get(batch.id, Decimal("0"))
            if abs(attributed - consumed) > USAGE_SUM_TOLERANCE:
                issues.append(
                    f"{label}: belts account for {attributed} kg but consumed is {consumed}"
                )
    return issues


def _check_belts(belts: List[Belt]) -> List[str]:
    issues = []
    owners: Dict = defaultdict(list)
    for belt in belts:
        for role in (CompoundRole.COVER, CompoundRole.SKIM):
            used = belt.used_kg_for(role)
            required = belt.required_kg_for(role)
            if abs(used - required) > USAGE_SUM_TOLERANCE:
                issues.append(
                    f"Belt {belt.belt_number}: {role.value} usage {used} != requirement {required}"
                )
            produced_on = belt.produced_on_for(role)
            if produced_on is not None:
                owners[produced_on].append(f"{belt.belt_number}/{role.value}")
        if (
            belt.cover_compound_produced_on is not None
            and belt.cover_compound_produced_on == belt.skim_compound_produced_on
        ):
            issues.append(
                f"Belt {belt.belt_number}: cover and skim share production date "
                f"{format_date(belt.cover_compound_produced_on)}"
            )

    for day, users in sorted(owners.items()):
        belt_numbers = {user.split("/")[0] for user in users}
        if len(belt_numbers) > 1:
            issues.append(
                f"Production date {format_date(day)} used by several belts: {', '.join(users)}"
            )
    return issues


def _audit_impl(check_attribution: bool, session: Session) -> List[str]:
    batches = (
        session.query(CompoundBatch)
        .order_by(CompoundBatch.date, CompoundBatch.id)
        .populate_existing()
        .all()
    )
    usage_by_batch: Dict[int, Decimal] = defaultdict(Decimal)
    for usage in session.query(BeltBatchUsage).all():
        usage_by_batch[usage.batch_id] += _kg(usage.consumed_kg)
    belts = session.query(Belt).order_by(Belt.created_at, Belt.id).all()

    issues = _check_batches(batches, usage_by_batch, check_attribution)
    issues.extend(_check_belts(belts))

    log_operation(
        logger,
        operation="audit_ledger",
        outcome="clean" if not issues else "issues_found",
        batch_count=len(batches),
        belt_count=len(belts),
        issue_count=len(issues),
    )
    return issues


def audit_ledger(check_attribution: bool = True, session: Optional[Session] = None) -> List[str]:
    """
    Re-check every ledger invariant.

    Args:
        check_attribution: Also require batch consumption to be fully
            explained by belt usage rows (turn off when compound is consumed
            outside of belts)
        session: Optional database session

    Returns:
        List of issue descriptions (empty when consistent)
    """
    if session is not None:
        return _audit_impl(check_attribution, session)
    with session_scope() as sess:
        return _audit_impl(check_attribution, sess)


def verify_ledger(check_attribution: bool = True, session: Optional[Session] = None) -> None:
    """
    Raise if the ledger is inconsistent.

    Raises:
        LedgerIntegrityError: With every issue found
    """
    issues = audit_ledger(check_attribution=check_attribution, session=session)
    if issues:
        raise LedgerIntegrityError("; ".join(issues))
