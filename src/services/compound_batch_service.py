"""Compound Batch Service - the batch store of the inventory ledger.

This module owns CompoundBatch rows: the FIFO lookup, the global
one-batch-per-day rule, on-demand batch generation and manual batch
maintenance (create, edit, delete).

All public functions follow the session pattern:
- If session provided: caller owns transaction, don't commit
- If session is None: create own transaction via session_scope()

Key Features:
- FIFO lookup - oldest batch with stock first (stock under 0.001 kg is empty)
- Globally unique batch dates, enforced by uq_compound_batches_date
- Duplicate-date inserts retried on the next working day inside a SAVEPOINT
- Manual creation, editing and deletion with validation

Example Usage:
    >>> from src.services.compound_batch_service import get_fifo_batches
    >>> batches = get_fifo_batches("nk5")
    >>> batches[0]["date"] <= batches[-1]["date"]
    True
"""

import logging
import random
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import BeltBatchUsage, CompoundBatch
from ..models.enums import CompoundRole
from ..utils.config import get_ledger_settings
from ..utils.constants import KG_COMPARISON_TOLERANCE, MIN_BATCH_REMAINING_KG
from ..utils.validators import coerce_kg, validate_compound_code, validate_date
from ..utils.working_days import format_date, next_working_day, parse_date, snap_to_working_day
from .compound_catalog_service import get_master
from .database import session_scope
from .exceptions import (
    CapacityExhaustedError,
    CompoundBatchNotFoundError,
    ValidationError,
)
from .history_service import record_batch_created, record_batch_updated
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

DUPLICATE_DATE_MARKERS = ("uq_compound_batches_date", "compound_batches.date")


# =============================================================================
# Store primitives (caller's session)
# =============================================================================


def exists_by_date(batch_date: date, session: Session) -> bool:
    """True if any compound already has a batch dated `batch_date`."""
    return (
        session.query(CompoundBatch.id).filter(CompoundBatch.date == batch_date).first()
        is not None
    )


def find_free_batch_date(preferred_date, session: Session) -> date:
    """
    Find the first working day at or after `preferred_date` with no batch.

    Raises:
        CapacityExhaustedError: If no free day exists within the search bound
    """
    limit = get_ledger_settings().max_free_date_search_days
    candidate = snap_to_working_day(preferred_date)
    for _ in range(limit):
        if not exists_by_date(candidate, session):
            return candidate
        candidate = next_working_day(candidate)
    raise CapacityExhaustedError(
        f"free batch date after {format_date(parse_date(preferred_date))}", limit
    )


def get_next_available_batch(compound_code: str, session: Session) -> Optional[CompoundBatch]:
    """Oldest batch of a compound that still has stock, or None."""
    return (
        session.query(CompoundBatch)
        .filter(
            CompoundBatch.compound_code == compound_code,
            CompoundBatch.inventory_remaining >= MIN_BATCH_REMAINING_KG,  # Avoid float dust
        )
        .order_by(CompoundBatch.date.asc(), CompoundBatch.id.asc())
        .populate_existing()
        .first()
    )


def get_batch(batch_id: int, session: Session) -> CompoundBatch:
    """
    Load a batch inside an existing session.

    Raises:
        CompoundBatchNotFoundError: If the batch does not exist
    """
    batch = session.get(CompoundBatch, batch_id)
    if batch is None:
        raise CompoundBatchNotFoundError(batch_id)
    return batch


def _is_duplicate_date_error(error: IntegrityError) -> bool:
    message = str(getattr(error, "orig", error))
    return any(marker in message for marker in DUPLICATE_DATE_MARKERS)


def _insert_batch(batch: CompoundBatch, session: Session) -> None:
    with session.begin_nested():
        session.add(batch)
        session.flush()


def generate_compound_batch(
    compound_code: str,
    preferred_date,
    session: Session,
    rng: Optional[random.Random] = None,
) -> CompoundBatch:
    """
    Create a batch on demand on the next globally free working day.

    The batch count is drawn from the configured range and the weight per
    batch comes from the compound's CompoundMaster. If another writer takes
    the chosen day first, the insert is rolled back to its SAVEPOINT and the
    next working day is tried.

    Args:
        compound_code: Compound to create a batch for
        preferred_date: Earliest acceptable batch date
        session: Caller's session (part of the consuming transaction)
        rng: Optional random source for the batch count

    Returns:
        The new, flushed CompoundBatch

    Raises:
        CompoundMasterNotFoundError: If the compound has no master record
        CapacityExhaustedError: If no free day can be claimed within bound
    """
    settings = get_ledger_settings()
    master = get_master(compound_code, session)
    weight_per_batch = Decimal(str(master.default_weight_per_batch))
    batches = (rng or random).randint(settings.batch_count_min, settings.batch_count_max)
    total_inventory = weight_per_batch * batches

    candidate = parse_date(preferred_date)
    for _ in range(settings.max_free_date_search_days):
        batch_date = find_free_batch_date(candidate, session)
        batch = CompoundBatch(
            compound_code=compound_code,
            compound_name=master.compound_name,
            date=batch_date,
            batches=batches,
            weight_per_batch=weight_per_batch,
            total_inventory=total_inventory,
            inventory_remaining=total_inventory,
            consumed=Decimal("0"),
        )
        try:
            _insert_batch(batch, session)
        except IntegrityError as e:
            if not _is_duplicate_date_error(e):
                raise
            log_operation(
                logger,
                operation="generate_compound_batch",
                outcome="date_taken",
                level=logging.WARNING,
                compound_code=compound_code,
                batch_date=format_date(batch_date),
            )
            candidate = next_working_day(batch_date)
            continue

        record_batch_created(batch, session)
        log_operation(
            logger,
            operation="generate_compound_batch",
            outcome="success",
            compound_code=compound_code,
            batch_id=batch.id,
            batch_date=format_date(batch_date),
            total_kg=str(total_inventory),
        )
        return batch

    raise CapacityExhaustedError(
        f"batch date claims for '{compound_code}'", settings.max_free_date_search_days
    )


# =============================================================================
# Manual maintenance and queries
# =============================================================================


def create_compound_batch(
    compound_code: str,
    batch_date,
    batches: int,
    weight_per_batch=None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Create a batch by hand on a specific date.

    Args:
        compound_code: Compound code (must exist in the catalog)
        batch_date: Batch date; no other batch may use it
        batches: Number of mixer batches (> 0)
        weight_per_batch: Kilograms per batch; defaults to the master's value
        session: Optional database session

    Returns:
        Dict of the created batch

    Raises:
        ValidationError: On bad input or if the date is already taken
        CompoundMasterNotFoundError: If the compound is unknown
    """
    errors = []
    is_valid, error = validate_compound_code(compound_code)
    if not is_valid:
        errors.append(error)
    is_valid, error = validate_date(batch_date, "Batch date")
    if not is_valid:
        errors.append(error)
    if isinstance(batches, bool) or not isinstance(batches, int) or batches <= 0:
        errors.append("Batches: Must be a positive whole number")
    weight = None
    if weight_per_batch is not None:
        try:
            weight = coerce_kg(weight_per_batch, "Weight per batch")
        except ValueError as e:
            errors.append(str(e))
    if errors:
        raise ValidationError(errors)

    day = parse_date(batch_date)
    code = compound_code.strip()

    def _do_create(sess: Session) -> Dict[str, Any]:
        master = get_master(code, sess)
        per_batch = weight if weight is not None else Decimal(str(master.default_weight_per_batch))
        if exists_by_date(day, sess):
            raise ValidationError([f"A compound batch already exists on {format_date(day)}"])

        total_inventory = per_batch * batches
        batch = CompoundBatch(
            compound_code=code,
            compound_name=master.compound_name,
            date=day,
            batches=batches,
            weight_per_batch=per_batch,
            total_inventory=total_inventory,
            inventory_remaining=total_inventory,
            consumed=Decimal("0"),
        )
        try:
            _insert_batch(batch, sess)
        except IntegrityError as e:
            if _is_duplicate_date_error(e):
                raise ValidationError(
                    [f"A compound batch already exists on {format_date(day)}"]
                ) from e
            raise

        record_batch_created(batch, sess)
        log_operation(
            logger,
            operation="create_compound_batch",
            outcome="success",
            compound_code=code,
            batch_id=batch.id,
            batch_date=format_date(day),
        )
        return batch.to_dict()

    if session is not None:
        return _do_create(session)
    with session_scope() as sess:
        return _do_create(sess)


def _resize_batch(
    batch_id: int, batches: int, weight_per_batch: Decimal, total: Decimal, session: Session
) -> bool:
    """
    Set a batch's size, keeping what was consumed and deriving the rest.

    Returns:
        True if updated, False if more than `total` kg is already consumed
    """
    result = session.execute(
        update(CompoundBatch)
        .where(
            CompoundBatch.id == batch_id,
            CompoundBatch.consumed <= total + KG_COMPARISON_TOLERANCE,
        )
        .values(
            batches=batches,
            weight_per_batch=weight_per_batch,
            total_inventory=total,
            inventory_remaining=case(
                (CompoundBatch.consumed >= total, 0), else_=total - CompoundBatch.consumed
            ),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def update_compound_batch(
    batch_id: int,
    batch_date=None,
    batches: Optional[int] = None,
    weight_per_batch=None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Edit a batch's date, mixer batch count or weight per batch.

    Consumed stock is never touched: the new total must cover what belts
    already took, and the remaining stock becomes total - consumed.

    Args:
        batch_id: Batch to edit
        batch_date: New date; no other batch may use it
        batches: New number of mixer batches (> 0)
        weight_per_batch: New kilograms per batch (> 0)
        session: Optional database session

    Returns:
        Dict of the updated batch

    Raises:
        CompoundBatchNotFoundError: If the batch does not exist
        ValidationError: On bad input, a taken date, or a total below consumed
    """
    errors = []
    if batch_date is not None:
        is_valid, error = validate_date(batch_date, "Batch date")
        if not is_valid:
            errors.append(error)
    if batches is not None and (
        isinstance(batches, bool) or not isinstance(batches, int) or batches <= 0
    ):
        errors.append("Batches: Must be a positive whole number")
    weight = None
    if weight_per_batch is not None:
        try:
            weight = coerce_kg(weight_per_batch, "Weight per batch")
        except ValueError as e:
            errors.append(str(e))
    if errors:
        raise ValidationError(errors)

    def _do_update(sess: Session) -> Dict[str, Any]:
        batch = get_batch(batch_id, sess)

        if batch_date is not None:
            day = parse_date(batch_date)
            if day != batch.date:
                if exists_by_date(day, sess):
                    raise ValidationError(
                        [f"A compound batch already exists on {format_date(day)}"]
                    )
                try:
                    with sess.begin_nested():
                        batch.date = day
                        sess.flush()
                except IntegrityError as e:
                    if _is_duplicate_date_error(e):
                        raise ValidationError(
                            [f"A compound batch already exists on {format_date(day)}"]
                        ) from e
                    raise

        if batches is not None or weight is not None:
            new_batches = batches if batches is not None else batch.batches
            new_weight = weight if weight is not None else Decimal(str(batch.weight_per_batch))
            total = new_weight * new_batches
            if not _resize_batch(batch_id, new_batches, new_weight, total, sess):
                sess.refresh(batch)
                raise ValidationError(
                    [
                        f"Batch {batch_id}: new total {total} kg is below the "
                        f"{batch.consumed} kg already consumed"
                    ]
                )
            batch = sess.get(CompoundBatch, batch_id, populate_existing=True)

        record_batch_updated(batch, sess)
        log_operation(
            logger,
            operation="update_compound_batch",
            outcome="success",
            batch_id=batch_id,
            batch_date=format_date(batch.date),
            total_kg=str(batch.total_inventory),
        )
        return batch.to_dict()

    if session is not None:
        return _do_update(session)
    with session_scope() as sess:
        return _do_update(sess)


def get_compound_batch(batch_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get one batch as a dict. Raises CompoundBatchNotFoundError."""
    if session is not None:
        return get_batch(batch_id, session).to_dict()
    with session_scope() as sess:
        return get_batch(batch_id, sess).to_dict()


def list_compound_batches(
    compound_code: Optional[str] = None,
    batch_date=None,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """
    List batches, newest first.

    Args:
        compound_code: Optional compound filter
        batch_date: Optional exact date filter
        session: Optional database session
    """

    def _do_list(sess: Session) -> List[Dict[str, Any]]:
        query = sess.query(CompoundBatch)
        if compound_code:
            query = query.filter(CompoundBatch.compound_code == compound_code)
        if batch_date is not None:
            query = query.filter(CompoundBatch.date == parse_date(batch_date))
        query = query.order_by(CompoundBatch.date.desc(), CompoundBatch.id.desc())
        return [batch.to_dict() for batch in query.all()]

    if session is not None:
        return _do_list(session)
    with session_scope() as sess:
        return _do_list(sess)


def get_fifo_batches(compound_code: str, session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """Batches of a compound that still have stock, oldest first."""

    def _do_query(sess: Session) -> List[Dict[str, Any]]:
        batches = (
            sess.query(CompoundBatch)
            .filter(
                CompoundBatch.compound_code == compound_code,
                CompoundBatch.inventory_remaining >= MIN_BATCH_REMAINING_KG,
            )
            .order_by(CompoundBatch.date.asc(), CompoundBatch.id.asc())
            .all()
        )
        return [batch.to_dict() for batch in batches]

    if session is not None:
        return _do_query(session)
    with session_scope() as sess:
        return _do_query(sess)


def delete_compound_batch(batch_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Delete a batch that nothing has consumed from.

    Returns:
        Dict of the deleted batch

    Raises:
        CompoundBatchNotFoundError: If the batch does not exist
        ValidationError: If any stock was consumed or a belt references it
    """

    def _do_delete(sess: Session) -> Dict[str, Any]:
        batch = get_batch(batch_id, sess)
        if Decimal(str(batch.consumed)) >= MIN_BATCH_REMAINING_KG:
            raise ValidationError(
                [f"Cannot delete batch {batch_id}: {batch.consumed} kg already consumed"]
            )
        usage_count = (
            sess.query(BeltBatchUsage).filter(BeltBatchUsage.batch_id == batch_id).count()
        )
        if usage_count:
            raise ValidationError(
                [f"Cannot delete batch {batch_id}: referenced by {usage_count} belt usage(s)"]
            )
        data = batch.to_dict()
        sess.delete(batch)
        sess.flush()
        log_operation(
            logger,
            operation="delete_compound_batch",
            outcome="success",
            batch_id=batch_id,
            compound_code=data["compound_code"],
        )
        return data

    if session is not None:
        return _do_delete(session)
    with session_scope() as sess:
        return _do_delete(sess)


def get_inventory_summary(compound_code: str, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Totals across all batches of a compound.

    Returns:
        Dict with compound_code, batch_count, active_batch_count and Decimal
        totals for total_inventory, inventory_remaining and consumed
    """

    def _do_summary(sess: Session) -> Dict[str, Any]:
        batches = sess.query(CompoundBatch).filter(CompoundBatch.compound_code == compound_code).all()
        zero = Decimal("0")
        return {
            "compound_code": compound_code,
            "batch_count": len(batches),
            "active_batch_count": sum(1 for b in batches if not b.is_depleted),
            "total_inventory": sum((Decimal(str(b.total_inventory)) for b in batches), zero),
            "inventory_remaining": sum(
                (Decimal(str(b.inventory_remaining)) for b in batches), zero
            ),
            "consumed": sum((Decimal(str(b.consumed)) for b in batches), zero),
        }

    if session is not None:
        return _do_summary(session)
    with session_scope() as sess:
        return _do_summary(sess)


def is_production_date_used(day, session: Optional[Session] = None) -> Optional[str]:
    """
    Check whether any batch already carries `day` as a production date.

    Returns:
        "cover" or "skim" for the role that uses the day, None if free
    """
    day = parse_date(day)

    def _do_check(sess: Session) -> Optional[str]:
        if (
            sess.query(CompoundBatch.id)
            .filter(CompoundBatch.cover_compound_produced_on == day)
            .first()
        ):
            return CompoundRole.COVER.value
        if (
            sess.query(CompoundBatch.id)
            .filter(CompoundBatch.skim_compound_produced_on == day)
            .first()
        ):
            return CompoundRole.SKIM.value
        return None

    if session is not None:
        return _do_check(session)
    with session_scope() as sess:
        return _do_check(sess)
