"""History Service - audit snapshots for batches and belts.

Snapshots are a logging sink: written when a batch or belt is created,
refreshed when a batch is edited by hand and updated once when a batch's
cover/skim production date is first stamped.
Nothing in the ledger reads them back.

Write helpers take a required session because they always run inside the
caller's ledger transaction. Read helpers follow the session pattern.
"""

import json
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import Belt, BeltHistory, CompoundBatch, CompoundHistory
from ..models.enums import CompoundRole
from .database import session_scope
from .logging_utils import get_service_logger

logger = get_service_logger(__name__)


def record_batch_created(batch: CompoundBatch, session: Session) -> CompoundHistory:
    """Append the creation snapshot for a new batch."""
    history = CompoundHistory(
        batch_id=batch.id,
        compound_code=batch.compound_code,
        compound_name=batch.compound_name,
        date=batch.date,
        batches=batch.batches,
        weight_per_batch=batch.weight_per_batch,
        total_inventory=batch.total_inventory,
        closing_balance=batch.inventory_remaining,
        cover_compound_produced_on=batch.cover_compound_produced_on,
        skim_compound_produced_on=batch.skim_compound_produced_on,
    )
    session.add(history)
    session.flush()
    return history


def record_production_date_stamped(batch: CompoundBatch, session: Session) -> None:
    """
    Refresh a batch's snapshot after a production date was stamped for the first time.

    Copies both produced-on dates and the current remaining stock as the
    closing balance. Batches without a snapshot get one.
    """
    history = (
        session.query(CompoundHistory)
        .filter(CompoundHistory.batch_id == batch.id)
        .order_by(CompoundHistory.id.desc())
        .first()
    )
    if history is None:
        logger.warning(f"No history snapshot for compound batch {batch.id}; creating one")
        record_batch_created(batch, session)
        return

    history.cover_compound_produced_on = batch.cover_compound_produced_on
    history.skim_compound_produced_on = batch.skim_compound_produced_on
    history.closing_balance = batch.inventory_remaining
    session.flush()


def record_batch_updated(batch: CompoundBatch, session: Session) -> None:
    """Refresh a batch's snapshot after a manual edit of its date or size."""
    history = (
        session.query(CompoundHistory)
        .filter(CompoundHistory.batch_id == batch.id)
        .order_by(CompoundHistory.id.desc())
        .first()
    )
    if history is None:
        record_batch_created(batch, session)
        return

    history.date = batch.date
    history.batches = batch.batches
    history.weight_per_batch = batch.weight_per_batch
    history.total_inventory = batch.total_inventory
    history.closing_balance = batch.inventory_remaining
    session.flush()


def _usage_json(belt: Belt, role: CompoundRole) -> str:
    return json.dumps([usage.to_usage_dict() for usage in belt.usages_for(role)])


def record_belt_created(belt: Belt, session: Session, remarks: Optional[str] = None) -> BeltHistory:
    """Append the creation snapshot for a belt, including its batch usage."""
    history = BeltHistory(
        belt_id=belt.id,
        belt_number=belt.belt_number,
        rating=belt.rating,
        cover_batches_data=_usage_json(belt, CompoundRole.COVER),
        skim_batches_data=_usage_json(belt, CompoundRole.SKIM),
        remarks=remarks,
    )
    session.add(history)
    session.flush()
    return history


def list_compound_history(
    batch_id: Optional[int] = None,
    compound_code: Optional[str] = None,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """List batch snapshots, oldest first."""

    def _do_list(sess: Session) -> List[Dict[str, Any]]:
        query = sess.query(CompoundHistory)
        if batch_id is not None:
            query = query.filter(CompoundHistory.batch_id == batch_id)
        if compound_code:
            query = query.filter(CompoundHistory.compound_code == compound_code)
        return [h.to_dict() for h in query.order_by(CompoundHistory.id).all()]

    if session is not None:
        return _do_list(session)
    with session_scope() as sess:
        return _do_list(sess)


def list_belt_history(
    belt_id: Optional[int] = None, session: Optional[Session] = None
) -> List[Dict[str, Any]]:
    """List belt snapshots, oldest first, with parsed usage lists."""

    def _do_list(sess: Session) -> List[Dict[str, Any]]:
        query = sess.query(BeltHistory)
        if belt_id is not None:
            query = query.filter(BeltHistory.belt_id == belt_id)
        results = []
        for history in query.order_by(BeltHistory.id).all():
            data = history.to_dict()
            data["cover_batches_used"] = history.get_cover_batches()
            data["skim_batches_used"] = history.get_skim_batches()
            results.append(data)
        return results

    if session is not None:
        return _do_list(session)
    with session_scope() as sess:
        return _do_list(sess)
