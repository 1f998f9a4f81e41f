"""Production Date Service - cover/skim production-date allocation.

Every belt records the day its cover compound and its skim compound were
produced. The ledger models at most one production lot per day, so:

- a day used (as cover or skim) by one belt is unavailable to every other belt
- a belt's cover and skim days must differ

Wishes are snapped forward onto working days and then moved forward past
taken days. If cover and skim still land on the same day, skim moves back
to the previous free working day; if that search runs out, cover moves
forward instead and skim is re-derived from it.

All searches are bounded by LedgerSettings.max_production_date_search_days.
"""

import random
from datetime import date
from typing import Any, Dict, Optional, Set

from sqlalchemy.orm import Session

from ..models import Belt
from ..utils.config import get_ledger_settings
from ..utils.constants import AVAILABLE_DATE_MAX_WORKING_DAYS, AVAILABLE_DATE_MIN_WORKING_DAYS
from ..utils.working_days import (
    add_working_days,
    format_date,
    next_working_day,
    parse_date,
    previous_working_day,
    snap_to_working_day,
)
from .compound_batch_service import is_production_date_used
from .database import session_scope
from .exceptions import CapacityExhaustedError, DateCollisionError, ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def get_taken_production_dates(
    session: Session, exclude_belt_id: Optional[int] = None
) -> Set[date]:
    """Cover and skim production dates of every belt except `exclude_belt_id`."""
    query = session.query(Belt.cover_compound_produced_on, Belt.skim_compound_produced_on)
    if exclude_belt_id is not None:
        query = query.filter(Belt.id != exclude_belt_id)
    taken: Set[date] = set()
    for cover_day, skim_day in query.all():
        if cover_day is not None:
            taken.add(cover_day)
        if skim_day is not None:
            taken.add(skim_day)
    return taken


def _first_free_on_or_after(start: date, taken: Set[date], limit: int) -> Optional[date]:
    candidate = snap_to_working_day(start)
    for _ in range(limit):
        if candidate not in taken:
            return candidate
        candidate = next_working_day(candidate)
    return None


def _first_free_before(day: date, taken: Set[date], limit: int) -> Optional[date]:
    candidate = previous_working_day(day)
    for _ in range(limit):
        if candidate not in taken:
            return candidate
        candidate = previous_working_day(candidate)
    return None


def _resolve_wish(wish: Optional[date], taken: Set[date], limit: int, role: str) -> Optional[date]:
    if wish is None:
        return None
    resolved = _first_free_on_or_after(wish, taken, limit)
    if resolved is None:
        raise CapacityExhaustedError(
            f"free {role} production date after {format_date(wish)}", limit
        )
    return resolved


def _resolve_impl(
    cover_wish: Optional[date],
    skim_wish: Optional[date],
    exclude_belt_id: Optional[int],
    session: Session,
) -> Dict[str, Optional[date]]:
    limit = get_ledger_settings().max_production_date_search_days
    taken = get_taken_production_dates(session, exclude_belt_id)

    cover_date = _resolve_wish(cover_wish, taken, limit, "cover")
    skim_date = _resolve_wish(skim_wish, taken, limit, "skim")

    if cover_date is not None and cover_date == skim_date:
        skim_date = _first_free_before(cover_date, taken, limit)
        if skim_date is None:
            # Nothing free behind: cover moves forward, skim takes the old day
            shared = cover_date
            cover_date = _first_free_on_or_after(next_working_day(shared), taken, limit)
            if cover_date is None:
                raise DateCollisionError(shared)
            skim_date = _first_free_before(cover_date, taken, limit)
            if skim_date is None or skim_date == cover_date:
                raise DateCollisionError(shared)
        log_operation(
            logger,
            operation="resolve_production_dates",
            outcome="separated",
            cover_date=format_date(cover_date),
            skim_date=format_date(skim_date),
        )

    return {"cover_date": cover_date, "skim_date": skim_date}


def _parse_optional(value, field_name: str) -> Optional[date]:
    if value is None or value == "":
        return None
    try:
        return parse_date(value)
    except (TypeError, ValueError) as e:
        raise ValidationError([f"{field_name}: Must be a date in YYYY-MM-DD format"]) from e


def resolve_production_dates(
    cover_wish=None,
    skim_wish=None,
    exclude_belt_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> Dict[str, Optional[date]]:
    """
    Resolve cover/skim production-date wishes into two distinct free working days.

    Args:
        cover_wish: Requested cover production date (or None)
        skim_wish: Requested skim production date (or None)
        exclude_belt_id: Belt whose own dates don't count as taken (for updates)
        session: Optional database session

    Returns:
        Dict with "cover_date" and "skim_date" (None where no wish was given)

    Raises:
        ValidationError: A wish is not a valid date
        CapacityExhaustedError: No free day after a wish within bound
        DateCollisionError: Cover and skim cannot be separated within bound
    """
    cover = _parse_optional(cover_wish, "Cover production date")
    skim = _parse_optional(skim_wish, "Skim production date")

    if session is not None:
        return _resolve_impl(cover, skim, exclude_belt_id, session)
    with session_scope() as sess:
        return _resolve_impl(cover, skim, exclude_belt_id, sess)


def separate_compound_dates(base_compound_date) -> Dict[str, Optional[date]]:
    """
    Split one compound day into distinct cover and skim days.

    Cover keeps the base day; skim takes the previous working day.
    Returns None values when no base day is given.
    """
    if base_compound_date is None or base_compound_date == "":
        return {"cover_date": None, "skim_date": None}
    base = parse_date(base_compound_date)
    return {"cover_date": base, "skim_date": previous_working_day(base)}


def _is_date_taken(day: date, taken: Set[date], session: Session) -> bool:
    return day in taken or is_production_date_used(day, session=session) is not None


def find_available_compound_date(
    calendaring_date,
    exclude_date=None,
    rng: Optional[random.Random] = None,
    session: Optional[Session] = None,
) -> date:
    """
    Find a free compound production day 3..30 working days before calendaring.

    One candidate is drawn at random first; if it is taken the window is
    scanned from the nearest day backwards.

    Args:
        calendaring_date: Calendaring day of the belt
        exclude_date: A day that must not be returned
        rng: Optional random source
        session: Optional database session

    Returns:
        An unused working day

    Raises:
        CapacityExhaustedError: Every day in the window is used
    """
    calendaring = parse_date(calendaring_date)
    excluded = parse_date(exclude_date) if exclude_date else None
    candidates = [
        add_working_days(calendaring, -offset)
        for offset in range(AVAILABLE_DATE_MIN_WORKING_DAYS, AVAILABLE_DATE_MAX_WORKING_DAYS + 1)
    ]
    candidates = [day for day in candidates if day != excluded]

    def _do_find(sess: Session) -> date:
        taken = get_taken_production_dates(sess)
        if candidates:
            pick = (rng or random).choice(candidates)
            if not _is_date_taken(pick, taken, sess):
                return pick
        for day in candidates:
            if not _is_date_taken(day, taken, sess):
                return day
        raise CapacityExhaustedError(
            f"free compound date before {format_date(calendaring)}",
            AVAILABLE_DATE_MAX_WORKING_DAYS,
        )

    if session is not None:
        return _do_find(session)
    with session_scope() as sess:
        return _do_find(sess)


def describe_production_dates(dates: Dict[str, Optional[date]]) -> Dict[str, Any]:
    """String form of a resolve_production_dates result (for the CLI and logs)."""
    return {key: format_date(value) for key, value in dates.items()}
