"""Belt Service - belt lifecycle over the compound ledger.

Creating a belt consumes its cover and skim compound (FIFO). Because FIFO
allocation depends on what earlier belts already took, changing or
deleting a belt's consumption invalidates the allocation of every later
belt that shares one of its compound codes. Update and delete therefore
revert and replay that whole suffix:

1. revert the belt's own usage
2. revert every later belt (by created_at, then id) sharing a touched code
3. consume for the edited belt with its new requirement (skipped on delete)
4. replay every later belt in order with its own stored requirement

Only the roles whose compound code is in the touched set are replayed.
Each mutation holds the compound locks for the codes it touches (re-checked
once the locks are held, since a concurrent update may change them) and runs
in one transaction, so a failure anywhere rolls the whole cascade back.

All public functions follow the session pattern:
- If session provided: caller owns transaction, don't commit
- If session is None: create own transaction via session_scope()
"""

import logging
import random
import time
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Belt, BeltBatchUsage
from ..models.enums import BeltStatus, CompoundRole, EntryType
from ..utils.config import get_ledger_settings
from ..utils.constants import (
    BELT_STATUSES,
    MAX_BELT_NUMBER_LENGTH,
    MAX_NOTES_LENGTH,
    USAGE_SUM_TOLERANCE,
)
from ..utils.validators import coerce_kg, coerce_optional_date, validate_required_string
from ..utils.working_days import compound_date_from_calendaring
from .compound_catalog_service import resolve_compound_code
from .compound_consumption_service import (
    consume_compound,
    consume_from_selected_batches,
    revert_consumption,
)
from .compound_locks import compound_locks
from .database import session_scope
from .exceptions import (
    BeltNotFoundError,
    CompoundCodesChangedError,
    DatabaseError,
    LedgerError,
    LedgerIntegrityError,
    ValidationError,
)
from .history_service import record_belt_created
from .logging_utils import get_service_logger, log_operation
from .production_date_service import resolve_production_dates

logger = get_service_logger(__name__)

ROLES = (CompoundRole.COVER, CompoundRole.SKIM)

# Plain descriptive columns copied from form data
TEXT_FIELDS = ("rating", "order_number", "buyer_name", "notes")
DIMENSION_FIELDS = ("top_cover_mm", "bottom_cover_mm", "belt_length_m", "belt_width_mm")


# =============================================================================
# Form handling
# =============================================================================


def _validate_form_fields(form_data: Dict[str, Any], require_number: bool) -> List[str]:
    errors = []
    if require_number or "belt_number" in form_data:
        number = form_data.get("belt_number")
        is_valid, error = validate_required_string(number, "Belt number")
        if not is_valid:
            errors.append(error)
        elif len(str(number).strip()) > MAX_BELT_NUMBER_LENGTH:
            errors.append(f"Belt number: Must be {MAX_BELT_NUMBER_LENGTH} characters or less")

    status = form_data.get("status")
    if status is not None and status not in BELT_STATUSES:
        errors.append(f"Status: Must be one of {', '.join(BELT_STATUSES)}")

    notes = form_data.get("notes")
    if notes and len(notes) > MAX_NOTES_LENGTH:
        errors.append(f"Notes: Must be {MAX_NOTES_LENGTH} characters or less")

    for field in DIMENSION_FIELDS:
        value = form_data.get(field)
        if value is None or value == "":
            continue
        try:
            if Decimal(str(value)) < 0:
                errors.append(f"{field}: Must be zero or greater")
        except InvalidOperation:
            errors.append(f"{field}: Must be a valid number")

    for field in ("calendaring_date", "cover_compound_produced_on", "skim_compound_produced_on"):
        try:
            coerce_optional_date(form_data.get(field), field)
        except ValueError as e:
            errors.append(str(e))
    return errors


def _apply_form_fields(belt: Belt, form_data: Dict[str, Any]) -> None:
    if form_data.get("belt_number"):
        belt.belt_number = str(form_data["belt_number"]).strip()
    for field in TEXT_FIELDS:
        if field in form_data:
            value = form_data[field]
            setattr(belt, field, value.strip() if isinstance(value, str) and value.strip() else None)
    for field in DIMENSION_FIELDS:
        if field in form_data:
            value = form_data[field]
            setattr(belt, field, Decimal(str(value)) if value not in (None, "") else None)
    if form_data.get("status"):
        belt.status = form_data["status"]


def _check_unique_number(belt_number: str, session: Session, exclude_id: Optional[int] = None):
    query = session.query(Belt.id).filter(Belt.belt_number == belt_number.strip())
    if exclude_id is not None:
        query = query.filter(Belt.id != exclude_id)
    if query.first() is not None:
        raise ValidationError([f"Belt number '{belt_number.strip()}' already exists"])


def _resolve_code(
    code: Optional[str], type_name: Optional[str], label: str, session: Optional[Session]
) -> str:
    if code:
        return code.strip()
    if type_name:
        return resolve_compound_code(type_name, session=session)
    raise ValidationError([f"{label} compound code is required"])


def _coerce_requirement(value, label: str) -> Decimal:
    try:
        return coerce_kg(value, f"{label} consumed kg")
    except ValueError as e:
        raise ValidationError([str(e)]) from e


def _production_wishes(form_data: Dict[str, Any], calendaring: Optional[date]) -> tuple:
    cover_wish = coerce_optional_date(form_data.get("cover_compound_produced_on"))
    skim_wish = coerce_optional_date(form_data.get("skim_compound_produced_on"))
    if cover_wish is None and skim_wish is None and calendaring is not None:
        base = compound_date_from_calendaring(calendaring)
        return base, base
    return cover_wish, skim_wish


# =============================================================================
# Ledger steps
# =============================================================================


def _preferred_date(belt: Belt) -> date:
    """Earliest date for batches auto-created on behalf of a belt."""
    if belt.calendaring_date is not None:
        return belt.calendaring_date
    if belt.created_at is not None:
        return belt.created_at.date()
    return date.today()


def _roles_touching(belt: Belt, codes: Iterable[str]) -> List[CompoundRole]:
    codes = set(codes)
    return [role for role in ROLES if belt.compound_code_for(role) in codes]


def _revert_roles(belt: Belt, roles: Sequence[CompoundRole], session: Session) -> None:
    """Give back a belt's consumption for the given roles and drop the usage rows."""
    for role in roles:
        usages = belt.usages_for(role)
        revert_consumption(usages, session=session)
        for usage in usages:
            belt.usages.remove(usage)
    session.flush()


def _consume_roles(
    belt: Belt,
    roles: Sequence[CompoundRole],
    session: Session,
    rng: Optional[random.Random] = None,
) -> None:
    """FIFO-consume a belt's stored requirement for the given roles."""
    for role in roles:
        required = belt.required_kg_for(role)
        result = consume_compound(
            belt.compound_code_for(role),
            required,
            _preferred_date(belt),
            produced_on=belt.produced_on_for(role),
            role=role,
            session=session,
            rng=rng,
        )
        _store_usages(belt, role, result["batches_used"])
    session.flush()
    _check_usage_sums(belt, roles)


def _store_usages(belt: Belt, role: CompoundRole, batches_used: List[Dict[str, Any]]) -> None:
    for sequence, entry in enumerate(batches_used, start=1):
        belt.usages.append(
            BeltBatchUsage(
                role=role.value,
                sequence=sequence,
                batch_id=entry["batch_id"],
                consumed_kg=entry["consumed_kg"],
            )
        )


def _check_usage_sums(belt: Belt, roles: Sequence[CompoundRole]) -> None:
    for role in roles:
        drift = abs(belt.used_kg_for(role) - belt.required_kg_for(role))
        if drift > USAGE_SUM_TOLERANCE:
            raise LedgerIntegrityError(
                f"Belt {belt.belt_number} {role.value} usage is off by {drift} kg"
            )


def _later_belts(belt: Belt, codes: Iterable[str], session: Session) -> List[Belt]:
    """Belts created after `belt` that use any of `codes`, oldest first."""
    codes = list(codes)
    return (
        session.query(Belt)
        .filter(
            Belt.id != belt.id,
            or_(
                Belt.created_at > belt.created_at,
                and_(Belt.created_at == belt.created_at, Belt.id > belt.id),
            ),
            or_(Belt.cover_compound_code.in_(codes), Belt.skim_compound_code.in_(codes)),
        )
        .order_by(Belt.created_at.asc(), Belt.id.asc())
        .all()
    )


def _revert_later_belts(belt: Belt, codes: Sequence[str], session: Session) -> List[tuple]:
    """Revert the touched roles of every later belt; returns (belt, roles) in order."""
    affected = []
    for later in _later_belts(belt, codes, session):
        roles = _roles_touching(later, codes)
        _revert_roles(later, roles, session)
        affected.append((later, roles))
    return affected


def _replay(affected: List[tuple], session: Session, rng: Optional[random.Random]) -> None:
    for later, roles in affected:
        _consume_roles(later, roles, session, rng)


def _get_belt(belt_id: int, session: Session) -> Belt:
    belt = session.get(Belt, belt_id)
    if belt is None:
        raise BeltNotFoundError(belt_id)
    return belt


# =============================================================================
# Create
# =============================================================================


def _create_belt_impl(
    form_data: Dict[str, Any],
    cover_code: str,
    skim_code: str,
    cover_kg: Decimal,
    skim_kg: Decimal,
    calendaring: Optional[date],
    session: Session,
    rng: Optional[random.Random],
) -> Dict[str, Any]:
    _check_unique_number(form_data["belt_number"], session)

    cover_wish, skim_wish = _production_wishes(form_data, calendaring)
    dates = resolve_production_dates(cover_wish, skim_wish, session=session)

    belt = Belt(
        cover_compound_code=cover_code,
        skim_compound_code=skim_code,
        cover_compound_consumed_kg=cover_kg,
        skim_compound_consumed_kg=skim_kg,
        cover_compound_produced_on=dates["cover_date"],
        skim_compound_produced_on=dates["skim_date"],
        calendaring_date=calendaring,
        status=BeltStatus.IN_PRODUCTION.value,
        entry_type=EntryType.AUTO.value,
    )
    _apply_form_fields(belt, form_data)
    session.add(belt)
    session.flush()

    _consume_roles(belt, ROLES, session, rng)
    record_belt_created(belt, session, remarks=form_data.get("remarks"))

    log_operation(
        logger,
        operation="create_belt",
        outcome="success",
        belt_id=belt.id,
        belt_number=belt.belt_number,
        cover_code=cover_code,
        skim_code=skim_code,
        cover_kg=str(cover_kg),
        skim_kg=str(skim_kg),
    )
    return belt.to_dict()


def create_belt(
    form_data: Dict[str, Any],
    cover_compound_code: Optional[str] = None,
    skim_compound_code: Optional[str] = None,
    cover_consumed_kg=None,
    skim_consumed_kg=None,
    calendaring_date=None,
    session: Optional[Session] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """
    Create a belt and consume its cover and skim compound.

    Args:
        form_data: Belt fields (belt_number required; rating, dimensions,
            order_number, buyer_name, status, notes, remarks optional).
            cover_compound_type / skim_compound_type are compound display
            names used when no code is passed. cover_compound_produced_on /
            skim_compound_produced_on are production-date wishes.
        cover_compound_code: Cover compound code
        skim_compound_code: Skim compound code
        cover_consumed_kg: Cover compound requirement (> 0)
        skim_consumed_kg: Skim compound requirement (> 0)
        calendaring_date: Calendaring day; preferred date for new batches and,
            without explicit wishes, the source of the production dates
        session: Optional database session
        rng: Optional random source for auto-created batch counts

    Returns:
        Dict of the created belt including cover_batches_used/skim_batches_used

    Raises:
        ValidationError: Bad form data, missing codes or duplicate belt number
        Any error of consume_compound or resolve_production_dates
    """
    form_data = dict(form_data or {})
    errors = _validate_form_fields(form_data, require_number=True)
    if calendaring_date is None:
        calendaring_date = form_data.get("calendaring_date")
    try:
        calendaring = coerce_optional_date(calendaring_date, "Calendaring date")
    except ValueError as e:
        errors.append(str(e))
    if errors:
        raise ValidationError(errors)
    cover_kg = _coerce_requirement(cover_consumed_kg, "Cover")
    skim_kg = _coerce_requirement(skim_consumed_kg, "Skim")

    cover_code = _resolve_code(
        cover_compound_code, form_data.get("cover_compound_type"), "Cover", session
    )
    skim_code = _resolve_code(
        skim_compound_code, form_data.get("skim_compound_type"), "Skim", session
    )

    try:
        with compound_locks([cover_code, skim_code]):
            if session is not None:
                return _create_belt_impl(
                    form_data, cover_code, skim_code, cover_kg, skim_kg, calendaring, session, rng
                )
            with session_scope() as sess:
                return _create_belt_impl(
                    form_data, cover_code, skim_code, cover_kg, skim_kg, calendaring, sess, rng
                )
    except LedgerError:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create belt", original_error=e) from e


def _create_manual_belt_impl(
    form_data: Dict[str, Any],
    cover_code: str,
    skim_code: str,
    cover_selections: List[Dict[str, Any]],
    skim_selections: List[Dict[str, Any]],
    calendaring: Optional[date],
    session: Session,
) -> Dict[str, Any]:
    _check_unique_number(form_data["belt_number"], session)

    cover_wish, skim_wish = _production_wishes(form_data, calendaring)
    dates = resolve_production_dates(cover_wish, skim_wish, session=session)

    cover = consume_from_selected_batches(
        cover_selections,
        compound_code=cover_code,
        produced_on=dates["cover_date"],
        role=CompoundRole.COVER,
        session=session,
    )
    skim = consume_from_selected_batches(
        skim_selections,
        compound_code=skim_code,
        produced_on=dates["skim_date"],
        role=CompoundRole.SKIM,
        session=session,
    )

    belt = Belt(
        cover_compound_code=cover_code,
        skim_compound_code=skim_code,
        cover_compound_consumed_kg=cover["total_consumed"],
        skim_compound_consumed_kg=skim["total_consumed"],
        cover_compound_produced_on=dates["cover_date"],
        skim_compound_produced_on=dates["skim_date"],
        calendaring_date=calendaring,
        status=BeltStatus.IN_PRODUCTION.value,
        entry_type=EntryType.MANUAL.value,
    )
    _apply_form_fields(belt, form_data)
    session.add(belt)
    _store_usages(belt, CompoundRole.COVER, cover["batches_used"])
    _store_usages(belt, CompoundRole.SKIM, skim["batches_used"])
    session.flush()
    record_belt_created(belt, session, remarks=form_data.get("remarks"))

    log_operation(
        logger,
        operation="create_manual_belt",
        outcome="success",
        belt_id=belt.id,
        belt_number=belt.belt_number,
        cover_kg=str(cover["total_consumed"]),
        skim_kg=str(skim["total_consumed"]),
    )
    return belt.to_dict()


def create_manual_belt(
    form_data: Dict[str, Any],
    cover_compound_code: str,
    skim_compound_code: str,
    cover_selections: Iterable[Dict[str, Any]],
    skim_selections: Iterable[Dict[str, Any]],
    calendaring_date=None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Create a belt whose compound came from explicitly selected batches.

    The requirement per role is the sum of its selections. The belt is
    marked EntryType.MANUAL; later cascades replay it with FIFO allocation.

    Args:
        form_data: Belt fields, as for create_belt
        cover_compound_code: Code every cover selection must belong to
        skim_compound_code: Code every skim selection must belong to
        cover_selections: [{"batch_id", "consumed_kg"}, ...]
        skim_selections: [{"batch_id", "consumed_kg"}, ...]
        calendaring_date: Optional calendaring day
        session: Optional database session

    Returns:
        Dict of the created belt
    """
    form_data = dict(form_data or {})
    errors = _validate_form_fields(form_data, require_number=True)
    if calendaring_date is None:
        calendaring_date = form_data.get("calendaring_date")
    try:
        calendaring = coerce_optional_date(calendaring_date, "Calendaring date")
    except ValueError as e:
        errors.append(str(e))
    for label, code in (("Cover", cover_compound_code), ("Skim", skim_compound_code)):
        if not code or not str(code).strip():
            errors.append(f"{label} compound code is required")
    if errors:
        raise ValidationError(errors)

    cover_code = cover_compound_code.strip()
    skim_code = skim_compound_code.strip()
    cover_list = list(cover_selections)
    skim_list = list(skim_selections)

    try:
        with compound_locks([cover_code, skim_code]):
            if session is not None:
                return _create_manual_belt_impl(
                    form_data, cover_code, skim_code, cover_list, skim_list, calendaring, session
                )
            with session_scope() as sess:
                return _create_manual_belt_impl(
                    form_data, cover_code, skim_code, cover_list, skim_list, calendaring, sess
                )
    except LedgerError:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create manual belt", original_error=e) from e


# =============================================================================
# Update
# =============================================================================


def _update_belt_impl(
    belt: Belt,
    updates: Dict[str, Any],
    cover_code: Optional[str],
    skim_code: Optional[str],
    cover_kg: Optional[Decimal],
    skim_kg: Optional[Decimal],
    session: Session,
    rng: Optional[random.Random],
) -> Dict[str, Any]:
    if updates.get("belt_number"):
        _check_unique_number(updates["belt_number"], session, exclude_id=belt.id)

    old_codes = {role: belt.compound_code_for(role) for role in ROLES}
    old_totals = {role: belt.used_kg_for(role) for role in ROLES}
    new_codes = {
        CompoundRole.COVER: cover_code or old_codes[CompoundRole.COVER],
        CompoundRole.SKIM: skim_code or old_codes[CompoundRole.SKIM],
    }
    new_totals = {
        CompoundRole.COVER: cover_kg if cover_kg is not None else old_totals[CompoundRole.COVER],
        CompoundRole.SKIM: skim_kg if skim_kg is not None else old_totals[CompoundRole.SKIM],
    }
    recompute = any(
        new_codes[role] != old_codes[role] or new_totals[role] != old_totals[role]
        for role in ROLES
    )

    # Dates always pass through the allocator, excluding the belt's own days
    if "calendaring_date" in updates:
        belt.calendaring_date = coerce_optional_date(updates["calendaring_date"])
    cover_wish = coerce_optional_date(updates.get("cover_compound_produced_on"))
    skim_wish = coerce_optional_date(updates.get("skim_compound_produced_on"))
    dates = resolve_production_dates(
        cover_wish or belt.cover_compound_produced_on,
        skim_wish or belt.skim_compound_produced_on,
        exclude_belt_id=belt.id,
        session=session,
    )
    belt.cover_compound_produced_on = dates["cover_date"]
    belt.skim_compound_produced_on = dates["skim_date"]
    _apply_form_fields(belt, updates)

    if not recompute:
        session.flush()
        log_operation(
            logger, operation="update_belt", outcome="metadata_only", belt_id=belt.id
        )
        return belt.to_dict()

    touched = sorted(set(old_codes.values()) | set(new_codes.values()))

    _revert_roles(belt, ROLES, session)
    affected = _revert_later_belts(belt, touched, session)

    belt.cover_compound_code = new_codes[CompoundRole.COVER]
    belt.skim_compound_code = new_codes[CompoundRole.SKIM]
    belt.cover_compound_consumed_kg = new_totals[CompoundRole.COVER]
    belt.skim_compound_consumed_kg = new_totals[CompoundRole.SKIM]
    session.flush()

    _consume_roles(belt, ROLES, session, rng)
    _replay(affected, session, rng)

    log_operation(
        logger,
        operation="update_belt",
        outcome="recomputed",
        belt_id=belt.id,
        touched_codes=",".join(touched),
        affected_belts=len(affected),
    )
    return belt.to_dict()


def _peek_codes(belt_id: int, session: Optional[Session]) -> List[str]:
    def _do_peek(sess: Session) -> List[str]:
        belt = _get_belt(belt_id, sess)
        return [belt.cover_compound_code, belt.skim_compound_code]

    if session is not None:
        return _do_peek(session)
    with session_scope() as sess:
        return _do_peek(sess)


class _StaleLockSet(Exception):
    pass


def _get_locked_belt(belt_id: int, held: Sequence[str], session: Session) -> Belt:
    belt = _get_belt(belt_id, session)
    if not {belt.cover_compound_code, belt.skim_compound_code} <= set(held):
        raise _StaleLockSet()
    return belt


def _run_locked(
    belt_id: int,
    extra_codes: Sequence[Optional[str]],
    session: Optional[Session],
    work: Callable[[Belt, Session], Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Run work(belt, session) holding the locks for the belt's compound codes.

    The codes are read before locking and checked again under the locks.
    If a concurrent update changed them in between, nothing has been written
    yet, so the attempt is rolled back and retried with the new codes.

    Raises:
        CompoundCodesChangedError: If the codes kept changing on every attempt
    """
    settings = get_ledger_settings()
    for attempt in range(1, settings.max_conflict_retries + 1):
        codes = _peek_codes(belt_id, session) + list(extra_codes)
        try:
            with compound_locks(codes) as held:
                if session is not None:
                    return work(_get_locked_belt(belt_id, held, session), session)
                with session_scope() as sess:
                    return work(_get_locked_belt(belt_id, held, sess), sess)
        except _StaleLockSet:
            log_operation(
                logger,
                operation="lock_belt_codes",
                outcome="codes_changed",
                level=logging.WARNING,
                belt_id=belt_id,
                attempt=attempt,
            )
            if attempt < settings.max_conflict_retries:
                time.sleep(settings.retry_backoff_seconds * attempt)

    raise CompoundCodesChangedError(belt_id, settings.max_conflict_retries)


def update_belt(
    belt_id: int,
    updates: Optional[Dict[str, Any]] = None,
    cover_compound_code: Optional[str] = None,
    skim_compound_code: Optional[str] = None,
    cover_consumed_kg=None,
    skim_consumed_kg=None,
    session: Optional[Session] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """
    Update a belt, recomputing the ledger when its consumption changed.

    Metadata-only updates (no change to either code or requirement) skip the
    recompute but still re-run production-date allocation. Otherwise the belt
    and every later belt sharing an old or new compound code are reverted and
    replayed in chronological order; later belts keep their own requirement.

    Args:
        belt_id: Belt to update
        updates: Changed belt fields (same keys as create_belt's form_data)
        cover_compound_code: New cover code (None keeps the current one)
        skim_compound_code: New skim code (None keeps the current one)
        cover_consumed_kg: New cover requirement (None keeps the current one)
        skim_consumed_kg: New skim requirement (None keeps the current one)
        session: Optional database session
        rng: Optional random source for auto-created batch counts

    Returns:
        Dict of the updated belt

    Raises:
        BeltNotFoundError: If the belt does not exist
        ValidationError: Bad updates
        CompoundCodesChangedError: If concurrent updates kept changing its codes
        Any error of consume_compound, revert_consumption or the allocator
    """
    updates = dict(updates or {})
    errors = _validate_form_fields(updates, require_number=False)
    if errors:
        raise ValidationError(errors)
    cover_kg = (
        _coerce_requirement(cover_consumed_kg, "Cover") if cover_consumed_kg is not None else None
    )
    skim_kg = (
        _coerce_requirement(skim_consumed_kg, "Skim") if skim_consumed_kg is not None else None
    )
    cover_code = cover_compound_code.strip() if cover_compound_code else None
    skim_code = skim_compound_code.strip() if skim_compound_code else None

    def _do_update(belt: Belt, sess: Session) -> Dict[str, Any]:
        return _update_belt_impl(
            belt, updates, cover_code, skim_code, cover_kg, skim_kg, sess, rng
        )

    try:
        return _run_locked(belt_id, [cover_code, skim_code], session, _do_update)
    except LedgerError:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to update belt {belt_id}", original_error=e) from e


# =============================================================================
# Delete
# =============================================================================


def _delete_belt_impl(belt: Belt, session: Session, rng: Optional[random.Random]) -> Dict[str, Any]:
    data = belt.to_dict()
    touched = sorted({belt.cover_compound_code, belt.skim_compound_code})

    _revert_roles(belt, ROLES, session)
    affected = _revert_later_belts(belt, touched, session)

    session.delete(belt)
    session.flush()

    _replay(affected, session, rng)

    log_operation(
        logger,
        operation="delete_belt",
        outcome="success",
        belt_id=data["id"],
        belt_number=data["belt_number"],
        affected_belts=len(affected),
    )
    return data


def delete_belt(
    belt_id: int, session: Optional[Session] = None, rng: Optional[random.Random] = None
) -> Dict[str, Any]:
    """
    Delete a belt and replay every later belt sharing its compound codes.

    Returns:
        Dict of the deleted belt as it was before deletion

    Raises:
        BeltNotFoundError: If the belt does not exist
        CompoundCodesChangedError: If concurrent updates kept changing its codes
    """
    try:
        return _run_locked(
            belt_id, [], session, lambda belt, sess: _delete_belt_impl(belt, sess, rng)
        )
    except LedgerError:
        raise
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to delete belt {belt_id}", original_error=e) from e


def delete_belt_by_number(
    belt_number: str, session: Optional[Session] = None, rng: Optional[random.Random] = None
) -> Dict[str, Any]:
    """Delete a belt identified by its belt number. Raises BeltNotFoundError."""
    belt = get_belt_by_number(belt_number, session=session)
    return delete_belt(belt["id"], session=session, rng=rng)


# =============================================================================
# Queries
# =============================================================================


def get_belt(belt_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get a belt with its usage lists. Raises BeltNotFoundError."""
    if session is not None:
        return _get_belt(belt_id, session).to_dict()
    with session_scope() as sess:
        return _get_belt(belt_id, sess).to_dict()


def get_belt_by_number(belt_number: str, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get a belt by belt number. Raises BeltNotFoundError."""
    number = (belt_number or "").strip()

    def _do_get(sess: Session) -> Dict[str, Any]:
        belt = sess.query(Belt).filter(Belt.belt_number == number).first()
        if belt is None:
            raise BeltNotFoundError(number)
        return belt.to_dict()

    if session is not None:
        return _do_get(session)
    with session_scope() as sess:
        return _do_get(sess)


def list_belts(
    status: Optional[str] = None,
    compound_code: Optional[str] = None,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """
    List belts in creation order.

    Args:
        status: Optional BeltStatus value filter
        compound_code: Optional filter on either cover or skim code
        session: Optional database session
    """

    def _do_list(sess: Session) -> List[Dict[str, Any]]:
        query = sess.query(Belt)
        if status:
            query = query.filter(Belt.status == status)
        if compound_code:
            query = query.filter(
                or_(
                    Belt.cover_compound_code == compound_code,
                    Belt.skim_compound_code == compound_code,
                )
            )
        query = query.order_by(Belt.created_at.asc(), Belt.id.asc())
        return [belt.to_dict() for belt in query.all()]

    if session is not None:
        return _do_list(session)
    with session_scope() as sess:
        return _do_list(sess)

