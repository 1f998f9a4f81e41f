"""Compound Catalog Service - CompoundMaster reference data.

The catalog maps compound codes to their display name, category and the
default weight per batch used when the ledger auto-creates batches. The
ledger only reads it; writes come from setup and the CLI.

All functions follow the session pattern:
- If session provided: caller owns transaction, don't commit
- If session is None: create own transaction via session_scope()
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import CompoundMaster
from ..utils.constants import COMPOUND_CATEGORIES, MAX_NAME_LENGTH, ROLE_COVER
from ..utils.validators import coerce_kg, validate_compound_code, validate_required_string
from .database import session_scope
from .exceptions import CompoundMasterNotFoundError, ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def normalize_compound_code(name: str) -> str:
    """
    Convert a compound display name to a code.

    Hyphens are dropped and the result is lower-cased:
    "Nk-5" -> "nk5", "NK-8" -> "nk8", "nk1" -> "nk1".
    """
    if not name:
        return ""
    return name.strip().replace("-", "").lower()


def create_compound_master(
    compound_code: str,
    compound_name: str,
    default_weight_per_batch,
    category: str = ROLE_COVER,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Add a compound to the catalog.

    Args:
        compound_code: Unique code (e.g. "nk5")
        compound_name: Display name (e.g. "Nk-5")
        default_weight_per_batch: Kilograms per batch for auto-created batches
        category: "cover" or "skim"
        session: Optional database session

    Returns:
        Dict of the created CompoundMaster

    Raises:
        ValidationError: On bad input or a duplicate code
    """
    errors = []
    is_valid, error = validate_compound_code(compound_code)
    if not is_valid:
        errors.append(error)
    is_valid, error = validate_required_string(compound_name, "Compound name")
    if not is_valid:
        errors.append(error)
    elif len(compound_name.strip()) > MAX_NAME_LENGTH:
        errors.append(f"Compound name: Must be {MAX_NAME_LENGTH} characters or less")
    if category not in COMPOUND_CATEGORIES:
        errors.append(f"Category: Must be one of {', '.join(COMPOUND_CATEGORIES)}")
    weight = None
    try:
        weight = coerce_kg(default_weight_per_batch, "Default weight per batch")
    except ValueError as e:
        errors.append(str(e))
    if errors:
        raise ValidationError(errors)

    def _do_create(sess: Session) -> Dict[str, Any]:
        code = compound_code.strip()
        if sess.query(CompoundMaster).filter(CompoundMaster.compound_code == code).first():
            raise ValidationError([f"Compound code '{code}' already exists"])
        master = CompoundMaster(
            compound_code=code,
            compound_name=compound_name.strip(),
            category=category,
            default_weight_per_batch=weight,
        )
        sess.add(master)
        sess.flush()
        log_operation(
            logger,
            operation="create_compound_master",
            outcome="success",
            compound_code=code,
            weight_per_batch=str(weight),
        )
        return master.to_dict()

    if session is not None:
        return _do_create(session)
    with session_scope() as sess:
        return _do_create(sess)


def get_master(compound_code: str, session: Session) -> CompoundMaster:
    """
    Load a CompoundMaster inside an existing session.

    Raises:
        CompoundMasterNotFoundError: If the code is unknown
    """
    master = (
        session.query(CompoundMaster)
        .filter(CompoundMaster.compound_code == compound_code)
        .first()
    )
    if master is None:
        raise CompoundMasterNotFoundError(compound_code)
    return master


def get_compound_master(compound_code: str, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get a catalog entry as a dict. Raises CompoundMasterNotFoundError."""
    if session is not None:
        return get_master(compound_code, session).to_dict()
    with session_scope() as sess:
        return get_master(compound_code, sess).to_dict()


def list_compound_masters(
    category: Optional[str] = None, session: Optional[Session] = None
) -> List[Dict[str, Any]]:
    """List catalog entries ordered by code, optionally filtered by category."""

    def _do_list(sess: Session) -> List[Dict[str, Any]]:
        query = sess.query(CompoundMaster)
        if category:
            query = query.filter(CompoundMaster.category == category)
        return [m.to_dict() for m in query.order_by(CompoundMaster.compound_code).all()]

    if session is not None:
        return _do_list(session)
    with session_scope() as sess:
        return _do_list(sess)


def resolve_compound_code(name_or_code: str, session: Optional[Session] = None) -> str:
    """
    Resolve a compound display name or code to a catalog code.

    Lookup order: exact code, exact display name, then the normalised name.
    The normalised form is returned even when the catalog has no such code;
    consumption raises CompoundMasterNotFoundError later if it needs one.

    Raises:
        ValidationError: If the input is empty
    """
    is_valid, error = validate_required_string(name_or_code, "Compound")
    if not is_valid:
        raise ValidationError([error])
    value = name_or_code.strip()

    def _do_resolve(sess: Session) -> str:
        master = sess.query(CompoundMaster).filter(CompoundMaster.compound_code == value).first()
        if master is None:
            master = (
                sess.query(CompoundMaster).filter(CompoundMaster.compound_name == value).first()
            )
        if master is not None:
            return master.compound_code
        return normalize_compound_code(value)

    if session is not None:
        return _do_resolve(session)
    with session_scope() as sess:
        return _do_resolve(sess)
