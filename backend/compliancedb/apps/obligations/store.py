"""
Obligation Store and Completion Ledger access.

Reads return immutable snapshots. Any SQLAlchemy failure while reading is
raised as StoreUnavailable so callers can tell "no data" apart from "could
not read". ``stamp_reminder`` is the only write in the engine.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from compliancedb.apps.compliance.errors import StoreUnavailable
from compliancedb.apps.compliance.types import (
    CompletionIndex,
    CompletionSnapshot,
    ObligationSnapshot,
    ensure_utc,
)

from . import models


def list_obligations(
    db: Session,
    org_id: Optional[str] = None,
    *,
    mandatory_only: bool = False,
) -> list[ObligationSnapshot]:
    try:
        query = db.query(models.Obligation)
        if org_id is not None:
            query = query.filter(models.Obligation.org_id == org_id)
        if mandatory_only:
            query = query.filter(models.Obligation.mandatory.is_(True))
        rows = query.order_by(models.Obligation.created_at.asc()).all()
    except SQLAlchemyError as exc:
        raise StoreUnavailable("list_obligations", exc) from exc
    return [ObligationSnapshot.from_model(row) for row in rows]


def list_completions(db: Session, org_id: Optional[str] = None) -> list[CompletionSnapshot]:
    try:
        query = db.query(models.CompletionRecord)
        if org_id is not None:
            query = query.filter(models.CompletionRecord.org_id == org_id)
        rows = query.order_by(models.CompletionRecord.completed_at.desc()).all()
    except SQLAlchemyError as exc:
        raise StoreUnavailable("list_completions", exc) from exc
    return [CompletionSnapshot.from_model(row) for row in rows]


def build_completion_index(db: Session, org_id: Optional[str] = None) -> CompletionIndex:
    return CompletionIndex(list_completions(db, org_id))


def stamp_reminder(
    db: Session,
    obligation_id: str,
    prev_value: Optional[datetime],
    now: datetime,
) -> bool:
    """
    Set ``reminder_sent_at = now`` only if it still equals ``prev_value``.

    Returns False when another runner stamped the row first (or the row was
    deleted); the caller skips quietly in that case.
    """
    prev_value = ensure_utc(prev_value)
    column = models.Obligation.reminder_sent_at
    condition = column.is_(None) if prev_value is None else column == prev_value
    try:
        updated = (
            db.query(models.Obligation)
            .filter(models.Obligation.id == obligation_id, condition)
            .update({column: ensure_utc(now)}, synchronize_session="fetch")
        )
        db.flush()
    except SQLAlchemyError as exc:
        raise StoreUnavailable("stamp_reminder", exc) from exc
    return updated == 1
