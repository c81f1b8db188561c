from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from compliancedb.apps.catalog.services import CourseCatalog
from compliancedb.apps.obligations import store

from . import aggregator, policy as policy_module, trend
from .types import CompletionIndex

logger = logging.getLogger(__name__)


def load_policy_or_default(db: Session, org_id: str, warnings: list[dict]) -> policy_module.CompliancePolicy:
    try:
        with db.begin_nested():
            return policy_module.load_policy(db, org_id)
    except SQLAlchemyError as exc:
        logger.warning("Compliance settings unavailable, using defaults", extra={"org_id": org_id, "error": str(exc)})
        warnings.append({"code": "settings_unavailable", "detail": str(exc)})
        return policy_module.CompliancePolicy()


def load_catalog_or_none(db: Session, refs, warnings: list[dict]) -> Optional[CourseCatalog]:
    try:
        with db.begin_nested():
            return CourseCatalog.from_db(db, refs)
    except SQLAlchemyError as exc:
        logger.warning("Course catalog unavailable, course refs left unresolved", extra={"error": str(exc)})
        warnings.append({"code": "course_catalog_unavailable", "detail": str(exc)})
        return None


def build_report(
    db: Session,
    *,
    org_id: str,
    now: datetime,
    report_filter: Optional[aggregator.ReportFilter] = None,
) -> aggregator.AggregateResult:
    """
    Classify and aggregate one organization's obligations at ``now``.

    Only a failure to read obligations or completions is fatal
    (StoreUnavailable); catalog and settings problems become warnings.
    """
    obligations = store.list_obligations(db, org_id)
    index = CompletionIndex(store.list_completions(db, org_id))

    warnings: list[dict] = []
    policy = load_policy_or_default(db, org_id, warnings)
    catalog = load_catalog_or_none(db, [o.course_version_ref for o in obligations], warnings)

    result = aggregator.aggregate(
        obligations,
        index,
        now,
        policy=policy,
        resolve=catalog.resolve if catalog is not None else None,
        report_filter=report_filter,
    )
    result.warnings[:0] = warnings
    return result


def build_trend(db: Session, *, org_id: str, now: datetime, days: int) -> trend.CompletionTrend:
    return trend.completion_trend(store.list_completions(db, org_id), now, days=days)
