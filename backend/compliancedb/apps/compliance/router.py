from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from compliancedb.apps.audit import services as audit_services
from compliancedb.database import get_db, get_read_db

from . import policy as policy_module
from . import schemas, services
from .aggregator import ReportFilter
from .types import ObligationState

router = APIRouter(prefix="/compliance", tags=["compliance"])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@router.get("/{org_id}/report", response_model=schemas.ComplianceReportRead, summary="Compliance report")
def compliance_report(
    org_id: str,
    status: Optional[ObligationState] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    db: Session = Depends(get_read_db),
):
    now = _utcnow()
    report_filter = None
    if status is not None or start is not None or end is not None:
        report_filter = ReportFilter(status=status, start=start, end=end)
    result = services.build_report(db, org_id=org_id, now=now, report_filter=report_filter)
    return schemas.ComplianceReportRead(
        org_id=org_id,
        generated_at=now,
        matrix=[schemas.TrainingMatrixRowRead.model_validate(row) for row in result.matrix],
        courses=[schemas.CourseComplianceRowRead.model_validate(row) for row in result.courses],
        org=schemas.OrgComplianceSummaryRead.model_validate(result.org),
        warnings=result.warnings,
    )


@router.get("/{org_id}/obligations", response_model=list[schemas.ObligationStateRead])
def obligation_states(org_id: str, db: Session = Depends(get_read_db)):
    result = services.build_report(db, org_id=org_id, now=_utcnow())
    return [
        schemas.ObligationStateRead(
            id=item.obligation.id,
            scope_user_id=item.obligation.scope_user_id,
            course_version_ref=item.obligation.course_version_ref,
            due_at=item.obligation.due_at,
            mandatory=item.obligation.mandatory,
            state=item.state,
            orphaned=item.orphaned,
            days_overdue=item.days_overdue,
            completed_at=item.completed_at,
            reminder_sent_at=item.obligation.reminder_sent_at,
        )
        for item in result.items
    ]


@router.get("/{org_id}/trend", response_model=schemas.CompletionTrendRead)
def completion_trend(org_id: str, days: int = Query(30, ge=2, le=365), db: Session = Depends(get_read_db)):
    return services.build_trend(db, org_id=org_id, now=_utcnow(), days=days)


@router.get("/{org_id}/settings", response_model=schemas.SettingsRead)
def get_settings(org_id: str, db: Session = Depends(get_read_db)):
    return policy_module.load_policy(db, org_id).as_dict()


@router.put("/{org_id}/settings", response_model=schemas.SettingsRead)
def put_settings(
    org_id: str,
    payload: schemas.SettingsUpdate,
    db: Session = Depends(get_db),
    actor_user_id: Optional[str] = Header(None, alias="X-Actor-User-Id"),
):
    before = policy_module.load_policy(db, org_id).as_dict()
    updated = policy_module.CompliancePolicy(**payload.model_dump())
    policy_module.save_policy(db, org_id, updated)
    audit_services.log_event(
        db,
        org_id=org_id,
        actor_user_id=actor_user_id,
        entity_type="compliance_settings",
        entity_id=org_id,
        action="update",
        before=before,
        after=updated.as_dict(),
        metadata={"module": "compliance"},
    )
    db.commit()
    return updated.as_dict()
