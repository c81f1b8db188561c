from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from compliancedb.apps.audit import services as audit_services
from compliancedb.database import get_db

from . import evidence_pack

router = APIRouter(prefix="/compliance", tags=["exports"])


def _export(db: Session, org_id: str, actor_user_id: Optional[str], fmt: str) -> evidence_pack.EvidencePack:
    pack = evidence_pack.build_evidence_pack(
        db,
        org_id=org_id,
        now=datetime.now(timezone.utc),
        actor_user_id=actor_user_id,
    )
    audit_services.log_event(
        db,
        org_id=org_id,
        actor_user_id=actor_user_id,
        entity_type="evidence_pack",
        entity_id=org_id,
        action="export_evidence_pack",
        metadata={
            "module": "exports",
            "format": fmt,
            "completion_count": len(pack.completion_logs.data),
            "member_count": len(pack.training_matrix.data),
            "section_errors": [
                name for name in evidence_pack.SECTION_NAMES if getattr(pack, name).error
            ],
        },
        critical=True,
    )
    db.commit()
    return pack


@router.get("/{org_id}/evidence-pack", summary="Export evidence pack as JSON")
def export_evidence_pack(
    org_id: str,
    db: Session = Depends(get_db),
    actor_user_id: Optional[str] = Header(None, alias="X-Actor-User-Id"),
):
    pack = _export(db, org_id, actor_user_id, "json")
    return pack.model_dump(mode="json")


@router.get("/{org_id}/evidence-pack.zip", summary="Export evidence pack as a zip of JSON files")
def export_evidence_pack_zip(
    org_id: str,
    db: Session = Depends(get_db),
    actor_user_id: Optional[str] = Header(None, alias="X-Actor-User-Id"),
):
    pack = _export(db, org_id, actor_user_id, "zip")
    zip_bytes = evidence_pack.evidence_pack_zip(pack)
    filename = f"{org_id}_evidence_pack.zip"
    return StreamingResponse(
        iter([zip_bytes]),
        media_type="application/zip",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
