"""
Evidence pack exporter.

``build_evidence_pack`` is a read-only snapshot of an organization's
compliance position at ``now``. The training matrix, completion logs and
overdue list come from the obligation store and completion ledger; if those
cannot be read the export fails with StoreUnavailable. Course version
history and policy acknowledgements are passed through from their owning
collaborators and are fetched independently: a failure there sets that
section's ``error`` and the rest of the pack is still returned.
"""

from __future__ import annotations

import enum
import io
import json
import logging
import os
import zipfile
from datetime import date, datetime
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from compliancedb.apps.catalog import services as catalog_services
from compliancedb.apps.compliance import aggregator
from compliancedb.apps.compliance import services as compliance_services
from compliancedb.apps.compliance.types import CompletionIndex, CompletionSnapshot, Resolved
from compliancedb.apps.obligations import store

logger = logging.getLogger(__name__)

MAX_EVIDENCE_PACK_BYTES = int(os.getenv("EVIDENCE_PACK_MAX_BYTES", str(50 * 1024 * 1024)))
ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)
SECTION_NAMES = (
    "training_matrix",
    "completion_logs",
    "course_version_history",
    "policy_acknowledgements",
    "overdue",
)


class EvidenceSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: tuple[dict[str, Any], ...] = ()
    error: Optional[str] = None


class EvidencePackMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    org_id: str
    organization: Optional[str] = None
    sector: Optional[str] = None
    exported_at: datetime
    exported_by: Optional[str] = None


class EvidencePack(BaseModel):
    model_config = ConfigDict(frozen=True)

    metadata: EvidencePackMetadata
    summary: dict[str, Any]
    training_matrix: EvidenceSection
    completion_logs: EvidenceSection
    course_version_history: EvidenceSection
    policy_acknowledgements: EvidenceSection
    overdue: EvidenceSection
    warnings: tuple[dict[str, Any], ...] = Field(default_factory=tuple)


def _serialize_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _to_json_bytes(payload: Any) -> bytes:
    return json.dumps(payload, default=_serialize_value, sort_keys=True, indent=2).encode("utf-8")


def _external_section(db: Session, name: str, fetch: Callable[[], list[dict]]) -> EvidenceSection:
    try:
        with db.begin_nested():
            return EvidenceSection(data=tuple(fetch()))
    except Exception as exc:
        logger.warning("Evidence pack section failed", extra={"section": name, "error": str(exc)})
        return EvidenceSection(error=f"{type(exc).__name__}: {exc}")


def _course_fields(resolution) -> dict:
    if isinstance(resolution, Resolved):
        course = resolution.course
        return {"course_title": course.title, "category": course.category, "version": course.version}
    return {"course_title": None, "category": None, "version": None}


def _completion_logs(completions: list[CompletionSnapshot], resolve) -> list[dict]:
    ordered = sorted(completions, key=lambda c: (c.completed_at, c.id), reverse=True)
    logs = []
    for completion in ordered:
        entry = {
            "completion_id": completion.id,
            "user_id": completion.user_id,
            "course_version_ref": completion.course_version_ref,
            "completed_at": completion.completed_at,
            "score": completion.score,
            "passed": completion.passed,
        }
        entry.update(_course_fields(resolve(completion.course_version_ref) if resolve else None))
        logs.append(entry)
    return logs


def _training_matrix(
    result: aggregator.AggregateResult,
    completion_logs: list[dict],
    directory: Optional[catalog_services.MemberDirectory],
    org_id: str,
) -> list[dict]:
    passed_by_user: dict[str, list[dict]] = {}
    for entry in completion_logs:
        if entry["passed"]:
            passed_by_user.setdefault(entry["user_id"], []).append(
                {
                    "course_version_ref": entry["course_version_ref"],
                    "course_title": entry["course_title"],
                    "category": entry["category"],
                    "completed_at": entry["completed_at"],
                    "score": entry["score"],
                }
            )
    rows = []
    for row in result.matrix:
        member = directory.get(org_id, row.user_id) if directory is not None else None
        rows.append(
            {
                "user_id": row.user_id,
                "name": member.full_name if member else None,
                "role": member.role if member else None,
                "assigned": row.assigned,
                "completed": row.completed,
                "overdue": row.overdue,
                "pending": row.pending,
                "orphaned": row.orphaned,
                "completion_rate": row.completion_rate,
                "completed_courses": passed_by_user.get(row.user_id, []),
            }
        )
    return rows


def _overdue_list(result: aggregator.AggregateResult) -> list[dict]:
    overdue = sorted(result.overdue, key=lambda item: (-item.days_overdue, item.obligation.id))
    rows = []
    for item in overdue:
        entry = {
            "obligation_id": item.obligation.id,
            "user_id": item.obligation.scope_user_id,
            "course_version_ref": item.obligation.course_version_ref,
            "due_at": item.obligation.due_at,
            "days_overdue": item.days_overdue,
        }
        entry["course_title"] = _course_fields(item.resolution)["course_title"]
        rows.append(entry)
    return rows


def build_evidence_pack(
    db: Session,
    *,
    org_id: str,
    now: datetime,
    actor_user_id: Optional[str] = None,
) -> EvidencePack:
    obligations = store.list_obligations(db, org_id)
    completions = store.list_completions(db, org_id)

    warnings: list[dict] = []
    policy = compliance_services.load_policy_or_default(db, org_id, warnings)
    refs = [o.course_version_ref for o in obligations] + [c.course_version_ref for c in completions]
    catalog = compliance_services.load_catalog_or_none(db, refs, warnings)
    resolve = catalog.resolve if catalog is not None else None

    result = aggregator.aggregate(obligations, CompletionIndex(completions), now, policy=policy, resolve=resolve)
    warnings.extend(result.warnings)

    directory = None
    try:
        with db.begin_nested():
            directory = catalog_services.MemberDirectory.from_db(db, org_id=org_id)
    except SQLAlchemyError as exc:
        warnings.append({"code": "member_directory_unavailable", "detail": str(exc)})

    organization = None
    try:
        with db.begin_nested():
            organization = catalog_services.get_organization(db, org_id)
    except SQLAlchemyError as exc:
        warnings.append({"code": "organization_lookup_failed", "detail": str(exc)})

    completion_logs = _completion_logs(completions, resolve)

    return EvidencePack(
        metadata=EvidencePackMetadata(
            org_id=org_id,
            organization=organization.name if organization else None,
            sector=organization.sector if organization else None,
            exported_at=now,
            exported_by=actor_user_id,
        ),
        summary={
            "completion_rate": result.org.completion_rate,
            "overdue_count": result.org.overdue_count,
            "compliance_status": result.org.compliance_status.value,
            "assigned": result.org.assigned,
            "completed": result.org.completed,
            "pending": result.org.pending,
            "orphaned": result.org.orphaned,
            "active_learners": result.org.active_learners,
        },
        training_matrix=EvidenceSection(data=tuple(_training_matrix(result, completion_logs, directory, org_id))),
        completion_logs=EvidenceSection(data=tuple(completion_logs)),
        course_version_history=_external_section(
            db,
            "course_version_history",
            lambda: catalog_services.list_course_version_history(db, org_id),
        ),
        policy_acknowledgements=_external_section(
            db,
            "policy_acknowledgements",
            lambda: catalog_services.list_policy_acknowledgements(db, org_id),
        ),
        overdue=EvidenceSection(data=tuple(_overdue_list(result))),
        warnings=tuple(warnings),
    )


def _write_zip(entries: list[tuple[str, bytes]]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, data in entries:
            info = zipfile.ZipInfo(name, date_time=ZIP_TIMESTAMP)
            info.compress_type = zipfile.ZIP_DEFLATED
            archive.writestr(info, data)
    buffer.seek(0)
    return buffer.read()


def evidence_pack_zip(pack: EvidencePack, *, max_bytes: int = MAX_EVIDENCE_PACK_BYTES) -> bytes:
    """Bundle the pack as one JSON file per section; sections over the size cap are listed as omitted."""
    payload = pack.model_dump(mode="json")
    entries: list[tuple[str, bytes]] = []
    omitted: list[dict[str, Any]] = []
    current_size = 0

    for name in ("metadata", "summary", "warnings"):
        data = _to_json_bytes(payload[name])
        entries.append((f"{name}.json", data))
        current_size += len(data)

    for name in SECTION_NAMES:
        data = _to_json_bytes(payload[name])
        if max_bytes and current_size + len(data) > max_bytes:
            omitted.append({"path": f"sections/{name}.json", "reason": "exceeds_limit", "size_bytes": len(data)})
            continue
        entries.append((f"sections/{name}.json", data))
        current_size += len(data)

    if omitted:
        entries.append(
            (
                "manifest.json",
                _to_json_bytes({"limit_bytes": max_bytes, "total_bytes": current_size, "omitted": omitted}),
            )
        )
    return _write_zip(entries)
