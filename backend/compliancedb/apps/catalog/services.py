from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from sqlalchemy.orm import Session

from compliancedb.apps.compliance.types import CourseInfo, CourseResolution, Orphaned, Resolved, ensure_utc

from . import models


@dataclass(frozen=True)
class MemberInfo:
    user_id: str
    full_name: Optional[str]
    email: Optional[str]
    role: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or "Team Member"


class CourseCatalog:
    """Resolves course version refs to display data, or tags them orphaned."""

    def __init__(self, courses: Mapping[str, CourseInfo]) -> None:
        self._courses = dict(courses)

    @classmethod
    def from_db(cls, db: Session, refs: Optional[Iterable[Optional[str]]] = None) -> "CourseCatalog":
        query = db.query(models.CourseVersion)
        if refs is not None:
            wanted = sorted({ref for ref in refs if ref})
            if not wanted:
                return cls({})
            query = query.filter(models.CourseVersion.id.in_(wanted))
        courses = {
            row.id: CourseInfo(ref=row.id, title=row.title, category=row.category, version=row.version)
            for row in query.all()
        }
        return cls(courses)

    def resolve(self, ref: Optional[str]) -> CourseResolution:
        course = self._courses.get(ref) if ref else None
        if course is None:
            return Orphaned(ref)
        return Resolved(course)


class MemberDirectory:
    """Member display data keyed by ``(org_id, user_id)``."""

    def __init__(self, members: Mapping[tuple[str, str], MemberInfo]) -> None:
        self._members = dict(members)

    @classmethod
    def from_db(
        cls,
        db: Session,
        *,
        org_id: Optional[str] = None,
        user_ids: Optional[Iterable[str]] = None,
    ) -> "MemberDirectory":
        query = db.query(models.OrgMember)
        if org_id is not None:
            query = query.filter(models.OrgMember.org_id == org_id)
        if user_ids is not None:
            wanted = sorted(set(user_ids))
            if not wanted:
                return cls({})
            query = query.filter(models.OrgMember.user_id.in_(wanted))
        members: dict[tuple[str, str], MemberInfo] = {}
        for row in query.all():
            members[(row.org_id, row.user_id)] = MemberInfo(
                user_id=row.user_id,
                full_name=row.full_name,
                email=(row.email or "").strip() or None,
                role=row.role,
            )
        return cls(members)

    def get(self, org_id: str, user_id: str) -> Optional[MemberInfo]:
        return self._members.get((org_id, user_id))


def get_organization(db: Session, org_id: str) -> Optional[models.Organization]:
    return db.query(models.Organization).filter(models.Organization.id == org_id).first()


def list_course_version_history(db: Session, org_id: str) -> list[dict]:
    rows = (
        db.query(models.CourseVersion)
        .filter(
            models.CourseVersion.status == "published",
            (models.CourseVersion.org_id == org_id) | (models.CourseVersion.org_id.is_(None)),
        )
        .order_by(models.CourseVersion.published_at.desc())
        .all()
    )
    return [
        {
            "course_version_ref": row.id,
            "course_id": row.course_id,
            "course_title": row.title,
            "version": row.version,
            "status": row.status,
            "change_log": row.change_log,
            "published_at": ensure_utc(row.published_at),
        }
        for row in rows
    ]


def list_policy_acknowledgements(db: Session, org_id: str) -> list[dict]:
    rows = (
        db.query(models.PolicyAcknowledgement)
        .filter(models.PolicyAcknowledgement.org_id == org_id)
        .order_by(models.PolicyAcknowledgement.acknowledged_at.desc())
        .all()
    )
    return [
        {
            "user_id": row.user_id,
            "policy_id": row.policy_id,
            "template_id": row.template_id,
            "acknowledged_at": ensure_utc(row.acknowledged_at),
        }
        for row in rows
    ]
