"""
Read models owned by external collaborators.

The course authoring, membership and policy workflows write these tables.
The compliance engine only reads them to resolve display data and to pass
history through into evidence packs.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, UniqueConstraint

from compliancedb.database import Base
from compliancedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    name = Column(String(255), nullable=False)
    sector = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class OrgMember(Base):
    __tablename__ = "org_members"
    __table_args__ = (UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),)

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    org_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    role = Column(String(32), nullable=False, default="learner")
    status = Column(String(32), nullable=False, default="active")


class CourseVersion(Base):
    __tablename__ = "course_versions"
    __table_args__ = (Index("ix_course_versions_org_status", "org_id", "status"),)

    id = Column(String(64), primary_key=True, default=generate_uuid7)
    org_id = Column(String(36), nullable=True, index=True)
    course_id = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    category = Column(String(128), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    status = Column(String(32), nullable=False, default="published")
    change_log = Column(Text, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class PolicyAcknowledgement(Base):
    __tablename__ = "policy_acknowledgements"
    __table_args__ = (
        UniqueConstraint("org_id", "policy_id", "user_id", name="uq_policy_ack_org_policy_user"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    org_id = Column(String(36), nullable=False, index=True)
    policy_id = Column(String(64), nullable=False, index=True)
    template_id = Column(String(64), nullable=True)
    user_id = Column(String(36), nullable=False, index=True)
    acknowledged_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
