"""create obligation, catalog, settings, notification and audit tables

Revision ID: a1c3e5f7b9d0
Revises:
Create Date: 2024-06-01 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c3e5f7b9d0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _index(table: str, *columns: str, unique: bool = False) -> None:
    op.create_index(f"ix_{table}_{'_'.join(columns)}", table, list(columns), unique=unique)


def upgrade() -> None:
    op.create_table(
        "obligations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("scope_user_id", sa.String(length=36), nullable=False),
        sa.Column("course_version_ref", sa.String(length=64), nullable=True),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("mandatory", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
    )
    _index("obligations", "org_id")
    _index("obligations", "scope_user_id")
    _index("obligations", "course_version_ref")
    op.create_index(
        "ix_obligations_org_user_course", "obligations", ["org_id", "scope_user_id", "course_version_ref"]
    )
    op.create_index("ix_obligations_org_due", "obligations", ["org_id", "due_at"])

    op.create_table(
        "completion_records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("course_version_ref", sa.String(length=64), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("passed", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    _index("completion_records", "org_id")
    _index("completion_records", "user_id")
    _index("completion_records", "course_version_ref")
    op.create_index("ix_completion_records_user_course", "completion_records", ["user_id", "course_version_ref"])
    op.create_index("ix_completion_records_org_completed", "completion_records", ["org_id", "completed_at"])

    op.create_table(
        "organizations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sector", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "org_members",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="learner"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
        sa.UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),
    )
    _index("org_members", "org_id")
    _index("org_members", "user_id")

    op.create_table(
        "course_versions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("org_id", sa.String(length=36), nullable=True),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=128), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="published"),
        sa.Column("change_log", sa.Text(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
    )
    _index("course_versions", "org_id")
    _index("course_versions", "course_id")
    op.create_index("ix_course_versions_org_status", "course_versions", ["org_id", "status"])

    op.create_table(
        "policy_acknowledgements",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("policy_id", sa.String(length=64), nullable=False),
        sa.Column("template_id", sa.String(length=64), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("org_id", "policy_id", "user_id", name="uq_policy_ack_org_policy_user"),
    )
    _index("policy_acknowledgements", "org_id")
    _index("policy_acknowledgements", "policy_id")
    _index("policy_acknowledgements", "user_id")

    op.create_table(
        "compliance_settings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("ready_min_rate", sa.Integer(), nullable=False, server_default="80"),
        sa.Column("at_risk_max_overdue", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("at_risk_min_rate", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("reminder_debounce_days", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    _index("compliance_settings", "org_id", unique=True)

    op.create_table(
        "notification_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("recipient", sa.String(length=255), nullable=True),
        sa.Column("template_key", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=19), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("context_json", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
    )
    for column in ("id", "org_id", "created_at", "user_id", "status", "correlation_id"):
        _index("notification_logs", column)
    op.create_index("ix_notification_logs_org_created", "notification_logs", ["org_id", "created_at"])
    op.create_index("ix_notification_logs_org_status", "notification_logs", ["org_id", "status"])
    op.create_index("ix_notification_logs_org_template", "notification_logs", ["org_id", "template_key"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("actor_user_id", sa.String(length=36), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
    )
    for column in ("id", "org_id", "entity_type", "entity_id", "action", "actor_user_id", "occurred_at", "correlation_id"):
        _index("audit_events", column)
    op.create_index("ix_audit_events_org_entity", "audit_events", ["org_id", "entity_type", "entity_id"])
    op.create_index("ix_audit_events_org_action", "audit_events", ["org_id", "action"])
    op.create_index("ix_audit_events_org_time_desc", "audit_events", ["org_id", sa.text("occurred_at DESC")])


def downgrade() -> None:
    for table in (
        "audit_events",
        "notification_logs",
        "compliance_settings",
        "policy_acknowledgements",
        "course_versions",
        "org_members",
        "organizations",
        "completion_records",
        "obligations",
    ):
        op.drop_table(table)
