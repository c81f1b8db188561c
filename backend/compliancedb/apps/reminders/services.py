"""
Overdue training reminder pass.

Invoked on a fixed interval by an external trigger (cron endpoint or the
``reminder_runner`` job); it never schedules itself.

For every mandatory obligation that classifies as Overdue and whose last
reminder is absent or at least one debounce window old, the pass asks the
notifier to send a ``training_overdue`` message and then stamps
``reminder_sent_at = now`` with a compare-and-swap on the value it read.

Delivery semantics are send-then-stamp, i.e. at-least-once. If the process
stops between a successful send and its stamp, that obligation is sent again
on the next pass. Two concurrent passes can both send before one of them
wins the stamp; the loser sees a stale stamp and records it. The guarantee is
at most one stamp per debounce window per obligation, not exactly-once
delivery.

``reminders_sent`` counts deliveries, not stamps: a send followed by a stale
or failed stamp still counts, and shows up again under ``stale_stamps`` or
``errors``.

A notifier failure is logged, recorded in the summary and leaves the stamp
untouched, so the obligation is retried on the next pass. So does a member
with no email address. Failing to read obligations or completions aborts
the pass with StoreUnavailable. Catalog, directory and settings reads run in
savepoints so a failed lookup only costs its own data.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from compliancedb.apps.audit import services as audit_services
from compliancedb.apps.catalog import services as catalog_services
from compliancedb.apps.compliance import aggregator
from compliancedb.apps.compliance import policy as policy_module
from compliancedb.apps.compliance.errors import NotifierError, StoreUnavailable, ValidationError
from compliancedb.apps.compliance.types import (
    CompletionIndex,
    ObligationSnapshot,
    ObligationState,
    Resolved,
    ensure_utc,
)
from compliancedb.apps.notifications import providers as notification_providers
from compliancedb.apps.notifications import service as notification_service
from compliancedb.apps.obligations import store
from compliancedb.utils.identifiers import correlation_id

logger = logging.getLogger(__name__)

REMINDER_TEMPLATE = "training_overdue"
DEFAULT_DEBOUNCE_WINDOW = timedelta(days=policy_module.DEFAULT_REMINDER_DEBOUNCE_DAYS)
FALLBACK_COURSE_NAME = "Required Training"
FALLBACK_ORG_NAME = "Your Organization"


def _app_base_url() -> str:
    return os.getenv("APP_BASE_URL", "http://localhost:3000").rstrip("/")


@dataclass
class ReminderPassSummary:
    total_overdue: int = 0
    reminders_sent: int = 0
    errors: list[dict] = field(default_factory=list)
    skipped_debounced: int = 0
    stale_stamps: int = 0
    warnings: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


def validate_debounce_window(debounce_window: timedelta) -> timedelta:
    if not isinstance(debounce_window, timedelta):
        raise ValidationError("debounce_window must be a timedelta", field="debounce_window")
    if debounce_window < timedelta(0):
        raise ValidationError("debounce_window must not be negative", field="debounce_window")
    return debounce_window


def is_due_for_reminder(obligation: ObligationSnapshot, now: datetime, debounce_window: timedelta) -> bool:
    last = ensure_utc(obligation.reminder_sent_at)
    if last is None:
        return True
    return ensure_utc(now) - last >= debounce_window


def select_for_reminder(
    obligations: Iterable[ObligationSnapshot],
    completion_index: CompletionIndex,
    now: datetime,
    debounce_window: timedelta = DEFAULT_DEBOUNCE_WINDOW,
    *,
    resolve: Optional[aggregator.Resolver] = None,
) -> tuple[list[aggregator.ClassifiedObligation], list[aggregator.ClassifiedObligation]]:
    """Return ``(overdue, selected)``: mandatory Overdue obligations and those past the debounce window."""
    validate_debounce_window(debounce_window)
    unique, _ = aggregator.dedupe_obligations(o for o in obligations if o.mandatory)
    items = aggregator.classify_all(unique, completion_index, now, resolve=resolve)
    overdue = [item for item in items if item.state is ObligationState.OVERDUE]
    selected = [item for item in overdue if is_due_for_reminder(item.obligation, now, debounce_window)]
    return overdue, selected


def _load_directory(db: Session, org_id: Optional[str], user_ids: list[str], warnings: list[dict]):
    try:
        with db.begin_nested():
            return catalog_services.MemberDirectory.from_db(db, org_id=org_id, user_ids=user_ids)
    except SQLAlchemyError as exc:
        logger.warning("Member directory unavailable for reminder pass", extra={"error": str(exc)})
        warnings.append({"code": "member_directory_unavailable", "detail": str(exc)})
        return catalog_services.MemberDirectory({})


def _org_names(db: Session, org_ids: set[str], warnings: list[dict]) -> dict[str, str]:
    names: dict[str, str] = {}
    try:
        with db.begin_nested():
            for org_id in sorted(org_ids):
                org = catalog_services.get_organization(db, org_id)
                if org is not None and org.name:
                    names[org_id] = org.name
    except SQLAlchemyError as exc:
        warnings.append({"code": "organization_lookup_failed", "detail": str(exc)})
    return names


def _org_debounce_window(db: Session, org_id: str, cache: dict[str, timedelta], warnings: list[dict]) -> timedelta:
    if org_id not in cache:
        try:
            with db.begin_nested():
                cache[org_id] = policy_module.load_policy(db, org_id).debounce_window
        except SQLAlchemyError as exc:
            warnings.append({"code": "settings_unavailable", "org_id": org_id, "detail": str(exc)})
            cache[org_id] = DEFAULT_DEBOUNCE_WINDOW
    return cache[org_id]


def _error_entry(item: aggregator.ClassifiedObligation, kind: str, error: str) -> dict:
    return {
        "obligation_id": item.obligation.id,
        "org_id": item.obligation.org_id,
        "user_id": item.obligation.scope_user_id,
        "kind": kind,
        "error": error,
    }


def run_reminder_pass(
    db: Session,
    *,
    now: datetime,
    debounce_window: Optional[timedelta] = None,
    org_id: Optional[str] = None,
    notifier: Optional[notification_providers.Notifier] = None,
) -> ReminderPassSummary:
    """
    Run one reminder pass at ``now`` over one organization or all of them.

    When ``debounce_window`` is omitted each organization's configured window
    applies. Commits after every obligation so work already done survives a
    cancelled pass.
    """
    if debounce_window is not None:
        validate_debounce_window(debounce_window)
    now = ensure_utc(now)
    summary = ReminderPassSummary()

    obligations = store.list_obligations(db, org_id, mandatory_only=True)
    index = CompletionIndex(store.list_completions(db, org_id))

    catalog = None
    try:
        with db.begin_nested():
            catalog = catalog_services.CourseCatalog.from_db(db, [o.course_version_ref for o in obligations])
    except SQLAlchemyError as exc:
        logger.warning("Course catalog unavailable for reminder pass", extra={"error": str(exc)})
        summary.warnings.append({"code": "course_catalog_unavailable", "detail": str(exc)})

    # Debounce is applied per organization below.
    overdue, _ = select_for_reminder(
        obligations,
        index,
        now,
        timedelta(0),
        resolve=catalog.resolve if catalog is not None else None,
    )
    summary.total_overdue = len(overdue)

    directory = _load_directory(db, org_id, [item.obligation.scope_user_id for item in overdue], summary.warnings)
    org_names = _org_names(db, {item.obligation.org_id for item in overdue}, summary.warnings)
    windows: dict[str, timedelta] = {}

    for item in overdue:
        obligation = item.obligation
        window = debounce_window
        if window is None:
            window = _org_debounce_window(db, obligation.org_id, windows, summary.warnings)
        if not is_due_for_reminder(obligation, now, window):
            summary.skipped_debounced += 1
            continue

        member = directory.get(obligation.org_id, obligation.scope_user_id)
        if member is None or not member.email:
            summary.errors.append(_error_entry(item, "recipient", "recipient could not be resolved"))
            continue

        course_name = FALLBACK_COURSE_NAME
        if isinstance(item.resolution, Resolved):
            course_name = item.resolution.course.title
        data = {
            "obligation_id": obligation.id,
            "user_name": member.display_name,
            "course_name": course_name,
            "days_overdue": item.days_overdue,
            "due_at": obligation.due_at.isoformat() if obligation.due_at else None,
            "organization_name": org_names.get(obligation.org_id, FALLBACK_ORG_NAME),
            "course_link": f"{_app_base_url()}/workspace/{obligation.org_id}/learn/{obligation.course_version_ref}",
        }

        try:
            notification_service.send_notification(
                db,
                org_id=obligation.org_id,
                user_id=obligation.scope_user_id,
                recipient=member.email,
                template_key=REMINDER_TEMPLATE,
                data=data,
                correlation_id=correlation_id("obligation", obligation.id, "reminder"),
                notifier=notifier,
            )
        except NotifierError as exc:
            logger.warning(
                "Reminder delivery failed",
                extra={"obligation_id": obligation.id, "user_id": obligation.scope_user_id, "error": str(exc)},
            )
            summary.errors.append(_error_entry(item, "notifier", str(exc)))
            db.commit()
            continue
        except Exception as exc:
            db.rollback()
            logger.exception("Unexpected error while sending reminder", extra={"obligation_id": obligation.id})
            summary.errors.append(_error_entry(item, "unexpected", str(exc)))
            continue
        db.commit()

        try:
            stamped = store.stamp_reminder(db, obligation.id, obligation.reminder_sent_at, now)
        except StoreUnavailable as exc:
            db.rollback()
            logger.warning("Reminder sent but stamp failed", extra={"obligation_id": obligation.id, "error": str(exc)})
            summary.errors.append(_error_entry(item, "stamp", str(exc)))
            summary.reminders_sent += 1
            continue

        if stamped:
            audit_services.log_event(
                db,
                org_id=obligation.org_id,
                actor_user_id=None,
                entity_type="obligation",
                entity_id=obligation.id,
                action="reminder_sent",
                before={"reminder_sent_at": obligation.reminder_sent_at.isoformat() if obligation.reminder_sent_at else None},
                after={"reminder_sent_at": now.isoformat(), "days_overdue": item.days_overdue},
                metadata={"module": "reminders"},
            )
        else:
            logger.info("Reminder stamp was stale, another pass got there first", extra={"obligation_id": obligation.id})
            summary.stale_stamps += 1
        db.commit()
        summary.reminders_sent += 1

    logger.info(
        "Reminder pass finished",
        extra={
            "total_overdue": summary.total_overdue,
            "reminders_sent": summary.reminders_sent,
            "errors": len(summary.errors),
        },
    )
    return summary
