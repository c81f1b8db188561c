from __future__ import annotations

import pytest

from compliancedb.apps.compliance.errors import NotifierError
from compliancedb.apps.notifications import models as notification_models
from compliancedb.apps.notifications import providers as notification_providers
from compliancedb.apps.notifications import service as notification_service
from compliancedb.apps.notifications.router import list_notification_logs


class _RecordingNotifier(notification_providers.Notifier):
    def __init__(self):
        self.sent = []

    def send(self, *, user_id, recipient, template_key, data, correlation_id):
        self.sent.append((user_id, template_key, data))


class _FailingNotifier(notification_providers.Notifier):
    def send(self, *, user_id, recipient, template_key, data, correlation_id):
        raise RuntimeError("SMTP timeout")


def _send(db, notifier=None):
    return notification_service.send_notification(
        db,
        org_id="org-1",
        user_id="user-1",
        recipient="learner@example.com",
        template_key="training_overdue",
        data={"course_name": "Fire Safety", "days_overdue": 2},
        correlation_id="obligation:ob-1:reminder",
        notifier=notifier,
    )


def test_send_marks_log_sent(db_session):
    notifier = _RecordingNotifier()
    log = _send(db_session, notifier)
    db_session.commit()

    assert log.status == notification_models.NotificationStatus.SENT
    assert log.sent_at is not None
    assert notifier.sent == [("user-1", "training_overdue", {"course_name": "Fire Safety", "days_overdue": 2})]


def test_send_no_provider_marks_skipped(db_session, monkeypatch):
    monkeypatch.delenv("NOTIFIER_PROVIDER", raising=False)

    with pytest.raises(NotifierError):
        _send(db_session)
    db_session.commit()

    log = db_session.query(notification_models.NotificationLog).one()
    assert log.status == notification_models.NotificationStatus.SKIPPED_NO_PROVIDER


def test_send_provider_failure_marks_failed(db_session):
    with pytest.raises(NotifierError) as excinfo:
        _send(db_session, _FailingNotifier())
    db_session.commit()

    assert excinfo.value.user_id == "user-1"
    log = db_session.query(notification_models.NotificationLog).one()
    assert log.status == notification_models.NotificationStatus.FAILED
    assert log.error == "SMTP timeout"


def test_get_notifier_reads_environment(monkeypatch):
    monkeypatch.setenv("NOTIFIER_PROVIDER", "log")
    notifier, configured = notification_providers.get_notifier()
    assert isinstance(notifier, notification_providers.LogNotifier)
    assert configured is True

    monkeypatch.setenv("NOTIFIER_PROVIDER", "none")
    _notifier, configured = notification_providers.get_notifier()
    assert configured is False

    monkeypatch.setenv("NOTIFIER_PROVIDER", "carrier-pigeon")
    with pytest.raises(ValueError):
        notification_providers.get_notifier()


def test_list_logs_filters_by_status(db_session):
    _send(db_session, _RecordingNotifier())
    with pytest.raises(NotifierError):
        _send(db_session, _FailingNotifier())
    db_session.commit()

    failed = list_notification_logs(
        org_id="org-1",
        status=notification_models.NotificationStatus.FAILED,
        template_key=None,
        user_id=None,
        start=None,
        end=None,
        db=db_session,
    )
    assert [log.status for log in failed] == [notification_models.NotificationStatus.FAILED]

    other_org = list_notification_logs(
        org_id="org-2", status=None, template_key=None, user_id=None, start=None, end=None, db=db_session
    )
    assert other_org == []
