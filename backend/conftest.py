from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.pop("DATABASE_READ_URL", None)
os.environ.pop("CRON_SECRET", None)
os.environ.pop("NOTIFIER_PROVIDER", None)

from compliancedb.database import Base  # noqa: E402
from compliancedb.apps.audit import models as audit_models  # noqa: E402
from compliancedb.apps.catalog import models as catalog_models  # noqa: E402
from compliancedb.apps.compliance import models as compliance_models  # noqa: E402
from compliancedb.apps.notifications import models as notification_models  # noqa: E402
from compliancedb.apps.obligations import models as obligation_models  # noqa: E402

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(
        bind=engine,
        tables=[
            obligation_models.Obligation.__table__,
            obligation_models.CompletionRecord.__table__,
            catalog_models.Organization.__table__,
            catalog_models.OrgMember.__table__,
            catalog_models.CourseVersion.__table__,
            catalog_models.PolicyAcknowledgement.__table__,
            compliance_models.ComplianceSettings.__table__,
            notification_models.NotificationLog.__table__,
            audit_models.AuditEvent.__table__,
        ],
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def now() -> datetime:
    return NOW
