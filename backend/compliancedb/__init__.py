# backend/compliancedb/__init__.py
"""
Import ORM models from each app so that Base.metadata.create_all() sees
every table.

The model classes live in compliancedb/apps/*/models.py.
"""

from .apps.obligations import models as obligation_models    # obligations + completion ledger
from .apps.catalog import models as catalog_models            # orgs, members, course versions
from .apps.compliance import models as compliance_models      # per-org thresholds
from .apps.notifications import models as notification_models
from .apps.audit import models as audit_models

__all__ = [
    "obligation_models",
    "catalog_models",
    "compliance_models",
    "notification_models",
    "audit_models",
]
