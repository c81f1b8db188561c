"""
Error taxonomy for the compliance engine.

- ValidationError: malformed caller input; fatal to the single call.
- NotifierError: a reminder could not be delivered; retried on the next pass.
- StoreUnavailable: the obligation/completion store could not be read; fatal
  to the whole operation and surfaced to the caller.

Orphaned course references are not errors. They are reported as warnings
next to aggregation results.
"""

from __future__ import annotations

from typing import Optional


class ComplianceError(Exception):
    """Base class for engine errors."""


class ValidationError(ComplianceError, ValueError):
    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class NotifierError(ComplianceError):
    def __init__(self, message: str, *, user_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_id = user_id


class StoreUnavailable(ComplianceError):
    def __init__(self, operation: str, cause: Optional[BaseException] = None) -> None:
        detail = f"{operation} failed"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)
        self.operation = operation
