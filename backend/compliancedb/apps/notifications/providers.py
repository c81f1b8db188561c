"""
Notifier providers.

A provider receives structured data only (user name, course name, days
overdue, deep link); rendering and transport belong to the provider.
Providers signal a failed delivery by raising.
"""

from __future__ import annotations

import logging
import os
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


class Notifier:
    def send(
        self,
        *,
        user_id: str,
        recipient: Optional[str],
        template_key: str,
        data: dict,
        correlation_id: Optional[str],
    ) -> None:
        raise NotImplementedError


class NoopNotifier(Notifier):
    def send(
        self,
        *,
        user_id: str,
        recipient: Optional[str],
        template_key: str,
        data: dict,
        correlation_id: Optional[str],
    ) -> None:
        return None


class LogNotifier(Notifier):
    """Writes each message to the application log; for local runs."""

    def send(
        self,
        *,
        user_id: str,
        recipient: Optional[str],
        template_key: str,
        data: dict,
        correlation_id: Optional[str],
    ) -> None:
        logger.info(
            "Notification %s for %s",
            template_key,
            user_id,
            extra={"recipient": recipient, "data": data, "correlation_id": correlation_id},
        )


def get_notifier() -> Tuple[Notifier, bool]:
    provider_name = (os.getenv("NOTIFIER_PROVIDER") or "").strip().lower()
    if not provider_name or provider_name in {"none", "noop", "disabled"}:
        return NoopNotifier(), False
    if provider_name == "log":
        return LogNotifier(), True
    raise ValueError(f"Unsupported notifier provider: {provider_name}")
