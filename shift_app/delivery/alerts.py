"""Escalation of fatal store errors through the notifier."""

from typing import Any

import structlog

from ..collaborators import NotificationLevel, Notifier
from ..errors import StoreCorruptionError

logger = structlog.get_logger(__name__)


def alert_store_corruption(notifier: Notifier, error: StoreCorruptionError, component: str) -> None:
    """
    Send one critical alert for ``error``.

    Nested components see the same exception; only the first one alerts.
    """
    if error.context.get("alerted"):
        return
    error.context["alerted"] = True

    details: dict[str, Any] = {
        "component": component,
        "store": error.store,
        "path": error.path,
        "error": str(error),
    }
    logger.critical("Store corruption detected, leaving durable state untouched", **details)
    notifier.notify(
        NotificationLevel.CRITICAL,
        f"Store corruption in {error.store or 'unknown store'}: manual intervention required",
        details
    )
