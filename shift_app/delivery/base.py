"""Base classes for notification delivery mechanisms."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import structlog

from ..collaborators import NotificationLevel, Notifier
from ..utils.time import format_timestamp, utc_now


class DeliveryStatus(Enum):
    """Notification delivery status."""
    SUCCESS = "success"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


@dataclass
class DeliveryResult:
    """Result of notification delivery attempt."""
    status: DeliveryStatus
    message: Optional[str] = None
    attempt_count: int = 1
    delivery_time_ms: Optional[int] = None
    error: Optional[Exception] = None


class NotificationDeliveryError(Exception):
    """Base exception for notification delivery errors."""
    pass


class NotificationRetryableError(NotificationDeliveryError):
    """Retryable notification delivery error."""
    pass


class NotificationPermanentError(NotificationDeliveryError):
    """Permanent notification delivery error that should not be retried."""
    pass


def build_notification(
    level: NotificationLevel,
    message: str,
    context: Optional[dict[str, Any]] = None
) -> dict[str, Any]:
    """Shape of every notification payload."""
    return {
        "level": level.value,
        "message": message,
        "context": context or {},
        "sent_at": format_timestamp(utc_now()),
    }


class BaseNotifier(Notifier):
    """Base class for notification delivery mechanisms."""

    def __init__(self, name: str, config: Any,
                 min_level: NotificationLevel = NotificationLevel.INFO,
                 max_retries: int = 2, retry_delay: float = 1):
        self.name = name
        self.config = config
        self.min_level = min_level
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = structlog.get_logger(f"notify.delivery.{name}")

    @abstractmethod
    def deliver(self, notifications: list[dict[str, Any]]) -> list[DeliveryResult]:
        """
        Deliver notifications to the configured destination.

        Args:
            notifications: List of notification payloads

        Returns:
            List of delivery results for each notification
        """
        pass

    def notify(self, level: NotificationLevel, message: str,
               context: Optional[dict[str, Any]] = None) -> bool:
        """
        Deliver one notification if it meets ``min_level``.

        Delivery failures are logged and reported as False, never raised.
        """
        if level.rank < self.min_level.rank:
            return False

        results = self.deliver_with_retry(
            [build_notification(level, message, context)],
            max_retries=self.max_retries,
            retry_delay=self.retry_delay
        )
        return bool(results) and results[0].status == DeliveryStatus.SUCCESS

    def deliver_with_retry(
        self,
        notifications: list[dict[str, Any]],
        max_retries: int = 3,
        retry_delay: float = 1
    ) -> list[DeliveryResult]:
        """
        Deliver notifications with retry logic.

        Args:
            notifications: List of notification payloads
            max_retries: Maximum number of retry attempts
            retry_delay: Delay between retries in seconds

        Returns:
            List of delivery results for each notification
        """
        results = []

        for notification in notifications:
            attempt = 0
            last_error = None

            while attempt <= max_retries:
                try:
                    start_time = time.time()
                    delivery_results = self.deliver([notification])
                    delivery_time = int((time.time() - start_time) * 1000)

                    if delivery_results and delivery_results[0].status == DeliveryStatus.SUCCESS:
                        result = delivery_results[0]
                        result.delivery_time_ms = delivery_time
                        result.attempt_count = attempt + 1
                        results.append(result)
                        break
                    else:
                        # Delivery failed but didn't raise exception
                        last_error = delivery_results[0].error if delivery_results else None

                except NotificationPermanentError as e:
                    # Don't retry permanent errors
                    results.append(DeliveryResult(
                        status=DeliveryStatus.FAILED,
                        message=f"Permanent error: {str(e)}",
                        attempt_count=attempt + 1,
                        error=e
                    ))
                    break

                except NotificationRetryableError as e:
                    last_error = e

                except Exception as e:
                    # Unknown error - treat as retryable
                    last_error = e

                attempt += 1

                if attempt <= max_retries:
                    self.logger.warning(
                        f"Delivery attempt {attempt} failed, retrying in {retry_delay}s",
                        delivery_name=self.name,
                        error=str(last_error)
                    )
                    time.sleep(retry_delay)
                else:
                    # Max retries exceeded
                    self.logger.error(
                        "Notification dead-lettered",
                        delivery_name=self.name,
                        error=str(last_error)
                    )
                    results.append(DeliveryResult(
                        status=DeliveryStatus.DEAD_LETTER,
                        message=f"Max retries exceeded: {str(last_error)}",
                        attempt_count=attempt,
                        error=last_error
                    ))

        return results


class CompositeNotifier(Notifier):
    """Fans a notification out to every configured destination."""

    def __init__(self, notifiers: Optional[list[Notifier]] = None):
        self.notifiers = list(notifiers or [])

    def notify(self, level: NotificationLevel, message: str,
               context: Optional[dict[str, Any]] = None) -> bool:
        """True if at least one destination delivered the notification."""
        delivered = [n.notify(level, message, context) for n in self.notifiers]
        return any(delivered)
