"""Webhook (HTTP POST) notification mechanism."""

import json
import socket
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from .. import __version__
from ..config.notifications import HttpNotifierConfig
from .base import (
    BaseNotifier,
    DeliveryResult,
    DeliveryStatus,
    NotificationPermanentError,
    NotificationRetryableError,
)


class HttpNotifier(BaseNotifier):
    """Webhook notification implementation."""

    def __init__(self, name: str, config: HttpNotifierConfig, **kwargs):
        super().__init__(name, config, **kwargs)
        self.config: HttpNotifierConfig = config

        parsed = urlparse(config.url)
        if not parsed.scheme or not parsed.netloc:
            raise NotificationPermanentError(f"Invalid URL: {config.url}")

    def deliver(self, notifications: list[dict[str, Any]]) -> list[DeliveryResult]:
        """
        Deliver notifications via HTTP POST.

        Retryable and permanent errors propagate to ``deliver_with_retry``.
        """
        return [self._deliver_single(notification) for notification in notifications]

    def _deliver_single(self, notification: dict[str, Any]) -> DeliveryResult:
        """Deliver a single notification via HTTP POST."""
        try:
            data = json.dumps(notification, default=str).encode('utf-8')
        except (TypeError, ValueError) as e:
            raise NotificationPermanentError(f"JSON encoding error: {str(e)}") from e

        headers = {
            'Content-Type': 'application/json',
            'Content-Length': str(len(data)),
            'User-Agent': f'shift-app/{__version__}'
        }
        if self.config.headers:
            headers.update(self.config.headers)

        req = Request(
            self.config.url,
            data=data,
            headers=headers,
            method=self.config.method
        )

        try:
            with urlopen(req, timeout=self.config.timeout_seconds) as response:
                response_code = response.getcode()
                response_data = response.read().decode('utf-8', errors='replace')

        except HTTPError as e:
            error_msg = f"HTTP {e.code}: {e.reason}"
            self.logger.warning(
                "Notification HTTP error",
                delivery_name=self.name,
                error_code=e.code,
                error_reason=str(e.reason)
            )
            if e.code >= 500:
                raise NotificationRetryableError(error_msg) from e
            raise NotificationPermanentError(error_msg) from e

        except (OSError, URLError, socket.timeout) as e:
            # Network errors are retryable
            self.logger.warning(
                "Notification network error",
                delivery_name=self.name,
                error=str(e)
            )
            raise NotificationRetryableError(f"Network error: {str(e)}") from e

        if 200 <= response_code < 300:
            self.logger.info(
                "Notification delivered",
                delivery_name=self.name,
                level=notification.get("level"),
                response_code=response_code
            )
            return DeliveryResult(
                status=DeliveryStatus.SUCCESS,
                message=f"HTTP {response_code}: {response_data[:100]}"
            )

        error_msg = f"HTTP {response_code}: {response_data[:200]}"
        if response_code >= 500:
            raise NotificationRetryableError(error_msg)
        raise NotificationPermanentError(error_msg)
