"""Standard output notification mechanism."""

import json
import sys
from typing import Any

from ..config.notifications import StdoutNotifierConfig
from .base import BaseNotifier, DeliveryResult, DeliveryStatus


class StdoutNotifier(BaseNotifier):
    """Standard output notification implementation."""

    def __init__(self, name: str, config: StdoutNotifierConfig, **kwargs):
        super().__init__(name, config, **kwargs)
        self.config: StdoutNotifierConfig = config

    def deliver(self, notifications: list[dict[str, Any]]) -> list[DeliveryResult]:
        """Deliver notifications to stdout."""
        results = []

        for notification in notifications:
            try:
                output = self._format_notification(notification)
                print(output, file=sys.stdout, flush=True)

                self.logger.debug(
                    "Notification printed to stdout",
                    delivery_name=self.name,
                    level=notification.get("level")
                )

                results.append(DeliveryResult(
                    status=DeliveryStatus.SUCCESS,
                    message="Printed to stdout"
                ))

            except (OSError, TypeError, ValueError) as e:
                self.logger.error(
                    "Failed to print notification to stdout",
                    delivery_name=self.name,
                    error=str(e)
                )
                results.append(DeliveryResult(
                    status=DeliveryStatus.FAILED,
                    message=f"Stdout error: {str(e)}",
                    error=e
                ))

        return results

    def _format_notification(self, notification: dict[str, Any]) -> str:
        """Format notification for stdout output."""
        if self.config.format == "pretty":
            output = f"{notification['level'].upper()}: {notification['message']}"
            if self.config.include_timestamp:
                output = f"[{notification['sent_at']}] {output}"
            return output
        else:
            if self.config.include_timestamp:
                return json.dumps(notification, default=str)
            payload = {k: v for k, v in notification.items() if k != "sent_at"}
            return json.dumps(payload, default=str)
