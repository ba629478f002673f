"""File-based notification mechanism (one JSON object per line)."""

import fcntl
import json
from datetime import datetime
from pathlib import Path
from typing import Any

from ..config.notifications import FileNotifierConfig
from .base import BaseNotifier, DeliveryResult, DeliveryStatus


class FileNotifier(BaseNotifier):
    """Appends notifications to a jsonl file."""

    def __init__(self, name: str, config: FileNotifierConfig, **kwargs):
        super().__init__(name, config, **kwargs)
        self.config: FileNotifierConfig = config

        self.output_path = Path(config.output_path)

        if config.create_dirs:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def deliver(self, notifications: list[dict[str, Any]]) -> list[DeliveryResult]:
        """Deliver notifications to file."""
        try:
            if self.config.max_file_size_mb:
                if self._check_file_size_limit():
                    if self.config.rotation_enabled:
                        self._rotate_file()
                    else:
                        error_msg = f"File size limit exceeded: {self.config.max_file_size_mb}MB"
                        self.logger.error(error_msg, delivery_name=self.name)
                        return [DeliveryResult(
                            status=DeliveryStatus.FAILED,
                            message=error_msg
                        ) for _ in notifications]

            self._write_jsonl(notifications)

        except OSError as e:
            # File system errors are retryable
            self.logger.warning(
                "Notification file error",
                delivery_name=self.name,
                output_path=str(self.output_path),
                error=str(e)
            )
            return [DeliveryResult(
                status=DeliveryStatus.FAILED,
                message=f"File system error: {str(e)}",
                error=e
            ) for _ in notifications]

        except (TypeError, ValueError) as e:
            self.logger.error(
                "Notification JSON error",
                delivery_name=self.name,
                error=str(e)
            )
            return [DeliveryResult(
                status=DeliveryStatus.FAILED,
                message=f"JSON encoding error: {str(e)}",
                error=e
            ) for _ in notifications]

        return [DeliveryResult(
            status=DeliveryStatus.SUCCESS,
            message=f"Written to {self.output_path}"
        ) for _ in notifications]

    def _write_jsonl(self, notifications: list[dict[str, Any]]) -> None:
        # Encode everything before opening so a bad payload writes nothing
        lines = [json.dumps(n, default=str) + "\n" for n in notifications]
        with open(self.output_path, "a", encoding="utf-8") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            f.writelines(lines)

    def _check_file_size_limit(self) -> bool:
        """Check if file size exceeds the configured limit."""
        if not self.output_path.exists():
            return False

        file_size_mb = self.output_path.stat().st_size / (1024 * 1024)
        return file_size_mb > self.config.max_file_size_mb

    def _rotate_file(self) -> None:
        """Rotate the output file when size limit is reached."""
        if not self.output_path.exists():
            return

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        rotated_name = f"{self.output_path.stem}_{timestamp}{self.output_path.suffix}"
        rotated_path = self.output_path.parent / rotated_name

        self.output_path.rename(rotated_path)

        self.logger.info(
            "File rotated due to size limit",
            delivery_name=self.name,
            original_path=str(self.output_path),
            rotated_path=str(rotated_path)
        )
