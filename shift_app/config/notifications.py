"""Configuration for notification destinations."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from .defaults import NotificationParams


class NotificationMethod(Enum):
    """Supported notification methods."""
    HTTP_POST = "http_post"
    FILE_OUTPUT = "file_output"
    STDOUT = "stdout"


@dataclass(frozen=True)
class HttpNotifierConfig:
    """Configuration for webhook notifications."""
    url: str
    method: str = "POST"
    headers: Optional[dict[str, str]] = None
    timeout_seconds: int = 10
    retry_attempts: int = 2
    retry_delay_seconds: int = 1


@dataclass(frozen=True)
class FileNotifierConfig:
    """Configuration for jsonl alert files."""
    output_path: str
    max_file_size_mb: Optional[int] = None
    rotation_enabled: bool = True
    create_dirs: bool = True


@dataclass(frozen=True)
class StdoutNotifierConfig:
    """Configuration for stdout notifications."""
    format: str = "pretty"  # json, pretty
    include_timestamp: bool = True


@dataclass(frozen=True)
class NotificationDestination:
    """Single notification destination."""
    name: str
    method: NotificationMethod
    config: Any  # HttpNotifierConfig | FileNotifierConfig | StdoutNotifierConfig
    enabled: bool = True


@dataclass(frozen=True)
class NotificationConfig:
    """Complete notification configuration."""
    destinations: list[NotificationDestination]
    min_level: str = "info"
    retry_attempts: int = 2
    retry_delay_seconds: int = 1


def build_notification_config(params: NotificationParams, workspace_root: Path) -> NotificationConfig:
    """
    Turn notification parameters into concrete destinations.

    A relative alert file path is resolved against the workspace.
    """
    destinations = []

    if params.stdout:
        destinations.append(NotificationDestination(
            name="stdout",
            method=NotificationMethod.STDOUT,
            config=StdoutNotifierConfig()
        ))

    if params.file_path:
        path = Path(params.file_path)
        if not path.is_absolute():
            path = Path(workspace_root) / path
        destinations.append(create_file_destination(
            "alerts_file", str(path), max_file_size_mb=params.max_file_size_mb
        ))

    if params.webhook_url:
        destinations.append(create_http_destination(
            "webhook",
            params.webhook_url,
            timeout_seconds=params.webhook_timeout_seconds,
            retry_attempts=params.retry_attempts
        ))

    return NotificationConfig(
        destinations=destinations,
        min_level=params.min_level,
        retry_attempts=params.retry_attempts,
    )


def create_http_destination(
    name: str,
    url: str,
    headers: Optional[dict[str, str]] = None,
    enabled: bool = True,
    **kwargs
) -> NotificationDestination:
    """Create webhook notification destination."""
    return NotificationDestination(
        name=name,
        method=NotificationMethod.HTTP_POST,
        config=HttpNotifierConfig(
            url=url,
            headers=headers or {},
            **kwargs
        ),
        enabled=enabled
    )


def create_file_destination(
    name: str,
    output_path: str,
    enabled: bool = True,
    **kwargs
) -> NotificationDestination:
    """Create jsonl file notification destination."""
    return NotificationDestination(
        name=name,
        method=NotificationMethod.FILE_OUTPUT,
        config=FileNotifierConfig(
            output_path=output_path,
            **kwargs
        ),
        enabled=enabled
    )
