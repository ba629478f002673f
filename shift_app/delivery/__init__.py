"""
Collaborator implementations.

Notification destinations (stdout, jsonl file, webhook), the file-based
approval channel, the YAML signal source and the command work performer.
"""

from ..collaborators import NotificationLevel
from ..config.notifications import NotificationConfig, NotificationMethod
from .approval_channel import FileApprovalChannel
from .base import BaseNotifier, CompositeNotifier
from .command_performer import CommandWorkPerformer
from .file_delivery import FileNotifier
from .http_delivery import HttpNotifier
from .signal_source import YamlSignalSource
from .stdout_delivery import StdoutNotifier

_NOTIFIER_TYPES = {
    NotificationMethod.STDOUT: StdoutNotifier,
    NotificationMethod.FILE_OUTPUT: FileNotifier,
    NotificationMethod.HTTP_POST: HttpNotifier,
}


def create_notifier(config: NotificationConfig) -> CompositeNotifier:
    """Build one notifier fanning out to every enabled destination."""
    min_level = NotificationLevel(config.min_level)
    notifiers = [
        _NOTIFIER_TYPES[destination.method](
            destination.name,
            destination.config,
            min_level=min_level,
            max_retries=config.retry_attempts,
            retry_delay=config.retry_delay_seconds,
        )
        for destination in config.destinations
        if destination.enabled
    ]
    return CompositeNotifier(notifiers)


__all__ = [
    "BaseNotifier",
    "CompositeNotifier",
    "StdoutNotifier",
    "FileNotifier",
    "HttpNotifier",
    "FileApprovalChannel",
    "YamlSignalSource",
    "CommandWorkPerformer",
    "create_notifier",
]
