"""Priority and urgency signals read from a YAML file."""

from datetime import date
from pathlib import Path

import structlog
import yaml

from ..collaborators import SignalSource
from ..errors import ConfigurationError
from ..plan.models import TaskProposal

logger = structlog.get_logger(__name__)


class YamlSignalSource(SignalSource):
    """
    Task proposals from ``signals.yaml``.

    Format::

        tasks:
          - id: rotate-logs
            title: Rotate application logs
            priority: P2
            shifts: [night]          # optional; default is every shift
            dates: [2024-05-01]      # optional; default is every day
            actions:
              - Archive yesterday's logs
              - description: Delete archives older than 30 days
                minutes: 10
                external: true

    Malformed entries are skipped with a warning; an unparsable file is a
    configuration error.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def collect(self, shift_name: str, shift_date: date) -> list[TaskProposal]:
        try:
            with open(self.path, encoding="utf-8") as f:
                document = yaml.safe_load(f)
        except FileNotFoundError:
            return []
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Cannot parse {self.path}: {e}") from e

        if not document:
            return []
        if not isinstance(document, dict) or not isinstance(document.get("tasks", []), list):
            raise ConfigurationError(f"{self.path} must contain a 'tasks' list")

        proposals = []
        seen = set()
        for entry in document.get("tasks") or []:
            if not isinstance(entry, dict):
                logger.warning("Skipping malformed signal", entry=entry)
                continue
            if not self._applies(entry, shift_name, shift_date):
                continue
            try:
                proposal = TaskProposal.from_dict(entry, source="signal")
            except ValueError as e:
                logger.warning("Skipping malformed signal", entry=entry, error=str(e))
                continue
            if proposal.id in seen:
                logger.warning("Skipping duplicate signal", task_id=proposal.id)
                continue
            seen.add(proposal.id)
            proposals.append(proposal)

        logger.info("Signals collected", shift=shift_name, date=shift_date.isoformat(), count=len(proposals))
        return proposals

    @staticmethod
    def _applies(entry: dict, shift_name: str, shift_date: date) -> bool:
        shifts = entry.get("shifts")
        if shifts and shift_name not in shifts:
            return False
        dates = entry.get("dates")
        if dates and shift_date.isoformat() not in [str(d) for d in dates]:
            return False
        return True
