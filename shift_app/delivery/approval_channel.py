"""File-based approval channel: request.json out, response.yaml in."""

from pathlib import Path
from typing import Optional

import structlog
import yaml

from ..collaborators import ApprovalChannel, ApprovalRequest, ApprovalResponse
from ..errors import ApprovalError
from ..persistence.atomic import write_json

logger = structlog.get_logger(__name__)

REQUEST_FILE = "request.json"
RESPONSE_FILE = "response.yaml"


class FileApprovalChannel(ApprovalChannel):
    """
    Approval round through two files in one directory.

    The planner writes ``request.json``; an approver (human or tool) writes
    ``response.yaml`` naming the shift it answers, for example::

        shift_id: 2024-05-01-morning
        decision: approve_subset
        approver: alice
        task_ids: [deploy-docs]

    Responses for any other shift are ignored.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    @property
    def request_path(self) -> Path:
        return self.directory / REQUEST_FILE

    @property
    def response_path(self) -> Path:
        return self.directory / RESPONSE_FILE

    def request(self, request: ApprovalRequest) -> None:
        write_json(self.request_path, request.to_dict())
        logger.info("Approval requested", shift_id=request.shift_id,
                    tasks=len(request.tasks), path=str(self.request_path))

    def poll(self, shift_id: str) -> Optional[ApprovalResponse]:
        """
        Read the response for ``shift_id``.

        Raises:
            ApprovalError: If the response file is malformed
        """
        try:
            with open(self.response_path, encoding="utf-8") as f:
                document = yaml.safe_load(f)
        except FileNotFoundError:
            return None
        except yaml.YAMLError as e:
            raise ApprovalError(f"Cannot parse {self.response_path}: {e}") from e

        if not document:
            return None
        if not isinstance(document, dict):
            raise ApprovalError(f"{self.response_path} must contain a mapping")

        if str(document.get("shift_id")) != shift_id:
            logger.debug("Ignoring approval response for another shift",
                         expected=shift_id, found=document.get("shift_id"))
            return None

        try:
            response = ApprovalResponse.from_dict(document)
        except ValueError as e:
            raise ApprovalError(str(e), decision=document.get("decision")) from e

        logger.info("Approval response received", shift_id=shift_id,
                    decision=response.decision.value, approver=response.approver)
        return response
