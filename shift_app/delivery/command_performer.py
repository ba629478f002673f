"""Work performer that runs a configured shell command per step."""

import json
import subprocess
from pathlib import Path
from typing import Optional

import structlog

from ..collaborators import StepAssignment, WorkPerformer, WorkResult
from ..errors import DependencyBlockError, TransientStepError, UserInputRequiredError

logger = structlog.get_logger(__name__)

EXIT_TRANSIENT = 75          # EX_TEMPFAIL
EXIT_DEPENDENCY = 76
EXIT_USER_INPUT = 77
MAX_ERROR_CHARS = 500


def _malformed(problem: str, value) -> WorkResult:
    logger.warning("Step command returned a malformed result", problem=problem, value=repr(value))
    return WorkResult.failed(f"Malformed step result: {problem}, got {value!r}"[:MAX_ERROR_CHARS])


class CommandWorkPerformer(WorkPerformer):
    """
    Runs ``command`` with the step assignment as JSON on stdin.

    Exit status 0 is success; stdout is the result text, or a JSON object
    with ``summary``, ``actions_taken`` and ``lessons``. A JSON result with a
    non-integer ``actions_taken`` or ``lessons`` that are not a list of
    strings is reported as a transient failure. Exit status 75 is a
    transient failure, 76 a dependency block, 77 needs user input; any other
    status is treated as transient. The command is given the step's estimate
    plus a margin before it is killed.
    """

    def __init__(self, command: str, timeout_margin_seconds: float = 30.0,
                 cwd: Optional[Path] = None):
        self.command = command
        self.timeout_margin_seconds = timeout_margin_seconds
        self.cwd = cwd

    def timeout_for(self, assignment: StepAssignment) -> float:
        return assignment.estimated_minutes * 60 + self.timeout_margin_seconds

    def perform(self, assignment: StepAssignment) -> WorkResult:
        timeout = self.timeout_for(assignment)
        logger.info("Running step command", step_id=assignment.step_id, timeout_seconds=timeout)

        try:
            completed = subprocess.run(
                self.command,
                shell=True,
                input=json.dumps(assignment.to_dict()),
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=self.cwd,
            )
        except subprocess.TimeoutExpired as e:
            raise TransientStepError(
                f"Step command timed out after {timeout:.0f}s",
                context={"step_id": assignment.step_id}
            ) from e
        except OSError as e:
            raise TransientStepError(f"Cannot start step command: {e}") from e

        if completed.returncode == 0:
            return self._parse_success(completed.stdout)

        error_text = (completed.stderr or completed.stdout or "").strip()[:MAX_ERROR_CHARS]
        error_text = error_text or f"exit status {completed.returncode}"
        context = {"step_id": assignment.step_id, "returncode": completed.returncode}

        if completed.returncode == EXIT_DEPENDENCY:
            raise DependencyBlockError(error_text, dependency=error_text, context=context)
        if completed.returncode == EXIT_USER_INPUT:
            raise UserInputRequiredError(error_text, question=error_text, context=context)
        raise TransientStepError(error_text, context=context)

    @staticmethod
    def _parse_success(stdout: str) -> WorkResult:
        text = (stdout or "").strip()
        if text.startswith("{"):
            try:
                payload = json.loads(text)
            except ValueError:
                return WorkResult.ok(text)
            actions_taken = payload.get("actions_taken")
            if actions_taken is not None and (not isinstance(actions_taken, int) or isinstance(actions_taken, bool)):
                return _malformed("actions_taken must be an integer", actions_taken)
            lessons = payload.get("lessons") or []
            if not isinstance(lessons, list) or not all(isinstance(x, str) for x in lessons):
                return _malformed("lessons must be a list of strings", lessons)
            return WorkResult.ok(
                str(payload.get("summary", "")),
                actions_taken=actions_taken,
                lessons=tuple(lessons),
            )
        return WorkResult.ok(text or "done")
