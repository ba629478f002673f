"""
Decomposition policy: turns task proposals into bounded, self-contained steps.

A step groups consecutive sub-actions while both the sub-action count and
the summed estimate stay within the policy ceilings. A proposal that needs
more steps than one task may hold is split into several tasks.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

import structlog

from ..config.defaults import DecompositionParams
from ..errors import DecompositionError
from .models import ActionSpec, Step, Task, TaskProposal

logger = structlog.get_logger(__name__)

# Phrases that make a step depend on conversation history instead of its own text
CONVERSATION_REFERENCES = (
    "as discussed",
    "as mentioned",
    "see above",
    "see previous",
    "like before",
    "same as last time",
    "previous message",
)


@dataclass(frozen=True)
class PolicyViolation:
    """A single breach of the sizing policy."""
    subject: str
    rule: str
    message: str


class DecompositionPolicy:
    """Explicit, validated step sizing policy."""

    def __init__(self, params: Optional[DecompositionParams] = None):
        self.params = params or DecompositionParams()
        self.logger = logger

    def decompose(self, proposal: TaskProposal) -> tuple[list[Task], list[Step]]:
        """
        Split a proposal into one or more tasks of bounded steps.

        Raises:
            DecompositionError: If the proposal cannot be made to fit the policy
        """
        violations = self._check_proposal(proposal)
        if violations:
            raise DecompositionError(
                f"Task {proposal.id} cannot be decomposed",
                violations=violations
            )

        chunks = self._chunk_actions(proposal.actions)
        limit = self.params.max_steps_per_task
        parts = [chunks[i:i + limit] for i in range(0, len(chunks), limit)]

        tasks: list[Task] = []
        steps: list[Step] = []
        for part_index, part in enumerate(parts, start=1):
            if len(parts) == 1:
                task_id, title = proposal.id, proposal.title
            else:
                task_id = f"{proposal.id}.{part_index}"
                title = f"{proposal.title} (part {part_index}/{len(parts)})"

            task_steps = [
                self._build_step(task_id, title, step_index, chunk)
                for step_index, chunk in enumerate(part, start=1)
            ]
            tasks.append(Task(
                id=task_id,
                title=title,
                priority=proposal.priority,
                step_ids=tuple(s.id for s in task_steps),
                split_from=proposal.id if len(parts) > 1 else None,
            ))
            steps.extend(task_steps)

        if len(parts) > 1:
            self.logger.info(
                "Split oversized task",
                task_id=proposal.id,
                parts=len(parts),
                steps=len(steps)
            )

        return tasks, steps

    def validate(self, tasks: Iterable[Task], steps: dict) -> list[PolicyViolation]:
        """Check decomposed tasks and steps against the policy."""
        violations = []
        seen_steps: set = set()

        for task in tasks:
            if not task.step_ids:
                violations.append(PolicyViolation(task.id, "non_empty", "Task has no steps"))
            if len(task.step_ids) > self.params.max_steps_per_task:
                violations.append(PolicyViolation(
                    task.id, "max_steps_per_task",
                    f"{len(task.step_ids)} steps exceeds {self.params.max_steps_per_task}"
                ))

            for step_id in task.step_ids:
                if step_id in seen_steps:
                    violations.append(PolicyViolation(step_id, "unique", "Step listed more than once"))
                    continue
                seen_steps.add(step_id)

                step = steps.get(step_id)
                if step is None:
                    violations.append(PolicyViolation(step_id, "exists", "Step referenced but not defined"))
                    continue
                violations.extend(self._check_step(task, step))

        return violations

    def check(self, tasks: Iterable[Task], steps: dict) -> None:
        """
        Reject a decomposition that violates the policy.

        Raises:
            DecompositionError: Listing every violation found
        """
        violations = self.validate(list(tasks), steps)
        if violations:
            raise DecompositionError(
                f"Decomposition violates policy ({len(violations)} violations)",
                violations=violations
            )

    def _check_proposal(self, proposal: TaskProposal) -> list[PolicyViolation]:
        violations = []

        if not proposal.actions:
            violations.append(PolicyViolation(proposal.id, "non_empty", "Proposal has no actions"))

        for action in proposal.actions:
            if action.minutes > self.params.max_step_minutes:
                violations.append(PolicyViolation(
                    proposal.id, "max_step_minutes",
                    f"Action {action.description!r} estimated at {action.minutes} min exceeds "
                    f"{self.params.max_step_minutes} min and cannot be split"
                ))
            if action.minutes < 0:
                violations.append(PolicyViolation(proposal.id, "estimate", "Negative estimate"))
            if not action.description.strip():
                violations.append(PolicyViolation(proposal.id, "self_contained", "Empty action description"))

        return violations

    def _check_step(self, task: Task, step: Step) -> list[PolicyViolation]:
        violations = []

        if step.task_id != task.id:
            violations.append(PolicyViolation(step.id, "parent", f"Step belongs to {step.task_id}"))
        if step.scope_bound > self.params.max_sub_actions_per_step:
            violations.append(PolicyViolation(
                step.id, "max_sub_actions_per_step",
                f"Scope of {step.scope_bound} exceeds {self.params.max_sub_actions_per_step}"
            ))
        if len(step.sub_actions) > step.scope_bound:
            violations.append(PolicyViolation(
                step.id, "scope_bound",
                f"{len(step.sub_actions)} sub-actions exceed the declared scope of {step.scope_bound}"
            ))
        if step.estimated_minutes > self.params.max_step_minutes:
            violations.append(PolicyViolation(
                step.id, "max_step_minutes",
                f"Estimate of {step.estimated_minutes} min exceeds {self.params.max_step_minutes}"
            ))

        description = step.description.strip()
        if not description:
            violations.append(PolicyViolation(step.id, "self_contained", "Empty description"))
        else:
            lowered = description.lower()
            for phrase in CONVERSATION_REFERENCES:
                if phrase in lowered:
                    violations.append(PolicyViolation(
                        step.id, "self_contained",
                        f"Description relies on conversation history ({phrase!r})"
                    ))

        return violations

    def _chunk_actions(self, actions: tuple) -> list[list[ActionSpec]]:
        chunks: list[list[ActionSpec]] = []
        current: list[ActionSpec] = []
        minutes = 0

        for action in actions:
            too_many = len(current) >= self.params.max_sub_actions_per_step
            too_long = minutes + action.minutes > self.params.max_step_minutes
            if current and (too_many or too_long):
                chunks.append(current)
                current, minutes = [], 0
            current.append(action)
            minutes += action.minutes

        if current:
            chunks.append(current)
        return chunks

    def _build_step(self, task_id: str, title: str, index: int,
                    actions: list[ActionSpec]) -> Step:
        descriptions = [a.description.strip() for a in actions]
        return Step(
            id=f"{task_id}.s{index}",
            task_id=task_id,
            description=f"{title}: {'; '.join(descriptions)}",
            sub_actions=tuple(descriptions),
            scope_bound=len(actions),
            estimated_minutes=sum(a.minutes for a in actions),
            external_effect=any(a.external for a in actions),
        )
