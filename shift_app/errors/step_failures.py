"""
Step failure classifications raised by work performers.

The executor maps each class onto a blocked step with a matching block kind.
Unclassified exceptions are treated as transient.
"""

from typing import Optional, Dict, Any


class StepFailure(Exception):
    """Base class for failures of a single step's external action."""

    kind = "transient"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = True


class TransientStepError(StepFailure):
    """Retryable failure; the step is re-checked on a later cycle."""

    kind = "transient"


class DependencyBlockError(StepFailure):
    """The step waits on something outside its scope (a service, a file, another step)."""

    kind = "dependency"

    def __init__(self, message: str, dependency: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.dependency = dependency


class UserInputRequiredError(StepFailure):
    """Only a human can unblock the step; never auto-retried."""

    kind = "user_input"

    def __init__(self, message: str, question: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.question = question
        self.recoverable = False
