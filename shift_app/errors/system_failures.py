"""
System failure classifications for conditions that require intervention.

These are never silently repaired: callers log, notify where a notifier is
available, and propagate.
"""

from typing import Optional, Dict, Any


class SystemFailureError(Exception):
    """Base class for unrecoverable engine failures."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = False


class StoreCorruptionError(SystemFailureError):
    """A durable store exists but cannot be parsed or fails its schema."""

    def __init__(self, message: str, store: Optional[str] = None,
                 path: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.store = store
        self.path = path


class PersistenceError(SystemFailureError):
    """Writing or archiving a durable store failed."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 target: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
        self.target = target


class StateTransitionError(SystemFailureError):
    """A step or shift transition outside the allowed transition table."""

    def __init__(self, message: str, current_state: Optional[str] = None,
                 attempted_transition: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.current_state = current_state
        self.attempted_transition = attempted_transition


class DecompositionError(SystemFailureError):
    """A task decomposition violates the sizing policy."""

    def __init__(self, message: str, violations: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.violations = violations or []


class ConfigurationError(SystemFailureError):
    """Configuration failed validation."""

    def __init__(self, message: str, errors: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or []


class ApprovalError(SystemFailureError):
    """An approval response is malformed or refers to unknown tasks."""

    def __init__(self, message: str, decision: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.decision = decision
