"""
Error classification for the shift execution engine.

Step failures describe why a single step's external action did not succeed
and are always converted into recorded step transitions. System failures
describe conditions the engine must not paper over (corrupt stores, illegal
transitions, invalid plans or configuration) and are propagated.
"""

from .step_failures import (
    StepFailure,
    TransientStepError,
    DependencyBlockError,
    UserInputRequiredError,
)
from .system_failures import (
    SystemFailureError,
    StoreCorruptionError,
    PersistenceError,
    StateTransitionError,
    DecompositionError,
    ConfigurationError,
    ApprovalError,
)

__all__ = [
    # Step failures
    "StepFailure",
    "TransientStepError",
    "DependencyBlockError",
    "UserInputRequiredError",
    # System failures
    "SystemFailureError",
    "StoreCorruptionError",
    "PersistenceError",
    "StateTransitionError",
    "DecompositionError",
    "ConfigurationError",
    "ApprovalError",
]
