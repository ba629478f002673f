"""Default configuration parameters for the shift execution engine."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ExecutorParams:
    """Cycle executor tunables."""
    # Must exceed the longest expected single-step execution; too low risks
    # duplicate execution, too high leaves abandoned steps stuck.
    staleness_minutes: float = 30.0
    max_steps_per_invocation: int = 2               # Per-invocation step cap
    fast_completion_seconds: float = 120.0          # Step counts as "fast" below this
    retry_ceiling: int = 5                          # Attempts before a step is skipped
    blocked_recheck_minutes: float = 0.0            # 0 = re-check blocked steps every cycle
    result_summary_chars: int = 500                 # Truncation for recorded results


@dataclass(frozen=True)
class DecompositionParams:
    """Step sizing policy checked before a plan is accepted."""
    max_sub_actions_per_step: int = 5
    max_steps_per_task: int = 8
    max_step_minutes: int = 20


@dataclass(frozen=True)
class ApprovalParams:
    """Approval round behaviour."""
    timeout_minutes: float = 60.0
    on_timeout: str = "carryover_only"              # carryover_only | await
    auto_approve_carryover: bool = True


@dataclass(frozen=True)
class ShiftWindow:
    """A named daily window, ``HH:MM`` in UTC; end <= start wraps past midnight."""
    name: str
    start: str
    end: str


@dataclass(frozen=True)
class ShiftWindowParams:
    """The shifts a day is divided into."""
    windows: tuple = (
        ShiftWindow(name="morning", start="06:00", end="14:00"),
        ShiftWindow(name="afternoon", start="14:00", end="22:00"),
        ShiftWindow(name="night", start="22:00", end="06:00"),
    )

    def get(self, name: str) -> ShiftWindow:
        for window in self.windows:
            if window.name == name:
                return window
        raise KeyError(name)


@dataclass(frozen=True)
class StoreParams:
    """Durable store policies."""
    context_log_max_entries: int = 500              # Pruned at handoff; 0 disables
    handoff_lesson_limit: int = 20                  # Context Log delta size in handoff


@dataclass(frozen=True)
class NotificationParams:
    """Where alerts and handoff summaries are sent."""
    stdout: bool = False                            # Prints alongside command output
    file_path: Optional[str] = "alerts.jsonl"        # Relative to the workspace; None disables
    max_file_size_mb: Optional[int] = 10
    webhook_url: Optional[str] = None
    webhook_timeout_seconds: int = 10
    retry_attempts: int = 2
    min_level: str = "info"                         # info | warning | critical


@dataclass(frozen=True)
class WorkParams:
    """External work-performing command."""
    command: Optional[str] = None                   # Shell command; None means no performer configured
    timeout_margin_seconds: float = 30.0            # Added to the step estimate


@dataclass(frozen=True)
class LoggingParams:
    """Logging output."""
    level: str = "INFO"
    format_json: bool = False


@dataclass(frozen=True)
class DefaultConfig:
    """Complete default configuration."""
    executor: ExecutorParams
    decomposition: DecompositionParams
    approval: ApprovalParams
    shifts: ShiftWindowParams
    store: StoreParams
    notifications: NotificationParams
    work: WorkParams
    logging: LoggingParams


def get_default_config() -> DefaultConfig:
    """Get the default configuration instance."""
    return DefaultConfig(
        executor=ExecutorParams(),
        decomposition=DecompositionParams(),
        approval=ApprovalParams(),
        shifts=ShiftWindowParams(),
        store=StoreParams(),
        notifications=NotificationParams(),
        work=WorkParams(),
        logging=LoggingParams(),
    )
