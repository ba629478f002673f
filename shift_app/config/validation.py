"""Configuration validation utilities."""

from dataclasses import dataclass
from typing import Any

from ..utils.time import parse_clock
from .defaults import WorkParams

TIMEOUT_POLICIES = ("carryover_only", "await")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
NOTIFICATION_LEVELS = ("info", "warning", "critical")


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def validate_executor_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate cycle executor parameters."""
        errors = []

        for name in ("staleness_minutes", "fast_completion_seconds"):
            if name in params:
                value = params[name]
                if not _is_number(value) or value <= 0:
                    errors.append(ValidationError(
                        field=name,
                        message="Must be a positive number",
                        value=value
                    ))

        for name in ("max_steps_per_invocation", "retry_ceiling", "result_summary_chars"):
            if name in params and not _is_positive_int(params[name]):
                errors.append(ValidationError(
                    field=name,
                    message="Must be a positive integer",
                    value=params[name]
                ))

        if "blocked_recheck_minutes" in params:
            value = params["blocked_recheck_minutes"]
            if not _is_number(value) or value < 0:
                errors.append(ValidationError(
                    field="blocked_recheck_minutes",
                    message="Must be a non-negative number",
                    value=value
                ))

        # A fast step must not be able to outlive its own claim
        staleness = params.get("staleness_minutes")
        fast = params.get("fast_completion_seconds")
        if _is_number(staleness) and _is_number(fast) and staleness * 60 <= fast:
            errors.append(ValidationError(
                field="staleness_minutes",
                message="Must exceed fast_completion_seconds",
                value=staleness
            ))

        return errors

    @staticmethod
    def validate_decomposition_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate step sizing policy parameters."""
        errors = []

        for name in ("max_sub_actions_per_step", "max_steps_per_task", "max_step_minutes"):
            if name in params and not _is_positive_int(params[name]):
                errors.append(ValidationError(
                    field=name,
                    message="Must be a positive integer",
                    value=params[name]
                ))

        return errors

    @staticmethod
    def validate_approval_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate approval parameters."""
        errors = []

        if "timeout_minutes" in params:
            value = params["timeout_minutes"]
            if not _is_number(value) or value <= 0:
                errors.append(ValidationError(
                    field="timeout_minutes",
                    message="Must be a positive number",
                    value=value
                ))

        if "on_timeout" in params and params["on_timeout"] not in TIMEOUT_POLICIES:
            errors.append(ValidationError(
                field="on_timeout",
                message=f"Must be one of {', '.join(TIMEOUT_POLICIES)}",
                value=params["on_timeout"]
            ))

        if "auto_approve_carryover" in params and not isinstance(params["auto_approve_carryover"], bool):
            errors.append(ValidationError(
                field="auto_approve_carryover",
                message="Must be a boolean",
                value=params["auto_approve_carryover"]
            ))

        return errors

    @staticmethod
    def validate_shift_windows(windows: list[dict[str, Any]]) -> list[ValidationError]:
        """Validate shift window definitions."""
        errors = []
        seen = set()

        if not windows:
            return [ValidationError(field="windows", message="At least one shift is required", value=windows)]

        for window in windows:
            name = window.get("name")
            if not isinstance(name, str) or not name:
                errors.append(ValidationError(field="name", message="Must be a non-empty string", value=name))
            elif name in seen:
                errors.append(ValidationError(field="name", message="Duplicate shift name", value=name))
            else:
                seen.add(name)

            for bound in ("start", "end"):
                try:
                    parse_clock(window.get(bound))
                except ValueError:
                    errors.append(ValidationError(
                        field=bound,
                        message="Must be an HH:MM clock time",
                        value=window.get(bound)
                    ))

            if window.get("start") == window.get("end"):
                errors.append(ValidationError(
                    field="end",
                    message="Window must not be empty",
                    value=window.get("end")
                ))

        return errors

    @staticmethod
    def validate_notification_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate notification destinations."""
        errors = []

        min_level = params.get("min_level")
        if min_level is not None and min_level not in NOTIFICATION_LEVELS:
            errors.append(ValidationError(
                field="min_level",
                message=f"Must be one of {', '.join(NOTIFICATION_LEVELS)}",
                value=min_level
            ))

        url = params.get("webhook_url")
        if url is not None and not (isinstance(url, str) and url.startswith(("http://", "https://"))):
            errors.append(ValidationError(
                field="webhook_url",
                message="Must be an http(s) URL",
                value=url
            ))

        for name in ("webhook_timeout_seconds", "retry_attempts"):
            value = params.get(name)
            if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value < 0):
                errors.append(ValidationError(
                    field=name,
                    message="Must be a non-negative integer",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ValidationError]:
        """Validate complete configuration."""
        errors = []

        executor = config.get("executor", {})
        errors.extend(ConfigValidator.validate_executor_params(executor))

        decomposition = config.get("decomposition", {})
        errors.extend(ConfigValidator.validate_decomposition_params(decomposition))

        # Staleness must also exceed the longest a single step may run
        staleness = executor.get("staleness_minutes")
        max_step = decomposition.get("max_step_minutes")
        margin = (config.get("work") or {}).get("timeout_margin_seconds", WorkParams.timeout_margin_seconds)
        if (_is_number(staleness) and _is_number(max_step) and _is_number(margin)
                and staleness * 60 <= max_step * 60 + margin):
            errors.append(ValidationError(
                field="staleness_minutes",
                message="Must exceed max_step_minutes plus timeout_margin_seconds",
                value=staleness
            ))

        if "approval" in config:
            errors.extend(ConfigValidator.validate_approval_params(config["approval"]))

        if "shifts" in config:
            errors.extend(ConfigValidator.validate_shift_windows(config["shifts"].get("windows", [])))

        if "store" in config:
            for name in ("context_log_max_entries", "handoff_lesson_limit"):
                value = config["store"].get(name)
                if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value < 0):
                    errors.append(ValidationError(
                        field=name,
                        message="Must be a non-negative integer",
                        value=value
                    ))

        if "notifications" in config:
            errors.extend(ConfigValidator.validate_notification_params(config["notifications"]))

        if "work" in config:
            margin = config["work"].get("timeout_margin_seconds")
            if margin is not None and (not _is_number(margin) or margin < 0):
                errors.append(ValidationError(
                    field="timeout_margin_seconds",
                    message="Must be a non-negative number",
                    value=margin
                ))

        if "logging" in config:
            level = config["logging"].get("level")
            if level is not None and str(level).upper() not in LOG_LEVELS:
                errors.append(ValidationError(field="level", message="Unknown log level", value=level))

        return errors
