"""
Centralized logging configuration for the shift execution engine.

This module provides standardized logging configuration using structlog
for all components. Step and shift transitions go through the
``log_step_transition`` / ``log_shift_transition`` helpers so the audit
trail has one shape regardless of which component performed the change.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import FilteringBoundLogger


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None
) -> None:
    """
    Configure structlog for the entire application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_json: If True, output JSON format; otherwise human-readable
        include_timestamp: Include timestamp in log output
        include_caller: Include caller information (filename, line number)
        extra_processors: Additional structlog processors to include
    """
    log_level = getattr(logging, level.upper())

    # Logs go to stderr; stdout is reserved for command output
    logging.basicConfig(
        level=log_level,
        stream=sys.stderr,
        format="%(message)s",
        force=True
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))

    if include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO]
        ))

    if extra_processors:
        processors.extend(extra_processors)

    if format_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def get_state_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger for step and shift state transitions.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger carrying the state machine subsystem and audit flag; it
        resolves the active configuration on first use
    """
    return structlog.get_logger(
        name,
        subsystem="state_machine",
        audit_trail=True
    )


def get_planner_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger for planning and approval decisions.

    Approval and auto-approval decisions must be auditable, so this logger
    carries the audit flag as well.
    """
    return structlog.get_logger(
        name,
        subsystem="planner",
        audit_trail=True
    )


def log_step_transition(
    logger: FilteringBoundLogger,
    step_id: str,
    from_state: str,
    to_state: str,
    trigger: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a step status transition with standardized format.

    Args:
        logger: Structlog logger instance
        step_id: ID of the step transitioning
        from_state: Current status
        to_state: Target status
        trigger: What triggered the transition
        context: Additional context data
    """
    bound_logger = logger.bind(
        step_id=step_id,
        from_state=from_state,
        to_state=to_state,
        trigger=trigger
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.info("Step transition")


def log_shift_transition(
    logger: FilteringBoundLogger,
    shift_id: Optional[str],
    from_state: str,
    to_state: str,
    trigger: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a shift status transition with standardized format.

    Args:
        logger: Structlog logger instance
        shift_id: ID of the shift transitioning
        from_state: Current status
        to_state: Target status
        trigger: What triggered the transition
        context: Additional context data
    """
    bound_logger = logger.bind(
        shift_id=shift_id,
        from_state=from_state,
        to_state=to_state,
        trigger=trigger
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.info("Shift transition")
