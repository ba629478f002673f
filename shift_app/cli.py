"""
``shift-app`` command line, the entry point for the periodic trigger.

Every command builds a fresh engine from the workspace and configuration
directories, does one thing, prints a JSON result on stdout and exits.
Logs go to stderr. Exit status is 0 on success, 1 for usage, configuration
and validation errors, and 2 for store corruption.
"""

import json
from pathlib import Path
from typing import Any, Optional

import click

from . import __version__
from .engine import ShiftEngine
from .errors import StoreCorruptionError, SystemFailureError
from .logging.config import configure_logging
from .utils.time import format_timestamp

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CORRUPTION = 2


class _ShiftGroup(click.Group):
    """Group that maps engine failures onto the documented exit codes."""

    def main(self, args=None, standalone_mode=True, **kwargs):  # type: ignore[override]
        try:
            rv = super().main(args=args, standalone_mode=False, **kwargs)
            code = rv or EXIT_OK
        except StoreCorruptionError as e:
            click.echo(json.dumps({"ok": False, "error": str(e), "store": e.store, "path": e.path}), err=True)
            code = EXIT_CORRUPTION
        except SystemFailureError as e:
            click.echo(json.dumps({"ok": False, "error": str(e)}), err=True)
            code = EXIT_ERROR
        except click.ClickException as e:
            click.echo(json.dumps({"ok": False, "error": e.format_message()}), err=True)
            code = EXIT_ERROR
        except click.Abort:
            click.echo("Aborted!", err=True)
            code = EXIT_ERROR

        if standalone_mode:
            raise SystemExit(code)
        return code


def _emit(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _engine(ctx: click.Context, shift_name: Optional[str] = None) -> ShiftEngine:
    options = ctx.obj
    engine = ShiftEngine.create(options["workspace"], options["config_dir"], shift_name)
    configure_logging(
        level=options["log_level"] or engine.config.logging.level,
        format_json=options["json_logs"] or engine.config.logging.format_json,
    )
    return engine


def _handoff_summary(handoff) -> Optional[dict[str, Any]]:
    if handoff is None:
        return None
    return {
        "shift_id": handoff.shift_id,
        "reason": handoff.reason,
        "final_status": handoff.final_status,
        "completed": len(handoff.completed),
        "blocked": len(handoff.blocked),
        "needs_review": [item.step_id for item in handoff.needs_review],
        "carried_over": list(handoff.carried_over),
    }


@click.group(cls=_ShiftGroup)
@click.version_option(version=__version__)
@click.option("--workspace", "-w", type=click.Path(file_okay=False, path_type=Path),
              default=Path("shifts"), show_default=True, envvar="SHIFT_APP_WORKSPACE",
              help="Directory holding the durable stores.")
@click.option("--config-dir", "-c", type=click.Path(file_okay=False, path_type=Path),
              default=None, envvar="SHIFT_APP_CONFIG_DIR",
              help="Directory containing shifts.yaml (default: the workspace).")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                                               case_sensitive=False),
              default=None, help="Override the configured log level.")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON.")
@click.pass_context
def cli(ctx: click.Context, workspace: Path, config_dir: Optional[Path],
        log_level: Optional[str], json_logs: bool):
    """Plan a shift of work once, then execute it a step at a time.

    \b
    Typical schedule:
      shift-app init                 Create the workspace
      shift-app plan                 At each shift boundary (and while awaiting approval)
      shift-app cycle                Every few minutes
    """
    ctx.obj = {
        "workspace": workspace,
        "config_dir": config_dir or workspace,
        "log_level": log_level,
        "json_logs": json_logs,
    }
    # Reconfigured once the shift configuration is loaded
    configure_logging(level=log_level or "INFO", format_json=json_logs)


@cli.command()
@click.pass_context
def init(ctx: click.Context):
    """Create the workspace layout; existing files are kept."""
    engine = _engine(ctx)
    created = engine.init_workspace()
    _emit({"workspace": str(engine.workspace.root), "created": [str(p) for p in created]})


@cli.command()
@click.option("--shift", "shift_name", default=None,
              help="Shift to plan (default: the current or next shift).")
@click.pass_context
def plan(ctx: click.Context, shift_name: Optional[str]):
    """Draft, approve and activate a shift plan."""
    if shift_name is None:
        shift_name = _engine(ctx).current_shift_name()
    result = _engine(ctx, shift_name).plan(shift_name)
    _emit({
        "outcome": result.outcome.value,
        "shift_id": result.shift_id,
        "decision": result.decision.value if result.decision else None,
        "tasks": [task.id for task in result.plan.tasks] if result.plan else [],
        "handoff": _handoff_summary(result.handoff),
    })


@cli.command()
@click.pass_context
def cycle(ctx: click.Context):
    """Run one executor invocation."""
    result = _engine(ctx).cycle()
    _emit({
        "outcome": result.outcome.value,
        "steps": [
            {"step_id": run.step_id, "status": run.status, "duration_seconds": round(run.duration_seconds, 3)}
            for run in result.steps
        ],
        "reclaimed": list(result.reclaimed),
        "handoff": _handoff_summary(result.handoff),
    })


@cli.command()
@click.pass_context
def handoff(ctx: click.Context):
    """Close the current shift now and write its handoff."""
    _emit({"handoff": _handoff_summary(_engine(ctx).handoff())})


@cli.command()
@click.pass_context
def status(ctx: click.Context):
    """Show the shift state, plan progress and pending carryover."""
    _emit(_engine(ctx).status())


@cli.command()
@click.option("--reason", required=True, help="Why the plan is cancelled.")
@click.pass_context
def cancel(ctx: click.Context, reason: str):
    """Cancel the whole plan; open steps are carried over."""
    result = _engine(ctx).cancel(reason)
    _emit({"cancelled": True, "reason": reason, "handoff": _handoff_summary(result)})


@cli.command("log-fact")
@click.argument("text")
@click.pass_context
def log_fact(ctx: click.Context, text: str):
    """Append an operational fact to the context log."""
    entry = _engine(ctx).log_fact(text)
    if entry is None:
        raise click.ClickException("Refusing to log an empty fact")
    _emit({"timestamp": format_timestamp(entry.timestamp), "text": entry.text})


def main() -> None:
    cli(prog_name="shift-app")
