"""Expense Autopilot CLI actor implemented with Typer."""

from __future__ import annotations

import dataclasses
import json
import signal
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import typer
from pydantic import ValidationError

from bootstrap import Application, get_application
from config import settings
from log_config import configure_logging
from models import ExpenseTemplate, ScheduleRule
from scheduler.errors import ScheduleValidationError, TimerRegistrationError
from templates.repository import TemplateNotFoundError
from time_utils import format_ms, parse_timestamp

SUCCESS_EXIT_CODE = 0
VALIDATION_ERROR_EXIT_CODE = 2
NOT_FOUND_EXIT_CODE = 3
TIMER_ERROR_EXIT_CODE = 4

_application_factory: Callable[[], Application] = get_application


@dataclass(frozen=True)
class CliConfig:
    """Global CLI runtime options."""

    as_json: bool


def _serialize(value: Any) -> Any:
    """Convert result objects to JSON-serializable structures."""

    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _serialize(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {str(key): _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_serialize(item) for item in value]
    if hasattr(value, "model_dump"):
        return _serialize(value.model_dump(mode="json"))
    return str(value)


def _emit_output(result: Any, as_json: bool) -> None:
    """Render command output in requested format."""

    data = _serialize(result)
    if as_json:
        typer.echo(json.dumps(data, sort_keys=True, separators=(",", ":")))
        return
    if data is None:
        typer.echo("ok")
        return
    if isinstance(data, (dict, list)):
        typer.echo(json.dumps(data, indent=2, sort_keys=True))
        return
    typer.echo(str(data))


def _emit_error(exc: Exception, as_json: bool) -> None:
    """Render mapped errors to stderr."""

    if as_json:
        typer.echo(json.dumps({"error": str(exc)}), err=True)
        return
    typer.echo(f"error: {exc}", err=True)


def _run_command(cfg: CliConfig, invoke: Callable[[Application], Any]) -> None:
    """Execute one command and map outputs/errors to process semantics."""
    try:
        result = invoke(_application_factory())
    except (ScheduleValidationError, ValidationError, ValueError) as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=VALIDATION_ERROR_EXIT_CODE) from exc
    except TemplateNotFoundError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=NOT_FOUND_EXIT_CODE) from exc
    except TimerRegistrationError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=TIMER_ERROR_EXIT_CODE) from exc

    _emit_output(result, cfg.as_json)
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


def _require_config(ctx: typer.Context) -> CliConfig:
    """Return required CLI config from Typer context."""

    config = ctx.obj
    if not isinstance(config, CliConfig):
        raise RuntimeError("CLI configuration not initialized")
    return config


def _load_json_argument(value: str) -> Any:
    """Parse inline JSON, or the contents of a file when prefixed with '@'."""
    if value.startswith("@"):
        value = Path(value[1:]).expanduser().read_text(encoding="utf-8")
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON: {exc.msg}") from exc


def _parse_rule(value: str) -> ScheduleRule:
    data = _load_json_argument(value)
    if isinstance(data, dict):
        data.setdefault("timezone", settings.scheduler.default_timezone)
    return ScheduleRule.model_validate(data)


def _preview_view(next_execution: int | None) -> dict[str, Any]:
    return {"next_execution": next_execution, "next_execution_at": format_ms(next_execution)}


app = typer.Typer(no_args_is_help=True, help="Expense Autopilot command-line interface")


@app.callback()
def main(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
) -> None:
    """Store global options for all commands."""

    configure_logging(level=settings.log_level, json_output=settings.log_json)
    ctx.obj = CliConfig(as_json=as_json)


@app.command("create")
def create_command(
    ctx: typer.Context,
    template_json: str = typer.Argument(..., help="Template JSON, or @path to a JSON file"),
) -> None:
    """Create or replace a template and arm its schedule."""
    cfg = _require_config(ctx)
    _run_command(
        cfg,
        lambda application: application.service.save_template(
            ExpenseTemplate.model_validate(_load_json_argument(template_json))
        ),
    )


@app.command("preview")
def preview_command(
    ctx: typer.Context,
    rule_json: str = typer.Argument(..., help="Rule JSON, or @path to a JSON file"),
    now: str | None = typer.Option(None, help="Reference time (ISO 8601 or epoch ms)"),
) -> None:
    """Show the next fire time for a rule without scheduling it."""
    cfg = _require_config(ctx)
    _run_command(
        cfg,
        lambda application: _preview_view(
            application.service.get_next_execution_preview(
                _parse_rule(rule_json),
                parse_timestamp(now) if now is not None else None,
            )
        ),
    )


@app.command("schedule")
def schedule_command(
    ctx: typer.Context,
    template_id: str = typer.Argument(..., help="Template id"),
    rule_json: str = typer.Argument(..., help="Rule JSON, or @path to a JSON file"),
) -> None:
    """Attach a rule to a template and arm it."""
    cfg = _require_config(ctx)
    _run_command(
        cfg,
        lambda application: _preview_view(
            application.service.schedule_template(template_id, _parse_rule(rule_json))
        ),
    )


@app.command("unschedule")
def unschedule_command(
    ctx: typer.Context, template_id: str = typer.Argument(..., help="Template id")
) -> None:
    """Remove a template's rule and cancel its wake-up."""
    cfg = _require_config(ctx)
    _run_command(cfg, lambda application: application.service.unschedule_template(template_id))


@app.command("pause")
def pause_command(
    ctx: typer.Context, template_id: str = typer.Argument(..., help="Template id")
) -> None:
    """Pause a template's schedule."""
    cfg = _require_config(ctx)
    _run_command(
        cfg,
        lambda application: application.service.pause_template(template_id).scheduling,
    )


@app.command("resume")
def resume_command(
    ctx: typer.Context, template_id: str = typer.Argument(..., help="Template id")
) -> None:
    """Resume a paused schedule from the current time."""
    cfg = _require_config(ctx)
    _run_command(
        cfg,
        lambda application: _preview_view(application.service.resume_template(template_id)),
    )


@app.command("delete")
def delete_command(
    ctx: typer.Context, template_id: str = typer.Argument(..., help="Template id")
) -> None:
    """Delete a template and its history."""
    cfg = _require_config(ctx)

    def invoke(application: Application) -> dict[str, Any]:
        if not application.service.delete_template(template_id):
            raise TemplateNotFoundError(template_id)
        return {"deleted": template_id}

    _run_command(cfg, invoke)


@app.command("fire")
def fire_command(
    ctx: typer.Context, template_id: str = typer.Argument(..., help="Template id")
) -> None:
    """Run a firing immediately, as if the wake-up had been delivered."""
    cfg = _require_config(ctx)
    _run_command(cfg, lambda application: application.pipeline.handle_wake_up(template_id))


@app.command("reconcile")
def reconcile_command(ctx: typer.Context) -> None:
    """Re-arm wake-ups for every schedulable template."""
    cfg = _require_config(ctx)
    _run_command(cfg, lambda application: application.coordinator.reconcile_on_startup())


@app.command("history")
def history_command(
    ctx: typer.Context, template_id: str = typer.Argument(..., help="Template id")
) -> None:
    """List a template's execution records."""
    cfg = _require_config(ctx)
    _run_command(
        cfg,
        lambda application: application.repository.require(template_id).execution_history,
    )


@app.command("run")
def run_command(ctx: typer.Context) -> None:
    """Reconcile, then keep in-process timers alive until interrupted."""
    cfg = _require_config(ctx)
    stop = threading.Event()

    def invoke(application: Application) -> Any:
        report = application.coordinator.reconcile_on_startup()
        _emit_output(report, cfg.as_json)
        signal.signal(signal.SIGTERM, lambda *_: stop.set())
        try:
            while not stop.wait(timeout=1.0):
                pass
        except KeyboardInterrupt:
            pass
        shutdown = getattr(application.timer_service, "shutdown", None)
        if callable(shutdown):
            shutdown()
        return {"stopped": True}

    _run_command(cfg, invoke)


if __name__ == "__main__":
    app()
