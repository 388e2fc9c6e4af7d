# cli.py
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Dict, List

import click

from . import settings
from .errors import ShipyardError, TargetFailure
from .history import RunHistory
from .runner import BuildDefinition, discover_build, load_build, make_context, run_target
from .ui.console import Console, get_console, set_console


def parse_params(tokens: List[str]) -> Dict[str, str]:
    """
    Turn trailing `--name value` pairs into a params dict.

    `--name=value` is accepted too; a bare `--flag` means "true".
    Dashes in names become underscores (`--build-number` -> build_number).
    """
    params: Dict[str, str] = {}
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if not tok.startswith("--") or tok == "--":
            raise click.UsageError(f"Unexpected argument {tok!r}; parameters look like --name value")
        key, sep, value = tok[2:].partition("=")
        if not key:
            raise click.UsageError(f"Invalid parameter {tok!r}")
        if not sep:
            nxt = tokens[i + 1] if i + 1 < len(tokens) else None
            if nxt is None or nxt.startswith("--"):
                value = "true"
            else:
                value = nxt
                i += 1
        params[key.replace("-", "_")] = value
        i += 1
    return params


def _load(build_arg: str | None) -> BuildDefinition:
    console = get_console()
    try:
        path = discover_build(build_arg)
    except FileNotFoundError as e:
        console.print_error(
            "Build file not found",
            str(e),
            suggestion=f"Create {settings.BUILD_FILE} or pass one explicitly:\n  shipyard --build my_build.py run Deploy",
        )
        sys.exit(1)
    except ValueError as e:
        console.print_error("Ambiguous build file", str(e))
        sys.exit(1)

    try:
        return load_build(path)
    except Exception as e:
        console.print_error("Failed to load build file", f"Could not load {path}", details=[str(e)])
        if console.debug:
            console.print_exception(e)
        sys.exit(1)


def _history() -> RunHistory:
    return RunHistory(Path(settings.STATE_DIR) / settings.HISTORY_DB)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (stack traces, echoed commands)",
)
@click.option(
    "--build",
    "build_file",
    default=None,
    help=f"Build file path (defaults to {settings.BUILD_FILE} if present)",
)
@click.pass_context
def cli(ctx, debug, build_file):
    """shipyard: resolve and run build/deploy targets in dependency order."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["build_file"] = build_file


@cli.command(context_settings={"ignore_unknown_options": True, "allow_extra_args": True})
@click.argument("target")
@click.option("--dry-run", is_flag=True, default=False, help="Print commands instead of running them")
@click.option("--history/--no-history", default=True, show_default=True, help="Record the run in the state dir")
@click.option("--cwd", default=None, help="Working directory for tools (defaults to the build file's directory)")
@click.option("--print-plan/--no-print-plan", default=True, show_default=True, help="Print the resolved plan")
@click.pass_context
def run(ctx, target, dry_run, history, cwd, print_plan):
    """Run TARGET and everything it depends on. Extra --name value pairs become parameters."""
    console = get_console()
    params = parse_params(list(ctx.args))
    build = _load(ctx.obj.get("build_file"))
    store = _history() if history else None

    try:
        context = make_context(build, params, cwd=cwd, dry_run=dry_run)
        state = run_target(build, target, params, context=context, history=store, print_plan=print_plan)
        console.print_results(state.summary())

    except TargetFailure as e:
        hint = None
        if isinstance(e.cause, ShipyardError):
            hint = e.cause.details.get("hint")
        console.print_target_failure(
            e.target,
            e.message,
            command=e.command,
            output=e.output,
            hint=hint,
        )
        if console.debug:
            console.print_exception(e.cause)
        sys.exit(1)
    except ShipyardError as e:
        console.print_error(e.kind.replace("_", " ").title(), e.message, details=[f"{k}: {v}" for k, v in e.details.items()])
        sys.exit(1)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)
    finally:
        if store is not None:
            store.close()


@cli.command()
@click.argument("target")
@click.pass_context
def plan(ctx, target):
    """Print the execution order for TARGET without running anything."""
    console = get_console()
    build = _load(ctx.obj.get("build_file"))
    try:
        resolved = build.graph().resolve(target)
    except ShipyardError as e:
        console.print_error(e.kind.replace("_", " ").title(), e.message, details=[f"{k}: {v}" for k, v in e.details.items()])
        sys.exit(1)
    console.print_plan(resolved.names)


@cli.command(name="list")
@click.option("--graph", "show_graph", is_flag=True, default=False, help="Show targets grouped by stage")
@click.pass_context
def list_targets(ctx, show_graph):
    """List the targets of the build file."""
    console = get_console()
    build = _load(ctx.obj.get("build_file"))
    graph = build.graph()

    if show_graph:
        try:
            levels = graph.levels()
        except ShipyardError as e:
            console.print_error(e.kind.replace("_", " ").title(), e.message)
            sys.exit(1)
        for idx, level in enumerate(levels, start=1):
            console.print_info(f"Stage {idx}: {', '.join(level)}")
        return

    console.print_header("TARGETS")
    console.print_targets((t.name, t.description, t.depends_on) for t in build.targets)
    if build.services:
        console.print_header("SERVICES")
        for s in build.services:
            console.print_info(f"  {s.name} ({s.image})")


# ----------------------------------------------------------------------
# Managed services
# ----------------------------------------------------------------------

@cli.group()
def env():
    """Manage the local services declared in SERVICES."""


def _service_command(ctx, names, operation: str) -> None:
    console = get_console()
    build = _load(ctx.obj.get("build_file"))
    try:
        services = build.select_services(list(names))
    except KeyError as e:
        console.print_error("Unknown service", str(e.args[0]))
        sys.exit(1)
    if not services:
        console.print_info("No services declared.")
        return

    manager = make_context(build, {}).environment
    try:
        if operation == "up":
            states = manager.up(services)
        else:
            states = manager.down(services, remove=(operation == "rm"))
    except ShipyardError as e:
        console.print_error("Service operation failed", e.message, details=[f"{k}: {v}" for k, v in e.details.items()])
        output = getattr(e, "output", "")
        if output:
            console.print_info(output)
        sys.exit(1)

    for name, state in states.items():
        console.print_service_state(name, state.value)


@env.command()
@click.argument("names", nargs=-1)
@click.pass_context
def up(ctx, names):
    """Run or start services (all if none given)."""
    _service_command(ctx, names, "up")


@env.command()
@click.argument("names", nargs=-1)
@click.pass_context
def stop(ctx, names):
    """Stop services; already stopped ones are left alone."""
    _service_command(ctx, names, "stop")


@env.command()
@click.argument("names", nargs=-1)
@click.pass_context
def rm(ctx, names):
    """Remove service containers; missing ones are left alone."""
    _service_command(ctx, names, "rm")


# ----------------------------------------------------------------------
# History
# ----------------------------------------------------------------------

@cli.command(name="history")
@click.option("--limit", default=10, show_default=True, type=int, help="Number of runs to show")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON instead of a table")
def show_history(limit, as_json):
    """Show recent runs."""
    console = get_console()
    store = _history()
    try:
        runs = store.recent(limit)
    finally:
        store.close()

    if as_json:
        console.print_info(json.dumps([r.model_dump(mode="json") for r in runs], indent=2))
        return

    if not runs:
        console.print_info("No runs recorded yet.")
        return
    for r in runs:
        console.print_info(f"#{r.id} {r.requested}: {r.status.upper()} ({r.started_at:%Y-%m-%d %H:%M:%S})")
        for t in r.targets:
            line = f"    {t.name}: {t.state}"
            if t.error:
                line += f" - {t.error.splitlines()[0]}"
            console.print_info(line)


if __name__ == "__main__":
    cli()
