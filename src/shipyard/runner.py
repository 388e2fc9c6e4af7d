# runner.py
from __future__ import annotations

import runpy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import settings
from .dag import TargetGraph
from .environment import EnvironmentManager
from .history import RunHistory
from .model import ExecutionPlan, ManagedService, RunContext, Target
from .state import StateStore, TargetRecord
from .tools import ToolInvoker
from .ui.console import get_console


@dataclass
class BuildDefinition:
    path: Path
    targets: List[Target]
    services: List[ManagedService] = field(default_factory=list)

    def graph(self) -> TargetGraph:
        return TargetGraph(self.targets)

    def services_by_name(self) -> Dict[str, ManagedService]:
        out: Dict[str, ManagedService] = {}
        for s in self.services:
            if s.name in out:
                raise ValueError(f"Duplicate service name: {s.name}")
            out[s.name] = s
        return out

    def select_services(self, names: List[str]) -> List[ManagedService]:
        """Services by name in declaration order; all of them if names is empty."""
        by_name = self.services_by_name()
        if not names:
            return list(self.services)
        missing = [n for n in names if n not in by_name]
        if missing:
            raise KeyError(f"Unknown service(s): {', '.join(missing)}. Known services: {sorted(by_name)}")
        return [s for s in self.services if s.name in names]


# ----------------------------------------------------------------------
# Build file loading (local python file)
# ----------------------------------------------------------------------

def find_build_files(directory: str | Path = ".") -> list[Path]:
    """Default build file first, then any other *_build.py."""
    current_dir = Path(directory)
    found = []

    default = current_dir / settings.BUILD_FILE
    if default.exists():
        found.append(default)

    for path in sorted(current_dir.glob("*_build.py")):
        if path not in found:
            found.append(path)

    return found


def discover_build(build_arg: Optional[str], directory: str | Path = ".") -> Path:
    """
    Resolve the build file from an explicit argument or by discovery.

    Raises:
        FileNotFoundError: nothing found
        ValueError: several candidates and no default build file
    """
    if build_arg:
        path = Path(build_arg)
        if not path.exists() and path.suffix != ".py":
            path = Path(str(path) + ".py")
        if not path.exists():
            raise FileNotFoundError(f"Build file not found: {build_arg}")
        return path

    files = find_build_files(directory)
    if not files:
        raise FileNotFoundError(
            f"No build file found (looked for {settings.BUILD_FILE} and *_build.py)"
        )
    default = Path(directory) / settings.BUILD_FILE
    if files[0] == default:
        return default
    if len(files) > 1:
        listing = ", ".join(str(f) for f in files)
        raise ValueError(f"Multiple build files found, pick one with --build: {listing}")
    return files[0]


def load_build(path: str | Path) -> BuildDefinition:
    """
    Load a build definition from a python file.

    The file must define either:
      - targets() -> List[Target]
      - TARGETS = [Target, ...]
    and may define SERVICES = [ManagedService, ...] (or services()).
    """
    build_path = Path(path).expanduser().resolve()
    if not build_path.exists():
        raise FileNotFoundError(f"Build file not found: {build_path}")
    if build_path.suffix != ".py":
        raise ValueError(f"Build file must be a .py file, got: {build_path.name}")

    module_name = f"shipyard_build_{build_path.stem}"
    globals_dict = runpy.run_path(str(build_path), run_name=module_name)

    targets = None
    if callable(globals_dict.get("targets")):
        targets = globals_dict["targets"]()
    elif "TARGETS" in globals_dict:
        targets = globals_dict["TARGETS"]

    if not isinstance(targets, list) or not all(isinstance(t, Target) for t in targets):
        raise TypeError(
            "Build file must return/define a List[Target]. "
            "Define targets() -> List[Target] or TARGETS = [Target, ...]."
        )

    services = globals_dict.get("SERVICES", [])
    if callable(globals_dict.get("services")):
        services = globals_dict["services"]()
    if not isinstance(services, list) or not all(isinstance(s, ManagedService) for s in services):
        raise TypeError("SERVICES must be a List[ManagedService].")

    return BuildDefinition(path=build_path, targets=targets, services=services)


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def make_context(
    build: BuildDefinition,
    params: Dict[str, str],
    *,
    cwd: str | Path | None = None,
    dry_run: bool = False,
    invoker: Optional[ToolInvoker] = None,
    environment: Optional[EnvironmentManager] = None,
) -> RunContext:
    workdir = Path(cwd).resolve() if cwd is not None else build.path.parent
    invoker = invoker or ToolInvoker(cwd=workdir, dry_run=dry_run)
    environment = environment or EnvironmentManager(invoker)
    return RunContext(
        invoker=invoker,
        environment=environment,
        params=dict(params),
        services=build.services_by_name(),
        cwd=workdir,
    )


def run_target(
    build: BuildDefinition,
    name: str,
    params: Optional[Dict[str, str]] = None,
    *,
    context: Optional[RunContext] = None,
    history: Optional[RunHistory] = None,
    print_plan: bool = True,
) -> StateStore:
    """
    Resolve `name`, print the plan and run it target by target.

    Returns the StateStore on success; raises TargetFailure (after recording
    history) on the first failing target.
    """
    console = get_console()
    params = dict(params or {})
    graph = build.graph()
    plan: ExecutionPlan = graph.resolve(name)

    console.print_run_started(build=build.path.name, target=name, target_count=len(plan))
    if print_plan:
        console.print_plan(plan.names)

    if context is None:
        context = make_context(build, params)

    def on_start(target: Target) -> None:
        console.print_target_start(target.name, target.description)

    def on_finish(target: Target, record: TargetRecord) -> None:
        if record.error is None:
            console.print_target_success(target.name, record.duration)

    state = StateStore()
    status = "failed"
    try:
        graph.run(plan, context, state=state, on_start=on_start, on_finish=on_finish)
        status = "succeeded"
    except KeyboardInterrupt:
        status = "interrupted"
        raise
    finally:
        if history is not None:
            _record_history(history, name, params, state, status)

    return state


def _record_history(
    history: RunHistory,
    name: str,
    params: Dict[str, str],
    state: StateStore,
    status: str,
) -> None:
    # a broken history DB must not mask the run's own outcome
    console = get_console()
    try:
        run_id = history.record(name, params, state, status)
    except SQLAlchemyError as e:
        console.print_error("Run history not recorded", str(e))
        return
    console.print_debug(f"recorded run #{run_id} ({status})")
