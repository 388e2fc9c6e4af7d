# model.py
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Tuple

if TYPE_CHECKING:
    from .environment import EnvironmentManager
    from .tools import ToolInvoker


class TargetState(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (TargetState.SUCCEEDED, TargetState.FAILED)


class ServiceState(str, enum.Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    ABSENT = "absent"


@dataclass
class Target:
    """
    A named unit of work with declared dependencies.

    `action` receives the RunContext. It may return None, an int exit code
    or an ExternalProcessResult; anything non-zero counts as a failure.
    """
    name: str
    action: Optional[Callable[["RunContext"], Any]] = None
    depends_on: list[str] = field(default_factory=list)
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Target name must be a non-empty string")


@dataclass(frozen=True)
class ExecutionPlan:
    """Resolved order for a requested target: dependencies always come first."""
    requested: str
    targets: Tuple[Target, ...]

    @property
    def names(self) -> List[str]:
        return [t.name for t in self.targets]

    def __iter__(self) -> Iterator[Target]:
        return iter(self.targets)

    def __len__(self) -> int:
        return len(self.targets)


@dataclass(frozen=True)
class ExternalProcessResult:
    args: Tuple[str, ...]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def command(self) -> str:
        return " ".join(self.args)

    @property
    def output(self) -> str:
        parts = [p for p in (self.stdout, self.stderr) if p]
        return "\n".join(p.rstrip("\n") for p in parts)


@dataclass(frozen=True)
class ManagedService:
    """A local dependency (container) whose lifecycle the EnvironmentManager owns."""
    name: str
    image: str
    ports: Dict[int, int] = field(default_factory=dict)  # host -> container
    env: Dict[str, str] = field(default_factory=dict)
    args: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Service name must be non-empty")
        if not self.image:
            raise ValueError(f"Service '{self.name}' has no image")


@dataclass
class RunContext:
    """
    Values threaded through a plan run.

    `params` come from the command line and are read-only for targets.
    `variables` hold values produced by earlier targets (e.g. a build number)
    for later ones to consume.
    """
    invoker: "ToolInvoker"
    environment: Optional["EnvironmentManager"] = None
    params: Dict[str, str] = field(default_factory=dict)
    variables: Dict[str, Any] = field(default_factory=dict)
    services: Dict[str, ManagedService] = field(default_factory=dict)
    cwd: Path = field(default_factory=Path.cwd)

    def param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.params.get(name, default)

    def require_param(self, name: str) -> str:
        if name not in self.params:
            raise KeyError(f"Missing required parameter --{name.replace('_', '-')}")
        return self.params[name]

    def set(self, name: str, value: Any) -> None:
        self.variables[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        return self.variables.get(name, default)

    def service(self, name: str) -> ManagedService:
        try:
            return self.services[name]
        except KeyError:
            raise KeyError(
                f"Unknown service '{name}'. Known services: {sorted(self.services)}"
            ) from None

    def template_values(self) -> Dict[str, Any]:
        # variables win over params so later targets see produced values
        values: Dict[str, Any] = dict(self.params)
        values.update(self.variables)
        return values
