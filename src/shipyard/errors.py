# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from . import settings
from .model import ExternalProcessResult, ManagedService


TOOL_HINTS = {
    "docker": "Install Docker and ensure the daemon is running.",
    "helm": "Install Helm 3 (https://helm.sh/docs/intro/install/) or fix PATH.",
    "terraform": "Install Terraform or fix PATH.",
    "sam": "Install the AWS SAM CLI or fix PATH.",
    "aws": "Install the AWS CLI v2 or fix PATH.",
    "az": "Install the Azure CLI or fix PATH.",
    "kubectl": "Install kubectl or fix PATH.",
    "git": "Install Git or fix PATH.",
}


@dataclass(eq=False)
class ShipyardError(Exception):
    """
    Structured orchestrator error with enough context for:
      - clean CLI output
      - debugging without full tracebacks
    """
    kind: str
    message: str
    target: Optional[str] = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.target:
            lines.append(f"target={self.target}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class UnknownTargetError(ShipyardError):
    def __init__(self, name: str, known: Sequence[str], *, required_by: Optional[str] = None):
        if required_by:
            message = f"Target '{required_by}' depends on unknown target '{name}'"
        else:
            message = f"Unknown target '{name}'"
        super().__init__(
            kind="unknown_target",
            message=message,
            target=required_by or name,
            details={"known": ", ".join(sorted(known)) or "(none)"},
        )
        self.name = name
        self.known = sorted(known)


class CycleError(ShipyardError):
    def __init__(self, cycle: Sequence[str]):
        path = " -> ".join(cycle)
        super().__init__(
            kind="cycle",
            message=f"Dependency cycle detected: {path}",
            target=cycle[0] if cycle else None,
        )
        self.cycle = list(cycle)


def _tail(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return "..." + text[-limit:]


class ExternalToolFailure(ShipyardError):
    def __init__(self, result: ExternalProcessResult, *, target: Optional[str] = None):
        super().__init__(
            kind="tool_failed",
            message=f"'{result.command}' exited with code {result.exit_code}",
            target=target,
        )
        self.result = result

    @property
    def exit_code(self) -> int:
        return self.result.exit_code

    @property
    def output(self) -> str:
        return _tail(self.result.output, settings.OUTPUT_TAIL)


class ToolUnavailableError(ShipyardError):
    def __init__(self, tool: str):
        super().__init__(
            kind="tool_unavailable",
            message=f"{tool} is not available",
            details={"hint": TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")},
        )
        self.tool = tool


class ServiceLifecycleError(ShipyardError):
    def __init__(
        self,
        service: ManagedService,
        operation: str,
        reason: str,
        result: Optional[ExternalProcessResult] = None,
    ):
        details = {"image": service.image}
        if result is not None:
            details["command"] = result.command
            details["exit_code"] = result.exit_code
        super().__init__(
            kind="service_lifecycle",
            message=f"Could not {operation} service '{service.name}': {reason}",
            details=details,
        )
        self.service = service
        self.operation = operation
        self.result = result

    @property
    def output(self) -> str:
        if self.result is None:
            return ""
        return _tail(self.result.output, settings.OUTPUT_TAIL)


class TargetFailure(ShipyardError):
    """Raised by TargetGraph.run: names the failing target and keeps the cause."""

    def __init__(self, target: str, cause: BaseException, *, completed: Sequence[str] = ()):
        super().__init__(
            kind="target_failed",
            message=_describe_cause(cause),
            target=target,
        )
        self.cause = cause
        self.completed = list(completed)

    @property
    def output(self) -> str:
        return getattr(self.cause, "output", "") or ""

    @property
    def command(self) -> Optional[str]:
        result = getattr(self.cause, "result", None)
        if result is not None:
            return result.command
        return None


def _describe_cause(cause: BaseException) -> str:
    if isinstance(cause, ShipyardError):
        return cause.message
    text = str(cause)
    if not text:
        return type(cause).__name__
    return f"{type(cause).__name__}: {text}"
