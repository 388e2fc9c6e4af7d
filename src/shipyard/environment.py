# environment.py
from __future__ import annotations

import re
from typing import Iterable, List

from . import settings
from .errors import ServiceLifecycleError
from .model import ExternalProcessResult, ManagedService, ServiceState
from .tools import ToolInvoker
from .ui.console import get_console


# ---------------------------------------------------------------------
# Docker command builders
# ---------------------------------------------------------------------

def _name_filter(service: ManagedService) -> str:
    # docker treats the filter as a regex: anchor it and escape "." in names
    return f"name=^{re.escape(service.name)}$"


def run_args(service: ManagedService, docker: str = "docker") -> List[str]:
    """Build the `docker run` command for a service."""
    cmd = [docker, "run", "--detach", "--name", service.name]

    for host_port, container_port in sorted(service.ports.items()):
        cmd.extend(["--publish", f"{host_port}:{container_port}"])

    for key, value in service.env.items():
        cmd.extend(["--env", f"{key}={value}"])

    cmd.extend(service.args)
    cmd.append(service.image)
    return cmd


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------

class EnvironmentManager:
    """
    Idempotent run-or-start / stop / remove for local containers.

    Every operation queries the current state first and then takes exactly
    one deterministic branch.
    """

    def __init__(self, invoker: ToolInvoker, docker: str | None = None):
        self.invoker = invoker
        self.docker = docker or settings.DOCKER_BIN

    def _query(self, service: ManagedService, *extra: str) -> ExternalProcessResult:
        result = self.invoker.run(
            [self.docker, "ps", "--quiet", "--filter", _name_filter(service), *extra],
            strict=False,
        )
        if not result.ok:
            raise ServiceLifecycleError(service, "inspect", "docker ps failed", result)
        return result

    def is_running(self, service: ManagedService) -> bool:
        # empty output means no matching running container
        return self._query(service, "--filter", "status=running").stdout.strip() != ""

    def exists(self, service: ManagedService) -> bool:
        return self._query(service, "--all").stdout.strip() != ""

    def state(self, service: ManagedService) -> ServiceState:
        if self.is_running(service):
            return ServiceState.RUNNING
        if self.exists(service):
            return ServiceState.STOPPED
        return ServiceState.ABSENT

    def _docker(self, service: ManagedService, operation: str, args: List[str]) -> ExternalProcessResult:
        result = self.invoker.run(args, strict=False)
        if not result.ok:
            raise ServiceLifecycleError(
                service, operation, f"docker exited with code {result.exit_code}", result
            )
        return result

    def run_or_start(self, service: ManagedService) -> ServiceState:
        """
        Ensure the service is running.

          absent  -> docker run
          stopped -> docker start
          running -> no-op
        """
        console = get_console()
        current = self.state(service)

        if current is ServiceState.RUNNING:
            console.print_debug(f"service '{service.name}' already running")
            return current

        if current is ServiceState.ABSENT:
            self._docker(service, "run", run_args(service, self.docker))
        else:
            self._docker(service, "start", [self.docker, "start", service.name])

        if self.invoker.dry_run:
            return ServiceState.RUNNING
        if not self.is_running(service):
            raise ServiceLifecycleError(
                service, "start", "container is not running after start (check `docker logs`)"
            )
        return ServiceState.RUNNING

    def stop(self, service: ManagedService) -> ServiceState:
        """Stop if running; stopping a stopped or absent service is a no-op."""
        current = self.state(service)
        if current is not ServiceState.RUNNING:
            get_console().print_debug(f"service '{service.name}' is {current.value}, nothing to stop")
            return current

        self._docker(service, "stop", [self.docker, "stop", service.name])
        return ServiceState.STOPPED

    def remove(self, service: ManagedService) -> ServiceState:
        """Remove the container; removing an absent service is a no-op."""
        current = self.state(service)
        if current is ServiceState.ABSENT:
            get_console().print_debug(f"service '{service.name}' is absent, nothing to remove")
            return current

        self._docker(service, "remove", [self.docker, "rm", "--force", service.name])
        return ServiceState.ABSENT

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def up(self, services: Iterable[ManagedService]) -> dict[str, ServiceState]:
        return {s.name: self.run_or_start(s) for s in services}

    def down(self, services: Iterable[ManagedService], *, remove: bool = False) -> dict[str, ServiceState]:
        # reverse declaration order so dependents go first
        out: dict[str, ServiceState] = {}
        for s in reversed(list(services)):
            out[s.name] = self.remove(s) if remove else self.stop(s)
        return out
