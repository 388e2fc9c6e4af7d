# dsl.py
from __future__ import annotations

import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from .errors import ShipyardError
from .git_facts import git
from .model import ExternalProcessResult, ManagedService, RunContext, Target

Action = Callable[[RunContext], Any]

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def render(text: str, values: Mapping[str, Any]) -> str:
    """
    Substitute {name} placeholders with params/variables.

    Unknown names and non-identifier braces (e.g. docker's {{.ID}}) are
    left untouched.
    """
    def repl(m: re.Match) -> str:
        key = m.group(1)
        return str(values[key]) if key in values else m.group(0)

    return _PLACEHOLDER.sub(repl, text)


# ---------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------

def tool(
    *args: str,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
    capture_as: Optional[str] = None,
) -> Action:
    """
    Action that runs an external CLI strictly (non-zero exit fails the target).

        tool("helm", "upgrade", "--install", "api", "./chart", "--set", "image.tag={build_number}")

    capture_as: store the command's stripped stdout as a run variable.
    """
    if not args:
        raise ValueError("tool() needs at least the executable name")

    def action(ctx: RunContext) -> ExternalProcessResult:
        values = ctx.template_values()
        argv = [render(a, values) for a in args]
        call_env = {k: render(v, values) for k, v in (env or {}).items()}
        call_cwd = render(cwd, values) if cwd is not None else None
        result = ctx.invoker.run(argv, env=call_env, cwd=call_cwd, strict=True)
        if capture_as:
            ctx.set(capture_as, result.stdout.strip())
        return result

    action.__name__ = f"tool:{args[0]}"
    return action


def _environment(ctx: RunContext):
    if ctx.environment is None:
        raise ShipyardError(kind="no_environment", message="No environment manager configured for this run")
    return ctx.environment


def service_up(name: str) -> Action:
    """Action: run-or-start a managed service declared in SERVICES."""
    def action(ctx: RunContext) -> None:
        _environment(ctx).run_or_start(ctx.service(name))

    action.__name__ = f"service_up:{name}"
    return action


def service_down(name: str, *, remove: bool = False) -> Action:
    """Action: stop (or remove) a managed service; no-op when already down."""
    def action(ctx: RunContext) -> None:
        env = _environment(ctx)
        svc = ctx.service(name)
        if remove:
            env.remove(svc)
        else:
            env.stop(svc)

    action.__name__ = f"service_down:{name}"
    return action


def set_build_number(variable: str = "build_number", *, param: str = "build_number") -> Action:
    """
    Action: publish a build number as a run variable.

    An explicit `--build-number` wins; otherwise it is derived from git.
    """
    def action(ctx: RunContext) -> None:
        value = ctx.param(param)
        if not value:
            value = git.build_number(cwd=str(ctx.cwd))
        ctx.set(variable, value)

    action.__name__ = "set_build_number"
    return action


def steps(*actions: Action) -> Action:
    """Chain several actions into one target; stops at the first failure."""
    def action(ctx: RunContext) -> Any:
        outcome = None
        for a in actions:
            outcome = a(ctx)
            if isinstance(outcome, ExternalProcessResult) and not outcome.ok:
                return outcome
        return outcome

    return action


# ---------------------------------------------------------------------
# Targets & services
# ---------------------------------------------------------------------

def target(
    name: str,
    action: Optional[Action] = None,
    *,
    depends_on: Optional[List[str]] = None,
    description: str = "",
) -> Target:
    """A target without an action only groups its dependencies."""
    return Target(
        name=name,
        action=action,
        depends_on=list(depends_on or []),
        description=description,
    )


_PORT_MAPPING = re.compile(r"^(\d+):(\d+)$")


def _parse_ports(ports: Union[Mapping[int, int], Iterable[str], None]) -> Dict[int, int]:
    if not ports:
        return {}
    if isinstance(ports, Mapping):
        return {int(h): int(c) for h, c in ports.items()}
    out: Dict[int, int] = {}
    for spec in ports:
        match = _PORT_MAPPING.match(str(spec).strip())
        if match is None:
            # bind addresses ("127.0.0.1:5432:5432") and protocols ("53:53/udp") are not modelled
            raise ValueError(
                f"Port mapping must look like 'host:container' with numeric ports, got {spec!r}"
            )
        out[int(match.group(1))] = int(match.group(2))
    return out


def service(
    name: str,
    image: str,
    *,
    ports: Union[Mapping[int, int], Iterable[str], None] = None,
    env: Optional[Dict[str, str]] = None,
    args: Iterable[str] = (),
) -> ManagedService:
    """
    Declare a managed service.

        service("rabbitmq", "rabbitmq:3-management", ports=["5672:5672", "15672:15672"])
    """
    return ManagedService(
        name=name,
        image=image,
        ports=_parse_ports(ports),
        env={k: str(v) for k, v in (env or {}).items()},
        args=tuple(args),
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class TargetBuilder:
    def __init__(self, name: str):
        self.name = name
        self._depends_on: list[str] = []
        self._actions: list[Action] = []
        self._description = ""

    def depends_on(self, *names: str):
        self._depends_on.extend(names)
        return self

    def describe(self, text: str):
        self._description = text
        return self

    def does(self, action: Action):
        self._actions.append(action)
        return self

    def runs(self, *args: str, **kwargs):
        return self.does(tool(*args, **kwargs))

    def build(self) -> Target:
        if not self._actions:
            action = None
        elif len(self._actions) == 1:
            action = self._actions[0]
        else:
            action = steps(*self._actions)
        return target(
            self.name,
            action,
            depends_on=self._depends_on,
            description=self._description,
        )


def builder(name: str) -> TargetBuilder:
    """Convenience: builder('Deploy').depends_on('BuildImage').runs(...).build()"""
    return TargetBuilder(name)


def build(*targets: Target) -> List[Target]:
    """
    Build definition helper:

        def targets():
            return build(target(...), target(...))
    """
    return list(targets)
