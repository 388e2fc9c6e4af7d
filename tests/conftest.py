import re

import pytest

from shipyard.environment import EnvironmentManager
from shipyard.model import ExternalProcessResult, ManagedService
from shipyard.ui.console import Console, set_console


class FakeDocker:
    """Stands in for ToolInvoker when the command is docker; keeps container state in memory."""

    dry_run = False

    def __init__(self):
        self.containers = {}  # name -> running?
        self.calls = []
        self.fail_on = set()

    def run(self, args, *, env=None, cwd=None, strict=None, input=None):
        args = tuple(args)
        self.calls.append(args)
        sub = args[1]
        if sub in self.fail_on:
            return ExternalProcessResult(args=args, exit_code=1, stderr="boom")

        if sub == "ps":
            pattern = next(a for a in args if a.startswith("name="))[len("name="):]
            matches = [n for n in self.containers if re.search(pattern, n)]
            if "status=running" in args:
                matches = [n for n in matches if self.containers[n]]
            return ExternalProcessResult(args=args, exit_code=0, stdout="".join(f"{n}-id\n" for n in matches))
        if sub == "run":
            self.containers[args[args.index("--name") + 1]] = True
        elif sub == "start":
            self.containers[args[2]] = True
        elif sub == "stop":
            self.containers[args[2]] = False
        elif sub == "rm":
            self.containers.pop(args[-1], None)
        return ExternalProcessResult(args=args, exit_code=0)

    def mutations(self):
        return [c[1] for c in self.calls if c[1] != "ps"]


@pytest.fixture(autouse=True)
def console():
    c = Console(debug=False)
    set_console(c)
    yield c


@pytest.fixture
def fake_docker():
    return FakeDocker()


@pytest.fixture
def environment(fake_docker):
    return EnvironmentManager(fake_docker, docker="docker")


@pytest.fixture
def postgres():
    return ManagedService(
        name="postgres",
        image="postgres:16",
        ports={5432: 5432},
        env={"POSTGRES_PASSWORD": "secret"},
    )
