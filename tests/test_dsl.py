import sys

import pytest

from shipyard import dsl
from shipyard.dsl import builder, render, service, service_down, service_up, set_build_number, steps, target, tool
from shipyard.errors import ExternalToolFailure, ShipyardError
from shipyard.model import RunContext
from shipyard.tools import ToolInvoker

PY = sys.executable


class RecordingInvoker:
    dry_run = False

    def __init__(self, stdout=""):
        self.calls = []
        self.stdout = stdout

    def run(self, args, *, env=None, cwd=None, strict=None, input=None):
        from shipyard.model import ExternalProcessResult

        self.calls.append({"args": list(args), "env": env, "cwd": cwd, "strict": strict})
        return ExternalProcessResult(args=tuple(args), exit_code=0, stdout=self.stdout)


def test_render_substitutes_known_names_only():
    values = {"build_number": "17", "environment": "prod"}

    assert render("api:{build_number}", values) == "api:17"
    assert render("{missing}-{environment}", values) == "{missing}-prod"
    assert render("{{.ID}}", values) == "{{.ID}}"


def test_tool_renders_params_and_variables():
    invoker = RecordingInvoker()
    ctx = RunContext(invoker=invoker, params={"environment": "staging"}, variables={"build_number": "5"})
    action = tool(
        "helm", "upgrade", "--install", "api", "./chart",
        "--set", "image.tag={build_number}",
        "--namespace", "{environment}",
        env={"KUBECONFIG": "~/.kube/{environment}"},
    )

    action(ctx)

    call = invoker.calls[0]
    assert call["args"] == [
        "helm", "upgrade", "--install", "api", "./chart",
        "--set", "image.tag=5", "--namespace", "staging",
    ]
    assert call["env"] == {"KUBECONFIG": "~/.kube/staging"}
    assert call["strict"] is True


def test_tool_capture_as_sets_variable():
    ctx = RunContext(invoker=RecordingInvoker(stdout="sha256:abc\n"))

    tool("docker", "build", "-q", ".", capture_as="image_id")(ctx)

    assert ctx.get("image_id") == "sha256:abc"


def test_tool_failure_is_raised():
    ctx = RunContext(invoker=ToolInvoker())

    with pytest.raises(ExternalToolFailure):
        tool(PY, "-c", "import sys; sys.exit(4)")(ctx)


def test_set_build_number_prefers_param():
    ctx = RunContext(invoker=RecordingInvoker(), params={"build_number": "99"})

    set_build_number()(ctx)

    assert ctx.get("build_number") == "99"


def test_set_build_number_falls_back_to_git(monkeypatch, tmp_path):
    monkeypatch.setattr(dsl.git, "build_number", lambda cwd=None: "120.3f2a9c1")
    ctx = RunContext(invoker=RecordingInvoker(), cwd=tmp_path)

    set_build_number("version")(ctx)

    assert ctx.get("version") == "120.3f2a9c1"


def test_service_actions_use_environment(environment, fake_docker, postgres):
    ctx = RunContext(invoker=fake_docker, environment=environment, services={"postgres": postgres})

    service_up("postgres")(ctx)
    service_down("postgres", remove=True)(ctx)

    assert fake_docker.mutations() == ["run", "rm"]


def test_service_action_without_environment():
    ctx = RunContext(invoker=RecordingInvoker(), services={})

    with pytest.raises(ShipyardError):
        service_up("postgres")(ctx)


def test_service_ports_accept_strings_and_dicts():
    assert service("mq", "rabbitmq:3", ports=["5672:5672", "8080:15672"]).ports == {5672: 5672, 8080: 15672}
    assert service("db", "postgres:16", ports={5433: 5432}).ports == {5433: 5432}
    with pytest.raises(ValueError):
        service("db", "postgres:16", ports=["5432"])


@pytest.mark.parametrize("spec", ["127.0.0.1:5432:5432", "53:53/udp", "http:80"])
def test_service_ports_reject_unsupported_specs(spec):
    with pytest.raises(ValueError, match="host:container"):
        service("dns", "coredns/coredns", ports=[spec])


def test_steps_run_in_sequence():
    seen = []
    action = steps(lambda ctx: seen.append(1), lambda ctx: seen.append(2))

    action(RunContext(invoker=RecordingInvoker()))

    assert seen == [1, 2]


def test_builder_produces_target():
    t = (
        builder("Deploy")
        .depends_on("BuildImage", "Login")
        .describe("helm upgrade into the cluster")
        .runs("helm", "upgrade", "--install", "api", "./chart")
        .build()
    )

    assert t.name == "Deploy"
    assert t.depends_on == ["BuildImage", "Login"]
    assert t.description == "helm upgrade into the cluster"
    assert callable(t.action)


def test_target_without_action_groups_dependencies():
    t = target("All", depends_on=["Build", "Test"])

    assert t.action is None
    assert t.depends_on == ["Build", "Test"]
