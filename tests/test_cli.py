import json
import textwrap

import click
import pytest
from click.testing import CliRunner

from shipyard import settings
from shipyard.cli import cli, parse_params

BUILD_FILE = textwrap.dedent(
    """
    import sys

    from shipyard import build, service, set_build_number, target, tool

    PY = sys.executable

    SERVICES = [service("postgres", "postgres:16", ports=["5432:5432"])]


    def targets():
        return build(
            target("GetBuildNumber", set_build_number(), description="Pick the build number"),
            target(
                "BuildImage",
                tool(PY, "-c", "print('built {build_number}')"),
                depends_on=["GetBuildNumber"],
            ),
            target(
                "Deploy",
                tool(PY, "-c", "import sys; sys.stderr.write('cluster {environment} unreachable'); sys.exit(7)"),
                depends_on=["BuildImage"],
                description="helm upgrade",
            ),
        )
    """
)

CYCLIC_BUILD_FILE = textwrap.dedent(
    """
    from shipyard import build, target

    TARGETS = build(
        target("Loop1", depends_on=["Loop2"]),
        target("Loop2", depends_on=["Loop1"]),
    )
    """
)

ACYCLIC_BUILD_FILE = textwrap.dedent(
    """
    from shipyard import build, target

    TARGETS = build(
        target("Restore"),
        target("Compile", depends_on=["Restore"]),
        target("Test", depends_on=["Compile"]),
        target("Lint", depends_on=["Restore"]),
    )
    """
)


@pytest.fixture
def build_file(tmp_path):
    path = tmp_path / "shipyard_build.py"
    path.write_text(BUILD_FILE)
    return path


@pytest.fixture
def acyclic_build_file(tmp_path):
    path = tmp_path / "ci_build.py"
    path.write_text(ACYCLIC_BUILD_FILE)
    return path


@pytest.fixture
def runner():
    return CliRunner()


def test_parse_params():
    tokens = ["--build-number", "42", "--environment=prod", "--force", "--region", "eu-west-1"]

    assert parse_params(tokens) == {
        "build_number": "42",
        "environment": "prod",
        "force": "true",
        "region": "eu-west-1",
    }


def test_parse_params_rejects_stray_values():
    with pytest.raises(click.UsageError):
        parse_params(["prod"])


def test_run_succeeds(runner, build_file):
    result = runner.invoke(
        cli, ["--build", str(build_file), "run", "BuildImage", "--no-history", "--build-number", "42"]
    )

    assert result.exit_code == 0, result.output
    assert "1. GetBuildNumber" in result.output
    assert "2. BuildImage" in result.output
    assert "BuildImage: SUCCEEDED" in result.output


def test_run_failure_reports_target_command_and_output(runner, build_file):
    result = runner.invoke(
        cli,
        ["--build", str(build_file), "run", "Deploy", "--no-history", "--build-number", "1", "--environment", "staging"],
    )

    assert result.exit_code == 1
    assert "TARGET FAILED: Deploy" in result.output
    assert "exited with code 7" in result.output
    assert "cluster staging unreachable" in result.output
    assert "Command:" in result.output


def test_run_unknown_target(runner, build_file):
    result = runner.invoke(cli, ["--build", str(build_file), "run", "Nope", "--no-history"])

    assert result.exit_code == 1
    assert "Unknown target 'Nope'" in result.output


def test_run_cycle(runner, tmp_path):
    path = tmp_path / "loop_build.py"
    path.write_text(CYCLIC_BUILD_FILE)

    result = runner.invoke(cli, ["--build", str(path), "run", "Loop1", "--no-history"])

    assert result.exit_code == 1
    assert "Dependency cycle detected" in result.output


def test_dry_run_does_not_execute(runner, build_file):
    result = runner.invoke(
        cli,
        ["--build", str(build_file), "run", "Deploy", "--dry-run", "--no-history", "--build-number", "3"],
    )

    assert result.exit_code == 0, result.output
    assert "Deploy: SUCCEEDED" in result.output


def test_plan(runner, acyclic_build_file):
    result = runner.invoke(cli, ["--build", str(acyclic_build_file), "plan", "Test"])

    assert result.exit_code == 0
    assert "1. Restore" in result.output
    assert "2. Compile" in result.output
    assert "3. Test" in result.output
    assert "Lint" not in result.output


def test_list(runner, build_file):
    result = runner.invoke(cli, ["--build", str(build_file), "list"])

    assert result.exit_code == 0
    assert "Deploy (needs: BuildImage) - helm upgrade" in result.output
    assert "postgres (postgres:16)" in result.output


def test_list_graph(runner, acyclic_build_file):
    result = runner.invoke(cli, ["--build", str(acyclic_build_file), "list", "--graph"])

    assert result.exit_code == 0
    assert "Stage 1: Restore" in result.output
    assert "Stage 2: Compile, Lint" in result.output
    assert "Stage 3: Test" in result.output


def test_missing_build_file(runner, tmp_path):
    result = runner.invoke(cli, ["--build", str(tmp_path / "nope.py"), "list"])

    assert result.exit_code == 1
    assert "Build file not found" in result.output


def test_env_unknown_service(runner, build_file):
    result = runner.invoke(cli, ["--build", str(build_file), "env", "up", "redis"])

    assert result.exit_code == 1
    assert "Unknown service" in result.output


def test_env_without_services(runner, acyclic_build_file):
    result = runner.invoke(cli, ["--build", str(acyclic_build_file), "env", "stop"])

    assert result.exit_code == 0
    assert "No services declared." in result.output


def test_history_records_runs(runner, build_file, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "STATE_DIR", str(tmp_path / "state"))

    runner.invoke(cli, ["--build", str(build_file), "run", "BuildImage", "--build-number", "8"])
    runner.invoke(cli, ["--build", str(build_file), "run", "Deploy", "--build-number", "9"])
    result = runner.invoke(cli, ["history", "--json"])

    assert result.exit_code == 0, result.output
    runs = json.loads(result.output)
    assert [r["requested"] for r in runs] == ["Deploy", "BuildImage"]
    assert [r["status"] for r in runs] == ["failed", "succeeded"]
    assert runs[0]["params"] == {"build_number": "9"}
    assert [t["state"] for t in runs[0]["targets"]] == ["succeeded", "succeeded", "failed"]


INTERRUPTED_BUILD_FILE = textwrap.dedent(
    """
    from shipyard import build, target


    def migrate(ctx):
        raise KeyboardInterrupt


    TARGETS = build(
        target("Prepare"),
        target("Migrate", migrate, depends_on=["Prepare"]),
    )
    """
)


def test_ctrl_c_exits_130_and_records_interrupted_run(runner, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "STATE_DIR", str(tmp_path / "state"))
    path = tmp_path / "migrate_build.py"
    path.write_text(INTERRUPTED_BUILD_FILE)

    result = runner.invoke(cli, ["--build", str(path), "run", "Migrate"])

    assert result.exit_code == 130
    assert "Interrupted by user" in result.output

    history = runner.invoke(cli, ["history", "--json"])
    runs = json.loads(history.output)
    assert runs[0]["status"] == "interrupted"
    assert [(t["name"], t["state"]) for t in runs[0]["targets"]] == [("Prepare", "succeeded"), ("Migrate", "failed")]
