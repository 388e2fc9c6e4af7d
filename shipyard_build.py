# shipyard_build.py
# Example build: local dependencies, image build, chart deploy and a smoke check.
#   shipyard run Deploy --environment staging --registry ghcr.io/acme
from __future__ import annotations

from shipyard import build, builder, service, service_down, service_up, set_build_number, target, tool

SERVICES = [
    service(
        "postgres",
        "postgres:16",
        ports=["5432:5432"],
        env={"POSTGRES_PASSWORD": "postgres"},
    ),
    service("rabbitmq", "rabbitmq:3-management", ports=["5672:5672", "15672:15672"]),
]


def targets():
    return build(
        target("GetBuildNumber", set_build_number(), description="git commit count + short sha"),

        # Local environment
        target("StartDependencies", depends_on=["StartPostgres", "StartRabbit"]),
        target("StartPostgres", service_up("postgres")),
        target("StartRabbit", service_up("rabbitmq")),
        target("StopDependencies", depends_on=["StopPostgres", "StopRabbit"]),
        target("StopPostgres", service_down("postgres")),
        target("StopRabbit", service_down("rabbitmq")),
        target("Teardown", service_down("postgres", remove=True), depends_on=["StopDependencies"]),

        # Build -> package -> deploy -> verify
        target(
            "Test",
            tool("dotnet", "test", "--configuration", "Release"),
            depends_on=["StartDependencies"],
        ),
        target(
            "BuildImage",
            tool("docker", "build", "--tag", "{registry}/orders-api:{build_number}", "."),
            depends_on=["GetBuildNumber", "Test"],
        ),
        target(
            "PushImage",
            tool("docker", "push", "{registry}/orders-api:{build_number}"),
            depends_on=["BuildImage"],
        ),
        (
            builder("Deploy")
            .depends_on("PushImage")
            .describe("helm upgrade into the target namespace")
            .runs(
                "helm", "upgrade", "--install", "orders-api", "./charts/orders-api",
                "--namespace", "{environment}",
                "--set", "image.repository={registry}/orders-api",
                "--set", "image.tag={build_number}",
                "--wait",
            )
            .build()
        ),
        target(
            "Verify",
            tool("kubectl", "rollout", "status", "deployment/orders-api", "--namespace", "{environment}"),
            depends_on=["Deploy"],
        ),
        target(
            "DeployServerless",
            tool("sam", "deploy", "--stack-name", "orders-{environment}", "--no-confirm-changeset"),
            depends_on=["GetBuildNumber"],
            description="SAM stack for the async workers",
        ),
    )
