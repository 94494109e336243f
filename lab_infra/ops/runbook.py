"""
Operator runbooks.

Each runbook is the ordered list of shell commands for one lifecycle task,
rendered with the concrete names from the active configuration so that it can
be printed and pasted, or followed step by step.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from lab_infra.config.settings import Settings
from lab_infra.config.stack_schema import LabInfraConfig


class RunbookNotFoundError(KeyError):
    """Raised when an unknown runbook is requested."""


@dataclass(frozen=True)
class RunbookStep:
    title: str
    command: str


def _aws(settings: Settings, command: str) -> str:
    suffix = f" --region {settings.region}"
    if settings.aws_profile:
        suffix += f" --profile {settings.aws_profile}"
    return f"aws {command}{suffix}"


def _bootstrap(config: LabInfraConfig, settings: Settings) -> list[RunbookStep]:
    account = settings.account or "<ACCOUNT_ID>"
    return [
        RunbookStep("Check the caller identity", _aws(settings, "sts get-caller-identity")),
        RunbookStep("Install the CDK CLI", "npm install -g aws-cdk"),
        RunbookStep("Install the project", "python -m pip install -e '.[test]'"),
        RunbookStep("Bootstrap the environment", f"cdk bootstrap aws://{account}/{settings.region}"),
    ]


def _deploy(config: LabInfraConfig, settings: Settings) -> list[RunbookStep]:
    steps = [
        RunbookStep("Synthesize all stacks", "cdk synth --all"),
        RunbookStep("Review changes", "cdk diff"),
    ]
    for name in config.deploy_order():
        steps.append(
            RunbookStep(f"Deploy {name}", f"cdk deploy {name} --require-approval never")
        )
    return steps


def _monitor(config: LabInfraConfig, settings: Settings) -> list[RunbookStep]:
    service = config.fargate_service
    steps = [
        RunbookStep(
            f"Stack status of {name}",
            _aws(
                settings,
                f"cloudformation describe-stacks --stack-name {name} "
                "--query 'Stacks[0].StackStatus' --output text",
            ),
        )
        for name in config.deploy_order()
    ]
    steps += [
        RunbookStep(
            "Service health",
            _aws(
                settings,
                f"ecs describe-services --cluster {service.cluster_name} "
                f"--services {service.service_name} "
                "--query 'services[0].{status:status,desired:desiredCount,running:runningCount}'",
            ),
        ),
        RunbookStep(
            "Running tasks",
            _aws(
                settings,
                f"ecs list-tasks --cluster {service.cluster_name} --service-name {service.service_name}",
            ),
        ),
        RunbookStep(
            "Follow container logs",
            _aws(settings, f"logs tail {service.log_group_name} --follow"),
        ),
        RunbookStep(
            "List exported outputs",
            _aws(
                settings,
                f"cloudformation list-exports "
                f"--query \"Exports[?starts_with(Name, '{config.project.export_prefix}-')]\"",
            ),
        ),
    ]
    return steps


def _pipeline(config: LabInfraConfig, settings: Settings) -> list[RunbookStep]:
    pipeline = config.pipeline
    account = settings.account or "<ACCOUNT_ID>"
    bucket = f"{pipeline.source_bucket_prefix}-{account}-{settings.region}"
    key = pipeline.source_object_key
    return [
        RunbookStep("Package the project", f"lab-infra package-source --output {key}"),
        RunbookStep("Upload the source archive", _aws(settings, f"s3 cp {key} s3://{bucket}/{key}")),
        RunbookStep(
            "Start the pipeline",
            _aws(settings, f"codepipeline start-pipeline-execution --name {pipeline.pipeline_name}"),
        ),
        RunbookStep(
            "Check the pipeline state",
            _aws(settings, f"codepipeline get-pipeline-state --name {pipeline.pipeline_name}"),
        ),
    ]


def _teardown(config: LabInfraConfig, settings: Settings) -> list[RunbookStep]:
    # Reverse dependency order: the service must go before its VPC
    return [
        RunbookStep(f"Destroy {name}", f"cdk destroy {name} --force")
        for name in teardown_order(config)
    ] + [
        RunbookStep(
            "Verify nothing is left",
            _aws(
                settings,
                "cloudformation list-stacks --stack-status-filter CREATE_COMPLETE UPDATE_COMPLETE "
                f"--query \"StackSummaries[?starts_with(StackName, '{config.project.name}')].StackName\"",
            ),
        ),
    ]


RUNBOOKS: dict[str, Callable[[LabInfraConfig, Settings], list[RunbookStep]]] = {
    "bootstrap": _bootstrap,
    "deploy": _deploy,
    "monitor": _monitor,
    "pipeline": _pipeline,
    "teardown": _teardown,
}


def render_runbook(name: str, config: LabInfraConfig, settings: Settings) -> list[RunbookStep]:
    """Steps of runbook `name` for this configuration."""
    try:
        builder = RUNBOOKS[name]
    except KeyError:
        raise RunbookNotFoundError(
            f"Unknown runbook {name!r}; available: {', '.join(sorted(RUNBOOKS))}"
        ) from None
    return builder(config, settings)


def format_runbook(steps: list[RunbookStep], title: Optional[str] = None) -> str:
    """Numbered, copy-pasteable rendering of a runbook."""
    lines = [f"# {title}"] if title else []
    for index, step in enumerate(steps, start=1):
        lines.append(f"# {index}. {step.title}")
        lines.append(step.command)
    return "\n".join(lines)


def teardown_order(config: LabInfraConfig) -> list[str]:
    """Stack names in the order they must be destroyed."""
    return list(reversed(config.deploy_order()))
