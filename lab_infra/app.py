"""
CDK app assembly.

Instantiates the three stacks against one deployment environment, wires the
network stack's VPC into the Fargate service stack and tags everything with
the project tags.
"""

from dataclasses import dataclass
from typing import Any, Optional

import aws_cdk as cdk
import structlog

from lab_infra.config.settings import Settings, get_settings
from lab_infra.config.stack_schema import LabInfraConfig, StackKey
from lab_infra.stacks.fargate_service_stack import FargateServiceStack
from lab_infra.stacks.network_stack import NetworkStack
from lab_infra.stacks.pipeline_stack import PipelineStack

logger = structlog.get_logger(__name__)


@dataclass
class LabInfraStacks:
    """The stacks of one app, in dependency order."""

    network: NetworkStack
    fargate_service: FargateServiceStack
    pipeline: PipelineStack

    def all(self) -> list[cdk.Stack]:
        return [self.network, self.fargate_service, self.pipeline]


def deployment_environment(settings: Settings) -> cdk.Environment:
    """Environment from CDK_DEFAULT_ACCOUNT / CDK_DEFAULT_REGION."""
    return cdk.Environment(account=settings.account, region=settings.region)


def context_values(app: cdk.App, keys: tuple[str, ...]) -> dict[str, Any]:
    """Collect the given context keys that are set on the app."""
    values = {}
    for key in keys:
        value = app.node.try_get_context(key)
        if value is not None:
            values[key] = value
    return values


def build_app(
    app: cdk.App,
    config: LabInfraConfig,
    settings: Optional[Settings] = None,
) -> LabInfraStacks:
    """
    Declare every stack of the lab environment on `app`.

    Args:
        app: Root CDK app.
        config: Validated stack configuration.
        settings: Runtime settings; defaults to the cached environment settings.

    Returns:
        The created stacks.
    """
    settings = settings or get_settings()
    env = deployment_environment(settings)
    project = config.project
    descriptions = project.stack_descriptions

    network = NetworkStack(
        app,
        config.stack_name(StackKey.NETWORK),
        config=config.network,
        project=project,
        env=env,
        description=descriptions.network,
    )

    fargate_service = FargateServiceStack(
        app,
        config.stack_name(StackKey.FARGATE_SERVICE),
        vpc=network.vpc,
        config=config.fargate_service,
        project=project,
        env=env,
        description=descriptions.fargate_service,
    )
    fargate_service.add_dependency(network)

    pipeline = PipelineStack(
        app,
        config.stack_name(StackKey.PIPELINE),
        config=config.pipeline,
        project=project,
        env=env,
        description=descriptions.pipeline,
    )

    for key, value in project.tags.items():
        cdk.Tags.of(app).add(key, value)

    logger.info(
        "app_defined",
        account=settings.account,
        region=settings.region,
        environment=settings.environment,
        stacks=config.deploy_order(),
    )

    return LabInfraStacks(network=network, fargate_service=fargate_service, pipeline=pipeline)
