"""
ECS Fargate service stack.

Runs a single container task in the public subnets of the network stack's
VPC. Tasks get public IPs (there are no NAT gateways) and accept HTTP from
anywhere through a dedicated security group. Container logs go to a
CloudWatch log group that is destroyed together with the stack.
"""

from typing import Optional

import aws_cdk as cdk
import structlog
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_iam as iam
from aws_cdk import aws_logs as logs
from constructs import Construct

from lab_infra.config.stack_schema import FargateServiceConfig, ProjectConfig
from lab_infra.stacks.outputs import add_output

logger = structlog.get_logger(__name__)

ECS_TASKS_PRINCIPAL = "ecs-tasks.amazonaws.com"
TASK_EXECUTION_POLICY = "service-role/AmazonECSTaskExecutionRolePolicy"


class FargateServiceStack(cdk.Stack):
    """ECS cluster, task definition and Fargate service."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        vpc: ec2.IVpc,
        config: FargateServiceConfig,
        project: ProjectConfig,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        name = project.name

        self.log_group = logs.LogGroup(
            self,
            f"{name}LogGroup",
            log_group_name=config.log_group_name,
            retention=logs.RetentionDays[config.log_retention],
            removal_policy=cdk.RemovalPolicy.DESTROY,
        )

        self.cluster = ecs.Cluster(
            self,
            f"{name}Cluster",
            cluster_name=config.cluster_name,
            vpc=vpc,
            container_insights_v2=(
                ecs.ContainerInsights.ENABLED
                if config.container_insights
                else ecs.ContainerInsights.DISABLED
            ),
        )

        # Used by the ECS agent: image pulls and log delivery
        execution_role = iam.Role(
            self,
            f"{name}TaskExecutionRole",
            role_name=config.execution_role_name,
            assumed_by=iam.ServicePrincipal(ECS_TASKS_PRINCIPAL),
            description="IAM role used by ECS to start Fargate tasks",
        )
        execution_role.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name(TASK_EXECUTION_POLICY)
        )

        # Used by the application inside the container
        task_role = iam.Role(
            self,
            f"{name}TaskRole",
            role_name=config.task_role_name,
            assumed_by=iam.ServicePrincipal(ECS_TASKS_PRINCIPAL),
            description="IAM role for the application running in Fargate tasks",
        )

        self.task_definition = ecs.FargateTaskDefinition(
            self,
            f"{name}TaskDefinition",
            family=config.task_family,
            cpu=config.cpu,
            memory_limit_mib=config.memory_limit_mib,
            execution_role=execution_role,
            task_role=task_role,
        )

        container_config = config.container
        self.container = self.task_definition.add_container(
            f"{name}Container",
            container_name=container_config.name,
            image=ecs.ContainerImage.from_registry(container_config.image),
            memory_limit_mib=container_config.memory_limit_mib,
            essential=container_config.essential,
            logging=ecs.LogDrivers.aws_logs(
                stream_prefix=container_config.stream_prefix,
                log_group=self.log_group,
            ),
            environment=dict(container_config.environment),
        )
        self.container.add_port_mappings(
            ecs.PortMapping(
                container_port=container_config.port,
                protocol=ecs.Protocol.TCP,
                name=container_config.port_name,
            )
        )

        self.security_group = ec2.SecurityGroup(
            self,
            f"{name}SecurityGroup",
            security_group_name=config.security_group_name,
            vpc=vpc,
            description=f"{name} Fargate service security group",
            allow_all_outbound=True,
        )
        self.security_group.add_ingress_rule(
            ec2.Peer.any_ipv4(),
            ec2.Port.tcp(config.ingress_port),
            "HTTP traffic from anywhere",
        )

        self.service = ecs.FargateService(
            self,
            f"{name}Service",
            service_name=config.service_name,
            cluster=self.cluster,
            task_definition=self.task_definition,
            desired_count=config.desired_count,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
            security_groups=[self.security_group],
            assign_public_ip=config.assign_public_ip,
            platform_version=ecs.FargatePlatformVersion.LATEST,
            max_healthy_percent=config.max_healthy_percent,
            min_healthy_percent=config.min_healthy_percent,
            health_check_grace_period=cdk.Duration.seconds(
                config.health_check_grace_period_seconds
            ),
        )

        self.scaling: Optional[ecs.ScalableTaskCount] = None
        if config.auto_scaling.enabled:
            self.scaling = self._add_auto_scaling(config)

        self._add_outputs(project)

        logger.info(
            "fargate_service_stack_defined",
            stack=construct_id,
            cluster=config.cluster_name,
            service=config.service_name,
            cpu=config.cpu,
            memory_mib=config.memory_limit_mib,
            image=container_config.image,
            auto_scaling=config.auto_scaling.enabled,
        )

    def _add_auto_scaling(self, config: FargateServiceConfig) -> ecs.ScalableTaskCount:
        scaling_config = config.auto_scaling
        scaling = self.service.auto_scale_task_count(
            min_capacity=scaling_config.min_capacity,
            max_capacity=scaling_config.max_capacity,
        )
        scaling.scale_on_cpu_utilization(
            "CpuScaling",
            target_utilization_percent=scaling_config.target_cpu_utilization_percent,
            scale_in_cooldown=cdk.Duration.seconds(scaling_config.scale_in_cooldown_seconds),
            scale_out_cooldown=cdk.Duration.seconds(scaling_config.scale_out_cooldown_seconds),
        )
        return scaling

    def _add_outputs(self, project: ProjectConfig) -> None:
        prefix = project.export_prefix
        add_output(self, "ClusterName", self.cluster.cluster_name, "Name of the ECS cluster", prefix)
        add_output(self, "ClusterArn", self.cluster.cluster_arn, "ARN of the ECS cluster", prefix)
        add_output(self, "ServiceName", self.service.service_name, "Name of the Fargate service", prefix)
        add_output(self, "ServiceArn", self.service.service_arn, "ARN of the Fargate service", prefix)
        add_output(
            self,
            "TaskDefinitionArn",
            self.task_definition.task_definition_arn,
            "ARN of the task definition",
            prefix,
        )
        add_output(
            self,
            "LogGroupName",
            self.log_group.log_group_name,
            "Name of the CloudWatch Logs group",
            prefix,
        )
