"""
Stack Configuration Schema.

Pydantic models describing every parameter handed to the CDK constructs of the
three lab stacks. Defaults reproduce the reference lab environment:

- NetworkStack: a /16 VPC over two AZs with public and isolated /24 subnets
- FargateServiceStack: one 0.25 vCPU / 512 MiB task behind a public IP
- PipelineStack: S3 source -> CodeBuild `cdk synth` -> CloudFormation deploys

The models do not import aws_cdk and validate without a jsii runtime. Only
constraints AWS would otherwise reject at deploy time are checked here.
"""

import ipaddress
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Enums for Type Safety
# =============================================================================

class SubnetKind(str, Enum):
    """Subnet types supported by the network stack."""
    PUBLIC = "public"
    PRIVATE_ISOLATED = "private_isolated"
    PRIVATE_WITH_EGRESS = "private_with_egress"


class StackKey(str, Enum):
    """Logical keys of the stacks in the app."""
    NETWORK = "network"
    FARGATE_SERVICE = "fargate_service"
    PIPELINE = "pipeline"


# Memory (MiB) accepted by Fargate for each task CPU size.
FARGATE_MEMORY_BY_CPU: dict[int, tuple[int, ...]] = {
    256: (512, 1024, 2048),
    512: tuple(range(1024, 4096 + 1, 1024)),
    1024: tuple(range(2048, 8192 + 1, 1024)),
    2048: tuple(range(4096, 16384 + 1, 1024)),
    4096: tuple(range(8192, 30720 + 1, 1024)),
    8192: tuple(range(16384, 61440 + 1, 4096)),
    16384: tuple(range(32768, 122880 + 1, 8192)),
}

LOG_RETENTION_NAMES = (
    "ONE_DAY",
    "THREE_DAYS",
    "FIVE_DAYS",
    "ONE_WEEK",
    "TWO_WEEKS",
    "ONE_MONTH",
    "TWO_MONTHS",
    "THREE_MONTHS",
    "FOUR_MONTHS",
    "FIVE_MONTHS",
    "SIX_MONTHS",
    "ONE_YEAR",
    "EIGHTEEN_MONTHS",
    "TWO_YEARS",
    "FIVE_YEARS",
    "TEN_YEARS",
    "INFINITE",
)


class SchemaModel(BaseModel):
    """Base for config sections; unknown keys are errors, not silently dropped."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# Project
# =============================================================================

class StackNames(SchemaModel):
    """CloudFormation stack names, also used as construct ids."""
    network: str = Field(default="LabInfraNetworkStack", min_length=1)
    fargate_service: str = Field(default="LabInfraFargateServiceStack", min_length=1)
    pipeline: str = Field(default="LabInfraPipelineStack", min_length=1)

    def get(self, key: StackKey | str) -> str:
        return getattr(self, StackKey(key).value)

    @model_validator(mode="after")
    def validate_distinct(self) -> "StackNames":
        names = [self.network, self.fargate_service, self.pipeline]
        if len(set(names)) != len(names):
            raise ValueError(f"Stack names must be distinct: {names}")
        return self


class StackDescriptions(SchemaModel):
    """Human-readable stack descriptions shown in the CloudFormation console."""
    network: str = "Lab infrastructure - network foundation (VPC, subnets)"
    fargate_service: str = "Lab infrastructure - ECS Fargate service"
    pipeline: str = "Lab infrastructure - CI/CD pipeline"


class ProjectConfig(SchemaModel):
    """Project-wide naming and tagging."""
    name: str = Field(default="LabInfra", min_length=1, description="Construct id prefix")
    slug: str = Field(
        default="lab-infra",
        pattern=r"^[a-z0-9][a-z0-9-]*$",
        description="Lowercase prefix for physical resource names",
    )
    export_prefix: str = Field(
        default="LabInfra",
        min_length=1,
        description="Prefix of CloudFormation export names",
    )
    stack_names: StackNames = Field(default_factory=StackNames)
    stack_descriptions: StackDescriptions = Field(default_factory=StackDescriptions)
    tags: dict[str, str] = Field(
        default_factory=lambda: {
            "Project": "LabInfra",
            "Purpose": "Learning",
            "Environment": "Development",
        },
        description="Tags applied to every taggable resource in the app",
    )


# =============================================================================
# Network
# =============================================================================

class SubnetConfig(SchemaModel):
    """One subnet group, replicated in every availability zone."""
    name: str = Field(..., min_length=1)
    subnet_type: SubnetKind
    cidr_mask: int = Field(default=24, ge=16, le=28)


class FlowLogConfig(SchemaModel):
    """VPC flow log delivery to CloudWatch Logs."""
    enabled: bool = False
    traffic_type: Literal["ALL", "ACCEPT", "REJECT"] = "ALL"
    log_group_name: str | None = Field(
        default=None,
        description="Explicit log group name; generated when omitted",
    )


class NetworkConfig(SchemaModel):
    """Parameters of the VPC construct."""
    cidr: str = Field(default="10.0.0.0/16", description="VPC IPv4 CIDR block")
    max_azs: int = Field(default=2, ge=1, le=6)
    nat_gateways: int = Field(default=0, ge=0)
    subnets: list[SubnetConfig] = Field(
        default_factory=lambda: [
            SubnetConfig(name="PublicSubnet", subnet_type=SubnetKind.PUBLIC, cidr_mask=24),
            SubnetConfig(
                name="PrivateSubnet",
                subnet_type=SubnetKind.PRIVATE_ISOLATED,
                cidr_mask=24,
            ),
        ],
        min_length=1,
    )
    flow_logs: FlowLogConfig = Field(default_factory=FlowLogConfig)

    @field_validator("cidr")
    @classmethod
    def validate_cidr(cls, v: str) -> str:
        try:
            network = ipaddress.IPv4Network(v, strict=True)
        except ValueError as e:
            raise ValueError(f"Invalid VPC CIDR {v!r}: {e}") from e
        if not 16 <= network.prefixlen <= 28:
            raise ValueError(f"VPC CIDR prefix must be between /16 and /28, got /{network.prefixlen}")
        return str(network)

    @property
    def prefix_length(self) -> int:
        return ipaddress.IPv4Network(self.cidr).prefixlen

    def has_subnet_type(self, kind: SubnetKind) -> bool:
        return any(s.subnet_type == kind for s in self.subnets)

    @model_validator(mode="after")
    def validate_subnet_layout(self) -> "NetworkConfig":
        names = [s.name for s in self.subnets]
        if len(set(names)) != len(names):
            raise ValueError(f"Subnet names must be unique: {names}")

        prefix = self.prefix_length
        for subnet in self.subnets:
            if subnet.cidr_mask < prefix:
                raise ValueError(
                    f"Subnet {subnet.name} mask /{subnet.cidr_mask} is larger than the VPC /{prefix}"
                )

        required = sum(self.max_azs * 2 ** (32 - s.cidr_mask) for s in self.subnets)
        available = 2 ** (32 - prefix)
        if required > available:
            raise ValueError(
                f"Subnets need {required} addresses across {self.max_azs} AZs "
                f"but {self.cidr} only has {available}"
            )

        if self.has_subnet_type(SubnetKind.PRIVATE_WITH_EGRESS):
            if self.nat_gateways == 0:
                raise ValueError("private_with_egress subnets require at least one NAT gateway")
            if not self.has_subnet_type(SubnetKind.PUBLIC):
                raise ValueError("NAT gateways require a public subnet")
        return self


# =============================================================================
# Fargate Service
# =============================================================================

class ContainerConfig(SchemaModel):
    """The single application container of the task definition."""
    name: str = Field(default="lab-infra-container", min_length=1)
    image: str = Field(default="amazon/amazon-ecs-sample", min_length=1)
    memory_limit_mib: int = Field(default=512, gt=0)
    essential: bool = True
    port: int = Field(default=80, ge=1, le=65535)
    port_name: str = "http"
    environment: dict[str, str] = Field(
        default_factory=lambda: {
            "APP_NAME": "LabInfra",
            "ENVIRONMENT": "development",
        }
    )
    stream_prefix: str = Field(default="lab-infra", min_length=1)


class AutoScalingConfig(SchemaModel):
    """Target-tracking scaling on service CPU utilization."""
    enabled: bool = False
    min_capacity: int = Field(default=1, ge=0)
    max_capacity: int = Field(default=10, ge=1)
    target_cpu_utilization_percent: float = Field(default=70, gt=0, le=100)
    scale_in_cooldown_seconds: int = Field(default=300, ge=0)
    scale_out_cooldown_seconds: int = Field(default=300, ge=0)

    @model_validator(mode="after")
    def validate_capacity(self) -> "AutoScalingConfig":
        if self.min_capacity > self.max_capacity:
            raise ValueError(
                f"min_capacity ({self.min_capacity}) exceeds max_capacity ({self.max_capacity})"
            )
        return self


class FargateServiceConfig(SchemaModel):
    """Parameters of the ECS cluster, task definition and Fargate service."""
    cluster_name: str = "lab-infra-cluster"
    container_insights: bool = False

    log_group_name: str = "/aws/ecs/lab-infra"
    log_retention: str = Field(default="ONE_WEEK", description="logs.RetentionDays member name")

    task_family: str = "lab-infra-task"
    cpu: int = Field(default=256, description="Task CPU units")
    memory_limit_mib: int = Field(default=512, description="Task memory in MiB")
    execution_role_name: str = "LabInfraTaskExecutionRole"
    task_role_name: str = "LabInfraTaskRole"

    security_group_name: str = "lab-infra-fargate-sg"
    ingress_port: int = Field(default=80, ge=1, le=65535)

    service_name: str = "lab-infra-service"
    desired_count: int = Field(default=1, ge=0)
    assign_public_ip: bool = True
    min_healthy_percent: int = Field(default=50, ge=0, le=100)
    max_healthy_percent: int = Field(default=200, ge=100)
    health_check_grace_period_seconds: int = Field(default=60, ge=0)

    container: ContainerConfig = Field(default_factory=ContainerConfig)
    auto_scaling: AutoScalingConfig = Field(default_factory=AutoScalingConfig)

    @field_validator("log_retention")
    @classmethod
    def validate_log_retention(cls, v: str) -> str:
        name = v.strip().upper()
        if name not in LOG_RETENTION_NAMES:
            raise ValueError(f"Unknown log retention {v!r}; expected one of {', '.join(LOG_RETENTION_NAMES)}")
        return name

    @model_validator(mode="after")
    def validate_task_size(self) -> "FargateServiceConfig":
        allowed = FARGATE_MEMORY_BY_CPU.get(self.cpu)
        if allowed is None:
            raise ValueError(
                f"Unsupported Fargate cpu {self.cpu}; expected one of {sorted(FARGATE_MEMORY_BY_CPU)}"
            )
        if self.memory_limit_mib not in allowed:
            raise ValueError(
                f"Fargate cpu {self.cpu} does not support {self.memory_limit_mib} MiB; "
                f"allowed: {allowed[0]}-{allowed[-1]}"
            )
        if self.container.memory_limit_mib > self.memory_limit_mib:
            raise ValueError(
                f"Container memory {self.container.memory_limit_mib} MiB exceeds task memory "
                f"{self.memory_limit_mib} MiB"
            )
        if self.min_healthy_percent > self.max_healthy_percent:
            raise ValueError("min_healthy_percent cannot exceed max_healthy_percent")
        if self.auto_scaling.enabled and not (
            self.auto_scaling.min_capacity <= self.desired_count <= self.auto_scaling.max_capacity
        ):
            raise ValueError(
                f"desired_count {self.desired_count} is outside the auto scaling range "
                f"{self.auto_scaling.min_capacity}-{self.auto_scaling.max_capacity}"
            )
        return self


# =============================================================================
# Pipeline
# =============================================================================

class BuildConfig(SchemaModel):
    """CodeBuild project that synthesizes the CDK app."""
    project_name: str = "lab-infra-build"
    description: str = "Lab infra CDK project build"
    role_name: str = "LabInfraCodeBuildRole"
    compute_type: Literal["SMALL", "MEDIUM", "LARGE", "X2_LARGE"] = "SMALL"
    timeout_minutes: int = Field(default=15, ge=5, le=480)
    python_version: str = "3.12"
    nodejs_version: str = "20"
    cdk_cli_version: str = Field(default="2", description="npm version spec for aws-cdk")
    admin_access: bool = Field(
        default=True,
        description="Attach AdministratorAccess so synth can run context lookups",
    )


class PipelineConfig(SchemaModel):
    """Buckets, roles and stages of the CodePipeline."""
    pipeline_name: str = "lab-infra-pipeline"
    role_name: str = "LabInfraPipelineRole"
    source_bucket_prefix: str = Field(default="lab-infra-source", pattern=r"^[a-z0-9][a-z0-9.-]*$")
    artifact_bucket_prefix: str = Field(default="lab-infra-artifacts", pattern=r"^[a-z0-9][a-z0-9.-]*$")
    source_object_key: str = Field(default="source.zip", min_length=1)
    artifact_expiration_days: int = Field(default=30, ge=1)
    restart_execution_on_update: bool = True
    deploy_stacks: list[StackKey] = Field(
        default_factory=lambda: [StackKey.NETWORK, StackKey.FARGATE_SERVICE],
        min_length=1,
        description="Stacks deployed by the Deploy stage, in run order",
    )
    build: BuildConfig = Field(default_factory=BuildConfig)

    @field_validator("deploy_stacks")
    @classmethod
    def validate_deploy_stacks(cls, v: list[StackKey]) -> list[StackKey]:
        if StackKey.PIPELINE in v:
            raise ValueError("The pipeline stack cannot deploy itself")
        if len(set(v)) != len(v):
            raise ValueError(f"Duplicate entries in deploy_stacks: {[k.value for k in v]}")
        if StackKey.FARGATE_SERVICE in v and StackKey.NETWORK in v:
            if v.index(StackKey.FARGATE_SERVICE) < v.index(StackKey.NETWORK):
                raise ValueError("The network stack must be deployed before the fargate service stack")
        return v


# =============================================================================
# Root
# =============================================================================

class LabInfraConfig(SchemaModel):
    """Complete configuration of the CDK app."""
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    fargate_service: FargateServiceConfig = Field(default_factory=FargateServiceConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    @model_validator(mode="after")
    def validate_service_placement(self) -> "LabInfraConfig":
        if not self.network.has_subnet_type(SubnetKind.PUBLIC):
            raise ValueError("The Fargate service is placed in public subnets; define a public subnet")
        return self

    def stack_name(self, key: StackKey | str) -> str:
        return self.project.stack_names.get(key)

    def deploy_order(self) -> list[str]:
        """Stack names in dependency order (network first)."""
        return [self.stack_name(k) for k in StackKey]
