"""
Network foundation stack.

A VPC spread over `max_azs` availability zones with one subnet per configured
subnet group per AZ. The reference layout has no NAT gateways: public subnets
route through the internet gateway and isolated subnets have no egress.
"""

from typing import Optional

import aws_cdk as cdk
import structlog
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_logs as logs
from constructs import Construct

from lab_infra.config.stack_schema import NetworkConfig, ProjectConfig, SubnetKind
from lab_infra.stacks.outputs import SUBNET_OUTPUT_PATTERNS, add_output

logger = structlog.get_logger(__name__)

SUBNET_TYPES = {
    SubnetKind.PUBLIC: ec2.SubnetType.PUBLIC,
    SubnetKind.PRIVATE_ISOLATED: ec2.SubnetType.PRIVATE_ISOLATED,
    SubnetKind.PRIVATE_WITH_EGRESS: ec2.SubnetType.PRIVATE_WITH_EGRESS,
}


class NetworkStack(cdk.Stack):
    """VPC and subnets shared by the other stacks."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: NetworkConfig,
        project: ProjectConfig,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.vpc = ec2.Vpc(
            self,
            f"{project.name}Vpc",
            ip_addresses=ec2.IpAddresses.cidr(config.cidr),
            max_azs=config.max_azs,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name=subnet.name,
                    subnet_type=SUBNET_TYPES[subnet.subnet_type],
                    cidr_mask=subnet.cidr_mask,
                )
                for subnet in config.subnets
            ],
            nat_gateways=config.nat_gateways,
        )

        self.flow_log: Optional[ec2.FlowLog] = None
        if config.flow_logs.enabled:
            self.flow_log = self._add_flow_log(config, project)

        self._add_outputs(project)

        logger.info(
            "network_stack_defined",
            stack=construct_id,
            cidr=config.cidr,
            max_azs=config.max_azs,
            subnets=[s.name for s in config.subnets],
            flow_logs=config.flow_logs.enabled,
        )

    def _add_flow_log(self, config: NetworkConfig, project: ProjectConfig) -> ec2.FlowLog:
        log_group = logs.LogGroup(
            self,
            f"{project.name}VpcFlowLogGroup",
            log_group_name=config.flow_logs.log_group_name,
            retention=logs.RetentionDays.ONE_WEEK,
            removal_policy=cdk.RemovalPolicy.DESTROY,
        )
        return self.vpc.add_flow_log(
            f"{project.name}VpcFlowLog",
            destination=ec2.FlowLogDestination.to_cloud_watch_logs(log_group),
            traffic_type=getattr(ec2.FlowLogTrafficType, config.flow_logs.traffic_type),
        )

    def _add_outputs(self, project: ProjectConfig) -> None:
        prefix = project.export_prefix
        public_id, private_id = SUBNET_OUTPUT_PATTERNS
        add_output(self, "VpcId", self.vpc.vpc_id, "ID of the VPC", prefix)
        add_output(self, "VpcCidr", self.vpc.vpc_cidr_block, "CIDR block of the VPC", prefix)

        for index, subnet in enumerate(self.vpc.public_subnets, start=1):
            add_output(
                self,
                public_id.format(index=index),
                subnet.subnet_id,
                f"ID of public subnet {index}{_az_suffix(subnet)}",
                prefix,
            )

        private_subnets = [*self.vpc.private_subnets, *self.vpc.isolated_subnets]
        for index, subnet in enumerate(private_subnets, start=1):
            add_output(
                self,
                private_id.format(index=index),
                subnet.subnet_id,
                f"ID of private subnet {index}{_az_suffix(subnet)}",
                prefix,
            )


def _az_suffix(subnet: ec2.ISubnet) -> str:
    # Output descriptions must be literals; env-agnostic AZs are tokens.
    az = subnet.availability_zone
    if cdk.Token.is_unresolved(az):
        return ""
    return f" (AZ: {az})"
