"""
CDK stacks of the lab environment.

- NetworkStack: VPC and subnets
- FargateServiceStack: ECS cluster, task definition and Fargate service
- PipelineStack: S3 source, CodeBuild synth and CloudFormation deploys
"""

from lab_infra.stacks.fargate_service_stack import FargateServiceStack
from lab_infra.stacks.network_stack import NetworkStack
from lab_infra.stacks.outputs import add_output, export_name
from lab_infra.stacks.pipeline_stack import PipelineStack

__all__ = [
    "FargateServiceStack",
    "NetworkStack",
    "PipelineStack",
    "add_output",
    "export_name",
]
