"""
Named stack outputs.

Every output is exported as `{export_prefix}-{OutputId}` so that operators and
downstream stacks can resolve identifiers with `Fn::ImportValue` or
`aws cloudformation list-exports`.
"""

import aws_cdk as cdk
from constructs import Construct

# Output ids per stack. Subnet outputs are numbered per AZ at synth time.
NETWORK_OUTPUTS = ("VpcId", "VpcCidr")
SUBNET_OUTPUT_PATTERNS = ("PublicSubnet{index}Id", "PrivateSubnet{index}Id")
FARGATE_SERVICE_OUTPUTS = (
    "ClusterName",
    "ClusterArn",
    "ServiceName",
    "ServiceArn",
    "TaskDefinitionArn",
    "LogGroupName",
)
PIPELINE_OUTPUTS = (
    "PipelineName",
    "PipelineArn",
    "SourceBucketName",
    "BuildProjectName",
)


def export_name(export_prefix: str, output_id: str) -> str:
    """Export name of an output, e.g. `LabInfra-VpcId`."""
    return f"{export_prefix}-{output_id}"


def add_output(
    scope: Construct,
    output_id: str,
    value: str,
    description: str,
    export_prefix: str,
) -> cdk.CfnOutput:
    """Declare an exported CfnOutput on `scope`."""
    return cdk.CfnOutput(
        scope,
        output_id,
        value=value,
        description=description,
        export_name=export_name(export_prefix, output_id),
    )
