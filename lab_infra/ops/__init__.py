"""
Operator tooling.

- cdk_cli: bootstrap/synth/diff/deploy/destroy through the cdk CLI
- aws: boto3 session and AWS error translation
- pipeline_ops: source packaging, upload and pipeline executions
- monitoring: stack outputs, service health and container logs
- runbook: printable command sequences for each lifecycle task
"""

from lab_infra.ops.aws import aws_call, get_session, translate_client_error
from lab_infra.ops.cdk_cli import CdkCli
from lab_infra.ops.monitoring import LogEvent, ServiceStatus, StackMonitor
from lab_infra.ops.pipeline_ops import (
    PipelineOperator,
    PipelineState,
    StageState,
    package_source,
)
from lab_infra.ops.runbook import (
    RUNBOOKS,
    RunbookNotFoundError,
    RunbookStep,
    format_runbook,
    render_runbook,
    teardown_order,
)

__all__ = [
    "CdkCli",
    "LogEvent",
    "PipelineOperator",
    "PipelineState",
    "RUNBOOKS",
    "RunbookNotFoundError",
    "RunbookStep",
    "ServiceStatus",
    "StackMonitor",
    "StageState",
    "aws_call",
    "format_runbook",
    "get_session",
    "package_source",
    "render_runbook",
    "teardown_order",
    "translate_client_error",
]
