"""
Read-only monitoring of the deployed stacks.

Wraps the CloudFormation, ECS and CloudWatch Logs calls an operator would
otherwise run by hand (`describe-stacks`, `describe-services`,
`filter-log-events`).
"""

import time
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from lab_infra.core.exceptions import AwsOperationError, ResourceNotFoundError, StackNotFoundError
from lab_infra.ops.aws import aws_call

logger = structlog.get_logger(__name__)

MAX_LOG_PAGES = 10


@dataclass
class ServiceStatus:
    """Snapshot of an ECS service."""

    cluster: str
    service: str
    status: str
    desired_count: int
    running_count: int
    pending_count: int
    rollout_state: Optional[str] = None
    deployments: int = 0
    events: list[str] = field(default_factory=list)

    @property
    def is_steady(self) -> bool:
        """Running tasks match the desired count with a single completed deployment."""
        return (
            self.status == "ACTIVE"
            and self.deployments == 1
            and self.running_count == self.desired_count
            and self.pending_count == 0
            and self.rollout_state in (None, "COMPLETED")
        )


@dataclass
class LogEvent:
    timestamp: int
    stream: str
    message: str


class StackMonitor:
    """
    Query stack outputs, service health and container logs.

    Example:
        monitor = StackMonitor(get_session())
        outputs = monitor.get_stack_outputs("LabInfraFargateServiceStack")
        status = monitor.describe_service(outputs["ClusterName"], outputs["ServiceName"])
    """

    def __init__(self, session: Any):
        self._cloudformation = session.client("cloudformation")
        self._ecs = session.client("ecs")
        self._logs = session.client("logs")

    def _describe_stack(self, stack_name: str) -> dict[str, Any]:
        try:
            response = self._describe_stacks(stack_name)
        except AwsOperationError as e:
            # CloudFormation reports missing stacks as a generic ValidationError
            if "does not exist" in e.message:
                raise StackNotFoundError(stack_name) from e
            raise
        stacks = response.get("Stacks", [])
        if not stacks:
            raise StackNotFoundError(stack_name)
        return stacks[0]

    @aws_call("cloudformation", "DescribeStacks")
    def _describe_stacks(self, stack_name: str) -> dict[str, Any]:
        return self._cloudformation.describe_stacks(StackName=stack_name)

    def get_stack_outputs(self, stack_name: str) -> dict[str, str]:
        """Outputs of a deployed stack as {OutputKey: OutputValue}."""
        stack = self._describe_stack(stack_name)
        return {o["OutputKey"]: o["OutputValue"] for o in stack.get("Outputs", [])}

    def get_stack_status(self, stack_name: str) -> str:
        """CloudFormation status, e.g. CREATE_COMPLETE or UPDATE_ROLLBACK_COMPLETE."""
        return self._describe_stack(stack_name)["StackStatus"]

    @aws_call("ecs", "DescribeServices")
    def describe_service(self, cluster: str, service: str, max_events: int = 5) -> ServiceStatus:
        response = self._ecs.describe_services(cluster=cluster, services=[service])
        services = response.get("services", [])
        if not services:
            failures = [f.get("reason", "") for f in response.get("failures", [])]
            raise ResourceNotFoundError(
                "ecs",
                f"Service {service} not found in cluster {cluster}",
                {"failures": failures},
            )

        data = services[0]
        deployments = data.get("deployments", [])
        primary = next((d for d in deployments if d.get("status") == "PRIMARY"), {})
        return ServiceStatus(
            cluster=cluster,
            service=data.get("serviceName", service),
            status=data.get("status", "UNKNOWN"),
            desired_count=data.get("desiredCount", 0),
            running_count=data.get("runningCount", 0),
            pending_count=data.get("pendingCount", 0),
            rollout_state=primary.get("rolloutState"),
            deployments=len(deployments),
            events=[e.get("message", "") for e in data.get("events", [])[:max_events]],
        )

    @aws_call("logs", "FilterLogEvents")
    def recent_log_events(
        self,
        log_group: str,
        minutes: int = 15,
        limit: int = 100,
        now_ms: Optional[int] = None,
    ) -> list[LogEvent]:
        """
        The newest `limit` log events of the last `minutes`, oldest first.

        CloudWatch Logs returns events in ascending order, so every page of
        the window is read (up to MAX_LOG_PAGES) before trimming.
        """
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        start_ms = now_ms - minutes * 60 * 1000

        events: list[LogEvent] = []
        kwargs: dict[str, Any] = {"logGroupName": log_group, "startTime": start_ms}
        for _ in range(MAX_LOG_PAGES):
            response = self._logs.filter_log_events(**kwargs)
            for event in response.get("events", []):
                events.append(
                    LogEvent(
                        timestamp=event["timestamp"],
                        stream=event.get("logStreamName", ""),
                        message=event.get("message", "").rstrip("\n"),
                    )
                )
            next_token = response.get("nextToken")
            if not next_token:
                break
            kwargs["nextToken"] = next_token

        events.sort(key=lambda e: e.timestamp)
        logger.debug("log_events_fetched", log_group=log_group, count=len(events))
        return events[-limit:] if limit > 0 else []
