"""
Core utilities shared by the stacks and the operator tooling.

- exceptions: error taxonomy with retryable/permanent categories
- logging: structlog configuration
"""

from lab_infra.core.exceptions import (
    AwsAccessDeniedError,
    AwsOperationError,
    AwsThrottlingError,
    CommandError,
    CommandTimeoutError,
    ConfigNotFoundError,
    ConfigurationError,
    ConfigValidationError,
    LabInfraError,
    PermanentError,
    PipelineExecutionError,
    ResourceNotFoundError,
    RetryableError,
    SourcePackagingError,
    StackNotFoundError,
)
from lab_infra.core.logging import configure_logging

__all__ = [
    "AwsAccessDeniedError",
    "AwsOperationError",
    "AwsThrottlingError",
    "CommandError",
    "CommandTimeoutError",
    "ConfigNotFoundError",
    "ConfigurationError",
    "ConfigValidationError",
    "LabInfraError",
    "PermanentError",
    "PipelineExecutionError",
    "ResourceNotFoundError",
    "RetryableError",
    "SourcePackagingError",
    "StackNotFoundError",
    "configure_logging",
]
