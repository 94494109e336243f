"""
Errors raised by lab-infra tooling.

Every error carries a short message plus a `details` mapping that is logged
as structured fields by the CLI. Errors split into two families:
`RetryableError` (the same call may succeed later, e.g. an AWS throttle) and
`PermanentError` (input or account state has to change first). The
`aws_call` decorator retries only the former.

CloudFormation reports provisioning failures itself, so nothing here models
rollbacks or drift.
"""

from typing import Any, Optional


# =============================================================================
# Base Exceptions
# =============================================================================


class LabInfraError(Exception):
    """Root of the lab-infra error tree."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{key}={value!r}" for key, value in self.details.items())
        return f"{self.message} ({context})"


class RetryableError(LabInfraError):
    """The operation may succeed if repeated unchanged."""


class PermanentError(LabInfraError):
    """Repeating the operation cannot help until its input changes."""


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PermanentError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)


class ConfigNotFoundError(ConfigurationError):
    """Raised when an explicitly requested config file does not exist."""

    pass


class ConfigValidationError(PermanentError):
    """Raised when a configuration fails schema validation."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        self.errors = errors or []
        details = {"errors": self.errors} if self.errors else None
        super().__init__(message, details)


# =============================================================================
# Command Errors (cdk CLI)
# =============================================================================


class CommandError(PermanentError):
    """Raised when an external command exits unsuccessfully."""

    def __init__(
        self,
        command: list[str],
        message: str,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        details: dict[str, Any] = {"command": " ".join(command)}
        if returncode is not None:
            details["returncode"] = returncode
        if stderr:
            details["stderr"] = stderr
        super().__init__(message, details)


class CommandTimeoutError(RetryableError):
    """Raised when an external command exceeds its timeout."""

    def __init__(self, command: list[str], timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(
            f"Command timed out after {timeout:.0f}s",
            {"command": " ".join(command), "timeout": timeout},
        )


# =============================================================================
# AWS API Errors
# =============================================================================


class AwsOperationError(LabInfraError):
    """Base exception for AWS API call failures."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.service = service
        super().__init__(f"[{service}] {message}", details)


class AwsThrottlingError(AwsOperationError, RetryableError):
    """Raised when an AWS API throttles the request."""

    pass


class AwsAccessDeniedError(AwsOperationError, PermanentError):
    """Raised when the caller lacks permission for an AWS API."""

    pass


class ResourceNotFoundError(AwsOperationError, PermanentError):
    """Raised when the requested AWS resource does not exist."""

    pass


class StackNotFoundError(ResourceNotFoundError):
    """Raised when a CloudFormation stack has not been deployed."""

    def __init__(self, stack_name: str):
        self.stack_name = stack_name
        super().__init__(
            "cloudformation",
            f"Stack {stack_name} does not exist",
            {"stack_name": stack_name},
        )


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineExecutionError(PermanentError):
    """Raised when a pipeline execution ends unsuccessfully or times out."""

    def __init__(
        self,
        pipeline_name: str,
        message: str,
        execution_id: Optional[str] = None,
        status: Optional[str] = None,
    ):
        self.pipeline_name = pipeline_name
        self.execution_id = execution_id
        self.status = status
        details: dict[str, Any] = {"pipeline_name": pipeline_name}
        if execution_id:
            details["execution_id"] = execution_id
        if status:
            details["status"] = status
        super().__init__(message, details)


class SourcePackagingError(PermanentError):
    """Raised when the pipeline source archive cannot be built."""

    pass
