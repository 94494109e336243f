"""
boto3 session and error translation for operator commands.

AWS API failures are mapped onto the lab-infra exception hierarchy so that
throttling is retried and everything else surfaces with service context.
"""

import functools
from typing import Any, Callable, Optional, TypeVar

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from lab_infra.config.settings import Settings, get_settings
from lab_infra.core.exceptions import (
    AwsAccessDeniedError,
    AwsOperationError,
    AwsThrottlingError,
    ResourceNotFoundError,
)

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

THROTTLING_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "RequestLimitExceeded",
        "TooManyRequestsException",
        "RequestThrottled",
        "SlowDown",
    }
)

ACCESS_DENIED_CODES = frozenset(
    {
        "AccessDenied",
        "AccessDeniedException",
        "UnauthorizedOperation",
        "ExpiredToken",
        "ExpiredTokenException",
    }
)

NOT_FOUND_CODES = frozenset(
    {
        "NoSuchBucket",
        "NoSuchKey",
        "ResourceNotFoundException",
        "PipelineNotFoundException",
        "PipelineExecutionNotFoundException",
        "ClusterNotFoundException",
        "ServiceNotFoundException",
    }
)


def get_session(settings: Optional[Settings] = None) -> boto3.Session:
    """Create a boto3 session for the configured profile and region."""
    settings = settings or get_settings()
    return boto3.Session(profile_name=settings.aws_profile, region_name=settings.region)


def translate_client_error(exc: Exception, service: str, operation: str) -> AwsOperationError:
    """Map a botocore error onto the lab-infra exception hierarchy."""
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = error.get("Code", "Unknown")
        message = error.get("Message", str(exc))
        details = {"operation": operation, "code": code}

        if code in THROTTLING_CODES:
            return AwsThrottlingError(service, f"{operation} throttled: {message}", details)
        if code in ACCESS_DENIED_CODES:
            return AwsAccessDeniedError(service, f"{operation} denied: {message}", details)
        if code in NOT_FOUND_CODES:
            return ResourceNotFoundError(service, f"{operation}: {message}", details)
        return AwsOperationError(service, f"{operation} failed: {message}", details)

    return AwsOperationError(service, f"{operation} failed: {exc}", {"operation": operation})


def aws_call(service: str, operation: str) -> Callable[[F], F]:
    """
    Decorate a function that calls AWS.

    botocore errors are translated, and throttling is retried with
    exponential backoff before giving up.
    """

    def decorator(func: F) -> F:
        @retry(
            retry=retry_if_exception_type(AwsThrottlingError),
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        )
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except (ClientError, BotoCoreError) as e:
                translated = translate_client_error(e, service, operation)
                logger.warning(
                    "aws_call_failed",
                    service=service,
                    operation=operation,
                    error=translated.message,
                    retryable=isinstance(translated, AwsThrottlingError),
                )
                raise translated from e

        return wrapper  # type: ignore[return-value]

    return decorator
