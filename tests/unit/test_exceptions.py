"""Unit tests for the exception hierarchy."""

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
    StackNotFoundError,
)


class TestErrorCategories:
    """Errors are classified as retryable or permanent."""

    def test_throttling_is_retryable(self):
        error = AwsThrottlingError("ecs", "slow down")

        assert isinstance(error, RetryableError)
        assert isinstance(error, AwsOperationError)

    def test_timeout_is_retryable(self):
        assert isinstance(CommandTimeoutError(["cdk", "deploy"], 30), RetryableError)

    def test_permanent_errors(self):
        for error in (
            AwsAccessDeniedError("s3", "denied"),
            ResourceNotFoundError("ecs", "missing"),
            ConfigurationError("bad"),
            ConfigValidationError("bad"),
            CommandError(["cdk"], "failed"),
            PipelineExecutionError("p", "failed"),
        ):
            assert isinstance(error, PermanentError)
            assert isinstance(error, LabInfraError)


class TestErrorDetails:
    """Errors carry structured details."""

    def test_str_includes_details(self):
        error = LabInfraError("Something failed", {"key": "value"})

        assert str(error) == "Something failed (key='value')"

    def test_str_without_details(self):
        assert str(LabInfraError("Plain")) == "Plain"

    def test_config_key(self):
        error = ConfigNotFoundError("missing", config_key="config_file")

        assert error.details == {"config_key": "config_file"}

    def test_validation_errors_listed(self):
        error = ConfigValidationError("invalid", ["network.cidr: bad"])

        assert error.errors == ["network.cidr: bad"]
        assert error.details == {"errors": ["network.cidr: bad"]}

    def test_command_error(self):
        error = CommandError(["cdk", "deploy", "--all"], "exit 1", returncode=1, stderr="boom")

        assert error.details == {"command": "cdk deploy --all", "returncode": 1, "stderr": "boom"}

    def test_timeout_message(self):
        error = CommandTimeoutError(["cdk", "deploy"], 1800)

        assert error.message == "Command timed out after 1800s"
        assert error.timeout == 1800

    def test_aws_error_prefixes_service(self):
        assert AwsOperationError("s3", "failed").message == "[s3] failed"

    def test_stack_not_found(self):
        error = StackNotFoundError("LabInfraNetworkStack")

        assert isinstance(error, ResourceNotFoundError)
        assert error.service == "cloudformation"
        assert error.stack_name == "LabInfraNetworkStack"
        assert "does not exist" in error.message

    def test_pipeline_execution_details(self):
        error = PipelineExecutionError("lab-infra-pipeline", "failed", execution_id="abc", status="Failed")

        assert error.details == {
            "pipeline_name": "lab-infra-pipeline",
            "execution_id": "abc",
            "status": "Failed",
        }
