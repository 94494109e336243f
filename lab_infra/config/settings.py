"""
Application Settings.

Centralized runtime settings using Pydantic Settings with environment variable
loading. The deployment target (account/region) is read from the standard
CDK environment variables; everything else uses the LAB_INFRA_ prefix.

Production Mode:
    When environment="production", the target account must be set so that
    stacks are never synthesized environment-agnostic.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from lab_infra.core.exceptions import ConfigValidationError


class Settings(BaseSettings):
    """Settings loaded from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_prefix="LAB_INFRA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # Deployment target
    # -------------------------------------------------------------------------
    account: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("CDK_DEFAULT_ACCOUNT", "LAB_INFRA_ACCOUNT"),
        description="Target AWS account id",
    )
    region: str = Field(
        default="ap-northeast-1",
        validation_alias=AliasChoices("CDK_DEFAULT_REGION", "LAB_INFRA_REGION"),
        description="Target AWS region",
    )
    aws_profile: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AWS_PROFILE", "LAB_INFRA_AWS_PROFILE"),
        description="Named AWS CLI profile for operator commands",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    config_file: Optional[Path] = Field(
        default=None,
        description="YAML file overriding the default stack configuration",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="json",
        description="Log renderer",
    )

    # -------------------------------------------------------------------------
    # Operator tooling
    # -------------------------------------------------------------------------
    cdk_binary: str = Field(
        default="cdk",
        min_length=1,
        description="cdk CLI executable",
    )
    command_timeout_seconds: float = Field(
        default=1800.0,
        gt=0,
        description="Timeout for a single cdk CLI invocation",
    )
    poll_interval_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Interval between pipeline state polls",
    )
    pipeline_timeout_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Maximum time to wait for a pipeline execution",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Production stacks must target an explicit account."""
        if self.is_production and not self.account:
            raise ValueError(
                "Production configuration errors: CDK_DEFAULT_ACCOUNT must be set in production"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Call get_settings.cache_clear() to reload settings if needed.

    Raises:
        ConfigValidationError: If the environment holds invalid settings
    """
    try:
        return Settings()
    except ValidationError as e:
        errors = []
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"]) or "<root>"
            errors.append(f"{location}: {error['msg']}")
        raise ConfigValidationError("Settings are invalid", errors) from e
