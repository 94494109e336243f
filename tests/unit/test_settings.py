"""Unit tests for environment-driven settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from lab_infra.config.settings import Settings, get_settings
from lab_infra.core.exceptions import ConfigValidationError


class TestSettingsDefaults:
    """Test values used when nothing is configured."""

    def test_defaults(self):
        settings = Settings()

        assert settings.account is None
        assert settings.region == "ap-northeast-1"
        assert settings.aws_profile is None
        assert settings.environment == "development"
        assert settings.log_format == "json"
        assert settings.cdk_binary == "cdk"
        assert settings.is_production is False


class TestSettingsEnvironment:
    """Test environment variable sources."""

    def test_reads_cdk_default_variables(self, monkeypatch):
        monkeypatch.setenv("CDK_DEFAULT_ACCOUNT", "111122223333")
        monkeypatch.setenv("CDK_DEFAULT_REGION", "us-east-1")

        settings = Settings()

        assert settings.account == "111122223333"
        assert settings.region == "us-east-1"

    def test_reads_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("LAB_INFRA_ACCOUNT", "444455556666")
        monkeypatch.setenv("LAB_INFRA_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("LAB_INFRA_CONFIG_FILE", "custom.yaml")
        monkeypatch.setenv("LAB_INFRA_POLL_INTERVAL_SECONDS", "5")

        settings = Settings()

        assert settings.account == "444455556666"
        assert settings.log_level == "DEBUG"
        assert settings.config_file == Path("custom.yaml")
        assert settings.poll_interval_seconds == 5.0

    def test_reads_aws_profile(self, monkeypatch):
        monkeypatch.setenv("AWS_PROFILE", "lab")

        assert Settings().aws_profile == "lab"

    def test_reads_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("CDK_DEFAULT_REGION=eu-west-1\n", encoding="utf-8")

        assert Settings().region == "eu-west-1"

    def test_rejects_unknown_environment(self, monkeypatch):
        monkeypatch.setenv("LAB_INFRA_ENVIRONMENT", "qa")

        with pytest.raises(ValidationError):
            Settings()


class TestProductionGuard:
    """Production must target an explicit account."""

    def test_production_without_account_fails(self):
        with pytest.raises(ValidationError, match="CDK_DEFAULT_ACCOUNT must be set"):
            Settings(environment="production")

    def test_production_with_account(self):
        settings = Settings(environment="production", account="123456789012")

        assert settings.is_production is True


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_get_settings_wraps_validation_errors(monkeypatch):
    monkeypatch.setenv("LAB_INFRA_ENVIRONMENT", "production")

    with pytest.raises(ConfigValidationError, match="Settings are invalid") as exc_info:
        get_settings()

    assert any("CDK_DEFAULT_ACCOUNT must be set" in error for error in exc_info.value.errors)
