"""
Pytest Configuration and Shared Fixtures.

- clean_environment: isolates settings/config caches from the host environment
- lab_config: default stack configuration
- settings: development settings with a fixed account and region
- synth_app: the full app built on a fresh cdk.App
- mock_session: boto3 session returning per-service MagicMock clients
"""

from unittest.mock import MagicMock

import aws_cdk as cdk
import pytest

from lab_infra.app import build_app
from lab_infra.config.config_loader import reset_config_cache
from lab_infra.config.settings import Settings, get_settings
from lab_infra.config.stack_schema import LabInfraConfig

HOST_VARIABLES = (
    "CDK_DEFAULT_ACCOUNT",
    "CDK_DEFAULT_REGION",
    "AWS_PROFILE",
    "LAB_INFRA_ACCOUNT",
    "LAB_INFRA_REGION",
    "LAB_INFRA_AWS_PROFILE",
    "LAB_INFRA_ENVIRONMENT",
    "LAB_INFRA_CONFIG_FILE",
    "LAB_INFRA_LOG_LEVEL",
    "LAB_INFRA_LOG_FORMAT",
    "LAB_INFRA_CDK_BINARY",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Run every test without host AWS variables, .env files or cached settings."""
    for name in HOST_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    reset_config_cache()
    yield
    get_settings.cache_clear()
    reset_config_cache()


@pytest.fixture
def lab_config() -> LabInfraConfig:
    """Return the default lab configuration."""
    return LabInfraConfig()


@pytest.fixture
def settings() -> Settings:
    """Return development settings targeting a fixed account."""
    return Settings(account="123456789012", region="ap-northeast-1")


@pytest.fixture
def synth_app(lab_config):
    """Build the full app without an explicit environment."""
    app = cdk.App()
    stacks = build_app(app, lab_config, Settings())
    return app, stacks


@pytest.fixture
def mock_session():
    """Return a session whose client(name) yields one MagicMock per service."""
    clients: dict[str, MagicMock] = {}

    def client(name, *args, **kwargs):
        return clients.setdefault(name, MagicMock(name=f"{name}_client"))

    session = MagicMock()
    session.client.side_effect = client
    session.clients = clients
    return session
