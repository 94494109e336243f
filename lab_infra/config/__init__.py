"""
Configuration Management.

- settings: runtime settings (deployment target, logging, tooling) from the
  environment
- stack_schema: pydantic models for every stack parameter
- config_loader: layered loading (defaults, YAML file, CDK context)

Example:
    from lab_infra.config import get_settings, load_config

    settings = get_settings()
    config = load_config("lab-infra.yaml")
    print(config.network.cidr, settings.region)
"""

from lab_infra.config.settings import Settings, get_settings
from lab_infra.config.stack_schema import (
    AutoScalingConfig,
    BuildConfig,
    ContainerConfig,
    FargateServiceConfig,
    FlowLogConfig,
    LabInfraConfig,
    NetworkConfig,
    PipelineConfig,
    ProjectConfig,
    StackKey,
    SubnetConfig,
    SubnetKind,
)
from lab_infra.config.config_loader import (
    CONTEXT_KEY,
    deep_merge,
    dump_config,
    get_config,
    load_config,
    reset_config_cache,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Stack Schema
    "AutoScalingConfig",
    "BuildConfig",
    "ContainerConfig",
    "FargateServiceConfig",
    "FlowLogConfig",
    "LabInfraConfig",
    "NetworkConfig",
    "PipelineConfig",
    "ProjectConfig",
    "StackKey",
    "SubnetConfig",
    "SubnetKind",
    # Config Loader
    "CONTEXT_KEY",
    "deep_merge",
    "dump_config",
    "get_config",
    "load_config",
    "reset_config_cache",
]
