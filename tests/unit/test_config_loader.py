"""Unit tests for layered configuration loading."""

import json

import pytest
import yaml

from lab_infra.config.config_loader import (
    CONTEXT_KEY,
    deep_merge,
    dump_config,
    get_config,
    load_config,
    reset_config_cache,
)
from lab_infra.config.stack_schema import LabInfraConfig
from lab_infra.core.exceptions import ConfigNotFoundError, ConfigValidationError


class TestDeepMerge:
    """Test overlay merge semantics."""

    def test_merges_nested_mappings(self):
        base = {"network": {"cidr": "10.0.0.0/16", "max_azs": 2}}
        overlay = {"network": {"max_azs": 3}}

        assert deep_merge(base, overlay) == {"network": {"cidr": "10.0.0.0/16", "max_azs": 3}}

    def test_lists_are_replaced(self):
        assert deep_merge({"items": [1, 2, 3]}, {"items": [4]}) == {"items": [4]}

    def test_none_overlay_keeps_base(self):
        assert deep_merge({"a": 1}, None) == {"a": 1}

    def test_type_mismatch_raises(self):
        with pytest.raises(ConfigValidationError, match="network"):
            deep_merge({"network": {"cidr": "10.0.0.0/16"}}, {"network": "oops"})

    def test_scalar_replaced_by_mapping_raises(self):
        with pytest.raises(ConfigValidationError):
            deep_merge({"a": 1}, {"a": {"b": 2}})


class TestLoadConfig:
    """Test the defaults / file / context layering."""

    @pytest.fixture
    def config_file(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "network": {"cidr": "10.1.0.0/16"},
                    "fargate_service": {"desired_count": 2},
                }
            ),
            encoding="utf-8",
        )
        return path

    def test_defaults_without_sources(self):
        assert load_config() == LabInfraConfig()

    def test_file_overrides_defaults(self, config_file):
        config = load_config(config_file)

        assert config.network.cidr == "10.1.0.0/16"
        assert config.fargate_service.desired_count == 2
        # Untouched keys keep their defaults
        assert config.network.max_azs == 2

    def test_context_overrides_file(self, config_file):
        context = {CONTEXT_KEY: {"fargate_service": {"desired_count": 3}}}

        config = load_config(config_file, context=context)

        assert config.network.cidr == "10.1.0.0/16"
        assert config.fargate_service.desired_count == 3

    def test_context_accepts_json_string(self):
        context = {CONTEXT_KEY: json.dumps({"network": {"max_azs": 3}})}

        assert load_config(context=context).network.max_azs == 3

    def test_context_invalid_json_raises(self):
        with pytest.raises(ConfigValidationError, match="not valid JSON"):
            load_config(context={CONTEXT_KEY: "{broken"})

    def test_unrelated_context_ignored(self):
        assert load_config(context={"other": {"x": 1}}) == LabInfraConfig()

    def test_missing_explicit_file_raises(self, tmp_path):
        with pytest.raises(ConfigNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_file_from_environment(self, monkeypatch, config_file):
        monkeypatch.setenv("LAB_INFRA_CONFIG_FILE", str(config_file))

        assert load_config().network.cidr == "10.1.0.0/16"

    def test_default_file_in_working_directory(self, tmp_path):
        (tmp_path / "lab-infra.yaml").write_text("network:\n  max_azs: 3\n", encoding="utf-8")

        assert load_config().network.max_azs == 3

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert load_config(path) == LabInfraConfig()

    def test_non_mapping_file_raises(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigValidationError, match="YAML mapping"):
            load_config(path)

    def test_malformed_yaml_raises(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("network: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigValidationError, match="Invalid YAML"):
            load_config(path)

    def test_validation_errors_are_collected(self, tmp_path):
        path = tmp_path / "invalid.yaml"
        path.write_text("fargate_service:\n  cpu: 256\n  memory_limit_mib: 8192\n", encoding="utf-8")

        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(path)

        assert exc_info.value.errors
        assert "fargate_service" in exc_info.value.errors[0]

    def test_misspelled_file_key_is_rejected(self, tmp_path):
        path = tmp_path / "typo.yaml"
        path.write_text("fargate_service:\n  desird_count: 3\n", encoding="utf-8")

        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(path)

        assert any(error.startswith("fargate_service.desird_count") for error in exc_info.value.errors)

    def test_misspelled_context_key_is_rejected(self):
        context = {CONTEXT_KEY: {"network": {"max_az": 3}}}

        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(context=context)

        assert any("network.max_az" in error for error in exc_info.value.errors)


class TestConfigCache:
    """Test cached default loading."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_reset_reloads(self, tmp_path):
        first = get_config()
        (tmp_path / "lab-infra.yaml").write_text("network:\n  max_azs: 3\n", encoding="utf-8")

        reset_config_cache()

        assert first.network.max_azs == 2
        assert get_config().network.max_azs == 3


def test_dump_config_round_trips_through_yaml(lab_config):
    data = yaml.safe_load(dump_config(lab_config))

    assert data["network"]["cidr"] == "10.0.0.0/16"
    assert data["pipeline"]["deploy_stacks"] == ["network", "fargate_service"]
    assert LabInfraConfig.model_validate(data) == lab_config
