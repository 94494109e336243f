"""Unit tests for the cdk CLI wrapper."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from lab_infra.config.settings import Settings
from lab_infra.core.exceptions import CommandError, CommandTimeoutError
from lab_infra.ops.cdk_cli import CdkCli


@pytest.fixture
def cli(tmp_path) -> CdkCli:
    return CdkCli(binary="cdk", timeout=60, app_dir=tmp_path)


class TestCommands:
    """Test command line construction."""

    def test_bootstrap_with_account(self, cli):
        assert cli.bootstrap_command("123456789012", "ap-northeast-1") == [
            "cdk",
            "bootstrap",
            "aws://123456789012/ap-northeast-1",
        ]

    def test_bootstrap_without_account(self, cli):
        assert cli.bootstrap_command(None, "ap-northeast-1") == ["cdk", "bootstrap"]

    def test_synth_defaults_to_all(self, cli):
        assert cli.synth_command() == ["cdk", "synth", "--all"]
        assert cli.synth_command(["LabInfraNetworkStack"]) == ["cdk", "synth", "LabInfraNetworkStack"]

    def test_diff(self, cli):
        assert cli.diff_command() == ["cdk", "diff"]

    def test_deploy(self, cli):
        assert cli.deploy_command(["A", "B"], outputs_file=Path("outputs.json")) == [
            "cdk",
            "deploy",
            "A",
            "B",
            "--require-approval",
            "never",
            "--outputs-file",
            "outputs.json",
        ]

    def test_destroy_force(self, cli):
        assert cli.destroy_command(["A"], force=True) == ["cdk", "destroy", "A", "--force"]

    def test_profile_is_passed(self, tmp_path):
        cli = CdkCli(app_dir=tmp_path, profile="lab")

        assert cli.list_command() == ["cdk", "list", "--profile", "lab"]

    def test_from_settings(self, tmp_path):
        settings = Settings(cdk_binary="npx cdk", command_timeout_seconds=90, aws_profile="lab")

        cli = CdkCli.from_settings(settings, app_dir=tmp_path, dry_run=True)

        assert cli.binary == "npx cdk"
        assert cli.timeout == 90
        assert cli.profile == "lab"
        assert cli.dry_run is True


class TestRun:
    """Test subprocess execution and failure reporting."""

    def test_success(self, cli, tmp_path):
        completed = subprocess.CompletedProcess(["cdk", "synth"], 0, stdout="ok", stderr="")

        with patch("lab_infra.ops.cdk_cli.subprocess.run", return_value=completed) as run:
            result = cli.synth()

        assert result.stdout == "ok"
        run.assert_called_once_with(
            ["cdk", "synth", "--all"],
            cwd=tmp_path,
            capture_output=True,
            text=True,
            timeout=60,
            check=False,
        )

    def test_dry_run_does_not_execute(self, tmp_path):
        cli = CdkCli(app_dir=tmp_path, dry_run=True)

        with patch("lab_infra.ops.cdk_cli.subprocess.run") as run:
            result = cli.deploy()

        run.assert_not_called()
        assert result.returncode == 0
        assert result.args == ["cdk", "deploy", "--all", "--require-approval", "never"]

    def test_non_zero_exit(self, cli):
        stderr = "\n".join(f"line {i}" for i in range(30))
        completed = subprocess.CompletedProcess(["cdk", "deploy"], 1, stdout="", stderr=stderr)

        with patch("lab_infra.ops.cdk_cli.subprocess.run", return_value=completed):
            with pytest.raises(CommandError) as exc_info:
                cli.deploy()

        error = exc_info.value
        assert error.returncode == 1
        assert error.stderr.splitlines() == [f"line {i}" for i in range(10, 30)]
        assert error.message == "cdk deploy exited with status 1"

    def test_missing_binary(self, cli):
        with patch("lab_infra.ops.cdk_cli.subprocess.run", side_effect=FileNotFoundError("cdk")):
            with pytest.raises(CommandError, match="Executable not found"):
                cli.synth()

    def test_timeout(self, cli):
        with patch(
            "lab_infra.ops.cdk_cli.subprocess.run",
            side_effect=subprocess.TimeoutExpired(["cdk", "deploy"], 60),
        ):
            with pytest.raises(CommandTimeoutError) as exc_info:
                cli.deploy()

        assert exc_info.value.timeout == 60

    def test_list_stacks(self, cli):
        completed = subprocess.CompletedProcess(
            ["cdk", "list"],
            0,
            stdout="LabInfraNetworkStack\nLabInfraFargateServiceStack\n\n",
            stderr="",
        )

        with patch("lab_infra.ops.cdk_cli.subprocess.run", return_value=completed):
            assert cli.list_stacks() == ["LabInfraNetworkStack", "LabInfraFargateServiceStack"]
