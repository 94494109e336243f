"""
Thin wrapper over the cdk CLI.

Builds the command lines for the lifecycle of the app (bootstrap, synth,
diff, deploy, destroy) and runs them as subprocesses from the project
directory. All provisioning work happens inside the cdk CLI and
CloudFormation; this module only assembles arguments and reports failures.
"""

import subprocess
from pathlib import Path
from typing import Optional, Sequence

import structlog

from lab_infra.config.settings import Settings, get_settings
from lab_infra.core.exceptions import CommandError, CommandTimeoutError

logger = structlog.get_logger(__name__)

# Lines of stderr kept on CommandError
STDERR_TAIL_LINES = 20


class CdkCli:
    """
    Run cdk subcommands.

    Example:
        cli = CdkCli.from_settings()
        cli.synth()
        cli.deploy(["LabInfraNetworkStack"])

    With `dry_run=True` commands are logged and returned instead of executed.
    """

    def __init__(
        self,
        binary: str = "cdk",
        timeout: float = 1800.0,
        app_dir: Optional[Path] = None,
        dry_run: bool = False,
        profile: Optional[str] = None,
    ):
        self.binary = binary
        self.timeout = timeout
        self.app_dir = app_dir or Path.cwd()
        self.dry_run = dry_run
        self.profile = profile

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        app_dir: Optional[Path] = None,
        dry_run: bool = False,
    ) -> "CdkCli":
        settings = settings or get_settings()
        return cls(
            binary=settings.cdk_binary,
            timeout=settings.command_timeout_seconds,
            app_dir=app_dir,
            dry_run=dry_run,
            profile=settings.aws_profile,
        )

    # =========================================================================
    # Command builders
    # =========================================================================

    def _base(self, subcommand: str) -> list[str]:
        command = [self.binary, subcommand]
        if self.profile:
            command += ["--profile", self.profile]
        return command

    @staticmethod
    def _targets(stacks: Optional[Sequence[str]]) -> list[str]:
        return list(stacks) if stacks else ["--all"]

    def bootstrap_command(self, account: Optional[str], region: str) -> list[str]:
        command = self._base("bootstrap")
        if account:
            command.append(f"aws://{account}/{region}")
        return command

    def synth_command(self, stacks: Optional[Sequence[str]] = None) -> list[str]:
        return self._base("synth") + self._targets(stacks)

    def diff_command(self, stacks: Optional[Sequence[str]] = None) -> list[str]:
        return self._base("diff") + list(stacks or [])

    def deploy_command(
        self,
        stacks: Optional[Sequence[str]] = None,
        require_approval: str = "never",
        outputs_file: Optional[Path] = None,
    ) -> list[str]:
        command = self._base("deploy") + self._targets(stacks)
        command += ["--require-approval", require_approval]
        if outputs_file is not None:
            command += ["--outputs-file", str(outputs_file)]
        return command

    def destroy_command(self, stacks: Optional[Sequence[str]] = None, force: bool = False) -> list[str]:
        command = self._base("destroy") + self._targets(stacks)
        if force:
            command.append("--force")
        return command

    def list_command(self) -> list[str]:
        return self._base("list")

    # =========================================================================
    # Execution
    # =========================================================================

    def run(self, command: list[str]) -> subprocess.CompletedProcess:
        """
        Run a command from the app directory.

        Raises:
            CommandError: When the binary is missing or exits non-zero.
            CommandTimeoutError: When the command exceeds the timeout.
        """
        if self.dry_run:
            logger.info("cdk_command_dry_run", command=" ".join(command))
            return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

        logger.info("cdk_command_started", command=" ".join(command), cwd=str(self.app_dir))
        try:
            result = subprocess.run(
                command,
                cwd=self.app_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise CommandError(command, f"Executable not found: {command[0]}") from e
        except subprocess.TimeoutExpired as e:
            logger.error("cdk_command_timeout", command=" ".join(command), timeout=self.timeout)
            raise CommandTimeoutError(command, self.timeout) from e

        if result.returncode != 0:
            stderr_tail = "\n".join((result.stderr or "").splitlines()[-STDERR_TAIL_LINES:])
            logger.error(
                "cdk_command_failed",
                command=" ".join(command),
                returncode=result.returncode,
            )
            raise CommandError(
                command,
                f"{command[0]} {command[1]} exited with status {result.returncode}",
                returncode=result.returncode,
                stderr=stderr_tail,
            )

        logger.info("cdk_command_completed", command=" ".join(command))
        return result

    def bootstrap(self, account: Optional[str], region: str) -> subprocess.CompletedProcess:
        return self.run(self.bootstrap_command(account, region))

    def synth(self, stacks: Optional[Sequence[str]] = None) -> subprocess.CompletedProcess:
        return self.run(self.synth_command(stacks))

    def diff(self, stacks: Optional[Sequence[str]] = None) -> subprocess.CompletedProcess:
        return self.run(self.diff_command(stacks))

    def deploy(
        self,
        stacks: Optional[Sequence[str]] = None,
        require_approval: str = "never",
        outputs_file: Optional[Path] = None,
    ) -> subprocess.CompletedProcess:
        return self.run(self.deploy_command(stacks, require_approval, outputs_file))

    def destroy(self, stacks: Optional[Sequence[str]] = None, force: bool = False) -> subprocess.CompletedProcess:
        return self.run(self.destroy_command(stacks, force))

    def list_stacks(self) -> list[str]:
        result = self.run(self.list_command())
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]
