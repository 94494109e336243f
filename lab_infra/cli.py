"""
lab-infra operator CLI.

Examples:
    # First-time setup of the account/region
    lab-infra bootstrap

    # Synthesize, review and deploy everything
    lab-infra synth
    lab-infra diff
    lab-infra deploy

    # Inspect what is running
    lab-infra outputs LabInfraFargateServiceStack
    lab-infra status
    lab-infra logs --minutes 30

    # Release through the pipeline instead of deploying locally
    lab-infra upload-source --package --start --wait

    # Print the command sequence for a task
    lab-infra runbook teardown

    # Tear everything down (reverse dependency order)
    lab-infra destroy --force
"""

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional, Sequence

import structlog

from lab_infra.config.config_loader import dump_config, load_config
from lab_infra.config.settings import Settings, get_settings
from lab_infra.config.stack_schema import LabInfraConfig, StackKey
from lab_infra.core.exceptions import LabInfraError
from lab_infra.core.logging import configure_logging
from lab_infra.ops.aws import get_session
from lab_infra.ops.cdk_cli import CdkCli
from lab_infra.ops.monitoring import StackMonitor
from lab_infra.ops.pipeline_ops import PipelineOperator, package_source
from lab_infra.ops.runbook import RUNBOOKS, format_runbook, render_runbook, teardown_order

logger = structlog.get_logger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


# =============================================================================
# cdk lifecycle commands
# =============================================================================

def cmd_bootstrap(args, config: LabInfraConfig, settings: Settings) -> int:
    cli = CdkCli.from_settings(settings, app_dir=args.app_dir, dry_run=args.dry_run)
    cli.bootstrap(settings.account, settings.region)
    return 0


def cmd_synth(args, config: LabInfraConfig, settings: Settings) -> int:
    cli = CdkCli.from_settings(settings, app_dir=args.app_dir, dry_run=args.dry_run)
    cli.synth(args.stacks)
    return 0


def cmd_diff(args, config: LabInfraConfig, settings: Settings) -> int:
    cli = CdkCli.from_settings(settings, app_dir=args.app_dir, dry_run=args.dry_run)
    result = cli.diff(args.stacks)
    if result.stdout:
        print(result.stdout, end="")
    return 0


def cmd_deploy(args, config: LabInfraConfig, settings: Settings) -> int:
    cli = CdkCli.from_settings(settings, app_dir=args.app_dir, dry_run=args.dry_run)
    cli.deploy(args.stacks, outputs_file=args.outputs_file)
    return 0


def cmd_destroy(args, config: LabInfraConfig, settings: Settings) -> int:
    cli = CdkCli.from_settings(settings, app_dir=args.app_dir, dry_run=args.dry_run)
    for stack in args.stacks or teardown_order(config):
        cli.destroy([stack], force=args.force)
    return 0


# =============================================================================
# Monitoring commands
# =============================================================================

def cmd_outputs(args, config: LabInfraConfig, settings: Settings) -> int:
    monitor = StackMonitor(get_session(settings))
    stacks = args.stacks or config.deploy_order()
    _print_json({stack: monitor.get_stack_outputs(stack) for stack in stacks})
    return 0


def cmd_status(args, config: LabInfraConfig, settings: Settings) -> int:
    monitor = StackMonitor(get_session(settings))
    service = config.fargate_service
    status = monitor.describe_service(service.cluster_name, service.service_name)
    _print_json(
        {
            "stacks": {stack: monitor.get_stack_status(stack) for stack in config.deploy_order()},
            "service": {**asdict(status), "steady": status.is_steady},
        }
    )
    return 0


def cmd_logs(args, config: LabInfraConfig, settings: Settings) -> int:
    monitor = StackMonitor(get_session(settings))
    log_group = args.log_group or config.fargate_service.log_group_name
    for event in monitor.recent_log_events(log_group, minutes=args.minutes, limit=args.limit):
        print(f"{event.timestamp} {event.stream} {event.message}")
    return 0


# =============================================================================
# Pipeline commands
# =============================================================================

def cmd_package_source(args, config: LabInfraConfig, settings: Settings) -> int:
    output = args.output or Path(config.pipeline.source_object_key)
    print(package_source(args.root, output))
    return 0


def cmd_upload_source(args, config: LabInfraConfig, settings: Settings) -> int:
    session = get_session(settings)
    pipeline = config.pipeline
    archive = args.file or Path(pipeline.source_object_key)

    if args.package:
        package_source(args.root, archive)

    bucket = args.bucket
    if not bucket:
        outputs = StackMonitor(session).get_stack_outputs(config.stack_name(StackKey.PIPELINE))
        bucket = outputs["SourceBucketName"]

    operator = PipelineOperator(session)
    operator.upload_source(bucket, archive, pipeline.source_object_key)

    if args.start:
        execution_id = operator.start_execution(pipeline.pipeline_name)
        print(execution_id)
        if args.wait:
            operator.wait_for_execution(
                pipeline.pipeline_name,
                execution_id,
                timeout=settings.pipeline_timeout_seconds,
                interval=settings.poll_interval_seconds,
            )
    return 0


def cmd_start_pipeline(args, config: LabInfraConfig, settings: Settings) -> int:
    operator = PipelineOperator(get_session(settings))
    name = config.pipeline.pipeline_name
    execution_id = operator.start_execution(name)
    print(execution_id)
    if args.wait:
        operator.wait_for_execution(
            name,
            execution_id,
            timeout=settings.pipeline_timeout_seconds,
            interval=settings.poll_interval_seconds,
        )
    return 0


def cmd_pipeline_status(args, config: LabInfraConfig, settings: Settings) -> int:
    operator = PipelineOperator(get_session(settings))
    state = operator.get_state(config.pipeline.pipeline_name)
    _print_json(asdict(state))
    return 1 if state.failed_stages else 0


# =============================================================================
# Documentation commands
# =============================================================================

def cmd_runbook(args, config: LabInfraConfig, settings: Settings) -> int:
    steps = render_runbook(args.name, config, settings)
    print(format_runbook(steps, title=f"lab-infra {args.name} runbook"))
    return 0


def cmd_show_config(args, config: LabInfraConfig, settings: Settings) -> int:
    print(dump_config(config), end="")
    return 0


# =============================================================================
# Parser
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lab-infra",
        description="Deploy, monitor and tear down the lab infrastructure",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", "-c", type=Path, help="YAML file overriding the stack configuration")
    parser.add_argument("--app-dir", type=Path, default=Path.cwd(), help="Directory containing cdk.json")
    parser.add_argument("--dry-run", action="store_true", help="Log cdk commands instead of running them")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override LAB_INFRA_LOG_LEVEL",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    sub = subparsers.add_parser("bootstrap", help="Bootstrap the target account/region for CDK")
    sub.set_defaults(handler=cmd_bootstrap)

    sub = subparsers.add_parser("synth", help="Synthesize CloudFormation templates")
    sub.add_argument("stacks", nargs="*", help="Stacks to synthesize (default: all)")
    sub.set_defaults(handler=cmd_synth)

    sub = subparsers.add_parser("diff", help="Compare deployed stacks with the local app")
    sub.add_argument("stacks", nargs="*")
    sub.set_defaults(handler=cmd_diff)

    sub = subparsers.add_parser("deploy", help="Deploy stacks with the cdk CLI")
    sub.add_argument("stacks", nargs="*", help="Stacks to deploy (default: all)")
    sub.add_argument("--outputs-file", type=Path, help="Write stack outputs to this JSON file")
    sub.set_defaults(handler=cmd_deploy)

    sub = subparsers.add_parser("destroy", help="Destroy stacks in reverse dependency order")
    sub.add_argument("stacks", nargs="*", help="Stacks to destroy (default: all)")
    sub.add_argument("--force", "-f", action="store_true", help="Do not ask for confirmation")
    sub.set_defaults(handler=cmd_destroy)

    sub = subparsers.add_parser("outputs", help="Print the outputs of deployed stacks")
    sub.add_argument("stacks", nargs="*")
    sub.set_defaults(handler=cmd_outputs)

    sub = subparsers.add_parser("status", help="Print stack and service status")
    sub.set_defaults(handler=cmd_status)

    sub = subparsers.add_parser("logs", help="Print recent container logs")
    sub.add_argument("--log-group", help="Log group (default: the service log group)")
    sub.add_argument("--minutes", type=int, default=15)
    sub.add_argument("--limit", type=int, default=100)
    sub.set_defaults(handler=cmd_logs)

    sub = subparsers.add_parser("package-source", help="Zip the project for the pipeline")
    sub.add_argument("--root", type=Path, default=Path.cwd())
    sub.add_argument("--output", "-o", type=Path)
    sub.set_defaults(handler=cmd_package_source)

    sub = subparsers.add_parser("upload-source", help="Upload the source archive to the pipeline bucket")
    sub.add_argument("--file", type=Path, help="Archive to upload (default: the configured object key)")
    sub.add_argument("--bucket", help="Bucket (default: SourceBucketName output of the pipeline stack)")
    sub.add_argument("--root", type=Path, default=Path.cwd())
    sub.add_argument("--package", action="store_true", help="Package the project first")
    sub.add_argument("--start", action="store_true", help="Start a pipeline execution after uploading")
    sub.add_argument("--wait", action="store_true", help="Wait for the started execution")
    sub.set_defaults(handler=cmd_upload_source)

    sub = subparsers.add_parser("start-pipeline", help="Start a pipeline execution")
    sub.add_argument("--wait", action="store_true", help="Wait until the execution finishes")
    sub.set_defaults(handler=cmd_start_pipeline)

    sub = subparsers.add_parser("pipeline-status", help="Print the state of every pipeline stage")
    sub.set_defaults(handler=cmd_pipeline_status)

    sub = subparsers.add_parser("runbook", help="Print the command sequence for a lifecycle task")
    sub.add_argument("name", choices=sorted(RUNBOOKS))
    sub.set_defaults(handler=cmd_runbook)

    sub = subparsers.add_parser("show-config", help="Print the effective stack configuration")
    sub.set_defaults(handler=cmd_show_config)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point of the `lab-infra` console script."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
        configure_logging(args.log_level or settings.log_level, settings.log_format)
        config = load_config(args.config)
        return args.handler(args, config, settings)
    except LabInfraError as e:
        logger.error(
            "command_failed",
            command=args.command,
            error=e.message,
            error_type=type(e).__name__,
            details=e.details,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
