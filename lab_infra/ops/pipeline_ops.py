"""
Pipeline operations.

The pipeline has no repository integration, so a release is:

1. zip the project into `source.zip`
2. upload it to the source bucket (the S3 source action polls for it)
3. optionally start an execution right away instead of waiting for the poll
4. watch the execution until it succeeds or fails
"""

import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import structlog
from tenacity import (
    RetryError,
    retry,
    retry_if_result,
    stop_after_delay,
    wait_fixed,
)

from lab_infra.core.exceptions import PipelineExecutionError, SourcePackagingError
from lab_infra.ops.aws import aws_call

logger = structlog.get_logger(__name__)

# Directories never shipped to the pipeline
EXCLUDED_DIRS = frozenset(
    {
        ".git",
        ".venv",
        "venv",
        "cdk.out",
        "node_modules",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".ruff_cache",
        ".idea",
        ".vscode",
    }
)
EXCLUDED_SUFFIXES = (".pyc", ".zip")
EXCLUDED_FILES = frozenset({".env", ".DS_Store"})

IN_PROGRESS_STATUSES = frozenset({"InProgress", "Stopping"})
FAILED_STATUSES = frozenset({"Failed", "Stopped", "Superseded", "Cancelled"})


# =============================================================================
# Source Packaging
# =============================================================================

def iter_source_files(root: Path) -> list[Path]:
    """Files under `root` that belong in the source archive, sorted."""
    files = []
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root)
        if any(part in EXCLUDED_DIRS for part in relative.parts):
            continue
        if not path.is_file() or path.suffix in EXCLUDED_SUFFIXES or path.name in EXCLUDED_FILES:
            continue
        files.append(path)
    return files


def package_source(root: Path, output: Path) -> Path:
    """
    Zip the project at `root` into `output` for the S3 source action.

    Raises:
        SourcePackagingError: When root is missing or contains no files.
    """
    root = root.resolve()
    if not root.is_dir():
        raise SourcePackagingError(f"Source directory not found: {root}", {"root": str(root)})

    output = output.resolve()
    files = [path for path in iter_source_files(root) if path != output]
    if not files:
        raise SourcePackagingError(f"No files to package under {root}", {"root": str(root)})

    output.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(output, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path in files:
            archive.write(path, path.relative_to(root).as_posix())

    logger.info("source_packaged", root=str(root), output=str(output), files=len(files))
    return output


# =============================================================================
# Pipeline State
# =============================================================================

@dataclass
class StageState:
    """Latest execution status of one pipeline stage."""

    name: str
    status: Optional[str] = None
    execution_id: Optional[str] = None
    actions: dict[str, Optional[str]] = field(default_factory=dict)


@dataclass
class PipelineState:
    """Summary of `codepipeline get-pipeline-state`."""

    pipeline_name: str
    stages: list[StageState] = field(default_factory=list)

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> "PipelineState":
        stages = []
        for stage in response.get("stageStates", []):
            latest = stage.get("latestExecution") or {}
            actions = {
                action["actionName"]: (action.get("latestExecution") or {}).get("status")
                for action in stage.get("actionStates", [])
            }
            stages.append(
                StageState(
                    name=stage["stageName"],
                    status=latest.get("status"),
                    execution_id=latest.get("pipelineExecutionId"),
                    actions=actions,
                )
            )
        return cls(pipeline_name=response.get("pipelineName", ""), stages=stages)

    def stage(self, name: str) -> Optional[StageState]:
        return next((s for s in self.stages if s.name == name), None)

    @property
    def failed_stages(self) -> list[str]:
        return [s.name for s in self.stages if s.status in FAILED_STATUSES]


# =============================================================================
# Operator
# =============================================================================

class PipelineOperator:
    """
    Drive the lab pipeline through the S3 and CodePipeline APIs.

    Example:
        operator = PipelineOperator(get_session())
        operator.upload_source(bucket, Path("source.zip"))
        execution_id = operator.start_execution("lab-infra-pipeline")
        operator.wait_for_execution("lab-infra-pipeline", execution_id)
    """

    def __init__(self, session: Any):
        self._s3 = session.client("s3")
        self._codepipeline = session.client("codepipeline")

    @aws_call("s3", "PutObject")
    def upload_source(self, bucket: str, path: Path, key: str = "source.zip") -> None:
        path = Path(path)
        if not path.is_file():
            raise SourcePackagingError(f"Source archive not found: {path}", {"path": str(path)})
        with open(path, "rb") as body:
            self._s3.put_object(Bucket=bucket, Key=key, Body=body)
        logger.info("source_uploaded", bucket=bucket, key=key, path=str(path))

    @aws_call("codepipeline", "StartPipelineExecution")
    def start_execution(self, pipeline_name: str) -> str:
        response = self._codepipeline.start_pipeline_execution(name=pipeline_name)
        execution_id = response["pipelineExecutionId"]
        logger.info("pipeline_execution_started", pipeline=pipeline_name, execution_id=execution_id)
        return execution_id

    @aws_call("codepipeline", "GetPipelineState")
    def get_state(self, pipeline_name: str) -> PipelineState:
        response = self._codepipeline.get_pipeline_state(name=pipeline_name)
        return PipelineState.from_response(response)

    @aws_call("codepipeline", "GetPipelineExecution")
    def get_execution_status(self, pipeline_name: str, execution_id: str) -> str:
        response = self._codepipeline.get_pipeline_execution(
            pipelineName=pipeline_name,
            pipelineExecutionId=execution_id,
        )
        return response["pipelineExecution"]["status"]

    def wait_for_execution(
        self,
        pipeline_name: str,
        execution_id: str,
        timeout: float = 3600.0,
        interval: float = 15.0,
    ) -> str:
        """
        Poll an execution until it leaves the in-progress states.

        Returns:
            The final status ("Succeeded").

        Raises:
            PipelineExecutionError: When the execution fails, is stopped or
                superseded, or does not finish within `timeout`.
        """

        @retry(
            retry=retry_if_result(lambda status: status in IN_PROGRESS_STATUSES),
            wait=wait_fixed(interval),
            stop=stop_after_delay(timeout),
        )
        def poll() -> str:
            status = self.get_execution_status(pipeline_name, execution_id)
            logger.debug(
                "pipeline_execution_polled",
                pipeline=pipeline_name,
                execution_id=execution_id,
                status=status,
            )
            return status

        try:
            status = poll()
        except RetryError as e:
            raise PipelineExecutionError(
                pipeline_name,
                f"Execution did not finish within {timeout:.0f}s",
                execution_id=execution_id,
                status=e.last_attempt.result(),
            ) from e

        if status != "Succeeded":
            logger.error(
                "pipeline_execution_failed",
                pipeline=pipeline_name,
                execution_id=execution_id,
                status=status,
            )
            raise PipelineExecutionError(
                pipeline_name,
                f"Execution ended with status {status}",
                execution_id=execution_id,
                status=status,
            )

        logger.info("pipeline_execution_succeeded", pipeline=pipeline_name, execution_id=execution_id)
        return status
