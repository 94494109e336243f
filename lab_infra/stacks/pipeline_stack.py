"""
CI/CD pipeline stack.

There is no repository integration: operators zip the project, upload it to
the source bucket as `source.zip`, and the pipeline picks it up by polling.

    Source (S3)  ->  Build (CodeBuild: cdk synth --all)  ->  Deploy (CloudFormation)

The Deploy stage creates or updates the stacks listed in
`PipelineConfig.deploy_stacks`, one after the other, from the templates the
build wrote to `cdk.out`.
"""

from typing import Any

import aws_cdk as cdk
import structlog
from aws_cdk import aws_codebuild as codebuild
from aws_cdk import aws_codepipeline as codepipeline
from aws_cdk import aws_codepipeline_actions as codepipeline_actions
from aws_cdk import aws_iam as iam
from aws_cdk import aws_s3 as s3
from constructs import Construct

from lab_infra.config.stack_schema import PipelineConfig, ProjectConfig
from lab_infra.stacks.outputs import add_output

logger = structlog.get_logger(__name__)

SOURCE_OBJECT_ACTIONS = ["s3:GetObject", "s3:GetObjectVersion", "s3:PutObject"]

CLOUDFORMATION_DEPLOY_ACTIONS = [
    "cloudformation:CreateStack",
    "cloudformation:UpdateStack",
    "cloudformation:DeleteStack",
    "cloudformation:DescribeStacks",
    "cloudformation:DescribeStackEvents",
    "cloudformation:DescribeChangeSet",
    "cloudformation:CreateChangeSet",
    "cloudformation:DeleteChangeSet",
    "cloudformation:ExecuteChangeSet",
    "cloudformation:GetTemplate",
    "cloudformation:ValidateTemplate",
    "iam:PassRole",
]


def build_spec(config: PipelineConfig) -> dict[str, Any]:
    """Buildspec that synthesizes every stack of this app into cdk.out."""
    build = config.build
    return {
        "version": "0.2",
        "phases": {
            "install": {
                "runtime-versions": {
                    "python": build.python_version,
                    "nodejs": build.nodejs_version,
                },
                "commands": [
                    'echo "=== Installing dependencies ==="',
                    f"npm install -g aws-cdk@{build.cdk_cli_version}",
                    "python -m pip install --upgrade pip",
                    "python -m pip install .",
                ],
            },
            "pre_build": {
                "commands": [
                    'echo "=== Pre-build phase ==="',
                    "python --version",
                    "node --version",
                    "cdk --version",
                    'echo "Current directory: $(pwd)"',
                    "ls -la",
                ],
            },
            "build": {
                "commands": [
                    'echo "=== Build phase ==="',
                    "cdk synth --all",
                    'echo "CDK synth completed successfully"',
                    "ls -la cdk.out/",
                ],
            },
            "post_build": {
                "commands": [
                    'echo "=== Post-build phase ==="',
                    'echo "Build completed at $(date)"',
                ],
            },
        },
        "artifacts": {
            "files": ["**/*"],
            "base-directory": "cdk.out",
        },
        "cache": {
            "paths": ["/root/.cache/pip/**/*"],
        },
    }


class PipelineStack(cdk.Stack):
    """S3-sourced CodePipeline that synthesizes and deploys the app."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: PipelineConfig,
        project: ProjectConfig,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        name = project.name

        self.source_bucket = s3.Bucket(
            self,
            f"{name}SourceBucket",
            bucket_name=f"{config.source_bucket_prefix}-{cdk.Aws.ACCOUNT_ID}-{cdk.Aws.REGION}",
            versioned=True,
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            removal_policy=cdk.RemovalPolicy.DESTROY,
            auto_delete_objects=True,
        )

        self.artifact_bucket = s3.Bucket(
            self,
            f"{name}ArtifactBucket",
            bucket_name=f"{config.artifact_bucket_prefix}-{cdk.Aws.ACCOUNT_ID}-{cdk.Aws.REGION}",
            versioned=True,
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            removal_policy=cdk.RemovalPolicy.DESTROY,
            auto_delete_objects=True,
            lifecycle_rules=[
                s3.LifecycleRule(
                    id="DeleteOldArtifacts",
                    enabled=True,
                    expiration=cdk.Duration.days(config.artifact_expiration_days),
                )
            ],
        )

        self.build_project = self._create_build_project(config, name)
        self.pipeline = self._create_pipeline(config, project)
        self._add_outputs(project)

        logger.info(
            "pipeline_stack_defined",
            stack=construct_id,
            pipeline=config.pipeline_name,
            source_key=config.source_object_key,
            deploy_stacks=[key.value for key in config.deploy_stacks],
        )

    def _create_build_project(self, config: PipelineConfig, name: str) -> codebuild.PipelineProject:
        build = config.build

        role = iam.Role(
            self,
            f"{name}CodeBuildRole",
            role_name=build.role_name,
            assumed_by=iam.ServicePrincipal("codebuild.amazonaws.com"),
            description="Service role for the CDK synth CodeBuild project",
        )
        role.add_to_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                actions=[
                    "logs:CreateLogGroup",
                    "logs:CreateLogStream",
                    "logs:PutLogEvents",
                ],
                resources=[
                    f"arn:aws:logs:{cdk.Aws.REGION}:{cdk.Aws.ACCOUNT_ID}:log-group:/aws/codebuild/*"
                ],
            )
        )
        role.add_to_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                actions=SOURCE_OBJECT_ACTIONS,
                resources=[
                    self.source_bucket.arn_for_objects("*"),
                    self.artifact_bucket.arn_for_objects("*"),
                ],
            )
        )
        if build.admin_access:
            # cdk synth may perform context lookups against the account
            role.add_managed_policy(
                iam.ManagedPolicy.from_aws_managed_policy_name("AdministratorAccess")
            )

        return codebuild.PipelineProject(
            self,
            f"{name}BuildProject",
            project_name=build.project_name,
            description=build.description,
            environment=codebuild.BuildEnvironment(
                build_image=codebuild.LinuxBuildImage.AMAZON_LINUX_2_5,
                compute_type=getattr(codebuild.ComputeType, build.compute_type),
                privileged=False,
            ),
            role=role,
            timeout=cdk.Duration.minutes(build.timeout_minutes),
            build_spec=codebuild.BuildSpec.from_object(build_spec(config)),
        )

    def _create_pipeline(self, config: PipelineConfig, project: ProjectConfig) -> codepipeline.Pipeline:
        name = project.name

        role = iam.Role(
            self,
            f"{name}PipelineRole",
            role_name=config.role_name,
            assumed_by=iam.ServicePrincipal("codepipeline.amazonaws.com"),
            description="Service role for the CI/CD pipeline",
        )
        role.add_to_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                actions=[*SOURCE_OBJECT_ACTIONS, "s3:GetBucketVersioning"],
                resources=[
                    self.source_bucket.bucket_arn,
                    self.source_bucket.arn_for_objects("*"),
                    self.artifact_bucket.bucket_arn,
                    self.artifact_bucket.arn_for_objects("*"),
                ],
            )
        )
        role.add_to_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                actions=["codebuild:BatchGetBuilds", "codebuild:StartBuild"],
                resources=[self.build_project.project_arn],
            )
        )
        role.add_to_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                actions=CLOUDFORMATION_DEPLOY_ACTIONS,
                # Deployed templates may touch any resource type
                resources=["*"],
            )
        )

        pipeline = codepipeline.Pipeline(
            self,
            f"{name}Pipeline",
            pipeline_name=config.pipeline_name,
            role=role,
            artifact_bucket=self.artifact_bucket,
            restart_execution_on_update=config.restart_execution_on_update,
        )

        source_output = codepipeline.Artifact("SourceOutput")
        build_output = codepipeline.Artifact("BuildOutput")

        pipeline.add_stage(
            stage_name="Source",
            actions=[
                codepipeline_actions.S3SourceAction(
                    action_name="S3Source",
                    bucket=self.source_bucket,
                    bucket_key=config.source_object_key,
                    output=source_output,
                    trigger=codepipeline_actions.S3Trigger.POLL,
                )
            ],
        )

        pipeline.add_stage(
            stage_name="Build",
            actions=[
                codepipeline_actions.CodeBuildAction(
                    action_name="CDKSynth",
                    project=self.build_project,
                    input=source_output,
                    outputs=[build_output],
                )
            ],
        )

        pipeline.add_stage(
            stage_name="Deploy",
            actions=deploy_actions(config, project, build_output),
        )
        return pipeline

    def _add_outputs(self, project: ProjectConfig) -> None:
        prefix = project.export_prefix
        add_output(self, "PipelineName", self.pipeline.pipeline_name, "Name of the CodePipeline", prefix)
        add_output(self, "PipelineArn", self.pipeline.pipeline_arn, "ARN of the CodePipeline", prefix)
        add_output(
            self,
            "SourceBucketName",
            self.source_bucket.bucket_name,
            "Name of the source code S3 bucket",
            prefix,
        )
        add_output(
            self,
            "BuildProjectName",
            self.build_project.project_name,
            "Name of the CodeBuild project",
            prefix,
        )


def deploy_actions(
    config: PipelineConfig,
    project: ProjectConfig,
    build_output: codepipeline.Artifact,
) -> list[codepipeline_actions.CloudFormationCreateUpdateStackAction]:
    """One CloudFormation create/update action per deployed stack, in run order."""
    actions = []
    for run_order, key in enumerate(config.deploy_stacks, start=1):
        stack_name = project.stack_names.get(key)
        actions.append(
            codepipeline_actions.CloudFormationCreateUpdateStackAction(
                action_name=f"Deploy{stack_name.removeprefix(project.name) or stack_name}",
                stack_name=stack_name,
                template_path=build_output.at_path(f"{stack_name}.template.json"),
                admin_permissions=True,
                run_order=run_order,
            )
        )
    return actions
