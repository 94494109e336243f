"""
lab-infra - AWS CDK lab environment.

Declares three stacks on top of AWS CDK:

- NetworkStack: VPC and subnets
- FargateServiceStack: ECS cluster and Fargate service inside that VPC
- PipelineStack: S3-sourced CodePipeline that synthesizes and deploys the
  other two

Plus the operator tooling (`lab-infra` CLI) for bootstrap, deploy,
monitoring and teardown.
"""

__version__ = "0.1.0"
