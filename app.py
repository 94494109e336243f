#!/usr/bin/env python3
"""
lab-infra - CDK app entry point.

Invoked by the cdk CLI through cdk.json (`python3 app.py`).

Stacks:
1. NetworkStack: VPC and subnets
2. FargateServiceStack: ECS Fargate service in that VPC
3. PipelineStack: CI/CD pipeline deploying the two stacks above
"""

import aws_cdk as cdk

from lab_infra.app import build_app, context_values
from lab_infra.config import CONTEXT_KEY, get_settings, load_config
from lab_infra.core.logging import configure_logging

settings = get_settings()
configure_logging(settings.log_level, settings.log_format)

app = cdk.App()
config = load_config(context=context_values(app, (CONTEXT_KEY,)))

build_app(app, config, settings)

app.synth()
