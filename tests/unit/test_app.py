"""Tests for app assembly."""

import aws_cdk as cdk
from aws_cdk.assertions import Template

from lab_infra.app import build_app, context_values, deployment_environment
from lab_infra.config.config_loader import CONTEXT_KEY
from lab_infra.config.settings import Settings
from lab_infra.config.stack_schema import LabInfraConfig


class TestBuildApp:
    """Test the assembled stacks."""

    def test_stack_names(self, synth_app):
        _, stacks = synth_app

        assert [stack.stack_name for stack in stacks.all()] == [
            "LabInfraNetworkStack",
            "LabInfraFargateServiceStack",
            "LabInfraPipelineStack",
        ]

    def test_service_depends_on_network(self, synth_app):
        _, stacks = synth_app

        assert stacks.network in stacks.fargate_service.dependencies
        assert stacks.fargate_service not in stacks.network.dependencies
        assert stacks.pipeline.dependencies == []

    def test_service_imports_vpc_from_network(self, synth_app):
        _, stacks = synth_app
        template = Template.from_stack(stacks.fargate_service).to_json()

        assert "Fn::ImportValue" in str(template)

    def test_descriptions(self, synth_app):
        _, stacks = synth_app

        assert stacks.network.template_options.description == (
            "Lab infrastructure - network foundation (VPC, subnets)"
        )

    def test_project_tags_applied(self, synth_app):
        _, stacks = synth_app
        template = Template.from_stack(stacks.network)

        template.has_resource_properties(
            "AWS::EC2::VPC",
            {
                "Tags": [
                    {"Key": "Environment", "Value": "Development"},
                    {"Key": "Name", "Value": "LabInfraNetworkStack/LabInfraVpc"},
                    {"Key": "Project", "Value": "LabInfra"},
                    {"Key": "Purpose", "Value": "Learning"},
                ]
            },
        )

    def test_region_from_settings(self, synth_app):
        _, stacks = synth_app

        assert stacks.network.region == "ap-northeast-1"

    def test_renamed_stacks(self):
        config = LabInfraConfig(project={"stack_names": {"network": "DevNetwork"}})

        stacks = build_app(cdk.App(), config, Settings())

        assert stacks.network.stack_name == "DevNetwork"
        assert config.deploy_order()[0] == "DevNetwork"

    def test_full_assembly_synthesizes(self, synth_app):
        app, _ = synth_app

        assembly = app.synth()

        assert {stack.stack_name for stack in assembly.stacks} == {
            "LabInfraNetworkStack",
            "LabInfraFargateServiceStack",
            "LabInfraPipelineStack",
        }


class TestHelpers:
    """Test environment and context helpers."""

    def test_deployment_environment(self, settings):
        env = deployment_environment(settings)

        assert env.account == "123456789012"
        assert env.region == "ap-northeast-1"

    def test_context_values(self):
        app = cdk.App(context={CONTEXT_KEY: '{"network": {"max_azs": 1}}'})

        assert context_values(app, (CONTEXT_KEY, "missing")) == {
            CONTEXT_KEY: '{"network": {"max_azs": 1}}'
        }
