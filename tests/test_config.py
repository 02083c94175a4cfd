"""Tests for environment resolution and resource naming."""

import dataclasses

import pytest
from hypothesis import given
from hypothesis import strategies as st

from gitops_platform import config
from gitops_platform.config import EnvironmentContext, resolve_context
from gitops_platform.exceptions import ConfigurationError

names = st.from_regex(r"[a-z][a-z0-9-]{0,15}", fullmatch=True)


def test_defaults_without_any_variable():
    context = resolve_context({})

    assert context.environment == config.DEFAULT_ENVIRONMENT
    assert context.application == config.DEFAULT_APPLICATION
    assert context.account_id == config.DEFAULT_ACCOUNT_ID
    assert context.region == config.DEFAULT_REGION
    assert context.federation_anchor_arn == config.DEFAULT_FEDERATION_ANCHOR_ARN
    assert context.nat_gateways == 1
    assert context.max_azs == 2
    assert context.availability_zones == ()
    assert context.control_plane_tooling_version == config.DEFAULT_KUBERNETES_VERSION
    assert context.protect_resources is False


def test_empty_variables_fall_back_to_defaults():
    assert resolve_context({"ENV": "", "MAX_AZS": ""}) == resolve_context({})


def test_demo_dev_names():
    context = resolve_context({"ENV": "dev", "APP": "demo"})

    assert context.registry_name == "demo-app-dev"
    assert context.cluster_name == "demo-eks-cluster-dev"
    assert context.role_name == "demo-github-actions-role-dev"
    assert context.tags == {"env": "dev", "app": "demo"}


@given(environment=names, application=names)
def test_names_are_deterministic(environment, application):
    environ = {"ENV": environment, "APP": application}
    first, second = resolve_context(environ), resolve_context(dict(environ))

    assert first == second
    assert (first.registry_name, first.cluster_name, first.role_name) == (
        second.registry_name,
        second.cluster_name,
        second.role_name,
    )


def test_context_is_immutable():
    context = resolve_context({})
    with pytest.raises(dataclasses.FrozenInstanceError):
        context.environment = "prod"


def test_availability_zones_are_split():
    context = resolve_context({"AVAILABILITY_ZONES": "us-east-1a, us-east-1b", "AWS_REGION": "us-east-1"})
    assert context.availability_zones == ("us-east-1a", "us-east-1b")


@pytest.mark.parametrize(
    "environ",
    [
        {"AWS_ACCOUNT_ID": "12345"},
        {"AWS_REGION": "mars"},
        {"GITHUB_OIDC_ARN": "not-an-arn"},
        {"GITHUB_REPOSITORY": "no-slash"},
        {"VPC_CIDR": "10.0.0.0/33"},
        {"MAX_AZS": "two"},
        {"MAX_AZS": "0"},
        {"NAT_GATEWAYS": "0"},
        {"NAT_GATEWAYS": "3"},
        {"AVAILABILITY_ZONES": "ap-southeast-2a"},
        {"KUBERNETES_VERSION": "latest"},
        {"ENV": "Prod"},
        {"PROTECT_RESOURCES": "maybe"},
    ],
)
def test_malformed_values_are_rejected(environ):
    with pytest.raises(ConfigurationError):
        resolve_context(environ)


def test_nat_gateways_up_to_zone_count():
    context = resolve_context({"MAX_AZS": "3", "NAT_GATEWAYS": "3"})
    assert context.nat_gateways == 3


def test_configuration_error_carries_details():
    with pytest.raises(ConfigurationError) as excinfo:
        EnvironmentContext(account_id="abc")
    assert excinfo.value.details == "Expected 12 digits."
    assert "Details: Expected 12 digits." in str(excinfo.value)


@pytest.mark.parametrize("raw, expected", [("true", True), ("1", True), ("False", False), ("", False)])
def test_protect_resources_flag(raw, expected):
    assert resolve_context({"PROTECT_RESOURCES": raw}).protect_resources is expected
