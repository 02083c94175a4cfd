"""Tests for the Pulumi program entry point."""

import json

import pulumi
import pytest

from gitops_platform import program
from gitops_platform.exceptions import ConfigurationError

from conftest import ProvisioningMocks, install_mocks, prop


@pytest.fixture
def exports(monkeypatch):
    exported = {}
    monkeypatch.setattr(pulumi, "export", lambda name, value: exported.__setitem__(name, value))
    return exported


@pytest.fixture
def stack_tags(monkeypatch):
    registered = []
    monkeypatch.setattr(program, "register_auto_tags", registered.append)
    return registered


@pulumi.runtime.test
def test_run_exports_downstream_contract(mocks, exports, stack_tags):
    graph = program.run({"ENV": "dev", "APP": "demo"})

    assert set(program.STACK_CATALOG_FIELDS) | {"kubeconfig", "stack_catalog"} == set(exports)
    assert exports["stack_catalog"] == {"demo-dev": program.STACK_CATALOG_FIELDS}
    assert stack_tags == [{"source": "pulumi", "pulumi:Project": "gitops-platform-aws", "pulumi:Stack": "dev"}]

    def check(args):
        cluster_name, registry_uri, role_arn = args
        assert cluster_name == "demo-eks-cluster-dev"
        assert registry_uri == "695418593935.dkr.ecr.ap-southeast-2.amazonaws.com/demo-app-dev"
        assert role_arn == "arn:aws:iam::695418593935:role/demo-github-actions-role-dev"

    return pulumi.Output.all(
        exports["cluster_name"], exports["registry_uri"], exports["role_arn"], graph.cluster.cluster.id
    ).apply(lambda args: check(args[:3]))


@pulumi.runtime.test
def test_build_with_defaults(mocks):
    graph = program.build(program.resolve_context({}))

    assert graph.context.cluster_name == "gitops-platform-aws-eks-cluster-dev"
    assert graph.identity is graph.cluster.identity
    assert graph.registry is graph.cluster.registry
    return graph.cluster.cluster.id.apply(lambda _: None)


@pytest.fixture
def anchorless_mocks():
    return install_mocks(ProvisioningMocks(known_providers=()))


@pulumi.runtime.test
def test_unresolved_anchor_stops_before_registry_and_cluster(anchorless_mocks, exports, stack_tags):
    with pytest.raises(ConfigurationError):
        program.run({"ENV": "dev", "APP": "demo"})

    assert exports == {}
    assert "aws:iam/getOpenIdConnectProvider:getOpenIdConnectProvider" in anchorless_mocks.calls
    # The network looks up its zones first thing, so it was never started.
    assert "aws:index/getAvailabilityZones:getAvailabilityZones" not in anchorless_mocks.calls
    for typ in ("aws:ec2/vpc:Vpc", "aws:ecr/repository:Repository", "aws:eks/cluster:Cluster", "aws:iam/role:Role"):
        assert not anchorless_mocks.of_type(typ)


def test_malformed_configuration_declares_nothing(exports, stack_tags):
    with pytest.raises(ConfigurationError):
        program.run({"AWS_REGION": "not a region"})

    assert stack_tags == []
    assert exports == {}


@pulumi.runtime.test
def test_region_and_account_bind_every_aws_resource(mocks, exports, stack_tags):
    graph = program.run({"ENV": "dev", "APP": "demo", "AWS_REGION": "us-east-1", "AWS_ACCOUNT_ID": "111111111111"})
    provider_ref = "pulumi:providers:aws::demo-dev-aws"

    def check(args):
        kubeconfig = args[0]
        provider = mocks.one("pulumi:providers:aws")
        assert provider.name == "demo-dev-aws"
        assert provider.inputs["region"] == "us-east-1"
        account_ids = prop(provider.inputs, "allowed_account_ids")
        if isinstance(account_ids, str):
            account_ids = json.loads(account_ids)
        assert account_ids == ["111111111111"]

        aws_resources = [r for r in mocks.resources if r.typ.startswith("aws:")]
        assert aws_resources
        for resource in aws_resources:
            assert provider_ref in (resource.provider or ""), resource.name
        for token in ("aws:index/getAvailabilityZones:getAvailabilityZones",
                      "aws:iam/getOpenIdConnectProvider:getOpenIdConnectProvider"):
            assert provider_ref in (mocks.call_providers[token] or ""), token
        assert "us-east-1" in json.loads(kubeconfig)["users"][0]["user"]["exec"]["args"]

    return pulumi.Output.all(
        graph.cluster.kubeconfig, graph.registry.lifecycle_policy.id, graph.network.vpc.id,
        *[group.id for group in graph.cluster.node_groups.values()],
        graph.cluster.introspection_policy.id, graph.cluster.registry_grant.id,
        graph.identity.managed_policy_attachment.id,
    ).apply(check)
