"""Pytest configuration, Pulumi mocks and shared fixtures."""

import re

import pulumi
import pytest
from hypothesis import Verbosity, settings

from gitops_platform.config import EnvironmentContext

settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)
settings.load_profile("default")

ACCOUNT_ID = "695418593935"
REGION = "ap-southeast-2"
FEDERATION_ANCHOR_ARN = f"arn:aws:iam::{ACCOUNT_ID}:oidc-provider/token.actions.githubusercontent.com"
ZONES = ("ap-southeast-2a", "ap-southeast-2b", "ap-southeast-2c")


def prop(inputs, name):
    """Read an input property by its Python name or its camelCase wire name."""
    if name in inputs:
        return inputs[name]
    camel = re.sub(r"_([a-z])", lambda m: m.group(1).upper(), name)
    return inputs.get(camel)


class ProvisioningMocks(pulumi.runtime.Mocks):
    """Records every registered resource and answers the lookups the program makes."""

    def __init__(self, known_providers=(FEDERATION_ANCHOR_ARN,), zones=ZONES):
        self.known_providers = set(known_providers)
        self.zones = list(zones)
        self.resources = []
        self.calls = []
        self.call_providers = {}

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        self.resources.append(args)
        outputs = dict(args.inputs)
        name = args.inputs.get("name") or args.name
        if args.typ == "aws:eks/cluster:Cluster":
            outputs["arn"] = f"arn:aws:eks:{REGION}:{ACCOUNT_ID}:cluster/{name}"
            outputs["endpoint"] = f"https://{name}.{REGION}.eks.amazonaws.com"
            outputs["certificateAuthority"] = {"data": "Y2VydGlmaWNhdGU="}
        elif args.typ == "aws:ecr/repository:Repository":
            outputs["arn"] = f"arn:aws:ecr:{REGION}:{ACCOUNT_ID}:repository/{name}"
            outputs["repositoryUrl"] = f"{ACCOUNT_ID}.dkr.ecr.{REGION}.amazonaws.com/{name}"
        resource_id = f"{args.name}_id"
        if args.typ == "aws:iam/role:Role":
            outputs["arn"] = f"arn:aws:iam::{ACCOUNT_ID}:role/{name}"
            outputs["name"] = name
            # IAM role ids are their names
            resource_id = name
        return [resource_id, outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        self.calls.append(args.token)
        self.call_providers[args.token] = args.provider
        if args.token == "aws:index/getAvailabilityZones:getAvailabilityZones":
            return {"names": self.zones, "zoneIds": [f"apse2-az{i + 1}" for i in range(len(self.zones))]}
        if args.token == "aws:iam/getOpenIdConnectProvider:getOpenIdConnectProvider":
            arn = args.args.get("arn")
            if arn not in self.known_providers:
                # A failed data source comes back from the engine as check failures.
                return {}, [("arn", f"OpenID Connect Provider ({arn}) not found")]
            return {
                "arn": arn,
                "url": "token.actions.githubusercontent.com",
                "clientIdLists": ["sts.amazonaws.com"],
                "thumbprintLists": [],
                "tags": {},
            }
        return {}

    def of_type(self, typ):
        return [r for r in self.resources if r.typ == typ]

    def one(self, typ):
        found = self.of_type(typ)
        assert len(found) == 1, f"expected one {typ}, found {len(found)}"
        return found[0]


def install_mocks(mocks):
    pulumi.runtime.set_mocks(mocks, project="gitops-platform-aws", stack="dev", preview=False)
    return mocks


@pytest.fixture
def mocks():
    return install_mocks(ProvisioningMocks())


@pytest.fixture
def context():
    return EnvironmentContext(environment="dev", application="demo")
