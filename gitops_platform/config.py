"""Environment configuration, resolved once and handed to every stack"""
import dataclasses
import ipaddress
import os
import re
from typing import Mapping, Optional, Tuple

from gitops_platform.exceptions import ConfigurationError

DEFAULT_ACCOUNT_ID = '695418593935'
DEFAULT_REGION = 'ap-southeast-2'
DEFAULT_ENVIRONMENT = 'dev'
DEFAULT_APPLICATION = 'gitops-platform-aws'
DEFAULT_FEDERATION_ANCHOR_ARN = (
    f'arn:aws:iam::{DEFAULT_ACCOUNT_ID}:oidc-provider/token.actions.githubusercontent.com'
)
DEFAULT_GITHUB_REPOSITORY = 'kenneth-de-guzman/gitops-platform-aws'
DEFAULT_VPC_CIDR = '10.0.0.0/16'
DEFAULT_MAX_AZS = 2
DEFAULT_SUBNET_PREFIX = 24
DEFAULT_NAT_GATEWAYS = 1
DEFAULT_KUBERNETES_VERSION = '1.28'

ACCOUNT_ID_PATTERN = re.compile(r'^\d{12}$')
REGION_PATTERN = re.compile(r'^[a-z]{2}(-gov)?-[a-z]+-\d$')
OIDC_PROVIDER_ARN_PATTERN = re.compile(r'^arn:aws[a-z-]*:iam::\d{12}:oidc-provider/.+$')
REPOSITORY_PATTERN = re.compile(r'^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$')
NAME_PATTERN = re.compile(r'^[a-z0-9][a-z0-9-]*$')
VERSION_PATTERN = re.compile(r'^\d+\.\d+$')


@dataclasses.dataclass(frozen=True)
class EnvironmentContext:
    environment: str = DEFAULT_ENVIRONMENT
    application: str = DEFAULT_APPLICATION
    federation_anchor_arn: str = DEFAULT_FEDERATION_ANCHOR_ARN
    account_id: str = DEFAULT_ACCOUNT_ID
    region: str = DEFAULT_REGION
    github_repository: str = DEFAULT_GITHUB_REPOSITORY
    vpc_cidr: str = DEFAULT_VPC_CIDR
    max_azs: int = DEFAULT_MAX_AZS
    subnet_prefix: int = DEFAULT_SUBNET_PREFIX
    nat_gateways: int = DEFAULT_NAT_GATEWAYS
    availability_zones: Tuple[str, ...] = ()
    kubernetes_version: str = DEFAULT_KUBERNETES_VERSION
    kubectl_version: Optional[str] = None
    protect_resources: bool = False

    def __post_init__(self):
        for field, value in (('environment', self.environment), ('application', self.application)):
            if not NAME_PATTERN.match(value):
                raise ConfigurationError(
                    f'Invalid {field} name {value!r}',
                    'Use lowercase letters, digits and hyphens; resource names are derived from it.',
                )
        if not ACCOUNT_ID_PATTERN.match(self.account_id):
            raise ConfigurationError(f'Malformed AWS account id {self.account_id!r}', 'Expected 12 digits.')
        if not REGION_PATTERN.match(self.region):
            raise ConfigurationError(f'Malformed AWS region {self.region!r}')
        if not OIDC_PROVIDER_ARN_PATTERN.match(self.federation_anchor_arn):
            raise ConfigurationError(
                f'Malformed federation anchor {self.federation_anchor_arn!r}',
                'Expected an IAM OIDC provider ARN.',
            )
        if not REPOSITORY_PATTERN.match(self.github_repository):
            raise ConfigurationError(
                f'Malformed GitHub repository {self.github_repository!r}', 'Expected OWNER/REPO.'
            )
        try:
            network = ipaddress.ip_network(self.vpc_cidr)
        except ValueError as e:
            raise ConfigurationError(f'Malformed VPC CIDR {self.vpc_cidr!r}', str(e)) from e
        if not network.prefixlen < self.subnet_prefix <= 28:
            raise ConfigurationError(
                f'Subnet prefix /{self.subnet_prefix} does not fit inside {self.vpc_cidr}'
            )
        if self.max_azs < 1:
            raise ConfigurationError(f'MAX_AZS must be at least 1, got {self.max_azs}')
        if self.availability_zones and len(self.availability_zones) < self.max_azs:
            raise ConfigurationError(
                f'{len(self.availability_zones)} availability zones configured, {self.max_azs} required'
            )
        if not 1 <= self.nat_gateways <= self.max_azs:
            raise ConfigurationError(
                f'NAT_GATEWAYS must be between 1 and {self.max_azs}, got {self.nat_gateways}',
                'Private subnets need an egress path and there is at most one NAT gateway per zone.',
            )
        for version in (self.kubernetes_version, self.kubectl_version):
            if version is not None and not VERSION_PATTERN.match(version):
                raise ConfigurationError(f'Malformed Kubernetes version {version!r}', 'Expected MAJOR.MINOR.')

    @property
    def tags(self):
        return {'env': self.environment, 'app': self.application}

    @property
    def control_plane_tooling_version(self):
        return self.kubectl_version or self.kubernetes_version

    @property
    def resource_prefix(self):
        return f'{self.application}-{self.environment}'

    @property
    def registry_name(self):
        return f'{self.application}-app-{self.environment}'

    @property
    def cluster_name(self):
        return f'{self.application}-eks-cluster-{self.environment}'

    @property
    def role_name(self):
        return f'{self.application}-github-actions-role-{self.environment}'


def _int(environ, key, default):
    raw = environ.get(key)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f'{key} must be an integer, got {raw!r}') from e


def _str(environ, key, default):
    return environ.get(key) or default


def _bool(environ, key, default):
    raw = environ.get(key)
    if raw is None or raw == '':
        return default
    if raw.lower() in ('1', 'true', 'yes'):
        return True
    if raw.lower() in ('0', 'false', 'no'):
        return False
    raise ConfigurationError(f'{key} must be true or false, got {raw!r}')


def resolve_context(environ: Optional[Mapping[str, str]] = None) -> EnvironmentContext:
    """Build the EnvironmentContext from environment variables.

    Every variable is optional. A missing or empty variable falls back to its
    default; a present but malformed one raises ConfigurationError.
    """
    if environ is None:
        environ = os.environ
    zones = tuple(z.strip() for z in _str(environ, 'AVAILABILITY_ZONES', '').split(',') if z.strip())
    return EnvironmentContext(
        environment=_str(environ, 'ENV', DEFAULT_ENVIRONMENT),
        application=_str(environ, 'APP', DEFAULT_APPLICATION),
        federation_anchor_arn=_str(environ, 'GITHUB_OIDC_ARN', DEFAULT_FEDERATION_ANCHOR_ARN),
        account_id=_str(environ, 'AWS_ACCOUNT_ID', DEFAULT_ACCOUNT_ID),
        region=_str(environ, 'AWS_REGION', DEFAULT_REGION),
        github_repository=_str(environ, 'GITHUB_REPOSITORY', DEFAULT_GITHUB_REPOSITORY),
        vpc_cidr=_str(environ, 'VPC_CIDR', DEFAULT_VPC_CIDR),
        max_azs=_int(environ, 'MAX_AZS', DEFAULT_MAX_AZS),
        nat_gateways=_int(environ, 'NAT_GATEWAYS', DEFAULT_NAT_GATEWAYS),
        availability_zones=zones,
        kubernetes_version=_str(environ, 'KUBERNETES_VERSION', DEFAULT_KUBERNETES_VERSION),
        kubectl_version=environ.get('KUBECTL_VERSION') or None,
        protect_resources=_bool(environ, 'PROTECT_RESOURCES', False),
    )
