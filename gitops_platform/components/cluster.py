"""EKS cluster placed in the private subnets of a network boundary."""
import dataclasses
import json
from typing import Optional, Sequence, Tuple

import pulumi
import pulumi_aws as aws

from gitops_platform.components.base import TaggedComponent
from gitops_platform.components.network import NetworkBoundary
from gitops_platform.components.registry import ContainerRegistry
from gitops_platform.components.trust import FederatedIdentity
from gitops_platform.config import EnvironmentContext
from gitops_platform.exceptions import CapacityBoundsError, ConfigurationError, StructuralError
from gitops_platform.utils.autotag import apply_tags

SUPPORTED_KUBERNETES_VERSIONS = ('1.28', '1.29', '1.30', '1.31', '1.32', '1.33', '1.34')
# kubectl supports one minor version of skew in either direction.
MAX_TOOLING_SKEW = 1

CLUSTER_POLICY_ARNS = [
    'arn:aws:iam::aws:policy/AmazonEKSClusterPolicy',
]
NODE_POLICY_ARNS = [
    'arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy',
    'arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy',
    'arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly',
]


@dataclasses.dataclass(frozen=True)
class CapacityPool:
    """Managed node group with independent scaling bounds."""
    name: str = 'ManagedNodeGroup'
    min_size: int = 2
    max_size: int = 4
    desired_size: int = 2
    instance_types: Tuple[str, ...] = ('t3.small',)
    disk_size: int = 30

    def __post_init__(self):
        if not 0 <= self.min_size <= self.desired_size <= self.max_size or self.max_size < 1:
            raise CapacityBoundsError(
                f'Capacity pool {self.name!r} has invalid bounds',
                f'Need 0 <= min <= desired <= max and max >= 1, got min={self.min_size} '
                f'desired={self.desired_size} max={self.max_size}.',
            )
        if not self.instance_types:
            raise ConfigurationError(f'Capacity pool {self.name!r} needs at least one instance type')
        if self.disk_size < 1:
            raise ConfigurationError(f'Capacity pool {self.name!r} needs a positive disk size')


DEFAULT_CAPACITY_POOLS = (CapacityPool(),)


def _minor(version):
    major, minor = version.split('.')
    return int(major), int(minor)


def check_kubernetes_version(cluster_version, tooling_version):
    if cluster_version not in SUPPORTED_KUBERNETES_VERSIONS:
        raise ConfigurationError(
            f'Kubernetes {cluster_version} is not supported',
            f'Supported versions: {", ".join(SUPPORTED_KUBERNETES_VERSIONS)}.',
        )
    cluster_major, cluster_minor = _minor(cluster_version)
    tooling_major, tooling_minor = _minor(tooling_version)
    if cluster_major != tooling_major or abs(cluster_minor - tooling_minor) > MAX_TOOLING_SKEW:
        raise ConfigurationError(
            f'kubectl {tooling_version} is incompatible with Kubernetes {cluster_version}',
            f'kubectl must be within {MAX_TOOLING_SKEW} minor version of the control plane.',
        )


def _service_role(resource_name, service, policy_arns, opts):
    role = aws.iam.Role(
        resource_name,
        assume_role_policy=json.dumps({
            'Version': '2012-10-17',
            'Statement': [
                {
                    'Effect': 'Allow',
                    'Principal': {'Service': service},
                    'Action': 'sts:AssumeRole',
                }
            ],
        }),
        opts=opts,
    )
    attachments = [
        aws.iam.RolePolicyAttachment(
            f'{resource_name}-{policy_arn.rsplit("/", 1)[-1]}',
            role=role.name,
            policy_arn=policy_arn,
            opts=opts,
        )
        for policy_arn in policy_arns
    ]
    return role, attachments


def generate_kubeconfig(cluster_name, endpoint, certificate_authority_data, region):
    return {
        'apiVersion': 'v1',
        'kind': 'Config',
        'clusters': [{
            'name': cluster_name,
            'cluster': {
                'server': endpoint,
                'certificate-authority-data': certificate_authority_data,
            },
        }],
        'contexts': [{
            'name': cluster_name,
            'context': {'cluster': cluster_name, 'user': cluster_name},
        }],
        'current-context': cluster_name,
        'users': [{
            'name': cluster_name,
            'user': {
                'exec': {
                    'apiVersion': 'client.authentication.k8s.io/v1beta1',
                    'command': 'aws',
                    'args': ['eks', 'get-token', '--cluster-name', cluster_name, '--region', region],
                },
            },
        }],
    }


class ClusterStack(TaggedComponent):
    """EKS control plane and explicit capacity pools.

    The identity and registry are built by the caller and injected; this
    stack only grants the identity access to the cluster and the registry.
    """

    def __init__(self, context: EnvironmentContext, network: NetworkBoundary, identity, registry,
                 capacity_pools: Optional[Sequence[CapacityPool]] = None, opts=None):
        if not isinstance(network, NetworkBoundary):
            raise StructuralError(
                'Cluster requires a resolved network boundary',
                f'Got {type(network).__name__}; build the NetworkBoundary first.',
            )
        if not network.private_subnet_ids:
            raise StructuralError('Network boundary has no private subnets to place the cluster in')
        pools = tuple(DEFAULT_CAPACITY_POOLS if capacity_pools is None else capacity_pools)
        names = [pool.name for pool in pools]
        if len(set(names)) != len(names):
            raise ConfigurationError(f'Capacity pool names must be unique, got {names}')
        check_kubernetes_version(context.kubernetes_version, context.control_plane_tooling_version)

        super().__init__('ClusterStack', f'{context.resource_prefix}-cluster', opts)
        apply_tags(self, context.tags)

        self.name = context.cluster_name
        self.version = context.kubernetes_version
        self.capacity_pools = pools
        self.identity = identity
        self.registry = registry
        self.placement_subnet_ids = list(network.private_subnet_ids)

        self.cluster_role, cluster_attachments = _service_role(
            f'{self.name}-role', 'eks.amazonaws.com', CLUSTER_POLICY_ARNS, self.child_opts)
        self.node_role, node_attachments = _service_role(
            f'{self.name}-node-role', 'ec2.amazonaws.com', NODE_POLICY_ARNS, self.child_opts)

        # Control plane ENIs go to the private subnets only.
        self.cluster = aws.eks.Cluster(
            self.name,
            name=self.name,
            version=self.version,
            role_arn=self.cluster_role.arn,
            vpc_config=aws.eks.ClusterVpcConfigArgs(
                subnet_ids=self.placement_subnet_ids,
                endpoint_private_access=True,
                endpoint_public_access=True,
            ),
            opts=pulumi.ResourceOptions.merge(
                self.child_opts, pulumi.ResourceOptions(depends_on=cluster_attachments)),
        )

        # Nodes join only once the private subnets route out through NAT.
        self.node_group_dependencies = node_attachments + list(network.private_egress)
        self.node_groups = {}
        for pool in pools:
            self.node_groups[pool.name] = aws.eks.NodeGroup(
                f'{self.name}-{pool.name}',
                cluster_name=self.cluster.name,
                node_group_name=pool.name,
                node_role_arn=self.node_role.arn,
                subnet_ids=self.placement_subnet_ids,
                scaling_config=aws.eks.NodeGroupScalingConfigArgs(
                    min_size=pool.min_size,
                    max_size=pool.max_size,
                    desired_size=pool.desired_size,
                ),
                instance_types=list(pool.instance_types),
                disk_size=pool.disk_size,
                opts=pulumi.ResourceOptions.merge(
                    self.child_opts, pulumi.ResourceOptions(depends_on=self.node_group_dependencies)),
            )
            pulumi.log.debug(
                f'capacity pool {pool.name}: {pool.min_size}..{pool.max_size} '
                f'(desired {pool.desired_size}) of {",".join(pool.instance_types)}',
                resource=self,
            )

        self.cluster_name = self.cluster.name
        self.cluster_arn = self.cluster.arn
        self.endpoint = self.cluster.endpoint
        self.certificate_authority = self.cluster.certificate_authority.data

        # Cluster introspection is also covered by the identity's managed
        # grant; both are kept.
        self.introspection_policy = identity.allow_cluster_introspection(
            self.name, self.cluster_arn, opts=pulumi.ResourceOptions(parent=self))
        self.registry_grant = registry.grant_pull_push(identity, opts=pulumi.ResourceOptions(parent=self))
        apply_tags(identity, context.tags)
        apply_tags(registry, context.tags)

        self.kubeconfig = pulumi.Output.all(self.cluster_name, self.endpoint, self.certificate_authority).apply(
            lambda args: json.dumps(generate_kubeconfig(args[0], args[1], args[2], context.region))
        )

        pulumi.log.info(f'cluster {self.name} (Kubernetes {self.version}) with {len(pools)} capacity pool(s)',
                        resource=self)
        self.seal({
            'cluster_name': self.cluster_name,
            'cluster_arn': self.cluster_arn,
            'endpoint': self.endpoint,
        })


def create_cluster_stack(network: NetworkBoundary, federation_anchor_arn, context: EnvironmentContext,
                         capacity_pools=None, anchor=None, opts=None):
    """Build the identity and registry, then the cluster that wires them together."""
    if not isinstance(network, NetworkBoundary):
        raise StructuralError('Cluster requires a resolved network boundary')
    check_kubernetes_version(context.kubernetes_version, context.control_plane_tooling_version)
    identity = FederatedIdentity(context, federation_anchor_arn, anchor=anchor, opts=opts)
    registry = ContainerRegistry(context, opts=opts)
    return ClusterStack(context, network, identity, registry, capacity_pools=capacity_pools, opts=opts)
