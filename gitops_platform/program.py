"""Pulumi program: network, then trust and registry, then the cluster."""
import pulumi
import pulumi_aws as aws

from gitops_platform.components.cluster import check_kubernetes_version, create_cluster_stack
from gitops_platform.components.network import NetworkBoundary
from gitops_platform.components.trust import resolve_federation_anchor
from gitops_platform.config import resolve_context
from gitops_platform.utils.autotag import register_auto_tags

STACK_CATALOG_FIELDS = [
    'vpc_id', 'public_subnet_ids', 'private_subnet_ids', 'cluster_name', 'cluster_endpoint',
    'cluster_arn', 'registry_uri', 'role_arn',
]


class ProvisionedGraph(object):
    def __init__(self, context, provider, network, identity, registry, cluster):
        self.context = context
        self.provider = provider
        self.network = network
        self.identity = identity
        self.registry = registry
        self.cluster = cluster

    def outputs(self):
        """Values downstream CI tooling depends on."""
        return {
            'vpc_id': self.network.vpc_id,
            'public_subnet_ids': self.network.public_subnet_ids,
            'private_subnet_ids': self.network.private_subnet_ids,
            'cluster_name': self.cluster.cluster_name,
            'cluster_endpoint': self.cluster.endpoint,
            'cluster_arn': self.cluster.cluster_arn,
            'registry_uri': self.registry.repository_url,
            'role_arn': self.identity.role_arn,
        }


def build(context, capacity_pools=None):
    """Declare every resource in dependency order and return the handles.

    Everything that can reject the configuration runs before the first
    infrastructure resource is declared.
    """
    check_kubernetes_version(context.kubernetes_version, context.control_plane_tooling_version)
    provider = aws.Provider(
        f'{context.resource_prefix}-aws',
        region=context.region,
        allowed_account_ids=[context.account_id],
    )
    opts = pulumi.ResourceOptions(provider=provider)
    anchor = resolve_federation_anchor(context.federation_anchor_arn, opts)

    network = NetworkBoundary(context, opts=opts)
    cluster = create_cluster_stack(
        network, context.federation_anchor_arn, context, capacity_pools=capacity_pools, anchor=anchor, opts=opts)
    return ProvisionedGraph(context, provider, network, cluster.identity, cluster.registry, cluster)


def run(environ=None, context=None):
    """Declare the whole graph; the engine applies it once this returns."""
    if context is None:
        context = resolve_context(environ)
    register_auto_tags({
        'source': 'pulumi',
        'pulumi:Project': pulumi.get_project(),
        'pulumi:Stack': pulumi.get_stack(),
    })
    graph = build(context)

    for key, value in graph.outputs().items():
        pulumi.export(key, value)
    pulumi.export('kubeconfig', pulumi.Output.secret(graph.cluster.kubeconfig))
    pulumi.export('stack_catalog', {context.resource_prefix: STACK_CATALOG_FIELDS})
    return graph
