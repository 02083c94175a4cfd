from gitops_platform.components.cluster import CapacityPool, ClusterStack, create_cluster_stack
from gitops_platform.components.network import NetworkBoundary
from gitops_platform.components.registry import ContainerRegistry
from gitops_platform.components.trust import FederatedIdentity

__all__ = [
    'CapacityPool',
    'ClusterStack',
    'ContainerRegistry',
    'FederatedIdentity',
    'NetworkBoundary',
    'create_cluster_stack',
]
