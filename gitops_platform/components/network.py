"""Network boundary: VPC, public/private subnet groups and NAT egress."""
import pulumi
import pulumi_aws as aws

from gitops_platform.components.base import TaggedComponent, invoke_options
from gitops_platform.config import EnvironmentContext
from gitops_platform.exceptions import ConfigurationError
from gitops_platform.utils.autotag import apply_tags
from gitops_platform.vpc import AwsVpc, plan_subnets


def resolve_availability_zones(context: EnvironmentContext, opts=None):
    if context.availability_zones:
        return list(context.availability_zones[:context.max_azs])
    available = aws.get_availability_zones(state='available', opts=invoke_options(opts)).names
    if len(available) < context.max_azs:
        raise ConfigurationError(
            f'{context.region} has {len(available)} available zones, {context.max_azs} requested'
        )
    return list(available[:context.max_azs])


class NetworkBoundary(TaggedComponent):
    """Isolated network for the cluster.

    One public and one private subnet per zone. Private subnets share
    `context.nat_gateways` NAT gateways round-robin; the default of one is a
    single point of reduced availability accepted for this tier.
    """

    def __init__(self, context: EnvironmentContext, opts=None):
        availability_zones = resolve_availability_zones(context, opts)
        plan = plan_subnets(context.vpc_cidr, availability_zones, context.subnet_prefix)
        super().__init__('NetworkBoundary', f'{context.resource_prefix}-network', opts)
        apply_tags(self, context.tags)

        self.address_range = context.vpc_cidr
        self.availability_zones = availability_zones
        self.zone_count = len(availability_zones)
        self.nat_count = context.nat_gateways

        self._vpc = AwsVpc(
            environment=context.environment,
            root_tag_name=context.application,
            root_resource_name=context.resource_prefix,
            vpc_cidr=context.vpc_cidr,
            protect_resources=context.protect_resources,
            parent=self,
        )
        self.vpc = self._vpc.vpc
        self.internet_gateway = self._vpc.internet_gateway

        self.public_subnets = {}
        for az in self.availability_zones:
            subnet, route_table, assoc = self._vpc.create_subnet(az, plan[az]['public'])
            self.public_subnets[az] = {'subnet': subnet, 'route_table': route_table, 'subnet_association': assoc}

        self.nat_gateways = [
            self._vpc.create_nat_gateway(az, self.public_subnets[az]['subnet'])
            for az in self.availability_zones[:self.nat_count]
        ]

        self.private_subnets = {}
        for i, az in enumerate(self.availability_zones):
            nat = self.nat_gateways[i % self.nat_count]['nat_gateway']
            subnet, route_table, assoc = self._vpc.create_subnet(
                az, plan[az]['private'], public=False, nat_gateway=nat)
            self.private_subnets[az] = {'subnet': subnet, 'route_table': route_table, 'subnet_association': assoc}

        self.vpc_id = self.vpc.id
        self.public_subnet_ids = [group['subnet'].id for group in self.public_subnets.values()]
        self.private_subnet_ids = [group['subnet'].id for group in self.private_subnets.values()]
        # Everything a private workload needs before it can reach the internet.
        self.private_egress = [group['subnet_association'] for group in self.private_subnets.values()]
        self.private_egress.extend(nat['nat_gateway'] for nat in self.nat_gateways)

        pulumi.log.info(
            f'network boundary {context.vpc_cidr} across {self.zone_count} zones with {self.nat_count} NAT gateway(s)',
            resource=self,
        )
        self.seal({
            'vpc_id': self.vpc_id,
            'public_subnet_ids': self.public_subnet_ids,
            'private_subnet_ids': self.private_subnet_ids,
        })
