"""VPCs, subnets and route tables"""
import ipaddress

import pulumi
from pulumi_aws import ec2

from gitops_platform.exceptions import ConfigurationError

PRIVATE_SUBNET_INCREMENTOR = 16
PUBLIC_ELB_ROLE_TAG = 'kubernetes.io/role/elb'
PRIVATE_ELB_ROLE_TAG = 'kubernetes.io/role/internal-elb'


def plan_subnets(vpc_cidr, availability_zones, prefix_length=24):
    """Carve one public and one private block per zone out of `vpc_cidr`.

    Public blocks take the first indexes of the range, private blocks start at
    PRIVATE_SUBNET_INCREMENTOR and step by it, so zones can be added later
    without renumbering. Returns {az: {'public': cidr, 'private': cidr}}.
    """
    network = ipaddress.ip_network(vpc_cidr)
    blocks = network.num_addresses // (2 ** (network.max_prefixlen - prefix_length))
    plan = {}
    for i, az in enumerate(availability_zones):
        private_index = PRIVATE_SUBNET_INCREMENTOR * (i + 1)
        if i >= PRIVATE_SUBNET_INCREMENTOR or private_index >= blocks:
            raise ConfigurationError(
                f'{vpc_cidr} cannot hold {len(availability_zones)} zones of /{prefix_length} subnets'
            )
        plan[az] = {
            'public': _nth_subnet(network, prefix_length, i),
            'private': _nth_subnet(network, prefix_length, private_index),
        }
    return plan


def _nth_subnet(network, prefix_length, index):
    size = 2 ** (network.max_prefixlen - prefix_length)
    return str(ipaddress.ip_network((int(network.network_address) + index * size, prefix_length)))


class AwsVpc(object):
    def __init__(self, **kwargs):
        self.environment = kwargs.get('environment')
        self.root_tag_name = kwargs.get('root_tag_name')
        self.root_resource_name = kwargs.get('root_resource_name')
        self.vpc_cidr = kwargs.get('vpc_cidr')
        self.protect_resources = kwargs.get('protect_resources', False)
        self.parent = kwargs.get('parent')
        self.vpc = ec2.Vpc(
            f'{self.root_resource_name}-vpc',
            cidr_block=self.vpc_cidr,
            instance_tenancy='default',
            enable_dns_hostnames=True,
            enable_dns_support=True,
            opts=self._opts(),
            tags={
                'Name': f'{self.root_tag_name} VPC {self.environment}'
            }
        )
        self.internet_gateway = ec2.InternetGateway(
            f'{self.root_resource_name}-vpc-ig',
            vpc_id=self.vpc.id,
            opts=self._opts(),
            tags={
                'Name': f'{self.root_tag_name} VPC Internet Gateway {self.environment}'
            }
        )

    def _opts(self, **kwargs):
        return pulumi.ResourceOptions(parent=self.parent, protect=self.protect_resources, **kwargs)

    def create_subnet(self, az, cidr_block, public=True, nat_gateway=None):
        """Subnet with its own route table; public ones egress through the
        internet gateway, private ones through `nat_gateway`."""
        subnet_use = 'public' if public else 'private'
        subnet = ec2.Subnet(
            f'{self.root_resource_name}-{subnet_use}-subnet-{az}',
            vpc_id=self.vpc.id,
            availability_zone=az,
            map_public_ip_on_launch=public,
            cidr_block=cidr_block,
            opts=self._opts(),
            tags={
                'Name': '{root_tag_name} {subnet_use} Subnet {az} {environment}'.format(
                    root_tag_name=self.root_tag_name,
                    az=az,
                    environment=self.environment,
                    subnet_use=subnet_use.capitalize(),
                ),
                PUBLIC_ELB_ROLE_TAG if public else PRIVATE_ELB_ROLE_TAG: '1',
            }
        )
        if public:
            default_route = ec2.RouteTableRouteArgs(
                cidr_block='0.0.0.0/0',
                gateway_id=self.internet_gateway.id,
            )
        else:
            default_route = ec2.RouteTableRouteArgs(
                cidr_block='0.0.0.0/0',
                nat_gateway_id=nat_gateway.id,
            )
        route_table = ec2.RouteTable(
            f'{self.root_resource_name}-{subnet_use}-route-table-{az}',
            vpc_id=self.vpc.id,
            routes=[default_route],
            opts=self._opts(),
            tags={
                'Name': f'{self.root_tag_name} {subnet_use.capitalize()} route table {az} {self.environment}'
            },
        )
        subnet_assn = ec2.RouteTableAssociation(
            f'{self.root_resource_name}-{subnet_use}-subnet-association-{az}',
            subnet_id=subnet.id,
            route_table_id=route_table.id,
            opts=self._opts(),
        )
        return subnet, route_table, subnet_assn

    def create_nat_gateway(self, az, subnet):
        nat_eip = ec2.Eip(
            f'{self.root_resource_name}-nat-eip-{az}',
            domain='vpc',
            tags={
                'Name': f'{self.root_tag_name} NAT EIP {az} {self.environment}'
            },
            opts=self._opts()
        )
        nat_gateway = ec2.NatGateway(
            f'{self.root_resource_name}-nat-gateway-{az}',
            allocation_id=nat_eip.id,
            subnet_id=subnet.id,
            tags={
                'Name': f'{self.root_tag_name} NAT Gateway {az} {self.environment}'
            },
            opts=self._opts(depends_on=[self.internet_gateway])
        )
        return {
            'eip': nat_eip,
            'nat_gateway': nat_gateway
        }
