"""Tag application for provisioned resources.

Tags cannot be added to a Pulumi resource after it has been registered, so
the Tag Set is applied through resource transformations: components install a
live transformation on themselves and every child resource they declare
picks the tags up. `register_auto_tags` does the same at stack level.
"""
from typing import Callable, Mapping, Protocol, runtime_checkable

import pulumi

from gitops_platform.exceptions import ConfigurationError

MAX_TAG_KEY_LENGTH = 128
MAX_TAG_VALUE_LENGTH = 256

# Resource types this project declares that accept a `tags` property.
TAGGABLE_RESOURCE_TYPES = frozenset([
    'aws:ec2/eip:Eip',
    'aws:ec2/internetGateway:InternetGateway',
    'aws:ec2/natGateway:NatGateway',
    'aws:ec2/routeTable:RouteTable',
    'aws:ec2/subnet:Subnet',
    'aws:ec2/vpc:Vpc',
    'aws:ecr/repository:Repository',
    'aws:eks/cluster:Cluster',
    'aws:eks/nodeGroup:NodeGroup',
    'aws:iam/role:Role',
])


@runtime_checkable
class Taggable(Protocol):
    """Anything that accepts key/value tags."""

    @property
    def tags(self) -> Mapping[str, str]:
        ...

    def add_tags(self, tags: Mapping[str, str]) -> None:
        ...


def is_taggable(resource_type):
    return resource_type in TAGGABLE_RESOURCE_TYPES


def validate_tags(tags):
    for key, value in tags.items():
        if not isinstance(key, str) or not key:
            raise ConfigurationError(f'Invalid tag key {key!r}')
        if len(key) > MAX_TAG_KEY_LENGTH:
            raise ConfigurationError(f'Tag key {key!r} exceeds {MAX_TAG_KEY_LENGTH} characters')
        if not isinstance(value, str) or len(value) > MAX_TAG_VALUE_LENGTH:
            raise ConfigurationError(
                f'Invalid value for tag {key!r}', f'Values must be strings of at most {MAX_TAG_VALUE_LENGTH} characters.'
            )
    return dict(tags)


def merge_tags(existing, tags):
    """Tag Set wins over anything already set under the same key; other keys such as Name are kept."""
    if isinstance(existing, pulumi.Output):
        return existing.apply(lambda resolved: {**(resolved or {}), **tags})
    return {**(existing or {}), **tags}


def live_tag_transformation(current_tags: Callable[[], Mapping[str, str]]):
    """Transformation reading the Tag Set at the moment each resource is registered."""

    def auto_tag(args: pulumi.ResourceTransformationArgs):
        if is_taggable(args.type_):
            args.props['tags'] = merge_tags(args.props.get('tags'), dict(current_tags()))
            return pulumi.ResourceTransformationResult(args.props, args.opts)
        return None

    return auto_tag


def tag_transformation(tags):
    tags = validate_tags(tags)
    return live_tag_transformation(lambda: tags)


def register_auto_tags(tags):
    """Tag every taggable resource registered in this stack from now on."""
    pulumi.runtime.register_stack_transformation(tag_transformation(tags))


def apply_tags(resource: Taggable, tags):
    """Apply each key/value pair to `resource`. Reapplying the same pairs is a no-op."""
    if not isinstance(resource, Taggable):
        raise ConfigurationError(f'{type(resource).__name__} does not accept tags')
    resource.add_tags(validate_tags(tags))
