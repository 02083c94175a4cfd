import pulumi

from gitops_platform.exceptions import ConfigurationError
from gitops_platform.utils.autotag import live_tag_transformation, validate_tags

TYPE_PREFIX = 'gitops-platform:aws'


def invoke_options(opts):
    """Lookups go through the same explicit provider as the resources."""
    if opts is None or opts.provider is None:
        return None
    return pulumi.InvokeOptions(provider=opts.provider)


class TaggedComponent(pulumi.ComponentResource):
    """Component whose children all carry its Tag Set.

    Tags may be added until the component seals itself at the end of its
    constructor; after that only no-op reapplication is accepted, since the
    children have already been registered.
    """

    def __init__(self, type_name, name, opts=None):
        self._tags = {}
        self._sealed = False
        self.component_name = name
        opts = pulumi.ResourceOptions.merge(
            opts or pulumi.ResourceOptions(),
            pulumi.ResourceOptions(transformations=[live_tag_transformation(lambda: self._tags)]),
        )
        super().__init__(f'{TYPE_PREFIX}:{type_name}', name, None, opts)
        self.child_opts = pulumi.ResourceOptions(parent=self)

    @property
    def tags(self):
        return dict(self._tags)

    def add_tags(self, tags):
        changed = {k: v for k, v in validate_tags(tags).items() if self._tags.get(k) != v}
        if not changed:
            return
        if self._sealed:
            raise ConfigurationError(
                f'Cannot tag {self.component_name!r} after construction',
                f'Tags {sorted(changed)} must be applied before its resources are declared.',
            )
        self._tags.update(changed)

    def seal(self, outputs):
        self._sealed = True
        self.register_outputs(outputs)
