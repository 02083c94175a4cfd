"""ECR repository for application images."""
import json

import pulumi
import pulumi_aws as aws

from gitops_platform.components.base import TaggedComponent
from gitops_platform.config import EnvironmentContext
from gitops_platform.exceptions import ConfigurationError
from gitops_platform.utils.autotag import apply_tags

DEFAULT_MAX_IMAGE_COUNT = 10
ENCRYPTION_TYPE = 'AES256'

PULL_ACTIONS = [
    'ecr:BatchCheckLayerAvailability',
    'ecr:GetDownloadUrlForLayer',
    'ecr:BatchGetImage',
]
PUSH_ACTIONS = [
    'ecr:BatchCheckLayerAvailability',
    'ecr:PutImage',
    'ecr:InitiateLayerUpload',
    'ecr:UploadLayerPart',
    'ecr:CompleteLayerUpload',
]


def retention_policy(max_image_count=DEFAULT_MAX_IMAGE_COUNT):
    """Lifecycle policy expiring everything beyond the newest `max_image_count` images.

    Expiry itself is done by ECR in the background.
    """
    if max_image_count < 1:
        raise ConfigurationError(
            f'Image retention count must be positive, got {max_image_count}',
            'A registry that keeps no images cannot serve deployments.',
        )
    return {
        'rules': [
            {
                'rulePriority': 1,
                'description': f'Keep the {max_image_count} most recent images',
                'selection': {
                    'tagStatus': 'any',
                    'countType': 'imageCountMoreThan',
                    'countNumber': max_image_count,
                },
                'action': {'type': 'expire'},
            }
        ]
    }


def pull_push_policy(repository_arn):
    actions = list(dict.fromkeys(PULL_ACTIONS + PUSH_ACTIONS))
    return {
        'Version': '2012-10-17',
        'Statement': [
            {
                'Effect': 'Allow',
                'Action': ['ecr:GetAuthorizationToken'],
                'Resource': '*',
            },
            {
                'Effect': 'Allow',
                'Action': actions,
                'Resource': repository_arn,
            },
        ],
    }


class ContainerRegistry(TaggedComponent):
    """Encrypted, scan-on-push image repository with a retention rule."""

    def __init__(self, context: EnvironmentContext, max_image_count=DEFAULT_MAX_IMAGE_COUNT, opts=None):
        lifecycle = retention_policy(max_image_count)
        super().__init__('ContainerRegistry', f'{context.resource_prefix}-registry', opts)
        apply_tags(self, context.tags)

        self.name = context.registry_name
        self.encryption_type = ENCRYPTION_TYPE
        self.scan_on_push = True
        self.max_image_count = max_image_count
        self.repository = aws.ecr.Repository(
            f'{context.resource_prefix}-app-ecr',
            name=self.name,
            image_scanning_configuration=aws.ecr.RepositoryImageScanningConfigurationArgs(
                scan_on_push=self.scan_on_push,
            ),
            encryption_configurations=[
                aws.ecr.RepositoryEncryptionConfigurationArgs(encryption_type=self.encryption_type)
            ],
            image_tag_mutability='MUTABLE',
            opts=self.child_opts,
        )
        self.lifecycle_policy = aws.ecr.LifecyclePolicy(
            f'{context.resource_prefix}-app-ecr-retention',
            repository=self.repository.name,
            policy=json.dumps(lifecycle),
            opts=self.child_opts,
        )
        self.arn = self.repository.arn
        self.repository_url = self.repository.repository_url

        self.seal({'arn': self.arn, 'repository_url': self.repository_url})

    def grant_pull_push(self, identity, opts=None):
        """Let the identity's role push and pull images of this repository only."""
        pulumi.log.debug(f'granting pull/push on {self.name} to {identity.role_name}', resource=self)
        return aws.iam.RolePolicy(
            f'{self.name}-pull-push',
            role=identity.role.id,
            policy=self.arn.apply(lambda arn: json.dumps(pull_push_policy(arn))),
            opts=pulumi.ResourceOptions.merge(self.child_opts, opts or pulumi.ResourceOptions()),
        )
