"""GitHub Actions OIDC federation: trust policy and assumable deployment role."""
import json
import re

import pulumi
import pulumi_aws as aws

from gitops_platform.components.base import TaggedComponent, invoke_options
from gitops_platform.config import EnvironmentContext
from gitops_platform.exceptions import ConfigurationError
from gitops_platform.utils.autotag import apply_tags

AUDIENCE = 'sts.amazonaws.com'
DEPLOYMENT_MANAGED_POLICY_ARN = 'arn:aws:iam::aws:policy/PowerUserAccess'
CLUSTER_INTROSPECTION_ACTIONS = [
    'eks:DescribeCluster',
    'eks:ListClusters',
    'eks:DescribeNodegroup',
    'eks:ListNodegroups',
]


def github_subject_patterns(repository):
    """Any ref of `repository`, plus the repository itself."""
    return [f'repo:{repository}/*', f'repo:{repository}']


def subject_allowed(subject, patterns):
    """Evaluate IAM StringLike matching of `subject` against `patterns`."""
    for pattern in patterns:
        regex = ''.join('.*' if c == '*' else '.' if c == '?' else re.escape(c) for c in pattern)
        if re.fullmatch(regex, subject, flags=re.DOTALL):
            return True
    return False


def issuer_host(url):
    return re.sub(r'^https://', '', url).rstrip('/')


def build_trust_policy(provider_arn, issuer, subjects, audience=AUDIENCE):
    return {
        'Version': '2012-10-17',
        'Statement': [
            {
                'Effect': 'Allow',
                'Principal': {'Federated': provider_arn},
                'Action': 'sts:AssumeRoleWithWebIdentity',
                'Condition': {
                    'StringEquals': {f'{issuer}:aud': audience},
                    'StringLike': {f'{issuer}:sub': list(subjects)},
                },
            }
        ],
    }


def cluster_introspection_policy(cluster_arn):
    return {
        'Version': '2012-10-17',
        'Statement': [
            {
                'Effect': 'Allow',
                'Action': CLUSTER_INTROSPECTION_ACTIONS,
                'Resource': cluster_arn,
            }
        ],
    }


def resolve_federation_anchor(arn, opts=None):
    """Look up an OIDC provider registered out-of-band. It is never created here."""
    try:
        return aws.iam.get_open_id_connect_provider(arn=arn, opts=invoke_options(opts))
    except Exception as e:
        raise ConfigurationError(
            f'Federation anchor {arn} could not be resolved',
            'Register the GitHub OIDC provider in the account before provisioning.',
        ) from e


class FederatedIdentity(TaggedComponent):
    """Role that GitHub Actions workflows of one repository can assume."""

    def __init__(self, context: EnvironmentContext, federation_anchor_arn=None, anchor=None, opts=None):
        federation_anchor_arn = federation_anchor_arn or context.federation_anchor_arn
        if anchor is None:
            anchor = resolve_federation_anchor(federation_anchor_arn, opts)
        super().__init__('FederatedIdentity', f'{context.resource_prefix}-github-actions', opts)
        self.federation_anchor_arn = federation_anchor_arn
        apply_tags(self, context.tags)

        self.issuer = issuer_host(anchor.url)
        self.audience = AUDIENCE
        self.subject_patterns = github_subject_patterns(context.github_repository)
        self.trust_policy = build_trust_policy(self.federation_anchor_arn, self.issuer, self.subject_patterns)
        self.role_name = context.role_name

        self.role = aws.iam.Role(
            f'{context.resource_prefix}-github-actions-role',
            name=self.role_name,
            assume_role_policy=json.dumps(self.trust_policy),
            description=f'Assumed by GitHub Actions in {context.github_repository}',
            opts=self.child_opts,
        )
        # Broad grant for deployment automation; cluster introspection is added
        # separately once the cluster exists.
        self.managed_policy_attachment = aws.iam.RolePolicyAttachment(
            f'{context.resource_prefix}-github-actions-power-user',
            role=self.role.name,
            policy_arn=DEPLOYMENT_MANAGED_POLICY_ARN,
            opts=self.child_opts,
        )
        self.role_arn = self.role.arn

        pulumi.log.info(f'trusting {", ".join(self.subject_patterns)} via {self.issuer}', resource=self)
        self.seal({'role_arn': self.role_arn, 'role_name': self.role.name})

    def allow_cluster_introspection(self, cluster_name, cluster_arn, opts=None):
        """Read-only describe/list on one cluster. Overlaps the managed grant."""
        return aws.iam.RolePolicy(
            f'{cluster_name}-introspection',
            role=self.role.id,
            policy=pulumi.Output.from_input(cluster_arn).apply(
                lambda arn: json.dumps(cluster_introspection_policy(arn))
            ),
            opts=pulumi.ResourceOptions.merge(self.child_opts, opts or pulumi.ResourceOptions()),
        )
