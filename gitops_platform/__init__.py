"""Provisioning for the GitOps platform: VPC, EKS, ECR and GitHub Actions OIDC trust."""

__version__ = '0.1.0'
