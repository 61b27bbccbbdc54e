"""
Baseline Engine Package.

This package loads the declarative baseline, builds standard policy
documents, and renders the baseline as Terraform configuration.
"""

from .baseline_loader import BaselineLoader, BaselineLoadError
from .policy_templates import (
    build_from_template,
    cloudtrail_bucket_policy,
    require_mfa_policy,
    s3_bucket_access_policy,
)
from .renderer import TerraformRenderer

__all__ = [
    "BaselineLoader",
    "BaselineLoadError",
    "TerraformRenderer",
    "build_from_template",
    "cloudtrail_bucket_policy",
    "require_mfa_policy",
    "s3_bucket_access_policy",
]
