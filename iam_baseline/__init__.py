"""
IAM Baseline

Declarative IAM groups, users, managed policies and a CloudTrail audit
trail for a small AWS organization.

The baseline is kept as YAML and JSON, checked locally, rendered to a
Terraform configuration, and applied through Terraform's validate, plan
and apply commands.
"""

__version__ = "1.0.0"
__author__ = "IAM Baseline Team"
__email__ = "team@example.com"

from .engine.baseline_loader import BaselineLoader
from .engine.renderer import TerraformRenderer
from .workflows.apply import ApplyWorkflow
from .workflows.plan import PlanWorkflow
from .workflows.validate import ValidateWorkflow
from .workflows.verify import VerifyWorkflow

__all__ = [
    "BaselineLoader",
    "TerraformRenderer",
    "ValidateWorkflow",
    "PlanWorkflow",
    "ApplyWorkflow",
    "VerifyWorkflow",
]
