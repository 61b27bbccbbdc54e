"""
Workflows Package for IAM Baseline.

This package provides the workflows behind the validate, plan, apply
and verify operator commands.
"""

from .apply import ApplyWorkflow
from .base_workflow import BaseWorkflow, WorkflowStep
from .helpers import (
    create_run_summary,
    find_dangling_references,
    find_identifier_collisions,
    policy_document_size,
    validate_baseline,
)
from .plan import PlanWorkflow
from .validate import ValidateWorkflow
from .verify import VerifyWorkflow

__all__ = [
    "BaseWorkflow",
    "WorkflowStep",
    "ValidateWorkflow",
    "PlanWorkflow",
    "ApplyWorkflow",
    "VerifyWorkflow",
    "validate_baseline",
    "find_dangling_references",
    "find_identifier_collisions",
    "policy_document_size",
    "create_run_summary",
]
