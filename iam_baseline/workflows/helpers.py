"""
Workflow Helper Functions for IAM Baseline.

Utility functions for workflow processing, including the local checks
that run before the baseline is handed to Terraform.
"""

import json
import logging
import re
from collections import Counter
from typing import Any, Dict, List, Tuple

from ..engine.renderer import attachment_id, resource_id
from ..models import Baseline, is_policy_arn

logger = logging.getLogger(__name__)

# IAM quotas and naming rules
MAX_USER_NAME = 64
MAX_GROUP_NAME = 128
MAX_POLICY_NAME = 128
MAX_POLICIES_PER_GROUP = 10
MAX_GROUPS_PER_USER = 10
MAX_POLICY_DOCUMENT_CHARS = 6144

IAM_NAME = re.compile(r"^[A-Za-z0-9+=,.@_-]+$")
IAM_PATH = re.compile(r"^/([\x21-\x7e]*/)?$")
BUCKET_NAME = re.compile(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")
IP_ADDRESS = re.compile(r"^\d+\.\d+\.\d+\.\d+$")
TRAIL_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{1,126}[A-Za-z0-9]$")


def _check_name(kind: str, name: str, max_length: int) -> List[str]:
    errors = []
    if not name or not name.strip():
        errors.append(f"{kind} name is required")
        return errors
    if len(name) > max_length:
        errors.append(f"{kind} name '{name}' exceeds {max_length} characters")
    if not IAM_NAME.match(name):
        errors.append(f"{kind} name '{name}' contains characters IAM does not allow")
    return errors


def _check_path(kind: str, name: str, path: str) -> List[str]:
    if not IAM_PATH.match(path) or "//" in path:
        return [f"{kind} '{name}' has invalid path '{path}' (must start and end with '/')"]
    return []


def _duplicates(names: List[str]) -> List[str]:
    return sorted(name for name, count in Counter(names).items() if count > 1)


def policy_document_size(document: Dict[str, Any]) -> int:
    """Characters IAM counts against the managed policy size quota (whitespace excluded)."""
    return len(re.sub(r"\s", "", json.dumps(document)))


def find_dangling_references(baseline: Baseline) -> List[Tuple[str, str, str]]:
    """
    Find attachments that point at entities missing from the baseline.

    Args:
        baseline: The baseline to check

    Returns:
        List of (kind, owner, reference) tuples, where kind is
        'group_policy' or 'user_group'
    """
    policy_names = {p.name for p in baseline.policies}
    group_names = {g.name for g in baseline.groups}
    dangling = []

    for group in baseline.groups:
        for ref in group.policies:
            if not is_policy_arn(ref) and ref not in policy_names:
                dangling.append(("group_policy", group.name, ref))

    for user in baseline.users:
        for group_name in user.groups:
            if group_name not in group_names:
                dangling.append(("user_group", user.name, group_name))

    return dangling


def find_identifier_collisions(baseline: Baseline) -> List[Tuple[str, str, List[str]]]:
    """
    Find distinct names that render to the same Terraform identifier.

    IAM names such as 'dev.ops' and 'dev_ops' both become dev_ops, and the
    second resource would silently replace the first.

    Returns:
        List of (kind, identifier, names) tuples, where kind is 'policy',
        'group', 'user' or 'attachment'
    """
    keyed: Dict[Tuple[str, str], List[str]] = {}

    for kind, names in (
        ("policy", [p.name for p in baseline.policies]),
        ("group", [g.name for g in baseline.groups]),
        ("user", [u.name for u in baseline.users]),
    ):
        for name in names:
            keyed.setdefault((kind, resource_id(name)), []).append(name)

    for group in baseline.groups:
        for ref in group.policies:
            keyed.setdefault(("attachment", attachment_id(group.name, ref)), []).append(ref)

    collisions = []
    for (kind, ident), names in keyed.items():
        distinct = sorted(set(names))
        if len(distinct) > 1:
            collisions.append((kind, ident, distinct))
    return collisions


def validate_baseline(baseline: Baseline) -> List[str]:
    """
    Validate a baseline for completeness and correctness.

    Only checks what can be decided without the cloud provider; Terraform
    and AWS report everything else at plan and apply time.

    Args:
        baseline: The baseline to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    # Unique names
    for kind, names in (
        ("policy", [p.name for p in baseline.policies]),
        ("group", [g.name for g in baseline.groups]),
        ("user", [u.name for u in baseline.users]),
    ):
        for name in _duplicates(names):
            errors.append(f"Duplicate {kind} name '{name}'")

    # Policies
    for policy in baseline.policies:
        errors.extend(_check_name("Policy", policy.name, MAX_POLICY_NAME))
        errors.extend(_check_path("Policy", policy.name, policy.path))
        size = policy_document_size(policy.document.to_aws_dict())
        if size > MAX_POLICY_DOCUMENT_CHARS:
            errors.append(
                f"Policy '{policy.name}' document is {size} characters, "
                f"limit is {MAX_POLICY_DOCUMENT_CHARS}"
            )

    # Groups
    for group in baseline.groups:
        errors.extend(_check_name("Group", group.name, MAX_GROUP_NAME))
        errors.extend(_check_path("Group", group.name, group.path))
        if len(group.policies) > MAX_POLICIES_PER_GROUP:
            errors.append(
                f"Group '{group.name}' attaches {len(group.policies)} policies, "
                f"limit is {MAX_POLICIES_PER_GROUP}"
            )
        for ref in _duplicates(group.policies):
            errors.append(f"Group '{group.name}' attaches policy '{ref}' more than once")

    # Users
    for user in baseline.users:
        errors.extend(_check_name("User", user.name, MAX_USER_NAME))
        errors.extend(_check_path("User", user.name, user.path))
        if len(user.groups) > MAX_GROUPS_PER_USER:
            errors.append(
                f"User '{user.name}' belongs to {len(user.groups)} groups, "
                f"limit is {MAX_GROUPS_PER_USER}"
            )
        for group_name in _duplicates(user.groups):
            errors.append(f"User '{user.name}' lists group '{group_name}' more than once")

    # References
    for kind, owner, ref in find_dangling_references(baseline):
        if kind == "group_policy":
            errors.append(f"Group '{owner}' attaches undefined policy '{ref}'")
        else:
            errors.append(f"User '{owner}' is a member of undefined group '{ref}'")

    # Terraform identifiers
    for kind, ident, names in find_identifier_collisions(baseline):
        quoted = ", ".join(f"'{n}'" for n in names)
        errors.append(f"{kind.capitalize()} names {quoted} collide on Terraform identifier '{ident}'")

    # Audit trail
    trail = baseline.trail
    if trail:
        if not TRAIL_NAME.match(trail.name) or ".." in trail.name:
            errors.append(f"Trail name '{trail.name}' is invalid")
        bucket = trail.bucket_name
        if not BUCKET_NAME.match(bucket) or ".." in bucket or IP_ADDRESS.match(bucket):
            errors.append(f"Trail bucket name '{bucket}' is not a valid S3 bucket name")

    if errors:
        logger.debug(f"Baseline validation found {len(errors)} problems")

    return errors


def create_run_summary(run_result: Any) -> Dict[str, Any]:
    """
    Create a summary of a workflow run for auditing.

    Args:
        run_result: RunResult object

    Returns:
        Dictionary with run summary
    """
    successful_steps = len([s for s in run_result.steps if s.get("success", False)])
    total_steps = len(run_result.steps)

    return {
        "run_id": run_result.run_id,
        "action": run_result.action.value,
        "started_at": run_result.started_at.isoformat() if run_result.started_at else None,
        "completed_at": run_result.completed_at.isoformat() if run_result.completed_at else None,
        "success": run_result.success,
        "total_steps": total_steps,
        "successful_steps": successful_steps,
        "failed_steps": total_steps - successful_steps,
        "plan": str(run_result.plan) if run_result.plan else None,
        "converged": run_result.converged,
        "error_count": len(run_result.errors),
        "errors": run_result.errors,
    }
