"""
Terraform Renderer for IAM Baseline.

Turns a Baseline into a Terraform JSON configuration. Terraform owns the
diff against live state; this module only produces the desired state.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Union

from ..models import Baseline, ManagedPolicy, is_policy_arn
from .policy_templates import cloudtrail_bucket_policy

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "main.tf.json"
AWS_PROVIDER_SOURCE = "hashicorp/aws"
AWS_PROVIDER_VERSION = ">= 5.0"
ACCOUNT_ID_REF = "${data.aws_caller_identity.current.account_id}"
PARTITION_REF = "${data.aws_partition.current.partition}"

# IAM policy variables such as ${aws:username} or ${*}; Terraform references never contain ':'
_IAM_VARIABLE = re.compile(r"\$\{([^}]*:[^}]*|[*?$])\}")


def resource_id(name: str) -> str:
    """
    Terraform resource identifier for an IAM name.

    IAM names allow characters such as '+', '=', ',', '.', '@' that are not
    valid in Terraform identifiers, and identifiers may not start with a digit.
    """
    ident = re.sub(r"[^A-Za-z0-9_-]", "_", name)
    if not ident or not (ident[0].isalpha() or ident[0] == "_"):
        ident = f"r_{ident}"
    return ident


def attachment_id(group_name: str, ref: str) -> str:
    """
    Terraform identifier for one group policy attachment.

    ARN attachments are keyed by owning account and full policy path, so
    arn:aws:iam::aws:policy/job-function/Billing becomes aws_job-function_Billing
    and cannot shadow a baseline policy named Billing.
    """
    if is_policy_arn(ref):
        account = ref.split(":")[4] or "aws"
        policy_key = f"{account}_{ref.split(':policy/', 1)[1]}"
    else:
        policy_key = ref
    return f"{resource_id(group_name)}__{resource_id(policy_key)}"


def escape_iam_variables(text: str) -> str:
    """Escape IAM policy variables so Terraform passes them through literally."""
    return _IAM_VARIABLE.sub(lambda m: "$${" + m.group(1) + "}", text)


def policy_json(document: Dict[str, Any]) -> str:
    """Serialize a policy document for embedding in Terraform JSON."""
    return escape_iam_variables(json.dumps(document, sort_keys=True))


class TerraformRenderer:
    """
    Renders a Baseline as Terraform JSON.

    Output is deterministic: the same baseline always produces the same bytes,
    so re-rendering an unchanged baseline never shows up as a change.
    """

    def __init__(self, baseline: Baseline):
        self.baseline = baseline

    def render(self) -> Dict[str, Any]:
        """
        Build the Terraform JSON document.

        Returns:
            Dictionary with terraform, provider, data, resource and output blocks
        """
        resources: Dict[str, Dict[str, Any]] = {}

        self._render_policies(resources)
        self._render_groups(resources)
        self._render_users(resources)
        if self.baseline.trail:
            self._render_trail(resources)

        config: Dict[str, Any] = {
            "terraform": self._terraform_block(),
            "provider": {"aws": self._provider_block()},
            "data": {
                "aws_caller_identity": {"current": {}},
                "aws_partition": {"current": {}},
            },
            "resource": resources,
            "output": self._outputs(),
        }

        logger.debug(
            f"Rendered {sum(len(v) for v in resources.values())} resources "
            f"across {len(resources)} resource types"
        )
        return config

    def write(self, work_dir: Union[str, Path]) -> Path:
        """
        Write the rendered configuration into a Terraform working directory.

        Args:
            work_dir: Directory Terraform will run in

        Returns:
            Path of the written configuration file
        """
        work_dir = Path(work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)

        target = work_dir / CONFIG_FILENAME
        content = json.dumps(self.render(), indent=2, sort_keys=True) + "\n"

        with open(target, "w", encoding="utf-8") as f:
            f.write(content)

        logger.info(f"Wrote Terraform configuration to {target}")
        return target

    def _terraform_block(self) -> Dict[str, Any]:
        block: Dict[str, Any] = {
            "required_providers": {
                "aws": {"source": AWS_PROVIDER_SOURCE, "version": AWS_PROVIDER_VERSION}
            }
        }

        backend = self.baseline.backend
        if backend:
            s3: Dict[str, Any] = {
                "bucket": backend.bucket,
                "key": backend.key,
                "region": backend.region or self.baseline.region,
                "encrypt": backend.encrypt,
            }
            if backend.dynamodb_table:
                s3["dynamodb_table"] = backend.dynamodb_table
            block["backend"] = {"s3": s3}

        return block

    def _provider_block(self) -> Dict[str, Any]:
        provider: Dict[str, Any] = {"region": self.baseline.region}
        if self.baseline.account_id:
            provider["allowed_account_ids"] = [self.baseline.account_id]
        if self.baseline.tags:
            provider["default_tags"] = {"tags": dict(self.baseline.tags)}
        return provider

    def _policy_arn(self, ref: str) -> str:
        """Resolve a group attachment to a policy ARN or a Terraform reference."""
        if is_policy_arn(ref):
            return ref
        return f"${{aws_iam_policy.{resource_id(ref)}.arn}}"

    def _render_policies(self, resources: Dict[str, Dict[str, Any]]):
        block = resources.setdefault("aws_iam_policy", {})
        for policy in self.baseline.policies:
            block[resource_id(policy.name)] = self._policy_resource(policy)
        if not block:
            del resources["aws_iam_policy"]

    def _policy_resource(self, policy: ManagedPolicy) -> Dict[str, Any]:
        resource = {
            "name": policy.name,
            "path": policy.path,
            "policy": policy_json(policy.document.to_aws_dict()),
        }
        if policy.description:
            resource["description"] = policy.description
        return resource

    def _render_groups(self, resources: Dict[str, Dict[str, Any]]):
        groups = resources.setdefault("aws_iam_group", {})
        attachments = resources.setdefault("aws_iam_group_policy_attachment", {})

        for group in self.baseline.groups:
            group_id = resource_id(group.name)
            groups[group_id] = {"name": group.name, "path": group.path}

            for ref in group.policies:
                attachments[attachment_id(group.name, ref)] = {
                    "group": f"${{aws_iam_group.{group_id}.name}}",
                    "policy_arn": self._policy_arn(ref),
                }

        if not attachments:
            del resources["aws_iam_group_policy_attachment"]
        if not groups:
            del resources["aws_iam_group"]

    def _render_users(self, resources: Dict[str, Dict[str, Any]]):
        users = resources.setdefault("aws_iam_user", {})
        memberships = resources.setdefault("aws_iam_user_group_membership", {})

        for user in self.baseline.users:
            user_id = resource_id(user.name)
            resource: Dict[str, Any] = {
                "name": user.name,
                "path": user.path,
                "force_destroy": user.force_destroy,
            }
            if user.tags:
                resource["tags"] = dict(user.tags)
            users[user_id] = resource

            if user.groups:
                memberships[user_id] = {
                    "user": f"${{aws_iam_user.{user_id}.name}}",
                    "groups": [f"${{aws_iam_group.{resource_id(g)}.name}}" for g in user.groups],
                }

        if not memberships:
            del resources["aws_iam_user_group_membership"]
        if not users:
            del resources["aws_iam_user"]

    def _render_trail(self, resources: Dict[str, Dict[str, Any]]):
        trail = self.baseline.trail
        trail_id = resource_id(trail.name)
        bucket_ref = f"${{aws_s3_bucket.{trail_id}.id}}"
        account_id = self.baseline.account_id or ACCOUNT_ID_REF

        resources["aws_s3_bucket"] = {
            trail_id: {"bucket": trail.bucket_name, "force_destroy": trail.force_destroy_bucket}
        }
        resources["aws_s3_bucket_public_access_block"] = {
            trail_id: {
                "bucket": bucket_ref,
                "block_public_acls": True,
                "block_public_policy": True,
                "ignore_public_acls": True,
                "restrict_public_buckets": True,
            }
        }

        # escaping leaves Terraform references alone since they contain no ':'
        bucket_policy = cloudtrail_bucket_policy(
            trail.bucket_name, account_id, trail.s3_key_prefix, partition=PARTITION_REF
        )
        resources["aws_s3_bucket_policy"] = {
            trail_id: {"bucket": bucket_ref, "policy": policy_json(bucket_policy)}
        }

        cloudtrail: Dict[str, Any] = {
            "name": trail.name,
            "s3_bucket_name": bucket_ref,
            "include_global_service_events": trail.include_global_service_events,
            "is_multi_region_trail": trail.is_multi_region_trail,
            "enable_log_file_validation": trail.enable_log_file_validation,
            # CloudTrail checks bucket permissions when the trail is created
            "depends_on": [f"aws_s3_bucket_policy.{trail_id}"],
        }
        if trail.s3_key_prefix:
            cloudtrail["s3_key_prefix"] = trail.s3_key_prefix
        resources["aws_cloudtrail"] = {trail_id: cloudtrail}

    def _outputs(self) -> Dict[str, Any]:
        outputs: Dict[str, Any] = {}

        if self.baseline.groups:
            outputs["group_names"] = {
                "value": [
                    f"${{aws_iam_group.{resource_id(g.name)}.name}}" for g in self.baseline.groups
                ]
            }
        if self.baseline.users:
            outputs["user_arns"] = {
                "value": {
                    u.name: f"${{aws_iam_user.{resource_id(u.name)}.arn}}"
                    for u in self.baseline.users
                }
            }
        if self.baseline.trail:
            outputs["trail_arn"] = {
                "value": f"${{aws_cloudtrail.{resource_id(self.baseline.trail.name)}.arn}}"
            }

        return outputs


def resource_addresses(config: Dict[str, Any]) -> List[str]:
    """Sorted Terraform addresses of every resource in a rendered configuration."""
    return sorted(
        f"{rtype}.{name}"
        for rtype, instances in config.get("resource", {}).items()
        for name in instances
    )
