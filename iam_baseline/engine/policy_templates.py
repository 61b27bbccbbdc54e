"""
Policy Templates for IAM Baseline.

Builders for the policy documents the baseline relies on: the MFA bootstrap
policy, paired bucket/object S3 access, and the CloudTrail log bucket policy.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..models import POLICY_VERSION, Effect, PolicyDocument, PolicyStatement

logger = logging.getLogger(__name__)

CLOUDTRAIL_PRINCIPAL = "cloudtrail.amazonaws.com"

# Actions a user may take on their own identity before MFA is enabled
MFA_BOOTSTRAP_ACTIONS = [
    "iam:CreateVirtualMFADevice",
    "iam:EnableMFADevice",
    "iam:GetUser",
    "iam:ListMFADevices",
    "iam:ListVirtualMFADevices",
    "iam:ResyncMFADevice",
    "iam:ChangePassword",
    "iam:GetAccountPasswordPolicy",
    "sts:GetSessionToken",
]

S3_BUCKET_READ_ACTIONS = ["s3:ListBucket", "s3:GetBucketLocation"]
S3_OBJECT_READ_ACTIONS = ["s3:GetObject", "s3:GetObjectVersion"]
S3_OBJECT_WRITE_ACTIONS = ["s3:PutObject", "s3:DeleteObject"]


def require_mfa_policy(partition: str = "aws") -> PolicyDocument:
    """
    Build the policy that forces users to enable MFA.

    A new user can see and manage only their own password and MFA device.
    Every other action is denied until the session carries MFA.

    Args:
        partition: AWS partition for the generated ARNs

    Returns:
        PolicyDocument ready to attach to every human group
    """
    own_user = f"arn:{partition}:iam::*:user/${{aws:username}}"
    own_mfa = f"arn:{partition}:iam::*:mfa/${{aws:username}}"

    return PolicyDocument(
        statements=[
            PolicyStatement(
                sid="AllowListUsersAndDevices",
                effect=Effect.ALLOW,
                actions=["iam:ListUsers", "iam:ListVirtualMFADevices", "iam:GetAccountSummary"],
                resources=["*"],
            ),
            PolicyStatement(
                sid="AllowManageOwnCredentials",
                effect=Effect.ALLOW,
                actions=[
                    "iam:ChangePassword",
                    "iam:GetUser",
                    "iam:GetLoginProfile",
                    "iam:UpdateLoginProfile",
                    "iam:CreateAccessKey",
                    "iam:DeleteAccessKey",
                    "iam:ListAccessKeys",
                    "iam:UpdateAccessKey",
                ],
                resources=[own_user],
            ),
            PolicyStatement(
                sid="AllowManageOwnVirtualMFADevice",
                effect=Effect.ALLOW,
                actions=["iam:CreateVirtualMFADevice", "iam:DeleteVirtualMFADevice"],
                resources=[own_mfa],
            ),
            PolicyStatement(
                sid="AllowManageOwnUserMFA",
                effect=Effect.ALLOW,
                actions=[
                    "iam:DeactivateMFADevice",
                    "iam:EnableMFADevice",
                    "iam:ListMFADevices",
                    "iam:ResyncMFADevice",
                ],
                resources=[own_user],
            ),
            PolicyStatement(
                sid="DenyAllExceptListedIfNoMFA",
                effect=Effect.DENY,
                not_actions=MFA_BOOTSTRAP_ACTIONS,
                resources=["*"],
                condition={"BoolIfExists": {"aws:MultiFactorAuthPresent": "false"}},
            ),
        ]
    )


def s3_bucket_access_policy(
    bucket: str,
    read_only: bool = True,
    prefix: Optional[str] = None,
    partition: str = "aws",
) -> PolicyDocument:
    """
    Build S3 access for one bucket.

    Bucket-level actions only match the bucket ARN and object-level actions
    only match object ARNs, so both statements are always emitted together.

    Args:
        bucket: Bucket name
        read_only: Grant read actions only
        prefix: Restrict object access (and listing) to this key prefix
        partition: AWS partition for the generated ARNs
    """
    bucket_arn = f"arn:{partition}:s3:::{bucket}"
    key_prefix = f"{prefix.strip('/')}/" if prefix else ""
    object_arn = f"{bucket_arn}/{key_prefix}*"

    object_actions = list(S3_OBJECT_READ_ACTIONS)
    if not read_only:
        object_actions += S3_OBJECT_WRITE_ACTIONS

    bucket_statement = PolicyStatement(
        sid="BucketLevel",
        effect=Effect.ALLOW,
        actions=S3_BUCKET_READ_ACTIONS,
        resources=[bucket_arn],
    )
    if key_prefix:
        bucket_statement.condition = {"StringLike": {"s3:prefix": [key_prefix, f"{key_prefix}*"]}}

    return PolicyDocument(
        statements=[
            bucket_statement,
            PolicyStatement(
                sid="ObjectLevel",
                effect=Effect.ALLOW,
                actions=object_actions,
                resources=[object_arn],
            ),
        ]
    )


def cloudtrail_log_object_arn(
    bucket: str, account_id: str, prefix: Optional[str] = None, partition: str = "aws"
) -> str:
    """ARN pattern CloudTrail writes log files under."""
    key_prefix = f"{prefix.strip('/')}/" if prefix else ""
    return f"arn:{partition}:s3:::{bucket}/{key_prefix}AWSLogs/{account_id}/*"


def cloudtrail_bucket_policy(
    bucket: str,
    account_id: str,
    prefix: Optional[str] = None,
    partition: str = "aws",
) -> Dict[str, Any]:
    """
    Build the bucket policy CloudTrail needs to deliver logs.

    Args:
        bucket: Log bucket name
        account_id: Account whose trail writes to the bucket
        prefix: Optional S3 key prefix configured on the trail
        partition: AWS partition for the generated ARNs

    Returns:
        Bucket policy in IAM JSON form. Resource policies name a Principal,
        which identity policy statements never carry.
    """
    principal_statements: List[Dict[str, Any]] = [
        {
            "Sid": "AWSCloudTrailAclCheck",
            "Effect": "Allow",
            "Principal": {"Service": CLOUDTRAIL_PRINCIPAL},
            "Action": "s3:GetBucketAcl",
            "Resource": f"arn:{partition}:s3:::{bucket}",
        },
        {
            "Sid": "AWSCloudTrailWrite",
            "Effect": "Allow",
            "Principal": {"Service": CLOUDTRAIL_PRINCIPAL},
            "Action": "s3:PutObject",
            "Resource": cloudtrail_log_object_arn(bucket, account_id, prefix, partition),
            "Condition": {"StringEquals": {"s3:x-amz-acl": "bucket-owner-full-control"}},
        },
    ]
    return {"Version": POLICY_VERSION, "Statement": principal_statements}


TEMPLATES: Dict[str, Callable[..., PolicyDocument]] = {
    "require_mfa": require_mfa_policy,
    "s3_bucket_access": s3_bucket_access_policy,
}


def build_from_template(name: str, params: Optional[Dict[str, Any]] = None) -> PolicyDocument:
    """
    Build a policy document from a named template.

    Args:
        name: Template name (see TEMPLATES)
        params: Keyword arguments for the template builder

    Returns:
        The built PolicyDocument
    """
    builder = TEMPLATES.get(name)
    if builder is None:
        raise ValueError(f"Unknown policy template: {name}")

    logger.debug(f"Building policy from template '{name}' with {params or {}}")
    return builder(**(params or {}))
