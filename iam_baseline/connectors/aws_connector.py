"""
AWS Connector for IAM Baseline.

Read-only integration with AWS IAM and CloudTrail used after an apply to
confirm that the declared groups, users, attachments and trail exist.
Nothing here creates or changes resources; Terraform does that.
"""

import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..models import Baseline, is_policy_arn

logger = logging.getLogger(__name__)


class AWSConnector:
    """Read-only AWS IAM/CloudTrail client for post-apply verification."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, session: Optional[Any] = None):
        """
        Initialize the connector.

        Args:
            config: AWS settings (region, profile)
            session: Pre-built boto3 session; built from config when omitted
        """
        self.config = config or {}
        if session is None:
            session = boto3.Session(
                profile_name=self.config.get("profile"),
                region_name=self.config.get("region", "us-east-1"),
            )

        self.iam_client = session.client("iam")
        self.cloudtrail_client = session.client("cloudtrail")
        self.sts_client = session.client("sts")

        logger.info(f"Initialized AWSConnector (region={session.region_name})")

    def get_account_id(self) -> Optional[str]:
        """Account the credentials belong to."""
        try:
            return self.sts_client.get_caller_identity()["Account"]
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to resolve caller identity: {e}")
            return None

    def group_exists(self, group_name: str) -> bool:
        try:
            self.iam_client.get_group(GroupName=group_name)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "NoSuchEntity":
                return False
            raise

    def user_exists(self, user_name: str) -> bool:
        try:
            self.iam_client.get_user(UserName=user_name)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "NoSuchEntity":
                return False
            raise

    def list_attached_group_policies(self, group_name: str) -> List[Dict[str, str]]:
        """Managed policies attached to a group ({PolicyName, PolicyArn})."""
        paginator = self.iam_client.get_paginator("list_attached_group_policies")
        attached = []
        for page in paginator.paginate(GroupName=group_name):
            attached.extend(page.get("AttachedPolicies", []))
        return attached

    def list_groups_for_user(self, user_name: str) -> List[str]:
        paginator = self.iam_client.get_paginator("list_groups_for_user")
        groups = []
        for page in paginator.paginate(UserName=user_name):
            groups.extend(g["GroupName"] for g in page.get("Groups", []))
        return groups

    def get_trail_status(self, trail_name: str) -> Optional[Dict[str, Any]]:
        """Trail status, or None when the trail does not exist."""
        try:
            return self.cloudtrail_client.get_trail_status(Name=trail_name)
        except ClientError as e:
            if e.response["Error"]["Code"] == "TrailNotFoundException":
                return None
            raise

    def verify_baseline(self, baseline: Baseline) -> Dict[str, Any]:
        """
        Check that every declared resource is present in the account.

        Args:
            baseline: The declared baseline

        Returns:
            Dictionary with 'missing' (list of human-readable findings)
            and 'checked' (number of checks performed)
        """
        missing: List[str] = []
        checked = 0

        for group in baseline.groups:
            checked += 1
            if not self.group_exists(group.name):
                missing.append(f"Group '{group.name}' does not exist")
                continue

            attached = self.list_attached_group_policies(group.name)
            attached_names = {p["PolicyName"] for p in attached}
            attached_arns = {p["PolicyArn"] for p in attached}
            for ref in group.policies:
                checked += 1
                present = ref in attached_arns if is_policy_arn(ref) else ref in attached_names
                if not present:
                    missing.append(f"Group '{group.name}' is missing policy '{ref}'")

        for user in baseline.users:
            checked += 1
            if not self.user_exists(user.name):
                missing.append(f"User '{user.name}' does not exist")
                continue

            live_groups = set(self.list_groups_for_user(user.name))
            for group_name in user.groups:
                checked += 1
                if group_name not in live_groups:
                    missing.append(f"User '{user.name}' is not in group '{group_name}'")

        if baseline.trail:
            checked += 1
            status = self.get_trail_status(baseline.trail.name)
            if status is None:
                missing.append(f"Trail '{baseline.trail.name}' does not exist")
            elif not status.get("IsLogging", False):
                missing.append(f"Trail '{baseline.trail.name}' is not logging")

        logger.info(f"Verified {checked} items, {len(missing)} missing")
        return {"missing": missing, "checked": checked}
