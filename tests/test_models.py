"""
Tests for the core data models.
"""

import pytest
from pydantic import ValidationError

from iam_baseline.models import (
    AuditTrail,
    Baseline,
    Effect,
    PlanSummary,
    PolicyDocument,
    PolicyStatement,
    is_policy_arn,
)


class TestPolicyStatement:
    """Test cases for PolicyStatement."""

    def test_accepts_aws_field_names(self):
        statement = PolicyStatement.model_validate({
            "Sid": "Read",
            "Effect": "Allow",
            "Action": "s3:GetObject",
            "Resource": "arn:aws:s3:::bucket/*",
        })

        assert statement.sid == "Read"
        assert statement.effect == Effect.ALLOW
        assert statement.actions == ["s3:GetObject"]
        assert statement.resources == ["arn:aws:s3:::bucket/*"]

    def test_requires_action_or_not_action(self):
        with pytest.raises(ValidationError, match="exactly one of Action or NotAction"):
            PolicyStatement(effect=Effect.ALLOW, resources=["*"])

        with pytest.raises(ValidationError, match="exactly one of Action or NotAction"):
            PolicyStatement(effect=Effect.DENY, actions=["s3:*"], not_actions=["iam:*"], resources=["*"])

    def test_requires_resource(self):
        with pytest.raises(ValidationError, match="Resource"):
            PolicyStatement(effect=Effect.ALLOW, actions=["s3:GetObject"])

    def test_to_aws_dict_collapses_single_values(self):
        statement = PolicyStatement(
            effect=Effect.DENY,
            not_actions=["iam:ChangePassword"],
            resources=["*"],
            condition={"BoolIfExists": {"aws:MultiFactorAuthPresent": "false"}},
        )

        assert statement.to_aws_dict() == {
            "Effect": "Deny",
            "NotAction": "iam:ChangePassword",
            "Resource": "*",
            "Condition": {"BoolIfExists": {"aws:MultiFactorAuthPresent": "false"}},
        }

    def test_to_aws_dict_keeps_lists(self):
        statement = PolicyStatement(
            sid="Pair",
            effect=Effect.ALLOW,
            actions=["s3:ListBucket", "s3:GetObject"],
            resources=["arn:aws:s3:::b", "arn:aws:s3:::b/*"],
        )

        data = statement.to_aws_dict()
        assert data["Sid"] == "Pair"
        assert data["Action"] == ["s3:ListBucket", "s3:GetObject"]
        assert data["Resource"] == ["arn:aws:s3:::b", "arn:aws:s3:::b/*"]


class TestPolicyDocument:
    """Test cases for PolicyDocument."""

    def test_single_statement_object(self):
        document = PolicyDocument.from_aws_dict({
            "Version": "2012-10-17",
            "Statement": {"Effect": "Allow", "Action": "sts:GetCallerIdentity", "Resource": "*"},
        })

        assert len(document.statements) == 1
        assert document.to_aws_dict()["Statement"][0]["Action"] == "sts:GetCallerIdentity"

    def test_rejects_old_version(self):
        with pytest.raises(ValidationError, match="Unsupported policy version"):
            PolicyDocument.from_aws_dict({
                "Version": "2008-10-17",
                "Statement": [{"Effect": "Allow", "Action": "s3:*", "Resource": "*"}],
            })

    def test_rejects_empty_statement_list(self):
        with pytest.raises(ValidationError):
            PolicyDocument.from_aws_dict({"Version": "2012-10-17", "Statement": []})

    def test_default_version(self):
        document = PolicyDocument(statements=[
            PolicyStatement(effect=Effect.ALLOW, actions=["s3:GetObject"], resources=["*"])
        ])
        assert document.to_aws_dict()["Version"] == "2012-10-17"


class TestBaseline:
    """Test cases for Baseline and its parts."""

    def test_account_id_from_yaml_int(self):
        assert Baseline(account_id=123456789012).account_id == "123456789012"
        assert Baseline(account_id=12345678901).account_id == "012345678901"

    @pytest.mark.parametrize("account_id", ["12345", "abcdefghijkl", "1234567890123"])
    def test_invalid_account_id(self, account_id):
        with pytest.raises(ValidationError, match="12-digit"):
            Baseline(account_id=account_id)

    def test_lookups(self, sample_baseline):
        assert sample_baseline.get_group("Developers").policies[0] == "ReadOnlyS3"
        assert sample_baseline.get_user("carol").groups == ["Developers"]
        assert sample_baseline.get_policy("ReadOnlyS3") is not None
        assert sample_baseline.get_group("Nobody") is None

    def test_trail_prefix_is_normalized(self):
        assert AuditTrail(name="t", bucket_name="b", s3_key_prefix="/logs/").s3_key_prefix == "logs"
        assert AuditTrail(name="t", bucket_name="b", s3_key_prefix="/").s3_key_prefix is None

    def test_is_policy_arn(self):
        assert is_policy_arn("arn:aws:iam::aws:policy/ReadOnlyAccess")
        assert is_policy_arn("arn:aws-us-gov:iam::123456789012:policy/team/Custom")
        assert not is_policy_arn("ReadOnlyAccess")
        assert not is_policy_arn("arn:aws:iam::123456789012:role/Admin")


class TestPlanSummary:
    """Test cases for PlanSummary."""

    def test_no_changes(self):
        summary = PlanSummary()
        assert not summary.has_changes
        assert str(summary) == "0 to add, 0 to change, 0 to destroy"

    def test_changes(self):
        summary = PlanSummary(add=3, destroy=1)
        assert summary.has_changes
        assert str(summary) == "3 to add, 0 to change, 1 to destroy"
