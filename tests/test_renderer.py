"""
Tests for the Terraform renderer.
"""

import json

import pytest

from iam_baseline.engine.renderer import (
    ACCOUNT_ID_REF,
    CONFIG_FILENAME,
    PARTITION_REF,
    TerraformRenderer,
    attachment_id,
    escape_iam_variables,
    resource_addresses,
    resource_id,
)
from iam_baseline.engine.policy_templates import require_mfa_policy
from iam_baseline.models import BackendConfig, Baseline, ManagedPolicy


class TestHelpers:
    """Test cases for identifier and escaping helpers."""

    @pytest.mark.parametrize("name,expected", [
        ("Developers", "Developers"),
        ("ci.bot@example.com", "ci_bot_example_com"),
        ("team+ops=1", "team_ops_1"),
        ("1password", "r_1password"),
        ("-x", "r_-x"),
        ("_private", "_private"),
    ])
    def test_resource_id(self, name, expected):
        assert resource_id(name) == expected

    def test_escapes_iam_variables(self):
        assert escape_iam_variables("user/${aws:username}") == "user/$${aws:username}"
        assert escape_iam_variables("${s3:prefix}/${*}") == "$${s3:prefix}/$${*}"

    def test_leaves_terraform_references(self):
        ref = "${aws_iam_policy.ReadOnlyS3.arn}"
        assert escape_iam_variables(ref) == ref

    @pytest.mark.parametrize("ref,expected", [
        ("Billing", "Finance__Billing"),
        ("arn:aws:iam::aws:policy/job-function/Billing", "Finance__aws_job-function_Billing"),
        ("arn:aws:iam::123456789012:policy/Billing", "Finance__r_123456789012_Billing"),
    ])
    def test_attachment_id(self, ref, expected):
        assert attachment_id("Finance", ref) == expected


class TestTerraformRenderer:
    """Test cases for TerraformRenderer."""

    @pytest.fixture
    def config(self, sample_baseline):
        return TerraformRenderer(sample_baseline).render()

    def test_deterministic(self, sample_baseline):
        first = json.dumps(TerraformRenderer(sample_baseline).render(), sort_keys=True)
        second = json.dumps(TerraformRenderer(sample_baseline.model_copy(deep=True)).render(), sort_keys=True)
        assert first == second

    def test_provider(self, config):
        assert config["terraform"]["required_providers"]["aws"]["source"] == "hashicorp/aws"
        assert "backend" not in config["terraform"]
        assert config["provider"]["aws"] == {
            "region": "us-east-1",
            "default_tags": {"tags": {"ManagedBy": "iam-baseline"}},
        }
        assert set(config["data"]) == {"aws_caller_identity", "aws_partition"}

    def test_pinned_account(self, sample_baseline):
        sample_baseline.account_id = "123456789012"
        config = TerraformRenderer(sample_baseline).render()

        assert config["provider"]["aws"]["allowed_account_ids"] == ["123456789012"]
        policy = config["resource"]["aws_s3_bucket_policy"]["org-trail"]["policy"]
        assert "AWSLogs/123456789012/*" in policy
        assert ACCOUNT_ID_REF not in policy

    def test_backend(self, sample_baseline):
        sample_baseline.backend = BackendConfig(bucket="state", dynamodb_table="locks")
        backend = TerraformRenderer(sample_baseline).render()["terraform"]["backend"]["s3"]

        assert backend == {
            "bucket": "state",
            "key": "iam-baseline/terraform.tfstate",
            "region": "us-east-1",
            "encrypt": True,
            "dynamodb_table": "locks",
        }

    def test_policy_resource(self, config):
        policy = config["resource"]["aws_iam_policy"]["ReadOnlyS3"]

        assert policy["name"] == "ReadOnlyS3"
        assert policy["path"] == "/"
        assert policy["description"] == "Read the reports bucket"
        assert json.loads(policy["policy"]) == {
            "Statement": [{"Action": "s3:GetObject", "Effect": "Allow", "Resource": "arn:aws:s3:::reports/*"}],
            "Version": "2012-10-17",
        }

    def test_iam_variables_are_escaped(self, sample_baseline):
        sample_baseline.policies.append(ManagedPolicy(name="RequireMFA", document=require_mfa_policy()))
        policy = TerraformRenderer(sample_baseline).render()["resource"]["aws_iam_policy"]["RequireMFA"]["policy"]

        assert "$${aws:username}" in policy
        assert "${aws:username}" not in policy.replace("$${aws:username}", "")

    def test_group_attachments(self, config):
        attachments = config["resource"]["aws_iam_group_policy_attachment"]

        assert config["resource"]["aws_iam_group"]["Developers"] == {"name": "Developers", "path": "/"}
        assert attachments["Developers__ReadOnlyS3"] == {
            "group": "${aws_iam_group.Developers.name}",
            "policy_arn": "${aws_iam_policy.ReadOnlyS3.arn}",
        }
        assert attachments["Developers__aws_ReadOnlyAccess"]["policy_arn"] == "arn:aws:iam::aws:policy/ReadOnlyAccess"

    def test_managed_and_baseline_policy_with_same_name(self, sample_baseline):
        sample_baseline.policies.append(ManagedPolicy(name="Billing", document=require_mfa_policy()))
        sample_baseline.groups[0].policies = ["Billing", "arn:aws:iam::aws:policy/job-function/Billing"]

        attachments = TerraformRenderer(sample_baseline).render()["resource"]["aws_iam_group_policy_attachment"]

        assert sorted(a["policy_arn"] for a in attachments.values()) == [
            "${aws_iam_policy.Billing.arn}",
            "arn:aws:iam::aws:policy/job-function/Billing",
        ]

    def test_users(self, config):
        assert config["resource"]["aws_iam_user"]["carol"] == {
            "name": "carol",
            "path": "/",
            "force_destroy": False,
            "tags": {"Team": "engineering"},
        }
        assert config["resource"]["aws_iam_user_group_membership"]["carol"] == {
            "user": "${aws_iam_user.carol.name}",
            "groups": ["${aws_iam_group.Developers.name}"],
        }

    def test_trail(self, config):
        resources = config["resource"]
        trail = resources["aws_cloudtrail"]["org-trail"]

        assert resources["aws_s3_bucket"]["org-trail"]["bucket"] == "example-org-trail-logs"
        assert resources["aws_s3_bucket_public_access_block"]["org-trail"]["block_public_policy"] is True
        assert trail["s3_bucket_name"] == "${aws_s3_bucket.org-trail.id}"
        assert trail["s3_key_prefix"] == "logs"
        assert trail["is_multi_region_trail"] is True
        assert trail["enable_log_file_validation"] is True
        assert trail["depends_on"] == ["aws_s3_bucket_policy.org-trail"]

    def test_trail_bucket_policy_references(self, config):
        policy = config["resource"]["aws_s3_bucket_policy"]["org-trail"]["policy"]

        assert "cloudtrail.amazonaws.com" in policy
        assert f"arn:{PARTITION_REF}:s3:::example-org-trail-logs/logs/AWSLogs/{ACCOUNT_ID_REF}/*" in policy
        assert "$${" not in policy

    def test_trail_key_prefix_kept_literally(self, sample_baseline):
        sample_baseline.trail.s3_key_prefix = "PARTITION-ACCOUNT_ID-logs"
        policy = TerraformRenderer(sample_baseline).render()["resource"]["aws_s3_bucket_policy"]["org-trail"]["policy"]

        assert f"arn:{PARTITION_REF}:s3:::example-org-trail-logs/PARTITION-ACCOUNT_ID-logs/AWSLogs/{ACCOUNT_ID_REF}/*" in policy

    def test_outputs(self, config):
        assert config["output"]["group_names"] == {"value": ["${aws_iam_group.Developers.name}"]}
        assert config["output"]["user_arns"] == {"value": {"carol": "${aws_iam_user.carol.arn}"}}
        assert config["output"]["trail_arn"] == {"value": "${aws_cloudtrail.org-trail.arn}"}

    def test_empty_baseline(self):
        config = TerraformRenderer(Baseline()).render()

        assert config["resource"] == {}
        assert config["output"] == {}

    def test_resource_addresses(self, config):
        addresses = resource_addresses(config)

        assert addresses == sorted(addresses)
        assert "aws_iam_group.Developers" in addresses
        assert "aws_cloudtrail.org-trail" in addresses
        assert len(addresses) == 10

    def test_write(self, sample_baseline, tmp_path):
        renderer = TerraformRenderer(sample_baseline)
        path = renderer.write(tmp_path / "work")

        assert path == tmp_path / "work" / CONFIG_FILENAME
        content = path.read_text()
        assert content.endswith("\n")
        assert json.loads(content) == renderer.render()
