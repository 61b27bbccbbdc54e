"""
Shared fixtures for the IAM Baseline tests.
"""

import json
from pathlib import Path

import pytest
import yaml

from iam_baseline.models import (
    AuditTrail,
    Baseline,
    Effect,
    Group,
    ManagedPolicy,
    PolicyDocument,
    PolicyStatement,
    User,
)


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: runs whole workflows against the simulated backend")


def write_baseline(directory: Path, settings=None, policies=None, groups=None, users=None) -> Path:
    """Write a baseline directory; omitted sections fall back to a small valid baseline."""
    directory.mkdir(parents=True, exist_ok=True)

    if settings is None:
        settings = {
            "region": "eu-west-1",
            "tags": {"ManagedBy": "iam-baseline"},
            "trail": {"name": "audit-trail", "bucket_name": "example-audit-logs", "s3_key_prefix": "ct"},
        }
    if policies is None:
        policies = [
            {"name": "RequireMFA", "template": "require_mfa"},
            {"name": "ReadLogs", "file": "policies/read_logs.json"},
        ]
        (directory / "policies").mkdir(exist_ok=True)
        (directory / "policies" / "read_logs.json").write_text(json.dumps({
            "Version": "2012-10-17",
            "Statement": [{
                "Effect": "Allow",
                "Action": "s3:GetObject",
                "Resource": "arn:aws:s3:::example-audit-logs/*",
            }],
        }))
    if groups is None:
        groups = [
            {"name": "Admins", "policies": ["RequireMFA", "arn:aws:iam::aws:policy/AdministratorAccess"]},
            {"name": "Auditors", "policies": ["RequireMFA", "ReadLogs"]},
        ]
    if users is None:
        users = [
            {"name": "alice", "groups": ["Admins"]},
            {"name": "bob", "groups": ["Auditors"], "tags": {"Team": "security"}},
        ]

    (directory / "baseline.yaml").write_text(yaml.safe_dump(settings))
    (directory / "policies.yaml").write_text(yaml.safe_dump({"policies": policies}))
    (directory / "groups.yaml").write_text(yaml.safe_dump({"groups": groups}))
    (directory / "users.yaml").write_text(yaml.safe_dump({"users": users}))
    return directory


@pytest.fixture
def baseline_dir(tmp_path):
    """A small valid baseline on disk."""
    return write_baseline(tmp_path / "baseline")


@pytest.fixture
def workflow_config(tmp_path, baseline_dir):
    """Workflow configuration running against the simulated backend."""
    return {
        "mock_mode": True,
        "baseline_dir": str(baseline_dir),
        "work_dir": str(tmp_path / "work"),
        "audit_dir": str(tmp_path / "audit"),
        "evidence_dir": str(tmp_path / "evidence"),
    }


@pytest.fixture
def sample_baseline():
    """A small valid baseline built in memory."""
    return Baseline(
        region="us-east-1",
        tags={"ManagedBy": "iam-baseline"},
        policies=[
            ManagedPolicy(
                name="ReadOnlyS3",
                description="Read the reports bucket",
                document=PolicyDocument(statements=[
                    PolicyStatement(
                        effect=Effect.ALLOW,
                        actions=["s3:GetObject"],
                        resources=["arn:aws:s3:::reports/*"],
                    )
                ]),
            )
        ],
        groups=[
            Group(name="Developers", policies=["ReadOnlyS3", "arn:aws:iam::aws:policy/ReadOnlyAccess"]),
        ],
        users=[User(name="carol", groups=["Developers"], tags={"Team": "engineering"})],
        trail=AuditTrail(name="org-trail", bucket_name="example-org-trail-logs", s3_key_prefix="logs"),
    )
