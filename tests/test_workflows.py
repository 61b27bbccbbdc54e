"""
Tests for the validate, plan, apply and verify workflows.

Runs go through the real loader, checks and renderer, with the simulated
backend standing in for Terraform.
"""

import json
from pathlib import Path
from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from iam_baseline.audit import AuditLogger, EvidenceStore
from iam_baseline.connectors import ConnectorResult, TerraformMockConnector
from iam_baseline.engine.renderer import CONFIG_FILENAME
from iam_baseline.models import RunAction, RunResult
from iam_baseline.workflows import ApplyWorkflow, PlanWorkflow, ValidateWorkflow, VerifyWorkflow

from conftest import write_baseline


def step_names(result: RunResult):
    return [f"{s['system']}.{s['operation']}" for s in result.steps]


class TestValidateWorkflow:
    """Test cases for ValidateWorkflow."""

    def test_workflow_initialization(self, workflow_config):
        workflow = ValidateWorkflow(workflow_config)

        assert workflow.run_id
        assert workflow.started_at is None
        assert workflow.steps == []
        assert workflow.errors == []
        assert isinstance(workflow.connectors["terraform"], TerraformMockConnector)

    def test_success(self, workflow_config):
        result = ValidateWorkflow(workflow_config).execute()

        assert isinstance(result, RunResult)
        assert result.success
        assert result.action == RunAction.VALIDATE
        assert step_names(result) == [
            "baseline.load", "baseline.check", "baseline.render", "terraform.init", "terraform.validate",
        ]
        assert (Path(workflow_config["work_dir"]) / CONFIG_FILENAME).exists()

    def test_dangling_reference_stops_before_terraform(self, tmp_path, workflow_config):
        write_baseline(
            Path(workflow_config["baseline_dir"]),
            groups=[{"name": "Admins", "policies": ["Missing"]}],
            users=[{"name": "alice", "groups": ["Admins", "Ghosts"]}],
        )
        workflow = ValidateWorkflow(workflow_config)

        result = workflow.execute()

        assert not result.success
        assert "Group 'Admins' attaches undefined policy 'Missing'" in result.errors
        assert "User 'alice' is a member of undefined group 'Ghosts'" in result.errors
        assert step_names(result) == ["baseline.load", "baseline.check"]
        assert workflow.connectors["terraform"].calls == []
        assert not (Path(workflow_config["work_dir"]) / CONFIG_FILENAME).exists()

    def test_load_error(self, workflow_config):
        (Path(workflow_config["baseline_dir"]) / "users.yaml").write_text("users: [\n")

        result = ValidateWorkflow(workflow_config).execute()

        assert not result.success
        assert step_names(result) == ["baseline.load"]
        assert "invalid YAML" in result.errors[0]

    def test_terraform_errors_surface_verbatim(self, workflow_config):
        workflow = ValidateWorkflow(workflow_config)
        connector = Mock()
        connector.init.return_value = ConnectorResult(True, "initialized")
        connector.validate.return_value = ConnectorResult(
            False, "Validation failed", error="Error: Unsupported argument\n  on main.tf.json line 12"
        )
        workflow.connectors = {"terraform": connector}

        result = workflow.execute()

        assert not result.success
        assert result.errors == ["terraform.validate: Error: Unsupported argument\n  on main.tf.json line 12"]

    def test_audit_records(self, workflow_config):
        result = ValidateWorkflow(workflow_config).execute()

        records = AuditLogger(workflow_config["audit_dir"]).get_events(run_id=result.run_id)

        assert len(records) == result.total_steps
        assert {r.action for r in records} == {RunAction.VALIDATE}
        assert all(r.success for r in records)

    def test_execution_summary(self, workflow_config):
        workflow = ValidateWorkflow(workflow_config)
        workflow.execute()

        summary = workflow.get_execution_summary()

        assert summary["workflow_type"] == "ValidateWorkflow"
        assert summary["total_steps"] == 5
        assert summary["failed_steps"] == 0


class TestPlanWorkflow:
    """Test cases for PlanWorkflow."""

    def test_plan_counts_every_resource(self, workflow_config):
        result = PlanWorkflow(workflow_config).execute()

        config = json.loads((Path(workflow_config["work_dir"]) / CONFIG_FILENAME).read_text())
        resource_count = sum(len(v) for v in config["resource"].values())

        assert result.success
        assert result.action == RunAction.PLAN
        assert result.plan.add == resource_count
        assert result.plan.change == 0
        assert result.plan.destroy == 0
        assert step_names(result)[-2:] == ["terraform.validate", "terraform.plan"]

    def test_plan_output_kept_as_evidence(self, workflow_config):
        result = PlanWorkflow(workflow_config).execute()

        plan_record = [r for r in result.audit_records if r.step == "terraform.plan"][0]
        assert plan_record.evidence_path.endswith("plan.txt")
        assert EvidenceStore(workflow_config["evidence_dir"]).retrieve_evidence(
            plan_record.evidence_path
        ) == result.plan.output

        config_copy = Path(plan_record.evidence_path).parent / CONFIG_FILENAME
        assert config_copy.exists()

    def test_plan_output_excluded_from_steps(self, workflow_config):
        result = PlanWorkflow(workflow_config).execute()

        plan_step = result.steps[-1]
        assert plan_step["result"]["add"] == result.plan.add
        assert "output" not in plan_step["result"]

    def test_plan_failure(self, workflow_config):
        workflow = PlanWorkflow(workflow_config)
        connector = Mock()
        connector.init.return_value = ConnectorResult(True, "initialized")
        connector.validate.return_value = ConnectorResult(True, "valid")
        connector.plan.return_value = ConnectorResult(False, "Plan failed", error="Error: No valid credential sources found")
        workflow.connectors = {"terraform": connector}

        result = workflow.execute()

        assert not result.success
        assert result.plan is None
        assert result.errors == ["terraform.plan: Error: No valid credential sources found"]
        assert result.audit_records[-1].evidence_path is None


@pytest.mark.integration
class TestApplyWorkflow:
    """Test cases for ApplyWorkflow."""

    @pytest.fixture
    def backend(self, workflow_config):
        return TerraformMockConnector({"work_dir": workflow_config["work_dir"]})

    def _workflow(self, workflow_config, backend):
        workflow = ApplyWorkflow(workflow_config)
        workflow.connectors = {"terraform": backend}
        return workflow

    def test_apply_converges(self, workflow_config, backend):
        result = self._workflow(workflow_config, backend).execute()

        assert result.success
        assert result.action == RunAction.APPLY
        assert result.plan.has_changes
        assert result.converged is True
        assert step_names(result)[-3:] == ["terraform.plan", "terraform.apply", "terraform.plan"]
        assert backend.applied

    def test_replan_after_apply_is_empty(self, workflow_config, backend):
        self._workflow(workflow_config, backend).execute()

        result = self._workflow(workflow_config, backend).execute()

        assert result.success
        assert not result.plan.has_changes
        assert result.converged is True
        assert backend.calls.count("apply") == 1

    def test_changed_baseline_is_planned_as_update(self, workflow_config, backend):
        self._workflow(workflow_config, backend).execute()
        write_baseline(
            Path(workflow_config["baseline_dir"]),
            users=[
                {"name": "alice", "groups": ["Admins", "Auditors"]},
                {"name": "bob", "groups": ["Auditors"], "tags": {"Team": "security"}},
            ],
        )

        result = self._workflow(workflow_config, backend).execute()

        assert result.success
        assert (result.plan.add, result.plan.change, result.plan.destroy) == (0, 1, 0)
        assert result.plan.resource_changes[0]["address"] == "aws_iam_user_group_membership.alice"

    def test_not_converged(self, workflow_config, backend):
        backend.apply = Mock(return_value=ConnectorResult(True, "Apply complete!"))

        result = self._workflow(workflow_config, backend).execute()

        assert not result.success
        assert result.converged is False
        assert result.errors[0].startswith("Baseline did not converge after apply:")

    def test_apply_failure(self, workflow_config, backend):
        backend.apply = Mock(return_value=ConnectorResult(
            False, "terraform apply failed", error="Error: creating CloudTrail Trail: InsufficientS3BucketPolicyException"
        ))

        result = self._workflow(workflow_config, backend).execute()

        assert not result.success
        assert result.converged is None
        assert result.errors == [
            "terraform.apply: Error: creating CloudTrail Trail: InsufficientS3BucketPolicyException"
        ]

    def test_invalid_baseline_is_never_applied(self, workflow_config, backend):
        write_baseline(Path(workflow_config["baseline_dir"]), users=[{"name": "eve", "groups": ["Root"]}])

        result = self._workflow(workflow_config, backend).execute()

        assert not result.success
        assert backend.calls == []
        assert backend.applied == {}


class TestVerifyWorkflow:
    """Test cases for VerifyWorkflow."""

    def test_all_present(self, workflow_config):
        aws = Mock()
        aws.verify_baseline.return_value = {"missing": [], "checked": 9}

        result = VerifyWorkflow(workflow_config, aws_connector=aws).execute()

        assert result.success
        assert result.action == RunAction.VERIFY
        assert step_names(result) == ["baseline.load", "aws.verify"]
        assert aws.verify_baseline.call_args[0][0].get_user("alice") is not None

    def test_missing_resources_are_errors(self, workflow_config):
        aws = Mock()
        aws.verify_baseline.return_value = {
            "missing": ["User 'bob' does not exist", "Trail 'audit-trail' is not logging"],
            "checked": 9,
        }

        result = VerifyWorkflow(workflow_config, aws_connector=aws).execute()

        assert not result.success
        assert result.errors == ["User 'bob' does not exist", "Trail 'audit-trail' is not logging"]
        assert result.steps[-1]["error"] == "2 of 9 items missing"

    def test_aws_error(self, workflow_config):
        aws = Mock()
        aws.verify_baseline.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "not authorized"}}, "GetGroup"
        )

        result = VerifyWorkflow(workflow_config, aws_connector=aws).execute()

        assert not result.success
        assert result.errors[0].startswith("aws.verify: AWS error:")
