"""
Terraform Connector for IAM Baseline.

Drives the Terraform CLI (init, validate, plan, apply) in the baseline's
working directory. Terraform computes the diff and calls the AWS APIs;
its diagnostics are passed back to the operator verbatim.
"""

import json
import logging
import os
import re
import shutil
import subprocess
from typing import Any, Dict, List, Optional

from ..models import PlanSummary
from .base_connector import BaseConnector, ConnectorResult, MockConnector

logger = logging.getLogger(__name__)

# terraform plan -detailed-exitcode
PLAN_NO_CHANGES = 0
PLAN_HAS_CHANGES = 2

_PLAN_LINE = re.compile(r"Plan: (\d+) to add, (\d+) to change, (\d+) to destroy")


class TerraformConnector(BaseConnector):
    """Terraform CLI connector implementing validate, plan and apply."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = False):
        super().__init__(config, mock_mode)

        self.binary = self.config.get("binary", "terraform")
        self.timeout = int(self.config.get("timeout", 600))
        self.extra_env: Dict[str, str] = dict(self.config.get("env", {}))
        self._mock: Optional[TerraformMockConnector] = None

        if mock_mode:
            self._mock = TerraformMockConnector(self.config)

    def validate_config(self) -> bool:
        """Check that the Terraform binary can be found."""
        return shutil.which(self.binary) is not None

    def init(self) -> ConnectorResult:
        """Run terraform init in the working directory."""
        if self._mock:
            return self._mock.init()

        result = self._run(["init", "-input=false", "-no-color"])
        if result.success:
            logger.info(f"Initialized Terraform working directory {self.work_dir}")
        return result

    def validate(self) -> ConnectorResult:
        """Run terraform validate and return its diagnostics."""
        if self._mock:
            return self._mock.validate()

        # validate -json reports diagnostics on stdout and exits 1 when invalid
        completed = self._execute(["validate", "-json", "-no-color"])
        if isinstance(completed, ConnectorResult):
            return completed

        try:
            report = json.loads(completed.stdout or "{}")
        except json.JSONDecodeError:
            report = {}

        diagnostics = report.get("diagnostics", [])
        if completed.returncode == 0 and report.get("valid", True):
            logger.info(f"Terraform configuration in {self.work_dir} is valid")
            return ConnectorResult(True, "Configuration is valid", report)

        error = self._format_diagnostics(diagnostics) or completed.stderr.strip() or completed.stdout.strip()
        logger.error(f"Terraform validate failed: {error}")
        return ConnectorResult(False, "Validation failed", report, error=error)

    def plan(self, plan_file: Optional[str] = "tfplan") -> ConnectorResult:
        """
        Run terraform plan and summarize the proposed changes.

        Args:
            plan_file: Saved plan file name; the plan is also read back with
                       terraform show -json to count changes per action
        """
        if self._mock:
            return self._mock.plan(plan_file)

        args = ["plan", "-input=false", "-no-color", "-detailed-exitcode"]
        if plan_file:
            args.append(f"-out={plan_file}")

        completed = self._execute(args)
        if isinstance(completed, ConnectorResult):
            return completed

        if completed.returncode not in (PLAN_NO_CHANGES, PLAN_HAS_CHANGES):
            error = completed.stderr.strip() or completed.stdout.strip()
            logger.error(f"Terraform plan failed: {error}")
            return ConnectorResult(False, "Plan failed", {"output": completed.stdout}, error=error)

        if completed.returncode == PLAN_NO_CHANGES:
            summary = PlanSummary()
        elif plan_file:
            summary = self._summarize_plan(plan_file)
            if summary is None:
                return ConnectorResult(
                    False, "Plan failed", error=f"Could not read saved plan {plan_file}"
                )
        else:
            summary = parse_plan_counts(completed.stdout)

        summary.output = completed.stdout
        logger.info(f"Terraform plan: {summary}")
        return ConnectorResult(True, f"Plan: {summary}", summary)

    def apply(self, plan_file: Optional[str] = None) -> ConnectorResult:
        """Run terraform apply, from a saved plan when one is given."""
        if self._mock:
            return self._mock.apply(plan_file)

        args = ["apply", "-input=false", "-no-color"]
        if plan_file:
            args.append(plan_file)
        else:
            args.append("-auto-approve")

        result = self._run(args)
        if result.success:
            logger.info(f"Terraform apply completed in {self.work_dir}")
        return result

    def _summarize_plan(self, plan_file: str) -> Optional[PlanSummary]:
        completed = self._execute(["show", "-json", plan_file])
        if isinstance(completed, ConnectorResult) or completed.returncode != 0:
            return None

        try:
            plan = json.loads(completed.stdout)
        except json.JSONDecodeError as e:
            logger.error(f"Unreadable plan JSON from terraform show: {e}")
            return None

        return summarize_resource_changes(plan.get("resource_changes", []))

    def _run(self, args: List[str]) -> ConnectorResult:
        completed = self._execute(args)
        if isinstance(completed, ConnectorResult):
            return completed

        command = f"terraform {args[0]}"
        if completed.returncode != 0:
            error = completed.stderr.strip() or completed.stdout.strip()
            logger.error(f"{command} failed: {error}")
            return ConnectorResult(False, f"{command} failed", {"output": completed.stdout}, error=error)

        return ConnectorResult(True, f"{command} succeeded", {"output": completed.stdout})

    def _execute(self, args: List[str]):
        """Run the binary; returns CompletedProcess, or a failed ConnectorResult."""
        if not self.work_dir.is_dir():
            error = f"Working directory does not exist: {self.work_dir}"
            logger.error(error)
            return ConnectorResult(False, error, error=error)

        command = [self.binary, *args]
        env = {**os.environ, "TF_IN_AUTOMATION": "1", **self.extra_env}

        logger.debug(f"Running {' '.join(command)} in {self.work_dir}")
        try:
            return subprocess.run(
                command,
                cwd=self.work_dir,
                env=env,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError:
            error = f"Terraform binary not found: {self.binary}"
            logger.error(error)
            return ConnectorResult(False, error, error=error)
        except subprocess.TimeoutExpired:
            error = f"terraform {args[0]} timed out after {self.timeout}s"
            logger.error(error)
            return ConnectorResult(False, error, error=error)

    @staticmethod
    def _format_diagnostics(diagnostics: List[Dict[str, Any]]) -> str:
        lines = []
        for diag in diagnostics:
            line = f"{diag.get('severity', 'error').capitalize()}: {diag.get('summary', '')}"
            if diag.get("detail"):
                line += f"\n  {diag['detail']}"
            lines.append(line)
        return "\n".join(lines)


def summarize_resource_changes(resource_changes: List[Dict[str, Any]]) -> PlanSummary:
    """
    Count planned actions the way terraform plan reports them.

    A replacement (delete + create in either order) counts once as an add
    and once as a destroy.
    """
    summary = PlanSummary()
    changes = []

    for rc in resource_changes:
        actions = rc.get("change", {}).get("actions", [])
        if actions in (["no-op"], ["read"]):
            continue

        if "create" in actions:
            summary.add += 1
        if "delete" in actions:
            summary.destroy += 1
        if actions == ["update"]:
            summary.change += 1

        changes.append({"address": rc.get("address"), "actions": actions})

    summary.resource_changes = changes
    return summary


def parse_plan_counts(output: str) -> PlanSummary:
    """
    Read the change counts from the 'Plan: ...' line of terraform plan output.

    Used when the plan was not saved. Exit code 2 means there are changes, so
    output without a readable summary line still counts as one change.
    """
    match = _PLAN_LINE.search(output or "")
    if not match:
        return PlanSummary(change=1)

    add, change, destroy = (int(n) for n in match.groups())
    return PlanSummary(add=add, change=change, destroy=destroy)


class TerraformMockConnector(MockConnector):
    """Mock implementation of the Terraform connector for testing and dry runs."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = True):
        super().__init__(config)
