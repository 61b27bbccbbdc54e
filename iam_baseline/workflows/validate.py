"""
Validate Workflow for IAM Baseline.

Loads and checks the baseline locally, renders it, and runs the
provisioning tool's syntax check.
"""

import logging
from datetime import datetime, timezone

from ..models import RunAction, RunResult
from .base_workflow import BaseWorkflow, WorkflowStep

logger = logging.getLogger(__name__)


class ValidateWorkflow(BaseWorkflow):
    """Workflow for the validate verb: local checks, then terraform validate."""

    action = RunAction.VALIDATE

    def execute(self) -> RunResult:
        """
        Execute the validate workflow.

        Returns:
            RunResult with execution details
        """
        self.started_at = datetime.now(timezone.utc)
        logger.info(f"Starting validate run {self.run_id}")

        success = self._prepare() and self._execute_step(
            WorkflowStep("terraform", "validate", str(self.work_dir))
        )

        result = self._build_result(success)
        logger.info(
            f"Completed validate run {self.run_id}: {len(self.steps)} steps, {len(self.errors)} errors"
        )
        return result
