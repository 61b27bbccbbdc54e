"""
Plan Workflow for IAM Baseline.

Runs the dry-run diff against live state and keeps the plan output
as evidence.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..models import PlanSummary, RunAction, RunResult
from .base_workflow import BaseWorkflow, WorkflowStep

logger = logging.getLogger(__name__)

PLAN_FILE = "tfplan"


class PlanWorkflow(BaseWorkflow):
    """
    Workflow for the plan verb.

    Validates first, so syntax errors surface before the provider is called.
    """

    action = RunAction.PLAN

    def execute(self) -> RunResult:
        """
        Execute the plan workflow.

        Returns:
            RunResult with the plan summary
        """
        self.started_at = datetime.now(timezone.utc)
        logger.info(f"Starting plan run {self.run_id}")

        plan = None
        success = self._prepare() and self._execute_step(
            WorkflowStep("terraform", "validate", str(self.work_dir))
        )
        if success:
            plan = self._plan("plan")
            success = plan is not None

        result = self._build_result(success, plan=plan)
        logger.info(f"Completed plan run {self.run_id}: {plan if plan else 'no plan'}")
        return result

    def _plan(self, label: str, plan_file: Optional[str] = PLAN_FILE) -> Optional[PlanSummary]:
        """
        Run one plan step and store its output.

        Args:
            label: Evidence name for the plan output
            plan_file: Saved plan file name

        Returns:
            PlanSummary, or None if the plan failed
        """
        step = WorkflowStep("terraform", "plan", str(self.work_dir), {"plan_file": plan_file})
        if not self._execute_step(step, record=False):
            self._record_step(step)
            return None

        plan = step.result
        self._record_step(step, evidence_path=self._store_plan_evidence(label, plan))
        return plan
