"""
Apply Workflow for IAM Baseline.

Plans, applies the saved plan when there is something to change, and then
plans again to confirm the applied state matches the baseline.
"""

import logging
from datetime import datetime, timezone

from ..models import RunAction, RunResult
from .base_workflow import WorkflowStep
from .plan import PLAN_FILE, PlanWorkflow

logger = logging.getLogger(__name__)


class ApplyWorkflow(PlanWorkflow):
    """
    Workflow for the apply verb.

    A successful apply must converge: planning again against the applied
    state has to report zero changes.
    """

    action = RunAction.APPLY

    def execute(self) -> RunResult:
        """
        Execute the apply workflow.

        Returns:
            RunResult with the initial plan and the convergence outcome
        """
        self.started_at = datetime.now(timezone.utc)
        logger.info(f"Starting apply run {self.run_id}")

        plan = None
        converged = None
        success = self._prepare() and self._execute_step(
            WorkflowStep("terraform", "validate", str(self.work_dir))
        )

        if success:
            plan = self._plan("plan")
            success = plan is not None

        if success and not plan.has_changes:
            logger.info("No changes. Infrastructure matches the baseline.")
            converged = True
        elif success:
            success = self._execute_step(
                WorkflowStep("terraform", "apply", str(self.work_dir), {"plan_file": PLAN_FILE})
            )
            if success:
                converged = self._check_convergence()
                success = converged

        result = self._build_result(success, plan=plan, converged=converged)
        logger.info(
            f"Completed apply run {self.run_id}: {len(self.steps)} steps, "
            f"{len(self.errors)} errors, converged={converged}"
        )
        return result

    def _check_convergence(self) -> bool:
        """Plan again without saving; any remaining change means the apply did not converge."""
        replan = self._plan("replan", plan_file=None)
        if replan is None:
            return False

        if replan.has_changes:
            self.errors.append(f"Baseline did not converge after apply: {replan}")
            logger.error(f"Re-plan after apply still shows changes: {replan}")
            return False

        return True
