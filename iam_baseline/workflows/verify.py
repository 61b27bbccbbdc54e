"""
Verify Workflow for IAM Baseline.

Read-only check that the declared groups, attachments, users and trail
exist in the account after an apply.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..connectors import get_connector_class
from ..engine.baseline_loader import BaselineLoadError
from ..models import RunAction, RunResult
from .base_workflow import BaseWorkflow, WorkflowStep

logger = logging.getLogger(__name__)


class VerifyWorkflow(BaseWorkflow):
    """Workflow comparing the declared baseline with what AWS reports."""

    action = RunAction.VERIFY

    def __init__(self, config: Optional[Dict[str, Any]] = None, aws_connector: Optional[Any] = None):
        super().__init__(config)
        self._aws_connector = aws_connector

    @property
    def aws_connector(self) -> Any:
        if self._aws_connector is None:
            connector_class = get_connector_class("aws")
            self._aws_connector = connector_class(self.config.get("aws", {}))
        return self._aws_connector

    def execute(self) -> RunResult:
        """
        Execute the verify workflow.

        Returns:
            RunResult; each missing resource is reported as an error
        """
        self.started_at = datetime.now(timezone.utc)
        logger.info(f"Starting verify run {self.run_id}")

        step = WorkflowStep("baseline", "load", str(self.loader.config_dir))
        self.steps.append(step)
        try:
            self.baseline = self.loader.load()
            step.mark_success()
        except BaselineLoadError as e:
            self._fail_step(step, str(e))
        finally:
            self._record_step(step)

        if self.baseline is not None:
            self._verify()

        result = self._build_result(not self.errors)
        logger.info(f"Completed verify run {self.run_id}: {len(self.errors)} findings")
        return result

    def _verify(self):
        step = WorkflowStep("aws", "verify", self.baseline.account_id or self.baseline.region)
        self.steps.append(step)
        try:
            report = self.aws_connector.verify_baseline(self.baseline)
            if report["missing"]:
                self.errors.extend(report["missing"])
                step.mark_failure(f"{len(report['missing'])} of {report['checked']} items missing")
            else:
                step.mark_success(report)
        except (ClientError, BotoCoreError) as e:
            self._fail_step(step, f"AWS error: {e}")
        finally:
            self._record_step(step)
