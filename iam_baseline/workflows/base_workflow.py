"""
Base Workflow Classes for IAM Baseline.

This module provides the foundation for the validate, plan, apply and
verify workflows, with the common steps (load, check, render, init) and
step tracking, error collection and audit logging.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..audit.audit_logger import AuditLogger
from ..audit.evidence_store import EvidenceStore
from ..connectors import ConnectorResult, get_connector_class
from ..engine.baseline_loader import BaselineLoader, BaselineLoadError
from ..engine.renderer import TerraformRenderer
from ..models import AuditRecord, Baseline, RunAction, RunResult
from .helpers import validate_baseline

logger = logging.getLogger(__name__)


class WorkflowStep:
    """Represents a single step in a workflow execution."""

    def __init__(
        self,
        system: str,
        operation: str,
        resource: str = "",
        parameters: Optional[Dict[str, Any]] = None,
    ):
        self.system = system
        self.operation = operation
        self.resource = resource
        self.parameters = parameters or {}
        self.executed_at: Optional[datetime] = None
        self.success: bool = False
        self.error: Optional[str] = None
        self.result: Optional[Any] = None

    @property
    def name(self) -> str:
        return f"{self.system}.{self.operation}"

    def mark_success(self, result: Any = None):
        """Mark step as successful."""
        self.executed_at = datetime.now(timezone.utc)
        self.success = True
        self.result = result

    def mark_failure(self, error: str):
        """Mark step as failed."""
        self.executed_at = datetime.now(timezone.utc)
        self.success = False
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        """Convert step to dictionary for serialization."""
        result = self.result
        if hasattr(result, "model_dump"):
            result = result.model_dump(exclude={"output"})
        return {
            "system": self.system,
            "operation": self.operation,
            "resource": self.resource,
            "parameters": self.parameters,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "success": self.success,
            "error": self.error,
            "result": result,
        }


class BaseWorkflow(ABC):
    """
    Abstract base class for baseline workflows.

    Provides the shared steps every run starts with and common
    error handling and audit logging.
    """

    action: RunAction = RunAction.VALIDATE

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the workflow.

        Args:
            config: Configuration dictionary (baseline_dir, work_dir, audit_dir,
                    evidence_dir, mock_mode, terraform, aws)
        """
        self.config = config or {}
        self.run_id = str(uuid.uuid4())
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None
        self.steps: List[WorkflowStep] = []
        self.errors: List[str] = []
        self.audit_records: List[AuditRecord] = []
        self.baseline: Optional[Baseline] = None

        self.work_dir = Path(self.config.get("work_dir", ".baseline"))

        # Initialize components
        self.loader = BaselineLoader(self.config.get("baseline_dir"))
        self.audit_logger = AuditLogger(self.config.get("audit_dir", "audit"))
        self.evidence_store = EvidenceStore(self.config.get("evidence_dir", "evidence"))

        # Initialize connectors
        self.connectors = self._initialize_connectors()

        logger.info(f"Initialized {self.__class__.__name__} run {self.run_id}")

    def _initialize_connectors(self) -> Dict[str, Any]:
        """Initialize the provisioning tool connector."""
        mock_mode = self.config.get("mock_mode", False)
        terraform_config = {**self.config.get("terraform", {}), "work_dir": str(self.work_dir)}

        connector_class = get_connector_class("terraform", mock=mock_mode)
        return {"terraform": connector_class(terraform_config, mock_mode=mock_mode)}

    @abstractmethod
    def execute(self) -> RunResult:
        """
        Execute the workflow against the configured baseline.

        Returns:
            RunResult with execution details
        """
        pass

    def _prepare(self) -> bool:
        """
        Load, check, render and initialize.

        Any failure here stops the run before Terraform validates or plans.

        Returns:
            True if every preparation step succeeded
        """
        step = WorkflowStep("baseline", "load", str(self.loader.config_dir))
        self.steps.append(step)
        try:
            self.baseline = self.loader.load()
            step.mark_success()
        except BaselineLoadError as e:
            return self._fail_step(step, str(e))
        finally:
            self._record_step(step)

        step = WorkflowStep("baseline", "check", str(self.loader.config_dir))
        self.steps.append(step)
        problems = validate_baseline(self.baseline)
        if problems:
            self.errors.extend(problems)
            step.mark_failure(f"{len(problems)} problems found")
            logger.error(f"Baseline check failed with {len(problems)} problems")
            self._record_step(step)
            return False
        step.mark_success()
        self._record_step(step)

        step = WorkflowStep("baseline", "render", str(self.work_dir))
        self.steps.append(step)
        try:
            config_path = TerraformRenderer(self.baseline).write(self.work_dir)
            step.mark_success(str(config_path))
        except OSError as e:
            return self._fail_step(step, f"Failed to write configuration: {e}")
        finally:
            self._record_step(step)

        return self._execute_step(WorkflowStep("terraform", "init", str(self.work_dir)))

    def _fail_step(self, step: WorkflowStep, error: str) -> bool:
        step.mark_failure(error)
        self.errors.append(f"{step.name}: {error}")
        logger.error(f"Step failed: {step.name}: {error}")
        return False

    def _execute_step(self, step: WorkflowStep, record: bool = True) -> bool:
        """
        Execute a single connector step.

        Args:
            step: The step to execute
            record: Write the audit record when the step finishes; callers that
                    attach evidence record the step themselves

        Returns:
            True if successful, False otherwise
        """
        self.steps.append(step)
        try:
            connector = self.connectors.get(step.system)
            if not connector:
                return self._fail_step(step, f"No connector available for system: {step.system}")

            result = self._call_connector_method(connector, step.operation, step.parameters)

            if result.success:
                step.mark_success(result.data)
                logger.info(f"Step completed: {step.name}({step.resource})")
                return True

            return self._fail_step(step, result.error or result.message or "Unknown error")

        finally:
            if record:
                self._record_step(step)

    def _call_connector_method(
        self, connector: Any, operation: str, params: Dict[str, Any]
    ) -> ConnectorResult:
        """
        Call the appropriate connector method based on operation name.

        Args:
            connector: The connector instance
            operation: Operation name (init, validate, plan, apply)
            params: Parameters for the operation

        Returns:
            ConnectorResult from the operation
        """
        method_map = {
            "init": lambda c, p: c.init(),
            "validate": lambda c, p: c.validate(),
            "plan": lambda c, p: c.plan(p.get("plan_file", "tfplan")),
            "apply": lambda c, p: c.apply(p.get("plan_file")),
        }

        if operation not in method_map:
            return ConnectorResult(False, f"Unknown operation: {operation}")

        return method_map[operation](connector, params)

    def _record_step(self, step: WorkflowStep, evidence_path: Optional[str] = None) -> str:
        """
        Log an audit event for a finished step.

        Args:
            step: The finished step
            evidence_path: Stored evidence backing the step

        Returns:
            Audit record ID
        """
        audit_record = AuditRecord(
            id=str(uuid.uuid4()),
            action=self.action,
            step=step.name,
            target=step.resource or str(self.work_dir),
            success=step.success,
            error_message=step.error,
            evidence_path=evidence_path,
            run_id=self.run_id,
        )

        self.audit_records.append(audit_record)
        self.audit_logger.log_event(audit_record)
        return audit_record.id

    def _store_plan_evidence(self, label: str, plan: Any) -> Optional[str]:
        """Keep the plan text and rendered configuration for this run."""
        config_file = self.work_dir / "main.tf.json"
        if config_file.exists():
            self.evidence_store.store_evidence(config_file, self.run_id, name="main.tf.json")

        output = getattr(plan, "output", "")
        if not output:
            return None
        return self.evidence_store.store_evidence(output, self.run_id, name=f"{label}.txt")

    def _build_result(self, success: bool, **extra: Any) -> RunResult:
        self.completed_at = datetime.now(timezone.utc)
        return RunResult(
            run_id=self.run_id,
            action=self.action,
            started_at=self.started_at,
            completed_at=self.completed_at,
            success=success,
            steps=[step.to_dict() for step in self.steps],
            errors=self.errors.copy(),
            audit_records=self.audit_records.copy(),
            **extra,
        )

    def get_execution_summary(self) -> Dict[str, Any]:
        """Get summary of workflow execution."""
        successful_steps = len([s for s in self.steps if s.success])
        total_steps = len(self.steps)

        return {
            "run_id": self.run_id,
            "workflow_type": self.__class__.__name__,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_steps": total_steps,
            "successful_steps": successful_steps,
            "failed_steps": total_steps - successful_steps,
            "errors": self.errors.copy(),
        }
