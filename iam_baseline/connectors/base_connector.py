"""
Base Connector Classes for IAM Baseline.

This module provides the foundation for the provisioning tool connector
with both a real CLI implementation and a mock/simulated backend.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models import PlanSummary

logger = logging.getLogger(__name__)


class ConnectorResult:
    """Result of a connector operation."""

    def __init__(self, success: bool, message: str = "", data: Optional[Any] = None,
                 error: Optional[str] = None):
        self.success = success
        self.message = message
        self.data = data
        self.error = error

    def __bool__(self):
        return self.success

    def __str__(self):
        return f"{'✓' if self.success else '✗'} {self.message}"


class BaseConnector(ABC):
    """
    Abstract base class for provisioning tool connectors.

    Each connector implements the three-verb contract (validate, plan,
    apply) plus the working directory initialization the tool needs.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = False):
        """
        Initialize the connector.

        Args:
            config: Configuration dictionary (binary path, work directory, timeouts)
            mock_mode: If True, use mock/simulated backend instead of the real tool
        """
        self.config = config or {}
        self.mock_mode = mock_mode
        self.work_dir = Path(self.config.get("work_dir", ".baseline"))

        logger.info(f"Initialized {self.__class__.__name__} (mock_mode={mock_mode})")

    @abstractmethod
    def init(self) -> ConnectorResult:
        """
        Prepare the working directory (providers, backend).

        Returns:
            ConnectorResult with success status
        """
        pass

    @abstractmethod
    def validate(self) -> ConnectorResult:
        """
        Syntax-check the rendered configuration.

        Returns:
            ConnectorResult with diagnostics in data
        """
        pass

    @abstractmethod
    def plan(self, plan_file: Optional[str] = "tfplan") -> ConnectorResult:
        """
        Compute the dry-run diff against live state.

        Args:
            plan_file: File name to save the plan under, inside the work directory

        Returns:
            ConnectorResult whose data is a PlanSummary
        """
        pass

    @abstractmethod
    def apply(self, plan_file: Optional[str] = None) -> ConnectorResult:
        """
        Execute the diff.

        Args:
            plan_file: Saved plan to apply; plans and applies in one step when None

        Returns:
            ConnectorResult with success status
        """
        pass

    def validate_config(self) -> bool:
        """
        Validate that the connector has all required configuration.

        Returns:
            True if configuration is valid, False otherwise
        """
        return True

    def is_mock_mode(self) -> bool:
        """Check if this connector is running in mock mode."""
        return self.mock_mode


class MockConnector(BaseConnector):
    """
    Simulated provisioning backend.

    Keeps the resources of the last applied configuration in memory so
    plan/apply cycles can be exercised without the real tool or an account.
    Resources are compared by address and body only.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, mock_mode: bool = True):
        super().__init__(config, mock_mode=True)

        # In-memory state for mock operations
        self.initialized = False
        self.applied: Dict[str, Any] = {}  # address -> resource body
        self.calls: List[str] = []

    def _load_config_resources(self) -> Optional[Dict[str, Any]]:
        config_file = self.work_dir / "main.tf.json"
        if not config_file.exists():
            return None

        with open(config_file, encoding="utf-8") as f:
            config = json.load(f)

        return {
            f"{rtype}.{name}": body
            for rtype, instances in config.get("resource", {}).items()
            for name, body in instances.items()
        }

    def init(self) -> ConnectorResult:
        self.calls.append("init")
        self.initialized = True
        logger.info(f"Mock initialized working directory {self.work_dir}")
        return ConnectorResult(True, f"Initialized {self.work_dir}")

    def validate(self) -> ConnectorResult:
        self.calls.append("validate")
        if not self.initialized:
            return ConnectorResult(False, "Validation failed", error="Working directory is not initialized")

        if self._load_config_resources() is None:
            return ConnectorResult(False, "Validation failed", error=f"No configuration in {self.work_dir}")

        return ConnectorResult(True, "Configuration is valid", {"valid": True, "diagnostics": []})

    def plan(self, plan_file: Optional[str] = "tfplan") -> ConnectorResult:
        self.calls.append("plan")
        desired = self._load_config_resources()
        if desired is None:
            return ConnectorResult(False, "Plan failed", error=f"No configuration in {self.work_dir}")

        changes = []
        for address in sorted(set(desired) | set(self.applied)):
            if address not in self.applied:
                actions = ["create"]
            elif address not in desired:
                actions = ["delete"]
            elif desired[address] != self.applied[address]:
                actions = ["update"]
            else:
                continue
            changes.append({"address": address, "actions": actions})

        summary = PlanSummary(
            add=sum(1 for c in changes if c["actions"] == ["create"]),
            change=sum(1 for c in changes if c["actions"] == ["update"]),
            destroy=sum(1 for c in changes if c["actions"] == ["delete"]),
            resource_changes=changes,
        )
        symbols = {"create": "+", "update": "~", "delete": "-"}
        summary.output = "\n".join(
            f"  {symbols[c['actions'][0]]} {c['address']}" for c in changes
        ) + f"\n\nPlan: {summary}.\n"

        logger.info(f"Mock plan: {summary}")
        return ConnectorResult(True, f"Plan: {summary}", summary)

    def apply(self, plan_file: Optional[str] = None) -> ConnectorResult:
        self.calls.append("apply")
        desired = self._load_config_resources()
        if desired is None:
            return ConnectorResult(False, "Apply failed", error=f"No configuration in {self.work_dir}")

        self.applied = desired
        logger.info(f"Mock applied {len(desired)} resources")
        return ConnectorResult(True, f"Apply complete! {len(desired)} resources in state")

    def get_mock_state(self) -> Dict[str, Any]:
        """Get current mock state for inspection."""
        return {
            "initialized": self.initialized,
            "applied": self.applied,
            "calls": self.calls,
        }
