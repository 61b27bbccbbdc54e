"""
Baseline Loader for IAM Baseline.

This module reads the declarative baseline files (settings, policies, groups,
users) and assembles them into a validated Baseline model.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from ..models import AuditTrail, BackendConfig, Baseline, Group, ManagedPolicy, PolicyDocument, User
from .policy_templates import build_from_template

logger = logging.getLogger(__name__)

DEFAULT_BASELINE_DIR = Path(__file__).parent.parent / "baseline"


class BaselineLoadError(Exception):
    """Raised when a baseline file cannot be parsed or does not match the schema."""

    def __init__(self, path: Union[str, Path], message: str):
        self.path = Path(path)
        super().__init__(f"{self.path}: {message}")


class BaselineLoader:
    """
    Loads the declarative IAM baseline from a directory.

    Expected files:
        baseline.yaml  - region, account_id, tags, backend, trail
        policies.yaml  - managed policies (inline document, JSON file, or template)
        groups.yaml    - groups and their ordered policy attachments
        users.yaml     - users and their group memberships
    """

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        """
        Initialize the loader.

        Args:
            config_dir: Directory holding the baseline files.
                       Defaults to the baseline bundled with the package.
        """
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_BASELINE_DIR
        self.baseline: Optional[Baseline] = None

    def load(self) -> Baseline:
        """
        Read every baseline file and build the Baseline model.

        Returns:
            The loaded Baseline

        Raises:
            BaselineLoadError: If a file is malformed or fails schema validation
        """
        settings = self._read_yaml("baseline.yaml") or {}
        policies = self._load_policies(self._read_yaml("policies.yaml") or {})
        groups = self._load_entries("groups.yaml", "groups", Group)
        users = self._load_entries("users.yaml", "users", User)

        try:
            self.baseline = Baseline(
                region=settings.get("region", "us-east-1"),
                account_id=settings.get("account_id"),
                tags=settings.get("tags") or {},
                backend=BackendConfig(**settings["backend"]) if settings.get("backend") else None,
                trail=AuditTrail(**settings["trail"]) if settings.get("trail") else None,
                policies=policies,
                groups=groups,
                users=users,
            )
        except (TypeError, ValidationError) as e:
            # TypeError: backend or trail is not a mapping
            raise BaselineLoadError(self.config_dir / "baseline.yaml", str(e)) from e

        logger.info(
            f"Loaded baseline from {self.config_dir}: {len(policies)} policies, "
            f"{len(groups)} groups, {len(users)} users, "
            f"trail={'yes' if self.baseline.trail else 'no'}"
        )
        return self.baseline

    def reload(self) -> Baseline:
        """Re-read the baseline files (useful after editing them)."""
        logger.info("Reloading baseline configuration")
        return self.load()

    def get_group_policies(self, group_name: str) -> List[str]:
        """Policy references attached to a group, in attachment order."""
        group = self._baseline().get_group(group_name)
        return list(group.policies) if group else []

    def get_user_groups(self, user_name: str) -> List[str]:
        """Groups a user belongs to."""
        user = self._baseline().get_user(user_name)
        return list(user.groups) if user else []

    def get_group_members(self, group_name: str) -> List[str]:
        """Users that list the group among their memberships."""
        return sorted(u.name for u in self._baseline().users if group_name in u.groups)

    def _baseline(self) -> Baseline:
        if self.baseline is None:
            return self.load()
        return self.baseline

    def _read_yaml(self, filename: str) -> Optional[Dict[str, Any]]:
        path = self.config_dir / filename
        if not path.exists():
            logger.warning(f"Baseline file not found: {path}")
            return None

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise BaselineLoadError(path, f"invalid YAML: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise BaselineLoadError(path, "top level must be a mapping")

        logger.debug(f"Read baseline file {path}")
        return data

    def _load_entries(self, filename: str, key: str, model: Any) -> List[Any]:
        data = self._read_yaml(filename) or {}
        entries = data.get(key) or []
        path = self.config_dir / filename

        if not isinstance(entries, list):
            raise BaselineLoadError(path, f"'{key}' must be a list")

        try:
            return [model(**entry) for entry in entries]
        except (TypeError, ValidationError) as e:
            raise BaselineLoadError(path, str(e)) from e

    def _load_policies(self, data: Dict[str, Any]) -> List[ManagedPolicy]:
        path = self.config_dir / "policies.yaml"
        entries = data.get("policies") or []
        if not isinstance(entries, list):
            raise BaselineLoadError(path, "'policies' must be a list")

        policies = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise BaselineLoadError(path, f"policy entry must be a mapping: {entry!r}")
            name = entry.get("name")
            if not name:
                raise BaselineLoadError(path, f"policy entry without a name: {entry}")

            try:
                document = self._resolve_document(entry)
                policies.append(
                    ManagedPolicy(
                        name=name,
                        description=entry.get("description", ""),
                        path=entry.get("path", "/"),
                        document=document,
                    )
                )
            except (ValueError, TypeError) as e:
                # pydantic's ValidationError is a ValueError
                raise BaselineLoadError(path, f"policy '{name}': {e}") from e

        return policies

    def _resolve_document(self, entry: Dict[str, Any]) -> PolicyDocument:
        """A policy's document comes from exactly one of: document, file, template."""
        sources = [key for key in ("document", "file", "template") if entry.get(key)]
        if len(sources) != 1:
            raise ValueError("exactly one of 'document', 'file' or 'template' is required")

        if "document" in sources:
            return PolicyDocument.from_aws_dict(entry["document"])

        if "template" in sources:
            return build_from_template(entry["template"], entry.get("params"))

        document_path = self.config_dir / entry["file"]
        try:
            with open(document_path, encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError as e:
            raise ValueError(f"policy file not found: {document_path}") from e
        except json.JSONDecodeError as e:
            raise BaselineLoadError(document_path, f"invalid JSON: {e}") from e

        return PolicyDocument.from_aws_dict(raw)
