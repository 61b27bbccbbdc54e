"""
Core data models for IAM Baseline.

This module defines the Pydantic models used throughout the system
for policy documents, groups, users, the audit trail, and run records.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

POLICY_VERSION = "2012-10-17"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_list(value: Union[str, List[str], None]) -> List[str]:
    """IAM accepts a bare string wherever it accepts a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


class Effect(str, Enum):
    """Outcome of a policy statement."""
    ALLOW = "Allow"
    DENY = "Deny"


class RunAction(str, Enum):
    """Operator actions recorded in the audit log."""
    VALIDATE = "VALIDATE"
    PLAN = "PLAN"
    APPLY = "APPLY"
    VERIFY = "VERIFY"
    RENDER = "RENDER"


class PolicyStatement(BaseModel):
    """A single allow/deny rule within a policy document."""
    model_config = ConfigDict(populate_by_name=True)

    sid: Optional[str] = Field(None, alias="Sid")
    effect: Effect = Field(..., alias="Effect")
    actions: List[str] = Field(default_factory=list, alias="Action")
    not_actions: List[str] = Field(default_factory=list, alias="NotAction")
    resources: List[str] = Field(default_factory=list, alias="Resource")
    condition: Optional[Dict[str, Dict[str, Any]]] = Field(None, alias="Condition")

    @field_validator("actions", "not_actions", "resources", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> List[str]:
        return _as_list(v)

    @model_validator(mode="after")
    def check_action_block(self) -> "PolicyStatement":
        if bool(self.actions) == bool(self.not_actions):
            raise ValueError("Statement needs exactly one of Action or NotAction")
        if not self.resources:
            raise ValueError("Statement needs at least one Resource")
        return self

    def to_aws_dict(self) -> Dict[str, Any]:
        """Statement in the JSON shape IAM expects."""
        data: Dict[str, Any] = {}
        if self.sid:
            data["Sid"] = self.sid
        data["Effect"] = self.effect.value
        if self.actions:
            data["Action"] = self.actions[0] if len(self.actions) == 1 else list(self.actions)
        else:
            data["NotAction"] = (
                self.not_actions[0] if len(self.not_actions) == 1 else list(self.not_actions)
            )
        data["Resource"] = self.resources[0] if len(self.resources) == 1 else list(self.resources)
        if self.condition:
            data["Condition"] = self.condition
        return data


class PolicyDocument(BaseModel):
    """Versioned list of policy statements."""
    model_config = ConfigDict(populate_by_name=True)

    version: str = Field(POLICY_VERSION, alias="Version")
    statements: List[PolicyStatement] = Field(..., alias="Statement", min_length=1)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if v != POLICY_VERSION:
            raise ValueError(f"Unsupported policy version {v!r}, expected {POLICY_VERSION}")
        return v

    @field_validator("statements", mode="before")
    @classmethod
    def coerce_statements(cls, v: Any) -> Any:
        # A document may carry a single statement object instead of a list
        if isinstance(v, dict):
            return [v]
        return v

    @classmethod
    def from_aws_dict(cls, data: Dict[str, Any]) -> "PolicyDocument":
        """Parse a policy document in IAM's JSON form."""
        return cls.model_validate(data)

    def to_aws_dict(self) -> Dict[str, Any]:
        return {
            "Version": self.version,
            "Statement": [statement.to_aws_dict() for statement in self.statements],
        }


class ManagedPolicy(BaseModel):
    """Customer managed policy defined by the baseline."""
    name: str = Field(..., description="Policy name, unique within the account")
    description: str = Field("", description="Human-readable description")
    path: str = Field("/", description="IAM path")
    document: PolicyDocument


def is_policy_arn(ref: str) -> bool:
    """True when a group attachment names a policy by ARN rather than by baseline name."""
    return ref.startswith("arn:") and ":policy/" in ref


class Group(BaseModel):
    """IAM group: a name plus an ordered set of attached policy references."""
    name: str
    path: str = "/"
    policies: List[str] = Field(
        default_factory=list, description="Baseline policy names or policy ARNs, in attachment order"
    )


class User(BaseModel):
    """IAM user for one human, with group memberships."""
    name: str
    path: str = "/"
    groups: List[str] = Field(default_factory=list)
    tags: Dict[str, str] = Field(default_factory=dict)
    force_destroy: bool = Field(
        False, description="Allow Terraform to delete the user along with keys and MFA devices"
    )


class AuditTrail(BaseModel):
    """CloudTrail trail and the S3 bucket it writes to."""
    name: str
    bucket_name: str
    s3_key_prefix: Optional[str] = None
    include_global_service_events: bool = True
    is_multi_region_trail: bool = True
    enable_log_file_validation: bool = True
    force_destroy_bucket: bool = False

    @field_validator("s3_key_prefix")
    @classmethod
    def strip_prefix(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip("/")
        return v or None


class BackendConfig(BaseModel):
    """S3 remote state settings for Terraform."""
    bucket: str
    key: str = "iam-baseline/terraform.tfstate"
    region: Optional[str] = None
    dynamodb_table: Optional[str] = None
    encrypt: bool = True


class Baseline(BaseModel):
    """The full declarative set of groups, users, policies and trail."""
    region: str = "us-east-1"
    account_id: Optional[str] = Field(None, description="Resolved at plan time when omitted")
    tags: Dict[str, str] = Field(default_factory=dict)
    backend: Optional[BackendConfig] = None
    policies: List[ManagedPolicy] = Field(default_factory=list)
    groups: List[Group] = Field(default_factory=list)
    users: List[User] = Field(default_factory=list)
    trail: Optional[AuditTrail] = None

    @field_validator("account_id", mode="before")
    @classmethod
    def validate_account_id(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        # YAML reads an unquoted account number as an int
        v = str(v).zfill(12) if isinstance(v, int) else str(v)
        if len(v) != 12 or not v.isdigit():
            raise ValueError("account_id must be a 12-digit AWS account number")
        return v

    def get_policy(self, name: str) -> Optional[ManagedPolicy]:
        for policy in self.policies:
            if policy.name == name:
                return policy
        return None

    def get_group(self, name: str) -> Optional[Group]:
        for group in self.groups:
            if group.name == name:
                return group
        return None

    def get_user(self, name: str) -> Optional[User]:
        for user in self.users:
            if user.name == name:
                return user
        return None


class PlanSummary(BaseModel):
    """Change counts reported by the external plan step."""
    add: int = 0
    change: int = 0
    destroy: int = 0
    resource_changes: List[Dict[str, Any]] = Field(default_factory=list)
    output: str = Field("", description="Plan text as printed by the provisioning tool")

    @property
    def has_changes(self) -> bool:
        return (self.add + self.change + self.destroy) > 0

    def __str__(self) -> str:
        return f"{self.add} to add, {self.change} to change, {self.destroy} to destroy"


class AuditRecord(BaseModel):
    """Audit record for one step of an operator run."""
    id: str = Field(..., description="Unique audit record ID")
    timestamp: datetime = Field(default_factory=_utcnow)
    action: RunAction
    step: str = Field(..., description="Step within the run (render, terraform.plan, etc.)")
    target: str = Field(..., description="Work directory or account the step acted on")
    success: bool
    error_message: Optional[str] = None
    evidence_path: Optional[str] = None
    run_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RunResult(BaseModel):
    """Result of a complete workflow run."""
    run_id: str
    action: RunAction
    started_at: datetime
    completed_at: Optional[datetime] = None
    success: bool = True
    steps: List[Dict[str, Any]] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    plan: Optional[PlanSummary] = None
    converged: Optional[bool] = None
    audit_records: List[AuditRecord] = Field(default_factory=list)

    @property
    def total_steps(self) -> int:
        return len(self.steps)


# Type aliases for convenience
AuditRecords = List[AuditRecord]
