"""Backend descriptor schema and engine records."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_STATE_KEY = "terraform.tfstate"
DEFAULT_KEY_PREFIX = "env"


class Outcome(str, Enum):
    """Result of a single engine step."""

    SUCCESS = "success"
    NOOP = "noop"
    SKIPPED = "skipped"
    FATAL = "fatal"


# Pydantic model for the persisted descriptor
class BackendDescriptor(BaseModel):
    """The `backend "s3"` block recording where remote state lives."""

    bucket: str = Field(..., description="S3 bucket holding the state objects")
    dynamodb_table: str = Field(..., description="DynamoDB table used for state locking")
    region: Optional[str] = None
    key: str = DEFAULT_STATE_KEY
    encrypt: bool = True
    workspace_key_prefix: str = DEFAULT_KEY_PREFIX

    @field_validator("bucket", "dynamodb_table")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Identifiers are quoted HCL strings and must be non-empty."""
        v = v.strip()
        if not v:
            raise ValueError("identifier must not be empty")
        if '"' in v or "\n" in v:
            raise ValueError(f"identifier contains invalid characters: {v!r}")
        return v


@dataclass
class ResourceNames:
    """Bucket and lock table identifiers, correlated by a shared token."""

    bucket: str
    table: str
    generated: bool = False


@dataclass
class CallerIdentity:
    """Active AWS identity returned by STS."""

    account: str
    arn: str
    user_id: str


@dataclass
class ExecutionContext:
    """
    Explicit execution context passed to every component.

    Nothing in the engine reads the process working directory or
    environment directly.
    """

    working_directory: Path
    region: str
    state_dir: Path
    state_file_name: str = DEFAULT_STATE_KEY
    descriptor_file_name: str = "backend.tf"
    key_prefix: str = DEFAULT_KEY_PREFIX

    @property
    def descriptor_path(self) -> Path:
        return self.working_directory / self.descriptor_file_name

    def workspace(self, name: str) -> "Workspace":
        """Build a workspace rooted in this context's state directory."""
        return Workspace(
            name=name,
            local_state_path=self.state_dir / name / self.state_file_name,
            key_prefix=self.key_prefix,
        )


@dataclass
class Workspace:
    """A named Terraform workspace with its own isolated state file."""

    name: str
    local_state_path: Optional[Path] = None
    key_prefix: str = DEFAULT_KEY_PREFIX

    @property
    def remote_key(self) -> str:
        return f"{self.key_prefix}/{self.name}/{DEFAULT_STATE_KEY}"


@dataclass
class MigrationRecord:
    """Per-run record of a single workspace migration attempt."""

    workspace: str
    backup_path: Path
    upload_verified: bool = False


@dataclass
class StepResult:
    """Outcome of a provisioning or teardown step."""

    step: str
    outcome: Outcome
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome != Outcome.FATAL


@dataclass
class MigrationResult:
    """Outcome of migrating one workspace."""

    workspace: str
    outcome: Outcome
    message: str = ""
    record: Optional[MigrationRecord] = None

    @property
    def ok(self) -> bool:
        return self.outcome != Outcome.FATAL


@dataclass
class CommandResult:
    """Result of a full command sequence."""

    success: bool
    steps: List[StepResult] = field(default_factory=list)
    migrations: List[MigrationResult] = field(default_factory=list)
    workspaces: List[Workspace] = field(default_factory=list)
    descriptor: Optional[BackendDescriptor] = None
    identity: Optional[CallerIdentity] = None
    cancelled: bool = False
    error: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
