"""Domain models for the remote state backend."""

from .backend import (
    BackendDescriptor,
    CallerIdentity,
    CommandResult,
    ExecutionContext,
    MigrationRecord,
    MigrationResult,
    Outcome,
    ResourceNames,
    StepResult,
    Workspace,
)

__all__ = [
    "BackendDescriptor",
    "CallerIdentity",
    "CommandResult",
    "ExecutionContext",
    "MigrationRecord",
    "MigrationResult",
    "Outcome",
    "ResourceNames",
    "StepResult",
    "Workspace",
]
