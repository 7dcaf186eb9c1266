"""State backend provisioning and migration engine."""

from .credentials import CredentialGate
from .descriptor import load_descriptor, parse_descriptor, render_descriptor, write_descriptor
from .destroyer import Destroyer, DestroyResult
from .executor import BackendExecutor
from .migrator import WorkspaceMigrator
from .names import resolve_names
from .state import ResourceProvisioner
from .workspaces import list_workspaces

__all__ = [
    "BackendExecutor",
    "CredentialGate",
    "Destroyer",
    "DestroyResult",
    "ResourceProvisioner",
    "WorkspaceMigrator",
    "list_workspaces",
    "load_descriptor",
    "parse_descriptor",
    "render_descriptor",
    "resolve_names",
    "write_descriptor",
]
