"""Discovery of local workspaces with state to migrate."""

from pathlib import Path
from typing import List

import structlog

from ..errors import StateDirectoryNotFound
from ..models import Workspace

logger = structlog.get_logger()


def list_workspaces(
    state_dir: Path, state_file_name: str = "terraform.tfstate", key_prefix: str = "env"
) -> List[Workspace]:
    """
    Scan the local state directory for workspaces.

    A subdirectory counts as a workspace only when it holds a state file.
    The directory is re-scanned on every call.

    Args:
        state_dir: Directory with one subdirectory per workspace
        state_file_name: Name of the state file inside each subdirectory
        key_prefix: Workspace key prefix in the bucket

    Returns:
        Workspaces sorted by name; an empty list when none hold state

    Raises:
        StateDirectoryNotFound: If the state directory does not exist
    """
    state_dir = Path(state_dir)
    if not state_dir.is_dir():
        raise StateDirectoryNotFound(state_dir)

    workspaces = []
    for entry in sorted(state_dir.iterdir()):
        if not entry.is_dir():
            continue

        state_file = entry / state_file_name
        if state_file.is_file():
            workspaces.append(
                Workspace(name=entry.name, local_state_path=state_file, key_prefix=key_prefix)
            )

    logger.info(
        "Scanned state directory",
        state_dir=str(state_dir),
        workspaces=[w.name for w in workspaces],
    )

    return workspaces
