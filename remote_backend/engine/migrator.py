"""Migration of local workspace state into the S3 backend."""

import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

import boto3
import structlog
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import MigrationError, StateDirectoryNotFound
from ..models import ExecutionContext, MigrationRecord, MigrationResult, Outcome

logger = structlog.get_logger()


class WorkspaceMigrator:
    """Uploads local workspace state files to the backend bucket."""

    def __init__(self, session: boto3.Session, context: ExecutionContext, bucket_name: str):
        self.context = context
        self.bucket_name = bucket_name
        self.s3 = session.client("s3", region_name=context.region)

    def migrate(self, workspace_name: str) -> MigrationResult:
        """
        Migrate a single workspace.

        Steps:
        1. Check the state directory exists (fatal otherwise)
        2. Check the workspace directory exists (skip otherwise)
        3. Check the local state file exists (skip otherwise)
        4. Back up the local state before any network call
        5. Upload the backup to env/<workspace>/terraform.tfstate
        6. Verify the object is listed at that key with the expected size

        Args:
            workspace_name: Workspace to migrate

        Returns:
            MigrationResult with SUCCESS or SKIPPED outcome

        Raises:
            StateDirectoryNotFound: If the state directory is missing
            MigrationError: If backup, upload or verification fails
        """
        state_dir = self.context.state_dir
        workspace = self.context.workspace(workspace_name)

        if not state_dir.is_dir():
            raise StateDirectoryNotFound(state_dir)

        if not (state_dir / workspace_name).is_dir():
            logger.warning("Workspace directory not found", workspace=workspace_name)
            return MigrationResult(
                workspace=workspace_name,
                outcome=Outcome.SKIPPED,
                message=(
                    f"Workspace directory '{workspace_name}' not found in '{state_dir}'. "
                    "Skipping migration."
                ),
            )

        if not workspace.local_state_path.is_file():
            logger.warning("Local state file not found", workspace=workspace_name)
            return MigrationResult(
                workspace=workspace_name,
                outcome=Outcome.SKIPPED,
                message=f"Local state file for workspace '{workspace_name}' not found. Skipping migration.",
            )

        backup_path = self._backup(workspace_name, workspace.local_state_path)
        record = MigrationRecord(workspace=workspace_name, backup_path=backup_path)

        self._upload(workspace_name, backup_path, workspace.remote_key)

        record.upload_verified = self._verify(
            workspace_name, workspace.remote_key, backup_path.stat().st_size
        )

        logger.info(
            "Workspace state migrated",
            workspace=workspace_name,
            bucket=self.bucket_name,
            key=workspace.remote_key,
            backup=str(backup_path),
        )

        return MigrationResult(
            workspace=workspace_name,
            outcome=Outcome.SUCCESS,
            message=f"State file for workspace '{workspace_name}' successfully migrated to S3.",
            record=record,
        )

    def migrate_all(self, workspace_names: Iterable[str]) -> List[MigrationResult]:
        """
        Migrate several workspaces.

        Skips and per-workspace failures do not stop the batch; failures are
        returned as FATAL results. A missing state directory aborts the batch.

        Raises:
            StateDirectoryNotFound: If the state directory is missing
        """
        results = []

        for name in workspace_names:
            try:
                results.append(self.migrate(name))
            except MigrationError as e:
                logger.error("Workspace migration failed", workspace=name, error=e.message)
                results.append(
                    MigrationResult(workspace=name, outcome=Outcome.FATAL, message=e.message)
                )

        return results

    def _backup(self, workspace_name: str, state_path: Path) -> Path:
        timestamp = datetime.now().strftime("%Y%m%dT%H%M%S")
        backup_path = (
            self.context.working_directory / f"{workspace_name}-state-backup-{timestamp}.tfstate"
        )

        try:
            shutil.copy2(state_path, backup_path)
        except OSError as e:
            raise MigrationError(workspace_name, f"failed to backup state file: {e}") from e

        logger.info("Local state backed up", workspace=workspace_name, backup=str(backup_path))
        return backup_path

    def _upload(self, workspace_name: str, backup_path: Path, key: str) -> None:
        try:
            self.s3.upload_file(str(backup_path), self.bucket_name, key)
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            raise MigrationError(workspace_name, f"failed to upload state file: {e}") from e

    def _verify(self, workspace_name: str, key: str, expected_size: int) -> bool:
        try:
            response = self.s3.list_objects_v2(Bucket=self.bucket_name, Prefix=key)
        except (BotoCoreError, ClientError) as e:
            raise MigrationError(workspace_name, f"failed to verify state file upload: {e}") from e

        listed: Optional[dict] = next(
            (obj for obj in response.get("Contents", []) if obj.get("Key") == key), None
        )

        if listed is None:
            raise MigrationError(
                workspace_name,
                f"failed to verify state file upload: s3://{self.bucket_name}/{key} not found",
            )

        if listed.get("Size") != expected_size:
            raise MigrationError(
                workspace_name,
                f"failed to verify state file upload: size {listed.get('Size')} "
                f"does not match local backup size {expected_size}",
            )

        return True
