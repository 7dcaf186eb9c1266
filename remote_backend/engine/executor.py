"""Command sequences for setting up, migrating and destroying the backend."""

from dataclasses import replace
from typing import List, Optional, Sequence

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from ..config import BackendSettings
from ..errors import BackendError
from ..models import (
    BackendDescriptor,
    CommandResult,
    ExecutionContext,
    MigrationResult,
    Outcome,
    Workspace,
)
from .credentials import CredentialGate
from .descriptor import load_descriptor, parse_descriptor, write_descriptor
from .destroyer import ConfirmProvider, Destroyer
from .migrator import WorkspaceMigrator
from .names import resolve_names
from .session import build_session
from .state import ResourceProvisioner
from .workspaces import list_workspaces

logger = structlog.get_logger()


class BackendExecutor:
    """Runs one command against the backend, start to finish."""

    def __init__(
        self,
        context: ExecutionContext,
        settings: Optional[BackendSettings] = None,
        session: Optional[boto3.Session] = None,
    ):
        """
        Initialize executor.

        Args:
            context: Execution context (working directory, region, state dir)
            settings: Settings; defaults are loaded from the environment
            session: boto3 session; built from settings when omitted
        """
        self.context = context
        self.settings = settings or BackendSettings()
        self._session = session

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            self._session = build_session(
                region=self.context.region,
                profile=self.settings.aws_profile,
                role_arn=self.settings.role_arn,
                external_id=self.settings.external_id,
            )
        return self._session

    def setup(self, workspaces: Optional[Sequence[str]] = None) -> CommandResult:
        """
        Provision the lock table, bucket and workspace folders, then write
        the descriptor.

        Args:
            workspaces: Workspace folders to create; defaults to settings

        Returns:
            CommandResult carrying the written descriptor
        """
        workspaces = list(workspaces or self.settings.workspaces)
        steps = []

        try:
            identity = CredentialGate(self.session).verify()

            existing = None
            if self.context.descriptor_path.is_file():
                existing = self.context.descriptor_path.read_text(encoding="utf-8")
            names = resolve_names(existing)

            # An existing backend stays in the region it was created in
            region = self.context.region
            if not names.generated:
                recorded = parse_descriptor(existing).region
                if recorded and recorded != region:
                    logger.info("Using backend region from descriptor", region=recorded)
                    region = recorded

            provisioner = ResourceProvisioner(
                self.session,
                region,
                table_wait_delay=self.settings.table_wait_delay,
                table_wait_max_attempts=self.settings.table_wait_max_attempts,
                block_public_access=self.settings.block_public_access,
            )

            steps.append(provisioner.ensure_lock_table(names.table))
            steps.append(provisioner.ensure_bucket(names.bucket))
            steps.extend(
                provisioner.ensure_workspace_folders(
                    names.bucket, workspaces, key_prefix=self.context.key_prefix
                )
            )

            descriptor = BackendDescriptor(
                bucket=names.bucket,
                dynamodb_table=names.table,
                region=region,
                workspace_key_prefix=self.context.key_prefix,
            )
            write_descriptor(self.context.descriptor_path, descriptor)

        except (BackendError, BotoCoreError, ClientError, OSError) as e:
            return self._failed(e, steps=steps)

        logger.info("Backend setup complete", bucket=descriptor.bucket, table=descriptor.dynamodb_table)

        return CommandResult(success=True, steps=steps, descriptor=descriptor, identity=identity)

    def migrate(self, workspace: str = "dev") -> CommandResult:
        """
        Migrate one workspace's local state into the bucket.

        A skipped workspace is still a successful command; the outcome is
        carried in the migration result.
        """
        try:
            identity = CredentialGate(self.session).verify()
            descriptor = load_descriptor(self.context.descriptor_path)
            migrator = self._migrator(descriptor)
            result = migrator.migrate(workspace)
        except (BackendError, BotoCoreError, ClientError) as e:
            return self._failed(e)

        return CommandResult(
            success=True, migrations=[result], descriptor=descriptor, identity=identity
        )

    def migrate_all(self) -> CommandResult:
        """
        Migrate every workspace discovered in the state directory.

        Fails when no workspace holds state, or when any workspace fails.
        """
        try:
            identity = CredentialGate(self.session).verify()
            workspaces = self._list()

            if not workspaces:
                return CommandResult(
                    success=False,
                    identity=identity,
                    error="No workspace state files found to migrate",
                    error_details={"state_dir": str(self.context.state_dir)},
                )

            descriptor = load_descriptor(self.context.descriptor_path)
            migrator = self._migrator(descriptor)
            results: List[MigrationResult] = migrator.migrate_all(w.name for w in workspaces)
        except (BackendError, BotoCoreError, ClientError) as e:
            return self._failed(e)

        failed = [r.workspace for r in results if r.outcome == Outcome.FATAL]

        return CommandResult(
            success=not failed,
            migrations=results,
            workspaces=workspaces,
            descriptor=descriptor,
            identity=identity,
            error=f"Migration failed for: {', '.join(failed)}" if failed else None,
        )

    def list_workspaces(self) -> CommandResult:
        """
        List local workspaces with state files.

        Raises:
            StateDirectoryNotFound: If the state directory is missing, so the
                caller can tell it apart from an empty listing
        """
        workspaces = self._list()
        return CommandResult(success=bool(workspaces), workspaces=workspaces)

    def destroy(self, confirm: ConfirmProvider) -> CommandResult:
        """
        Destroy the bucket and lock table recorded in the descriptor, then
        remove the descriptor.

        Args:
            confirm: Confirmation provider called with (bucket, table)
        """
        try:
            identity = CredentialGate(self.session).verify()
            descriptor = load_descriptor(self.context.descriptor_path)

            destroyer = Destroyer(
                self.session,
                descriptor.region or self.context.region,
                table_wait_delay=self.settings.table_wait_delay,
                table_wait_max_attempts=self.settings.table_wait_max_attempts,
            )
            result = destroyer.destroy(
                descriptor.bucket,
                descriptor.dynamodb_table,
                self.context.descriptor_path,
                confirm,
            )
        except (BackendError, BotoCoreError, ClientError) as e:
            return self._failed(e)

        return CommandResult(
            success=result.success,
            steps=result.steps,
            descriptor=descriptor,
            identity=identity,
            cancelled=result.cancelled,
            error=result.error,
            error_details=result.error_details,
        )

    def _list(self) -> List[Workspace]:
        return list_workspaces(
            self.context.state_dir,
            state_file_name=self.context.state_file_name,
            key_prefix=self.context.key_prefix,
        )

    def _migrator(self, descriptor: BackendDescriptor) -> WorkspaceMigrator:
        context = self.context
        if descriptor.region and descriptor.region != context.region:
            logger.info("Using backend region from descriptor", region=descriptor.region)
            context = replace(context, region=descriptor.region)
        return WorkspaceMigrator(self.session, context, descriptor.bucket)

    @staticmethod
    def _failed(e: Exception, steps=None) -> CommandResult:
        logger.error("Command failed", error=str(e), type=type(e).__name__)
        details = {"type": type(e).__name__}
        if getattr(e, "call", None):
            details["call"] = e.call
        return CommandResult(
            success=False,
            steps=steps or [],
            error=str(e),
            error_details=details,
        )
