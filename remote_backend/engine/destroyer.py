"""Teardown of the state backend resources."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from ..errors import DestroyError
from ..models import Outcome, StepResult
from .descriptor import remove_descriptor
from .state import error_code

logger = structlog.get_logger()

# DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000

_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}

ConfirmProvider = Callable[[str, str], bool]


@dataclass
class DestroyResult:
    """Result of a teardown operation."""

    success: bool
    cancelled: bool = False
    steps: List[StepResult] = field(default_factory=list)
    error: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None


class Destroyer:
    """Tears down the bucket, the lock table and the local descriptor."""

    def __init__(
        self,
        session: boto3.Session,
        region: str,
        table_wait_delay: int = 2,
        table_wait_max_attempts: int = 30,
    ):
        self.region = region
        self.s3 = session.client("s3", region_name=region)
        self.dynamodb = session.client("dynamodb", region_name=region)
        self.table_wait_delay = table_wait_delay
        self.table_wait_max_attempts = table_wait_max_attempts

    def destroy(
        self,
        bucket_name: str,
        table_name: str,
        descriptor_path: Path,
        confirm: ConfirmProvider,
    ) -> DestroyResult:
        """
        Destroy the backend after confirmation.

        The bucket is emptied (all versions and delete markers) before it is
        deleted. The table is handled independently of the bucket. The
        descriptor is removed last, and only when both remote teardowns
        succeeded, so a retry can still find the identifiers.

        Args:
            bucket_name: State bucket
            table_name: Lock table
            descriptor_path: Local descriptor file
            confirm: Called with (bucket, table); teardown runs only if it returns True

        Returns:
            DestroyResult
        """
        if not confirm(bucket_name, table_name):
            logger.info("Destroy cancelled", bucket=bucket_name, table=table_name)
            return DestroyResult(success=True, cancelled=True)

        steps = []
        failures = []

        for step_name, action, resource in (
            ("bucket", self.destroy_bucket, bucket_name),
            ("lock_table", self.destroy_table, table_name),
        ):
            try:
                steps.append(action(resource))
            except DestroyError as e:
                logger.error("Teardown step failed", step=step_name, error=e.message)
                steps.append(StepResult(step=step_name, outcome=Outcome.FATAL, message=e.message))
                failures.append(e)

        if failures:
            return DestroyResult(
                success=False,
                steps=steps,
                error="; ".join(e.message for e in failures),
                error_details={"calls": [e.call for e in failures]},
            )

        if remove_descriptor(descriptor_path):
            steps.append(
                StepResult(
                    step="descriptor",
                    outcome=Outcome.SUCCESS,
                    message=f"{descriptor_path.name} file removed.",
                )
            )
        else:
            steps.append(
                StepResult(
                    step="descriptor",
                    outcome=Outcome.NOOP,
                    message=f"{descriptor_path.name} file does not exist.",
                )
            )

        return DestroyResult(success=True, steps=steps)

    def destroy_bucket(self, bucket_name: str) -> StepResult:
        """
        Empty and delete the bucket. A missing bucket is a no-op.

        Raises:
            DestroyError: If any S3 call fails
        """
        try:
            self.s3.head_bucket(Bucket=bucket_name)
        except ClientError as e:
            if error_code(e) in _MISSING_BUCKET_CODES:
                logger.info("S3 bucket does not exist", bucket=bucket_name)
                return StepResult(
                    step="bucket",
                    outcome=Outcome.NOOP,
                    message=f"S3 bucket '{bucket_name}' does not exist.",
                )
            raise DestroyError("HeadBucket", str(e)) from e
        except BotoCoreError as e:
            raise DestroyError("HeadBucket", str(e)) from e

        deleted = self.empty_bucket(bucket_name)

        try:
            self.s3.delete_bucket(Bucket=bucket_name)
        except (BotoCoreError, ClientError) as e:
            raise DestroyError("DeleteBucket", str(e)) from e

        logger.info("S3 bucket deleted", bucket=bucket_name, objects_deleted=deleted)

        return StepResult(
            step="bucket",
            outcome=Outcome.SUCCESS,
            message=f"S3 bucket '{bucket_name}' deleted.",
            details={"objects_deleted": deleted},
        )

    def empty_bucket(self, bucket_name: str) -> int:
        """
        Delete every object version and delete marker in the bucket.

        Returns:
            Number of versions and markers deleted

        Raises:
            DestroyError: If listing or deleting fails
        """
        deleted = 0
        batch: List[Dict[str, str]] = []

        try:
            paginator = self.s3.get_paginator("list_object_versions")
            for page in paginator.paginate(Bucket=bucket_name):
                for entry in page.get("Versions", []) + page.get("DeleteMarkers", []):
                    batch.append({"Key": entry["Key"], "VersionId": entry["VersionId"]})
                    if len(batch) == DELETE_BATCH_SIZE:
                        deleted += self._delete_batch(bucket_name, batch)
                        batch = []
        except (BotoCoreError, ClientError) as e:
            raise DestroyError("ListObjectVersions", str(e)) from e

        if batch:
            deleted += self._delete_batch(bucket_name, batch)

        logger.info("S3 bucket emptied", bucket=bucket_name, deleted=deleted)
        return deleted

    def destroy_table(self, table_name: str) -> StepResult:
        """
        Delete the lock table. A missing table is a no-op.

        Raises:
            DestroyError: If any DynamoDB call fails
        """
        try:
            self.dynamodb.delete_table(TableName=table_name)
        except ClientError as e:
            if error_code(e) == "ResourceNotFoundException":
                logger.info("DynamoDB table does not exist", table=table_name)
                return StepResult(
                    step="lock_table",
                    outcome=Outcome.NOOP,
                    message=f"DynamoDB table '{table_name}' does not exist.",
                )
            raise DestroyError("DeleteTable", str(e)) from e
        except BotoCoreError as e:
            raise DestroyError("DeleteTable", str(e)) from e

        waiter = self.dynamodb.get_waiter("table_not_exists")
        try:
            waiter.wait(
                TableName=table_name,
                WaiterConfig={
                    "Delay": self.table_wait_delay,
                    "MaxAttempts": self.table_wait_max_attempts,
                },
            )
        except WaiterError as e:
            raise DestroyError("WaitTableNotExists", f"table {table_name} still present: {e}") from e

        logger.info("DynamoDB table deleted", table=table_name)

        return StepResult(
            step="lock_table",
            outcome=Outcome.SUCCESS,
            message=f"DynamoDB table '{table_name}' deleted.",
        )

    def _delete_batch(self, bucket_name: str, batch: List[Dict[str, str]]) -> int:
        try:
            response = self.s3.delete_objects(
                Bucket=bucket_name,
                Delete={"Objects": batch, "Quiet": True},
            )
        except (BotoCoreError, ClientError) as e:
            raise DestroyError("DeleteObjects", str(e)) from e

        errors = response.get("Errors", [])
        if errors:
            first = errors[0]
            raise DestroyError(
                "DeleteObjects",
                f"{len(errors)} objects not deleted, e.g. {first.get('Key')}: {first.get('Message')}",
            )

        return len(batch)
