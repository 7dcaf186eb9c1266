"""Terraform state backend resources (S3 bucket + DynamoDB lock table)."""

from typing import Iterable, List

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from ..errors import ProvisionError
from ..models import Outcome, StepResult

logger = structlog.get_logger()

# Region in which S3 rejects an explicit location constraint
DEFAULT_S3_REGION = "us-east-1"

_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}
_MISSING_KEY_CODES = {"404", "NoSuchKey", "NotFound"}


def error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


class ResourceProvisioner:
    """
    Ensures the state backend resources exist in their target shape.

    Every method is idempotent: resources that already exist are reported as
    no-ops, and any failing API call raises ProvisionError naming the call.
    """

    def __init__(
        self,
        session: boto3.Session,
        region: str,
        table_wait_delay: int = 2,
        table_wait_max_attempts: int = 30,
        block_public_access: bool = True,
    ):
        self.region = region
        self.s3 = session.client("s3", region_name=region)
        self.dynamodb = session.client("dynamodb", region_name=region)
        self.table_wait_delay = table_wait_delay
        self.table_wait_max_attempts = table_wait_max_attempts
        self.block_public_access = block_public_access

    def ensure_lock_table(self, table_name: str) -> StepResult:
        """
        Ensure the DynamoDB lock table exists and is active.

        Args:
            table_name: Lock table name

        Returns:
            StepResult (SUCCESS when created, NOOP when it already existed)

        Raises:
            ProvisionError: If any DynamoDB call fails
        """
        step = "lock_table"
        status = self._table_status(table_name)

        if status is not None:
            if status != "ACTIVE":
                self._wait_for_table(table_name)
            logger.info("DynamoDB table already exists", table=table_name, status=status)
            return StepResult(
                step=step,
                outcome=Outcome.NOOP,
                message=f"DynamoDB table '{table_name}' already exists, skipping creation.",
                details={"table": table_name},
            )

        logger.info("Creating DynamoDB table", table=table_name, region=self.region)
        try:
            self.dynamodb.create_table(
                TableName=table_name,
                KeySchema=[{"AttributeName": "LockID", "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": "LockID", "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )
        except ClientError as e:
            # Created concurrently between describe and create
            if error_code(e) != "ResourceInUseException":
                raise ProvisionError("CreateTable", str(e)) from e
        except BotoCoreError as e:
            raise ProvisionError("CreateTable", str(e)) from e

        # Wait for table to be created
        self._wait_for_table(table_name)

        logger.info("Created DynamoDB table", table=table_name)

        return StepResult(
            step=step,
            outcome=Outcome.SUCCESS,
            message=f"DynamoDB table '{table_name}' created successfully.",
            details={"table": table_name},
        )

    def ensure_bucket(self, bucket_name: str) -> StepResult:
        """
        Ensure the S3 state bucket exists with versioning and encryption.

        Versioning, default encryption and the public access block are applied
        on every run, including for pre-existing buckets.

        Args:
            bucket_name: Bucket name

        Returns:
            StepResult (SUCCESS when created, NOOP when it already existed)

        Raises:
            ProvisionError: If any S3 call fails
        """
        step = "bucket"

        if self.bucket_exists(bucket_name):
            created = False
            logger.info("S3 bucket already exists", bucket=bucket_name)
        else:
            created = self._create_bucket(bucket_name)

        self._configure_bucket(bucket_name)

        if created:
            return StepResult(
                step=step,
                outcome=Outcome.SUCCESS,
                message=f"S3 bucket '{bucket_name}' created and configured.",
                details={"bucket": bucket_name},
            )

        return StepResult(
            step=step,
            outcome=Outcome.NOOP,
            message=f"S3 bucket '{bucket_name}' already exists, skipping creation.",
            details={"bucket": bucket_name},
        )

    def ensure_workspace_folders(
        self, bucket_name: str, workspaces: Iterable[str], key_prefix: str = "env"
    ) -> List[StepResult]:
        """
        Write an empty placeholder state object for each workspace.

        A key that already holds non-empty state is never overwritten.

        Args:
            bucket_name: Bucket name
            workspaces: Workspace names
            key_prefix: Workspace key prefix

        Returns:
            One StepResult per workspace

        Raises:
            ProvisionError: If any S3 call fails
        """
        results = []

        for workspace in workspaces:
            key = f"{key_prefix}/{workspace}/terraform.tfstate"
            size = self._object_size(bucket_name, key)

            if size:
                logger.info("Workspace state already present", bucket=bucket_name, key=key, size=size)
                results.append(
                    StepResult(
                        step=f"workspace:{workspace}",
                        outcome=Outcome.NOOP,
                        message=f"State for workspace '{workspace}' already exists, placeholder not written.",
                        details={"key": key, "size": size},
                    )
                )
                continue

            try:
                self.s3.put_object(Bucket=bucket_name, Key=key, Body=b"")
            except (BotoCoreError, ClientError) as e:
                raise ProvisionError(
                    "PutObject", f"failed to create workspace folder for {workspace}: {e}"
                ) from e

            logger.info("Workspace folder created", bucket=bucket_name, key=key)
            results.append(
                StepResult(
                    step=f"workspace:{workspace}",
                    outcome=Outcome.SUCCESS,
                    message=f"Folder for workspace '{workspace}' created.",
                    details={"key": key},
                )
            )

        return results

    def bucket_exists(self, bucket_name: str) -> bool:
        """
        Check whether the bucket exists and is accessible.

        Raises:
            ProvisionError: If the bucket exists but is not accessible
        """
        try:
            self.s3.head_bucket(Bucket=bucket_name)
        except ClientError as e:
            if error_code(e) in _MISSING_BUCKET_CODES:
                return False
            raise ProvisionError("HeadBucket", str(e)) from e
        except BotoCoreError as e:
            raise ProvisionError("HeadBucket", str(e)) from e

        return True

    def _table_status(self, table_name: str):
        try:
            response = self.dynamodb.describe_table(TableName=table_name)
        except ClientError as e:
            if error_code(e) == "ResourceNotFoundException":
                return None
            raise ProvisionError("DescribeTable", str(e)) from e
        except BotoCoreError as e:
            raise ProvisionError("DescribeTable", str(e)) from e

        return response["Table"].get("TableStatus", "ACTIVE")

    def _wait_for_table(self, table_name: str) -> None:
        waiter = self.dynamodb.get_waiter("table_exists")
        try:
            waiter.wait(
                TableName=table_name,
                WaiterConfig={
                    "Delay": self.table_wait_delay,
                    "MaxAttempts": self.table_wait_max_attempts,
                },
            )
        except WaiterError as e:
            raise ProvisionError("WaitTableExists", f"table {table_name} not active: {e}") from e

    def _create_bucket(self, bucket_name: str) -> bool:
        logger.info("Creating S3 bucket", bucket=bucket_name, region=self.region)
        try:
            if self.region == DEFAULT_S3_REGION:
                self.s3.create_bucket(Bucket=bucket_name)
            else:
                self.s3.create_bucket(
                    Bucket=bucket_name,
                    CreateBucketConfiguration={"LocationConstraint": self.region},
                )
        except ClientError as e:
            if error_code(e) == "BucketAlreadyOwnedByYou":
                logger.info("S3 bucket already exists", bucket=bucket_name)
                return False
            raise ProvisionError("CreateBucket", str(e)) from e
        except BotoCoreError as e:
            raise ProvisionError("CreateBucket", str(e)) from e

        logger.info("Created S3 bucket", bucket=bucket_name)
        return True

    def _configure_bucket(self, bucket_name: str) -> None:
        # Enable versioning
        self._call(
            "PutBucketVersioning",
            self.s3.put_bucket_versioning,
            Bucket=bucket_name,
            VersioningConfiguration={"Status": "Enabled"},
        )

        # Enable encryption
        self._call(
            "PutBucketEncryption",
            self.s3.put_bucket_encryption,
            Bucket=bucket_name,
            ServerSideEncryptionConfiguration={
                "Rules": [
                    {
                        "ApplyServerSideEncryptionByDefault": {
                            "SSEAlgorithm": "AES256",
                        },
                    }
                ]
            },
        )

        # Block public access
        if self.block_public_access:
            self._call(
                "PutPublicAccessBlock",
                self.s3.put_public_access_block,
                Bucket=bucket_name,
                PublicAccessBlockConfiguration={
                    "BlockPublicAcls": True,
                    "IgnorePublicAcls": True,
                    "BlockPublicPolicy": True,
                    "RestrictPublicBuckets": True,
                },
            )

        logger.info("S3 bucket configured", bucket=bucket_name)

    def _object_size(self, bucket_name: str, key: str):
        try:
            response = self.s3.head_object(Bucket=bucket_name, Key=key)
        except ClientError as e:
            if error_code(e) in _MISSING_KEY_CODES:
                return None
            raise ProvisionError("HeadObject", str(e)) from e
        except BotoCoreError as e:
            raise ProvisionError("HeadObject", str(e)) from e

        return response.get("ContentLength", 0)

    @staticmethod
    def _call(name: str, method, **kwargs):
        try:
            return method(**kwargs)
        except (BotoCoreError, ClientError) as e:
            raise ProvisionError(name, str(e)) from e
