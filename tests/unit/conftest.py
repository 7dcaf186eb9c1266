from pathlib import Path
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from remote_backend.config import BackendSettings
from remote_backend.models import ExecutionContext


def make_client_error(code: str, operation: str = "Operation", message: str = "error") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeS3:
    """In-memory S3 client covering the calls the engine makes."""

    def __init__(self):
        self.buckets = {}
        self.config = {}
        self.calls = []

    def _bucket(self, name, operation):
        if name not in self.buckets:
            raise make_client_error("NoSuchBucket", operation)
        return self.buckets[name]

    def head_bucket(self, Bucket):
        self.calls.append("head_bucket")
        if Bucket not in self.buckets:
            raise make_client_error("404", "HeadBucket", "Not Found")
        return {}

    def create_bucket(self, Bucket, CreateBucketConfiguration=None):
        self.calls.append("create_bucket")
        if Bucket in self.buckets:
            raise make_client_error("BucketAlreadyOwnedByYou", "CreateBucket")
        self.buckets[Bucket] = {}
        self.config[Bucket] = {"location": CreateBucketConfiguration}
        return {}

    def put_bucket_versioning(self, Bucket, VersioningConfiguration):
        self.calls.append("put_bucket_versioning")
        self._bucket(Bucket, "PutBucketVersioning")
        self.config[Bucket]["versioning"] = VersioningConfiguration["Status"]

    def put_bucket_encryption(self, Bucket, ServerSideEncryptionConfiguration):
        self.calls.append("put_bucket_encryption")
        self._bucket(Bucket, "PutBucketEncryption")
        rule = ServerSideEncryptionConfiguration["Rules"][0]
        self.config[Bucket]["encryption"] = rule["ApplyServerSideEncryptionByDefault"]["SSEAlgorithm"]

    def put_public_access_block(self, Bucket, PublicAccessBlockConfiguration):
        self.calls.append("put_public_access_block")
        self._bucket(Bucket, "PutPublicAccessBlock")
        self.config[Bucket]["public_access_block"] = PublicAccessBlockConfiguration

    def head_object(self, Bucket, Key):
        self.calls.append("head_object")
        objects = self._bucket(Bucket, "HeadObject")
        if Key not in objects:
            raise make_client_error("404", "HeadObject", "Not Found")
        return {"ContentLength": len(objects[Key])}

    def put_object(self, Bucket, Key, Body):
        self.calls.append("put_object")
        self._bucket(Bucket, "PutObject")[Key] = bytes(Body)
        return {}

    def upload_file(self, Filename, Bucket, Key):
        self.calls.append("upload_file")
        self._bucket(Bucket, "PutObject")[Key] = Path(Filename).read_bytes()

    def list_objects_v2(self, Bucket, Prefix=""):
        self.calls.append("list_objects_v2")
        objects = self._bucket(Bucket, "ListObjectsV2")
        contents = [
            {"Key": key, "Size": len(body)} for key, body in objects.items() if key.startswith(Prefix)
        ]
        return {"Contents": contents} if contents else {}

    def get_paginator(self, name):
        assert name == "list_object_versions"
        paginator = MagicMock()
        paginator.paginate.side_effect = lambda Bucket: [
            {
                "Versions": [
                    {"Key": key, "VersionId": "null"} for key in self._bucket(Bucket, "ListObjectVersions")
                ]
            }
        ]
        return paginator

    def delete_objects(self, Bucket, Delete):
        self.calls.append("delete_objects")
        objects = self._bucket(Bucket, "DeleteObjects")
        for entry in Delete["Objects"]:
            objects.pop(entry["Key"], None)
        return {}

    def delete_bucket(self, Bucket):
        self.calls.append("delete_bucket")
        if self._bucket(Bucket, "DeleteBucket"):
            raise make_client_error("BucketNotEmpty", "DeleteBucket")
        del self.buckets[Bucket]


class FakeDynamoDB:
    """In-memory DynamoDB client; tables become ACTIVE once waited on."""

    def __init__(self):
        self.tables = {}
        self.calls = []

    def describe_table(self, TableName):
        self.calls.append("describe_table")
        if TableName not in self.tables:
            raise make_client_error("ResourceNotFoundException", "DescribeTable")
        return {"Table": self.tables[TableName]}

    def create_table(self, TableName, KeySchema, AttributeDefinitions, BillingMode):
        self.calls.append("create_table")
        if TableName in self.tables:
            raise make_client_error("ResourceInUseException", "CreateTable")
        self.tables[TableName] = {
            "TableName": TableName,
            "TableStatus": "CREATING",
            "KeySchema": KeySchema,
            "AttributeDefinitions": AttributeDefinitions,
            "BillingModeSummary": {"BillingMode": BillingMode},
        }

    def delete_table(self, TableName):
        self.calls.append("delete_table")
        if TableName not in self.tables:
            raise make_client_error("ResourceNotFoundException", "DeleteTable")
        del self.tables[TableName]

    def get_waiter(self, name):
        waiter = MagicMock()

        def wait(TableName, WaiterConfig):
            self.calls.append(f"wait:{name}")
            if name == "table_exists":
                self.tables[TableName]["TableStatus"] = "ACTIVE"

        waiter.wait.side_effect = wait
        return waiter


@pytest.fixture
def client_error():
    """Factory for botocore ClientError instances."""
    return make_client_error


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def fake_dynamodb():
    return FakeDynamoDB()


@pytest.fixture
def fake_sts():
    sts = MagicMock()
    sts.get_caller_identity.return_value = {
        "Account": "123456789012",
        "Arn": "arn:aws:iam::123456789012:user/terraform",
        "UserId": "AIDAEXAMPLE",
    }
    return sts


@pytest.fixture
def session(fake_s3, fake_dynamodb, fake_sts):
    """boto3 session stand-in handing out the fake clients."""
    clients = {"s3": fake_s3, "dynamodb": fake_dynamodb, "sts": fake_sts}
    session = MagicMock()
    session.client.side_effect = lambda name, **kwargs: clients[name]
    return session


@pytest.fixture
def context(tmp_path):
    return ExecutionContext(
        working_directory=tmp_path,
        region="eu-west-1",
        state_dir=tmp_path / "terraform.tfstate.d",
    )


@pytest.fixture
def settings():
    return BackendSettings(_env_file=None, table_wait_delay=0, table_wait_max_attempts=1)


@pytest.fixture
def state_dir(context):
    """State directory with dev and prod workspaces holding state."""
    for name, body in (("dev", '{"version": 4, "serial": 1}'), ("prod", '{"version": 4, "serial": 7}')):
        workspace_dir = context.state_dir / name
        workspace_dir.mkdir(parents=True)
        (workspace_dir / "terraform.tfstate").write_text(body)
    return context.state_dir
