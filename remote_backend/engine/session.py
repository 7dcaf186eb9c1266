"""boto3 session construction."""

from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import CredentialError


def build_session(
    region: str,
    profile: Optional[str] = None,
    role_arn: Optional[str] = None,
    external_id: Optional[str] = None,
    session_name: str = "remote-backend",
) -> boto3.Session:
    """
    Build a boto3 session for the target region.

    When a role ARN is given the role is assumed first and the session is
    built from the temporary credentials.

    Args:
        region: AWS region
        profile: Named profile from the shared AWS config
        role_arn: Optional IAM role to assume
        external_id: Optional STS external ID
        session_name: Role session name

    Returns:
        boto3 Session

    Raises:
        CredentialError: If the profile is unknown or the role cannot be assumed
    """
    try:
        base = boto3.Session(profile_name=profile, region_name=region)
    except BotoCoreError as e:
        raise CredentialError(str(e)) from e

    if not role_arn:
        return base

    # Get boto3 session with assumed role
    params = {"RoleArn": role_arn, "RoleSessionName": session_name}
    if external_id:
        params["ExternalId"] = external_id

    try:
        assumed_role = base.client("sts").assume_role(**params)
    except (BotoCoreError, ClientError) as e:
        raise CredentialError(f"cannot assume role {role_arn}: {e}") from e

    credentials = assumed_role["Credentials"]
    return boto3.Session(
        aws_access_key_id=credentials["AccessKeyId"],
        aws_secret_access_key=credentials["SecretAccessKey"],
        aws_session_token=credentials["SessionToken"],
        region_name=region,
    )
