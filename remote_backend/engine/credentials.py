"""Credential verification before any mutating call."""

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import CredentialError
from ..models import CallerIdentity

logger = structlog.get_logger()


class CredentialGate:
    """Checks that the active AWS identity is usable."""

    def __init__(self, session: boto3.Session):
        self.session = session

    def verify(self) -> CallerIdentity:
        """
        Resolve the caller identity through STS.

        Credential failures are configuration problems, so the call is made
        exactly once and never retried.

        Returns:
            CallerIdentity

        Raises:
            CredentialError: If no valid credentials are available
        """
        try:
            response = self.session.client("sts").get_caller_identity()
        except (BotoCoreError, ClientError) as e:
            logger.error("Credential check failed", error=str(e))
            raise CredentialError(
                f"{e}. Please run 'aws configure' to set up your credentials."
            ) from e

        identity = CallerIdentity(
            account=response["Account"],
            arn=response["Arn"],
            user_id=response["UserId"],
        )
        logger.info("AWS credentials verified", account=identity.account, arn=identity.arn)

        return identity
