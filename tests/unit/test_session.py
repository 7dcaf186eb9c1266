"""Unit tests for session construction and credential verification."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import NoCredentialsError, ProfileNotFound

from remote_backend.engine.credentials import CredentialGate
from remote_backend.engine.session import build_session
from remote_backend.errors import CredentialError


class TestBuildSession:
    """Test boto3 session construction."""

    @patch("remote_backend.engine.session.boto3.Session")
    def test_plain_session(self, mock_session_cls):
        """Test a session is built for the region and profile."""
        session = build_session("eu-west-1", profile="infra")

        mock_session_cls.assert_called_once_with(profile_name="infra", region_name="eu-west-1")
        assert session is mock_session_cls.return_value

    @patch("remote_backend.engine.session.boto3.Session")
    def test_unknown_profile(self, mock_session_cls):
        """Test an unknown profile is a credential error."""
        mock_session_cls.side_effect = ProfileNotFound(profile="missing")

        with pytest.raises(CredentialError) as exc_info:
            build_session("eu-west-1", profile="missing")

        assert "missing" in str(exc_info.value)

    @patch("remote_backend.engine.session.boto3.Session")
    def test_assume_role(self, mock_session_cls):
        """Test the assumed role's temporary credentials back the session."""
        sts = MagicMock()
        sts.assume_role.return_value = {
            "Credentials": {
                "AccessKeyId": "AKIAEXAMPLE",
                "SecretAccessKey": "secret",
                "SessionToken": "token",
            }
        }
        base = MagicMock()
        base.client.return_value = sts
        assumed = MagicMock()
        mock_session_cls.side_effect = [base, assumed]

        session = build_session(
            "eu-west-1",
            role_arn="arn:aws:iam::123456789012:role/terraform",
            external_id="ext-1",
        )

        assert session is assumed
        sts.assume_role.assert_called_once_with(
            RoleArn="arn:aws:iam::123456789012:role/terraform",
            RoleSessionName="remote-backend",
            ExternalId="ext-1",
        )
        mock_session_cls.assert_called_with(
            aws_access_key_id="AKIAEXAMPLE",
            aws_secret_access_key="secret",
            aws_session_token="token",
            region_name="eu-west-1",
        )

    @patch("remote_backend.engine.session.boto3.Session")
    def test_assume_role_denied(self, mock_session_cls, client_error):
        """Test a denied role assumption is a credential error."""
        base = MagicMock()
        base.client.return_value.assume_role.side_effect = client_error("AccessDenied", "AssumeRole")
        mock_session_cls.return_value = base

        with pytest.raises(CredentialError) as exc_info:
            build_session("eu-west-1", role_arn="arn:aws:iam::123456789012:role/terraform")

        assert "cannot assume role" in str(exc_info.value)


class TestCredentialGate:
    """Test the credential check."""

    def test_verify(self, session, fake_sts):
        """Test the caller identity is returned."""
        identity = CredentialGate(session).verify()

        assert identity.account == "123456789012"
        assert identity.arn.endswith("user/terraform")
        fake_sts.get_caller_identity.assert_called_once()

    def test_missing_credentials(self, session, fake_sts):
        """Test missing credentials fail once, without retrying."""
        fake_sts.get_caller_identity.side_effect = NoCredentialsError()

        with pytest.raises(CredentialError) as exc_info:
            CredentialGate(session).verify()

        assert "aws configure" in str(exc_info.value)
        assert fake_sts.get_caller_identity.call_count == 1

    def test_expired_token(self, session, fake_sts, client_error):
        """Test a rejected token is a credential error."""
        fake_sts.get_caller_identity.side_effect = client_error("ExpiredToken", "GetCallerIdentity")

        with pytest.raises(CredentialError):
            CredentialGate(session).verify()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
