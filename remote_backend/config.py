"""Remote backend configuration."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendSettings(BaseSettings):
    """
    Application settings.

    Settings are loaded from:
    1. Environment variables prefixed with REMOTE_BACKEND_ (highest priority)
    2. .env file in the current directory
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="REMOTE_BACKEND_",
        case_sensitive=False,
        extra="ignore",
    )

    # AWS
    region: str = "eu-west-1"
    aws_profile: Optional[str] = None
    role_arn: Optional[str] = Field(None, description="IAM role ARN to assume before any call")
    external_id: Optional[str] = Field(None, description="AWS STS external ID")

    # Terraform project layout
    workspaces: list[str] = ["dev", "test", "prod"]
    state_dir_name: str = "terraform.tfstate.d"
    state_file_name: str = "terraform.tfstate"
    descriptor_file_name: str = "backend.tf"
    key_prefix: str = "env"

    # Provisioning
    table_wait_delay: int = 2
    table_wait_max_attempts: int = 30
    block_public_access: bool = True

    # Logging
    log_level: str = "WARNING"
    log_format: str = "console"

    @field_validator("workspaces")
    @classmethod
    def validate_workspaces(cls, v: list[str]) -> list[str]:
        """Reject workspace names that cannot form an object key segment."""
        for name in v:
            if not name or "/" in name:
                raise ValueError(f"invalid workspace name: {name!r}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v
