"""Exceptions raised by the remote backend engine."""

from typing import Optional


class BackendError(Exception):
    """Base exception for all remote backend errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class CredentialError(BackendError):
    def __init__(self, message: str):
        super().__init__(f"AWS credentials not found or invalid: {message}")


class ProvisionError(BackendError):
    def __init__(self, call: str, message: str):
        self.call = call
        super().__init__(f"{call} failed: {message}")


class DestroyError(BackendError):
    def __init__(self, call: str, message: str):
        self.call = call
        super().__init__(f"{call} failed: {message}")


class MigrationError(BackendError):
    def __init__(self, workspace: str, message: str):
        self.workspace = workspace
        super().__init__(f"Workspace '{workspace}': {message}")


class StateDirectoryNotFound(BackendError):
    def __init__(self, state_dir):
        self.state_dir = state_dir
        super().__init__(
            f"State directory '{state_dir}' not found. Make sure you're running from "
            "the root of your Terraform project."
        )


class DescriptorError(BackendError):
    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)
