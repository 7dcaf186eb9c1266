"""Provision an S3/DynamoDB Terraform state backend and migrate local state into it."""

__version__ = "0.1.0"
