"""Bucket and lock table name resolution."""

import uuid
from typing import Optional

import structlog

from ..errors import DescriptorError
from ..models import ResourceNames
from .descriptor import read_identifiers

logger = structlog.get_logger()

BUCKET_PREFIX = "terraform-state"
TABLE_PREFIX = "terraform-locks"
TOKEN_LENGTH = 5


def generate_token(length: int = TOKEN_LENGTH) -> str:
    """Short random token shared by the bucket and table names."""
    return uuid.uuid4().hex[:length]


def names_for_token(token: str) -> ResourceNames:
    return ResourceNames(
        bucket=f"{BUCKET_PREFIX}-{token}",
        table=f"{TABLE_PREFIX}-{token}",
        generated=True,
    )


def resolve_names(existing_descriptor_text: Optional[str] = None) -> ResourceNames:
    """
    Determine the bucket and lock table identifiers.

    Identifiers found in an existing descriptor are reused; otherwise a fresh
    pair is generated from one random token so the two resources stay
    correlated. Never fails: a missing or unparsable descriptor simply means
    a fresh setup.

    Args:
        existing_descriptor_text: Contents of the current descriptor, if any

    Returns:
        ResourceNames
    """
    if existing_descriptor_text:
        try:
            bucket, table = read_identifiers(existing_descriptor_text)
        except DescriptorError as e:
            logger.warning("Existing backend configuration unusable, generating names", error=str(e))
        else:
            logger.info("Reusing backend identifiers", bucket=bucket, table=table)
            return ResourceNames(bucket=bucket, table=table)

    names = names_for_token(generate_token())
    logger.info("Generated backend identifiers", bucket=names.bucket, table=names.table)

    return names
