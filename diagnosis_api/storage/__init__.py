"""Storage module with factory for creating store instances."""

import os
from urllib.parse import urlparse

from loguru import logger

from ..config import settings
from .dynamodb import DynamoDBStore
from .protocols import DiagnosisStore
from .sql import SQLStore


def create_store(database_url: str | None = None) -> DiagnosisStore:
    """Create store instance based on database URL.

    Args:
        database_url: Database URL. Uses settings if not provided.

    Returns:
        Store instance.
    """
    url = database_url or settings.database_url

    if not database_url and os.environ.get("AWS_LAMBDA_FUNCTION_NAME"):
        url = settings.effective_database_url
        logger.info(f"AWS Lambda detected, using DynamoDB: {settings.dynamodb_table}")

    parsed = urlparse(url)

    if parsed.scheme == "dynamodb":
        logger.info("Creating DynamoDB store")
        return DynamoDBStore(url)
    logger.info("Creating SQL store")
    return SQLStore(url)


__all__ = [
    "DiagnosisStore",
    "DynamoDBStore",
    "SQLStore",
    "create_store",
]
