"""AWS Lambda handler for the Diagnosis API."""

from typing import Any

from loguru import logger
from mangum import Mangum

from .api import app

# Lambda logs to stdout
logger.add(lambda msg: print(msg, end=""))

# Lifespan on so the composition root builds the store and clients per container
handler = Mangum(app, lifespan="auto")


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """AWS Lambda entry point.

    Args:
        event: Lambda event dictionary containing request information.
        context: Lambda context object with runtime information.

    Returns:
        Response dictionary with statusCode, headers, and body.
    """
    logger.info(
        "Lambda event: {} {}",
        event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method"),
        event.get("path") or event.get("rawPath"),
    )

    response = handler(event, context)

    logger.info("Lambda response status: {}", response.get("statusCode"))

    return response  # type: ignore[no-any-return]
