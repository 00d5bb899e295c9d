"""Retry logic for upstream collaborators using tenacity."""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

import httpx
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .exceptions import DiagnosisAPIError, UpstreamError

F = TypeVar("F", bound=Callable[..., Any])

# Only failures to reach the service are retried; timeouts already spent the budget.
TRANSIENT_ERRORS = (ConnectionError, httpx.ConnectError, httpx.RemoteProtocolError)


def with_upstream_retry(
    service_name: str,
    error_cls: type[UpstreamError] = UpstreamError,
    max_retries: int = 3,
    wait_min: float = 1,
    wait_max: float = 10,
) -> Callable[[F], F]:
    """Decorator to add retry logic to collaborator calls.

    Args:
        service_name: Name of the service for log and error messages
        error_cls: Exception raised for failures that are not already domain errors
        max_retries: Maximum number of attempts
        wait_min: Minimum backoff in seconds
        wait_max: Maximum backoff in seconds

    Returns:
        Decorated function with retry logic

    """

    def decorator(func: F) -> F:
        retrying = retry(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=1, min=wait_min, max=wait_max),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                f"{service_name} attempt {retry_state.attempt_number}: {retry_state.outcome.exception() if retry_state.outcome else 'Unknown error'}",
            ),
        )(func)

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await retrying(*args, **kwargs)
            except DiagnosisAPIError:
                raise
            except Exception as e:
                logger.error(f"{service_name} API error: {e}")
                raise error_cls(f"{service_name} request failed: {e}") from e

        return wrapper  # type: ignore[return-value]

    return decorator
