"""Per-IP sliding window rate limiting backed by the access log."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from fastapi import Request
from loguru import logger

from .storage.protocols import DiagnosisStore

UNKNOWN_IP = "unknown"


@dataclass
class RateLimitDecision:
    """Outcome of a rate limit check."""

    allowed: bool
    count: int | None = None
    retry_after: int | None = None


def client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, or a shared "unknown" bucket."""
    forwarded_for = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded_for.split(",")[0].strip()
    return first_hop or UNKNOWN_IP


class RateLimiter:
    """Counts access log rows in a trailing window before accepting a request.

    The limiter fails open: if the count cannot be read the request is allowed,
    and a failure to write the log row never blocks the request either.
    """

    def __init__(
        self,
        store: DiagnosisStore,
        limit: int = 10,
        window_seconds: int = 24 * 60 * 60,
    ) -> None:
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds

    async def check_and_record(self, ip_address: str, endpoint: str) -> RateLimitDecision:
        """Check the quota for ``ip_address`` and record the attempt when allowed."""
        window_start = datetime.now(UTC) - timedelta(seconds=self.window_seconds)

        count: int | None
        try:
            count = await self.store.count_access(ip_address, endpoint, window_start)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Rate limit check failed, allowing request: {e}")
            count = None

        if count is not None and count >= self.limit:
            logger.warning(f"Rate limit exceeded for {ip_address}: {count}/{self.limit}")
            return RateLimitDecision(allowed=False, count=count, retry_after=self.window_seconds)

        try:
            await self.store.record_access(ip_address, endpoint)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Access log insert failed (non-critical): {e}")

        return RateLimitDecision(allowed=True, count=count)
