"""Storage protocol definitions using typing.Protocol."""

from datetime import datetime
from typing import Protocol

from ..types import CacheRecord


class DiagnosisStore(Protocol):
    """Store protocol for diagnosis cache rows and access logs."""

    async def get_latest_diagnosis(
        self,
        username: str,
        mode: str,
        competitor_id: str | None,
        since: datetime,
    ) -> CacheRecord | None:
        """Get the newest diagnosis in the partition created at or after ``since``."""
        ...

    async def save_diagnosis(
        self,
        username: str,
        mode: str,
        competitor_id: str | None,
        result: str,
    ) -> CacheRecord:
        """Save a diagnosis result."""
        ...

    async def count_access(self, ip_address: str, endpoint: str, since: datetime) -> int:
        """Count access log rows for ip and endpoint created at or after ``since``."""
        ...

    async def record_access(self, ip_address: str, endpoint: str) -> None:
        """Append an access log row."""
        ...

    async def health_check(self) -> bool:
        """Check if the store is healthy."""
        ...

    async def startup(self) -> None:
        """Initialize store on startup."""
        ...

    async def shutdown(self) -> None:
        """Cleanup store on shutdown."""
        ...
