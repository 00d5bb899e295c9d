"""Type definitions for the Diagnosis API."""

from datetime import datetime
from typing import Any

from typing_extensions import TypedDict


class HealthStatus(TypedDict):
    """Health status of system components."""

    storage: bool
    scraper: bool
    generator: bool


class CacheRecord(TypedDict):
    """Stored diagnosis row."""

    username: str
    mode: str
    competitor_id: str | None
    diagnosis_result: str
    created_at: datetime


class DiagnosisResult(TypedDict):
    """Result from the cache gate."""

    result: str
    cached: bool
    created_at: datetime | None


ProfileRecord = dict[str, Any]
