"""Data models using Pydantic."""

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from .exceptions import ValidationError

USERNAME_PATTERN = re.compile(r"^[a-z0-9._]{1,30}$")


class Mode(str, Enum):
    """Tone of the diagnosis."""

    MILD = "mild"
    MEDIUM = "medium"
    SPICY = "spicy"


def normalize_username(value: str) -> str:
    """Normalize an Instagram handle: trim, drop one leading "@", lowercase."""
    if not isinstance(value, str):
        raise ValidationError("username must be a string")

    cleaned = value.strip()
    if cleaned.startswith("@"):
        cleaned = cleaned[1:]
    cleaned = cleaned.strip().lower()

    if not cleaned:
        raise ValidationError("Invalid username")
    if not USERNAME_PATTERN.match(cleaned):
        raise ValidationError(f"Invalid username: {value!r}")

    return cleaned


def normalize_competitor_id(value: str | None) -> str | None:
    """Normalize an optional competitor handle; blank means no competitor."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip().lstrip("@").strip():
        return None
    return normalize_username(value)


class DiagnoseRequest(BaseModel):
    """Diagnosis request from the form."""

    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., max_length=100)
    mode: Mode = Mode.MEDIUM
    competitor_id: str | None = Field(None, alias="competitorId", max_length=100)

    @field_validator("username", mode="before")
    @classmethod
    def validate_username(cls, value: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise PydanticCustomError("empty_username", "username is required", {"input": value})
        try:
            return normalize_username(value)
        except ValidationError as e:
            raise PydanticCustomError("invalid_username", "Invalid username", {"input": value}) from e

    @field_validator("competitor_id", mode="before")
    @classmethod
    def validate_competitor_id(cls, value: str | None) -> str | None:
        if value is not None and not isinstance(value, str):
            raise PydanticCustomError(
                "invalid_competitor_id", "competitorId must be a string", {"input": value}
            )
        try:
            return normalize_competitor_id(value)
        except ValidationError as e:
            raise PydanticCustomError(
                "invalid_competitor_id", "Invalid competitorId", {"input": value}
            ) from e


class DiagnoseResponse(BaseModel):
    """Response from the API."""

    model_config = ConfigDict(populate_by_name=True)

    result: str
    cached: bool = False
    created_at: datetime | None = Field(None, alias="createdAt")
