"""Conversation summary schemas."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SummaryIngest(BaseModel):
    """Summary payload posted by a tenant runtime.

    Timestamps must be internally consistent: neither the end nor the last
    activity may precede the start.
    """

    user_id: str = Field(min_length=1, max_length=255)
    conversation_id: str = Field(min_length=1, max_length=255)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    tokens_in: int = Field(default=0, ge=0)
    tokens_out: int = Field(default=0, ge=0)
    cost_usd: float = Field(default=0.0, ge=0)
    model: str | None = None
    provider: str | None = None
    message_count: int = Field(default=0, ge=0)
    last_active_at: datetime | None = None
    feedback_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    flags: dict[str, Any] = Field(default_factory=dict)

    @field_validator("started_at", "ended_at", "last_active_at")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        """Read timestamps without an offset as UTC."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def check_timeline(self) -> "SummaryIngest":
        if self.started_at is None:
            return self
        if self.ended_at is not None and self.ended_at < self.started_at:
            raise ValueError("ended_at precedes started_at")
        if self.last_active_at is not None and self.last_active_at < self.started_at:
            raise ValueError("last_active_at precedes started_at")
        return self


class IngestResult(BaseModel):
    """Outcome of an ingestion (for logging and tests)."""

    user_id: str
    conversation_id: str
    touched: bool


class SummaryResponse(BaseModel):
    """Stored summary as returned by the admin surface."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    conversation_id: str
    started_at: datetime | None
    ended_at: datetime | None
    tokens_in: int
    tokens_out: int
    cost_usd: float
    model: str | None
    provider: str | None
    message_count: int
    last_active_at: datetime | None
    feedback_count: int
    error_count: int
    flags: dict[str, Any]
    updated_at: datetime
