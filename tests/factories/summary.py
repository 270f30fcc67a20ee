"""Factory for conversation summary payloads."""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from polyfactory.factories.pydantic_factory import ModelFactory

from wakegate.modules.summaries.schemas import SummaryIngest


_BASE_TIME = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


class SummaryIngestFactory(ModelFactory[SummaryIngest]):
    """Factory for generating consistent summary payloads."""

    __model__ = SummaryIngest

    @classmethod
    def user_id(cls) -> str:
        return f"user-{uuid4().hex[:8]}"

    @classmethod
    def conversation_id(cls) -> str:
        return f"conv-{uuid4().hex[:12]}"

    @classmethod
    def started_at(cls) -> datetime:
        return _BASE_TIME

    @classmethod
    def ended_at(cls) -> datetime:
        return _BASE_TIME + timedelta(minutes=30)

    @classmethod
    def last_active_at(cls) -> datetime:
        return _BASE_TIME + timedelta(minutes=30)

    @classmethod
    def flags(cls) -> dict[str, Any]:
        return {"pinned": False}
