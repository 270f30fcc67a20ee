"""Conversation summary database models."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from wakegate.core.database.base import Base, TimestampMixin


class ConversationSummary(Base, TimestampMixin):
    """Activity summary reported by a tenant runtime for one conversation.

    Keyed by (user_id, conversation_id); a later report for the same
    conversation replaces the earlier one.

    Attributes:
        user_id: Tenant identity
        conversation_id: Conversation within the tenant
        started_at: Conversation start
        ended_at: Conversation end, if ended
        tokens_in: Prompt tokens used
        tokens_out: Completion tokens used
        cost_usd: Accumulated provider cost
        model: Model name
        provider: Model provider
        message_count: Messages exchanged
        last_active_at: Last activity in the conversation
        feedback_count: Feedback events
        error_count: Errors seen
        flags: Free-form flags
    """

    __tablename__ = "admin_conversations"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    conversation_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    tokens_in: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tokens_out: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cost_usd: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider: Mapped[str | None] = mapped_column(String(255), nullable=True)
    message_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )
    feedback_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    flags: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
