"""Conversation summary repository."""

from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite

from wakegate.api.dependencies import DBSession
from wakegate.modules.summaries.models import ConversationSummary


_KEY_COLUMNS = ("user_id", "conversation_id")


class SummaryRepository:
    """Repository for ConversationSummary database operations."""

    def __init__(self, session: DBSession) -> None:
        self.session = session

    async def upsert(self, values: dict[str, Any]) -> None:
        """Insert a summary or replace the stored one for the same conversation.

        Args:
            values: Column values, including both key columns
        """
        dialect = self.session.get_bind().dialect.name
        if dialect not in ("sqlite", "postgresql"):
            await self.session.merge(ConversationSummary(**values))
            await self.session.flush()
            return

        insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        stmt = insert(ConversationSummary).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(_KEY_COLUMNS),
            set_={
                **{
                    name: stmt.excluded[name]
                    for name in values
                    if name not in _KEY_COLUMNS
                },
                "updated_at": func.now(),
            },
        )
        await self.session.execute(stmt)

    async def get(self, user_id: str, conversation_id: str) -> ConversationSummary | None:
        stmt = select(ConversationSummary).where(
            ConversationSummary.user_id == user_id,
            ConversationSummary.conversation_id == conversation_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: str) -> list[ConversationSummary]:
        stmt = (
            select(ConversationSummary)
            .where(ConversationSummary.user_id == user_id)
            .order_by(ConversationSummary.last_active_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


# Type alias for dependency injection
SummaryRepo = Annotated[SummaryRepository, Depends(SummaryRepository)]
