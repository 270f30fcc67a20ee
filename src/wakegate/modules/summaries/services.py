"""Summary ingestion service."""

from typing import Annotated

import structlog
from fastapi import Depends

from wakegate.core.errors import IdentityMismatchError, NotFoundError
from wakegate.modules.summaries.models import ConversationSummary
from wakegate.modules.summaries.repos import SummaryRepo
from wakegate.modules.summaries.schemas import IngestResult, SummaryIngest
from wakegate.modules.tenants.dependencies import Registry


logger = structlog.get_logger()


class SummaryService:
    """Records activity summaries reported by tenant runtimes.

    Ingestion counts as tenant activity. Delivery is best-effort on the
    tenant side, so idle reaping never depends on it; proxied requests
    are the primary activity signal.
    """

    def __init__(self, repo: SummaryRepo, registry: Registry) -> None:
        self.repo = repo
        self.registry = registry

    async def ingest(
        self,
        data: SummaryIngest,
        reported_by: str | None = None,
    ) -> IngestResult:
        """Validate, touch and persist a summary.

        Args:
            data: Summary payload
            reported_by: Identity header sent by the reporting runtime, if any

        Returns:
            Whether the tenant was running (and so had its activity updated)

        Raises:
            IdentityMismatchError: If ``reported_by`` names a different tenant
        """
        if reported_by is not None and reported_by != data.user_id:
            logger.warning(
                "summary_identity_mismatch",
                user_id=data.user_id,
                reported_by=reported_by,
            )
            raise IdentityMismatchError(
                "Summary identity does not match the reporting tenant",
                details={"user_id": data.user_id},
            )

        touched = await self.registry.touch(data.user_id)
        await self.repo.upsert(data.model_dump())

        logger.info(
            "summary_ingested",
            tenant_id=data.user_id,
            conversation_id=data.conversation_id,
            touched=touched,
        )

        return IngestResult(
            user_id=data.user_id,
            conversation_id=data.conversation_id,
            touched=touched,
        )

    async def list_for_user(self, user_id: str) -> list[ConversationSummary]:
        """Stored summaries for a tenant, most recently active first."""
        return await self.repo.list_for_user(user_id)

    async def get(self, user_id: str, conversation_id: str) -> ConversationSummary:
        """Fetch one stored summary.

        Raises:
            NotFoundError: If no summary was ingested for the conversation
        """
        summary = await self.repo.get(user_id, conversation_id)
        if summary is None:
            raise NotFoundError(
                "Summary not found",
                resource="summary",
                resource_id=f"{user_id}/{conversation_id}",
            )
        return summary


# Type alias for dependency injection
SummarySvc = Annotated[SummaryService, Depends(SummaryService)]
