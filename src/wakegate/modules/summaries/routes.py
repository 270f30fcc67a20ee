"""Summary ingestion and admin read routes."""

from fastapi import APIRouter, Request, Response, status

from wakegate.core.auth import AdminAccess
from wakegate.core.constants import USER_ID_HEADER
from wakegate.modules.summaries.models import ConversationSummary
from wakegate.modules.summaries.schemas import SummaryIngest, SummaryResponse
from wakegate.modules.summaries.services import SummarySvc


router = APIRouter(tags=["summaries"], dependencies=[AdminAccess])


async def _ingest(data: SummaryIngest, request: Request, service: SummarySvc) -> Response:
    await service.ingest(data, reported_by=request.headers.get(USER_ID_HEADER))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


router.add_api_route(
    "/admin/ingest-summary",
    _ingest,
    methods=["POST"],
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Ingest a conversation summary",
    description="Records tenant activity and upserts the summary into the admin store.",
)
router.add_api_route(
    "/internal/summary",
    _ingest,
    methods=["POST"],
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Ingest a conversation summary (runtime alias)",
)


@router.get(
    "/admin/summaries/{user_id}",
    response_model=list[SummaryResponse],
    summary="List a tenant's summaries",
)
async def list_summaries(user_id: str, service: SummarySvc) -> list[ConversationSummary]:
    return await service.list_for_user(user_id)


@router.get(
    "/admin/summaries/{user_id}/{conversation_id}",
    response_model=SummaryResponse,
    summary="Get one conversation summary",
)
async def get_summary(
    user_id: str, conversation_id: str, service: SummarySvc
) -> ConversationSummary:
    return await service.get(user_id, conversation_id)
