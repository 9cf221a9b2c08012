"""
Inceptra Backend — History Route Handlers
===========================================

What:  GET /api/history (paginated generation history) and
       GET /api/history/usage (today's per-feature usage).
Who:   Called by the frontend dashboard and the usage meter.

Pagination (cursor-based):
    Page 1: GET /api/history?limit=20
    Page 2: GET /api/history?limit=20&cursor=<next_cursor>&page=2
    The cursor is the id of the last item on the previous page.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from app.dependencies import get_current_user_id, get_generation_store
from app.schemas.generation import ErrorResponse, HistoryResponse, UsageResponse
from app.services.generation_service import generation_service
from app.services.generation_store import MAX_PAGE_SIZE, GenerationStore

router = APIRouter(prefix="/api/history", tags=["History"])


@router.get(
    "",
    response_model=HistoryResponse,
    responses={
        400: {"description": "Invalid cursor", "model": ErrorResponse},
        401: {"description": "Missing user identity", "model": ErrorResponse},
    },
    summary="List past generations, newest first",
)
async def list_history(
    response: Response,
    limit: int = Query(default=20, ge=1, description=f"Items per page (capped at {MAX_PAGE_SIZE})"),
    cursor: Optional[str] = Query(default=None, description="next_cursor from the previous page"),
    page: int = Query(default=1, ge=1, description="Client-side page counter"),
    user_id: str = Depends(get_current_user_id),
    store: GenerationStore = Depends(get_generation_store),
) -> HistoryResponse:
    result = await generation_service.list_history(store, user_id, limit, cursor, page)
    response.headers["X-Total-Count"] = str(result.pagination.total_count)
    response.headers["Cache-Control"] = "private, no-cache"
    return result


@router.get(
    "/usage",
    response_model=UsageResponse,
    summary="Today's usage per feature",
    description=(
        "Counts generations since 00:00 UTC for every feature. "
        "limit and remaining are null for premium users."
    ),
)
async def get_usage(
    user_id: str = Depends(get_current_user_id),
    store: GenerationStore = Depends(get_generation_store),
) -> UsageResponse:
    return await generation_service.get_usage(store, user_id)
