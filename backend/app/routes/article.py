"""
Inceptra Backend — Article Route Handler
==========================================

What:  POST /api/article, text article generation.
How:   Parses the JSON body and hands it to the generation service, which
       validates, checks quota, walks the article candidates (Gemini first,
       Hugging Face chat models as fallback) and records the result.
"""

import logging

from fastapi import APIRouter, Depends

from app.dependencies import get_current_user_id, get_generation_store
from app.schemas.generation import ArticleRequest, ArticleResponse, ErrorResponse, Feature
from app.services.generation_service import generation_service
from app.services.generation_store import GenerationStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Generation"])


@router.post(
    "/article",
    response_model=ArticleResponse,
    responses={
        400: {"description": "Prompt too short", "model": ErrorResponse},
        401: {"description": "Missing user identity", "model": ErrorResponse},
        429: {"description": "Daily quota or rate limit reached", "model": ErrorResponse},
        502: {"description": "Generation failed", "model": ErrorResponse},
        503: {"description": "All providers unavailable", "model": ErrorResponse},
        504: {"description": "Providers timed out", "model": ErrorResponse},
    },
    summary="Generate an article",
)
async def generate_article(
    body: ArticleRequest,
    user_id: str = Depends(get_current_user_id),
    store: GenerationStore = Depends(get_generation_store),
) -> ArticleResponse:
    output = await generation_service.handle_generation_request(
        store,
        user_id,
        Feature.ARTICLE,
        body.model_dump(),
    )
    return ArticleResponse(**output)
