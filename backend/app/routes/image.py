"""
Inceptra Backend — Image Generation Route Handler
===================================================

What:  POST /api/image, text-to-image generation.
How:   The prompt is extended with the optional style and size hints and sent
       through the image candidates (FLUX first, Stable Diffusion fallbacks).
       The response carries the generated image as base64.
"""

from fastapi import APIRouter, Depends

from app.dependencies import get_current_user_id, get_generation_store
from app.schemas.generation import ErrorResponse, Feature, ImageRequest, ImageResponse
from app.services.generation_service import generation_service
from app.services.generation_store import GenerationStore

router = APIRouter(prefix="/api", tags=["Generation"])


@router.post(
    "/image",
    response_model=ImageResponse,
    responses={
        400: {"description": "Prompt too short", "model": ErrorResponse},
        429: {"description": "Daily quota or rate limit reached", "model": ErrorResponse},
        503: {"description": "All providers unavailable", "model": ErrorResponse},
        504: {"description": "Providers timed out", "model": ErrorResponse},
    },
    summary="Generate an image from a prompt",
)
async def generate_image(
    body: ImageRequest,
    user_id: str = Depends(get_current_user_id),
    store: GenerationStore = Depends(get_generation_store),
) -> ImageResponse:
    output = await generation_service.handle_generation_request(
        store,
        user_id,
        Feature.IMAGE,
        body.model_dump(),
    )
    return ImageResponse(**output)
