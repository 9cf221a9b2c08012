"""
Inceptra Backend — Background Removal Route Handler
=====================================================

What:  POST /api/bg-remove, transparent-background cut-outs.
Why:   Segmentation models return only a mask; the service composites it
       onto the uploaded image so the client gets a ready-to-use PNG.
How:   Receives a multipart upload (field `image`, JPEG or PNG, max 10MB),
       reads it into memory and delegates to the generation service.

Request Flow:
    1. Client sends multipart/form-data with the 'image' field
    2. Upload is sniffed by content and compressed to fit 1024x1024
    3. Quota check, then the segmentation candidates are tried in order
    4. Mask is attached as alpha to the (resized) original → PNG base64
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile

from app.dependencies import get_current_user_id, get_generation_store
from app.schemas.generation import ErrorResponse, Feature, ImageResponse
from app.services.generation_service import generation_service
from app.services.generation_store import GenerationStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Generation"])


@router.post(
    "/bg-remove",
    response_model=ImageResponse,
    responses={
        400: {"description": "Invalid image type or size", "model": ErrorResponse},
        429: {"description": "Daily quota or rate limit reached", "model": ErrorResponse},
        502: {"description": "Segmentation failed", "model": ErrorResponse},
        503: {"description": "All providers unavailable", "model": ErrorResponse},
    },
    summary="Remove the background of an image",
    description="Upload a PNG or JPEG image (max 10MB). Returns a PNG with transparent background.",
)
async def remove_background(
    image: UploadFile = File(..., description="PNG or JPEG image, max 10MB"),
    user_id: str = Depends(get_current_user_id),
    store: GenerationStore = Depends(get_generation_store),
) -> ImageResponse:
    content = await image.read()
    logger.info("Background removal upload: %s (%d bytes)", image.filename, len(content))

    output = await generation_service.handle_generation_request(
        store,
        user_id,
        Feature.BACKGROUND_REMOVAL,
        {"image": content, "filename": image.filename or ""},
    )
    return ImageResponse(**output)
