"""
Inceptra Backend — Resume Analysis Route Handler
==================================================

What:  POST /api/resume, career-advisor feedback on an uploaded resume.
How:   Receives a multipart upload (field `file`, PDF, max 5MB). The text is
       extracted from the PDF and sent to the resume chat candidates.
"""

from fastapi import APIRouter, Depends, File, UploadFile

from app.dependencies import get_current_user_id, get_generation_store
from app.schemas.generation import ErrorResponse, Feature, ResumeResponse
from app.services.generation_service import generation_service
from app.services.generation_store import GenerationStore

router = APIRouter(prefix="/api", tags=["Generation"])


@router.post(
    "/resume",
    response_model=ResumeResponse,
    responses={
        400: {"description": "Not a PDF, too large, or too little text", "model": ErrorResponse},
        429: {"description": "Daily quota or rate limit reached", "model": ErrorResponse},
        503: {"description": "All providers unavailable", "model": ErrorResponse},
        504: {"description": "Providers timed out", "model": ErrorResponse},
    },
    summary="Analyze a resume",
)
async def analyze_resume(
    file: UploadFile = File(..., description="Resume as PDF, max 5MB"),
    user_id: str = Depends(get_current_user_id),
    store: GenerationStore = Depends(get_generation_store),
) -> ResumeResponse:
    content = await file.read()
    output = await generation_service.handle_generation_request(
        store,
        user_id,
        Feature.RESUME,
        {"file": content, "filename": file.filename or ""},
    )
    return ResumeResponse(**output)
