"""
Inceptra Backend — Route Dependencies
=======================================

What:  FastAPI dependencies shared by the generation and history routes.
How:   get_generation_store wraps the per-request session; get_current_user_id
       reads the user id placed on the request by the upstream identity
       gateway and makes sure the user row exists.

The id in the identity header is trusted as-is. Token verification happens
before requests reach this service.
"""

import logging

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db_session
from app.exceptions import AuthenticationError
from app.services.generation_store import GenerationStore

logger = logging.getLogger(__name__)


async def get_generation_store(
    db: AsyncSession = Depends(get_db_session),
) -> GenerationStore:
    return GenerationStore(db)


async def get_current_user_id(
    request: Request,
    store: GenerationStore = Depends(get_generation_store),
) -> str:
    """
    The authenticated user id for this request.

    Raises:
        AuthenticationError: the identity header is missing or blank
    """
    user_id = request.headers.get(settings.identity_header, "").strip()
    if not user_id:
        raise AuthenticationError(message="User ID not found in auth context.")

    if settings.auto_provision_users:
        await store.ensure_user(user_id, email=request.headers.get("X-User-Email", ""))
    return user_id
