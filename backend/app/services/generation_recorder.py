"""
Inceptra Backend — Generation Recorder
========================================

What:  Appends completed generations to history and pages through them.
Why:   History rows double as the usage ledger, so a record must exist if and
       only if a provider actually produced output for the request.
How:   record() is called by the generation service only after the fallback
       executor reports success. It is a pure append; storage failures
       propagate as StorageUnavailableError (the caller decides whether the
       user still gets the output).
"""

import logging
from typing import Any, Dict, Optional

from app.models.generation import GenerationRecord
from app.schemas.generation import Feature, HistoryItem, HistoryResponse, PaginationInfo
from app.services.generation_store import MAX_PAGE_SIZE, GenerationStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


class GenerationRecorder:
    """Stateless; the store is passed per call."""

    async def record(
        self,
        store: GenerationStore,
        user_id: str,
        feature: Feature,
        input: Dict[str, Any],
        output: Dict[str, Any],
    ) -> GenerationRecord:
        record = await store.create_generation(user_id, feature.value, input, output)
        logger.info("Recorded %s generation %s for user %s", feature.value, record.id, user_id)
        return record

    async def list_history(
        self,
        store: GenerationStore,
        user_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        page: int = 1,
    ) -> HistoryResponse:
        """
        One page of history plus pagination metadata.

        `page` is informational (the client's own page counter); the cursor
        alone decides which records come back.
        """
        limit = min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
        page = max(page, 1)

        # One extra row tells us whether another page exists
        records = await store.list_generations(user_id, limit, cursor, lookahead=True)
        has_next_page = len(records) > limit
        records = records[:limit]
        total_count = await store.count_user_generations(user_id)

        return HistoryResponse(
            history=[HistoryItem.model_validate(r) for r in records],
            pagination=PaginationInfo(
                current_page=page,
                total_count=total_count,
                has_next_page=has_next_page,
                has_previous_page=cursor is not None or page > 1,
                next_cursor=records[-1].id if has_next_page and records else None,
                limit=limit,
            ),
        )


generation_recorder = GenerationRecorder()
