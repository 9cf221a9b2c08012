"""
Inceptra Backend — Generation Store (Persistence Collaborator)
================================================================

What:  The persistence contract used by the orchestration core.
Why:   The quota ledger and the generation recorder read and write the same
       rows. Keeping every query in one class gives a single seam that tests
       can replace with an in-memory fake.
How:   Wraps one AsyncSession per request. Every SQLAlchemy failure is
       translated into StorageUnavailableError; the SQL error itself is only
       logged.

Operations:
    find_user(user_id)                           → User | None
    ensure_user(user_id, email)                  → User (upsert, premium untouched)
    count_generations(user_id, feature, since)   → int
    create_generation(user_id, feature, in, out) → GenerationRecord (committed)
    list_generations(user_id, limit, cursor)     → [GenerationRecord] newest first
    count_user_generations(user_id)              → int

History pagination:
    ORDER BY created_at DESC, id DESC. The cursor is the id of the last record
    the client saw; the next page starts strictly after it in that order,
    so records created meanwhile never shift a page.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import StorageUnavailableError, ValidationError
from app.models.generation import GenerationRecord
from app.models.user import User

logger = logging.getLogger(__name__)

# ON CONFLICT inserts per dialect; anything else is treated as PostgreSQL
_DIALECT_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}

# Hard cap on a history page
MAX_PAGE_SIZE = 50


class GenerationStore:
    """SQLAlchemy-backed implementation of the persistence contract."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _storage_error(self, operation: str, exc: Exception) -> StorageUnavailableError:
        logger.error("Storage error during %s: %s", operation, str(exc), exc_info=True)
        return StorageUnavailableError(
            context={"operation": operation, "error_type": type(exc).__name__},
        )

    async def find_user(self, user_id: str) -> Optional[User]:
        try:
            return await self.db.get(User, user_id)
        except SQLAlchemyError as e:
            raise self._storage_error("find_user", e) from e

    async def ensure_user(self, user_id: str, email: str = "") -> User:
        """
        Return the user row, creating it on first sight.

        The insert is ON CONFLICT DO NOTHING, so two first requests for the
        same user both succeed. Never changes is_premium; that flag belongs to
        the billing side.
        """
        insert = _DIALECT_INSERTS.get(self.db.get_bind().dialect.name, pg_insert)
        try:
            result = await self.db.execute(
                insert(User)
                .values(id=user_id, email=email)
                .on_conflict_do_nothing(index_elements=[User.id])
            )
            if result.rowcount == 1:
                logger.info("Provisioned user %s", user_id)
            user = await self.db.get(User, user_id, populate_existing=True)
            if email and user.email != email:
                user.email = email
            await self.db.commit()
            return user
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise self._storage_error("ensure_user", e) from e

    async def count_generations(self, user_id: str, feature: str, since: datetime) -> int:
        """Count records for (user, feature) created at or after `since`."""
        try:
            result = await self.db.execute(
                select(func.count(GenerationRecord.id)).where(
                    GenerationRecord.user_id == user_id,
                    GenerationRecord.feature == feature,
                    GenerationRecord.created_at >= since,
                )
            )
            return result.scalar() or 0
        except SQLAlchemyError as e:
            raise self._storage_error("count_generations", e) from e

    async def create_generation(
        self,
        user_id: str,
        feature: str,
        input: Dict[str, Any],
        output: Dict[str, Any],
    ) -> GenerationRecord:
        """
        Append one record and commit it.

        Committed here rather than at the end of the request so the record
        is visible to the next quota check even if the response fails later.
        """
        record = GenerationRecord(user_id=user_id, feature=feature, input=input, output=output)
        try:
            self.db.add(record)
            await self.db.commit()
            return record
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise self._storage_error("create_generation", e) from e

    async def list_generations(
        self,
        user_id: str,
        limit: int = 20,
        cursor: Optional[str] = None,
        lookahead: bool = False,
    ) -> List[GenerationRecord]:
        """
        One page of a user's history, newest first.

        With lookahead one row beyond the page is returned, so the caller can
        tell whether another page exists.

        Raises:
            ValidationError: cursor does not name one of the user's records
        """
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        try:
            query = select(GenerationRecord).where(GenerationRecord.user_id == user_id)

            if cursor:
                anchor = await self.db.get(GenerationRecord, cursor)
                if anchor is None or anchor.user_id != user_id:
                    raise ValidationError(
                        message="Invalid pagination cursor.",
                        field="cursor",
                    )
                query = query.where(
                    or_(
                        GenerationRecord.created_at < anchor.created_at,
                        and_(
                            GenerationRecord.created_at == anchor.created_at,
                            GenerationRecord.id < anchor.id,
                        ),
                    )
                )

            query = query.order_by(
                GenerationRecord.created_at.desc(),
                GenerationRecord.id.desc(),
            ).limit(limit + 1 if lookahead else limit)
            result = await self.db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._storage_error("list_generations", e) from e

    async def count_user_generations(self, user_id: str) -> int:
        try:
            result = await self.db.execute(
                select(func.count(GenerationRecord.id)).where(
                    GenerationRecord.user_id == user_id,
                )
            )
            return result.scalar() or 0
        except SQLAlchemyError as e:
            raise self._storage_error("count_user_generations", e) from e
