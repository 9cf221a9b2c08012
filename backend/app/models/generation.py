"""
Inceptra Backend — Generation History SQLAlchemy Model
========================================================

What:  ORM model representing the `generation_history` table.
Why:   Every successful generation is appended here. The same rows drive
       history listing and the daily quota count, so there is no separate
       usage counter to keep in sync.
How:   `input` and `output` are opaque JSON payloads whose shape depends on
       the feature (e.g. {"prompt": ...} → {"image": "<base64>"}).

Table Design Rationale:
    - String UUID primary key: doubles as the history pagination cursor
    - created_at: server-assigned UTC timestamp, immutable
    - Index on (user_id, feature, created_at): serves the quota count
      "rows for this user and feature since 00:00 UTC"
    - Index on (user_id, created_at): serves the history page query
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, Index, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class GenerationRecord(Base):
    """
    One completed generation.

    Lifecycle:
        Created exactly once, after a provider produced output that passed
        normalization. Never updated or deleted by the core.
    """

    __tablename__ = "generation_history"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    user_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # One of the Feature enum values
    feature: Mapped[str] = mapped_column(String(64), nullable=False)

    input: Mapped[Dict[str, Any]] = mapped_column(JSONPayload, nullable=False)
    output: Mapped[Dict[str, Any]] = mapped_column(JSONPayload, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_generation_user_feature_created", "user_id", "feature", "created_at"),
        Index("idx_generation_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<GenerationRecord(id={self.id}, user_id='{self.user_id}', "
            f"feature='{self.feature}', created_at='{self.created_at}')>"
        )
