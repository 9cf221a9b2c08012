"""
Inceptra Backend — User SQLAlchemy Model
==========================================

What:  ORM model for the `users` table.
Why:   The quota ledger needs the premium flag; the identity glue upserts the
       row the first time a user id is seen.
Who:   Owned by the identity and billing collaborators. The orchestration core
       only reads `id` and `is_premium`.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class User(Base):
    """
    An authenticated user of the generation API.

    Lifecycle:
        1. Created on first authenticated request (is_premium = False)
        2. is_premium flipped by the billing collaborator
        3. Never deleted by the core
    """

    __tablename__ = "users"

    # Opaque id issued by the identity provider (not generated here)
    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        default="",
        server_default=text("''"),
    )

    is_premium: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
        comment="Premium users bypass the daily feature quotas",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<User(id='{self.id}', is_premium={self.is_premium})>"
