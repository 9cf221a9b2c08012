"""
Inceptra Backend — ORM Models
===============================

Importing this package registers every table with `Base.metadata`
(used by Alembic autogenerate and the test suite's create_all).
"""

from app.models.generation import GenerationRecord
from app.models.user import User

__all__ = ["GenerationRecord", "User"]
