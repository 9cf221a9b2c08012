"""
Inceptra Backend — Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions for every failure the API can report.
Why:   Each exception carries a stable machine-readable code and a user-facing
       message. Provider names, raw upstream errors and SQL details go into
       `context`, which is logged but never returned to the client.
How:   Global exception handlers (registered in main.py) map each class to an
       HTTP status code and a structured JSON body.

Exception Hierarchy:
    InceptraError (base)
    ├── ValidationError          → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── UserNotFoundError        → 401 Unauthorized
    ├── QuotaExceededError       → 429 Too Many Requests (daily feature quota)
    ├── RateLimitExceededError   → 429 Too Many Requests (per-IP)
    ├── GenerationFailedError    → 502 / 503 / 504 (provider fallback exhausted)
    └── StorageUnavailableError  → 500 Internal Server Error

Provider-level errors (ProviderError, NormalizationError) live below the
orchestration boundary and never reach a handler directly; the generation
service converts them into GenerationFailedError.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class InceptraError(Exception):
    """
    Base exception for all Inceptra application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    code = "internal_error"
    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(InceptraError):
    """
    Raised when client input fails validation.

    When:    Prompt too short, unsupported upload type, oversized file,
             resume without enough extractable text, malformed cursor.
    HTTP:    400 Bad Request
    """

    code = "validation_error"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(InceptraError):
    """Raised when a request reaches the API without an established identity."""

    code = "unauthorized"
    status_code = 401

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UserNotFoundError(InceptraError):
    """
    Raised when the quota ledger cannot find the user behind a request.

    The identity layer establishes the user before the core runs, so this
    indicates an inconsistency between identity and storage.
    """

    code = "user_not_found"
    status_code = 401

    def __init__(self, user_id: str, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["user_id"] = user_id
        super().__init__(message="User not found.", context=ctx)
        self.user_id = user_id


class QuotaExceededError(InceptraError):
    """
    Raised when a free-tier user has used up today's allowance for a feature.

    This is an expected condition: it is logged at INFO and never retried.
    The reset time is the start of the next UTC day.
    """

    code = "quota_exceeded"
    status_code = 429

    def __init__(
        self,
        feature: str,
        limit: int,
        reset_time: datetime,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Free limit of {limit} per day reached for {feature}. "
            f"Upgrade to Premium for unlimited access."
        )
        ctx = context or {}
        ctx.update({"feature": feature, "limit": limit, "reset_time": reset_time.isoformat()})
        super().__init__(message=message, context=ctx)
        self.feature = feature
        self.limit = limit
        self.reset_time = reset_time

    @property
    def retry_after(self) -> int:
        """Seconds until the quota window rolls over."""
        return max(1, int((self.reset_time - datetime.now(timezone.utc)).total_seconds()))


class RateLimitExceededError(InceptraError):
    """Raised when a client IP exceeds the per-IP request rate limit."""

    code = "rate_limit_exceeded"
    status_code = 429

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Too many requests. Please wait {retry_after} seconds before retrying."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class GenerationFailedError(InceptraError):
    """
    Raised when no provider candidate produced a usable result.

    Codes:
        provider_timeout      → 504  every attempted candidate timed out last
        provider_unavailable  → 503  candidates exhausted on retryable errors
        generation_failed     → 502  a fatal provider or normalization error

    The message is generic per feature; `context` carries the attempt trail
    (model ids, reasons) for operators.
    """

    STATUS_BY_CODE = {
        "provider_timeout": 504,
        "provider_unavailable": 503,
        "generation_failed": 502,
    }

    def __init__(
        self,
        message: str,
        code: str = "generation_failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
        self.code = code
        self.status_code = self.STATUS_BY_CODE.get(code, 502)


class StorageUnavailableError(InceptraError):
    """
    Raised when the persistence layer fails.

    The message returned to the client is always generic; the SQL error is
    logged server-side only.
    """

    code = "server_error"
    status_code = 500

    def __init__(
        self,
        message: str = "A storage error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
