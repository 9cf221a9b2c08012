"""
Inceptra Backend — Quota Ledger
=================================

What:  Enforces per-user, per-feature daily usage limits.
Why:   Free-tier users get a fixed number of generations per feature per UTC
       day; premium users are unlimited.
How:   Usage is not stored separately. It is the number of generation_history
       rows for (user, feature) created since 00:00 UTC today, counted fresh
       on every check. The window resets implicitly at midnight UTC.

Consistency:
    check_and_admit() is a read-only check and reserves nothing. Two
    concurrent requests from the same user at `limit - 1` can both be
    admitted and both recorded. This is accepted: only the count after
    completion matters for the next request.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple, Union

from app.exceptions import UserNotFoundError
from app.schemas.generation import Feature, FeatureUsage, UsageResponse
from app.services.candidates import FeaturePolicy
from app.services.generation_store import GenerationStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def current_window(now: datetime) -> Tuple[datetime, datetime]:
    """[start of the UTC day containing `now`, start of the next UTC day)."""
    start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


@dataclass(frozen=True)
class Admitted:
    premium: bool = False
    used: int = 0


@dataclass(frozen=True)
class Denied:
    limit: int
    used: int
    reset_time: datetime


Admission = Union[Admitted, Denied]


class QuotaLedger:
    """
    Daily quota checks against the generation history.

    Args:
        policies: FeaturePolicy table supplying each feature's daily limit
        clock:    Source of "now" (injected by tests to move across midnight)
    """

    def __init__(self, policies: Dict[Feature, FeaturePolicy], clock: Optional[Clock] = None):
        self.policies = policies
        self.clock = clock or utc_now

    def limit_for(self, feature: Feature) -> int:
        return self.policies[feature].daily_limit

    async def check_and_admit(
        self,
        store: GenerationStore,
        user_id: str,
        feature: Feature,
    ) -> Admission:
        """
        Decide whether the user may run one more `feature` generation today.

        Raises:
            UserNotFoundError: the identity layer let through an unknown user
        """
        user = await store.find_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        if user.is_premium:
            return Admitted(premium=True)

        window_start, window_end = current_window(self.clock())
        used = await store.count_generations(user_id, feature.value, window_start)
        limit = self.limit_for(feature)

        if used >= limit:
            logger.info(
                "Quota reached for user %s on %s (%d/%d)",
                user_id,
                feature.value,
                used,
                limit,
            )
            return Denied(limit=limit, used=used, reset_time=window_end)
        return Admitted(used=used)

    async def get_usage(self, store: GenerationStore, user_id: str) -> UsageResponse:
        """
        Today's usage for every feature.

        Premium users get null limit/remaining (unlimited). The reset time is
        the start of the next UTC day.
        """
        user = await store.find_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        window_start, window_end = current_window(self.clock())
        usage = []
        for feature in Feature:
            used = await store.count_generations(user_id, feature.value, window_start)
            if user.is_premium:
                usage.append(FeatureUsage(feature=feature.value, used=used, is_premium=True))
                continue
            limit = self.limit_for(feature)
            usage.append(
                FeatureUsage(
                    feature=feature.value,
                    used=used,
                    limit=limit,
                    remaining=max(0, limit - used),
                    is_premium=False,
                )
            )

        return UsageResponse(usage=usage, is_premium=user.is_premium, reset_time=window_end)
