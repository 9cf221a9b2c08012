"""
Inceptra Backend — Quota Ledger Unit Tests
============================================

What we test:
    ✅ Premium users are always admitted, whatever their usage
    ✅ Free users are denied at the limit until the UTC day rolls over
    ✅ Usage from other features and previous days does not count
    ✅ Unknown users raise UserNotFoundError
    ✅ Usage report (per-feature counts, null limits for premium, reset time)
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.exceptions import UserNotFoundError
from app.schemas.generation import Feature
from app.services.candidates import FeaturePolicy
from app.services.quota_service import Admitted, Denied, QuotaLedger, current_window


def policies(limit=10):
    return {feature: FeaturePolicy(feature, (), limit) for feature in Feature}


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


NOON = datetime(2025, 7, 10, 12, 0, tzinfo=timezone.utc)


class TestCurrentWindow:

    def test_window_is_the_utc_day(self):
        start, end = current_window(NOON)
        assert start == datetime(2025, 7, 10, tzinfo=timezone.utc)
        assert end == datetime(2025, 7, 11, tzinfo=timezone.utc)

    def test_non_utc_input_is_converted(self):
        # 01:30 at UTC+5 is still the previous UTC day
        local = datetime(2025, 7, 11, 1, 30, tzinfo=timezone(timedelta(hours=5)))
        start, _ = current_window(local)
        assert start == datetime(2025, 7, 10, tzinfo=timezone.utc)


class TestCheckAndAdmit:

    @pytest.mark.asyncio
    async def test_premium_always_admitted(self, store):
        store.seed("user_premium", Feature.IMAGE.value, 500, created_at=NOON)
        ledger = QuotaLedger(policies(limit=0), clock=FixedClock(NOON))

        result = await ledger.check_and_admit(store, "user_premium", Feature.IMAGE)

        assert result == Admitted(premium=True)

    @pytest.mark.asyncio
    async def test_free_user_under_limit(self, store):
        store.seed("user_free", Feature.IMAGE.value, 9, created_at=NOON)
        ledger = QuotaLedger(policies(), clock=FixedClock(NOON))

        result = await ledger.check_and_admit(store, "user_free", Feature.IMAGE)

        assert isinstance(result, Admitted)
        assert result.used == 9

    @pytest.mark.asyncio
    async def test_free_user_denied_at_limit(self, store):
        store.seed("user_free", Feature.IMAGE.value, 10, created_at=NOON)
        ledger = QuotaLedger(policies(), clock=FixedClock(NOON))

        result = await ledger.check_and_admit(store, "user_free", Feature.IMAGE)

        assert isinstance(result, Denied)
        assert result.limit == 10
        assert result.used == 10
        assert result.reset_time == datetime(2025, 7, 11, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_denial_lifts_when_the_day_rolls_over(self, store):
        store.seed("user_free", Feature.IMAGE.value, 10, created_at=NOON)
        clock = FixedClock(NOON + timedelta(hours=11, minutes=59))
        ledger = QuotaLedger(policies(), clock=clock)

        assert isinstance(await ledger.check_and_admit(store, "user_free", Feature.IMAGE), Denied)

        clock.now = datetime(2025, 7, 11, 0, 0, 1, tzinfo=timezone.utc)
        assert isinstance(await ledger.check_and_admit(store, "user_free", Feature.IMAGE), Admitted)

    @pytest.mark.asyncio
    async def test_other_features_do_not_count(self, store):
        store.seed("user_free", Feature.ARTICLE.value, 10, created_at=NOON)
        ledger = QuotaLedger(policies(), clock=FixedClock(NOON))

        result = await ledger.check_and_admit(store, "user_free", Feature.IMAGE)

        assert result == Admitted(used=0)

    @pytest.mark.asyncio
    async def test_per_feature_limit(self, store):
        table = policies()
        table[Feature.RESUME] = FeaturePolicy(Feature.RESUME, (), 2)
        store.seed("user_free", Feature.RESUME.value, 2, created_at=NOON)
        ledger = QuotaLedger(table, clock=FixedClock(NOON))

        result = await ledger.check_and_admit(store, "user_free", Feature.RESUME)

        assert isinstance(result, Denied)
        assert result.limit == 2

    @pytest.mark.asyncio
    async def test_unknown_user(self, store):
        ledger = QuotaLedger(policies(), clock=FixedClock(NOON))

        with pytest.raises(UserNotFoundError):
            await ledger.check_and_admit(store, "ghost", Feature.ARTICLE)


class TestGetUsage:

    @pytest.mark.asyncio
    async def test_free_user_report(self, store):
        store.seed("user_free", Feature.IMAGE.value, 3, created_at=NOON)
        store.seed("user_free", Feature.IMAGE.value, 4, created_at=NOON - timedelta(days=1))
        ledger = QuotaLedger(policies(), clock=FixedClock(NOON))

        report = await ledger.get_usage(store, "user_free")

        by_feature = {u.feature: u for u in report.usage}
        assert set(by_feature) == {f.value for f in Feature}
        assert by_feature["image-generator"].used == 3
        assert by_feature["image-generator"].remaining == 7
        assert by_feature["article-generator"].used == 0
        assert by_feature["article-generator"].limit == 10
        assert report.is_premium is False
        assert report.reset_time == datetime(2025, 7, 11, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_remaining_never_negative(self, store):
        store.seed("user_free", Feature.ARTICLE.value, 12, created_at=NOON)
        ledger = QuotaLedger(policies(), clock=FixedClock(NOON))

        report = await ledger.get_usage(store, "user_free")

        article = next(u for u in report.usage if u.feature == "article-generator")
        assert article.remaining == 0

    @pytest.mark.asyncio
    async def test_premium_report_has_no_limits(self, store):
        store.seed("user_premium", Feature.ARTICLE.value, 30, created_at=NOON)
        ledger = QuotaLedger(policies(), clock=FixedClock(NOON))

        report = await ledger.get_usage(store, "user_premium")

        article = next(u for u in report.usage if u.feature == "article-generator")
        assert article.used == 30
        assert article.limit is None
        assert article.remaining is None
        assert article.is_premium is True
        assert report.is_premium is True
