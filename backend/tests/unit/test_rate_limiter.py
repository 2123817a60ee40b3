"""
Unit tests for catalog request pacing
"""

from unittest.mock import patch

import pytest

from availarr.config import Config
from availarr.services.exceptions import RateLimitExceeded
from availarr.services.rate_limiter import (
    FALLBACK_BUDGET,
    Pacer,
    RequestBudget,
    TokenBucket,
    get_pacer,
    paced,
)


class TestTokenBucket:

    @pytest.mark.asyncio
    async def test_starts_full(self):
        bucket = TokenBucket("test", RequestBudget(requests=1, period=1.0, burst=3))

        for _ in range(3):
            assert await bucket.take(block=False) is True
        assert await bucket.take(block=False) is False

    @pytest.mark.asyncio
    async def test_refills_over_time(self):
        bucket = TokenBucket("test", RequestBudget(requests=2, period=1.0, burst=2))
        await bucket.take(cost=2)

        bucket._stamp -= 1.0

        assert await bucket.take(cost=2, block=False) is True

    @pytest.mark.asyncio
    async def test_refill_capped_at_burst(self):
        bucket = TokenBucket("test", RequestBudget(requests=100, period=1.0, burst=2))
        bucket._stamp -= 60.0

        await bucket.take(block=False)

        assert bucket.level <= 1.0

    @pytest.mark.asyncio
    async def test_wait_beyond_max_raises(self):
        bucket = TokenBucket("slow", RequestBudget(requests=1, period=10.0, burst=1))
        await bucket.take()

        with pytest.raises(RateLimitExceeded) as exc_info:
            await bucket.take(max_wait=0.5)

        assert exc_info.value.service == "slow"
        assert exc_info.value.retry_after > 0.5


class TestPacer:

    def test_tmdb_budget_from_config(self):
        with patch.object(Config, 'TMDB_REQUESTS_PER_WINDOW', 40), \
                patch.object(Config, 'TMDB_RATE_WINDOW_SECONDS', 10.0):
            snapshot = Pacer().snapshot("tmdb")

        assert snapshot["refill_rate"] == 4.0
        assert snapshot["burst"] == 10

    def test_unknown_name_gets_fallback(self):
        assert Pacer().bucket("elsewhere").budget == FALLBACK_BUDGET

    def test_set_budget_replaces_bucket(self):
        pacer = Pacer()
        old = pacer.bucket("tmdb")

        pacer.set_budget("tmdb", RequestBudget(requests=200, period=10.0, burst=50))

        new = pacer.bucket("tmdb")
        assert new is not old
        assert new.budget.burst == 50

    def test_process_wide_instance(self):
        assert get_pacer() is get_pacer()


class TestPacedDecorator:

    @pytest.mark.asyncio
    async def test_takes_a_token_per_call(self):
        get_pacer().set_budget("unit-test", RequestBudget(requests=1, period=100.0, burst=2))

        @paced("unit-test", block=False)
        async def call(value):
            return value * 2

        assert await call(2) == 4
        assert await call(3) == 6
        assert get_pacer().snapshot("unit-test")["level"] < 1.0
