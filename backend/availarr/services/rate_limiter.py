"""
Request Pacing for Catalog Calls

TMDB allows about 40 requests per 10 seconds per key. A page sync reconciles
ten titles at once and series enrichment adds a detail call per positive
verdict, so every catalog request draws from one shared budget per process.

Model:
    Each named budget is a bucket refilled continuously at
    ``requests / period`` tokens per second and capped at ``burst``. A call
    takes one token, waiting (in short sleeps) while the bucket is empty.
    Budgets that were never configured fall back to 5 requests per 5 seconds.
"""

import asyncio
import functools
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, ParamSpec, TypeVar

from availarr.config import Config
from availarr.services.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)

P = ParamSpec('P')
T = TypeVar('T')

POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class RequestBudget:
    """``requests`` calls per ``period`` seconds, bursting up to ``burst``."""
    requests: int
    period: float
    burst: int

    @property
    def refill_rate(self) -> float:
        return self.requests / self.period


FALLBACK_BUDGET = RequestBudget(requests=5, period=5.0, burst=5)


def default_budgets() -> Dict[str, RequestBudget]:
    return {
        "tmdb": RequestBudget(
            requests=Config.TMDB_REQUESTS_PER_WINDOW,
            period=Config.TMDB_RATE_WINDOW_SECONDS,
            burst=10,
        ),
    }


class TokenBucket:
    """Continuously refilled bucket for one budget. Starts full."""

    def __init__(self, name: str, budget: RequestBudget):
        self.name = name
        self.budget = budget
        self._level = float(budget.burst)
        self._stamp = time.monotonic()
        self._lock = asyncio.Lock()

    def _top_up(self) -> None:
        now = time.monotonic()
        self._level = min(self.budget.burst, self._level + (now - self._stamp) * self.budget.refill_rate)
        self._stamp = now

    @property
    def level(self) -> float:
        return self._level

    async def take(self, cost: int = 1, block: bool = True, max_wait: float = 30.0) -> bool:
        """
        Take ``cost`` tokens.

        Returns:
            False only when ``block`` is off and the bucket is short

        Raises:
            RateLimitExceeded: When the tokens would not arrive within ``max_wait``
        """
        started = time.monotonic()
        async with self._lock:
            while True:
                self._top_up()
                if self._level >= cost:
                    self._level -= cost
                    return True
                if not block:
                    return False

                shortfall = (cost - self._level) / self.budget.refill_rate
                if time.monotonic() - started + shortfall > max_wait:
                    raise RateLimitExceeded(service=self.name, retry_after=shortfall)
                await asyncio.sleep(min(shortfall, POLL_INTERVAL))


class Pacer:
    """Named token buckets, created on first use."""

    def __init__(self, budgets: Optional[Dict[str, RequestBudget]] = None):
        self._budgets = dict(budgets if budgets is not None else default_budgets())
        self._buckets: Dict[str, TokenBucket] = {}

    def bucket(self, name: str) -> TokenBucket:
        if name not in self._buckets:
            self._buckets[name] = TokenBucket(name, self._budgets.get(name, FALLBACK_BUDGET))
        return self._buckets[name]

    def set_budget(self, name: str, budget: RequestBudget) -> None:
        """Replace a budget; its bucket restarts full."""
        self._budgets[name] = budget
        self._buckets.pop(name, None)
        logger.info(f"Request budget for {name}: {budget.requests} per {budget.period}s, burst {budget.burst}")

    async def take(self, name: str, cost: int = 1, block: bool = True, max_wait: float = 30.0) -> bool:
        return await self.bucket(name).take(cost, block, max_wait)

    def snapshot(self, name: str) -> Dict[str, Any]:
        bucket = self.bucket(name)
        return {
            "name": name,
            "level": bucket.level,
            "burst": bucket.budget.burst,
            "refill_rate": bucket.budget.refill_rate,
        }


_pacer: Optional[Pacer] = None


def get_pacer() -> Pacer:
    """Process-wide pacer."""
    global _pacer
    if _pacer is None:
        _pacer = Pacer()
    return _pacer


def paced(
    name: str,
    cost: int = 1,
    block: bool = True,
    max_wait: float = 30.0
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """
    Draw from the named budget before every call of a coroutine function.

    Example:
        @paced("tmdb")
        async def _get(self, endpoint, params=None):
            ...
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            await get_pacer().take(name, cost, block, max_wait)
            return await func(*args, **kwargs)
        return wrapper

    return decorator
