"""
Availability Prober

Decides whether a title is playable on the embed service by requesting its
embed page across the rotating mirror domains, falling back to a proxy when a
mirror rate-limits us.

Probe Algorithm:
    1. Budget is domain_count * 2 attempts
    2. Each attempt takes the next domain and requests /embed/... (HEAD or GET)
    3. HTTP 200: available, stop
    4. HTTP 429: retry the same URL once through the next proxy; 200 there is available
    5. Anything else (status, timeout, connection error) fails the attempt
    6. Attempts are spaced by attempt_delay (not after the last one)
    7. Optional: HTTP 404 ends probing immediately with a negative verdict

probe_detailed() returns the tagged outcome and lets unexpected errors
propagate; the reconciliation engine and the refresh job use it. probe()
collapses it to a bool and never raises.

Usage:
    prober = AvailabilityProber(Rotator.from_config())
    if await prober.probe(ContentKind.MOVIE, 550):
        ...
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import httpx

from availarr.config import Config
from availarr.models.content import ContentKind
from availarr.services.rotator import Rotator

logger = logging.getLogger(__name__)


class ProbeMethod(str, Enum):
    HEAD = "HEAD"
    GET = "GET"


class ProbeOutcome(str, Enum):
    """How a probe ended."""
    AVAILABLE = "available"
    NOT_FOUND = "not_found"  # 404 short-circuit
    EXHAUSTED = "exhausted"  # attempt budget spent without a 200


@dataclass
class ProbeResult:
    """Tagged result of one probe run."""
    outcome: ProbeOutcome
    attempts: int
    proxy_attempts: int = 0
    domain: Optional[str] = None
    via_proxy: bool = False
    last_error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.outcome is ProbeOutcome.AVAILABLE


def embed_path(
    kind: ContentKind,
    external_id: int,
    season: Optional[int] = None,
    episode: Optional[int] = None
) -> str:
    """
    Build the embed path for a title.

    Returns:
        ``/embed/movie/{id}``, ``/embed/tv/{id}`` or ``/embed/tv/{id}/{season}-{episode}``
    """
    if kind is ContentKind.MOVIE:
        return f"/embed/movie/{external_id}"
    if season is not None and episode is not None:
        return f"/embed/tv/{external_id}/{season}-{episode}"
    return f"/embed/tv/{external_id}"


class AvailabilityProber:
    """
    Probes embed URLs through a Rotator.

    Attributes:
        rotator: Domain/proxy source
        method: HEAD (page syncs) or GET (refresh job)
        timeout: Per-request timeout in seconds
        attempt_delay: Pause between attempts in seconds
        not_found_is_final: Treat HTTP 404 as an immediate negative verdict
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        rotator: Rotator,
        method: ProbeMethod = ProbeMethod.HEAD,
        timeout: Optional[float] = None,
        attempt_delay: Optional[float] = None,
        not_found_is_final: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.rotator = rotator
        self.method = ProbeMethod(method)
        self.timeout = timeout if timeout is not None else Config.PROBE_TIMEOUT_MS / 1000
        self.attempt_delay = (
            attempt_delay if attempt_delay is not None else Config.PROBE_ATTEMPT_DELAY_MS / 1000
        )
        self.not_found_is_final = not_found_is_final
        self.transport = transport

    @property
    def max_attempts(self) -> int:
        return self.rotator.domain_count * 2

    async def _request_status(self, url: str, proxy: Optional[str] = None) -> int:
        """
        Issue one request and return its status code.

        Raises:
            httpx.HTTPError: On timeout, connection or protocol failure
        """
        async with httpx.AsyncClient(
            timeout=self.timeout,
            proxy=proxy,
            transport=self.transport,
            follow_redirects=True
        ) as client:
            response = await client.request(self.method.value, url)
            return response.status_code

    async def _try(self, url: str, proxy: Optional[str] = None) -> Tuple[Optional[int], Optional[str]]:
        """Return (status, error) for one request, never raising on network failure."""
        try:
            return await self._request_status(url, proxy=proxy), None
        except httpx.TimeoutException:
            return None, f"timeout after {self.timeout}s"
        except httpx.HTTPError as e:
            return None, f"{type(e).__name__}: {e}"

    async def probe_detailed(
        self,
        kind: ContentKind,
        external_id: int,
        season: Optional[int] = None,
        episode: Optional[int] = None
    ) -> ProbeResult:
        """
        Run the probe algorithm and return its tagged result.

        Args:
            kind: Movie or series
            external_id: TMDB id
            season: Season number (episode probes only)
            episode: Episode number (episode probes only)

        Returns:
            ProbeResult describing how the probe ended
        """
        path = embed_path(kind, external_id, season, episode)
        max_attempts = self.max_attempts
        proxy_attempts = 0
        last_error = None

        for attempt in range(1, max_attempts + 1):
            domain = self.rotator.next_domain()
            url = f"https://{domain}{path}"
            status, error = await self._try(url)

            if status == 200:
                logger.debug(f"✓ {path} available on {domain} (attempt {attempt}/{max_attempts})")
                return ProbeResult(ProbeOutcome.AVAILABLE, attempt, proxy_attempts, domain)

            if status == 429:
                proxy = self.rotator.next_proxy()
                proxy_attempts += 1
                logger.debug(f"⚠ {domain} rate limited {path}, retrying via {proxy}")
                status, error = await self._try(url, proxy=proxy)
                if status == 200:
                    logger.debug(f"✓ {path} available on {domain} via proxy {proxy}")
                    return ProbeResult(
                        ProbeOutcome.AVAILABLE, attempt, proxy_attempts, domain, via_proxy=True
                    )

            if status == 404 and self.not_found_is_final:
                logger.debug(f"✗ {path} not found on {domain}, stopping")
                return ProbeResult(
                    ProbeOutcome.NOT_FOUND, attempt, proxy_attempts, domain, last_error="HTTP 404"
                )

            last_error = error or f"HTTP {status}"
            logger.debug(f"✗ {path} attempt {attempt}/{max_attempts} on {domain}: {last_error}")

            if attempt < max_attempts:
                await asyncio.sleep(self.attempt_delay)

        return ProbeResult(
            ProbeOutcome.EXHAUSTED, max_attempts, proxy_attempts, last_error=last_error
        )

    async def probe(
        self,
        kind: ContentKind,
        external_id: int,
        season: Optional[int] = None,
        episode: Optional[int] = None
    ) -> bool:
        """
        Boolean verdict for a title. Never raises.

        Returns:
            True if any attempt returned HTTP 200
        """
        try:
            result = await self.probe_detailed(kind, external_id, season, episode)
        except Exception as e:
            logger.error(f"✗ Probe crashed for {kind.value}:{external_id}: {type(e).__name__}: {e}")
            return False

        if not result.available:
            logger.debug(
                f"{kind.value}:{external_id} unavailable after {result.attempts} attempts "
                f"({result.outcome.value}, last error: {result.last_error})"
            )
        return result.available
