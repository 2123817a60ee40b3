"""
TMDB Catalog Client for Availarr

Paginated access to the TMDB catalog: discover/popular listing pages that
feed the page syncs, and detail/season lookups used to enrich series that
have been proven playable.

Key Features:
    - v3 API key (query parameter) and v4 read token (Bearer header) support
    - Shared request budget (@paced("tmdb"))
    - Automatic retry with backoff on 429, 5xx and network failures
    - Fail-soft public methods: a failed page is logged and comes back empty

Usage Example:
    >>> client = CatalogClient(api_key="...")
    >>> page = await client.fetch_page("discover/movie", 1)
    >>> page.total_pages, len(page.items)
    (500, 20)
    >>> details = await client.fetch_details(ContentKind.SERIES, 1399)
    >>> episodes = await client.fetch_season(1399, 1)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Tuple

import requests

from availarr.config import Config
from availarr.models.content import ContentKind
from availarr.services.exceptions import (
    AvailarrError,
    CatalogAPIError,
    ConfigurationError,
    NetworkRetryableError,
    classify_http_error,
    retry_on_network_error,
)
from availarr.services.rate_limiter import paced

logger = logging.getLogger(__name__)


@dataclass
class CatalogPage:
    """One listing page. ``failed`` pages carry no items and no page count."""
    page: int
    items: List[Dict[str, Any]] = field(default_factory=list)
    total_pages: Optional[int] = None
    total_results: Optional[int] = None
    failed: bool = False


def tmdb_auth(api_key: str) -> Tuple[Dict[str, str], Dict[str, str]]:
    """
    Build request params and headers for a TMDB credential.

    v4 read tokens are JWTs (they start with ``eyJ``) and go in an
    Authorization header; anything else is treated as a v3 ``api_key``.

    Returns:
        (params, headers)
    """
    if not api_key:
        raise ConfigurationError("TMDB_API_KEY is not set")
    if api_key.startswith('eyJ'):
        return {}, {'Authorization': f'Bearer {api_key}', 'Accept': 'application/json'}
    return {'api_key': api_key}, {'Accept': 'application/json'}


class CatalogClient:
    """
    Client for the TMDB v3 REST API.

    Attributes:
        api_key: TMDB v3 key or v4 read token
        base_url: API root (default https://api.themoviedb.org/3)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None
    ):
        self.api_key = api_key if api_key is not None else Config.TMDB_API_KEY
        self.base_url = (base_url or Config.TMDB_API_BASE).rstrip('/')
        self.timeout = timeout or Config.TMDB_API_TIMEOUT
        self._params, self._headers = tmdb_auth(self.api_key)

    @retry_on_network_error(max_retries=3)
    @paced("tmdb")
    async def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        GET a TMDB endpoint and return its JSON body.

        Raises:
            NetworkRetryableError: On timeout, connection error, 429 or 5xx (retried)
            CatalogAPIError: On 4xx or a non-JSON body
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        query = {**self._params, **(params or {})}

        try:
            response = await asyncio.to_thread(
                requests.get,
                url,
                params=query,
                headers=self._headers,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            raise NetworkRetryableError(f"TMDB API timeout for {endpoint}", original_exception=e)
        except requests.exceptions.ConnectionError as e:
            raise NetworkRetryableError(f"TMDB API connection error for {endpoint}", original_exception=e)
        except requests.exceptions.RequestException as e:
            raise NetworkRetryableError(f"TMDB API request failed: {e}", original_exception=e)

        if response.status_code != 200:
            raise classify_http_error(
                response.status_code,
                f"TMDB API returned HTTP {response.status_code} for {endpoint}",
                response.headers.get('Retry-After')
            )

        try:
            return response.json()
        except ValueError as e:
            raise CatalogAPIError(f"TMDB API returned invalid JSON for {endpoint}: {e}")

    async def fetch_page(self, endpoint: str, page: int) -> CatalogPage:
        """
        Fetch one listing page.

        Args:
            endpoint: Listing endpoint, e.g. ``discover/movie`` or ``tv/popular``
            page: 1-based page number

        Returns:
            CatalogPage; on failure ``failed`` is set and ``items`` is empty
        """
        try:
            data = await self._get(endpoint, {'page': page})
        except AvailarrError as e:
            logger.error(f"✗ Failed to fetch {endpoint} page {page}: {e}")
            return CatalogPage(page=page, failed=True)

        items = [item for item in data.get('results') or [] if item.get('id') is not None]
        return CatalogPage(
            page=page,
            items=items,
            total_pages=data.get('total_pages'),
            total_results=data.get('total_results'),
        )

    async def fetch_details(self, kind: ContentKind, external_id: int) -> Optional[Dict[str, Any]]:
        """
        Fetch the full detail payload of a movie or series.

        Returns:
            Detail dict, or None if the lookup failed
        """
        try:
            return await self._get(f"{kind.tmdb_path}/{external_id}")
        except AvailarrError as e:
            logger.error(f"✗ Failed to fetch {kind.tmdb_path} details for {external_id}: {e}")
            return None

    async def fetch_season(self, tv_id: int, season_number: int) -> List[Dict[str, Any]]:
        """
        Fetch the episode list of one season.

        Returns:
            Episode dicts (each with ``episode_number``), empty on failure
        """
        try:
            data = await self._get(f"tv/{tv_id}/season/{season_number}")
        except AvailarrError as e:
            logger.error(f"✗ Failed to fetch season {season_number} of tv {tv_id}: {e}")
            return []
        return [ep for ep in data.get('episodes') or [] if ep.get('episode_number') is not None]

    async def get_total_pages(self, endpoint: str, default: int = 500) -> int:
        """
        Read ``total_pages`` from page 1, capped at TMDB_MAX_PAGES.

        Falls back to ``default`` when the request fails or the field is missing.
        """
        first = await self.fetch_page(endpoint, 1)
        total = first.total_pages if not first.failed and first.total_pages else default
        return min(total, Config.TMDB_MAX_PAGES)
